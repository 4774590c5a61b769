"""Tests for the interactive recipe runner."""

from collections.abc import Iterator
from pathlib import Path

import pytest
from rich.console import Console

from aitools.models import Recipe
from aitools.registry import ManifestRegistry
from aitools.runner import RecipeRunner, RunnerState


class ScriptedAsk:
    """Answers prompts from a fixed list and records the questions."""

    def __init__(self, answers: list[str] | None = None) -> None:
        self.answers: Iterator[str] = iter(answers or [])
        self.questions: list[str] = []

    def __call__(self, question: str) -> str:
        self.questions.append(question)
        return next(self.answers, "")


def _recipe(**overrides) -> Recipe:
    data = {
        "id": "demo",
        "version": "1.0.0",
        "description": "Runner test recipe",
        "steps": [{"id": "a", "agent": "bug-fixer", "task": "Do A"}],
    }
    data.update(overrides)
    return Recipe.model_validate(data)


def _runner(recipe: Recipe, registry: ManifestRegistry, workdir: Path, ask: ScriptedAsk, **kwargs) -> RecipeRunner:
    return RecipeRunner(
        recipe,
        kwargs.pop("tool", "claude-code"),
        registry,
        ask=ask,
        console=Console(quiet=True),
        workdir=workdir,
        **kwargs,
    )


class TestRunnerFlow:
    """Test state transitions."""

    def test_simple_run(self, registry: ManifestRegistry, empty_root: Path) -> None:
        ask = ScriptedAsk()
        runner = _runner(_recipe(), registry, empty_root, ask)

        assert runner.run() == RunnerState.DONE
        assert runner.executed == ["a"]
        assert runner.history == [
            RunnerState.IDLE,
            RunnerState.EVALUATING_CONDITION,
            RunnerState.DISPLAYING,
            RunnerState.AWAITING_OPERATOR,
            RunnerState.NEXT_STEP,
            RunnerState.DONE,
        ]
        assert ask.questions == ["Press Enter when command is completed..."]

    def test_unsupported_tool_cancel(self, registry: ManifestRegistry, empty_root: Path) -> None:
        ask = ScriptedAsk(["n"])
        runner = _runner(_recipe(tools=["cursor"]), registry, empty_root, ask)

        assert runner.run() == RunnerState.CANCELLED
        assert runner.executed == []
        assert ask.questions == ["Continue anyway? (y/n): "]

    def test_wait_for_confirmation_pauses(self, registry: ManifestRegistry, empty_root: Path) -> None:
        recipe = _recipe(steps=[
            {"id": "a", "agent": "bug-fixer", "task": "A", "waitForConfirmation": True},
            {"id": "b", "agent": "bug-fixer", "task": "B"},
        ])
        runner = _runner(recipe, registry, empty_root, ScriptedAsk(["", "n"]))
        assert runner.run() == RunnerState.CANCELLED
        assert runner.executed == ["a"]

    def test_user_decision_skip(self, registry: ManifestRegistry, empty_root: Path) -> None:
        recipe = _recipe(steps=[
            {"id": "a", "agent": "bug-fixer", "task": "A", "condition": {"type": "user-decision"}},
            {"id": "b", "agent": "bug-fixer", "task": "B"},
        ])
        ask = ScriptedAsk(["n", ""])
        runner = _runner(recipe, registry, empty_root, ask)

        assert runner.run() == RunnerState.DONE
        assert runner.executed == ["b"]
        assert RunnerState.SKIPPED in runner.history
        assert ask.questions[0] == "Execute step a? (y/n): "

    def test_file_exists_condition(self, registry: ManifestRegistry, empty_root: Path) -> None:
        recipe = _recipe(steps=[
            {
                "id": "a",
                "agent": "bug-fixer",
                "task": "A",
                "condition": {"type": "file_exists", "check": {"type": "contains", "value": "plan.md"}},
            },
        ])
        runner = _runner(recipe, registry, empty_root, ScriptedAsk())
        runner.run()
        assert runner.executed == []

        (empty_root / "plan.md").write_text("plan")
        runner = _runner(recipe, registry, empty_root, ScriptedAsk())
        runner.run()
        assert runner.executed == ["a"]


class TestRunnerLoops:
    """Test loop iteration."""

    def test_loop_respects_max_iterations(self, registry: ManifestRegistry, empty_root: Path) -> None:
        recipe = _recipe(
            steps=[{"id": s, "agent": "bug-fixer", "task": s} for s in ["a", "b", "c", "d"]],
            loop={"steps": ["b", "c"], "maxIterations": 2},
        )
        runner = _runner(recipe, registry, empty_root, ScriptedAsk())

        assert runner.run() == RunnerState.DONE
        assert runner.executed == ["a", "b", "c", "b", "c", "d"]
        assert runner.history.count(RunnerState.CHECKING_LOOP) == 2

    def test_user_decision_ends_loop(self, registry: ManifestRegistry, empty_root: Path) -> None:
        recipe = _recipe(
            steps=[{"id": "a", "agent": "bug-fixer", "task": "A"}],
            loop={"steps": ["a"], "maxIterations": 5, "condition": {"type": "user-decision"}},
        )
        runner = _runner(recipe, registry, empty_root, ScriptedAsk(["", "n"]))
        runner.run()
        assert runner.executed == ["a"]

    def test_command_condition_exits_on_success(self, registry: ManifestRegistry, empty_root: Path) -> None:
        recipe = _recipe(
            steps=[{"id": "a", "agent": "bug-fixer", "task": "A"}],
            loop={"steps": ["a"], "maxIterations": 4, "condition": {"type": "command", "cmd": "true"}},
        )
        runner = _runner(recipe, registry, empty_root, ScriptedAsk())
        runner.run()
        assert runner.executed == ["a"]


class TestRunnerTasks:
    """Test task text, commands and documents."""

    def test_variables_from_overrides_and_defaults(
        self, registry: ManifestRegistry, empty_root: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("TARGET", raising=False)
        monkeypatch.setenv("MODE", "strict")
        recipe = _recipe(variables={"target": "src", "mode": "lenient", "scope": "all"})
        runner = _runner(recipe, registry, empty_root, ScriptedAsk(), variables={"scope": "api"})
        assert runner.resolve_variables() == {"target": "src", "mode": "strict", "scope": "api"}

    def test_build_task(self, registry: ManifestRegistry, empty_root: Path) -> None:
        (empty_root / "docs").mkdir()
        (empty_root / "docs" / "plan.md").write_text("The plan")
        recipe = _recipe(
            variables={"target": "src"},
            steps=[{
                "id": "a",
                "agent": "bug-fixer",
                "task": "Review {{target}} in {{file}}",
                "inputs": {"file": "main.py"},
                "includeDocuments": ["docs/plan.md", "docs/missing.md"],
                "outputDocument": "docs/review.md",
            }],
        )
        runner = _runner(recipe, registry, empty_root, ScriptedAsk())
        task = runner.build_task(recipe.steps[0])

        assert task.startswith("Review src in main.py")
        assert "### Document: `docs/plan.md`\n\nThe plan" in task
        assert "docs/missing.md" not in task
        assert "Save your complete response to the file: `docs/review.md`" in task

    def test_tool_command(self, registry: ManifestRegistry, empty_root: Path) -> None:
        recipe = _recipe(steps=[{"id": "a", "agent": "code-reviewer", "task": "Check it", "model": "haiku"}])
        runner = _runner(recipe, registry, empty_root, ScriptedAsk())
        runner.agents = registry.load_agents()

        command = runner.tool_command(recipe.steps[0], "Check it")
        assert command.startswith(
            "claude --system-prompt 'You are a careful reviewer.' --model haiku -p 'Check it'"
        )
        assert command.endswith("demo.last-output")

    def test_manual_tool_has_no_command(self, registry: ManifestRegistry, empty_root: Path) -> None:
        runner = _runner(_recipe(), registry, empty_root, ScriptedAsk(), tool="windsurf")
        assert runner.tool_command(runner.recipe.steps[0], "Do A") is None

    def test_saved_document_cached(self, registry: ManifestRegistry, empty_root: Path) -> None:
        recipe = _recipe(steps=[
            {"id": "a", "agent": "bug-fixer", "task": "A", "outputDocument": "out.md"},
        ])

        class WritingAsk(ScriptedAsk):
            def __call__(self, question: str) -> str:
                if question.startswith("Press Enter once"):
                    (empty_root / "out.md").write_text("result")
                return super().__call__(question)

        runner = _runner(recipe, registry, empty_root, WritingAsk())
        assert runner.run() == RunnerState.DONE
        assert runner.documents == {"out.md": "result"}
        assert RunnerState.SAVING_DOCUMENT in runner.history

    def test_on_success_reads_last_output(self, registry: ManifestRegistry, empty_root: Path) -> None:
        recipe = _recipe(steps=[
            {"id": "a", "agent": "bug-fixer", "task": "A"},
            {
                "id": "b",
                "agent": "bug-fixer",
                "task": "B",
                "condition": {"type": "on-success", "check": {"type": "contains", "value": "PASS"}},
            },
        ])
        runner = _runner(recipe, registry, empty_root, ScriptedAsk())
        runner.logs_dir.mkdir(parents=True)
        runner.output_file.write_text("tests PASS")
        runner.run()
        assert runner.executed == ["a", "b"]
