"""Interactive recipe runner.

The runner never invokes the external assistants itself. It shows the
operator each step's task and command, waits while they run it, and
collects documents written along the way. Its progress is an explicit
state machine so every suspension point is visible in ``history``.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
from collections.abc import Callable, Mapping
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt

from .models import (
    Agent,
    CheckType,
    ConditionCheck,
    LoopConditionType,
    Recipe,
    RecipeStep,
    StepConditionType,
)
from .registry import ManifestRegistry
from .shell import TEMPLATE_TOKEN, shell_var_name

logger = logging.getLogger(__name__)

AskFn = Callable[[str], str]

DOCUMENTS_HEADER = "\n\n---\n\n## Reference Documents (Context)\n\n"
DOCUMENTS_FOOTER = "\n---\n\n**Please use the documents above as context for your work.**\n\n"


class RunnerState(str, Enum):
    """States of the interactive runner."""

    IDLE = "idle"
    EVALUATING_CONDITION = "evaluating-condition"
    SKIPPED = "skipped"
    DISPLAYING = "displaying"
    AWAITING_OPERATOR = "awaiting-operator"
    SAVING_DOCUMENT = "saving-document"
    NEXT_STEP = "next-step"
    CHECKING_LOOP = "checking-loop"
    DONE = "done"
    CANCELLED = "cancelled"


def _is_yes(answer: str) -> bool:
    return answer.strip().lower() in ("y", "yes")


class RecipeRunner:
    """Walks an operator through a recipe one step at a time."""

    def __init__(
        self,
        recipe: Recipe,
        tool: str,
        registry: ManifestRegistry,
        ask: AskFn | None = None,
        console: Console | None = None,
        workdir: Path | None = None,
        variables: Mapping[str, str] | None = None,
    ) -> None:
        self.recipe = recipe
        self.tool = tool
        self.registry = registry
        self.console = console or Console()
        self.ask = ask or self._prompt
        self.workdir = Path(workdir) if workdir else Path.cwd()
        self.docs_dir = self.workdir / registry.settings.recipe_docs_dir
        self.logs_dir = self.workdir / registry.settings.recipe_logs_dir
        self.output_file = self.logs_dir / f"{recipe.id}.last-output"
        self.overrides = dict(variables or {})
        self.documents: dict[str, str] = {}
        self.agents: dict[str, Agent] = {}
        self.state = RunnerState.IDLE
        self.history: list[RunnerState] = [RunnerState.IDLE]
        self.executed: list[str] = []

    def _prompt(self, question: str) -> str:
        return Prompt.ask(escape(question), console=self.console, default="", show_default=False)

    def _transition(self, state: RunnerState) -> None:
        logger.debug("Runner %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    # Driving

    def run(self) -> RunnerState:
        """Run the recipe to completion or cancellation and return the final state."""
        self.console.print(f"\n[bold blue]🚀 Running recipe: {escape(self.recipe.id)}[/bold blue]\n")
        self.console.print(f"[dim]{escape(self.recipe.description)}[/dim]")
        self.console.print(f"[dim]Tool: {escape(self.tool)}[/dim]\n")

        if not self.recipe.supports_tool(self.tool):
            self.console.print(
                f"[yellow]⚠️  Recipe doesn't explicitly support {escape(self.tool)}. "
                f"Supported tools: {escape(', '.join(self.recipe.tools))}[/yellow]"
            )
            if not _is_yes(self.ask("Continue anyway? (y/n): ")):
                return self._cancel("Recipe execution cancelled.")

        self.docs_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.agents = self.registry.load_agents()

        pre, body, post = self.recipe.partition_steps()

        if not self._run_steps(pre):
            return self.state

        if self.recipe.loop is not None and body:
            limit = self.recipe.loop.max_iterations
            for iteration in range(1, limit + 1):
                self.console.print(f"\n[cyan]📍 Loop iteration {iteration}/{limit}[/cyan]\n")
                if not self._run_steps(body):
                    return self.state
                self._transition(RunnerState.CHECKING_LOOP)
                if iteration >= limit:
                    self.console.print("[yellow]Maximum iterations reached.[/yellow]")
                    break
                if not self._should_continue_loop():
                    self.console.print("[green]Loop condition met, exiting loop.[/green]")
                    break

        if not self._run_steps(post):
            return self.state

        self._transition(RunnerState.DONE)
        self.console.print("\n[bold green]✅ Recipe execution completed![/bold green]\n")
        return self.state

    def _cancel(self, message: str) -> RunnerState:
        self._transition(RunnerState.CANCELLED)
        self.console.print(f"[yellow]{escape(message)}[/yellow]")
        return self.state

    def _run_steps(self, steps: list[RecipeStep]) -> bool:
        """Run steps in order; ``False`` once the operator cancels."""
        for step in steps:
            self._transition(RunnerState.EVALUATING_CONDITION)
            if not self.should_execute_step(step):
                self._transition(RunnerState.SKIPPED)
                self.console.print(f"[dim]⏭️  Skipping step: {escape(step.id)}[/dim]")
                self._transition(RunnerState.NEXT_STEP)
                continue

            self._execute_step(step)
            self._transition(RunnerState.NEXT_STEP)

            if step.wait_for_confirmation and not _is_yes(
                self.ask("Continue to next step? (y/n): ")
            ):
                self._cancel("Recipe execution paused by user.")
                return False
        return True

    # Conditions

    def should_execute_step(self, step: RecipeStep) -> bool:
        condition = step.condition
        if condition is None or condition.type == StepConditionType.ALWAYS:
            return True

        if condition.type == StepConditionType.USER_DECISION:
            prompt = (
                condition.check.prompt
                if condition.check and condition.check.prompt
                else f"Execute step {step.id}? (y/n): "
            )
            return _is_yes(self.ask(prompt))

        if condition.type == StepConditionType.FILE_EXISTS:
            target = condition.check.value if condition.check else None
            return not target or (self.workdir / target).is_file()

        if condition.check is None:
            return True

        passed = self.check_condition(condition.check)
        if condition.type == StepConditionType.ON_FAILURE:
            return not passed
        return passed

    def check_condition(self, check: ConditionCheck) -> bool:
        """Evaluate a check against the previous step's captured output."""
        if check.type == CheckType.COMMAND:
            return bool(check.cmd) and self._run_command(check.cmd or "")
        if check.type == CheckType.USER_APPROVAL:
            return _is_yes(self.ask(check.prompt or "Approve? (y/n): "))

        if not self.output_file.is_file():
            return False
        output = self.output_file.read_text(encoding="utf-8")

        if check.type == CheckType.CONTAINS:
            return bool(check.value) and (check.value or "") in output
        if check.type == CheckType.REGEX and check.pattern:
            try:
                return re.search(check.pattern, output) is not None
            except re.error as e:
                self.console.print(f"[red]Invalid pattern {escape(check.pattern)}: {escape(str(e))}[/red]")
                return False
        return False

    def _should_continue_loop(self) -> bool:
        loop = self.recipe.loop
        condition = loop.condition if loop else None
        if condition is None or condition.type == LoopConditionType.MAX_ITERATIONS:
            return True
        if condition.type == LoopConditionType.USER_DECISION:
            return _is_yes(self.ask(condition.prompt or "Continue loop? (y/n): "))
        if condition.type == LoopConditionType.COMMAND and condition.cmd:
            return not self._run_command(condition.cmd)
        return True

    def _run_command(self, cmd: str) -> bool:
        try:
            result = subprocess.run(cmd, shell=True, cwd=self.workdir, check=False)
        except OSError as e:
            logger.warning("Command failed to start: %s (%s)", cmd, e)
            return False
        return result.returncode == 0

    # Steps

    def resolve_variables(self) -> dict[str, str]:
        """Recipe variables from overrides, the environment, then their defaults."""
        values: dict[str, str] = {}
        for key, template in self.recipe.variables.items():
            name = shell_var_name(key)
            if key in self.overrides:
                values[key] = self.overrides[key]
            elif name in self.overrides:
                values[key] = self.overrides[name]
            elif name in os.environ:
                values[key] = os.environ[name]
            else:
                values[key] = TEMPLATE_TOKEN.sub(
                    lambda m: self.overrides.get(m.group(1), os.environ.get(shell_var_name(m.group(1)), m.group(0))),
                    template,
                )
        return values

    def build_task(self, step: RecipeStep) -> str:
        """Interpolated task text with documents and the save instruction."""
        replacements = {**self.resolve_variables(), **step.inputs}
        task = TEMPLATE_TOKEN.sub(
            lambda m: replacements.get(m.group(1), m.group(0)),
            step.task,
        )

        if step.include_documents:
            task += DOCUMENTS_HEADER
            for doc_path in step.include_documents:
                content = self._read_document(doc_path)
                if content is None:
                    self.console.print(f"[yellow]   ⚠️  Document not found: {escape(doc_path)}[/yellow]")
                    continue
                task += f"### Document: `{doc_path}`\n\n{content}\n\n---\n\n"
                self.console.print(f"[green]   ✓ Included: {escape(doc_path)}[/green]")
            task += DOCUMENTS_FOOTER

        if step.output_document:
            task += (
                "\n\n---\n\n**IMPORTANT**: Save your complete response to the file: "
                f"`{step.output_document}`\n"
            )
        return task

    def _read_document(self, doc_path: str) -> str | None:
        if doc_path in self.documents:
            return self.documents[doc_path]
        full_path = self.workdir / doc_path
        if full_path.is_file():
            self.documents[doc_path] = full_path.read_text(encoding="utf-8")
            return self.documents[doc_path]
        return None

    def tool_command(self, step: RecipeStep, task: str) -> str | None:
        """Command line the operator should run; ``None`` for manual tools."""
        agent = self.agents.get(step.agent)
        model = step.model or self.recipe.model
        tee = f" | tee {shlex.quote(str(self.output_file))}"

        if self.tool == "claude-code":
            args = ["claude"]
            if agent and agent.prompt and agent.prompt.system:
                args += ["--system-prompt", agent.prompt.system.strip()]
            if model:
                args += ["--model", model]
            args += ["-p", task]
            return shlex.join(args) + tee
        if self.tool == "copilot-cli":
            args = ["copilot", "-p", f"@{step.agent} {task}"]
            if model:
                args += ["--model", model]
            return shlex.join(args) + tee
        if self.tool == "cursor":
            args = ["cursor-agent", "-p", task]
            if model:
                args += ["--model", model]
            return shlex.join(args) + tee
        return None

    def _execute_step(self, step: RecipeStep) -> None:
        self._transition(RunnerState.DISPLAYING)
        self.console.print(f"\n[cyan]▶️  Step: {escape(step.id)}[/cyan]")
        self.console.print(f"[dim]   Agent: {escape(step.agent)}[/dim]")
        if step.agent not in self.agents:
            self.console.print(f"[red]   ❌ Agent not found: {escape(step.agent)}[/red]")

        task = self.build_task(step)
        self.console.print(f"\n{escape(task)}\n")

        command = self.tool_command(step, task)
        if command is None:
            self.console.print(
                f"[yellow]   📝 Execute this step in {escape(self.tool)} and return here when done.[/yellow]"
            )
        else:
            self.console.print("[yellow]   📝 Run the command below and return here when done:[/yellow]")
            self.console.print(f"      {escape(command)}\n")

        self._transition(RunnerState.AWAITING_OPERATOR)
        self.ask("Press Enter when command is completed...")
        self.executed.append(step.id)

        if step.output_document:
            self._save_document(step.output_document)

    def _save_document(self, doc_path: str) -> None:
        self._transition(RunnerState.SAVING_DOCUMENT)
        full_path = self.workdir / doc_path
        self.console.print(f"\n[yellow]📝 Please save the AI's response to: {escape(doc_path)}[/yellow]")
        self.console.print(f"[dim]   Full path: {escape(str(full_path))}[/dim]")
        self.ask("Press Enter once the document has been saved...")

        if not full_path.is_file():
            self.console.print(
                f"[yellow]   ⚠️  Could not read document: {escape(doc_path)}. "
                "It will not be available for subsequent steps.[/yellow]"
            )
            return

        content = full_path.read_text(encoding="utf-8")
        self.documents[doc_path] = content
        self.console.print(f"[green]   ✓ Document loaded and cached: {escape(doc_path)}[/green]")
        self.console.print(f"[dim]   Size: {len(content)} bytes[/dim]\n")
