"""Tests for rulepack resolution and model priority."""

from pathlib import Path

import pytest

from aitools.exceptions import RulepackCycleError
from aitools.models import Agent, Feature, Project, Prompt
from aitools.registry import ManifestRegistry
from aitools.resolver import RulepackResolver, describe_model_source, resolve_model


class TestResolveRulepacks:
    """Test inheritance flattening."""

    def test_parents_first(self, registry: ManifestRegistry) -> None:
        resolver = RulepackResolver(registry)
        assert resolver.resolve_rulepacks(["security"]) == ["Use meaningful names", "No secrets in code"]

    def test_diamond_visits_shared_parent_once(self, registry: ManifestRegistry) -> None:
        rules = RulepackResolver(registry).resolve_rulepacks(["security", "python"])
        assert rules == ["Use meaningful names", "No secrets in code", "Use type hints"]

    def test_idempotent(self, registry: ManifestRegistry) -> None:
        resolver = RulepackResolver(registry)
        first = resolver.resolve_rulepacks(["security", "python", "typescript"])
        assert resolver.resolve_rulepacks(["security", "python", "typescript"]) == first

    def test_missing_rulepack_warns(
        self, registry: ManifestRegistry, caplog: pytest.LogCaptureFixture
    ) -> None:
        rules = RulepackResolver(registry).resolve_rulepacks(["ghost", "base"])
        assert rules == ["Use meaningful names"]
        assert "Rulepack 'ghost' not found" in caplog.text

    def test_cycle_detected(self, registry: ManifestRegistry, repo_root: Path, write_yaml) -> None:
        write_yaml(repo_root, "01_rulepacks/loop-a.yml", {"id": "loop-a", "extends": ["loop-b"], "rules": ["a"]})
        write_yaml(repo_root, "01_rulepacks/loop-b.yml", {"id": "loop-b", "extends": ["loop-a"], "rules": ["b"]})

        with pytest.raises(RulepackCycleError, match="loop-a -> loop-b -> loop-a") as exc_info:
            RulepackResolver(registry).resolve_rulepacks(["loop-a"])
        assert exc_info.value.details["cycle"] == ["loop-a", "loop-b", "loop-a"]


class TestProjectResolution:
    """Test project and tech-stack aware resolution."""

    def test_global_context_drops_stack_languages(self, registry: ManifestRegistry) -> None:
        project = registry.load_project("demo")
        rules = RulepackResolver(registry).resolve_rulepacks(
            ["security", "python", "typescript"], project
        )
        assert rules == ["Use meaningful names", "No secrets in code"]

    def test_backend_stack_includes_python(self, registry: ManifestRegistry) -> None:
        project = registry.load_project("demo")
        rules = RulepackResolver(registry).resolve_rulepacks(
            ["security", "python", "typescript"], project, project.tech_stacks["backend"]
        )
        assert rules == ["Use meaningful names", "No secrets in code", "Use type hints"]

    def test_blacklist_applies(self, registry: ManifestRegistry) -> None:
        project = registry.load_project("demo")
        project.ai_tools.blacklist_rulepacks = ["security"]
        resolver = RulepackResolver(registry)
        assert resolver.resolve_rulepacks(["security", "base"], project) == ["Use meaningful names"]

    def test_resolve_all_agents(self, registry: ManifestRegistry) -> None:
        project = registry.load_project("demo")
        resolved = RulepackResolver(registry).resolve_all_agents(project)

        keys = [(r.agent.id, r.suffix) for r in resolved]
        assert keys == [
            ("bug-fixer", ""),
            ("code-reviewer", ""),
            ("bug-fixer", "-backend"),
            ("code-reviewer", "-backend"),
            ("bug-fixer", "-frontend"),
            ("code-reviewer", "-frontend"),
        ]
        frontend = next(r for r in resolved if r.suffix == "-frontend" and r.agent.id == "code-reviewer")
        assert frontend.stack == "frontend"
        assert frontend.rules[-1] == "Enable strict mode"

    def test_agent_whitelist(self, registry: ManifestRegistry) -> None:
        project = registry.load_project("demo")
        project.ai_tools.whitelist_agents = ["code-reviewer"]
        resolved = RulepackResolver(registry).resolve_all_agents(project)
        assert {r.agent.id for r in resolved} == {"code-reviewer"}

    def test_build_project_rules(self, registry: ManifestRegistry) -> None:
        project = registry.load_project("demo")
        assert RulepackResolver(registry).build_project_rules(project) == [
            "Use snake_case modules",
            "Use meaningful names",
            "No secrets in code",
            "Keep handlers thin",
        ]


class TestModelResolution:
    """Test model priority: feature > project > agent > prompt."""

    def _models(self) -> tuple[Prompt, Agent, Project, Feature]:
        prompt = Prompt(id="p", description="A prompt", model="haiku")
        agent = Agent(id="a", purpose="p", defaults={"model": "sonnet"})
        project = Project(
            id="x", version="1.0.0", name="X", description="A project", ai_tools={"model": "opus"}
        )
        feature = Feature(id="f", version="1.0.0", name="F", description="A feature", model="opus-max")
        return prompt, agent, project, feature

    def test_feature_wins(self) -> None:
        prompt, agent, project, feature = self._models()
        assert resolve_model(prompt, agent, project, feature) == "opus-max"
        assert describe_model_source(prompt, agent, project, feature) == "feature-level (highest priority)"

    def test_fallthrough(self) -> None:
        prompt, agent, project, _ = self._models()
        assert resolve_model(prompt, agent, project) == "opus"
        assert resolve_model(prompt, agent) == "sonnet"
        assert describe_model_source(prompt, agent) == "agent-level (default)"
        assert resolve_model(prompt) == "haiku"
        assert describe_model_source(prompt) == "prompt-level"
        assert resolve_model() is None
