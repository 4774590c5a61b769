"""Tests for the per-tool adapters."""

import json
from pathlib import Path

import pytest

from aitools.adapters import (
    ClaudeAdapter,
    CodexAdapter,
    CopilotCliAdapter,
    CursorAdapter,
    GitHubCopilotAdapter,
    ToolRegistry,
    WindsurfAdapter,
)
from aitools.models import Project
from aitools.registry import ManifestRegistry


@pytest.fixture
def project(registry: ManifestRegistry) -> Project:
    return registry.load_project("demo")


class TestToolRegistry:
    """Test adapter registration."""

    def test_names(self, registry: ManifestRegistry) -> None:
        tools = ToolRegistry(registry)
        assert tools.names() == [
            "claude-code",
            "cursor",
            "windsurf",
            "github-copilot",
            "copilot-cli",
            "codex",
        ]
        assert tools.get("nope") is None

    def test_adapters_share_resolver(self, registry: ManifestRegistry) -> None:
        adapters = ToolRegistry(registry).all()
        assert len({id(adapter.resolver) for adapter in adapters}) == 1


class TestClaudeAdapter:
    """Test Claude Code artifacts."""

    def test_project_artifacts(self, registry: ManifestRegistry, project: Project) -> None:
        artifacts = ClaudeAdapter(registry).compile(project)

        assert ".claude/prompts/review-checklist.json" in artifacts
        assert ".claude/prompts/summarize.json" in artifacts
        assert ".claude/skills/run-tests/README.md" in artifacts
        assert ".claude/agents/code-reviewer.md" in artifacts
        assert ".claude/agents/code-reviewer-backend.md" in artifacts
        assert ".claude/project-context.json" in artifacts
        assert ".claude/project-context-frontend.json" in artifacts
        assert ".claude/.cs.recipes/review-fix.sh" in artifacts

    def test_prompt_includes_inlined(self, registry: ManifestRegistry, project: Project) -> None:
        payload = json.loads(ClaudeAdapter(registry).compile(project)[".claude/prompts/review-checklist.json"])
        assert payload["id"] == "checklist"
        assert payload["content"] == "Check the change for {{focus}}.\n\nAlso check the tests."
        assert payload["variables"][0]["name"] == "focus"

    def test_agent_markdown(self, registry: ManifestRegistry, project: Project) -> None:
        artifacts = ClaudeAdapter(registry).compile(project)
        agent = artifacts[".claude/agents/code-reviewer-backend.md"]
        assert agent.startswith("---\ndescription: Reviews diffs for bugs and style issues\n---")
        assert "# Review code changes" in agent
        assert "- Use type hints" in agent
        assert "- Enable strict mode" not in agent

    def test_project_context(self, registry: ManifestRegistry, project: Project) -> None:
        artifacts = ClaudeAdapter(registry).compile(project)
        context = json.loads(artifacts[".claude/project-context.json"])
        assert context["project"]["name"] == "Demo App"
        assert context["project"]["rules"] == [
            "Use snake_case modules",
            "Use meaningful names",
            "No secrets in code",
            "Keep handlers thin",
        ]

    def test_skills_index(self, registry: ManifestRegistry) -> None:
        artifacts = ClaudeAdapter(registry).compile_global()
        skills = json.loads(artifacts[".claude/skills.json"])
        assert skills == {"skills": [{"id": "run-tests", "description": "Run the project test suite"}]}
        assert artifacts[".claude/skills/run-tests/README.md"] == "Runs make test.\n"

    def test_global_has_no_stack_variants(self, registry: ManifestRegistry) -> None:
        artifacts = ClaudeAdapter(registry).compile_global()
        assert ".claude/agents/code-reviewer.md" in artifacts
        assert not any("-backend" in path for path in artifacts)
        assert "- Use type hints" in artifacts[".claude/agents/code-reviewer.md"]


class TestCursorAdapter:
    """Test Cursor artifacts."""

    def test_recipes_json(self, registry: ManifestRegistry, project: Project) -> None:
        artifacts = CursorAdapter(registry).compile(project)
        recipes = json.loads(artifacts[".cursor/recipes.json"])["recipes"]

        names = [entry["name"] for entry in recipes]
        assert "code-reviewer-frontend" in names
        reviewer = next(entry for entry in recipes if entry["name"] == "code-reviewer")
        assert reviewer["prompt"].startswith("You are a careful reviewer.\n\nRules:\n- Use meaningful names")
        fixer = next(entry for entry in recipes if entry["name"] == "bug-fixer")
        assert fixer["description"] == "Fix reported bugs"

    def test_project_rules_per_stack(self, registry: ManifestRegistry, project: Project) -> None:
        artifacts = CursorAdapter(registry).compile(project)
        assert {".cursor/project-rules.json", ".cursor/project-rules-backend.json"} <= set(artifacts)
        rules = json.loads(artifacts[".cursor/project-rules-backend.json"])
        assert rules["context"] == {"name": "Demo App", "description": "Demo application with two stacks"}


class TestWindsurfAdapter:
    """Test Windsurf rule files."""

    def test_project_context(self, registry: ManifestRegistry, project: Project) -> None:
        artifacts = WindsurfAdapter(registry).compile(project)
        context = artifacts[".windsurf/rules/project-context-backend.md"]

        assert context.startswith("---\ntrigger: always_on\n---")
        assert "# Project: Demo App" in context
        assert "- **Languages:** python" in context
        assert "- `make test` - test" in context
        assert "### Naming\n\n- Use snake_case modules" in context
        assert "## Rules\n\n- Use meaningful names\n- No secrets in code\n- Keep handlers thin" in context

    def test_agent_and_prompt_rules(self, registry: ManifestRegistry, project: Project) -> None:
        artifacts = WindsurfAdapter(registry).compile(project)
        agent = artifacts[".windsurf/rules/agent-code-reviewer.md"]
        assert "trigger: manual" in agent
        assert "## Persona\n\nYou are a careful reviewer." in agent

        prompt = artifacts[".windsurf/rules/prompt-review-checklist.md"]
        assert "- `focus` (required)" in prompt
        assert "Also check the tests." in prompt


class TestInstructionFileAdapters:
    """Test single-file adapters."""

    def test_github_copilot_default_header(
        self,
        registry: ManifestRegistry,
        project: Project,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        content = GitHubCopilotAdapter(registry).compile(project)[".github/instructions.md"]
        assert content.startswith("# GitHub Copilot Instructions\n\n## Available Agents")
        assert "### code-reviewer-backend" in content
        assert "# Project: Demo App" in content
        assert "### backend\n- **Languages:** python\n- **Backend:** fastapi" in content
        assert "Base adapters not found for github-copilot" in caplog.text

    def test_github_copilot_uses_base_file(
        self, registry: ManifestRegistry, project: Project, repo_root: Path
    ) -> None:
        base = repo_root / "adapters" / "github-copilot" / ".github" / "instructions.md"
        base.parent.mkdir(parents=True)
        base.write_text("# Team Instructions\n\nBe kind.\n\n## Available Agents\n\n### stale\n")
        content = GitHubCopilotAdapter(registry).compile(project)[".github/instructions.md"]
        assert content.startswith("# Team Instructions\n\nBe kind.\n\n## Available Agents")
        assert "### stale" not in content

    def test_copilot_cli_shows_models(self, registry: ManifestRegistry, project: Project) -> None:
        content = CopilotCliAdapter(registry).compile(project)["AGENTS.md"]
        assert content.startswith("# AI Agents Configuration")
        assert "**Default Model:** sonnet" in content
        assert "*Override with: `copilot --model <model-name>`*" in content

    def test_copilot_cli_base_header_cut(
        self, registry: ManifestRegistry, project: Project, repo_root: Path
    ) -> None:
        base = repo_root / "adapters" / "copilot-cli" / "AGENTS.md"
        base.parent.mkdir(parents=True)
        base.write_text("# Agents\n\nIntro.\n\n## Available Agents\n\n### stale\n")
        content = CopilotCliAdapter(registry).compile(project)["AGENTS.md"]
        assert content.startswith("# Agents\n\nIntro.\n\n## Available Agents")
        assert "### stale" not in content

    def test_codex(self, registry: ManifestRegistry, project: Project) -> None:
        artifacts = CodexAdapter(registry).compile(project)
        assert artifacts["AGENTS.md"].startswith("# AI Agents Configuration\n\nInvoke agents")
        assert ".codex/prompts/prompt-summarize.md" in artifacts
        assert ".codex/prompts/prompt-summarize-frontend.md" in artifacts
        assert ".codex/prompts/agent-bug-fixer-backend.md" in artifacts
        assert not any(path.endswith(".sh") for path in artifacts)

    def test_codex_global(self, registry: ManifestRegistry) -> None:
        assert set(CodexAdapter(registry).compile_global()) == {"AGENTS.md"}
