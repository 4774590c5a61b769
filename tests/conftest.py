"""Shared fixtures: a small but complete manifest repository."""

import tempfile
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import yaml

from aitools.config import Settings
from aitools.registry import ManifestRegistry


def _write_yaml(root: Path, relative: str, data: dict[str, Any]) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(data, f, sort_keys=False)
    return path


def build_repository(root: Path) -> None:
    """Populate ``root`` with rulepacks, agents, prompts, recipes and a project."""
    # Rulepacks
    _write_yaml(root, "01_rulepacks/base.yml", {
        "id": "base",
        "version": "1.0.0",
        "description": "Baseline rules for every agent",
        "rules": ["Use meaningful names"],
    })
    _write_yaml(root, "01_rulepacks/security.yml", {
        "id": "security",
        "version": "1.0.0",
        "description": "Security rules building on the baseline",
        "extends": ["base"],
        "rules": ["No secrets in code"],
    })
    _write_yaml(root, "01_rulepacks/languages/python.yml", {
        "id": "python",
        "version": "1.0.0",
        "description": "Python specific coding rules",
        "extends": ["base"],
        "rules": ["Use type hints"],
        "tags": ["python"],
    })
    _write_yaml(root, "01_rulepacks/languages/typescript.yml", {
        "id": "typescript",
        "version": "1.0.0",
        "description": "TypeScript specific coding rules",
        "rules": ["Enable strict mode"],
        "metadata": {"tags": ["typescript"]},
    })

    # Agents
    _write_yaml(root, "04_agents/code-reviewer.yml", {
        "id": "code-reviewer",
        "version": "1.0.0",
        "purpose": "Review code changes",
        "description": "Reviews diffs for bugs and style issues",
        "rulepacks": ["security", "python", "typescript"],
        "constraints": ["Never rewrite whole files"],
        "defaults": {"model": "sonnet"},
        "prompt": {"system": "You are a careful reviewer."},
    })
    _write_yaml(root, "04_agents/bug-fixer.yml", {
        "id": "bug-fixer",
        "version": "1.0.0",
        "purpose": "Fix reported bugs",
        "rulepacks": ["base"],
    })

    # Prompts
    _write_yaml(root, "03_prompts/review/checklist.yml", {
        "id": "checklist",
        "version": "1.0.0",
        "description": "Checklist for reviewing a change",
        "content": "Check the change for {{focus}}.",
        "includes": ["extra.md"],
        "variables": [{"name": "focus", "required": True}],
    })
    (root / "03_prompts/review/extra.md").write_text("Also check the tests.\n")
    _write_yaml(root, "03_prompts/summarize.yml", {
        "id": "summarize",
        "version": "1.0.0",
        "description": "Summarize a pull request",
        "content": "Summarize the pull request.",
    })

    # Skills
    _write_yaml(root, "02_skills/run-tests/skill.yml", {
        "id": "run-tests",
        "version": "1.0.0",
        "description": "Run the project test suite",
        "command": "make test",
    })
    (root / "02_skills/run-tests/README.md").write_text("Runs make test.\n")

    # Recipes
    _write_yaml(root, "05_recipes/review-fix.yml", {
        "id": "review-fix",
        "version": "1.0.0",
        "description": "Review a change and fix what was found",
        "tools": ["claude-code", "cursor", "windsurf"],
        "variables": {"target": "src"},
        "steps": [
            {
                "id": "review",
                "agent": "code-reviewer",
                "task": "Review {{target}}",
                "outputDocument": "docs/review.md",
            },
            {
                "id": "fix",
                "agent": "bug-fixer",
                "task": "Fix the issues",
                "includeDocuments": ["docs/review.md"],
            },
        ],
    })
    _write_yaml(root, "05_recipes/feature-build.yml", {
        "id": "feature-build",
        "version": "1.0.0",
        "description": "Implement a feature end to end",
        "variables": {"FEATURE_DESCRIPTION": "{{FEATURE_DESCRIPTION}}"},
        "steps": [
            {
                "id": "implement",
                "agent": "bug-fixer",
                "task": "Implement {{FEATURE_DESCRIPTION}}",
            },
        ],
    })

    # Project with two stacks and a feature
    _write_yaml(root, "06_projects/global/demo/project.yml", {
        "id": "demo",
        "version": "1.0.0",
        "name": "Demo App",
        "description": "Demo application with two stacks",
        "context": {"overview": "A web app with an API."},
        "tech_stacks": {
            "backend": {"languages": ["python"], "backend": ["fastapi"]},
            "frontend": {"languages": ["typescript"], "frontend": ["react"]},
        },
        "commands": {"test": "make test"},
        "conventions": {"naming": ["Use snake_case modules"]},
        "ai_tools": {
            "model": "opus",
            "preferred_rulepacks": ["security"],
            "custom_rules": ["Keep handlers thin"],
        },
    })
    _write_yaml(root, "06_projects/global/demo/features/login/feature.yml", {
        "id": "login",
        "version": "1.0.0",
        "name": "Login",
        "description": "User login with sessions",
        "context": {"overview": "Session based login."},
        "conventions": ["Hash passwords"],
        "recipe": {
            "id": "feature-build",
            "context": {"feature_description": "Add login"},
            "tools": ["claude-code"],
        },
    })


@pytest.fixture
def write_yaml() -> Callable[[Path, str, dict[str, Any]], Path]:
    """Write a YAML manifest below a root directory."""
    return _write_yaml


@pytest.fixture
def empty_root() -> Iterator[Path]:
    """An empty directory to build a repository in."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir).resolve()


@pytest.fixture
def repo_root(empty_root: Path) -> Path:
    """A populated manifest repository."""
    build_repository(empty_root)
    return empty_root


@pytest.fixture
def settings(repo_root: Path) -> Settings:
    return Settings.from_root(repo_root)


@pytest.fixture
def registry(settings: Settings) -> ManifestRegistry:
    return ManifestRegistry(settings)
