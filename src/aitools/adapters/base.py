"""Base class and shared rendering helpers for tool adapters."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from ..filters import should_include_prompt
from ..models import Project, Prompt, TechStack
from ..recipes import RecipeCompiler
from ..registry import ManifestRegistry
from ..resolver import ResolvedAgent, RulepackResolver

logger = logging.getLogger(__name__)

AGENTS_HEADING = "## Available Agents"


class ToolAdapter(ABC):
    """Renders resolved manifests into one assistant's native files.

    Both ``compile`` methods return a mapping of path (relative to the tool's
    output root) to file content; writing is left to ``ArtifactWriter``.
    """

    name: str = ""

    def __init__(
        self,
        registry: ManifestRegistry,
        resolver: RulepackResolver | None = None,
        recipes: RecipeCompiler | None = None,
    ) -> None:
        self.registry = registry
        self.resolver = resolver or RulepackResolver(registry)
        self.recipes = recipes or RecipeCompiler(registry)

    @abstractmethod
    def compile(self, project: Project) -> dict[str, str]:
        """Generate configuration for a specific project."""

    @abstractmethod
    def compile_global(self) -> dict[str, str]:
        """Generate unfiltered configuration for the repository itself."""

    # Shared lookups

    def included_prompts(self, project: Project | None = None) -> list[Prompt]:
        prompts = self.registry.load_prompts()
        prompts_map = self.registry.prompts_map()
        return [
            prompt
            for prompt in prompts
            if should_include_prompt(prompt.id, prompts_map, project)
        ]

    def global_agents(self) -> list[ResolvedAgent]:
        """Every agent with its rules resolved without project filters."""
        return [
            ResolvedAgent(agent=agent, rules=self.resolver.resolve_rulepacks(agent.rulepacks))
            for agent in self.registry.load_agents().values()
        ]

    def stack_contexts(self, project: Project) -> list[tuple[str, TechStack | None]]:
        """``("", None)`` for the global context, then ``("-<name>", stack)``."""
        contexts: list[tuple[str, TechStack | None]] = [("", None)]
        contexts.extend((f"-{name}", stack) for name, stack in project.tech_stacks.items())
        return contexts

    def prompt_body(self, prompt: Prompt) -> str | None:
        """Prompt content with its includes appended."""
        parts = [prompt.content] if prompt.content else []
        parts.extend(
            content for _, content in self.registry.read_prompt_includes(prompt) if content
        )
        return "\n\n".join(part.strip() for part in parts) if parts else None

    def read_base_file(self, filename: str, warn: bool = True) -> str | None:
        """Base file under ``adapters/<tool>/``, if built."""
        base_file = self.registry.settings.adapters_path / self.name / filename
        if not base_file.is_file():
            if warn:
                logger.warning("Base adapters not found for %s, run build first", self.name)
            return None
        return base_file.read_text(encoding="utf-8")


def header_before_agents(base: str | None, default: str) -> str:
    """Text of a base file that precedes its generated agent list."""
    if not base:
        return default
    return base.split(AGENTS_HEADING, 1)[0].rstrip() + "\n"


def bullets(items: list[str]) -> list[str]:
    """Format string list as markdown bullets."""
    return [f"- {item}" for item in items]


def agent_section(resolved: ResolvedAgent, show_model: bool = False) -> list[str]:
    """``### <id>`` block used by the instruction-file adapters."""
    agent = resolved.agent
    lines = [f"### {agent.id}{resolved.suffix}", "", f"**Purpose:** {agent.purpose}", ""]

    if show_model and agent.defaults and agent.defaults.model:
        lines += [
            f"**Default Model:** {agent.defaults.model}",
            "",
            "*Override with: `copilot --model <model-name>`*",
            "",
        ]
    if agent.prompt and agent.prompt.system:
        lines += ["**Persona:**", "", agent.prompt.system.strip(), ""]
    if agent.constraints:
        lines += ["**Constraints:**", "", *bullets(agent.constraints), ""]
    if resolved.rules:
        lines += ["**Rules:**", "", *bullets(resolved.rules), ""]
    lines += ["---", ""]
    return lines


def stack_lines(stack: TechStack, prefix: str = "") -> list[str]:
    lines: list[str] = []
    for label, values in (
        ("Languages", stack.languages),
        ("Frontend", stack.frontend),
        ("Backend", stack.backend),
        ("Database", stack.database),
        ("Infrastructure", stack.infrastructure),
        ("Tools", stack.tools),
    ):
        if values:
            lines.append(f"{prefix}**{label}:** {', '.join(values)}")
    return lines


def command_lines(commands: dict[str, Any]) -> list[str]:
    lines: list[str] = []
    for category, value in commands.items():
        if isinstance(value, dict):
            lines.append(f"### {category[:1].upper()}{category[1:]}")
            lines.extend(f"- `{cmd}` - {name}" for name, cmd in value.items())
        else:
            lines.append(f"- `{value}` - {category}")
    return lines


def project_section(project: Project) -> list[str]:
    """Project overview, stacks and commands as Markdown lines."""
    lines = [f"# Project: {project.name}", "", project.description, ""]

    if project.context:
        lines += ["## Project Overview", ""]
        if project.context.overview:
            lines += [project.context.overview.strip(), ""]
        if project.context.purpose:
            lines += [f"**Purpose:** {project.context.purpose}", ""]

    if project.tech_stack:
        lines += ["## Tech Stack", "", *stack_lines(project.tech_stack), ""]

    if project.tech_stacks:
        lines += ["## Tech Stacks", ""]
        for name, stack in project.tech_stacks.items():
            lines += [f"### {name}", *stack_lines(stack, prefix="- "), ""]

    if project.commands:
        lines += ["## Key Commands", "", *command_lines(project.commands), ""]

    return lines
