"""Windsurf adapter.

Writes rule files under ``.windsurf/rules/``. The project context rule is
always on; agent and prompt rules are triggered manually.
"""

from __future__ import annotations

from ..models import Project, Prompt, TechStack
from ..resolver import ResolvedAgent
from .base import ToolAdapter, bullets, command_lines, stack_lines

RULES_DIR = ".windsurf/rules"


class WindsurfAdapter(ToolAdapter):
    name = "windsurf"

    def compile(self, project: Project) -> dict[str, str]:
        artifacts: dict[str, str] = {}
        for suffix, stack in self.stack_contexts(project):
            artifacts[f"{RULES_DIR}/project-context{suffix}.md"] = self.project_context(
                project, stack
            )
        for resolved in self.resolver.resolve_all_agents(project):
            artifacts[f"{RULES_DIR}/agent-{resolved.agent.id}{resolved.suffix}.md"] = _agent_rule(
                resolved
            )
        artifacts.update(self._prompts(project))
        artifacts.update(self.recipes.compile_recipes_for_tool(self.name, project))
        return artifacts

    def compile_global(self) -> dict[str, str]:
        artifacts = {
            f"{RULES_DIR}/agent-{resolved.agent.id}.md": _agent_rule(resolved)
            for resolved in self.global_agents()
        }
        artifacts.update(self._prompts())
        return artifacts

    def _prompts(self, project: Project | None = None) -> dict[str, str]:
        return {
            f"{RULES_DIR}/prompt-{prompt.namespaced_id}.md": self._prompt_rule(prompt)
            for prompt in self.included_prompts(project)
        }

    def project_context(self, project: Project, stack: TechStack | None = None) -> str:
        """Always-on rule describing the project and its conventions."""
        lines = ["---", "trigger: always_on", "---", "", f"# Project: {project.name}", ""]
        lines += [project.description, ""]

        if project.context and project.context.overview:
            lines += ["## Project Overview", "", project.context.overview.strip(), ""]

        tech = stack or project.tech_stack
        if tech is not None:
            lines += ["## Tech Stack", "", *stack_lines(tech, prefix="- "), ""]

        if project.commands:
            lines += ["## Key Commands", "", *command_lines(project.commands), ""]

        conventions = project.conventions
        if conventions:
            lines += ["## Project Conventions", ""]
            for heading, rules in (
                ("Naming", conventions.naming),
                ("Patterns", conventions.patterns),
                ("Testing", conventions.testing),
                ("Project Structure", conventions.structure),
            ):
                if rules:
                    lines += [f"### {heading}", "", *bullets(rules), ""]

        extra_rules: list[str] = []
        if project.ai_tools:
            extra_rules = self.resolver.resolve_rulepacks(
                project.ai_tools.preferred_rulepacks, project, stack
            ) + project.ai_tools.custom_rules
        if conventions:
            extra_rules = conventions.custom + extra_rules
        if extra_rules:
            lines += ["## Rules", "", *bullets(extra_rules), ""]

        if project.documentation:
            lines += ["## Documentation", ""]
            lines.extend(f"- **{name}:** {value}" for name, value in project.documentation.items())
            lines.append("")

        return "\n".join(lines)

    def _prompt_rule(self, prompt: Prompt) -> str:
        lines = ["---", "trigger: manual", "---", "", f"# {prompt.id}", "", prompt.description, ""]
        if prompt.variables:
            lines += ["## Variables", ""]
            for variable in prompt.variables:
                marker = " (required)" if variable.required else ""
                description = f": {variable.description}" if variable.description else ""
                lines.append(f"- `{variable.name}`{marker}{description}")
            lines.append("")
        body = self.prompt_body(prompt)
        if body:
            lines += ["## Prompt", "", body, ""]
        if prompt.system:
            lines += ["## System Prompt", "", prompt.system.strip(), ""]
        if prompt.user:
            lines += ["## User Prompt", "", prompt.user.strip(), ""]
        return "\n".join(lines)


def _agent_rule(resolved: ResolvedAgent) -> str:
    agent = resolved.agent
    lines = [
        "---",
        "trigger: manual",
        "---",
        "",
        f"# Agent: {agent.id}{resolved.suffix}",
        "",
        f"**Purpose:** {agent.purpose}",
        "",
    ]
    if agent.prompt and agent.prompt.system:
        lines += ["## Persona", "", agent.prompt.system.strip(), ""]
    if agent.constraints:
        lines += ["## Constraints", "", *bullets(agent.constraints), ""]
    if resolved.rules:
        lines += ["## Rules", "", *bullets(resolved.rules), ""]
    return "\n".join(lines)
