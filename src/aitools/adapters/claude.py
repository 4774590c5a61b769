"""Claude Code adapter."""

from __future__ import annotations

import json
import logging

from ..models import Project, Prompt
from ..resolver import ResolvedAgent
from .base import ToolAdapter, bullets

logger = logging.getLogger(__name__)


class ClaudeAdapter(ToolAdapter):
    """Emits ``.claude/`` prompts, skills, agents and project context."""

    name = "claude-code"

    def compile(self, project: Project) -> dict[str, str]:
        artifacts = self._prompts(project)
        artifacts.update(self._skills())
        for resolved in self.resolver.resolve_all_agents(project):
            artifacts[f".claude/agents/{resolved.agent.id}{resolved.suffix}.md"] = _agent_markdown(
                resolved
            )

        for suffix, stack in self.stack_contexts(project):
            context = {
                "project": {
                    "name": project.name,
                    "description": project.description,
                    "rules": self.resolver.build_project_rules(project, stack),
                }
            }
            artifacts[f".claude/project-context{suffix}.json"] = json.dumps(context, indent=2)

        artifacts.update(self.recipes.compile_recipes_for_tool(self.name, project))
        return artifacts

    def compile_global(self) -> dict[str, str]:
        artifacts = self._prompts()
        artifacts.update(self._skills())
        for resolved in self.global_agents():
            artifacts[f".claude/agents/{resolved.agent.id}.md"] = _agent_markdown(resolved)
        return artifacts

    def _prompts(self, project: Project | None = None) -> dict[str, str]:
        return {
            f".claude/prompts/{prompt.namespaced_id}.json": json.dumps(
                self._prompt_payload(prompt), indent=2
            )
            for prompt in self.included_prompts(project)
        }

    def _prompt_payload(self, prompt: Prompt) -> dict[str, object]:
        return {
            "id": prompt.id,
            "description": prompt.description,
            "content": self.prompt_body(prompt),
            "system": prompt.system,
            "user": prompt.user,
            "variables": [variable.model_dump(exclude_none=True) for variable in prompt.variables],
        }

    def _skills(self) -> dict[str, str]:
        """Copy text files of every skill directory and index the skills."""
        artifacts: dict[str, str] = {}
        skills = []
        for skill, skill_dir in self.registry.load_skills():
            skills.append({"id": skill.id, "description": skill.description})
            # Only skills that live in their own directory carry extra files.
            if skill_dir == self.registry.settings.skills_path:
                continue
            for path in sorted(skill_dir.rglob("*")):
                if not path.is_file():
                    continue
                try:
                    content = path.read_text(encoding="utf-8")
                except UnicodeDecodeError:
                    logger.warning("Skipping binary skill file %s", path)
                    continue
                relative = path.relative_to(skill_dir).as_posix()
                artifacts[f".claude/skills/{skill.id}/{relative}"] = content

        if skills:
            artifacts[".claude/skills.json"] = json.dumps({"skills": skills}, indent=2)
        return artifacts


def _agent_markdown(resolved: ResolvedAgent) -> str:
    agent = resolved.agent
    lines = [
        "---",
        f"description: {agent.description or agent.purpose}",
        "---",
        "",
        f"# {agent.purpose}",
        "",
    ]
    if agent.prompt and agent.prompt.system:
        lines += [agent.prompt.system.strip(), ""]
    if resolved.rules:
        lines += ["## Rules", "", *bullets(resolved.rules), ""]
    return "\n".join(lines)
