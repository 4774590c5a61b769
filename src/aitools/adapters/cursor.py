"""Cursor adapter."""

from __future__ import annotations

import json

from ..models import Project
from ..resolver import ResolvedAgent
from .base import ToolAdapter


class CursorAdapter(ToolAdapter):
    name = "cursor"

    def compile(self, project: Project) -> dict[str, str]:
        agents = self.resolver.resolve_all_agents(project)
        artifacts = {".cursor/recipes.json": _recipes_json(agents)}

        for suffix, stack in self.stack_contexts(project):
            rules = {
                "rules": self.resolver.build_project_rules(project, stack),
                "context": {"name": project.name, "description": project.description},
            }
            artifacts[f".cursor/project-rules{suffix}.json"] = json.dumps(rules, indent=2)

        artifacts.update(self.recipes.compile_recipes_for_tool(self.name, project))
        return artifacts

    def compile_global(self) -> dict[str, str]:
        return {".cursor/recipes.json": _recipes_json(self.global_agents())}


def _recipes_json(agents: list[ResolvedAgent]) -> str:
    """Cursor recipe entries, one per agent and context."""
    entries = []
    for resolved in agents:
        agent = resolved.agent
        prompt = (agent.prompt.system if agent.prompt and agent.prompt.system else None) or agent.purpose
        if resolved.rules:
            prompt += "\n\nRules:\n" + "\n".join(f"- {rule}" for rule in resolved.rules)
        entries.append(
            {
                "id": f"{agent.id}{resolved.suffix}",
                "name": f"{agent.id}{resolved.suffix}",
                "description": agent.description or agent.purpose,
                "prompt": prompt,
            }
        )
    return json.dumps({"recipes": entries}, indent=2)
