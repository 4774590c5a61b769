"""GitHub Copilot CLI adapter."""

from __future__ import annotations

from ..models import Project
from ..resolver import ResolvedAgent
from .base import AGENTS_HEADING, ToolAdapter, agent_section, header_before_agents, project_section

BASE_FILE = "AGENTS.md"
DEFAULT_HEADER = "# AI Agents Configuration\n"


class CopilotCliAdapter(ToolAdapter):
    """``AGENTS.md`` listing each agent with its default model."""

    name = "copilot-cli"

    def compile(self, project: Project) -> dict[str, str]:
        header = header_before_agents(self.read_base_file(BASE_FILE), DEFAULT_HEADER)
        agents = self.resolver.resolve_all_agents(project)
        content = _agents_markdown(header, agents) + "\n".join(project_section(project))

        artifacts = {"AGENTS.md": content}
        artifacts.update(self.recipes.compile_recipes_for_tool(self.name, project))
        return artifacts

    def compile_global(self) -> dict[str, str]:
        header = header_before_agents(self.read_base_file(BASE_FILE, warn=False), DEFAULT_HEADER)
        return {"AGENTS.md": _agents_markdown(header, self.global_agents())}


def _agents_markdown(header: str, agents: list[ResolvedAgent]) -> str:
    lines = [header.rstrip(), "", AGENTS_HEADING, ""]
    for resolved in agents:
        lines += agent_section(resolved, show_model=True)
    return "\n".join(lines) + "\n"
