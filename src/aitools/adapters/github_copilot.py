"""GitHub Copilot adapter."""

from __future__ import annotations

from ..models import Project
from ..resolver import ResolvedAgent
from .base import AGENTS_HEADING, ToolAdapter, agent_section, header_before_agents, project_section

BASE_FILE = ".github/instructions.md"
DEFAULT_HEADER = "# GitHub Copilot Instructions\n"


class GitHubCopilotAdapter(ToolAdapter):
    """Single ``.github/instructions.md`` with agents and project context.

    The header is taken from the built global file, so text written above
    its agent list carries over into every project.
    """

    name = "github-copilot"

    def compile(self, project: Project) -> dict[str, str]:
        header = header_before_agents(self.read_base_file(BASE_FILE), DEFAULT_HEADER)
        agents = self.resolver.resolve_all_agents(project)
        content = _instructions(header, agents) + "\n".join(project_section(project))

        artifacts = {".github/instructions.md": content}
        artifacts.update(self.recipes.compile_recipes_for_tool(self.name, project))
        return artifacts

    def compile_global(self) -> dict[str, str]:
        header = header_before_agents(self.read_base_file(BASE_FILE, warn=False), DEFAULT_HEADER)
        return {".github/instructions.md": _instructions(header, self.global_agents())}


def _instructions(header: str, agents: list[ResolvedAgent]) -> str:
    lines = [
        header.rstrip(),
        "",
        AGENTS_HEADING,
        "",
        "You can act as the following agents when requested:",
        "",
    ]
    for resolved in agents:
        lines += agent_section(resolved)
    return "\n".join(lines) + "\n"
