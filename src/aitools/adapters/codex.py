"""OpenAI Codex adapter."""

from __future__ import annotations

from ..models import Project, Prompt
from ..resolver import ResolvedAgent
from .base import ToolAdapter, agent_section, bullets, project_section

PROMPTS_DIR = ".codex/prompts"
HEADER = [
    "# AI Agents Configuration",
    "",
    'Invoke agents by referencing them in your prompts (e.g., "As the code-reviewer agent..."):',
    "",
]


class CodexAdapter(ToolAdapter):
    name = "codex"

    def compile(self, project: Project) -> dict[str, str]:
        agents = self.resolver.resolve_all_agents(project)
        artifacts = {"AGENTS.md": _agents_markdown(agents) + "\n".join(project_section(project))}

        prompts = self.included_prompts(project)
        for suffix, _ in self.stack_contexts(project):
            for prompt in prompts:
                path = f"{PROMPTS_DIR}/prompt-{prompt.namespaced_id}{suffix}.md"
                artifacts[path] = self._prompt_markdown(prompt)
        for resolved in agents:
            path = f"{PROMPTS_DIR}/agent-{resolved.agent.id}{resolved.suffix}.md"
            artifacts[path] = _agent_prompt(resolved)
        return artifacts

    def compile_global(self) -> dict[str, str]:
        return {"AGENTS.md": _agents_markdown(self.global_agents())}

    def _prompt_markdown(self, prompt: Prompt) -> str:
        lines = [f"# {prompt.id}", "", prompt.description, ""]
        if prompt.system:
            lines += [prompt.system.strip(), ""]
        body = self.prompt_body(prompt)
        if body:
            lines += [body, ""]
        if prompt.user:
            lines += [prompt.user.strip(), ""]
        return "\n".join(lines)


def _agents_markdown(agents: list[ResolvedAgent]) -> str:
    lines = [*HEADER, "## Available Agents", ""]
    for resolved in agents:
        lines += agent_section(resolved)
    return "\n".join(lines) + "\n"


def _agent_prompt(resolved: ResolvedAgent) -> str:
    agent = resolved.agent
    lines = [f"# {agent.id}{resolved.suffix}", "", agent.purpose, ""]
    if agent.prompt and agent.prompt.system:
        lines += [agent.prompt.system.strip(), ""]
    if resolved.rules:
        lines += ["## Rules", "", *bullets(resolved.rules), ""]
    return "\n".join(lines)
