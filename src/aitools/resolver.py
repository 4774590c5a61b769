"""Rulepack inheritance resolution and model-priority lookup."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from .exceptions import RulepackCycleError
from .filters import (
    rulepack_allowed_by_lists,
    rulepack_matches_tech_stack,
    should_include_agent,
)
from .models import Agent, Feature, Project, Prompt, TechStack
from .registry import ManifestRegistry

logger = logging.getLogger(__name__)


class ResolvedAgent(BaseModel):
    """An agent together with its effective rules for one context."""

    agent: Agent
    rules: list[str] = Field(default_factory=list)
    suffix: str = Field(default="", description="'' for global, '-<stack>' per stack")

    @property
    def stack(self) -> str | None:
        return self.suffix[1:] if self.suffix else None


class RulepackResolver:
    """Flattens rulepack ``extends`` chains into ordered rule lists."""

    def __init__(self, registry: ManifestRegistry) -> None:
        self.registry = registry

    def should_include_rulepack(
        self,
        rulepack_id: str,
        project: Project,
        stack: TechStack | None = None,
    ) -> bool:
        """Apply whitelist, then blacklist, then tech-stack tag matching."""
        if not rulepack_allowed_by_lists(rulepack_id, project):
            return False

        rulepack = self.registry.load_rulepack(rulepack_id)
        if rulepack is None:
            return True
        return rulepack_matches_tech_stack(rulepack.effective_tags, project, stack)

    def resolve_rulepacks(
        self,
        rulepack_ids: list[str],
        project: Project | None = None,
        stack: TechStack | None = None,
    ) -> list[str]:
        """Resolve rulepacks into a flat rule list, parents first.

        Each rulepack is visited at most once per call. A rulepack rejected
        by the project filters contributes nothing, and neither do missing
        rulepacks (a warning is logged).

        Raises:
            RulepackCycleError: If an ``extends`` chain loops back on itself
        """
        resolved: list[str] = []
        visited: set[str] = set()
        path: list[str] = []

        def resolve(rulepack_id: str) -> None:
            if rulepack_id in path:
                cycle = path[path.index(rulepack_id):] + [rulepack_id]
                msg = f"Rulepack inheritance cycle: {' -> '.join(cycle)}"
                raise RulepackCycleError(msg, details={"cycle": cycle})
            if rulepack_id in visited:
                return
            visited.add(rulepack_id)

            if project is not None and not self.should_include_rulepack(
                rulepack_id, project, stack
            ):
                logger.debug("Rulepack '%s' filtered out for project '%s'", rulepack_id, project.id)
                return

            rulepack = self.registry.load_rulepack(rulepack_id)
            if rulepack is None:
                logger.warning("Rulepack '%s' not found", rulepack_id)
                return

            path.append(rulepack_id)
            try:
                for parent_id in rulepack.extends:
                    resolve(parent_id)
            finally:
                path.pop()

            resolved.extend(rulepack.rules)

        for rulepack_id in rulepack_ids:
            resolve(rulepack_id)

        return resolved

    def resolve_all_agents(self, project: Project) -> list[ResolvedAgent]:
        """Resolve every included agent globally and once per tech stack."""
        agents = [
            agent
            for agent in self.registry.load_agents().values()
            if should_include_agent(agent.id, project)
        ]

        contexts: list[tuple[str, TechStack | None]] = [("", None)]
        contexts.extend((f"-{name}", stack) for name, stack in project.tech_stacks.items())

        results: list[ResolvedAgent] = []
        for suffix, stack in contexts:
            for agent in agents:
                rules = self.resolve_rulepacks(agent.rulepacks, project, stack)
                results.append(ResolvedAgent(agent=agent, rules=rules, suffix=suffix))
        return results

    def build_project_rules(
        self,
        project: Project,
        stack: TechStack | None = None,
    ) -> list[str]:
        """Project conventions, preferred rulepacks and custom rules, in order."""
        rules: list[str] = []
        if project.conventions:
            rules.extend(project.conventions.all_rules())
        if project.ai_tools:
            rules.extend(
                self.resolve_rulepacks(project.ai_tools.preferred_rulepacks, project, stack)
            )
            rules.extend(project.ai_tools.custom_rules)
        return rules


def resolve_model(
    prompt: Prompt | None = None,
    agent: Agent | None = None,
    project: Project | None = None,
    feature: Feature | None = None,
) -> str | None:
    """Effective model: feature > project > agent > prompt."""
    if feature is not None and feature.model:
        return feature.model
    if project is not None and project.ai_tools is not None and project.ai_tools.model:
        return project.ai_tools.model
    if agent is not None and agent.defaults is not None and agent.defaults.model:
        return agent.defaults.model
    if prompt is not None and prompt.model:
        return prompt.model
    return None


def describe_model_source(
    prompt: Prompt | None = None,
    agent: Agent | None = None,
    project: Project | None = None,
    feature: Feature | None = None,
) -> str | None:
    """Label of the hierarchy level that supplies the effective model."""
    if feature is not None and feature.model:
        return "feature-level (highest priority)"
    if project is not None and project.ai_tools is not None and project.ai_tools.model:
        return "project-level"
    if agent is not None and agent.defaults is not None and agent.defaults.model:
        return "agent-level (default)"
    if prompt is not None and prompt.model:
        return "prompt-level"
    return None
