"""Per-tool adapters that render manifests into native configuration."""

from __future__ import annotations

from ..recipes import RecipeCompiler
from ..registry import ManifestRegistry
from ..resolver import RulepackResolver
from .base import ToolAdapter
from .claude import ClaudeAdapter
from .codex import CodexAdapter
from .copilot_cli import CopilotCliAdapter
from .cursor import CursorAdapter
from .github_copilot import GitHubCopilotAdapter
from .windsurf import WindsurfAdapter

ADAPTER_CLASSES: tuple[type[ToolAdapter], ...] = (
    ClaudeAdapter,
    CursorAdapter,
    WindsurfAdapter,
    GitHubCopilotAdapter,
    CopilotCliAdapter,
    CodexAdapter,
)


class ToolRegistry:
    """Named adapters sharing one resolver and recipe compiler."""

    def __init__(self, registry: ManifestRegistry) -> None:
        self.registry = registry
        self._adapters: dict[str, ToolAdapter] = {}

        resolver = RulepackResolver(registry)
        recipes = RecipeCompiler(registry)
        for adapter_class in ADAPTER_CLASSES:
            self.register(adapter_class(registry, resolver, recipes))

    def register(self, adapter: ToolAdapter) -> None:
        self._adapters[adapter.name] = adapter

    def get(self, name: str) -> ToolAdapter | None:
        return self._adapters.get(name)

    def names(self) -> list[str]:
        return list(self._adapters)

    def all(self) -> list[ToolAdapter]:
        return list(self._adapters.values())


__all__ = [
    "ADAPTER_CLASSES",
    "ClaudeAdapter",
    "CodexAdapter",
    "CopilotCliAdapter",
    "CursorAdapter",
    "GitHubCopilotAdapter",
    "ToolAdapter",
    "ToolRegistry",
    "WindsurfAdapter",
]
