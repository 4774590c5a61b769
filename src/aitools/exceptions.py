"""Custom exceptions for AI Tools."""

from typing import Any


class AIToolsError(Exception):
    """Base exception for all AI Tools errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}


class ManifestValidationError(AIToolsError):
    """Raised when a manifest fails schema or model validation."""


class RegistryError(AIToolsError):
    """Raised when manifest repository operations fail."""


class ResolutionError(AIToolsError):
    """Raised when composition (rulepacks, agents, recipes) cannot be resolved."""


class RulepackCycleError(ResolutionError):
    """Raised when rulepack inheritance forms a cycle."""


class CompilationError(AIToolsError):
    """Raised when artifact or script compilation fails."""
