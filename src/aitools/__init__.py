"""AI Tools: compile a manifest repository into AI coding assistant configuration."""

__version__ = "0.1.0"

from .compiler import ArtifactCompiler, ArtifactWriter
from .config import Settings
from .exceptions import (
    AIToolsError,
    CompilationError,
    ManifestValidationError,
    RegistryError,
    ResolutionError,
    RulepackCycleError,
)
from .features import FeatureBinder
from .recipes import RecipeCompiler
from .registry import ManifestRegistry
from .resolver import RulepackResolver, resolve_model
from .runner import RecipeRunner, RunnerState
from .validator import ManifestValidator, ValidationReport

__all__ = [
    "AIToolsError",
    "ArtifactCompiler",
    "ArtifactWriter",
    "CompilationError",
    "FeatureBinder",
    "ManifestRegistry",
    "ManifestValidationError",
    "ManifestValidator",
    "RecipeCompiler",
    "RecipeRunner",
    "RegistryError",
    "ResolutionError",
    "RulepackCycleError",
    "RulepackResolver",
    "RunnerState",
    "Settings",
    "ValidationReport",
    "resolve_model",
]
