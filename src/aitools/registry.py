"""Manifest loader with schema validation and a path-keyed cache."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any, TypeVar

import jsonschema
import yaml
from pydantic import BaseModel, ValidationError

from .config import FEATURE_MANIFEST, PROJECT_MANIFEST, Settings
from .exceptions import ManifestValidationError, RegistryError
from .models import (
    Agent,
    Feature,
    ManifestKind,
    Project,
    Prompt,
    Recipe,
    Rulepack,
    Skill,
)

logger = logging.getLogger(__name__)

BUNDLED_SCHEMAS = Path(__file__).parent / "schemas"
YAML_SUFFIXES = (".yml", ".yaml")
SHARED_DIR = "shared"

ModelT = TypeVar("ModelT", bound=BaseModel)


class ManifestCache:
    """Parsed YAML documents and typed records keyed by absolute path.

    Populated lazily and never invalidated; create a new cache to observe
    changes made on disk.
    """

    def __init__(self) -> None:
        self._documents: dict[Path, Any] = {}
        self._records: dict[tuple[Path, ManifestKind], BaseModel] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, Path) and path.resolve() in self._documents

    def load_yaml(self, path: Path, use_cache: bool = True) -> Any:
        """Read and parse a YAML file.

        Raises:
            RegistryError: If the file cannot be read or parsed
        """
        key = Path(path).resolve()
        if use_cache and key in self._documents:
            return self._documents[key]

        try:
            with key.open(encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            msg = f"Failed to parse YAML file {key}: {e}"
            raise RegistryError(msg, details={"path": str(key)}) from e
        except OSError as e:
            msg = f"Failed to read YAML file {key}: {e}"
            raise RegistryError(msg, details={"path": str(key)}) from e

        if use_cache:
            self._documents[key] = data
        return data

    def get_record(self, path: Path, kind: ManifestKind) -> BaseModel | None:
        return self._records.get((Path(path).resolve(), kind))

    def put_record(self, path: Path, kind: ManifestKind, record: BaseModel) -> None:
        self._records[(Path(path).resolve(), kind)] = record

    def clear(self) -> None:
        self._documents.clear()
        self._records.clear()


def find_yaml_files(directory: Path) -> list[Path]:
    """Recursively list YAML files under ``directory``; missing dirs yield nothing."""
    if not directory.is_dir():
        return []
    return sorted(
        path
        for path in directory.rglob("*")
        if path.is_file() and path.suffix in YAML_SUFFIXES
    )


def find_yaml_files_relative(directory: Path) -> list[str]:
    """List YAML files as POSIX paths relative to ``directory``.

    ``shared`` directories hold includes rather than standalone manifests and
    are skipped.
    """
    return [
        path.relative_to(directory).as_posix()
        for path in find_yaml_files(directory)
        if SHARED_DIR not in path.relative_to(directory).parts[:-1]
    ]


def strip_yaml_suffix(relative_path: str) -> str:
    for suffix in YAML_SUFFIXES:
        if relative_path.endswith(suffix):
            return relative_path[: -len(suffix)]
    return relative_path


class ManifestRegistry:
    """Loads, validates, and indexes the manifests of a repository."""

    def __init__(
        self,
        settings: Settings,
        cache: ManifestCache | None = None,
        validate: bool = True,
    ) -> None:
        """Initialize registry.

        Args:
            settings: Repository layout
            cache: Shared manifest cache; a fresh one is created when omitted
            validate: Whether manifests are checked against their JSON schema
        """
        self.settings = settings
        self.cache = cache if cache is not None else ManifestCache()
        self.validate = validate
        self._schema_cache: dict[str, dict[str, Any]] = {}

    # Schemas

    def schema_path(self, schema_name: str) -> Path | None:
        """Repository schema if present, else the bundled one."""
        for base in (self.settings.schemas_path, BUNDLED_SCHEMAS):
            candidate = base / f"{schema_name}.schema.json"
            if candidate.exists():
                return candidate
        return None

    def load_schema(self, schema_name: str) -> dict[str, Any]:
        """Load and cache a JSON schema.

        Raises:
            RegistryError: If the schema is missing or unreadable
        """
        if schema_name not in self._schema_cache:
            schema_path = self.schema_path(schema_name)
            if schema_path is None:
                msg = f"Schema file not found: {schema_name}.schema.json"
                raise RegistryError(msg, details={"schema": schema_name})

            try:
                with schema_path.open(encoding="utf-8") as f:
                    self._schema_cache[schema_name] = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                msg = f"Failed to load schema {schema_name}: {e}"
                raise RegistryError(msg) from e

        return self._schema_cache[schema_name]

    def iter_schema_errors(
        self,
        data: Any,
        kind: ManifestKind,
    ) -> Iterator[jsonschema.ValidationError]:
        """Yield every schema violation of ``data``."""
        schema = self.load_schema(kind.value)
        validator_cls = jsonschema.validators.validator_for(schema)
        yield from sorted(
            validator_cls(schema).iter_errors(data),
            key=lambda e: list(e.absolute_path),
        )

    def validate_data(self, data: Any, kind: ManifestKind, source: Path | None = None) -> None:
        """Validate manifest data against its JSON schema.

        Raises:
            ManifestValidationError: On the first schema violation
        """
        schema = self.load_schema(kind.value)
        try:
            jsonschema.validate(data, schema)
        except jsonschema.ValidationError as e:
            location = f" in {source}" if source else ""
            msg = f"Schema validation failed{location}: {e.message}"
            raise ManifestValidationError(
                msg,
                details={
                    "path": list(e.absolute_path),
                    "schema": kind.value,
                    "file": str(source) if source else None,
                },
            ) from e

    # Typed loading

    def load_manifest(self, path: Path, kind: ManifestKind, model: type[ModelT]) -> ModelT:
        """Load a manifest file into its typed record.

        Raises:
            RegistryError: If the file cannot be read or parsed
            ManifestValidationError: If schema or model validation fails
        """
        cached = self.cache.get_record(path, kind)
        if cached is not None:
            return cached  # type: ignore[return-value]

        data = self.cache.load_yaml(path)
        if not isinstance(data, dict):
            msg = f"Manifest must be a mapping: {path}"
            raise ManifestValidationError(msg, details={"file": str(path)})

        if self.validate:
            self.validate_data(data, kind, source=path)

        try:
            record = model.model_validate(data)
        except ValidationError as e:
            msg = f"{kind.value.capitalize()} validation failed in {path}: {e}"
            raise ManifestValidationError(msg, details={"file": str(path)}) from e

        self.cache.put_record(path, kind, record)
        return record

    # Rulepacks

    def rulepack_path(self, rulepack_id: str) -> Path | None:
        """Locate ``<id>.yml`` directly or anywhere below the rulepacks dir."""
        base = self.settings.rulepacks_path
        for suffix in YAML_SUFFIXES:
            candidate = base / f"{rulepack_id}{suffix}"
            if candidate.is_file():
                return candidate
        for candidate in find_yaml_files(base):
            if candidate.stem == rulepack_id:
                return candidate
        return None

    def load_rulepack(self, rulepack_id: str) -> Rulepack | None:
        """Load a rulepack by id; ``None`` when no such file exists."""
        path = self.rulepack_path(rulepack_id)
        if path is None:
            return None
        return self.load_manifest(path, ManifestKind.RULEPACK, Rulepack)

    def load_rulepacks(self) -> list[Rulepack]:
        return [
            self.load_manifest(path, ManifestKind.RULEPACK, Rulepack)
            for path in find_yaml_files(self.settings.rulepacks_path)
        ]

    # Agents

    def load_agents(self) -> dict[str, Agent]:
        """All agents keyed by id, in file order."""
        agents: dict[str, Agent] = {}
        for path in find_yaml_files(self.settings.agents_path):
            agent = self.load_manifest(path, ManifestKind.AGENT, Agent)
            agents.setdefault(agent.id, agent)
        return agents

    # Prompts

    def load_prompts(self) -> list[Prompt]:
        """All prompts with their source-relative path recorded."""
        prompts_dir = self.settings.prompts_path
        prompts: list[Prompt] = []
        for relative in find_yaml_files_relative(prompts_dir):
            prompt = self.load_manifest(prompts_dir / relative, ManifestKind.PROMPT, Prompt)
            prompt.source_path = strip_yaml_suffix(relative)
            prompts.append(prompt)
        return prompts

    def prompts_map(self) -> dict[str, str]:
        """Map of prompt id to source-relative path."""
        return {prompt.id: prompt.source_path or prompt.id for prompt in self.load_prompts()}

    def prompt_file(self, prompt: Prompt) -> Path:
        """Absolute manifest path of a loaded prompt."""
        base = self.settings.prompts_path / (prompt.source_path or prompt.id)
        for suffix in YAML_SUFFIXES:
            candidate = base.with_name(base.name + suffix)
            if candidate.is_file():
                return candidate
        return base.with_name(base.name + YAML_SUFFIXES[0])

    def read_prompt_includes(self, prompt: Prompt) -> list[tuple[str, str | None]]:
        """Resolve prompt includes relative to the prompt file.

        Returns:
            ``(include, content)`` pairs; content is ``None`` when missing
        """
        prompt_dir = self.prompt_file(prompt).parent
        resolved: list[tuple[str, str | None]] = []
        for include in prompt.includes:
            include_path = (prompt_dir / include).resolve()
            if include_path.is_file():
                resolved.append((include, include_path.read_text(encoding="utf-8")))
            else:
                logger.warning("Include '%s' of prompt '%s' not found", include, prompt.id)
                resolved.append((include, None))
        return resolved

    # Skills

    def load_skills(self) -> list[tuple[Skill, Path]]:
        """All skills with the directory that holds each manifest."""
        return [
            (self.load_manifest(path, ManifestKind.SKILL, Skill), path.parent)
            for path in find_yaml_files(self.settings.skills_path)
        ]

    # Recipes

    def recipe_files(self) -> list[Path]:
        return [
            self.settings.recipes_path / relative
            for relative in find_yaml_files_relative(self.settings.recipes_path)
        ]

    def load_recipes(self) -> list[Recipe]:
        return [
            self.load_manifest(path, ManifestKind.RECIPE, Recipe)
            for path in self.recipe_files()
        ]

    def load_recipe(self, recipe_id: str) -> Recipe | None:
        """Load a recipe by id; ``None`` when no manifest declares it."""
        for path in self.recipe_files():
            if path.stem == recipe_id:
                recipe = self.load_manifest(path, ManifestKind.RECIPE, Recipe)
                if recipe.id == recipe_id:
                    return recipe
        for recipe in self.load_recipes():
            if recipe.id == recipe_id:
                return recipe
        return None

    # Projects and features

    def load_project_file(self, path: Path) -> Project:
        return self.load_manifest(path, ManifestKind.PROJECT, Project)

    def load_project(self, project_id: str) -> Project:
        """Load a project by id from the configured project sources.

        Raises:
            RegistryError: If no project source contains the project
        """
        project_dir = self.settings.find_project_dir(project_id)
        if project_dir is None:
            msg = f"Project not found: {project_id}"
            raise RegistryError(
                msg,
                details={"sources": [str(s) for s in self.settings.project_sources()]},
            )
        return self.load_project_file(project_dir / PROJECT_MANIFEST)

    def load_features(self, project_dir: Path) -> list[Feature]:
        """Load ``features/*/feature.yml`` of a project directory."""
        features_dir = project_dir / "features"
        if not features_dir.is_dir():
            return []

        features: list[Feature] = []
        for entry in sorted(features_dir.iterdir()):
            manifest = entry / FEATURE_MANIFEST
            if entry.is_dir() and manifest.is_file():
                features.append(self.load_manifest(manifest, ManifestKind.FEATURE, Feature))
        return features
