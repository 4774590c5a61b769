"""Repository layout and merged configuration for AI Tools."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, PrivateAttr

from .exceptions import RegistryError

logger = logging.getLogger(__name__)

ROOT_ENV_VAR = "AI_TOOLS_ROOT"
PROJECT_MANIFEST = "project.yml"
FEATURE_MANIFEST = "feature.yml"


class Settings(BaseModel):
    """Directory layout of a manifest repository rooted at ``root``."""

    root: Path
    rulepacks_dir: str = Field(default="01_rulepacks")
    skills_dir: str = Field(default="02_skills")
    prompts_dir: str = Field(default="03_prompts")
    agents_dir: str = Field(default="04_agents")
    recipes_dir: str = Field(default="05_recipes")
    projects_dir: str = Field(default="06_projects")
    schemas_dir: str = Field(default="10_schemas")
    config_dir: str = Field(default="15_config")
    output_dir: str = Field(default=".output")
    adapters_dir: str = Field(default="adapters")
    recipe_docs_dir: str = Field(default=".recipe-docs")
    recipe_logs_dir: str = Field(default=".recipe-logs")

    _config_cache: dict[str, Any] | None = PrivateAttr(default=None)

    @classmethod
    def from_root(cls, root: Path | str | None = None) -> Settings:
        """Build settings from an explicit root, ``AI_TOOLS_ROOT`` or the cwd."""
        if root is None:
            root = os.environ.get(ROOT_ENV_VAR) or Path.cwd()
        return cls(root=Path(root).resolve())

    def path(self, *parts: str) -> Path:
        """Join path parts onto the repository root."""
        return self.root.joinpath(*parts)

    @property
    def rulepacks_path(self) -> Path:
        return self.path(self.rulepacks_dir)

    @property
    def skills_path(self) -> Path:
        return self.path(self.skills_dir)

    @property
    def prompts_path(self) -> Path:
        return self.path(self.prompts_dir)

    @property
    def agents_path(self) -> Path:
        return self.path(self.agents_dir)

    @property
    def recipes_path(self) -> Path:
        return self.path(self.recipes_dir)

    @property
    def schemas_path(self) -> Path:
        return self.path(self.schemas_dir)

    @property
    def output_path(self) -> Path:
        return self.path(self.output_dir)

    @property
    def adapters_path(self) -> Path:
        return self.path(self.adapters_dir)

    def load_config(self) -> dict[str, Any]:
        """Load ``config.yml`` deep-merged with ``config.local.yml``.

        Missing files count as empty configuration. Lists from both files are
        concatenated with duplicates removed.

        Raises:
            RegistryError: If a configuration file cannot be parsed
        """
        if self._config_cache is None:
            base = self._read_config_file("config.yml")
            local = self._read_config_file("config.local.yml")
            self._config_cache = merge_config(base, local)
        return self._config_cache

    def _read_config_file(self, name: str) -> dict[str, Any]:
        config_path = self.path(self.config_dir, name)
        if not config_path.exists():
            logger.debug("Config file not present: %s", config_path)
            return {}

        try:
            with config_path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            msg = f"Failed to parse config YAML {config_path}: {e}"
            raise RegistryError(msg) from e
        except OSError as e:
            msg = f"Failed to read config file {config_path}: {e}"
            raise RegistryError(msg) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            msg = f"Config file must contain a mapping: {config_path}"
            raise RegistryError(msg)
        return data

    def project_sources(self) -> list[Path]:
        """Default project sources followed by configured ones, de-duplicated."""
        sources = [
            self.path(self.projects_dir, "global"),
            self.path(self.projects_dir, "local"),
        ]
        for source in self.load_config().get("project_sources") or []:
            source_path = Path(str(source)).expanduser()
            if not source_path.is_absolute():
                source_path = (self.root / source_path).resolve()
            sources.append(source_path)

        unique: list[Path] = []
        for source in sources:
            if source not in unique:
                unique.append(source)
        return unique

    def find_project_dir(self, project_id: str) -> Path | None:
        """Locate ``<source>/<project_id>/project.yml`` across project sources."""
        for source in self.project_sources():
            candidate = source / project_id
            if (candidate / PROJECT_MANIFEST).is_file():
                return candidate
        return None

    def list_projects(self) -> list[tuple[str, Path]]:
        """List ``(project_id, directory)`` pairs; the first source wins on clashes."""
        found: dict[str, Path] = {}
        for source in self.project_sources():
            if not source.is_dir():
                continue
            for entry in sorted(source.iterdir()):
                if entry.is_dir() and (entry / PROJECT_MANIFEST).is_file():
                    found.setdefault(entry.name, entry)
        return sorted(found.items())


def merge_config(base: Any, override: Any) -> Any:
    """Deep-merge two configuration values, ``override`` winning on scalars."""
    if base is None:
        return override
    if override is None:
        return base
    if isinstance(base, list) and isinstance(override, list):
        merged: list[Any] = []
        for item in base + override:
            if item not in merged:
                merged.append(item)
        return merged
    if isinstance(base, dict) and isinstance(override, dict):
        result = dict(base)
        for key, value in override.items():
            result[key] = merge_config(base[key], value) if key in base else value
        return result
    return override
