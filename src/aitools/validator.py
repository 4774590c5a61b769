"""Repository-wide manifest validation."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .config import FEATURE_MANIFEST, PROJECT_MANIFEST
from .exceptions import RegistryError
from .models import ID_PATTERN, MANIFEST_MODELS, SEMVER_PATTERN, ManifestKind
from .registry import ManifestRegistry, find_yaml_files

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecretPattern:
    name: str
    pattern: re.Pattern[str]
    exclude: re.Pattern[str] | None = None


SECRET_PATTERNS = (
    SecretPattern(
        "API Key",
        re.compile(r"\b[A-Za-z0-9_-]{32,}\b"),
        re.compile(r"example|sample|test", re.IGNORECASE),
    ),
    SecretPattern(
        "Password",
        re.compile(r"""password\s*[:=]\s*['"][^'"]+['"]"""),
        re.compile(r"\$\{|example|sample|placeholder", re.IGNORECASE),
    ),
    SecretPattern(
        "Secret",
        re.compile(r"""secret\s*[:=]\s*['"][^'"]+['"]"""),
        re.compile(r"\$\{|example|sample|placeholder", re.IGNORECASE),
    ),
    SecretPattern("Private Key", re.compile(r"-----BEGIN (RSA |DSA )?PRIVATE KEY-----")),
    SecretPattern("AWS Access Key", re.compile(r"AKIA[0-9A-Z]{16}")),
    SecretPattern("GitHub Token", re.compile(r"ghp_[a-zA-Z0-9]{36}")),
)


class ValidationReport(BaseModel):
    """Aggregated outcome of a validation pass."""

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    checked: int = Field(default=0, description="Number of manifests checked")
    execution_time: float = Field(default=0.0)

    @property
    def passed(self) -> bool:
        return not self.errors


@dataclass
class ManifestFile:
    path: Path
    kind: ManifestKind
    content: dict[str, Any]

    @property
    def id(self) -> str:
        return str(self.content.get("id", "unknown"))


class ManifestValidator:
    """Runs every manifest check and collects the findings."""

    def __init__(self, registry: ManifestRegistry) -> None:
        self.registry = registry
        self.settings = registry.settings

    def _rel(self, path: Path) -> str:
        try:
            return path.relative_to(self.settings.root).as_posix()
        except ValueError:
            return str(path)

    def validate_all(self) -> ValidationReport:
        """Validate every manifest of the repository.

        Raises:
            RegistryError: If a required schema file is missing
        """
        start_time = time.time()
        report = ValidationReport()

        for kind in ManifestKind:
            self.registry.load_schema(kind.value)

        manifests = self.collect_manifests(report)
        report.checked = len(manifests)

        self.validate_schemas(manifests, report)
        index = self.validate_ids(manifests, report)
        self.validate_versions(manifests, report)
        self.validate_references(manifests, index, report)
        self.validate_cycles(manifests, report)
        self.validate_security(manifests, report)
        self.validate_includes(manifests, report)
        self.validate_feature_content(manifests, report)

        report.execution_time = time.time() - start_time
        logger.debug(
            "Validated %d manifests: %d errors, %d warnings",
            report.checked,
            len(report.errors),
            len(report.warnings),
        )
        return report

    # Collection

    def collect_manifests(self, report: ValidationReport) -> list[ManifestFile]:
        manifests: list[ManifestFile] = []
        directories = (
            (self.settings.rulepacks_dir, ManifestKind.RULEPACK),
            (self.settings.skills_dir, ManifestKind.SKILL),
            (self.settings.prompts_dir, ManifestKind.PROMPT),
            (self.settings.agents_dir, ManifestKind.AGENT),
            (self.settings.recipes_dir, ManifestKind.RECIPE),
        )
        for dir_name, kind in directories:
            directory = self.settings.path(dir_name)
            if not directory.is_dir():
                report.warnings.append(f"Directory {dir_name} not found, skipping")
                continue
            for path in find_yaml_files(directory):
                parts = path.relative_to(directory).parts[:-1]
                if "shared" in parts or "template" in parts:
                    continue
                self._collect(path, kind, manifests, report)

        for source in self.settings.project_sources():
            for path in find_yaml_files(source):
                parts = path.relative_to(source).parts
                if "template" in parts:
                    continue
                if path.name == PROJECT_MANIFEST:
                    self._collect(path, ManifestKind.PROJECT, manifests, report)
                elif path.name == FEATURE_MANIFEST and "features" in parts:
                    self._collect(path, ManifestKind.FEATURE, manifests, report)
        return manifests

    def _collect(
        self,
        path: Path,
        kind: ManifestKind,
        manifests: list[ManifestFile],
        report: ValidationReport,
    ) -> None:
        try:
            content = self.registry.cache.load_yaml(path)
        except RegistryError as e:
            report.errors.append(f"{self._rel(path)}: Failed to parse YAML - {e}")
            return
        if not isinstance(content, dict):
            report.errors.append(f"{self._rel(path)}: Invalid YAML content")
            return
        manifests.append(ManifestFile(path=path, kind=kind, content=content))

    # Checks

    def validate_schemas(self, manifests: list[ManifestFile], report: ValidationReport) -> None:
        """JSON schema first, then the typed model for rules schemas cannot express."""
        for manifest in manifests:
            schema_errors = list(self.registry.iter_schema_errors(manifest.content, manifest.kind))
            for error in schema_errors:
                location = "/" + "/".join(str(p) for p in error.absolute_path)
                report.errors.append(
                    f"{self._rel(manifest.path)}: Schema validation failed at {location}: {error.message}"
                )
            if schema_errors:
                continue

            try:
                MANIFEST_MODELS[manifest.kind].model_validate(manifest.content)
            except ValidationError as e:
                for error in e.errors():
                    report.errors.append(f"{self._rel(manifest.path)}: {error['msg']}")

    def validate_ids(
        self,
        manifests: list[ManifestFile],
        report: ValidationReport,
    ) -> dict[ManifestKind, dict[str, ManifestFile]]:
        index: dict[ManifestKind, dict[str, ManifestFile]] = {kind: {} for kind in ManifestKind}
        for manifest in manifests:
            manifest_id = manifest.id
            if not ID_PATTERN.match(manifest_id):
                report.errors.append(
                    f'{self._rel(manifest.path)}: ID "{manifest_id}" must be in kebab-case'
                )

            existing = index[manifest.kind].get(manifest_id)
            if existing is not None:
                report.errors.append(
                    f'{self._rel(manifest.path)}: Duplicate ID "{manifest_id}" '
                    f"(also in {self._rel(existing.path)})"
                )
            else:
                index[manifest.kind][manifest_id] = manifest
        return index

    def validate_versions(self, manifests: list[ManifestFile], report: ValidationReport) -> None:
        for manifest in manifests:
            version = manifest.content.get("version")
            if version is not None and not SEMVER_PATTERN.match(str(version)):
                report.errors.append(
                    f'{self._rel(manifest.path)}: Version "{version}" is not valid semver'
                )

    def validate_references(
        self,
        manifests: list[ManifestFile],
        index: dict[ManifestKind, dict[str, ManifestFile]],
        report: ValidationReport,
    ) -> None:
        rulepacks = index[ManifestKind.RULEPACK]
        agents = index[ManifestKind.AGENT]
        recipes = index[ManifestKind.RECIPE]

        for manifest in manifests:
            content = manifest.content
            where = self._rel(manifest.path)

            for rulepack_id in _string_list(content.get("rulepacks")):
                if rulepack_id not in rulepacks:
                    report.errors.append(f'{where}: Referenced rulepack "{rulepack_id}" not found')

            if manifest.kind == ManifestKind.RULEPACK:
                for parent_id in _string_list(content.get("extends")):
                    if parent_id not in rulepacks:
                        report.errors.append(f'{where}: Extended rulepack "{parent_id}" not found')

            if manifest.kind == ManifestKind.RECIPE:
                for step in content.get("steps") or []:
                    agent_id = step.get("agent") if isinstance(step, dict) else None
                    if agent_id and agent_id not in agents:
                        report.errors.append(
                            f'{where}: Step "{step.get("id")}" references unknown agent "{agent_id}"'
                        )

            if manifest.kind == ManifestKind.FEATURE:
                recipe = content.get("recipe")
                recipe_id = recipe.get("id") if isinstance(recipe, dict) else None
                if recipe_id and recipe_id not in recipes:
                    report.warnings.append(f'{where}: Bound recipe "{recipe_id}" not found')

    def validate_cycles(self, manifests: list[ManifestFile], report: ValidationReport) -> None:
        """Report every ``extends`` cycle once."""
        graph: dict[str, list[str]] = {}
        paths: dict[str, Path] = {}
        for manifest in manifests:
            if manifest.kind == ManifestKind.RULEPACK:
                graph.setdefault(manifest.id, _string_list(manifest.content.get("extends")))
                paths.setdefault(manifest.id, manifest.path)

        reported: set[frozenset[str]] = set()
        done: set[str] = set()

        def visit(node: str, stack: list[str]) -> None:
            if node in stack:
                cycle = stack[stack.index(node):]
                key = frozenset(cycle)
                if key not in reported:
                    reported.add(key)
                    chain = " -> ".join([*cycle, node])
                    report.errors.append(
                        f"{self._rel(paths[node])}: Rulepack inheritance cycle: {chain}"
                    )
                return
            if node in done or node not in graph:
                return
            stack.append(node)
            for parent in graph[node]:
                visit(parent, stack)
            stack.pop()
            done.add(node)

        for node in graph:
            visit(node, [])

    def validate_security(self, manifests: list[ManifestFile], report: ValidationReport) -> None:
        for manifest in manifests:
            try:
                text = manifest.path.read_text(encoding="utf-8")
            except OSError as e:
                report.errors.append(f"{self._rel(manifest.path)}: Failed to read file - {e}")
                continue

            for secret in SECRET_PATTERNS:
                for match in secret.pattern.finditer(text):
                    if secret.exclude is None or not secret.exclude.search(match.group(0)):
                        report.errors.append(
                            f"{self._rel(manifest.path)}: Potential {secret.name} found in file"
                        )
                        break

    def validate_includes(self, manifests: list[ManifestFile], report: ValidationReport) -> None:
        for manifest in manifests:
            includes = _string_list(manifest.content.get("includes"))
            prompt = manifest.content.get("prompt")
            if isinstance(prompt, dict):
                includes += _string_list(prompt.get("includes"))

            for include in includes:
                if not (manifest.path.parent / include).exists():
                    report.errors.append(
                        f'{self._rel(manifest.path)}: Included file "{include}" not found'
                    )

    def validate_feature_content(self, manifests: list[ManifestFile], report: ValidationReport) -> None:
        """Backticks in feature text would break generated scripts."""
        for manifest in manifests:
            if manifest.kind != ManifestKind.FEATURE:
                continue
            for field_path in _backtick_fields(manifest.content, "root"):
                report.errors.append(
                    f"{self._rel(manifest.path)}: Backticks (`) found in {field_path}. "
                    "Backticks cause bash command substitution errors in generated scripts. "
                    "Use alternative formatting (indented code blocks, quotes, etc.)"
                )


def _string_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(item) for item in value]
    return []


def _backtick_fields(value: Any, field_path: str) -> list[str]:
    if isinstance(value, str):
        return [field_path] if "`" in value else []
    if isinstance(value, list):
        found: list[str] = []
        for position, item in enumerate(value):
            found.extend(_backtick_fields(item, f"{field_path}[{position}]"))
        return found
    if isinstance(value, dict):
        found = []
        for key, item in value.items():
            found.extend(_backtick_fields(item, f"{field_path}.{key}"))
        return found
    return []
