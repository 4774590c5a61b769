"""Artifact compiler for generating tool-specific configuration files."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from .adapters import ToolAdapter, ToolRegistry
from .exceptions import CompilationError
from .models import Project
from .registry import ManifestRegistry

logger = logging.getLogger(__name__)

MANUAL_SECTION = re.compile(r"<!-- MANUAL:START -->(.*?)<!-- MANUAL:END -->", re.DOTALL)


class ArtifactCompiler:
    """Compiles manifests into per-tool artifacts and writes them out."""

    def __init__(self, registry: ManifestRegistry, tools: list[str] | None = None) -> None:
        """Initialize compiler.

        Args:
            registry: Manifest registry for the repository
            tools: Tool names to compile for; every registered tool when omitted

        Raises:
            CompilationError: If a requested tool has no adapter
        """
        self.registry = registry
        self.settings = registry.settings
        self.tool_registry = ToolRegistry(registry)

        names = tools or self.tool_registry.names()
        unknown = [name for name in names if self.tool_registry.get(name) is None]
        if unknown:
            msg = f"Unknown tool(s): {', '.join(unknown)}"
            raise CompilationError(msg, {"available": self.tool_registry.names()})
        self.adapters: list[ToolAdapter] = [self.tool_registry.get(name) for name in names]

    def compile_project(self, project: Project) -> dict[str, dict[str, str]]:
        """Artifacts for ``project`` keyed by tool name, then relative path."""
        return {adapter.name: adapter.compile(project) for adapter in self.adapters}

    def compile_global(self) -> dict[str, dict[str, str]]:
        return {adapter.name: adapter.compile_global() for adapter in self.adapters}

    def generate_project(self, project_id: str) -> list[Path]:
        """Compile one project into ``.output/<project>/<tool>/``.

        Raises:
            RegistryError: If the project cannot be found
        """
        project = self.registry.load_project(project_id)
        written: list[Path] = []
        for tool, artifacts in self.compile_project(project).items():
            writer = ArtifactWriter(self.settings.output_path / project.id / tool)
            written.extend(writer.write(artifacts))
            logger.info("Generated %d %s artifacts for project '%s'", len(artifacts), tool, project.id)
        return written

    def generate_all(self) -> dict[str, list[Path]]:
        """Compile every project found in the project sources."""
        return {
            project_id: self.generate_project(project_id)
            for project_id, _ in self.settings.list_projects()
        }

    def build_global(self) -> list[Path]:
        """Compile unfiltered configuration into ``adapters/<tool>/``."""
        written: list[Path] = []
        for tool, artifacts in self.compile_global().items():
            writer = ArtifactWriter(self.settings.adapters_path / tool)
            written.extend(writer.write(artifacts))
            logger.info("Built %d global %s artifacts", len(artifacts), tool)
        return written


class ArtifactWriter:
    """Writes compiled artifacts below a target directory."""

    def __init__(self, target_root: Path) -> None:
        self.target_root = Path(target_root)

    def write(self, artifacts: dict[str, str], preserve_manual: bool = True) -> list[Path]:
        """Write each artifact, creating parent directories as needed.

        Shell scripts are made executable. Markdown files keep any
        ``<!-- MANUAL:START -->`` sections found in the previous version.

        Returns:
            Paths written, in artifact order
        """
        written: list[Path] = []
        for relative, content in artifacts.items():
            target_path = self.target_root / relative
            target_path.parent.mkdir(parents=True, exist_ok=True)

            if preserve_manual and target_path.suffix == ".md" and target_path.exists():
                existing = target_path.read_text(encoding="utf-8")
                content = merge_manual_sections(content, existing)

            target_path.write_text(content, encoding="utf-8")
            if target_path.suffix == ".sh":
                target_path.chmod(0o755)
            written.append(target_path)
        return written


def merge_manual_sections(new_content: str, existing_content: str) -> str:
    """Carry hand-written sections of ``existing_content`` into ``new_content``."""
    if MANUAL_SECTION.search(new_content):
        return new_content

    sections = [match.group(1).strip() for match in MANUAL_SECTION.finditer(existing_content)]
    if not sections:
        return new_content

    preserved = "\n\n".join(f"<!-- MANUAL:START -->\n{section}\n<!-- MANUAL:END -->" for section in sections)
    return f"{new_content.rstrip()}\n\n---\n## Manual Project Notes\n\n{preserved}\n"
