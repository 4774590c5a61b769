"""Feature snippets and feature-bound recipe scripts."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from .exceptions import AIToolsError, RegistryError
from .models import Feature, Project, Recipe
from .recipes import RecipeCompiler, recipe_dir_for
from .registry import ManifestRegistry
from .resolver import describe_model_source, resolve_model
from .shell import Comment

logger = logging.getLogger(__name__)

DEFAULT_FEATURE_TOOLS = ("claude-code", "copilot-cli", "cursor")


class FeatureBinder:
    """Generates per-tool feature files and binds features to recipes."""

    def __init__(
        self,
        registry: ManifestRegistry,
        compiler: RecipeCompiler | None = None,
    ) -> None:
        self.registry = registry
        self.settings = registry.settings
        self.compiler = compiler or RecipeCompiler(registry)
        self.project: Project | None = None

    def generate_features(self, project_id: str) -> list[Path]:
        """Generate feature snippets and feature recipes for a project.

        Raises:
            RegistryError: If the project cannot be found
        """
        project_dir = self.settings.find_project_dir(project_id)
        if project_dir is None:
            msg = f"Project not found: {project_id}"
            raise RegistryError(msg)

        self.project = self.registry.load_project_file(project_dir / "project.yml")
        features = self.registry.load_features(project_dir)
        if not features:
            logger.info("No features found for project '%s'", project_id)
            return []

        output_dir = self.settings.output_path / project_id / "features"
        written: list[Path] = []
        for relative, content in self.render_feature_snippets(features).items():
            written.append(self._write(output_dir / relative, content))

        written.extend(self.generate_feature_recipes(project_id, features))
        return written

    def render_feature_snippets(self, features: list[Feature]) -> dict[str, str]:
        """Per-tool feature documents keyed by path relative to the features dir."""
        snippets: dict[str, str] = {}
        for feature in features:
            snippets[f"github-copilot/feature-{feature.id}.md"] = _copilot_snippet(feature)
            snippets[f".windsurf/workflows/feature-{feature.id}.md"] = _windsurf_snippet(feature)
            snippets[f"claude-code/feature-{feature.id}.md"] = _claude_snippet(feature)

        cursor_features = [
            {
                "id": feature.id,
                "name": feature.name,
                "description": feature.description,
                "model": feature.model,
                "context": feature.context.model_dump() if feature.context else {},
                "files": feature.files.model_dump() if feature.files else {},
                "conventions": feature.conventions,
            }
            for feature in features
        ]
        snippets["cursor/features.json"] = json.dumps({"features": cursor_features}, indent=2)
        return snippets

    def generate_feature_recipes(self, project_id: str, features: list[Feature]) -> list[Path]:
        """Write one script per (feature, tool) for features bound to a recipe.

        A recipe that cannot be loaded is logged and its feature skipped.
        """
        if self.project is None or self.project.id != project_id:
            project_dir = self.settings.find_project_dir(project_id)
            if project_dir is not None:
                self.project = self.registry.load_project_file(project_dir / "project.yml")

        written: list[Path] = []
        for feature in features:
            if feature.recipe is None:
                continue

            try:
                recipe = self.registry.load_recipe(feature.recipe.id)
            except AIToolsError as e:
                logger.warning(
                    "Recipe '%s' could not be loaded for feature '%s': %s",
                    feature.recipe.id,
                    feature.id,
                    e,
                )
                continue
            if recipe is None:
                logger.warning(
                    "Recipe '%s' could not be loaded for feature '%s'",
                    feature.recipe.id,
                    feature.id,
                )
                continue

            tools = feature.recipe.tools or recipe.tools or list(DEFAULT_FEATURE_TOOLS)
            for tool in tools:
                if not recipe.supports_tool(tool):
                    continue
                script_path = (
                    self.settings.output_path
                    / project_id
                    / tool
                    / recipe_dir_for(tool)
                    / f"feature-{feature.id}.sh"
                )
                script = self.render_feature_script(feature, recipe, tool)
                written.append(self._write(script_path, script, executable=True))
                logger.info("Generated %s script for feature: %s", tool, feature.name)
        return written

    def render_feature_script(self, feature: Feature, recipe: Recipe, tool: str) -> str:
        """Recipe script with feature context and the resolved model baked in."""
        first_agent = self.compiler.agents.get(recipe.steps[0].agent) if recipe.steps else None
        model = resolve_model(agent=first_agent, project=self.project, feature=feature)
        source = describe_model_source(agent=first_agent, project=self.project, feature=feature)

        header = [
            Comment("Feature-bound recipe script"),
            Comment(f"Feature: {feature.name}"),
            Comment(f"Recipe: {recipe.id}"),
            Comment(f"Tool: {tool}"),
        ]
        if model:
            header.append(Comment(f"Model: {model} ({source})"))
        header.append(Comment(f"Generated: {datetime.now(UTC).isoformat()}"))

        script = self.compiler.build_script(
            recipe,
            tool,
            header=header,
            log_name=f"feature-{feature.id}",
            context=feature.recipe.context if feature.recipe else {},
            model=model,
            completion_message=f"✅ Feature '{feature.name}' workflow completed!",
        )
        return script.render()

    @staticmethod
    def _write(path: Path, content: str, executable: bool = False) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        if executable:
            path.chmod(0o755)
        return path


def _bullets(items: list[str]) -> list[str]:
    return [f"- {item}" for item in items] + [""]


def _copilot_snippet(feature: Feature) -> str:
    lines = [f"# Feature: {feature.name}", "", feature.description, ""]
    if feature.model:
        lines += [
            f"**Default Model for this Feature:** {feature.model}",
            "",
            "*This is the highest priority model setting, overriding project and agent defaults.*",
            "",
        ]
    if feature.context and feature.context.overview:
        lines += ["## Overview", "", feature.context.overview, ""]
    if feature.context and feature.context.architecture:
        lines += ["## Architecture", "", feature.context.architecture, ""]
    if feature.conventions:
        lines += ["## Conventions", "", *_bullets(feature.conventions)]
    return "\n".join(lines)


def _windsurf_snippet(feature: Feature) -> str:
    lines = [
        "---",
        f"description: {feature.description}",
        "auto_execution_mode: 3",
        "---",
        "",
        f"# Feature: {feature.name}",
        "",
        feature.description,
        "",
    ]
    context = feature.context
    if context and context.overview:
        lines += ["## Overview", "", context.overview, ""]
    if context and context.architecture:
        lines += ["## Architecture", "", context.architecture, ""]
    if context and context.dependencies:
        lines += ["## Dependencies", "", *_bullets(context.dependencies)]
    if feature.conventions:
        lines += ["## Conventions", "", *_bullets(feature.conventions)]

    recipe_context = feature.recipe.context if feature.recipe else {}
    if recipe_context.get("feature_description"):
        lines += ["## Implementation Steps", "", recipe_context["feature_description"], ""]
    if recipe_context.get("acceptance_criteria"):
        lines += ["## Acceptance Criteria", "", recipe_context["acceptance_criteria"], ""]
    return "\n".join(lines)


def _claude_snippet(feature: Feature) -> str:
    lines = [f"# {feature.name}", "", feature.description, ""]
    if feature.model:
        lines += [f"**Default Model:** {feature.model}", ""]
    if feature.context and feature.context.overview:
        lines += [feature.context.overview, ""]
    if feature.context and feature.context.architecture:
        lines += ["## Architecture", "", feature.context.architecture, ""]
    return "\n".join(lines)
