"""AI Tools command-line interface."""

from __future__ import annotations

import logging
import shutil
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .compiler import ArtifactCompiler
from .config import Settings
from .exceptions import AIToolsError, RegistryError
from .features import FeatureBinder
from .filters import should_include_recipe
from .recipes import RECIPE_TOOLS, RecipeCompiler
from .registry import BUNDLED_SCHEMAS, ManifestRegistry
from .resolver import RulepackResolver, describe_model_source, resolve_model
from .runner import RecipeRunner, RunnerState
from .validator import ManifestValidator

app = typer.Typer(
    name="ai-tools",
    help="AI Tools: compile agents, rulepacks, prompts and recipes for AI coding assistants",
    add_completion=False,
)
recipes_app = typer.Typer(help="List, generate and run multi-step recipes", add_completion=False)
features_app = typer.Typer(help="Generate feature context and feature-bound recipes", add_completion=False)
app.add_typer(recipes_app, name="recipes")
app.add_typer(features_app, name="features")

console = Console()

SCAFFOLD_DIRS = (
    "01_rulepacks",
    "02_skills",
    "03_prompts",
    "04_agents",
    "05_recipes",
    "06_projects/global",
    "06_projects/local",
    "10_schemas",
    "15_config",
)


def _get_version_string() -> str:
    try:
        return get_version("ai-tools")
    except PackageNotFoundError:
        return f"{__version__} (development)"


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"AI Tools version {_get_version_string()}")
        raise typer.Exit


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    root: Path | None = typer.Option(
        None,
        "--root",
        "-r",
        help="Manifest repository root (defaults to $AI_TOOLS_ROOT or the current directory)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """AI Tools: one manifest repository, every AI coding assistant."""
    _setup_logging(verbose)
    ctx.obj = Settings.from_root(root)


def _registry(ctx: typer.Context) -> ManifestRegistry:
    return ManifestRegistry(ctx.obj)


@app.command()
def init(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Overwrite existing schema files"),
) -> None:
    """Scaffold the manifest repository layout and JSON schemas."""
    settings: Settings = ctx.obj
    for directory in SCAFFOLD_DIRS:
        settings.path(directory).mkdir(parents=True, exist_ok=True)

    copied = 0
    for schema in sorted(BUNDLED_SCHEMAS.glob("*.schema.json")):
        target = settings.schemas_path / schema.name
        if target.exists() and not force:
            continue
        shutil.copy2(schema, target)
        copied += 1

    console.print(f"[green]✓[/green] Initialized manifest repository at {escape(str(settings.root))}")
    console.print(f"  Copied {copied} schema file(s) to {settings.schemas_dir}/")


@app.command()
def validate(ctx: typer.Context) -> None:
    """Validate every manifest in the repository."""
    try:
        report = ManifestValidator(_registry(ctx)).validate_all()
    except AIToolsError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    for warning in report.warnings:
        console.print(f"[yellow]⚠️  {escape(warning)}[/yellow]")
    for error in report.errors:
        console.print(f"[red]❌ {escape(error)}[/red]")

    console.print(
        f"\nChecked {report.checked} manifest(s) in {report.execution_time:.2f}s: "
        f"{len(report.errors)} error(s), {len(report.warnings)} warning(s)"
    )
    if not report.passed:
        raise typer.Exit(1)
    console.print("[green]✅ All validations passed[/green]")


@app.command()
def build(
    ctx: typer.Context,
    tool: list[str] | None = typer.Option(None, "--tool", "-t", help="Limit to these tools"),
) -> None:
    """Build global tool configuration into adapters/<tool>/."""
    try:
        compiler = ArtifactCompiler(_registry(ctx), tools=tool)
        written = compiler.build_global()
    except AIToolsError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] Built {len(written)} artifact(s) into {ctx.obj.adapters_dir}/")


@app.command()
def generate(
    ctx: typer.Context,
    project_id: str | None = typer.Argument(None, help="Project to generate"),
    all_projects: bool = typer.Option(False, "--all", help="Generate every project"),
    tool: list[str] | None = typer.Option(None, "--tool", "-t", help="Limit to these tools"),
) -> None:
    """Generate project-specific configuration into .output/<project>/."""
    if not project_id and not all_projects:
        console.print("[red]Error:[/red] Specify a project id or --all")
        raise typer.Exit(1)

    try:
        compiler = ArtifactCompiler(_registry(ctx), tools=tool)
        if all_projects:
            results = compiler.generate_all()
        else:
            results = {project_id: compiler.generate_project(project_id)}
    except AIToolsError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    if not results:
        console.print("[yellow]No projects found[/yellow]")
    for generated_id, written in results.items():
        console.print(
            f"[green]✓[/green] {escape(generated_id)}: {len(written)} artifact(s) "
            f"in {ctx.obj.output_dir}/{escape(generated_id)}/"
        )


@app.command("list")
def list_manifests(ctx: typer.Context) -> None:
    """List projects and manifest counts."""
    try:
        registry = _registry(ctx)
        counts = {
            "Rulepacks": len(registry.load_rulepacks()),
            "Skills": len(registry.load_skills()),
            "Prompts": len(registry.load_prompts()),
            "Agents": len(registry.load_agents()),
            "Recipes": len(registry.load_recipes()),
        }
    except AIToolsError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    table = Table(title="Manifests")
    table.add_column("Kind", style="cyan")
    table.add_column("Count", style="green")
    for kind, count in counts.items():
        table.add_row(kind, str(count))
    console.print(table)

    projects = Table(title="Projects")
    projects.add_column("ID", style="cyan")
    projects.add_column("Location", style="green")
    for project_id, project_dir in ctx.obj.list_projects():
        projects.add_row(project_id, str(project_dir))
    console.print(projects)


@app.command()
def doctor(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project to analyze"),
) -> None:
    """Show effective agents, rules and models for a project."""
    try:
        registry = _registry(ctx)
        project = registry.load_project(project_id)
        resolver = RulepackResolver(registry)
        resolved_agents = resolver.resolve_all_agents(project)
        project_rules = resolver.build_project_rules(project)
        recipes = [r.id for r in registry.load_recipes() if should_include_recipe(r.id, project)]
    except AIToolsError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    table = Table(title=f"AI Tools Doctor: {project.name}")
    table.add_column("Agent", style="cyan")
    table.add_column("Context", style="magenta")
    table.add_column("Rules", style="green")
    table.add_column("Model", style="yellow")
    for resolved in resolved_agents:
        model = resolve_model(agent=resolved.agent, project=project)
        source = describe_model_source(agent=resolved.agent, project=project)
        table.add_row(
            resolved.agent.id,
            resolved.stack or "global",
            str(len(resolved.rules)),
            f"{model} ({source})" if model else "-",
        )
    console.print(table)

    console.print(f"\n[bold]Project Rules ({len(project_rules)}):[/bold]")
    for rule in project_rules:
        console.print(f"  - {escape(rule)}")
    console.print(f"\n[bold]Included Recipes:[/bold] {escape(', '.join(recipes)) or 'none'}")


@recipes_app.command("list")
def recipes_list(ctx: typer.Context) -> None:
    """List available recipes."""
    try:
        recipes = _registry(ctx).load_recipes()
    except AIToolsError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    table = Table(title="Recipes")
    table.add_column("ID", style="cyan")
    table.add_column("Steps", style="green")
    table.add_column("Tools", style="magenta")
    table.add_column("Description")
    for recipe in recipes:
        table.add_row(
            recipe.id,
            str(len(recipe.steps)),
            ", ".join(recipe.tools) or "all",
            recipe.description,
        )
    console.print(table)


@recipes_app.command("generate")
def recipes_generate(
    ctx: typer.Context,
    recipe_id: str = typer.Argument(..., help="Recipe to compile"),
    tool: str = typer.Option("claude-code", "--tool", "-t", help="Target tool"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Script path"),
) -> None:
    """Compile one recipe into a standalone script."""
    if tool not in RECIPE_TOOLS:
        console.print(f"[red]Error:[/red] Unsupported tool: {escape(tool)}")
        raise typer.Exit(1)

    try:
        registry = _registry(ctx)
        recipe = registry.load_recipe(recipe_id)
        if recipe is None:
            raise RegistryError(f"Recipe not found: {recipe_id}")
        target = output or ctx.obj.output_path / "recipes" / tool / f"{recipe.id}.sh"
        path = RecipeCompiler(registry).generate_recipe_script(recipe, tool, target)
    except AIToolsError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] Generated {escape(str(path))}")


@recipes_app.command("run")
def recipes_run(
    ctx: typer.Context,
    recipe_id: str = typer.Argument(..., help="Recipe to run"),
    tool: str = typer.Option("claude-code", "--tool", "-t", help="Tool the operator uses"),
    var: list[str] | None = typer.Option(None, "--var", help="Variable override as KEY=VALUE"),
    workdir: Path | None = typer.Option(None, "--workdir", help="Directory to run the recipe in"),
) -> None:
    """Walk through a recipe interactively."""
    variables: dict[str, str] = {}
    for item in var or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            console.print(f"[red]Error:[/red] Invalid --var '{escape(item)}', expected KEY=VALUE")
            raise typer.Exit(1)
        variables[key] = value

    try:
        registry = _registry(ctx)
        recipe = registry.load_recipe(recipe_id)
        if recipe is None:
            raise RegistryError(f"Recipe not found: {recipe_id}")
        runner = RecipeRunner(
            recipe,
            tool,
            registry,
            console=console,
            workdir=workdir,
            variables=variables,
        )
        state = runner.run()
    except AIToolsError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    if state == RunnerState.CANCELLED:
        raise typer.Exit(1)


@features_app.command("generate")
def features_generate(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project whose features to generate"),
) -> None:
    """Generate feature snippets and feature-bound recipe scripts."""
    try:
        written = FeatureBinder(_registry(ctx)).generate_features(project_id)
    except AIToolsError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    if not written:
        console.print(f"[yellow]No features found for {escape(project_id)}[/yellow]")
        return
    console.print(f"[green]✓[/green] Generated {len(written)} feature file(s)")


@app.command()
def version() -> None:
    """Show AI Tools version information."""
    console.print(f"AI Tools version {_get_version_string()}")


def main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
