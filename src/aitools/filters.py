"""Whitelist, blacklist and tech-stack inclusion filters.

Every filter includes everything when no project (or no ``ai_tools`` block)
is given. Whitelist and blacklist of one category are mutually exclusive;
that is enforced when the project manifest is loaded, not here.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .models import Project, TechStack

KNOWN_LANGUAGES = frozenset(
    {
        "java",
        "kotlin",
        "python",
        "typescript",
        "javascript",
        "go",
        "rust",
        "c++",
        "c#",
        "ruby",
        "php",
        "swift",
    }
)


def _include_by_lists(item_id: str, project: Project | None, category: str) -> bool:
    if project is None or project.ai_tools is None:
        return True

    whitelist = project.ai_tools.whitelist(category)
    if whitelist:
        return item_id in whitelist

    blacklist = project.ai_tools.blacklist(category)
    if blacklist:
        return item_id not in blacklist

    return True


def should_include_agent(agent_id: str, project: Project | None = None) -> bool:
    """Decide whether an agent is generated for a project."""
    return _include_by_lists(agent_id, project, "agents")


def should_include_recipe(recipe_id: str, project: Project | None = None) -> bool:
    """Decide whether a recipe is generated for a project."""
    return _include_by_lists(recipe_id, project, "recipes")


def prompt_matches(prompt_id_or_path: str, prompt_path: str, pattern: str) -> bool:
    """Match a list entry by full path, ``/<pattern>`` suffix, or bare id."""
    return (
        prompt_path == pattern
        or prompt_path.endswith(f"/{pattern}")
        or prompt_id_or_path == pattern
    )


def should_include_prompt(
    prompt_id_or_path: str,
    prompts_map: Mapping[str, str],
    project: Project | None = None,
) -> bool:
    """Decide whether a prompt is generated for a project.

    Args:
        prompt_id_or_path: Prompt id or its source-relative path
        prompts_map: Prompt id to source-relative path (without extension)
        project: Project whose ``ai_tools`` lists apply
    """
    if project is None or project.ai_tools is None:
        return True

    prompt_path = prompts_map.get(prompt_id_or_path, prompt_id_or_path)

    whitelist = project.ai_tools.whitelist("prompts")
    if whitelist:
        return any(prompt_matches(prompt_id_or_path, prompt_path, p) for p in whitelist)

    blacklist = project.ai_tools.blacklist("prompts")
    if blacklist:
        return not any(prompt_matches(prompt_id_or_path, prompt_path, p) for p in blacklist)

    return True


def rulepack_allowed_by_lists(rulepack_id: str, project: Project) -> bool:
    """Whitelist and blacklist stage of rulepack inclusion."""
    if project.ai_tools is None:
        return True

    whitelist = project.ai_tools.whitelist("rulepacks")
    if whitelist and rulepack_id not in whitelist:
        return False

    blacklist = project.ai_tools.blacklist("rulepacks")
    return not (blacklist and rulepack_id in blacklist)


def rulepack_matches_tech_stack(
    tags: Iterable[str],
    project: Project,
    stack: TechStack | None = None,
) -> bool:
    """Tech-stack tag stage of rulepack inclusion.

    With a language context (the stack's languages, else the project's
    top-level ``tech_stack.languages``) a language-specific rulepack must
    share a tag with it. Without one, a rulepack tagged with any language
    used by any declared stack is excluded.
    """
    rulepack_tags = {tag.lower() for tag in tags}
    if not rulepack_tags:
        return True

    if stack is not None:
        languages = stack.languages
    elif project.tech_stack is not None:
        languages = project.tech_stack.languages
    else:
        languages = []

    project_languages = project.all_stack_languages()

    if languages:
        context_languages = {lang.lower() for lang in languages}
        language_specific = bool(rulepack_tags & (KNOWN_LANGUAGES | project_languages))
        return not language_specific or bool(rulepack_tags & context_languages)

    return not rulepack_tags & project_languages
