"""Core data models for AI Tools manifests."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ID_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")

FILTER_CATEGORIES = ("agents", "prompts", "rulepacks", "recipes")


class ManifestKind(str, Enum):
    """Manifest types understood by the loader."""

    RULEPACK = "rulepack"
    AGENT = "agent"
    PROMPT = "prompt"
    SKILL = "skill"
    RECIPE = "recipe"
    PROJECT = "project"
    FEATURE = "feature"


class Rulepack(BaseModel):
    """A named, inheritable bundle of free-text coding rules."""

    id: str = Field(..., description="Kebab-case rulepack identifier")
    version: str | None = Field(default=None, description="Semantic version")
    description: str | None = Field(default=None)
    extends: list[str] = Field(
        default_factory=list,
        description="Parent rulepacks resolved before this one",
    )
    rules: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def effective_tags(self) -> list[str]:
        """Root tags, falling back to ``metadata.tags``."""
        if self.tags:
            return self.tags
        tags = self.metadata.get("tags") or []
        return [str(tag) for tag in tags]


class AgentDefaults(BaseModel):
    """Default generation settings for an agent."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    style: str | None = None


class AgentPrompt(BaseModel):
    """System and user prompt templates of an agent."""

    system: str | None = None
    user_template: str | None = None
    content: str | None = None


class Agent(BaseModel):
    """A bundled persona: system prompt, rulepacks and capabilities."""

    id: str
    version: str | None = None
    purpose: str
    description: str | None = None
    rulepacks: list[str] = Field(default_factory=list)
    capabilities: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    defaults: AgentDefaults | None = None
    prompt: AgentPrompt | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PromptVariable(BaseModel):
    """A template variable accepted by a prompt."""

    name: str
    required: bool = False
    description: str | None = None
    default: str | None = None


class Prompt(BaseModel):
    """A reusable prompt template.

    ``source_path`` is the path of the manifest relative to the prompts
    directory without its extension (e.g. ``refactor/extract-method``). It is
    filled by the registry and used for whitelist/blacklist path matching.
    """

    id: str
    version: str | None = None
    description: str
    tags: list[str] = Field(default_factory=list)
    variables: list[PromptVariable] = Field(default_factory=list)
    includes: list[str] = Field(default_factory=list)
    content: str | None = None
    system: str | None = None
    user: str | None = None
    model: str | None = None
    outputs: Any = None
    rules: list[str] = Field(default_factory=list)
    source_path: str | None = Field(default=None, exclude=True)

    @property
    def namespaced_id(self) -> str:
        """Path-derived identifier, e.g. ``refactor-extract-method``."""
        return (self.source_path or self.id).replace("/", "-")


class Skill(BaseModel):
    """A command or MCP tool exposed to assistants."""

    id: str
    version: str | None = None
    description: str
    command: Any = None
    mcp_tool: str | None = None
    timeout_sec: int | None = None
    inputs: list[Any] = Field(default_factory=list)
    outputs: Any = None
    tags: list[str] = Field(default_factory=list)


class StepConditionType(str, Enum):
    """When a recipe step runs."""

    ALWAYS = "always"
    ON_SUCCESS = "on-success"
    ON_FAILURE = "on-failure"
    USER_DECISION = "user-decision"
    FILE_EXISTS = "file_exists"


class CheckType(str, Enum):
    """How a step condition inspects the previous output."""

    COMMAND = "command"
    REGEX = "regex"
    CONTAINS = "contains"
    USER_APPROVAL = "user-approval"


class ConditionCheck(BaseModel):
    """Check evaluated by a step condition."""

    type: CheckType
    cmd: str | None = None
    pattern: str | None = None
    value: str | None = None
    prompt: str | None = None


class StepCondition(BaseModel):
    """Condition attached to a recipe step."""

    type: StepConditionType = StepConditionType.ALWAYS
    check: ConditionCheck | None = None


class RecipeStep(BaseModel):
    """A single agent invocation inside a recipe."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    agent: str
    task: str
    model: str | None = None
    inputs: dict[str, str] = Field(default_factory=dict)
    include_documents: list[str] = Field(default_factory=list, alias="includeDocuments")
    output_document: str | None = Field(default=None, alias="outputDocument")
    wait_for_confirmation: bool = Field(default=False, alias="waitForConfirmation")
    continue_conversation: bool | None = Field(default=None, alias="continueConversation")
    condition: StepCondition | None = None


class LoopConditionType(str, Enum):
    """How a recipe loop decides to stop early."""

    COMMAND = "command"
    USER_DECISION = "user-decision"
    MAX_ITERATIONS = "max-iterations"


class LoopCondition(BaseModel):
    """Early exit condition of a recipe loop."""

    type: LoopConditionType
    cmd: str | None = None
    prompt: str | None = None


class RecipeLoop(BaseModel):
    """Repeatable, contiguous block of recipe steps."""

    model_config = ConfigDict(populate_by_name=True)

    steps: list[str] = Field(..., min_length=1)
    max_iterations: int = Field(default=3, alias="maxIterations", ge=1)
    condition: LoopCondition | None = None


class Recipe(BaseModel):
    """An ordered, optionally looped sequence of agent invocations."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    version: str
    description: str
    tags: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    variables: dict[str, str] = Field(default_factory=dict)
    steps: list[RecipeStep]
    loop: RecipeLoop | None = None
    conversation_strategy: str = Field(default="separate", alias="conversationStrategy")
    tool_options: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        alias="toolOptions",
    )
    model: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_loop_membership(self) -> Recipe:
        """Loop steps must name existing steps and form a contiguous block."""
        if self.loop is None:
            return self

        positions = {step.id: index for index, step in enumerate(self.steps)}
        unknown = [step_id for step_id in self.loop.steps if step_id not in positions]
        if unknown:
            msg = f"Loop references unknown steps: {', '.join(unknown)}"
            raise ValueError(msg)

        indices = sorted(positions[step_id] for step_id in set(self.loop.steps))
        if indices != list(range(indices[0], indices[0] + len(indices))):
            msg = "Loop steps must be contiguous in the step list"
            raise ValueError(msg)
        return self

    def supports_tool(self, tool: str) -> bool:
        """Recipes without a tool list support every tool."""
        return not self.tools or tool in self.tools

    def partition_steps(
        self,
    ) -> tuple[list[RecipeStep], list[RecipeStep], list[RecipeStep]]:
        """Split steps into (pre-loop, loop body, post-loop) by membership."""
        if self.loop is None:
            return list(self.steps), [], []

        members = set(self.loop.steps)
        pre: list[RecipeStep] = []
        body: list[RecipeStep] = []
        post: list[RecipeStep] = []
        for step in self.steps:
            if step.id in members:
                body.append(step)
            elif body:
                post.append(step)
            else:
                pre.append(step)
        return pre, body, post


class TechStack(BaseModel):
    """Languages and technologies of a project or one of its stacks."""

    languages: list[str] = Field(default_factory=list)
    frontend: list[str] = Field(default_factory=list)
    backend: list[str] = Field(default_factory=list)
    database: list[str] = Field(default_factory=list)
    infrastructure: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)


class ProjectConventions(BaseModel):
    """Project conventions rendered into every tool's project context."""

    naming: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    testing: list[str] = Field(default_factory=list)
    structure: list[str] = Field(default_factory=list)
    custom: list[str] = Field(default_factory=list)

    def all_rules(self) -> list[str]:
        """Get all conventions in rendering order."""
        return self.naming + self.patterns + self.testing + self.structure + self.custom


class AIToolsConfig(BaseModel):
    """Per-project assistant configuration and inclusion filters."""

    model: str | None = None
    preferred_agents: list[str] = Field(default_factory=list)
    preferred_rulepacks: list[str] = Field(default_factory=list)
    custom_rules: list[str] = Field(default_factory=list)
    whitelist_agents: list[str] | None = None
    blacklist_agents: list[str] | None = None
    whitelist_prompts: list[str] | None = None
    blacklist_prompts: list[str] | None = None
    whitelist_rulepacks: list[str] | None = None
    blacklist_rulepacks: list[str] | None = None
    whitelist_recipes: list[str] | None = None
    blacklist_recipes: list[str] | None = None

    @model_validator(mode="after")
    def validate_exclusive_filters(self) -> AIToolsConfig:
        """Whitelist and blacklist of one category cannot both be set."""
        for category in FILTER_CATEGORIES:
            if (
                getattr(self, f"whitelist_{category}") is not None
                and getattr(self, f"blacklist_{category}") is not None
            ):
                msg = (
                    f"whitelist_{category} and blacklist_{category} "
                    "are mutually exclusive"
                )
                raise ValueError(msg)
        return self

    def whitelist(self, category: str) -> list[str] | None:
        """Configured whitelist for a category; empty lists count as unset."""
        return getattr(self, f"whitelist_{category}") or None

    def blacklist(self, category: str) -> list[str] | None:
        """Configured blacklist for a category; empty lists count as unset."""
        return getattr(self, f"blacklist_{category}") or None


class ProjectContext(BaseModel):
    overview: str | None = None
    purpose: str | None = None


class Project(BaseModel):
    """Per-project context consumed by every tool adapter."""

    id: str
    version: str
    name: str
    description: str
    context: ProjectContext | None = None
    tech_stack: TechStack | None = None
    tech_stacks: dict[str, TechStack] = Field(default_factory=dict)
    documentation: dict[str, Any] = Field(default_factory=dict)
    commands: dict[str, Any] = Field(default_factory=dict)
    conventions: ProjectConventions | None = None
    ai_tools: AIToolsConfig | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def all_stack_languages(self) -> set[str]:
        """Languages declared anywhere in the project, lower-cased."""
        languages: set[str] = set()
        if self.tech_stack:
            languages.update(lang.lower() for lang in self.tech_stack.languages)
        for stack in self.tech_stacks.values():
            languages.update(lang.lower() for lang in stack.languages)
        return languages


class FeatureContext(BaseModel):
    overview: str | None = None
    architecture: str | None = None
    dependencies: list[str] = Field(default_factory=list)


class FeatureFiles(BaseModel):
    patterns: list[str] = Field(default_factory=list)


class FeatureRecipe(BaseModel):
    """Binding of a feature to a recipe with pre-filled variables."""

    id: str
    context: dict[str, str] = Field(default_factory=dict)
    tools: list[str] | None = None

    @field_validator("context", mode="before")
    @classmethod
    def stringify_context(cls, v: Any) -> Any:
        """YAML scalars (numbers, booleans) become strings."""
        if isinstance(v, dict):
            return {str(key): "" if value is None else str(value) for key, value in v.items()}
        return v


class Feature(BaseModel):
    """A project sub-component, optionally bound to a recipe."""

    id: str
    version: str
    name: str
    description: str
    model: str | None = None
    context: FeatureContext | None = None
    files: FeatureFiles | None = None
    conventions: list[str] = Field(default_factory=list)
    recipe: FeatureRecipe | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


MANIFEST_MODELS: dict[ManifestKind, type[BaseModel]] = {
    ManifestKind.RULEPACK: Rulepack,
    ManifestKind.AGENT: Agent,
    ManifestKind.PROMPT: Prompt,
    ManifestKind.SKILL: Skill,
    ManifestKind.RECIPE: Recipe,
    ManifestKind.PROJECT: Project,
    ManifestKind.FEATURE: Feature,
}
