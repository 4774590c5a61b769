"""Compile recipe manifests into executable per-tool shell scripts."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .filters import should_include_recipe
from .models import (
    Agent,
    CheckType,
    ConditionCheck,
    LoopConditionType,
    Project,
    Recipe,
    RecipeLoop,
    RecipeStep,
    StepConditionType,
)
from .registry import ManifestRegistry
from .shell import (
    Assign,
    Blank,
    Command,
    Comment,
    DefaultAssign,
    Echo,
    ForRange,
    Function,
    If,
    Raw,
    Script,
    Statement,
    ansi_c_quote,
    default_to_shell,
    escape_double_quoted,
    render_block,
    shell_var_name,
    template_to_shell,
)

logger = logging.getLogger(__name__)

RECIPE_TOOLS = ("claude-code", "copilot-cli", "cursor", "windsurf", "github-copilot")
CAPTURING_TOOLS = ("claude-code", "copilot-cli", "cursor")

RECIPE_DIRS = {
    "claude-code": ".claude/.cs.recipes",
    "copilot-cli": ".cs.recipes",
    "cursor": ".cursor/.cs.recipes",
    "github-copilot": ".github/.cs.recipes",
    "windsurf": ".windsurf/.cs.recipes",
}
DEFAULT_RECIPE_DIR = ".cs.recipes"

PROJECT_CONTEXT_FILES = (
    ".claude/project-context{suffix}.json",
    ".cursor/project-rules{suffix}.json",
    ".windsurf/rules/project-context{suffix}.md",
)

DOCUMENTS_HEADER = "\n\n---\n\n## Reference Documents (Context)\n\n"
DOCUMENTS_FOOTER = "\n---\n\n**Please use the documents above as context for your work.**\n\n"
YES = '[[ "$ANSWER" =~ ^[Yy]$ ]]'


def recipe_dir_for(tool: str) -> str:
    """Directory, relative to a tool's output root, that holds its recipes."""
    return RECIPE_DIRS.get(tool, DEFAULT_RECIPE_DIR)


class RecipeCompiler:
    """Turns recipes into bash scripts for a target tool."""

    def __init__(self, registry: ManifestRegistry) -> None:
        self.registry = registry
        self._agents: dict[str, Agent] | None = None

    @property
    def agents(self) -> dict[str, Agent]:
        if self._agents is None:
            self._agents = self.registry.load_agents()
        return self._agents

    # Public API

    def generate_recipe_script(
        self,
        recipe: Recipe,
        tool: str,
        output_path: Path,
        suffix: str = "",
    ) -> Path:
        """Write an executable script for ``recipe`` to ``output_path``."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.render_recipe_script(recipe, tool, suffix), encoding="utf-8")
        output_path.chmod(0o755)
        logger.debug("Wrote recipe script %s", output_path)
        return output_path

    def render_recipe_script(self, recipe: Recipe, tool: str, suffix: str = "") -> str:
        header = [
            Comment(f"Recipe: {recipe.id}{suffix}"),
            Comment(f"Description: {recipe.description}"),
            Comment(f"Tool: {tool}"),
        ]
        script = self.build_script(
            recipe,
            tool,
            header=header,
            log_name=f"{recipe.id}{suffix}",
            suffix=suffix,
        )
        return script.render()

    def compile_recipes_for_tool(
        self,
        tool: str,
        project: Project | None = None,
    ) -> dict[str, str]:
        """Scripts for every included recipe supporting ``tool``.

        Returns:
            Mapping of path (relative to the tool's output root) to script
            text, with one global script per recipe and one per tech stack
        """
        if tool not in RECIPE_TOOLS:
            return {}

        recipes = [
            recipe
            for recipe in self.registry.load_recipes()
            if should_include_recipe(recipe.id, project) and recipe.supports_tool(tool)
        ]

        suffixes = [""]
        if project is not None:
            suffixes.extend(f"-{name}" for name in project.tech_stacks)

        recipe_dir = recipe_dir_for(tool)
        artifacts: dict[str, str] = {}
        for suffix in suffixes:
            for recipe in recipes:
                path = f"{recipe_dir}/{recipe.id}{suffix}.sh"
                artifacts[path] = self.render_recipe_script(recipe, tool, suffix)
        return artifacts

    def generate_step_script(
        self,
        step: RecipeStep,
        index: int,
        tool: str,
        variables: Mapping[str, str] | None = None,
        conversation_strategy: str = "separate",
        tool_options: Mapping[str, Mapping[str, Any]] | None = None,
        recipe: Recipe | None = None,
    ) -> str:
        """Render the script fragment of one step; ``index`` is 0-based."""
        statements = self.build_step(
            step,
            index,
            tool,
            variables or {},
            conversation_strategy,
            tool_options or {},
            recipe,
        )
        return "\n".join(render_block(statements)) + "\n"

    # Script assembly

    def build_script(
        self,
        recipe: Recipe,
        tool: str,
        *,
        header: list[Statement],
        log_name: str,
        suffix: str = "",
        context: Mapping[str, str] | None = None,
        model: str | None = None,
        completion_message: str = "✅ Recipe completed!",
    ) -> Script:
        """Assemble the full script; feature binding passes ``context``/``model``."""
        script = Script()
        script.extend(header)
        script.add(Blank(), Raw("set -e"), Blank())
        script.extend(self._setup_statements(log_name))
        script.extend(self._project_context_statements(suffix))

        if model:
            script.add(
                Comment("Model Configuration (resolved from hierarchy)"),
                Assign("MODEL", escape_double_quoted(model)),
                Blank(),
            )

        if context is not None:
            script.add(Comment("Feature Context"))
            for key, value in context.items():
                script.add(Assign(shell_var_name(key), escape_double_quoted(value)))
            script.add(Blank())

        script.extend(self._variable_statements(recipe, context))
        script.extend(self.build_steps(recipe, tool, feature_model=model))
        script.add(Echo(completion_message))
        return script

    def _setup_statements(self, log_name: str) -> list[Statement]:
        return [
            Comment("Setup directories"),
            Assign("RECIPE_DOCS_DIR", ".recipe-docs"),
            Raw('mkdir -p "$RECIPE_DOCS_DIR"'),
            Assign("RECIPE_LOGS_DIR", ".recipe-logs"),
            Raw('mkdir -p "$RECIPE_LOGS_DIR"'),
            Blank(),
            Comment("Setup logging"),
            Assign(
                "LOG_FILE",
                f"$RECIPE_LOGS_DIR/{escape_double_quoted(log_name)}-$(date +%Y%m%d-%H%M%S).log",
            ),
            Assign("LAST_OUTPUT_FILE", f"$RECIPE_LOGS_DIR/{escape_double_quoted(log_name)}.last-output"),
            Raw('exec > >(tee -a "$LOG_FILE") 2>&1'),
            Echo("📁 Documents: $RECIPE_DOCS_DIR", expand=True),
            Echo("📝 Logging to: $LOG_FILE", expand=True),
            Echo(),
            Blank(),
        ]

    def _project_context_statements(self, suffix: str) -> list[Statement]:
        candidates = [template.format(suffix=suffix) for template in PROJECT_CONTEXT_FILES]
        if suffix:
            candidates.extend(template.format(suffix="") for template in PROJECT_CONTEXT_FILES)

        branches = [
            (f'[ -f "{path}" ]', [Raw(f'PROJECT_CONTEXT=$(cat "{path}")')])
            for path in candidates
        ]
        first_test, first_body = branches[0]
        loader = If(first_test, then=first_body, elifs=branches[1:])

        return [
            Function("load_project_context", [Assign("PROJECT_CONTEXT", ""), loader]),
            Blank(),
            Comment("Load project context for system prompts"),
            Echo("📋 Loading project context..."),
            Raw("load_project_context"),
            If(
                '[ -n "$PROJECT_CONTEXT" ]',
                then=[Echo("✓ Project context loaded")],
                otherwise=[Echo("⚠️  No project context found")],
            ),
            Echo(),
            Blank(),
        ]

    def _variable_statements(
        self,
        recipe: Recipe,
        context: Mapping[str, str] | None,
    ) -> list[Statement]:
        if not recipe.variables:
            return []

        supplied = {key.lower() for key in context} if context else set()
        statements: list[Statement] = [Comment("Variables")]
        for key, template in recipe.variables.items():
            name = shell_var_name(key)
            value = f"${{{name}}}" if key.lower() in supplied else default_to_shell(template)
            statements.append(DefaultAssign(name, value))
        statements.append(Blank())
        return statements

    def build_steps(
        self,
        recipe: Recipe,
        tool: str,
        feature_model: str | None = None,
    ) -> list[Statement]:
        """Pre-loop steps, the loop block, then post-loop steps.

        A ``feature_model`` resolved for a feature overrides step and recipe models.
        """
        pre, body, post = recipe.partition_steps()
        position = {id(step): index for index, step in enumerate(recipe.steps)}

        def steps(block: list[RecipeStep]) -> list[Statement]:
            statements: list[Statement] = []
            for step in block:
                statements.extend(
                    self.build_step(
                        step,
                        position[id(step)],
                        tool,
                        recipe.variables,
                        recipe.conversation_strategy,
                        recipe.tool_options,
                        recipe,
                        feature_model=feature_model,
                    )
                )
            return statements

        statements = steps(pre)
        if recipe.loop is not None and body:
            statements.extend(self._loop_statements(recipe.loop, steps(body)))
        statements.extend(steps(post))
        return statements

    def _loop_statements(self, loop: RecipeLoop, body: list[Statement]) -> list[Statement]:
        limit = loop.max_iterations

        loop_body: list[Statement] = [
            Echo(),
            Echo(f"▶️  Iteration $iteration/{limit}", expand=True),
            *body,
        ]

        condition = loop.condition
        if condition is not None and condition.type == LoopConditionType.COMMAND and condition.cmd:
            loop_body.append(
                If(
                    f"( {condition.cmd} )",
                    then=[Echo("Loop condition met, exiting loop."), Raw("break")],
                )
            )
        elif condition is not None and condition.type == LoopConditionType.USER_DECISION:
            prompt = condition.prompt or "Continue loop? (y/n): "
            loop_body.append(
                If(
                    f'[ "$iteration" -lt {limit} ]',
                    then=[
                        Raw(f'read -r -p "{escape_double_quoted(prompt)}" ANSWER'),
                        If(f"! {YES}", then=[Echo("Exiting loop."), Raw("break")]),
                    ],
                )
            )

        return [
            Comment(f"Loop: {' → '.join(loop.steps)} (max {limit} iterations)"),
            ForRange("iteration", limit, loop_body),
            Blank(),
        ]

    # Steps

    def build_step(
        self,
        step: RecipeStep,
        index: int,
        tool: str,
        variables: Mapping[str, str],
        conversation_strategy: str,
        tool_options: Mapping[str, Mapping[str, Any]],
        recipe: Recipe | None,
        feature_model: str | None = None,
    ) -> list[Statement]:
        number = index + 1
        statements: list[Statement] = [
            Comment(f"Step {number}: {step.id} (agent: {step.agent})"),
            Echo(f"👉 Step {number}: {step.id}"),
        ]

        action = self._task_statements(step, variables)
        action.extend(
            self._tool_statements(
                step, index, tool, conversation_strategy, tool_options, recipe, feature_model
            )
        )
        statements.extend(self._wrap_condition(step, action))
        statements.extend([Echo(), Blank()])
        return statements

    def _task_statements(self, step: RecipeStep, variables: Mapping[str, str]) -> list[Statement]:
        statements: list[Statement] = [
            Assign("TASK", template_to_shell(step.task, variables, step.inputs)),
        ]

        if step.include_documents:
            statements.append(Raw(f"TASK+={ansi_c_quote(DOCUMENTS_HEADER)}"))
            for number, doc_path in enumerate(step.include_documents, start=1):
                var = f"DOC_{number}"
                quoted_path = escape_double_quoted(doc_path)
                heading = escape_double_quoted(f"### Document: `{doc_path}`")
                statements.append(
                    If(
                        f'[ -f "{quoted_path}" ]',
                        then=[
                            Raw(f'{var}=$(cat "{quoted_path}")'),
                            Raw(
                                f'TASK+="{heading}"{ansi_c_quote(chr(10) * 2)}'
                                f'"${{{var}}}"{ansi_c_quote(chr(10) * 2 + "---" + chr(10) * 2)}'
                            ),
                            Echo(f"  ✓ Included: {doc_path}"),
                        ],
                        otherwise=[Echo(f"  ⚠️  Document not found: {doc_path}")],
                    )
                )
            statements.append(Raw(f"TASK+={ansi_c_quote(DOCUMENTS_FOOTER)}"))

        if step.output_document:
            instruction = (
                "\n\n---\n\n**IMPORTANT**: Save your complete response to the file: "
                f"`{step.output_document}`\n"
            )
            statements.append(Raw(f"TASK+={ansi_c_quote(instruction)}"))
        return statements

    def _tool_statements(
        self,
        step: RecipeStep,
        index: int,
        tool: str,
        conversation_strategy: str,
        tool_options: Mapping[str, Mapping[str, Any]],
        recipe: Recipe | None,
        feature_model: str | None = None,
    ) -> list[Statement]:
        model = step.model or (recipe.model if recipe else None)
        if feature_model:
            model_args = ["--model", '"$MODEL"']
        elif model:
            model_args = ["--model", f'"{escape_double_quoted(model)}"']
        else:
            model_args = ['${MODEL:+--model "$MODEL"}']
        options = tool_options.get(tool, {})

        if tool == "claude-code":
            statements = self._system_prompt_statements(step)
            args = ['${SYSTEM_PROMPT:+--system-prompt "$SYSTEM_PROMPT"}', *model_args]
            if options.get("permissionMode"):
                args.extend(["--permission-mode", f'"{escape_double_quoted(str(options["permissionMode"]))}"'])
            allowed = options.get("allowedTools")
            if allowed:
                if isinstance(allowed, str):
                    allowed = [allowed]
                args.append("--allowedTools")
                args.extend(f'"{escape_double_quoted(str(item))}"' for item in allowed)
            if self._continues(step, index, conversation_strategy):
                args.append("--continue")
            args.extend(["-p", '"$TASK"'])
            statements.append(Command("claude", args, capture="RESPONSE"))
        elif tool == "copilot-cli":
            statements = []
            args = ["-p", f'"@{escape_double_quoted(step.agent)} $TASK"', *model_args]
            if options.get("allowAllTools"):
                args.append("--allow-all-tools")
            allow_tool = options.get("allowTool") or []
            if isinstance(allow_tool, str):
                allow_tool = [allow_tool]
            for item in allow_tool:
                args.extend(["--allow-tool", f'"{escape_double_quoted(str(item))}"'])
            statements.append(Command("copilot", args, capture="RESPONSE"))
        elif tool == "cursor":
            statements = [
                Command("cursor-agent", ["-p", '"$TASK"', *model_args], capture="RESPONSE"),
            ]
        else:
            statements = [
                Echo(f"  (Execute this step in {tool} with agent {step.agent})"),
                Raw('echo "$TASK"'),
            ]
            if step.output_document:
                statements.append(Echo(f"  📄 Save the response to: {step.output_document}"))
            statements.append(Raw('read -r -p "Press Enter when the step is completed..."'))
            return statements

        statements.extend(
            [
                Raw('echo "$RESPONSE"'),
                Raw('printf \'%s\\n\' "$RESPONSE" > "$LAST_OUTPUT_FILE"'),
            ]
        )
        if step.output_document:
            path = escape_double_quoted(step.output_document)
            statements.extend(
                [
                    Raw(f'mkdir -p "$(dirname "{path}")"'),
                    Raw(f'printf \'%s\\n\' "$RESPONSE" > "{path}"'),
                    Echo(f"  📄 Saved: {step.output_document}"),
                ]
            )
        return statements

    def _system_prompt_statements(self, step: RecipeStep) -> list[Statement]:
        agent = self.agents.get(step.agent)
        system = agent.prompt.system if agent and agent.prompt and agent.prompt.system else ""
        if agent is None:
            logger.warning("Agent '%s' not found for step '%s'", step.agent, step.id)

        separator = ansi_c_quote("\n\n---\n\n")
        return [
            Assign("SYSTEM_PROMPT", escape_double_quoted(system.strip())),
            If(
                '[ -n "$PROJECT_CONTEXT" ]',
                then=[Raw(f'SYSTEM_PROMPT+={separator}"$PROJECT_CONTEXT"')],
            ),
        ]

    @staticmethod
    def _continues(step: RecipeStep, index: int, conversation_strategy: str) -> bool:
        if step.continue_conversation is not None:
            return step.continue_conversation and index > 0
        return conversation_strategy == "continue" and index > 0

    # Conditions

    def _wrap_condition(self, step: RecipeStep, action: list[Statement]) -> list[Statement]:
        condition = step.condition
        if condition is None or condition.type == StepConditionType.ALWAYS:
            return action

        if condition.type == StepConditionType.FILE_EXISTS:
            target = condition.check.value if condition.check else None
            if not target:
                return action
            quoted = escape_double_quoted(target)
            return [
                If(
                    f'[ -f "{quoted}" ]',
                    then=action,
                    otherwise=[Echo(f"  (Skipping: File {target} not found)")],
                )
            ]

        if condition.type == StepConditionType.USER_DECISION:
            prompt = (
                condition.check.prompt
                if condition.check and condition.check.prompt
                else f"Execute step {step.id}? (y/n): "
            )
            return [
                Raw(f'read -r -p "{escape_double_quoted(prompt)}" ANSWER'),
                If(YES, then=action, otherwise=[Echo(f"  (Skipping: {step.id})")]),
            ]

        if condition.check is None:
            return action

        test = check_test(condition.check)
        if condition.type == StepConditionType.ON_FAILURE:
            test = f"! {{ {test}; }}"
        return [
            If(test, then=action, otherwise=[Echo(f"  (Skipping: condition for {step.id} not met)")]),
        ]


def check_test(check: ConditionCheck) -> str:
    """Shell test expression for an on-success/on-failure check."""
    if check.type == CheckType.CONTAINS:
        value = escape_double_quoted(check.value or "")
        return f'[ -f "$LAST_OUTPUT_FILE" ] && grep -qF -- "{value}" "$LAST_OUTPUT_FILE"'
    if check.type == CheckType.REGEX:
        pattern = escape_double_quoted(check.pattern or "")
        return f'[ -f "$LAST_OUTPUT_FILE" ] && grep -qE -- "{pattern}" "$LAST_OUTPUT_FILE"'
    if check.type == CheckType.COMMAND and check.cmd:
        return f"( {check.cmd} )"
    prompt = escape_double_quoted(check.prompt or "Approve? (y/n): ")
    return f'read -r -p "{prompt}" ANSWER && {YES}'
