"""Small statement IR for generating bash scripts.

Recipe scripts are assembled as lists of statements and rendered once, so
quoting lives in one place instead of being scattered through string
concatenation.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

INDENT = "  "
TEMPLATE_TOKEN = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")
SHELL_NAME = re.compile(r"[^A-Za-z0-9_]")


def escape_double_quoted(text: str) -> str:
    """Escape text for a literal inside double quotes."""
    return (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("$", "\\$")
        .replace("`", "\\`")
    )


def ansi_c_quote(text: str) -> str:
    """Render text as a bash ``$'...'`` literal."""
    escaped = (
        text.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\n", "\\n")
        .replace("\t", "\\t")
    )
    return f"$'{escaped}'"


def shell_var_name(name: str) -> str:
    """Upper-cased shell variable name for a recipe variable."""
    return SHELL_NAME.sub("_", name.strip()).upper()


def template_to_shell(
    text: str,
    variables: Iterable[str] = (),
    inputs: Mapping[str, str] | None = None,
) -> str:
    """Turn a task template into double-quote-safe shell text.

    ``{{name}}`` tokens naming a recipe variable become ``${NAME}``; tokens
    naming a step input are replaced by the escaped input value. Any other
    text, unknown tokens included, is escaped literally.
    """
    known = {name.lower(): name for name in variables}
    inputs = inputs or {}
    parts: list[str] = []
    position = 0
    for match in TEMPLATE_TOKEN.finditer(text):
        parts.append(escape_double_quoted(text[position:match.start()]))
        token = match.group(1)
        if token in inputs:
            parts.append(escape_double_quoted(inputs[token]))
        elif token.lower() in known:
            parts.append(f"${{{shell_var_name(known[token.lower()])}}}")
        else:
            parts.append(escape_double_quoted(match.group(0)))
        position = match.end()
    parts.append(escape_double_quoted(text[position:]))
    return "".join(parts)


def default_to_shell(template: str) -> str:
    """Variable default where every ``{{name}}`` becomes ``${NAME}``."""
    parts: list[str] = []
    position = 0
    for match in TEMPLATE_TOKEN.finditer(template):
        parts.append(escape_double_quoted(template[position:match.start()]))
        parts.append(f"${{{shell_var_name(match.group(1))}}}")
        position = match.end()
    parts.append(escape_double_quoted(template[position:]))
    return "".join(parts)


class Statement(ABC):
    """Base class of all script statements."""

    @abstractmethod
    def render(self, depth: int = 0) -> list[str]:
        """Lines of this statement indented to ``depth``."""


@dataclass
class Comment(Statement):
    text: str

    def render(self, depth: int = 0) -> list[str]:
        prefix = INDENT * depth
        return [f"{prefix}# {line}".rstrip() for line in self.text.splitlines() or [""]]


@dataclass
class Blank(Statement):
    def render(self, depth: int = 0) -> list[str]:
        return [""]


@dataclass
class Echo(Statement):
    """``echo "..."``; text is escaped unless ``expand`` allows ``$VAR``."""

    text: str = ""
    expand: bool = False

    def render(self, depth: int = 0) -> list[str]:
        if not self.text:
            return [f'{INDENT * depth}echo ""']
        body = self.text.replace('"', '\\"') if self.expand else escape_double_quoted(self.text)
        return [f'{INDENT * depth}echo "{body}"']


@dataclass
class Assign(Statement):
    """``NAME="value"``; ``value`` must already be quote-safe."""

    name: str
    value: str

    def render(self, depth: int = 0) -> list[str]:
        return [f'{INDENT * depth}{self.name}="{self.value}"']


@dataclass
class DefaultAssign(Statement):
    """``: ${NAME:="value"}`` keeps an environment-supplied value."""

    name: str
    value: str

    def render(self, depth: int = 0) -> list[str]:
        return [f'{INDENT * depth}: ${{{self.name}:="{self.value}"}}']


@dataclass
class Raw(Statement):
    """Pre-rendered shell line(s)."""

    line: str

    def render(self, depth: int = 0) -> list[str]:
        prefix = INDENT * depth
        return [f"{prefix}{line}" if line else "" for line in self.line.split("\n")]


@dataclass
class Command(Statement):
    """A command with arguments, optionally captured into a variable.

    Arguments are emitted verbatim so callers decide how each is quoted.
    """

    program: str
    args: list[str] = field(default_factory=list)
    capture: str | None = None

    def render(self, depth: int = 0) -> list[str]:
        command = " ".join([self.program, *self.args])
        if self.capture:
            command = f"{self.capture}=$({command})"
        return [f"{INDENT * depth}{command}"]


@dataclass
class If(Statement):
    test: str
    then: list[Statement] = field(default_factory=list)
    otherwise: list[Statement] = field(default_factory=list)
    elifs: list[tuple[str, list[Statement]]] = field(default_factory=list)

    def render(self, depth: int = 0) -> list[str]:
        prefix = INDENT * depth
        lines = [f"{prefix}if {self.test}; then"]
        lines.extend(render_block(self.then, depth + 1))
        for test, body in self.elifs:
            lines.append(f"{prefix}elif {test}; then")
            lines.extend(render_block(body, depth + 1))
        if self.otherwise:
            lines.append(f"{prefix}else")
            lines.extend(render_block(self.otherwise, depth + 1))
        lines.append(f"{prefix}fi")
        return lines


@dataclass
class ForRange(Statement):
    """``for var in $(seq 1 count); do ... done``."""

    var: str
    count: int
    body: list[Statement] = field(default_factory=list)

    def render(self, depth: int = 0) -> list[str]:
        prefix = INDENT * depth
        lines = [f"{prefix}for {self.var} in $(seq 1 {self.count}); do"]
        lines.extend(render_block(self.body, depth + 1))
        lines.append(f"{prefix}done")
        return lines


@dataclass
class Function(Statement):
    name: str
    body: list[Statement] = field(default_factory=list)

    def render(self, depth: int = 0) -> list[str]:
        prefix = INDENT * depth
        lines = [f"{prefix}function {self.name}() {{"]
        lines.extend(render_block(self.body, depth + 1))
        lines.append(f"{prefix}}}")
        return lines


def render_block(statements: Iterable[Statement], depth: int = 0) -> list[str]:
    lines: list[str] = []
    for statement in statements:
        lines.extend(statement.render(depth))
    return lines


@dataclass
class Script:
    """An ordered list of statements behind a shebang."""

    statements: list[Statement] = field(default_factory=list)
    shebang: str = "#!/bin/bash"

    def add(self, *statements: Statement) -> Script:
        self.statements.extend(statements)
        return self

    def extend(self, statements: Iterable[Statement]) -> Script:
        self.statements.extend(statements)
        return self

    def render(self) -> str:
        return "\n".join([self.shebang, *render_block(self.statements)]) + "\n"
