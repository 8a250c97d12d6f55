"""
Minimal HCL block scanner and writer.

Understands just enough of the native HCL syntax to pick blocks and
attributes out of a configuration file and write a subset back:

- blocks with quoted or bare labels, nested to any depth
- attributes, whose expressions are kept as raw source text
- quoted strings with escapes and ${...} / %{...} templates
- heredocs (<<EOT and <<-EOT)
- #, // and /* */ comments (dropped on output)

Expressions are never evaluated or validated.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

_IDENT_START = re.compile(r"[A-Za-z_]")
_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*")
_HEREDOC = re.compile(r"<<(-?)([A-Za-z_][A-Za-z0-9_-]*)[ \t]*\r?\n")

# Traversal roots that are not references
_KEYWORDS = frozenset({"true", "false", "null", "for", "in", "if", "endif", "else", "endfor"})


class HCLSyntaxError(ValueError):
    """Raised when a file cannot be scanned."""

    def __init__(self, message: str, filename: str = "<input>", line: int = 0):
        self.filename = filename
        self.line = line
        super().__init__(f"{filename}:{line}: {message}")


@dataclass
class Attribute:
    """`name = expr` with the expression as source text."""
    name: str
    expr: str


@dataclass
class Block:
    """`type "label" ... { body }`."""
    type: str
    labels: list[str] = field(default_factory=list)
    body: "Body" = field(default_factory=lambda: Body())


@dataclass
class Body:
    """Ordered attributes and nested blocks."""
    items: list[Union[Attribute, Block]] = field(default_factory=list)

    def attributes(self) -> dict[str, Attribute]:
        return {item.name: item for item in self.items if isinstance(item, Attribute)}

    def blocks(self, type: Optional[str] = None) -> list[Block]:
        return [
            item for item in self.items
            if isinstance(item, Block) and (type is None or item.type == type)
        ]

    def remove_block(self, block: Block) -> None:
        self.items = [item for item in self.items if item is not block]

    def remove_attribute(self, name: str) -> None:
        self.items = [
            item for item in self.items
            if not (isinstance(item, Attribute) and item.name == name)
        ]

    def set_attribute(self, name: str, expr: str) -> None:
        """Replace the expression of `name`, appending the attribute if absent."""
        for item in self.items:
            if isinstance(item, Attribute) and item.name == name:
                item.expr = expr
                return
        self.items.append(Attribute(name, expr))


class _Scanner:
    """Recursive-descent scanner over the raw file text."""

    def __init__(self, text: str, filename: str):
        self.text = text
        self.filename = filename
        self.pos = 0

    def error(self, message: str, pos: Optional[int] = None) -> HCLSyntaxError:
        at = self.pos if pos is None else pos
        line = self.text.count("\n", 0, at) + 1
        return HCLSyntaxError(message, self.filename, line)

    def peek(self, offset: int = 0) -> str:
        i = self.pos + offset
        return self.text[i] if i < len(self.text) else ""

    def at_eof(self) -> bool:
        return self.pos >= len(self.text)

    def skip_trivia(self, newlines: bool) -> None:
        """Skip blanks and comments; newlines too when `newlines` is set."""
        while not self.at_eof():
            ch = self.peek()
            if ch in " \t\r" or (newlines and ch == "\n"):
                self.pos += 1
            elif ch == "#" or (ch == "/" and self.peek(1) == "/"):
                end = self.text.find("\n", self.pos)
                self.pos = len(self.text) if end == -1 else end
            elif ch == "/" and self.peek(1) == "*":
                end = self.text.find("*/", self.pos + 2)
                if end == -1:
                    raise self.error("unterminated comment")
                self.pos = end + 2
            else:
                return

    def identifier(self) -> str:
        match = _IDENT.match(self.text, self.pos)
        if match is None:
            found = self.peek() or "end of file"
            raise self.error(f"expected identifier, found {found!r}")
        self.pos = match.end()
        return match.group()

    def skip_string(self) -> None:
        """Skip a quoted string starting at the opening quote."""
        start = self.pos
        self.pos += 1
        while not self.at_eof():
            ch = self.peek()
            if ch == "\\":
                self.pos += 2
            elif ch == '"':
                self.pos += 1
                return
            elif ch == "\n":
                break
            elif ch in "$%" and self.peek(1) == "{":
                self.pos += 2
                self.skip_template()
            else:
                self.pos += 1
        raise self.error("unterminated string", start)

    def skip_template(self) -> None:
        """Skip a template interpolation body up to and including its `}`."""
        start = self.pos
        depth = 0
        while not self.at_eof():
            ch = self.peek()
            if ch == '"':
                self.skip_string()
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                if depth == 0:
                    self.pos += 1
                    return
                depth -= 1
            self.pos += 1
        raise self.error("unterminated template interpolation", start)

    def skip_heredoc(self, match: "re.Match") -> None:
        start = self.pos
        marker = match.group(2)
        self.pos = match.end()
        while not self.at_eof():
            end = self.text.find("\n", self.pos)
            line_end = len(self.text) if end == -1 else end
            if self.text[self.pos:line_end].strip() == marker:
                self.pos = line_end
                return
            self.pos = line_end + 1
        raise self.error(f"unterminated heredoc {marker}", start)

    def expression(self) -> str:
        """Scan an attribute expression up to the end of its line.

        The expression may span several lines while brackets are open.
        """
        self.skip_trivia(newlines=False)
        start = self.pos
        closers: list[str] = []
        pairs = {"(": ")", "[": "]", "{": "}"}
        while not self.at_eof():
            ch = self.peek()
            if not closers:
                if ch == "\n" or ch == "}":
                    break
                if ch == "#" or (ch == "/" and self.peek(1) in "/*"):
                    break
            if ch == '"':
                self.skip_string()
                continue
            if ch == "<" and self.peek(1) == "<":
                match = _HEREDOC.match(self.text, self.pos)
                if match is not None:
                    self.skip_heredoc(match)
                    continue
            if closers and (ch == "#" or (ch == "/" and self.peek(1) in "/*")):
                # Comments inside brackets are part of the raw text
                end = self.pos
                self.skip_trivia(newlines=False)
                if self.pos == end:
                    self.pos += 1
                continue
            if ch in pairs:
                closers.append(pairs[ch])
            elif ch in ")]}":
                if not closers or closers.pop() != ch:
                    raise self.error(f"unexpected {ch!r} in expression")
            self.pos += 1
        if closers:
            raise self.error(f"missing {closers[-1]!r} in expression", start)
        expr = self.text[start:self.pos].rstrip()
        if not expr:
            raise self.error("expected expression after '='", start)
        return expr

    def label(self) -> str:
        start = self.pos
        self.skip_string()
        return self.text[start + 1:self.pos - 1]

    def body(self, nested: bool) -> Body:
        body = Body()
        while True:
            self.skip_trivia(newlines=True)
            if self.at_eof():
                if nested:
                    raise self.error("missing '}' at end of file")
                return body
            if self.peek() == "}":
                if not nested:
                    raise self.error("unexpected '}'")
                self.pos += 1
                return body

            name = self.identifier()
            self.skip_trivia(newlines=False)
            if self.peek() == "=" and self.peek(1) != "=":
                self.pos += 1
                body.items.append(Attribute(name, self.expression()))
                continue

            block = Block(type=name)
            while True:
                self.skip_trivia(newlines=False)
                ch = self.peek()
                if ch == '"':
                    block.labels.append(self.label())
                elif ch and _IDENT_START.match(ch):
                    block.labels.append(self.identifier())
                elif ch == "{":
                    self.pos += 1
                    block.body = self.body(nested=True)
                    break
                else:
                    found = ch or "end of file"
                    raise self.error(f"expected '=' or '{{' after {name!r}, found {found!r}")
            body.items.append(block)


def parse(text: str, filename: str = "<input>") -> Body:
    """Scan a whole configuration file into its top-level body.

    Raises:
        HCLSyntaxError: the file is not well-formed
    """
    return _Scanner(text, filename).body(nested=False)


def _mask_literals(expr: str) -> str:
    """Blank out literal string text, keeping template interpolations.

    Strings nested inside an interpolation are masked too.
    """
    out = []
    i = 0
    # "str" inside quotes, "tmpl" inside ${...}, "brace" for other braces there
    stack: list[str] = []
    while i < len(expr):
        ch = expr[i]
        top = stack[-1] if stack else None
        if top == "str":
            if ch == "\\":
                out.append("  ")
                i += 2
                continue
            if ch == '"':
                stack.pop()
                out.append(ch)
            elif ch in "$%" and expr[i + 1:i + 2] == "{":
                stack.append("tmpl")
                out.append("  ")
                i += 2
                continue
            else:
                out.append(" ")
        else:
            if ch == '"':
                stack.append("str")
            elif top is not None and ch == "{":
                stack.append("brace")
            elif top is not None and ch == "}":
                stack.pop()
            out.append(ch)
        i += 1
    return "".join(out)


_TRAVERSAL = re.compile(r"(?<![\w.\-])([A-Za-z_][A-Za-z0-9_-]*)\s*(?=[.\[])")


def references(expr: str) -> list[str]:
    """Names at the root of traversals in an expression.

    Examples:
        references('var.region')                 -> ['var']
        references('"${local.prefix}-bucket"')   -> ['local']
        references('"us-east-1"')                -> []
        references('upper("x")')                 -> []
    """
    found = []
    for match in _TRAVERSAL.finditer(_mask_literals(expr)):
        name = match.group(1)
        if name not in _KEYWORDS and name not in found:
            found.append(name)
    return found


def _render_body(body: Body, indent: int) -> list[str]:
    pad = "  " * indent
    lines = []
    previous: Optional[Union[Attribute, Block]] = None
    for item in body.items:
        if isinstance(item, Attribute):
            if isinstance(previous, Block):
                lines.append("")
            lines.append(f"{pad}{item.name} = {item.expr}")
        else:
            if previous is not None:
                lines.append("")
            lines.extend(_render_block(item, indent))
        previous = item
    return lines


def _render_block(block: Block, indent: int) -> list[str]:
    pad = "  " * indent
    header = " ".join([block.type, *(f'"{label}"' for label in block.labels)])
    if not block.body.items:
        return [f"{pad}{header} {{", f"{pad}}}"]
    return [f"{pad}{header} {{", *_render_body(block.body, indent + 1), f"{pad}}}"]


def render(blocks: Iterable[Block]) -> str:
    """Write top-level blocks back out as HCL source."""
    chunks = ["\n".join(_render_block(block, 0)) for block in blocks]
    return "\n\n".join(chunks) + "\n" if chunks else ""
