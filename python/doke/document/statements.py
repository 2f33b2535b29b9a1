"""Statement tree builder.

Turns a document body into a forest of statements. Nesting comes from
indentation and list markers; paragraphs collapse into a single statement.
Only list items and statements ending in a colon can own children::

    Modifiers:
    - Adds 4 health to you
    - Deals 10 damage:
        - to every enemy

yields ``Modifiers:`` with two children, the second of which has one child.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterator

PARAGRAPH = "paragraph"
ITEM = "item"
HEADING = "heading"

TAB_SIZE = 4

_LIST_MARKER_RE = re.compile(r"^(?:[-*+]|\d{1,9}[.)]|[A-Za-z][.)])(?:\s+|$)")
_HEADING_RE = re.compile(r"^(#{1,6})(?:\s+(.*?))?\s*#*\s*$")
_THEMATIC_BREAK_RE = re.compile(r"^([-*_])(?:\s*\1){2,}$")
_WIKI_LINK_RE = re.compile(r"\[\[([^\[\]]+)\]\]")
_SPACES_RE = re.compile(r"\s+")

# Inline markup reduced to its text content
_INLINE_RULES = [
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"!?\[([^\[\]]*)\]\([^)]*\)"), r"\1"),
    (re.compile(r"(\*\*|__)(?=\S)(.+?)(?<=\S)\1"), r"\2"),
    (re.compile(r"(?<![\w*])\*(?=[^\s*])(.+?)(?<=[^\s*])\*(?![\w*])"), r"\1"),
    (re.compile(r"(?<![\w_])_(?=[^\s_])(.+?)(?<=[^\s_])_(?![\w_])"), r"\1"),
    (re.compile(r"~~(.+?)~~"), r"\1"),
]


@dataclass(frozen=True)
class Statement:
    """One semantic unit of body text plus its nested statements."""

    text: str
    children: tuple[Statement, ...] = ()
    source_line: int = 0
    kind: str = PARAGRAPH
    links: tuple[str, ...] = ()

    @property
    def can_own_children(self) -> bool:
        return self.kind == ITEM or self.text.endswith(":")

    def walk(self) -> Iterator[Statement]:
        """Yield this statement and all descendants in source order."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class _Block:
    kind: str
    indent: int
    line: int
    parts: list[str]
    children: list[_Block] = field(default_factory=list)

    @property
    def depth(self) -> int:
        # list items sit just below a paragraph at the same indentation
        return self.indent * 2 + (1 if self.kind == ITEM else 0)

    @property
    def text(self) -> str:
        return normalize_text(" ".join(self.parts))

    @property
    def can_own(self) -> bool:
        return self.kind == ITEM or self.text.endswith(":")

    def freeze(self) -> Statement:
        text = self.text
        return Statement(
            text=strip_inline(text),
            children=tuple(c.freeze() for c in self.children),
            source_line=self.line,
            kind=self.kind,
            links=tuple(m.group(1).strip() for m in _WIKI_LINK_RE.finditer(text)),
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build(body: str, first_line: int = 1) -> tuple[Statement, ...]:
    """Build the statement forest of a document body.

    ``first_line`` is the line number of the first body line in the source
    file, so that ``Statement.source_line`` is absolute.
    """
    roots: list[_Block] = []
    stack: list[_Block] = []
    current: _Block | None = None  # block that may take continuation lines

    for idx, raw_line in enumerate(body.splitlines()):
        expanded = raw_line.expandtabs(TAB_SIZE)
        stripped = expanded.strip()
        if not stripped or _THEMATIC_BREAK_RE.match(stripped):
            current = None
            continue

        indent = len(expanded) - len(expanded.lstrip())
        line_no = first_line + idx

        heading = _HEADING_RE.match(stripped)
        marker = _LIST_MARKER_RE.match(stripped)
        if heading is not None:
            block = _Block(HEADING, indent, line_no, [heading.group(2) or ""])
        elif marker is not None:
            block = _Block(ITEM, indent, line_no, [stripped[marker.end():]])
        else:
            if current is not None and _continues(current, indent):
                current.parts.append(stripped)
                continue
            block = _Block(PARAGRAPH, indent, line_no, [stripped])

        _attach(block, stack, roots)
        current = block if block.kind != HEADING else None

    return tuple(b.freeze() for b in roots)


def iter_statements(forest: tuple[Statement, ...]) -> Iterator[Statement]:
    """Depth-first iteration over every statement of a forest."""
    for stmt in forest:
        yield from stmt.walk()


def normalize_text(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _SPACES_RE.sub(" ", text).strip()


def strip_inline(text: str) -> str:
    """Reduce inline Markdown (emphasis, code, links) to plain text."""
    if not any(ch in text for ch in "`[*_~"):
        return text
    for pattern, repl in _INLINE_RULES:
        text = pattern.sub(repl, text)
    return text


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _continues(block: _Block, indent: int) -> bool:
    """Whether a plain text line at ``indent`` continues ``block``."""
    if block.text.endswith(":") and indent > block.indent:
        return False
    if block.kind == ITEM:
        return indent > block.indent
    return indent >= block.indent


def _attach(block: _Block, stack: list[_Block], roots: list[_Block]) -> None:
    # Pop finished siblings and statements that cannot take children
    while stack and (stack[-1].depth >= block.depth or not stack[-1].can_own):
        stack.pop()
    if stack:
        stack[-1].children.append(block)
    else:
        roots.append(block)
    stack.append(block)
