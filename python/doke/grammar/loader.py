"""Definition loading -- YAML definition sources into grammar types.

A definition source maps type names to rules. Rules are written as a
mapping of pattern to target, or as a list::

    StatModifier:
      - "{op:StatOperator} {amount:int} {stat:Stat} to {target:Target}"
    Modifier:
      - "Makes you jump incontrollably": JumpIncontrollablyModifier
      - pattern: "Grants {effect:Effect}"
        children:
          - conditions?: [Condition]
    StatOperator:
      Adds: "+"
      Removes: "-"

Targets: a bare identifier is a type, ``l"..."`` a string literal,
``f"..."`` a format string, ``c"..."`` or any other bare token a named
constant, and numbers are numeric literals. A missing target means an
instance of the enclosing type.
"""

from __future__ import annotations

import re

import yaml

from ..errors import GrammarError
from .types import (
    BUILTIN_TYPES,
    STR,
    Capture,
    ChildField,
    ChildrenSpec,
    GrammarType,
    Literal,
    PatternToken,
    Rule,
    TargetSpec,
)

_TOKEN_RE = re.compile(r"\{\{|\}\}|\{\s*([A-Za-z_]\w*)\s*(?::\s*([A-Za-z_][\w.]*)\s*)?\}")
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PREFIXED_RE = re.compile(r'^([lfc])"(.*)"$', re.DOTALL)
_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.\d*|\.\d+|\d+(?:\.\d*)?[eE][+-]?\d+)$")
_SPACES_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def load_definitions(data: str | dict, source: str = "<string>") -> list[GrammarType]:
    """Load the grammar types declared by one definition source.

    ``data`` is YAML text or an already-parsed mapping. Types are returned
    in declaration order.
    """
    if isinstance(data, str):
        try:
            data = yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise GrammarError(f"Invalid YAML: {e}", source) from e
    if data is None:
        return []
    if not isinstance(data, dict):
        raise GrammarError("A definition source must map type names to rules", source)

    types: list[GrammarType] = []
    for type_name, body in data.items():
        type_name = str(type_name).strip()
        if not _IDENT_RE.match(type_name):
            raise GrammarError(f"Invalid type name '{type_name}'", source)
        if type_name in BUILTIN_TYPES:
            raise GrammarError(f"'{type_name}' is a built-in type and cannot be redefined", source)
        rules = tuple(
            _build_rule(pattern, target, children, type_name, source)
            for pattern, target, children in _iter_rule_entries(body, type_name, source)
        )
        types.append(GrammarType(name=type_name, rules=rules, source=source))
    return types


def parse_pattern(text: str, source: str = "") -> tuple[PatternToken, ...]:
    """Compile pattern source text into literal and capture tokens."""
    text = text.strip()
    tokens: list[PatternToken] = []
    buf: list[str] = []
    seen: set[str] = set()
    pos = 0

    for m in _TOKEN_RE.finditer(text):
        buf.append(_checked_literal(text[pos:m.start()], text, source))
        token = m.group(0)
        if token == "{{":
            buf.append("{")
        elif token == "}}":
            buf.append("}")
        else:
            name, type_name = m.group(1), m.group(2)
            if name in seen:
                raise GrammarError(f"Capture '{name}' appears twice in {text!r}", source)
            seen.add(name)
            _flush_literal(buf, tokens)
            tokens.append(Capture(name, BUILTIN_TYPES.get(type_name, type_name) if type_name else STR))
        pos = m.end()

    buf.append(_checked_literal(text[pos:], text, source))
    _flush_literal(buf, tokens)

    if not tokens:
        raise GrammarError("Empty pattern", source)
    return tuple(tokens)


def parse_target(value: object, enclosing: str, source: str = "") -> TargetSpec:
    """Parse a rule's right-hand side; ``None`` means the enclosing type."""
    if value is None:
        return TargetSpec.type_ref(enclosing)
    if isinstance(value, bool):
        raise GrammarError(f"Boolean target {value!r} under '{enclosing}' is not supported", source)
    if isinstance(value, int):
        return TargetSpec.integer(value)
    if isinstance(value, float):
        return TargetSpec.floating(value)
    if not isinstance(value, str):
        raise GrammarError(f"Invalid target {value!r} under '{enclosing}'", source)

    text = value.strip()
    prefixed = _PREFIXED_RE.match(text)
    if prefixed is not None:
        kind, inner = prefixed.groups()
        if kind == "l":
            return TargetSpec.string(inner)
        if kind == "f":
            return TargetSpec.format(inner)
        return TargetSpec.constant(inner)
    if _INT_RE.match(text):
        return TargetSpec.integer(int(text))
    if _FLOAT_RE.match(text):
        return TargetSpec.floating(float(text))
    if _IDENT_RE.match(text):
        return TargetSpec.type_ref(text)
    if not text:
        raise GrammarError(f"Empty target under '{enclosing}'", source)
    return TargetSpec.constant(text)


def parse_children_spec(raw: object, where: str = "") -> ChildrenSpec:
    """Parse a children declaration.

    Accepts a mapping or a list of single-key mappings of
    ``field(?)`` to ``Type`` or ``[Type]``. A bare ``Type`` entry declares
    an optional array field named after the type.
    """
    if raw is None:
        return ()
    items: list[tuple[object, object]] = []
    if isinstance(raw, dict):
        items.extend(raw.items())
    elif isinstance(raw, list):
        for entry in raw:
            if isinstance(entry, dict) and entry:
                items.extend(entry.items())
            elif isinstance(entry, str) and ":" in entry:
                key, _, value = entry.partition(":")
                items.append((key, value.strip()))
            elif isinstance(entry, str):
                items.append((entry.strip() + "?", [entry.strip()]))
            else:
                raise GrammarError(f"Invalid children entry {entry!r}", where)
    else:
        raise GrammarError("children must be a list or a mapping", where)

    fields: list[ChildField] = []
    names: set[str] = set()
    for key, value in items:
        name = str(key).strip()
        optional = name.endswith("?")
        name = name.rstrip("?").strip()
        if not name:
            raise GrammarError("Empty children field name", where)
        if name in names:
            raise GrammarError(f"Duplicate children field '{name}'", where)
        names.add(name)

        is_array = False
        if isinstance(value, list):
            if len(value) != 1:
                raise GrammarError(f"Array field '{name}' must name exactly one type", where)
            value = value[0]
            is_array = True
        elif isinstance(value, str) and value.strip().startswith("[") and value.strip().endswith("]"):
            value = value.strip()[1:-1]
            is_array = True
        type_name = str(value).strip() if value is not None else ""
        if not _IDENT_RE.match(type_name):
            raise GrammarError(f"Field '{name}' has an invalid type {value!r}", where)
        fields.append(ChildField(
            name=name,
            type_name=BUILTIN_TYPES.get(type_name, type_name),
            optional=optional,
            is_array=is_array,
        ))
    return tuple(fields)


def load_sources(sources) -> dict[str, GrammarType]:
    """Load ``(source_name, data)`` pairs, unioning same-named types in order."""
    merged: dict[str, GrammarType] = {}
    for source, data in sources:
        for grammar_type in load_definitions(data, source):
            existing = merged.get(grammar_type.name)
            if existing is None:
                merged[grammar_type.name] = grammar_type
            else:
                merged[grammar_type.name] = GrammarType(
                    name=existing.name,
                    rules=existing.rules + grammar_type.rules,
                    source=existing.source,
                )
    return merged


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _iter_rule_entries(body: object, type_name: str, source: str):
    """Yield (pattern, target, children) triples of one type body."""
    if isinstance(body, str):
        yield body, None, None
    elif isinstance(body, dict):
        for pattern, target in body.items():
            yield pattern, target, None
    elif isinstance(body, list):
        for entry in body:
            if isinstance(entry, str):
                yield entry, None, None
            elif isinstance(entry, dict) and "pattern" in entry:
                unknown = set(entry) - {"pattern", "target", "children"}
                if unknown:
                    raise GrammarError(
                        f"Unknown rule keys {sorted(unknown)} under '{type_name}'", source,
                    )
                yield entry["pattern"], entry.get("target"), entry.get("children")
            elif isinstance(entry, dict) and len(entry) == 1:
                (pattern, target), = entry.items()
                yield pattern, target, None
            else:
                raise GrammarError(f"Invalid rule {entry!r} under '{type_name}'", source)
    else:
        raise GrammarError(f"Type '{type_name}' has no rules", source)


def _build_rule(
    pattern: object,
    target: object,
    children: object,
    type_name: str,
    source: str,
) -> Rule:
    if isinstance(pattern, bool) or pattern is None:
        raise GrammarError(f"Invalid pattern {pattern!r} under '{type_name}'", source)
    return Rule(
        pattern=parse_pattern(str(pattern), source),
        target=parse_target(target, type_name, source),
        declared_in=type_name,
        children=parse_children_spec(children, source) if children is not None else None,
        source=source,
    )


def _checked_literal(segment: str, pattern: str, source: str) -> str:
    if "{" in segment or "}" in segment:
        raise GrammarError(f"Unbalanced brace in pattern {pattern!r}", source)
    return segment


def _flush_literal(buf: list[str], tokens: list[PatternToken]) -> None:
    text = _SPACES_RE.sub(" ", "".join(buf))
    buf.clear()
    if text:
        tokens.append(Literal(text))
