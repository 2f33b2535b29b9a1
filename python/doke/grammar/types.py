"""Grammar and value types -- pattern tokens, rules, targets, and values."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

# Capture types handled without a grammar definition
INT = "int"
FLOAT = "float"
STR = "str"

BUILTIN_TYPES: dict[str, str] = {
    "int": INT,
    "Int": INT,
    "float": FLOAT,
    "Float": FLOAT,
    "str": STR,
    "String": STR,
}


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Capture:
    name: str
    type_name: str = STR


PatternToken = Union[Literal, Capture]


class TargetKind(Enum):
    TYPE_REF = "type"
    STRING = "string"
    FORMAT = "format"
    INT = "int"
    FLOAT = "float"
    CONSTANT = "constant"


@dataclass(frozen=True)
class TargetSpec:
    """Right-hand side of a rule.

    ``value`` holds the type name, literal text, template, number, or
    constant token depending on ``kind``.
    """

    kind: TargetKind
    value: object

    @property
    def is_literal(self) -> bool:
        return self.kind not in (TargetKind.TYPE_REF, TargetKind.FORMAT)

    @classmethod
    def type_ref(cls, name: str) -> TargetSpec:
        return cls(TargetKind.TYPE_REF, name)

    @classmethod
    def string(cls, text: str) -> TargetSpec:
        return cls(TargetKind.STRING, text)

    @classmethod
    def format(cls, template: str) -> TargetSpec:
        return cls(TargetKind.FORMAT, template)

    @classmethod
    def integer(cls, value: int) -> TargetSpec:
        return cls(TargetKind.INT, value)

    @classmethod
    def floating(cls, value: float) -> TargetSpec:
        return cls(TargetKind.FLOAT, value)

    @classmethod
    def constant(cls, token: str) -> TargetSpec:
        return cls(TargetKind.CONSTANT, token)


@dataclass(frozen=True)
class ChildField:
    """One declared children field: ``name(?): Type`` or ``name(?): [Type]``."""

    name: str
    type_name: str
    optional: bool = False
    is_array: bool = False


ChildrenSpec = tuple[ChildField, ...]


@dataclass(frozen=True)
class Rule:
    pattern: tuple[PatternToken, ...]
    target: TargetSpec
    declared_in: str
    children: ChildrenSpec | None = None
    source: str = ""

    @property
    def captures(self) -> list[Capture]:
        return [t for t in self.pattern if isinstance(t, Capture)]

    @property
    def is_table_entry(self) -> bool:
        return (
            len(self.pattern) == 1
            and isinstance(self.pattern[0], Literal)
            and self.target.is_literal
        )

    def pattern_text(self) -> str:
        """Render the pattern back to its source syntax."""
        out = []
        for token in self.pattern:
            if isinstance(token, Literal):
                out.append(token.text.replace("{", "{{").replace("}", "}}"))
            else:
                out.append(f"{{{token.name}:{token.type_name}}}")
        return "".join(out)


@dataclass(frozen=True)
class GrammarType:
    name: str
    rules: tuple[Rule, ...] = ()
    source: str = ""

    @property
    def is_basic_table(self) -> bool:
        return bool(self.rules) and all(r.is_table_entry for r in self.rules)


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Scalar:
    value: int | float | str | bool | list | None


@dataclass(frozen=True)
class EnumConst:
    token: str


@dataclass
class Resource:
    """A typed node of the assembled value graph.

    ``abstract_type`` is the type the resource was matched under when that
    differs from ``type_name``; it does not take part in equality.
    """

    type_name: str
    fields: dict[str, Value | list[Value]] = field(default_factory=dict)
    abstract_type: str | None = field(default=None, compare=False)

    def to_dict(self) -> dict:
        return value_to_dict(self)

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, d: dict) -> Resource:
        value = value_from_dict(d)
        if not isinstance(value, Resource):
            raise ValueError("Not a resource dict")
        return value


Value = Union[Scalar, EnumConst, Resource]


def value_to_dict(value: Value | list) -> object:
    """Serialize a value graph to plain JSON-compatible data."""
    if isinstance(value, list):
        return [value_to_dict(v) for v in value]
    if isinstance(value, Scalar):
        return value.value
    if isinstance(value, EnumConst):
        return {"const": value.token}
    d: dict = {
        "type": value.type_name,
        "fields": {k: value_to_dict(v) for k, v in value.fields.items()},
    }
    if value.abstract_type is not None:
        d["abstract_type"] = value.abstract_type
    return d


def value_from_dict(data: object) -> Value | list:
    """Inverse of ``value_to_dict``."""
    if isinstance(data, list):
        return [value_from_dict(v) for v in data]
    if isinstance(data, dict):
        if "const" in data:
            return EnumConst(data["const"])
        return Resource(
            type_name=data["type"],
            fields={k: value_from_dict(v) for k, v in data.get("fields", {}).items()},
            abstract_type=data.get("abstract_type"),
        )
    return Scalar(data)
