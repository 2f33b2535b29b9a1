"""Value resolution -- turning a matched rule and its binding into a value."""

from __future__ import annotations

import re

from ..document.frontmatter import scalar_to_text
from ..errors import UnresolvedPlaceholder
from .types import EnumConst, Resource, Rule, Scalar, TargetKind, Value

_PLACEHOLDER_RE = re.compile(r"\{\{|\}\}|\{\s*([A-Za-z_][\w.\-]*)\s*\}")


class ValueResolver:
    """Resolves rule targets against a binding and the document frontmatter."""

    def __init__(self, frontmatter: dict[str, object] | None = None) -> None:
        self.frontmatter = frontmatter or {}

    def resolve(
        self,
        rule: Rule,
        binding: dict[str, Value],
        matched_type: str | None = None,
    ) -> Value:
        """Build the value a rule produces.

        ``matched_type`` is the type the text was matched against; when the
        rule produces a resource of another type it is kept as the
        resource's abstract type.
        """
        target = rule.target
        kind = target.kind
        if kind == TargetKind.STRING:
            return Scalar(target.value)
        if kind == TargetKind.FORMAT:
            return Scalar(self.format(target.value, binding))
        if kind in (TargetKind.INT, TargetKind.FLOAT):
            return Scalar(target.value)
        if kind == TargetKind.CONSTANT:
            return EnumConst(target.value)

        type_name = target.value
        abstract = matched_type if matched_type and matched_type != type_name else None
        # every capture becomes a same-named field
        return Resource(type_name=type_name, fields=dict(binding), abstract_type=abstract)

    def format(self, template: str, binding: dict[str, Value]) -> str:
        """Interpolate ``{name}`` from captures first, then frontmatter."""

        def _sub(m: re.Match) -> str:
            token = m.group(0)
            if token == "{{":
                return "{"
            if token == "}}":
                return "}"
            name = m.group(1)
            if name in binding:
                return render_value(binding[name])
            if name in self.frontmatter:
                return scalar_to_text(self.frontmatter[name])
            raise UnresolvedPlaceholder(name, template)

        return _PLACEHOLDER_RE.sub(_sub, template)


def resolve(
    rule: Rule,
    binding: dict[str, Value],
    frontmatter: dict[str, object] | None = None,
) -> Value:
    return ValueResolver(frontmatter).resolve(rule, binding)


def render_value(value: Value | list) -> str:
    """Text form of a value for string templating."""
    if isinstance(value, list):
        return ", ".join(render_value(v) for v in value)
    if isinstance(value, Scalar):
        return scalar_to_text(value.value)
    if isinstance(value, EnumConst):
        return value.token
    return value.type_name
