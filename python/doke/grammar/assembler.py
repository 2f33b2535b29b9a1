"""Resource assembly -- statement trees plus children specs into values.

For each declared children field the assembler walks the statements of the
current level in order: a single field takes the first statement that
matches its type, an array field takes every one. Statements claimed by a
field are not offered to later fields. A statement ending in a colon that
matches no field is treated as a group label and its children are offered
in its place::

    Modifiers:
    - Adds 4 health to you

When a matched rule (or the type it was matched under) declares children,
the statement's own sub-statements are assembled into the produced
resource.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping

from ..document.statements import Statement
from ..errors import (
    DokeError,
    MissingRequiredChild,
    NoMatch,
    NotANumber,
    ParseError,
    UnknownTypeReference,
    UnresolvedPlaceholder,
)
from .matcher import DEFAULT_MAX_DEPTH, Attempt, MatchTrace, SentenceMatcher
from .registry import TypeRegistry
from .resolver import ValueResolver
from .types import BUILTIN_TYPES, ChildField, ChildrenSpec, EnumConst, Resource, Scalar, Value

logger = logging.getLogger(__name__)

# hook(frontmatter) -> fields to pre-populate on the root resource
FrontmatterHook = Callable[[dict], "Mapping[str, object] | None"]


@dataclass
class StatementTrace:
    """Outcome of offering one statement to one field."""

    line: int
    text: str
    field_name: str
    type_name: str
    outcome: str  # "matched", "no match", or the error message
    attempts: list[Attempt] = field(default_factory=list)


@dataclass
class AssemblyTrace:
    matches: MatchTrace = field(default_factory=MatchTrace)
    statements: list[StatementTrace] = field(default_factory=list)

    def format(self) -> str:
        lines = []
        for st in self.statements:
            lines.append(f"line {st.line}: {st.text!r} as {st.field_name} ({st.type_name}): {st.outcome}")
            for a in st.attempts:
                status = "ok" if a.matched else f"no: {a.reason}"
                lines.append(f"    {'  ' * a.depth}{a.type_name} <- {a.pattern!r}: {status}")
        return "\n".join(lines)


class ResourceAssembler:
    """Builds the value graph of one document."""

    def __init__(
        self,
        registry: TypeRegistry,
        frontmatter: dict[str, object] | None = None,
        hooks: Mapping[str, FrontmatterHook] | None = None,
        case_sensitive: bool = True,
        exhaustive: bool = False,
        trace: AssemblyTrace | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.registry = registry
        self.frontmatter = frontmatter or {}
        self.hooks = dict(hooks or {})
        self.exhaustive = exhaustive
        self.trace = trace
        self.resolver = ValueResolver(self.frontmatter)
        self.matcher = SentenceMatcher(
            registry,
            self.resolver,
            case_sensitive=case_sensitive,
            max_depth=max_depth,
            trace=trace.matches if trace is not None else None,
        )
        # (id(statement), type) -> resolved value or None; valid for one assemble() call
        self._cache: dict[tuple[int, str], Value | None] = {}
        self._errors: dict[int, DokeError] = {}

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def assemble(
        self,
        root_type: str,
        roots: tuple[Statement, ...],
        children: ChildrenSpec,
        line: int | None = None,
    ) -> Resource:
        """Assemble the root resource from the top-level statements.

        ``line`` is reported as the parent line when a required root field
        is missing.
        """
        for child in children:
            if child.type_name not in self.registry:
                raise UnknownTypeReference(child.type_name, referenced_by=f"field '{child.name}' of '{root_type}'")

        self._cache.clear()
        self._errors.clear()
        fields: dict[str, Value | list[Value]] = {}
        hook = self.hooks.get(root_type)
        if hook is not None:
            populated = hook(dict(self.frontmatter))
            if populated:
                fields.update({k: _as_value(v) for k, v in populated.items()})

        fields.update(self._assemble_fields(roots, children, line))
        return Resource(type_name=root_type, fields=fields)

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _assemble_fields(
        self,
        statements: tuple[Statement, ...],
        spec: ChildrenSpec,
        parent_line: int | None,
    ) -> dict[str, Value | list[Value]]:
        candidates = self._candidates(statements, spec)
        claimed: set[int] = set()
        fields: dict[str, Value | list[Value]] = {}
        missing: list[ChildField] = []

        for child in spec:
            if child.is_array:
                values: list[Value] = []
                for stmt in candidates:
                    if id(stmt) in claimed:
                        continue
                    value = self._try(stmt, child)
                    if value is not None:
                        claimed.add(id(stmt))
                        values.append(value)
                fields[child.name] = values
                continue

            for stmt in candidates:
                if id(stmt) in claimed:
                    continue
                value = self._try(stmt, child)
                if value is not None:
                    claimed.add(id(stmt))
                    fields[child.name] = value
                    break
            else:
                if not child.optional:
                    missing.append(child)

        for stmt in candidates:
            if id(stmt) in claimed:
                continue
            error = self._errors.get(id(stmt))
            if error is not None:
                raise ParseError(stmt.text, stmt.source_line, error) from error
            if self.exhaustive:
                raise ParseError(stmt.text, stmt.source_line)

        if missing:
            child = missing[0]
            raise MissingRequiredChild(child.name, child.type_name, parent_line)
        return fields

    def _candidates(self, statements: tuple[Statement, ...], spec: ChildrenSpec) -> list[Statement]:
        out: list[Statement] = []
        for stmt in statements:
            if (
                stmt.children
                and stmt.text.endswith(":")
                and all(self._try(stmt, child) is None for child in spec)
            ):
                out.extend(self._candidates(stmt.children, spec))
            else:
                out.append(stmt)
        return out

    def _try(self, stmt: Statement, child: ChildField) -> Value | None:
        """Resolve ``stmt`` as ``child``'s type, or None when it does not match."""
        type_name = child.type_name
        key = (id(stmt), type_name)
        if key in self._cache:
            return self._cache[key]

        start = len(self.trace.matches) if self.trace is not None else 0
        value: Value | None = None
        outcome = "matched"
        try:
            if type_name in BUILTIN_TYPES:
                value = self.matcher.value(type_name, stmt.text)
            else:
                m = self.matcher.match(type_name, stmt.text)
                value = self.resolver.resolve(m.rule, m.binding, matched_type=type_name)
                spec = (
                    m.rule.children
                    or self.registry.children_for(type_name)
                    or self.registry.children_for(m.rule.declared_in)
                )
                if spec and isinstance(value, Resource):
                    value.fields.update(self._assemble_fields(stmt.children, spec, stmt.source_line))
        except NoMatch as e:
            if type(e) is not NoMatch or len(e.chain) != 1:
                self._errors.setdefault(id(stmt), e)
                outcome = e.message
            else:
                outcome = "no match"
        except (NotANumber, UnresolvedPlaceholder) as e:
            self._errors.setdefault(id(stmt), e)
            outcome = e.message

        self._cache[key] = value
        if self.trace is not None:
            self.trace.statements.append(StatementTrace(
                line=stmt.source_line,
                text=stmt.text,
                field_name=child.name,
                type_name=type_name,
                outcome=outcome,
                attempts=self.trace.matches.attempts[start:],
            ))
        if value is not None:
            logger.debug("line %d: %r -> %s", stmt.source_line, stmt.text, child.name)
        return value


def assemble(
    root_type: str,
    roots: tuple[Statement, ...],
    children: ChildrenSpec,
    registry: TypeRegistry,
    frontmatter: dict[str, object] | None = None,
    **options,
) -> Resource:
    """Assemble a document's value graph in one call."""
    return ResourceAssembler(registry, frontmatter, **options).assemble(root_type, roots, children)


def _as_value(value: object) -> Value | list[Value]:
    if isinstance(value, (Scalar, EnumConst, Resource)):
        return value
    if isinstance(value, list) and all(isinstance(v, (Scalar, EnumConst, Resource)) for v in value):
        return value
    return Scalar(value)
