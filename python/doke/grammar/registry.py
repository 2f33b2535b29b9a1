"""Type registry -- merged grammar types, basic tables, and the live handle.

Grammar types contributed by many definition sources are collected by a
``RegistryBuilder`` in order and finalized into an immutable
``TypeRegistry``. Rule order is source order then declaration order, and it
decides which rule wins on ambiguous input.
"""

from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import Iterable, Mapping

from ..errors import UnknownTypeReference
from .types import BUILTIN_TYPES, ChildrenSpec, GrammarType, Literal, Rule

logger = logging.getLogger(__name__)


class TypeRegistry:
    """Immutable view of every grammar type known to one build."""

    def __init__(
        self,
        rules: Mapping[str, tuple[Rule, ...]],
        children: Mapping[str, ChildrenSpec] | None = None,
        abstract: Iterable[str] = (),
    ) -> None:
        self._rules = MappingProxyType(dict(rules))
        self._children = MappingProxyType(dict(children or {}))
        self._abstract = frozenset(abstract)
        tables: dict[str, Mapping[str, Rule]] = {}
        for name, type_rules in self._rules.items():
            if type_rules and all(r.is_table_entry for r in type_rules):
                table: dict[str, Rule] = {}
                for rule in type_rules:
                    key = rule.pattern[0]
                    assert isinstance(key, Literal)
                    table.setdefault(key.text, rule)  # first declaration wins
                tables[name] = MappingProxyType(table)
        self._tables = MappingProxyType(tables)

    def __contains__(self, name: object) -> bool:
        return name in self._rules or name in BUILTIN_TYPES

    def __len__(self) -> int:
        return len(self._rules)

    def type_names(self) -> list[str]:
        return list(self._rules)

    def rules(self, name: str) -> tuple[Rule, ...]:
        """Effective ordered rule list of a type."""
        try:
            return self._rules[name]
        except KeyError:
            raise UnknownTypeReference(name) from None

    def is_table(self, name: str) -> bool:
        return name in self._tables

    def is_abstract(self, name: str) -> bool:
        return name in self._abstract

    def lookup(self, name: str, text: str) -> Rule | None:
        """Exact lookup in a basic type table."""
        if name not in self._rules:
            raise UnknownTypeReference(name)
        table = self._tables.get(name)
        if table is None:
            raise TypeError(f"'{name}' is not a basic type table")
        return table.get(text)

    def table_keys(self, name: str) -> list[str]:
        return list(self._tables.get(name, {}))

    def children_for(self, name: str) -> ChildrenSpec | None:
        return self._children.get(name)


class RegistryBuilder:
    """Collects grammar type contributions in order, then builds a registry."""

    def __init__(self) -> None:
        self._rules: dict[str, list[Rule]] = {}
        self._children: dict[str, ChildrenSpec] = {}
        self._abstract: set[str] = set()
        self.sources: list[str] = []

    def add_type(self, grammar_type: GrammarType) -> RegistryBuilder:
        self._rules.setdefault(grammar_type.name, []).extend(grammar_type.rules)
        return self

    def add_source(
        self,
        types: Iterable[GrammarType],
        contributes_to: str | None = None,
        source: str = "",
    ) -> RegistryBuilder:
        """Add the types of one definition source.

        With ``contributes_to``, every non-table type of the source also
        adds its rules to that abstract type's union.
        """
        if contributes_to is not None:
            self._abstract.add(contributes_to)
            self._rules.setdefault(contributes_to, [])
        for grammar_type in types:
            self.add_type(grammar_type)
            if (
                contributes_to is not None
                and grammar_type.name != contributes_to
                and not grammar_type.is_basic_table
            ):
                self._rules[contributes_to].extend(grammar_type.rules)
        if source:
            self.sources.append(source)
        return self

    def declare_abstract(self, type_name: str) -> RegistryBuilder:
        self._abstract.add(type_name)
        self._rules.setdefault(type_name, [])
        return self

    def set_children(self, type_name: str, spec: ChildrenSpec) -> RegistryBuilder:
        self._children[type_name] = spec
        return self

    def build(self) -> TypeRegistry:
        """Finalize into an immutable registry, validating children specs.

        Capture types are not checked here; the matcher reports an unknown
        capture type when a rule referencing it is first tried.
        """
        known = set(self._rules) | set(BUILTIN_TYPES.values())
        for owner, spec in self._children.items():
            _check_spec(spec, known, f"children of '{owner}'")
        for type_name, rules in self._rules.items():
            for rule in rules:
                if rule.children:
                    _check_spec(rule.children, known, f"rule {rule.pattern_text()!r} of '{type_name}'")

        registry = TypeRegistry(
            {name: tuple(rules) for name, rules in self._rules.items()},
            children=self._children,
            abstract=self._abstract,
        )
        logger.info(
            "Built registry: %d types, %d rules from %d sources",
            len(self._rules),
            sum(len(r) for r in self._rules.values()),
            len(self.sources),
        )
        return registry


class RegistryHandle:
    """Process-wide pointer to the current registry.

    Readers take ``snapshot()`` or ``current()`` once per parse; ``swap``
    publishes a fully built replacement, together with an optional context
    object (the project config), in one step.
    """

    def __init__(self, registry: TypeRegistry | None = None, context: object = None) -> None:
        self._state: tuple[TypeRegistry | None, object] = (registry, context)
        self._lock = threading.Lock()
        self.generation = 0 if registry is None else 1

    def current(self) -> TypeRegistry:
        return self.snapshot()[0]

    def snapshot(self) -> tuple[TypeRegistry, object]:
        with self._lock:
            registry, context = self._state
        if registry is None:
            raise RuntimeError("No registry has been installed")
        return registry, context

    def swap(self, registry: TypeRegistry, context: object = None) -> TypeRegistry | None:
        """Install a new registry and return the previous one.

        The context is kept when none is given.
        """
        with self._lock:
            previous, old_context = self._state
            self._state = (registry, context if context is not None else old_context)
            self.generation += 1
            generation = self.generation
        logger.info("Installed registry generation %d", generation)
        return previous


def merge(types: Mapping[str, GrammarType] | Iterable[GrammarType]) -> TypeRegistry:
    """Build a registry from loaded grammar types."""
    builder = RegistryBuilder()
    items = types.values() if isinstance(types, Mapping) else types
    for grammar_type in items:
        builder.add_type(grammar_type)
    return builder.build()


def _check_spec(spec: ChildrenSpec, known: set[str], where: str) -> None:
    for child in spec:
        if child.type_name not in known:
            raise UnknownTypeReference(child.type_name, referenced_by=where)
