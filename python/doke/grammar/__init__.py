"""doke.grammar -- grammar loading, type registry, matching, and assembly."""

from .assembler import AssemblyTrace, ResourceAssembler, StatementTrace, assemble
from .loader import load_definitions, load_sources, parse_children_spec, parse_pattern, parse_target
from .matcher import Attempt, CompiledPattern, Match, MatchTrace, SentenceMatcher
from .registry import RegistryBuilder, RegistryHandle, TypeRegistry, merge
from .resolver import ValueResolver, resolve
from .types import (
    Capture,
    ChildField,
    ChildrenSpec,
    EnumConst,
    GrammarType,
    Literal,
    Resource,
    Rule,
    Scalar,
    TargetKind,
    TargetSpec,
    Value,
    value_from_dict,
    value_to_dict,
)

__all__ = [
    "AssemblyTrace",
    "ResourceAssembler",
    "StatementTrace",
    "assemble",
    "load_definitions",
    "load_sources",
    "parse_children_spec",
    "parse_pattern",
    "parse_target",
    "Attempt",
    "CompiledPattern",
    "Match",
    "MatchTrace",
    "SentenceMatcher",
    "RegistryBuilder",
    "RegistryHandle",
    "TypeRegistry",
    "merge",
    "ValueResolver",
    "resolve",
    "Capture",
    "ChildField",
    "ChildrenSpec",
    "EnumConst",
    "GrammarType",
    "Literal",
    "Resource",
    "Rule",
    "Scalar",
    "TargetKind",
    "TargetSpec",
    "Value",
    "value_from_dict",
    "value_to_dict",
]
