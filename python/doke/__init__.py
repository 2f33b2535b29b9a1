"""Doké Python package -- typed value graphs from Markdown documents."""

from .config import DokeConfig, build_registry, load_config, parse_config
from .document import Document, Statement, build, split
from .errors import (
    ConfigError,
    DokeError,
    GrammarError,
    MalformedDocument,
    MissingRequiredChild,
    NoMatch,
    NoSuchConstant,
    NotANumber,
    ParseError,
    UnknownTypeReference,
    UnresolvedPlaceholder,
)
from .grammar import EnumConst, RegistryHandle, Resource, Scalar, SentenceMatcher, TypeRegistry
from .pipeline import DokeParser, ParseOutcome, ParseResult
from .watch import DefinitionWatcher

# Module-level convenience parser (set by load)
_default_parser: DokeParser = None


def _get_parser() -> DokeParser:
    if _default_parser is None:
        raise RuntimeError("No project loaded; call doke.load(config_path) first")
    return _default_parser


def load(config_path, **kwargs) -> DokeParser:
    """Load a project config and make it the default parser."""
    global _default_parser
    _default_parser = DokeParser.from_config_file(config_path, **kwargs)
    return _default_parser


def parse(text: str) -> Resource:
    """Parse document text with the default parser."""
    return _get_parser().parse(text).value


def parse_file(path) -> Resource:
    """Parse a document file with the default parser."""
    return _get_parser().parse_file(path).value


__all__ = [
    'DokeParser', 'ParseResult', 'ParseOutcome', 'DefinitionWatcher',
    'DokeConfig', 'load_config', 'parse_config', 'build_registry',
    'Document', 'Statement', 'split', 'build',
    'TypeRegistry', 'RegistryHandle', 'SentenceMatcher',
    'Resource', 'Scalar', 'EnumConst',
    'DokeError', 'MalformedDocument', 'GrammarError', 'ConfigError',
    'UnknownTypeReference', 'NoMatch', 'NoSuchConstant', 'NotANumber',
    'UnresolvedPlaceholder', 'MissingRequiredChild', 'ParseError',
    'load', 'parse', 'parse_file',
]
