"""Project configuration and definition source resolution.

A project config names the root type of its documents, the root's children
fields, and where grammar definitions live::

    root: Item
    children:
      - name: Name
      - modifiers?: [Modifier]
    definitions:
      - common/*.yaml
    parsers:
      - for: Modifier
        parser: modifiers/*.yaml
        children:
          - effects?: [Effect]

Every file matched by a ``parsers`` entry contributes its types to the
abstract type named by ``for``. ``definitions`` files only declare types.
Locator patterns are resolved relative to the config file's directory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import yaml

from .errors import ConfigError, GrammarError, UnknownTypeReference
from .grammar.loader import load_definitions, parse_children_spec
from .grammar.registry import RegistryBuilder, TypeRegistry
from .grammar.types import ChildrenSpec

logger = logging.getLogger(__name__)

Resolver = Callable[[Path, str], "list[Path]"]

_KNOWN_KEYS = {
    "root",
    "children",
    "parsers",
    "definitions",
    "types",
    "exhaustive",
    "case_sensitive",
    "template_body",
    "frontmatter_fields",
}


@dataclass
class LocatorRule:
    """Binds a locator pattern to the abstract type its files contribute to."""

    for_type: str
    pattern: str
    children: ChildrenSpec | None = None


@dataclass
class DokeConfig:
    root: str
    children: ChildrenSpec = ()
    parsers: list[LocatorRule] = field(default_factory=list)
    definitions: list[str] = field(default_factory=list)
    types: dict | None = None  # inline definitions
    exhaustive: bool = False
    case_sensitive: bool = True
    template_body: bool = True
    frontmatter_fields: bool | list[str] = False
    base_dir: Path = field(default_factory=lambda: Path("."))
    path: Path | None = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_config(data: str | dict, base_dir: Path | None = None, path: Path | None = None) -> DokeConfig:
    """Parse a project config from YAML text or a mapping."""
    where = str(path) if path is not None else "<config>"
    if isinstance(data, str):
        try:
            data = yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise ConfigError(f"{where}: invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: config must be a mapping")

    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ConfigError(f"{where}: unknown keys {sorted(unknown)}")

    root = data.get("root")
    if not isinstance(root, str) or not root.strip():
        raise ConfigError(f"{where}: 'root' must name a type")

    try:
        children = parse_children_spec(data.get("children"), where)
        parsers = [_parse_locator(entry, where) for entry in data.get("parsers") or []]
    except GrammarError as e:
        raise ConfigError(e.message) from e

    definitions = data.get("definitions") or []
    if isinstance(definitions, str):
        definitions = [definitions]
    if not all(isinstance(d, str) for d in definitions):
        raise ConfigError(f"{where}: 'definitions' must be a list of patterns")

    types = data.get("types")
    if types is not None and not isinstance(types, dict):
        raise ConfigError(f"{where}: 'types' must map type names to rules")

    frontmatter_fields = data.get("frontmatter_fields", False)
    if not isinstance(frontmatter_fields, (bool, list)):
        raise ConfigError(f"{where}: 'frontmatter_fields' must be a boolean or a list of keys")

    return DokeConfig(
        root=root.strip(),
        children=children,
        parsers=parsers,
        definitions=list(definitions),
        types=types,
        exhaustive=bool(data.get("exhaustive", False)),
        case_sensitive=bool(data.get("case_sensitive", True)),
        template_body=bool(data.get("template_body", True)),
        frontmatter_fields=frontmatter_fields,
        base_dir=base_dir if base_dir is not None else Path("."),
        path=path,
    )


def load_config(path: Path) -> DokeConfig:
    """Read and parse a project config file."""
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    return parse_config(content, base_dir=path.parent, path=path)


def resolve_locator(base_dir: Path, pattern: str) -> list[Path]:
    """Resolve a glob pattern to a sorted list of files."""
    pattern_path = Path(pattern)
    if pattern_path.is_absolute():
        anchor = Path(pattern_path.anchor)
        matches = anchor.glob(str(pattern_path.relative_to(anchor)))
    else:
        matches = base_dir.glob(pattern)
    return sorted(p for p in matches if p.is_file())


def config_sources(config: DokeConfig, resolver: Resolver = resolve_locator) -> list[tuple[Path, str | None]]:
    """Every definition file of a config with the abstract type it feeds.

    Plain definitions come first, then locator files in config order.
    """
    sources: list[tuple[Path, str | None]] = []
    for pattern in config.definitions:
        paths = resolver(config.base_dir, pattern)
        if not paths:
            logger.warning("Definition pattern %r matched no files", pattern)
        sources.extend((p, None) for p in paths)
    for locator in config.parsers:
        paths = resolver(config.base_dir, locator.pattern)
        if not paths:
            logger.warning("Parser pattern %r for %s matched no files", locator.pattern, locator.for_type)
        sources.extend((p, locator.for_type) for p in paths)
    return sources


def build_registry(
    config: DokeConfig,
    resolver: Resolver = resolve_locator,
    read: Callable[[Path], str] | None = None,
) -> TypeRegistry:
    """Load every definition source of a config into a new registry."""
    read = read or (lambda p: p.read_text(encoding="utf-8"))
    builder = RegistryBuilder()

    if config.types:
        builder.add_source(load_definitions(config.types, "<config>"), source="<config>")
    for locator in config.parsers:
        builder.declare_abstract(locator.for_type)

    for path, contributes_to in config_sources(config, resolver):
        try:
            content = read(path)
        except OSError as e:
            raise ConfigError(f"Cannot read definitions {path}: {e}") from e
        builder.add_source(load_definitions(content, str(path)), contributes_to, source=str(path))

    for locator in config.parsers:
        if locator.children:
            builder.set_children(locator.for_type, locator.children)

    registry = builder.build()
    # root fields may only reference known types
    for child in config.children:
        if child.type_name not in registry:
            raise UnknownTypeReference(child.type_name, referenced_by=f"root field '{child.name}'")
    return registry


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _parse_locator(entry: object, where: str) -> LocatorRule:
    if not isinstance(entry, dict):
        raise ConfigError(f"{where}: parser entries must be mappings, got {entry!r}")
    for_type = entry.get("for")
    pattern = entry.get("parser")
    if not isinstance(for_type, str) or not isinstance(pattern, str):
        raise ConfigError(f"{where}: parser entries need 'for' and 'parser' strings")
    children = entry.get("children")
    return LocatorRule(
        for_type=for_type.strip(),
        pattern=pattern,
        children=parse_children_spec(children, where) if children is not None else None,
    )
