"""Parse pipeline -- document text in, assembled value graph out.

One parse takes a single snapshot of the registry handle and runs the
stages in order: split, template the body from frontmatter, build the
statement tree, assemble the root resource. Nothing is shared between
parses except the immutable registry, so ``parse_many`` can run them on a
thread pool.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from .config import DokeConfig, Resolver, build_registry, load_config, resolve_locator
from .document.frontmatter import Document, render_body, split
from .document.statements import Statement, build
from .errors import DokeError
from .grammar.assembler import AssemblyTrace, FrontmatterHook, ResourceAssembler
from .grammar.registry import RegistryHandle, TypeRegistry
from .grammar.types import Resource

logger = logging.getLogger(__name__)


@dataclass
class ParseResult:
    document: Document
    statements: tuple[Statement, ...]
    value: Resource
    trace: AssemblyTrace | None = None
    path: str | None = None

    def to_dict(self) -> dict:
        return self.value.to_dict()


@dataclass
class ParseOutcome:
    """Result of one document in a batch; exactly one of result/error is set."""

    source: str
    result: ParseResult | None = None
    error: DokeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DokeParser:
    """Parses documents against a project config and its registry.

    ``registry`` is either a built ``TypeRegistry`` or a ``RegistryHandle``
    shared with a reloader. When the handle carries a config, that config
    is used, so a reload that changes both is seen as one unit.
    """

    def __init__(
        self,
        config: DokeConfig,
        registry: TypeRegistry | RegistryHandle,
        hooks: Mapping[str, FrontmatterHook] | None = None,
        debug: bool = False,
    ) -> None:
        self.config = config
        if isinstance(registry, RegistryHandle):
            self.handle = registry
        else:
            self.handle = RegistryHandle(registry, config)
        self.hooks = dict(hooks or {})
        self.debug = debug

    @classmethod
    def from_config_file(
        cls,
        path: str | Path,
        resolver: Resolver = resolve_locator,
        **kwargs,
    ) -> DokeParser:
        """Load a config file, build its registry, and return a parser."""
        config = load_config(Path(path))
        registry = build_registry(config, resolver=resolver)
        return cls(config, registry, **kwargs)

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def parse(self, text: str, path: str | Path | None = None) -> ParseResult:
        """Parse one document's text."""
        registry, context = self.handle.snapshot()
        config = context if isinstance(context, DokeConfig) else self.config
        try:
            document = split(text)
            body = document.body
            if config.template_body:
                body = render_body(body, document.frontmatter)
            statements = build(body, document.body_line)

            trace = AssemblyTrace() if self.debug else None
            assembler = ResourceAssembler(
                registry,
                frontmatter=document.frontmatter,
                hooks=self._hooks_for(config),
                case_sensitive=config.case_sensitive,
                exhaustive=config.exhaustive,
                trace=trace,
            )
            value = assembler.assemble(config.root, statements, config.children, line=document.body_line)
        except DokeError as e:
            if path is not None and e.path is None:
                e.path = str(path)
            raise
        return ParseResult(
            document=document,
            statements=statements,
            value=value,
            trace=trace,
            path=str(path) if path is not None else None,
        )

    def parse_file(self, path: str | Path) -> ParseResult:
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            err = DokeError(f"Cannot read document: {e}")
            err.path = str(path)
            raise err from e
        return self.parse(text, path)

    def parse_many(
        self,
        items: Iterable[str | Path | tuple[str, str]],
        max_workers: int | None = None,
    ) -> list[ParseOutcome]:
        """Parse many documents in parallel.

        Items are file paths or ``(source_name, text)`` pairs. Outcomes come
        back in input order; a failing document never affects the others.
        """
        items = list(items)
        if not items:
            return []
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(executor.map(self._parse_item, items))
        failed = sum(1 for o in outcomes if not o.ok)
        logger.info("Parsed %d documents, %d failed", len(outcomes), failed)
        return outcomes

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _parse_item(self, item: str | Path | tuple[str, str]) -> ParseOutcome:
        if isinstance(item, tuple):
            source, text = item
            try:
                return ParseOutcome(source, result=self.parse(text, source))
            except DokeError as e:
                return ParseOutcome(source, error=e)
        source = str(item)
        try:
            return ParseOutcome(source, result=self.parse_file(item))
        except DokeError as e:
            logger.debug("%s failed: %s", source, e)
            return ParseOutcome(source, error=e)

    def _hooks_for(self, config: DokeConfig) -> dict[str, FrontmatterHook]:
        hooks = dict(self.hooks)
        if config.frontmatter_fields:
            fields_hook = frontmatter_fields_hook(config.frontmatter_fields)
            user_hook = hooks.get(config.root)
            if user_hook is None:
                hooks[config.root] = fields_hook
            else:
                hooks[config.root] = _chain_hooks(fields_hook, user_hook)
        return hooks


def frontmatter_fields_hook(keys: bool | list[str]) -> FrontmatterHook:
    """Hook copying frontmatter entries onto the root resource.

    ``True`` copies every key; a list copies only the keys named.
    """

    def hook(frontmatter: dict) -> dict:
        if keys is True:
            return dict(frontmatter)
        return {k: frontmatter[k] for k in keys if k in frontmatter}

    return hook


def _chain_hooks(first: FrontmatterHook, second: FrontmatterHook) -> FrontmatterHook:
    def hook(frontmatter: dict) -> dict:
        fields = dict(first(frontmatter) or {})
        fields.update(second(frontmatter) or {})
        return fields

    return hook
