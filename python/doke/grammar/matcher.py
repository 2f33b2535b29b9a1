"""Sentence matching -- first full match over a type's ordered rules.

Literal tokens match verbatim (whitespace-normalized). A capture consumes
text up to the first occurrence of the next literal token, or to the end
of the text when no literal follows. The first rule whose pattern consumes
the whole text, and whose captures all resolve, wins.

Captures with no literal between them cannot be split reliably: the first
capture of such a run takes the whole span and the others get empty text.
Repeated elements of one type are meant to be declared as children instead.
"""

from __future__ import annotations

import functools
import logging
import re
from dataclasses import dataclass, field

from ..document.statements import normalize_text
from ..errors import DokeError, NoMatch, NoSuchConstant, NotANumber, UnresolvedPlaceholder, UnknownTypeReference
from .registry import TypeRegistry
from .resolver import ValueResolver
from .types import BUILTIN_TYPES, FLOAT, INT, STR, Capture, Literal, Rule, Scalar, Value

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64

# Errors that make a single rule attempt fail without aborting the match
_ATTEMPT_ERRORS = (NoMatch, NotANumber, UnresolvedPlaceholder)


@dataclass
class Match:
    rule: Rule
    binding: dict[str, Value]
    type_name: str
    text: str


@dataclass
class Attempt:
    """One rule tried against one text span."""

    type_name: str
    text: str
    pattern: str
    matched: bool
    reason: str = ""
    depth: int = 0
    source: str = ""


@dataclass
class MatchTrace:
    """Ordered record of every rule attempt, for diagnostics."""

    attempts: list[Attempt] = field(default_factory=list)

    def record(self, attempt: Attempt) -> None:
        self.attempts.append(attempt)
        logger.debug(
            "%s%s %r against %r: %s",
            "  " * attempt.depth,
            attempt.type_name,
            attempt.pattern,
            attempt.text,
            "ok" if attempt.matched else f"failed ({attempt.reason})",
        )

    def __len__(self) -> int:
        return len(self.attempts)

    def __iter__(self):
        return iter(self.attempts)

    def format(self) -> str:
        lines = []
        for a in self.attempts:
            status = "ok" if a.matched else f"no: {a.reason}"
            lines.append(f"{'  ' * a.depth}{a.type_name} <- {a.pattern!r} on {a.text!r}: {status}")
        return "\n".join(lines)


class SentenceMatcher:
    """Matches text against the rules of a registry."""

    def __init__(
        self,
        registry: TypeRegistry,
        resolver: ValueResolver | None = None,
        case_sensitive: bool = True,
        max_depth: int = DEFAULT_MAX_DEPTH,
        trace: MatchTrace | None = None,
    ) -> None:
        self.registry = registry
        self.resolver = resolver if resolver is not None else ValueResolver()
        self.case_sensitive = case_sensitive
        self.max_depth = max_depth
        self.trace = trace

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def match(self, type_name: str, text: str) -> Match:
        """Find the first rule of ``type_name`` that fully matches ``text``.

        Raises ``NoMatch`` when nothing matches, or the first capture error
        of a rule that matched lexically.
        """
        return self._match(type_name, normalize_text(text), ())

    def try_match(self, type_name: str, text: str) -> Match | None:
        """Like ``match`` but returns None when no rule matches lexically."""
        try:
            return self.match(type_name, text)
        except NoMatch as e:
            if type(e) is NoMatch and len(e.chain) == 1:
                return None
            raise

    def value(self, type_name: str, text: str) -> Value:
        """Match ``text`` and resolve it to a value."""
        text = normalize_text(text)
        if type_name in BUILTIN_TYPES:
            return _builtin_value(BUILTIN_TYPES[type_name], text)
        m = self._match(type_name, text, ())
        return self.resolver.resolve(m.rule, m.binding, matched_type=type_name)

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _match(self, type_name: str, text: str, active: tuple[tuple[str, str], ...]) -> Match:
        key = (type_name, text)
        if key in active:
            raise NoMatch(type_name, text, f"'{type_name}' recursively matches {text!r} again")
        if len(active) >= self.max_depth:
            raise NoMatch(type_name, text, f"Maximum match depth {self.max_depth} exceeded")

        rules = self.registry.rules(type_name)
        depth = len(active)

        if self.registry.is_table(type_name):
            rule = self._lookup(type_name, text)
            self._record(type_name, text, "<table>", rule is not None, "no such key", depth)
            if rule is None:
                raise NoMatch(type_name, text)
            return Match(rule, {}, type_name, text)

        inner_active = active + (key,)
        first_error: DokeError | None = None
        for rule in rules:
            spans = _compile(rule, self.case_sensitive).match(text)
            if spans is None:
                self._record(type_name, text, rule.pattern_text(), False, "pattern", depth, rule.source)
                continue
            try:
                binding = {
                    capture.name: self._capture_value(capture, span, inner_active)
                    for capture, span in spans
                }
            except _ATTEMPT_ERRORS as e:
                self._record(type_name, text, rule.pattern_text(), False, e.message, depth, rule.source)
                if first_error is None:
                    first_error = e
                continue
            self._record(type_name, text, rule.pattern_text(), True, "", depth, rule.source)
            return Match(rule, binding, type_name, text)

        if first_error is not None:
            first_error.push_frame(type_name, text)
            raise first_error
        raise NoMatch(type_name, text)

    def _capture_value(self, capture: Capture, span: str, active: tuple) -> Value:
        type_name = capture.type_name
        if type_name in (INT, FLOAT, STR):
            return _builtin_value(type_name, span)
        if type_name not in self.registry:
            raise UnknownTypeReference(type_name, referenced_by=f"capture '{capture.name}'")
        if self.registry.is_table(type_name):
            rule = self._lookup(type_name, span)
            self._record(type_name, span, "<table>", rule is not None, "no such key", len(active))
            if rule is None:
                raise NoSuchConstant(type_name, span)
            return self.resolver.resolve(rule, {}, matched_type=type_name)
        m = self._match(type_name, span, active)
        return self.resolver.resolve(m.rule, m.binding, matched_type=type_name)

    def _lookup(self, type_name: str, text: str) -> Rule | None:
        rule = self.registry.lookup(type_name, text)
        if rule is None and not self.case_sensitive:
            folded = text.casefold()
            for key in self.registry.table_keys(type_name):
                if key.casefold() == folded:
                    return self.registry.lookup(type_name, key)
        return rule

    def _record(
        self,
        type_name: str,
        text: str,
        pattern: str,
        matched: bool,
        reason: str,
        depth: int,
        source: str = "",
    ) -> None:
        if self.trace is not None:
            self.trace.record(Attempt(type_name, text, pattern, matched, reason, depth, source))


class CompiledPattern:
    """A rule pattern with its literal tokens compiled to regexes."""

    def __init__(self, rule: Rule, case_sensitive: bool = True) -> None:
        flags = 0 if case_sensitive else re.IGNORECASE
        self.steps: list[Capture | re.Pattern] = []
        for token in rule.pattern:
            if isinstance(token, Literal):
                self.steps.append(re.compile(_literal_regex(token.text), flags))
            else:
                self.steps.append(token)

    def match(self, text: str) -> list[tuple[Capture, str]] | None:
        """Split ``text`` into capture spans, or None if it does not match."""
        spans: list[tuple[Capture, str]] = []
        pending: list[Capture] = []
        pos = 0
        for step in self.steps:
            if isinstance(step, Capture):
                pending.append(step)
                continue
            if pending:
                m = step.search(text, pos)
                if m is None:
                    return None
                _assign(pending, text[pos:m.start()], spans)
                pending = []
            else:
                m = step.match(text, pos)
                if m is None:
                    return None
            pos = m.end()

        if pending:
            _assign(pending, text[pos:], spans)
            pos = len(text)
        if pos != len(text):
            return None
        return spans


@functools.lru_cache(maxsize=4096)
def _compile(rule: Rule, case_sensitive: bool) -> CompiledPattern:
    return CompiledPattern(rule, case_sensitive)


def _literal_regex(text: str) -> str:
    return r"\s+".join(re.escape(part) for part in text.split(" "))


def _assign(pending: list[Capture], span: str, out: list[tuple[Capture, str]]) -> None:
    # the first capture of an adjacent run takes the whole span
    out.append((pending[0], span.strip()))
    for capture in pending[1:]:
        out.append((capture, ""))


def _builtin_value(type_name: str, text: str) -> Scalar:
    if type_name == INT:
        try:
            return Scalar(int(text))
        except ValueError:
            raise NotANumber(type_name, text) from None
    if type_name == FLOAT:
        try:
            return Scalar(float(text))
        except ValueError:
            raise NotANumber(type_name, text) from None
    return Scalar(text)
