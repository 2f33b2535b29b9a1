"""Error kinds raised while splitting, matching, and assembling documents.

Every error carries an optional source ``line`` and a ``chain`` of
``(type_name, text)`` frames, outermost first, describing which grammar
types were being matched when the failure happened.
"""

from __future__ import annotations


class DokeError(Exception):
    """Base class for all doke errors."""

    def __init__(self, message: str, line: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.line = line
        self.path: str | None = None
        self.chain: list[tuple[str, str]] = []

    def push_frame(self, type_name: str, text: str) -> None:
        """Record an enclosing match frame (outer frames go first)."""
        self.chain.insert(0, (type_name, text))

    def chain_description(self) -> str:
        return " -> ".join(f"{t}({text!r})" for t, text in self.chain)

    def __str__(self) -> str:
        out = self.message
        if self.line is not None:
            out = f"line {self.line}: {out}"
        if self.path:
            out = f"{self.path}: {out}"
        if len(self.chain) > 1:
            out += f" [{self.chain_description()}]"
        return out


class MalformedDocument(DokeError):
    pass


class GrammarError(DokeError):
    """A definition source could not be turned into grammar types."""

    def __init__(self, message: str, source: str | None = None) -> None:
        if source:
            message = f"{source}: {message}"
        super().__init__(message)
        self.source = source


class ConfigError(DokeError):
    pass


class UnknownTypeReference(DokeError):
    def __init__(self, type_name: str, referenced_by: str | None = None) -> None:
        msg = f"Unknown type '{type_name}'"
        if referenced_by:
            msg += f" (referenced by {referenced_by})"
        super().__init__(msg)
        self.type_name = type_name


class NoMatch(DokeError):
    """No rule of a type fully matched a text span."""

    def __init__(self, type_name: str, text: str, message: str | None = None) -> None:
        super().__init__(message or f"No rule of '{type_name}' matches {text!r}")
        self.type_name = type_name
        self.text = text
        self.chain = [(type_name, text)]


class NoSuchConstant(NoMatch):
    def __init__(self, type_name: str, text: str) -> None:
        super().__init__(type_name, text, f"'{text}' is not a constant of '{type_name}'")


class NotANumber(DokeError):
    def __init__(self, type_name: str, text: str) -> None:
        super().__init__(f"Expected {type_name}, got {text!r}")
        self.type_name = type_name
        self.text = text
        self.chain = [(type_name, text)]


class UnresolvedPlaceholder(DokeError):
    def __init__(self, name: str, template: str) -> None:
        super().__init__(f"Placeholder '{{{name}}}' in {template!r} is neither a capture nor a frontmatter key")
        self.name = name
        self.template = template


class MissingRequiredChild(DokeError):
    def __init__(self, field_name: str, type_name: str, line: int | None) -> None:
        super().__init__(
            f"Required field '{field_name}' ({type_name}) has no matching statement",
            line=line,
        )
        self.field_name = field_name
        self.type_name = type_name


class ParseError(DokeError):
    """A statement could not be assembled; wraps the underlying cause."""

    def __init__(self, text: str, line: int | None, cause: DokeError | None = None) -> None:
        if cause is not None:
            inner = cause.chain[-1][1] if cause.chain else text
            msg = f"Cannot parse {text!r}: {cause.message}"
            if inner != text:
                msg += f" (while matching {inner!r})"
        else:
            msg = f"Statement {text!r} matches no declared field"
        super().__init__(msg, line=line)
        self.text = text
        self.cause = cause
        if cause is not None:
            self.chain = list(cause.chain)
