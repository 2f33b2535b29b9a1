"""Document splitting: frontmatter, body, and trailing free text.

A canonical Doké document has three ``---`` delimiter lines::

    ---
    name: Excalibur
    ---
    A sword of legend.
    - Adds 4 health to you
    ---
    Free text that is not parsed.

Delimiters are counted from the start of the file and counting stops at the
third one. Without a leading frontmatter block the body runs from the start
of the file up to the third delimiter (or the end of the file).
"""

from __future__ import annotations

import datetime
import re
from dataclasses import dataclass, field

import yaml

from ..errors import MalformedDocument

DELIMITER = "---"

# {key} placeholders in body text, filled from frontmatter
_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][\w.\-]*)\}")


@dataclass
class Document:
    frontmatter: dict[str, object] = field(default_factory=dict)
    body: str = ""
    trailing: str = ""
    frontmatter_raw: str = ""
    frontmatter_offset: int = 0
    body_offset: int = 0
    trailing_offset: int = 0
    body_line: int = 1  # 1-based line of the first body line

    @property
    def has_frontmatter(self) -> bool:
        return self.frontmatter_offset > 0


@dataclass
class _Delimiter:
    line_index: int
    start: int  # offset of the first char of the line
    end: int  # offset just past the line terminator


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def split(content: str) -> Document:
    """Split raw document text into frontmatter, body and trailing text."""
    if not isinstance(content, str):
        raise MalformedDocument(f"Expected document text, got {type(content).__name__}")

    delimiters = _find_delimiters(content, limit=3)

    if len(delimiters) == 3 and not content[:delimiters[0].start].strip():
        opening, closing, final = delimiters
        raw = content[opening.end:closing.start]
        return Document(
            frontmatter=_parse_frontmatter_block(raw, opening.line_index + 2),
            body=content[closing.end:final.start],
            trailing=content[final.end:],
            frontmatter_raw=raw,
            frontmatter_offset=opening.end,
            body_offset=closing.end,
            trailing_offset=final.end,
            body_line=closing.line_index + 2,
        )

    # No frontmatter: the body is read from the top, still stopping at the
    # third delimiter line of the file.
    if len(delimiters) == 3:
        final = delimiters[2]
        return Document(
            body=content[:final.start],
            trailing=content[final.end:],
            trailing_offset=final.end,
        )
    return Document(body=content, trailing_offset=len(content))


def render_body(body: str, frontmatter: dict[str, object]) -> str:
    """Fill ``{key}`` placeholders in body text from frontmatter values.

    Placeholders naming an absent key are left untouched.
    """
    if not frontmatter or "{" not in body:
        return body

    def _sub(m: re.Match) -> str:
        key = m.group(1)
        if key in frontmatter:
            return scalar_to_text(frontmatter[key])
        return m.group(0)

    return _PLACEHOLDER_RE.sub(_sub, body)


def scalar_to_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, list):
        return ", ".join(scalar_to_text(v) for v in value)
    return str(value)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _find_delimiters(content: str, limit: int) -> list[_Delimiter]:
    found: list[_Delimiter] = []
    offset = 0
    for idx, line in enumerate(content.splitlines(keepends=True)):
        if line.strip() == DELIMITER:
            found.append(_Delimiter(line_index=idx, start=offset, end=offset + len(line)))
            if len(found) == limit:
                break
        offset += len(line)
    return found


def _parse_frontmatter_block(raw: str, first_line: int) -> dict[str, object]:
    """Parse the frontmatter block into an ordered, flat key -> scalar dict."""
    if not raw.strip():
        return {}
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        line = first_line
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            line += mark.line
        raise MalformedDocument(f"Invalid frontmatter: {e}", line=line) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise MalformedDocument(
            f"Frontmatter must be a key: value mapping, got {type(data).__name__}",
            line=first_line,
        )

    result: dict[str, object] = {}
    _flatten(data, "", result)
    return result


def _flatten(data: dict, prefix: str, out: dict[str, object]) -> None:
    for key, value in data.items():
        path = f"{prefix}{key}"
        if isinstance(value, dict):
            _flatten(value, path + ".", out)
        elif isinstance(value, list):
            out[path] = [_to_scalar(v) for v in value]
        else:
            out[path] = _to_scalar(value)


def _to_scalar(value: object) -> object:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return str(value)
