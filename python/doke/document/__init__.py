"""doke.document -- splitting documents and building statement trees."""

from .frontmatter import Document, render_body, split
from .statements import HEADING, ITEM, PARAGRAPH, Statement, build, iter_statements

__all__ = [
    "Document",
    "split",
    "render_body",
    "Statement",
    "build",
    "iter_statements",
    "PARAGRAPH",
    "ITEM",
    "HEADING",
]
