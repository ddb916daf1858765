"""Content blocks that make up a page body.

A page body is an ordered tuple of these values. They are frozen so a page
cannot change after it has been authored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Paragraph:
    """Markdown text rendered as-is (paragraphs, lists, quotes, raw HTML)."""

    text: str


@dataclass(frozen=True)
class Heading:
    """Section heading; also drives the table of contents."""

    text: str
    level: int = 2


@dataclass(frozen=True)
class Image:
    """Standalone image.

    Attributes:
        uri: Absolute URL, root-relative path, or path relative to the page folder.
        alt_text: Alternative text.
        title: Optional caption.
    """

    uri: str
    alt_text: str = ""
    title: str | None = None


@dataclass(frozen=True)
class Link:
    """Standalone link."""

    uri: str
    label: str = ""


@dataclass(frozen=True)
class CodeExample:
    """Source code or captured program output.

    Attributes:
        source_text: Code exactly as authored.
        language: Pygments lexer alias; None for plain output.
    """

    source_text: str
    language: str | None = None


ContentBlock = Union[Paragraph, Heading, Image, Link, CodeExample]

BLOCK_TYPES: tuple[type, ...] = (Paragraph, Heading, Image, Link, CodeExample)


def is_block(value: object) -> bool:
    """Return True if value is one of the known content block variants."""
    return isinstance(value, BLOCK_TYPES)
