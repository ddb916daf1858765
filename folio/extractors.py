"""Metadata extractors for Folio.

Each extractor derives one piece of page metadata from a parsed source
document (frontmatter plus body blocks) and returns it as a dict. The
composite runs them in order and merges the results.

Key classes:
- TitleExtractor: Title from frontmatter, the leading H1, or the filename.
- AuthorExtractor: Author from frontmatter or the site default.
- DateExtractor: Date from frontmatter, filename prefix, or file mtime.
- CategoryExtractor: Normalized category set.
- HeroImageExtractor: Optional hero image URI.
- SlugExtractor: Stable slug from frontmatter or the file location.
- DescriptionExtractor: Optional description and draft flag.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from .blocks import Heading
from .utils import extract_date_from_name, slugify, titleize

if TYPE_CHECKING:
    from .parsers import SourceDocument

FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*\r?$\n?", re.DOTALL | re.MULTILINE)


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Extract YAML frontmatter from content.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (frontmatter dict, remaining content). Invalid or non-mapping
        YAML leaves the text untouched.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError:
        return {}, text
    if not isinstance(data, dict):
        return {}, text
    return data, text[match.end() :]


def coerce_date(value: Any) -> date:
    """Convert a frontmatter date value to a calendar date.

    Raises:
        ValueError: If the value is not a date or an ISO date string.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise ValueError(f"Invalid date {value!r}; expected YYYY-MM-DD") from None


class TitleExtractor:
    """Extracts the page title.

    A ``title`` key in frontmatter always wins, even when empty, so an
    explicitly blank title is reported by the renderer. Otherwise a leading
    level-1 heading becomes the title and is dropped from the body.
    """

    def extract(self, document: SourceDocument, path: Path) -> dict[str, Any]:
        if "title" in document.frontmatter:
            title = document.frontmatter["title"]
            return {"title": "" if title is None else str(title)}
        blocks = list(document.blocks)
        if blocks and isinstance(blocks[0], Heading) and blocks[0].level == 1:
            return {"title": blocks[0].text, "body": blocks[1:]}
        return {"title": titleize(path.name)}


class AuthorExtractor:
    """Extracts the author, falling back to the configured site author."""

    def __init__(self, default_author: str = ""):
        self.default_author = default_author

    def extract(self, document: SourceDocument, path: Path) -> dict[str, Any]:
        author = document.frontmatter.get("author")
        if isinstance(author, (list, tuple)):
            author = ", ".join(str(a) for a in author)
        return {"author": str(author) if author else self.default_author}


class DateExtractor:
    """Extracts the publication date.

    Looks at frontmatter ``date``, then a YYYY-MM-DD filename prefix, then
    the file modification time.
    """

    def extract(self, document: SourceDocument, path: Path) -> dict[str, Any]:
        value = document.frontmatter.get("date")
        if value is not None:
            return {"date": coerce_date(value)}
        found = extract_date_from_name(path.stem)
        if found is None:
            found = datetime.fromtimestamp(path.stat().st_mtime).date()
        return {"date": found}


class CategoryExtractor:
    """Extracts categories from a list or comma-separated string."""

    def extract(self, document: SourceDocument, path: Path) -> dict[str, Any]:
        raw = document.frontmatter.get("categories") or []
        if isinstance(raw, str):
            raw = raw.split(",")
        elif not isinstance(raw, (list, tuple, set)):
            raw = [raw]
        categories = frozenset(str(c).strip() for c in raw if str(c).strip())
        return {"categories": categories}


class HeroImageExtractor:
    """Extracts the hero image URI (``image`` or ``hero_image``)."""

    def extract(self, document: SourceDocument, path: Path) -> dict[str, Any]:
        image = document.frontmatter.get("image") or document.frontmatter.get(
            "hero_image"
        )
        return {"hero_image": str(image) if image else None}


def _clean_slug(raw: str) -> str:
    """Frontmatter slug with outer slashes trimmed.

    Raises:
        ValueError: A segment is empty, ``.`` or ``..``, which would place the
            page outside its own output folder.
    """
    slug = raw.strip().strip("/")
    if not slug:
        return slug
    segments = [segment.strip() for segment in slug.replace("\\", "/").split("/")]
    if any(segment in ("", ".", "..") for segment in segments):
        raise ValueError(f"Invalid slug {raw!r}: empty, '.' or '..' segment")
    return "/".join(segments)


class SlugExtractor:
    """Derives the slug.

    A frontmatter ``slug`` replaces the whole slug. Otherwise the slug is the
    site-relative folder plus the slugified filename stem.
    """

    def __init__(self, site_dir: Path):
        self.site_dir = site_dir

    def extract(self, document: SourceDocument, path: Path) -> dict[str, Any]:
        explicit = document.frontmatter.get("slug")
        if explicit is not None:
            return {"slug": _clean_slug(str(explicit))}
        rel = path.relative_to(self.site_dir)
        segments = [slugify(part) for part in rel.parent.parts]
        stem = slugify(path.stem)
        # posts/index.md addresses the folder itself
        if stem != "index" or not segments:
            segments.append(stem)
        return {"slug": "/".join(segments)}


class DescriptionExtractor:
    """Extracts the optional description and the draft flag from frontmatter."""

    def extract(self, document: SourceDocument, path: Path) -> dict[str, Any]:
        description = document.frontmatter.get("description") or ""
        draft = bool(document.frontmatter.get("draft", False))
        return {"description": str(description).strip(), "draft": draft}


class CompositeMetadataExtractor:
    """Runs several extractors and merges their results.

    Later extractors override keys produced by earlier ones.
    """

    def __init__(self, extractors: list | None = None):
        self._extractors = list(extractors) if extractors is not None else []

    def add_extractor(self, extractor) -> None:
        self._extractors.append(extractor)

    def extract(self, document: SourceDocument, path: Path) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for extractor in self._extractors:
            result.update(extractor.extract(document, path))
        return result


def default_metadata_extractor(
    site_dir: Path, default_author: str = ""
) -> CompositeMetadataExtractor:
    """Build the standard extractor chain for a site directory."""
    return CompositeMetadataExtractor(
        [
            TitleExtractor(),
            AuthorExtractor(default_author),
            DateExtractor(),
            CategoryExtractor(),
            HeroImageExtractor(),
            SlugExtractor(site_dir),
            DescriptionExtractor(),
        ]
    )
