"""Content model and loading for Folio.

This module defines the immutable Page and turns authored source files into
Pages. Parsing is delegated to the parser registry, metadata to the
extractor chain.

Key classes:
- Page: Frozen dataclass holding page metadata and its ordered body blocks.
- FileContentLoader: Discovers source files in the site directory.
- LayoutResolver: Picks the layout template for a page.
- DefaultPageBuilder: Builds one Page from one source file.
- ContentProcessor: Facade that loads every page of a site.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from .blocks import ContentBlock, Heading, Image
from .errors import ContentError, FolioError
from .extractors import CompositeMetadataExtractor, default_metadata_extractor
from .parsers import ParserRegistry, SourceDocument, default_parser_registry
from .utils import is_local_uri, resolve_uri

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Page:
    """An addressable document with metadata and an ordered body.

    Attributes:
        slug: Unique, stable identifier (``about``, ``posts/encrypted-inference``).
        title: Human-readable title.
        author: Author name.
        date: Publication date.
        categories: Category names.
        hero_image: Optional URI of the header image.
        body: Ordered content blocks; order is render order.
        description: Optional summary used in feeds.
        draft: Whether this is a draft page.
        layout: Layout template name.
        path: Source file, when the page was read from disk.
        folder: Site-relative folder of the source file.
        source_type: "markdown" or "notebook".
        frontmatter: Read-only view of the raw frontmatter.
    """

    slug: str
    title: str
    author: str = ""
    date: datetime.date = field(default_factory=datetime.date.today)
    categories: frozenset[str] = frozenset()
    hero_image: str | None = None
    body: tuple[ContentBlock, ...] = ()
    description: str = ""
    draft: bool = False
    layout: str = "default"
    path: Path | None = None
    folder: str = ""
    source_type: str = "markdown"
    frontmatter: Mapping[str, Any] = field(
        default_factory=dict, compare=False, hash=False
    )

    def __post_init__(self):
        object.__setattr__(self, "body", tuple(self.body))
        object.__setattr__(self, "categories", frozenset(self.categories))
        object.__setattr__(
            self, "frontmatter", MappingProxyType(dict(self.frontmatter))
        )

    @property
    def url(self) -> str:
        """URL path; a trailing ``index`` segment maps to its folder."""
        parts = [p for p in self.slug.split("/") if p]
        if parts and parts[-1] == "index":
            parts = parts[:-1]
        return f"/{'/'.join(parts)}/" if parts else "/"

    @property
    def section(self) -> str:
        """First slug segment of a nested page, empty for top-level pages."""
        parts = [p for p in self.slug.split("/") if p]
        return parts[0] if len(parts) > 1 else ""

    @property
    def sorted_categories(self) -> list[str]:
        return sorted(self.categories)

    @property
    def headings(self) -> list[Heading]:
        return [block for block in self.body if isinstance(block, Heading)]

    @property
    def local_assets(self) -> list[str]:
        """Site-relative paths of files referenced by the hero image and Image blocks."""
        uris = [self.hero_image] if self.hero_image else []
        uris.extend(block.uri for block in self.body if isinstance(block, Image))
        assets: list[str] = []
        for uri in uris:
            if not is_local_uri(uri):
                continue
            rel = resolve_uri(uri, self.folder).lstrip("/")
            if rel and rel not in assets:
                assets.append(rel)
        return assets


class FileContentLoader:
    """Discovers source files in a site directory.

    Directories whose name starts with ``_`` (layouts, partials) are skipped,
    as are ``_``-prefixed files unless drafts are requested.
    """

    def __init__(self, site_dir: Path, parser_registry: ParserRegistry | None = None):
        self.site_dir = site_dir
        self.parser_registry = parser_registry or default_parser_registry

    def iter_files(self, include_drafts: bool = False) -> list[Path]:
        """Return source files in a stable (sorted) order.

        Args:
            include_drafts: Whether to include ``_``-prefixed files.
        """
        files: list[Path] = []
        for path in sorted(self.site_dir.rglob("*")):
            if path.is_dir():
                continue
            rel = path.relative_to(self.site_dir)
            if any(part.startswith(("_", ".")) for part in rel.parts[:-1]):
                continue
            if rel.name.startswith("_") and not include_drafts:
                continue
            if ".ipynb_checkpoints" in rel.parts:
                continue
            if self.parser_registry.accepts(path):
                files.append(path)
        return files


class LayoutResolver:
    """Resolves layout templates for pages.

    Searches, in order: an explicit layout name, ``{folder}/{name}``, the
    section name, and finally ``default``.
    """

    SUFFIXES = (".html.jinja", ".jinja", ".html")

    def __init__(self, site_dir: Path):
        self.site_dir = site_dir
        self.layout_dir = site_dir / "_layouts"

    def resolve(self, path: Path, folder: str, explicit: str | None = None) -> str:
        if explicit:
            return str(explicit)
        name = path.stem
        candidates: list[str] = []
        if folder:
            candidates.append(f"{folder}/{name}")
            candidates.append(Path(folder).parts[0])
        else:
            candidates.append(name)
        for candidate in candidates:
            for suffix in self.SUFFIXES:
                if (self.layout_dir / f"{candidate}{suffix}").exists():
                    return candidate
        return "default"


class DefaultPageBuilder:
    """Builds Page objects from source files.

    Attributes:
        site_dir: Directory containing site content.
        parser_registry: Registry of source parsers.
        metadata_extractor: Composite metadata extractor.
        layout_resolver: Layout resolver instance.
    """

    def __init__(
        self,
        site_dir: Path,
        parser_registry: ParserRegistry | None = None,
        metadata_extractor: CompositeMetadataExtractor | None = None,
        default_author: str = "",
    ):
        self.site_dir = site_dir
        self.parser_registry = parser_registry or default_parser_registry
        self.metadata_extractor = metadata_extractor or default_metadata_extractor(
            site_dir, default_author
        )
        self.layout_resolver = LayoutResolver(site_dir)

    def build(self, path: Path, draft: bool = False) -> Page:
        """Build a Page from a source file.

        Args:
            path: Path to the source file.
            draft: Whether the file is a draft by name.

        Raises:
            ValueError: If no parser accepts the file or its content is malformed.
        """
        parser = self.parser_registry.get_parser(path)
        if parser is None:
            raise ValueError(f"No parser for {path.name}")
        rel = path.relative_to(self.site_dir)
        folder = rel.parent.as_posix() if rel.parent != Path(".") else ""

        document: SourceDocument = parser.parse(path.read_text(encoding="utf-8"), path)
        metadata = self.metadata_extractor.extract(document, path)
        layout = self.layout_resolver.resolve(
            path, folder, document.frontmatter.get("layout")
        )

        return Page(
            slug=metadata["slug"],
            title=metadata["title"],
            author=metadata.get("author", ""),
            date=metadata["date"],
            categories=metadata.get("categories", frozenset()),
            hero_image=metadata.get("hero_image"),
            body=metadata.get("body", document.blocks),
            description=metadata.get("description", ""),
            draft=draft or metadata.get("draft", False),
            layout=layout,
            path=path,
            folder=folder,
            source_type=parser.source_type,
            frontmatter=document.frontmatter,
        )


class ContentProcessor:
    """Facade for loading every page of a site directory."""

    def __init__(
        self,
        site_dir: Path,
        content_loader: FileContentLoader | None = None,
        page_builder: DefaultPageBuilder | None = None,
        default_author: str = "",
    ):
        self.site_dir = site_dir
        self._content_loader = content_loader or FileContentLoader(site_dir)
        self._page_builder = page_builder or DefaultPageBuilder(
            site_dir, default_author=default_author
        )

    def load(self, include_drafts: bool = False) -> list[Page]:
        """Load all source files as Pages.

        Pages flagged as drafts in frontmatter are dropped unless
        ``include_drafts`` is set.

        Raises:
            ContentError: If a source file cannot be read or parsed.
        """
        pages: list[Page] = []
        for path in self._content_loader.iter_files(include_drafts):
            try:
                page = self._page_builder.build(path, draft=path.name.startswith("_"))
            except (OSError, ValueError, FolioError) as exc:
                raise ContentError(path, str(exc)) from exc
            if page.draft and not include_drafts:
                logger.debug("Skipping draft %s", path)
                continue
            logger.debug("Loaded %s as '%s'", path, page.slug)
            pages.append(page)
        return pages
