"""Error taxonomy for Folio.

Every error here is a build-time failure tied to a single page. The build
aborts on the first one and reports it through ``BuildError`` (see build.py).
"""

from __future__ import annotations

from typing import Any


class FolioError(Exception):
    """Base class for page and site errors."""


class DuplicateSlug(FolioError):
    """Raised when a page is added to a Site that already holds its slug.

    Attributes:
        slug: The contested slug.
        existing: Page already registered under the slug.
        duplicate: Page that was rejected.
    """

    def __init__(self, slug: str, existing: Any = None, duplicate: Any = None):
        self.slug = slug
        self.existing = existing
        self.duplicate = duplicate
        super().__init__(f"Duplicate slug '{slug}'")


class DuplicateUrl(FolioError):
    """Raised when two pages with different slugs would publish to one URL.

    ``posts`` and ``posts/index`` both live at ``/posts/``.
    """

    def __init__(self, url: str, existing: Any = None, duplicate: Any = None):
        self.url = url
        self.existing = existing
        self.duplicate = duplicate
        names = ""
        if existing is not None and duplicate is not None:
            names = f" ('{existing.slug}' and '{duplicate.slug}')"
        super().__init__(f"Duplicate URL '{url}'{names}")


class NotFound(FolioError):
    """Raised when a slug is not present in the Site."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"No page with slug '{slug}'")


class InvalidBlock(FolioError):
    """Raised when a page body holds something that is not a known content block.

    Attributes:
        block: The offending body element.
        index: Position of the element in the page body.
    """

    def __init__(self, block: Any, index: int | None = None):
        self.block = block
        self.index = index
        where = f" at position {index}" if index is not None else ""
        super().__init__(f"Unrecognized content block{where}: {type(block).__name__}")


class MissingRequiredField(FolioError):
    """Raised when a page lacks a field the renderer cannot do without."""

    def __init__(self, field_name: str, page_ref: str = ""):
        self.field_name = field_name
        self.page_ref = page_ref
        suffix = f" ({page_ref})" if page_ref else ""
        super().__init__(f"Missing required field '{field_name}'{suffix}")


class SiteSealed(FolioError):
    """Raised when a page is added after the site index was sealed."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Cannot add '{slug}': site index is sealed")


class ContentError(FolioError):
    """Raised when a source file cannot be turned into a Page.

    Attributes:
        source_path: The offending source file.
        message: Human-readable reason.
    """

    def __init__(self, source_path, message: str):
        self.source_path = source_path
        self.message = message
        super().__init__(f"{source_path}: {message}")
