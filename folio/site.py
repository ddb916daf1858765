"""Site index for Folio.

The Site holds every Page of a build in insertion order and resolves slugs
to pages. It is filled while the build loads content and sealed before
rendering starts; after that it is read-only.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence

from .collections import CategoryCollection, PageCollection, build_category_index
from .content import Page
from .errors import DuplicateSlug, DuplicateUrl, NotFound, SiteSealed

logger = logging.getLogger(__name__)


class Site(Sequence[Page]):
    """Ordered collection of Pages addressable by slug.

    Attributes:
        sealed: Whether the index still accepts pages.
    """

    def __init__(self, pages: Iterable[Page] = ()):
        self._pages: dict[str, Page] = {}
        self._by_url: dict[str, Page] = {}
        self._sealed = False
        for page in pages:
            self.add_page(page)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def add_page(self, page: Page) -> None:
        """Register a page under its slug.

        Raises:
            DuplicateSlug: If another page already uses the slug.
            DuplicateUrl: If another page already publishes to the same URL.
            SiteSealed: If the index has been sealed.
        """
        if self._sealed:
            raise SiteSealed(page.slug)
        existing = self._pages.get(page.slug)
        if existing is not None:
            raise DuplicateSlug(page.slug, existing=existing, duplicate=page)
        same_url = self._by_url.get(page.url)
        if same_url is not None:
            raise DuplicateUrl(page.url, existing=same_url, duplicate=page)
        self._pages[page.slug] = page
        self._by_url[page.url] = page
        logger.debug("Indexed '%s'", page.slug)

    def lookup(self, slug: str) -> Page:
        """Return the page registered under slug.

        Raises:
            NotFound: If no page uses the slug.
        """
        try:
            return self._pages[slug]
        except KeyError:
            raise NotFound(slug) from None

    def seal(self) -> None:
        self._sealed = True

    def slugs(self) -> list[str]:
        return list(self._pages)

    @property
    def pages(self) -> PageCollection:
        return PageCollection(self._pages.values())

    def categories(self) -> CategoryCollection:
        return build_category_index(self._pages.values())

    def __iter__(self) -> Iterator[Page]:
        return iter(self._pages.values())

    def __len__(self) -> int:
        return len(self._pages)

    def __getitem__(self, item):
        return list(self._pages.values())[item]

    def __contains__(self, item) -> bool:
        if isinstance(item, str):
            return item in self._pages
        return isinstance(item, Page) and self._pages.get(item.slug) is item

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"Site({len(self._pages)} pages)"
