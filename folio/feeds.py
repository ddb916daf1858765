"""sitemap.xml and rss.xml for a built site.

Feeds need absolute links, so both generators stay silent unless site data
carries the public ``url``. They only read pages and site data, which keeps
the files byte-identical across rebuilds of an unchanged site.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Any

from markupsafe import escape

if TYPE_CHECKING:
    from .content import Page

RFC822_FORMAT = "%a, %d %b %Y 00:00:00 +0000"
EPOCH = date(1970, 1, 1)


class FeedGenerator(ABC):
    filename: str = ""

    @abstractmethod
    def generate(self, pages: Iterable[Page], data: dict[str, Any]) -> str | None:
        """Feed document, or None to skip this feed."""
        ...

    def write(self, output_dir: Path, pages: Iterable[Page], data: dict[str, Any]) -> bool:
        document = self.generate(pages, data)
        if document is not None:
            (output_dir / self.filename).write_text(document, encoding="utf-8")
        return document is not None

    @staticmethod
    def site_url(data: dict[str, Any]) -> str:
        return str(data.get("url", "")).rstrip("/")


class SitemapGenerator(FeedGenerator):
    """One ``<url>`` per published page, dated by the page date."""

    filename = "sitemap.xml"

    def generate(self, pages, data):
        site_url = self.site_url(data)
        if not site_url:
            return None
        urls = [
            f"  <url><loc>{escape(site_url + page.url)}</loc>"
            f"<lastmod>{page.date.isoformat()}</lastmod></url>"
            for page in pages
            if not page.draft
        ]
        return "\n".join(
            [
                '<?xml version="1.0" encoding="UTF-8"?>',
                '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
                *urls,
                "</urlset>",
            ]
        )


class RSSGenerator(FeedGenerator):
    """RSS 2.0 channel of the pages in ``section`` (all pages if None).

    Items run newest first. The channel's ``lastBuildDate`` is the date of
    the newest item rather than the wall clock.
    """

    filename = "rss.xml"

    def __init__(self, section: str | None = None):
        self.section = section

    def _entries(self, pages: Iterable[Page]) -> list[Page]:
        chosen = [
            page
            for page in pages
            if not page.draft and self.section in (None, page.section)
        ]
        return sorted(chosen, key=lambda page: (page.date, page.slug), reverse=True)

    @staticmethod
    def _item(page: Page, site_url: str) -> str:
        link = escape(site_url + page.url)
        summary = escape(page.description or page.title)
        return (
            f"<item><title>{escape(page.title)}</title><link>{link}</link>"
            f"<guid>{link}</guid><description>{summary}</description>"
            f"<pubDate>{page.date.strftime(RFC822_FORMAT)}</pubDate></item>"
        )

    def generate(self, pages, data):
        site_url = self.site_url(data)
        if not site_url:
            return None
        entries = self._entries(pages)
        channel_title = data.get("title", "Folio Feed")
        updated = entries[0].date if entries else EPOCH
        return "\n".join(
            [
                '<?xml version="1.0" encoding="UTF-8"?>',
                '<rss version="2.0"><channel>',
                f"<title>{escape(channel_title)}</title>",
                f"<link>{escape(site_url)}</link>",
                f"<description>{escape(data.get('description', channel_title))}</description>",
                f"<lastBuildDate>{updated.strftime(RFC822_FORMAT)}</lastBuildDate>",
                *(self._item(page, site_url) for page in entries),
                "</channel></rss>",
            ]
        )


class FeedRegistry:
    def __init__(self, generators: Iterable[FeedGenerator] = ()):
        self._generators = list(generators)

    def register(self, generator: FeedGenerator) -> None:
        self._generators.append(generator)

    def generate_all(self, output_dir: Path, pages: Iterable[Page], data: dict[str, Any]) -> list[str]:
        """Write each feed into output_dir; returns the filenames written."""
        pages = list(pages)
        return [gen.filename for gen in self._generators if gen.write(output_dir, pages, data)]


def create_default_feed_registry(rss_section: str | None = None) -> FeedRegistry:
    return FeedRegistry([SitemapGenerator(), RSSGenerator(section=rss_section)])
