"""Jinja2 layouts around rendered page bodies.

The block renderers turn a page body into HTML; TemplateEngine places that
HTML inside a layout together with the page metadata, producing the full
document. Given the same page and site context the output is always the
same string.

Layouts are searched in ``site/_layouts``, ``site/_partials`` and ``site``,
then in the layouts packaged with Folio.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, Template, TemplateNotFound, select_autoescape
from markupsafe import Markup
from pygments.formatters import HtmlFormatter

from .collections import CategoryCollection, PageCollection, build_category_index
from .content import Page
from .renderers import BlockRendererRegistry, render_body, render_toc, validate_page
from .utils import join_root_url, resolve_uri

__all__ = ["TemplateEngine", "render_page", "render_toc"]

logger = logging.getLogger(__name__)

BUILTIN_LAYOUTS_DIR = Path(__file__).parent / "layouts"
LAYOUT_SUFFIXES = (".html.jinja", ".jinja", ".html")


def _search_path(site_dir: Path | None) -> list[Path]:
    folders = [] if site_dir is None else [site_dir / "_layouts", site_dir / "_partials", site_dir]
    return [*folders, BUILTIN_LAYOUTS_DIR]


class TemplateEngine:
    """Renders pages through Jinja2 layouts.

    Attributes:
        site_dir: Folder with custom layouts, or None to use only the packaged ones.
        data: Site data, available to layouts as ``data``.
        root_url: Prefix for ``url_for`` links; empty for root-relative links.
        pages: Every page of the site, set by update_collections.
        categories: Category index over ``pages``.
    """

    def __init__(
        self,
        site_dir: Path | None,
        data: dict[str, Any],
        root_url: str | None = None,
        block_registry: BlockRendererRegistry | None = None,
    ):
        self.site_dir = site_dir
        self.data = data
        self.root_url = root_url or data.get("root_url") or ""
        self.block_registry = block_registry
        self.pages = PageCollection([])
        self.categories = CategoryCollection({})
        self.env = Environment(
            loader=FileSystemLoader(_search_path(site_dir)),
            autoescape=select_autoescape(["html", "xml", "jinja"]),
            keep_trailing_newline=True,
        )
        self.env.globals.update(
            data=data,
            url_for=self.url_for,
            asset_url=self.asset_url,
            pygments_css=lambda: Markup(HtmlFormatter().get_style_defs(".highlight")),
            render_toc=render_toc,
        )
        self._publish_collections()

    def _publish_collections(self) -> None:
        self.env.globals.update(pages=self.pages, categories=self.categories)

    def update_collections(self, pages: Iterable[Page]) -> None:
        self.pages = PageCollection(pages)
        self.categories = build_category_index(self.pages)
        self._publish_collections()

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://", "//")):
            return path
        path = "/" + path.lstrip("/")
        return join_root_url(self.root_url, path) if self.root_url else path

    def asset_url(self, uri: str, page: Page | None = None) -> str:
        """URL of an asset referenced relative to ``page``'s folder."""
        resolved = resolve_uri(uri, page.folder if page is not None else "")
        return self.url_for(resolved) if resolved.startswith("/") else resolved

    def layout_for(self, layout: str) -> Template:
        """The named layout, or ``default`` when the site has no such layout."""
        fallbacks = [layout] if layout == "default" else [layout, "default"]
        for name in fallbacks:
            for suffix in LAYOUT_SUFFIXES:
                try:
                    template = self.env.get_template(name + suffix)
                except TemplateNotFound:
                    continue
                if name != layout:
                    logger.debug("Layout '%s' not found; using %s%s", layout, name, suffix)
                return template
        raise TemplateNotFound(layout + LAYOUT_SUFFIXES[0])

    def render_page(self, page: Page) -> str:
        """Full HTML document for ``page``.

        Raises:
            MissingRequiredField: The page has no slug or title.
            InvalidBlock: The body holds something that is not a content block.
        """
        validate_page(page)
        body = render_body(page, self.block_registry)
        return self.layout_for(page.layout).render(
            page_content=body,
            current_page=page,
            frontmatter=page.frontmatter,
            data=self.data,
            pages=self.pages,
            categories=self.categories,
        )

    def render_string(self, template: str, context: dict[str, Any]) -> str:
        return self.env.from_string(template).render(**context)


def render_page(page: Page, data: dict[str, Any] | None = None) -> str:
    """Render one page with the packaged layout and no other pages."""
    return TemplateEngine(None, data or {}).render_page(page)
