"""Turning a project directory into a published site.

``build_site`` reads ``folio.yaml`` and the ``data/`` folder, loads every
page under the site directory, indexes them by slug and renders them.
Nothing is written until every page has rendered; the first failure is
logged and raised as a BuildError, and the output directory keeps
whatever it held before.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jinja2 import TemplateError, TemplateSyntaxError

from .asset_processors import create_default_registry
from .assets import AssetPipeline
from .content import ContentProcessor, Page
from .errors import ContentError, DuplicateSlug, DuplicateUrl, FolioError
from .feeds import create_default_feed_registry
from .site import Site
from .templates import TemplateEngine
from .utils import absolutize_html_urls, ensure_clean_dir

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "folio.yaml"
SITE_DATA_FILENAME = "site.yaml"

DEFAULT_CONFIG = {
    "output_dir": "output",
    "site_dir": "site",
    "port": 4000,
    "root_url": "",
    "author": "",
    "rss_section": "posts",
    "image_quality": 85,
}


class BuildError(Exception):
    """A build stopped at ``source_path``.

    ``source_path`` is None when the failure is not tied to one file.
    ``original_error`` keeps the exception that caused the abort.
    """

    def __init__(
        self,
        source_path: Path | None,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


@dataclass
class BuildResult:
    site: Site
    output_dir: Path
    data: dict[str, Any]
    feeds: list[str]

    @property
    def pages(self) -> list[Page]:
        return list(self.site)


def _read_mapping(path: Path) -> dict[str, Any] | None:
    """YAML file contents as a dict; None (with a warning) for anything else."""
    with open(path, encoding="utf-8") as f:
        payload = yaml.safe_load(f)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        logger.warning("Ignoring %s: expected a mapping", path)
        return None
    return payload


def load_config(project_root: Path) -> dict[str, Any]:
    """``folio.yaml`` layered over DEFAULT_CONFIG."""
    config = dict(DEFAULT_CONFIG)
    path = project_root / CONFIG_FILENAME
    if path.exists():
        config.update(_read_mapping(path) or {})
    return config


def load_data(project_root: Path) -> dict[str, Any]:
    """Collect the YAML files in ``data/`` into one template context.

    Keys from ``site.yaml`` land at the top level. Any other file is exposed
    under its stem, so ``data/bio.yaml`` is reachable as ``data.bio``.
    """
    folder = project_root / "data"
    if not folder.is_dir():
        return {}
    merged: dict[str, Any] = {}
    for path in sorted(folder.glob("*.yaml")):
        if path.name == SITE_DATA_FILENAME:
            merged.update(_read_mapping(path) or {})
            continue
        with open(path, encoding="utf-8") as f:
            value = yaml.safe_load(f)
        if value is not None:
            merged[path.stem] = value
    return merged


def _abort(source_path: Path | None, message: str, original: Exception) -> BuildError:
    logger.error("Build aborted at %s: %s", source_path or "<site>", message)
    return BuildError(source_path, message, original)


def _index_pages(pages: list[Page]) -> Site:
    site = Site()
    for page in pages:
        try:
            site.add_page(page)
        except DuplicateSlug as exc:
            other = exc.existing.path if exc.existing is not None else "another page"
            raise _abort(
                page.path,
                f"Duplicate slug '{exc.slug}' (also used by {other})",
                exc,
            ) from exc
        except DuplicateUrl as exc:
            other = exc.existing.path if exc.existing is not None else "another page"
            raise _abort(
                page.path,
                f"Duplicate URL '{exc.url}' (also published by {other})",
                exc,
            ) from exc
    site.seal()
    return site


def _render_all(engine: TemplateEngine, site: Site, root_url: str) -> dict[str, str]:
    rendered: dict[str, str] = {}
    for page in site:
        try:
            html = engine.render_page(page)
        except TemplateSyntaxError as exc:
            raise _abort(
                page.path,
                f"Template syntax error on line {exc.lineno}: {exc.message}",
                exc,
            ) from exc
        except Exception as exc:
            raise _abort(page.path, _format_error_message(exc), exc) from exc
        if root_url:
            html = absolutize_html_urls(html, root_url)
        rendered[page.slug] = html
        logger.debug("Rendered '%s'", page.slug)
    return rendered


def build_site(
    project_root: Path,
    include_drafts: bool = False,
    root_url: str | None = None,
    clean_output: bool = True,
    output_dir_override: Path | None = None,
) -> BuildResult:
    """Build the site rooted at ``project_root``.

    Args:
        project_root: Directory holding ``folio.yaml`` and the site folder.
        include_drafts: Publish pages whose name starts with ``_``.
        root_url: Replaces the configured ``root_url`` when given.
        clean_output: Empty the output directory before writing.
        output_dir_override: Write here instead of the configured output_dir.

    Raises:
        BuildError: A page failed to load, collided on its slug or URL, or
            failed to render. The output directory is left as it was. The
            page-level error (DuplicateSlug, DuplicateUrl, InvalidBlock,
            MissingRequiredField, ...) is both ``original_error`` and
            ``__cause__``.
        FileNotFoundError: The site directory is missing.
    """
    config = load_config(project_root)
    if root_url is not None:
        config["root_url"] = root_url
    site_dir = project_root / config["site_dir"]
    output_dir = output_dir_override or (project_root / config["output_dir"])
    if not site_dir.exists():
        raise FileNotFoundError(f"Expected site directory at {site_dir}")

    base_url = str(config.get("root_url") or "")
    author = str(config.get("author") or "")
    data = load_data(project_root)
    if base_url:
        data.setdefault("root_url", base_url)
    data.setdefault("author", author)

    try:
        pages = ContentProcessor(site_dir, default_author=author).load(include_drafts=include_drafts)
    except ContentError as exc:
        reason = exc.__cause__ or exc
        raise _abort(exc.source_path, exc.message, reason) from reason

    site = _index_pages(pages)
    engine = TemplateEngine(site_dir, data, root_url=base_url)
    engine.update_collections(site)
    rendered = _render_all(engine, site, base_url)

    if clean_output:
        ensure_clean_dir(output_dir)
    else:
        output_dir.mkdir(parents=True, exist_ok=True)
    for page in site:
        _write_page(output_dir, page, rendered[page.slug])

    processors = create_default_registry(int(config.get("image_quality", 85)))
    AssetPipeline(project_root, output_dir, site_dir=site_dir, processor_registry=processors).run(site)
    feeds = create_default_feed_registry(config.get("rss_section")).generate_all(output_dir, site, data)
    logger.info("Built %d page(s) into %s", len(site), output_dir)
    return BuildResult(site=site, output_dir=output_dir, data=data, feeds=feeds)


def _format_error_message(exc: Exception) -> str:
    kind = type(exc).__name__
    if kind == "UndefinedError":
        return f"Undefined variable: {exc}"
    if isinstance(exc, TemplateError):
        return f"Template error: {exc}"
    if isinstance(exc, FolioError):
        return str(exc)
    return f"{kind}: {exc}"


def _write_page(output_dir: Path, page: Page, html: str) -> None:
    target = output_dir / page.url.strip("/") / "index.html"
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(html, encoding="utf-8")
