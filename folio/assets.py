"""Publishing of static files.

The shared ``assets/`` tree lands under ``output/assets/``. Files that pages
reference relative to their own folder (hero images, Image blocks) are
published at the same site-relative path, so ``posts/hero.png`` is served
from ``/posts/hero.png``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from .asset_processors import AssetProcessorRegistry, create_default_registry
from .content import Page

logger = logging.getLogger(__name__)


class AssetPipeline:
    """Copies and optimizes static assets for the site.

    Attributes:
        project_root: Root directory of the project.
        site_dir: Directory holding the authored pages.
        assets_dir: Directory containing shared assets.
        output_dir: Directory where processed assets are written.
        processor_registry: Registry of asset processors.
    """

    def __init__(
        self,
        project_root: Path,
        output_dir: Path,
        site_dir: Path | None = None,
        processor_registry: AssetProcessorRegistry | None = None,
    ):
        self.project_root = project_root
        self.site_dir = site_dir or project_root / "site"
        self.assets_dir = project_root / "assets"
        self.output_dir = output_dir
        self.processor_registry = processor_registry or create_default_registry()

    def run(self, pages: Iterable[Page] = ()) -> list[Path]:
        """Process shared assets, then the files pages reference.

        Args:
            pages: Pages whose local assets should be published.

        Returns:
            Output paths that were written.
        """
        written = self._copy_shared_assets()
        written.extend(self._copy_page_assets(pages))
        logger.info("Processed %d asset(s)", len(written))
        return written

    def _copy_shared_assets(self) -> list[Path]:
        if not self.assets_dir.exists():
            return []
        target = self.output_dir / "assets"
        written: list[Path] = []
        for item in sorted(self.assets_dir.rglob("*")):
            if item.is_dir():
                continue
            dest = target / item.relative_to(self.assets_dir)
            if self.processor_registry.publish(item, dest):
                written.append(dest)
        return written

    def _copy_page_assets(self, pages: Iterable[Page]) -> list[Path]:
        written: list[Path] = []
        seen: set[str] = set()
        for page in pages:
            for rel in page.local_assets:
                if rel in seen:
                    continue
                seen.add(rel)
                source = self.site_dir / rel
                if source.is_file():
                    dest = self.output_dir / rel
                    if self.processor_registry.publish(source, dest):
                        written.append(dest)
                elif not (self.project_root / rel).is_file():
                    logger.warning("Page '%s' references missing asset %s", page.slug, rel)
        return written
