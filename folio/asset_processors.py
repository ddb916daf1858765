"""Asset processors for Folio.

A processor writes the published form of one source file. The registry
asks processors in priority order and the first one that accepts a file
handles it; the copy processor accepts everything, so every file ends up
somewhere.
"""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from collections.abc import Iterable
from operator import attrgetter
from pathlib import Path

from PIL import Image

logger = logging.getLogger(__name__)


class AssetProcessor(ABC):
    """One kind of asset transformation. Higher priority is asked first."""

    priority = 0

    @abstractmethod
    def accepts(self, source: Path) -> bool:
        ...

    @abstractmethod
    def write(self, source: Path, dest: Path) -> None:
        """Write the processed form of source to dest (its folder exists)."""
        ...


class ImageOptimizer(AssetProcessor):
    """Re-encodes raster images with Pillow, keeping their format.

    JPEG and WebP are saved at ``quality``; PNG is losslessly optimized.
    Files Pillow cannot decode are published unchanged.
    """

    priority = 100
    FORMATS = {".png": "PNG", ".jpg": "JPEG", ".jpeg": "JPEG", ".webp": "WEBP"}

    def __init__(self, quality: int = 85):
        self.quality = quality

    def accepts(self, source: Path) -> bool:
        return source.suffix.lower() in self.FORMATS

    def write(self, source: Path, dest: Path) -> None:
        image_format = self.FORMATS[source.suffix.lower()]
        options: dict = {"optimize": True}
        if image_format != "PNG":
            options["quality"] = self.quality
        try:
            with Image.open(source) as img:
                img.save(dest, format=image_format, **options)
        except (OSError, ValueError) as exc:
            logger.warning("Could not optimize %s (%s); copying as-is", source, exc)
            shutil.copy2(source, dest)


class CopyProcessor(AssetProcessor):
    """Publishes any file byte for byte."""

    def accepts(self, source: Path) -> bool:
        return True

    def write(self, source: Path, dest: Path) -> None:
        shutil.copy2(source, dest)


class AssetProcessorRegistry:
    def __init__(self, processors: Iterable[AssetProcessor] = ()):
        self._processors: list[AssetProcessor] = []
        for processor in processors:
            self.register(processor)

    def register(self, processor: AssetProcessor) -> None:
        self._processors.append(processor)
        self._processors.sort(key=attrgetter("priority"), reverse=True)

    def processor_for(self, source: Path) -> AssetProcessor | None:
        return next((p for p in self._processors if p.accepts(source)), None)

    def publish(self, source: Path, dest: Path) -> bool:
        """Write source to dest through the matching processor.

        Returns:
            False if no processor accepted the file.
        """
        processor = self.processor_for(source)
        if processor is None:
            logger.debug("No asset processor for %s", source)
            return False
        dest.parent.mkdir(parents=True, exist_ok=True)
        processor.write(source, dest)
        return True


def create_default_registry(image_quality: int = 85) -> AssetProcessorRegistry:
    return AssetProcessorRegistry([ImageOptimizer(image_quality), CopyProcessor()])
