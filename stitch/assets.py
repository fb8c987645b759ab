"""Static asset copy step for Stitch.

Copies every file selected by ``PATHS.assets`` into ``<dist>/assets``,
keeping its path below the pattern's base directory. Copying goes through a
small processor registry: images are re-encoded with Pillow's optimizer in
production builds, everything else is copied byte for byte.

Key classes:
- ImageProcessor: Optimizes PNG/JPEG/WebP images in production.
- StaticAssetProcessor: Copies any file unchanged (fallback).
- AssetProcessorRegistry: Picks the highest-priority processor for a file.
- CopyAssetsStep: The transform step wired into the task graph.
"""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from PIL import Image

from . import globs
from .config import BuildConfig


class BaseAssetProcessor(ABC):
    """Base class for asset processors."""

    @property
    @abstractmethod
    def priority(self) -> int:
        """Return processor priority (higher = checked first)."""
        ...

    @abstractmethod
    def can_process(self, path: Path) -> bool:
        ...

    @abstractmethod
    def process(self, source: Path, dest: Path) -> None:
        ...

    def ensure_dest_dir(self, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)


class ImageProcessor(BaseAssetProcessor):
    """Optimizes image files with Pillow when ``optimize`` is set.

    Supports PNG, JPG, JPEG, and WebP formats. Development builds copy
    images unchanged.
    """

    SUPPORTED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}

    def __init__(self, optimize: bool = False):
        self.optimize = optimize

    @property
    def priority(self) -> int:
        return 100

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() in self.SUPPORTED_EXTENSIONS

    def process(self, source: Path, dest: Path) -> None:
        self.ensure_dest_dir(dest)
        if not self.optimize:
            shutil.copy2(source, dest)
            return
        with Image.open(source) as img:
            img.save(dest, optimize=True)


class StaticAssetProcessor(BaseAssetProcessor):
    """Copies files without modification (fonts, SVGs, ...)."""

    @property
    def priority(self) -> int:
        return 0  # Lowest priority - fallback

    def can_process(self, path: Path) -> bool:
        return True

    def process(self, source: Path, dest: Path) -> None:
        self.ensure_dest_dir(dest)
        shutil.copy2(source, dest)


class AssetProcessorRegistry:
    """Registry selecting a processor per file by priority."""

    def __init__(self):
        self._processors: list[BaseAssetProcessor] = []

    def register(self, processor: BaseAssetProcessor) -> None:
        """Register a processor; the list stays sorted by priority (highest first)."""
        self._processors.append(processor)
        self._processors.sort(key=lambda p: p.priority, reverse=True)

    def get_processor(self, path: Path) -> BaseAssetProcessor | None:
        for processor in self._processors:
            if processor.can_process(path):
                return processor
        return None

    def process(self, source: Path, dest: Path) -> bool:
        """Process ``source`` into ``dest``.

        Returns:
            True if a processor handled the file, False if none matched.
        """
        processor = self.get_processor(source)
        if processor is None:
            return False
        processor.process(source, dest)
        return True


def create_default_registry(config: BuildConfig) -> AssetProcessorRegistry:
    registry = AssetProcessorRegistry()
    registry.register(ImageProcessor(optimize=config.production))
    registry.register(StaticAssetProcessor())
    return registry


class CopyAssetsStep:
    """Copies configured static assets into the output tree.

    Attributes:
        config: Build configuration.
        registry: Processor registry used for each file.
    """

    name = "copy"

    def __init__(self, config: BuildConfig, registry: AssetProcessorRegistry | None = None):
        self.config = config
        self.registry = registry or create_default_registry(config)

    def sources(self) -> list[Path]:
        return globs.expand(self.config.project_root, self.config.assets)

    def run(self) -> None:
        target = self.config.output_dir / "assets"
        for source in self.sources():
            self.registry.process(source, target / self._relative(source))

    def _relative(self, source: Path) -> Path:
        rel = source.relative_to(self.config.project_root).as_posix()
        for pattern in self.config.assets:
            if pattern.startswith("!"):
                continue
            for option in globs.expand_braces(pattern):
                base = globs.static_base(option)
                if globs.match(rel, option):
                    return Path(rel[len(base) :].lstrip("/")) if base else Path(rel)
        return Path(rel)
