"""Build configuration for Stitch.

The configuration is a YAML document (``config.yml`` at the project root)
read once at process entry. It is turned into an immutable BuildConfig that
is passed explicitly to every component that needs it.

Example document::

    PORT: 8000
    COMPATIBILITY:
      - "last 2 versions"
    PATHS:
      dist: "dist"
      assets:
        - "src/assets/**/*"
        - "!src/assets/{js,scss,tailwind}/**/*"
      sass:
        - "node_modules/foundation-sites/scss"
      entries:
        - "src/assets/js/app.js"

Key items:
- BuildConfig: Frozen dataclass holding resolved settings.
- load_config: Reads and validates the configuration document.
- ConfigLoadError: Raised for a missing or malformed document.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "config.yml"
SOURCE_DIR = "src"


class ConfigLoadError(Exception):
    """Error while loading the build configuration.

    Attributes:
        path: Path of the configuration document.
        message: Human-readable error message.
    """

    def __init__(self, path: Path, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


@dataclass(frozen=True)
class BuildConfig:
    """Resolved, read-only build settings.

    Attributes:
        project_root: Directory containing ``config.yml`` and ``src/``.
        output_dir: Absolute path of the output root.
        port: Preview server port.
        entries: Script entry points, relative to the project root.
        assets: Include/exclude patterns for static assets.
        sass_include_paths: Extra load paths for the sass compiler.
        compatibility: Browser compatibility targets (browserslist queries).
        production: Whether leaf steps minify and drop source maps.
    """

    project_root: Path
    output_dir: Path
    port: int = 8000
    entries: tuple[str, ...] = ()
    assets: tuple[str, ...] = ()
    sass_include_paths: tuple[str, ...] = ()
    compatibility: tuple[str, ...] = ()
    production: bool = False

    @property
    def source_dir(self) -> Path:
        return self.project_root / SOURCE_DIR


def load_config(
    project_root: Path,
    production: bool = False,
    filename: str = CONFIG_FILENAME,
) -> BuildConfig:
    """Load build settings from the project's configuration document.

    Args:
        project_root: Root directory of the project.
        production: Production mode flag from the command line.
        filename: Name of the configuration document.

    Returns:
        BuildConfig with all paths resolved against ``project_root``.

    Raises:
        ConfigLoadError: If the document is missing, unparsable, or invalid.
    """
    project_root = project_root.resolve()
    config_path = project_root / filename
    if not config_path.exists():
        raise ConfigLoadError(config_path, "configuration file not found")
    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigLoadError(config_path, f"invalid YAML: {exc}") from exc
    if not isinstance(loaded, dict):
        raise ConfigLoadError(config_path, "expected a mapping at the top level")

    paths = loaded.get("PATHS")
    if not isinstance(paths, dict):
        raise ConfigLoadError(config_path, "missing PATHS section")
    dist = paths.get("dist")
    if not isinstance(dist, str) or not dist.strip():
        raise ConfigLoadError(config_path, "PATHS.dist must be a non-empty string")

    port = loaded.get("PORT")
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65535:
        raise ConfigLoadError(
            config_path,
            f"PORT must be an integer between 1 and 65534 (live reload uses PORT + 1), got {port!r}",
        )

    output_dir = (project_root / dist).resolve()
    source_dir = project_root / SOURCE_DIR
    if output_dir == project_root or _is_within(source_dir, output_dir) or _is_within(
        output_dir, source_dir
    ):
        raise ConfigLoadError(
            config_path, f"output directory {dist!r} overlaps the source tree"
        )

    return BuildConfig(
        project_root=project_root,
        output_dir=output_dir,
        port=port,
        entries=_string_list(config_path, paths, "entries"),
        assets=_string_list(config_path, paths, "assets"),
        sass_include_paths=_string_list(config_path, paths, "sass"),
        compatibility=_string_list(config_path, loaded, "COMPATIBILITY"),
        production=production,
    )


def _string_list(config_path: Path, section: dict[str, Any], key: str) -> tuple[str, ...]:
    value = section.get(key)
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigLoadError(config_path, f"{key} must be a list of strings")
    return tuple(value)


def _is_within(path: Path, parent: Path) -> bool:
    try:
        path.resolve().relative_to(parent.resolve())
    except ValueError:
        return False
    return True
