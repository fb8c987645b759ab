"""Page rendering step for Stitch.

Pages under ``src/pages`` are Jinja2 templates with optional YAML front
matter. Each page body is rendered first, then poured into its layout from
``src/layouts`` (selected by the ``layout`` front matter key, ``default``
when absent). Partials from ``src/partials`` are available to both through
``{% include %}``. Data files from ``src/data`` and helper functions from
``src/helpers`` are exposed as template globals.

Compiled templates, data and helpers are cached between renders; this is
the render cache. ``refresh`` empties it, and the watch table runs it before
rerendering whenever a layout, partial, data file or helper changes.

Key class:
- PageRenderer: Renders all pages and owns the render cache.
"""

from __future__ import annotations

import importlib.util
import json
import threading
from pathlib import Path
from typing import Any

import yaml
from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PrefixLoader,
    TemplateNotFound,
    TemplateSyntaxError,
    select_autoescape,
)
from markupsafe import Markup

from . import globs
from .config import BuildConfig
from .executor import StepExecutionError
from .utils import extract_frontmatter

PAGE_PATTERNS = ("src/pages/**/*.{html,hbs,handlebars}",)


class PageRenderer:
    """Renders page templates with layouts, partials, data and helpers.

    Attributes:
        config: Build configuration.
        pages_dir: Directory containing page sources.
        layouts_dir: Directory containing layouts.
        partials_dir: Directory containing partials.
        data_dir: Directory containing YAML/JSON data files.
        helpers_dir: Directory containing Python helper modules.
        env: Jinja2 environment; its template cache is the compiled part of
            the render cache.
    """

    def __init__(self, config: BuildConfig):
        self.config = config
        src = config.source_dir
        self.pages_dir = src / "pages"
        self.layouts_dir = src / "layouts"
        self.partials_dir = src / "partials"
        self.data_dir = src / "data"
        self.helpers_dir = src / "helpers"
        # auto_reload is off: cached templates stay until refresh() drops them.
        self.env = Environment(
            loader=ChoiceLoader(
                [
                    PrefixLoader(
                        {
                            "layouts": FileSystemLoader(str(self.layouts_dir)),
                            "partials": FileSystemLoader(str(self.partials_dir)),
                        }
                    ),
                    FileSystemLoader([str(self.partials_dir), str(self.pages_dir)]),
                ]
            ),
            autoescape=select_autoescape(["html", "xml"]),
            auto_reload=False,
            keep_trailing_newline=True,
        )
        self._data: dict[str, Any] | None = None
        self._helpers: dict[str, Any] | None = None
        self._lock = threading.Lock()

    def refresh(self) -> None:
        """Empty the render cache.

        Drops every compiled template along with the loaded data and
        helpers, so the next render reads everything from disk again.
        """
        with self._lock:
            if self.env.cache is not None:
                self.env.cache.clear()
            for name in self._helpers or {}:
                self.env.globals.pop(name, None)
                self.env.filters.pop(name, None)
            self._data = None
            self._helpers = None

    @property
    def cached_templates(self) -> int:
        """Number of compiled templates currently cached."""
        return len(self.env.cache) if self.env.cache is not None else 0

    def page_sources(self) -> list[Path]:
        return globs.expand(self.config.project_root, PAGE_PATTERNS)

    def render_all(self) -> dict[Path, str]:
        """Render every page to memory.

        Returns:
            Mapping of output path to rendered HTML.

        Raises:
            StepExecutionError: If any page fails to render.
        """
        with self._lock:
            data = self._load_data()
            helpers = self._load_helpers()
            self.env.globals.update(helpers)
            self.env.filters.update(helpers)
            outputs: dict[Path, str] = {}
            for source in self.page_sources():
                outputs[self._output_path(source)] = self._render_page(source, data)
            return outputs

    def run(self) -> None:
        """Render all pages, then write them.

        Nothing is written unless every page rendered, so a failure leaves
        the previous output in place.
        """
        outputs = self.render_all()
        for path, html in outputs.items():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(html, encoding="utf-8")

    def _output_path(self, source: Path) -> Path:
        rel = source.relative_to(self.pages_dir)
        return self.config.output_dir / rel.with_suffix(".html")

    def _render_page(self, source: Path, data: dict[str, Any]) -> str:
        rel = source.relative_to(self.pages_dir).as_posix()
        try:
            frontmatter, body = extract_frontmatter(source.read_text(encoding="utf-8"))
            context = {
                **data,
                "data": data,
                "page": Path(rel).stem,
                "root": _root_path(rel),
                "production": self.config.production,
                **frontmatter,
            }
            body_html = self.env.from_string(body).render(**context)
            layout = frontmatter.get("layout", "default")
            if layout in (None, False, "none"):
                return body_html
            template = self._layout(str(layout))
            return template.render(body=Markup(body_html), **context)
        except TemplateSyntaxError as exc:
            raise StepExecutionError(
                "pages",
                f"{exc.filename or rel}: template syntax error on line {exc.lineno}: {exc.message}",
                exc,
                kind="render",
            ) from exc
        except StepExecutionError:
            raise
        except Exception as exc:
            raise StepExecutionError(
                "pages", f"{rel}: {type(exc).__name__}: {exc}", exc, kind="render"
            ) from exc

    def _layout(self, name: str):
        candidates = [f"layouts/{name}.html", f"layouts/{name}"]
        for candidate in candidates:
            try:
                return self.env.get_template(candidate)
            except TemplateNotFound:
                continue
        raise StepExecutionError("pages", f"layout not found: {name}", kind="render")

    def _load_data(self) -> dict[str, Any]:
        if self._data is None:
            data: dict[str, Any] = {}
            if self.data_dir.exists():
                for path in sorted(self.data_dir.iterdir()):
                    if path.suffix in (".yml", ".yaml"):
                        with open(path, encoding="utf-8") as f:
                            data[path.stem] = yaml.safe_load(f)
                    elif path.suffix == ".json":
                        with open(path, encoding="utf-8") as f:
                            data[path.stem] = json.load(f)
            self._data = data
        return self._data

    def _load_helpers(self) -> dict[str, Any]:
        if self._helpers is None:
            helpers: dict[str, Any] = {}
            if self.helpers_dir.exists():
                for path in sorted(self.helpers_dir.glob("*.py")):
                    helpers.update(_load_helper_module(path))
            self._helpers = helpers
        return self._helpers


def _load_helper_module(path: Path) -> dict[str, Any]:
    """Import a helper module from its file and return its public callables.

    The module is executed fresh each time, never through ``sys.modules``,
    so edited helpers take effect after a refresh.
    """
    spec = importlib.util.spec_from_file_location(f"_stitch_helper_{path.stem}", path)
    if spec is None or spec.loader is None:
        return {}
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    exported = getattr(module, "__all__", None)
    names = exported if exported is not None else [n for n in vars(module) if not n.startswith("_")]
    return {
        name: getattr(module, name)
        for name in names
        if callable(getattr(module, name, None))
        and getattr(getattr(module, name), "__module__", None) == module.__name__
    }


def _root_path(rel: str) -> str:
    """Relative prefix from a page back to the site root (``../`` per level)."""
    depth = rel.count("/")
    return "../" * depth if depth else ""
