"""Build pipeline definition for Stitch.

Wires the transform steps into the task graph and the watch table:

    build   = clean -> (pages | javascript | copy) -> sass -> tailwindcss -> styleguide
    default = build, then serve the output and watch the sources

Watch table, evaluated top to bottom (every match reruns):

    PATHS.assets                          -> copy                  full reload
    src/pages/**/*.{html,hbs,handlebars}  -> pages                 full reload
    src/{layouts,partials,data,helpers}/  -> refresh_pages, pages  full reload
    src/assets/tailwind/**/*              -> tailwindcss           stream
    src/assets/scss/**/*.scss             -> sass                  stream
    src/assets/js/**/*.js                 -> javascript            full reload
    src/styleguide/**/*                   -> styleguide            full reload
"""

from __future__ import annotations

from .assets import CopyAssetsStep
from .config import BuildConfig
from .executor import Executor, RunResult
from .graph import Node, TaskGraph, parallel, series, task
from .pages import PAGE_PATTERNS, PageRenderer
from .router import ChangeRouter, ReloadScope, WatchBinding, binding
from .scripts import ScriptBundleStep
from .styleguide import StyleGuideStep
from .styles import SassStep, TailwindStep
from .utils import ensure_clean_dir


class Pipeline:
    """The project's build graph and watch table.

    Attributes:
        config: Build configuration shared by every step.
        renderer: Page renderer owning the render cache.
        graph: Named tasks, including the ``build`` aggregate.
        bindings: Ordered watch table.
        executor: Executor used by ``run``.
    """

    def __init__(self, config: BuildConfig, executor: Executor | None = None):
        self.config = config
        self.executor = executor or Executor()
        self.renderer = PageRenderer(config)

        clean = task("clean", self.clean, kind="clean")
        pages = task("pages", self.renderer.run, kind="render")
        refresh_pages = task("refresh_pages", self.renderer.refresh, kind="render")
        javascript = task("javascript", ScriptBundleStep(config).run, kind="bundle")
        copy = task("copy", CopyAssetsStep(config).run, kind="copy")
        sass = task("sass", SassStep(config).run, kind="transform")
        tailwindcss = task("tailwindcss", TailwindStep(config).run, kind="transform")
        styleguide = task("styleguide", StyleGuideStep(config).run, kind="styleguide")

        build = series(
            clean,
            parallel(pages, javascript, copy),
            sass,
            tailwindcss,
            styleguide,
            name="build",
        )
        self.graph = TaskGraph(
            {
                "clean": clean,
                "pages": pages,
                "refresh_pages": refresh_pages,
                "javascript": javascript,
                "copy": copy,
                "sass": sass,
                "tailwindcss": tailwindcss,
                "styleguide": styleguide,
                "build": build,
            }
        )
        self.bindings: tuple[WatchBinding, ...] = (
            binding("copy", config.assets, [copy]),
            binding("pages", PAGE_PATTERNS, [pages]),
            binding(
                "layouts",
                "src/{layouts,partials,data,helpers}/**/*",
                [pages],
                pre_action=refresh_pages,
            ),
            binding("tailwindcss", "src/assets/tailwind/**/*", [tailwindcss], reload=ReloadScope.STREAM),
            binding("sass", "src/assets/scss/**/*.scss", [sass], reload=ReloadScope.STREAM),
            binding("javascript", "src/assets/js/**/*.js", [javascript]),
            binding("styleguide", "src/styleguide/**/*", [styleguide]),
        )

    def clean(self) -> None:
        """Empty the output directory."""
        ensure_clean_dir(self.config.output_dir)

    def router(self) -> ChangeRouter:
        return ChangeRouter(
            self.config.project_root, self.bindings, ignored=[self.config.output_dir]
        )

    def node(self, name: str) -> Node:
        return self.graph[name]

    async def run(self, name: str = "build") -> RunResult:
        """Execute a named task or aggregate."""
        return await self.executor.execute(self.graph[name])

    def build(self) -> RunResult:
        """Run the full build once, blocking until it finishes."""
        return self.executor.run(self.graph["build"])
