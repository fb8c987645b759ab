"""Stylesheet steps for Stitch.

Two independent transform steps produce ``<dist>/assets/css``:

- SassStep compiles the entry stylesheets in ``src/assets/scss`` (files
  whose names do not start with ``_``) with the sass CLI, then runs
  autoprefixer through the postcss CLI for the configured browser targets.
- TailwindStep runs ``src/assets/tailwind/tailwind.css`` through the
  tailwindcss CLI, scanning pages, layouts and partials for class names.

Missing CLIs are reported and the stylesheet is copied unprocessed, so a
bare checkout still produces a complete output tree. A CLI that runs and
fails is a step failure.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

from .config import BuildConfig
from .executable_utils import find_executable, run_tool


class SassStep:
    """Compiles SCSS entry files to CSS.

    Attributes:
        config: Build configuration.
        source_dir: Directory holding the SCSS sources.
        output_dir: Directory receiving compiled CSS.
    """

    name = "sass"

    def __init__(self, config: BuildConfig):
        self.config = config
        self.source_dir = config.source_dir / "assets" / "scss"
        self.output_dir = config.output_dir / "assets" / "css"

    def entries(self) -> list[Path]:
        if not self.source_dir.exists():
            return []
        return sorted(
            p for p in self.source_dir.rglob("*.scss") if not p.name.startswith("_")
        )

    def run(self) -> None:
        """Compile and autoprefix every entry, then publish the results.

        Output is staged in a sibling directory at the same depth, so
        relative source map paths stay valid. Nothing in the CSS directory
        changes unless every entry compiled.
        """
        entries = self.entries()
        if not entries:
            return
        self.output_dir.mkdir(parents=True, exist_ok=True)
        root = self.config.project_root
        sass_bin = find_executable("sass", root)
        with tempfile.TemporaryDirectory(prefix=".sass-", dir=self.output_dir.parent) as tmp:
            staging = Path(tmp)
            outputs = []
            for source in entries:
                dest = staging / source.relative_to(self.source_dir).with_suffix(".css")
                dest.parent.mkdir(parents=True, exist_ok=True)
                if sass_bin is None:
                    shutil.copyfile(source, dest)
                else:
                    run_tool(self._command(sass_bin, source, dest), self.name, "transform", cwd=root)
                outputs.append(dest)
            self._autoprefix(outputs)
            for staged in sorted(p for p in staging.rglob("*") if p.is_file()):
                target = self.output_dir / staged.relative_to(staging)
                target.parent.mkdir(parents=True, exist_ok=True)
                os.replace(staged, target)
        if sass_bin is None:
            print("Sass CLI not found; copying stylesheets unprocessed.")
            print("Install with `npm install -D sass` in the project.")

    def _command(self, sass_bin: str, source: Path, dest: Path) -> list[str]:
        cmd = [sass_bin, str(source), str(dest), "--no-error-css"]
        for include in self.config.sass_include_paths:
            cmd.append(f"--load-path={self.config.project_root / include}")
        if self.config.production:
            cmd.extend(["--style=compressed", "--no-source-map"])
        else:
            cmd.append("--embed-source-map")
        return cmd

    def _autoprefix(self, outputs: list[Path]) -> None:
        postcss_bin = find_executable("postcss", self.config.project_root)
        if postcss_bin is None or not outputs:
            return
        env = {}
        if self.config.compatibility:
            env["BROWSERSLIST"] = ", ".join(self.config.compatibility)
        cmd = [postcss_bin, *map(str, outputs), "--use", "autoprefixer", "--replace"]
        if not self.config.production:
            cmd.append("--map")
        run_tool(cmd, self.name, "transform", cwd=self.config.project_root, env=env)


class TailwindStep:
    """Processes the Tailwind CSS entry with the tailwindcss CLI."""

    name = "tailwindcss"

    def __init__(self, config: BuildConfig):
        self.config = config
        self.source = config.source_dir / "assets" / "tailwind" / "tailwind.css"
        self.dest = config.output_dir / "assets" / "css" / "tailwind.css"

    def run(self) -> None:
        if not self.source.exists():
            return
        self.dest.parent.mkdir(parents=True, exist_ok=True)
        root = self.config.project_root
        tailwind_bin = find_executable("tailwindcss", root)
        if not tailwind_bin:
            print("Tailwind CSS CLI not found; skipping CSS build.")
            print(
                "Install with `npm install -D tailwindcss` in the project. "
                "Falling back to unprocessed CSS."
            )
            shutil.copyfile(self.source, self.dest)
            return

        src = self.config.source_dir
        content_globs = [
            str(src / "pages" / "**" / "*.html"),
            str(src / "layouts" / "**" / "*.html"),
            str(src / "partials" / "**" / "*.html"),
            str(src / "assets" / "js" / "**" / "*.js"),
        ]
        cmd = [
            tailwind_bin,
            "-i",
            str(self.source),
            "-o",
            str(self.dest),
            "--content",
            ",".join(content_globs),
        ]
        config_file = self.source.parent / "tailwind.config.js"
        if config_file.exists():
            cmd.extend(["--config", str(config_file)])
        if self.config.production:
            cmd.append("--minify")
        run_tool(cmd, self.name, "transform", cwd=root)
