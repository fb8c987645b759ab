"""Script bundling step for Stitch.

Each configured entry (``PATHS.entries``) becomes one file in
``<dist>/assets/js`` named after the entry. When the esbuild CLI is
available it bundles the entry's imports; otherwise the entry is taken as
is. Production builds are minified (esbuild ``--minify``, or rjsmin for
unbundled entries); development builds carry inline source maps when
esbuild is used.
"""

from __future__ import annotations

from pathlib import Path

from rjsmin import jsmin

from .config import BuildConfig
from .executable_utils import find_executable, run_tool
from .executor import StepExecutionError


class ScriptBundleStep:
    """Bundles script entry points.

    Attributes:
        config: Build configuration.
        output_dir: Directory receiving bundles.
    """

    name = "javascript"

    def __init__(self, config: BuildConfig):
        self.config = config
        self.output_dir = config.output_dir / "assets" / "js"

    def entries(self) -> list[Path]:
        return [self.config.project_root / entry for entry in self.config.entries]

    def run(self) -> None:
        entries = self.entries()
        missing = [e for e in entries if not e.exists()]
        if missing:
            names = ", ".join(str(m.relative_to(self.config.project_root)) for m in missing)
            raise StepExecutionError(self.name, f"entry not found: {names}", kind="bundle")
        if not entries:
            return
        self.output_dir.mkdir(parents=True, exist_ok=True)
        esbuild = find_executable("esbuild", self.config.project_root)
        for entry in entries:
            dest = self.output_dir / f"{entry.stem}.js"
            if esbuild:
                run_tool(self._command(esbuild, entry, dest), self.name, "bundle",
                         cwd=self.config.project_root)
            else:
                self._copy_entry(entry, dest)

    def _command(self, esbuild: str, entry: Path, dest: Path) -> list[str]:
        cmd = [esbuild, str(entry), "--bundle", f"--outfile={dest}"]
        if self.config.production:
            cmd.append("--minify")
        else:
            cmd.append("--sourcemap=inline")
        return cmd

    def _copy_entry(self, entry: Path, dest: Path) -> None:
        with open(entry, encoding="utf-8") as f_in:
            source = f_in.read()
        if self.config.production:
            source = jsmin(source)
        with open(dest, "w", encoding="utf-8") as f_out:
            f_out.write(source)
