"""Executable discovery utilities for Stitch.

Leaf steps shell out to Node tooling (sass, tailwindcss, esbuild, postcss).
This module finds those executables on the system PATH or in the project's
local ``node_modules/.bin``, and runs them.

Functions:
    find_executable: Locate an executable in PATH or node_modules.
    run_tool: Run an executable, raising a step failure on non-zero exit.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

from .executor import StepExecutionError


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable in PATH or local node_modules.

    Args:
        name: Name of the executable to find (e.g., 'sass', 'esbuild').
        project_root: Optional project root directory to search for
            local node_modules installations.

    Returns:
        Full path to the executable if found, None otherwise.

    Examples:
        >>> find_executable('sass', Path('/my/project'))
        '/my/project/node_modules/.bin/sass'
    """
    found = shutil.which(name)
    if found:
        return found

    if project_root is not None:
        local = project_root / "node_modules" / ".bin" / name
        if local.exists():
            return str(local)

    return None


def run_tool(
    cmd: list[str],
    step: str,
    kind: str,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess:
    """Run an external tool, turning a non-zero exit into a step failure.

    Args:
        cmd: Command line; ``cmd[0]`` is the executable path.
        step: Name of the step running the tool.
        kind: Failure category for the StepExecutionError.
        cwd: Working directory.
        env: Extra environment variables.

    Returns:
        The completed process.

    Raises:
        StepExecutionError: If the tool exits with a non-zero status.
    """
    full_env = {**os.environ, **env} if env else None
    result = subprocess.run(cmd, capture_output=True, text=True, cwd=cwd, env=full_env)
    if result.returncode != 0:
        tool = Path(cmd[0]).name
        detail = (result.stderr or result.stdout).strip()
        raise StepExecutionError(step, f"{tool} failed: {detail}", kind=kind)
    return result
