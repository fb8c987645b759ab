"""Command-line interface for Stitch.

This module defines the CLI commands using the Click framework.

Commands:
- build: Run the build graph once.
- watch (alias: default): Build, then serve the output and rebuild on change.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from . import __version__
from .config import ConfigLoadError, load_config
from .executor import RunResult


@click.group()
@click.version_option(version=__version__, prog_name="stitch")
def cli():
    """Stitch static site build orchestrator."""


def _common_options(func):
    func = click.option(
        "--production", is_flag=True, help="Minify output and drop source maps"
    )(func)
    func = click.option(
        "--root",
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help="Project root containing config.yml (defaults to the current directory)",
    )(func)
    return func


def _load(root: Path | None, production: bool):
    project_root = root or Path.cwd()
    try:
        return load_config(project_root, production=production)
    except ConfigLoadError as exc:
        click.echo(click.style("Configuration error:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  File: {exc.path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        raise SystemExit(1) from None


def _report_failure(result: RunResult) -> None:
    error = result.error
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  Step: {error.step} ({error.kind})", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {error.message}", fg="white"), err=True)


@cli.command()
@_common_options
def build(production: bool, root: Path | None):
    """Build the site into the output directory."""
    config = _load(root, production)
    from .pipeline import Pipeline

    result = Pipeline(config).build()
    if not result.ok:
        _report_failure(result)
        raise SystemExit(1)
    click.echo(f"Built site into {config.output_dir}")


@cli.command()
@_common_options
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port for the preview server (overrides config.yml PORT)",
)
def watch(production: bool, root: Path | None, port: int | None):
    """Build, serve the output, and rebuild on change."""
    config = _load(root, production)
    from .pipeline import Pipeline
    from .server import DevSession, PortUnavailable

    pipeline = Pipeline(config)
    result = pipeline.build()
    if not result.ok:
        _report_failure(result)
        raise SystemExit(1)

    session = DevSession()
    try:
        session.start(config.output_dir, port or config.port)
    except PortUnavailable as exc:
        raise click.ClickException(str(exc)) from None
    try:
        asyncio.run(_watch_forever(pipeline, session))
    except KeyboardInterrupt:
        pass
    finally:
        session.stop()


async def _watch_forever(pipeline, session) -> None:
    from .scheduler import RebuildScheduler

    scheduler = RebuildScheduler(pipeline.router(), pipeline.executor, session.notify)
    scheduler.attach()
    session.watch(pipeline.config.project_root, scheduler.submit, pipeline.config.assets)
    click.echo("Watching for changes. Press Ctrl+C to stop.")
    await asyncio.Future()


cli.add_command(watch, name="default")


def main():
    """Entry point for the CLI application."""
    cli()
