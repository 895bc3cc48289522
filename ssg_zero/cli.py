"""Command-line interface for ssg-zero.

This module defines the CLI commands using the Click framework.

Commands:
- build: Build the site into the output directory.
- serve: Serve the output directory.
- dev: Build, serve with live reload, and rebuild on change.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from . import __version__
from .log import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="ssg-zero")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output")
def cli(verbose: bool):
    """ssg-zero static site toolkit."""
    setup_logging(verbose)


@cli.command()
def build():
    """Build the site into the output directory."""
    project_root = Path.cwd()
    from .build import Site
    from .errors import BuildError

    site = Site(project_root)
    try:
        result = asyncio.run(site.build(clean=True))
    except BuildError as exc:
        _report_build_error(project_root, exc)
        raise SystemExit(1) from None
    except FileNotFoundError as exc:
        raise click.ClickException(str(exc)) from None
    click.echo(f"Built {len(result.outputs)} files into {result.output_dir}")


@cli.command()
@click.option(
    "--port",
    "-p",
    type=int,
    required=False,
    help="Port to serve on (overrides ssg_zero.yaml)",
)
def serve(port: int | None):
    """Serve the output directory."""
    project_root = Path.cwd()
    from .build import load_config
    from .server import DEFAULT_PORT, FileServer, attach_logging

    config = load_config(project_root)
    output_dir = project_root / config.get("output_dir", "output")
    if not output_dir.is_dir():
        raise click.ClickException(
            f"No output directory at {output_dir}. Run 'ssg-zero build' first."
        )
    server = FileServer(output_dir, port=port or int(config.get("port", DEFAULT_PORT)))
    attach_logging(server)
    server.serve_forever()


@cli.command()
@click.option(
    "--port",
    "-p",
    type=int,
    required=False,
    help="Port to serve on (overrides ssg_zero.yaml)",
)
def dev(port: int | None):
    """Watch & rebuild your static site, with live reload."""
    project_root = Path.cwd()
    from .dev import DevServer

    server = DevServer(project_root, port=port)
    server.start()


def _report_build_error(project_root: Path, exc) -> None:
    try:
        rel_path = exc.source_path.relative_to(project_root)
    except ValueError:
        rel_path = exc.source_path
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)


def main():
    """Entry point for the CLI application."""
    cli()
