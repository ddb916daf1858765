"""``folio`` command line: ``folio build`` and ``folio serve``.

Both commands work on the project in the current directory. A failed build
prints the offending file and the reason, then exits with status 1.
"""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path

import click

from . import __version__

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "loggers": {
        "folio": {"level": "INFO", "handlers": ["console"], "propagate": False},
    },
}


def _relative(path: Path, root: Path) -> Path:
    try:
        return Path(path).relative_to(root)
    except ValueError:
        return Path(path)


def _report_failure(heading: str, exc, project_root: Path) -> None:
    click.secho(heading, fg="red", bold=True, err=True)
    if exc.source_path is not None:
        click.secho(f"  File: {_relative(exc.source_path, project_root)}", fg="yellow", err=True)
    click.secho(f"  Error: {exc.message}", err=True)


@click.group()
@click.version_option(version=__version__, prog_name="folio")
@click.option("-v", "--verbose", is_flag=True, help="Also log each rendered page.")
def cli(verbose: bool):
    """Build and preview a Folio site."""
    logging.getLogger("folio").setLevel(logging.DEBUG if verbose else logging.INFO)


@cli.command()
@click.option("--drafts", is_flag=True, help="Publish pages whose name starts with an underscore.")
def build(drafts: bool):
    """Write the site into the configured output directory."""
    from .build import BuildError, build_site

    root = Path.cwd()
    try:
        result = build_site(root, include_drafts=drafts)
    except FileNotFoundError as exc:
        raise click.ClickException(str(exc)) from None
    except BuildError as exc:
        _report_failure("Build failed:", exc, root)
        raise SystemExit(1) from None
    click.echo(f"Built {len(result.pages)} pages into {result.output_dir}")


@cli.command()
@click.option("--drafts", is_flag=True, help="Publish pages whose name starts with an underscore.")
@click.option("--port", type=int, default=None, help="HTTP port; overrides `port` in folio.yaml.")
@click.option("--ws-port", type=int, default=None, help="Live reload port; defaults to the HTTP port + 1.")
def serve(drafts: bool, port: int | None, ws_port: int | None):
    """Preview the site locally, rebuilding on every change."""
    from .build import BuildError
    from .server import DevServer

    root = Path.cwd()
    try:
        DevServer(root, http_port=port, ws_port=ws_port).start(include_drafts=drafts)
    except BuildError as exc:
        _report_failure("Initial build failed:", exc, root)
        raise SystemExit(1) from None


def main():
    logging.config.dictConfig(LOGGING_CONFIG)
    cli()
