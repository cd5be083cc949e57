"""folderkb CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from folderkb.cli.common import console
from folderkb.cli.ingest import ingest_cmd
from folderkb.cli.remove import remove_cmd
from folderkb.cli.search import context_cmd, search_cmd
from folderkb.cli.status import docs_cmd, graph_cmd, status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("folderkb")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"folderkb {_installed_version()}")
        raise typer.Exit()


def setup_logging(verbose: bool = False) -> None:
    """Route library logging through Rich; DEBUG when *verbose*."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )
    # Reduce noise from external libraries
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


app = typer.Typer(
    name="folderkb",
    help=(
        "folderkb — per-folder knowledge bases with scope-isolated retrieval.\n\n"
        "  folderkb ingest   Add files to a folder.\n"
        "  folderkb context  Show the prompt context a model would get for a query."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """folderkb — per-folder knowledge bases with scope-isolated retrieval."""
    setup_logging(verbose)


app.command("ingest")(ingest_cmd)
app.command("docs")(docs_cmd)
app.command("remove")(remove_cmd)
app.command("search")(search_cmd)
app.command("context")(context_cmd)
app.command("graph")(graph_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed folderkb version."""
    typer.echo(f"folderkb {_installed_version()}")


if __name__ == "__main__":
    app()
