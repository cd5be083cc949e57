"""folderkb ingest — add files to a folder's knowledge base.

Each file is stored as a document, then chunked, embedded and merged into
the folder's knowledge graph. The command waits for that background work
so it can report chunk and embedding counts.

Usage:
  folderkb ingest --folder 1 --owner alice --source invoice.txt
  folderkb ingest -f 1 -o alice -s notes.md -s manual.pdf
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from folderkb.cli.common import DbOpt, FolderOpt, OwnerOpt, console, load_cfg, make_scope, open_kb, resolve_db
from folderkb.cli.errors import err_source_not_found, warn_embedding_failures, warn_no_chunks
from folderkb.errors import FolderKBError
from folderkb.ingest.pipeline import IngestionStatus


def ingest_cmd(
    folder: FolderOpt,
    owner: OwnerOpt,
    source: Annotated[
        list[Path] | None,
        typer.Option("--source", "-s", help="File to ingest (repeatable)."),
    ] = None,
    db: DbOpt = None,
) -> None:
    """Ingest one or more files into a folder's knowledge base."""
    sources = source or []
    if not sources:
        console.print("[red]Error:[/] No --source specified. Use --source PATH.")
        raise typer.Exit(1)

    cfg = load_cfg()
    scope = make_scope(folder, owner)
    failures = 0

    with open_kb(resolve_db(db, cfg), cfg) as kb:
        for path in sources:
            console.print(f"\n[bold]→ {path}[/]")
            if not path.is_file():
                console.print(err_source_not_found(str(path)))
                failures += 1
                continue

            try:
                doc = kb.add_file(scope, path)
            except FolderKBError as exc:
                console.print(f"  [red]✗ {exc}[/]")
                failures += 1
                continue

            with Progress(SpinnerColumn(), TextColumn("{task.description}"), console=console, transient=True) as progress:
                progress.add_task("  chunking and embedding…", total=None)
                reports = kb.wait_for_ingestion(doc.id)

            report = reports[0] if reports else None
            if report is None or report.status is IngestionStatus.FAILED:
                reason = report.error if report else "no ingestion report"
                console.print(f"  [red]✗ Ingestion failed:[/] {reason}")
                failures += 1
                continue

            console.print(
                f"  [green]✓[/] {doc.name} ({doc.type.value}, {doc.size:,} bytes)  "
                f"chunks: {report.chunk_count}  embedded: {report.embedded_count}"
            )
            console.print(f"  [dim]id: {doc.id}[/]")
            if report.chunk_count == 0:
                console.print(warn_no_chunks(cfg.chunking.min_chunk_size))
            if report.failed_embeddings:
                console.print(warn_embedding_failures(len(report.failed_embeddings)))

    if failures:
        raise typer.Exit(1)
