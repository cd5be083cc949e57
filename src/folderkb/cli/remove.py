"""folderkb remove — delete documents from a folder.

Removes a document with its embeddings and chunks, and prunes its nodes
from the folder's knowledge graph. ``--all`` empties the whole folder.

Usage:
  folderkb remove -f 1 -o alice --doc 3f2a…
  folderkb remove -f 1 -o alice --all --yes
"""

from __future__ import annotations

from typing import Annotated

import typer

from folderkb.cli.common import DbOpt, FolderOpt, OwnerOpt, console, load_cfg, make_scope, open_kb, resolve_db
from folderkb.cli.errors import err_document_not_found, err_no_db
from folderkb.errors import NotFoundError


def remove_cmd(
    folder: FolderOpt,
    owner: OwnerOpt,
    doc: Annotated[
        str | None,
        typer.Option("--doc", "-d", help="Document id to remove."),
    ] = None,
    all_docs: Annotated[
        bool,
        typer.Option("--all", help="Remove every document of the folder."),
    ] = False,
    db: DbOpt = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a document (or the whole folder) and all derived data."""
    if (doc is None) == (not all_docs):
        console.print("[red]Error:[/] Specify exactly one of --doc ID or --all.")
        raise typer.Exit(1)

    cfg = load_cfg()
    scope = make_scope(folder, owner)
    db_path = resolve_db(db, cfg)
    if cfg.storage.backend == "sqlite" and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    with open_kb(db_path, cfg) as kb:
        if all_docs:
            count = len(kb.get_documents(scope))
            console.print(f"\nRemove all [bold]{count}[/] document(s) of folder {scope.folder_id}")
            if not yes and not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)
            removed = kb.cleanup_scope(scope)
            console.print(f"\n[green]✓[/] Removed {removed} document(s) and the folder graph")
            return

        try:
            document = kb.get_document(scope, doc)
        except NotFoundError:
            console.print(err_document_not_found(doc))
            raise typer.Exit(0)

        chunk_count = len(kb.get_chunks(scope, document.id))
        console.print(f"\nRemove document: [bold]{document.name}[/]")
        console.print(f"  Chunks: {chunk_count}  |  Size: {document.size:,} bytes")
        if not yes and not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        kb.delete_document(scope, document.id)
        console.print(f"\n[green]✓[/] Removed: {document.name}")
        console.print(f"  {chunk_count} chunks and their embeddings deleted")
