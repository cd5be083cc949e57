"""folderkb docs / status / graph — inspect a folder's knowledge base."""

from __future__ import annotations

from collections import Counter
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from folderkb.cli.common import DbOpt, FolderOpt, OwnerOpt, console, load_cfg, make_scope, open_kb, resolve_db
from folderkb.db.models import NodeType
from folderkb.rag.orchestrator import FolderContextOrchestrator


def docs_cmd(folder: FolderOpt, owner: OwnerOpt, db: DbOpt = None) -> None:
    """List the documents of a folder."""
    cfg = load_cfg()
    scope = make_scope(folder, owner)
    with open_kb(resolve_db(db, cfg), cfg) as kb:
        documents = kb.get_documents(scope)

    if not documents:
        console.print("[dim]No documents in this folder.[/]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Id", style="dim", no_wrap=True)
    table.add_column("Name", no_wrap=True)
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Added", style="dim")
    for doc in documents:
        table.add_row(
            doc.id, doc.name, doc.type.value, f"{doc.size:,}", doc.created_at.strftime("%Y-%m-%d %H:%M")
        )
    console.print(table)


def status_cmd(folder: FolderOpt, owner: OwnerOpt, db: DbOpt = None) -> None:
    """Show document, chunk and embedding counts for a folder."""
    cfg = load_cfg()
    scope = make_scope(folder, owner)
    db_path = resolve_db(db, cfg)

    with open_kb(db_path, cfg) as kb:
        stats = FolderContextOrchestrator(kb).get_scope_stats(scope)

    lines = [
        f"Scope:      folder [bold]{scope.folder_id}[/], owner [bold]{scope.owner_id}[/]",
        f"Database:   {db_path if cfg.storage.backend == 'sqlite' else '(memory)'}",
        f"Embedding:  {cfg.embedding.model}",
        f"Documents: [bold]{stats.document_count}[/]  |  "
        f"Chunks: [bold]{stats.chunk_count:,}[/]  |  "
        f"Embedded: [bold]{stats.embedded_chunk_count:,}[/]  |  "
        f"Tokens: [bold]{stats.total_tokens:,}[/]",
    ]
    if stats.last_updated:
        lines.append(f"Last update: [dim]{stats.last_updated:%Y-%m-%d %H:%M}[/]")
    else:
        lines.append("[dim]No documents ingested yet.[/]")
    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))


def graph_cmd(
    folder: FolderOpt,
    owner: OwnerOpt,
    top: Annotated[int, typer.Option("--top", help="Most frequent concepts to show.")] = 10,
    db: DbOpt = None,
) -> None:
    """Summarise a folder's knowledge graph."""
    cfg = load_cfg()
    scope = make_scope(folder, owner)
    with open_kb(resolve_db(db, cfg), cfg) as kb:
        graph = kb.get_knowledge_graph(scope)

    if graph is None or not graph.nodes:
        console.print("[dim]No knowledge graph for this folder yet.[/]")
        return

    documents = [n for n in graph.nodes if n.type is NodeType.DOCUMENT]
    concepts = Counter(n.label for n in graph.nodes if n.type is NodeType.CONCEPT)

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Concept", style="bold")
    table.add_column("Chunks", justify="right")
    for label, count in concepts.most_common(top):
        table.add_row(label, str(count))

    console.print(
        f"Documents: [bold]{len(documents)}[/]  |  "
        f"Nodes: [bold]{len(graph.nodes)}[/]  |  "
        f"Edges: [bold]{len(graph.edges)}[/]"
    )
    console.print(Panel(table, title="[bold]Top concepts[/]", expand=False))
