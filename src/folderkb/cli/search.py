"""folderkb search / context — query a folder's knowledge base.

  search   Rank the folder's chunks against a query.
  context  Show the message context a model would receive for a query:
           the scope-isolated system prompt plus budget figures.

Usage:
  folderkb search  -f 1 -o alice "total amount due"
  folderkb context -f 1 -o alice "total amount due" --model gpt-4o
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from folderkb.cli.common import DbOpt, FolderOpt, OwnerOpt, console, load_cfg, make_scope, open_kb, resolve_db
from folderkb.rag.assembler import Message, TokenLimits, get_model_limits, validate_context
from folderkb.rag.orchestrator import FolderContextOrchestrator, ScopeConfig

_PREVIEW_CHARS = 80


def search_cmd(
    query: Annotated[str, typer.Argument(help="Search text.")],
    folder: FolderOpt,
    owner: OwnerOpt,
    k: Annotated[int, typer.Option("--k", "-k", help="Number of results.")] = 5,
    db: DbOpt = None,
) -> None:
    """Show the chunks most similar to QUERY within one folder."""
    cfg = load_cfg()
    scope = make_scope(folder, owner)

    with open_kb(resolve_db(db, cfg), cfg) as kb:
        results = kb.search_similar_content(scope, query, k=k)

    if not results:
        console.print("[dim]No matching content in this folder.[/]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Similarity", justify="right")
    table.add_column("Source")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Content")
    for r in results:
        preview = r.chunk.content.replace("\n", " ")
        if len(preview) > _PREVIEW_CHARS:
            preview = preview[:_PREVIEW_CHARS] + "…"
        table.add_row(f"{r.similarity:.3f}", r.chunk.metadata.document_name, str(r.chunk.chunk_index), preview)
    console.print(table)


def context_cmd(
    query: Annotated[str, typer.Argument(help="User message to answer.")],
    folder: FolderOpt,
    owner: OwnerOpt,
    base_prompt: Annotated[
        str,
        typer.Option("--base-prompt", help="System prompt the folder context extends."),
    ] = "You are a helpful assistant.",
    model: Annotated[
        str | None,
        typer.Option("--model", help="Use this model's preset limits (e.g. gpt-4o)."),
    ] = None,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", help="Override the similarity threshold."),
    ] = None,
    db: DbOpt = None,
) -> None:
    """Build and show the scope-isolated context for QUERY."""
    cfg = load_cfg()
    scope = make_scope(folder, owner)

    if model:
        limits = get_model_limits(model)
    else:
        limits = TokenLimits(
            max_tokens=cfg.context.max_tokens,
            max_messages=cfg.context.max_messages,
            reserve_tokens=cfg.context.reserve_tokens,
        )
    defaults = ScopeConfig(
        include_rag_data=cfg.scope.include_rag_data,
        max_rag_tokens=cfg.scope.max_rag_tokens,
        similarity_threshold=cfg.scope.similarity_threshold,
        max_conversation_tokens=cfg.scope.max_conversation_tokens,
    )

    with open_kb(resolve_db(db, cfg), cfg) as kb:
        orchestrator = FolderContextOrchestrator(kb, defaults)
        if threshold is not None:
            orchestrator.set_scope_config(scope, similarity_threshold=threshold)
        context = orchestrator.build_folder_context(
            scope,
            [Message(role="user", content=query)],
            base_prompt=base_prompt,
            limits=limits,
        )

    console.print(Panel(context.messages[0].content, title="[bold]System prompt[/]", expand=False))
    console.print(
        f"Messages: [bold]{len(context.messages)}[/]  |  "
        f"Tokens: [bold]{context.total_tokens:,}[/]  |  "
        f"Truncated: {'[yellow]yes[/]' if context.truncated else 'no'}"
    )
    if model:
        check = validate_context(context, model)
        if not check.valid:
            console.print(f"[yellow]⚠[/] {check.reason}")
