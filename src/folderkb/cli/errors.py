"""folderkb rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from folderkb.cli.errors import err_no_db
    console.print(err_no_db(".folderkb.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from folderkb.rag.llm_client import provider_of


def err_no_api_key(model: str) -> str:
    """No API key for the provider of *model*."""
    provider = provider_of(model)
    env_var = f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}' (embedding model '{model}').\n"
        f"  Set:  export {env_var}=sk-...\n"
        "  Or use a local model:  export FOLDERKB_EMBEDDING_MODEL=local/hashing-bow"
    )


def err_no_db(db_path: str = ".folderkb.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  folderkb ingest --source <file> --folder <id> --owner <user>"
    )


def err_config(message: str) -> str:
    """Config file rejected."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix folderkb.yaml or ~/.folderkb/config.yaml and retry."
    )


def err_bad_scope(message: str) -> str:
    return (
        f"[red]Error:[/] Invalid scope: {message}\n"
        "  --folder must be a non-negative integer and --owner a non-empty user id."
    )


def err_source_not_found(source: str) -> str:
    """Input file does not exist."""
    return (
        f"[yellow]Source not found:[/] '{source}' is not a readable file.\n"
        "  Check the path and retry."
    )


def err_document_not_found(document_id: str) -> str:
    """Document id unknown in the selected scope."""
    return (
        f"[yellow]Document not found:[/] '{document_id}' is not in this folder.\n"
        "  Run:  folderkb docs --folder <id> --owner <user>  to list documents."
    )


def err_unknown_model(message: str) -> str:
    """Configured embedding model is not registered."""
    return (
        f"[red]Error:[/] {message}\n"
        "  Set:  embedding.model in folderkb.yaml to one of the listed models,\n"
        "  or:   export FOLDERKB_EMBEDDING_MODEL=local/hashing-bow"
    )


def warn_embedding_failures(failed: int) -> str:
    """Some chunks could not be embedded."""
    return (
        f"[yellow]⚠[/] {failed} chunk(s) could not be embedded and will not be searchable.\n"
        "  Re-run with --verbose to see the cause, then remove and re-ingest the document."
    )


def warn_no_chunks(min_chunk_size: int) -> str:
    """Document was stored but produced no chunks."""
    return (
        f"[yellow]⚠[/] No chunks: the text is shorter than chunking.min_chunk_size ({min_chunk_size}).\n"
        "  Set:  chunking.min_chunk_size in folderkb.yaml to a lower value, then remove and re-ingest."
    )
