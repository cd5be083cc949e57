"""Options and helpers shared by every folderkb command."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator

import typer
from rich.console import Console

from folderkb.cli.errors import err_bad_scope, err_config, err_no_api_key, err_unknown_model
from folderkb.config import ConfigError, FolderKBConfig, load_config
from folderkb.db.models import Scope
from folderkb.errors import ValidationError
from folderkb.service import KnowledgeBase

console = Console()

FolderOpt = Annotated[int, typer.Option("--folder", "-f", help="Folder id of the scope.")]
OwnerOpt = Annotated[str, typer.Option("--owner", "-o", help="Owner (user) id of the scope.")]
DbOpt = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the sqlite database (default: storage.path from config)."),
]


def load_cfg() -> FolderKBConfig:
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def make_scope(folder: int, owner: str) -> Scope:
    try:
        return Scope(folder_id=folder, owner_id=owner)
    except ValidationError as exc:
        console.print(err_bad_scope(str(exc)))
        raise typer.Exit(1) from exc


def resolve_db(db: Path | None, cfg: FolderKBConfig) -> Path:
    return db if db is not None else Path(cfg.storage.path)


@contextmanager
def open_kb(db: Path, cfg: FolderKBConfig) -> Iterator[KnowledgeBase]:
    """Open the knowledge base at *db*; closed (after pending ingestion) on exit."""
    try:
        kb = KnowledgeBase.from_config(cfg, db_path=db)
    except EnvironmentError as exc:
        console.print(err_no_api_key(cfg.embedding.model))
        raise typer.Exit(1) from exc
    except ValidationError as exc:
        console.print(err_unknown_model(str(exc)))
        raise typer.Exit(1) from exc
    try:
        yield kb
    finally:
        kb.close()
