"""folderkb configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (FOLDERKB_EMBEDDING_MODEL, FOLDERKB_STORAGE_BACKEND)
  3. Per-project folderkb.yaml  (next to .folderkb.db)
  4. Global ~/.folderkb/config.yaml  (defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from folderkb.errors import ValidationError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".folderkb"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "folderkb.yaml"

# Key names that look like API keys are forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or max_rag_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "chunking", "context", "scope", "storage", "ingest"]
)

_STORAGE_BACKENDS: frozenset[str] = frozenset(["sqlite", "memory"])


class ConfigError(ValidationError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model (folderkb.yaml: embedding:)."""

    model: str = "local/hashing-bow"
    seed: int = 0


@dataclass
class ChunkingCfg:
    """Sentence chunker limits (folderkb.yaml: chunking:).

    Attributes:
        max_tokens: Estimated-token ceiling per chunk.
        overlap: Trailing sentences carried into the next chunk.
        min_chunk_size: Smallest trailing remainder kept as a chunk. A
            document shorter than this produces no chunks.
    """

    max_tokens: int = 512
    overlap: int = 50
    min_chunk_size: int = 100


@dataclass
class ContextCfg:
    """Default assembly limits (folderkb.yaml: context:)."""

    max_tokens: int = 8000
    max_messages: int = 20
    reserve_tokens: int = 1500


@dataclass
class ScopeCfg:
    """Defaults for every scope's retrieval settings (folderkb.yaml: scope:)."""

    include_rag_data: bool = True
    max_rag_tokens: int = 2000
    similarity_threshold: float = 0.7
    max_conversation_tokens: int = 4000


@dataclass
class StorageCfg:
    """Store backend (folderkb.yaml: storage:)."""

    backend: str = "sqlite"  # sqlite | memory
    path: str = ".folderkb.db"


@dataclass
class IngestCfg:
    """Background ingestion (folderkb.yaml: ingest:)."""

    max_workers: int = 2


@dataclass
class FolderKBConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    context: ContextCfg = field(default_factory=ContextCfg)
    scope: ScopeCfg = field(default_factory=ScopeCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in '{path}': {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config '{path}' must be a mapping, got {type(raw).__name__}")
    return raw


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _parse_section(name: str, raw: Any, defaults: Any) -> Any:
    """Build a section dataclass of the same type as *defaults* from *raw*.

    Each value is coerced to the type of its default; unknown keys are ignored.
    """
    if not isinstance(raw, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    values: dict[str, Any] = {}
    for f in fields(defaults):
        default = getattr(defaults, f.name)
        if f.name not in raw:
            values[f.name] = default
            continue
        value = raw[f.name]
        try:
            if isinstance(default, bool):
                values[f.name] = value if isinstance(value, bool) else str(value).lower() in ("1", "true", "yes")
            else:
                values[f.name] = type(default)(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value for {name}.{f.name}: {value!r}") from exc
    return type(defaults)(**values)


def _cfg_from_dict(data: dict[str, Any]) -> FolderKBConfig:
    """Build a *FolderKBConfig* from a merged raw YAML dict."""
    cfg = FolderKBConfig()
    for section in _KNOWN_SECTIONS:
        if section in data:
            setattr(cfg, section, _parse_section(section, data[section], getattr(cfg, section)))
    return cfg


def _validate(cfg: FolderKBConfig) -> None:
    if cfg.storage.backend not in _STORAGE_BACKENDS:
        raise ConfigError(
            f"storage.backend must be one of {sorted(_STORAGE_BACKENDS)}, "
            f"got '{cfg.storage.backend}'"
        )
    if not 0.0 <= cfg.scope.similarity_threshold <= 1.0:
        raise ConfigError("scope.similarity_threshold must be within [0, 1]")
    if cfg.ingest.max_workers < 1:
        raise ConfigError("ingest.max_workers must be >= 1")


def _apply_env_overrides(cfg: FolderKBConfig) -> FolderKBConfig:
    """Apply FOLDERKB_* environment variable overrides."""
    if model := os.environ.get("FOLDERKB_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if backend := os.environ.get("FOLDERKB_STORAGE_BACKEND"):
        cfg.storage.backend = backend.lower()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> FolderKBConfig:
    """Load and return a merged *FolderKBConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *folderkb.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, a value
            has the wrong type, or the storage backend is unknown.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)
    _validate(cfg)

    return cfg
