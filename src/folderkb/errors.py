"""Error taxonomy shared by every folderkb layer.

Read paths (search, listings, RAG context) catch ``FolderKBError`` and degrade
to empty results. Write paths let these propagate to the caller.
"""

from __future__ import annotations


class FolderKBError(Exception):
    """Base class for all folderkb errors."""


class ValidationError(FolderKBError, ValueError):
    """Raised for malformed input: unknown model, bad scope, bad metadata."""


class NotFoundError(FolderKBError, LookupError):
    """Raised when a document or chunk does not exist in the requested scope."""


class StorageError(FolderKBError):
    """Raised when the backing store is unavailable or a write fails."""


class ComputationError(FolderKBError, ArithmeticError):
    """Raised when vector math is undefined (zero magnitude, bad dimensions)."""
