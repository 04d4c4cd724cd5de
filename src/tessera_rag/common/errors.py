"""tessera_rag.common.errors

Exception hierarchy shared across the chunking and retrieval layers.

All errors raised by the package derive from :class:`RAGError`, so callers
can catch a single base type at their outer boundary while still branching
on the concrete failure where it matters.

Classes
-------
RAGError
    Base class for all package errors.
ConfigurationError
    Invalid component configuration detected at construction time.
ValidationError
    Invalid caller input (empty content, blank query, bad search options).
EmbeddingError
    Failure reported by an embedding provider.
StoreError
    Failure reported by a vector store backend.
"""

from __future__ import annotations

from typing import Any, Optional


class RAGError(Exception):
    """Base class for all tessera_rag errors."""


class ConfigurationError(RAGError):
    """Raised when a component is constructed with invalid settings."""


class ValidationError(RAGError):
    """Raised when caller-supplied input fails validation.

    Parameters
    ----------
    message : str
        Human-readable description of the failure.
    field : str or None, optional
        Name of the offending field, when known.
    value : Any, optional
        The rejected value, when known.
    """

    def __init__(
            self,
            message: str,
            field: Optional[str] = None,
            value: Any = None,
        ):
        super().__init__(message)
        self.field = field
        self.value = value


class EmbeddingError(RAGError):
    """Raised when an embedding provider fails.

    Parameters
    ----------
    message : str
        Human-readable description of the failure.
    provider : str or None, optional
        Name of the embedding provider that failed.
    tokens_used : int or None, optional
        Tokens consumed before the failure, when reported.
    status_code : int or None, optional
        HTTP status code reported by the provider, when available. Used to
        decide whether a retry is worthwhile.
    """

    def __init__(
            self,
            message: str,
            provider: Optional[str] = None,
            tokens_used: Optional[int] = None,
            status_code: Optional[int] = None,
        ):
        super().__init__(message)
        self.provider = provider
        self.tokens_used = tokens_used
        self.status_code = status_code


class StoreError(RAGError):
    """Raised when a vector store operation fails.

    Parameters
    ----------
    message : str
        Human-readable description of the failure.
    operation : str or None, optional
        Store operation that failed (e.g. ``"search"``, ``"upsert"``).
    code : str or None, optional
        Backend-specific error code, when available.
    """

    def __init__(
            self,
            message: str,
            operation: Optional[str] = None,
            code: Optional[str] = None,
        ):
        super().__init__(message)
        self.operation = operation
        self.code = code


__all__ = [
    "RAGError",
    "ConfigurationError",
    "ValidationError",
    "EmbeddingError",
    "StoreError",
]
