"""
Common building blocks shared across the chunking and retrieval layers.

This package provides small, widely-used primitives (schemas, the error
hierarchy, input validation and token counting) intended to be imported by
multiple layers of the system.

Classes
-------
ChunkOptions
    Validated sizing options for a chunking strategy.
Chunk
    A bounded text fragment produced by a chunker.
SearchCandidate
    A stored chunk record paired with a similarity score.
EmbeddingResult, BatchEmbeddingResult
    Embedding vectors with token accounting.
SearchOptions, DocumentInput
    Validated caller inputs.

Notes
-----
- ``metadata`` fields are untyped mappings; read them with ``dict.get`` and a
  default.
"""
from __future__ import annotations

from .errors import (
    ConfigurationError,
    EmbeddingError,
    RAGError,
    StoreError,
    ValidationError,
)
from .schemas import (
    DEFAULT_DOCUMENT_KEY,
    BatchEmbeddingResult,
    Chunk,
    ChunkOptions,
    EmbeddingResult,
    SearchCandidate,
)
from .validation import DocumentInput, SearchOptions

__all__ = [
    "RAGError",
    "ConfigurationError",
    "ValidationError",
    "EmbeddingError",
    "StoreError",
    "DEFAULT_DOCUMENT_KEY",
    "Chunk",
    "ChunkOptions",
    "SearchCandidate",
    "EmbeddingResult",
    "BatchEmbeddingResult",
    "SearchOptions",
    "DocumentInput",
]
