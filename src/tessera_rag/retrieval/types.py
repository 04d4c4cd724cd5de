"""tessera_rag.retrieval.types

Shared type definitions for the retrieval layer.

This module defines the protocols the pipelines depend on, decoupling them
from concrete embedding providers and vector store backends. Any object
with matching methods can be passed in, including test doubles.

Classes
-------
Embedder
    Protocol for turning text into embedding vectors.
VectorStore
    Protocol for similarity search over stored chunk records.
StoreRecord
    A chunk record ready to be written to a vector store.
StoredDocument
    A document reassembled from its stored chunk records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from tessera_rag.common.schemas import BatchEmbeddingResult, EmbeddingResult, SearchCandidate


@dataclass
class StoreRecord:
    """A chunk record to be persisted by a vector store.

    Attributes
    ----------
    id : str
        Record identifier, unique within the store.
    content : str
        Chunk text.
    embedding : list[float]
        Embedding vector for ``content``.
    metadata : Dict[str, Any]
        Metadata stored alongside the vector and used by search filters.
    """

    id: str
    content: str
    embedding: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StoredDocument:
    """A document read back from a vector store.

    Attributes
    ----------
    id : str
        Document identifier.
    content : str
        Full document text as it was ingested.
    metadata : Dict[str, Any]
        Caller metadata, without the per-chunk bookkeeping keys.
    records : List[StoreRecord]
        Chunk records ordered by chunk index.
    """

    id: str
    content: str
    metadata: Dict[str, Any]
    records: List[StoreRecord] = field(default_factory=list)


class Embedder(Protocol):
    """Protocol defining the embedding interface.

    Implementations raise :class:`~tessera_rag.common.errors.ValidationError`
    for empty text and :class:`~tessera_rag.common.errors.EmbeddingError` for
    provider failures.
    """

    def embed(self, text: str) -> EmbeddingResult:
        """Embed a single text."""
        ...

    def embed_batch(self, texts: Sequence[str]) -> BatchEmbeddingResult:
        """Embed a batch of texts, preserving input order."""
        ...

    async def aembed(self, text: str) -> EmbeddingResult:
        """Asynchronously embed a single text."""
        ...


class VectorStore(Protocol):
    """Protocol defining the vector store interface used by the pipelines.

    ``search`` returns candidates sorted by similarity, highest first.
    ``filters`` are AND-ed across keys; nested values are matched as
    structural containment against candidate metadata. ``min_similarity``,
    when given, is expected to be enforced by the store.
    """

    def search(
            self,
            query_vector: Sequence[float],
            *,
            limit: int,
            min_similarity: Optional[float] = None,
            filters: Optional[Mapping[str, Any]] = None,
        ) -> List[SearchCandidate]:
        """Return the stored records closest to ``query_vector``."""
        ...

    async def asearch(
            self,
            query_vector: Sequence[float],
            *,
            limit: int,
            min_similarity: Optional[float] = None,
            filters: Optional[Mapping[str, Any]] = None,
        ) -> List[SearchCandidate]:
        """Asynchronously return the stored records closest to ``query_vector``."""
        ...

    def upsert(self, records: Sequence[StoreRecord]) -> None:
        """Insert or replace records."""
        ...

    def delete_document(self, document_id: str) -> bool:
        """Delete every record of a document; return whether any existed."""
        ...

    def get_document(self, document_id: str) -> List[StoreRecord]:
        """Return the records of a document ordered by chunk index."""
        ...
