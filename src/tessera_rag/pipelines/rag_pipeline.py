"""tessera_rag.pipelines.rag_pipeline

End-to-end document ingestion and search facade.

This module defines the :class:`RAGPipeline`, which coordinates chunking,
batch embedding and vector store writes at ingestion time, and delegates
query-time work to a :class:`~tessera_rag.pipelines.retrieval_pipeline.RetrievalPipeline`.

Classes
-------
RAGPipeline
    Orchestrates validation -> chunking -> embedding -> upsert, document
    reads, and search.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from tessera_rag.common.errors import RAGError, ValidationError
from tessera_rag.common.schemas import CHUNK_METADATA_KEYS, DEFAULT_DOCUMENT_KEY, SearchCandidate
from tessera_rag.common.validation import SearchOptions, validate_document_input, validate_non_empty_string
from tessera_rag.pipelines.retrieval_pipeline import RetrievalPipeline
from tessera_rag.retrieval.text_splitter import ChunkingStrategy
from tessera_rag.retrieval.types import Embedder, StoreRecord, StoredDocument, VectorStore
from tessera_rag.retrieval.vector_store import DOCUMENT_ID_KEY

logger = logging.getLogger(__name__)


class RAGPipeline:
    """Document ingestion and retrieval orchestrator.

    This class wires together:
    - a chunker to split documents into overlapping chunks
    - an embedder to vectorise chunks and queries
    - a vector store to persist and search chunk records
    - a retrieval pipeline to rank query results

    Every stored chunk carries the full document text under the document key
    (``"original_content"`` by default), so the diversity cap groups chunks
    by the document they came from.

    Parameters
    ----------
    chunker : ChunkingStrategy
        Strategy used to split documents.
    embedder : Embedder
        Component used for both chunk and query embeddings.
    vector_store : VectorStore
        Store receiving chunk records.
    retrieval : RetrievalPipeline or None, optional
        Query-time pipeline. If ``None``, one is built from ``embedder`` and
        ``vector_store`` with default settings.
    """

    def __init__(
            self,
            chunker: ChunkingStrategy,
            embedder: Embedder,
            vector_store: VectorStore,
            retrieval: Optional[RetrievalPipeline] = None,
        ):
        self.chunker = chunker
        self.embedder = embedder
        self.vector_store = vector_store
        self.retrieval = retrieval or RetrievalPipeline(embedder, vector_store)

    @property
    def document_key(self) -> str:
        return getattr(self.retrieval, "document_key", DEFAULT_DOCUMENT_KEY)

    def _prepare_records(self, document_id: str, content: Any, metadata: Any) -> Tuple[List[StoreRecord], int]:
        """Validate, chunk and embed a document without touching the store.

        Returns
        -------
        tuple[list[StoreRecord], int]
            The records to write and the embedding token count.
        """
        document = validate_document_input(content, metadata)

        chunks = self.chunker.chunk(document.content)
        if not chunks:
            raise RAGError(f"Document {document_id!r} produced no chunks")
        logger.debug("Document %s split into %d chunks", document_id, len(chunks))

        embedded = self.embedder.embed_batch([chunk.content for chunk in chunks])
        if len(embedded.embeddings) != len(chunks):
            raise RAGError(
                f"Embedder returned {len(embedded.embeddings)} vectors for {len(chunks)} chunks"
            )

        base_metadata: Dict[str, Any] = dict(document.metadata or {})
        records = [
            StoreRecord(
                id=f"{document_id}:{chunk.index}",
                content=chunk.content,
                embedding=list(vector),
                metadata={
                    **base_metadata,
                    **chunk.to_metadata(),
                    self.document_key: document.content,
                    DOCUMENT_ID_KEY: document_id,
                },
            )
            for chunk, vector in zip(chunks, embedded.embeddings)
        ]
        return records, embedded.total_tokens

    def _write(self, document_id: str, records: List[StoreRecord], tokens: int) -> str:
        self.vector_store.upsert(records)
        logger.info(
            "Ingested document %s: %d chunks, %d tokens",
            document_id, len(records), tokens,
        )
        return document_id

    def add_document(self, content: str, metadata: Optional[Mapping[str, Any]] = None) -> str:
        """Chunk, embed and store a document.

        Parameters
        ----------
        content : str
            Document text.
        metadata : Mapping or None, optional
            Caller metadata copied onto every chunk record.

        Returns
        -------
        str
            Identifier assigned to the document.

        Raises
        ------
        ValidationError
            If the content or metadata is invalid.
        RAGError
            If the document produces no chunks.
        """
        document_id = str(uuid.uuid4())
        records, tokens = self._prepare_records(document_id, content, metadata)
        return self._write(document_id, records, tokens)

    def add_documents(self, documents: Iterable[Any]) -> List[str]:
        """Ingest several documents in order.

        Each item is either a string or a mapping with ``content`` and an
        optional ``metadata`` key.

        Returns
        -------
        list[str]
            Document identifiers, in input order.
        """
        ids: List[str] = []
        for position, item in enumerate(documents):
            if isinstance(item, str):
                ids.append(self.add_document(item))
            elif isinstance(item, Mapping):
                ids.append(self.add_document(item.get("content"), item.get("metadata")))
            else:
                raise ValidationError(
                    f"Document at position {position} must be a string or a mapping",
                    field="documents",
                    value=item,
                )
        return ids

    def update_document(
            self,
            document_id: str,
            content: str,
            metadata: Optional[Mapping[str, Any]] = None,
        ) -> str:
        """Replace a document's chunks, keeping its identifier.

        The new content is validated, chunked and embedded before the old
        chunks are deleted. A validation or embedding failure leaves the
        stored document untouched.
        """
        validate_non_empty_string(document_id, "document_id")
        records, tokens = self._prepare_records(document_id, content, metadata)

        existed = self.vector_store.delete_document(document_id)
        if not existed:
            logger.info("Document %s did not exist; storing it as new", document_id)
        return self._write(document_id, records, tokens)

    def get_document(self, document_id: str) -> Optional[StoredDocument]:
        """Read a document back from the vector store.

        Parameters
        ----------
        document_id : str
            Identifier returned by :meth:`add_document`.

        Returns
        -------
        StoredDocument or None
            The document text, its caller metadata and its chunk records,
            or ``None`` if nothing is stored under ``document_id``.
        """
        validate_non_empty_string(document_id, "document_id")
        records = self.vector_store.get_document(document_id)
        if not records:
            return None

        stored = dict(records[0].metadata)
        content = stored.pop(self.document_key, "")
        for key in CHUNK_METADATA_KEYS + (DOCUMENT_ID_KEY,):
            stored.pop(key, None)
        return StoredDocument(id=document_id, content=content, metadata=stored, records=records)

    def delete_document(self, document_id: str) -> bool:
        """Delete every chunk of a document.

        Returns
        -------
        bool
            ``True`` if any chunk was removed.
        """
        validate_non_empty_string(document_id, "document_id")
        deleted = self.vector_store.delete_document(document_id)
        if deleted:
            logger.info("Deleted document %s", document_id)
        return deleted

    def search(
            self,
            query: str,
            options: SearchOptions | Mapping[str, Any] | None = None,
            **overrides: Any,
        ) -> List[SearchCandidate]:
        """Search stored chunks; see :meth:`RetrievalPipeline.search`."""
        return self.retrieval.search(query, options, **overrides)

    async def asearch(
            self,
            query: str,
            options: SearchOptions | Mapping[str, Any] | None = None,
            **overrides: Any,
        ) -> List[SearchCandidate]:
        """Async variant of :meth:`search`."""
        return await self.retrieval.asearch(query, options, **overrides)

    def __call__(self, query: str, **kwargs: Any) -> List[SearchCandidate]:
        """Convenience wrapper around :meth:`search`."""
        return self.search(query, **kwargs)


__all__ = ["RAGPipeline"]
