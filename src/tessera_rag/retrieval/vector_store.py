"""tessera_rag.retrieval.vector_store

Vector store interfaces and factories for the retrieval layer.

This module defines a small wrapper interface around vector-store backends and
provides a concrete implementation backed by Qdrant. The wrapper only
translates between the pipeline's records and candidates and the backend's
points; indexing, scoring and persistence are the backend's job.

Classes
-------
BaseVectorStore
    Abstract interface for vector store wrappers.
QdrantVectorStore
    Qdrant-backed vector store wrapper.

Functions
---------
build_qdrant_filter
    Translate a metadata filter mapping into a Qdrant ``Filter``.
create_vector_store
    Create a vector store implementation from a configuration mapping.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Iterator, List, Mapping, Optional, Sequence

import yaml
from qdrant_client import AsyncQdrantClient, QdrantClient, models

from tessera_rag.common.errors import ConfigurationError, StoreError, ValidationError
from tessera_rag.common.schemas import SearchCandidate
from tessera_rag.retrieval.types import StoreRecord

logger = logging.getLogger(__name__)

CONTENT_FIELD = "content"
METADATA_FIELD = "metadata"
RECORD_ID_FIELD = "record_id"
DOCUMENT_ID_KEY = "document_id"
SCROLL_PAGE_SIZE = 256


class BaseVectorStore(ABC):
    """Abstract interface for vector store wrappers.

    Concrete implementations encapsulate a vector store backend and expose
    the search, upsert, fetch and delete operations used by the pipelines.
    """

    @classmethod
    @abstractmethod
    def from_config_dict(cls, config: dict) -> "BaseVectorStore":
        """Create a vector store instance from a configuration mapping."""
        pass

    @classmethod
    def from_config(cls, config_path: str) -> "BaseVectorStore":
        """Load YAML configuration and create a vector store."""
        with open(config_path, "r") as f:
            cfg = yaml.safe_load(f) or {}
        return cls.from_config_dict(cfg)

    @abstractmethod
    def search(
            self,
            query_vector: Sequence[float],
            *,
            limit: int,
            min_similarity: Optional[float] = None,
            filters: Optional[Mapping[str, Any]] = None,
        ) -> List[SearchCandidate]:
        """Return stored records closest to ``query_vector``, best first."""
        pass

    async def asearch(
            self,
            query_vector: Sequence[float],
            *,
            limit: int,
            min_similarity: Optional[float] = None,
            filters: Optional[Mapping[str, Any]] = None,
        ) -> List[SearchCandidate]:
        """Asynchronously search; runs :meth:`search` in the default executor."""
        loop = asyncio.get_running_loop()
        call = functools.partial(
            self.search,
            query_vector,
            limit=limit,
            min_similarity=min_similarity,
            filters=filters,
        )
        return await loop.run_in_executor(None, call)

    @abstractmethod
    def upsert(self, records: Sequence[StoreRecord]) -> None:
        """Insert or replace records."""
        pass

    @abstractmethod
    def delete_document(self, document_id: str) -> bool:
        """Delete all records of a document. Return whether any were found."""
        pass

    @abstractmethod
    def get_document(self, document_id: str) -> List[StoreRecord]:
        """Return the records of a document ordered by chunk index.

        An unknown document yields an empty list.
        """
        pass


def _field_conditions(key: str, value: Any) -> Iterator[models.Condition]:
    if isinstance(value, Mapping):
        for sub_key, sub_value in value.items():
            yield from _field_conditions(f"{key}.{sub_key}", sub_value)
    elif isinstance(value, (list, tuple)):
        # Containment: every listed element must be present.
        for item in value:
            item_key = f"{key}[]" if isinstance(item, Mapping) else key
            yield from _field_conditions(item_key, item)
    elif value is None:
        yield models.IsNullCondition(is_null=models.PayloadField(key=key))
    elif isinstance(value, (bool, int, str)):
        yield models.FieldCondition(key=key, match=models.MatchValue(value=value))
    elif isinstance(value, float):
        yield models.FieldCondition(key=key, range=models.Range(gte=value, lte=value))
    else:
        raise ValidationError(
            f"Unsupported filter value for {key!r}: {type(value).__name__}",
            field="filters",
            value=value,
        )


def build_qdrant_filter(filters: Optional[Mapping[str, Any]]) -> Optional[models.Filter]:
    """Translate a metadata filter mapping into a Qdrant filter.

    Keys are AND-ed. Nested mappings become dotted payload paths, lists
    require each of their elements, and floats are matched with an exact
    range.

    Parameters
    ----------
    filters : Mapping[str, Any] or None
        Filter mapping over candidate metadata.

    Returns
    -------
    qdrant_client.models.Filter or None
        ``None`` when there is nothing to filter on.

    Raises
    ------
    ValidationError
        If a filter value has an unsupported type.
    """
    if not filters:
        return None

    conditions: List[models.Condition] = []
    for key, value in filters.items():
        conditions.extend(_field_conditions(f"{METADATA_FIELD}.{key}", value))
    return models.Filter(must=conditions) if conditions else None


def _point_id(record_id: str) -> str:
    """Map an arbitrary record id onto the UUID ids Qdrant accepts."""
    try:
        return str(uuid.UUID(str(record_id)))
    except ValueError:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, str(record_id)))


class QdrantVectorStore(BaseVectorStore):
    """Qdrant-backed vector store wrapper.

    Records are stored as points whose payload holds the chunk text under
    ``content`` and its metadata under ``metadata``. The collection is
    created on first upsert, with cosine distance and the vector size of the
    first record. Later records must match the collection's vector size.

    Parameters
    ----------
    collection_name : str, optional
        Name of the Qdrant collection. Defaults to ``"tessera_chunks"``.
    host : str, optional
        Qdrant host address. Defaults to ``"localhost"``.
    port : int, optional
        Qdrant port number. Defaults to ``6333``.
    url : str or None, optional
        Full Qdrant URL; takes precedence over ``host``/``port``.
    api_key : str or None, optional
        API key for Qdrant Cloud or secured deployments.
    location : str or None, optional
        Local mode location (``":memory:"`` or a path). Local mode has no
        async client; :meth:`asearch` then runs in an executor.
    """

    @classmethod
    def from_config_dict(cls, config: dict) -> "QdrantVectorStore":
        """Create a QdrantVectorStore from a configuration mapping.

        Recognised keys: ``collection_name``, ``host``, ``port``, ``url``,
        ``api_key`` and ``location``.
        """
        return cls(
            collection_name=config.get("collection_name", "tessera_chunks"),
            host=config.get("host", "localhost"),
            port=int(config.get("port", 6333)),
            url=config.get("url"),
            api_key=config.get("api_key"),
            location=config.get("location"),
        )

    def __init__(
        self,
        *,
        collection_name: str = "tessera_chunks",
        host: str = "localhost",
        port: int = 6333,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        location: Optional[str] = None,
    ):
        self.collection_name = collection_name
        self._dimensions: Optional[int] = None

        if location:
            self.client = QdrantClient(location=location)
            self.aclient = None
        elif url:
            self.client = QdrantClient(url=url, api_key=api_key)
            self.aclient = AsyncQdrantClient(url=url, api_key=api_key)
        else:
            self.client = QdrantClient(host=host, port=port, api_key=api_key)
            self.aclient = AsyncQdrantClient(host=host, port=port, api_key=api_key)

    def ensure_collection(self, dimensions: int) -> None:
        """Create the collection if it does not exist yet.

        Raises
        ------
        ConfigurationError
            If the collection holds vectors of a different size.
        StoreError
            If the collection cannot be inspected or created.
        """
        if self._dimensions is None:
            try:
                existing = self._collection_vector_size()
                if existing is None:
                    logger.info(
                        "Creating Qdrant collection %r (%d dimensions, cosine)",
                        self.collection_name, dimensions,
                    )
                    self.client.create_collection(
                        collection_name=self.collection_name,
                        vectors_config=models.VectorParams(size=dimensions, distance=models.Distance.COSINE),
                    )
                    existing = dimensions
            except Exception as exc:
                raise StoreError(
                    f"Could not prepare collection {self.collection_name!r}: {exc}",
                    operation="create_collection",
                ) from exc
            self._dimensions = existing

        if self._dimensions != dimensions:
            raise ConfigurationError(
                f"Dimension mismatch: collection {self.collection_name!r} stores "
                f"{self._dimensions}-dimensional vectors, got {dimensions}"
            )

    def _collection_vector_size(self) -> Optional[int]:
        if not self.client.collection_exists(self.collection_name):
            return None
        vectors = self.client.get_collection(self.collection_name).config.params.vectors
        if isinstance(vectors, Mapping):
            # Named vectors; compare against the first.
            vectors = next(iter(vectors.values()), None)
        return None if vectors is None else int(vectors.size)

    def upsert(self, records: Sequence[StoreRecord]) -> None:
        records = list(records)
        if not records:
            return

        for dimensions in sorted({len(record.embedding) for record in records}):
            self.ensure_collection(dimensions)
        points = [
            models.PointStruct(
                id=_point_id(record.id),
                vector=list(record.embedding),
                payload={
                    RECORD_ID_FIELD: record.id,
                    CONTENT_FIELD: record.content,
                    METADATA_FIELD: dict(record.metadata or {}),
                },
            )
            for record in records
        ]
        try:
            self.client.upsert(collection_name=self.collection_name, points=points, wait=True)
        except Exception as exc:
            raise StoreError(f"Upsert of {len(points)} points failed: {exc}", operation="upsert") from exc

    def delete_document(self, document_id: str) -> bool:
        selector = build_qdrant_filter({DOCUMENT_ID_KEY: document_id})
        try:
            if not self.client.collection_exists(self.collection_name):
                return False
            found = self.client.count(
                collection_name=self.collection_name,
                count_filter=selector,
                exact=True,
            ).count
            if not found:
                return False
            self.client.delete(
                collection_name=self.collection_name,
                points_selector=models.FilterSelector(filter=selector),
                wait=True,
            )
        except Exception as exc:
            raise StoreError(f"Delete of document {document_id!r} failed: {exc}", operation="delete") from exc
        return True

    def get_document(self, document_id: str) -> List[StoreRecord]:
        selector = build_qdrant_filter({DOCUMENT_ID_KEY: document_id})
        points: List[Any] = []
        try:
            if not self.client.collection_exists(self.collection_name):
                return []
            offset = None
            while True:
                batch, offset = self.client.scroll(
                    collection_name=self.collection_name,
                    scroll_filter=selector,
                    limit=SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=True,
                )
                points.extend(batch)
                if offset is None:
                    break
        except Exception as exc:
            raise StoreError(f"Fetch of document {document_id!r} failed: {exc}", operation="get") from exc

        records = [self._to_record(point) for point in points]
        records.sort(key=lambda record: record.metadata.get("chunk_index", 0))
        return records

    def search(
            self,
            query_vector: Sequence[float],
            *,
            limit: int,
            min_similarity: Optional[float] = None,
            filters: Optional[Mapping[str, Any]] = None,
        ) -> List[SearchCandidate]:
        query_filter = build_qdrant_filter(filters)
        try:
            response = self.client.query_points(
                collection_name=self.collection_name,
                query=list(query_vector),
                limit=limit,
                query_filter=query_filter,
                score_threshold=min_similarity,
                with_payload=True,
            )
        except Exception as exc:
            raise StoreError(f"Search failed: {exc}", operation="search") from exc
        return [self._to_candidate(point) for point in response.points]

    async def asearch(
            self,
            query_vector: Sequence[float],
            *,
            limit: int,
            min_similarity: Optional[float] = None,
            filters: Optional[Mapping[str, Any]] = None,
        ) -> List[SearchCandidate]:
        if self.aclient is None:
            return await super().asearch(
                query_vector, limit=limit, min_similarity=min_similarity, filters=filters
            )

        query_filter = build_qdrant_filter(filters)
        try:
            response = await self.aclient.query_points(
                collection_name=self.collection_name,
                query=list(query_vector),
                limit=limit,
                query_filter=query_filter,
                score_threshold=min_similarity,
                with_payload=True,
            )
        except Exception as exc:
            raise StoreError(f"Search failed: {exc}", operation="search") from exc
        return [self._to_candidate(point) for point in response.points]

    @staticmethod
    def _to_record(point: Any) -> StoreRecord:
        payload = point.payload or {}
        return StoreRecord(
            id=str(payload.get(RECORD_ID_FIELD, point.id)),
            content=str(payload.get(CONTENT_FIELD, "")),
            embedding=[float(x) for x in (point.vector or [])],
            metadata=dict(payload.get(METADATA_FIELD) or {}),
        )

    @staticmethod
    def _to_candidate(point: Any) -> SearchCandidate:
        payload = point.payload or {}
        score = float(point.score)
        return SearchCandidate(
            content=str(payload.get(CONTENT_FIELD, "")),
            similarity=min(1.0, max(0.0, score)),
            distance=1.0 - score,
            metadata=dict(payload.get(METADATA_FIELD) or {}),
            id=str(payload.get(RECORD_ID_FIELD, point.id)),
        )


def _get_vector_store_kind(cfg: Mapping[str, Any]) -> Optional[Any]:
    for key in ("kind", "type", "provider", "backend", "impl"):
        val = cfg.get(key)
        if val is not None:
            return val
    return None


def _normalize_vector_store_kind(kind: Any) -> str:
    if not kind:
        return "qdrant"
    k = str(kind).strip().lower()
    if k in {"qdrant", "qdrantvectorstore", "qdrant_vector_store"}:
        return "qdrant"
    return k


def create_vector_store(config: Mapping[str, Any]) -> BaseVectorStore:
    """Create a vector store implementation from a configuration mapping.

    The backend is selected by one of the discriminator keys ``kind``,
    ``type``, ``provider``, ``backend`` or ``impl``; Qdrant is the default.

    Raises
    ------
    ConfigurationError
        If ``config`` is not a mapping or the backend kind is not supported.
    """
    if not isinstance(config, Mapping):
        raise ConfigurationError(f"create_vector_store expected a mapping, got {type(config).__name__}")

    kind = _normalize_vector_store_kind(_get_vector_store_kind(config))
    if kind == "qdrant":
        return QdrantVectorStore.from_config_dict(dict(config))
    raise ConfigurationError(f"Unknown vector store kind: {kind!r}")


__all__ = [
    "BaseVectorStore",
    "QdrantVectorStore",
    "build_qdrant_filter",
    "create_vector_store",
]
