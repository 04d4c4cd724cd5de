import asyncio

import pytest
from qdrant_client import models

from tessera_rag.common.errors import ConfigurationError, StoreError, ValidationError
from tessera_rag.retrieval.types import StoreRecord
from tessera_rag.retrieval.vector_store import (
    QdrantVectorStore,
    build_qdrant_filter,
    create_vector_store,
)


@pytest.fixture
def store():
    """In-process Qdrant store; no server required."""
    return QdrantVectorStore(collection_name="test_chunks", location=":memory:")


def _record(record_id, vector, doc_id="doc-1", content=None, **metadata):
    return StoreRecord(
        id=record_id,
        content=content or f"content of {record_id}",
        embedding=vector,
        metadata={"document_id": doc_id, **metadata},
    )


@pytest.fixture
def populated(store):
    store.upsert([
        _record("doc-1:0", [1.0, 0.0], category="ai", tags=["ml", "search"], meta={"lang": "en"}),
        _record("doc-1:1", [0.8, 0.6], category="ai", tags=["ml"], meta={"lang": "de"}),
        _record("doc-2:0", [0.0, 1.0], doc_id="doc-2", category="cooking", tags=["food"]),
    ])
    return store


def test_search_orders_by_similarity_and_applies_threshold(populated):
    results = populated.search([1.0, 0.0], limit=10, min_similarity=0.5)

    assert [c.id for c in results] == ["doc-1:0", "doc-1:1"]
    assert results[0].similarity == pytest.approx(1.0, abs=1e-5)
    assert results[1].similarity == pytest.approx(0.8, abs=1e-5)
    assert results[1].distance == pytest.approx(0.2, abs=1e-5)
    assert results[0].content == "content of doc-1:0"
    assert results[0].metadata["category"] == "ai"


def test_search_respects_limit(populated):
    results = populated.search([1.0, 0.0], limit=1)

    assert len(results) == 1


def test_search_with_scalar_filter(populated):
    results = populated.search([1.0, 0.0], limit=10, filters={"category": "cooking"})

    assert [c.id for c in results] == ["doc-2:0"]


def test_search_with_nested_and_list_filters(populated):
    nested = populated.search([1.0, 0.0], limit=10, filters={"meta": {"lang": "de"}})
    contained = populated.search([1.0, 0.0], limit=10, filters={"tags": ["ml", "search"]})

    assert [c.id for c in nested] == ["doc-1:1"]
    assert [c.id for c in contained] == ["doc-1:0"]


def test_upsert_replaces_records_with_same_id(populated):
    populated.upsert([_record("doc-1:0", [1.0, 0.0], content="replaced", category="ai")])

    results = populated.search([1.0, 0.0], limit=1)

    assert results[0].content == "replaced"
    assert results[0].id == "doc-1:0"


def test_delete_document_removes_all_its_records(populated):
    assert populated.delete_document("doc-1") is True

    remaining = populated.search([1.0, 0.0], limit=10)

    assert [c.id for c in remaining] == ["doc-2:0"]
    assert populated.delete_document("doc-1") is False


def test_delete_on_missing_collection_is_false(store):
    assert store.delete_document("anything") is False


def test_get_document_returns_records_in_chunk_order(store):
    """Records come back sorted by chunk index whatever the upsert order."""
    store.upsert([
        _record("doc-9:2", [0.0, 1.0], doc_id="doc-9", chunk_index=2),
        _record("doc-9:0", [1.0, 0.0], doc_id="doc-9", chunk_index=0),
        _record("other:0", [1.0, 0.0], doc_id="other", chunk_index=0),
        _record("doc-9:1", [0.6, 0.8], doc_id="doc-9", chunk_index=1),
    ])

    records = store.get_document("doc-9")

    assert [r.id for r in records] == ["doc-9:0", "doc-9:1", "doc-9:2"]
    assert records[1].content == "content of doc-9:1"
    assert records[1].metadata["document_id"] == "doc-9"
    assert len(records[1].embedding) == 2


def test_get_document_unknown_or_missing_collection_is_empty(store):
    assert store.get_document("doc-1") == []

    store.upsert([_record("doc-1:0", [1.0, 0.0])])

    assert store.get_document("nope") == []


def test_upsert_rejects_vectors_of_another_size(populated):
    with pytest.raises(ConfigurationError, match="Dimension mismatch"):
        populated.upsert([_record("doc-3:0", [1.0, 0.0, 0.0], doc_id="doc-3")])

    assert [r.id for r in populated.get_document("doc-3")] == []


def test_existing_collection_size_is_checked_by_a_new_store(populated):
    """A second wrapper over the same client reads the stored vector size."""
    other = QdrantVectorStore(collection_name="test_chunks", location=":memory:")
    other.client = populated.client

    with pytest.raises(ConfigurationError):
        other.ensure_collection(3)
    other.ensure_collection(2)


def test_asearch_in_local_mode_uses_executor(populated):
    assert populated.aclient is None

    results = asyncio.run(populated.asearch([0.0, 1.0], limit=1))

    assert [c.id for c in results] == ["doc-2:0"]


def test_search_failure_is_wrapped(store):
    with pytest.raises(StoreError) as excinfo:
        store.search([1.0, 0.0], limit=5)

    assert excinfo.value.operation == "search"


def test_build_qdrant_filter_shapes():
    assert build_qdrant_filter(None) is None
    assert build_qdrant_filter({}) is None

    query_filter = build_qdrant_filter({
        "category": "ai",
        "year": 2024,
        "score": 0.5,
        "meta": {"lang": "en"},
        "tags": ["a", "b"],
        "archived": None,
    })

    conditions = query_filter.must
    keys = [
        c.key if isinstance(c, models.FieldCondition) else c.is_null.key
        for c in conditions
    ]
    assert keys == [
        "metadata.category",
        "metadata.year",
        "metadata.score",
        "metadata.meta.lang",
        "metadata.tags",
        "metadata.tags",
        "metadata.archived",
    ]
    assert conditions[2].range.gte == conditions[2].range.lte == 0.5


def test_build_qdrant_filter_rejects_unsupported_values():
    with pytest.raises(ValidationError):
        build_qdrant_filter({"when": object()})


def test_create_vector_store_from_config():
    store = create_vector_store({"type": "qdrant", "location": ":memory:", "collection_name": "c"})

    assert isinstance(store, QdrantVectorStore)
    assert store.collection_name == "c"


def test_create_vector_store_rejects_unknown_backend():
    with pytest.raises(ConfigurationError):
        create_vector_store({"type": "pgvector"})
