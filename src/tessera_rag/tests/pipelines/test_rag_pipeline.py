import asyncio

import pytest

from tessera_rag.common.errors import EmbeddingError, RAGError, ValidationError
from tessera_rag.common.schemas import BatchEmbeddingResult, EmbeddingResult
from tessera_rag.pipelines.rag_pipeline import RAGPipeline
from tessera_rag.pipelines.retrieval_pipeline import RetrievalPipeline
from tessera_rag.retrieval.text_splitter import FixedWindowChunker, RecursiveChunker
from tessera_rag.retrieval.vector_store import QdrantVectorStore


KEYWORDS = ("cat", "dog", "fish")


class KeywordEmbedder:
    """
    Deterministic embedder for tests: one dimension per keyword, counting
    occurrences, plus a constant dimension so no vector is all zeros.
    """

    def __init__(self):
        self.batches = []

    def _vector(self, text):
        lowered = text.lower()
        return [float(lowered.count(word)) for word in KEYWORDS] + [0.01]

    def embed(self, text):
        return EmbeddingResult(embedding=self._vector(text), tokens=len(text.split()))

    def embed_batch(self, texts):
        self.batches.append(list(texts))
        return BatchEmbeddingResult(
            embeddings=[self._vector(t) for t in texts],
            total_tokens=sum(len(t.split()) for t in texts),
        )

    async def aembed(self, text):
        return self.embed(text)


class RecordingStore:
    def __init__(self):
        self.records = []
        self.deleted = []

    def upsert(self, records):
        self.records.extend(records)

    def delete_document(self, document_id):
        self.deleted.append(document_id)
        before = len(self.records)
        self.records = [r for r in self.records if r.metadata["document_id"] != document_id]
        return len(self.records) != before

    def get_document(self, document_id):
        found = [r for r in self.records if r.metadata["document_id"] == document_id]
        return sorted(found, key=lambda r: r.metadata["chunk_index"])

    def search(self, query_vector, *, limit, min_similarity=None, filters=None):
        return []

    async def asearch(self, query_vector, **kwargs):
        return []


class OutageEmbedder(KeywordEmbedder):
    """Keyword embedder whose batch calls fail once ``down`` is set."""

    down = False

    def embed_batch(self, texts):
        if self.down:
            raise EmbeddingError("provider unavailable", provider="test", status_code=503)
        return super().embed_batch(texts)


class EmptyChunker:
    def chunk(self, text):
        return []


@pytest.fixture
def qdrant_pipeline():
    store = QdrantVectorStore(collection_name="rag_test", location=":memory:")
    return RAGPipeline(RecursiveChunker(size=40), KeywordEmbedder(), store)


def test_add_document_stamps_chunk_metadata():
    """
    Each chunk becomes one record carrying the caller metadata, its position,
    the full document text and the document id.
    """
    store = RecordingStore()
    embedder = KeywordEmbedder()
    pipeline = RAGPipeline(FixedWindowChunker(size=10, overlap=2), embedder, store)
    text = "0123456789012345"

    doc_id = pipeline.add_document(text, metadata={"category": "digits"})

    assert len(store.records) == 2
    assert len(embedder.batches) == 1
    first, second = store.records
    assert first.content == "0123456789"
    assert second.content == "89012345"
    assert first.id == f"{doc_id}:0"
    assert second.metadata == {
        "category": "digits",
        "chunk_index": 1,
        "total_chunks": 2,
        "start_char": 8,
        "end_char": 16,
        "original_content": text,
        "document_id": doc_id,
    }


def test_add_document_validates_input():
    pipeline = RAGPipeline(RecursiveChunker(size=40), KeywordEmbedder(), RecordingStore())

    with pytest.raises(ValidationError):
        pipeline.add_document("   ")
    with pytest.raises(ValidationError):
        pipeline.add_document("text", metadata=["not", "a", "mapping"])


def test_add_document_without_chunks_raises():
    pipeline = RAGPipeline(EmptyChunker(), KeywordEmbedder(), RecordingStore())

    with pytest.raises(RAGError):
        pipeline.add_document("something")


def test_add_documents_accepts_strings_and_mappings():
    store = RecordingStore()
    pipeline = RAGPipeline(RecursiveChunker(size=40), KeywordEmbedder(), store)

    ids = pipeline.add_documents(["plain text", {"content": "with meta", "metadata": {"k": "v"}}])

    assert len(ids) == 2 and len(set(ids)) == 2
    assert store.records[1].metadata["k"] == "v"

    with pytest.raises(ValidationError):
        pipeline.add_documents([42])


def test_update_document_keeps_id_and_replaces_chunks():
    store = RecordingStore()
    pipeline = RAGPipeline(RecursiveChunker(size=40), KeywordEmbedder(), store)
    doc_id = pipeline.add_document("old text")

    returned = pipeline.update_document(doc_id, "new text", metadata={"rev": 2})

    assert returned == doc_id
    assert store.deleted == [doc_id]
    assert [r.content for r in store.records] == ["new text"]
    assert store.records[0].metadata["rev"] == 2


def test_update_document_validates_before_deleting():
    store = RecordingStore()
    pipeline = RAGPipeline(RecursiveChunker(size=40), KeywordEmbedder(), store)
    doc_id = pipeline.add_document("keep me")

    with pytest.raises(ValidationError):
        pipeline.update_document(doc_id, "")

    assert store.deleted == []
    assert [r.content for r in store.records] == ["keep me"]


def test_ingest_and_search_end_to_end(qdrant_pipeline):
    cats = qdrant_pipeline.add_document(
        "The cat sat on the mat.\n\nA cat likes naps.\n\nAnother cat chased a cat.",
        metadata={"category": "pets"},
    )
    qdrant_pipeline.add_document("The dog barked at the fish.", metadata={"category": "other"})

    results = qdrant_pipeline.search("cat", limit=5, min_similarity=0.5)

    assert results
    assert all(r.metadata["document_id"] == cats for r in results)
    assert len(results) <= 2


def test_search_filters_and_async(qdrant_pipeline):
    qdrant_pipeline.add_document("dog dog dog", metadata={"category": "dogs"})
    qdrant_pipeline.add_document("dog and cat", metadata={"category": "mixed"})

    filtered = qdrant_pipeline.search("dog", min_similarity=0.1, filters={"category": "mixed"})
    async_results = asyncio.run(qdrant_pipeline.asearch("dog", min_similarity=0.1))

    assert [r.content for r in filtered] == ["dog and cat"]
    assert async_results[0].content == "dog dog dog"


def test_delete_document_removes_it_from_search(qdrant_pipeline):
    doc_id = qdrant_pipeline.add_document("fish fish")

    assert qdrant_pipeline.delete_document(doc_id) is True
    assert qdrant_pipeline.search("fish", min_similarity=0.5) == []
    assert qdrant_pipeline.delete_document(doc_id) is False


def test_search_delegates_to_given_retrieval_pipeline():
    store = RecordingStore()
    embedder = KeywordEmbedder()
    retrieval = RetrievalPipeline(embedder, store, document_key="source")
    pipeline = RAGPipeline(RecursiveChunker(size=40), embedder, store, retrieval=retrieval)

    pipeline.add_document("cat")

    assert pipeline.retrieval is retrieval
    assert "source" in store.records[0].metadata
    assert pipeline.search("cat") == []


def test_update_document_keeps_original_when_embedding_fails():
    """
    The replacement is embedded before the old chunks are deleted, so a
    provider outage leaves the stored document as it was.
    """
    store = RecordingStore()
    embedder = OutageEmbedder()
    pipeline = RAGPipeline(RecursiveChunker(size=40), embedder, store)
    doc_id = pipeline.add_document("keep me")
    embedder.down = True

    with pytest.raises(EmbeddingError):
        pipeline.update_document(doc_id, "replacement text")

    assert store.deleted == []
    assert [r.content for r in store.records] == ["keep me"]
    assert pipeline.get_document(doc_id).content == "keep me"


def test_update_document_without_chunks_keeps_original():
    store = RecordingStore()
    pipeline = RAGPipeline(RecursiveChunker(size=40), KeywordEmbedder(), store)
    doc_id = pipeline.add_document("keep me")
    pipeline.chunker = EmptyChunker()

    with pytest.raises(RAGError):
        pipeline.update_document(doc_id, "replacement text")

    assert store.deleted == []
    assert len(store.records) == 1


def test_blank_line_runs_do_not_produce_blank_records():
    store = RecordingStore()
    pipeline = RAGPipeline(RecursiveChunker(size=50), KeywordEmbedder(), store)
    text = "A" * 50 + "\n\n\n\n" + "B" * 50

    doc_id = pipeline.add_document(text)

    assert [r.content.strip() for r in store.records] == ["A" * 50, "B" * 50]
    assert "".join(r.content for r in store.records) == text
    assert pipeline.get_document(doc_id).content == text


def test_get_document_reassembles_stored_document(qdrant_pipeline):
    text = "The cat sat on the mat.\n\nA cat likes naps.\n\nAnother cat chased a cat."
    doc_id = qdrant_pipeline.add_document(text, metadata={"category": "pets"})

    document = qdrant_pipeline.get_document(doc_id)

    assert document.id == doc_id
    assert document.content == text
    assert document.metadata == {"category": "pets"}
    assert len(document.records) > 1
    assert [r.metadata["chunk_index"] for r in document.records] == list(range(len(document.records)))
    assert [r.id for r in document.records][0] == f"{doc_id}:0"


def test_get_document_after_update_and_delete(qdrant_pipeline):
    doc_id = qdrant_pipeline.add_document("dog dog dog", metadata={"rev": 1})

    qdrant_pipeline.update_document(doc_id, "fish", metadata={"rev": 2})
    updated = qdrant_pipeline.get_document(doc_id)

    assert updated.content == "fish"
    assert updated.metadata == {"rev": 2}
    assert [r.content for r in updated.records] == ["fish"]

    qdrant_pipeline.delete_document(doc_id)

    assert qdrant_pipeline.get_document(doc_id) is None


def test_get_document_rejects_blank_id(qdrant_pipeline):
    with pytest.raises(ValidationError):
        qdrant_pipeline.get_document("  ")
