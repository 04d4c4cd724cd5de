"""tessera_rag.pipelines

Pipeline orchestration components for tessera-rag.

This package contains the high-level pipelines that coordinate chunking,
embedding, vector store access and candidate ranking. Pipelines hold only
their configured components, making them safe to reuse across requests.

Modules
-------
retrieval_pipeline
    Query embedding, candidate fetch, threshold and diversity filtering.
rag_pipeline
    Document ingestion plus a search facade over the retrieval pipeline.
"""
