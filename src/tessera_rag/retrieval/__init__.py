"""
Retrieval layer of the RAG system.

This package covers everything needed to turn raw text into searchable
vectors and to rank the chunks returned for a query. It includes chunking
strategies, embedding model wrappers, the vector store backend wrapper, the
collaborator protocols, and the post-retrieval candidate filters.

Submodules
----------
text_splitter
    Recursive and fixed-window chunking strategies.
embedder
    Embedding model wrappers, retry helper and factory.
vector_store
    Vector store wrapper (Qdrant) and factory.
types
    Protocols for the embedder and vector store collaborators.
filters
    Adaptive similarity threshold and per-document diversity cap.
"""
