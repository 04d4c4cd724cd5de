"""tessera_rag

tessera-rag package.

This package contains the building blocks of a retrieval layer for
Retrieval-Augmented Generation (RAG): text chunking, embedding model
wrappers, a vector store wrapper, and a retrieval pipeline that ranks
candidates with an adaptive similarity threshold and a per-document
diversity cap.

Attributes
----------
__version__ : str
    Package version string. Defaults to ``"0.0.0-dev"`` when package metadata is
    unavailable.

Modules
-------
config
    Global configuration loader and cached accessors.
app
    Application container and composition root for wiring components.
pipelines
    High-level pipeline orchestration (ingestion, retrieval and ranking).
retrieval
    Chunking, embedding, vector store access and candidate filters.
common
    Shared schemas, errors, validation and token counting.

Exports
-------
GlobalConfig
    Global configuration loader and accessor.
TesseraContainer
    Cached runtime component container for applications.
build_container
    Factory function to construct a configured :class:`~tessera_rag.app.container.TesseraContainer`.
RAGPipeline
    Document ingestion and search pipeline.
RetrievalPipeline
    Query-time retrieval and ranking pipeline.
RecursiveChunker, FixedWindowChunker
    Chunking strategies.
Chunk, SearchCandidate, SearchOptions
    Core data types.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tessera-rag")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from .config import GlobalConfig
from .app.container import TesseraContainer, build_container
from .pipelines.rag_pipeline import RAGPipeline
from .pipelines.retrieval_pipeline import RetrievalPipeline
from .retrieval.text_splitter import FixedWindowChunker, RecursiveChunker
from .common import (
    Chunk,
    ChunkOptions,
    ConfigurationError,
    EmbeddingError,
    RAGError,
    SearchCandidate,
    SearchOptions,
    StoreError,
    ValidationError,
)

__all__ = [
    "__version__",
    "GlobalConfig",
    "TesseraContainer",
    "build_container",
    "RAGPipeline",
    "RetrievalPipeline",
    "RecursiveChunker",
    "FixedWindowChunker",
    "Chunk",
    "ChunkOptions",
    "SearchCandidate",
    "SearchOptions",
    "RAGError",
    "ConfigurationError",
    "ValidationError",
    "EmbeddingError",
    "StoreError",
]
