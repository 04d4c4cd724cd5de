"""tessera_rag.app.container

Composition root for tessera-rag.

This module is the single place where concrete implementations are wired
together from configuration (token counter, chunker, embedder, vector store,
retrieval pipeline, and the ingestion/search pipeline). Components are
constructed lazily and cached on first access to avoid repeated expensive
initialisation.

Notes
-----
- Keep this module importable with minimal side effects:
  - do not perform network calls at import time
  - do not read files at import time
  - construct expensive objects lazily (cached on first access)

Examples
--------
>>> from tessera_rag.config import GlobalConfig
>>> from tessera_rag.app.container import build_container
>>> cfg = GlobalConfig.load("config.yaml")
>>> c = build_container(cfg)
>>> doc_id = c.rag_pipeline.add_document("Some text")
>>> hits = c.rag_pipeline.search("some query", limit=3)
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Any, Mapping

from tessera_rag.common.schemas import DEFAULT_DOCUMENT_KEY
from tessera_rag.common.tokenisation import create_token_counter
from tessera_rag.retrieval.filters import DEFAULT_ADAPTIVE_RATIO

_PIPELINE_SETTINGS = ("document_key", "adaptive_ratio")


@dataclass(frozen=True)
class TesseraContainer:
    """Holds the configured, cached runtime components for the application.

    Parameters
    ----------
    config : Any
        Loaded global configuration object (typically :class:`tessera_rag.config.GlobalConfig`).
    """

    config: Any

    @cached_property
    def token_counter(self):
        """Return the token counter used to report embedding usage.

        Configuration is read from ``config.tokenization``. If the section is
        missing, a heuristic counter is used.
        """
        cfg = _as_mapping(getattr(self.config, "tokenization", None) or {})
        return create_token_counter(cfg)

    @cached_property
    def chunker(self) -> Any:
        """Return the chunking strategy configured under ``chunking``."""
        from tessera_rag.retrieval.text_splitter import create_chunker

        section = _as_mapping(getattr(self.config, "chunking", None) or {})
        return create_chunker(section)

    @cached_property
    def embedder(self) -> Any:
        """Return the embedding model wrapper.

        Returns
        -------
        Any
            Configured embedder instance used to embed chunks and queries.
        """
        from tessera_rag.retrieval.embedder import create_embedder

        section = _as_mapping(self.config.embedder)
        return create_embedder(section, token_counter=self.token_counter)

    @cached_property
    def vector_store(self) -> Any:
        """Return the vector store wrapper (e.g., Qdrant-backed store)."""
        from tessera_rag.retrieval.vector_store import create_vector_store

        section = _as_mapping(self.config.vector_store)
        return create_vector_store(section)

    @cached_property
    def retrieval_pipeline(self) -> Any:
        """Return the query-time retrieval pipeline.

        The ``retrieval`` section provides the default search options; its
        ``document_key`` and ``adaptive_ratio`` keys configure the pipeline
        itself.
        """
        from tessera_rag.pipelines.retrieval_pipeline import RetrievalPipeline

        section = dict(_as_mapping(getattr(self.config, "retrieval", None) or {}))
        defaults = {k: v for k, v in section.items() if k not in _PIPELINE_SETTINGS}

        return RetrievalPipeline(
            self.embedder,
            self.vector_store,
            document_key=section.get("document_key") or DEFAULT_DOCUMENT_KEY,
            adaptive_ratio=float(section.get("adaptive_ratio", DEFAULT_ADAPTIVE_RATIO)),
            default_options=defaults,
        )

    @cached_property
    def rag_pipeline(self) -> Any:
        """Return the fully wired ingestion and search pipeline.

        Returns
        -------
        Any
            A :class:`tessera_rag.pipelines.rag_pipeline.RAGPipeline` instance.
        """
        from tessera_rag.pipelines.rag_pipeline import RAGPipeline

        return RAGPipeline(
            chunker=self.chunker,
            embedder=self.embedder,
            vector_store=self.vector_store,
            retrieval=self.retrieval_pipeline,
        )


def build_container(config: Any) -> TesseraContainer:
    """Create a :class:`~tessera_rag.app.container.TesseraContainer`.

    Parameters
    ----------
    config : Any
        Loaded global configuration object (typically :class:`tessera_rag.config.GlobalConfig`).

    Returns
    -------
    TesseraContainer
        Container instance with cached component accessors.
    """

    return TesseraContainer(config=config)

def _as_mapping(obj: Any) -> Mapping[str, Any]:
    """Coerce an object into a mapping.

    Parameters
    ----------
    obj : Any
        Object to interpret as a mapping. If ``obj`` is already a mapping it is
        returned as-is. If it has a ``__dict__``, that dictionary is returned.

    Returns
    -------
    Mapping[str, Any]
        A dictionary-like view of ``obj``.

    Raises
    ------
    TypeError
        If ``obj`` cannot be interpreted as a mapping.
    """
    if isinstance(obj, Mapping):
        return obj

    if hasattr(obj, "__dict__"):
        return dict(vars(obj))

    raise TypeError(f"Expected mapping type but got {type(obj)}")


__all__ = ["TesseraContainer", "build_container"]
