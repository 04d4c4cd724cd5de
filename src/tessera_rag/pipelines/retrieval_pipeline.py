"""tessera_rag.pipelines.retrieval_pipeline

Query-time retrieval and ranking.

This module defines the :class:`RetrievalPipeline`, which embeds a query,
fetches raw candidates from a vector store, and narrows them down to a
final, diverse, threshold-filtered result list.

Classes
-------
RetrievalPipeline
    Orchestrates validation -> embedding -> fetch -> filtering -> truncation.

Notes
-----
The pipeline never re-sorts candidates; ordering is the vector store's
responsibility. Errors raised by the embedder or the store propagate
unchanged, and the pipeline performs no retries of its own.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Sequence

from tessera_rag.common.schemas import DEFAULT_DOCUMENT_KEY, SearchCandidate
from tessera_rag.common.validation import SearchOptions, validate_non_empty_string, validate_search_options
from tessera_rag.retrieval.filters import (
    DEFAULT_ADAPTIVE_RATIO,
    AdaptiveThresholdFilter,
    DiversityCapper,
    truncate,
)
from tessera_rag.retrieval.types import Embedder, VectorStore

logger = logging.getLogger(__name__)

DIVERSITY_OVERFETCH_FACTOR = 3


class RetrievalPipeline:
    """Retrieval and ranking orchestrator.

    The execution order of :meth:`search` is fixed:

    1. reject an empty or blank query
    2. embed the query (the only embedding call)
    3. fetch raw candidates, over-fetching ``3x`` when diversity capping is on
    4. apply the adaptive threshold, when enabled
    5. cap candidates per originating document, when enabled
    6. keep the first ``limit`` survivors

    The pipeline holds only its collaborators and immutable settings, so it
    is safe to reuse across requests.

    Parameters
    ----------
    embedder : Embedder
        Component that turns the query into a vector.
    vector_store : VectorStore
        Component that returns raw candidates for a query vector.
    document_key : str, optional
        Metadata key holding a candidate's originating-document reference.
        Defaults to ``"original_content"``.
    adaptive_ratio : float, optional
        Fraction of the top score used by the adaptive threshold. Defaults
        to ``0.8``.
    default_options : SearchOptions, Mapping or None, optional
        Options used when a call does not pass its own.
    """

    def __init__(
            self,
            embedder: Embedder,
            vector_store: VectorStore,
            *,
            document_key: str = DEFAULT_DOCUMENT_KEY,
            adaptive_ratio: float = DEFAULT_ADAPTIVE_RATIO,
            default_options: SearchOptions | Mapping[str, Any] | None = None,
        ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.document_key = document_key
        self.adaptive_ratio = AdaptiveThresholdFilter(ratio=adaptive_ratio).ratio
        self.default_options = validate_search_options(default_options)

    def _resolve(self, query: Any, options: Any, overrides: Mapping[str, Any]) -> SearchOptions:
        validate_non_empty_string(query, "query")
        if isinstance(options, Mapping):
            # Partial mappings are layered over the pipeline defaults.
            return validate_search_options(self.default_options, **{**options, **overrides})
        base = self.default_options if options is None else options
        return validate_search_options(base, **overrides)

    @staticmethod
    def effective_limit(options: SearchOptions) -> int:
        """Return how many raw candidates to request from the store."""
        if options.diversity_enabled:
            return options.limit * DIVERSITY_OVERFETCH_FACTOR
        return options.limit

    def rank(self, candidates: Sequence[SearchCandidate], options: SearchOptions) -> List[SearchCandidate]:
        """Apply the threshold, diversity and truncation stages.

        Parameters
        ----------
        candidates : Sequence[SearchCandidate]
            Raw candidates in store order.
        options : SearchOptions
            Validated search options.

        Returns
        -------
        list[SearchCandidate]
            Surviving candidates, in their original relative order.
        """
        results = list(candidates)

        if options.use_adaptive_threshold and results:
            threshold_filter = AdaptiveThresholdFilter(
                min_similarity=options.min_similarity,
                ratio=self.adaptive_ratio,
            )
            before = len(results)
            results = threshold_filter.apply(results)
            logger.debug(
                "Adaptive threshold %.4f kept %d of %d candidates",
                threshold_filter.threshold(candidates), len(results), before,
            )

        if options.diversity_enabled:
            capper = DiversityCapper(
                max_per_document=options.max_chunks_per_document,
                document_key=self.document_key,
            )
            before = len(results)
            results = capper.apply(results)
            logger.debug(
                "Diversity cap of %d per document kept %d of %d candidates",
                options.max_chunks_per_document, len(results), before,
            )

        return truncate(results, options.limit)

    def search(
            self,
            query: str,
            options: SearchOptions | Mapping[str, Any] | None = None,
            **overrides: Any,
        ) -> List[SearchCandidate]:
        """Retrieve and rank candidates for a query.

        Parameters
        ----------
        query : str
            Natural-language query string.
        options : SearchOptions, Mapping or None, optional
            Search options; ``None`` uses the pipeline defaults.
        **overrides : Any
            Individual option values overriding ``options``
            (e.g. ``limit=10``).

        Returns
        -------
        list[SearchCandidate]
            At most ``limit`` candidates, in store order.

        Raises
        ------
        ValidationError
            If the query is empty or blank, or the options are invalid.
        EmbeddingError
            Propagated unchanged from the embedder.
        StoreError
            Propagated unchanged from the vector store.
        """
        opts = self._resolve(query, options, overrides)

        query_vector = self.embedder.embed(query).embedding
        raw = self.vector_store.search(
            query_vector,
            limit=self.effective_limit(opts),
            min_similarity=opts.min_similarity,
            filters=opts.filters,
        )
        logger.debug("Vector store returned %d raw candidates", len(raw))

        return self.rank(raw, opts)

    async def asearch(
            self,
            query: str,
            options: SearchOptions | Mapping[str, Any] | None = None,
            **overrides: Any,
        ) -> List[SearchCandidate]:
        """Async variant of :meth:`search`.

        Awaits exactly two operations, in sequence: the query embedding and
        the store search. Cancelling the calling task cancels whichever is
        in flight.
        """
        opts = self._resolve(query, options, overrides)

        embedded = await self.embedder.aembed(query)
        raw = await self.vector_store.asearch(
            embedded.embedding,
            limit=self.effective_limit(opts),
            min_similarity=opts.min_similarity,
            filters=opts.filters,
        )
        logger.debug("Vector store returned %d raw candidates", len(raw))

        return self.rank(raw, opts)

    def __call__(self, query: str, **kwargs: Any) -> List[SearchCandidate]:
        """Convenience wrapper around :meth:`search`."""
        return self.search(query, **kwargs)


__all__ = ["RetrievalPipeline"]
