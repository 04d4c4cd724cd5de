"""tessera_rag.retrieval.filters

Post-retrieval candidate filters.

Raw candidates returned by a vector store are narrowed down by a fixed
sequence of pure, in-memory passes. None of them re-sort their input: the
store's similarity order is preserved throughout.

Classes
-------
CandidateFilter
    Abstract interface for a single filtering pass.
AdaptiveThresholdFilter
    Drops candidates scoring well below the best candidate of the batch.
DiversityCapper
    Limits how many candidates may come from the same originating document.

Functions
---------
truncate
    Keep the first ``limit`` candidates.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from tessera_rag.common.errors import ConfigurationError
from tessera_rag.common.schemas import DEFAULT_DOCUMENT_KEY, SearchCandidate

DEFAULT_ADAPTIVE_RATIO = 0.8
SCORE_REL_TOLERANCE = 1e-9


class CandidateFilter(ABC):
    """Abstract interface for a candidate filtering pass."""

    @abstractmethod
    def apply(self, candidates: Sequence[SearchCandidate]) -> List[SearchCandidate]:
        """Return the surviving candidates, in their original order."""
        raise NotImplementedError


@dataclass(frozen=True)
class AdaptiveThresholdFilter(CandidateFilter):
    """Similarity cutoff relative to the best candidate in the batch.

    The effective threshold is ``max(top_score * ratio, min_similarity)``,
    where ``top_score`` is the highest similarity among the candidates. The
    input is not assumed to be sorted.

    Scores equal to the threshold within floating-point rounding are kept.

    Attributes
    ----------
    min_similarity : float
        Absolute floor for the threshold. Defaults to ``0.0``.
    ratio : float
        Fraction of the top score a candidate must reach. Defaults to ``0.8``.
    """

    min_similarity: float = 0.0
    ratio: float = DEFAULT_ADAPTIVE_RATIO

    def __post_init__(self):
        if not 0.0 < self.ratio <= 1.0:
            raise ConfigurationError(f"Adaptive threshold ratio must be in (0, 1], got {self.ratio!r}")

    def threshold(self, candidates: Sequence[SearchCandidate]) -> Optional[float]:
        """Return the effective threshold, or ``None`` for an empty batch."""
        if not candidates:
            return None
        top_score = max(c.similarity for c in candidates)
        return max(top_score * self.ratio, self.min_similarity)

    def apply(self, candidates: Sequence[SearchCandidate]) -> List[SearchCandidate]:
        threshold = self.threshold(candidates)
        if threshold is None:
            return []
        return [c for c in candidates if _at_least(c.similarity, threshold)]


def _at_least(score: float, threshold: float) -> bool:
    # top * ratio picks up rounding error, e.g. 0.9 * 0.8 > 0.72.
    return score >= threshold or math.isclose(score, threshold, rel_tol=SCORE_REL_TOLERANCE, abs_tol=1e-12)


@dataclass(frozen=True)
class DiversityCapper(CandidateFilter):
    """Cap on candidates sharing one originating document.

    Candidates are walked in order with a running count per document key. A
    keyed candidate is kept while its key's count is below the cap; later
    ones are dropped. Candidates without a key are not chunks of a larger
    document and always pass.

    Attributes
    ----------
    max_per_document : int
        Maximum candidates kept per document key. Must be positive.
    document_key : str
        Metadata key holding the document back-reference. Defaults to
        ``"original_content"``.
    """

    max_per_document: int
    document_key: str = DEFAULT_DOCUMENT_KEY

    def __post_init__(self):
        if isinstance(self.max_per_document, bool) or not isinstance(self.max_per_document, int):
            raise ConfigurationError(f"max_per_document must be an integer, got {self.max_per_document!r}")
        if self.max_per_document <= 0:
            raise ConfigurationError("max_per_document must be greater than 0")

    def apply(self, candidates: Sequence[SearchCandidate]) -> List[SearchCandidate]:
        counts: Dict[Any, int] = {}
        kept: List[SearchCandidate] = []

        for candidate in candidates:
            key = candidate.document_key(self.document_key)
            if key is None:
                kept.append(candidate)
                continue

            key = _hashable(key)
            count = counts.get(key, 0)
            if count < self.max_per_document:
                counts[key] = count + 1
                kept.append(candidate)

        return kept


def _hashable(value: Any) -> Any:
    """Return a hashable stand-in for metadata values such as dicts or lists."""
    if isinstance(value, dict):
        return tuple(sorted((str(k), _hashable(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_hashable(v) for v in value)
    return value


def truncate(candidates: Sequence[SearchCandidate], limit: int) -> List[SearchCandidate]:
    """Return the first ``limit`` candidates, order preserved."""
    return list(candidates[: max(0, int(limit))])


__all__ = [
    "CandidateFilter",
    "AdaptiveThresholdFilter",
    "DiversityCapper",
    "truncate",
]
