import pytest

from tessera_rag.common.errors import ConfigurationError
from tessera_rag.common.schemas import SearchCandidate
from tessera_rag.retrieval.filters import AdaptiveThresholdFilter, DiversityCapper, truncate


def _candidate(similarity: float, doc: str | None = None, name: str = "") -> SearchCandidate:
    metadata = {} if doc is None else {"original_content": doc}
    return SearchCandidate(
        content=name or f"chunk@{similarity}",
        similarity=similarity,
        distance=1.0 - similarity,
        metadata=metadata,
    )


def test_adaptive_threshold_keeps_candidates_near_top_score():
    """
    Similarities [0.9, 0.75, 0.7, 0.5] with a 0.5 floor give an effective
    threshold of 0.72, so only the first two survive.
    """
    candidates = [_candidate(s) for s in (0.9, 0.75, 0.7, 0.5)]
    threshold_filter = AdaptiveThresholdFilter(min_similarity=0.5)

    assert threshold_filter.threshold(candidates) == pytest.approx(0.72)
    assert [c.similarity for c in threshold_filter.apply(candidates)] == [0.9, 0.75]


def test_adaptive_threshold_keeps_score_exactly_at_threshold():
    """
    0.9 * 0.8 evaluates to 0.7200000000000001; a candidate scoring 0.72 sits
    on the threshold and must be kept.
    """
    candidates = [_candidate(s) for s in (0.9, 0.72, 0.71)]

    kept = AdaptiveThresholdFilter(min_similarity=0.5).apply(candidates)

    assert [c.similarity for c in kept] == [0.9, 0.72]


def test_adaptive_threshold_respects_absolute_floor():
    candidates = [_candidate(s) for s in (0.6, 0.55, 0.5)]

    kept = AdaptiveThresholdFilter(min_similarity=0.58).apply(candidates)

    assert [c.similarity for c in kept] == [0.6]


def test_adaptive_threshold_uses_maximum_of_unsorted_input():
    candidates = [_candidate(s) for s in (0.5, 1.0, 0.85, 0.79)]

    kept = AdaptiveThresholdFilter().apply(candidates)

    assert [c.similarity for c in kept] == [1.0, 0.85]


def test_adaptive_threshold_on_empty_input():
    threshold_filter = AdaptiveThresholdFilter(min_similarity=0.5)

    assert threshold_filter.threshold([]) is None
    assert threshold_filter.apply([]) == []


@pytest.mark.parametrize("ratio", [0.0, -0.1, 1.5])
def test_adaptive_threshold_rejects_bad_ratio(ratio):
    with pytest.raises(ConfigurationError):
        AdaptiveThresholdFilter(ratio=ratio)


def test_diversity_cap_keeps_first_candidates_per_document():
    """
    Five candidates that all come from the same document, capped at two,
    should keep exactly the first two in their original order.
    """
    candidates = [_candidate(0.9 - i * 0.05, doc="doc-a", name=f"c{i}") for i in range(5)]

    kept = DiversityCapper(max_per_document=2).apply(candidates)

    assert [c.content for c in kept] == ["c0", "c1"]


def test_diversity_cap_counts_each_document_separately():
    candidates = [
        _candidate(0.95, doc="a", name="a1"),
        _candidate(0.94, doc="b", name="b1"),
        _candidate(0.93, doc="a", name="a2"),
        _candidate(0.92, doc="a", name="a3"),
        _candidate(0.91, doc="b", name="b2"),
        _candidate(0.90, doc="b", name="b3"),
    ]

    kept = DiversityCapper(max_per_document=2).apply(candidates)

    assert [c.content for c in kept] == ["a1", "b1", "a2", "b2"]


def test_diversity_cap_passes_candidates_without_document_key():
    candidates = [
        _candidate(0.9, doc="a", name="a1"),
        _candidate(0.8, name="free1"),
        _candidate(0.7, doc="a", name="a2"),
        _candidate(0.6, doc="", name="free2"),
        _candidate(0.5, name="free3"),
    ]

    kept = DiversityCapper(max_per_document=1).apply(candidates)

    assert [c.content for c in kept] == ["a1", "free1", "free2", "free3"]


def test_diversity_cap_with_custom_key_and_unhashable_values():
    candidates = [
        SearchCandidate(content="x1", similarity=0.9, distance=0.1, metadata={"source": {"id": 1}}),
        SearchCandidate(content="x2", similarity=0.8, distance=0.2, metadata={"source": {"id": 1}}),
        SearchCandidate(content="y1", similarity=0.7, distance=0.3, metadata={"source": {"id": 2}}),
    ]

    kept = DiversityCapper(max_per_document=1, document_key="source").apply(candidates)

    assert [c.content for c in kept] == ["x1", "y1"]


@pytest.mark.parametrize("value", [0, -1, 1.5, True])
def test_diversity_cap_rejects_non_positive_integers(value):
    with pytest.raises(ConfigurationError):
        DiversityCapper(max_per_document=value)


def test_truncate_keeps_prefix():
    candidates = [_candidate(s) for s in (0.9, 0.8, 0.7)]

    assert truncate(candidates, 2) == candidates[:2]
    assert truncate(candidates, 10) == candidates
    assert truncate(candidates, 0) == []
