import pytest

from tessera_rag.common.errors import ConfigurationError, ValidationError
from tessera_rag.common.schemas import ChunkOptions, SearchCandidate
from tessera_rag.common.validation import (
    SearchOptions,
    validate_document_input,
    validate_non_empty_string,
    validate_search_options,
)


def test_search_option_defaults():
    options = validate_search_options()

    assert options.limit == 5
    assert options.min_similarity == 0.5
    assert options.filters is None
    assert options.max_chunks_per_document == 2
    assert options.use_adaptive_threshold is False
    assert options.diversity_enabled is True


def test_overrides_take_precedence():
    options = validate_search_options({"limit": 3, "min_similarity": 0.1}, limit=8)

    assert options.limit == 8
    assert options.min_similarity == 0.1


def test_search_options_instance_is_returned_as_is():
    options = SearchOptions(limit=2)

    assert validate_search_options(options) is options
    assert validate_search_options(options, limit=4).limit == 4


@pytest.mark.parametrize("max_chunks", [0, None])
def test_diversity_can_be_disabled(max_chunks):
    assert validate_search_options(max_chunks_per_document=max_chunks).diversity_enabled is False


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"limit": 0}, "limit"),
        ({"limit": 1001}, "limit"),
        ({"min_similarity": 1.5}, "min_similarity"),
        ({"min_similarity": -0.1}, "min_similarity"),
        ({"max_chunks_per_document": -1}, "max_chunks_per_document"),
        ({"top_k": 3}, "top_k"),
    ],
)
def test_invalid_search_options_name_the_field(overrides, field):
    with pytest.raises(ValidationError) as excinfo:
        validate_search_options(**overrides)

    assert excinfo.value.field == field
    assert excinfo.value.value == next(iter(overrides.values()))


def test_search_options_must_be_a_mapping():
    with pytest.raises(ValidationError):
        validate_search_options(["limit", 3])


def test_document_input_validation():
    document = validate_document_input("Some content", {"k": "v"})

    assert document.content == "Some content"
    assert document.metadata == {"k": "v"}

    with pytest.raises(ValidationError) as excinfo:
        validate_document_input("")
    assert excinfo.value.field == "content"

    with pytest.raises(ValidationError):
        validate_document_input(" \n\t ")
    with pytest.raises(ValidationError):
        validate_document_input("x" * 100_001)


def test_validate_non_empty_string():
    assert validate_non_empty_string("q", "query") == "q"

    with pytest.raises(ValidationError) as excinfo:
        validate_non_empty_string("  ", "query")
    assert excinfo.value.field == "query"


def test_chunk_options_coerce_separators_to_tuple():
    options = ChunkOptions(size=10, overlap=2, separators=["\n", ""])

    assert options.separators == ("\n", "")


@pytest.mark.parametrize("size", [True, 1.5, "10"])
def test_chunk_options_require_integer_size(size):
    with pytest.raises(ConfigurationError):
        ChunkOptions(size=size)


def test_candidate_document_key_treats_empty_as_absent():
    keyed = SearchCandidate(content="c", similarity=0.5, distance=0.5, metadata={"original_content": "doc"})
    empty = SearchCandidate(content="c", similarity=0.5, distance=0.5, metadata={"original_content": ""})
    bare = SearchCandidate(content="c", similarity=0.5, distance=0.5)

    assert keyed.document_key() == "doc"
    assert empty.document_key() is None
    assert bare.document_key() is None
