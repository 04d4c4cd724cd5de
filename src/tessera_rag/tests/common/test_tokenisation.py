import pytest

from tessera_rag.common.errors import ConfigurationError
from tessera_rag.common.tokenisation import (
    HeuristicTokenCounter,
    HuggingFaceTokenCounter,
    TiktokenTokenCounter,
    count_tokens_total,
    create_token_counter,
)


class DummyTokenizer:
    """Whitespace tokenizer standing in for a Hugging Face tokenizer."""

    def encode(self, text, add_special_tokens=False):
        return text.split()


def test_heuristic_counter():
    counter = HeuristicTokenCounter(chars_per_token=4)

    assert counter.count("") == 0
    assert counter.count("ab") == 1
    assert counter.count("x" * 40) == 10


def test_huggingface_counter_uses_tokenizer():
    counter = HuggingFaceTokenCounter(tokenizer=DummyTokenizer())

    assert counter.count("one two three") == 3


def test_tiktoken_counter_counts_encoded_tokens():
    counter = TiktokenTokenCounter(encoding_name="whitespace", _enc=DummyTokenizer())

    assert counter.count("hello big world") == 3
    assert counter.count("") == 0


def test_count_tokens_total():
    counter = HeuristicTokenCounter(chars_per_token=1)

    assert count_tokens_total(counter, ["ab", "cde"]) == 5


def test_factory_defaults_to_heuristic():
    assert isinstance(create_token_counter(None), HeuristicTokenCounter)
    assert create_token_counter({"type": "chars", "chars_per_token": 2}).chars_per_token == 2


@pytest.mark.parametrize(
    "config",
    [
        {"type": "sentencepiece"},
        {"type": "heuristic", "chars_per_token": "many"},
        {"type": "huggingface"},
    ],
)
def test_factory_rejects_bad_config(config):
    with pytest.raises(ConfigurationError):
        create_token_counter(config)
