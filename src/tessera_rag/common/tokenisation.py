"""tessera_rag.common.tokenisation

Token counting utilities.

Embedders report how many tokens each request consumed. Providers wrapped
through LlamaIndex do not expose that figure, so it is computed locally with
a :class:`TokenCounter` selected via configuration.

Classes
-------
TokenCounter
    Minimal protocol defining the token-counting interface.
HeuristicTokenCounter
    Lightweight, dependency-free approximate token counter.
TiktokenTokenCounter
    Exact token counter backed by the ``tiktoken`` library.
HuggingFaceTokenCounter
    Token counter backed by a Hugging Face tokenizer instance.

Functions
---------
count_tokens_total
    Sum token counts over a batch of texts.
create_token_counter
    Build a token counter from a ``tokenization`` configuration mapping.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Protocol

from tessera_rag.common.errors import ConfigurationError

DEFAULT_ENCODING = "cl100k_base"


class TokenCounter(Protocol):
    """A minimal interface for token accounting."""

    def count(self, text: str) -> int:
        """Return the number of tokens in ``text``."""


@dataclass(frozen=True)
class HeuristicTokenCounter:
    """Dependency-free, approximate token counter.

    Estimates token counts with a fixed characters-per-token ratio.

    Attributes
    ----------
    chars_per_token : int
        Approximate number of characters per token. Defaults to ``4``.
    """

    chars_per_token: int = 4

    def count(self, text: str) -> int:
        if not text:
            return 0
        cpt = max(1, int(self.chars_per_token))
        return max(1, len(text) // cpt)


@dataclass(frozen=True)
class TiktokenTokenCounter:
    """Token counter backed by the ``tiktoken`` library.

    Attributes
    ----------
    encoding_name : str
        Name of the ``tiktoken`` encoding.
    _enc : Any
        Internal ``tiktoken`` encoding object.
    """

    encoding_name: str
    _enc: Any

    @classmethod
    def from_encoding_name(cls, encoding_name: str = DEFAULT_ENCODING) -> "TiktokenTokenCounter":
        """Construct a token counter from an encoding name."""
        import tiktoken

        enc = tiktoken.get_encoding(encoding_name)
        return cls(encoding_name=encoding_name, _enc=enc)

    @classmethod
    def from_model_name(cls, model_name: str) -> "TiktokenTokenCounter":
        """Construct a token counter for a named OpenAI model.

        Unknown model names fall back to :data:`DEFAULT_ENCODING`.
        """
        import tiktoken

        try:
            enc = tiktoken.encoding_for_model(model_name)
        except KeyError:
            enc = tiktoken.get_encoding(DEFAULT_ENCODING)
        return cls(encoding_name=enc.name, _enc=enc)

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._enc.encode(text))


@dataclass(frozen=True)
class HuggingFaceTokenCounter:
    """Token counter backed by a Hugging Face tokenizer.

    The tokenizer is constructed by the caller (e.g. via
    ``transformers.AutoTokenizer``); ``transformers`` is not imported here.
    """

    tokenizer: Any

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self.tokenizer.encode(text))


def count_tokens_total(counter: TokenCounter, texts: Iterable[str]) -> int:
    """Return the total token count of ``texts``."""
    return sum(int(counter.count(text)) for text in texts)


def create_token_counter(config: Optional[Mapping[str, Any]] = None) -> TokenCounter:
    """Create a token counter from a ``tokenization`` configuration mapping.

    Parameters
    ----------
    config : Mapping[str, Any] or None, optional
        Mapping with a ``type`` key (``heuristic``, ``tiktoken`` or
        ``huggingface``) and type-specific options. ``None`` selects the
        heuristic counter.

    Returns
    -------
    TokenCounter
        Configured token counter.

    Raises
    ------
    ConfigurationError
        If the type is unknown or required options are missing.
    """
    cfg = dict(config or {})
    kind = str(cfg.get("type") or "heuristic").lower().replace("-", "_")

    if kind in {"heuristic", "char", "chars"}:
        try:
            cpt = int(cfg.get("chars_per_token", 4))
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"tokenization.chars_per_token must be an integer, got {cfg.get('chars_per_token')!r}"
            )
        return HeuristicTokenCounter(chars_per_token=cpt)

    if kind in {"tiktoken", "openai", "openai_like"}:
        if cfg.get("model_name") and not cfg.get("encoding"):
            return TiktokenTokenCounter.from_model_name(str(cfg["model_name"]))
        return TiktokenTokenCounter.from_encoding_name(str(cfg.get("encoding") or DEFAULT_ENCODING))

    if kind in {"huggingface", "hf", "transformers"}:
        model_name = cfg.get("model_name")
        if not model_name:
            raise ConfigurationError("tokenization.model_name is required for huggingface tokenization")

        from transformers import AutoTokenizer  # type: ignore

        return HuggingFaceTokenCounter(tokenizer=AutoTokenizer.from_pretrained(str(model_name)))

    raise ConfigurationError(f"Unknown tokenization type: {kind!r}")


__all__ = [
    "TokenCounter",
    "HeuristicTokenCounter",
    "TiktokenTokenCounter",
    "HuggingFaceTokenCounter",
    "count_tokens_total",
    "create_token_counter",
]
