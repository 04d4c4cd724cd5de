"""tessera_rag.retrieval.embedder

Embedding interfaces and factories for the retrieval layer.

This module defines a small provider-agnostic interface for producing vector
embeddings from text, along with concrete implementations backed by
LlamaIndex embedding wrappers. A factory function is provided to construct
an embedder implementation from configuration.

Provider failures are wrapped once in
:class:`~tessera_rag.common.errors.EmbeddingError`; token usage is computed
locally with a :class:`~tessera_rag.common.tokenisation.TokenCounter`.

Classes
-------
BaseEmbedder
    Abstract interface specifying the API used by the pipelines.
HuggingFaceEmbedder
    Embedder backed by a Hugging Face SentenceTransformer via LlamaIndex.
OpenAILikeEmbedder
    Embedder backed by an OpenAI-compatible HTTP API via LlamaIndex.

Functions
---------
is_retryable
    Decide whether an embedding failure is worth retrying.
create_embedder
    Create an embedder implementation from a configuration mapping.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml
from llama_index.core.base.embeddings.base import BaseEmbedding as LlamaIndexBaseEmbedding
from llama_index.core.callbacks import CallbackManager

from tessera_rag.common.errors import ConfigurationError, EmbeddingError, ValidationError
from tessera_rag.common.schemas import BatchEmbeddingResult, EmbeddingResult
from tessera_rag.common.tokenisation import HeuristicTokenCounter, TokenCounter, count_tokens_total

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503})
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_SECONDS = 1.0


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return bool(value)


def _status_code(exc: BaseException) -> Optional[int]:
    for attr in ("status_code", "status", "http_status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def is_retryable(exc: BaseException) -> bool:
    """Return whether an embedding failure is transient.

    Rate limits (429), server errors (500, 502, 503), timeouts and dropped
    connections are retryable, whether raised directly or as the cause of an
    :class:`~tessera_rag.common.errors.EmbeddingError`.
    """
    candidates = [exc]
    if exc.__cause__ is not None:
        candidates.append(exc.__cause__)

    for err in candidates:
        if isinstance(err, (TimeoutError, ConnectionError)):
            return True
        if _status_code(err) in RETRYABLE_STATUS_CODES:
            return True
    return False


def _require_text(text: Any) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Text to embed cannot be empty", field="text", value=text)
    return text


class BaseEmbedder(ABC):
    """Abstract interface for text embedding.

    Concrete implementations wrap a provider-specific LlamaIndex embedding
    and expose a small, consistent API used by the pipelines.

    Parameters
    ----------
    token_counter : TokenCounter or None, optional
        Counter used to report token usage. Defaults to
        :class:`~tessera_rag.common.tokenisation.HeuristicTokenCounter`.
    provider : str, optional
        Provider name reported on :class:`EmbeddingError`.
    dimensions : int or None, optional
        Expected vector size. When set, a vector of any other size raises
        :class:`EmbeddingError`.
    """

    def __init__(
            self,
            *,
            token_counter: Optional[TokenCounter] = None,
            provider: str = "unknown",
            dimensions: Optional[int] = None,
        ):
        self.token_counter = token_counter or HeuristicTokenCounter()
        self.provider = provider
        self.dimensions = dimensions

    @abstractmethod
    def get_embedder(self) -> LlamaIndexBaseEmbedding:
        """Return the underlying LlamaIndex embedding instance."""
        pass

    @classmethod
    @abstractmethod
    def from_config_dict(
            cls,
            config: Dict[str, Any],
            callback_manager: Optional[CallbackManager] = None,
            token_counter: Optional[TokenCounter] = None,
        ) -> "BaseEmbedder":
        """Create an embedder from a configuration mapping.

        Raises
        ------
        KeyError
            If required configuration keys are missing.
        """
        pass

    @classmethod
    def from_config(
            cls,
            config_path: str,
            callback_manager: Optional[CallbackManager] = None,
            token_counter: Optional[TokenCounter] = None,
        ) -> "BaseEmbedder":
        """Create an embedder from a YAML configuration file."""
        with open(config_path, "r") as f:
            cfg = yaml.safe_load(f) or {}
        return cls.from_config_dict(cfg, callback_manager, token_counter)

    def _failure(self, exc: Exception, tokens: Optional[int] = None) -> EmbeddingError:
        return EmbeddingError(
            f"{self.provider} embedding request failed: {type(exc).__name__}: {exc}",
            provider=self.provider,
            tokens_used=tokens,
            status_code=_status_code(exc),
        )

    def _checked(self, vector: Sequence[float]) -> List[float]:
        vector = [float(x) for x in vector]
        if self.dimensions is not None and len(vector) != self.dimensions:
            raise EmbeddingError(
                f"{self.provider} returned a {len(vector)}-dimensional vector, expected {self.dimensions}",
                provider=self.provider,
            )
        return vector

    def embed(self, text: str) -> EmbeddingResult:
        """Embed a single text.

        The underlying embedder is checked for ``get_text_embedding``,
        ``embed_query`` and ``embed``, in that order.

        Raises
        ------
        ValidationError
            If ``text`` is empty or blank.
        EmbeddingError
            If the provider call fails.
        """
        _require_text(text)
        embedder = self.get_embedder()

        fn = None
        for method in ("get_text_embedding", "embed_query", "embed"):
            if hasattr(embedder, method):
                fn = getattr(embedder, method)
                break
        if fn is None:
            raise EmbeddingError(f"No embedding method found on {embedder!r}", provider=self.provider)

        try:
            vector = fn(text)
        except Exception as exc:
            raise self._failure(exc) from exc

        return EmbeddingResult(embedding=self._checked(vector), tokens=int(self.token_counter.count(text)))

    def embed_batch(self, texts: Sequence[str]) -> BatchEmbeddingResult:
        """Embed a batch of texts, preserving input order.

        Falls back to one :meth:`embed` call per text when the underlying
        embedder has no batch API.

        Raises
        ------
        ValidationError
            If any text is empty or blank.
        EmbeddingError
            If the provider call fails.
        """
        texts = list(texts)
        if not texts:
            return BatchEmbeddingResult(embeddings=[], total_tokens=0)
        for text in texts:
            _require_text(text)

        embedder = self.get_embedder()
        if not hasattr(embedder, "get_text_embedding_batch"):
            results = [self.embed(text) for text in texts]
            return BatchEmbeddingResult(
                embeddings=[r.embedding for r in results],
                total_tokens=sum(r.tokens for r in results),
            )

        try:
            vectors = embedder.get_text_embedding_batch(texts)
        except Exception as exc:
            raise self._failure(exc) from exc

        return BatchEmbeddingResult(
            embeddings=[self._checked(v) for v in vectors],
            total_tokens=count_tokens_total(self.token_counter, texts),
        )

    async def aembed(self, text: str) -> EmbeddingResult:
        """Asynchronously embed a single text.

        Uses the embedder's native ``aget_text_embedding`` when available,
        otherwise runs :meth:`embed` in the default executor.
        """
        _require_text(text)
        embedder = self.get_embedder()

        if not hasattr(embedder, "aget_text_embedding"):
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self.embed, text)

        try:
            vector = await embedder.aget_text_embedding(text)
        except Exception as exc:
            raise self._failure(exc) from exc

        return EmbeddingResult(embedding=self._checked(vector), tokens=int(self.token_counter.count(text)))

    async def aembed_batch(self, texts: Sequence[str]) -> BatchEmbeddingResult:
        """Asynchronously embed a batch of texts.

        If the underlying embedder does not provide an async API, embeddings
        are computed in a thread pool via ``run_in_executor``.
        """
        texts = list(texts)
        for text in texts:
            _require_text(text)

        embedder = self.get_embedder()
        if not texts or not hasattr(embedder, "aget_text_embedding_batch"):
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self.embed_batch, texts)

        try:
            vectors = await embedder.aget_text_embedding_batch(texts)
        except Exception as exc:
            raise self._failure(exc) from exc

        return BatchEmbeddingResult(
            embeddings=[self._checked(v) for v in vectors],
            total_tokens=count_tokens_total(self.token_counter, texts),
        )

    def embed_with_retry(
            self,
            text: str,
            max_retries: int = DEFAULT_MAX_RETRIES,
            backoff: float = DEFAULT_BACKOFF_SECONDS,
        ) -> EmbeddingResult:
        """Embed a text, retrying transient failures with exponential backoff.

        Waits ``backoff * 2**attempt`` seconds between attempts (1s, 2s, 4s by
        default). Non-retryable errors, and the last retryable one, are
        re-raised unchanged.

        Parameters
        ----------
        text : str
            Text to embed.
        max_retries : int, optional
            Total number of attempts. Defaults to ``3``.
        backoff : float, optional
            Base delay in seconds. Defaults to ``1.0``.
        """
        attempts = max(1, int(max_retries))
        for attempt in range(attempts):
            try:
                return self.embed(text)
            except EmbeddingError as exc:
                if not is_retryable(exc) or attempt == attempts - 1:
                    raise
                delay = backoff * (2 ** attempt)
                logger.warning(
                    "Embedding attempt %d/%d via %s failed (%s); retrying in %.1fs",
                    attempt + 1, attempts, self.provider, exc, delay,
                )
                time.sleep(delay)

    async def aembed_with_retry(
            self,
            text: str,
            max_retries: int = DEFAULT_MAX_RETRIES,
            backoff: float = DEFAULT_BACKOFF_SECONDS,
        ) -> EmbeddingResult:
        """Async variant of :meth:`embed_with_retry`."""
        attempts = max(1, int(max_retries))
        for attempt in range(attempts):
            try:
                return await self.aembed(text)
            except EmbeddingError as exc:
                if not is_retryable(exc) or attempt == attempts - 1:
                    raise
                delay = backoff * (2 ** attempt)
                logger.warning(
                    "Embedding attempt %d/%d via %s failed (%s); retrying in %.1fs",
                    attempt + 1, attempts, self.provider, exc, delay,
                )
                await asyncio.sleep(delay)


class HuggingFaceEmbedder(BaseEmbedder):
    """Embedder backed by a Hugging Face SentenceTransformer via LlamaIndex.

    This implementation wraps :class:`llama_index.embeddings.huggingface.HuggingFaceEmbedding`.

    Parameters
    ----------
    model_name : str
        Name or path of the embedding model.
    device : str or None, optional
        Device identifier (e.g., ``"cuda"``, ``"cpu"``, ``"mps"``).
    trust_remote_code : bool, optional
        Whether to allow custom model code from the Hugging Face Hub.
    callback_manager : CallbackManager, optional
        Optional LlamaIndex callback manager for telemetry.
    model_kwargs : dict[str, Any] or None, optional
        Additional keyword arguments forwarded to the underlying embedder.
    token_counter : TokenCounter or None, optional
        Counter used to report token usage.
    dimensions : int or None, optional
        Expected vector size, when known.
    """

    def __init__(
            self,
            model_name: str,
            *,
            device: Optional[str] = None,
            trust_remote_code: bool = False,
            callback_manager: Optional[CallbackManager] = None,
            model_kwargs: Optional[dict[str, Any]] = None,
            token_counter: Optional[TokenCounter] = None,
            dimensions: Optional[int] = None,
        ):
        super().__init__(token_counter=token_counter, provider="huggingface", dimensions=dimensions)
        from llama_index.embeddings.huggingface import HuggingFaceEmbedding

        self.model_name = model_name
        self.embedder = HuggingFaceEmbedding(
            model_name=model_name,
            trust_remote_code=trust_remote_code,
            device=device,
            callback_manager=callback_manager,
            model_kwargs=model_kwargs or {},
        )

    def get_embedder(self) -> LlamaIndexBaseEmbedding:
        return self.embedder

    @classmethod
    def from_config_dict(
            cls,
            config: Dict[str, Any],
            callback_manager: Optional[CallbackManager] = None,
            token_counter: Optional[TokenCounter] = None,
        ) -> "HuggingFaceEmbedder":
        """Create a Hugging Face embedder from a configuration mapping.

        The mapping must contain ``model_name`` and may set ``device``,
        ``trust_remote_code``, ``model_kwargs`` and ``dimensions``.
        """
        return cls(
            model_name=config["model_name"],
            device=config.get("device"),
            trust_remote_code=_as_bool(config.get("trust_remote_code"), False),
            callback_manager=callback_manager,
            model_kwargs=config.get("model_kwargs", {}),
            token_counter=token_counter,
            dimensions=config.get("dimensions"),
        )


class OpenAILikeEmbedder(BaseEmbedder):
    """Embedder backed by an OpenAI-compatible embedding API via LlamaIndex.

    This implementation wraps :class:`llama_index.embeddings.openai_like.OpenAILikeEmbedding`.
    The wrapped client's own retries are disabled by default
    (``max_retries=0``) so that retry stays an explicit caller decision via
    :meth:`~BaseEmbedder.embed_with_retry`.

    Parameters
    ----------
    model_name : str
        Model identifier for the embedding endpoint.
    api_base : str
        Base URL for the OpenAI-compatible embedding API endpoint.
    api_key : str or None, optional
        API key sent with each request.
    timeout : float, optional
        Request timeout in seconds. Defaults to ``60.0``.
    max_retries : int, optional
        Retries performed by the wrapped client. Defaults to ``0``.
    embed_batch_size : int, optional
        Texts per provider request. Defaults to ``10``.
    """

    def __init__(
            self,
            model_name: str,
            *,
            api_base: str,
            api_key: Optional[str] = None,
            callback_manager: Optional[CallbackManager] = None,
            model_kwargs: Optional[dict[str, Any]] = None,
            timeout: float = 60.0,
            max_retries: int = 0,
            embed_batch_size: int = 10,
            reuse_client: bool = True,
            token_counter: Optional[TokenCounter] = None,
            dimensions: Optional[int] = None,
        ):
        super().__init__(token_counter=token_counter, provider="openai_like", dimensions=dimensions)
        from llama_index.embeddings.openai_like import OpenAILikeEmbedding

        self.model_name = model_name
        self.embedder = OpenAILikeEmbedding(
            model_name=model_name,
            api_base=api_base,
            api_key=api_key,
            callback_manager=callback_manager,
            additional_kwargs=model_kwargs or {},
            timeout=timeout,
            max_retries=max_retries,
            embed_batch_size=embed_batch_size,
            reuse_client=reuse_client,
            dimensions=dimensions,
        )

    def get_embedder(self) -> LlamaIndexBaseEmbedding:
        return self.embedder

    @classmethod
    def from_config_dict(
            cls,
            config: Dict[str, Any],
            callback_manager: Optional[CallbackManager] = None,
            token_counter: Optional[TokenCounter] = None,
        ) -> "OpenAILikeEmbedder":
        """Create an OpenAI-compatible embedder from a configuration mapping.

        The mapping must contain ``model_name`` and ``api_base``.
        """
        return cls(
            model_name=config["model_name"],
            api_base=config["api_base"],
            api_key=config.get("api_key"),
            callback_manager=callback_manager,
            model_kwargs=config.get("model_kwargs", {}),
            timeout=float(config.get("timeout", config.get("request_timeout", 60.0))),
            max_retries=int(config.get("max_retries", 0)),
            embed_batch_size=int(config.get("embed_batch_size", 10)),
            reuse_client=_as_bool(config.get("reuse_client"), True),
            token_counter=token_counter,
            dimensions=config.get("dimensions"),
        )


# ----------------- Factory helpers -----------------

_EMBEDDERS = {
    "huggingface": HuggingFaceEmbedder,
    "hf": HuggingFaceEmbedder,
    "openai_like": OpenAILikeEmbedder,
    "openai": OpenAILikeEmbedder,
}


def _get_embedder_kind(cfg: Mapping[str, Any]) -> str:
    """Return the first non-empty kind/type/provider discriminator, or ``""``."""
    for key in ("kind", "type", "provider", "backend", "impl"):
        val = cfg.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


def _normalize_embedder_kind(kind: str) -> str:
    """Normalise a discriminator to a registry key (``"OpenAILike"`` -> ``"openai_like"``)."""
    out: List[str] = []
    prev = ""
    for ch in kind.strip():
        if prev and prev.islower() and ch.isupper():
            out.append("_")
        out.append(ch)
        prev = ch

    key = "".join(out).replace("-", "_").replace(" ", "_").lower()
    while "__" in key:
        key = key.replace("__", "_")

    aliases = {
        "openailike": "openai_like",
        "open_ailike": "openai_like",
        "open_ai_like": "openai_like",
        "hugging_face": "huggingface",
    }
    return aliases.get(key, key)


def create_embedder(
    config: Mapping[str, Any],
    callback_manager: Optional[CallbackManager] = None,
    token_counter: Optional[TokenCounter] = None,
) -> BaseEmbedder:
    """Create an embedder implementation from a configuration mapping.

    The implementation is selected by a discriminator field (one of
    ``kind``, ``type``, ``provider``, ``backend`` or ``impl``). Without one,
    :class:`HuggingFaceEmbedder` is used.

    Parameters
    ----------
    config : Mapping[str, Any]
        Configuration mapping used to construct the embedder.
    callback_manager : CallbackManager, optional
        Optional LlamaIndex callback manager.
    token_counter : TokenCounter or None, optional
        Counter used to report token usage.

    Returns
    -------
    BaseEmbedder
        An initialised embedder implementation.

    Raises
    ------
    ConfigurationError
        If ``config`` is not a mapping or the discriminator is unknown.
    """
    if not isinstance(config, Mapping):
        raise ConfigurationError(f"create_embedder expected a mapping, got {type(config).__name__}")

    kind_raw = _get_embedder_kind(config)
    kind = _normalize_embedder_kind(kind_raw) if kind_raw else "huggingface"

    cls = _EMBEDDERS.get(kind)
    if cls is None:
        raise ConfigurationError(
            f"Unknown embedder kind '{kind_raw}' (normalized to '{kind}'). "
            f"Supported kinds: {sorted(_EMBEDDERS)}."
        )

    return cls.from_config_dict(dict(config), callback_manager=callback_manager, token_counter=token_counter)


__all__ = [
    "BaseEmbedder",
    "HuggingFaceEmbedder",
    "OpenAILikeEmbedder",
    "is_retryable",
    "create_embedder",
]
