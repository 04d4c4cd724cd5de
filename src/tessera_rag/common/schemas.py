"""tessera_rag.common.schemas

Core data schemas shared across the chunking and retrieval layers.

These lightweight dataclasses describe the canonical shapes passed between
chunkers, embedders, vector stores and the retrieval pipeline.

Classes
-------
ChunkOptions
    Validated sizing options for a chunking strategy.
Chunk
    A bounded text fragment produced by a chunker.
SearchCandidate
    A stored chunk record paired with a similarity score from one search.
EmbeddingResult
    Embedding vector and token count for a single text.
BatchEmbeddingResult
    Embedding vectors and total token count for a batch of texts.

Notes
-----
``metadata`` is untyped (``dict[str, Any]``) and holds arbitrary key-value
pairs written by ingestion. Any key may be missing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from tessera_rag.common.errors import ConfigurationError

DEFAULT_DOCUMENT_KEY = "original_content"
CHUNK_METADATA_KEYS = ("chunk_index", "total_chunks", "start_char", "end_char")


def _require_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"Chunk {name} must be an integer, got {value!r}")
    return value


@dataclass(frozen=True)
class ChunkOptions:
    """Sizing options for a chunking strategy.

    Attributes
    ----------
    size : int
        Maximum size of each chunk, in characters. Must be positive.
    overlap : int
        Characters shared between consecutive chunks. Must satisfy
        ``0 <= overlap < size``.
    separators : tuple[str, ...] or None
        Ordered separators used by the recursive strategy. ``None`` selects
        the default hierarchy.

    Raises
    ------
    ConfigurationError
        If ``size`` or ``overlap`` violates its bounds.
    """

    size: int
    overlap: int = 0
    separators: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        size = _require_int("size", self.size)
        overlap = _require_int("overlap", self.overlap)

        if size <= 0:
            raise ConfigurationError("Chunk size must be greater than 0")
        if overlap < 0:
            raise ConfigurationError("Chunk overlap cannot be negative")
        if overlap >= size:
            raise ConfigurationError("Chunk overlap must be less than chunk size")

        if self.separators is not None:
            if isinstance(self.separators, str):
                raise ConfigurationError("Chunk separators must be a sequence of strings, not a string")
            separators = tuple(self.separators)
            for sep in separators:
                if not isinstance(sep, str):
                    raise ConfigurationError(f"Chunk separators must be strings, got {sep!r}")
            object.__setattr__(self, "separators", separators)


@dataclass(frozen=True)
class Chunk:
    """A contiguous fragment of a source text.

    Attributes
    ----------
    content : str
        Chunk text.
    index : int
        0-based position among the chunks of one ``chunk()`` call.
    total_count : int
        Number of chunks produced by that call.
    start_offset : int or None
        Offset of the first character in the source text, when known.
    end_offset : int or None
        Offset one past the last character in the source text, when known.
    """

    content: str
    index: int
    total_count: int
    start_offset: Optional[int] = None
    end_offset: Optional[int] = None

    def to_metadata(self) -> Dict[str, int]:
        """Return the storage metadata describing this chunk's position.

        Returns
        -------
        dict[str, int]
            ``chunk_index`` and ``total_chunks``, plus ``start_char`` and
            ``end_char`` when offsets are known.
        """
        metadata = {
            "chunk_index": self.index,
            "total_chunks": self.total_count,
        }
        if self.start_offset is not None:
            metadata["start_char"] = self.start_offset
        if self.end_offset is not None:
            metadata["end_char"] = self.end_offset
        return metadata


@dataclass
class SearchCandidate:
    """A stored record returned by a single similarity search.

    Attributes
    ----------
    content : str
        Stored chunk text.
    similarity : float
        Similarity to the query in ``[0, 1]`` (1 means identical).
    distance : float
        Backend-specific distance. Not assumed to equal ``1 - similarity``.
    metadata : Dict[str, Any]
        Stored metadata. Chunks of a larger document carry a back-reference
        to the originating document (by default under ``original_content``).
    id : str or None
        Backend record identifier, when available.
    """

    content: str
    similarity: float
    distance: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    def document_key(self, key: str = DEFAULT_DOCUMENT_KEY) -> Any:
        """Return the originating-document reference stored under ``key``.

        Empty values count as absent.
        """
        value = (self.metadata or {}).get(key)
        if value is None or value == "":
            return None
        return value


@dataclass
class EmbeddingResult:
    """Embedding of a single text.

    Attributes
    ----------
    embedding : list[float]
        The embedding vector.
    tokens : int
        Tokens consumed to produce it.
    """

    embedding: List[float]
    tokens: int


@dataclass
class BatchEmbeddingResult:
    """Embeddings of a batch of texts, in input order."""

    embeddings: List[List[float]]
    total_tokens: int
