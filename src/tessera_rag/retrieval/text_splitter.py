"""tessera_rag.retrieval.text_splitter

Text chunking strategies for the retrieval layer.

This module turns raw text into :class:`~tessera_rag.common.schemas.Chunk`
objects suitable for embedding. Two strategies are provided behind a common
interface:
- recursive splitting over a hierarchy of separators, which keeps paragraphs,
  lines and sentences together where the size budget allows
- fixed-size sliding windows with a fixed overlap

Chunkers are immutable after construction and hold no per-call state, so a
single instance may be shared across threads.

Classes
-------
SeparatorHierarchy
    Ordered textual boundaries used by recursive splitting.
ChunkingStrategy
    Abstract interface implemented by all chunkers.
RecursiveChunker
    Separator-aware splitter that merges splits into overlapping chunks.
FixedWindowChunker
    Mechanical sliding-window splitter.

Functions
---------
create_chunker
    Create a chunker implementation from a configuration mapping.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from tessera_rag.common.errors import ConfigurationError
from tessera_rag.common.schemas import Chunk, ChunkOptions

DEFAULT_CHUNK_SIZE = 400
DEFAULT_OVERLAP = 80

DEFAULT_SEPARATORS: Tuple[str, ...] = (
    "\n\n",  # paragraphs
    "\n",    # lines
    ". ",    # sentences
    "? ",
    "! ",
    "; ",    # clauses
    ", ",
    " ",     # words
    "",      # characters
)


@dataclass(frozen=True)
class SeparatorHierarchy:
    """Ordered separators, from the largest semantic unit to the smallest.

    The empty string stands for character-level slicing and is only
    meaningful as the final entry.

    Attributes
    ----------
    separators : tuple[str, ...]
        Separators in order of preference.
    """

    separators: Tuple[str, ...] = DEFAULT_SEPARATORS

    @classmethod
    def default(cls) -> "SeparatorHierarchy":
        return cls()

    def first_present(self, text: str) -> Optional[str]:
        """Return the first separator that occurs in ``text``.

        Returns
        -------
        str or None
            The separator, ``""`` if character slicing is reached, or
            ``None`` if the hierarchy is exhausted without a match.
        """
        for sep in self.separators:
            if sep == "" or sep in text:
                return sep
        return None


def _slice_by_size(text: str, size: int) -> List[str]:
    return [text[i:i + size] for i in range(0, len(text), size)]


def _absorb_blank_splits(splits: Sequence[str]) -> List[str]:
    """Fold whitespace-only splits into a neighbour so no chunk is blank.

    A blank split joins the split before it, or the next one when it leads
    the text. Adjacent splits are concatenated, so the result still tiles
    the source text.
    """
    out: List[str] = []
    pending = ""
    for split in splits:
        if not split.strip():
            if out:
                out[-1] += split
            else:
                pending += split
            continue
        out.append(pending + split)
        pending = ""

    if pending:
        # The whole text is whitespace.
        out.append(pending)
    return out


class ChunkingStrategy(ABC):
    """Abstract interface for text chunking strategies.

    Parameters
    ----------
    options : ChunkOptions
        Validated size and overlap settings.
    """

    def __init__(self, options: ChunkOptions):
        self._options = options

    @property
    def options(self) -> ChunkOptions:
        return self._options

    @property
    def size(self) -> int:
        return self._options.size

    @property
    def overlap(self) -> int:
        return self._options.overlap

    @abstractmethod
    def chunk(self, text: Optional[str]) -> List[Chunk]:
        """Split ``text`` into ordered chunks.

        Parameters
        ----------
        text : str or None
            Source text. Empty or ``None`` input yields an empty list.

        Returns
        -------
        list[Chunk]
            Chunks in source order, with ``index`` and ``total_count`` set.
        """

    def chunk_batch(self, texts: Iterable[Optional[str]]) -> List[List[Chunk]]:
        """Chunk each text independently, preserving input order."""
        return [self.chunk(text) for text in texts]

    @staticmethod
    def _build_chunks(spans: Sequence[Tuple[str, int, int]]) -> List[Chunk]:
        total = len(spans)
        return [
            Chunk(content=content, index=i, total_count=total, start_offset=start, end_offset=end)
            for i, (content, start, end) in enumerate(spans)
        ]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(size={self.size}, overlap={self.overlap})"


class RecursiveChunker(ChunkingStrategy):
    """Recursive, separator-aware text splitter.

    Text longer than ``size`` is split on the first separator of the
    hierarchy that occurs in it. Parts are packed greedily into splits of at
    most ``size`` characters; a part that is too long on its own is split
    again with the full hierarchy. When ``overlap`` is positive, the splits
    are then merged into chunks that start with the last ``overlap``
    characters of the previous chunk.

    Every chunk is a contiguous slice of the source text and records its
    offsets. Whitespace-only splits are folded into the preceding split, so
    no chunk is blank. Folding, overlap seeds and separators re-attached
    after recursion can push a chunk past ``size``; only character slicing
    is held to the hard bound.

    Parameters
    ----------
    size : int, optional
        Target chunk size in characters. Defaults to ``400``.
    overlap : int, optional
        Overlap in characters between consecutive chunks. Defaults to ``0``.
    separators : Sequence[str] or None, optional
        Separator hierarchy. ``None`` selects :data:`DEFAULT_SEPARATORS`.

    Raises
    ------
    ConfigurationError
        If ``size <= 0``, ``overlap < 0`` or ``overlap >= size``.
    """

    def __init__(
            self,
            size: int = DEFAULT_CHUNK_SIZE,
            overlap: int = 0,
            separators: Optional[Sequence[str]] = None,
        ):
        options = ChunkOptions(
            size=size,
            overlap=overlap,
            separators=separators,
        )
        super().__init__(options)
        self._hierarchy = SeparatorHierarchy(
            options.separators if options.separators is not None else DEFAULT_SEPARATORS
        )

    @classmethod
    def from_options(cls, options: ChunkOptions) -> "RecursiveChunker":
        return cls(size=options.size, overlap=options.overlap, separators=options.separators)

    @property
    def hierarchy(self) -> SeparatorHierarchy:
        return self._hierarchy

    def chunk(self, text: Optional[str]) -> List[Chunk]:
        if not text:
            return []

        splits = _absorb_blank_splits(self._split_text(text))
        return self._build_chunks(self._merge_splits(splits))

    def _split_text(self, text: str) -> List[str]:
        """Split ``text`` into pieces that tile it exactly, in order."""
        size = self.size
        if len(text) <= size:
            return [text]

        sep = self._hierarchy.first_present(text)
        if not sep:
            return _slice_by_size(text, size)

        parts = text.split(sep)
        last = len(parts) - 1
        splits: List[str] = []
        current = ""

        for i, part in enumerate(parts):
            trailing = sep if i < last else ""
            piece = part + trailing
            if not piece:
                continue

            if len(piece) > size:
                if current:
                    splits.append(current)
                # ``part`` no longer contains ``sep``, so recursion moves down the hierarchy.
                sub_splits = self._split_text(part) if part else []
                current = (sub_splits.pop() if sub_splits else "") + trailing
                splits.extend(sub_splits)
            elif not current:
                current = piece
            elif len(current) + len(piece) <= size:
                current += piece
            else:
                splits.append(current)
                current = piece

        if current:
            splits.append(current)

        return splits

    def _merge_splits(self, splits: Sequence[str]) -> List[Tuple[str, int, int]]:
        """Merge splits into overlapping chunks as ``(content, start, end)`` spans."""
        size, overlap = self.size, self.overlap
        merged: List[Tuple[str, int]] = []
        position = 0

        if overlap == 0:
            for split in splits:
                position += len(split)
                merged.append((split, position))
        else:
            current = ""
            for split in splits:
                if not current:
                    current = split
                elif len(current) + len(split) <= size:
                    current += split
                else:
                    merged.append((current, position))
                    current = current[-overlap:] + split
                position += len(split)

            if current:
                merged.append((current, position))

        return [(content, end - len(content), end) for content, end in merged]


class FixedWindowChunker(ChunkingStrategy):
    """Fixed-size sliding-window splitter.

    Emits windows ``[start, start + size)`` clipped to the text length,
    advancing ``start`` by ``size - overlap`` until it passes the end of the
    text. No attention is paid to word or sentence boundaries.

    Parameters
    ----------
    size : int, optional
        Window size in characters. Defaults to ``400``.
    overlap : int, optional
        Characters shared by consecutive windows. Defaults to ``0``.

    Raises
    ------
    ConfigurationError
        If ``size <= 0``, ``overlap < 0`` or ``overlap >= size``.
    """

    def __init__(self, size: int = DEFAULT_CHUNK_SIZE, overlap: int = 0):
        super().__init__(ChunkOptions(size=size, overlap=overlap))

    @classmethod
    def from_options(cls, options: ChunkOptions) -> "FixedWindowChunker":
        if options.separators is not None:
            raise ConfigurationError("Separators are only supported by the recursive chunking strategy")
        return cls(size=options.size, overlap=options.overlap)

    @property
    def step(self) -> int:
        return self.size - self.overlap

    def chunk(self, text: Optional[str]) -> List[Chunk]:
        if not text:
            return []

        length = len(text)
        spans: List[Tuple[str, int, int]] = []
        for start in range(0, length, self.step):
            end = min(start + self.size, length)
            spans.append((text[start:end], start, end))

        return self._build_chunks(spans)


# ----------------- Factory helpers -----------------

_CHUNKERS = {
    "recursive": RecursiveChunker,
    "recursive_character": RecursiveChunker,
    "fixed": FixedWindowChunker,
    "fixed_size": FixedWindowChunker,
    "fixed_window": FixedWindowChunker,
}


def _first_present(cfg: Mapping[str, Any], keys: Sequence[str], default: Any = None) -> Any:
    for key in keys:
        if cfg.get(key) is not None:
            return cfg[key]
    return default


def create_chunker(config: Optional[Mapping[str, Any]] = None) -> ChunkingStrategy:
    """Create a chunking strategy from a configuration mapping.

    Parameters
    ----------
    config : Mapping[str, Any] or None, optional
        Mapping with a discriminator (``type``, ``kind`` or ``strategy``) and
        sizing keys (``size``/``chunk_size``, ``overlap``/``chunk_overlap``,
        optional ``separators``). ``None`` selects a recursive chunker with
        size ``400`` and overlap ``80``.

    Returns
    -------
    ChunkingStrategy
        Configured chunker.

    Raises
    ------
    ConfigurationError
        If the strategy is unknown or the sizing options are invalid.
    """
    if config is not None and not isinstance(config, Mapping):
        raise ConfigurationError(f"create_chunker expected a mapping, got {type(config).__name__}")

    cfg = dict(config or {})
    kind_raw = str(_first_present(cfg, ("type", "kind", "strategy"), "recursive"))
    kind = kind_raw.strip().lower().replace("-", "_").replace(" ", "_")

    cls = _CHUNKERS.get(kind)
    if cls is None:
        raise ConfigurationError(
            f"Unknown chunking strategy {kind_raw!r}. Supported strategies: {sorted(_CHUNKERS)}."
        )

    separators = cfg.get("separators")
    options = ChunkOptions(
        size=_first_present(cfg, ("size", "chunk_size"), DEFAULT_CHUNK_SIZE),
        overlap=_first_present(cfg, ("overlap", "chunk_overlap"), DEFAULT_OVERLAP),
        separators=separators,
    )
    return cls.from_options(options)


__all__ = [
    "DEFAULT_SEPARATORS",
    "SeparatorHierarchy",
    "ChunkingStrategy",
    "RecursiveChunker",
    "FixedWindowChunker",
    "create_chunker",
]
