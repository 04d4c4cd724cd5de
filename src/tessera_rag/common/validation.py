"""tessera_rag.common.validation

Input validation for caller-facing operations.

Search options and document inputs are described as pydantic models. The
helpers in this module run pydantic validation and re-raise failures as
:class:`~tessera_rag.common.errors.ValidationError`, so callers only ever see
the package's own error types.

Classes
-------
SearchOptions
    Options accepted by a retrieval search.
DocumentInput
    A document submitted for ingestion.

Functions
---------
validate_search_options
    Coerce ``None``, a mapping, or a :class:`SearchOptions` into a validated model.
validate_document_input
    Validate content and metadata for ingestion.
validate_non_empty_string
    Reject values that are not non-blank strings.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from tessera_rag.common.errors import ValidationError

MAX_CONTENT_LENGTH = 100_000


class SearchOptions(BaseModel):
    """Options for a single retrieval search.

    Attributes
    ----------
    limit : int
        Number of results to return. Defaults to ``5``.
    min_similarity : float
        Lowest similarity passed to the store, and floor for the adaptive
        threshold. Defaults to ``0.5``.
    filters : dict[str, Any] or None
        Metadata filters, AND-ed across keys.
    max_chunks_per_document : int or None
        Cap on candidates sharing one originating document. ``None`` or ``0``
        disables capping. Defaults to ``2``.
    use_adaptive_threshold : bool
        Whether to drop candidates scoring far below the best one.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    limit: int = Field(default=5, gt=0, le=1000)
    min_similarity: float = Field(default=0.5, ge=0.0, le=1.0)
    filters: Optional[Dict[str, Any]] = None
    max_chunks_per_document: Optional[int] = Field(default=2, ge=0)
    use_adaptive_threshold: bool = False

    @property
    def diversity_enabled(self) -> bool:
        return bool(self.max_chunks_per_document)


class DocumentInput(BaseModel):
    """A document submitted for ingestion."""

    model_config = ConfigDict(extra="forbid")

    content: str = Field(min_length=1, max_length=MAX_CONTENT_LENGTH)
    metadata: Optional[Dict[str, Any]] = None


def _raise_first_error(exc: PydanticValidationError, data: Any) -> None:
    first = exc.errors()[0]
    loc = first.get("loc") or ()
    field = ".".join(str(part) for part in loc) or None
    value = first.get("input")
    if isinstance(data, Mapping) and loc and loc[0] in data:
        value = data[loc[0]]
    raise ValidationError(first.get("msg", str(exc)), field=field, value=value) from exc


def validate_search_options(
        options: SearchOptions | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> SearchOptions:
    """Return validated search options.

    Parameters
    ----------
    options : SearchOptions, Mapping or None, optional
        Base options. ``None`` selects the defaults.
    **overrides : Any
        Field values that take precedence over ``options``.

    Returns
    -------
    SearchOptions
        Validated, immutable options.

    Raises
    ------
    ValidationError
        If any field is missing its bounds or unknown fields are supplied.
    """
    if isinstance(options, SearchOptions) and not overrides:
        return options

    if isinstance(options, SearchOptions):
        data = options.model_dump()
    elif options is None:
        data = {}
    elif isinstance(options, Mapping):
        data = dict(options)
    else:
        raise ValidationError(
            f"Search options must be a mapping or SearchOptions, got {type(options).__name__}",
            field="options",
            value=options,
        )
    data.update(overrides)

    try:
        return SearchOptions.model_validate(data)
    except PydanticValidationError as exc:
        _raise_first_error(exc, data)


def validate_document_input(content: Any, metadata: Any = None) -> DocumentInput:
    """Validate a document's content and metadata.

    Raises
    ------
    ValidationError
        If the content is missing, blank or too large, or the metadata is not
        a mapping.
    """
    data = {"content": content, "metadata": metadata}
    try:
        document = DocumentInput.model_validate(data)
    except PydanticValidationError as exc:
        _raise_first_error(exc, data)

    if not document.content.strip():
        raise ValidationError("Document content cannot be empty", field="content", value=content)
    return document


def validate_non_empty_string(value: Any, field_name: str) -> str:
    """Return ``value`` if it is a non-blank string.

    Raises
    ------
    ValidationError
        If ``value`` is not a string or contains only whitespace.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must be a non-empty string", field=field_name, value=value)
    return value


__all__ = [
    "SearchOptions",
    "DocumentInput",
    "validate_search_options",
    "validate_document_input",
    "validate_non_empty_string",
]
