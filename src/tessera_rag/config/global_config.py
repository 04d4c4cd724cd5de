"""tessera_rag.config.global_config

Global configuration loader and accessors.

This module defines a lightweight wrapper around a raw YAML configuration
dictionary, providing validated, cached access to the configuration sections
used by the chunker, embedder, vector store and retrieval pipeline.

Environment variables of the form ``${VAR}`` are expanded recursively in all
string values at load time.

Classes
-------
GlobalConfig
    Loader and accessor for global project configuration.
"""

import os
import yaml
from pathlib import Path
from functools import cached_property

def _expand_env(obj):
    """Recursively expand environment variables in a nested structure.

    This function walks nested dictionaries and lists and applies
    :func:`os.path.expandvars` to any string values, expanding patterns of the
    form ``${VAR}`` using the current process environment.

    Parameters
    ----------
    obj : Any
        Object to expand. Supported types are dictionaries, lists, and strings.
        Other types are returned unchanged.

    Returns
    -------
    Any
        A structure of the same shape as ``obj`` with environment variables
        expanded in all string values.
    """
    if isinstance(obj, dict):
        return {k: _expand_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env(v) for v in obj]
    if isinstance(obj, str):
        return os.path.expandvars(obj)
    return obj

class GlobalConfig:
    """Loader and accessor for global project configuration.

    Parameters
    ----------
    raw : dict
        Raw configuration data as loaded from a YAML file.
    config_path : Path or None, optional
        Absolute path of the file the data was loaded from, if any.
    """

    def __init__(
            self,
            raw: dict | None,
            config_path: Path | None = None,
        ):
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise TypeError(f"Configuration root must be a mapping, got {type(raw).__name__}.")
        self.raw = raw
        self.config_path = config_path

    @classmethod
    def load(
            cls,
            path: str | Path,
        ) -> "GlobalConfig":
        """Load configuration from a YAML file.

        Parameters
        ----------
        path : str or Path
            Path to the YAML configuration file.

        Returns
        -------
        GlobalConfig
            An instance initialised with the loaded and environment-expanded data.
        """
        cfg_path = Path(path).expanduser().resolve()
        with cfg_path.open("r") as f:
            data = yaml.safe_load(f)
        data = _expand_env(data)
        return cls(data, config_path=cfg_path)

    def _section(self, name: str, required: bool = False) -> dict:
        section = self.raw.get(name)
        if section is None:
            if required:
                raise KeyError(f"Missing '{name}' in configuration.")
            return {}
        if not isinstance(section, dict):
            raise TypeError(f"'{name}' must be a mapping, got {type(section).__name__}.")
        return section

    @cached_property
    def chunking(self) -> dict:
        """Return the chunking configuration section.

        Returns
        -------
        dict
            The ``chunking`` section, or an empty dict if not present. Missing
            keys are filled in by :func:`~tessera_rag.retrieval.text_splitter.create_chunker`
            (recursive, size 400, overlap 80).
        """
        return self._section("chunking")

    @cached_property
    def embedder(self) -> dict:
        """Return the embedder configuration section.

        Raises
        ------
        KeyError
            If ``embedder`` is missing from configuration.
        """
        return self._section("embedder", required=True)

    @cached_property
    def vector_store(self) -> dict:
        """Return the vector store configuration section.

        Raises
        ------
        KeyError
            If ``vector_store`` is missing from configuration.
        TypeError
            If ``vector_store`` is not a mapping.
        """
        return self._section("vector_store", required=True)

    @cached_property
    def retrieval(self) -> dict:
        """Return the retrieval configuration section.

        Returns
        -------
        dict
            Search option defaults plus optional ``document_key`` and
            ``adaptive_ratio``, or an empty dict if not present.
        """
        return self._section("retrieval")

    @cached_property
    def tokenization(self) -> dict:
        """Return the tokenization configuration section, or an empty dict."""
        return self._section("tokenization")
