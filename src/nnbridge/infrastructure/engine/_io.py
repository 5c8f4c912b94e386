"""
File formats read and written by the engine.

- Definition documents (network definitions, solver configurations) are
  JSON objects.
- Weights and solver state are binary NumPy archives (`.npz` layout) written
  through an open file handle, so the caller's filename is used verbatim.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping

import numpy as np

from ...domain._errors import ConfigurationError, EngineError


def read_json_document(path: str, kind: str) -> Dict[str, Any]:
    """
    Read a JSON definition document.

    Parameters
    ----------
    path : str
        File to read.
    kind : str
        Human-readable document kind used in error messages
        (e.g. "network definition").

    Returns
    -------
    dict
        The decoded top-level object.

    Raises
    ------
    EngineError
        If the file cannot be opened.
    ConfigurationError
        If the file is not UTF-8 encoded JSON with an object at the top
        level.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise EngineError(f"Failed to open {kind} file: {path} ({e})") from e
    except UnicodeDecodeError as e:
        raise ConfigurationError(f"Failed to parse {kind} file {path}: {e}") from e
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Failed to parse {kind} file {path}: {e}") from e
    if not isinstance(doc, dict):
        raise ConfigurationError(
            f"Failed to parse {kind} file {path}: top level must be an object"
        )
    return doc


def write_arrays(path: str, arrays: Mapping[str, np.ndarray]) -> None:
    """Write named arrays into a binary archive at exactly `path`."""
    try:
        with open(path, "wb") as f:
            np.savez(f, **{k: np.asarray(v) for k, v in arrays.items()})
    except OSError as e:
        raise EngineError(f"Failed to write {path}: {e}") from e


def read_arrays(path: str) -> Dict[str, np.ndarray]:
    """Read every array of a binary archive into memory."""
    try:
        archive = np.load(path, allow_pickle=False)
    except OSError as e:
        raise EngineError(f"Failed to read {path}: {e}") from e
    except (ValueError, EOFError) as e:
        raise EngineError(f"{path} is not a valid array archive: {e}") from e
    if not hasattr(archive, "files"):
        raise EngineError(f"{path} is not a valid array archive")
    with archive:
        return {k: archive[k] for k in archive.files}
