"""
Structural checks applied to host inputs before they reach the engine.

Both checks are pure: they never copy, convert or mutate their argument,
and they run before any pointer is taken or any file is parsed.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Sequence, Union

import numpy as np

from ...domain._errors import ArrayValidationError, FileAccessError

logger = logging.getLogger(__name__)


def _reject(message: str, **details: Any) -> ArrayValidationError:
    logger.debug("Rejected host array: %s", message)
    return ArrayValidationError(message, **details)


def check_contiguous_array(arr: Any, name: str, shape: Sequence[int]) -> None:
    """
    Validate a host buffer against the shape a receiving layer expects.

    Parameters
    ----------
    arr : Any
        Candidate buffer; must be a NumPy ndarray.
    name : str
        Human-readable name used in error messages (e.g. "data array").
    shape : Sequence[int]
        Expected shape. Axis 0 (the example count) is not compared; every
        other axis must match exactly.

    Raises
    ------
    ArrayValidationError
        If the array is not C-contiguous, has the wrong number of axes, is
        not float32, or an axis after the first has the wrong extent.
    """
    if not isinstance(arr, np.ndarray):
        raise _reject(f"{name} must be a numpy.ndarray", name=name)
    if not arr.flags["C_CONTIGUOUS"]:
        raise _reject(f"{name} must be C contiguous", name=name)
    if arr.ndim != len(shape):
        raise _reject(f"{name} must be {len(shape)}-d", name=name)
    if arr.dtype != np.float32:
        raise _reject(f"{name} must be float32", name=name)
    for i in range(1, len(shape)):
        got, expected = int(arr.shape[i]), int(shape[i])
        if got != expected:
            raise _reject(
                f"{name}: Shape dimension {i} has wrong size ({got} vs. {expected})",
                name=name,
                dim=i,
                got=got,
                expected=expected,
            )


def check_file(path: Union[str, "os.PathLike[str]"]) -> str:
    """
    Ensure `path` can be opened for reading and return it as a string.

    Raises
    ------
    FileAccessError
        If opening fails for any reason.
    """
    filename = os.fspath(path)
    try:
        with open(filename, "rb"):
            pass
    except OSError:
        logger.debug("Could not open %s", filename)
        raise FileAccessError(filename) from None
    return filename
