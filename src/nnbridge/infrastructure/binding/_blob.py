"""
Host handle for engine blobs.
"""

from __future__ import annotations

import numbers
from typing import Any, Tuple

import numpy as np

from ...domain._errors import ConfigurationError
from ..engine._blob import Blob as EngineBlob
from ._containers import TypedVec
from ._errors import translate_errors
from ._gil import host_call
from ._ndarray import export_blob_array


def _dims_from_args(func_name: str, args: Tuple[Any, ...], kwargs: dict) -> Tuple[int, ...]:
    if kwargs:
        raise ConfigurationError(
            f"{func_name} takes positional dimensions only, got keyword "
            f"argument(s) {', '.join(sorted(kwargs))}"
        )
    if len(args) == 1 and isinstance(args[0], (list, tuple)):
        args = tuple(args[0])
    dims = []
    for d in args:
        if isinstance(d, bool) or not isinstance(d, numbers.Integral):
            raise TypeError(f"{func_name} dimensions must be integers, got {d!r}")
        dims.append(int(d))
    return tuple(dims)


class Blob:
    """
    Host handle to an engine tensor.

    `Blob(*dims)` creates a standalone blob. Blobs reached through a
    network or layer share the engine's tensor; the handle holds a strong
    reference to it, not to the network.

    `data` and `diff` are zero-copy float32 views. Each access exports a new
    view with the blob's current shape. A view keeps the blob alive.
    """

    __slots__ = ("_blob", "__weakref__")

    @host_call
    @translate_errors
    def __init__(self, *dims: int, **kwargs: Any) -> None:
        self._blob = EngineBlob(_dims_from_args("Blob", dims, kwargs))

    @classmethod
    def _wrap(cls, engine_blob: EngineBlob) -> "Blob":
        handle = cls.__new__(cls)
        handle._blob = engine_blob
        return handle

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self._blob.shape)

    @property
    @translate_errors
    def num(self) -> int:
        return self._blob.num

    @property
    @translate_errors
    def channels(self) -> int:
        return self._blob.channels

    @property
    @translate_errors
    def height(self) -> int:
        return self._blob.height

    @property
    @translate_errors
    def width(self) -> int:
        return self._blob.width

    @property
    def count(self) -> int:
        return self._blob.count

    @property
    def num_axes(self) -> int:
        return self._blob.num_axes

    @host_call
    @translate_errors
    def reshape(self, *dims: int, **kwargs: Any) -> None:
        """
        Resize the blob in place; no keyword arguments are accepted.

        Views exported before the reshape keep pointing at the memory they
        were created over.
        """
        self._blob.reshape(_dims_from_args("Blob.reshape", dims, kwargs))

    @property
    @host_call
    def data(self) -> np.ndarray:
        return export_blob_array(self, self._blob, "data")

    @property
    @host_call
    def diff(self) -> np.ndarray:
        return export_blob_array(self, self._blob, "diff")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Blob):
            return NotImplemented
        return self._blob is other._blob

    def __hash__(self) -> int:
        return id(self._blob)

    def __repr__(self) -> str:
        return f"Blob(shape={self.shape})"


class BlobVec(TypedVec[Blob]):
    """Sequence of blobs, e.g. a layer's learnable parameters."""

    item_name = "Blob"

    def _to_host(self, raw: EngineBlob) -> Blob:
        return Blob._wrap(raw)

    def _to_storage(self, value: Any) -> EngineBlob:
        if not isinstance(value, Blob):
            raise self._type_error(value)
        return value._blob

    @host_call
    @translate_errors
    def add_blob(self, *dims: int, **kwargs: Any) -> None:
        """Append a new zero-filled blob of shape `dims`."""
        self._items.append(EngineBlob(_dims_from_args("BlobVec.add_blob", dims, kwargs)))


class RawBlobVec(BlobVec):
    """Sequence of blobs that the holder references but does not own."""
