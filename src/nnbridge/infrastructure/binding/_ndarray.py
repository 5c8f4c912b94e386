"""
Zero-copy export of engine blob storage as NumPy arrays.

The engine hands out storage as a bare address (`mutable_cpu_data()` /
`mutable_cpu_diff()`), with no shape attached. Exporting therefore runs in
two phases:

1. take the address into a shape-less `_RawPointer` temporary;
2. drop the temporary and build the real array over the same address,
   annotated with the blob's shape as it is *now*.

The resulting array's `.base` is a `BlobBuffer`, which holds strong
references to the host `Blob` handle it came from and to the engine
allocation the address points into. The array therefore keeps both alive
for as long as it is reachable, and a later reshape that reallocates the
blob leaves earlier arrays pointing at the old, still pinned, allocation.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

import numpy as np

from ...domain._engine import IBlob

_FLOAT32 = np.dtype(np.float32).str


class _RawPointer:
    """Phase-one temporary: an address with no shape metadata."""

    __slots__ = ("address",)

    def __init__(self, address: int) -> None:
        self.address = int(address)


class BlobBuffer:
    """
    Array-interface provider backing one exported view.

    Attributes
    ----------
    owner : Any
        Host handle the view was exported from.
    storage : np.ndarray
        Engine allocation containing `address`.
    address : int
        Address of the first element.
    shape : tuple[int, ...]
        Shape reported by the view.
    """

    __slots__ = ("owner", "storage", "address", "shape")

    def __init__(
        self, owner: Any, storage: np.ndarray, address: int, shape: Tuple[int, ...]
    ) -> None:
        self.owner = owner
        self.storage = storage
        self.address = address
        self.shape = shape

    @property
    def __array_interface__(self) -> Dict[str, Any]:
        return {
            "version": 3,
            "shape": self.shape,
            "typestr": _FLOAT32,
            "data": (self.address, False),
            "strides": None,
        }


def export_blob_array(owner: Any, engine_blob: IBlob, which: str) -> np.ndarray:
    """
    Return a writable float32 view of `engine_blob`'s `data` or `diff`.

    Parameters
    ----------
    owner : Any
        Host handle recorded as the view's owner.
    engine_blob : IBlob
        Engine blob to export.
    which : {"data", "diff"}
        Buffer to export.

    Raises
    ------
    TypeError
        If `engine_blob` does not provide the `IBlob` storage accessors.
    ValueError
        If `which` names neither buffer.
    """
    if not isinstance(engine_blob, IBlob):
        raise TypeError(f"Cannot export {type(engine_blob).__name__}: not an engine blob")
    if which == "data":
        raw = _RawPointer(engine_blob.mutable_cpu_data())
        storage = engine_blob.data_storage()
    elif which == "diff":
        raw = _RawPointer(engine_blob.mutable_cpu_diff())
        storage = engine_blob.diff_storage()
    else:
        raise ValueError(f"which must be 'data' or 'diff', got {which!r}")

    address = raw.address
    del raw
    return np.asarray(BlobBuffer(owner, storage, address, tuple(engine_blob.shape)))
