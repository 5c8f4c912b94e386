"""
Engine-side tensor storage.

`Blob` is the engine's dense float32 tensor. It owns two flat buffers of
equal length, `data` (activations / weights) and `diff` (gradients), and an
N-dimensional shape describing how the first `count` elements are laid out.

Storage model
-------------
- Buffers are flat NumPy arrays standing in for native allocations. Only
  their addresses leave the engine (`mutable_cpu_data`, `mutable_cpu_diff`).
- Capacity only grows: a reshape to a smaller or equal element count keeps
  the existing allocation, a larger one allocates fresh zeroed buffers.
- `data_storage()` / `diff_storage()` return the live allocation objects so
  that a holder of an address can pin the memory it points into.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from ...domain._errors import EngineError

MAX_BLOB_AXES = 32


class Blob:
    """
    Dense float32 tensor with data and gradient buffers.

    Parameters
    ----------
    shape : Sequence[int], optional
        Initial shape. When omitted the blob holds no elements and must be
        reshaped before use.
    """

    def __init__(self, shape: Optional[Sequence[int]] = None) -> None:
        self._shape: tuple[int, ...] = ()
        self._count = 0
        self._capacity = 0
        self._data_buf = np.zeros(0, dtype=np.float32)
        self._diff_buf = np.zeros(0, dtype=np.float32)
        if shape is not None:
            self.reshape(shape)

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------
    @property
    def shape(self) -> tuple[int, ...]:
        return self._shape

    @property
    def count(self) -> int:
        return self._count

    @property
    def num_axes(self) -> int:
        return len(self._shape)

    def legacy_shape(self, index: int) -> int:
        """
        Return the extent of axis `index` under the 4-axis (N, C, H, W)
        convention. Axes the blob does not have read as 1.
        """
        if self.num_axes > 4:
            raise EngineError(
                "Cannot use legacy accessors on Blobs with > 4 axes "
                f"(shape {self._shape})"
            )
        if index >= self.num_axes:
            return 1
        return self._shape[index]

    @property
    def num(self) -> int:
        return self.legacy_shape(0)

    @property
    def channels(self) -> int:
        return self.legacy_shape(1)

    @property
    def height(self) -> int:
        return self.legacy_shape(2)

    @property
    def width(self) -> int:
        return self.legacy_shape(3)

    def reshape(self, shape: Sequence[int]) -> None:
        dims = tuple(int(d) for d in shape)
        if len(dims) > MAX_BLOB_AXES:
            raise EngineError(
                f"Blob shape has {len(dims)} axes; at most {MAX_BLOB_AXES} allowed"
            )
        count = 1
        for d in dims:
            if d < 0:
                raise EngineError(f"Blob dimensions must be >= 0, got {dims}")
            count *= d
        self._shape = dims
        self._count = count
        if count > self._capacity:
            self._capacity = count
            self._data_buf = np.zeros(count, dtype=np.float32)
            self._diff_buf = np.zeros(count, dtype=np.float32)

    def reshape_like(self, other: "Blob") -> None:
        self.reshape(other.shape)

    # ------------------------------------------------------------------
    # Raw storage
    # ------------------------------------------------------------------
    def mutable_cpu_data(self) -> int:
        return int(self._data_buf.ctypes.data)

    def mutable_cpu_diff(self) -> int:
        return int(self._diff_buf.ctypes.data)

    def data_storage(self) -> np.ndarray:
        return self._data_buf

    def diff_storage(self) -> np.ndarray:
        return self._diff_buf

    # ------------------------------------------------------------------
    # Engine-internal array access
    # ------------------------------------------------------------------
    @property
    def data(self) -> np.ndarray:
        """Shaped view of the live `data` elements (engine use only)."""
        return self._data_buf[: self._count].reshape(self._shape)

    @property
    def diff(self) -> np.ndarray:
        """Shaped view of the live `diff` elements (engine use only)."""
        return self._diff_buf[: self._count].reshape(self._shape)

    def share_data(self, other: "Blob") -> None:
        """Alias this blob's data buffer to `other`'s. Counts must match."""
        if other.count != self._count:
            raise EngineError(
                f"Cannot share data: count mismatch ({self._count} vs. {other.count})"
            )
        self._data_buf = other._data_buf
        self._capacity = min(self._capacity, other._capacity)

    def shares_data_with(self, other: "Blob") -> bool:
        return self._data_buf is other._data_buf

    def update(self) -> None:
        """Apply `data -= diff` over the live elements."""
        n = self._count
        self._data_buf[:n] -= self._diff_buf[:n]

    def __repr__(self) -> str:
        return f"Blob(shape={self._shape})"
