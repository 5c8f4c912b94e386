"""
Memory-input layer.

`MemoryDataLayer` feeds a network from buffers that live outside the engine.
It never copies or owns those buffers: `reset()` receives raw addresses of
C-contiguous float32 memory plus the number of examples, and every forward
pass reads the next `batch_size` examples straight from those addresses.

Whoever calls `reset()` must keep the memory alive until the layer is reset
again or destroyed. The engine cannot check this.

Definition options (`memory_data_param`)
----------------------------------------
batch_size : int
    Examples produced per forward pass (required, > 0).
dim : list[int], optional
    Per-example data shape. Alternatively `channels`, `height`, `width`
    (each defaulting to 1) give a 3-axis example shape.
label_dim : list[int], optional
    Per-example label shape. Defaults to `[1, 1, 1]`.
"""

from __future__ import annotations

import ctypes
from typing import Optional, Sequence

import numpy as np

from ...domain._errors import ConfigurationError, EngineError
from ._blob import Blob
from ._layers import Layer, LayerRegistry


def _borrow(address: int, shape: Sequence[int]) -> np.ndarray:
    """View `prod(shape)` float32 elements at `address` without copying."""
    count = int(np.prod(shape, dtype=np.int64))
    if count == 0:
        return np.zeros(shape, dtype=np.float32)
    buf = (ctypes.c_float * count).from_address(address)
    return np.ctypeslib.as_array(buf).reshape(shape)


@LayerRegistry.register_layer
class MemoryDataLayer(Layer):
    type = "MemoryData"
    exact_num_bottom = 0
    exact_num_top = 2

    def layer_setup(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        opts = self.layer_param.options
        try:
            self._batch_size = int(opts["batch_size"])
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(
                f"MemoryData layer '{self.name}' needs an integer batch_size"
            ) from e
        if self._batch_size <= 0:
            raise ConfigurationError(
                f"MemoryData layer '{self.name}': batch_size must be > 0"
            )
        if "dim" in opts:
            self._dims = tuple(int(d) for d in opts["dim"])
        else:
            self._dims = (
                int(opts.get("channels", 1)),
                int(opts.get("height", 1)),
                int(opts.get("width", 1)),
            )
        self._label_dims = tuple(int(d) for d in opts.get("label_dim", (1, 1, 1)))

        self._data_ptr: Optional[int] = None
        self._label_ptr: Optional[int] = None
        self._n = 0
        self._pos = 0

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def shape(self) -> list[int]:
        """Top data shape: `[batch_size, *dim]`."""
        return [self._batch_size, *self._dims]

    def label_shape(self) -> list[int]:
        """Top label shape: `[batch_size, *label_dim]`."""
        return [self._batch_size, *self._label_dims]

    @property
    def num_examples(self) -> int:
        return self._n

    @property
    def position(self) -> int:
        return self._pos

    def reshape(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        top[0].reshape(self.shape())
        top[1].reshape(self.label_shape())

    def reset(self, data_ptr: int, label_ptr: int, n: int) -> None:
        """
        Point the layer at `n` examples of borrowed memory.

        Parameters
        ----------
        data_ptr : int
            Address of `n * prod(dim)` float32 values.
        label_ptr : int
            Address of `n * prod(label_dim)` float32 values.
        n : int
            Number of examples; must be a multiple of `batch_size`.
        """
        if not data_ptr or not label_ptr:
            raise EngineError("MemoryDataLayer.reset requires non-null buffers")
        if n <= 0 or n % self._batch_size != 0:
            raise EngineError(
                f"n must be a positive multiple of batch size "
                f"({n} vs. batch_size {self._batch_size})"
            )
        self._data_ptr = int(data_ptr)
        self._label_ptr = int(label_ptr)
        self._n = int(n)
        self._pos = 0

    def forward_cpu(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        if self._data_ptr is None or self._label_ptr is None:
            raise EngineError("MemoryDataLayer needs to be initialized by calling reset")
        data = _borrow(self._data_ptr, (self._n, *self._dims))
        labels = _borrow(self._label_ptr, (self._n, *self._label_dims))
        end = self._pos + self._batch_size
        top[0].data[...] = data[self._pos : end]
        top[1].data[...] = labels[self._pos : end]
        self._pos = end % self._n
