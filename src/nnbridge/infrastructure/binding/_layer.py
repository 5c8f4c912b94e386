"""
Host handle for engine layers.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from ...domain._engine import IBlob, ILayer, INet
from ...domain._errors import EngineError
from ..engine._layers import Layer as EngineLayer
from ..engine._memory_data import MemoryDataLayer
from ..engine._net import Net as EngineNet
from ._blob import BlobVec
from ._containers import TypedVec
from ._errors import translate_errors
from ._gil import host_call


class Layer:
    """
    Host handle to one layer of a network.

    The handle references the engine layer and the engine network it sits
    in, so `setup()` and `reshape()` can be re-run against the layer's
    current bottom and top blobs.
    """

    __slots__ = ("_layer", "_net", "__weakref__")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        raise TypeError("Layer handles are obtained from Net.layers or Net.layer_by_name")

    @classmethod
    def _wrap(cls, engine_layer: ILayer, engine_net: Optional[INet]) -> "Layer":
        handle = cls.__new__(cls)
        handle._layer = engine_layer
        handle._net = engine_net
        return handle

    def _index(self) -> int:
        if self._net is None:
            raise EngineError(f"Layer '{self._layer.name}' is not attached to a net")
        for i, layer in enumerate(self._net.layers):
            if layer is self._layer:
                return i
        raise EngineError(f"Layer '{self._layer.name}' is no longer part of its net")

    def _bottom_top(self) -> Tuple[List[IBlob], List[IBlob]]:
        i = self._index()
        blobs = self._net.blobs
        return (
            [blobs[b] for b in self._net.bottom_ids(i)],
            [blobs[t] for t in self._net.top_ids(i)],
        )

    @property
    def blobs(self) -> BlobVec:
        return BlobVec._view(self._layer.blobs, owner=self)

    @property
    def type(self) -> str:
        return self._layer.type

    @property
    def name(self) -> str:
        return self._layer.name

    @property
    def batch_size(self) -> int:
        if not isinstance(self._layer, MemoryDataLayer):
            raise AttributeError(f"{self._layer.type} layer has no batch_size")
        return self._layer.batch_size

    @host_call
    @translate_errors
    def setup(self) -> None:
        bottom, top = self._bottom_top()
        self._layer.setup(bottom, top)

    @host_call
    @translate_errors
    def reshape(self) -> None:
        bottom, top = self._bottom_top()
        self._layer.reshape(bottom, top)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Layer):
            return NotImplemented
        return self._layer is other._layer

    def __hash__(self) -> int:
        return id(self._layer)

    def __repr__(self) -> str:
        return f"Layer(name={self.name!r}, type={self.type!r})"


class LayerVec(TypedVec[Layer]):
    """Sequence of the layers of one network, in execution order."""

    item_name = "Layer"
    _net: Optional[EngineNet] = None

    @classmethod
    def _for_net(cls, engine_net: EngineNet, owner: object) -> "LayerVec":
        vec = cls._view(engine_net.layers, owner)
        vec._net = engine_net
        return vec  # type: ignore[return-value]

    def _to_host(self, raw: EngineLayer) -> Layer:
        return Layer._wrap(raw, self._net)

    def _to_storage(self, value: Any) -> EngineLayer:
        if not isinstance(value, Layer):
            raise self._type_error(value)
        return value._layer
