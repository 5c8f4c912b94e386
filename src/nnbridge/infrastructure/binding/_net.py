"""
Host handle for engine networks.

Construction
------------
    Net(definition_path, phase)
    Net(definition_path, weights_path, phase)

Every path is checked for readability before anything is parsed, so an
unreadable file always surfaces as `FileAccessError`, never as a parse
error. The network is built on the engine's current default device.

Feeding data
------------
`set_input_arrays` / `set_layer_input_arrays` point a MemoryData layer at
host-owned arrays without copying them. The arrays are validated first
(C-contiguous float32, per-example shape, equal example counts, a multiple
of the layer's batch size); a rejected call changes nothing. On success the
network becomes custodian of both arrays until the next injection into the
same layer, since the engine reads them through raw addresses.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

from ...domain._errors import ArrayValidationError, ConfigurationError, EngineError
from ...domain._phase import Phase
from ..engine._memory_data import MemoryDataLayer
from ..engine._net import Net as EngineNet
from ._blob import Blob, BlobVec
from ._containers import DtypeVec, IntTpVec, StringVec, TypedVec
from ._errors import translate_errors
from ._gil import allow_threads, host_call
from ._layer import Layer, LayerVec
from ._lifetime import Custodian
from ._validation import check_contiguous_array, check_file

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

_INPUT_SITE = "input_arrays"


def _coerce_phase(phase: Any) -> Phase:
    try:
        return Phase.coerce(phase)
    except ValueError as e:
        raise ConfigurationError(str(e)) from None


def _parse_init_args(
    args: Tuple[Any, ...], kwargs: Dict[str, Any]
) -> Tuple[Optional[PathLike], Phase]:
    unknown = sorted(set(kwargs) - {"weights", "phase"})
    if unknown:
        raise ConfigurationError(f"Net got unexpected keyword argument(s): {', '.join(unknown)}")
    weights = kwargs.get("weights")
    phase = kwargs.get("phase")
    if len(args) == 1 and phase is None:
        phase = args[0]
    elif len(args) == 2 and phase is None and weights is None:
        weights, phase = args
    elif args:
        raise ConfigurationError(
            "Net takes (definition, phase) or (definition, weights, phase)"
        )
    if phase is None:
        raise ConfigurationError("Net requires a phase (TRAIN or TEST)")
    return weights, _coerce_phase(phase)


class Net:
    """
    Host handle to an engine network.

    Parameters
    ----------
    definition : str or PathLike
        Network definition file.
    weights : str or PathLike, optional
        Trained weights to copy in after construction.
    phase : Phase, int or str
        `TRAIN` / `TEST`.
    """

    __slots__ = ("_net", "_custodian", "__weakref__")

    @host_call
    @translate_errors
    def __init__(self, definition: PathLike, *args: Any, **kwargs: Any) -> None:
        weights, phase = _parse_init_args(args, kwargs)
        definition = check_file(definition)
        if weights is not None:
            weights = check_file(weights)
        self._net = EngineNet.from_file(definition, phase)
        self._custodian = Custodian()
        if weights is not None:
            self._net.copy_trained_layers_from(weights)

    @classmethod
    def _wrap(cls, engine_net: EngineNet) -> "Net":
        handle = cls.__new__(cls)
        handle._net = engine_net
        handle._custodian = Custodian()
        return handle

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def _layer_index(self, layer: Union[int, str]) -> int:
        if isinstance(layer, str):
            try:
                return self._net.layer_names.index(layer)
            except ValueError:
                raise EngineError(f"Unknown layer name {layer}") from None
        return int(layer)

    @host_call
    @translate_errors
    def forward(self, start: Union[int, str] = 0, end: Union[int, str, None] = None) -> float:
        """Run layers `start..end` (inclusive) and return the summed loss."""
        s = self._layer_index(start)
        e = len(self._net.layers) - 1 if end is None else self._layer_index(end)
        with allow_threads():
            loss = self._net.forward_from_to(s, e)
        return float(loss)

    @host_call
    @translate_errors
    def backward(self, start: Union[int, str, None] = None, end: Union[int, str] = 0) -> None:
        """Back-propagate from layer `start` down to layer `end` (inclusive)."""
        s = len(self._net.layers) - 1 if start is None else self._layer_index(start)
        e = self._layer_index(end)
        with allow_threads():
            self._net.backward_from_to(s, e)

    @host_call
    @translate_errors
    def reshape(self) -> None:
        self._net.reshape()

    # ------------------------------------------------------------------
    # Weights
    # ------------------------------------------------------------------
    @host_call
    @translate_errors
    def copy_from(self, weights: PathLike) -> None:
        self._net.copy_trained_layers_from(check_file(weights))

    @host_call
    @translate_errors
    def share_with(self, other: "Net") -> None:
        if not isinstance(other, Net):
            raise TypeError(f"share_with expects a Net, got {type(other).__name__}")
        self._net.share_trained_layers_with(other._net)

    @host_call
    @translate_errors
    def save(self, filename: PathLike) -> None:
        self._net.save(os.fspath(filename))

    # ------------------------------------------------------------------
    # Data injection
    # ------------------------------------------------------------------
    def _memory_data_layer(self, index: int) -> MemoryDataLayer:
        layers = self._net.layers
        if not -len(layers) <= index < len(layers):
            raise IndexError(f"Layer index {index} out of range ({len(layers)} layers)")
        layer = layers[index]
        if not isinstance(layer, MemoryDataLayer):
            raise EngineError(
                "set_input_arrays may only be called if the target layer is a "
                f"MemoryDataLayer (layer {index} is {layer.type})"
            )
        return layer

    def _inject(self, layer_id: int, layer: MemoryDataLayer, data: Any, labels: Any) -> None:
        check_contiguous_array(data, "data array", layer.shape())
        check_contiguous_array(labels, "labels array", layer.label_shape())
        if data.shape[0] != labels.shape[0]:
            raise ArrayValidationError(
                "data and labels must have the same first dimension "
                f"({data.shape[0]} vs. {labels.shape[0]})",
                name="labels array",
                dim=0,
                got=int(labels.shape[0]),
                expected=int(data.shape[0]),
            )
        if data.shape[0] % layer.batch_size != 0:
            raise ArrayValidationError(
                "first dimensions of input arrays must be a multiple of batch size "
                f"({data.shape[0]} vs. batch_size {layer.batch_size})",
                name="data array",
                dim=0,
                got=int(data.shape[0]),
                expected=layer.batch_size,
            )
        layer.reset(data.ctypes.data, labels.ctypes.data, int(data.shape[0]))
        self._custodian.hold(_INPUT_SITE, layer_id, data, labels)

    @host_call
    @translate_errors
    def set_input_arrays(self, data: np.ndarray, labels: np.ndarray, index: int = 0) -> None:
        """Feed `data` / `labels` to the MemoryData layer at position `index`."""
        layer = self._memory_data_layer(index)
        self._inject(index % len(self._net.layers), layer, data, labels)

    @host_call
    @translate_errors
    def set_layer_input_arrays(self, layer: Layer, data: np.ndarray, labels: np.ndarray) -> None:
        """Feed `data` / `labels` to `layer`, a MemoryData layer of this net."""
        if not isinstance(layer, Layer):
            raise TypeError(f"Expected a Layer, got {type(layer).__name__}")
        for i, candidate in enumerate(self._net.layers):
            if candidate is layer._layer:
                break
        else:
            raise EngineError(f"Layer '{layer.name}' does not belong to this net")
        self._inject(i, self._memory_data_layer(i), data, labels)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------
    @property
    def name(self) -> str:
        return self._net.name

    @property
    def phase(self) -> Phase:
        return self._net.phase

    @property
    def blobs(self) -> BlobVec:
        return BlobVec._view(self._net.blobs, owner=self)

    @property
    def layers(self) -> LayerVec:
        return LayerVec._for_net(self._net, owner=self)

    @property
    def blob_names(self) -> StringVec:
        return StringVec(self._net.blob_names)

    @property
    def layer_names(self) -> StringVec:
        return StringVec(self._net.layer_names)

    @property
    def inputs(self) -> StringVec:
        names = self._net.blob_names
        return StringVec(names[i] for i in self._net.input_blob_indices)

    @property
    def outputs(self) -> StringVec:
        names = self._net.blob_names
        return StringVec(names[i] for i in self._net.output_blob_indices)

    @property
    def blob_loss_weights(self) -> DtypeVec:
        return DtypeVec._view(self._net.blob_loss_weights, owner=self)  # type: ignore[return-value]

    def bottom_ids(self, layer_id: int) -> IntTpVec:
        return IntTpVec(self._net.bottom_ids(layer_id))

    def top_ids(self, layer_id: int) -> IntTpVec:
        return IntTpVec(self._net.top_ids(layer_id))

    @translate_errors
    def blob_by_name(self, name: str) -> Blob:
        return Blob._wrap(self._net.blob_by_name(name))

    @translate_errors
    def layer_by_name(self, name: str) -> Layer:
        return Layer._wrap(self._net.layer_by_name(name), self._net)

    def __repr__(self) -> str:
        return f"Net(name={self.name!r}, phase={self.phase.name}, layers={len(self._net.layers)})"


class NetVec(TypedVec[Net]):
    """Sequence of network handles, e.g. a solver's test networks."""

    item_name = "Net"

    def _to_storage(self, value: Any) -> Net:
        if not isinstance(value, Net):
            raise self._type_error(value)
        return value
