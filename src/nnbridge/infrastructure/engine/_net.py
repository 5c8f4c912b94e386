"""
Engine network: an ordered layer sequence over a named blob collection.

Definition format
-----------------
A network definition is a JSON object:

    {
      "name": "example",
      "inputs": [{"name": "data", "shape": [1, 4]}],
      "layers": [
        {"name": "ip", "type": "InnerProduct", "bottom": ["data"],
         "top": ["ip"], "inner_product_param": {"num_output": 2}},
        ...
      ]
    }

- `inputs` is shorthand for `Input` layers placed before the other layers.
- A layer whose `top` repeats one of its `bottom` names runs in place.
- `include: {"phase": "TRAIN"}` restricts a layer to one phase.
- A blob read by several layers is fanned out through an inserted `Split`
  layer, which sums the gradients coming back from each reader.

Structure
---------
The layer sequence is fixed at construction. Blobs are created on first
appearance as a top and are only ever resized afterwards (`reshape`).
Learnable parameter blobs are collected in layer order into
`learnable_params`, which the solvers update.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from ...domain._device import Device
from ...domain._errors import ConfigurationError, EngineError
from ...domain._phase import Phase
from ._blob import Blob
from ._context import get_context
from ._io import read_arrays, read_json_document, write_arrays
from ._layers import Layer, LayerParameter, LayerRegistry

# registers MemoryData
from . import _memory_data  # noqa: F401

logger = logging.getLogger(__name__)


def _parse_layers(doc: Mapping[str, Any]) -> List[LayerParameter]:
    params: List[LayerParameter] = []
    inputs = doc.get("inputs", [])
    if not isinstance(inputs, list):
        raise ConfigurationError("'inputs' must be a list")
    for entry in inputs:
        try:
            name = str(entry["name"])
            shape = [int(d) for d in entry["shape"]]
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Bad input entry {entry!r}") from e
        params.append(
            LayerParameter(
                name=f"input_{name}", type="Input", top=[name], options={"shape": shape}
            )
        )
    layers = doc.get("layers", [])
    if not isinstance(layers, list):
        raise ConfigurationError("'layers' must be a list")
    params.extend(LayerParameter.from_dict(layer) for layer in layers)
    return params


def _insert_splits(params: List[LayerParameter]) -> List[LayerParameter]:
    """
    Give every consumer of a multiply-consumed blob its own copy through an
    inserted `Split` layer, so that gradients from all consumers are summed.
    """
    producer: Dict[str, int] = {}
    consumers: Dict[Tuple[int, str], List[Tuple[int, int]]] = {}
    for i, p in enumerate(params):
        for k, name in enumerate(p.bottom):
            if name in producer:
                consumers.setdefault((producer[name], name), []).append((i, k))
        for name in p.top:
            producer[name] = i

    renamed: Dict[Tuple[int, int], str] = {}
    splits: Dict[int, List[LayerParameter]] = {}
    for (src, name), uses in consumers.items():
        if len(uses) < 2:
            continue
        base = f"{name}_{params[src].name}_split"
        tops = []
        for j, (i, k) in enumerate(uses):
            if name in params[i].top:
                raise ConfigurationError(
                    f"In-place layer '{params[i].name}' cannot share bottom blob "
                    f"'{name}' with other layers"
                )
            renamed[(i, k)] = f"{base}_{j}"
            tops.append(f"{base}_{j}")
        splits.setdefault(src, []).append(
            LayerParameter(name=base, type="Split", bottom=[name], top=tops)
        )

    out: List[LayerParameter] = []
    for i, p in enumerate(params):
        if any((i, k) in renamed for k in range(len(p.bottom))):
            p = replace(p, bottom=[renamed.get((i, k), b) for k, b in enumerate(p.bottom)])
        out.append(p)
        out.extend(splits.get(i, []))
    return out


class Net:
    """
    Engine network.

    Parameters
    ----------
    definition : Mapping[str, Any]
        Decoded network definition (see module docstring).
    phase : Phase
        Phase used to filter layers.
    device : Device, optional
        Device the network is built on. Defaults to the process-wide
        engine context's build device.
    """

    def __init__(
        self,
        definition: Mapping[str, Any],
        phase: Phase = Phase.TRAIN,
        device: Optional[Device] = None,
    ) -> None:
        self._phase = Phase.coerce(phase)
        self._device = device if device is not None else get_context().resolve_build_device()
        self._name = str(definition.get("name", ""))

        self._layers: List[Layer] = []
        self._layer_names: List[str] = []
        self._blobs: List[Blob] = []
        self._blob_names: List[str] = []
        self._blob_name_to_idx: Dict[str, int] = {}
        self._blob_loss_weights: List[float] = []
        self._blob_need_backward: List[bool] = []
        self._bottom_ids: List[List[int]] = []
        self._top_ids: List[List[int]] = []
        self._bottom_need_backward: List[List[bool]] = []
        self._layer_need_backward: List[bool] = []
        self._input_blob_indices: List[int] = []
        self._output_blob_indices: List[int] = []

        self.learnable_params: List[Blob] = []
        self.params_lr: List[float] = []
        self.params_weight_decay: List[float] = []

        self._init(_parse_layers(definition))

    @classmethod
    def from_file(
        cls, filename: str, phase: Phase = Phase.TRAIN, device: Optional[Device] = None
    ) -> "Net":
        return cls(read_json_document(filename, "network definition"), phase, device)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def _init(self, params: List[LayerParameter]) -> None:
        params = _insert_splits(
            [p for p in params if p.include_phase is None or p.include_phase == self._phase]
        )
        logger.info(
            "Initializing net '%s' from %d layer(s), phase %s, device %s",
            self._name,
            len(params),
            self._phase.name,
            self._device,
        )
        available: Dict[str, int] = {}
        for layer_id, param in enumerate(params):
            if param.name in self._layer_names:
                raise ConfigurationError(f"Duplicate layer name '{param.name}'")
            layer = LayerRegistry.create_layer(param)

            bottom_ids: List[int] = []
            for k, bottom_name in enumerate(param.bottom):
                if bottom_name not in available:
                    raise ConfigurationError(
                        f"Unknown bottom blob '{bottom_name}' "
                        f"(layer '{param.name}', bottom index {k})"
                    )
                bottom_ids.append(available.pop(bottom_name))

            top_ids: List[int] = []
            for top_name in param.top:
                if top_name in param.bottom:
                    blob_id = self._blob_name_to_idx[top_name]
                elif top_name in self._blob_name_to_idx:
                    raise ConfigurationError(
                        f"Top blob '{top_name}' produced by multiple sources"
                    )
                else:
                    blob_id = self._append_blob(top_name)
                available[top_name] = blob_id
                top_ids.append(blob_id)

            bottoms = [self._blobs[i] for i in bottom_ids]
            tops = [self._blobs[i] for i in top_ids]
            layer.setup(bottoms, tops)
            logger.debug(
                "Created layer '%s' (%s): top shapes %s",
                param.name,
                param.type,
                [b.shape for b in tops],
            )

            self._layers.append(layer)
            self._layer_names.append(param.name)
            self._bottom_ids.append(bottom_ids)
            self._top_ids.append(top_ids)

            for top_id, weight in zip(top_ids, layer.loss_weights):
                self._blob_loss_weights[top_id] = weight

            has_lr = False
            for j, blob in enumerate(layer.blobs):
                lr_mult, decay_mult = layer.param_multipliers(j)
                self.learnable_params.append(blob)
                self.params_lr.append(lr_mult)
                self.params_weight_decay.append(decay_mult)
                has_lr = has_lr or lr_mult != 0.0

            need = has_lr or any(self._blob_need_backward[i] for i in bottom_ids)
            self._layer_need_backward.append(need)
            self._bottom_need_backward.append(
                [
                    self._blob_need_backward[b] and layer.allow_force_backward(k)
                    for k, b in enumerate(bottom_ids)
                ]
            )
            for top_id in top_ids:
                self._blob_need_backward[top_id] = self._blob_need_backward[top_id] or need

            if layer.type == "Input":
                self._input_blob_indices.extend(top_ids)

        self._output_blob_indices = sorted(available.values())
        logger.info("Network initialization done (%d layers)", len(self._layers))

    def _append_blob(self, name: str) -> int:
        blob_id = len(self._blobs)
        self._blobs.append(Blob())
        self._blob_names.append(name)
        self._blob_name_to_idx[name] = blob_id
        self._blob_loss_weights.append(0.0)
        self._blob_need_backward.append(False)
        return blob_id

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def name(self) -> str:
        return self._name

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def device(self) -> Device:
        return self._device

    @property
    def layers(self) -> List[Layer]:
        return self._layers

    @property
    def layer_names(self) -> List[str]:
        return list(self._layer_names)

    @property
    def blobs(self) -> List[Blob]:
        return self._blobs

    @property
    def blob_names(self) -> List[str]:
        return list(self._blob_names)

    @property
    def blob_loss_weights(self) -> List[float]:
        return self._blob_loss_weights

    @property
    def input_blob_indices(self) -> List[int]:
        return list(self._input_blob_indices)

    @property
    def output_blob_indices(self) -> List[int]:
        return list(self._output_blob_indices)

    def bottom_ids(self, layer_id: int) -> List[int]:
        return list(self._bottom_ids[layer_id])

    def top_ids(self, layer_id: int) -> List[int]:
        return list(self._top_ids[layer_id])

    def has_blob(self, name: str) -> bool:
        return name in self._blob_name_to_idx

    def blob_by_name(self, name: str) -> Blob:
        try:
            return self._blobs[self._blob_name_to_idx[name]]
        except KeyError:
            raise EngineError(f"Unknown blob name {name}") from None

    def layer_by_name(self, name: str) -> Layer:
        try:
            return self._layers[self._layer_names.index(name)]
        except ValueError:
            raise EngineError(f"Unknown layer name {name}") from None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def forward_from_to(self, start: int, end: int) -> float:
        n = len(self._layers)
        if not (0 <= start <= end < n):
            raise EngineError(
                f"Invalid forward range [{start}, {end}] for a net with {n} layers"
            )
        loss = 0.0
        for i in range(start, end + 1):
            bottom = [self._blobs[b] for b in self._bottom_ids[i]]
            top = [self._blobs[t] for t in self._top_ids[i]]
            loss += self._layers[i].forward(bottom, top)
        return loss

    def backward_from_to(self, start: int, end: int) -> None:
        n = len(self._layers)
        if not (0 <= end <= start < n):
            raise EngineError(
                f"Invalid backward range [{start}, {end}] for a net with {n} layers"
            )
        for i in range(start, end - 1, -1):
            if not self._layer_need_backward[i]:
                continue
            bottom = [self._blobs[b] for b in self._bottom_ids[i]]
            top = [self._blobs[t] for t in self._top_ids[i]]
            self._layers[i].backward(top, self._bottom_need_backward[i], bottom)

    def forward(self) -> float:
        return self.forward_from_to(0, len(self._layers) - 1)

    def backward(self) -> None:
        self.backward_from_to(len(self._layers) - 1, 0)

    def forward_backward(self) -> float:
        loss = self.forward()
        self.backward()
        return loss

    def reshape(self) -> None:
        for i, layer in enumerate(self._layers):
            bottom = [self._blobs[b] for b in self._bottom_ids[i]]
            top = [self._blobs[t] for t in self._top_ids[i]]
            layer.reshape(bottom, top)

    def clear_param_diffs(self) -> None:
        for blob in self.learnable_params:
            blob.diff[...] = 0.0

    def update(self) -> None:
        for blob in self.learnable_params:
            blob.update()

    # ------------------------------------------------------------------
    # Weights
    # ------------------------------------------------------------------
    def copy_trained_layers_from(self, filename: str) -> None:
        """Copy parameter values, by layer name, from a weights file."""
        by_layer: Dict[str, Dict[int, np.ndarray]] = {}
        for key, arr in read_arrays(filename).items():
            layer_name, _, index = key.rpartition("/")
            try:
                by_layer.setdefault(layer_name, {})[int(index)] = arr
            except ValueError:
                raise EngineError(f"Malformed weights entry '{key}' in {filename}") from None

        for layer_name, arrays in by_layer.items():
            if layer_name not in self._layer_names:
                logger.info("Ignoring source layer %s", layer_name)
                continue
            target = self.layer_by_name(layer_name).blobs
            if len(arrays) != len(target):
                raise EngineError(
                    f"Incompatible number of blobs for layer {layer_name} "
                    f"({len(arrays)} in file vs. {len(target)} in net)"
                )
            if set(arrays) != set(range(len(target))):
                raise EngineError(
                    f"Malformed weights for layer {layer_name} in {filename}: "
                    f"blob indices {sorted(arrays)}, expected 0..{len(target) - 1}"
                )
            for j, blob in enumerate(target):
                source = arrays[j]
                if tuple(source.shape) != blob.shape:
                    raise EngineError(
                        f"Cannot copy param {j} weights from layer '{layer_name}'; "
                        f"shape mismatch. Source param shape is {tuple(source.shape)}; "
                        f"target param shape is {blob.shape}"
                    )
                blob.data[...] = source
        logger.info("Copied trained layers from %s", filename)

    def share_trained_layers_with(self, other: "Net") -> None:
        """Alias every parameter blob to the same-named layer's blob of `other`."""
        for layer_name, source_layer in zip(other._layer_names, other._layers):
            if not source_layer.blobs:
                continue
            if layer_name not in self._layer_names:
                logger.info("Ignoring source layer %s", layer_name)
                continue
            target = self.layer_by_name(layer_name).blobs
            if len(source_layer.blobs) != len(target):
                raise EngineError(
                    f"Incompatible number of blobs for layer {layer_name}"
                )
            for j, (src, dst) in enumerate(zip(source_layer.blobs, target)):
                if src.shape != dst.shape:
                    raise EngineError(
                        f"Cannot share param {j} weights from layer '{layer_name}'; "
                        f"shape mismatch. Source param shape is {src.shape}; "
                        f"target param shape is {dst.shape}"
                    )
                dst.share_data(src)

    def save(self, filename: str) -> None:
        arrays: Dict[str, np.ndarray] = {}
        for layer_name, layer in zip(self._layer_names, self._layers):
            for j, blob in enumerate(layer.blobs):
                arrays[f"{layer_name}/{j}"] = blob.data.copy()
        write_arrays(filename, arrays)
        logger.info("Saved weights of net '%s' to %s", self._name, filename)
