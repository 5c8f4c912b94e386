"""
Engine layers and the layer registry.

A layer is one processing stage of a network. It reads its `bottom` blobs,
writes its `top` blobs and may own learnable parameter blobs. Layers are
created from a `LayerParameter` through `LayerRegistry`, keyed by the
layer's type name.

Lifecycle
---------
1. `setup(bottom, top)`: validate blob counts, run the layer-specific
   `layer_setup`, shape the tops via `reshape`, and record loss weights.
2. `reshape(bottom, top)`: recompute top shapes from bottom shapes.
3. `forward(bottom, top)`: reshape, then compute tops; returns the weighted loss the layer
   contributes (zero for non-loss layers).
4. `backward(top, propagate_down, bottom)`: accumulate parameter gradients
   and write bottom gradients for the bottoms flagged in `propagate_down`.

Loss weights are stored in the `diff` of each loss top, so backward passes
through loss layers pick up the weight without special casing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Type, TypeVar

import numpy as np

from ...domain._errors import ConfigurationError, EngineError
from ...domain._phase import Phase
from ._blob import Blob
from ._fillers import Filler

L = TypeVar("L", bound=Type["Layer"])

_LAYER_KEYS = {"name", "type", "bottom", "top", "loss_weight", "include", "param"}


@dataclass
class LayerParameter:
    """
    Parsed layer definition.

    Attributes
    ----------
    name : str
        Unique layer name within the network.
    type : str
        Registered layer type.
    bottom, top : list[str]
        Names of the input and output blobs.
    loss_weight : list[float]
        Per-top loss weights; empty means the layer type's default.
    include_phase : Optional[Phase]
        If set, the layer is only instantiated in that phase.
    param : list[dict]
        Per-parameter-blob multipliers (`lr_mult`, `decay_mult`).
    options : dict
        Merged contents of every `*_param` section.
    """

    name: str
    type: str
    bottom: List[str] = field(default_factory=list)
    top: List[str] = field(default_factory=list)
    loss_weight: List[float] = field(default_factory=list)
    include_phase: Optional[Phase] = None
    param: List[Dict[str, float]] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "LayerParameter":
        if not isinstance(doc, dict):
            raise ConfigurationError(f"Layer definition must be an object, got {doc!r}")
        name = doc.get("name")
        type_ = doc.get("type")
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"Layer definition needs a name: {doc!r}")
        if not isinstance(type_, str) or not type_:
            raise ConfigurationError(f"Layer '{name}' needs a type")

        options: Dict[str, Any] = {}
        for key, value in doc.items():
            if key in _LAYER_KEYS:
                continue
            if not key.endswith("_param"):
                raise ConfigurationError(f"Layer '{name}': unknown field '{key}'")
            if not isinstance(value, dict):
                raise ConfigurationError(f"Layer '{name}': '{key}' must be an object")
            options.update(value)

        include_phase = None
        include = doc.get("include")
        if include is not None:
            try:
                include_phase = Phase.coerce(dict(include)["phase"])
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Layer '{name}': bad include rule {include!r}"
                ) from e

        try:
            return cls(
                name=name,
                type=type_,
                bottom=[str(b) for b in doc.get("bottom", [])],
                top=[str(t) for t in doc.get("top", [])],
                loss_weight=[float(w) for w in doc.get("loss_weight", [])],
                include_phase=include_phase,
                param=[dict(p) for p in doc.get("param", [])],
                options=options,
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Layer '{name}': {e}") from e


class Layer:
    """
    Base class of every engine layer.

    Subclasses set `type`, optionally `exact_num_bottom` / `exact_num_top`
    (or the min/max variants), and implement `reshape`, `forward_cpu` and
    `backward_cpu`.
    """

    type: ClassVar[str] = ""
    is_loss: ClassVar[bool] = False
    exact_num_bottom: ClassVar[int] = -1
    exact_num_top: ClassVar[int] = -1
    min_num_top: ClassVar[int] = -1
    max_num_top: ClassVar[int] = -1

    def __init__(self, param: LayerParameter) -> None:
        self.layer_param = param
        self._blobs: List[Blob] = []
        self.loss_weights: List[float] = []

    @property
    def name(self) -> str:
        return self.layer_param.name

    @property
    def blobs(self) -> List[Blob]:
        return self._blobs

    def param_multipliers(self, index: int) -> tuple[float, float]:
        """Return `(lr_mult, decay_mult)` for learnable blob `index`."""
        mults = self.layer_param.param
        if index < len(mults):
            return float(mults[index].get("lr_mult", 1.0)), float(
                mults[index].get("decay_mult", 1.0)
            )
        return 1.0, 1.0

    def setup(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        self._check_blob_counts(bottom, top)
        self.layer_setup(bottom, top)
        self.reshape(bottom, top)
        self._set_loss_weights(top)

    def layer_setup(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        pass

    def reshape(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        raise NotImplementedError

    def forward(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> float:
        # bottoms may have been resized since the last pass
        self.reshape(bottom, top)
        self.forward_cpu(bottom, top)
        loss = 0.0
        for blob, weight in zip(top, self.loss_weights):
            if weight:
                loss += weight * float(np.sum(blob.data, dtype=np.float64))
        return loss

    def backward(
        self,
        top: Sequence[Blob],
        propagate_down: Sequence[bool],
        bottom: Sequence[Blob],
    ) -> None:
        self.backward_cpu(top, propagate_down, bottom)

    def forward_cpu(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        raise NotImplementedError

    def backward_cpu(
        self,
        top: Sequence[Blob],
        propagate_down: Sequence[bool],
        bottom: Sequence[Blob],
    ) -> None:
        pass

    def allow_force_backward(self, bottom_index: int) -> bool:
        return True

    def _check_blob_counts(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        if self.exact_num_bottom >= 0 and len(bottom) != self.exact_num_bottom:
            raise EngineError(
                f"{self.type} Layer takes {self.exact_num_bottom} bottom blob(s) "
                f"as input, got {len(bottom)}"
            )
        if self.exact_num_top >= 0 and len(top) != self.exact_num_top:
            raise EngineError(
                f"{self.type} Layer produces {self.exact_num_top} top blob(s) "
                f"as output, got {len(top)}"
            )
        if self.min_num_top >= 0 and len(top) < self.min_num_top:
            raise EngineError(
                f"{self.type} Layer produces at least {self.min_num_top} top blob(s)"
            )
        if self.max_num_top >= 0 and len(top) > self.max_num_top:
            raise EngineError(
                f"{self.type} Layer produces at most {self.max_num_top} top blob(s)"
            )

    def _set_loss_weights(self, top: Sequence[Blob]) -> None:
        weights = list(self.layer_param.loss_weight)
        if not weights:
            weights = [1.0 if (self.is_loss and i == 0) else 0.0 for i in range(len(top))]
        if len(weights) != len(top):
            raise ConfigurationError(
                f"Layer '{self.name}': loss_weight must be unspecified or "
                f"specified once per top blob ({len(top)})"
            )
        self.loss_weights = weights
        for blob, weight in zip(top, weights):
            if weight:
                blob.diff[...] = weight


class LayerRegistry:
    """
    Name-keyed registry of layer classes.

    Usage
    -----
        @LayerRegistry.register_layer
        class ReLULayer(Layer):
            type = "ReLU"
    """

    LAYERS: ClassVar[Dict[str, Type[Layer]]] = {}

    @classmethod
    def register_layer(cls, layer_cls: L) -> L:
        name = layer_cls.type
        if not name:
            raise ValueError(f"{layer_cls.__name__} does not define a layer type")
        if name in cls.LAYERS:
            raise ValueError(f"Layer type already registered: {name!r}")
        cls.LAYERS[name] = layer_cls
        return layer_cls

    @classmethod
    def create_layer(cls, param: LayerParameter) -> Layer:
        try:
            layer_cls = cls.LAYERS[param.type]
        except KeyError as e:
            raise ConfigurationError(
                f"Unknown layer type: {param.type} (known types: "
                f"{', '.join(cls.layer_type_list())})"
            ) from e
        return layer_cls(param)

    @classmethod
    def layer_type_list(cls) -> List[str]:
        return sorted(cls.LAYERS)


def _count(shape: Sequence[int], start: int = 0, end: Optional[int] = None) -> int:
    n = 1
    for d in shape[start:end]:
        n *= int(d)
    return n


@LayerRegistry.register_layer
class InputLayer(Layer):
    """Provides network inputs whose shapes are fixed by the definition."""

    type = "Input"
    exact_num_bottom = 0
    min_num_top = 1

    def layer_setup(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        shapes = self.layer_param.options.get("shape")
        if not shapes:
            raise ConfigurationError(f"Input layer '{self.name}' needs a shape")
        if not isinstance(shapes[0], (list, tuple)):
            shapes = [shapes]
        if len(shapes) not in (1, len(top)):
            raise ConfigurationError(
                f"Input layer '{self.name}': give one shape, or one per top"
            )
        for i, blob in enumerate(top):
            blob.reshape(shapes[0] if len(shapes) == 1 else shapes[i])

    def reshape(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        # Input shapes are owned by the caller after setup.
        pass

    def forward_cpu(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        pass


@LayerRegistry.register_layer
class InnerProductLayer(Layer):
    """Fully connected layer: `top = bottom @ W.T + b` over `axis`."""

    type = "InnerProduct"
    exact_num_bottom = 1
    exact_num_top = 1

    def layer_setup(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        opts = self.layer_param.options
        if "num_output" not in opts:
            raise ConfigurationError(f"InnerProduct layer '{self.name}' needs num_output")
        self._n = int(opts["num_output"])
        self._bias_term = bool(opts.get("bias_term", True))
        self._axis = int(opts.get("axis", 1))
        self._k = _count(bottom[0].shape, self._axis)

        if self._blobs:
            return
        weight = Blob((self._n, self._k))
        Filler(opts.get("weight_filler"))(weight)
        self._blobs.append(weight)
        if self._bias_term:
            bias = Blob((self._n,))
            Filler(opts.get("bias_filler"))(bias)
            self._blobs.append(bias)

    def reshape(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        shape = bottom[0].shape
        if _count(shape, self._axis) != self._k:
            raise EngineError(
                "Input size incompatible with inner product parameters "
                f"(layer '{self.name}': expected {self._k}, got {_count(shape, self._axis)})"
            )
        self._m = _count(shape, 0, self._axis)
        top[0].reshape(tuple(shape[: self._axis]) + (self._n,))

    def forward_cpu(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        x = bottom[0].data.reshape(self._m, self._k)
        y = x @ self._blobs[0].data.T
        if self._bias_term:
            y = y + self._blobs[1].data
        top[0].data[...] = y.reshape(top[0].shape)

    def backward_cpu(
        self,
        top: Sequence[Blob],
        propagate_down: Sequence[bool],
        bottom: Sequence[Blob],
    ) -> None:
        dy = top[0].diff.reshape(self._m, self._n)
        x = bottom[0].data.reshape(self._m, self._k)
        self._blobs[0].diff[...] += dy.T @ x
        if self._bias_term:
            self._blobs[1].diff[...] += dy.sum(axis=0)
        if propagate_down[0]:
            bottom[0].diff[...] = (dy @ self._blobs[0].data).reshape(bottom[0].shape)


@LayerRegistry.register_layer
class ReLULayer(Layer):
    """Rectified linear unit with optional leak; may run in place."""

    type = "ReLU"
    exact_num_bottom = 1
    exact_num_top = 1

    def reshape(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        if top[0] is not bottom[0]:
            top[0].reshape_like(bottom[0])

    def forward_cpu(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        slope = float(self.layer_param.options.get("negative_slope", 0.0))
        x = bottom[0].data
        top[0].data[...] = np.where(x > 0, x, x * slope)

    def backward_cpu(
        self,
        top: Sequence[Blob],
        propagate_down: Sequence[bool],
        bottom: Sequence[Blob],
    ) -> None:
        if not propagate_down[0]:
            return
        slope = float(self.layer_param.options.get("negative_slope", 0.0))
        x = bottom[0].data
        bottom[0].diff[...] = top[0].diff * np.where(x > 0, 1.0, slope)


@LayerRegistry.register_layer
class SigmoidLayer(Layer):
    type = "Sigmoid"
    exact_num_bottom = 1
    exact_num_top = 1

    def reshape(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        if top[0] is not bottom[0]:
            top[0].reshape_like(bottom[0])

    def forward_cpu(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        top[0].data[...] = 1.0 / (1.0 + np.exp(-bottom[0].data))

    def backward_cpu(
        self,
        top: Sequence[Blob],
        propagate_down: Sequence[bool],
        bottom: Sequence[Blob],
    ) -> None:
        if propagate_down[0]:
            y = top[0].data
            bottom[0].diff[...] = top[0].diff * y * (1.0 - y)


@LayerRegistry.register_layer
class EuclideanLossLayer(Layer):
    """`loss = sum((a - b) ** 2) / (2 * num)`."""

    type = "EuclideanLoss"
    is_loss = True
    exact_num_bottom = 2
    exact_num_top = 1

    def reshape(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        a, b = bottom
        if a.shape[:1] != b.shape[:1] or _count(a.shape, 1) != _count(b.shape, 1):
            raise EngineError(
                f"Inputs must have the same dimension (layer '{self.name}': "
                f"{a.shape} vs. {b.shape})"
            )
        top[0].reshape(())
        self._residual = np.zeros(a.shape, dtype=np.float32)

    def forward_cpu(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        a, b = bottom
        self._residual = a.data - b.data.reshape(a.shape)
        num = max(1, a.shape[0] if a.shape else 1)
        top[0].data[...] = float(np.sum(self._residual**2, dtype=np.float64)) / num / 2.0

    def backward_cpu(
        self,
        top: Sequence[Blob],
        propagate_down: Sequence[bool],
        bottom: Sequence[Blob],
    ) -> None:
        num = max(1, bottom[0].shape[0] if bottom[0].shape else 1)
        for i, blob in enumerate(bottom):
            if propagate_down[i]:
                sign = 1.0 if i == 0 else -1.0
                alpha = sign * float(top[0].diff.reshape(-1)[0]) / num
                blob.diff[...] = (alpha * self._residual).reshape(blob.shape)


@LayerRegistry.register_layer
class SoftmaxWithLossLayer(Layer):
    """
    Multinomial logistic loss over a softmax of the scores in `bottom[0]`,
    with integer class labels in `bottom[1]`. An optional second top
    receives the class probabilities.
    """

    type = "SoftmaxWithLoss"
    is_loss = True
    exact_num_bottom = 2
    min_num_top = 1
    max_num_top = 2

    def layer_setup(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        opts = self.layer_param.options
        self._ignore_label = opts.get("ignore_label")
        self._normalize = bool(opts.get("normalize", True))

    def reshape(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        scores, labels = bottom
        self._outer = scores.shape[0] if scores.shape else 1
        self._channels = scores.shape[1] if scores.num_axes > 1 else 1
        self._inner = _count(scores.shape, 2)
        if self._outer * self._inner != labels.count:
            raise EngineError(
                "Number of labels must match number of predictions "
                f"(layer '{self.name}': {labels.count} vs. {self._outer * self._inner})"
            )
        top[0].reshape(())
        if len(top) > 1:
            top[1].reshape_like(scores)
        self._prob = np.zeros(scores.shape, dtype=np.float32)

    def forward_cpu(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        s = bottom[0].data.reshape(self._outer, self._channels, self._inner)
        s = s - s.max(axis=1, keepdims=True)
        e = np.exp(s)
        prob = e / e.sum(axis=1, keepdims=True)
        self._prob = prob.reshape(bottom[0].shape)

        labels = bottom[1].data.reshape(self._outer, self._inner).astype(np.int64)
        valid = np.ones_like(labels, dtype=bool)
        if self._ignore_label is not None:
            valid = labels != int(self._ignore_label)
        if np.any((labels[valid] < 0) | (labels[valid] >= self._channels)):
            raise EngineError(
                f"Label out of range [0, {self._channels}) in layer '{self.name}'"
            )
        n_idx, j_idx = np.nonzero(valid)
        picked = prob[n_idx, labels[valid], j_idx]
        loss = -np.sum(np.log(np.maximum(picked, np.finfo(np.float32).tiny)), dtype=np.float64)
        self._normalizer = self._get_normalizer(int(valid.sum()))
        top[0].data[...] = loss / self._normalizer
        if len(top) > 1:
            top[1].data[...] = self._prob

    def _get_normalizer(self, valid_count: int) -> float:
        if self._normalize:
            return float(max(1, valid_count))
        return float(max(1, self._outer))

    def allow_force_backward(self, bottom_index: int) -> bool:
        return bottom_index != 1

    def backward_cpu(
        self,
        top: Sequence[Blob],
        propagate_down: Sequence[bool],
        bottom: Sequence[Blob],
    ) -> None:
        if propagate_down[1]:
            raise EngineError(
                f"{self.type} Layer cannot backpropagate to label inputs"
            )
        if not propagate_down[0]:
            return
        grad = self._prob.reshape(self._outer, self._channels, self._inner).copy()
        labels = bottom[1].data.reshape(self._outer, self._inner).astype(np.int64)
        valid = np.ones_like(labels, dtype=bool)
        if self._ignore_label is not None:
            valid = labels != int(self._ignore_label)
        n_idx, j_idx = np.nonzero(valid)
        grad[n_idx, labels[valid], j_idx] -= 1.0
        grad *= valid[:, None, :]
        scale = float(top[0].diff.reshape(-1)[0]) / self._normalizer
        bottom[0].diff[...] = (grad * scale).reshape(bottom[0].shape)


@LayerRegistry.register_layer
class SplitLayer(Layer):
    """
    Copies one bottom to several tops and sums the top gradients back.

    Inserted automatically when a blob feeds more than one layer.
    """

    type = "Split"
    exact_num_bottom = 1
    min_num_top = 1

    def reshape(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        for blob in top:
            blob.reshape_like(bottom[0])

    def forward_cpu(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> None:
        for blob in top:
            blob.data[...] = bottom[0].data

    def backward_cpu(
        self,
        top: Sequence[Blob],
        propagate_down: Sequence[bool],
        bottom: Sequence[Blob],
    ) -> None:
        if propagate_down[0]:
            total = np.zeros(bottom[0].shape, dtype=np.float32)
            for blob in top:
                total += blob.diff
            bottom[0].diff[...] = total
