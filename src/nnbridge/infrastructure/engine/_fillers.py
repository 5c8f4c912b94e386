"""
Parameter fillers for learnable blobs.

Fillers are registered by name in the `Filler` registry and selected by the
`weight_filler` / `bias_filler` entries of a layer definition, e.g.

    {"type": "gaussian", "std": 0.01}

Registered fillers
------------------
- ``constant``: every element set to ``value`` (default 0).
- ``gaussian``: zero-mean (or ``mean``) normal with standard deviation ``std``.
- ``uniform``: uniform on ``[min, max]``.
- ``xavier``: uniform on ``[-sqrt(3 / fan_in), +sqrt(3 / fan_in)]``.

Notes
-----
- Fillers write into the blob's `data` in place.
- Randomness comes from NumPy's global generator, so a solver's
  `random_seed` makes network initialization reproducible.
"""

from __future__ import annotations

import math
from typing import Any, Callable, ClassVar, Dict, Mapping, Optional, TypeVar

import numpy as np

from ...domain._errors import ConfigurationError
from ._blob import Blob

T = TypeVar("T", bound=Callable[..., None])


class Filler:
    """
    Registry-backed filler dispatcher.

    Usage
    -----
    Register:
        @Filler.register_filler("gaussian")
        def gaussian(blob: Blob, param: Mapping[str, Any]) -> None: ...

    Dispatch:
        Filler({"type": "gaussian", "std": 0.1})(blob)
    """

    FILLERS: ClassVar[Dict[str, Callable[..., None]]] = {}

    def __init__(self, param: Optional[Mapping[str, Any]] = None) -> None:
        self._param: Dict[str, Any] = dict(param or {"type": "constant"})
        name = str(self._param.get("type", "constant"))
        try:
            self._filler = self.FILLERS[name]
        except KeyError as e:
            available = ", ".join(sorted(self.FILLERS)) or "<none>"
            raise ConfigurationError(
                f"Unknown filler type: {name!r}. Available: {available}"
            ) from e

    @classmethod
    def register_filler(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[T], T]:
        """
        Decorator to register a filler under `name`.

        Parameters
        ----------
        name:
            Registry key used in layer definitions.
        overwrite:
            If False (default), raises if `name` is already registered.
        """
        if not isinstance(name, str) or not name:
            raise ValueError("Filler name must be a non-empty string")

        def decorator(func: T) -> T:
            if not overwrite and name in cls.FILLERS:
                raise ValueError(f"Filler already registered: {name!r}")
            cls.FILLERS[name] = func
            return func

        return decorator

    @classmethod
    def available(cls) -> tuple[str, ...]:
        return tuple(sorted(cls.FILLERS))

    def __call__(self, blob: Blob) -> None:
        self._filler(blob, self._param)


@Filler.register_filler("constant")
def constant(blob: Blob, param: Mapping[str, Any]) -> None:
    blob.data[...] = float(param.get("value", 0.0))


@Filler.register_filler("gaussian")
def gaussian(blob: Blob, param: Mapping[str, Any]) -> None:
    mean = float(param.get("mean", 0.0))
    std = float(param.get("std", 1.0))
    blob.data[...] = np.random.normal(mean, std, size=blob.shape)


@Filler.register_filler("uniform")
def uniform(blob: Blob, param: Mapping[str, Any]) -> None:
    lo = float(param.get("min", 0.0))
    hi = float(param.get("max", 1.0))
    blob.data[...] = np.random.uniform(lo, hi, size=blob.shape)


@Filler.register_filler("xavier")
def xavier(blob: Blob, param: Mapping[str, Any]) -> None:
    # fan_in is every axis after the first (num_output x K for weights)
    fan_in = max(1, blob.count // max(1, blob.shape[0] if blob.shape else 1))
    bound = math.sqrt(3.0 / float(fan_in))
    blob.data[...] = np.random.uniform(-bound, bound, size=blob.shape)
