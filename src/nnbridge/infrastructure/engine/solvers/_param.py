"""
Solver configuration.

`SolverParameter` holds every hyperparameter a solver reads. It can be built
in memory, or decoded from a JSON configuration file whose keys are the
field names below. Relative network paths in a file are resolved against
the file's directory.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, List, Mapping

from ....domain._errors import ConfigurationError
from .._io import read_json_document


class SnapshotFormat(IntEnum):
    HDF5 = 0
    BINARYPROTO = 1


_SCALAR_TYPES: Dict[str, type] = {"int": int, "float": float, "str": str, "bool": bool}
_LIST_TYPES: Dict[str, type] = {"List[int]": int, "List[str]": str}


def _check_scalar(name: str, kind: type, value: Any) -> Any:
    # bool is an int subclass; only `bool` fields accept it
    if isinstance(value, bool) and kind is not bool:
        raise ConfigurationError(
            f"Solver parameter '{name}' must be {kind.__name__}, got {value!r}"
        )
    if kind is float and isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, kind):
        raise ConfigurationError(
            f"Solver parameter '{name}' must be {kind.__name__}, got {value!r}"
        )
    return value


def _check_field(name: str, type_name: str, value: Any) -> Any:
    """Validate one decoded value against the field's declared type."""
    if type_name in _LIST_TYPES:
        if not isinstance(value, (list, tuple)):
            raise ConfigurationError(
                f"Solver parameter '{name}' must be a list, got {value!r}"
            )
        return [_check_scalar(name, _LIST_TYPES[type_name], v) for v in value]
    if type_name in _SCALAR_TYPES:
        return _check_scalar(name, _SCALAR_TYPES[type_name], value)
    return value


@dataclass
class SolverParameter:
    """
    Solver hyperparameters.

    Notes
    -----
    - `net` names one definition used for training and, when `test_iter` is
      given, for testing. `train_net` / `test_net` name them separately.
    - `momentum2`, `delta` and `rms_decay` are only read by the adaptive
      variants.
    - `random_seed < 0` leaves NumPy's global generator untouched.
    """

    net: str = ""
    train_net: str = ""
    test_net: List[str] = field(default_factory=list)
    test_iter: List[int] = field(default_factory=list)
    test_interval: int = 0
    test_initialization: bool = True
    base_lr: float = 0.01
    lr_policy: str = "fixed"
    gamma: float = 0.0
    power: float = 0.0
    stepsize: int = 0
    stepvalue: List[int] = field(default_factory=list)
    max_iter: int = 0
    momentum: float = 0.0
    momentum2: float = 0.999
    delta: float = 1e-8
    rms_decay: float = 0.99
    weight_decay: float = 0.0
    regularization_type: str = "L2"
    clip_gradients: float = -1.0
    display: int = 0
    average_loss: int = 1
    snapshot: int = 0
    snapshot_prefix: str = ""
    snapshot_format: SnapshotFormat = SnapshotFormat.BINARYPROTO
    snapshot_after_train: bool = True
    type: str = "SGD"
    random_seed: int = -1

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "SolverParameter":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(doc) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown solver parameter(s): {', '.join(unknown)}"
            )
        values: Dict[str, Any] = dict(doc)
        if isinstance(values.get("test_net"), str):
            values["test_net"] = [values["test_net"]]
        if isinstance(values.get("test_iter"), int):
            values["test_iter"] = [values["test_iter"]]
        fmt = values.get("snapshot_format")
        if isinstance(fmt, str):
            try:
                values["snapshot_format"] = SnapshotFormat[fmt.upper()]
            except KeyError:
                raise ConfigurationError(f"Unknown snapshot_format {fmt!r}") from None
        elif fmt is not None:
            try:
                values["snapshot_format"] = SnapshotFormat(int(fmt))
            except (TypeError, ValueError):
                raise ConfigurationError(f"Unknown snapshot_format {fmt!r}") from None
        for f in fields(cls):
            if f.name in values and f.name != "snapshot_format":
                values[f.name] = _check_field(f.name, str(f.type), values[f.name])
        return cls(**values)

    @classmethod
    def from_file(cls, filename: str) -> "SolverParameter":
        param = cls.from_dict(read_json_document(filename, "solver configuration"))
        base = Path(filename).resolve().parent

        def resolve(p: str) -> str:
            return str(base / p) if p and not Path(p).is_absolute() else p

        param.net = resolve(param.net)
        param.train_net = resolve(param.train_net)
        param.test_net = [resolve(p) for p in param.test_net]
        if param.snapshot_prefix and not Path(param.snapshot_prefix).is_absolute():
            param.snapshot_prefix = resolve(param.snapshot_prefix)
        return param

    def copy(self) -> "SolverParameter":
        return replace(
            self,
            test_net=list(self.test_net),
            test_iter=list(self.test_iter),
            stepvalue=list(self.stepvalue),
        )
