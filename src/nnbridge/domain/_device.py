"""
Compute mode and device descriptors.

This module defines the lightweight value types used to describe where the
engine executes:

- `Mode`: the process-wide compute mode (CPU or GPU)
- `DeviceType`: the category of a concrete device
- `Device`: a validated, normalized device descriptor such as "cpu" or
  "cuda:0"

These types carry no backend resources. They are shared by the engine's
process-wide context and the host-facing device configuration calls.
"""

from __future__ import annotations

from enum import Enum
import re


class Mode(Enum):
    """
    Process-wide compute mode.

    Attributes
    ----------
    CPU : Mode
        Execute every engine call on the host processor.
    GPU : Mode
        Execute engine calls on the currently selected accelerator.
    """

    CPU = "cpu"
    GPU = "gpu"


class DeviceType(Enum):
    """Category of a device descriptor."""

    CPU = "cpu"
    CUDA = "cuda"


class Device:
    """
    Device descriptor parsed from ``"cpu"`` or ``"cuda:<index>"``.

    Descriptors compare by value, so a device list can be searched for a
    freshly parsed descriptor. `index` is None for the host processor.

    Raises
    ------
    ValueError
        If `device` is in neither form.
    """

    __slots__ = ("type", "index")

    _CUDA_PATTERN = re.compile(r"^cuda:(\d+)$")

    def __init__(self, device: str):
        if device == "cpu":
            self.type = DeviceType.CPU
            self.index = None
        else:
            m = self._CUDA_PATTERN.match(device)
            if not m:
                raise ValueError(
                    f"Invalid device '{device}'. Expected 'cpu' or 'cuda:<index>'"
                )
            self.type = DeviceType.CUDA
            self.index = int(m.group(1))

    def __str__(self) -> str:
        return "cpu" if self.type is DeviceType.CPU else f"cuda:{self.index}"

    def __repr__(self) -> str:
        return f"Device('{self}')"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return self.type is other.type and self.index == other.index

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        """Return True if this descriptor names the host processor."""
        return self.type is DeviceType.CPU

    def is_cuda(self) -> bool:
        """Return True if this descriptor names a CUDA accelerator."""
        return self.type is DeviceType.CUDA
