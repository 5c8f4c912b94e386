"""
Process-wide engine configuration: compute mode and device selection.

The engine keeps one `EngineContext` per process. It records the compute
mode, the devices visible to the engine, the subset of devices selected for
use, and the default device new networks are built on.

Lifecycle
---------
- The context is created lazily on first use with CPU mode and the host
  processor as the default device.
- It is mutated only through the device configuration calls. Writes are not
  synchronized: a device switch must not race with an in-flight engine call
  on another thread. Callers fence device switches themselves.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ...domain._device import Device, Mode
from ...domain._errors import EngineError

logger = logging.getLogger(__name__)


class EngineContext:
    """
    Mutable process-wide engine configuration.

    Parameters
    ----------
    devices : Sequence[Device], optional
        Devices visible to the engine, in enumeration order. Defaults to the
        host processor only; the reference engine ships no GPU kernels.
    """

    def __init__(self, devices: Optional[Sequence[Device]] = None) -> None:
        self._devices: list[Device] = list(devices or [Device("cpu")])
        if not self._devices:
            raise EngineError("Engine context needs at least one device")
        self._mode = Mode.CPU
        self._selected: list[int] = [0]
        self._default = 0

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def devices(self) -> list[Device]:
        return list(self._devices)

    @property
    def selected_ids(self) -> list[int]:
        return list(self._selected)

    @property
    def default_device(self) -> Device:
        return self._devices[self._default]

    def set_mode(self, mode: Mode) -> None:
        self._mode = Mode(mode)
        logger.info("Compute mode set to %s", self._mode.value)

    def _check_id(self, device_id: int) -> int:
        device_id = int(device_id)
        if not 0 <= device_id < len(self._devices):
            raise EngineError(
                f"Device id {device_id} out of range "
                f"({len(self._devices)} device(s) available)"
            )
        return device_id

    def set_device(self, device_id: int) -> None:
        """Select a single device and make it the default."""
        device_id = self._check_id(device_id)
        self._selected = [device_id]
        self._default = device_id
        logger.info("Device set to %s", self._devices[device_id])

    def set_devices(self, device_ids: Sequence[int]) -> None:
        """Select the devices the engine may use; the first becomes default."""
        ids = [self._check_id(i) for i in device_ids]
        if not ids:
            raise EngineError("set_devices requires at least one device id")
        self._selected = ids
        self._default = ids[0]
        logger.info(
            "Devices set to %s", ", ".join(str(self._devices[i]) for i in ids)
        )

    def select_device(self, device_id: int, list_id: bool) -> None:
        """
        Make a device the default.

        Parameters
        ----------
        device_id : int
            Either an absolute device id, or (when `list_id` is true) an index
            into the list previously given to `set_devices`.
        list_id : bool
            How to interpret `device_id`.
        """
        if list_id:
            if not 0 <= int(device_id) < len(self._selected):
                raise EngineError(
                    f"Device list index {device_id} out of range "
                    f"({len(self._selected)} device(s) selected)"
                )
            self._default = self._selected[int(device_id)]
        else:
            self._default = self._check_id(device_id)
        logger.info("Default device is now %s", self.default_device)

    def resolve_build_device(self) -> Device:
        """
        Return the device a new network should be built on.

        Raises
        ------
        EngineError
            If GPU mode is active but the default device is not a GPU.
        """
        device = self.default_device
        if self._mode is Mode.GPU and not device.is_cuda():
            raise EngineError(
                "GPU mode is active but no GPU device is selected "
                f"(default device is {device})"
            )
        return device


_CONTEXT: Optional[EngineContext] = None


def get_context() -> EngineContext:
    """Return the process-wide engine context, creating it on first use."""
    global _CONTEXT
    if _CONTEXT is None:
        _CONTEXT = EngineContext()
    return _CONTEXT


def reset_context(devices: Optional[Sequence[Device]] = None) -> EngineContext:
    """Replace the process-wide context with a fresh one."""
    global _CONTEXT
    _CONTEXT = EngineContext(devices)
    return _CONTEXT
