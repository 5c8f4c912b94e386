"""
Process-wide device configuration calls.

These forward to the engine context. They are not transactional with
in-flight engine calls: switching devices while another thread is inside
`forward`, `backward`, `step` or `solve` races with that call, and callers
must fence device switches themselves.
"""

from __future__ import annotations

import logging
import numbers
from typing import Any, List

from ...domain._device import Device, Mode
from ...domain._errors import ConfigurationError
from ..engine._context import get_context
from ..engine._layers import LayerRegistry
from ._containers import StringVec
from ._errors import translate_errors
from ._gil import host_call

logger = logging.getLogger(__name__)


@host_call
@translate_errors
def set_mode_cpu() -> None:
    get_context().set_mode(Mode.CPU)


@host_call
@translate_errors
def set_mode_gpu() -> None:
    get_context().set_mode(Mode.GPU)


@host_call
@translate_errors
def set_device(device_id: int) -> None:
    get_context().set_device(device_id)


@host_call
@translate_errors
def set_devices(*device_ids: int, **kwargs: Any) -> None:
    """
    Select the devices the engine may use. Positional ids only; the first
    id becomes the default device.
    """
    if kwargs:
        raise ConfigurationError(
            f"set_devices takes device ids as positional arguments only, got "
            f"keyword argument(s) {', '.join(sorted(kwargs))}"
        )
    ids = []
    for d in device_ids:
        if isinstance(d, bool) or not isinstance(d, numbers.Integral):
            raise TypeError(f"Device ids must be integers, got {d!r}")
        ids.append(int(d))
    get_context().set_devices(ids)


@host_call
@translate_errors
def select_device(device_id: int, list_id: bool) -> None:
    get_context().select_device(device_id, bool(list_id))


@host_call
def enumerate_devices() -> List[Device]:
    """Return (and log) the devices visible to the engine."""
    ctx = get_context()
    devices = ctx.devices
    for i, device in enumerate(devices):
        logger.info(
            "Device id: %d, type: %s%s",
            i,
            device.type.value,
            " (default)" if device == ctx.default_device else "",
        )
    return devices


def layer_type_list() -> StringVec:
    """Names of every registered layer type."""
    return StringVec(LayerRegistry.layer_type_list())
