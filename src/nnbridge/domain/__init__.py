"""
Backend-agnostic contracts: phases, devices, engine protocols and the error
taxonomy shared by the engine and the boundary.
"""

from ._device import Device, DeviceType, Mode
from ._engine import IBlob, ILayer, INet, ISolver
from ._errors import (
    ArrayValidationError,
    BindingError,
    ConfigurationError,
    EngineError,
    FileAccessError,
    NativeError,
)
from ._phase import Phase, TEST, TRAIN

__all__ = [
    "ArrayValidationError",
    "BindingError",
    "ConfigurationError",
    "Device",
    "DeviceType",
    "EngineError",
    "FileAccessError",
    "IBlob",
    "ILayer",
    "INet",
    "ISolver",
    "Mode",
    "NativeError",
    "Phase",
    "TEST",
    "TRAIN",
]
