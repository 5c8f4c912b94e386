"""
Host-facing boundary over the engine.

Everything a host program touches lives here: the `Net`, `Blob`, `Layer`
and `Solver` handles, the sequence wrappers, and the device configuration
calls. Each entry point validates its inputs, runs holding the host lock,
releases it around long-running engine work, and reports engine failures
as `NativeError`.
"""

from ._gil import HOST_LOCK, HostLock, allow_threads, host_call
from ._errors import translate_errors
from ._validation import check_contiguous_array, check_file
from ._ndarray import BlobBuffer, export_blob_array
from ._lifetime import Custodian
from ._containers import (
    BoolVec,
    DtypeVec,
    IntTpVec,
    IntVec,
    StringVec,
    TypedVec,
)
from ._blob import Blob, BlobVec, RawBlobVec
from ._layer import Layer, LayerVec
from ._net import Net, NetVec
from ._solver import (
    AdaDeltaSolver,
    AdaGradSolver,
    AdamSolver,
    NesterovSolver,
    RMSPropSolver,
    SGDSolver,
    Solver,
    get_solver,
    get_solver_from_file,
)
from ._devices import (
    enumerate_devices,
    layer_type_list,
    select_device,
    set_device,
    set_devices,
    set_mode_cpu,
    set_mode_gpu,
)

__all__ = [
    "HOST_LOCK",
    HostLock.__name__,
    allow_threads.__name__,
    host_call.__name__,
    translate_errors.__name__,
    check_contiguous_array.__name__,
    check_file.__name__,
    BlobBuffer.__name__,
    export_blob_array.__name__,
    Custodian.__name__,
    TypedVec.__name__,
    BoolVec.__name__,
    DtypeVec.__name__,
    IntTpVec.__name__,
    IntVec.__name__,
    StringVec.__name__,
    Blob.__name__,
    BlobVec.__name__,
    RawBlobVec.__name__,
    Layer.__name__,
    LayerVec.__name__,
    Net.__name__,
    NetVec.__name__,
    Solver.__name__,
    SGDSolver.__name__,
    NesterovSolver.__name__,
    AdaGradSolver.__name__,
    RMSPropSolver.__name__,
    AdaDeltaSolver.__name__,
    AdamSolver.__name__,
    get_solver.__name__,
    get_solver_from_file.__name__,
    enumerate_devices.__name__,
    layer_type_list.__name__,
    select_device.__name__,
    set_device.__name__,
    set_devices.__name__,
    set_mode_cpu.__name__,
    set_mode_gpu.__name__,
]
