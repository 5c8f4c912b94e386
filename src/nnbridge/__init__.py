"""
nnbridge: a host boundary over a neural-network engine.

Networks, blobs, layers and solvers are reached through handles that share
engine memory with NumPy without copying, keep that memory alive for as
long as any view of it is reachable, and release the host lock around long
engine calls.

Quick start
-----------
    import numpy as np
    import nnbridge

    nnbridge.set_mode_cpu()
    net = nnbridge.Net("train.json", nnbridge.TRAIN)
    net.set_input_arrays(data, labels)   # float32, C-contiguous
    loss = net.forward()

    solver = nnbridge.get_solver_from_file("solver.json")
    solver.step(100)
"""

from .domain import (
    ArrayValidationError,
    BindingError,
    ConfigurationError,
    Device,
    FileAccessError,
    Mode,
    NativeError,
    Phase,
    TEST,
    TRAIN,
)
from .infrastructure.engine.solvers import SnapshotFormat, SolverParameter
from .infrastructure.binding import (
    AdaDeltaSolver,
    AdaGradSolver,
    AdamSolver,
    Blob,
    BlobVec,
    BoolVec,
    DtypeVec,
    IntTpVec,
    IntVec,
    Layer,
    LayerVec,
    NesterovSolver,
    Net,
    NetVec,
    RMSPropSolver,
    RawBlobVec,
    SGDSolver,
    Solver,
    StringVec,
    enumerate_devices,
    get_solver,
    get_solver_from_file,
    layer_type_list,
    select_device,
    set_device,
    set_devices,
    set_mode_cpu,
    set_mode_gpu,
)

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "TRAIN",
    "TEST",
    Phase.__name__,
    Mode.__name__,
    Device.__name__,
    BindingError.__name__,
    FileAccessError.__name__,
    ArrayValidationError.__name__,
    ConfigurationError.__name__,
    NativeError.__name__,
    SolverParameter.__name__,
    SnapshotFormat.__name__,
    Net.__name__,
    Blob.__name__,
    Layer.__name__,
    Solver.__name__,
    SGDSolver.__name__,
    NesterovSolver.__name__,
    AdaGradSolver.__name__,
    RMSPropSolver.__name__,
    AdaDeltaSolver.__name__,
    AdamSolver.__name__,
    get_solver.__name__,
    get_solver_from_file.__name__,
    BlobVec.__name__,
    RawBlobVec.__name__,
    LayerVec.__name__,
    NetVec.__name__,
    StringVec.__name__,
    IntVec.__name__,
    IntTpVec.__name__,
    DtypeVec.__name__,
    BoolVec.__name__,
    set_mode_cpu.__name__,
    set_mode_gpu.__name__,
    set_device.__name__,
    set_devices.__name__,
    select_device.__name__,
    enumerate_devices.__name__,
    layer_type_list.__name__,
]
