"""
Reference CPU engine.

The engine is the native side of the nnbridge boundary: it owns tensor
storage, runs networks and solvers, and reports failures as `EngineError`.
It hands out raw addresses of its float32 buffers and reads borrowed host
memory through addresses, which is what the binding layer builds on.
"""

from ._context import EngineContext, get_context, reset_context
from ._blob import MAX_BLOB_AXES, Blob
from ._layers import Layer, LayerParameter, LayerRegistry
from ._memory_data import MemoryDataLayer
from ._net import Net
from .solvers import Solver, SolverParameter, SolverRegistry

__all__ = [
    EngineContext.__name__,
    get_context.__name__,
    reset_context.__name__,
    "MAX_BLOB_AXES",
    Blob.__name__,
    Layer.__name__,
    LayerParameter.__name__,
    LayerRegistry.__name__,
    MemoryDataLayer.__name__,
    Net.__name__,
    Solver.__name__,
    SolverParameter.__name__,
    SolverRegistry.__name__,
]
