"""
Solver variants.

Importing this package registers every built-in variant with
`SolverRegistry`, so `SolverRegistry.create_solver(param)` can dispatch on
`param.type`:

- ``SGD``, ``Nesterov``                      (momentum family)
- ``AdaGrad``, ``RMSProp``, ``AdaDelta``, ``Adam``  (adaptive family)
"""

from ._param import SnapshotFormat, SolverParameter
from ._lr_policy import LR_POLICIES, SolverState, get_learning_rate
from ._base import Solver, SolverRegistry
from ._sgd import NesterovSolver, SGDSolver
from ._adaptive import AdaDeltaSolver, AdaGradSolver, AdamSolver, RMSPropSolver

__all__ = [
    SnapshotFormat.__name__,
    SolverParameter.__name__,
    SolverState.__name__,
    get_learning_rate.__name__,
    "LR_POLICIES",
    Solver.__name__,
    SolverRegistry.__name__,
    SGDSolver.__name__,
    NesterovSolver.__name__,
    AdaGradSolver.__name__,
    RMSPropSolver.__name__,
    AdaDeltaSolver.__name__,
    AdamSolver.__name__,
]
