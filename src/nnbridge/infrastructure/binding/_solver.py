"""
Host handles for solvers.

`Solver(config_path)` builds whichever variant the configuration's `type`
names. The per-variant classes (`SGDSolver`, `AdamSolver`, ...) build their
own variant regardless of `type`. `get_solver(param)` and
`get_solver_from_file(path)` return an instance of the matching variant
class.

The solver's training network and test networks are wrapped once and the
same handles are returned on every access, so custodianship recorded on
`solver.net` (for example by `set_input_arrays`) lasts as long as the solver.
"""

from __future__ import annotations

import logging
import os
from typing import Any, ClassVar, Dict, List, Optional, Type, Union

from ...domain._engine import ISolver
from ...domain._errors import ConfigurationError
from ..engine.solvers import SolverParameter, SolverRegistry
from ._errors import translate_errors
from ._gil import allow_threads, host_call
from ._net import Net, NetVec
from ._validation import check_file

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


class Solver:
    """
    Host handle to an engine solver.

    Parameters
    ----------
    config : str or PathLike
        Solver configuration file.
    """

    __slots__ = ("_solver", "_net_handle", "_test_net_handles", "__weakref__")

    variant: ClassVar[Optional[str]] = None

    @host_call
    @translate_errors
    def __init__(self, config: PathLike, **kwargs: Any) -> None:
        if kwargs:
            raise ConfigurationError(
                f"{type(self).__name__} got unexpected keyword argument(s): "
                f"{', '.join(sorted(kwargs))}"
            )
        param = SolverParameter.from_file(check_file(config))
        if self.variant is not None:
            param.type = self.variant
        self._build(param)

    @classmethod
    def _from_param(cls, param: SolverParameter) -> "Solver":
        handle = cls.__new__(cls)
        handle._build(param)
        return handle

    def _build(self, param: SolverParameter) -> None:
        self._solver: ISolver = SolverRegistry.create_solver(param)
        self._net_handle = Net._wrap(self._solver.net)
        self._test_net_handles: List[Net] = [Net._wrap(n) for n in self._solver.test_nets]

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def net(self) -> Net:
        return self._net_handle

    @property
    def test_nets(self) -> NetVec:
        return NetVec._view(self._test_net_handles, owner=self)  # type: ignore[return-value]

    @property
    def iter(self) -> int:
        return self._solver.iter

    @property
    def max_iter(self) -> int:
        return self._solver.max_iter

    @property
    def type(self) -> str:
        return self._solver.type

    @property
    def solver_params(self) -> SolverParameter:
        """A copy of the hyperparameters; assign to replace them."""
        return self._solver.get_param()

    @solver_params.setter
    @host_call
    @translate_errors
    def solver_params(self, param: SolverParameter) -> None:
        if not isinstance(param, SolverParameter):
            raise TypeError(
                f"solver_params must be a SolverParameter, got {type(param).__name__}"
            )
        self._solver.update_param(param)

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------
    @host_call
    @translate_errors
    def step(self, iters: int) -> float:
        """Run `iters` iterations and return the smoothed training loss."""
        with allow_threads():
            loss = self._solver.step(int(iters))
        return float(loss)

    @host_call
    @translate_errors
    def solve(self, resume_file: Optional[PathLike] = None) -> None:
        """Train until `max_iter`, optionally resuming from a `.solverstate`."""
        resume = check_file(resume_file) if resume_file is not None else None
        with allow_threads():
            self._solver.solve(resume)

    @host_call
    @translate_errors
    def restore(self, state_file: PathLike) -> None:
        self._solver.restore(check_file(state_file))

    @host_call
    @translate_errors
    def snapshot(self) -> List[str]:
        """Write weights and solver state; return the two file names."""
        return self._solver.snapshot()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(type={self.type!r}, iter={self.iter})"


class SGDSolver(Solver):
    __slots__ = ()
    variant = "SGD"


class NesterovSolver(Solver):
    __slots__ = ()
    variant = "Nesterov"


class AdaGradSolver(Solver):
    __slots__ = ()
    variant = "AdaGrad"


class RMSPropSolver(Solver):
    __slots__ = ()
    variant = "RMSProp"


class AdaDeltaSolver(Solver):
    __slots__ = ()
    variant = "AdaDelta"


class AdamSolver(Solver):
    __slots__ = ()
    variant = "Adam"


_VARIANT_CLASSES: Dict[str, Type[Solver]] = {
    cls.variant: cls
    for cls in (
        SGDSolver,
        NesterovSolver,
        AdaGradSolver,
        RMSPropSolver,
        AdaDeltaSolver,
        AdamSolver,
    )
    if cls.variant is not None
}


@host_call
@translate_errors
def get_solver(param: SolverParameter) -> Solver:
    """Build the solver variant named by `param.type`."""
    if not isinstance(param, SolverParameter):
        raise TypeError(f"get_solver expects a SolverParameter, got {type(param).__name__}")
    SolverRegistry.get(param.type)
    handle = _VARIANT_CLASSES.get(param.type, Solver)._from_param(param)
    logger.debug("Built %s solver", param.type)
    return handle


@host_call
@translate_errors
def get_solver_from_file(config: PathLike) -> Solver:
    """Read a solver configuration file and build the variant it names."""
    return get_solver(SolverParameter.from_file(check_file(config)))
