"""
Solver base class and the name-keyed solver registry.

A solver owns one training network (plus optional test networks), a
`SolverParameter`, an iteration counter and per-parameter history buffers.
Each registered variant implements a single update rule,
`compute_update_value`, which rewrites a parameter's `diff` into the step
that `Net.update()` subtracts from its `data`.

Iteration
---------
For each iteration `step()`:

1. runs the test networks when `test_interval` is due,
2. clears parameter gradients and runs forward + backward,
3. folds the loss into the smoothed loss (window `average_loss`),
4. applies the update: learning rate from the policy, gradient clipping,
   weight decay, then the variant's rule,
5. advances `iter` and snapshots when `snapshot` is due.

Snapshots
---------
`snapshot()` writes `<prefix>_iter_<N>.caffemodel` (network weights) and
`<prefix>_iter_<N>.solverstate` (iteration, schedule position, weights file
name, history buffers), both as binary array archives. `restore()` reads a
`.solverstate` back.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, ClassVar, Deque, Dict, List, Optional, Type, TypeVar

import numpy as np

from ....domain._errors import ConfigurationError, EngineError
from ....domain._phase import Phase
from .._io import read_arrays, write_arrays
from .._net import Net
from ._lr_policy import LR_POLICIES, SolverState, get_learning_rate
from ._param import SnapshotFormat, SolverParameter

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=Type["Solver"])


class Solver:
    """
    Base class of every solver variant.

    Parameters
    ----------
    param : SolverParameter
        Configuration. The solver keeps its own copy.

    Raises
    ------
    ConfigurationError
        If the configuration is inconsistent (no network, unknown policy or
        regularization type, or a variant-specific constraint fails).
    """

    type: ClassVar[str] = ""
    # number of history buffers kept per learnable parameter
    history_sets: ClassVar[int] = 1

    def __init__(self, param: SolverParameter) -> None:
        self._param = param.copy()
        self._param.type = self.type
        self._check_param(self._param)
        if self._param.random_seed >= 0:
            np.random.seed(self._param.random_seed)

        self._state = SolverState()
        self._net = self._init_train_net()
        self._test_nets = self._init_test_nets()
        self._losses: Deque[float] = deque(maxlen=max(1, self._param.average_loss))
        self._smoothed_loss = 0.0
        self.last_test_scores: List[Dict[str, float]] = []

        n = len(self._net.learnable_params)
        self.history: List[np.ndarray] = [
            np.zeros_like(self._net.learnable_params[i % n].data)
            for i in range(n * self.history_sets)
        ]
        logger.info(
            "Created %s solver (%d learnable blob(s), %d test net(s))",
            self.type,
            n,
            len(self._test_nets),
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def _check_param(self, param: SolverParameter) -> None:
        if param.lr_policy not in LR_POLICIES:
            raise ConfigurationError(f"Unknown learning rate policy: {param.lr_policy}")
        if param.regularization_type not in ("L1", "L2"):
            raise ConfigurationError(
                f"Unknown regularization type: {param.regularization_type}"
            )
        if param.average_loss < 1:
            raise ConfigurationError("average_loss should be non-negative and non-zero")
        self.check_variant_param(param)

    def check_variant_param(self, param: SolverParameter) -> None:
        """Hook for variant-specific configuration constraints."""

    def _init_train_net(self) -> Net:
        source = self._param.train_net or self._param.net
        if not source:
            raise ConfigurationError("Solver configuration must specify net or train_net")
        logger.info("Creating training net from %s", source)
        return Net.from_file(source, Phase.TRAIN)

    def _init_test_nets(self) -> List[Net]:
        p = self._param
        if p.test_net:
            sources = list(p.test_net)
        elif p.net and p.test_iter:
            sources = [p.net] * len(p.test_iter)
        else:
            sources = []
        if len(sources) != len(p.test_iter):
            raise ConfigurationError(
                f"test_iter must be specified for each test network "
                f"({len(p.test_iter)} vs. {len(sources)})"
            )
        return [Net.from_file(src, Phase.TEST) for src in sources]

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def net(self) -> Net:
        return self._net

    @property
    def test_nets(self) -> List[Net]:
        return self._test_nets

    @property
    def iter(self) -> int:
        return self._state.iter

    @property
    def max_iter(self) -> int:
        return self._param.max_iter

    @property
    def smoothed_loss(self) -> float:
        return self._smoothed_loss

    def get_param(self) -> SolverParameter:
        return self._param.copy()

    def update_param(self, param: SolverParameter) -> None:
        """Replace the hyperparameters. The variant and networks stay fixed."""
        new = param.copy()
        new.type = self.type
        self._check_param(new)
        self._param = new
        self._losses = deque(self._losses, maxlen=max(1, new.average_loss))

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------
    def step(self, iters: int) -> float:
        iters = int(iters)
        if iters < 0:
            raise EngineError(f"Cannot step a negative number of iterations ({iters})")
        p = self._param
        stop_iter = self._state.iter + iters
        while self._state.iter < stop_iter:
            if (
                p.test_interval > 0
                and self._state.iter % p.test_interval == 0
                and (self._state.iter > 0 or p.test_initialization)
            ):
                self.test_all()

            self._net.clear_param_diffs()
            loss = self._net.forward_backward()
            self._update_smoothed_loss(loss)
            if p.display > 0 and self._state.iter % p.display == 0:
                logger.info(
                    "Iteration %d, loss = %g", self._state.iter, self._smoothed_loss
                )
            self.apply_update()
            self._state.iter += 1

            if p.snapshot > 0 and self._state.iter % p.snapshot == 0:
                self.snapshot()
        return self._smoothed_loss

    def solve(self, resume_file: Optional[str] = None) -> None:
        logger.info("Solving %s", self._net.name)
        if resume_file:
            logger.info("Restoring previous solver status from %s", resume_file)
            self.restore(resume_file)
        p = self._param
        remaining = p.max_iter - self._state.iter
        if remaining > 0:
            self.step(remaining)
        if p.snapshot_after_train and (
            p.snapshot <= 0 or self._state.iter % p.snapshot != 0
        ):
            self.snapshot()
        if p.display > 0 and self._state.iter % p.display == 0:
            logger.info(
                "Iteration %d, loss = %g", self._state.iter, self._smoothed_loss
            )
        if p.test_interval > 0 and self._state.iter % p.test_interval == 0:
            self.test_all()
        logger.info("Optimization Done.")

    def _update_smoothed_loss(self, loss: float) -> None:
        self._losses.append(float(loss))
        self._smoothed_loss = sum(self._losses) / len(self._losses)

    def apply_update(self) -> None:
        rate = get_learning_rate(self._param, self._state)
        if self._param.display > 0 and self._state.iter % self._param.display == 0:
            logger.info("Iteration %d, lr = %g", self._state.iter, rate)
        self._clip_gradients()
        for i in range(len(self._net.learnable_params)):
            self._regularize(i)
            self.compute_update_value(i, rate)
        self._net.update()

    def _clip_gradients(self) -> None:
        threshold = self._param.clip_gradients
        if threshold < 0:
            return
        params = self._net.learnable_params
        norm = float(np.sqrt(sum(float(np.sum(p.diff.astype(np.float64) ** 2)) for p in params)))
        if norm > threshold:
            scale = threshold / norm
            logger.info(
                "Gradient clipping: scaling down gradients (L2 norm %g > %g) by scale factor %g",
                norm,
                threshold,
                scale,
            )
            for p in params:
                p.diff[...] *= scale

    def _regularize(self, param_id: int) -> None:
        blob = self._net.learnable_params[param_id]
        local_decay = self._param.weight_decay * self._net.params_weight_decay[param_id]
        if not local_decay:
            return
        if self._param.regularization_type == "L2":
            blob.diff[...] += local_decay * blob.data
        else:
            blob.diff[...] += local_decay * np.sign(blob.data)

    def local_rate(self, param_id: int, rate: float) -> float:
        return rate * self._net.params_lr[param_id]

    def compute_update_value(self, param_id: int, rate: float) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Testing
    # ------------------------------------------------------------------
    def test_all(self) -> List[Dict[str, float]]:
        self.last_test_scores = [self.test(i) for i in range(len(self._test_nets))]
        return self.last_test_scores

    def test(self, test_net_id: int) -> Dict[str, float]:
        logger.info("Iteration %d, Testing net (#%d)", self._state.iter, test_net_id)
        test_net = self._test_nets[test_net_id]
        test_net.share_trained_layers_with(self._net)
        iters = self._param.test_iter[test_net_id]
        totals: Dict[str, float] = {}
        for _ in range(iters):
            test_net.forward()
            for idx in test_net.output_blob_indices:
                name = test_net.blob_names[idx]
                value = float(np.mean(test_net.blobs[idx].data, dtype=np.float64))
                totals[name] = totals.get(name, 0.0) + value
        scores = {k: v / max(1, iters) for k, v in totals.items()}
        for k, (name, value) in enumerate(scores.items()):
            logger.info("    Test net output #%d: %s = %g", k, name, value)
        return scores

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def snapshot(self) -> List[str]:
        p = self._param
        if p.snapshot_format is SnapshotFormat.HDF5:
            raise EngineError("HDF5 snapshot format is not supported by this engine")
        if not p.snapshot_prefix:
            raise EngineError("snapshot_prefix must be set to take a snapshot")
        base = f"{p.snapshot_prefix}_iter_{self._state.iter}"
        model_file = base + ".caffemodel"
        state_file = base + ".solverstate"

        logger.info("Snapshotting to binary proto file %s", model_file)
        self._net.save(model_file)

        arrays = {
            "iter": np.array(self._state.iter, dtype=np.int64),
            "current_step": np.array(self._state.current_step, dtype=np.int64),
            "learned_net": np.array(model_file),
        }
        for i, h in enumerate(self.history):
            arrays[f"history/{i}"] = h
        logger.info("Snapshotting solver state to binary proto file %s", state_file)
        write_arrays(state_file, arrays)
        return [model_file, state_file]

    def restore(self, state_file: str) -> None:
        arrays = read_arrays(state_file)
        try:
            iteration = int(arrays["iter"])
            current_step = int(arrays["current_step"])
            learned_net = str(arrays["learned_net"])
        except KeyError as e:
            raise EngineError(f"{state_file} is missing solver state entry {e}") from None

        history = [arrays.get(f"history/{i}") for i in range(len(self.history))]
        if any(h is None for h in history) or len(arrays) - 3 != len(self.history):
            raise EngineError(
                f"Incorrect length of history blobs in {state_file} "
                f"(expected {len(self.history)})"
            )
        for i, (dst, src) in enumerate(zip(self.history, history)):
            if dst.shape != src.shape:
                raise EngineError(
                    f"History blob {i} shape mismatch ({src.shape} vs. {dst.shape})"
                )
        if learned_net:
            self._net.copy_trained_layers_from(learned_net)
        for dst, src in zip(self.history, history):
            dst[...] = src
        self._state.iter = iteration
        self._state.current_step = current_step
        logger.info("Restored solver state from %s at iteration %d", state_file, iteration)


class SolverRegistry:
    """
    Name-keyed registry of solver variants.

    Usage
    -----
        @SolverRegistry.register_solver
        class SGDSolver(Solver):
            type = "SGD"

        solver = SolverRegistry.create_solver(param)   # by param.type
    """

    SOLVERS: ClassVar[Dict[str, Type[Solver]]] = {}

    @classmethod
    def register_solver(cls, solver_cls: S) -> S:
        name = solver_cls.type
        if not name:
            raise ValueError(f"{solver_cls.__name__} does not define a solver type")
        if name in cls.SOLVERS:
            raise ValueError(f"Solver type already registered: {name!r}")
        cls.SOLVERS[name] = solver_cls
        return solver_cls

    @classmethod
    def get(cls, name: str) -> Type[Solver]:
        try:
            return cls.SOLVERS[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown solver type: {name} (known types: "
                f"{', '.join(cls.solver_type_list())})"
            ) from None

    @classmethod
    def create_solver(cls, param: SolverParameter) -> Solver:
        return cls.get(param.type)(param)

    @classmethod
    def solver_type_list(cls) -> List[str]:
        return sorted(cls.SOLVERS)
