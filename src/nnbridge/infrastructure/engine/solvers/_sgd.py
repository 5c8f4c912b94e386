"""
Momentum-based solvers: plain stochastic gradient descent and Nesterov's
accelerated gradient.
"""

from __future__ import annotations

from ._base import Solver, SolverRegistry


@SolverRegistry.register_solver
class SGDSolver(Solver):
    """
    Stochastic gradient descent with momentum.

    Update rule for parameter `i` with local rate `r`:

        h_i = r * g_i + momentum * h_i
        step_i = h_i
    """

    type = "SGD"

    def compute_update_value(self, param_id: int, rate: float) -> None:
        blob = self.net.learnable_params[param_id]
        h = self.history[param_id]
        h *= self._param.momentum
        h += self.local_rate(param_id, rate) * blob.diff
        blob.diff[...] = h


@SolverRegistry.register_solver
class NesterovSolver(Solver):
    """
    Nesterov's accelerated gradient.

        prev = h_i
        h_i = momentum * h_i + r * g_i
        step_i = (1 + momentum) * h_i - momentum * prev
    """

    type = "Nesterov"

    def compute_update_value(self, param_id: int, rate: float) -> None:
        blob = self.net.learnable_params[param_id]
        h = self.history[param_id]
        momentum = self._param.momentum
        prev = h.copy()
        h *= momentum
        h += self.local_rate(param_id, rate) * blob.diff
        blob.diff[...] = (1.0 + momentum) * h - momentum * prev
