"""
Solvers with per-element adaptive step sizes.

All four keep squared-gradient statistics in `history`; AdaDelta and Adam
keep a second buffer per parameter, stored after the first `n` entries.
"""

from __future__ import annotations

import math

import numpy as np

from ....domain._errors import ConfigurationError
from ._base import Solver, SolverRegistry
from ._param import SolverParameter


@SolverRegistry.register_solver
class AdaGradSolver(Solver):
    """
    AdaGrad.

        h_i += g_i ** 2
        step_i = r * g_i / (sqrt(h_i) + delta)
    """

    type = "AdaGrad"

    def check_variant_param(self, param: SolverParameter) -> None:
        if param.momentum != 0:
            raise ConfigurationError("Momentum cannot be used with AdaGrad.")

    def compute_update_value(self, param_id: int, rate: float) -> None:
        blob = self.net.learnable_params[param_id]
        h = self.history[param_id]
        g = blob.diff
        h += g * g
        blob.diff[...] = (
            self.local_rate(param_id, rate) * g / (np.sqrt(h) + self._param.delta)
        )


@SolverRegistry.register_solver
class RMSPropSolver(Solver):
    """
    RMSProp.

        h_i = rms_decay * h_i + (1 - rms_decay) * g_i ** 2
        step_i = r * g_i / (sqrt(h_i) + delta)
    """

    type = "RMSProp"

    def check_variant_param(self, param: SolverParameter) -> None:
        if param.momentum != 0:
            raise ConfigurationError(
                "Momentum cannot be used with RMSProp."
            )
        if not 0.0 <= param.rms_decay < 1.0:
            raise ConfigurationError("rms_decay should lie between 0 and 1.")

    def compute_update_value(self, param_id: int, rate: float) -> None:
        blob = self.net.learnable_params[param_id]
        h = self.history[param_id]
        decay = self._param.rms_decay
        g = blob.diff
        h *= decay
        h += (1.0 - decay) * g * g
        blob.diff[...] = (
            self.local_rate(param_id, rate) * g / (np.sqrt(h) + self._param.delta)
        )


@SolverRegistry.register_solver
class AdaDeltaSolver(Solver):
    """
    AdaDelta, with `momentum` as the decay of both running averages.

        h_i  = m * h_i + (1 - m) * g_i ** 2
        u_i  = g_i * sqrt((h2_i + delta) / (h_i + delta))
        h2_i = m * h2_i + (1 - m) * u_i ** 2
        step_i = r * u_i
    """

    type = "AdaDelta"
    history_sets = 2

    def compute_update_value(self, param_id: int, rate: float) -> None:
        blob = self.net.learnable_params[param_id]
        n = len(self.net.learnable_params)
        h = self.history[param_id]
        h2 = self.history[param_id + n]
        m = self._param.momentum
        delta = self._param.delta
        g = blob.diff

        h *= m
        h += (1.0 - m) * g * g
        u = g * np.sqrt((h2 + delta) / (h + delta))
        h2 *= m
        h2 += (1.0 - m) * u * u
        blob.diff[...] = self.local_rate(param_id, rate) * u


@SolverRegistry.register_solver
class AdamSolver(Solver):
    """
    Adam, with `momentum` as beta1, `momentum2` as beta2 and `delta` as eps.

        m_i = b1 * m_i + (1 - b1) * g_i
        v_i = b2 * v_i + (1 - b2) * g_i ** 2
        step_i = r * sqrt(1 - b2^t) / (1 - b1^t) * m_i / (sqrt(v_i) + eps)

    where `t` is the 1-based iteration.
    """

    type = "Adam"
    history_sets = 2

    def compute_update_value(self, param_id: int, rate: float) -> None:
        blob = self.net.learnable_params[param_id]
        n = len(self.net.learnable_params)
        m = self.history[param_id]
        v = self.history[param_id + n]
        b1 = self._param.momentum
        b2 = self._param.momentum2
        g = blob.diff

        m *= b1
        m += (1.0 - b1) * g
        v *= b2
        v += (1.0 - b2) * g * g

        t = self.iter + 1
        correction = math.sqrt(1.0 - math.pow(b2, t)) / (1.0 - math.pow(b1, t))
        blob.diff[...] = (
            self.local_rate(param_id, rate)
            * correction
            * m
            / (np.sqrt(v) + self._param.delta)
        )
