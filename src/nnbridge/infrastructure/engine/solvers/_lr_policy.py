"""
Learning-rate schedules.

Each policy maps the solver's hyperparameters and current iteration to the
learning rate for that iteration:

- ``fixed``:     base_lr
- ``step``:      base_lr * gamma ^ floor(iter / stepsize)
- ``exp``:       base_lr * gamma ^ iter
- ``inv``:       base_lr * (1 + gamma * iter) ^ (-power)
- ``multistep``: like ``step`` but the steps happen at each `stepvalue`
- ``poly``:      base_lr * (1 - iter / max_iter) ^ power
- ``sigmoid``:   base_lr / (1 + exp(-gamma * (iter - stepsize)))

``multistep`` keeps its position in `SolverState.current_step`, which is
part of the solver's snapshot.
"""

from __future__ import annotations

import math
from typing import Callable, Dict

from ....domain._errors import ConfigurationError
from ._param import SolverParameter


class SolverState:
    """Mutable schedule position shared by the solver and its snapshots."""

    def __init__(self) -> None:
        self.iter = 0
        self.current_step = 0


def _fixed(p: SolverParameter, s: SolverState) -> float:
    return p.base_lr


def _step(p: SolverParameter, s: SolverState) -> float:
    if p.stepsize <= 0:
        raise ConfigurationError("lr_policy 'step' requires stepsize > 0")
    s.current_step = s.iter // p.stepsize
    return p.base_lr * math.pow(p.gamma, s.current_step)


def _exp(p: SolverParameter, s: SolverState) -> float:
    return p.base_lr * math.pow(p.gamma, s.iter)


def _inv(p: SolverParameter, s: SolverState) -> float:
    return p.base_lr * math.pow(1.0 + p.gamma * s.iter, -p.power)


def _multistep(p: SolverParameter, s: SolverState) -> float:
    while s.current_step < len(p.stepvalue) and s.iter >= p.stepvalue[s.current_step]:
        s.current_step += 1
    return p.base_lr * math.pow(p.gamma, s.current_step)


def _poly(p: SolverParameter, s: SolverState) -> float:
    if p.max_iter <= 0:
        raise ConfigurationError("lr_policy 'poly' requires max_iter > 0")
    return p.base_lr * math.pow(1.0 - float(s.iter) / p.max_iter, p.power)


def _sigmoid(p: SolverParameter, s: SolverState) -> float:
    return p.base_lr * (1.0 / (1.0 + math.exp(-p.gamma * (s.iter - p.stepsize))))


LR_POLICIES: Dict[str, Callable[[SolverParameter, SolverState], float]] = {
    "fixed": _fixed,
    "step": _step,
    "exp": _exp,
    "inv": _inv,
    "multistep": _multistep,
    "poly": _poly,
    "sigmoid": _sigmoid,
}


def get_learning_rate(param: SolverParameter, state: SolverState) -> float:
    try:
        policy = LR_POLICIES[param.lr_policy]
    except KeyError:
        raise ConfigurationError(
            f"Unknown learning rate policy: {param.lr_policy} "
            f"(known: {', '.join(sorted(LR_POLICIES))})"
        ) from None
    return policy(param, state)
