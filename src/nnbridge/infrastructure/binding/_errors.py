"""
Translation of engine failures into host errors.
"""

from __future__ import annotations

import logging
import traceback
from functools import wraps
from typing import Callable

from typing_extensions import ParamSpec, TypeVar

from ...domain._errors import BindingError, EngineError, NativeError
from .. import engine as _engine_package

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

_ENGINE_PREFIX = _engine_package.__name__ + "."

# numeric and lookup failures surfacing from engine computation
_ENGINE_FAULTS = (ArithmeticError, LookupError, ValueError)


def _raised_in_engine(exc: BaseException) -> bool:
    """Return True if any frame of `exc`'s traceback runs engine code."""
    for frame, _ in traceback.walk_tb(exc.__traceback__):
        if frame.f_globals.get("__name__", "").startswith(_ENGINE_PREFIX):
            return True
    return False


def translate_errors(func: Callable[P, R]) -> Callable[P, R]:
    """
    Re-raise engine failures escaping `func` as `NativeError`.

    An engine failure is an `EngineError`, or a numeric, lookup or value
    error raised while engine code was running. An `EngineError` message
    is kept verbatim; other failures are prefixed with their exception
    type name. The original exception is chained as `__cause__`.

    Errors raised by the boundary itself (`BindingError` subclasses), host
    argument errors such as `TypeError`, and value or lookup errors raised
    by boundary code alone pass through untouched. Nothing is retried.
    """

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return func(*args, **kwargs)
        except EngineError as e:
            logger.debug("Engine error in %s: %s", func.__qualname__, e)
            raise NativeError(str(e)) from e
        except BindingError:
            raise
        except _ENGINE_FAULTS as e:
            if not _raised_in_engine(e):
                raise
            logger.debug(
                "Engine %s in %s: %s", type(e).__name__, func.__qualname__, e
            )
            raise NativeError(f"{type(e).__name__}: {e}") from e

    return wrapper
