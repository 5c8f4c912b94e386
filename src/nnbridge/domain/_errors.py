"""
Host-visible error taxonomy for the nnbridge boundary.

Every failure that crosses the boundary into host code is one of the
classes below. They share a common base, `BindingError`, so callers can
catch everything raised by the boundary in one clause, while each concrete
class also derives from the built-in exception a Python programmer would
expect for that kind of failure (e.g. `FileAccessError` is a
`FileNotFoundError`).

Taxonomy
--------
- `FileAccessError`: a path could not be opened; raised before any parse.
- `ArrayValidationError`: a host buffer failed the contiguity, dtype or
  shape checks; raised before any pointer is extracted.
- `ConfigurationError`: an unknown solver variant or layer type, a malformed
  definition document, or keyword arguments given to a positional-only
  variadic call.
- `NativeError`: any other engine failure, translated with its message.

None of these errors are retried by the boundary.
"""

from __future__ import annotations


class BindingError(Exception):
    """
    Base class of every error raised across the nnbridge boundary.
    """


class FileAccessError(BindingError, FileNotFoundError):
    """
    Raised when a path handed to the boundary cannot be opened for reading.

    Attributes
    ----------
    path : str
        The offending path.
    """

    def __init__(self, path: str) -> None:
        super().__init__(f"Could not open file {path}")
        self.path = path

    def __str__(self) -> str:
        return self.args[0]


class ArrayValidationError(BindingError, ValueError):
    """
    Raised when a host array is rejected before it reaches native memory.

    Attributes
    ----------
    name : str
        Human-readable name of the rejected array (e.g. "data array").
    dim : int | None
        Offending dimension index for shape mismatches, otherwise None.
    got : int | None
        Size of the offending dimension in the supplied array.
    expected : int | None
        Size the receiving layer expects for that dimension.
    """

    def __init__(
        self,
        message: str,
        *,
        name: str = "",
        dim: int | None = None,
        got: int | None = None,
        expected: int | None = None,
    ) -> None:
        super().__init__(message)
        self.name = name
        self.dim = dim
        self.got = got
        self.expected = expected


class ConfigurationError(BindingError, ValueError):
    """
    Raised for unusable configuration: unregistered solver variants, unknown
    layer types, malformed documents, or unsupported keyword arguments.
    """


class NativeError(BindingError, RuntimeError):
    """
    Raised when the engine reports a failure.

    The engine's message is preserved verbatim and the original exception is
    available as `__cause__`.
    """


class EngineError(RuntimeError):
    """
    Generic failure kind raised inside the engine.

    Engine code raises this; host code never sees it directly because the
    boundary translates it into `NativeError`.
    """
