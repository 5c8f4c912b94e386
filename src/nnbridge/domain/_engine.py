"""
Engine-facing contracts.

This module defines the protocols the boundary layer programs against. Any
engine (the bundled CPU reference engine, or a compiled library wrapped via
ctypes) can sit behind the boundary as long as its objects satisfy these
structural contracts.

Notes
-----
- Domain contracts are backend-agnostic and must not depend on NumPy.
- Raw storage is exchanged as integer addresses, the same way a C API hands
  out `float*`. The boundary, not the engine, decides how host code sees
  that memory.
- Engine failures are reported by raising `EngineError`.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from ._phase import Phase


@runtime_checkable
class IBlob(Protocol):
    """
    Dense float32 tensor with a `data` buffer and a `diff` buffer of
    identical shape.
    """

    @property
    def shape(self) -> tuple[int, ...]: ...

    @property
    def count(self) -> int: ...

    @property
    def num_axes(self) -> int: ...

    def reshape(self, shape: Sequence[int]) -> None:
        """
        Resize the blob. May reallocate; previously returned addresses are
        only guaranteed valid while the storage they point into is pinned.
        """
        ...

    def mutable_cpu_data(self) -> int:
        """Return the address of the first `data` element."""
        ...

    def mutable_cpu_diff(self) -> int:
        """Return the address of the first `diff` element."""
        ...

    def data_storage(self) -> Any:
        """Return the object that owns the memory behind `data`."""
        ...

    def diff_storage(self) -> Any:
        """Return the object that owns the memory behind `diff`."""
        ...


@runtime_checkable
class ILayer(Protocol):
    """
    One processing stage of a network, owning zero or more learnable blobs.
    """

    @property
    def name(self) -> str: ...

    @property
    def type(self) -> str: ...

    @property
    def blobs(self) -> list: ...

    def setup(self, bottom: list, top: list) -> None: ...

    def reshape(self, bottom: list, top: list) -> None: ...


@runtime_checkable
class INet(Protocol):
    """
    Ordered sequence of layers plus a name-indexed collection of blobs.
    """

    @property
    def phase(self) -> Phase: ...

    @property
    def layers(self) -> list: ...

    @property
    def blobs(self) -> list: ...

    @property
    def layer_names(self) -> list[str]: ...

    @property
    def blob_names(self) -> list[str]: ...

    def bottom_ids(self, layer_id: int) -> list[int]: ...

    def top_ids(self, layer_id: int) -> list[int]: ...

    def forward_from_to(self, start: int, end: int) -> float: ...

    def backward_from_to(self, start: int, end: int) -> None: ...

    def reshape(self) -> None: ...

    def copy_trained_layers_from(self, filename: str) -> None: ...

    def share_trained_layers_with(self, other: "INet") -> None: ...

    def save(self, filename: str) -> None: ...


@runtime_checkable
class ISolver(Protocol):
    """
    Drives iterative weight updates over one training network.
    """

    @property
    def iter(self) -> int: ...

    @property
    def max_iter(self) -> int: ...

    @property
    def type(self) -> str: ...

    @property
    def net(self) -> INet: ...

    @property
    def test_nets(self) -> list: ...

    def get_param(self) -> Any:
        """Return a copy of the solver's hyperparameters."""
        ...

    def update_param(self, param: Any) -> None:
        """Replace the solver's hyperparameters, keeping its variant."""
        ...

    def step(self, iters: int) -> float: ...

    def solve(self, resume_file: Optional[str] = None) -> None: ...

    def restore(self, state_file: str) -> None: ...

    def snapshot(self) -> list[str]: ...
