"""
Homogeneous sequence wrappers.

A `TypedVec` is a list-like container with a fixed element type. It either
owns its items, or is a *view* over a list that lives inside an engine
object (`TypedVec._view`). Views write through: assigning or appending to
`layer.blobs` changes the engine layer's own list. A view also keeps its
`owner` reachable, so an accessor result such as `net.layers` keeps the
network alive while the wrapper is in use.

Supported operations: `len`, indexing with negative indices and bounds
checking, slicing (returns a new, owning wrapper), item assignment with
type checking, `append`, `extend`, iteration and membership.

Element conversion is handled by two hooks:
- `_to_host(raw)`: storage item -> value handed to the caller,
- `_to_storage(value)`: caller value -> storage item; raises `TypeError`
  for values of the wrong type.
"""

from __future__ import annotations

import numbers
import operator
from collections.abc import Sequence
from typing import Any, ClassVar, Generic, Iterable, Iterator, List, Optional, TypeVar

import numpy as np

T = TypeVar("T")


class TypedVec(Sequence, Generic[T]):
    """Base class of every sequence wrapper."""

    item_name: ClassVar[str] = "object"

    def __init__(self, items: Iterable[Any] = ()) -> None:
        self._owner: Optional[object] = None
        self._items: List[Any] = [self._to_storage(v) for v in items]

    @classmethod
    def _view(cls, storage: List[Any], owner: Optional[object] = None) -> "TypedVec[T]":
        vec = cls.__new__(cls)
        vec._owner = owner
        vec._items = storage
        return vec

    # ------------------------------------------------------------------
    # Conversion hooks
    # ------------------------------------------------------------------
    def _to_host(self, raw: Any) -> T:
        return raw

    def _to_storage(self, value: Any) -> Any:
        return value

    def _type_error(self, value: Any) -> TypeError:
        return TypeError(
            f"{type(self).__name__} items must be {self.item_name}, "
            f"got {type(value).__name__}"
        )

    # ------------------------------------------------------------------
    # Sequence protocol
    # ------------------------------------------------------------------
    def _index(self, index: Any) -> int:
        i = operator.index(index)
        n = len(self._items)
        if i < 0:
            i += n
        if not 0 <= i < n:
            raise IndexError(f"{type(self).__name__} index {index} out of range")
        return i

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: Any) -> Any:
        if isinstance(index, slice):
            out = type(self).__new__(type(self))
            out.__dict__.update(self.__dict__)
            out._items = list(self._items[index])
            return out
        return self._to_host(self._items[self._index(index)])

    def __setitem__(self, index: Any, value: Any) -> None:
        if isinstance(index, slice):
            self._items[index] = [self._to_storage(v) for v in value]
            return
        self._items[self._index(index)] = self._to_storage(value)

    def __iter__(self) -> Iterator[T]:
        for raw in list(self._items):
            yield self._to_host(raw)

    def __contains__(self, value: object) -> bool:
        try:
            raw = self._to_storage(value)
        except TypeError:
            return False
        return any(item is raw or item == raw for item in self._items)

    def append(self, value: Any) -> None:
        self._items.append(self._to_storage(value))

    def extend(self, values: Iterable[Any]) -> None:
        converted = [self._to_storage(v) for v in values]
        self._items.extend(converted)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TypedVec):
            return list(self) == list(other)
        if isinstance(other, (list, tuple)):
            return list(self) == list(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self)!r})"


class StringVec(TypedVec[str]):
    item_name = "str"

    def _to_storage(self, value: Any) -> str:
        if not isinstance(value, str):
            raise self._type_error(value)
        return value


class IntVec(TypedVec[int]):
    item_name = "int"

    def _to_storage(self, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, numbers.Integral):
            raise self._type_error(value)
        return int(value)


class IntTpVec(IntVec):
    """Integer vector used for index lists (blob and layer ids)."""


class DtypeVec(TypedVec[float]):
    item_name = "float"

    def _to_storage(self, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise self._type_error(value)
        return float(value)


class BoolVec(TypedVec[bool]):
    item_name = "bool"

    def _to_storage(self, value: Any) -> bool:
        if not isinstance(value, (bool, np.bool_)):
            raise self._type_error(value)
        return bool(value)
