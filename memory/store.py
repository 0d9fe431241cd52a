"""Typed, per-conversation key-value store shared across pipeline steps.

The store is a type-erased dict keyed by variable id.  Type safety comes
from the handles: each ``Var`` is created once by ``fresh_var`` with a
globally unique id and a declared type, so a value read back through a
handle always has the handle's type.  Reading a value of another type means
a handle was forged or reused, and raises ``StoreTypeError``.

A single Store is shared by reference between every branch of a parallel
step, so all access goes through an internal lock.
"""

from __future__ import annotations

import threading
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from memory.ids import var_ids

T = TypeVar("T")


class StoreTypeError(TypeError):
    """A stored value does not match the declared type of its handle.

    This is a programming error, not a runtime condition: pipeline steps
    never retry or swallow it.
    """


@dataclass(frozen=True)
class Var(Generic[T]):
    """Handle into a Store. Create with ``fresh_var``, never directly."""

    id: int
    kind: Any = field(default=None, compare=False)
    default: Any = field(default=None, compare=False)

    def accepts(self, value: object) -> bool:
        return _matches(self.kind, value)


# int is acceptable where float or complex is declared, as in the numeric tower.
_PROMOTIONS: dict[type, tuple[type, ...]] = {
    float: (float, int),
    complex: (complex, float, int),
}


def _matches(kind: Any, value: object) -> bool:
    if kind is None or kind is Any:
        return True
    if kind is type(None):
        return value is None

    origin = typing.get_origin(kind)
    if origin is typing.Union or origin is types.UnionType:
        return any(_matches(arg, value) for arg in typing.get_args(kind))
    if origin is typing.Literal:
        return value in typing.get_args(kind)
    if origin is typing.Annotated:
        return _matches(typing.get_args(kind)[0], value)

    target = origin or kind
    return isinstance(value, _PROMOTIONS.get(target, target))


def fresh_var(kind: type[T] | None = None, default: T | None = None) -> Var[T]:
    """Allocate a new handle bound to *kind*.

    *kind* may be a class, ``Any``, a union such as ``int | None``, a
    ``Literal`` or a parameterised generic (only its origin is checked).
    A ``float`` handle also accepts ``int``.

    *default* is what ``Store.get`` reports for a handle with no value.
    """
    return Var(id=var_ids.allocate(), kind=kind, default=default)


class Store:
    """Heterogeneous key-value map addressed by ``Var`` handles.

    Usage
    -----
    >>> done = fresh_var(bool, default=False)
    >>> store = Store()
    >>> store.get(done)
    (False, False)
    >>> store.set(done, True)
    >>> store.get(done)
    (True, True)
    """

    def __init__(self) -> None:
        self._values: dict[int, Any] = {}
        self._lock = threading.Lock()

    def get(self, var: Var[T]) -> tuple[T, bool]:
        """Return ``(value, True)``, or ``(var.default, False)`` if unbound."""
        with self._lock:
            if var.id not in self._values:
                return var.default, False
            value = self._values[var.id]

        if not var.accepts(value):
            raise StoreTypeError(
                f"store variable {var.id} holds {type(value).__name__}, "
                f"expected {getattr(var.kind, '__name__', var.kind)}"
            )
        return value, True

    def set(self, var: Var[T], value: T) -> None:
        """Bind *value* to *var*, overwriting any existing value."""
        if not var.accepts(value):
            raise StoreTypeError(
                f"cannot store {type(value).__name__} in variable {var.id} "
                f"of type {getattr(var.kind, '__name__', var.kind)}"
            )
        with self._lock:
            self._values[var.id] = value

    def read_only(self) -> ReadOnlyStore:
        return ReadOnlyStore(self)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, var: object) -> bool:
        if not isinstance(var, Var):
            return False
        with self._lock:
            return var.id in self._values


class ReadOnlyStore:
    """View of a Store that can only be read. Handed to conditions."""

    __slots__ = ("_store",)

    def __init__(self, store: Store) -> None:
        self._store = store

    def get(self, var: Var[T]) -> tuple[T, bool]:
        return self._store.get(var)

    def __contains__(self, var: object) -> bool:
        return var in self._store
