"""
Explicit success/failure container used by every public async operation.

A ``Result`` is resolved at construction time: it carries either a value or an
error, never both and never neither. ``unwrap()`` is the one place where a
failure turns back into a raised exception.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


class Result(Generic[T, E]):
    """Tagged success/failure value."""

    __slots__ = ("_ok", "_value", "_error")

    def __init__(
        self, ok: bool, value: Optional[T], error: Optional[E]
    ):
        if ok and error is not None:
            raise ValueError("A successful Result cannot carry an error")
        if not ok and error is None:
            raise ValueError("A failed Result must carry an error")
        self._ok = ok
        self._value = value
        self._error = error

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Result[T, E]":
        """Build a success. ``Result.ok()`` is a success with no payload."""
        return cls(True, value, None)

    @classmethod
    def err(cls, error: E) -> "Result[T, E]":
        """Build a failure around ``error``."""
        return cls(False, None, error)

    def is_ok(self) -> bool:
        return self._ok

    def is_err(self) -> bool:
        return not self._ok

    @property
    def value(self) -> Optional[T]:
        return self._value

    def get_err(self) -> Optional[E]:
        return self._error

    def unwrap(self) -> T:
        """Return the value, or raise the stored error."""
        if self._ok:
            return self._value  # type: ignore[return-value]
        raise self._error  # type: ignore[misc]

    def __repr__(self) -> str:
        if self._ok:
            return f"Result.ok({self._value!r})"
        return f"Result.err({self._error!r})"
