"""Two-variant result type used by ``Module.chain``.

``Success`` carries a value, ``Failure`` carries an error.  ``bind``
short-circuits on ``Failure``: the step is never called and the same
failure object is returned untouched.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, NoReturn, TypeAlias, TypeGuard, TypeVar

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    value: T

    @property
    def is_success(self) -> bool:
        return True

    def bind(self, fn: Callable[[T], Result[U, Any]]) -> Result[U, Any]:
        return fn(self.value)

    def map(self, fn: Callable[[T], U]) -> Success[U]:
        return Success(fn(self.value))

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: Any) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Failure(Generic[E]):
    error: E

    @property
    def is_success(self) -> bool:
        return False

    def bind(self, fn: Callable[[Any], Any]) -> Failure[E]:
        return self

    def map(self, fn: Callable[[Any], Any]) -> Failure[E]:
        return self

    def unwrap(self) -> NoReturn:
        if isinstance(self.error, BaseException):
            raise self.error
        raise ValueError(f"called unwrap() on Failure({self.error!r})")

    def unwrap_or(self, default: U) -> U:
        return default


Result: TypeAlias = Success[T] | Failure[E]


def is_result(value: Any) -> TypeGuard[Result[Any, Any]]:
    return isinstance(value, (Success, Failure))


def flow(first: Callable[..., Any], *fns: Callable[[Any], Any]) -> Callable[..., Any]:
    """Compose functions left-to-right; *first* may take any arguments."""

    def composed(*args: Any, **kwargs: Any) -> Any:
        result = first(*args, **kwargs)
        for fn in fns:
            result = fn(result)
        return result

    return composed


def pipe(value: Any, *fns: Callable[[Any], Any]) -> Any:
    """Thread *value* through *fns* left-to-right."""
    for fn in fns:
        value = fn(value)
    return value
