"""
Discriminated result returned by the core service operations.

Business-rule violations come back as `Failure(error)`; anything else
(database unavailable, programming errors) propagates to the caller.
"""
import functools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, ClassVar, Generic, TypeVar, Union

from seatplan.core.errors import ReservationError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok: ClassVar[bool] = True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Failure:
    error: ReservationError
    ok: ClassVar[bool] = False

    def unwrap(self) -> Any:
        raise self.error


Result = Union[Ok[T], Failure]


def returns_result(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[Result[T]]]:
    """Wrap an async operation so ReservationErrors become Failure values."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return Ok(await func(*args, **kwargs))
        except ReservationError as exc:
            return Failure(exc)

    return wrapper
