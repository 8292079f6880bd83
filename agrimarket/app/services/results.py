"""
Tagged results for callers that prefer branching over try/except.

Services raise `ServiceError` subclasses; `capture()` awaits an operation and
folds a business error into `Err` so the caller has to look at it:

    result = await capture(OrderService(session).confirm_order(order_id, farmer_id))
    if isinstance(result, Err):
        if result.kind == "conflict":
            ...
    else:
        order = result.value

Transient store errors and programming errors are not captured; they keep
propagating so the retry wrapper (or the 500 handler) sees them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Generic, TypeVar, Union

from agrimarket.app.core.exceptions import ServiceError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: ServiceError

    @property
    def ok(self) -> bool:
        return False

    @property
    def kind(self) -> str:
        return self.error.kind

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def status_code(self) -> int:
        return self.error.status_code

    def unwrap(self):
        raise self.error


Result = Union[Ok[T], Err]


async def capture(operation: Awaitable[T]) -> Result[T]:
    """Await `operation`, returning Ok(value) or Err(service_error)."""
    try:
        return Ok(await operation)
    except ServiceError as e:
        return Err(e)
