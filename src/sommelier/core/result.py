"""
sommelier.core.result - Tagged Success/Failure Values
=======================================================

Handlers on the bus never raise across it. Instead they return a ``Result``:
either ``Ok(data)`` or ``Err(error)``. Callers branch on ``.success`` (or use
``isinstance`` / structural pattern matching) and only the coordinator turns
an ``Err`` back into an exception.

Usage:
    >>> result = await bus.send_message_and_wait_for_response(target, msg)
    >>> if result.success:
    ...     envelope = result.data
    ... else:
    ...     logger.warning("stage_failed", code=result.error.error_code)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, NoReturn, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying ``data`` (which may be None)."""

    data: T

    @property
    def success(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.data


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed outcome carrying the ``error`` that caused it."""

    error: E

    @property
    def success(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        """Raise the carried error."""
        raise self.error


Result = Union[Ok[T], Err[E]]
