"""Bounded retry policy used when waiting for freshly created rows."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    value: Optional[T]
    attempts: int
    waited_seconds: float


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    delay_seconds: float = 0.8
    sleep: Sleeper = field(default=asyncio.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy requires at least one attempt.")
        if self.delay_seconds < 0:
            raise ValueError("RetryPolicy delay cannot be negative.")

    async def run(self, attempt: Callable[[int], Awaitable[Optional[T]]]) -> RetryOutcome[T]:
        """Call ``attempt`` until it returns a value or the attempts run out.

        ``None`` means "not there yet" and triggers another attempt after the
        fixed delay. Exceptions propagate immediately, so raising is how an
        attempt stops the loop early. No pause follows the final attempt.
        """
        waited = 0.0
        for number in range(1, self.max_attempts + 1):
            result = await attempt(number)
            if result is not None:
                return RetryOutcome(value=result, attempts=number, waited_seconds=waited)
            if number < self.max_attempts:
                await self.sleep(self.delay_seconds)
                waited += self.delay_seconds
        return RetryOutcome(value=None, attempts=self.max_attempts, waited_seconds=waited)


__all__ = ["RetryOutcome", "RetryPolicy", "Sleeper"]
