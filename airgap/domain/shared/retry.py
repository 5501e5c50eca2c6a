"""Retry helpers with bounded exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import Field, model_validator
from typing_extensions import Self

from airgap.domain.shared.error import (
    DomainError,
    MissingDependency,
    RetryExhausted,
)
from airgap.domain.shared.model.value import ValueObject

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that will fail the same way on every attempt.
NON_RETRYABLE: tuple[type[BaseException], ...] = (DomainError, MissingDependency)


class RetryPolicy(ValueObject):
    """Attempt budget and backoff curve for a retried operation."""

    max_attempts: int = Field(default=5, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=20.0, ge=0)
    jitter: bool = False

    @model_validator(mode="after")
    def _cap_not_below_base(self) -> Self:
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        return self

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following `attempt` (1-based)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay = random.uniform(0, delay)
        return delay


Sleep = Callable[[float], Awaitable[None]]
OnRetry = Callable[[int, float, BaseException], None]


class Retrier:
    """Runs an async operation until it succeeds or the policy is exhausted.

    Knows nothing about what it retries. The sleep between attempts is an
    ``asyncio.sleep`` so it can be cancelled and never holds a lock.
    """

    def __init__(self, policy: RetryPolicy, *, sleep: Sleep | None = None) -> None:
        self._policy = policy
        self._sleep = sleep or asyncio.sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        describe: str = "operation",
        on_retry: OnRetry | None = None,
    ) -> T:
        """Run `operation`, retrying on failure.

        Args:
            operation: Zero-argument coroutine function.
            describe: Human-readable name used in logs and the final error.
            on_retry: Optional callback (attempt, delay, error) before each sleep.

        Raises:
            RetryExhausted: after `max_attempts` failed invocations.
        """
        max_attempts = self._policy.max_attempts
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except NON_RETRYABLE:
                raise
            except Exception as exc:
                if attempt >= max_attempts:
                    logger.error("%s failed after %d attempt(s): %s", describe, attempt, exc)
                    raise RetryExhausted(attempt, exc, what=describe) from exc
                delay = self._policy.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    describe,
                    attempt,
                    max_attempts,
                    exc,
                    delay,
                )
                if on_retry:
                    on_retry(attempt, delay, exc)
                await self._sleep(delay)
