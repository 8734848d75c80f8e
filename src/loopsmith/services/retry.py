"""Bounded retry with exponential backoff for engine attempts."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loopsmith.exceptions import EngineError, EvaluationFailed

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class RetryCoordinator:
    def __init__(
        self,
        max_retries: int = 2,
        base_delay_ms: int = 1000,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._max_retries = max(max_retries, 0)
        self._base_delay_ms = base_delay_ms
        self._sleep = sleep

    def delay_ms(self, attempt: int) -> float:
        """Backoff before ``attempt`` (0-based): 0, base, 2*base, 4*base, ..."""
        if attempt <= 0:
            return 0.0
        return self._base_delay_ms * (2 ** (attempt - 1))

    async def execute(self, attempt_fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``attempt_fn`` until it succeeds or the retry budget is spent.

        Only :class:`EngineError` is intercepted. A non-retryable one is
        re-raised immediately; after the last retryable failure an
        :class:`EvaluationFailed` carrying the attempt count is raised.
        """
        max_attempts = 1 + self._max_retries
        last_error: EngineError | None = None

        for attempt in range(max_attempts):
            if attempt > 0:
                delay = self.delay_ms(attempt)
                logger.warning(
                    "Engine attempt %d/%d failed, retry in %.1fs: %s",
                    attempt,
                    max_attempts,
                    delay / 1000,
                    last_error,
                )
                await self._sleep(delay / 1000)

            try:
                return await attempt_fn()
            except EngineError as e:
                if not e.retryable:
                    logger.error("Non-retryable engine error on attempt %d: %s", attempt + 1, e)
                    raise
                last_error = e

        logger.error("All %d engine attempts failed", max_attempts)
        raise EvaluationFailed(max_attempts, last_error) from last_error  # type: ignore[arg-type]
