# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Retry/Backoff Policy

Per-node exponential backoff. Attempt n (1-indexed, n > 1 are retries)
waits min(initial_delay_ms * backoff_multiplier ** (n - 2), max_delay_ms)
before the handler is invoked again.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from .exceptions import NodeExecutionError
from .models import RetryConfig

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class AttemptOutcome:
    """Result of running a handler under a retry policy"""
    output: Any = None
    error: Optional[BaseException] = None
    attempts: int = 0
    duration_ms: int = 0  # final attempt only
    delays_ms: List[int] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def retry_attempts(self) -> int:
        return max(self.attempts - 1, 0)


def is_retryable(error: BaseException) -> bool:
    """Node errors carry their own classification; anything else is treated as transient."""
    if isinstance(error, NodeExecutionError):
        return error.retryable
    return True


class RetryPolicy:
    """
    Runs an async callable with the node's retry configuration.

    Args:
        config: Node retry configuration (None = single attempt)
        sleep: Awaitable taking seconds; injectable for tests
    """

    def __init__(self, config: Optional[RetryConfig] = None, sleep: Optional[SleepFunc] = None):
        self.config = config or RetryConfig()
        self._sleep = sleep or asyncio.sleep

    @property
    def max_attempts(self) -> int:
        """Total attempts allowed; maxAttempts of 0 means a single try."""
        return max(self.config.max_attempts, 1)

    def delay_ms(self, attempt: int) -> int:
        """Delay before attempt `attempt` (1-indexed). The first attempt never waits."""
        if attempt <= 1:
            return 0
        delay = self.config.initial_delay_ms * (self.config.backoff_multiplier ** (attempt - 2))
        return int(min(delay, self.config.max_delay_ms))

    async def run(self, func: Callable[[], Awaitable[Any]], node_id: Optional[str] = None) -> AttemptOutcome:
        """
        Invoke func until it succeeds, fails non-retryably, or attempts run out.

        Never raises handler errors; they are returned on the outcome.
        asyncio.CancelledError is propagated.
        """
        outcome = AttemptOutcome()

        for attempt in range(1, self.max_attempts + 1):
            delay = self.delay_ms(attempt)
            if delay:
                outcome.delays_ms.append(delay)
                logger.info(
                    f"Retrying node {node_id} (attempt {attempt}/{self.max_attempts}) in {delay}ms",
                    extra={"node_id": node_id, "attempt": attempt, "delay_ms": delay}
                )
                await self._sleep(delay / 1000)

            outcome.attempts = attempt
            started = time.monotonic()
            try:
                outcome.output = await func()
                outcome.error = None
                outcome.duration_ms = int((time.monotonic() - started) * 1000)
                return outcome
            except asyncio.CancelledError:
                raise
            except Exception as e:
                outcome.duration_ms = int((time.monotonic() - started) * 1000)
                outcome.error = e
                if not is_retryable(e):
                    logger.info(
                        f"Node {node_id} failed with non-retryable error: {e}",
                        extra={"node_id": node_id, "attempt": attempt}
                    )
                    return outcome
                logger.warning(
                    f"Node {node_id} attempt {attempt} failed: {e}",
                    extra={"node_id": node_id, "attempt": attempt}
                )

        return outcome
