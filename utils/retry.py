from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Tuple, Type, TypeVar

from utils.errors import NetworkError
from utils.log import get_logger

T = TypeVar("T")

logger = get_logger("retry")


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    retryable_errors: Tuple[Type[BaseException], ...] = (NetworkError,)

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]]) -> "RetryConfig":
        """Build from a `[retry]` config table."""
        values = values or {}
        defaults = cls()
        return cls(
            max_attempts=int(values.get("max_attempts", defaults.max_attempts)),
            initial_delay=float(values.get("initial_delay", defaults.initial_delay)),
            max_delay=float(values.get("max_delay", defaults.max_delay)),
            backoff_multiplier=float(values.get("backoff_multiplier", defaults.backoff_multiplier)),
        )


DEFAULT_RETRY_CONFIG = RetryConfig()


def backoff_delays(config: RetryConfig = DEFAULT_RETRY_CONFIG):
    """Delays slept between attempts: one fewer than max_attempts."""
    delay = config.initial_delay
    for _ in range(max(config.max_attempts - 1, 0)):
        yield min(delay, config.max_delay)
        delay *= config.backoff_multiplier


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    log=None,
) -> T:
    """Await `operation()` and retry it on the configured error kinds.

    Anything not in ``config.retryable_errors`` propagates on the first
    failure. After the last attempt the last error is re-raised.
    """
    log = log or logger
    delays = backoff_delays(config)
    attempt = 1
    while True:
        try:
            return await operation()
        except config.retryable_errors as exc:
            delay = next(delays, None)
            if delay is None:
                log.error("Operation failed after retries", attempts=attempt, error=str(exc))
                raise
            log.warning(
                "Operation failed, retrying",
                attempt=attempt,
                max_attempts=config.max_attempts,
                delay=delay,
                error=str(exc),
            )
            await sleep(delay)
            attempt += 1
