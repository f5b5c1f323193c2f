# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.15
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/core/retry.py

"""
Fixed-interval polling with an optional bound.

Both the GC cooldown wait and the maintenance drain wait are "check, sleep,
check again" loops. They share this module so the interval, the bound and the
time source are parameters, and tests can drive the loop with a fake clock.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from loguru import logger


class Clock(Protocol):
    """Time source used by polling loops."""

    def monotonic(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall-clock implementation backed by the time module."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


SYSTEM_CLOCK = SystemClock()


@dataclass(frozen=True)
class PollConfig:
    """Polling behaviour: seconds between checks and an optional total bound."""
    interval: float = 1.0
    max_wait: Optional[float] = None

    @property
    def bounded(self) -> bool:
        return self.max_wait is not None


class PollTimeoutError(Exception):
    """Raised when a bounded poll runs out of time."""

    def __init__(self, operation_name: str, attempts: int, elapsed: float):
        self.operation_name = operation_name
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(
            f"{operation_name} did not complete after {attempts} checks ({elapsed:.1f}s)"
        )


def poll_until(
    condition: Callable[[], bool],
    config: PollConfig,
    clock: Clock = SYSTEM_CLOCK,
    operation_name: str = "condition",
    on_wait: Optional[Callable[[int], None]] = None,
) -> int:
    """
    Call condition() until it returns True.

    The condition is checked immediately, then once per interval. A bounded
    poll gives up only after a check at or past max_wait fails, so a 60s
    bound at a 1s interval checks at t=0..60, 61 times in all.

    Args:
        condition: zero-argument predicate, checked once per attempt
        config: interval and optional bound
        clock: time source (injectable for tests)
        operation_name: human-readable name for logging
        on_wait: called with the attempt number before each sleep

    Returns:
        The number of checks performed.

    Raises:
        PollTimeoutError: if the bound is exceeded
    """
    start = clock.monotonic()
    attempt = 0

    while True:
        attempt += 1
        if condition():
            logger.debug(f"{operation_name} satisfied after {attempt} check(s)")
            return attempt

        elapsed = clock.monotonic() - start
        delay = config.interval
        if config.bounded:
            if elapsed >= config.max_wait:
                raise PollTimeoutError(operation_name, attempt, elapsed)
            # last check lands on the bound itself
            delay = min(delay, config.max_wait - elapsed)

        if on_wait is not None:
            on_wait(attempt)
        clock.sleep(delay)
