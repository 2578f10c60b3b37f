"""
Bounded retry with exponential backoff and jitter.

Used wherever devchef polls something that may not be ready yet
(the database container after ``compose up``).
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """How many times to try and how long to wait in between.

    ``backoff=1.0`` gives a fixed delay of ``base_delay``.
    """

    max_attempts: int = 90
    base_delay: float = 1.0
    max_delay: float = 5.0
    backoff: float = 1.0
    jitter: float = 0.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Delay after the *attempt*-th failure (1-based)."""
        delay = min(self.base_delay * (self.backoff ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, delay * self.jitter)
        return delay

    def poll(self, probe: Callable[[], bool], what: str = "condition") -> bool:
        """Call *probe* until it returns True or attempts run out.

        Returns:
            True if the probe succeeded, False once attempts are exhausted.
        """
        for attempt in range(1, self.max_attempts + 1):
            if probe():
                logger.debug("%s ready after %d attempt(s)", what, attempt)
                return True
            if attempt < self.max_attempts:
                delay = self.delay_for(attempt)
                logger.debug(
                    "%s not ready: attempt %d/%d, retrying in %.1fs",
                    what, attempt, self.max_attempts, delay,
                )
                self.sleep(delay)
        return False
