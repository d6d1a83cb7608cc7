"""Fixed-interval pacing for quota-bound upstream calls."""

import time
from typing import Callable

from signalcheck.core.logger import logger


class PacingGate:
    """Suspends the caller after every ``per_pause`` admitted units of work.

    Free-tier quote APIs meter calls per minute. A validation costs two lookups,
    so admitting two records and then pausing 65s keeps a 5 calls/min quota intact.
    The sleep function is injected so callers and tests stay free of real waits.

    Args:
        per_pause: Units admitted between pauses. ``0`` disables pacing.
        pause_seconds: Length of each pause.
        sleep: Blocking sleep function.
    """

    def __init__(self, per_pause: int = 2, pause_seconds: float = 65,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        self.per_pause = per_pause
        self.pause_seconds = pause_seconds
        self._sleep = sleep
        self.admitted = 0
        self.pauses = 0

    def admit(self) -> None:
        """Block if the previous unit closed a group, then count this one."""
        if self.per_pause > 0 and self.admitted > 0 and self.admitted % self.per_pause == 0:
            logger.info(
                f"PacingGate: {self.admitted} admitted, pausing {self.pause_seconds}s"
            )
            self._sleep(self.pause_seconds)
            self.pauses += 1
        self.admitted += 1

    def reset(self) -> None:
        """Start a new run with an empty count."""
        self.admitted = 0
        self.pauses = 0
