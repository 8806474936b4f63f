"""
Readiness check for files that may still be written by another process.

Polls an exclusive-open probe a bounded number of times (default 10 attempts,
500 ms apart). Worst-case latency is attempts * delay (5 s with the defaults);
after that the file is reported as StillLocked and the caller routes it to the
error directory instead of retrying forever.

Known limitation: the bound is fixed, not scaled by file size, so a very slow
legitimate writer can be classified as StillLocked.
"""

import logging
import os
import time
from pathlib import Path
from typing import Callable

from file_processor.errors import StillLockedError
from file_processor.models import ProcessorConfig

if os.name == "nt":
    fcntl = None
else:
    import fcntl


logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 10
DEFAULT_DELAY_SECONDS = 0.5


def exclusive_open_probe(path: Path) -> None:
    """
    Try to open path exclusively; raise OSError if another process holds it.

    On Windows, opening for update fails with a sharing violation while a writer
    has the file open without sharing. On POSIX, a non-blocking exclusive flock
    fails while a writer holds a lock on it.
    """
    if fcntl is None:
        with open(path, "r+b"):
            return

    with open(path, "rb") as f:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)


class ReadinessGate:
    """Bounded-retry wait until a file is no longer being written."""

    def __init__(
        self,
        attempts: int = DEFAULT_ATTEMPTS,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        probe: Callable[[Path], None] = exclusive_open_probe,
        sleep: Callable[[float], None] = time.sleep
    ):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.delay_seconds = delay_seconds
        self._probe = probe
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: ProcessorConfig) -> "ReadinessGate":
        return cls(
            attempts=config.readiness_attempts,
            delay_seconds=config.readiness_delay_seconds
        )

    @property
    def max_wait_seconds(self) -> float:
        """Upper bound on time spent sleeping in wait_until_ready."""
        return (self.attempts - 1) * self.delay_seconds

    def wait_until_ready(self, path: Path) -> int:
        """
        Block until the file can be opened exclusively.

        Args:
            path: File to check

        Returns:
            Number of attempts it took

        Raises:
            StillLockedError: If the file is still held after every attempt
            FileNotFoundError: If the file disappears while waiting
        """
        path = Path(path)

        for attempt in range(1, self.attempts + 1):
            try:
                self._probe(path)
                if attempt > 1:
                    logger.debug(f"File ready after {attempt} attempts: {path.name}")
                return attempt
            except FileNotFoundError:
                raise
            except OSError as e:
                # File is still being written to
                if attempt == self.attempts:
                    logger.warning(
                        f"File may still be in use after {self.attempts} attempts: {path}",
                        extra={"fields": {"error": e}}
                    )
                    break
                self._sleep(self.delay_seconds)

        raise StillLockedError(path, self.attempts)
