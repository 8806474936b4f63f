"""
Periodic reconciliation scan of the input directory.

Filesystem notifications can be lost (buffer overflow, watcher restart, files
that were already present at startup). The reconciler lists the input
directory on a fixed interval and submits every regular file it finds; the
pipeline's in-flight set filters out files that are already queued.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional

from file_processor.models import DiscoverySource


logger = logging.getLogger(__name__)

THREAD_JOIN_TIMEOUT = 5.0  # seconds


class Reconciler:
    """Lists the input directory and submits what it finds."""

    def __init__(
        self,
        directory: Path,
        submit: Callable[[Path, DiscoverySource], Any],
        interval_seconds: float = 30
    ):
        """
        Initialize reconciler.

        Args:
            directory: Input directory to scan (non-recursive)
            submit: Intake callback, takes (path, source)
            interval_seconds: Seconds between scans
        """
        self.directory = Path(directory)
        self.submit = submit
        self.interval_seconds = interval_seconds

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.scan_count = 0

    def _find_files(self) -> List[Path]:
        """Regular files directly in the input directory, sorted by name."""
        files = [f for f in self.directory.iterdir() if f.is_file()]
        files.sort(key=lambda f: f.name)
        return files

    def scan(self) -> int:
        """
        Run one reconciliation pass.

        Returns:
            Number of files submitted
        """
        if not self.directory.exists():
            logger.warning(f"Input directory does not exist: {self.directory}")
            return 0

        submitted = 0
        for filepath in self._find_files():
            if self.submit(filepath, DiscoverySource.RECONCILIATION):
                submitted += 1

        self.scan_count += 1
        if submitted:
            logger.info(f"Reconciliation found {submitted} unprocessed file(s)")
        return submitted

    def start(self) -> None:
        """Start the scan thread. The first scan runs immediately."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Reconciler already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="Reconciler",
            daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the scan thread and wait for it to exit."""
        self._stop_event.set()

        thread, self._thread = self._thread, None
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=THREAD_JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning("Reconciler thread did not stop gracefully")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        logger.debug(f"Reconciler started (every {self.interval_seconds}s)")

        while not self._stop_event.is_set():
            try:
                self.scan()
            except Exception as e:
                logger.error(f"Error during reconciliation scan: {e}", exc_info=True)

            self._stop_event.wait(timeout=self.interval_seconds)

        logger.debug("Reconciler stopped")
