"""
Watchdog-based monitoring of the input directory.

Hands every file creation/modification straight to the pipeline intake and
returns, so a burst of notifications never stalls the observer thread.

The watcher heals itself when the notification channel fails:

    STOPPED -> RUNNING -> FAULTED -> RESTARTING -> RUNNING
                                        |
                                        +-> FAULTED  (restart attempts exhausted)

Restart attempts are bounded and back off exponentially. A watcher left in
FAULTED is not fatal: reconciliation keeps picking files up, and the next
health check tries again.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from file_processor.errors import FailureKind
from file_processor.models import DiscoverySource, WatcherState


logger = logging.getLogger(__name__)

SubmitCallback = Callable[[Path, DiscoverySource], Any]

DEFAULT_RESTART_DELAY = 1.0  # seconds
DEFAULT_MAX_RESTART_ATTEMPTS = 3
OBSERVER_JOIN_TIMEOUT = 5.0


class DirectoryWatcher(FileSystemEventHandler):
    """
    Watches one directory (non-recursive) for new and changed files.

    Each event is forwarded to the submit callback as (path, DiscoverySource.EVENT).
    """

    def __init__(
        self,
        directory: Path,
        submit: SubmitCallback,
        restart_delay: float = DEFAULT_RESTART_DELAY,
        max_restart_attempts: int = DEFAULT_MAX_RESTART_ATTEMPTS,
        observer_factory: Callable[[], Any] = Observer
    ):
        """
        Initialize directory watcher.

        Args:
            directory: Directory to watch
            submit: Intake callback, takes (path, source)
            restart_delay: Delay before the first restart attempt; doubles per failed attempt
            max_restart_attempts: Restart attempts per fault
            observer_factory: Creates the watchdog observer
        """
        super().__init__()

        self.directory = Path(directory)
        self._real_directory = os.path.realpath(self.directory)
        self.submit = submit
        self.restart_delay = restart_delay
        self.max_restart_attempts = max_restart_attempts
        self._observer_factory = observer_factory

        self._observer: Optional[Any] = None
        self._watched_identity: Optional[Tuple[int, int]] = None  # (st_dev, st_ino) at schedule time
        self._state = WatcherState.STOPPED
        self._state_lock = threading.RLock()
        self._stopping = threading.Event()

        # (from_state, to_state) in order
        self.transitions: List[Tuple[WatcherState, WatcherState]] = []
        self.restart_count = 0

    @property
    def state(self) -> WatcherState:
        return self._state

    def _set_state(self, new_state: WatcherState) -> None:
        with self._state_lock:
            if new_state == self._state:
                return
            self.transitions.append((self._state, new_state))
            logger.debug(f"Watcher state {self._state.value} -> {new_state.value}")
            self._state = new_state

    # Event handling

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        self._handle_file_event(event.src_path, "created")

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        self._handle_file_event(event.src_path, "modified")

    def on_closed(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        self._handle_file_event(event.src_path, "closed")

    def on_moved(self, event: FileSystemEvent) -> None:
        """Files renamed into the directory (write-then-rename)."""
        if event.is_directory:
            return

        self._handle_file_event(event.dest_path, "moved")

    def _handle_file_event(self, file_path, event_type: str) -> None:
        """
        Forward a file event to the intake.

        Args:
            file_path: Path from the watchdog event (str or bytes)
            event_type: Event name, for logging
        """
        filepath = Path(os.fsdecode(file_path))

        # Non-recursive: ignore anything not directly in the watched directory
        if os.path.realpath(filepath.parent) != self._real_directory:
            return

        logger.debug(f"File {event_type}: {filepath}")

        try:
            self.submit(filepath, DiscoverySource.EVENT)
        except Exception as e:
            logger.error(
                f"Error submitting {filepath.name}: {e}",
                exc_info=True
            )

    # Lifecycle

    def start(self) -> None:
        """
        Start watching the directory.

        A failure to start leaves the watcher FAULTED; the next health check
        retries.
        """
        with self._state_lock:
            if self._observer is not None:
                logger.warning(f"Observer already running for {self.directory}")
                return

            self._stopping.clear()
            try:
                self._start_observer()
            except Exception as e:
                logger.error(f"Failed to start watching {self.directory}: {e}", exc_info=True)
                self._set_state(WatcherState.FAULTED)
                return

            self._set_state(WatcherState.RUNNING)

        logger.info(f"Watching: {self.directory}")

    def stop(self) -> None:
        """Stop watching. Interrupts a pending restart backoff."""
        self._stopping.set()

        with self._state_lock:
            self._set_state(WatcherState.STOPPED)
            self._stop_observer()

        logger.debug(f"Stopped watching {self.directory}")

    def is_running(self) -> bool:
        """
        Check if the watcher is currently running.

        Returns:
            True if the state is RUNNING and notifications are still being delivered
        """
        return self._state == WatcherState.RUNNING and self._health_problem() is None

    def _health_problem(self) -> Optional[str]:
        """
        Describe why notifications are not arriving, or None if they are.

        The observer thread can outlive its emitters: when the watched
        directory is deleted or moved, the emitter stops while the observer
        keeps running. A directory recreated under the same path has a new
        identity and needs a new watch.
        """
        observer = self._observer
        if observer is None or not observer.is_alive():
            return "Observer thread is not running"

        if any(not emitter.is_alive() for emitter in observer.emitters):
            return "Notification channel closed"

        try:
            identity = self._directory_identity()
        except OSError:
            return f"Watched directory is gone: {self.directory}"

        if identity != self._watched_identity:
            return f"Watched directory was replaced: {self.directory}"

        return None

    def _directory_identity(self) -> Tuple[int, int]:
        st = os.stat(self.directory)
        return st.st_dev, st.st_ino

    def ensure_running(self) -> bool:
        """
        Health check: restart the observer if notifications stopped or a previous restart failed.

        Returns:
            True if the watcher is running after the check
        """
        with self._state_lock:
            state = self._state

        if state == WatcherState.STOPPED or state == WatcherState.RESTARTING:
            return False

        if state == WatcherState.RUNNING:
            problem = self._health_problem()
            if problem is None:
                return True
        else:
            problem = "Previous restart attempts failed"

        return self.handle_error(RuntimeError(problem))

    def handle_error(self, error: BaseException) -> bool:
        """
        Recover from a notification channel failure.

        Disables the observer, waits, and starts a fresh one, backing off on
        repeated failures.

        Args:
            error: The failure that was detected

        Returns:
            True if the watcher is RUNNING again
        """
        with self._state_lock:
            if self._state in (WatcherState.STOPPED, WatcherState.RESTARTING):
                return False

            logger.error(
                f"Directory watcher error: {error}",
                extra={"fields": {"kind": FailureKind.WATCHER_FAILURE.value, "directory": self.directory}}
            )
            self._set_state(WatcherState.FAULTED)
            self._set_state(WatcherState.RESTARTING)

        delay = self.restart_delay

        for attempt in range(1, self.max_restart_attempts + 1):
            with self._state_lock:
                self._stop_observer()

            if self._wait(delay):
                # stop() was called during the backoff
                return False

            with self._state_lock:
                if self._state != WatcherState.RESTARTING:
                    return False

                try:
                    self._start_observer()
                except Exception as e:
                    logger.warning(
                        f"Watcher restart attempt {attempt}/{self.max_restart_attempts} failed: {e}"
                    )
                    delay *= 2
                    continue

                self.restart_count += 1
                self._set_state(WatcherState.RUNNING)

            logger.warning(f"Directory watcher restarted after error (attempt {attempt})")
            return True

        with self._state_lock:
            if self._state == WatcherState.RESTARTING:
                self._set_state(WatcherState.FAULTED)

        logger.error(
            f"Directory watcher could not be restarted after {self.max_restart_attempts} attempts; "
            f"relying on reconciliation until the next health check"
        )
        return False

    def _wait(self, seconds: float) -> bool:
        """Sleep for the backoff delay; True if stop() interrupted it."""
        return self._stopping.wait(seconds)

    def _start_observer(self) -> None:
        if not self.directory.is_dir():
            raise FileNotFoundError(f"Input directory does not exist: {self.directory}")

        self._watched_identity = self._directory_identity()
        observer = self._observer_factory()
        observer.schedule(self, str(self.directory), recursive=False)
        observer.start()
        self._observer = observer

    def _stop_observer(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return

        try:
            observer.stop()
            if observer.is_alive():
                observer.join(timeout=OBSERVER_JOIN_TIMEOUT)
        except Exception as e:
            logger.error(f"Error stopping observer for {self.directory}: {e}", exc_info=True)
