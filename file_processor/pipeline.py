"""
File processing pipeline.

Wires discovery (directory watcher + periodic reconciliation) to a single
worker thread through a bounded queue:

    watcher thread ----+
                       +--> submit() --> Queue(maxsize) --> worker --> FileProcessor
    reconciler thread -+

Producers never wait for processing. They only block while the queue is full,
so no notification is dropped under bursts. A path that is already queued or
being processed is not submitted twice.

Shutdown stops discovery first, lets the in-flight file finish, and discards
queued tasks. Discarded files stay in the input directory and are picked up by
the first reconciliation pass after a restart.
"""

import logging
import os
import queue
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional, Set

from file_processor.config import ensure_directories
from file_processor.models import (
    DiscoverySource,
    FileTask,
    PipelineStatistics,
    ProcessingOutcome,
    ProcessorConfig,
)
from file_processor.processor import FileProcessor
from file_processor.reconciler import Reconciler
from file_processor.watcher import DirectoryWatcher


logger = logging.getLogger(__name__)

# Supervision and shutdown timing
WATCHER_CHECK_INTERVAL = 5.0  # seconds
QUEUE_PUT_TIMEOUT = 0.5  # seconds
WORKER_JOIN_TIMEOUT = 30.0  # seconds
IDLE_POLL_INTERVAL = 0.05  # seconds


class Pipeline:
    """
    Owns the processing lifecycle.

    One worker thread consumes the queue; the FileProcessor's lock keeps
    processing single-flight even if process() is called from elsewhere.
    """

    def __init__(
        self,
        config: ProcessorConfig,
        processor: Optional[FileProcessor] = None,
        watcher: Optional[DirectoryWatcher] = None,
        reconciler: Optional[Reconciler] = None
    ):
        """
        Initialize pipeline.

        Args:
            config: Pipeline configuration
            processor: File processor (built from config if not given)
            watcher: Directory watcher (built from config if not given)
            reconciler: Reconciler (built from config if not given)
        """
        self.config = config

        if processor is not None:
            self.lock = getattr(processor, "lock", None) or threading.Lock()
            self.processor = processor
        else:
            self.lock = threading.Lock()
            self.processor = FileProcessor(config, lock=self.lock)

        self.queue: "queue.Queue[Optional[FileTask]]" = queue.Queue(maxsize=config.queue_capacity)

        # Paths queued or being processed, plus statistics; guarded by _intake_lock
        self._in_flight: Set[str] = set()
        self._intake_lock = threading.Lock()
        self.statistics = PipelineStatistics()

        self.watcher = watcher or DirectoryWatcher(
            config.input_directory,
            self.submit,
            restart_delay=config.watcher_restart_delay_seconds,
            max_restart_attempts=config.watcher_max_restart_attempts
        )
        self.reconciler = reconciler or Reconciler(
            config.input_directory,
            self.submit,
            interval_seconds=config.processing_interval_seconds
        )

        self.running = False
        self._worker: Optional[threading.Thread] = None
        self._stop_requested = threading.Event()
        self._shutting_down = threading.Event()

    @staticmethod
    def _key(path: Path) -> str:
        return os.path.realpath(path)

    # Intake

    def submit(self, path: Path, source: DiscoverySource = DiscoverySource.EVENT) -> bool:
        """
        Enqueue a discovered file.

        Blocks while the queue is full; gives up only when shutdown begins.

        Args:
            path: Discovered file
            source: How it was discovered

        Returns:
            True if a task was queued, False for duplicates and during shutdown
        """
        if self._shutting_down.is_set():
            return False

        path = Path(os.path.abspath(path))
        key = self._key(path)

        with self._intake_lock:
            if key in self._in_flight:
                self.statistics.total_duplicates += 1
                logger.debug(f"Already queued: {path.name}")
                return False
            self._in_flight.add(key)

        task = FileTask(path=path, source=source)

        while not self._shutting_down.is_set():
            try:
                self.queue.put(task, timeout=QUEUE_PUT_TIMEOUT)
            except queue.Full:
                continue

            with self._intake_lock:
                self.statistics.total_submitted += 1

            logger.info(
                f"New file detected: {path.name}",
                extra={"fields": {"source": source.value}}
            )
            return True

        self._release(path)
        return False

    def _release(self, path: Path) -> None:
        with self._intake_lock:
            self._in_flight.discard(self._key(path))

    def _record(self, outcome: ProcessingOutcome) -> None:
        with self._intake_lock:
            self.statistics.record(outcome)

    # Worker

    def _worker_loop(self) -> None:
        """Consume tasks until the None sentinel arrives."""
        logger.debug("Worker started")

        while True:
            task = self.queue.get()
            try:
                if task is None:
                    break

                if self._shutting_down.is_set():
                    logger.debug(f"Discarding queued task: {task.path.name}")
                    with self._intake_lock:
                        self.statistics.total_discarded += 1
                    continue

                outcome = self.processor.process(task)
                self._record(outcome)

            except Exception as e:
                logger.error(f"Error in worker loop: {e}", exc_info=True)

            finally:
                if task is not None:
                    self._release(task.path)
                self.queue.task_done()

        logger.debug("Worker stopped")

    def _start_worker(self) -> None:
        self._worker = threading.Thread(
            target=self._worker_loop,
            name="FileProcessorWorker",
            daemon=True
        )
        self._worker.start()

    # Lifecycle

    def start(self) -> None:
        """Start the worker, the watcher and the reconciler. Non-blocking."""
        if self.running:
            logger.warning("Pipeline already running")
            return

        logger.info("=" * 60)
        logger.info("File Processor Starting")
        logger.info("=" * 60)
        logger.info(f"Input directory: {self.config.input_directory}")
        logger.info(f"Output directory: {self.config.output_directory}")
        logger.info(f"Supported extensions: {', '.join(sorted(self.config.supported_extensions))}")
        logger.info(f"Max file size: {self.config.max_file_size_bytes} bytes")
        logger.info(f"Reconciliation interval: {self.config.processing_interval_seconds}s")

        ensure_directories(self.config)

        self._stop_requested.clear()
        self._shutting_down.clear()
        self.running = True

        self._start_worker()
        self.watcher.start()
        self.reconciler.start()

    def request_stop(self) -> None:
        """Ask run() to return. Safe to call from a signal handler."""
        self._stop_requested.set()

    def stop(self, timeout: float = WORKER_JOIN_TIMEOUT) -> None:
        """
        Shut down gracefully. Idempotent.

        Args:
            timeout: Seconds to wait for the in-flight file to finish
        """
        if not self.running:
            return

        logger.info("=" * 60)
        logger.info("File Processor Shutting Down")
        logger.info("=" * 60)

        self.running = False
        self._shutting_down.set()
        self._stop_requested.set()

        # No new work
        self.watcher.stop()
        self.reconciler.stop()

        discarded = self._drain_queue()
        if discarded:
            logger.info(f"Discarded {discarded} queued file(s); they stay in the input directory")

        worker, self._worker = self._worker, None
        if worker is not None:
            try:
                self.queue.put(None, timeout=timeout)
            except queue.Full:
                logger.warning("Could not deliver stop signal to worker")

            worker.join(timeout=timeout)
            if worker.is_alive():
                logger.warning("Worker did not stop gracefully")

        logger.info("File processor stopped")

    def _drain_queue(self) -> int:
        discarded = 0
        while True:
            try:
                task = self.queue.get_nowait()
            except queue.Empty:
                break

            if task is not None:
                self._release(task.path)
                discarded += 1
            self.queue.task_done()

        with self._intake_lock:
            self.statistics.total_discarded += discarded
        return discarded

    def run(self) -> None:
        """Start, supervise the watcher until request_stop(), then stop."""
        self.start()

        try:
            while not self._stop_requested.wait(timeout=WATCHER_CHECK_INTERVAL):
                self.watcher.ensure_running()
        finally:
            self.stop()

    def run_once(self, timeout: Optional[float] = None) -> PipelineStatistics:
        """
        Process what is currently in the input directory, then stop.

        Args:
            timeout: Maximum seconds to wait for the queue to drain (None waits indefinitely)

        Returns:
            Statistics for the pass
        """
        if self.running:
            raise RuntimeError("Pipeline is already running")

        ensure_directories(self.config)

        self._stop_requested.clear()
        self._shutting_down.clear()
        self.running = True
        self._start_worker()

        try:
            self.reconciler.scan()
            if not self.wait_idle(timeout):
                logger.warning(f"Queue not drained within {timeout}s")
        finally:
            self.stop()

        return self.statistics.model_copy()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until nothing is queued or being processed.

        Returns:
            True if idle, False on timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            with self._intake_lock:
                if not self._in_flight:
                    return True
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(IDLE_POLL_INTERVAL)

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of the pipeline state."""
        with self._intake_lock:
            in_flight = len(self._in_flight)
            statistics = self.statistics.model_dump()

        return {
            "running": self.running,
            "watcher_state": self.watcher.state.value,
            "queue_depth": self.queue.qsize(),
            "in_flight": in_flight,
            "statistics": statistics,
        }
