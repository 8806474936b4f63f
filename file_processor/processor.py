"""
Single-flight file processor.

Runs one FileTask through the pipeline steps:

1. drop the task if the file no longer exists
2. skip (and leave in place) files that are not eligible
3. acquire the single-flight lock
4. wait until the file is no longer being written
5. transform it into the output directory
6. delete the source

A failure in steps 4-5 releases the lock and routes the file to the error
directory. The lock is held by a `with` block, so every exit path releases it.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

from file_processor.error_router import ErrorRouter
from file_processor.errors import FailureKind, ProcessingError
from file_processor.models import FileTask, OutcomeStatus, ProcessingOutcome, ProcessorConfig
from file_processor.readiness import ReadinessGate
from file_processor.transforms import TypeDispatcher
from file_processor.validator import check_eligibility


logger = logging.getLogger(__name__)

MISSING = "missing"


class FileProcessor:
    """
    Processes one file at a time.

    The lock is shared with the owning Pipeline; every process() call body past
    the eligibility check runs under it, so at most one file is transformed at
    any instant regardless of how many threads call process().
    """

    def __init__(
        self,
        config: ProcessorConfig,
        lock: Optional[threading.Lock] = None,
        readiness: Optional[ReadinessGate] = None,
        dispatcher: Optional[TypeDispatcher] = None,
        error_router: Optional[ErrorRouter] = None
    ):
        """
        Initialize processor.

        Args:
            config: Pipeline configuration
            lock: Single-flight lock (a new one if not given)
            readiness: Readiness gate (built from config if not given)
            dispatcher: Transform dispatcher (built from config if not given)
            error_router: Error router (built from config if not given)
        """
        self.config = config
        self.lock = lock or threading.Lock()
        self.readiness = readiness or ReadinessGate.from_config(config)
        self.dispatcher = dispatcher or TypeDispatcher(config.output_directory)
        self.error_router = error_router or ErrorRouter(config.error_directory)

    def process(self, task: FileTask) -> ProcessingOutcome:
        """
        Process a single file.

        Args:
            task: Unit of work

        Returns:
            Outcome of this invocation (never raises)
        """
        path = Path(task.path)

        # Check if file still exists (might have been deleted)
        if not path.exists():
            logger.debug(f"File no longer exists: {path}")
            return self._skipped(path, MISSING)

        try:
            reason = check_eligibility(path, self.config)
        except FileNotFoundError:
            logger.debug(f"File no longer exists: {path}")
            return self._skipped(path, MISSING)
        except OSError as e:
            logger.warning(f"Could not stat {path}: {e}")
            return self._skipped(path, str(e))

        if reason:
            logger.warning(
                f"Skipping {path.name}: {reason}",
                extra={"fields": {"extension": path.suffix.lower(), "kind": FailureKind.INELIGIBLE.value}}
            )
            return self._skipped(path, reason)

        failure: Optional[Exception] = None

        with self.lock:
            try:
                # Wait for file to be completely written (avoid processing partial files)
                self.readiness.wait_until_ready(path)

                logger.info(
                    f"Processing file: {path.name} ({path.stat().st_size} bytes)",
                    extra={"fields": {"source": task.source.value}}
                )

                output_path = self.dispatcher.transform(path, path.suffix.lower())

            except Exception as e:
                failure = e

            else:
                logger.info(f"Successfully processed file: {path.name} -> {output_path}")

                # Delete the original file after successful processing
                try:
                    path.unlink()
                    logger.debug(f"Deleted original file: {path}")
                except FileNotFoundError:
                    pass
                except OSError as e:
                    logger.error(f"Processed {path.name} but could not delete source: {e}")

                return ProcessingOutcome(
                    status=OutcomeStatus.SUCCESS,
                    path=str(path),
                    output_path=str(output_path)
                )

        return self._fail(path, failure)

    def _fail(self, path: Path, error: Exception) -> ProcessingOutcome:
        """Log a failure and route the file to the error directory."""
        if not path.exists():
            logger.debug(f"File disappeared during processing: {path}")
            return self._skipped(path, MISSING)

        if isinstance(error, ProcessingError):
            kind = error.kind
            logger.error(
                f"Error processing file: {path}: {error}",
                extra={"fields": {"kind": kind.value}}
            )
        else:
            kind = FailureKind.TRANSFORM_IO_FAILURE
            logger.error(
                f"Unexpected error processing file: {path}",
                exc_info=error,
                extra={"fields": {"kind": kind.value}}
            )

        error_path = self.error_router.route(path)

        return ProcessingOutcome(
            status=OutcomeStatus.FAILED,
            path=str(path),
            error=str(error),
            error_kind=kind,
            error_path=str(error_path) if error_path else None
        )

    @staticmethod
    def _skipped(path: Path, reason: str) -> ProcessingOutcome:
        return ProcessingOutcome(status=OutcomeStatus.SKIPPED, path=str(path), reason=reason)
