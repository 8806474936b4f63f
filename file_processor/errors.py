"""
Error taxonomy for the file processing pipeline.

Every processing failure is contained at the Processor or DirectoryWatcher
boundary. Only ConfigError is allowed to stop the process, and only at startup.
"""

from enum import Enum
from pathlib import Path
from typing import Optional


class FailureKind(str, Enum):
    """Why a file did not make it to the output directory."""
    INELIGIBLE = "ineligible"                       # Extension or size, file left in place
    STILL_LOCKED = "still_locked"                   # Readiness attempts exhausted
    MALFORMED_CONTENT = "malformed_content"         # JSON/XML parse failure
    TRANSFORM_IO_FAILURE = "transform_io_failure"   # Disk full, permission denied, ...
    WATCHER_FAILURE = "watcher_failure"             # OS notification channel error


class ProcessingError(Exception):
    """Base class for failures that route a file to the error directory."""

    kind: FailureKind = FailureKind.TRANSFORM_IO_FAILURE

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class StillLockedError(ProcessingError):
    """Raised when a file is still held by its writer after every readiness attempt."""

    kind = FailureKind.STILL_LOCKED

    def __init__(self, path: Path, attempts: int):
        super().__init__(
            f"File still in use after {attempts} attempts: {path}",
            path=path
        )
        self.attempts = attempts


class MalformedContentError(ProcessingError):
    """Raised when a JSON or XML file does not parse."""

    kind = FailureKind.MALFORMED_CONTENT


class TransformIOError(ProcessingError):
    """Raised when reading the source or writing the output fails."""

    kind = FailureKind.TRANSFORM_IO_FAILURE


class ConfigError(Exception):
    """Raised when the pipeline configuration cannot be loaded or is invalid."""
