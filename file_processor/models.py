"""
Data models for the file processing pipeline.

Defines Pydantic models for configuration, units of work and processing results.
"""

from enum import Enum
from pathlib import Path
from datetime import datetime
from typing import FrozenSet, Iterable, Optional, Union
from pydantic import BaseModel, Field, field_validator, ConfigDict

from file_processor.errors import FailureKind


DEFAULT_EXTENSIONS = (".txt", ".csv", ".json", ".xml")
DEFAULT_MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def normalize_extension(extension: str) -> str:
    """Lower-case an extension and make sure it carries its leading dot."""
    extension = extension.strip().lower()
    if extension and not extension.startswith("."):
        extension = "." + extension
    return extension


class DiscoverySource(str, Enum):
    """How a file was discovered."""
    EVENT = "event"                     # Filesystem notification
    RECONCILIATION = "reconciliation"   # Periodic directory scan


class OutcomeStatus(str, Enum):
    """Result of one Processor invocation."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class WatcherState(str, Enum):
    """Lifecycle of the directory watcher."""
    STOPPED = "stopped"
    RUNNING = "running"
    FAULTED = "faulted"
    RESTARTING = "restarting"


class ProcessorConfig(BaseModel):
    """
    Pipeline configuration.

    Immutable once built. Accepts both the snake_case field names and the
    PascalCase option names used by the JSON settings file.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    input_directory: Path = Field(
        default=Path("./input"),
        alias="InputDirectory",
        description="Directory to monitor for input files"
    )
    output_directory: Path = Field(
        default=Path("./output"),
        alias="OutputDirectory",
        description="Directory to place processed files"
    )
    supported_extensions: FrozenSet[str] = Field(
        default=frozenset(DEFAULT_EXTENSIONS),
        alias="SupportedExtensions",
        description="Extensions eligible for processing, leading dot included"
    )
    max_file_size_bytes: int = Field(
        default=DEFAULT_MAX_FILE_SIZE_BYTES,
        gt=0,
        alias="MaxFileSizeBytes",
        description="Maximum file size in bytes that can be processed"
    )
    processing_interval_seconds: int = Field(
        default=30,
        gt=0,
        alias="ProcessingIntervalSeconds",
        description="Seconds between reconciliation scans"
    )

    # Pipeline tuning
    queue_capacity: int = Field(default=100, gt=0, alias="QueueCapacity")
    readiness_attempts: int = Field(default=10, gt=0, alias="ReadinessAttempts")
    readiness_delay_ms: int = Field(default=500, ge=0, alias="ReadinessDelayMs")
    watcher_restart_delay_seconds: float = Field(default=1.0, ge=0, alias="WatcherRestartDelaySeconds")
    watcher_max_restart_attempts: int = Field(default=3, gt=0, alias="WatcherMaxRestartAttempts")

    # Logging
    log_level: str = Field(default="INFO", alias="LogLevel")
    log_file: Optional[Path] = Field(default=None, alias="LogFile")

    @field_validator("supported_extensions", mode="before")
    @classmethod
    def validate_extensions(cls, v: Union[str, Iterable[str]]) -> FrozenSet[str]:
        """Accept a comma-separated string or any iterable; normalize each entry."""
        if isinstance(v, str):
            v = v.split(",")
        extensions = frozenset(
            normalize_extension(ext) for ext in v if normalize_extension(ext)
        )
        if not extensions:
            raise ValueError("At least one supported extension is required")
        return extensions

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def error_directory(self) -> Path:
        """Subdirectory of the output directory that receives failed files."""
        return self.output_directory / "errors"

    @property
    def readiness_delay_seconds(self) -> float:
        return self.readiness_delay_ms / 1000.0


class FileTask(BaseModel):
    """
    A discovered candidate file awaiting eligibility check and processing.

    Ephemeral: created on intake, discarded once the Processor is done with it.
    """

    model_config = ConfigDict(frozen=True)

    path: Path
    source: DiscoverySource = DiscoverySource.EVENT
    discovered_at: str = Field(default_factory=lambda: datetime.now().isoformat())


class ProcessingOutcome(BaseModel):
    """
    Result of one Processor invocation.

    Used for logging and statistics only, never persisted.
    """

    model_config = ConfigDict(use_enum_values=True)

    status: OutcomeStatus
    path: str
    output_path: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[FailureKind] = None
    error_path: Optional[str] = None
    reason: Optional[str] = None
    completed_at: str = Field(default_factory=lambda: datetime.now().isoformat())

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS


class PipelineStatistics(BaseModel):
    """Running counters for one pipeline run."""

    total_submitted: int = 0
    total_succeeded: int = 0
    total_skipped: int = 0
    total_failed: int = 0
    total_duplicates: int = 0
    total_discarded: int = 0  # queued but dropped at shutdown
    last_processed_at: Optional[str] = None

    def record(self, outcome: ProcessingOutcome) -> None:
        """Count an outcome."""
        if outcome.status == OutcomeStatus.SUCCESS:
            self.total_succeeded += 1
        elif outcome.status == OutcomeStatus.SKIPPED:
            self.total_skipped += 1
        else:
            self.total_failed += 1
        self.last_processed_at = outcome.completed_at
