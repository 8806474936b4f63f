"""
File Processor - watched-directory file transformation service with watchdog support.

Watches an input directory, transforms each eligible file by type and deletes
the original. Files that cannot be processed are moved aside instead.

Layout:
- {input}/                          - files waiting to be processed
- {output}/{base}_processed_{ts}    - transformed files
- {output}/errors/{base}_error_{ts} - files that failed processing
"""

__version__ = "1.0.0"

from file_processor.models import (
    DiscoverySource,
    FileTask,
    OutcomeStatus,
    PipelineStatistics,
    ProcessingOutcome,
    ProcessorConfig,
    WatcherState,
)

from file_processor.errors import (
    ConfigError,
    FailureKind,
    MalformedContentError,
    ProcessingError,
    StillLockedError,
    TransformIOError,
)
from file_processor.config import ConfigManager, DEFAULT_CONFIG_FILE
from file_processor.processor import FileProcessor
from file_processor.pipeline import Pipeline
from file_processor.watcher import DirectoryWatcher
from file_processor.reconciler import Reconciler

__all__ = [
    # Models
    "DiscoverySource",
    "FileTask",
    "OutcomeStatus",
    "PipelineStatistics",
    "ProcessingOutcome",
    "ProcessorConfig",
    "WatcherState",
    # Errors
    "ConfigError",
    "FailureKind",
    "MalformedContentError",
    "ProcessingError",
    "StillLockedError",
    "TransformIOError",
    # Config
    "ConfigManager",
    "DEFAULT_CONFIG_FILE",
    # Components
    "FileProcessor",
    "Pipeline",
    "DirectoryWatcher",
    "Reconciler",
]
