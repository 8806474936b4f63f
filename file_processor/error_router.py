"""
Error routing for files that could not be processed.

Failed files are moved to {output}/errors/{base}_error_{timestamp}{ext}.
"""

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from file_processor.transforms import timestamped_path


logger = logging.getLogger(__name__)


class ErrorRouter:
    """Moves unprocessable files into the error directory."""

    def __init__(self, error_directory: Path, clock: Callable[[], datetime] = datetime.now):
        self.error_directory = Path(error_directory)
        self._clock = clock

    def route(self, path: Path) -> Optional[Path]:
        """
        Move a failed file to the error directory.

        Never raises. If the move fails the file stays in the input directory
        and is picked up again by the next reconciliation pass.

        Args:
            path: File that failed processing

        Returns:
            New location of the file, or None if it could not be moved
        """
        path = Path(path)

        try:
            self.error_directory.mkdir(parents=True, exist_ok=True)
            error_path = timestamped_path(self.error_directory, path, "error", self._clock())
            shutil.move(str(path), str(error_path))
        except OSError as e:
            logger.error(
                f"Failed to move file to error directory: {path}",
                exc_info=True,
                extra={"fields": {"error": e}}
            )
            return None

        logger.warning(
            f"Moved failed file to error directory: {error_path}",
            extra={"fields": {"source": path.name}}
        )
        return error_path
