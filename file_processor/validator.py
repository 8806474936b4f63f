"""
File eligibility checks.

A file is eligible when its extension is in the allow-list (case-insensitive)
and its size does not exceed the configured ceiling. Ineligible files are not
errors: they are logged and left where they are.
"""

from pathlib import Path
from typing import Optional

from file_processor.models import ProcessorConfig


UNSUPPORTED_EXTENSION = "unsupported extension"
FILE_TOO_LARGE = "file too large"
NOT_A_FILE = "not a regular file"


def check_eligibility(path: Path, config: ProcessorConfig) -> Optional[str]:
    """
    Classify a candidate file.

    Args:
        path: Candidate file
        config: Pipeline configuration

    Returns:
        None if the file is eligible, otherwise the reason it is not

    Raises:
        OSError: If the stat call fails (e.g. the file vanished)
    """
    path = Path(path)

    if path.suffix.lower() not in config.supported_extensions:
        return UNSUPPORTED_EXTENSION

    stat_result = path.stat()
    if not path.is_file():
        return NOT_A_FILE

    if stat_result.st_size > config.max_file_size_bytes:
        return FILE_TOO_LARGE

    return None


def is_eligible(path: Path, config: ProcessorConfig) -> bool:
    """Return True if the file should be processed."""
    return check_eligibility(path, config) is None
