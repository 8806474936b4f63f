"""
Tests for file_processor.validator.
"""

import pytest

from file_processor.models import ProcessorConfig
from file_processor.validator import (
    FILE_TOO_LARGE,
    NOT_A_FILE,
    UNSUPPORTED_EXTENSION,
    check_eligibility,
    is_eligible,
)


@pytest.fixture
def small_config(temp_dir):
    return ProcessorConfig(input_directory=temp_dir, max_file_size_bytes=100)


class TestCheckEligibility:
    """Tests for check_eligibility."""

    def test_supported_file_is_eligible(self, temp_dir, small_config):
        """Test that a small file with an allowed extension is eligible."""
        path = temp_dir / "notes.txt"
        path.write_text("hello")

        assert check_eligibility(path, small_config) is None
        assert is_eligible(path, small_config)

    def test_extension_is_case_insensitive(self, temp_dir, small_config):
        """Test that REPORT.JSON matches .json."""
        path = temp_dir / "REPORT.JSON"
        path.write_text("{}")

        assert check_eligibility(path, small_config) is None

    def test_unsupported_extension(self, temp_dir, small_config):
        """Test that an extension outside the allow-list is rejected."""
        path = temp_dir / "image.png"
        path.write_bytes(b"\x89PNG")

        assert check_eligibility(path, small_config) == UNSUPPORTED_EXTENSION

    def test_unsupported_extension_checked_before_stat(self, temp_dir, small_config):
        """Test that a missing file with a bad extension does not raise."""
        assert check_eligibility(temp_dir / "gone.exe", small_config) == UNSUPPORTED_EXTENSION

    def test_size_at_limit_is_eligible(self, temp_dir, small_config):
        """Test that a file exactly at the limit is accepted."""
        path = temp_dir / "exact.txt"
        path.write_bytes(b"x" * 100)

        assert check_eligibility(path, small_config) is None

    def test_size_over_limit(self, temp_dir, small_config):
        """Test that a file over the limit is rejected."""
        path = temp_dir / "big.txt"
        path.write_bytes(b"x" * 101)

        assert check_eligibility(path, small_config) == FILE_TOO_LARGE
        assert not is_eligible(path, small_config)

    def test_directory_is_not_eligible(self, temp_dir, small_config):
        """Test that a directory named like a file is rejected."""
        path = temp_dir / "folder.txt"
        path.mkdir()

        assert check_eligibility(path, small_config) == NOT_A_FILE

    def test_missing_file_raises(self, temp_dir, small_config):
        """Test that a vanished file surfaces as FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            check_eligibility(temp_dir / "gone.txt", small_config)
