"""
Tests for file_processor.readiness.
"""

import os
import pytest
from unittest.mock import Mock

from file_processor.errors import FailureKind, StillLockedError
from file_processor.models import ProcessorConfig
from file_processor.readiness import ReadinessGate, exclusive_open_probe


class TestReadinessGate:
    """Tests for ReadinessGate."""

    def test_ready_on_first_attempt(self, temp_dir):
        """Test that an unlocked file is ready immediately without sleeping."""
        sleep = Mock()
        gate = ReadinessGate(attempts=3, delay_seconds=0.5, probe=Mock(), sleep=sleep)

        assert gate.wait_until_ready(temp_dir / "a.txt") == 1
        sleep.assert_not_called()

    def test_ready_after_retries(self, temp_dir):
        """Test that the gate retries while the probe fails."""
        probe = Mock(side_effect=[PermissionError("locked"), OSError("busy"), None])
        sleep = Mock()
        gate = ReadinessGate(attempts=5, delay_seconds=0.5, probe=probe, sleep=sleep)

        assert gate.wait_until_ready(temp_dir / "a.txt") == 3
        assert sleep.call_count == 2
        sleep.assert_called_with(0.5)

    def test_still_locked_after_all_attempts(self, temp_dir):
        """Test that exhausting attempts raises StillLockedError."""
        probe = Mock(side_effect=OSError("locked"))
        sleep = Mock()
        gate = ReadinessGate(attempts=4, delay_seconds=0.1, probe=probe, sleep=sleep)

        with pytest.raises(StillLockedError) as exc_info:
            gate.wait_until_ready(temp_dir / "a.txt")

        assert exc_info.value.kind == FailureKind.STILL_LOCKED
        assert exc_info.value.attempts == 4
        assert probe.call_count == 4
        # No sleep after the final attempt
        assert sleep.call_count == 3

    def test_missing_file_propagates(self, temp_dir):
        """Test that a file deleted while waiting is not retried."""
        probe = Mock(side_effect=FileNotFoundError("gone"))
        gate = ReadinessGate(attempts=5, probe=probe, sleep=Mock())

        with pytest.raises(FileNotFoundError):
            gate.wait_until_ready(temp_dir / "a.txt")

        assert probe.call_count == 1

    def test_max_wait_seconds(self):
        """Test the worst-case sleep bound."""
        assert ReadinessGate(attempts=10, delay_seconds=0.5).max_wait_seconds == 4.5

    def test_invalid_attempts(self):
        """Test that at least one attempt is required."""
        with pytest.raises(ValueError):
            ReadinessGate(attempts=0)

    def test_from_config(self):
        """Test building the gate from configuration."""
        gate = ReadinessGate.from_config(ProcessorConfig(readiness_attempts=7, readiness_delay_ms=200))

        assert gate.attempts == 7
        assert gate.delay_seconds == 0.2


class TestExclusiveOpenProbe:
    """Tests for exclusive_open_probe."""

    def test_unlocked_file(self, temp_dir):
        """Test that a closed file passes the probe."""
        path = temp_dir / "a.txt"
        path.write_text("done")

        exclusive_open_probe(path)

    def test_missing_file(self, temp_dir):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            exclusive_open_probe(temp_dir / "missing.txt")

    @pytest.mark.skipif(os.name == "nt", reason="flock is POSIX only")
    def test_flocked_file_fails_probe(self, temp_dir):
        """Test that a file locked by a writer fails the probe."""
        import fcntl

        path = temp_dir / "writing.txt"
        path.write_text("partial")

        with open(path, "ab") as writer:
            fcntl.flock(writer.fileno(), fcntl.LOCK_EX)
            try:
                with pytest.raises(OSError):
                    exclusive_open_probe(path)
            finally:
                fcntl.flock(writer.fileno(), fcntl.LOCK_UN)

        exclusive_open_probe(path)
