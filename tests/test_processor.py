"""
Tests for file_processor.processor.

Covers the per-file steps (existence, eligibility, readiness, transform,
delete), error routing, and the single-flight guarantee.
"""

import threading
import time
import pytest
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

from file_processor.error_router import ErrorRouter
from file_processor.errors import FailureKind
from file_processor.models import DiscoverySource, FileTask, OutcomeStatus, ProcessorConfig
from file_processor.processor import MISSING, FileProcessor
from file_processor.readiness import ReadinessGate
from file_processor.transforms import TypeDispatcher
from file_processor.validator import FILE_TOO_LARGE, UNSUPPORTED_EXTENSION


@pytest.fixture
def processor(config, fixed_clock):
    return FileProcessor(
        config,
        dispatcher=TypeDispatcher(config.output_directory, clock=fixed_clock),
        error_router=ErrorRouter(config.error_directory, clock=fixed_clock),
    )


def _errors(config):
    if not config.error_directory.exists():
        return []
    return sorted(p.name for p in config.error_directory.iterdir())


def _outputs(config):
    if not config.output_directory.exists():
        return []
    return sorted(p.name for p in config.output_directory.iterdir() if p.is_file())


class TestProcessSuccess:
    """Tests for the happy path."""

    def test_text_file_processed_and_deleted(self, config, processor, input_dir):
        """Test that a valid file is transformed and the original removed."""
        source = input_dir / "notes.txt"
        source.write_text("one\ntwo\n")

        outcome = processor.process(FileTask(path=source))

        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.succeeded
        assert not source.exists()
        assert _outputs(config) == ["notes_processed_20240315_103045.txt"]
        assert Path(outcome.output_path).read_text().splitlines()[-1] == "0002: two"

    def test_generic_extension(self, input_dir, output_dir, fixed_clock):
        """Test that an allowed extension without a transform is copied with a sidecar."""
        config = ProcessorConfig(
            input_directory=input_dir,
            output_directory=output_dir,
            supported_extensions=".txt,.log",
            readiness_attempts=1,
        )
        processor = FileProcessor(config, dispatcher=TypeDispatcher(output_dir, clock=fixed_clock))
        source = input_dir / "app.log"
        source.write_bytes(b"raw bytes")

        outcome = processor.process(FileTask(path=source, source=DiscoverySource.RECONCILIATION))

        assert outcome.status == OutcomeStatus.SUCCESS
        assert _outputs(config) == [
            "app_processed_20240315_103045.log",
            "app_processed_20240315_103045.log.metadata",
        ]

    def test_delete_failure_keeps_success(self, processor, input_dir):
        """Test that a source that cannot be deleted is logged, not failed."""
        source = input_dir / "notes.txt"
        source.write_text("one\n")

        with patch.object(Path, "unlink", side_effect=PermissionError("denied")):
            outcome = processor.process(FileTask(path=source))

        assert outcome.status == OutcomeStatus.SUCCESS
        assert source.exists()


class TestProcessSkipped:
    """Tests for files that are left alone."""

    def test_missing_file(self, config, processor, input_dir):
        """Test that a vanished file is dropped without side effects."""
        outcome = processor.process(FileTask(path=input_dir / "gone.txt"))

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == MISSING
        assert _outputs(config) == []
        assert _errors(config) == []

    def test_unsupported_extension_left_in_place(self, config, processor, input_dir):
        """Test that an ineligible file stays in the input directory."""
        source = input_dir / "photo.png"
        source.write_bytes(b"\x89PNG")

        outcome = processor.process(FileTask(path=source))

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == UNSUPPORTED_EXTENSION
        assert source.exists()
        assert _outputs(config) == []
        assert _errors(config) == []

    def test_too_large_left_in_place(self, input_dir, output_dir):
        """Test that an oversized file stays in the input directory."""
        config = ProcessorConfig(input_directory=input_dir, output_directory=output_dir, max_file_size_bytes=10)
        processor = FileProcessor(config)
        source = input_dir / "big.txt"
        source.write_text("x" * 11)

        outcome = processor.process(FileTask(path=source))

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == FILE_TOO_LARGE
        assert source.exists()
        assert _errors(config) == []

    def test_skip_does_not_take_lock(self, config, input_dir):
        """Test that eligibility is checked before the lock."""
        lock = MagicMock()
        processor = FileProcessor(config, lock=lock)
        source = input_dir / "photo.png"
        source.write_bytes(b"png")

        processor.process(FileTask(path=source))

        lock.__enter__.assert_not_called()


class TestProcessFailure:
    """Tests for files routed to the error directory."""

    def test_malformed_json(self, config, processor, input_dir):
        """Test that invalid JSON ends up in errors/ and nowhere else."""
        source = input_dir / "broken.json"
        source.write_text('{"id": ')

        outcome = processor.process(FileTask(path=source))

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error_kind == FailureKind.MALFORMED_CONTENT.value
        assert not source.exists()
        assert _errors(config) == ["broken_error_20240315_103045.json"]
        assert _outputs(config) == []
        assert Path(outcome.error_path).read_text() == '{"id": '

    def test_still_locked(self, config, input_dir):
        """Test that a file that never becomes ready is routed to errors/."""
        readiness = ReadinessGate(attempts=3, probe=Mock(side_effect=OSError("locked")), sleep=Mock())
        processor = FileProcessor(config, readiness=readiness)
        source = input_dir / "busy.txt"
        source.write_text("partial")

        outcome = processor.process(FileTask(path=source))

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error_kind == FailureKind.STILL_LOCKED.value
        assert not source.exists()
        assert len(_errors(config)) == 1

    def test_unexpected_exception_is_contained(self, config, input_dir):
        """Test that an arbitrary exception becomes a failed outcome."""
        dispatcher = Mock()
        dispatcher.transform.side_effect = RuntimeError("boom")
        processor = FileProcessor(config, dispatcher=dispatcher)
        source = input_dir / "notes.txt"
        source.write_text("x")

        outcome = processor.process(FileTask(path=source))

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error_kind == FailureKind.TRANSFORM_IO_FAILURE.value
        assert outcome.error == "boom"

    def test_lock_released_before_error_routing(self, config, input_dir):
        """Test that the lock is free by the time the file is moved aside."""
        lock = threading.Lock()
        router = Mock()
        router.route.side_effect = lambda path: None if lock.locked() else Path("/moved")
        processor = FileProcessor(config, lock=lock, error_router=router)
        source = input_dir / "broken.json"
        source.write_text("nope")

        outcome = processor.process(FileTask(path=source))

        assert outcome.error_path == str(Path("/moved"))
        assert not lock.locked()

    def test_route_failure_still_reports_failure(self, config, input_dir):
        """Test that a failed move leaves the file and reports no error path."""
        router = Mock()
        router.route.return_value = None
        processor = FileProcessor(config, error_router=router)
        source = input_dir / "broken.json"
        source.write_text("nope")

        outcome = processor.process(FileTask(path=source))

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error_path is None
        assert source.exists()

    def test_file_deleted_during_processing(self, config, input_dir):
        """Test that a file removed mid-processing is dropped, not routed."""
        source = input_dir / "notes.txt"
        source.write_text("x")

        def vanish(path):
            path.unlink()

        readiness = ReadinessGate(attempts=1, probe=vanish)
        router = Mock()
        processor = FileProcessor(config, readiness=readiness, error_router=router)

        outcome = processor.process(FileTask(path=source))

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == MISSING
        router.route.assert_not_called()


class TestSingleFlight:
    """Tests for mutual exclusion across threads."""

    def test_one_file_at_a_time(self, config, input_dir):
        """Test that concurrent process() calls never overlap inside the lock."""
        active = 0
        max_active = 0
        counter_lock = threading.Lock()
        real_dispatcher = TypeDispatcher(config.output_directory)

        def slow_transform(path, extension=None):
            nonlocal active, max_active
            with counter_lock:
                active += 1
                max_active = max(max_active, active)
            time.sleep(0.02)
            try:
                return real_dispatcher.transform(path, extension)
            finally:
                with counter_lock:
                    active -= 1

        dispatcher = Mock()
        dispatcher.transform.side_effect = slow_transform
        processor = FileProcessor(config, dispatcher=dispatcher)

        files = []
        for i in range(8):
            path = input_dir / f"file{i}.txt"
            path.write_text(f"line {i}\n")
            files.append(path)

        threads = [
            threading.Thread(target=processor.process, args=(FileTask(path=f),))
            for f in files
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert max_active == 1
        assert dispatcher.transform.call_count == 8
        assert list(input_dir.iterdir()) == []
        assert not processor.lock.locked()
