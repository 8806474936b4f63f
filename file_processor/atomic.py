"""
Atomic file operations.

Outputs and config files are written to a temporary file in the target
directory first, then moved into place with os.replace(), so a reader never
sees a partially written file under its final name.
"""

import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Iterator, Optional
import json


class AtomicFileWriter:
    """
    Atomic file writer using temp file + atomic replace.

    Ensures that output files are never left half-written when the process
    dies or the disk fills up mid-write.
    """

    @staticmethod
    @contextmanager
    def open(filepath: Path, mode: str = "w", encoding: Optional[str] = "utf-8") -> Iterator[IO]:
        """
        Open a temporary sibling of filepath; replace filepath on clean exit.

        Args:
            filepath: Target file path
            mode: "w" for text, "wb" for bytes
            encoding: Text encoding (ignored in binary mode)

        Raises:
            Exception: If the write fails (temp file is cleaned up)
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        temp_path = None
        try:
            # Create temporary file in same directory for atomic replace
            with tempfile.NamedTemporaryFile(
                mode=mode,
                dir=filepath.parent,
                prefix=f".{filepath.name}.",
                suffix='.tmp',
                delete=False,
                encoding=None if "b" in mode else encoding,
                newline=None if "b" in mode else "",
            ) as tmp_file:
                temp_path = Path(tmp_file.name)
                yield tmp_file
                tmp_file.flush()
                os.fsync(tmp_file.fileno())  # Force write to disk

            # Atomic replace (POSIX guarantees this is atomic)
            os.replace(temp_path, filepath)

        except BaseException:
            # Clean up temp file on error
            if temp_path and temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    pass
            raise

    @staticmethod
    def write_text(filepath: Path, content: str, encoding: str = "utf-8") -> None:
        """Atomically write text content to a file."""
        with AtomicFileWriter.open(filepath, "w", encoding=encoding) as f:
            f.write(content)

    @staticmethod
    def write_lines(filepath: Path, lines, newline: str = "\n") -> None:
        """Atomically write lines, each terminated by newline."""
        with AtomicFileWriter.open(filepath, "w") as f:
            for line in lines:
                f.write(line)
                f.write(newline)

    @staticmethod
    def copy(source: Path, filepath: Path) -> None:
        """Atomically copy the bytes of source to filepath."""
        with open(source, "rb") as src:
            with AtomicFileWriter.open(filepath, "wb") as dst:
                shutil.copyfileobj(src, dst)

    @staticmethod
    def write_json(filepath: Path, data: Any, indent: int = 2) -> None:
        """
        Atomically write JSON data to a file.

        Args:
            filepath: Target file path
            data: Data to serialize as JSON
            indent: JSON indentation level
        """
        with AtomicFileWriter.open(filepath, "w") as f:
            json.dump(data, f, indent=indent, default=str, ensure_ascii=False, allow_nan=False)
            f.write("\n")

    @staticmethod
    def read_json(filepath: Path, default: Any = None) -> Any:
        """
        Read JSON file with safe defaults.

        Args:
            filepath: File to read
            default: Default value if file doesn't exist

        Returns:
            Parsed JSON data or default value

        Raises:
            json.JSONDecodeError: If the file exists but is not valid JSON
        """
        filepath = Path(filepath)

        if not filepath.exists():
            return default

        with open(filepath, 'r', encoding="utf-8-sig") as f:
            return json.load(f)
