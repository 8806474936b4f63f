"""
Type-specific file transforms.

Each transform reads a source file and writes one output file (plus a
.metadata sidecar for generic copies). Outputs are named
{base}_processed_{YYYYMMDD_HHMMSS}{ext} and written atomically.
"""

import codecs
import json
import re
import xml.etree.ElementTree as ET
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional
from xml.sax.saxutils import escape

from file_processor.atomic import AtomicFileWriter
from file_processor.errors import MalformedContentError, ProcessingError, TransformIOError


TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"

METADATA_SUFFIX = ".metadata"

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>\s*")
_XML_ENCODING = re.compile(rb"""^<\?xml[^>]*?\bencoding\s*=\s*["']([A-Za-z][A-Za-z0-9._-]*)["']""")

# Longest first: the UTF-32 LE mark begins with the UTF-16 LE one
_BYTE_ORDER_MARKS = [
    (codecs.BOM_UTF32_LE, "utf-32"),
    (codecs.BOM_UTF32_BE, "utf-32"),
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
]

# Line terminators recognized when counting lines
_LINE_BREAK = re.compile(r"\r\n|\r|\n")

TransformFunc = Callable[[Path, Path, datetime], None]


def timestamped_path(directory: Path, source: Path, tag: str, when: datetime) -> Path:
    """
    Build {directory}/{stem}_{tag}_{timestamp}{suffix}, avoiding existing files.

    A second file with the same base name inside the same second gets a
    numeric suffix (_1, _2, ...) rather than overwriting the first.
    """
    stem, suffix = source.stem, source.suffix
    timestamp = when.strftime(TIMESTAMP_FORMAT)

    candidate = directory / f"{stem}_{tag}_{timestamp}{suffix}"
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem}_{tag}_{timestamp}_{counter}{suffix}"
        counter += 1
    return candidate


def _header(title: str, source: Path, count_label: str, count: int, when: datetime) -> List[str]:
    return [
        f"# {title}: {when.strftime(DISPLAY_FORMAT)}",
        f"# Original file: {source.name}",
        f"# Total {count_label}: {count}",
        "",
    ]


def _read_lines(source: Path) -> List[str]:
    """Split on CR, LF and CRLF only; a final terminator does not start a new line."""
    text = source.read_text(encoding="utf-8-sig", errors="replace")
    lines = _LINE_BREAK.split(text)
    if lines[-1] == "":
        lines.pop()
    return lines


def _reject_constant(name: str) -> None:
    raise ValueError(f"{name} is not a valid JSON value")


def _xml_encoding(raw: bytes) -> str:
    """Pick the codec for an XML document from its byte order mark or declaration."""
    for mark, encoding in _BYTE_ORDER_MARKS:
        if raw.startswith(mark):
            return encoding

    # UTF-16 without a mark, recognized by how "<?" is encoded
    if raw.startswith(b"\x00<\x00?"):
        return "utf-16-be"
    if raw.startswith(b"<\x00?\x00"):
        return "utf-16-le"

    match = _XML_ENCODING.match(raw)
    if match:
        return match.group(1).decode("ascii")
    return "utf-8"


def transform_text(source: Path, output: Path, when: datetime) -> None:
    """Number each line and prepend a metadata header."""
    lines = _read_lines(source)
    processed = _header("Processed on", source, "lines", len(lines), when)
    processed.extend(f"{i:04d}: {line}" for i, line in enumerate(lines, start=1))
    AtomicFileWriter.write_lines(output, processed)


def transform_csv(source: Path, output: Path, when: datetime) -> None:
    """Tag the header row and number data rows; prepend a metadata header."""
    lines = _read_lines(source)
    processed = _header("CSV Processed on", source, "rows", len(lines), when)
    for i, line in enumerate(lines):
        prefix = "HEADER" if i == 0 else f"ROW_{i:04d}"
        processed.append(f"{prefix},{line}")
    AtomicFileWriter.write_lines(output, processed)


def transform_json(source: Path, output: Path, when: datetime) -> None:
    """Validate JSON and wrap it with a Metadata object."""
    raw = source.read_bytes()
    try:
        # Bytes input lets json detect UTF-8/16/32 and skip a byte order mark
        original = json.loads(raw, parse_constant=_reject_constant)
    except ValueError as e:
        raise MalformedContentError(f"Invalid JSON format: {e}", path=source) from e

    document = {
        "Metadata": {
            "ProcessedOn": when.isoformat(),
            "OriginalFile": source.name,
            "FileSize": source.stat().st_size,
            "IsValidJson": True,
        },
        "OriginalContent": original,
    }
    AtomicFileWriter.write_json(output, document, indent=2)


def transform_xml(source: Path, output: Path, when: datetime) -> None:
    """Validate XML and embed the original text in a ProcessedDocument envelope."""
    raw = source.read_bytes()
    try:
        ET.fromstring(raw)
        content = raw.decode(_xml_encoding(raw))
    except (ET.ParseError, UnicodeDecodeError, LookupError) as e:
        raise MalformedContentError(f"Invalid XML format: {e}", path=source) from e

    # A declaration is only legal at the very start of the envelope
    body = _XML_DECLARATION.sub("", content, count=1).rstrip()

    lines = [
        '<?xml version="1.0" encoding="utf-8"?>',
        "<ProcessedDocument>",
        "  <Metadata>",
        f"    <ProcessedOn>{when.strftime(DISPLAY_FORMAT)}</ProcessedOn>",
        f"    <OriginalFile>{escape(source.name)}</OriginalFile>",
        f"    <FileSize>{len(raw)}</FileSize>",
        "    <IsValidXml>true</IsValidXml>",
        "  </Metadata>",
        "  <OriginalContent>",
        body,
        "  </OriginalContent>",
        "</ProcessedDocument>",
    ]
    AtomicFileWriter.write_lines(output, lines)


def transform_generic(source: Path, output: Path, when: datetime) -> None:
    """Copy the file unchanged and write a .metadata sidecar next to it."""
    AtomicFileWriter.copy(source, output)

    metadata = [
        f"Processed on: {when.strftime(DISPLAY_FORMAT)}",
        f"Original file: {source.name}",
        f"File size: {source.stat().st_size} bytes",
        "Processing type: Generic copy",
    ]
    try:
        AtomicFileWriter.write_lines(metadata_path(output), metadata)
    except OSError:
        # The source is about to be error-routed; do not leave a copy behind too
        output.unlink(missing_ok=True)
        raise


def metadata_path(output: Path) -> Path:
    """Sidecar path for a generically copied output."""
    return output.with_name(output.name + METADATA_SUFFIX)


DEFAULT_TRANSFORMS: Dict[str, TransformFunc] = {
    ".txt": transform_text,
    ".csv": transform_csv,
    ".json": transform_json,
    ".xml": transform_xml,
}


class TypeDispatcher:
    """
    Selects and runs the transform for a file extension.

    Extensions without a dedicated transform fall back to a generic copy.
    """

    def __init__(
        self,
        output_directory: Path,
        transforms: Optional[Dict[str, TransformFunc]] = None,
        fallback: TransformFunc = transform_generic,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize dispatcher.

        Args:
            output_directory: Where processed files are written
            transforms: Extension -> transform mapping (defaults to text/CSV/JSON/XML)
            fallback: Transform for any other extension
            clock: Source of the processing timestamp
        """
        self.output_directory = Path(output_directory)
        self.transforms = dict(DEFAULT_TRANSFORMS if transforms is None else transforms)
        self.fallback = fallback
        self._clock = clock

    def select(self, extension: str) -> TransformFunc:
        """Return the transform for an extension (case-insensitive)."""
        return self.transforms.get(extension.lower(), self.fallback)

    def transform(self, path: Path, extension: Optional[str] = None) -> Path:
        """
        Transform a file into the output directory.

        Args:
            path: Source file
            extension: Extension used to pick the transform (defaults to the file's own)

        Returns:
            Path of the written output file

        Raises:
            MalformedContentError: If JSON/XML content does not parse
            TransformIOError: If reading the source or writing the output fails
        """
        path = Path(path)
        extension = (extension or path.suffix).lower()
        func = self.select(extension)
        when = self._clock()

        try:
            self.output_directory.mkdir(parents=True, exist_ok=True)
            output_path = timestamped_path(self.output_directory, path, "processed", when)
            func(path, output_path, when)
        except ProcessingError:
            raise
        except OSError as e:
            raise TransformIOError(f"I/O failure while processing {path.name}: {e}", path=path) from e

        return output_path
