"""Translate ffmpeg diagnostic output into actionable messages.

Best effort only: known failure signatures are matched in priority order,
then a keyword line scan is tried, then a generic message is returned.
Unrecognised output never raises.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ffwrap.backend.services.errors import format_message

GENERIC_MESSAGE = "Conversion failed. Run with --verbose for more details"


@dataclass(frozen=True)
class Diagnosis:
    """Classified failure.

    Attributes:
        message: Short description of the failure.
        suggestion: How to fix it, when known.
    """

    message: str
    suggestion: str | None = None

    def format(self) -> str:
        """Return the user-facing rendering."""
        return format_message(self.message, self.suggestion)


@dataclass(frozen=True)
class ErrorPattern:
    """A known ffmpeg failure signature."""

    pattern: re.Pattern[str]
    message: str
    suggestion: str


def _p(regex: str, message: str, suggestion: str) -> ErrorPattern:
    return ErrorPattern(re.compile(regex, re.IGNORECASE), message, suggestion)


_RESOLUTION_HINT = (
    "Video dimensions must be divisible by 2. Try a standard resolution like 720p or 1080p"
)

# First match wins; keep specific signatures above generic ones.
ERROR_PATTERNS: tuple[ErrorPattern, ...] = (
    _p(r"No such file or directory", "File not found", "Check if the input file path is correct"),
    _p(
        r"Invalid data found when processing input",
        "Corrupted or unsupported file",
        "The input file may be corrupted or in an unsupported format",
    ),
    _p(
        r"Permission denied",
        "Permission denied",
        "Check if you have read/write permissions for the file",
    ),
    _p(
        r"already exists\. Overwrite",
        "Output file already exists",
        "Use --overwrite (-y) to replace the existing file",
    ),
    _p(
        r"Unknown encoder '([^']+)'",
        "Codec not available",
        "The requested codec is not installed. Try a different codec or install ffmpeg "
        "with full codec support",
    ),
    _p(
        r"Encoder ([^ ]+) not found",
        "Encoder not found",
        "The requested encoder is not available. Try a different codec",
    ),
    _p(
        r"Decoder ([^ ]+) not found",
        "Decoder not found",
        "Cannot decode the input file format. The codec may not be supported",
    ),
    _p(
        r"Could not write header",
        "Cannot write to output",
        "Check if you have write permission and enough disk space",
    ),
    _p(
        r"Could not open file",
        "Cannot open file",
        "Check file permissions and ensure the path is valid",
    ),
    _p(r"height not divisible by 2", "Invalid resolution", _RESOLUTION_HINT),
    _p(r"width not divisible by 2", "Invalid resolution", _RESOLUTION_HINT),
    _p(r"No space left on device", "Disk full", "Free up disk space and try again"),
    _p(r"Invalid argument", "Invalid option value", "Check if all option values are correct"),
    _p(r"Option ([^ ]+) not found", "Invalid option", "The specified option is not recognized"),
    _p(
        r"Avi timescale is invalid",
        "Invalid video timing",
        "Try setting a fixed frame rate with --fps 30",
    ),
    _p(
        r"Avi duration is invalid",
        "Invalid video duration",
        "The input file may have timing issues. Try re-encoding with a fixed frame rate",
    ),
    _p(
        r"moov atom not found",
        "Incomplete MP4 file",
        "The MP4 file appears to be incomplete or corrupted. It may have been interrupted "
        "during recording",
    ),
    _p(
        r"Stream map '([^']+)' matches no streams",
        "Stream not found",
        "The specified stream doesn't exist in the input file",
    ),
    _p(
        r"Output file is empty",
        "Empty output",
        "No data was written. Check if the input has valid media streams",
    ),
    _p(
        r"At least one output file must be specified",
        "Missing output file",
        "Please specify an output file path",
    ),
    _p(
        r"Avi format does not support",
        "Format incompatibility",
        "The AVI format doesn't support this feature. Try using MP4 or MKV instead",
    ),
    _p(
        r"Could not find codec parameters",
        "Cannot read media info",
        "The input file's codec information cannot be read. The file may be corrupted",
    ),
    _p(
        r"Too many packets buffered",
        "Memory overflow",
        "The input file has sync issues. Try adding -max_muxing_queue_size 1024",
    ),
)

_FAILURE_KEYWORDS = (
    "Error",
    "error",
    "Invalid",
    "Cannot",
    "Could not",
    "No such",
    "not found",
)

# "[libx264 @ 0x55d...] " style component prefix
_COMPONENT_PREFIX = re.compile(r"^\[.*?\]\s*")


def parse_error(stderr: str) -> Diagnosis | None:
    """Match ``stderr`` against the known failure signatures.

    Args:
        stderr: Raw ffmpeg diagnostic text.

    Returns:
        The first matching diagnosis, or None.
    """
    for entry in ERROR_PATTERNS:
        if entry.pattern.search(stderr):
            return Diagnosis(entry.message, entry.suggestion)
    return None


def _scan_failure_line(stderr: str) -> str | None:
    for line in stderr.splitlines():
        if any(keyword in line for keyword in _FAILURE_KEYWORDS):
            cleaned = _COMPONENT_PREFIX.sub("", line.strip()).strip()
            if cleaned:
                return cleaned
    return None


def classify(stderr: str) -> Diagnosis:
    """Turn ffmpeg stderr into a diagnosis, never failing.

    Args:
        stderr: Raw ffmpeg diagnostic text.

    Returns:
        A known-signature diagnosis, the first failure-looking line stripped of
        its component prefix, or a generic message.
    """
    parsed = parse_error(stderr)
    if parsed:
        return parsed

    line = _scan_failure_line(stderr)
    if line:
        return Diagnosis(line)

    return Diagnosis(GENERIC_MESSAGE)


def format_error(stderr: str) -> str:
    """Classify ``stderr`` and render it for display."""
    return classify(stderr).format()


def is_codec_error(stderr: str) -> bool:
    """Return True if ffmpeg reported a missing encoder or decoder."""
    return (
        re.search(r"Unknown encoder|Encoder.*not found|Decoder.*not found", stderr, re.IGNORECASE)
        is not None
    )


def is_stream_copy_error(stderr: str) -> bool:
    """Return True if a stream-copy failure points at codecs, so re-encoding may help."""
    return "codec" in stderr.lower() or is_codec_error(stderr)
