"""Exception hierarchy for the ffwrap engine.

Validation errors are raised before any process is spawned. External tool
failures are raised only after the process exits, already classified.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ffwrap.backend.services.error_classifier import Diagnosis

INSTALL_INSTRUCTIONS = """Install ffmpeg using one of the following commands:

  macOS (Homebrew):      brew install ffmpeg
  Ubuntu/Debian:         sudo apt update && sudo apt install ffmpeg
  Fedora:                sudo dnf install ffmpeg
  Arch Linux:            sudo pacman -S ffmpeg
  Windows (Chocolatey):  choco install ffmpeg
  Windows (Winget):      winget install ffmpeg
  Windows (Scoop):       scoop install ffmpeg

After installation, restart your terminal and try again.
For more information, visit: https://ffmpeg.org/download.html"""


def format_message(message: str, suggestion: str | None = None) -> str:
    """Render a message/suggestion pair the way it is shown to users.

    Args:
        message: Short description of what went wrong.
        suggestion: Optional hint on how to fix it.

    Returns:
        A one or two line string.
    """
    if suggestion:
        return f"Error: {message}\n  → {suggestion}"
    return f"Error: {message}"


class FFwrapError(Exception):
    """Base class for all errors surfaced by the engine.

    Attributes:
        message: Human readable description.
        suggestion: Optional actionable hint.
    """

    default_suggestion: str | None = None

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion if suggestion is not None else self.default_suggestion

    def format(self) -> str:
        """Return the user-facing rendering of this error."""
        return format_message(self.message, self.suggestion)


class InputNotFound(FFwrapError):
    """An input file does not exist."""

    default_suggestion = "Check if the file path is correct"

    def __init__(self, path: str) -> None:
        super().__init__(f"File not found: {path}")
        self.path = path


class InvalidOptions(FFwrapError):
    """Options are missing, malformed, or select more than one exclusive mode."""


class MissingDuration(FFwrapError):
    """A derived parameter needs a probed duration that is not available."""

    default_suggestion = (
        "The file may be corrupted or not a media file; check it with 'ffwrap info'"
    )

    def __init__(self, message: str = "Could not determine media duration") -> None:
        super().__init__(message)


class ProbeFailed(FFwrapError):
    """ffprobe could not read a file's metadata."""

    default_suggestion = "The file may be corrupted or not a media file"

    def __init__(self, path: str) -> None:
        super().__init__(f"Could not read media information: {path}")
        self.path = path


class OutputExists(FFwrapError):
    """The resolved output path already exists and overwrite was not requested."""

    default_suggestion = "Use --overwrite (-y) to replace it"

    def __init__(self, path: str) -> None:
        super().__init__(f"Output file already exists: {path}")
        self.path = path


class ExternalToolFailure(FFwrapError):
    """The external binary exited with a non-zero status.

    Attributes:
        exit_code: Process exit status.
        stderr: Raw diagnostic output.
        diagnosis: Classified message/suggestion pair.
    """

    def __init__(self, exit_code: int, stderr: str, diagnosis: Diagnosis) -> None:
        super().__init__(diagnosis.message, diagnosis.suggestion)
        self.exit_code = exit_code
        self.stderr = stderr
        self.diagnosis = diagnosis


class Cancelled(FFwrapError):
    """The external process was terminated on request."""

    def __init__(self) -> None:
        super().__init__("Operation cancelled")


class ToolNotAvailable(FFwrapError):
    """The external binary could not be executed."""

    default_suggestion = INSTALL_INSTRUCTIONS

    def __init__(self, binary: str) -> None:
        super().__init__(f"{binary} is not installed or not found in PATH")
        self.binary = binary


class TempResourceCleanupFailure(FFwrapError):
    """A temporary file could not be removed. Logged, never surfaced."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Could not delete temporary file {path}: {reason}")
        self.path = path


class TempResourceCreationFailure(FFwrapError):
    """A temporary file could not be written."""

    default_suggestion = "Check that the temporary directory (TMP_BASE_DIR) is writable"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Could not create temporary file {path}: {reason}")
        self.path = path
