"""Output path derivation and temporary file handling.

Path resolution is pure: it never touches the filesystem. The only managed
external state is the merge concat list, created and removed by
``FileManager.concat_list_file``.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from collections.abc import Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import Protocol

from ffwrap.backend.services.errors import (
    InputNotFound,
    OutputExists,
    TempResourceCleanupFailure,
    TempResourceCreationFailure,
)

# Pattern outputs are expanded by ffmpeg (image2 muxer), not by us
_TEMPLATE_MARKERS = ("%d", "%0")


def resolve_output_path(
    input_path: str | Path,
    explicit_output: str | Path | None,
    target_extension: str,
    suffix: str,
) -> Path:
    """Derive the output path for an operation.

    An explicit output is used verbatim. Otherwise the output sits next to the
    input as ``{stem}.{target_extension}``; when that would reuse the input's
    own extension, ``suffix`` is appended to the stem so the input is never
    overwritten.

    Args:
        input_path: Source file.
        explicit_output: User supplied output, if any.
        target_extension: Extension of the output, with or without the dot.
        suffix: Disambiguating suffix such as ``"_converted"``.

    Returns:
        The resolved output path.
    """
    if explicit_output:
        return Path(explicit_output)

    source = Path(input_path)
    extension = target_extension.lstrip(".")
    if source.suffix.lstrip(".").lower() == extension.lower():
        return source.with_name(f"{source.stem}{suffix}.{extension}")
    return source.with_name(f"{source.stem}.{extension}")


def sequence_output_path(
    input_path: str | Path,
    explicit_output: str | Path | None,
    pattern: str,
) -> Path:
    """Derive a numbered or fixed-name output next to the input.

    Args:
        input_path: Source file.
        explicit_output: User supplied output, if any.
        pattern: Name tail appended to the input stem, e.g. ``"_thumb_%02d.png"``.

    Returns:
        The resolved output path (possibly an ffmpeg sequence template).
    """
    if explicit_output:
        return Path(explicit_output)
    source = Path(input_path)
    return source.with_name(f"{source.stem}{pattern}")


def is_output_template(path: str | Path) -> bool:
    """Return True if the path is a numbered sequence template (``%02d``)."""
    text = str(path)
    return any(marker in text for marker in _TEMPLATE_MARKERS)


def quote_concat_path(path: str | Path) -> str:
    """Quote a path for a concat demuxer list line.

    Single quotes inside the path are closed, escaped and reopened.
    """
    escaped = str(path).replace("'", "'\\''")
    return f"file '{escaped}'"


def render_concat_list(inputs: Sequence[str | Path]) -> str:
    """Render the newline separated concat list for ``inputs`` as absolute paths."""
    return "\n".join(quote_concat_path(Path(p).resolve()) for p in inputs)


class FileManagerProtocol(Protocol):
    """Protocol for file management implementations."""

    def check_inputs(self, paths: Sequence[Path]) -> None:
        """Raise InputNotFound for the first missing input."""
        ...

    def check_output(self, path: Path, *, overwrite: bool) -> None:
        """Raise OutputExists when ``path`` exists and overwrite is off."""
        ...

    def concat_list_file(self, inputs: Sequence[Path]) -> AbstractContextManager[Path]:
        """Context manager yielding a temporary concat list path."""
        ...


class FileManager:
    """Filesystem checks and temporary files for operations.

    Handles input/output existence checks and the lifetime of the concat list
    used by merges.
    """

    def __init__(self, base_dir: str | Path) -> None:
        """Initialize file manager.

        Args:
            base_dir: Directory where temporary files are created.
        """
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        """Get the temporary directory path.

        Returns:
            The base directory as a Path object.
        """
        return self._base_dir

    def ensure_base_dir(self) -> None:
        """Ensure the temporary directory exists."""
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def check_inputs(self, paths: Sequence[Path]) -> None:
        """Verify every input exists.

        Args:
            paths: Input files.

        Raises:
            InputNotFound: For the first path that is missing.
        """
        for path in paths:
            if not Path(path).exists():
                raise InputNotFound(str(path))

    def check_output(self, path: Path, *, overwrite: bool) -> None:
        """Verify the output may be written.

        Sequence templates are skipped since ffmpeg expands them itself.

        Args:
            path: Resolved output path.
            overwrite: Whether replacing an existing file was requested.

        Raises:
            OutputExists: If the file exists and overwrite is off.
        """
        if overwrite or is_output_template(path):
            return
        if Path(path).exists():
            raise OutputExists(str(path))

    def new_concat_list_path(self) -> Path:
        """Return a unique, not yet existing path for a concat list.

        Names combine a millisecond timestamp, the pid and a random suffix so
        concurrent merges never share a file.
        """
        stamp = int(time.time() * 1000)
        name = f"ffwrap_concat_{stamp}_{os.getpid()}_{uuid.uuid4().hex[:8]}.txt"
        return self._base_dir / name

    @contextmanager
    def concat_list_file(self, inputs: Sequence[Path]) -> Iterator[Path]:
        """Write a concat list for ``inputs`` and remove it on exit.

        The file is removed whether the body succeeds or raises; a failed
        removal is logged and otherwise ignored.

        Args:
            inputs: Files to concatenate, in order.

        Yields:
            Path to the list file.

        Raises:
            TempResourceCreationFailure: If the list file cannot be written.
        """
        list_path = self.new_concat_list_path()
        try:
            self.ensure_base_dir()
            list_path.write_text(render_concat_list(inputs), encoding="utf-8")
        except OSError as e:
            raise TempResourceCreationFailure(str(list_path), str(e)) from e
        logging.debug("Wrote concat list %s for %d inputs", list_path, len(inputs))
        try:
            yield list_path
        finally:
            try:
                self.remove_temp_file(list_path)
            except TempResourceCleanupFailure as e:
                logging.warning("%s", e.message)

    def remove_temp_file(self, path: Path) -> None:
        """Remove a temporary file if present.

        Args:
            path: File to delete.

        Raises:
            TempResourceCleanupFailure: If the file exists but cannot be removed.
        """
        try:
            path.unlink(missing_ok=True)
            logging.debug("Cleaned up temporary file: %s", path)
        except OSError as e:
            raise TempResourceCleanupFailure(str(path), str(e)) from e
