"""FFmpeg execution adapter.

Combines the generic CommandRunner with the error classifier: a built
argument list goes in, and either a successful CommandResult or a classified
``ExternalToolFailure`` comes out.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from ffwrap.backend.services.command_runner import (
    CommandResult,
    CommandRunner,
    CommandRunnerProtocol,
    ProgressCallback,
    get_tool_version,
)
from ffwrap.backend.services.conversion_strategy import BuildResult
from ffwrap.backend.services.error_classifier import classify
from ffwrap.backend.services.errors import ExternalToolFailure


class FFmpegRunnerProtocol(Protocol):
    """Protocol for FFmpeg execution implementations."""

    def run(
        self,
        build: BuildResult,
        *,
        clip_duration: float | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        """Run a built command, raising ExternalToolFailure on a non-zero exit."""
        ...

    def version(self) -> str:
        """Return the ffmpeg version string."""
        ...


class FFmpegRunner:
    """Execute built ffmpeg commands.

    This is a thin adapter that:
    - Delegates execution to a CommandRunner
    - Classifies ffmpeg's stderr when the process fails
    """

    def __init__(
        self,
        *,
        binary: str = "ffmpeg",
        semaphore: threading.Semaphore | None = None,
        command_runner: CommandRunnerProtocol | None = None,
    ) -> None:
        """Initialize FFmpeg runner.

        Args:
            binary: ffmpeg executable name or path.
            semaphore: Optional semaphore for concurrency limiting.
            command_runner: Command runner (created with semaphore if not provided).
        """
        self._binary = binary
        self._command_runner = command_runner or CommandRunner(semaphore=semaphore)

    @property
    def binary(self) -> str:
        return self._binary

    @property
    def command_runner(self) -> CommandRunnerProtocol:
        return self._command_runner

    def run(
        self,
        build: BuildResult,
        *,
        clip_duration: float | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        """Run ``build`` through ffmpeg.

        Args:
            build: Arguments and output path from a strategy.
            clip_duration: Expected output duration for progress reporting.
            on_progress: Optional callback for progress updates.
            cancel_event: When set, ffmpeg is terminated.

        Returns:
            The successful process result.

        Raises:
            ExternalToolFailure: If ffmpeg exits non-zero.
            ToolNotAvailable: If ffmpeg cannot be executed.
            Cancelled: If the run was cancelled.
        """
        result = self._command_runner.run_command(
            build.args,
            binary=self._binary,
            clip_duration=clip_duration,
            on_progress=on_progress,
            cancel_event=cancel_event,
        )
        if result.ok:
            logging.info("ffmpeg finished: %s", build.output_path)
            return result

        diagnosis = classify(result.stderr)
        logging.error(
            "ffmpeg failed with exit code %d for %s: %s",
            result.exit_code,
            build.output_path,
            diagnosis.message,
        )
        logging.debug("ffmpeg stderr:\n%s", result.stderr)
        raise ExternalToolFailure(result.exit_code, result.stderr, diagnosis)

    def version(self) -> str:
        """Return the ffmpeg version string, ``"unknown"`` or ``"not installed"``."""
        return get_tool_version(self._binary, self._command_runner)
