"""Generic command execution with progress parsing.

Infrastructure module for running the external binaries (ffmpeg, ffprobe)
and capturing their exit status and output. It knows nothing about specific
operations.
"""

from __future__ import annotations

import logging
import re
import subprocess
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import IO, Protocol

from ffwrap.backend.services.errors import Cancelled, ToolNotAvailable


@dataclass
class ProgressInfo:
    """Progress information from a running command.

    Attributes:
        percent: Completion percentage (0-100).
        est_seconds_remaining: Estimated seconds until completion, if known.
    """

    percent: float
    est_seconds_remaining: float | None


@dataclass(frozen=True)
class CommandResult:
    """Raw outcome of an external process.

    Attributes:
        exit_code: Process exit status (0 = success).
        stdout: Captured standard output.
        stderr: Captured diagnostic output.
    """

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        """Return True if the process exited with status 0."""
        return self.exit_code == 0


class ProgressCallback(Protocol):
    """Callback protocol for progress updates."""

    def __call__(self, progress: ProgressInfo) -> None:
        """Handle progress update.

        Args:
            progress: Current progress information.
        """
        ...


def parse_ffmpeg_time(time_str: str) -> float:
    """Parse FFmpeg time string (HH:MM:SS.ms) to seconds.

    Args:
        time_str: Time string in HH:MM:SS.ms format.

    Returns:
        Time in seconds.

    Note:
        May raise ValueError if time string format is invalid.
    """
    h, m, s_part = time_str.split(":")
    return int(h) * 3600 + int(m) * 60 + float(s_part)


class FFmpegProgressParser:
    """Parse FFmpeg stderr for progress information.

    This is a stateless helper that extracts progress from FFmpeg output.
    """

    @staticmethod
    def parse_progress_line(
        line: str,
        clip_duration: float,
        start_time: float,
    ) -> ProgressInfo | None:
        """Parse a single FFmpeg output line for progress.

        Args:
            line: A line from FFmpeg stderr.
            clip_duration: Expected clip duration in seconds.
            start_time: Wall-clock time when the command started.

        Returns:
            ProgressInfo if progress was found, None otherwise.
        """
        if "time=" not in line:
            return None

        try:
            t_str = line.split("time=")[1].split()[0]
            if t_str.startswith("N/A"):
                return None
            elapsed_output_time = parse_ffmpeg_time(t_str)
            pct = (
                min((elapsed_output_time / clip_duration) * 100.0, 100.0)
                if clip_duration > 0
                else 0.0
            )

            elapsed_wall = time.time() - start_time
            est_remain = (elapsed_wall / pct) * (100.0 - pct) if 0 < pct < 100 else None

            return ProgressInfo(percent=pct, est_seconds_remaining=est_remain)

        except (IndexError, ValueError) as e:
            logging.warning("Error parsing ffmpeg progress line '%s': %s", line.strip(), e)
            return None


class CommandRunnerProtocol(Protocol):
    """Protocol for process invokers (lets tests substitute a fake)."""

    def run_command(
        self,
        args: Sequence[str],
        *,
        binary: str,
        clip_duration: float | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run ``binary`` with ``args`` and return its result."""
        ...


class CommandRunner:
    """Execute external binaries with optional concurrency limiting.

    This is a generic infrastructure component for running subprocesses.
    It handles semaphore-based concurrency control, progress parsing and
    cancellation.
    """

    def __init__(
        self,
        *,
        semaphore: threading.Semaphore | None = None,
    ) -> None:
        """Initialize command runner.

        Args:
            semaphore: Optional semaphore for concurrency limiting.
        """
        self._semaphore = semaphore
        self._progress_parser = FFmpegProgressParser()

    def run_command(
        self,
        args: Sequence[str],
        *,
        binary: str,
        clip_duration: float | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run ``binary`` with the given argument list.

        Args:
            args: Argument tokens, passed through exactly as built.
            binary: Executable to invoke.
            clip_duration: Expected output duration for progress calculation.
            on_progress: Optional callback for progress updates.
            cancel_event: When set, the child process is terminated.
            timeout: Seconds to wait before killing the process.

        Returns:
            Exit code and captured output.

        Raises:
            ToolNotAvailable: If ``binary`` cannot be executed.
            Cancelled: If ``cancel_event`` was set while the process ran.
            subprocess.TimeoutExpired: If ``timeout`` elapsed.
        """
        cmd = [binary, *args]

        def task() -> CommandResult:
            return self._execute(cmd, clip_duration, on_progress, cancel_event, timeout)

        if self._semaphore:
            self._semaphore.acquire()
            try:
                return task()
            finally:
                self._semaphore.release()
        else:
            return task()

    def _execute(
        self,
        cmd: list[str],
        clip_duration: float | None,
        on_progress: ProgressCallback | None,
        cancel_event: threading.Event | None,
        timeout: float | None,
    ) -> CommandResult:
        """Execute the subprocess.

        Args:
            cmd: Full command line.
            clip_duration: Expected output duration for progress calculation.
            on_progress: Optional callback for progress updates.
            cancel_event: Optional cancellation flag.
            timeout: Optional timeout in seconds.

        Returns:
            Exit code and captured output.
        """
        logging.info("Running command: %s", " ".join(cmd))

        command_start_time = time.time()

        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as e:
            raise ToolNotAvailable(cmd[0]) from e

        watcher: threading.Thread | None = None
        if cancel_event is not None:
            watcher = threading.Thread(
                target=self._watch_cancel,
                args=(proc, cancel_event),
                daemon=True,
            )
            watcher.start()

        if on_progress and clip_duration:
            stdout, stderr = self._communicate_with_progress(
                proc, clip_duration, command_start_time, on_progress, timeout
            )
        else:
            try:
                stdout, stderr = proc.communicate(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.communicate()
                raise

        return_code = proc.wait()
        if watcher is not None:
            watcher.join(timeout=1.0)

        if cancel_event is not None and cancel_event.is_set():
            logging.info("Command cancelled: %s (exit %d)", cmd[0], return_code)
            raise Cancelled()

        logging.debug(
            "Command %s exited with %d after %.2fs",
            cmd[0],
            return_code,
            time.time() - command_start_time,
        )
        return CommandResult(exit_code=return_code, stdout=stdout or "", stderr=stderr or "")

    @staticmethod
    def _watch_cancel(proc: subprocess.Popen[str], cancel_event: threading.Event) -> None:
        """Terminate ``proc`` once ``cancel_event`` is set."""
        while proc.poll() is None:
            if cancel_event.wait(0.1):
                logging.info("Cancellation requested, terminating pid %d", proc.pid)
                proc.terminate()
                return

    def _communicate_with_progress(
        self,
        proc: subprocess.Popen[str],
        clip_duration: float,
        start_time: float,
        on_progress: ProgressCallback,
        timeout: float | None,
    ) -> tuple[str, str]:
        """Collect output while feeding stderr lines to the progress parser.

        Both pipes are read on helper threads, so ``on_progress`` is called
        from the stderr reader and ``timeout`` bounds the whole run.
        """
        stdout_chunks: list[str] = []
        stderr_lines: list[str] = []

        def drain_stdout() -> None:
            if proc.stdout:
                stdout_chunks.append(proc.stdout.read())

        def read_stderr() -> None:
            if proc.stderr:
                self._parse_progress(
                    proc.stderr, clip_duration, start_time, on_progress, stderr_lines
                )

        readers = [
            threading.Thread(target=drain_stdout, daemon=True),
            threading.Thread(target=read_stderr, daemon=True),
        ]
        for reader in readers:
            reader.start()

        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
            for reader in readers:
                reader.join(timeout=1.0)
            raise

        for reader in readers:
            reader.join()
        return "".join(stdout_chunks), "".join(stderr_lines)

    def _parse_progress(
        self,
        stderr: IO[str],
        clip_duration: float,
        start_time: float,
        on_progress: ProgressCallback,
        collected: list[str],
    ) -> None:
        """Parse stderr for progress information.

        ffmpeg rewrites its status line with carriage returns, so each chunk
        is split on ``\\r`` before parsing.

        Args:
            stderr: Subprocess stderr stream.
            clip_duration: Expected clip duration in seconds.
            start_time: Wall-clock time when command started.
            on_progress: Callback for progress updates.
            collected: Receives every raw line for later classification.
        """
        for line in stderr:
            collected.append(line)
            for segment in line.split("\r"):
                progress = self._progress_parser.parse_progress_line(
                    segment,
                    clip_duration,
                    start_time,
                )
                if progress:
                    on_progress(progress)


_VERSION_RE = re.compile(r"version (\S+)")


def check_tool(binary: str, runner: CommandRunnerProtocol | None = None) -> bool:
    """Return True if ``binary -version`` runs successfully.

    Args:
        binary: Executable name or path.
        runner: Command runner (a plain one is created if omitted).
    """
    runner = runner or CommandRunner()
    try:
        return runner.run_command(["-version"], binary=binary, timeout=10).ok
    except (ToolNotAvailable, subprocess.TimeoutExpired):
        return False


def get_tool_version(binary: str, runner: CommandRunnerProtocol | None = None) -> str:
    """Return the version reported by ``binary -version``.

    Returns:
        The version token, ``"unknown"`` if it cannot be parsed, or
        ``"not installed"`` if the binary cannot be run.
    """
    runner = runner or CommandRunner()
    try:
        result = runner.run_command(["-version"], binary=binary, timeout=10)
    except (ToolNotAvailable, subprocess.TimeoutExpired):
        return "not installed"
    match = _VERSION_RE.search(result.stdout)
    return match.group(1) if match else "unknown"
