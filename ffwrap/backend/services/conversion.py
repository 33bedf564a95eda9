"""Operation orchestration service.

Coordinates file checks, probing, command building and FFmpeg execution for
one operation at a time.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from pathlib import Path

from ffwrap.backend.services.command_runner import ProgressCallback
from ffwrap.backend.services.conversion_strategy import (
    BuildResult,
    MergeStrategy,
    OperationStrategy,
    get_strategy,
)
from ffwrap.backend.services.errors import InvalidOptions, ProbeFailed, ToolNotAvailable
from ffwrap.backend.services.ffmpeg_runner import FFmpegRunnerProtocol
from ffwrap.backend.services.file_manager import FileManagerProtocol
from ffwrap.backend.services.options import (
    CompressOptions,
    ConvertOptions,
    ExtractOptions,
    GifOptions,
    MergeOptions,
    OperationOptions,
    ThumbnailOptions,
    TrimOptions,
)
from ffwrap.backend.services.probe import MediaInfo, MediaProber

_OPERATION_NAMES: dict[type, str] = {
    ConvertOptions: "convert",
    TrimOptions: "trim",
    CompressOptions: "compress",
    ExtractOptions: "extract",
    MergeOptions: "merge",
    GifOptions: "gif",
    ThumbnailOptions: "thumbnail",
}


@dataclass(frozen=True)
class OperationResult:
    """Outcome of one operation.

    Attributes:
        success: True if ffmpeg exited with status 0.
        output_path: Produced file (or sequence template) on success.
        error: Formatted error message on failure.
    """

    success: bool
    output_path: Path | None = None
    error: str | None = None


def operation_name(options: OperationOptions) -> str:
    """Return the operation name for an options object.

    Raises:
        InvalidOptions: If ``options`` is not an operation options type.
    """
    try:
        return _OPERATION_NAMES[type(options)]
    except KeyError as e:
        raise InvalidOptions(f"Unsupported options type: {type(options).__name__}") from e


class ConversionService:
    """Orchestrates single media operations.

    For every run: inputs are checked, options validated, the output path
    checked, the input probed when the build needs metadata, the command
    built, and only then is ffmpeg invoked. Every precondition failure surfaces
    before ffmpeg is spawned.
    """

    def __init__(
        self,
        ffmpeg_runner: FFmpegRunnerProtocol,
        file_manager: FileManagerProtocol,
        prober: MediaProber,
    ) -> None:
        """Initialize conversion service.

        Args:
            ffmpeg_runner: Handler for FFmpeg execution.
            file_manager: Handler for file checks and temporary files.
            prober: ffprobe adapter.
        """
        self._ffmpeg_runner = ffmpeg_runner
        self._file_manager = file_manager
        self._prober = prober

    @property
    def ffmpeg_runner(self) -> FFmpegRunnerProtocol:
        return self._ffmpeg_runner

    @property
    def file_manager(self) -> FileManagerProtocol:
        return self._file_manager

    @property
    def prober(self) -> MediaProber:
        return self._prober

    def info(self, path: str | Path) -> MediaInfo:
        """Probe ``path`` for display.

        Raises:
            InputNotFound: If the file does not exist.
            ProbeFailed: If ffprobe cannot read it.
        """
        source = Path(path)
        self._file_manager.check_inputs([source])
        media_info = self._prober.probe(source)
        if media_info is None:
            raise ProbeFailed(str(source))
        return media_info

    def _probe_for_progress(self, path: Path) -> MediaInfo | None:
        try:
            return self._prober.probe(path)
        except ToolNotAvailable as e:
            logging.warning("Progress unavailable: %s", e.message)
            return None

    def prepare(
        self,
        options: OperationOptions,
        *,
        want_progress: bool = False,
        media_info: MediaInfo | None = None,
    ) -> tuple[OperationStrategy, MediaInfo | None]:
        """Run every precondition check, then probe when required.

        Args:
            options: Operation options.
            want_progress: Probe for a duration even if the build does not need it.
            media_info: Metadata already probed by the caller; skips probing.

        Returns:
            The strategy for the operation and the probed metadata, if any.

        Raises:
            InputNotFound: If an input is missing.
            InvalidOptions: If the options are contradictory.
            OutputExists: If the output exists and overwrite is off.
        """
        strategy = get_strategy(operation_name(options))
        self._file_manager.check_inputs(options.input_paths)
        strategy.validate(options)
        self._file_manager.check_output(
            strategy.output_path_for(options), overwrite=options.overwrite
        )

        first_input = Path(options.input_paths[0])
        if media_info is None:
            if strategy.needs_media_info(options):
                media_info = self._prober.probe(first_input)
            elif want_progress and not isinstance(options, MergeOptions):
                media_info = self._probe_for_progress(first_input)

        # Containers without a size field: fall back to the file on disk
        if media_info is not None and media_info.size <= 0:
            media_info = dataclasses.replace(media_info, size=first_input.stat().st_size)
        return strategy, media_info

    def run(
        self,
        options: OperationOptions,
        *,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        media_info: MediaInfo | None = None,
    ) -> OperationResult:
        """Run one operation to completion.

        Args:
            options: Operation options.
            on_progress: Optional callback for progress updates.
            cancel_event: When set, ffmpeg is terminated.
            media_info: Metadata already probed by the caller.

        Returns:
            A successful result with the output path.

        Raises:
            FFwrapError: Any precondition, tool or cancellation failure.
        """
        strategy, media_info = self.prepare(
            options, want_progress=on_progress is not None, media_info=media_info
        )
        logging.info("%s %s", strategy.description, ", ".join(map(str, options.input_paths)))

        if isinstance(strategy, MergeStrategy) and isinstance(options, MergeOptions):
            return self._run_merge(strategy, options, on_progress, cancel_event)

        build = strategy.build_command(options, media_info)
        clip_duration = strategy.expected_duration(options, media_info)
        return self._execute(build, clip_duration, on_progress, cancel_event)

    def _run_merge(
        self,
        strategy: MergeStrategy,
        options: MergeOptions,
        on_progress: ProgressCallback | None,
        cancel_event: threading.Event | None,
    ) -> OperationResult:
        if not strategy.needs_concat_list(options):
            build = strategy.build_command(options)
            return self._execute(build, None, on_progress, cancel_event)

        with self._file_manager.concat_list_file(options.inputs) as list_file:
            build = strategy.build_command(options, list_file=list_file)
            return self._execute(build, None, on_progress, cancel_event)

    def _execute(
        self,
        build: BuildResult,
        clip_duration: float | None,
        on_progress: ProgressCallback | None,
        cancel_event: threading.Event | None,
    ) -> OperationResult:
        self._ffmpeg_runner.run(
            build,
            clip_duration=clip_duration,
            on_progress=on_progress,
            cancel_event=cancel_event,
        )
        return OperationResult(success=True, output_path=build.output_path)
