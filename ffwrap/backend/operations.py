"""Async programmatic surface.

Each operation function runs the blocking pipeline on a worker thread and
never raises engine errors: failures come back as
``OperationResult(success=False, error=...)``.
"""

from __future__ import annotations

import asyncio
import logging
import threading

from ffwrap.backend.services.command_runner import CommandRunner, ProgressCallback
from ffwrap.backend.services.conversion import ConversionService, OperationResult
from ffwrap.backend.services.errors import FFwrapError, format_message
from ffwrap.backend.services.ffmpeg_runner import FFmpegRunner
from ffwrap.backend.services.file_manager import FileManager
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
from ffwrap.backend.utils.constant import (
    FFMPEG_BINARY,
    FFMPEG_MAX_CONCURRENT,
    FFPROBE_BINARY,
    PROBE_TIMEOUT_SECONDS,
    TMP_BASE_DIR,
)

_default_service: ConversionService | None = None
_service_lock = threading.Lock()


def build_service(
    *,
    ffmpeg_binary: str = FFMPEG_BINARY,
    ffprobe_binary: str = FFPROBE_BINARY,
    max_concurrent: int = FFMPEG_MAX_CONCURRENT,
    probe_timeout: float = PROBE_TIMEOUT_SECONDS,
    tmp_dir: str = TMP_BASE_DIR,
) -> ConversionService:
    """Wire a ConversionService from configuration values.

    ffmpeg and ffprobe share one semaphore, so ``max_concurrent`` bounds every
    external process started through the service.
    """
    command_runner = CommandRunner(semaphore=threading.Semaphore(max_concurrent))
    return ConversionService(
        ffmpeg_runner=FFmpegRunner(binary=ffmpeg_binary, command_runner=command_runner),
        file_manager=FileManager(tmp_dir),
        prober=MediaProber(
            binary=ffprobe_binary,
            command_runner=command_runner,
            timeout=probe_timeout,
        ),
    )


def get_service() -> ConversionService:
    """Return the process-wide service, creating it on first use."""
    global _default_service
    with _service_lock:
        if _default_service is None:
            _default_service = build_service()
        return _default_service


async def run_operation(
    options: OperationOptions,
    *,
    service: ConversionService | None = None,
    on_progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> OperationResult:
    """Run any operation without blocking the event loop.

    Args:
        options: Operation options.
        service: Service to use (the shared one if omitted).
        on_progress: Optional callback, invoked from the worker thread.
        cancel_event: When set, ffmpeg is terminated.

    Returns:
        The operation result; engine errors are folded into ``error``.
    """
    svc = service or get_service()
    try:
        return await asyncio.to_thread(
            svc.run, options, on_progress=on_progress, cancel_event=cancel_event
        )
    except FFwrapError as e:
        logging.error("Operation failed: %s", e.message)
        return OperationResult(success=False, error=e.format())
    except OSError as e:
        # Filesystem races, e.g. an input removed between the checks and the run
        logging.error("Operation failed: %s", e)
        return OperationResult(success=False, error=format_message(str(e)))


async def convert(options: ConvertOptions, **kwargs) -> OperationResult:  # noqa: ANN003
    """Convert between formats."""
    return await run_operation(options, **kwargs)


async def trim(options: TrimOptions, **kwargs) -> OperationResult:  # noqa: ANN003
    """Cut a time range."""
    return await run_operation(options, **kwargs)


async def compress(options: CompressOptions, **kwargs) -> OperationResult:  # noqa: ANN003
    """Re-encode toward a size, bitrate or percentage."""
    return await run_operation(options, **kwargs)


async def extract(options: ExtractOptions, **kwargs) -> OperationResult:  # noqa: ANN003
    """Extract audio, video or frames."""
    return await run_operation(options, **kwargs)


async def merge(options: MergeOptions, **kwargs) -> OperationResult:  # noqa: ANN003
    """Concatenate files."""
    return await run_operation(options, **kwargs)


async def gif(options: GifOptions, **kwargs) -> OperationResult:  # noqa: ANN003
    """Create an animated GIF."""
    return await run_operation(options, **kwargs)


async def thumbnail(options: ThumbnailOptions, **kwargs) -> OperationResult:  # noqa: ANN003
    """Generate thumbnails."""
    return await run_operation(options, **kwargs)


async def probe(path: str, *, service: ConversionService | None = None) -> MediaInfo | None:
    """Probe a file; None when it cannot be read."""
    svc = service or get_service()
    try:
        return await asyncio.to_thread(svc.info, path)
    except FFwrapError as e:
        logging.warning("Probe failed: %s", e.message)
        return None
