"""Backend FastAPI application for the ffwrap media service.

This module provides a thin HTTP layer over the conversion service. Requests
name files on the server's filesystem; business logic is delegated to the
services layer.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from ffwrap.backend.operations import build_service
from ffwrap.backend.services.bitrate import format_size, format_time
from ffwrap.backend.services.errors import (
    Cancelled,
    ExternalToolFailure,
    FFwrapError,
    InputNotFound,
    InvalidOptions,
    MissingDuration,
    OutputExists,
    ProbeFailed,
    ToolNotAvailable,
)
from ffwrap.backend.services.options import (
    CompressOptions,
    ConvertOptions,
    ExtractOptions,
    GifOptions,
    MergeOptions,
    OperationOptions,
    ThumbnailOptions,
    TrimOptions,
    compress_target_from_fields,
    extract_mode_from_fields,
    thumbnail_mode_from_fields,
)
from ffwrap.backend.services.presets import (
    FORMAT_PRESETS,
    QUALITY_PRESETS,
    RESOLUTION_PRESETS,
)
from ffwrap.backend.utils.constant import LOG_LEVEL, VERSION

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# --- Service layer setup ---
_conversion_service = build_service()
_conversion_service.file_manager.ensure_base_dir()

app = FastAPI(title="ffwrap", version=VERSION)

# Client closed request; used for cancelled runs
STATUS_CANCELLED = 499

_STATUS_BY_ERROR: tuple[tuple[type[FFwrapError], int], ...] = (
    (InputNotFound, 404),
    (InvalidOptions, 400),
    (MissingDuration, 400),
    (OutputExists, 409),
    (ProbeFailed, 422),
    (ExternalToolFailure, 502),
    (ToolNotAvailable, 503),
    (Cancelled, STATUS_CANCELLED),
)


def status_for_error(error: FFwrapError) -> int:
    """Return the HTTP status code for an engine error."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


def _http_error(error: FFwrapError) -> HTTPException:
    return HTTPException(
        status_code=status_for_error(error),
        detail={"message": error.message, "suggestion": error.suggestion},
    )


# --- Request bodies ---


class ConvertRequest(BaseModel):
    input_path: str
    output_path: str | None = None
    format: str | None = None
    quality: str | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    resolution: str | None = None
    fps: float | None = Field(None, gt=0)
    start_time: str | None = None
    end_time: str | None = None
    duration: str | None = None
    no_audio: bool = False
    no_video: bool = False
    overwrite: bool = False

    def to_options(self) -> ConvertOptions:
        return ConvertOptions(**self.model_dump())


class TrimRequest(BaseModel):
    input_path: str
    output_path: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    duration: str | None = None
    stream_copy: bool = False
    overwrite: bool = False

    def to_options(self) -> TrimOptions:
        fields = self.model_dump(exclude={"stream_copy"})
        return TrimOptions(**fields, copy=self.stream_copy)


class CompressRequest(BaseModel):
    """Exactly one of ``target_size``, ``bitrate`` or ``percent`` is required."""

    input_path: str
    output_path: str | None = None
    target_size: str | None = None
    bitrate: str | None = None
    percent: float | None = None
    audio_bitrate: str = "128k"
    overwrite: bool = False

    def to_options(self) -> CompressOptions:
        return CompressOptions(
            input_path=self.input_path,
            target=compress_target_from_fields(self.target_size, self.bitrate, self.percent),
            output_path=self.output_path,
            audio_bitrate=self.audio_bitrate,
            overwrite=self.overwrite,
        )


class ExtractRequest(BaseModel):
    """Exactly one of ``audio``, ``video`` or ``frames`` must be true."""

    input_path: str
    output_path: str | None = None
    audio: bool = False
    video: bool = False
    frames: bool = False
    time: str | None = None
    fps: float | None = None
    audio_format: str = "mp3"
    overwrite: bool = False

    def to_options(self) -> ExtractOptions:
        mode = extract_mode_from_fields(
            self.audio,
            self.video,
            self.frames,
            time=self.time,
            fps=self.fps,
            audio_format=self.audio_format,
        )
        return ExtractOptions(
            input_path=self.input_path,
            mode=mode,
            output_path=self.output_path,
            overwrite=self.overwrite,
        )


class MergeRequest(BaseModel):
    inputs: list[str]
    output_path: str | None = None
    reencode: bool = False
    overwrite: bool = False

    def to_options(self) -> MergeOptions:
        return MergeOptions(**self.model_dump())


class GifRequest(BaseModel):
    input_path: str
    output_path: str | None = None
    start_time: str | None = None
    duration: str | None = None
    width: int = Field(480, gt=0)
    fps: float = Field(15, gt=0)
    high_quality: bool = False
    overwrite: bool = False

    def to_options(self) -> GifOptions:
        return GifOptions(**self.model_dump())


class ThumbnailRequest(BaseModel):
    """At most one of ``time``, ``count`` or ``grid``; none means the mid-point frame."""

    input_path: str
    output_path: str | None = None
    time: str | None = None
    count: int | None = None
    grid: str | None = None
    width: int | None = None
    format: str = "png"
    overwrite: bool = False

    def to_options(self) -> ThumbnailOptions:
        return ThumbnailOptions(
            input_path=self.input_path,
            mode=thumbnail_mode_from_fields(self.time, self.count, self.grid),
            output_path=self.output_path,
            width=self.width,
            format=self.format,
            overwrite=self.overwrite,
        )


OperationRequest = (
    ConvertRequest
    | TrimRequest
    | CompressRequest
    | ExtractRequest
    | MergeRequest
    | GifRequest
    | ThumbnailRequest
)


async def _run(request: OperationRequest) -> dict[str, Any]:
    """Build options from ``request`` and run them on a worker thread.

    Raises:
        HTTPException: Mapped from any engine error.
    """
    try:
        options: OperationOptions = request.to_options()
        result = await asyncio.to_thread(_conversion_service.run, options)
    except FFwrapError as e:
        logging.warning("Request failed (%s): %s", type(e).__name__, e.message)
        raise _http_error(e) from e
    return {"success": result.success, "output_path": str(result.output_path)}


@app.post("/convert")
async def convert(request: ConvertRequest) -> dict[str, Any]:
    """Convert a file to another format.

    Returns:
        ``{"success": true, "output_path": ...}``.
    """
    logging.info("Received /convert request for %s", request.input_path)
    return await _run(request)


@app.post("/trim")
async def trim(request: TrimRequest) -> dict[str, Any]:
    """Cut a time range out of a file."""
    logging.info("Received /trim request for %s", request.input_path)
    return await _run(request)


@app.post("/compress")
async def compress(request: CompressRequest) -> dict[str, Any]:
    """Re-encode a file toward a size, bitrate or percentage."""
    logging.info("Received /compress request for %s", request.input_path)
    return await _run(request)


@app.post("/extract")
async def extract(request: ExtractRequest) -> dict[str, Any]:
    logging.info("Received /extract request for %s", request.input_path)
    return await _run(request)


@app.post("/merge")
async def merge(request: MergeRequest) -> dict[str, Any]:
    """Concatenate files, by stream copy or by re-encoding."""
    logging.info("Received /merge request for %d file(s)", len(request.inputs))
    return await _run(request)


@app.post("/gif")
async def gif(request: GifRequest) -> dict[str, Any]:
    logging.info("Received /gif request for %s", request.input_path)
    return await _run(request)


@app.post("/thumbnail")
async def thumbnail(request: ThumbnailRequest) -> dict[str, Any]:
    logging.info("Received /thumbnail request for %s", request.input_path)
    return await _run(request)


@app.get("/info")
async def info(path: str) -> dict[str, Any]:
    """Return probed metadata for a file.

    Args:
        path: Media file on the server.

    Returns:
        The MediaInfo fields plus human readable duration and size.

    Raises:
        HTTPException: 404 for a missing file, 422 if it cannot be probed.
    """
    try:
        media_info = await asyncio.to_thread(_conversion_service.info, path)
    except FFwrapError as e:
        logging.warning("Info request failed for %s: %s", path, e.message)
        raise _http_error(e) from e

    payload = dataclasses.asdict(media_info)
    payload["duration_display"] = format_time(media_info.duration)
    payload["size_display"] = format_size(media_info.size)
    return payload


@app.get("/presets")
def presets() -> dict[str, Any]:
    """List the available format, quality and resolution presets."""
    return {
        "formats": [dataclasses.asdict(p) for p in FORMAT_PRESETS.values()],
        "qualities": [dataclasses.asdict(p) for p in QUALITY_PRESETS.values()],
        "resolutions": [dataclasses.asdict(p) for p in RESOLUTION_PRESETS.values()],
    }
