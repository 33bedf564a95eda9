"""Per-operation option types.

Mutually exclusive modes are modelled as small frozen dataclasses joined in a
union (for example ``CompressTarget``), so an options object can only ever
carry one mode. The ``*_from_fields`` helpers turn loose user input (CLI flags,
JSON bodies) into a mode, rejecting zero or several selections.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from ffwrap.backend.services.bitrate import parse_bitrate, parse_size
from ffwrap.backend.services.errors import InvalidOptions

_GRID_RE = re.compile(r"^\s*(\d+)\s*x\s*(\d+)\s*$", re.IGNORECASE)


def _selected(candidates: dict[str, object]) -> list[str]:
    return [
        name
        for name, value in candidates.items()
        if value is not None and value is not False and value != ""
    ]


def _require_exactly_one(candidates: dict[str, object]) -> str:
    """Return the single selected key, raising InvalidOptions otherwise."""
    chosen = _selected(candidates)
    names = ", ".join(candidates)
    if not chosen:
        raise InvalidOptions(f"Must specify one of: {names}")
    if len(chosen) > 1:
        raise InvalidOptions(f"Can only specify one of: {names}")
    return chosen[0]


def _check_time_range(end_time: str | None, duration: str | None) -> None:
    if end_time and duration:
        raise InvalidOptions(
            "Cannot use both end time and duration together",
            "Pass either an end time or a duration",
        )


# --- compress targets ---


@dataclass(frozen=True)
class TargetSize:
    """Aim for an output of roughly ``size_bytes``."""

    size_bytes: int

    def __post_init__(self) -> None:
        if self.size_bytes <= 0:
            raise InvalidOptions("Target size must be greater than zero")


@dataclass(frozen=True)
class TargetBitrate:
    """Encode at an explicit video bitrate in bits per second."""

    bps: float

    def __post_init__(self) -> None:
        if self.bps <= 0:
            raise InvalidOptions("Bitrate must be greater than zero")


@dataclass(frozen=True)
class TargetPercent:
    """Encode at a percentage of the input's current bitrate."""

    percent: float

    def __post_init__(self) -> None:
        if not 0 < self.percent <= 100:
            raise InvalidOptions("Percent must be between 1 and 100")


CompressTarget = TargetSize | TargetBitrate | TargetPercent


def compress_target_from_fields(
    target_size: str | None = None,
    bitrate: str | None = None,
    percent: float | None = None,
) -> CompressTarget:
    """Build a compress target from mutually exclusive user fields.

    Raises:
        InvalidOptions: If zero or several fields are set, or a value is malformed.
    """
    chosen = _require_exactly_one(
        {"target_size": target_size, "bitrate": bitrate, "percent": percent}
    )
    if chosen == "target_size":
        return TargetSize(parse_size(str(target_size)))
    if chosen == "bitrate":
        return TargetBitrate(parse_bitrate(str(bitrate)))
    return TargetPercent(float(percent))  # type: ignore[arg-type]


# --- extract modes ---


@dataclass(frozen=True)
class ExtractAudio:
    """Extract the audio track re-encoded to ``format``."""

    format: str = "mp3"


@dataclass(frozen=True)
class ExtractVideo:
    """Extract the video track (stream copy, audio dropped)."""


@dataclass(frozen=True)
class ExtractFrameAt:
    """Extract a single frame at ``time``."""

    time: str


@dataclass(frozen=True)
class ExtractFrameSequence:
    """Extract frames periodically at ``fps`` frames per second."""

    fps: float = 1.0

    def __post_init__(self) -> None:
        if self.fps <= 0:
            raise InvalidOptions("Frame rate must be greater than zero")


ExtractMode = ExtractAudio | ExtractVideo | ExtractFrameAt | ExtractFrameSequence


def extract_mode_from_fields(
    audio: bool = False,
    video: bool = False,
    frames: bool = False,
    *,
    time: str | None = None,
    fps: float | None = None,
    audio_format: str | None = None,
) -> ExtractMode:
    """Build an extract mode from the audio/video/frames flags.

    Frame mode branches on ``time`` (single frame) versus ``fps`` (sequence).

    Raises:
        InvalidOptions: If zero or several of audio/video/frames are set.
    """
    chosen = _require_exactly_one({"audio": audio, "video": video, "frames": frames})
    if chosen == "audio":
        return ExtractAudio(format=(audio_format or "mp3").lower())
    if chosen == "video":
        return ExtractVideo()
    if time and fps:
        raise InvalidOptions("Cannot use both time and fps for frame extraction")
    if time:
        return ExtractFrameAt(time=time)
    return ExtractFrameSequence(fps=fps or 1.0)


# --- thumbnail modes ---


@dataclass(frozen=True)
class SingleThumbnail:
    """One frame at ``time``, or at half the duration when ``time`` is None."""

    time: str | None = None


@dataclass(frozen=True)
class MultipleThumbnails:
    """``count`` frames evenly spaced over the whole duration."""

    count: int

    def __post_init__(self) -> None:
        if self.count < 1:
            raise InvalidOptions("Thumbnail count must be at least 1")


@dataclass(frozen=True)
class ThumbnailGrid:
    """``cols`` x ``rows`` evenly spaced frames tiled into one image."""

    cols: int
    rows: int

    def __post_init__(self) -> None:
        if self.cols < 1 or self.rows < 1:
            raise InvalidOptions("Grid dimensions must be at least 1x1")

    @property
    def total_frames(self) -> int:
        return self.cols * self.rows


ThumbnailMode = SingleThumbnail | MultipleThumbnails | ThumbnailGrid


def parse_grid(grid: str) -> ThumbnailGrid:
    """Parse ``"3x3"`` into a ThumbnailGrid.

    Raises:
        InvalidOptions: If the string is not ``<cols>x<rows>``.
    """
    match = _GRID_RE.match(grid)
    if not match:
        raise InvalidOptions(f"Invalid grid format: {grid}", "Use a layout like 3x3 or 4x2")
    return ThumbnailGrid(cols=int(match.group(1)), rows=int(match.group(2)))


def thumbnail_mode_from_fields(
    time: str | None = None,
    count: int | None = None,
    grid: str | None = None,
) -> ThumbnailMode:
    """Build a thumbnail mode; no selection means a single mid-point frame.

    Raises:
        InvalidOptions: If more than one of time/count/grid is set.
    """
    chosen = _selected({"time": time, "count": count, "grid": grid})
    if len(chosen) > 1:
        raise InvalidOptions("Can only specify one of: time, count, grid")
    if count is not None:
        return MultipleThumbnails(count=int(count))
    if grid is not None:
        return parse_grid(grid)
    return SingleThumbnail(time=time)


# --- options ---


@dataclass
class ConvertOptions:
    """Options for format conversion."""

    input_path: Path
    output_path: Path | None = None
    format: str | None = None
    quality: str | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    resolution: str | None = None
    fps: float | None = None
    start_time: str | None = None
    end_time: str | None = None
    duration: str | None = None
    no_audio: bool = False
    no_video: bool = False
    overwrite: bool = False

    @property
    def input_paths(self) -> list[Path]:
        return [self.input_path]

    def validate(self) -> None:
        """Reject contradictory settings.

        Raises:
            InvalidOptions: If end time and duration are both set, both streams
                are disabled, or the frame rate is not positive.
        """
        _check_time_range(self.end_time, self.duration)
        if self.no_audio and self.no_video:
            raise InvalidOptions("Cannot remove both the audio and the video stream")
        if self.fps is not None and self.fps <= 0:
            raise InvalidOptions("Frame rate must be greater than zero")


@dataclass
class TrimOptions:
    """Options for cutting a time range out of a file.

    ``copy`` trades precision for speed: streams are copied and the seek snaps
    to keyframes instead of re-encoding for a frame-accurate cut.
    """

    input_path: Path
    output_path: Path | None = None
    start_time: str | None = None
    end_time: str | None = None
    duration: str | None = None
    copy: bool = False
    overwrite: bool = False

    @property
    def input_paths(self) -> list[Path]:
        return [self.input_path]

    def validate(self) -> None:
        if not (self.start_time or self.end_time or self.duration):
            raise InvalidOptions("At least one of start time, end time, or duration is required")
        _check_time_range(self.end_time, self.duration)


@dataclass
class CompressOptions:
    """Options for size or bitrate constrained re-encoding."""

    input_path: Path
    target: CompressTarget
    output_path: Path | None = None
    audio_bitrate: str = "128k"
    overwrite: bool = False

    @property
    def input_paths(self) -> list[Path]:
        return [self.input_path]

    @property
    def audio_bitrate_bps(self) -> float:
        return parse_bitrate(self.audio_bitrate)

    def validate(self) -> None:
        if not isinstance(self.target, (TargetSize, TargetBitrate, TargetPercent)):
            raise InvalidOptions("Must specify one of: target_size, bitrate, percent")
        parse_bitrate(self.audio_bitrate)


@dataclass
class ExtractOptions:
    """Options for pulling one stream (or frames) out of a file."""

    input_path: Path
    mode: ExtractMode
    output_path: Path | None = None
    overwrite: bool = False

    @property
    def input_paths(self) -> list[Path]:
        return [self.input_path]

    def validate(self) -> None:
        if not isinstance(
            self.mode, (ExtractAudio, ExtractVideo, ExtractFrameAt, ExtractFrameSequence)
        ):
            raise InvalidOptions("Must specify one of: audio, video, frames")


@dataclass
class MergeOptions:
    """Options for concatenating several files.

    Without ``reencode`` the concat demuxer copies streams, which requires all
    inputs to share codecs; with it the concat filter re-encodes everything.
    """

    inputs: list[Path] = field(default_factory=list)
    output_path: Path | None = None
    reencode: bool = False
    overwrite: bool = False

    @property
    def input_paths(self) -> list[Path]:
        return list(self.inputs)

    def validate(self) -> None:
        if len(self.inputs) < 2:
            raise InvalidOptions("At least 2 input files are required")


@dataclass
class GifOptions:
    """Options for animated GIF creation."""

    input_path: Path
    output_path: Path | None = None
    start_time: str | None = None
    duration: str | None = None
    width: int = 480
    fps: float = 15
    high_quality: bool = False
    overwrite: bool = False

    @property
    def input_paths(self) -> list[Path]:
        return [self.input_path]

    def validate(self) -> None:
        if self.width <= 0:
            raise InvalidOptions("Width must be greater than zero")
        if self.fps <= 0:
            raise InvalidOptions("Frame rate must be greater than zero")


@dataclass
class ThumbnailOptions:
    """Options for still image previews."""

    input_path: Path
    mode: ThumbnailMode = field(default_factory=SingleThumbnail)
    output_path: Path | None = None
    width: int | None = None
    format: str = "png"
    overwrite: bool = False

    @property
    def input_paths(self) -> list[Path]:
        return [self.input_path]

    def validate(self) -> None:
        if not isinstance(self.mode, (SingleThumbnail, MultipleThumbnails, ThumbnailGrid)):
            raise InvalidOptions("Can only specify one of: time, count, grid")
        if self.width is not None and self.width <= 0:
            raise InvalidOptions("Width must be greater than zero")
        if self.format.lower() not in ("png", "jpg", "jpeg"):
            raise InvalidOptions(f"Unsupported thumbnail format: {self.format}", "Use png or jpg")


OperationOptions = (
    ConvertOptions
    | TrimOptions
    | CompressOptions
    | ExtractOptions
    | MergeOptions
    | GifOptions
    | ThumbnailOptions
)
