"""Media metadata extraction via ffprobe."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from ffwrap.backend.services.command_runner import CommandRunner, CommandRunnerProtocol

PROBE_ARGS = ("-v", "quiet", "-print_format", "json", "-show_format", "-show_streams")


@dataclass(frozen=True)
class VideoStreamInfo:
    """First video stream of a file."""

    codec: str
    codec_long_name: str
    width: int
    height: int
    frame_rate: float
    profile: str | None = None
    aspect_ratio: str | None = None
    pixel_format: str | None = None
    bitrate: int | None = None


@dataclass(frozen=True)
class AudioStreamInfo:
    """First audio stream of a file."""

    codec: str
    codec_long_name: str
    sample_rate: int
    channels: int
    channel_layout: str | None = None
    bitrate: int | None = None


@dataclass(frozen=True)
class SubtitleStreamInfo:
    """One subtitle stream."""

    codec: str
    language: str | None = None


@dataclass(frozen=True)
class MediaInfo:
    """Read-only snapshot of a file's metadata at probe time.

    Attributes:
        duration: Length in seconds (0.0 when unknown).
        size: File size in bytes as reported by the container (0 when unknown).
        bitrate: Overall bitrate in bits per second (0 when unknown).
        format_name: Container format name, e.g. ``"mov,mp4,m4a,3gp,3g2,mj2"``.
        format_long_name: Human readable container name.
        nb_streams: Number of streams.
        video: First video stream, absent for audio-only media.
        audio: First audio stream.
        subtitles: Every subtitle stream.
    """

    duration: float = 0.0
    size: int = 0
    bitrate: int = 0
    format_name: str = "unknown"
    format_long_name: str = "Unknown"
    nb_streams: int = 0
    video: VideoStreamInfo | None = None
    audio: AudioStreamInfo | None = None
    subtitles: tuple[SubtitleStreamInfo, ...] = ()

    @property
    def width(self) -> int | None:
        return self.video.width if self.video else None

    @property
    def height(self) -> int | None:
        return self.video.height if self.video else None

    @property
    def codec(self) -> str | None:
        return self.video.codec if self.video else None


def parse_frame_rate(rate: str | None) -> float:
    """Convert an ffprobe rational such as ``"30000/1001"`` to a float.

    Returns:
        Frames per second, or 0.0 for missing or degenerate values.
    """
    if not rate:
        return 0.0
    num_str, _, den_str = rate.partition("/")
    try:
        num = float(num_str)
        den = float(den_str) if den_str else 1.0
    except ValueError:
        return 0.0
    return num / den if den > 0 else 0.0


def _to_int(value: object) -> int | None:
    if value is None:
        return None
    try:
        return int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _to_float(value: object) -> float | None:
    if value is None:
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _first_stream(streams: list[dict], codec_type: str) -> dict | None:
    for stream in streams:
        if stream.get("codec_type") == codec_type:
            return stream
    return None


def parse_probe_output(raw: str) -> MediaInfo | None:
    """Parse ffprobe JSON (``-show_format -show_streams``) into MediaInfo.

    Args:
        raw: ffprobe standard output.

    Returns:
        The parsed metadata, or None if the output is not a JSON object.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None

    fmt = data.get("format") or {}
    streams = [s for s in data.get("streams") or [] if isinstance(s, dict)]

    video = None
    video_stream = _first_stream(streams, "video")
    if video_stream:
        video = VideoStreamInfo(
            codec=video_stream.get("codec_name", "unknown"),
            codec_long_name=video_stream.get("codec_long_name", "Unknown"),
            width=_to_int(video_stream.get("width")) or 0,
            height=_to_int(video_stream.get("height")) or 0,
            frame_rate=parse_frame_rate(video_stream.get("r_frame_rate")),
            profile=video_stream.get("profile"),
            aspect_ratio=video_stream.get("display_aspect_ratio"),
            pixel_format=video_stream.get("pix_fmt"),
            bitrate=_to_int(video_stream.get("bit_rate")),
        )

    audio = None
    audio_stream = _first_stream(streams, "audio")
    if audio_stream:
        audio = AudioStreamInfo(
            codec=audio_stream.get("codec_name", "unknown"),
            codec_long_name=audio_stream.get("codec_long_name", "Unknown"),
            sample_rate=_to_int(audio_stream.get("sample_rate")) or 0,
            channels=_to_int(audio_stream.get("channels")) or 0,
            channel_layout=audio_stream.get("channel_layout"),
            bitrate=_to_int(audio_stream.get("bit_rate")),
        )

    subtitles = tuple(
        SubtitleStreamInfo(
            codec=s.get("codec_name", "unknown"),
            language=(s.get("tags") or {}).get("language"),
        )
        for s in streams
        if s.get("codec_type") == "subtitle"
    )

    return MediaInfo(
        duration=_to_float(fmt.get("duration")) or 0.0,
        size=_to_int(fmt.get("size")) or 0,
        bitrate=_to_int(fmt.get("bit_rate")) or 0,
        format_name=fmt.get("format_name", "unknown"),
        format_long_name=fmt.get("format_long_name", "Unknown"),
        nb_streams=_to_int(fmt.get("nb_streams")) or len(streams),
        video=video,
        audio=audio,
        subtitles=subtitles,
    )


class MediaProber:
    """Run ffprobe and turn its output into MediaInfo."""

    def __init__(
        self,
        *,
        binary: str = "ffprobe",
        command_runner: CommandRunnerProtocol | None = None,
        timeout: float | None = 30.0,
    ) -> None:
        """Initialize the prober.

        Args:
            binary: ffprobe executable.
            command_runner: Process invoker (a plain CommandRunner if omitted).
            timeout: Seconds before a probe is abandoned.
        """
        self._binary = binary
        self._command_runner = command_runner or CommandRunner()
        self._timeout = timeout

    def probe(self, path: str | Path) -> MediaInfo | None:
        """Probe ``path``.

        Args:
            path: Media file.

        Returns:
            Metadata, or None when ffprobe fails, times out or returns
            malformed output.

        Raises:
            ToolNotAvailable: If ffprobe is not installed.
        """
        try:
            result = self._command_runner.run_command(
                [*PROBE_ARGS, str(path)],
                binary=self._binary,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            logging.warning("ffprobe timed out on %s", path)
            return None

        if not result.ok:
            logging.info("ffprobe failed on %s (exit %d)", path, result.exit_code)
            return None

        info = parse_probe_output(result.stdout)
        if info is None:
            logging.warning("ffprobe returned invalid JSON for %s", path)
        return info
