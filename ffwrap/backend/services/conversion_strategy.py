"""Operation strategy definitions.

Each strategy turns one operation's options (plus probed metadata when the
operation needs it) into the ordered ffmpeg argument list and the output path.
Strategies are pure: they never touch the filesystem or spawn processes, so
they can only fail with ``InvalidOptions`` or ``MissingDuration``.

Shared ordering rules:

- ``-y`` (overwrite) is always the first token.
- A seek placed before ``-i`` is fast but keyframe-aligned; after ``-i`` it is
  frame accurate.
- A disabled stream (``-vn``/``-an``) never gets a codec or a filter.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from ffwrap.backend.services.bitrate import (
    calculate_percent_bitrate,
    calculate_size_bitrate,
    format_bitrate,
    parse_timestamp,
)
from ffwrap.backend.services.errors import InvalidOptions, MissingDuration
from ffwrap.backend.services.file_manager import resolve_output_path, sequence_output_path
from ffwrap.backend.services.options import (
    CompressOptions,
    ConvertOptions,
    ExtractAudio,
    ExtractFrameAt,
    ExtractOptions,
    ExtractVideo,
    GifOptions,
    MergeOptions,
    MultipleThumbnails,
    SingleThumbnail,
    TargetBitrate,
    TargetPercent,
    TargetSize,
    ThumbnailGrid,
    ThumbnailOptions,
    TrimOptions,
)
from ffwrap.backend.services.presets import (
    AUDIO_EXTRACT_CODECS,
    COPY_CODEC,
    get_format_preset,
    get_quality_preset,
    get_resolution_preset,
    resolve_audio_codec,
    resolve_video_codec,
    supports_crf,
    takes_audio_bitrate,
)
from ffwrap.backend.services.probe import MediaInfo

# Re-encode settings shared by precise trims and filter-graph merges
PRECISE_VIDEO_ARGS = ("-c:v", "libx264", "-crf", "18", "-preset", "medium")
PRECISE_AUDIO_ARGS = ("-c:a", "aac", "-b:a", "192k")

MAXRATE_FACTOR = 1.5
BUFSIZE_FACTOR = 2.0

DEFAULT_GRID_TILE_WIDTH = 320
FALLBACK_CONTAINER = "mp4"


@dataclass(frozen=True)
class BuildResult:
    """Ordered ffmpeg arguments and the output they will produce.

    Attributes:
        args: Argument tokens, without the executable.
        output_path: Resolved output file (or ffmpeg sequence template).
    """

    args: tuple[str, ...]
    output_path: Path


def format_number(value: float) -> str:
    """Render a number for a filter or flag: ``16.0 -> "16"``, ``0.16 -> "0.16"``."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def _preamble(overwrite: bool) -> list[str]:
    args: list[str] = []
    if overwrite:
        args.append("-y")
    args.append("-hide_banner")
    return args


def _extension_of(path: str | Path) -> str:
    return Path(path).suffix.lstrip(".").lower()


def _same_container(input_path: str | Path) -> str:
    return _extension_of(input_path) or FALLBACK_CONTAINER


def _require_duration(media_info: MediaInfo | None) -> float:
    if media_info is None or media_info.duration <= 0:
        raise MissingDuration()
    return media_info.duration


def build_scale_filter(resolution: str) -> str:
    """Build a scale filter from a preset label, ``WxH`` or a bare width.

    Preset and width-only forms use ``-2`` for the height so it follows the
    aspect ratio and stays divisible by 2.

    Raises:
        InvalidOptions: If the resolution cannot be interpreted.
    """
    preset = get_resolution_preset(resolution)
    if preset:
        return f"scale={preset.width}:-2"

    text = resolution.strip().lower()
    if "x" in text:
        width_str, _, height_str = text.partition("x")
        if width_str.isdigit() and height_str.isdigit():
            return f"scale={int(width_str)}:{int(height_str)}"
    elif text.isdigit():
        return f"scale={int(text)}:-2"

    raise InvalidOptions(
        f"Invalid resolution: {resolution}",
        "Use a preset (360p, 480p, 720p, 1080p, 1440p, 4k), WxH, or a width",
    )


class OperationStrategy(Protocol):
    """Protocol for operation strategies.

    Each strategy defines:
    - The operation name and a human-readable description
    - Where the output goes
    - Whether probed metadata is needed
    - How to build the argument list
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the operation name (e.g. ``"convert"``)."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Return a description for status messages (e.g. ``"Converting"``)."""
        ...

    @abstractmethod
    def output_path_for(self, options: Any) -> Path:  # noqa: ANN401
        """Return the output path ``build_command`` will write to."""
        ...

    @abstractmethod
    def validate(self, options: Any) -> None:  # noqa: ANN401
        """Raise InvalidOptions if the options cannot produce a valid command."""
        ...

    @abstractmethod
    def needs_media_info(self, options: Any) -> bool:  # noqa: ANN401
        """Return True if ``build_command`` needs probed metadata for these options."""
        ...

    @abstractmethod
    def expected_duration(
        self,
        options: Any,
        media_info: MediaInfo | None,
    ) -> float | None:
        """Return the expected output duration for progress reporting, if known."""
        ...

    @abstractmethod
    def build_command(
        self,
        options: Any,
        media_info: MediaInfo | None = None,
    ) -> BuildResult:
        """Build the ffmpeg argument list.

        Args:
            options: Operation options.
            media_info: Probed metadata, when available.

        Returns:
            Arguments and output path.
        """
        ...


class _BaseStrategy:
    """Defaults shared by the single-input strategies."""

    name = ""
    description = ""

    def validate(self, options: Any) -> None:  # noqa: ANN401
        options.validate()

    def needs_media_info(self, options: Any) -> bool:  # noqa: ANN401, ARG002
        return False

    def expected_duration(
        self,
        options: Any,  # noqa: ARG002
        media_info: MediaInfo | None,
    ) -> float | None:
        if media_info and media_info.duration > 0:
            return media_info.duration
        return None


class ConvertStrategy(_BaseStrategy):
    """Format conversion with codec, quality, scale and time range control.

    The video codec comes from, in order: the user's codec, the target format
    preset, or nothing (ffmpeg picks). CRF flags go only to encoders that
    support them, never to ``copy``.
    """

    name = "convert"
    description = "Converting"

    @staticmethod
    def target_format(options: ConvertOptions) -> str:
        """Return the output format: explicit, else the output's or input's extension."""
        if options.format:
            return options.format.lower().lstrip(".")
        if options.output_path and _extension_of(options.output_path):
            return _extension_of(options.output_path)
        return _same_container(options.input_path)

    def disabled_streams(self, options: ConvertOptions) -> tuple[bool, bool]:
        """Return ``(video_disabled, audio_disabled)`` from the flags and the format preset."""
        preset = get_format_preset(self.target_format(options))
        video_disabled = options.no_video or (preset is not None and preset.video_codec is None)
        audio_disabled = options.no_audio or (preset is not None and preset.audio_codec is None)
        return video_disabled, audio_disabled

    def validate(self, options: ConvertOptions) -> None:
        """Validate the options, including streams the target format drops.

        Raises:
            InvalidOptions: If the output would have neither video nor audio,
                or the video stream is both copied and filtered.
        """
        options.validate()
        video_disabled, audio_disabled = self.disabled_streams(options)
        if video_disabled and audio_disabled:
            raise InvalidOptions(
                f"A {self.target_format(options)} output with that stream removed "
                "would contain neither video nor audio"
            )
        if video_disabled:
            return
        copying = (
            options.video_codec is not None
            and resolve_video_codec(options.video_codec) == COPY_CODEC
        )
        if copying and (options.resolution or options.fps):
            raise InvalidOptions(
                "Cannot change resolution or frame rate while copying the video stream",
                "Choose a video codec other than copy",
            )
        if options.resolution:
            build_scale_filter(options.resolution)

    def output_path_for(self, options: ConvertOptions) -> Path:
        preset = get_format_preset(self.target_format(options))
        extension = preset.extension if preset else self.target_format(options)
        return resolve_output_path(
            options.input_path, options.output_path, extension, "_converted"
        )

    def expected_duration(
        self,
        options: ConvertOptions,
        media_info: MediaInfo | None,
    ) -> float | None:
        if options.duration:
            return parse_timestamp(options.duration)
        return super().expected_duration(options, media_info)

    def build_command(
        self,
        options: ConvertOptions,
        media_info: MediaInfo | None = None,  # noqa: ARG002
    ) -> BuildResult:
        """Build the ffmpeg command for a conversion.

        Args:
            options: Conversion options.
            media_info: Unused; conversions need no probe.

        Returns:
            Arguments and output path.

        Raises:
            InvalidOptions: On contradictory options or a bad resolution.
        """
        self.validate(options)

        args = _preamble(options.overwrite)
        args += ["-i", str(options.input_path)]

        # Output-side seek: frame accurate
        if options.start_time:
            args += ["-ss", options.start_time]
        if options.end_time:
            args += ["-to", options.end_time]
        if options.duration:
            args += ["-t", options.duration]

        preset = get_format_preset(self.target_format(options))
        quality = get_quality_preset(options.quality)

        video_disabled, audio_disabled = self.disabled_streams(options)

        if video_disabled:
            args.append("-vn")
        else:
            video_codec = None
            if options.video_codec:
                video_codec = resolve_video_codec(options.video_codec)
            elif preset is not None:
                video_codec = preset.video_codec

            if video_codec:
                args += ["-c:v", video_codec]
                if video_codec != COPY_CODEC and supports_crf(video_codec):
                    args += ["-crf", str(quality.crf), "-preset", quality.speed]

            if options.resolution:
                args += ["-vf", build_scale_filter(options.resolution)]
            if options.fps:
                args += ["-r", format_number(options.fps)]

        if audio_disabled:
            args.append("-an")
        else:
            audio_codec = None
            if options.audio_codec:
                audio_codec = resolve_audio_codec(options.audio_codec)
            elif preset is not None:
                audio_codec = preset.audio_codec

            if audio_codec:
                args += ["-c:a", audio_codec]
                if takes_audio_bitrate(audio_codec):
                    args += ["-b:a", quality.audio_bitrate]

        output_path = self.output_path_for(options)
        args.append(str(output_path))
        return BuildResult(args=tuple(args), output_path=output_path)


class TrimStrategy(_BaseStrategy):
    """Cut a time range.

    Copy mode puts every time bound before the input (fast, snaps to
    keyframes, no re-encode). Re-encode mode puts them after the input for a
    frame-accurate cut. Negative timestamps are always normalised to zero.
    """

    name = "trim"
    description = "Trimming"

    def output_path_for(self, options: TrimOptions) -> Path:
        return resolve_output_path(
            options.input_path,
            options.output_path,
            _same_container(options.input_path),
            "_trimmed",
        )

    def expected_duration(
        self,
        options: TrimOptions,
        media_info: MediaInfo | None,
    ) -> float | None:
        if options.duration:
            return parse_timestamp(options.duration)
        start = parse_timestamp(options.start_time) if options.start_time else 0.0
        if start is None:
            return None
        if options.end_time:
            end = parse_timestamp(options.end_time)
            return max(end - start, 0.0) if end is not None else None
        total = super().expected_duration(options, media_info)
        return max(total - start, 0.0) if total is not None else None

    def build_command(
        self,
        options: TrimOptions,
        media_info: MediaInfo | None = None,  # noqa: ARG002
    ) -> BuildResult:
        """Build the ffmpeg command for a trim.

        Raises:
            InvalidOptions: If no time bound is given, or both end and duration are.
        """
        options.validate()

        time_args: list[str] = []
        if options.start_time:
            time_args += ["-ss", options.start_time]
        if options.end_time:
            time_args += ["-to", options.end_time]
        if options.duration:
            time_args += ["-t", options.duration]

        args = _preamble(options.overwrite)
        if options.copy:
            args += time_args
            args += ["-i", str(options.input_path)]
            args += ["-c", COPY_CODEC]
        else:
            args += ["-i", str(options.input_path)]
            args += time_args
            args += [*PRECISE_VIDEO_ARGS, *PRECISE_AUDIO_ARGS]

        args += ["-avoid_negative_ts", "make_zero"]

        output_path = self.output_path_for(options)
        args.append(str(output_path))
        return BuildResult(args=tuple(args), output_path=output_path)


class CompressStrategy(_BaseStrategy):
    """Single-pass bitrate constrained re-encode.

    The target bitrate comes from a target size, a percentage of the current
    bitrate, or an explicit value. ``-maxrate``/``-bufsize`` bound short-term
    rate swings around it; this is not two-pass encoding, so sizes are
    approximate.
    """

    name = "compress"
    description = "Compressing"

    def output_path_for(self, options: CompressOptions) -> Path:
        return resolve_output_path(
            options.input_path,
            options.output_path,
            _same_container(options.input_path),
            "_compressed",
        )

    def needs_media_info(self, options: CompressOptions) -> bool:
        return isinstance(options.target, (TargetSize, TargetPercent))

    def target_bitrate(self, options: CompressOptions, media_info: MediaInfo | None) -> float:
        """Compute the video bitrate for ``options``.

        Args:
            options: Compression options.
            media_info: Probed metadata; ``size`` is the input size in bytes.

        Returns:
            Bits per second.

        Raises:
            MissingDuration: If a size or percent target lacks a duration.
        """
        target = options.target
        if isinstance(target, TargetBitrate):
            return target.bps
        duration = _require_duration(media_info)
        if isinstance(target, TargetSize):
            return calculate_size_bitrate(target.size_bytes, duration, options.audio_bitrate_bps)
        if not media_info or media_info.size <= 0:
            raise MissingDuration("Cannot determine the input size")
        return calculate_percent_bitrate(media_info.size, duration, target.percent)

    def build_command(
        self,
        options: CompressOptions,
        media_info: MediaInfo | None = None,
    ) -> BuildResult:
        """Build the ffmpeg command for a compression.

        Raises:
            InvalidOptions: If no target is set or the audio bitrate is malformed.
            MissingDuration: If the target needs a probed duration.
        """
        options.validate()
        bitrate = self.target_bitrate(options, media_info)

        args = _preamble(options.overwrite)
        args += ["-i", str(options.input_path)]
        args += ["-c:v", "libx264"]
        args += ["-b:v", format_bitrate(bitrate)]
        args += ["-maxrate", format_bitrate(bitrate * MAXRATE_FACTOR)]
        args += ["-bufsize", format_bitrate(bitrate * BUFSIZE_FACTOR)]
        args += ["-preset", "medium"]
        args += ["-c:a", "aac", "-b:a", options.audio_bitrate]

        output_path = self.output_path_for(options)
        args.append(str(output_path))
        return BuildResult(args=tuple(args), output_path=output_path)


class ExtractStrategy(_BaseStrategy):
    """Pull the audio track, the video track, or frames out of a file."""

    name = "extract"
    description = "Extracting"

    def output_path_for(self, options: ExtractOptions) -> Path:
        mode = options.mode
        if isinstance(mode, ExtractAudio):
            return resolve_output_path(
                options.input_path, options.output_path, mode.format, "_audio"
            )
        if isinstance(mode, ExtractVideo):
            return resolve_output_path(
                options.input_path,
                options.output_path,
                _same_container(options.input_path),
                "_video",
            )
        if isinstance(mode, ExtractFrameAt):
            return sequence_output_path(options.input_path, options.output_path, "_frame.png")
        return sequence_output_path(options.input_path, options.output_path, "_frame_%04d.png")

    def build_command(
        self,
        options: ExtractOptions,
        media_info: MediaInfo | None = None,  # noqa: ARG002
    ) -> BuildResult:
        """Build the ffmpeg command for an extraction.

        Raises:
            InvalidOptions: If no extraction mode is set.
        """
        options.validate()
        mode = options.mode
        args = _preamble(options.overwrite)

        if isinstance(mode, ExtractAudio):
            args += ["-i", str(options.input_path), "-vn"]
            codec_spec = AUDIO_EXTRACT_CODECS.get(mode.format)
            if codec_spec:
                codec, quality_args = codec_spec
                args += ["-c:a", codec, *quality_args]
        elif isinstance(mode, ExtractVideo):
            args += ["-i", str(options.input_path), "-an", "-c:v", COPY_CODEC]
        elif isinstance(mode, ExtractFrameAt):
            args += ["-ss", mode.time, "-i", str(options.input_path), "-frames:v", "1"]
        else:
            args += ["-i", str(options.input_path), "-vf", f"fps={format_number(mode.fps)}"]

        output_path = self.output_path_for(options)
        args.append(str(output_path))
        return BuildResult(args=tuple(args), output_path=output_path)


class MergeStrategy:
    """Concatenate several inputs.

    Without re-encoding the concat demuxer reads a list file and copies
    streams byte for byte (inputs must share codecs). With re-encoding the
    concat filter decodes every input, which tolerates mixed formats.
    """

    name = "merge"
    description = "Merging"

    def validate(self, options: MergeOptions) -> None:
        options.validate()

    def needs_media_info(self, options: MergeOptions) -> bool:  # noqa: ARG002
        return False

    def needs_concat_list(self, options: MergeOptions) -> bool:
        """Return True if the build needs a concat list file."""
        return not options.reencode

    def expected_duration(
        self,
        options: MergeOptions,  # noqa: ARG002
        media_info: MediaInfo | None,  # noqa: ARG002
    ) -> float | None:
        return None

    def output_path_for(self, options: MergeOptions) -> Path:
        """Return the explicit output, or ``<first input>_merged.<ext>``."""
        first = options.inputs[0]
        return resolve_output_path(first, options.output_path, _same_container(first), "_merged")

    def build_command(
        self,
        options: MergeOptions,
        media_info: MediaInfo | None = None,  # noqa: ARG002
        *,
        list_file: Path | None = None,
    ) -> BuildResult:
        """Build the ffmpeg command for a merge.

        Args:
            options: Merge options.
            media_info: Unused.
            list_file: Concat list path; required unless re-encoding.

        Returns:
            Arguments and output path.

        Raises:
            InvalidOptions: If fewer than two inputs are given.
            ValueError: If demuxer mode is built without a list file.
        """
        options.validate()
        args = _preamble(options.overwrite)

        if options.reencode:
            for path in options.inputs:
                args += ["-i", str(path)]
            count = len(options.inputs)
            streams = "".join(f"[{i}:v][{i}:a]" for i in range(count))
            args += ["-filter_complex", f"{streams}concat=n={count}:v=1:a=1[outv][outa]"]
            args += ["-map", "[outv]", "-map", "[outa]"]
            args += [*PRECISE_VIDEO_ARGS, *PRECISE_AUDIO_ARGS]
        else:
            if list_file is None:
                raise ValueError("list_file is required for a stream-copy merge")
            args += ["-f", "concat", "-safe", "0", "-i", str(list_file), "-c", COPY_CODEC]

        output_path = self.output_path_for(options)
        args.append(str(output_path))
        return BuildResult(args=tuple(args), output_path=output_path)


class GifConversionStrategy(_BaseStrategy):
    """Strategy for video-to-GIF conversion.

    Standard mode decimates and scales only. High quality mode splits the
    stream, builds a palette from one branch and applies it to the other.
    """

    name = "gif"
    description = "Converting to GIF"

    def output_path_for(self, options: GifOptions) -> Path:
        return resolve_output_path(options.input_path, options.output_path, "gif", "_animated")

    def expected_duration(
        self,
        options: GifOptions,
        media_info: MediaInfo | None,
    ) -> float | None:
        if options.duration:
            return parse_timestamp(options.duration)
        total = super().expected_duration(options, media_info)
        start = parse_timestamp(options.start_time) if options.start_time else 0.0
        if total is None or start is None:
            return total
        return max(total - start, 0.0)

    def build_command(
        self,
        options: GifOptions,
        media_info: MediaInfo | None = None,  # noqa: ARG002
    ) -> BuildResult:
        """Build the ffmpeg command for video-to-GIF conversion.

        Raises:
            InvalidOptions: If width or fps are not positive.
        """
        options.validate()
        args = _preamble(options.overwrite)

        if options.start_time:
            args += ["-ss", options.start_time]
        args += ["-i", str(options.input_path)]
        if options.duration:
            args += ["-t", options.duration]

        filters = f"fps={format_number(options.fps)},scale={options.width}:-1:flags=lanczos"
        if options.high_quality:
            graph = (
                f"{filters},split[s0][s1];"
                "[s0]palettegen=stats_mode=diff[p];"
                "[s1][p]paletteuse=dither=bayer:bayer_scale=5:diff_mode=rectangle"
            )
            args += ["-filter_complex", graph]
        else:
            args += ["-vf", filters]

        args += ["-loop", "0"]

        output_path = self.output_path_for(options)
        args.append(str(output_path))
        return BuildResult(args=tuple(args), output_path=output_path)


class ThumbnailStrategy(_BaseStrategy):
    """Still previews: one frame, N evenly spaced frames, or a tiled grid.

    Multiple and grid modes sample at ``frames / duration`` fps so the
    picks spread over the whole file.
    """

    name = "thumbnail"
    description = "Generating thumbnails"

    def output_path_for(self, options: ThumbnailOptions) -> Path:
        ext = options.format.lower()
        mode = options.mode
        if isinstance(mode, MultipleThumbnails):
            tail = f"_thumb_%02d.{ext}"
        elif isinstance(mode, ThumbnailGrid):
            tail = f"_grid.{ext}"
        else:
            tail = f"_thumb.{ext}"
        return sequence_output_path(options.input_path, options.output_path, tail)

    def needs_media_info(self, options: ThumbnailOptions) -> bool:
        mode = options.mode
        return not (isinstance(mode, SingleThumbnail) and mode.time)

    def build_command(
        self,
        options: ThumbnailOptions,
        media_info: MediaInfo | None = None,
    ) -> BuildResult:
        """Build the ffmpeg command for thumbnails.

        Raises:
            InvalidOptions: On a bad width or format.
            MissingDuration: If the mode needs a duration that was not probed.
        """
        options.validate()
        mode = options.mode
        args = _preamble(options.overwrite)

        if isinstance(mode, SingleThumbnail):
            seek = mode.time or format_number(_require_duration(media_info) / 2)
            args += ["-ss", seek, "-i", str(options.input_path), "-frames:v", "1"]
            if options.width:
                args += ["-vf", f"scale={options.width}:-1"]
        elif isinstance(mode, MultipleThumbnails):
            fps = mode.count / _require_duration(media_info)
            filters = [f"fps={format_number(fps)}"]
            if options.width:
                filters.append(f"scale={options.width}:-1")
            args += ["-i", str(options.input_path), "-vf", ",".join(filters)]
            args += ["-frames:v", str(mode.count)]
        else:
            fps = mode.total_frames / _require_duration(media_info)
            tile_width = options.width or DEFAULT_GRID_TILE_WIDTH
            graph = f"fps={format_number(fps)},scale={tile_width}:-1,tile={mode.cols}x{mode.rows}"
            args += ["-i", str(options.input_path), "-vf", graph, "-frames:v", "1"]

        output_path = self.output_path_for(options)
        args.append(str(output_path))
        return BuildResult(args=tuple(args), output_path=output_path)


STRATEGIES: dict[str, OperationStrategy] = {
    strategy.name: strategy
    for strategy in (
        ConvertStrategy(),
        TrimStrategy(),
        CompressStrategy(),
        ExtractStrategy(),
        MergeStrategy(),
        GifConversionStrategy(),
        ThumbnailStrategy(),
    )
}


def get_strategy(operation: str) -> OperationStrategy:
    """Return the strategy for ``operation``.

    Raises:
        InvalidOptions: For an unknown operation name.
    """
    try:
        return STRATEGIES[operation]
    except KeyError as e:
        raise InvalidOptions(f"Unknown operation: {operation}") from e
