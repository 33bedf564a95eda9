"""Command line interface: one subcommand per operation plus ``info`` and ``version``.

Exit status is 0 on success and 1 on any validation or ffmpeg failure.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from ffwrap.backend.operations import build_service
from ffwrap.backend.services.bitrate import format_bitrate_display, format_size, format_time
from ffwrap.backend.services.command_runner import ProgressInfo
from ffwrap.backend.services.conversion import ConversionService
from ffwrap.backend.services.error_classifier import is_stream_copy_error
from ffwrap.backend.services.errors import ExternalToolFailure, FFwrapError, format_message
from ffwrap.backend.services.file_manager import is_output_template
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
from ffwrap.backend.services.probe import MediaInfo
from ffwrap.backend.utils.constant import VERSION

GIF_SIZE_WARNING_BYTES = 10 * 1024 * 1024


class Console:
    """Writes user-facing status lines; silent when ``quiet``."""

    def __init__(self, *, quiet: bool = False) -> None:
        self.quiet = quiet

    def info(self, message: str = "") -> None:
        if not self.quiet:
            print(message)

    def error(self, message: str) -> None:
        print(message, file=sys.stderr)

    def progress(self, label: str, progress: ProgressInfo) -> None:
        if self.quiet:
            return
        line = f"\r{label}... {progress.percent:5.1f}%"
        if progress.est_seconds_remaining is not None:
            line += f" (ETA {format_time(progress.est_seconds_remaining)})"
        sys.stderr.write(line)
        sys.stderr.flush()

    def end_progress(self) -> None:
        if not self.quiet:
            sys.stderr.write("\n")


# ---------------------------------------------------------------------------
# Option builders
# ---------------------------------------------------------------------------


def _convert_options(args: argparse.Namespace) -> ConvertOptions:
    return ConvertOptions(
        input_path=Path(args.input),
        output_path=args.output,
        format=args.format,
        quality=args.quality,
        video_codec=args.video_codec,
        audio_codec=args.audio_codec,
        resolution=args.resolution,
        fps=args.fps,
        start_time=args.start,
        end_time=args.end,
        duration=args.duration,
        no_audio=args.no_audio,
        no_video=args.no_video,
        overwrite=args.overwrite,
    )


def _trim_options(args: argparse.Namespace) -> TrimOptions:
    return TrimOptions(
        input_path=Path(args.input),
        output_path=args.output,
        start_time=args.start,
        end_time=args.end,
        duration=args.duration,
        copy=args.copy,
        overwrite=args.overwrite,
    )


def _compress_options(args: argparse.Namespace) -> CompressOptions:
    return CompressOptions(
        input_path=Path(args.input),
        target=compress_target_from_fields(args.target_size, args.bitrate, args.percent),
        output_path=args.output,
        audio_bitrate=args.audio_bitrate,
        overwrite=args.overwrite,
    )


def _extract_options(args: argparse.Namespace) -> ExtractOptions:
    mode = extract_mode_from_fields(
        args.audio,
        args.video,
        args.frames,
        time=args.time,
        fps=args.fps,
        audio_format=args.format,
    )
    return ExtractOptions(
        input_path=Path(args.input),
        mode=mode,
        output_path=args.output,
        overwrite=args.overwrite,
    )


def _merge_options(args: argparse.Namespace) -> MergeOptions:
    return MergeOptions(
        inputs=[Path(p) for p in args.inputs],
        output_path=args.output,
        reencode=args.reencode,
        overwrite=args.overwrite,
    )


def _gif_options(args: argparse.Namespace) -> GifOptions:
    return GifOptions(
        input_path=Path(args.input),
        output_path=args.output,
        start_time=args.start,
        duration=args.duration,
        width=args.width,
        fps=args.fps,
        high_quality=args.high_quality,
        overwrite=args.overwrite,
    )


def _thumbnail_options(args: argparse.Namespace) -> ThumbnailOptions:
    return ThumbnailOptions(
        input_path=Path(args.input),
        mode=thumbnail_mode_from_fields(args.time, args.count, args.grid),
        output_path=args.output,
        width=args.width,
        format=args.format,
        overwrite=args.overwrite,
    )


OPTION_BUILDERS = {
    "convert": _convert_options,
    "trim": _trim_options,
    "compress": _compress_options,
    "extract": _extract_options,
    "merge": _merge_options,
    "gif": _gif_options,
    "thumbnail": _thumbnail_options,
}


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _describe_input(path: Path, media_info: MediaInfo | None) -> str:
    parts = []
    if media_info is not None:
        if media_info.duration > 0:
            parts.append(format_time(media_info.duration))
        if media_info.width and media_info.height:
            parts.append(f"{media_info.width}x{media_info.height}")
    if path.exists():
        parts.append(format_size(path.stat().st_size))
    return f"{path.name} ({', '.join(parts)})" if parts else path.name


def _report_output(
    console: Console,
    options: OperationOptions,
    output_path: Path,
) -> None:
    if is_output_template(output_path) or not output_path.exists():
        console.info(f"Output: {output_path}")
        return

    output_size = output_path.stat().st_size
    console.info(f"Output: {output_path} ({format_size(output_size)})")

    inputs = options.input_paths
    if len(inputs) == 1 and Path(inputs[0]).exists():
        input_size = Path(inputs[0]).stat().st_size
        if input_size > 0:
            change = (output_size - input_size) / input_size * 100
            console.info(
                f"Size: {format_size(input_size)} -> {format_size(output_size)} ({change:+.1f}%)"
            )

    if isinstance(options, GifOptions) and output_size > GIF_SIZE_WARNING_BYTES:
        console.info(
            f"Warning: the GIF is {format_size(output_size)}. To shrink it, lower --width "
            f"(now {options.width}), lower --fps (now {options.fps:g}) or shorten --duration"
        )


def cmd_operation(
    args: argparse.Namespace,
    service: ConversionService,
    console: Console,
) -> int:
    """Run one of the ffmpeg operations."""
    options = OPTION_BUILDERS[args.command](args)

    # Every precondition is checked before ffprobe runs; run() reuses the probe
    _, media_info = service.prepare(options, want_progress=True)
    if isinstance(options, MergeOptions):
        console.info(f"Inputs: {len(options.inputs)} file(s)")
    else:
        first_input = Path(options.input_paths[0])
        console.info(f"Input: {_describe_input(first_input, media_info)}")

    label = args.command.capitalize()
    started = False

    def on_progress(progress: ProgressInfo) -> None:
        nonlocal started
        started = True
        console.progress(label, progress)

    try:
        result = service.run(options, on_progress=on_progress, media_info=media_info)
    finally:
        if started:
            console.end_progress()

    _report_output(console, options, result.output_path)
    return 0


def cmd_info(args: argparse.Namespace, service: ConversionService, console: Console) -> int:
    """Print a file's container and stream details."""
    media_info = service.info(args.input)
    lines = [
        f"File: {args.input}",
        f"Format: {media_info.format_long_name} ({media_info.format_name})",
        f"Duration: {format_time(media_info.duration)}",
        f"Size: {format_size(media_info.size)}",
        f"Bitrate: {format_bitrate_display(media_info.bitrate)}",
        f"Streams: {media_info.nb_streams}",
    ]
    video = media_info.video
    if video:
        lines += [
            "",
            "Video:",
            f"  Codec: {video.codec} ({video.codec_long_name})",
            f"  Resolution: {video.width}x{video.height}",
            f"  Frame rate: {video.frame_rate:.2f} fps",
        ]
        if video.profile:
            lines.append(f"  Profile: {video.profile}")
        if video.aspect_ratio:
            lines.append(f"  Aspect ratio: {video.aspect_ratio}")
        if video.pixel_format:
            lines.append(f"  Pixel format: {video.pixel_format}")
        if video.bitrate:
            lines.append(f"  Bitrate: {format_bitrate_display(video.bitrate)}")
    audio = media_info.audio
    if audio:
        lines += [
            "",
            "Audio:",
            f"  Codec: {audio.codec} ({audio.codec_long_name})",
            f"  Sample rate: {audio.sample_rate} Hz",
            f"  Channels: {audio.channels}"
            + (f" ({audio.channel_layout})" if audio.channel_layout else ""),
        ]
        if audio.bitrate:
            lines.append(f"  Bitrate: {format_bitrate_display(audio.bitrate)}")
    if media_info.subtitles:
        lines += ["", "Subtitles:"]
        for index, subtitle in enumerate(media_info.subtitles):
            lines.append(f"  #{index}: {subtitle.codec} ({subtitle.language or 'unknown'})")

    for line in lines:
        print(line)
    return 0


def cmd_version(
    args: argparse.Namespace,  # noqa: ARG001
    service: ConversionService,
    console: Console,  # noqa: ARG001
) -> int:
    """Print the ffwrap and ffmpeg versions."""
    print(f"ffwrap {VERSION}")
    print(f"ffmpeg {service.ffmpeg_runner.version()}")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _add_common(parser: argparse.ArgumentParser, *, positional_output: bool = True) -> None:
    if positional_output:
        parser.add_argument("output", nargs="?", default=None, help="Output file path")
    else:
        parser.add_argument("-o", "--output", default=None, help="Output file path")
    parser.add_argument(
        "-y", "--overwrite", action="store_true", help="Overwrite the output if it exists"
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="ffwrap",
        description="Friendly front end for common ffmpeg tasks",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print errors")
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("convert", help="Convert to another format")
    p.add_argument("input", help="Input file")
    _add_common(p)
    p.add_argument("-f", "--format", choices=sorted(FORMAT_PRESETS), help="Target format")
    p.add_argument("--quality", choices=list(QUALITY_PRESETS), help="Quality preset")
    p.add_argument("--video-codec", help="Video codec (h264, h265, vp9, av1, copy, ...)")
    p.add_argument("--audio-codec", help="Audio codec (aac, mp3, opus, flac, copy, ...)")
    p.add_argument(
        "-r",
        "--resolution",
        help=f"{', '.join(RESOLUTION_PRESETS)}, WxH, or a width",
    )
    p.add_argument("--fps", type=float, help="Output frame rate")
    p.add_argument("-s", "--start", help="Start time")
    p.add_argument("-e", "--end", help="End time")
    p.add_argument("-d", "--duration", help="Duration")
    p.add_argument("--no-audio", action="store_true", help="Drop the audio stream")
    p.add_argument("--no-video", action="store_true", help="Drop the video stream")

    p = sub.add_parser("trim", help="Cut a time range")
    p.add_argument("input", help="Input file")
    _add_common(p)
    p.add_argument("-s", "--start", help="Start time")
    p.add_argument("-e", "--end", help="End time")
    p.add_argument("-d", "--duration", help="Duration")
    p.add_argument(
        "--copy", action="store_true", help="Stream copy: fast, cuts on keyframes"
    )

    p = sub.add_parser("compress", help="Reduce file size")
    p.add_argument("input", help="Input file")
    _add_common(p)
    p.add_argument("-t", "--target-size", help="Target size, e.g. 25MB")
    p.add_argument("-b", "--bitrate", help="Video bitrate, e.g. 2M")
    p.add_argument("-p", "--percent", type=float, help="Percent of the current bitrate")
    p.add_argument("--audio-bitrate", default="128k", help="Audio bitrate (default 128k)")

    p = sub.add_parser("extract", help="Extract audio, video or frames")
    p.add_argument("input", help="Input file")
    _add_common(p)
    p.add_argument("--audio", action="store_true", help="Extract the audio track")
    p.add_argument("--video", action="store_true", help="Extract the video track")
    p.add_argument("--frames", action="store_true", help="Extract frames")
    p.add_argument("--time", help="Single frame at this time (with --frames)")
    p.add_argument("--fps", type=float, help="Frames per second (with --frames)")
    p.add_argument("-f", "--format", default="mp3", help="Audio format (default mp3)")

    p = sub.add_parser("merge", help="Concatenate files")
    p.add_argument("inputs", nargs="+", help="Input files, in order")
    _add_common(p, positional_output=False)
    p.add_argument(
        "--reencode", action="store_true", help="Re-encode (for inputs with different codecs)"
    )

    p = sub.add_parser("gif", help="Create an animated GIF")
    p.add_argument("input", help="Input file")
    _add_common(p)
    p.add_argument("-s", "--start", help="Start time")
    p.add_argument("-d", "--duration", help="Duration")
    p.add_argument("-w", "--width", type=int, default=480, help="Width in pixels (default 480)")
    p.add_argument("--fps", type=float, default=15, help="Frame rate (default 15)")
    p.add_argument("--high-quality", action="store_true", help="Use a generated palette")

    p = sub.add_parser("thumbnail", help="Generate thumbnails")
    p.add_argument("input", help="Input file")
    _add_common(p)
    p.add_argument("--time", help="Frame at this time (default: middle of the file)")
    p.add_argument("--count", type=int, help="Number of evenly spaced thumbnails")
    p.add_argument("--grid", help="Contact sheet layout, e.g. 3x3")
    p.add_argument("-w", "--width", type=int, help="Thumbnail width")
    p.add_argument("-f", "--format", default="png", choices=["png", "jpg", "jpeg"])

    p = sub.add_parser("info", help="Show media information")
    p.add_argument("input", help="Input file")

    sub.add_parser("version", help="Show ffwrap and ffmpeg versions")

    return parser


def configure_logging(*, verbose: bool, quiet: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def main(argv: list[str] | None = None, *, service: ConversionService | None = None) -> int:
    """CLI entry point.

    Args:
        argv: Arguments (``sys.argv[1:]`` when None).
        service: Service to use; one is built from configuration if omitted.

    Returns:
        Process exit status.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(verbose=args.verbose, quiet=args.quiet)
    console = Console(quiet=args.quiet)
    service = service or build_service()

    if args.command == "info":
        handler = cmd_info
    elif args.command == "version":
        handler = cmd_version
    else:
        handler = cmd_operation

    try:
        return handler(args, service, console)
    except FFwrapError as e:
        console.error(e.format())
        if isinstance(e, ExternalToolFailure):
            if args.verbose:
                console.error(e.stderr)
            if args.command == "merge" and not args.reencode and is_stream_copy_error(e.stderr):
                console.error("Tip: Try --reencode if the files have different codecs")
        return 1
    except OSError as e:
        console.error(format_message(str(e)))
        return 1
    except KeyboardInterrupt:
        console.error("Error: Interrupted")
        return 1


if __name__ == "__main__":
    sys.exit(main())
