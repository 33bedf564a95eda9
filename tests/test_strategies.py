"""Tests for ffmpeg argument construction, one strategy at a time."""

from __future__ import annotations

from pathlib import Path

import pytest

from ffwrap.backend.services.conversion_strategy import (
    PRECISE_AUDIO_ARGS,
    PRECISE_VIDEO_ARGS,
    CompressStrategy,
    ConvertStrategy,
    ExtractStrategy,
    GifConversionStrategy,
    MergeStrategy,
    ThumbnailStrategy,
    TrimStrategy,
    build_scale_filter,
    format_number,
    get_strategy,
)
from ffwrap.backend.services.errors import InvalidOptions, MissingDuration
from ffwrap.backend.services.options import (
    CompressOptions,
    ConvertOptions,
    ExtractAudio,
    ExtractFrameAt,
    ExtractFrameSequence,
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
from ffwrap.backend.services.probe import MediaInfo


def _media(duration: float = 120.0, size: int = 0) -> MediaInfo:
    return MediaInfo(duration=duration, size=size, format_name="mp4")


def _value_after(args: tuple[str, ...], flag: str) -> str:
    return args[args.index(flag) + 1]


# --- convert ---


def test_convert__mov_to_mp4_uses_preset_codecs_and_quality() -> None:
    """Format preset supplies codecs; medium quality supplies CRF, speed and audio bitrate."""
    result = ConvertStrategy().build_command(
        ConvertOptions(Path("/media/clip.mov"), format="mp4")
    )
    assert result.args == (
        "-hide_banner",
        "-i",
        "/media/clip.mov",
        "-c:v",
        "libx264",
        "-crf",
        "23",
        "-preset",
        "medium",
        "-c:a",
        "aac",
        "-b:a",
        "128k",
        "/media/clip.mp4",
    )
    assert result.output_path == Path("/media/clip.mp4")


def test_convert__overwrite_flag_comes_first() -> None:
    """-y is always the very first token."""
    result = ConvertStrategy().build_command(
        ConvertOptions(Path("a.mov"), format="mp4", overwrite=True)
    )
    assert result.args[:2] == ("-y", "-hide_banner")


def test_convert__same_extension_gets_suffix() -> None:
    """Converting mp4 to mp4 never targets the input itself."""
    result = ConvertStrategy().build_command(
        ConvertOptions(Path("/m/a.mp4"), quality="high")
    )
    assert result.output_path == Path("/m/a_converted.mp4")
    assert _value_after(result.args, "-crf") == "18"
    assert _value_after(result.args, "-b:a") == "192k"


def test_convert__audio_only_target_drops_video() -> None:
    """mp3 output gets -vn and no video codec or filter."""
    result = ConvertStrategy().build_command(
        ConvertOptions(Path("/m/a.mp4"), format="mp3", resolution="720p")
    )
    assert "-vn" in result.args
    assert "-c:v" not in result.args
    assert "-vf" not in result.args
    assert _value_after(result.args, "-c:a") == "libmp3lame"
    assert result.output_path == Path("/m/a.mp3")


def test_convert__gif_target_drops_audio() -> None:
    """GIF has no audio stream and gif is not a CRF encoder."""
    result = ConvertStrategy().build_command(ConvertOptions(Path("/m/a.mp4"), format="gif"))
    assert "-an" in result.args
    assert "-c:a" not in result.args
    assert "-crf" not in result.args
    assert _value_after(result.args, "-c:v") == "gif"


def test_convert__lossless_audio_takes_no_bitrate() -> None:
    """flac is encoded without -b:a."""
    result = ConvertStrategy().build_command(ConvertOptions(Path("/m/a.wav"), format="flac"))
    assert _value_after(result.args, "-c:a") == "flac"
    assert "-b:a" not in result.args


def test_convert__user_codecs_override_preset() -> None:
    """Codec aliases win over the format preset; copy gets no CRF."""
    result = ConvertStrategy().build_command(
        ConvertOptions(
            Path("/m/a.mov"), format="mkv", video_codec="h265", audio_codec="copy"
        )
    )
    assert _value_after(result.args, "-c:v") == "libx265"
    assert "-crf" in result.args
    assert _value_after(result.args, "-c:a") == "copy"
    assert "-b:a" not in result.args

    copied = ConvertStrategy().build_command(
        ConvertOptions(Path("/m/a.mov"), format="mkv", video_codec="copy")
    )
    assert _value_after(copied.args, "-c:v") == "copy"
    assert "-crf" not in copied.args


def test_convert__time_range_and_stream_flags() -> None:
    """Time bounds follow the input; scale and fps go to the video stream."""
    result = ConvertStrategy().build_command(
        ConvertOptions(
            Path("/m/a.mov"),
            format="mp4",
            start_time="00:00:05",
            duration="10",
            resolution="720p",
            fps=30,
            no_audio=True,
        )
    )
    args = result.args
    assert args.index("-i") < args.index("-ss") < args.index("-t")
    assert _value_after(args, "-vf") == "scale=1280:-2"
    assert _value_after(args, "-r") == "30"
    assert "-an" in args
    assert "-c:a" not in args


def test_convert__copy_codec_with_scaling_is_rejected() -> None:
    """A stream copy cannot be scaled."""
    with pytest.raises(InvalidOptions):
        ConvertStrategy().build_command(
            ConvertOptions(Path("/m/a.mov"), video_codec="copy", resolution="720p")
        )


def test_convert__removing_the_only_stream_is_rejected() -> None:
    """Audio-only formats cannot drop audio, and GIF cannot drop video."""
    strategy = ConvertStrategy()
    with pytest.raises(InvalidOptions, match="neither video nor audio"):
        strategy.validate(ConvertOptions(Path("/m/a.mp4"), format="mp3", no_audio=True))
    with pytest.raises(InvalidOptions, match="neither video nor audio"):
        strategy.build_command(ConvertOptions(Path("/m/a.mp4"), format="gif", no_video=True))

    video_only = strategy.build_command(
        ConvertOptions(Path("/m/a.mp4"), format="mp4", no_audio=True)
    )
    assert "-an" in video_only.args

def test_convert__target_format_from_output_extension() -> None:
    """Without a format the explicit output's extension decides the preset."""
    result = ConvertStrategy().build_command(
        ConvertOptions(Path("/m/a.mp4"), output_path=Path("/out/b.webm"))
    )
    assert _value_after(result.args, "-c:v") == "libvpx-vp9"
    assert result.output_path == Path("/out/b.webm")


@pytest.mark.parametrize(
    ("resolution", "expected"),
    [
        ("720p", "scale=1280:-2"),
        ("4K", "scale=3840:-2"),
        ("1920x1080", "scale=1920:1080"),
        ("640", "scale=640:-2"),
    ],
)
def test_build_scale_filter(resolution: str, expected: str) -> None:
    """Presets, WxH and bare widths all produce a scale filter."""
    assert build_scale_filter(resolution) == expected


@pytest.mark.parametrize("resolution", ["big", "x720", "1280x", "-640"])
def test_build_scale_filter__rejects_garbage(resolution: str) -> None:
    """Anything else is InvalidOptions."""
    with pytest.raises(InvalidOptions):
        build_scale_filter(resolution)


# --- trim ---


def test_trim__copy_mode_seeks_before_input() -> None:
    """Copy mode: all time bounds before -i, streams copied."""
    result = TrimStrategy().build_command(
        TrimOptions(Path("/m/a.mp4"), start_time="00:00:10", end_time="00:00:20", copy=True)
    )
    assert result.args == (
        "-hide_banner",
        "-ss",
        "00:00:10",
        "-to",
        "00:00:20",
        "-i",
        "/m/a.mp4",
        "-c",
        "copy",
        "-avoid_negative_ts",
        "make_zero",
        "/m/a_trimmed.mp4",
    )


def test_trim__precise_mode_reencodes_after_input() -> None:
    """Re-encode mode: time bounds after -i, then the precise encoder settings."""
    result = TrimStrategy().build_command(
        TrimOptions(Path("/m/a.mkv"), start_time="5", duration="30")
    )
    assert result.args == (
        "-hide_banner",
        "-i",
        "/m/a.mkv",
        "-ss",
        "5",
        "-t",
        "30",
        *PRECISE_VIDEO_ARGS,
        *PRECISE_AUDIO_ARGS,
        "-avoid_negative_ts",
        "make_zero",
        "/m/a_trimmed.mkv",
    )


def test_trim__expected_duration() -> None:
    """Progress length comes from duration, end minus start, or total minus start."""
    strategy = TrimStrategy()
    media = _media(duration=100.0)
    assert strategy.expected_duration(TrimOptions(Path("a"), duration="30"), media) == 30.0
    assert (
        strategy.expected_duration(TrimOptions(Path("a"), start_time="10", end_time="25"), media)
        == 15.0
    )
    assert strategy.expected_duration(TrimOptions(Path("a"), start_time="1:00"), media) == 40.0
    assert strategy.expected_duration(TrimOptions(Path("a"), start_time="10"), None) is None


# --- compress ---


def test_compress__target_size() -> None:
    """10 MB over 120 s gives 536k video with maxrate and bufsize around it."""
    options = CompressOptions(Path("/m/a.mp4"), TargetSize(10 * 1024 * 1024))
    strategy = CompressStrategy()
    assert strategy.needs_media_info(options)

    result = strategy.build_command(options, _media(duration=120.0))
    assert result.args == (
        "-hide_banner",
        "-i",
        "/m/a.mp4",
        "-c:v",
        "libx264",
        "-b:v",
        "536k",
        "-maxrate",
        "804k",
        "-bufsize",
        "1.1M",
        "-preset",
        "medium",
        "-c:a",
        "aac",
        "-b:a",
        "128k",
        "/m/a_compressed.mp4",
    )


def test_compress__explicit_bitrate_needs_no_probe() -> None:
    """A fixed bitrate is used as-is."""
    options = CompressOptions(Path("/m/a.mp4"), TargetBitrate(2_000_000))
    strategy = CompressStrategy()
    assert not strategy.needs_media_info(options)

    args = strategy.build_command(options).args
    assert _value_after(args, "-b:v") == "2.0M"
    assert _value_after(args, "-maxrate") == "3.0M"
    assert _value_after(args, "-bufsize") == "4.0M"


def test_compress__percent_of_current_bitrate() -> None:
    """50% of a 15 MB, 60 s file is 1 Mbps."""
    args = (
        CompressStrategy()
        .build_command(
            CompressOptions(Path("/m/a.mp4"), TargetPercent(50)),
            _media(duration=60.0, size=15_000_000),
        )
        .args
    )
    assert _value_after(args, "-b:v") == "1.0M"


def test_compress__missing_metadata() -> None:
    """Size and percent targets fail without a duration; percent also needs a size."""
    with pytest.raises(MissingDuration):
        CompressStrategy().build_command(CompressOptions(Path("a.mp4"), TargetSize(1_000_000)))
    with pytest.raises(MissingDuration):
        CompressStrategy().build_command(
            CompressOptions(Path("a.mp4"), TargetPercent(50)), _media(duration=60.0, size=0)
        )


# --- extract ---


def test_extract__audio_formats() -> None:
    """Audio extraction drops video and applies per-format codec flags."""
    strategy = ExtractStrategy()

    mp3 = strategy.build_command(ExtractOptions(Path("/m/a.mp4"), ExtractAudio("mp3")))
    assert mp3.args == (
        "-hide_banner",
        "-i",
        "/m/a.mp4",
        "-vn",
        "-c:a",
        "libmp3lame",
        "-q:a",
        "2",
        "/m/a.mp3",
    )

    wav = strategy.build_command(ExtractOptions(Path("/m/a.mp4"), ExtractAudio("wav")))
    assert wav.args[-3:] == ("-c:a", "pcm_s16le", "/m/a.wav")

    same = strategy.build_command(ExtractOptions(Path("/m/a.mp3"), ExtractAudio("mp3")))
    assert same.output_path == Path("/m/a_audio.mp3")


def test_extract__video_stream_copy() -> None:
    """Video extraction copies the video stream and drops audio."""
    result = ExtractStrategy().build_command(ExtractOptions(Path("/m/a.mkv"), ExtractVideo()))
    assert result.args == (
        "-hide_banner",
        "-i",
        "/m/a.mkv",
        "-an",
        "-c:v",
        "copy",
        "/m/a_video.mkv",
    )


def test_extract__frames() -> None:
    """A single frame seeks before the input; a sequence uses an fps filter."""
    single = ExtractStrategy().build_command(
        ExtractOptions(Path("/m/a.mp4"), ExtractFrameAt("00:01:00"))
    )
    assert single.args == (
        "-hide_banner",
        "-ss",
        "00:01:00",
        "-i",
        "/m/a.mp4",
        "-frames:v",
        "1",
        "/m/a_frame.png",
    )

    sequence = ExtractStrategy().build_command(
        ExtractOptions(Path("/m/a.mp4"), ExtractFrameSequence(0.5))
    )
    assert _value_after(sequence.args, "-vf") == "fps=0.5"
    assert sequence.output_path == Path("/m/a_frame_%04d.png")


# --- merge ---


def test_merge__demuxer_uses_list_file() -> None:
    """Stream-copy merge reads the concat list."""
    options = MergeOptions(inputs=[Path("/m/a.mp4"), Path("/m/b.mp4")])
    strategy = MergeStrategy()
    assert strategy.needs_concat_list(options)

    result = strategy.build_command(options, list_file=Path("/tmp/list.txt"))
    assert result.args == (
        "-hide_banner",
        "-f",
        "concat",
        "-safe",
        "0",
        "-i",
        "/tmp/list.txt",
        "-c",
        "copy",
        "/m/a_merged.mp4",
    )


def test_merge__demuxer_without_list_file_is_a_programming_error() -> None:
    """The list file is mandatory in demuxer mode."""
    with pytest.raises(ValueError, match="list_file"):
        MergeStrategy().build_command(MergeOptions(inputs=[Path("a.mp4"), Path("b.mp4")]))


def test_merge__reencode_uses_concat_filter() -> None:
    """Re-encode merge lists every input and maps the filter outputs."""
    options = MergeOptions(
        inputs=[Path("a.mp4"), Path("b.mov"), Path("c.mkv")],
        output_path=Path("out.mp4"),
        reencode=True,
    )
    assert not MergeStrategy().needs_concat_list(options)

    args = MergeStrategy().build_command(options).args
    assert [args[i + 1] for i, token in enumerate(args) if token == "-i"] == [
        "a.mp4",
        "b.mov",
        "c.mkv",
    ]
    assert (
        _value_after(args, "-filter_complex")
        == "[0:v][0:a][1:v][1:a][2:v][2:a]concat=n=3:v=1:a=1[outv][outa]"
    )
    assert args.count("-map") == 2
    assert args[-1] == "out.mp4"


def test_merge__single_input_is_rejected() -> None:
    """Merging one file is InvalidOptions."""
    with pytest.raises(InvalidOptions):
        MergeStrategy().build_command(MergeOptions(inputs=[Path("a.mp4")]), list_file=Path("l"))


# --- gif ---


def test_gif__standard_mode() -> None:
    """Seek before the input, duration after it, fps+scale filter, loop forever."""
    result = GifConversionStrategy().build_command(
        GifOptions(Path("/m/a.mp4"), start_time="3", duration="4", width=320, fps=10)
    )
    assert result.args == (
        "-hide_banner",
        "-ss",
        "3",
        "-i",
        "/m/a.mp4",
        "-t",
        "4",
        "-vf",
        "fps=10,scale=320:-1:flags=lanczos",
        "-loop",
        "0",
        "/m/a.gif",
    )


def test_gif__high_quality_builds_palette_graph() -> None:
    """High quality mode generates and applies a palette in one filter graph."""
    result = GifConversionStrategy().build_command(
        GifOptions(Path("/m/a.gif"), high_quality=True)
    )
    graph = _value_after(result.args, "-filter_complex")
    assert graph.startswith("fps=15,scale=480:-1:flags=lanczos,split[s0][s1];")
    assert "palettegen=stats_mode=diff" in graph
    assert "paletteuse=dither=bayer:bayer_scale=5:diff_mode=rectangle" in graph
    assert "-vf" not in result.args
    assert result.output_path == Path("/m/a_animated.gif")


# --- thumbnail ---


def test_thumbnail__single_defaults_to_midpoint() -> None:
    """Without a time the frame is taken at half the duration."""
    strategy = ThumbnailStrategy()
    options = ThumbnailOptions(Path("/m/a.mp4"))
    assert strategy.needs_media_info(options)

    result = strategy.build_command(options, _media(duration=100.0))
    assert result.args == (
        "-hide_banner",
        "-ss",
        "50",
        "-i",
        "/m/a.mp4",
        "-frames:v",
        "1",
        "/m/a_thumb.png",
    )


def test_thumbnail__single_at_time_needs_no_probe() -> None:
    """An explicit time skips the probe and honours width."""
    strategy = ThumbnailStrategy()
    options = ThumbnailOptions(
        Path("/m/a.mp4"), mode=SingleThumbnail("00:00:07"), width=200, format="jpg"
    )
    assert not strategy.needs_media_info(options)

    result = strategy.build_command(options)
    assert _value_after(result.args, "-ss") == "00:00:07"
    assert _value_after(result.args, "-vf") == "scale=200:-1"
    assert result.output_path == Path("/m/a_thumb.jpg")


def test_thumbnail__multiple_spreads_over_duration() -> None:
    """5 frames over 50 s sample at 0.1 fps."""
    result = ThumbnailStrategy().build_command(
        ThumbnailOptions(Path("/m/a.mp4"), mode=MultipleThumbnails(5)), _media(duration=50.0)
    )
    assert _value_after(result.args, "-vf") == "fps=0.1"
    assert _value_after(result.args, "-frames:v") == "5"
    assert result.output_path == Path("/m/a_thumb_%02d.png")


def test_thumbnail__grid() -> None:
    """A 4x4 grid over 100 s samples 16 frames and tiles them."""
    result = ThumbnailStrategy().build_command(
        ThumbnailOptions(Path("/m/a.mp4"), mode=ThumbnailGrid(4, 4)), _media(duration=100.0)
    )
    assert _value_after(result.args, "-vf") == "fps=0.16,scale=320:-1,tile=4x4"
    assert _value_after(result.args, "-frames:v") == "1"
    assert result.output_path == Path("/m/a_grid.png")


def test_thumbnail__grid_without_duration() -> None:
    """Grid and multiple modes need a probed duration."""
    with pytest.raises(MissingDuration):
        ThumbnailStrategy().build_command(
            ThumbnailOptions(Path("/m/a.mp4"), mode=ThumbnailGrid(2, 2)), _media(duration=0)
        )


# --- helpers ---


def test_format_number() -> None:
    """Whole numbers drop the decimal point."""
    assert format_number(16.0) == "16"
    assert format_number(15) == "15"
    assert format_number(0.16) == "0.16"
    assert format_number(2.5) == "2.5"


def test_get_strategy() -> None:
    """Look strategies up by operation name."""
    assert isinstance(get_strategy("trim"), TrimStrategy)
    assert get_strategy("gif").description == "Converting to GIF"
    with pytest.raises(InvalidOptions, match="Unknown operation"):
        get_strategy("transcode")
