"""Static preset tables mapping human vocabulary to encoder settings.

Every lookup either resolves or falls back to a well defined value; unknown
codec names are passed through verbatim so custom encoders stay usable.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FormatPreset:
    """Container format with its default codecs.

    A ``None`` video codec marks an audio-only container; a ``None`` audio
    codec marks a container without sound (e.g. GIF).

    Attributes:
        name: Format key as typed by users.
        container: Muxer name understood by ffmpeg.
        video_codec: Default video encoder, if the container carries video.
        audio_codec: Default audio encoder, if the container carries audio.
        extension: File extension without the leading dot.
        description: Human readable description.
    """

    name: str
    container: str
    video_codec: str | None
    audio_codec: str | None
    extension: str
    description: str

    @property
    def is_audio_only(self) -> bool:
        """Return True when the container has no video stream."""
        return self.video_codec is None


@dataclass(frozen=True)
class QualityPreset:
    """Quality tier: CRF value, encoder speed preset and audio bitrate."""

    name: str
    crf: int
    speed: str
    audio_bitrate: str
    description: str


@dataclass(frozen=True)
class ResolutionPreset:
    """Named output resolution used to seed a scale filter."""

    label: str
    width: int
    height: int
    description: str


FORMAT_PRESETS: dict[str, FormatPreset] = {
    preset.name: preset
    for preset in (
        FormatPreset(
            "mp4", "mp4", "libx264", "aac", "mp4", "Most compatible format (H.264 + AAC)"
        ),
        FormatPreset(
            "webm", "webm", "libvpx-vp9", "libopus", "webm", "Web-optimized format (VP9 + Opus)"
        ),
        FormatPreset(
            "mkv", "matroska", "libx264", "aac", "mkv", "Flexible container (H.264 + AAC)"
        ),
        FormatPreset("mov", "mov", "libx264", "aac", "mov", "Apple QuickTime format"),
        FormatPreset("gif", "gif", "gif", None, "gif", "Animated GIF (no audio)"),
        FormatPreset("mp3", "mp3", None, "libmp3lame", "mp3", "MP3 audio"),
        FormatPreset("wav", "wav", None, "pcm_s16le", "wav", "Uncompressed audio"),
        FormatPreset("flac", "flac", None, "flac", "flac", "Lossless audio"),
        FormatPreset("ogg", "ogg", None, "libvorbis", "ogg", "Ogg Vorbis audio"),
        FormatPreset("avi", "avi", "libx264", "libmp3lame", "avi", "Legacy AVI format"),
        FormatPreset("ts", "mpegts", "libx264", "aac", "ts", "MPEG Transport Stream"),
    )
}

# Ordered from smallest output to best quality; CRF falls as quality rises.
QUALITY_PRESETS: dict[str, QualityPreset] = {
    preset.name: preset
    for preset in (
        QualityPreset("low", 28, "fast", "96k", "Smaller file, lower quality"),
        QualityPreset("medium", 23, "medium", "128k", "Balanced quality and size"),
        QualityPreset("high", 18, "slow", "192k", "Better quality, larger file"),
        QualityPreset("lossless", 0, "veryslow", "320k", "Best quality, largest file"),
    )
}

DEFAULT_QUALITY = "medium"

RESOLUTION_PRESETS: dict[str, ResolutionPreset] = {
    preset.label: preset
    for preset in (
        ResolutionPreset("360p", 640, 360, "Low (360p)"),
        ResolutionPreset("480p", 854, 480, "SD (480p)"),
        ResolutionPreset("720p", 1280, 720, "HD (720p)"),
        ResolutionPreset("1080p", 1920, 1080, "Full HD (1080p)"),
        ResolutionPreset("1440p", 2560, 1440, "2K (1440p)"),
        ResolutionPreset("4k", 3840, 2160, "4K UHD"),
    )
}

COPY_CODEC = "copy"

VIDEO_CODECS: dict[str, str] = {
    "h264": "libx264",
    "x264": "libx264",
    "h265": "libx265",
    "x265": "libx265",
    "hevc": "libx265",
    "vp8": "libvpx",
    "vp9": "libvpx-vp9",
    "av1": "libaom-av1",
    "copy": COPY_CODEC,
}

AUDIO_CODECS: dict[str, str] = {
    "aac": "aac",
    "mp3": "libmp3lame",
    "opus": "libopus",
    "vorbis": "libvorbis",
    "flac": "flac",
    "wav": "pcm_s16le",
    "copy": COPY_CODEC,
}

CRF_CODECS = frozenset({"libx264", "libx265", "libvpx-vp9", "libaom-av1"})

# Lossless or passthrough audio encoders never take a bitrate
NO_BITRATE_AUDIO_CODECS = frozenset({COPY_CODEC, "flac", "pcm_s16le"})

# Audio extraction: format -> (encoder, codec-specific quality flags)
AUDIO_EXTRACT_CODECS: dict[str, tuple[str, tuple[str, ...]]] = {
    "mp3": ("libmp3lame", ("-q:a", "2")),
    "wav": ("pcm_s16le", ()),
    "flac": ("flac", ()),
    "aac": ("aac", ("-b:a", "192k")),
    "ogg": ("libvorbis", ()),
    "opus": ("libopus", ()),
}

DEFAULT_AUDIO_BITRATE_BPS = 128_000

MEDIA_EXTENSIONS: dict[str, tuple[str, ...]] = {
    "video": ("mp4", "mkv", "mov", "avi", "webm", "flv", "wmv", "m4v", "mpg", "mpeg", "ts", "3gp"),
    "audio": ("mp3", "wav", "flac", "aac", "ogg", "m4a", "wma", "opus"),
    "image": ("jpg", "jpeg", "png", "gif", "bmp", "webp", "tiff", "svg"),
}


def get_format_preset(name: str | None) -> FormatPreset | None:
    """Look up a container preset by name (case-insensitive)."""
    if not name:
        return None
    return FORMAT_PRESETS.get(name.lower().lstrip("."))


def get_quality_preset(name: str | None) -> QualityPreset:
    """Look up a quality tier, falling back to ``medium``.

    Args:
        name: Quality tier name or None.

    Returns:
        The matching preset, or the default tier when unset or unknown.
    """
    if name and name.lower() in QUALITY_PRESETS:
        return QUALITY_PRESETS[name.lower()]
    return QUALITY_PRESETS[DEFAULT_QUALITY]


def get_resolution_preset(label: str) -> ResolutionPreset | None:
    """Look up a named resolution such as ``720p``."""
    return RESOLUTION_PRESETS.get(label.lower())


def resolve_video_codec(name: str) -> str:
    """Map a short video codec name to its encoder, passing unknown names through."""
    return VIDEO_CODECS.get(name.lower(), name)


def resolve_audio_codec(name: str) -> str:
    """Map a short audio codec name to its encoder, passing unknown names through."""
    return AUDIO_CODECS.get(name.lower(), name)


def supports_crf(codec: str) -> bool:
    """Return True if the encoder accepts constant-rate-factor control."""
    return codec in CRF_CODECS


def takes_audio_bitrate(codec: str) -> bool:
    """Return True if a target bitrate makes sense for the audio encoder."""
    return codec not in NO_BITRATE_AUDIO_CODECS


def get_media_type(extension: str) -> str | None:
    """Classify a file extension as ``video``, ``audio`` or ``image``.

    Args:
        extension: Extension with or without the leading dot.

    Returns:
        The media type, or None for unknown extensions.
    """
    ext = extension.lower().lstrip(".")
    for media_type, extensions in MEDIA_EXTENSIONS.items():
        if ext in extensions:
            return media_type
    return None
