"""Size and bitrate arithmetic.

Size-targeted compression is a single-pass approximation. The 5% container
overhead reservation and the 100 kbps floor are safety margins, not encoder
guarantees, so the produced file only lands near the requested size.
"""

from __future__ import annotations

import re

from ffwrap.backend.services.errors import InvalidOptions, MissingDuration
from ffwrap.backend.services.presets import DEFAULT_AUDIO_BITRATE_BPS

CONTAINER_OVERHEAD_RATIO = 0.95
MIN_VIDEO_BITRATE_BPS = 100_000

_SIZE_RE = re.compile(r"^([\d.]+)\s*(B|KB|MB|GB|TB)?$", re.IGNORECASE)
_BITRATE_RE = re.compile(r"^([\d.]+)\s*(k|m)?$", re.IGNORECASE)

_SIZE_MULTIPLIERS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024**2,
    "GB": 1024**3,
    "TB": 1024**4,
}


def parse_size(size_str: str) -> int:
    """Parse a human file size such as ``"25MB"`` into bytes.

    Units are binary (1 KB = 1024 bytes). A bare number is bytes.

    Args:
        size_str: Size string.

    Returns:
        Size in bytes, rounded down.

    Raises:
        InvalidOptions: If the string is not a recognised size.
    """
    match = _SIZE_RE.match(size_str.strip())
    if not match:
        raise InvalidOptions(f"Invalid size format: {size_str}", "Use a value like 25MB or 500KB")
    try:
        value = float(match.group(1))
    except ValueError as e:
        raise InvalidOptions(f"Invalid size format: {size_str}") from e
    unit = (match.group(2) or "B").upper()
    return int(value * _SIZE_MULTIPLIERS[unit])


def parse_bitrate(bitrate_str: str) -> float:
    """Parse a bitrate such as ``"2M"`` or ``"500k"`` into bits per second.

    Raises:
        InvalidOptions: If the string is not a recognised bitrate.
    """
    match = _BITRATE_RE.match(bitrate_str.strip())
    if not match:
        raise InvalidOptions(
            f"Invalid bitrate format: {bitrate_str}", "Use a value like 2M or 500k"
        )
    try:
        value = float(match.group(1))
    except ValueError as e:
        raise InvalidOptions(f"Invalid bitrate format: {bitrate_str}") from e
    unit = (match.group(2) or "").lower()
    if unit == "m":
        return value * 1_000_000
    if unit == "k":
        return value * 1_000
    return value


def format_bitrate(bps: float) -> str:
    """Format bits per second as an ffmpeg bitrate argument (``"2.0M"``, ``"500k"``)."""
    if bps >= 1_000_000:
        return f"{bps / 1_000_000:.1f}M"
    return f"{bps / 1000:.0f}k"


def format_bitrate_display(bps: float) -> str:
    """Format bits per second for humans (``"2.0 Mbps"``)."""
    if bps >= 1_000_000:
        return f"{bps / 1_000_000:.1f} Mbps"
    if bps >= 1000:
        return f"{bps / 1000:.0f} kbps"
    return f"{bps:.0f} bps"


def format_size(num_bytes: float) -> str:
    """Format a byte count with binary units (``"1.5 MB"``)."""
    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(num_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.1f} {units[unit_index]}"


def format_time(seconds: float) -> str:
    """Format seconds as ``M:SS`` or ``H:MM:SS``."""
    total = int(seconds)
    hrs, rem = divmod(total, 3600)
    mins, secs = divmod(rem, 60)
    if hrs > 0:
        return f"{hrs}:{mins:02d}:{secs:02d}"
    return f"{mins}:{secs:02d}"


def parse_timestamp(value: str | None) -> float | None:
    """Parse an ffmpeg time value (``"90"``, ``"1:30"``, ``"00:01:30.5"``) to seconds.

    Returns:
        Seconds, or None if the value is empty or not a plain timestamp
        (e.g. ``"90ms"``); ffmpeg still receives the original text.
    """
    if not value:
        return None
    parts = value.strip().split(":")
    if len(parts) > 3:
        return None
    seconds = 0.0
    try:
        for part in parts:
            seconds = seconds * 60 + float(part)
    except ValueError:
        return None
    return seconds


def _require_duration(duration_seconds: float | None) -> float:
    if duration_seconds is None or duration_seconds <= 0:
        raise MissingDuration("Cannot determine duration; probe the file first")
    return duration_seconds


def calculate_size_bitrate(
    target_bytes: int,
    duration_seconds: float | None,
    audio_bitrate_bps: float = DEFAULT_AUDIO_BITRATE_BPS,
) -> float:
    """Derive a video bitrate that should produce roughly ``target_bytes``.

    Args:
        target_bytes: Desired output size.
        duration_seconds: Probed media duration.
        audio_bitrate_bps: Bitrate reserved for the audio stream.

    Returns:
        Video bitrate in bits per second, never below 100 kbps.

    Raises:
        MissingDuration: If the duration is unknown or zero.
    """
    duration = _require_duration(duration_seconds)
    total_bitrate = target_bytes * 8 / duration
    video_bitrate = total_bitrate * CONTAINER_OVERHEAD_RATIO - audio_bitrate_bps
    return max(video_bitrate, MIN_VIDEO_BITRATE_BPS)


def calculate_percent_bitrate(
    input_size_bytes: int,
    duration_seconds: float | None,
    percent: float,
) -> float:
    """Derive a bitrate as a percentage of the input's average total bitrate.

    The percent range is checked when options are constructed, not here.

    Raises:
        MissingDuration: If the duration is unknown or zero.
    """
    duration = _require_duration(duration_seconds)
    current_bitrate = input_size_bytes * 8 / duration
    return current_bitrate * (percent / 100)
