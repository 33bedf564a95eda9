"""Project-wide constants and configuration."""

from __future__ import annotations

import tempfile

from .env_loader import load_project_env

# Load once (single source of truth)
_ENV = load_project_env()

FFMPEG_BINARY: str = _ENV.get("FFMPEG_BINARY", "ffmpeg")
FFPROBE_BINARY: str = _ENV.get("FFPROBE_BINARY", "ffprobe")
FFMPEG_MAX_CONCURRENT: int = int(_ENV.get("FFMPEG_MAX_CONCURRENT", "4"))
PROBE_TIMEOUT_SECONDS: float = float(_ENV.get("PROBE_TIMEOUT_SECONDS", "30"))
# Concat list files for merges land here
TMP_BASE_DIR: str = _ENV.get("TMP_BASE_DIR", tempfile.gettempdir())
LOG_LEVEL: str = _ENV.get("LOG_LEVEL", "INFO").upper()

VERSION = "0.1.0"
