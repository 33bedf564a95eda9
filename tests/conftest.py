"""Shared fakes: a command runner that never spawns a process."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from ffwrap.backend.services.command_runner import CommandResult, ProgressCallback
from ffwrap.backend.services.conversion import ConversionService
from ffwrap.backend.services.ffmpeg_runner import FFmpegRunner
from ffwrap.backend.services.file_manager import FileManager
from ffwrap.backend.services.probe import MediaProber


def probe_json(
    duration: float = 120.0,
    size: int = 50_000_000,
    *,
    with_video: bool = True,
    with_audio: bool = True,
) -> str:
    """Return ffprobe style JSON for a synthetic file."""
    streams = []
    if with_video:
        streams.append(
            {
                "codec_type": "video",
                "codec_name": "h264",
                "codec_long_name": "H.264 / AVC / MPEG-4 AVC / MPEG-4 part 10",
                "profile": "High",
                "width": 1920,
                "height": 1080,
                "r_frame_rate": "30000/1001",
                "display_aspect_ratio": "16:9",
                "pix_fmt": "yuv420p",
                "bit_rate": "3000000",
            }
        )
    if with_audio:
        streams.append(
            {
                "codec_type": "audio",
                "codec_name": "aac",
                "codec_long_name": "AAC (Advanced Audio Coding)",
                "sample_rate": "48000",
                "channels": 2,
                "channel_layout": "stereo",
                "bit_rate": "128000",
            }
        )
    return json.dumps(
        {
            "format": {
                "format_name": "mov,mp4,m4a,3gp,3g2,mj2",
                "format_long_name": "QuickTime / MOV",
                "duration": str(duration),
                "size": str(size),
                "bit_rate": "3333333",
                "nb_streams": len(streams),
            },
            "streams": streams,
        }
    )


class FakeCommandRunner:
    """Records invocations and answers ffprobe/ffmpeg with canned results.

    Attributes:
        calls: ``(binary, args, clip_duration)`` for every invocation.
        probe_output: Stdout returned for ffprobe.
        exit_code: Exit status returned for ffmpeg.
        stderr: Stderr returned for ffmpeg.
        on_ffmpeg: Hook called with the ffmpeg args before returning.
    """

    def __init__(self, probe_output: str | None = None) -> None:
        self.calls: list[tuple[str, list[str], float | None]] = []
        self.probe_output = probe_output if probe_output is not None else probe_json()
        self.probe_exit_code = 0
        self.exit_code = 0
        self.stderr = ""
        self.version_output = "ffmpeg version 6.1.1 Copyright (c) 2000-2023 the FFmpeg developers"
        self.on_ffmpeg: Callable[[list[str]], None] | None = None

    @property
    def ffmpeg_calls(self) -> list[list[str]]:
        return [args for binary, args, _ in self.calls if binary == "ffmpeg"]

    @property
    def probe_calls(self) -> list[list[str]]:
        return [args for binary, args, _ in self.calls if binary == "ffprobe"]

    def run_command(
        self,
        args: Sequence[str],
        *,
        binary: str,
        clip_duration: float | None = None,
        on_progress: ProgressCallback | None = None,  # noqa: ARG002
        cancel_event: threading.Event | None = None,  # noqa: ARG002
        timeout: float | None = None,  # noqa: ARG002
    ) -> CommandResult:
        args = list(args)
        self.calls.append((binary, args, clip_duration))
        if args == ["-version"]:
            return CommandResult(0, self.version_output, "")
        if binary == "ffprobe":
            return CommandResult(self.probe_exit_code, self.probe_output, "")
        if self.on_ffmpeg is not None:
            self.on_ffmpeg(args)
        return CommandResult(self.exit_code, "", self.stderr)


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def service(tmp_path: Path, fake_runner: FakeCommandRunner) -> ConversionService:
    """ConversionService wired to the fake runner, temp files under tmp_path."""
    return ConversionService(
        ffmpeg_runner=FFmpegRunner(command_runner=fake_runner),
        file_manager=FileManager(tmp_path / "tmp"),
        prober=MediaProber(command_runner=fake_runner),
    )


@pytest.fixture
def media_file(tmp_path: Path) -> Path:
    """An existing (fake) input video."""
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00" * 1024)
    return path
