"""Tests for output path derivation and temporary file handling."""

from __future__ import annotations

from pathlib import Path

import pytest

from ffwrap.backend.services.errors import (
    InputNotFound,
    OutputExists,
    TempResourceCleanupFailure,
    TempResourceCreationFailure,
)
from ffwrap.backend.services.file_manager import (
    FileManager,
    is_output_template,
    quote_concat_path,
    render_concat_list,
    resolve_output_path,
    sequence_output_path,
)


def test_resolve_output_path__changes_extension_when_format_differs() -> None:
    """Different target extension keeps the stem and swaps the extension."""
    assert resolve_output_path("/videos/clip.mov", None, "mp4", "_converted") == Path(
        "/videos/clip.mp4"
    )


def test_resolve_output_path__adds_suffix_when_extension_matches() -> None:
    """Same extension appends the suffix so the input is never the output."""
    out = resolve_output_path("/videos/clip.mp4", None, "mp4", "_compressed")
    assert out == Path("/videos/clip_compressed.mp4")
    assert out != Path("/videos/clip.mp4")


def test_resolve_output_path__compares_extensions_case_insensitively() -> None:
    """clip.MP4 to mp4 still counts as the same extension."""
    assert resolve_output_path("clip.MP4", None, ".mp4", "_trimmed") == Path("clip_trimmed.mp4")


def test_resolve_output_path__explicit_output_is_verbatim() -> None:
    """An explicit output wins even if it equals the input's name pattern."""
    assert resolve_output_path("a.mp4", "b/out.mkv", "mp4", "_converted") == Path("b/out.mkv")


def test_sequence_output_path__appends_pattern_to_stem() -> None:
    """Numbered outputs live next to the input."""
    assert sequence_output_path("/v/clip.mp4", None, "_thumb_%02d.png") == Path(
        "/v/clip_thumb_%02d.png"
    )
    assert sequence_output_path("/v/clip.mp4", "x.jpg", "_thumb.png") == Path("x.jpg")


def test_is_output_template() -> None:
    """Detect printf-style frame numbering."""
    assert is_output_template("frames_%04d.png")
    assert is_output_template("thumb_%d.jpg")
    assert not is_output_template("clip.png")


def test_quote_concat_path__escapes_single_quotes() -> None:
    """Embedded quotes are closed, escaped and reopened."""
    assert quote_concat_path("/v/it's.mp4") == "file '/v/it'\\''s.mp4'"
    assert quote_concat_path("/v/plain.mp4") == "file '/v/plain.mp4'"


def test_render_concat_list__absolute_paths_in_order(tmp_path: Path) -> None:
    """One line per input, resolved to absolute paths, input order kept."""
    a = tmp_path / "b.mp4"
    b = tmp_path / "a.mp4"
    lines = render_concat_list([a, b]).split("\n")
    assert lines == [f"file '{a.resolve()}'", f"file '{b.resolve()}'"]


def test_file_manager__check_inputs(tmp_path: Path) -> None:
    """Raise InputNotFound naming the first missing file."""
    present = tmp_path / "in.mp4"
    present.write_bytes(b"x")
    manager = FileManager(tmp_path)

    manager.check_inputs([present])
    with pytest.raises(InputNotFound) as exc_info:
        manager.check_inputs([present, tmp_path / "missing.mp4"])
    assert "missing.mp4" in exc_info.value.message


def test_file_manager__check_output(tmp_path: Path) -> None:
    """Existing outputs need overwrite; templates are never checked."""
    existing = tmp_path / "out.mp4"
    existing.write_bytes(b"x")
    manager = FileManager(tmp_path)

    with pytest.raises(OutputExists):
        manager.check_output(existing, overwrite=False)
    manager.check_output(existing, overwrite=True)
    manager.check_output(tmp_path / "new.mp4", overwrite=False)
    manager.check_output(tmp_path / "frame_%04d.png", overwrite=False)


def test_file_manager__concat_list_file_removed_on_success(tmp_path: Path) -> None:
    """The list exists inside the scope and is gone after it."""
    manager = FileManager(tmp_path / "tmp")
    inputs = [tmp_path / "a.mp4", tmp_path / "b.mp4"]

    with manager.concat_list_file(inputs) as list_path:
        assert list_path.exists()
        assert list_path.parent == tmp_path / "tmp"
        assert list_path.read_text(encoding="utf-8") == render_concat_list(inputs)

    assert not list_path.exists()


def test_file_manager__concat_list_file_removed_on_error(tmp_path: Path) -> None:
    """The list is removed when the body raises, and the error propagates."""
    manager = FileManager(tmp_path)
    captured: list[Path] = []

    with pytest.raises(RuntimeError, match="boom"):
        with manager.concat_list_file([tmp_path / "a.mp4", tmp_path / "b.mp4"]) as list_path:
            captured.append(list_path)
            raise RuntimeError("boom")

    assert captured
    assert not captured[0].exists()


def test_file_manager__cleanup_failure_is_logged_not_raised(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A failed removal is a warning, not an error for the caller."""
    manager = FileManager(tmp_path)

    def failing_remove(path: Path) -> None:
        raise TempResourceCleanupFailure(str(path), "read-only filesystem")

    monkeypatch.setattr(manager, "remove_temp_file", failing_remove)

    with manager.concat_list_file([tmp_path / "a.mp4", tmp_path / "b.mp4"]):
        pass

    assert "read-only filesystem" in caplog.text


def test_file_manager__new_concat_list_paths_are_unique(tmp_path: Path) -> None:
    """Concurrent merges never share a list file name."""
    manager = FileManager(tmp_path)
    names = {manager.new_concat_list_path() for _ in range(50)}
    assert len(names) == 50


def test_file_manager__remove_temp_file_missing_is_ok(tmp_path: Path) -> None:
    """Removing an absent file does not raise."""
    FileManager(tmp_path).remove_temp_file(tmp_path / "gone.txt")


def test_file_manager__concat_list_unwritable_dir(tmp_path: Path) -> None:
    """A temp dir that cannot be created surfaces as a domain error, not OSError."""
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("")
    manager = FileManager(blocker / "tmp")

    with pytest.raises(TempResourceCreationFailure) as exc_info:
        with manager.concat_list_file([tmp_path / "a.mp4", tmp_path / "b.mp4"]):
            pytest.fail("body must not run")
    assert "Could not create temporary file" in exc_info.value.message
