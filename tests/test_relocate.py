from __future__ import annotations

import errno
import os
from pathlib import Path

import pytest

import media.path_builder as path_builder
from media.path_builder import (
    build_library_path,
    build_staging_path,
    extension_from_filename,
    relocate_file,
    sanitize_component,
)


def _stage(tmp_path: Path, data: bytes = b"audio") -> Path:
    staging = tmp_path / "staging"
    staging.mkdir(parents=True, exist_ok=True)
    src = build_staging_path(staging, title="So What", ext="flac")
    src.write_bytes(data)
    return src


def _cross_device_replace(monkeypatch, staging_root: Path):
    real_replace = os.replace
    calls = []

    def fake_replace(src, dst):
        calls.append((Path(src), Path(dst)))
        if Path(src).parent == staging_root:
            raise OSError(errno.EXDEV, "Invalid cross-device link")
        return real_replace(src, dst)

    monkeypatch.setattr(path_builder.os, "replace", fake_replace)
    return calls


def test_sanitize_component_replaces_unsafe_characters() -> None:
    assert sanitize_component('AC/DC: "Live"?', "Unknown Artist") == "AC_DC_ _Live__"
    assert sanitize_component("   ", "Unknown Artist") == "Unknown Artist"
    assert sanitize_component(None, "Unknown Album") == "Unknown Album"
    assert sanitize_component("..", "Unknown Title") == "__"


def test_library_path_layout_and_fallbacks(tmp_path) -> None:
    path = build_library_path(tmp_path, artist="Miles Davis", album=None, title="So What", ext="flac")
    assert path == tmp_path / "Miles Davis" / "Unknown Album" / "So What.flac"


def test_extension_from_filename() -> None:
    assert extension_from_filename("So What.FLAC") == "flac"
    assert extension_from_filename("track") == "mp3"
    assert extension_from_filename(None, default="m4a") == "m4a"


def test_staging_paths_do_not_collide(tmp_path) -> None:
    first = build_staging_path(tmp_path, title="So What", ext="flac")
    second = build_staging_path(tmp_path, title="So What", ext="flac")
    assert first != second
    assert first.name.endswith("_So What.flac")


def test_same_volume_relocation_leaves_no_duplicate(tmp_path) -> None:
    src = _stage(tmp_path)
    dst = build_library_path(tmp_path / "library", artist="Miles Davis", album="Kind of Blue", title="So What", ext="flac")

    assert relocate_file(src, dst) == dst

    assert not src.exists()
    assert dst.read_bytes() == b"audio"
    assert os.listdir(src.parent) == []


def test_cross_device_relocation_copies_then_deletes(tmp_path, monkeypatch) -> None:
    src = _stage(tmp_path, b"flac-bytes")
    dst = tmp_path / "library" / "Miles Davis" / "Kind of Blue" / "So What.flac"
    calls = _cross_device_replace(monkeypatch, src.parent)

    relocate_file(src, dst)

    assert not src.exists()
    assert dst.read_bytes() == b"flac-bytes"
    assert sorted(p.name for p in dst.parent.iterdir()) == ["So What.flac"]
    assert calls[0] == (src, dst)
    assert calls[1][0].name.endswith(".part")


def test_relocation_rerun_is_idempotent(tmp_path) -> None:
    src = _stage(tmp_path)
    dst = tmp_path / "library" / "So What.flac"

    relocate_file(src, dst)
    assert relocate_file(src, dst) == dst
    assert dst.read_bytes() == b"audio"


def test_relocation_overwrites_existing_destination(tmp_path) -> None:
    dst = tmp_path / "library" / "So What.flac"
    dst.parent.mkdir(parents=True)
    dst.write_bytes(b"old")
    src = _stage(tmp_path, b"new")

    relocate_file(src, dst)

    assert dst.read_bytes() == b"new"


def test_missing_source_without_destination_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        relocate_file(tmp_path / "staging" / "gone.flac", tmp_path / "library" / "gone.flac")


def test_other_os_errors_propagate(tmp_path, monkeypatch) -> None:
    src = _stage(tmp_path)

    def denied(src_path, dst_path):
        raise PermissionError(errno.EACCES, "Permission denied")

    monkeypatch.setattr(path_builder.os, "replace", denied)

    with pytest.raises(PermissionError):
        relocate_file(src, tmp_path / "library" / "So What.flac")
    assert src.exists()
