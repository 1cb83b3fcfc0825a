"""Library path construction and crash-safe relocation of staged downloads."""

from __future__ import annotations

import errno
import logging
import os
import re
import shutil
import time
from pathlib import Path
from uuid import uuid4

logger = logging.getLogger(__name__)

_INVALID_FS_CHARS_RE = re.compile(r'[/\\:*?"<>|]')
_EXT_RE = re.compile(r"^[A-Za-z0-9]{1,8}$")
DEFAULT_EXTENSION = "mp3"


def sanitize_component(value: str | None, fallback: str) -> str:
    """Replace characters that are unsafe in path components with ``_``.

    Empty results fall back to ``fallback`` (e.g. ``"Unknown Artist"``).
    """
    sanitized = _INVALID_FS_CHARS_RE.sub("_", str(value or "")).strip()
    # "." and ".." would escape or collapse the layout.
    if sanitized in {".", ".."}:
        sanitized = sanitized.replace(".", "_")
    return sanitized or fallback


def extension_from_filename(filename: str | None, default: str = DEFAULT_EXTENSION) -> str:
    suffix = Path(str(filename or "")).suffix.lstrip(".")
    if suffix and _EXT_RE.match(suffix):
        return suffix.lower()
    return default


def build_library_path(library_root: Path | str, *, artist: str | None, album: str | None, title: str | None, ext: str) -> Path:
    """Return ``<library>/<artist>/<album>/<title>.<ext>`` with sanitized components."""
    safe_artist = sanitize_component(artist, "Unknown Artist")
    safe_album = sanitize_component(album, "Unknown Album")
    safe_title = sanitize_component(title, "Unknown Title")
    return Path(library_root) / safe_artist / safe_album / f"{safe_title}.{ext}"


def build_staging_path(staging_root: Path | str, *, title: str | None, ext: str) -> Path:
    """Return a collision-free staging file path (monotonic + random prefix)."""
    prefix = f"{time.time_ns()}_{uuid4().hex[:8]}"
    return Path(staging_root) / f"{prefix}_{sanitize_component(title, 'Unknown Title')}.{ext}"


def ensure_parent_dir(path: Path) -> None:
    """Create parent directories for ``path`` when missing."""
    path.parent.mkdir(parents=True, exist_ok=True)


def _copy_across_devices(src: Path, dst: Path) -> None:
    # Copy next to the destination first so the final path only ever sees a whole file.
    partial = dst.with_name(f".{dst.name}.{uuid4().hex[:8]}.part")
    try:
        shutil.copy2(src, partial)
        os.replace(partial, dst)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    src.unlink()


def relocate_file(src: Path | str, dst: Path | str) -> Path:
    """Move ``src`` to ``dst``, overwriting ``dst``.

    Uses an atomic rename when both paths share a volume and falls back to
    copy-then-delete when they do not. Safe to re-run: when ``src`` is already
    gone and ``dst`` exists the move is treated as done.
    """
    src = Path(src)
    dst = Path(dst)
    if not src.exists():
        if dst.exists():
            logger.info("relocate already applied dst=%s", dst)
            return dst
        raise FileNotFoundError(errno.ENOENT, "staging file missing", str(src))

    ensure_parent_dir(dst)
    try:
        os.replace(src, dst)
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise
        logger.info("relocate_cross_device src=%s dst=%s", src, dst)
        _copy_across_devices(src, dst)
    return dst
