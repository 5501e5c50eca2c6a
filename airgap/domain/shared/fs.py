"""Filesystem helpers shared by the bundle pipeline."""

import os
import tempfile
from pathlib import Path

from airgap.domain.shared.error import BundleIOError


def current_umask() -> int:
    """The process umask, left unchanged."""
    mask = os.umask(0o022)
    os.umask(mask)
    return mask


def _mkstemp(target: Path, suffix: str) -> tuple[int, str]:
    """mkstemp next to `target`, widened from 0600 to what a plain create would give."""
    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=target.parent, prefix=f".{target.name}.", suffix=suffix
        )
    except OSError as e:
        raise BundleIOError(target.parent, e.strerror or str(e)) from e
    try:
        os.fchmod(fd, 0o666 & ~current_umask())
    except OSError as e:
        os.close(fd)
        Path(tmp_path).unlink(missing_ok=True)
        raise BundleIOError(target, e.strerror or str(e)) from e
    return fd, tmp_path


def atomic_write_text(target: Path, content: str) -> None:
    """Write `content` to `target` so readers see either nothing or the whole file.

    Writes to a temp file in the same directory, then renames into place.
    The result has the permissions a plain ``open(target, "w")`` would get.
    """
    fd, tmp_path = _mkstemp(target, ".tmp")
    try:
        with open(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, target)
    except BaseException as e:
        Path(tmp_path).unlink(missing_ok=True)
        if isinstance(e, OSError):
            raise BundleIOError(target, e.strerror or str(e)) from e
        raise


def temp_sibling(target: Path) -> Path:
    """Reserve an empty hidden file next to `target` for write-then-rename."""
    fd, tmp_path = _mkstemp(target, ".part")
    os.close(fd)
    return Path(tmp_path)


def remove_quietly(*paths: Path) -> None:
    """Best-effort removal of partial artifacts during cleanup."""
    for p in paths:
        try:
            p.unlink(missing_ok=True)
        except OSError:
            pass
