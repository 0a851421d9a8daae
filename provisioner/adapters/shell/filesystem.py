"""
Filesystem helpers — atomic writes and content comparison.

Writes go to a temp file in the target directory and are renamed into
place, so a crash never leaves a half-written repository definition or
unit file behind.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def verify_sha256(path: Path, expected: str) -> bool:
    """Check a file against an expected hex digest (``sha256:`` prefix allowed)."""
    expected = expected.split(":", 1)[-1].lower()
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest() == expected


def _split_owner(owner: str) -> tuple[str, str | None]:
    user, _, group = owner.partition(":")
    return user, group or None


def apply_owner(path: Path, owner: str | None) -> None:
    if owner:
        user, group = _split_owner(owner)
        shutil.chown(path, user=user, group=group)


def write_atomic(
    path: Path,
    data: bytes | str,
    mode: int = 0o644,
    owner: str | None = None,
) -> None:
    """Write ``data`` to ``path`` atomically, creating parent directories."""
    payload = data.encode("utf-8") if isinstance(data, str) else data
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        os.chmod(tmp, mode)
        apply_owner(tmp, owner)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug("Wrote %s (%d bytes, mode %o)", path, len(payload), mode)


def file_matches(path: Path, content: bytes | str, mode: int | None = None) -> bool:
    """True if ``path`` exists with exactly ``content`` (and ``mode``)."""
    if not path.is_file():
        return False
    expected = content.encode("utf-8") if isinstance(content, str) else content
    try:
        if path.read_bytes() != expected:
            return False
        if mode is not None and (path.stat().st_mode & 0o777) != mode:
            return False
    except OSError:
        return False
    return True


def ensure_directory(path: Path, mode: int = 0o755, owner: str | None = None) -> bool:
    """Create ``path`` if missing. Returns True if it was created."""
    created = not path.is_dir()
    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, mode)
    apply_owner(path, owner)
    return created
