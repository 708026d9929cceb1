"""Roadmap file IO with atomic, durable writes.

Keeps filesystem concerns separate from document parsing and locking.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

TEMP_MARKER = ".tmp."
ARCHIVE_MARKER = ".archive."


def temp_name(final_name: str) -> str:
    """Unique temp file name: ``<final>.tmp.<epoch-ms>.<random>``."""
    return f"{final_name}{TEMP_MARKER}{int(time.time() * 1000)}.{uuid.uuid4().hex[:6]}"


def archive_timestamp(now: datetime | None = None) -> str:
    """Sortable ISO-like UTC timestamp with ``:`` and ``.`` replaced by ``-``."""
    moment = (now or datetime.now(UTC)).astimezone(UTC)
    iso = moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


def fsync_directory(directory: Path) -> None:
    """Flush directory metadata so a completed rename survives a crash.

    Platforms that cannot open a directory (no ``O_DIRECTORY``) are skipped.
    """
    if not hasattr(os, "O_DIRECTORY"):
        return
    fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def read_text(path: Path) -> str | None:
    """Return the file's text, or ``None`` if it does not exist."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def write_atomic(directory: Path, final_name: str, data: str) -> Path:
    """Write ``data`` to ``directory / final_name`` atomically.

    Writes to a uniquely named temporary file in the same directory, syncs
    it, renames it into place with ``os.replace`` and then syncs the
    directory. On failure before the rename the temp file is removed and the
    original error is re-raised; the previous file is left untouched.

    Returns:
        Path to the written file.
    """
    directory.mkdir(parents=True, exist_ok=True)
    final_path = directory / final_name
    tmp_path = directory / temp_name(final_name)

    try:
        fd = os.open(tmp_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, final_path)
    except BaseException:
        _remove_quietly(tmp_path)
        raise

    fsync_directory(directory)
    logger.debug("wrote %s (%d bytes)", final_path, len(data.encode("utf-8")))
    return final_path


def archive_file(directory: Path, live_name: str, *, now: datetime | None = None) -> str:
    """Rename the live file to a timestamped archive name and sync the directory.

    An existing archive is never overwritten; a numeric suffix is added when
    the timestamped name is already taken.

    Returns:
        The archive file name (relative to ``directory``).

    Raises:
        FileNotFoundError: If the live file does not exist.
    """
    source = directory / live_name
    base_name = f"{live_name}{ARCHIVE_MARKER}{archive_timestamp(now)}"
    archive_name = base_name
    counter = 1
    while (directory / archive_name).exists():
        archive_name = f"{base_name}-{counter}"
        counter += 1

    os.rename(source, directory / archive_name)
    fsync_directory(directory)
    logger.info("archived %s to %s", source, archive_name)
    return archive_name


def list_archives(directory: Path, live_name: str) -> list[str]:
    """Archive file names for ``live_name``, oldest first."""
    if not directory.is_dir():
        return []
    return sorted(path.name for path in directory.glob(f"{live_name}{ARCHIVE_MARKER}*") if path.is_file())


def cleanup_stale_temp_files(directory: Path, live_name: str, *, older_than: float) -> int:
    """Remove temp files left behind by crashed writers.

    Only files older than ``older_than`` seconds are touched so a concurrent
    writer's in-flight temp file is never removed.

    Returns:
        Number of files removed.
    """
    if not directory.is_dir():
        return 0
    cutoff = time.time() - older_than
    removed = 0
    for path in directory.glob(f"{live_name}{TEMP_MARKER}*"):
        try:
            if path.stat().st_mtime >= cutoff:
                continue
        except FileNotFoundError:
            continue
        if _remove_quietly(path):
            removed += 1
    if removed:
        logger.info("removed %d orphaned temp file(s) from %s", removed, directory)
    return removed


def _remove_quietly(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.warning("could not remove temp file %s: %s", path, exc)
        return False
    return True
