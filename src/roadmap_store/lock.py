"""Cross-process exclusive access to a roadmap directory.

The lock is a sentinel file created with ``O_CREAT | O_EXCL``. A sentinel
older than the staleness threshold is treated as abandoned by a crashed
holder, renamed aside and removed. The holder pid written into the sentinel is diagnostic
only.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from .errors import LockTimeout

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"
STALE_MARKER = ".stale."
DEFAULT_TIMEOUT = 5.0
DEFAULT_RETRY_INTERVAL = 0.05
DEFAULT_STALE_AFTER = 30.0


def lock_path_for(path: Path) -> Path:
    return path.with_name(path.name + LOCK_SUFFIX)


def acquire_lock(
    lock_path: Path,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    retry_interval: float = DEFAULT_RETRY_INTERVAL,
    stale_after: float = DEFAULT_STALE_AFTER,
) -> Callable[[], None]:
    """Create the sentinel at ``lock_path`` and return its release function.

    Raises:
        LockTimeout: If the sentinel could not be created within ``timeout``
            seconds.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    deadline = time.monotonic() + timeout

    while True:
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            if _reclaim_if_stale(lock_path, stale_after):
                continue
        else:
            try:
                os.write(fd, str(os.getpid()).encode("ascii"))
            finally:
                os.close(fd)
            logger.debug("acquired roadmap lock %s", lock_path)
            return _releaser(lock_path)

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise LockTimeout(
                f"Could not acquire lock on roadmap data at {lock_path} within {timeout:g}s. "
                "Another operation may be in progress."
            )
        time.sleep(min(retry_interval, remaining))


@contextmanager
def locked(
    lock_path: Path,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    retry_interval: float = DEFAULT_RETRY_INTERVAL,
    stale_after: float = DEFAULT_STALE_AFTER,
) -> Iterator[None]:
    """Hold the sentinel lock for the duration of the context."""
    release = acquire_lock(lock_path, timeout=timeout, retry_interval=retry_interval, stale_after=stale_after)
    try:
        yield
    finally:
        release()


def _reclaim_if_stale(lock_path: Path, stale_after: float) -> bool:
    """Remove an abandoned sentinel. True means the caller should retry at once."""
    try:
        observed = lock_path.stat()
    except FileNotFoundError:
        # Released between our create attempt and the stat.
        return True
    age = time.time() - observed.st_mtime
    if age <= stale_after:
        return False

    # Rename is atomic, so only one reclaimer can move a given sentinel aside.
    aside = lock_path.with_name(f"{lock_path.name}{STALE_MARKER}{os.getpid()}.{uuid.uuid4().hex[:6]}")
    try:
        os.rename(lock_path, aside)
    except FileNotFoundError:
        return True

    moved = aside.stat()
    if (moved.st_ino, moved.st_mtime_ns) != (observed.st_ino, observed.st_mtime_ns):
        # Another process reclaimed first and created a fresh sentinel; hand it back.
        _restore(aside, lock_path)
        return False

    holder = _read_holder(aside)
    aside.unlink()
    logger.info("reclaimed stale roadmap lock %s (age %.1fs, holder pid %s)", lock_path, age, holder or "unknown")
    return True


def _restore(aside: Path, lock_path: Path) -> None:
    try:
        os.link(aside, lock_path)
    except FileExistsError:
        logger.warning("could not restore roadmap lock %s; a newer sentinel already exists", lock_path)
    aside.unlink()


def _read_holder(lock_path: Path) -> str | None:
    try:
        return lock_path.read_text(encoding="ascii").strip() or None
    except (OSError, UnicodeDecodeError):
        return None


def _releaser(lock_path: Path) -> Callable[[], None]:
    released = False

    def release() -> None:
        # Only the first call unlinks; a later call must not remove a sentinel
        # that another process has created since.
        nonlocal released
        if released:
            return
        released = True
        try:
            lock_path.unlink()
        except FileNotFoundError:
            return
        logger.debug("released roadmap lock %s", lock_path)

    return release
