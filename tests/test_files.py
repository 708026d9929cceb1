from __future__ import annotations

import os
import time
from datetime import UTC, datetime
from pathlib import Path

import pytest

from roadmap_store import files
from roadmap_store.files import (
    archive_file,
    archive_timestamp,
    cleanup_stale_temp_files,
    list_archives,
    read_text,
    temp_name,
    write_atomic,
)


def test_archive_timestamp_is_filesystem_safe() -> None:
    moment = datetime(2026, 10, 19, 12, 34, 56, 789000, tzinfo=UTC)
    assert archive_timestamp(moment) == "2026-10-19T12-34-56-789Z"


def test_temp_names_are_unique_and_marked() -> None:
    first, second = temp_name("roadmap.md"), temp_name("roadmap.md")
    assert first != second
    assert first.startswith("roadmap.md.tmp.")


def test_write_atomic_creates_directory_and_replaces_content(tmp_path: Path) -> None:
    directory = tmp_path / ".roadmap"
    path = write_atomic(directory, "roadmap.md", "first\n")
    assert path == directory / "roadmap.md"

    write_atomic(directory, "roadmap.md", "second\n")
    assert read_text(path) == "second\n"
    assert sorted(p.name for p in directory.iterdir()) == ["roadmap.md"]


def test_write_atomic_failure_keeps_old_file_and_removes_temp(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    write_atomic(tmp_path, "roadmap.md", "original\n")

    def failing_replace(src: object, dst: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(files.os, "replace", failing_replace)
    with pytest.raises(OSError, match="disk full"):
        write_atomic(tmp_path, "roadmap.md", "replacement\n")

    assert (tmp_path / "roadmap.md").read_text(encoding="utf-8") == "original\n"
    assert [p.name for p in tmp_path.iterdir()] == ["roadmap.md"]


def test_read_text_missing_returns_none(tmp_path: Path) -> None:
    assert read_text(tmp_path / "absent.md") is None


def test_archive_never_overwrites(tmp_path: Path) -> None:
    moment = datetime(2026, 1, 2, 3, 4, 5, 6000, tzinfo=UTC)

    (tmp_path / "roadmap.md").write_text("one", encoding="utf-8")
    first = archive_file(tmp_path, "roadmap.md", now=moment)
    (tmp_path / "roadmap.md").write_text("two", encoding="utf-8")
    second = archive_file(tmp_path, "roadmap.md", now=moment)

    assert first == "roadmap.md.archive.2026-01-02T03-04-05-006Z"
    assert second == f"{first}-1"
    assert (tmp_path / first).read_text(encoding="utf-8") == "one"
    assert (tmp_path / second).read_text(encoding="utf-8") == "two"
    assert not (tmp_path / "roadmap.md").exists()
    assert list_archives(tmp_path, "roadmap.md") == [first, second]


def test_archive_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        archive_file(tmp_path, "roadmap.md")


def test_cleanup_only_removes_old_temp_files(tmp_path: Path) -> None:
    old = tmp_path / "roadmap.md.tmp.1.abcdef"
    fresh = tmp_path / "roadmap.md.tmp.2.123456"
    unrelated = tmp_path / "notes.md.tmp.1.abcdef"
    for path in (old, fresh, unrelated):
        path.write_text("partial", encoding="utf-8")
    stale = time.time() - 7_200
    os.utime(old, (stale, stale))
    os.utime(unrelated, (stale, stale))

    assert cleanup_stale_temp_files(tmp_path, "roadmap.md", older_than=3_600) == 1
    assert not old.exists()
    assert fresh.exists()
    assert unrelated.exists()


def test_cleanup_and_listing_tolerate_missing_directory(tmp_path: Path) -> None:
    missing = tmp_path / "nope"
    assert cleanup_stale_temp_files(missing, "roadmap.md", older_than=0) == 0
    assert list_archives(missing, "roadmap.md") == []
