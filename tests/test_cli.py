from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

from conftest import REPO_ROOT, subprocess_env


def _run(*args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, "-m", "roadmap_store", *args],
        cwd=REPO_ROOT,
        env=env or subprocess_env(),
        capture_output=True,
        text=True,
        check=False,
    )


def _write_input(tmp_path: Path, features: list[dict]) -> Path:
    path = tmp_path / "features.json"
    path.write_text(json.dumps({"features": features}), encoding="utf-8")
    return path


def test_cli_append_update_and_archive_flow(tmp_path: Path, auth_feature: dict) -> None:
    project = tmp_path / "project"
    spec_file = tmp_path / "spec.md"
    spec_file.write_text("Ship login.\n", encoding="utf-8")
    input_file = _write_input(tmp_path, [auth_feature])

    created = _run(
        "--directory", str(project), "append", "--input", str(input_file), "--feature", "Auth rollout", "--spec-file", str(spec_file)
    )
    assert created.returncode == 0, created.stderr
    assert json.loads(created.stdout)["created"] is True

    read = _run("--directory", str(project), "read")
    assert read.returncode == 0, read.stderr
    payload = json.loads(read.stdout)
    assert payload["feature"] == "Auth rollout"
    assert payload["progress"]["total"] == 1

    action = _run("--directory", str(project), "read", "--action", "1.01")
    assert json.loads(action.stdout)["feature"] == {"number": "1", "title": "Auth"}

    updated = _run("--directory", str(project), "update", "1.01", "--status", "completed")
    assert updated.returncode == 0, updated.stderr
    result = json.loads(updated.stdout)
    assert result["new_status"] == "completed"
    assert result["archived"].startswith("roadmap.md.archive.")
    assert not (project / ".roadmap" / "roadmap.md").exists()


def test_cli_reports_errors_with_exit_code_one(tmp_path: Path) -> None:
    result = _run("--directory", str(tmp_path), "read")
    assert result.returncode == 1
    assert "Roadmap not found" in result.stderr
    assert result.stdout == ""


def test_cli_rejects_invalid_status_choice(tmp_path: Path) -> None:
    result = _run("--directory", str(tmp_path), "update", "1.01", "--status", "done")
    assert result.returncode == 2


def test_cli_exits_three_when_lock_is_held(tmp_path: Path, auth_feature: dict) -> None:
    lock_dir = tmp_path / ".roadmap"
    lock_dir.mkdir()
    (lock_dir / "roadmap.md.lock").write_text("4242", encoding="ascii")
    input_file = _write_input(tmp_path, [auth_feature])

    env = subprocess_env()
    env["ROADMAP_LOCK_TIMEOUT_MS"] = "100"
    env["ROADMAP_LOCK_RETRY_MS"] = "10"
    result = _run("--directory", str(tmp_path), "append", "--input", str(input_file), "--feature", "Label", env=env)

    assert result.returncode == 3
    assert "Another operation may be in progress" in result.stderr


def test_cli_reads_settings_from_project_env_file(tmp_path: Path, auth_feature: dict) -> None:
    (tmp_path / ".env").write_text("ROADMAP_DIR_NAME=plans\nROADMAP_FILE_NAME=tasks.md\n", encoding="utf-8")
    input_file = _write_input(tmp_path, [auth_feature])

    result = _run("--directory", str(tmp_path), "append", "--input", str(input_file), "--feature", "Label")

    assert result.returncode == 0, result.stderr
    assert (tmp_path / "plans" / "tasks.md").is_file()
    assert not (tmp_path / ".roadmap").exists()
