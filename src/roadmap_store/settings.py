from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

from .models import StatusPolicy


@dataclass(frozen=True)
class StoreSettings:
    """Store settings loaded from environment with fail-fast validation."""

    dir_name: str = ".roadmap"
    file_name: str = "roadmap.md"
    lock_timeout_ms: int = 5_000
    lock_retry_ms: int = 50
    lock_stale_ms: int = 30_000
    status_policy: StatusPolicy = StatusPolicy.PERMISSIVE
    temp_file_max_age_s: int = 3_600

    @classmethod
    def from_env(cls) -> "StoreSettings":
        return cls(
            dir_name=os.getenv("ROADMAP_DIR_NAME", ".roadmap"),
            file_name=os.getenv("ROADMAP_FILE_NAME", "roadmap.md"),
            lock_timeout_ms=_get_env_int("ROADMAP_LOCK_TIMEOUT_MS", default=5_000, minimum=1),
            lock_retry_ms=_get_env_int("ROADMAP_LOCK_RETRY_MS", default=50, minimum=1),
            lock_stale_ms=_get_env_int("ROADMAP_LOCK_STALE_MS", default=30_000, minimum=1),
            status_policy=_get_env_policy("ROADMAP_STATUS_POLICY", default=StatusPolicy.PERMISSIVE),
            temp_file_max_age_s=_get_env_int("ROADMAP_TEMP_FILE_MAX_AGE_S", default=3_600, minimum=0),
        ).normalized()

    def normalized(self) -> "StoreSettings":
        """Validate and normalize all fields. Raises ValueError on invalid configuration."""
        dir_name = self.dir_name.strip()
        if not dir_name:
            raise ValueError("ROADMAP_DIR_NAME must be non-empty")
        file_name = self.file_name.strip()
        if not file_name:
            raise ValueError("ROADMAP_FILE_NAME must be non-empty")
        if "/" in file_name or "\\" in file_name or file_name in {".", ".."}:
            raise ValueError(f"ROADMAP_FILE_NAME must be a plain file name, got: {file_name!r}")

        if self.lock_retry_ms > self.lock_timeout_ms:
            raise ValueError(
                f"ROADMAP_LOCK_RETRY_MS ({self.lock_retry_ms}) must be <= ROADMAP_LOCK_TIMEOUT_MS ({self.lock_timeout_ms})"
            )
        return replace(
            self,
            dir_name=dir_name,
            file_name=file_name,
            status_policy=StatusPolicy(self.status_policy),
        )

    @property
    def lock_timeout(self) -> float:
        return self.lock_timeout_ms / 1000

    @property
    def lock_retry_interval(self) -> float:
        return self.lock_retry_ms / 1000

    @property
    def lock_stale_after(self) -> float:
        return self.lock_stale_ms / 1000

    def storage_dir(self, project_root: Path) -> Path:
        path = Path(self.dir_name)
        return path if path.is_absolute() else project_root / path


def _get_env_int(name: str, default: int, minimum: int, maximum: int = 10_000_000) -> int:
    """Read a bounded integer setting; unset or blank means ``default``.

    Raises:
        ValueError: If the value is not an integer or falls outside
            ``[minimum, maximum]``.
    """
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc
    if not minimum <= parsed <= maximum:
        raise ValueError(f"{name} must be between {minimum} and {maximum}, got: {parsed}")
    return parsed


def _get_env_policy(name: str, default: StatusPolicy) -> StatusPolicy:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    try:
        return StatusPolicy(value)
    except ValueError as exc:
        choices = ", ".join(policy.value for policy in StatusPolicy)
        raise ValueError(f"{name} must be one of: {choices}, got: {raw!r}") from exc
