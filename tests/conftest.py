from __future__ import annotations

import os
from pathlib import Path

import pytest

from roadmap_store import RoadmapStore, StoreSettings
from roadmap_store.models import Action, ActionStatus, Feature, Roadmap, RoadmapDocument

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"


@pytest.fixture(autouse=True)
def _clean_roadmap_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment overrides out of the tests."""
    for name in list(os.environ):
        if name.startswith("ROADMAP_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings() -> StoreSettings:
    return StoreSettings(lock_timeout_ms=1_000, lock_retry_ms=10)


@pytest.fixture
def store(tmp_path: Path, settings: StoreSettings) -> RoadmapStore:
    return RoadmapStore(tmp_path, settings=settings)


@pytest.fixture
def auth_feature() -> dict[str, object]:
    return {
        "number": "1",
        "title": "Auth",
        "description": "Login system",
        "actions": [{"number": "1.01", "description": "Build form", "status": "pending"}],
    }


@pytest.fixture
def sample_document() -> RoadmapDocument:
    return RoadmapDocument(
        feature="Auth rollout",
        spec="Ship login.\n\n  - form\n  - session handling",
        roadmap=Roadmap(
            features=[
                Feature(
                    number="1",
                    title="Auth",
                    description="Login system",
                    actions=[
                        Action(number="1.01", description="Build form", status=ActionStatus.COMPLETED),
                        Action(number="1.02", description="Wire session", status=ActionStatus.IN_PROGRESS),
                    ],
                ),
                Feature(
                    number="2",
                    title="Billing",
                    description="Invoices and payments",
                    actions=[Action(number="2.01", description='Quote "plans" page', status=ActionStatus.PENDING)],
                ),
            ]
        ),
    )


def subprocess_env() -> dict[str, str]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("ROADMAP_")}
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = f"{SRC_DIR}{os.pathsep}{existing}" if existing else str(SRC_DIR)
    return env
