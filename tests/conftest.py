from __future__ import annotations

import os
import sys
from pathlib import Path

# Tests always run against the in-memory store, cache and queue.
os.environ["APP_ENV"] = "test"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("REDIS_URL", None)

# Ensure repo root is on sys.path so `import formation` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from formation.main import app  # noqa: E402
from formation.repos.unit_of_work import store  # noqa: E402
from formation.services.cache import cache_service  # noqa: E402
from formation.services.task_queue import task_queue  # noqa: E402
from tests.catalog import Scenario, build_scenario  # noqa: E402


@pytest.fixture(autouse=True)
def reset_store() -> None:
    """Clear catalog, progress rows and per-user locks between tests."""
    store.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    if hasattr(task_queue, "clear"):
        task_queue.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def scenario() -> Scenario:
    """Module M: C1 (two contents, no quiz), C2 (one content, quiz at 70%)."""
    return build_scenario(store.hierarchy)  # type: ignore[attr-defined]
