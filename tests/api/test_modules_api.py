from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from formation.repos.unit_of_work import store
from tests.catalog import FOUR_OF_FIVE, Scenario, add_module, as_user


def test_catalog_for_new_learner(client: TestClient, scenario: Scenario) -> None:
    add_module(store.hierarchy, 2)  # type: ignore[attr-defined]

    resp = client.get("/v1/modules", headers=as_user())
    assert resp.status_code == 200
    body = resp.json()

    first, second = body["modules"]
    assert first["id"] == str(scenario.module.id)
    assert first["is_unlocked"] is True
    assert second["is_unlocked"] is False
    c1, c2 = first["chapters"]
    assert [c["is_unlocked"] for c in c1["contents"]] == [True, False]
    assert c1["quiz"] is None
    assert c2["quiz"]["id"] == str(scenario.quiz.id)
    assert c2["quiz"]["is_unlocked"] is False
    assert body["stats"] == {
        "total_modules": 2,
        "completed_modules": 0,
        "total_watch_time": 0,
        "average_score": 0,
    }


def test_module_detail_after_completion(client: TestClient, scenario: Scenario) -> None:
    for content in (*scenario.c1_contents, scenario.c2_content):
        client.post(
            f"/v1/contents/{content.id}/progress",
            json={"watch_time": content.duration},
            headers=as_user(),
        )
    client.post(
        f"/v1/quizzes/{scenario.quiz.id}/submit",
        json={"answers": FOUR_OF_FIVE},
        headers=as_user(),
    )

    resp = client.get(f"/v1/modules/{scenario.module.id}", headers=as_user())
    assert resp.status_code == 200
    body = resp.json()
    assert body["is_completed"] is True
    assert body["progress"] == 100
    assert all(ch["is_completed"] for ch in body["chapters"])
    assert body["chapters"][1]["quiz"]["is_passed"] is True


def test_module_unlock_endpoint(client: TestClient, scenario: Scenario) -> None:
    later = add_module(store.hierarchy, 2)  # type: ignore[attr-defined]
    first = client.get(f"/v1/modules/{scenario.module.id}/unlocked", headers=as_user())
    second = client.get(f"/v1/modules/{later.id}/unlocked", headers=as_user())
    assert first.json()["is_unlocked"] is True
    assert second.json() == {"id": str(later.id), "is_unlocked": False}


def test_unknown_module_is_not_found(client: TestClient, scenario: Scenario) -> None:
    resp = client.get(f"/v1/modules/{uuid.uuid4()}", headers=as_user())
    assert resp.status_code == 404


def test_empty_catalog(client: TestClient) -> None:
    body = client.get("/v1/modules", headers=as_user()).json()
    assert body["modules"] == []
    assert body["stats"]["total_modules"] == 0
