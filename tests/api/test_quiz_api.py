"""Chapter quiz endpoints: open, unlock check, submit, and the single-pass rule."""

from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from tests.catalog import ALL_CORRECT, FOUR_OF_FIVE, TWO_OF_FIVE, Scenario, as_user


def _finish_contents(client: TestClient, scenario: Scenario) -> None:
    for content in (*scenario.c1_contents, scenario.c2_content):
        client.post(
            f"/v1/contents/{content.id}/progress",
            json={"watch_time": content.duration},
            headers=as_user(),
        )


def _submit(client: TestClient, quiz_id, answers):
    return client.post(
        f"/v1/quizzes/{quiz_id}/submit", json={"answers": answers}, headers=as_user()
    )


# ---- open ----


def test_quiz_is_forbidden_until_contents_done(
    client: TestClient, scenario: Scenario
) -> None:
    resp = client.get(f"/v1/chapters/{scenario.c2.id}/quiz", headers=as_user())
    assert resp.status_code == 403


def test_open_quiz_strips_answers(client: TestClient, scenario: Scenario) -> None:
    _finish_contents(client, scenario)
    resp = client.get(f"/v1/chapters/{scenario.c2.id}/quiz", headers=as_user())
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == str(scenario.quiz.id)
    assert body["passing_score"] == 70
    assert body["review_mode"] is False
    assert body["estimated_minutes"] == 10
    assert body["previous_result"] is None
    assert len(body["questions"]) == 5
    assert all("correctAnswer" not in q for q in body["questions"])


def test_chapter_without_quiz_is_not_found(client: TestClient, scenario: Scenario) -> None:
    resp = client.get(f"/v1/chapters/{scenario.c1.id}/quiz", headers=as_user())
    assert resp.status_code == 404


def test_quiz_unlock_endpoint(client: TestClient, scenario: Scenario) -> None:
    url = f"/v1/chapters/{scenario.c2.id}/quiz/unlocked"
    assert client.get(url, headers=as_user()).json()["is_unlocked"] is False
    _finish_contents(client, scenario)
    assert client.get(url, headers=as_user()).json() == {
        "id": str(scenario.c2.id),
        "is_unlocked": True,
    }


# ---- submit ----


def test_failing_submission(client: TestClient, scenario: Scenario) -> None:
    resp = _submit(client, scenario.quiz.id, TWO_OF_FIVE)
    assert resp.status_code == 200
    body = resp.json()
    assert body["score"] == 40
    assert body["passed"] is False
    assert body["correct_answers"] == 2
    assert body["total_questions"] == 5
    assert body["message"] == "Score too low (40%). Minimum required: 70%"


def test_passing_submission_reports_each_question(
    client: TestClient, scenario: Scenario
) -> None:
    body = _submit(client, scenario.quiz.id, FOUR_OF_FIVE).json()
    assert body["score"] == 80
    assert body["passed"] is True
    assert body["message"] == "Quiz passed!"
    last = body["results"][-1]
    assert last == {
        "question_id": "q5",
        "user_answer": False,
        "correct_answer": True,
        "is_correct": False,
        "explanation": None,
    }


def test_second_submission_after_pass_conflicts(
    client: TestClient, scenario: Scenario
) -> None:
    assert _submit(client, scenario.quiz.id, FOUR_OF_FIVE).status_code == 200

    resp = _submit(client, scenario.quiz.id, ALL_CORRECT)
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["already_completed"] is True
    assert detail["message"] == "Quiz already passed"
    assert detail["result"]["quiz_id"] == str(scenario.quiz.id)
    assert detail["result"]["score"] == 80
    assert detail["result"]["passed"] is True


def test_passed_quiz_opens_in_review_mode(client: TestClient, scenario: Scenario) -> None:
    _finish_contents(client, scenario)
    _submit(client, scenario.quiz.id, FOUR_OF_FIVE)

    body = client.get(f"/v1/chapters/{scenario.c2.id}/quiz", headers=as_user()).json()
    assert body["review_mode"] is True
    assert body["questions"][0]["correctAnswer"] == 0
    assert body["previous_result"]["score"] == 80


def test_answer_of_wrong_type_is_bad_request(client: TestClient, scenario: Scenario) -> None:
    answers = dict(ALL_CORRECT, q1="0")
    assert _submit(client, scenario.quiz.id, answers).status_code == 400


def test_missing_answer_is_bad_request(client: TestClient, scenario: Scenario) -> None:
    answers = {k: v for k, v in ALL_CORRECT.items() if k != "q3"}
    assert _submit(client, scenario.quiz.id, answers).status_code == 400


def test_answers_not_an_object_is_bad_request(client: TestClient, scenario: Scenario) -> None:
    assert _submit(client, scenario.quiz.id, [0, 1, 2]).status_code == 400


def test_unknown_quiz_is_not_found(client: TestClient, scenario: Scenario) -> None:
    assert _submit(client, uuid.uuid4(), ALL_CORRECT).status_code == 404
