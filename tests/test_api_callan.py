import pytest

import app as app_module
from conftest import make_lesson


def record(client, user_id, qa_item_id, mode="qa", is_correct=True):
    return client.post("/api/callan/progress",
                       json={"userId": user_id, "qaItemId": qa_item_id, "mode": mode, "isCorrect": is_correct})


def test_record_and_increment(client, user):
    item_id = make_lesson(user.id).qa_items[0].id
    first = record(client, user.id, item_id)
    assert first.status_code == 200
    assert first.get_json()["progress"]["totalCount"] == 1

    progress = record(client, user.id, item_id, is_correct=False).get_json()["progress"]
    assert (progress["correctCount"], progress["totalCount"]) == (1, 2)
    assert progress["mode"] == "qa"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"userId": True}, "userId must be an integer"),
        ({"userId": "1"}, "userId must be an integer"),
        ({"qaItemId": ""}, "qaItemId is required"),
        ({"mode": "karaoke"}, "mode must be one of: qa, shadowing, dictation"),
        ({"isCorrect": 1}, "isCorrect must be a boolean"),
    ],
)
def test_record_validation(client, user, overrides, message):
    item_id = make_lesson(user.id).qa_items[0].id
    payload = {"userId": user.id, "qaItemId": item_id, "mode": "qa", "isCorrect": True, **overrides}
    response = client.post("/api/callan/progress", json=payload)
    assert response.status_code == 400
    assert response.get_json() == {"error": message}


def test_record_unknown_item(client, user):
    response = record(client, user.id, "missing")
    assert response.status_code == 404
    assert response.get_json() == {"error": "QA item not found"}


def test_summary(client, user):
    lesson = make_lesson(user.id, questions=("q1", "q2"))
    make_lesson(user.id, title="Stage 1 - Lesson 2: Numbers", order=2, questions=("q3",))
    first, second = (qa.id for qa in lesson.qa_items)
    record(client, user.id, first, "qa", True)
    record(client, user.id, first, "qa", False)
    record(client, user.id, second, "shadowing", True)
    record(client, user.id, second, "shadowing", True)
    record(client, user.id, second, "dictation", True)

    body = client.get(f"/api/callan/progress/summary?userId={user.id}").get_json()
    assert body == {
        "totalLessons": 2,
        "completedLessons": 1,
        "totalQAItems": 3,
        "practicedQAItems": 2,
        "byMode": {
            "qa": {"total": 2, "correct": 1, "accuracy": 50},
            "shadowing": {"total": 2, "practiced": 2},
            "dictation": {"total": 1, "correct": 1, "accuracy": 100},
        },
        "streakDays": 1,
    }


def test_summary_without_progress(client, user):
    body = client.get(f"/api/callan/progress/summary?userId={user.id}").get_json()
    assert body["streakDays"] == 0
    assert body["byMode"]["qa"] == {"total": 0, "correct": 0, "accuracy": 0}


def test_summary_requires_user(client):
    assert client.get("/api/callan/progress/summary").status_code == 400


def test_lesson_progress_filters_by_mode(client, user):
    lesson = make_lesson(user.id)
    first, second = (qa.id for qa in lesson.qa_items)
    record(client, user.id, second, "qa")
    record(client, user.id, first, "dictation")

    rows = client.get(f"/api/callan/progress/{lesson.id}?userId={user.id}").get_json()["progress"]
    assert [row["qaItemId"] for row in rows] == [first, second]
    assert rows[0]["qaItem"]["question"] == "Q1"

    rows = client.get(f"/api/callan/progress/{lesson.id}?userId={user.id}&mode=qa").get_json()["progress"]
    assert [row["mode"] for row in rows] == ["qa"]

    rows = client.get(f"/api/callan/progress/{lesson.id}?userId={user.id}&mode=bogus").get_json()["progress"]
    assert len(rows) == 2


def test_unexpected_errors_become_json_500(client, user, monkeypatch):
    def explode(store, user_id):
        raise RuntimeError("boom")

    monkeypatch.setattr(app_module, "callan_summary", explode)
    response = client.get(f"/api/callan/progress/summary?userId={user.id}")
    assert response.status_code == 500
    assert response.get_json() == {"error": "Something went wrong!"}


@pytest.mark.parametrize(
    "url",
    ["/api/callan/progress", "/api/listening/progress", "/api/sound-changes/progress", "/api/progress/update",
     "/api/users", "/api/users/login", "/api/lessons"],
)
def test_non_object_bodies_are_rejected(client, user, url):
    response = client.post(url, json=[1, 2])
    assert response.status_code == 400
    assert "error" in response.get_json()
