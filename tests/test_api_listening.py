from conftest import make_passage


def test_list_passages_by_difficulty(client, app):
    make_passage(title="Easy", order=1)
    make_passage(title="Hard", difficulty="advanced", order=2)

    passages = client.get("/api/listening/passages").get_json()["passages"]
    assert [p["title"] for p in passages] == ["Easy", "Hard"]
    assert set(passages[0]["questions"][0]) == {"id"}

    advanced = client.get("/api/listening/passages?difficulty=advanced").get_json()["passages"]
    assert [p["title"] for p in advanced] == ["Hard"]
    assert len(client.get("/api/listening/passages?difficulty=expert").get_json()["passages"]) == 2


def test_get_passage_with_questions(client, app):
    passage = make_passage()
    body = client.get(f"/api/listening/passages/{passage.id}").get_json()["passage"]
    assert body["questions"][0]["options"] == ["a", "b"]
    assert body["questions"][0]["question"] == "Question 1?"
    assert client.get("/api/listening/passages/missing").status_code == 404


def test_record_answers_and_summary(client, user):
    passage = make_passage(questions=3)
    q1, q2, _ = (q.id for q in passage.questions)
    for question_id, correct in ((q1, True), (q1, False), (q2, True)):
        response = client.post("/api/listening/progress",
                               json={"userId": user.id, "questionId": question_id, "isCorrect": correct})
        assert response.status_code == 200

    body = client.get(f"/api/listening/progress/summary?userId={user.id}").get_json()
    assert body == {
        "totalPassages": 1,
        "totalQuestions": 3,
        "answeredQuestions": 2,
        "correctAnswers": 2,
        "accuracy": 67,
    }


def test_record_answer_validation(client, user):
    passage = make_passage()
    question_id = passage.questions[0].id
    bad = [
        {"questionId": question_id, "isCorrect": True},
        {"userId": user.id, "isCorrect": True},
        {"userId": user.id, "questionId": question_id, "isCorrect": "true"},
    ]
    for payload in bad:
        assert client.post("/api/listening/progress", json=payload).status_code == 400
    missing = client.post("/api/listening/progress", json={"userId": user.id, "questionId": "x", "isCorrect": True})
    assert missing.status_code == 404


def test_summary_requires_user(client):
    assert client.get("/api/listening/progress/summary?userId=abc").status_code == 400
