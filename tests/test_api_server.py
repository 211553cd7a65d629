from __future__ import annotations

from datetime import timedelta

from fastapi.testclient import TestClient
import pytest

from assessment_app.server.api_server import create_api_app


class FakeClock:
    def __init__(self, start):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock(now):
    return FakeClock(now)


@pytest.fixture
def client(manager, clock):
    return TestClient(create_api_app(manager, clock=clock))


NEW_QUESTION = {
    "prompt": "Which planet is closest to the sun?",
    "subject": "Science",
    "difficulty": 3,
    "feedback_correct": "Correct.",
    "feedback_incorrect": "Look at the orbits again.",
    "key": {
        "kind": "multiple_choice",
        "alternatives": [
            {"id": "A", "text": "Mercury", "is_correct": True},
            {"id": "B", "text": "Venus"},
        ],
    },
}


def test_question_crud(client):
    created = client.post("/questions", json=NEW_QUESTION)
    assert created.status_code == 201
    code = created.json()["code"]
    assert code == "SCI-0001"

    updated = client.put(f"/questions/{code}", json={**NEW_QUESTION, "topic": "Planets"})
    assert updated.status_code == 200
    assert updated.json()["topic"] == "Planets"

    assert len(client.get("/questions").json()) == 4
    assert client.delete(f"/questions/{code}").status_code == 204
    assert client.delete(f"/questions/{code}").status_code == 404


def test_invalid_question_is_422(client):
    response = client.post("/questions", json={**NEW_QUESTION, "prompt": " "})
    assert response.status_code == 422


def test_question_preview_renders_html(client, mc_question):
    response = client.get(f"/questions/{mc_question.code}/preview", params={"solution": True})
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "mathjax" in response.text.lower()
    assert 'class="correct"' in response.text


def test_assist_without_assistant_is_502(client):
    assert client.post("/questions/assist", json=NEW_QUESTION).status_code == 502


def test_accept_assist_feedback(client, mc_question):
    question = client.get("/questions").json()[0]
    response = client.post(
        "/questions/assist/feedback",
        json={"question": question, "feedback": {"correct": "Four, exactly.", "incorrect": ""}},
    )
    assert response.status_code == 200
    assert response.json()["feedback_correct"] == "Four, exactly."
    assert response.json()["feedback_incorrect"] == mc_question.feedback_incorrect


def test_subjects_and_students_are_listed(client):
    assert [s["name"] for s in client.get("/subjects").json()] == ["Math", "History"]
    students = client.get("/students").json()
    assert [(s["id"], s["course"]) for s in students] == [("s1", "4A"), ("s2", "4B")]


def test_quiz_draft_and_create(client, mc_question, tf_question):
    draft = client.post("/quizzes/draft", json={"question_codes": [mc_question.code, tf_question.code]}).json()
    assert [q["points"] for q in draft["questions"]] == [2, 4]
    draft["title"] = "Drafted quiz"
    created = client.post("/quizzes", json=draft)
    assert created.status_code == 201
    assert created.json()["id"] == "QUIZ-0003"


def test_assignment_and_eligibility(client, quiz, now):
    window = {"start": (now - timedelta(hours=1)).isoformat(), "end": (now + timedelta(hours=1)).isoformat()}
    response = client.put(
        f"/quizzes/{quiz.id}/assignment",
        json={"student_ids": ["s3"], "window": window, "allowed_attempts": 2},
    )
    assert response.status_code == 200
    assert response.json()["assigned_student_ids"] == ["s3"]

    eligible = client.get(f"/quizzes/{quiz.id}/eligibility/s3").json()
    assert eligible["eligible"] is True
    assert eligible["attempts_remaining"] == 2
    assert client.get(f"/quizzes/{quiz.id}/eligibility/s1").json()["reason"] == "not_assigned"


def test_session_flow(client, quiz, mc_question, tf_question, clock):
    started = client.post(f"/quizzes/{quiz.id}/sessions", json={"student_id": "s1"})
    assert started.status_code == 201
    view = started.json()
    session_id = view["session_id"]
    assert view["state"] == "in_progress"
    assert view["question"]["code"] == mc_question.code
    assert [o["id"] for o in view["question"]["options"]] == ["A", "B", "C"]

    client.put(f"/sessions/{session_id}/answers/{mc_question.code}", json={"response": "A"})
    moved = client.post(f"/sessions/{session_id}/navigate", json={"direction": "next"}).json()
    assert moved["question"]["code"] == tf_question.code
    client.put(f"/sessions/{session_id}/answers/{tf_question.code}", json={"response": "True"})

    clock.advance(seconds=90)
    confirming = client.post(f"/sessions/{session_id}/finish").json()
    assert confirming["state"] == "confirming_submit"
    assert confirming["remaining_seconds"] == quiz.time_limit_minutes * 60 - 90

    finished = client.post(f"/sessions/{session_id}/confirm").json()
    assert finished["state"] == "finished"
    assert finished["question"] is None
    assert finished["attempt"]["grade"] == 7.0
    assert finished["attempt"]["elapsed_seconds"] == 90

    history = client.get("/students/s1/attempts").json()
    assert [a["id"] for a in history] == [finished["attempt"]["id"]]

    again = client.post(f"/quizzes/{quiz.id}/sessions", json={"student_id": "s1"})
    assert again.status_code == 403
    assert client.post(f"/sessions/{session_id}/confirm").status_code == 409
    assert client.get(f"/sessions/{session_id}").json()["attempt"]["id"] == finished["attempt"]["id"]


def test_session_expires_from_wall_clock(client, quiz, mc_question, clock):
    session_id = client.post(f"/quizzes/{quiz.id}/sessions", json={"student_id": "s2"}).json()["session_id"]
    client.put(f"/sessions/{session_id}/answers/{mc_question.code}", json={"response": "A"})
    clock.advance(minutes=quiz.time_limit_minutes, seconds=5)

    late = client.put(f"/sessions/{session_id}/answers/{mc_question.code}", json={"response": "B"})
    assert late.status_code == 409

    view = client.get(f"/sessions/{session_id}").json()
    assert view["state"] == "finished"
    assert view["attempt"]["status"] == "expired"
    assert view["attempt"]["awarded_points"] == 5.0
    assert view["attempt"]["elapsed_seconds"] == quiz.time_limit_minutes * 60
    assert len(client.get("/students/s2/attempts").json()) == 1


def test_second_session_beyond_the_limit_is_403(client, quiz):
    first = client.post(f"/quizzes/{quiz.id}/sessions", json={"student_id": "s2"})
    assert first.status_code == 201
    second = client.post(f"/quizzes/{quiz.id}/sessions", json={"student_id": "s2"})
    assert second.status_code == 403


def test_invalid_transition_is_409(client, quiz):
    session_id = client.post(f"/quizzes/{quiz.id}/sessions", json={}).json()["session_id"]
    assert client.post(f"/sessions/{session_id}/cancel-finish").status_code == 409
    assert client.post(f"/sessions/{session_id}/navigate", json={"index": 7}).status_code == 422
    assert client.delete(f"/sessions/{session_id}").status_code == 204
    assert client.get(f"/sessions/{session_id}").status_code == 404


def test_manual_grading_and_statistics(client, essay_quiz, mc_question, fr_question):
    session_id = client.post(f"/quizzes/{essay_quiz.id}/sessions", json={"student_id": "s1"}).json()["session_id"]
    client.put(f"/sessions/{session_id}/answers/{mc_question.code}", json={"response": "A"})
    client.put(f"/sessions/{session_id}/answers/{fr_question.code}", json={"response": "Bread prices rose."})
    client.post(f"/sessions/{session_id}/finish")
    attempt = client.post(f"/sessions/{session_id}/confirm").json()["attempt"]
    assert attempt["status"] == "pending_review"

    assert client.get("/statistics/summary").json()["pending_reviews"] == 1
    quiz_rows = {row["quiz_id"]: row for row in client.get("/statistics/quizzes").json()}
    assert quiz_rows[essay_quiz.id]["attempt_count"] == 0

    pending = client.get("/attempts/pending").json()
    assert [a["id"] for a in pending] == [attempt["id"]]

    graded = client.post(f"/attempts/{attempt['id']}/grading", json={"scores": {fr_question.code: 4}})
    assert graded.status_code == 200
    assert graded.json()["status"] == "submitted"
    assert graded.json()["grade"] == 7.0
    assert client.post(f"/attempts/{attempt['id']}/grading", json={"scores": {}}).status_code == 409

    quiz_rows = {row["quiz_id"]: row for row in client.get("/statistics/quizzes").json()}
    assert quiz_rows[essay_quiz.id]["attempt_count"] == 1
    students = client.get("/statistics/students", params={"text": "carla"}).json()
    assert students[0]["average_grade"] == 7.0
    questions = client.get("/statistics/questions", params={"subject": "Math"}).json()
    mc_row = next(row for row in questions if row["question_code"] == mc_question.code)
    assert mc_row["breakdown"]["counts"]["A"] == 1


def test_unknown_quiz_is_404(client):
    assert client.post("/quizzes/QUIZ-9999/sessions", json={"student_id": "s1"}).status_code == 404
