"""FastAPI server that exposes the assessment manager over HTTP."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
import logging
from threading import Thread
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field
import uvicorn

from assessment_app.constants.grading_constants import FALSE_LABEL, TRUE_LABEL
from assessment_app.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from assessment_app.core.assessment_manager import AssessmentManager, EligibilityError, ServiceError
from assessment_app.core.eligibility import Eligibility
from assessment_app.core.grading import GradingConsistencyError
from assessment_app.core.markdown_math_renderer import renderer
from assessment_app.core.models import MultipleChoiceKey, Question, TrueFalseKey
from assessment_app.core.question_assistant import AssistError, FeedbackProposal
from assessment_app.core.schemas import AttemptPayload, QuestionPayload, QuizPayload, WindowPayload
from assessment_app.core.services.quiz_session import SessionSnapshot
from assessment_app.utils.clock import utc_now

logger = logging.getLogger(__name__)


class AssignmentPayload(BaseModel):
    """Payload schema for assigning a quiz to students."""

    student_ids: list[str]
    window: WindowPayload
    allowed_attempts: int = 1


class DraftPayload(BaseModel):
    question_codes: list[str]


class StartSessionPayload(BaseModel):
    """A missing student id starts a preview session that is never saved."""

    student_id: str | None = None


class ResponsePayload(BaseModel):
    response: str = ""


class NavigatePayload(BaseModel):
    index: int | None = None
    direction: Literal["next", "previous"] | None = None


class GradingPayload(BaseModel):
    scores: dict[str, float] = Field(default_factory=dict)


class FeedbackPayload(BaseModel):
    correct: str = ""
    incorrect: str = ""


class AcceptFeedbackPayload(BaseModel):
    """The draft question and the assistant feedback the author accepted."""

    question: QuestionPayload
    feedback: FeedbackPayload


@contextmanager
def _http_errors() -> Iterator[None]:
    """Translate domain errors into HTTP responses."""
    try:
        yield
    except GradingConsistencyError:
        raise
    except EligibilityError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ServiceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except AssistError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0] if exc.args else "Not found") from exc
    except (ValueError, IndexError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


def _options_for(question: Question) -> list[dict[str, str]]:
    key = question.key
    if isinstance(key, MultipleChoiceKey):
        return [{"id": alt.id, "html": renderer.render_inline(alt.text)} for alt in key.alternatives]
    if isinstance(key, TrueFalseKey):
        return [{"id": TRUE_LABEL, "html": TRUE_LABEL}, {"id": FALSE_LABEL, "html": FALSE_LABEL}]
    return []


def _eligibility_view(result: Eligibility) -> dict[str, object]:
    return {
        "eligible": result.eligible,
        "reason": result.reason.value,
        "message": result.describe(),
        "attempts_used": result.attempts_used,
        "attempts_remaining": result.attempts_remaining,
    }


def _session_view(snapshot: SessionSnapshot) -> dict[str, object]:
    view: dict[str, object] = {
        "session_id": snapshot.session_id,
        "quiz_id": snapshot.quiz_id,
        "student_id": snapshot.student_id or None,
        "state": snapshot.state.name.lower(),
        "remaining_seconds": snapshot.remaining_seconds,
        "current_index": snapshot.current_index,
        "question_count": snapshot.question_count,
        "answered_count": snapshot.answered_count,
        "answers": snapshot.answers,
        "question": None,
        "attempt": None,
    }
    if snapshot.attempt is not None:
        view["attempt"] = AttemptPayload.from_domain(snapshot.attempt).model_dump(mode="json")
    elif snapshot.current_question is not None:
        question = snapshot.current_question
        view["question"] = {
            "code": question.code,
            "kind": question.kind.value,
            "html": renderer.render_fragment(question.prompt),
            "options": _options_for(question),
        }
    return view


def _get_manager_dependency(manager: AssessmentManager):
    def dependency() -> AssessmentManager:
        return manager

    return dependency


def create_api_app(
    manager: AssessmentManager,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """Create a FastAPI application wired to the provided manager.

    ``clock`` supplies wall-clock time for windows and session countdowns.
    """
    app = FastAPI(title="Assessment API", version="0.1.0")
    manager_dep = _get_manager_dependency(manager)

    # --- Question bank ---

    @app.get("/questions")
    def list_questions(manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [QuestionPayload.from_domain(q).model_dump(mode="json") for q in manager.get_questions()]

    @app.post("/questions", status_code=201)
    def create_question(
        payload: QuestionPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _http_errors():
            created = manager.create_question(payload.to_domain())
        return QuestionPayload.from_domain(created).model_dump(mode="json")

    @app.put("/questions/{code}")
    def update_question(
        code: str,
        payload: QuestionPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        question = payload.to_domain()
        question.code = code
        with _http_errors():
            manager.update_question(question)
            return QuestionPayload.from_domain(manager.get_question(code)).model_dump(mode="json")

    @app.delete("/questions/{code}", status_code=204)
    def delete_question(code: str, manager: AssessmentManager = Depends(manager_dep)) -> None:
        with _http_errors():
            manager.delete_question(code)

    @app.get("/questions/{code}/preview", response_class=HTMLResponse)
    def preview_question(
        code: str,
        solution: bool = False,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> str:
        with _http_errors():
            question = manager.get_question(code)
        return renderer.render_question_document(question, include_solution=solution)

    @app.post("/questions/assist")
    def assist_question(
        payload: QuestionPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _http_errors():
            outcome = manager.assist_question(payload.to_domain())
        feedback = None
        if outcome.feedback is not None:
            feedback = {"correct": outcome.feedback.correct, "incorrect": outcome.feedback.incorrect}
        return {
            "question": QuestionPayload.from_domain(outcome.question).model_dump(mode="json"),
            "feedback": feedback,
        }

    @app.post("/questions/assist/feedback")
    def accept_assist_feedback(
        payload: AcceptFeedbackPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        proposal = FeedbackProposal(correct=payload.feedback.correct, incorrect=payload.feedback.incorrect)
        with _http_errors():
            question = manager.accept_assist_feedback(payload.question.to_domain(), proposal)
        return QuestionPayload.from_domain(question).model_dump(mode="json")

    # --- Subjects ---

    @app.get("/subjects")
    def list_subjects(manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [
            {"id": s.id, "name": s.name, "code": s.code, "lead_teacher_id": s.lead_teacher_id}
            for s in manager.get_subjects()
        ]

    # --- Quizzes ---

    @app.get("/quizzes")
    def list_quizzes(manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [QuizPayload.from_domain(q).model_dump(mode="json") for q in manager.get_quizzes()]

    @app.post("/quizzes", status_code=201)
    def create_quiz(payload: QuizPayload, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        with _http_errors():
            created = manager.create_quiz(payload.to_domain())
        return QuizPayload.from_domain(created).model_dump(mode="json")

    @app.post("/quizzes/draft")
    def draft_quiz(payload: DraftPayload, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        with _http_errors():
            draft = manager.draft_quiz_from_questions(payload.question_codes, now=clock())
        return QuizPayload.from_domain(draft).model_dump(mode="json")

    @app.put("/quizzes/{quiz_id}")
    def update_quiz(
        quiz_id: str,
        payload: QuizPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        quiz = payload.to_domain()
        quiz.id = quiz_id
        with _http_errors():
            manager.update_quiz(quiz)
            return QuizPayload.from_domain(manager.get_quiz(quiz_id)).model_dump(mode="json")

    @app.delete("/quizzes/{quiz_id}", status_code=204)
    def delete_quiz(quiz_id: str, manager: AssessmentManager = Depends(manager_dep)) -> None:
        with _http_errors():
            manager.delete_quiz(quiz_id)

    @app.put("/quizzes/{quiz_id}/assignment")
    def assign_quiz(
        quiz_id: str,
        payload: AssignmentPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _http_errors():
            quiz = manager.assign_quiz(
                quiz_id,
                payload.student_ids,
                payload.window.to_domain(),
                payload.allowed_attempts,
            )
        return QuizPayload.from_domain(quiz).model_dump(mode="json")

    @app.get("/quizzes/{quiz_id}/eligibility/{student_id}")
    def quiz_eligibility(
        quiz_id: str,
        student_id: str,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _http_errors():
            result = manager.eligibility(quiz_id, student_id, now=clock())
        return _eligibility_view(result)

    # --- Students ---

    @app.get("/students")
    def list_students(manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [{"id": s.id, "name": s.name, "course": s.course, "email": s.email} for s in manager.get_students()]

    @app.get("/students/{student_id}/quizzes")
    def student_quizzes(student_id: str, manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        quizzes = manager.available_quizzes(student_id, now=clock())
        return [QuizPayload.from_domain(q).model_dump(mode="json") for q in quizzes]

    @app.get("/students/{student_id}/attempts")
    def student_attempts(
        student_id: str,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [AttemptPayload.from_domain(a).model_dump(mode="json") for a in manager.student_history(student_id)]

    # --- Quiz sessions ---

    @app.post("/quizzes/{quiz_id}/sessions", status_code=201)
    def start_session(
        quiz_id: str,
        payload: StartSessionPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _http_errors():
            snapshot = manager.start_session(quiz_id, payload.student_id, now=clock())
        return _session_view(snapshot)

    @app.get("/sessions/{session_id}")
    def get_session(session_id: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        with _http_errors():
            snapshot = manager.get_session(session_id, now=clock())
        return _session_view(snapshot)

    @app.put("/sessions/{session_id}/answers/{question_code}")
    def record_answer(
        session_id: str,
        question_code: str,
        payload: ResponsePayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _http_errors():
            snapshot = manager.record_answer(session_id, question_code, payload.response.strip(), now=clock())
        return _session_view(snapshot)

    @app.post("/sessions/{session_id}/navigate")
    def navigate(
        session_id: str,
        payload: NavigatePayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _http_errors():
            snapshot = manager.navigate(session_id, payload.index, payload.direction, now=clock())
        return _session_view(snapshot)

    @app.post("/sessions/{session_id}/finish")
    def request_finish(session_id: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        with _http_errors():
            snapshot = manager.request_submit(session_id, now=clock())
        return _session_view(snapshot)

    @app.post("/sessions/{session_id}/cancel-finish")
    def cancel_finish(session_id: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        with _http_errors():
            snapshot = manager.cancel_submit(session_id, now=clock())
        return _session_view(snapshot)

    @app.post("/sessions/{session_id}/confirm")
    def confirm_finish(session_id: str, manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        with _http_errors():
            snapshot = manager.confirm_submit(session_id, now=clock())
        return _session_view(snapshot)

    @app.delete("/sessions/{session_id}", status_code=204)
    def abandon_session(session_id: str, manager: AssessmentManager = Depends(manager_dep)) -> None:
        with _http_errors():
            manager.abandon_session(session_id)

    # --- Manual grading ---

    @app.get("/attempts/pending")
    def pending_attempts(manager: AssessmentManager = Depends(manager_dep)) -> list[dict[str, object]]:
        return [AttemptPayload.from_domain(a).model_dump(mode="json") for a in manager.pending_reviews()]

    @app.post("/attempts/{attempt_id}/grading")
    def grade_attempt(
        attempt_id: str,
        payload: GradingPayload,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> dict[str, object]:
        with _http_errors():
            graded = manager.grade_attempt(attempt_id, payload.scores)
        return AttemptPayload.from_domain(graded).model_dump(mode="json")

    # --- Statistics ---

    @app.get("/statistics/students")
    def student_statistics(
        text: str = "",
        manager: AssessmentManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        with _http_errors():
            rows = manager.student_statistics(text)
        return [
            {
                "student_id": row.student_id,
                "student_name": row.student_name,
                "student_course": row.student_course,
                "attempt_count": row.attempt_count,
                "average_percentage": row.average_percentage,
                "average_grade": row.average_grade,
            }
            for row in rows
        ]

    @app.get("/statistics/questions")
    def question_statistics(
        text: str = "",
        subject: str | None = None,
        author: str | None = None,
        hardest_first: bool = Query(default=False),
        manager: AssessmentManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        with _http_errors():
            rows = manager.question_statistics(text, subject, author, hardest_first)
        return [
            {
                "question_code": row.question_code,
                "prompt": row.prompt,
                "subject": row.subject,
                "author": row.author,
                "success_rate": row.success_rate,
                "total_answers": row.total_answers,
                "breakdown": (
                    None
                    if row.breakdown is None
                    else {"counts": row.breakdown.counts, "unanswered": row.breakdown.unanswered}
                ),
            }
            for row in rows
        ]

    @app.get("/statistics/quizzes")
    def quiz_statistics(
        text: str = "",
        subject: str | None = None,
        author: str | None = None,
        manager: AssessmentManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        with _http_errors():
            rows = manager.quiz_statistics(text, subject, author)
        return [
            {
                "quiz_id": row.quiz_id,
                "title": row.title,
                "subject": row.subject,
                "author": row.author,
                "participant_count": row.participant_count,
                "attempt_count": row.attempt_count,
                "average_percentage": row.average_percentage,
                "average_time_seconds": row.average_time_seconds,
            }
            for row in rows
        ]

    @app.get("/statistics/summary")
    def summary(manager: AssessmentManager = Depends(manager_dep)) -> dict[str, object]:
        with _http_errors():
            stats = manager.summary(now=clock())
        return {
            "active_quizzes": stats.active_quizzes,
            "question_count": stats.question_count,
            "completed_attempts": stats.completed_attempts,
            "average_percentage": stats.average_percentage,
            "pending_reviews": stats.pending_reviews,
        }

    return app


def start_api_server(
    manager: AssessmentManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> Thread:
    """Start the FastAPI server in a background daemon thread."""
    app = create_api_app(manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)

    def run_server() -> None:
        server.run()

    thread = Thread(target=run_server, name="AssessmentApiServer", daemon=True)
    thread.start()
    logger.info("API server listening on %s:%s", host, port)
    return thread
