"""Validation of authored questions and quizzes before they are saved."""

from __future__ import annotations

from collections.abc import Collection, Iterable
from urllib.parse import urlparse

from assessment_app.constants.grading_constants import (
    MAX_DIFFICULTY,
    MAX_POINT_VALUE,
    MAX_RATING,
    MIN_DIFFICULTY,
    MIN_POINT_VALUE,
)
from assessment_app.core.models import (
    Attempt,
    FreeResponseKey,
    MultipleChoiceKey,
    Question,
    QuestionKind,
    Quiz,
)


class ValidationError(ValueError):
    """Raised when authored content is incomplete or inconsistent."""


_OBJECTIVE_KINDS = (QuestionKind.MULTIPLE_CHOICE, QuestionKind.TRUE_FALSE)


def validate_question(question: Question) -> None:
    if not question.prompt.strip():
        raise ValidationError("Question prompt must not be empty.")
    if not MIN_DIFFICULTY <= question.difficulty <= MAX_DIFFICULTY:
        raise ValidationError(f"Difficulty must be between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}.")
    if not 0 <= question.rating <= MAX_RATING:
        raise ValidationError(f"Rating must be between 0 and {MAX_RATING}.")

    key = question.key
    if isinstance(key, MultipleChoiceKey):
        _validate_alternatives(key)
    elif isinstance(key, FreeResponseKey):
        if any(criterion.max_points < 0 for criterion in key.rubric):
            raise ValidationError("Rubric criteria must have non-negative points.")
        if any(not criterion.criterion.strip() for criterion in key.rubric):
            raise ValidationError("Rubric criteria must be named.")

    if question.kind in _OBJECTIVE_KINDS and (
        not question.feedback_correct.strip() or not question.feedback_incorrect.strip()
    ):
        raise ValidationError(
            "Feedback for correct and incorrect responses is required for this question type."
        )

    for url in (*question.attachments.videos, *question.attachments.links):
        if not _is_web_url(url):
            raise ValidationError(f"Attachment '{url}' is not a valid http(s) URL.")


def _validate_alternatives(key: MultipleChoiceKey) -> None:
    if len(key.alternatives) < 2:
        raise ValidationError("Multiple-choice questions need at least two alternatives.")
    ids = [alt.id.strip() for alt in key.alternatives]
    if any(not alt_id for alt_id in ids):
        raise ValidationError("Alternative ids cannot be empty.")
    if len(set(ids)) != len(ids):
        raise ValidationError("Alternative ids must be unique.")
    if any(not alt.text.strip() for alt in key.alternatives):
        raise ValidationError("Alternative text cannot be empty.")
    correct_count = sum(1 for alt in key.alternatives if alt.is_correct)
    if correct_count != 1:
        raise ValidationError("Multiple-choice questions must have exactly one correct alternative.")


def _is_web_url(url: str) -> bool:
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_quiz(quiz: Quiz, known_question_codes: Collection[str]) -> None:
    if not quiz.title.strip():
        raise ValidationError("Quiz title must not be empty.")
    if not quiz.questions:
        raise ValidationError("Quiz must contain at least one question.")

    codes = quiz.question_codes()
    if len(set(codes)) != len(codes):
        raise ValidationError("A question can only appear once in a quiz.")
    missing = [code for code in codes if code not in known_question_codes]
    if missing:
        raise ValidationError(f"Unknown questions: {', '.join(missing)}.")
    for entry in quiz.questions:
        if not MIN_POINT_VALUE <= entry.points <= MAX_POINT_VALUE:
            raise ValidationError(
                f"Points for {entry.question_code} must be between {MIN_POINT_VALUE} and {MAX_POINT_VALUE}."
            )

    validate_schedule(quiz)


def validate_schedule(quiz: Quiz) -> None:
    """Check the fields that stay editable after a quiz has been taken."""
    if quiz.window.end <= quiz.window.start:
        raise ValidationError("Availability window must end after it starts.")
    if quiz.time_limit_minutes <= 0:
        raise ValidationError("Time limit must be a positive number of minutes.")
    if quiz.allowed_attempts < 0:
        raise ValidationError("Allowed attempts cannot be negative; use 0 for unlimited.")


def ensure_question_editable(current: Question, updated: Question, attempts: Iterable[Attempt]) -> None:
    """Reject changes to the scoring fields of a question that has been answered."""
    if current.key == updated.key:
        return
    if any(answer.question_code == current.code for attempt in attempts for answer in attempt.answers):
        raise ValidationError(
            f"Question {current.code} has been answered; its answer key can no longer change."
        )


def ensure_quiz_editable(current: Quiz, updated: Quiz, attempts: Iterable[Attempt]) -> None:
    """Reject changes to the question list of a quiz that has been taken."""
    if current.questions == updated.questions:
        return
    if any(attempt.quiz_id == current.id for attempt in attempts):
        raise ValidationError(
            f"Quiz {current.id} has attempts; its questions and points can no longer change."
        )
