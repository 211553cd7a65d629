"""Scoring of answers and attempts.

Every numeric score in the application is produced here. The functions are
pure: they never touch collaborators and always return new records.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import datetime
import logging
import math
from typing import NoReturn
from uuid import uuid4

from assessment_app.core.grade_scale import DEFAULT_SCALE, GradeScale, calculate_percentage
from assessment_app.core.models import (
    Answer,
    Attempt,
    AttemptStatus,
    FreeResponseKey,
    MultipleChoiceKey,
    Question,
    QuestionKind,
    QuizQuestion,
    Quiz,
    TrueFalseKey,
)

logger = logging.getLogger(__name__)


class GradingConsistencyError(RuntimeError):
    """Raised when a question and the quiz being graded do not match up."""


def score_answer(question: Question, point_value: float, response: str | None) -> float:
    """Return the points awarded for ``response`` to ``question``.

    Free-response answers always score 0 here; they are scored by a grader.
    """
    if not response:
        return 0.0

    key = question.key
    if isinstance(key, MultipleChoiceKey):
        correct = key.correct_alternative
        if correct is not None and response == correct.id:
            return float(point_value)
        return 0.0
    if isinstance(key, TrueFalseKey):
        return float(point_value) if response == key.correct_label else 0.0
    if isinstance(key, FreeResponseKey):
        return 0.0
    raise GradingConsistencyError(f"Question {question.code} has an unsupported answer key.")


def finalize_attempt(
    quiz: Quiz,
    questions: Iterable[Question],
    responses: Mapping[str, str],
    started_at: datetime,
    finished_at: datetime,
    *,
    student_id: str,
    expired: bool = False,
    attempt_id: str | None = None,
    scale: GradeScale = DEFAULT_SCALE,
) -> Attempt:
    """Score every quiz question and build the resulting attempt.

    ``responses`` is sparse: questions without a response score 0. Answers
    are recorded for every question of the quiz in quiz order.
    """
    by_code = _index_questions(questions)
    quiz_codes = set(quiz.question_codes())

    stray = [code for code in responses if code not in quiz_codes]
    if stray:
        _fail(f"Responses reference questions outside quiz {quiz.id}: {', '.join(sorted(stray))}")

    answers: list[Answer] = []
    has_free_response = False
    for entry in quiz.questions:
        question = by_code.get(entry.question_code)
        if question is None:
            _fail(f"Quiz {quiz.id} references unknown question {entry.question_code}")
        if question.kind is QuestionKind.FREE_RESPONSE:
            has_free_response = True
        response = responses.get(entry.question_code) or ""
        answers.append(
            Answer(
                question_code=entry.question_code,
                response=response,
                awarded_points=score_answer(question, entry.points, response),
            )
        )

    if expired:
        status = AttemptStatus.EXPIRED
    elif has_free_response:
        status = AttemptStatus.PENDING_REVIEW
    else:
        status = AttemptStatus.SUBMITTED

    obtained = sum(answer.awarded_points for answer in answers)
    possible = float(quiz.total_points)
    elapsed = max(0, int((finished_at - started_at).total_seconds()))

    return Attempt(
        id=attempt_id or uuid4().hex,
        quiz_id=quiz.id,
        student_id=student_id,
        started_at=started_at,
        finished_at=finished_at,
        answers=answers,
        awarded_points=obtained,
        possible_points=possible,
        percentage=calculate_percentage(obtained, possible),
        grade=scale.grade(obtained, possible),
        elapsed_seconds=elapsed,
        status=status,
    )


def apply_manual_grading(
    attempt: Attempt,
    questions: Iterable[Question],
    quiz_questions: Iterable[QuizQuestion],
    updated_scores: Mapping[str, float],
    *,
    scale: GradeScale = DEFAULT_SCALE,
) -> Attempt:
    """Record grader scores for free-response answers and finalize the attempt.

    Scores outside ``[0, points]`` are clamped, not rejected. Scores supplied
    for objective questions are ignored; their automatic score stands. The
    returned attempt is always ``submitted``.
    """
    by_code = _index_questions(questions)
    points_by_code = {entry.question_code: entry.points for entry in quiz_questions}
    answered_codes = {answer.question_code for answer in attempt.answers}

    unknown = [code for code in updated_scores if code not in answered_codes]
    if unknown:
        _fail(f"Scores reference questions outside attempt {attempt.id}: {', '.join(sorted(unknown))}")

    answers: list[Answer] = []
    for answer in attempt.answers:
        question = by_code.get(answer.question_code)
        points = points_by_code.get(answer.question_code)
        if question is None or points is None:
            _fail(f"Attempt {attempt.id} references unknown question {answer.question_code}")

        if question.kind is QuestionKind.FREE_RESPONSE and answer.question_code in updated_scores:
            awarded = _clamp_score(attempt.id, answer.question_code, updated_scores[answer.question_code], points)
            answer = replace(answer, awarded_points=awarded)
        answers.append(answer)

    obtained = sum(answer.awarded_points for answer in answers)
    return replace(
        attempt,
        answers=answers,
        awarded_points=obtained,
        percentage=calculate_percentage(obtained, attempt.possible_points),
        grade=scale.grade(obtained, attempt.possible_points),
        status=AttemptStatus.SUBMITTED,
    )


def _clamp_score(attempt_id: str, question_code: str, score: float, points: float) -> float:
    value = float(score)
    if math.isnan(value):
        value = 0.0
    clamped = min(max(value, 0.0), float(points))
    if clamped != score:
        logger.warning(
            "Clamped manual score %s to %s for question %s of attempt %s",
            score,
            clamped,
            question_code,
            attempt_id,
        )
    return clamped


def _index_questions(questions: Iterable[Question]) -> dict[str, Question]:
    return {question.code: question for question in questions}


def _fail(message: str) -> NoReturn:
    logger.error(message)
    raise GradingConsistencyError(message)
