"""Aggregate statistics derived from the full attempt history.

Every function recomputes from scratch. Attempts awaiting manual review are
excluded from every aggregate until they are graded.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from assessment_app.constants.grading_constants import FALSE_LABEL, TRUE_LABEL
from assessment_app.core.models import (
    Attempt,
    AttemptStatus,
    MultipleChoiceKey,
    Question,
    Quiz,
    Student,
    TrueFalseKey,
)


@dataclass(slots=True)
class StudentStats:
    student_id: str
    student_name: str
    student_course: str
    attempt_count: int
    average_percentage: float
    average_grade: float


@dataclass(slots=True)
class DistractorBreakdown:
    """How often each response was chosen, independent of correctness.

    ``sum(counts.values()) + unanswered`` always equals the number of graded
    answers to the question.
    """

    counts: dict[str, int] = field(default_factory=dict)
    unanswered: int = 0

    @property
    def total(self) -> int:
        return sum(self.counts.values()) + self.unanswered


@dataclass(slots=True)
class QuestionStats:
    question_code: str
    prompt: str
    subject: str
    author: str
    success_rate: float
    total_answers: int
    breakdown: DistractorBreakdown | None = None


@dataclass(slots=True)
class QuizStats:
    quiz_id: str
    title: str
    subject: str
    author: str
    participant_count: int
    attempt_count: int
    average_percentage: float
    average_time_seconds: float


@dataclass(slots=True)
class SummaryStats:
    """Headline numbers for the teacher dashboard."""

    active_quizzes: int
    question_count: int
    completed_attempts: int
    average_percentage: float
    pending_reviews: int


def graded_attempts(attempts: Iterable[Attempt]) -> list[Attempt]:
    """Return the attempts that count towards statistics."""
    return [attempt for attempt in attempts if not attempt.is_pending]


def pending_attempts(attempts: Iterable[Attempt]) -> list[Attempt]:
    return [attempt for attempt in attempts if attempt.is_pending]


def _average(total: float, count: int) -> float:
    return total / count if count > 0 else 0.0


@dataclass(slots=True)
class _StudentTotals:
    """Mutable accumulator used internally."""

    percentage_sum: float = 0.0
    grade_sum: float = 0.0
    count: int = 0


def compute_student_stats(students: Iterable[Student], attempts: Iterable[Attempt]) -> list[StudentStats]:
    """One row per roster student, then one per unknown student id with attempts.

    Unknown students are labelled with their id so their attempts still show.
    """
    totals: dict[str, _StudentTotals] = {}
    for attempt in graded_attempts(attempts):
        entry = totals.setdefault(attempt.student_id, _StudentTotals())
        entry.percentage_sum += attempt.percentage
        entry.grade_sum += attempt.grade
        entry.count += 1

    roster = [(student.id, student.name, student.course) for student in students]
    known = {student_id for student_id, _, _ in roster}
    roster.extend((student_id, student_id, "") for student_id in totals if student_id not in known)

    rows: list[StudentStats] = []
    for student_id, name, course in roster:
        entry = totals.get(student_id, _StudentTotals())
        rows.append(
            StudentStats(
                student_id=student_id,
                student_name=name,
                student_course=course,
                attempt_count=entry.count,
                average_percentage=_average(entry.percentage_sum, entry.count),
                average_grade=_average(entry.grade_sum, entry.count),
            )
        )
    return rows


def _empty_breakdown(question: Question) -> DistractorBreakdown | None:
    key = question.key
    if isinstance(key, MultipleChoiceKey):
        return DistractorBreakdown(counts={alt_id: 0 for alt_id in key.alternative_ids()})
    if isinstance(key, TrueFalseKey):
        return DistractorBreakdown(counts={TRUE_LABEL: 0, FALSE_LABEL: 0})
    return None


def compute_question_stats(questions: Iterable[Question], attempts: Iterable[Attempt]) -> list[QuestionStats]:
    question_list = list(questions)
    breakdowns = {question.code: _empty_breakdown(question) for question in question_list}
    correct: dict[str, int] = {}
    total: dict[str, int] = {}

    for attempt in graded_attempts(attempts):
        for answer in attempt.answers:
            code = answer.question_code
            total[code] = total.get(code, 0) + 1
            if answer.awarded_points > 0:
                correct[code] = correct.get(code, 0) + 1
            breakdown = breakdowns.get(code)
            if breakdown is None:
                continue
            if answer.response:
                breakdown.counts[answer.response] = breakdown.counts.get(answer.response, 0) + 1
            else:
                breakdown.unanswered += 1

    rows: list[QuestionStats] = []
    for question in question_list:
        answered = total.get(question.code, 0)
        rows.append(
            QuestionStats(
                question_code=question.code,
                prompt=question.prompt,
                subject=question.subject,
                author=question.author,
                success_rate=_average(correct.get(question.code, 0) * 100.0, answered),
                total_answers=answered,
                breakdown=breakdowns[question.code],
            )
        )
    return rows


def compute_quiz_stats(quizzes: Iterable[Quiz], attempts: Iterable[Attempt]) -> list[QuizStats]:
    grouped: dict[str, list[Attempt]] = {}
    for attempt in graded_attempts(attempts):
        grouped.setdefault(attempt.quiz_id, []).append(attempt)

    rows: list[QuizStats] = []
    for quiz in quizzes:
        quiz_attempts = grouped.get(quiz.id, [])
        count = len(quiz_attempts)
        rows.append(
            QuizStats(
                quiz_id=quiz.id,
                title=quiz.title,
                subject=quiz.subject,
                author=quiz.author,
                participant_count=len({a.student_id for a in quiz_attempts}),
                attempt_count=count,
                average_percentage=_average(sum(a.percentage for a in quiz_attempts), count),
                average_time_seconds=_average(sum(a.elapsed_seconds for a in quiz_attempts), count),
            )
        )
    return rows


def active_quizzes(quizzes: Iterable[Quiz], now: datetime) -> list[Quiz]:
    """Quizzes whose window has not closed yet, soonest deadline first."""
    return sorted((quiz for quiz in quizzes if quiz.window.end > now), key=lambda quiz: quiz.window.end)


def compute_summary(
    quizzes: Iterable[Quiz],
    questions: Iterable[Question],
    attempts: Iterable[Attempt],
    now: datetime,
) -> SummaryStats:
    attempt_list = list(attempts)
    completed = [a for a in attempt_list if a.status is AttemptStatus.SUBMITTED]
    return SummaryStats(
        active_quizzes=len(active_quizzes(quizzes, now)),
        question_count=len(list(questions)),
        completed_attempts=len(completed),
        average_percentage=_average(sum(a.percentage for a in completed), len(completed)),
        pending_reviews=len(pending_attempts(attempt_list)),
    )


# --- Dashboard filters ---


def _matches(text: str, *candidates: str) -> bool:
    needle = text.strip().lower()
    return not needle or any(needle in candidate.lower() for candidate in candidates)


def filter_student_stats(rows: Iterable[StudentStats], text: str = "") -> list[StudentStats]:
    return [row for row in rows if _matches(text, row.student_name, row.student_course)]


def filter_question_stats(
    rows: Iterable[QuestionStats],
    text: str = "",
    subject: str | None = None,
    author: str | None = None,
    hardest_first: bool = False,
) -> list[QuestionStats]:
    selected = [
        row
        for row in rows
        if _matches(text, row.prompt)
        and (not subject or row.subject == subject)
        and (not author or row.author == author)
    ]
    if hardest_first:
        selected.sort(key=lambda row: row.success_rate)
    return selected


def filter_quiz_stats(
    rows: Iterable[QuizStats],
    text: str = "",
    subject: str | None = None,
    author: str | None = None,
) -> list[QuizStats]:
    return [
        row
        for row in rows
        if _matches(text, row.title)
        and (not subject or row.subject == subject)
        and (not author or row.author == author)
    ]
