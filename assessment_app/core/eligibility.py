"""Rules deciding whether a student may start a quiz."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from assessment_app.core.models import Attempt, Quiz


class EligibilityReason(Enum):
    """Outcome of an eligibility check."""

    ELIGIBLE = "eligible"
    OUTSIDE_WINDOW = "outside_window"
    NOT_ASSIGNED = "not_assigned"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"


@dataclass(slots=True, frozen=True)
class Eligibility:
    """Result of checking a quiz against a student at a point in time."""

    reason: EligibilityReason
    attempts_used: int = 0
    attempts_remaining: int | None = None

    @property
    def eligible(self) -> bool:
        return self.reason is EligibilityReason.ELIGIBLE

    def describe(self) -> str:
        return _MESSAGES[self.reason]


_MESSAGES = {
    EligibilityReason.ELIGIBLE: "The quiz can be started.",
    EligibilityReason.OUTSIDE_WINDOW: "The quiz is not available at this time.",
    EligibilityReason.NOT_ASSIGNED: "The quiz is not assigned to this student.",
    EligibilityReason.ATTEMPTS_EXHAUSTED: "No attempts remain for this quiz.",
}


def count_prior_attempts(quiz_id: str, student_id: str, attempts: Iterable[Attempt]) -> int:
    return sum(1 for a in attempts if a.quiz_id == quiz_id and a.student_id == student_id)


def check_eligibility(
    quiz: Quiz,
    student_id: str | None,
    attempts: Iterable[Attempt],
    now: datetime,
    open_sessions: int = 0,
) -> Eligibility:
    """Check the window, the assignment list and the attempt limit.

    ``student_id`` of ``None`` is a preview context: only the window applies.
    ``open_sessions`` counts attempts already under way and not yet saved.
    ``allowed_attempts`` of 0 means unlimited; negative limits are rejected.
    """
    if quiz.allowed_attempts < 0:
        raise ValueError(f"Quiz {quiz.id} has a negative attempt limit.")

    if not quiz.window.contains(now):
        return Eligibility(EligibilityReason.OUTSIDE_WINDOW)

    if student_id is None:
        return Eligibility(EligibilityReason.ELIGIBLE)

    if student_id not in quiz.assigned_student_ids:
        return Eligibility(EligibilityReason.NOT_ASSIGNED)

    used = count_prior_attempts(quiz.id, student_id, attempts) + open_sessions
    if quiz.allowed_attempts == 0:
        return Eligibility(EligibilityReason.ELIGIBLE, attempts_used=used)

    remaining = max(0, quiz.allowed_attempts - used)
    if remaining == 0:
        return Eligibility(EligibilityReason.ATTEMPTS_EXHAUSTED, attempts_used=used, attempts_remaining=0)
    return Eligibility(EligibilityReason.ELIGIBLE, attempts_used=used, attempts_remaining=remaining)
