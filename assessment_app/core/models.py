"""Domain models for the assessment application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import ClassVar, Union

from assessment_app.constants.grading_constants import FALSE_LABEL, TRUE_LABEL


class QuestionKind(str, Enum):
    """The three supported question kinds."""

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    FREE_RESPONSE = "free_response"


class AttemptStatus(str, Enum):
    """Terminal states of a finalized attempt."""

    SUBMITTED = "submitted"
    EXPIRED = "expired"
    PENDING_REVIEW = "pending_review"


@dataclass(slots=True, frozen=True)
class Alternative:
    """A labeled option of a multiple-choice question."""

    id: str
    text: str
    is_correct: bool = False


@dataclass(slots=True, frozen=True)
class RubricCriterion:
    """Weighted criterion used by graders of free-response questions."""

    criterion: str
    max_points: float
    descriptor: str = ""


@dataclass(slots=True, frozen=True)
class MultipleChoiceKey:
    """Answer key holding the alternatives; exactly one is correct."""

    kind: ClassVar[QuestionKind] = QuestionKind.MULTIPLE_CHOICE

    alternatives: tuple[Alternative, ...]

    @property
    def correct_alternative(self) -> Alternative | None:
        return next((alt for alt in self.alternatives if alt.is_correct), None)

    def alternative_ids(self) -> list[str]:
        return [alt.id for alt in self.alternatives]


@dataclass(slots=True, frozen=True)
class TrueFalseKey:
    """Answer key holding the boolean-valued correct answer."""

    kind: ClassVar[QuestionKind] = QuestionKind.TRUE_FALSE

    correct_answer: bool

    @property
    def correct_label(self) -> str:
        return TRUE_LABEL if self.correct_answer else FALSE_LABEL


@dataclass(slots=True, frozen=True)
class FreeResponseKey:
    """Free-response questions have no key, only an optional grading rubric."""

    kind: ClassVar[QuestionKind] = QuestionKind.FREE_RESPONSE

    rubric: tuple[RubricCriterion, ...] = ()


AnswerKey = Union[MultipleChoiceKey, TrueFalseKey, FreeResponseKey]


@dataclass(slots=True)
class Attachments:
    """Media referenced by a question."""

    images: list[str] = field(default_factory=list)
    videos: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.images or self.videos or self.links)


@dataclass(slots=True)
class Question:
    """A question from the bank. The answer key determines its kind."""

    code: str
    prompt: str
    key: AnswerKey
    author: str = ""
    difficulty: int = 1
    subject: str = ""
    topic: str = ""
    subtopic: str = ""
    tags: list[str] = field(default_factory=list)
    feedback_correct: str = ""
    feedback_incorrect: str = ""
    attachments: Attachments = field(default_factory=Attachments)
    created_on: date | None = None
    usage_count: int = 0
    rating: int = 0

    @property
    def kind(self) -> QuestionKind:
        return self.key.kind

    @property
    def has_multimedia(self) -> bool:
        return not self.attachments.is_empty()


@dataclass(slots=True, frozen=True)
class QuizQuestion:
    """A question reference inside a quiz with the points it is worth."""

    question_code: str
    points: int


@dataclass(slots=True, frozen=True)
class AvailabilityWindow:
    """Inclusive time range during which a quiz may be started."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(slots=True)
class Quiz:
    """A set of questions assigned to students within a time window."""

    id: str
    title: str
    questions: list[QuizQuestion]
    window: AvailabilityWindow
    time_limit_minutes: int
    assigned_student_ids: list[str] = field(default_factory=list)
    allowed_attempts: int = 1
    author: str = ""
    description: str = ""
    subject: str = ""
    source: str = "bank"

    def question_codes(self) -> list[str]:
        return [entry.question_code for entry in self.questions]

    def points_for(self, question_code: str) -> int | None:
        return next(
            (entry.points for entry in self.questions if entry.question_code == question_code),
            None,
        )

    @property
    def total_points(self) -> int:
        return sum(entry.points for entry in self.questions)


@dataclass(slots=True, frozen=True)
class Answer:
    """A student's response to one question and the points it earned."""

    question_code: str
    response: str
    awarded_points: float = 0.0


@dataclass(slots=True)
class Attempt:
    """A finalized record of one student taking one quiz."""

    id: str
    quiz_id: str
    student_id: str
    started_at: datetime
    finished_at: datetime
    answers: list[Answer]
    awarded_points: float
    possible_points: float
    percentage: float
    grade: float
    elapsed_seconds: int
    status: AttemptStatus

    @property
    def is_pending(self) -> bool:
        return self.status is AttemptStatus.PENDING_REVIEW

    def answer_for(self, question_code: str) -> Answer | None:
        return next((a for a in self.answers if a.question_code == question_code), None)


@dataclass(slots=True)
class Student:
    """Roster entry used to label statistics."""

    id: str
    name: str
    course: str = ""
    email: str = ""


@dataclass(slots=True)
class Subject:
    """Label used to categorize questions and quizzes."""

    id: str
    name: str
    code: str = ""
    lead_teacher_id: str = ""
