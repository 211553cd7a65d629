"""Pydantic payloads mirroring the domain models for JSON transport."""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from assessment_app.core.models import (
    Alternative,
    Answer,
    AnswerKey,
    Attachments,
    Attempt,
    AttemptStatus,
    AvailabilityWindow,
    FreeResponseKey,
    MultipleChoiceKey,
    Question,
    Quiz,
    QuizQuestion,
    RubricCriterion,
    TrueFalseKey,
)
from assessment_app.utils.clock import ensure_utc


class AlternativePayload(BaseModel):
    id: str
    text: str
    is_correct: bool = False


class RubricCriterionPayload(BaseModel):
    criterion: str
    max_points: float
    descriptor: str = ""


class MultipleChoiceKeyPayload(BaseModel):
    kind: Literal["multiple_choice"] = "multiple_choice"
    alternatives: list[AlternativePayload]


class TrueFalseKeyPayload(BaseModel):
    kind: Literal["true_false"] = "true_false"
    correct_answer: bool


class FreeResponseKeyPayload(BaseModel):
    kind: Literal["free_response"] = "free_response"
    rubric: list[RubricCriterionPayload] = Field(default_factory=list)


AnswerKeyPayload = Annotated[
    Union[MultipleChoiceKeyPayload, TrueFalseKeyPayload, FreeResponseKeyPayload],
    Field(discriminator="kind"),
]


class AttachmentsPayload(BaseModel):
    images: list[str] = Field(default_factory=list)
    videos: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)


class QuestionPayload(BaseModel):
    code: str = ""
    prompt: str
    key: AnswerKeyPayload
    author: str = ""
    difficulty: int = 1
    subject: str = ""
    topic: str = ""
    subtopic: str = ""
    tags: list[str] = Field(default_factory=list)
    feedback_correct: str = ""
    feedback_incorrect: str = ""
    attachments: AttachmentsPayload = Field(default_factory=AttachmentsPayload)
    created_on: date | None = None
    usage_count: int = 0
    rating: int = 0
    has_multimedia: bool = False

    def to_domain(self) -> Question:
        attachments = Attachments(
            images=_non_blank(self.attachments.images),
            videos=_non_blank(self.attachments.videos),
            links=_non_blank(self.attachments.links),
        )
        return Question(
            code=self.code,
            prompt=self.prompt.strip(),
            key=key_to_domain(self.key),
            author=self.author,
            difficulty=self.difficulty,
            subject=self.subject,
            topic=self.topic,
            subtopic=self.subtopic,
            tags=[tag.strip() for tag in self.tags if tag.strip()],
            feedback_correct=self.feedback_correct,
            feedback_incorrect=self.feedback_incorrect,
            attachments=attachments,
            created_on=self.created_on,
            usage_count=self.usage_count,
            rating=self.rating,
        )

    @classmethod
    def from_domain(cls, question: Question) -> "QuestionPayload":
        return cls(
            code=question.code,
            prompt=question.prompt,
            key=key_from_domain(question.key),
            author=question.author,
            difficulty=question.difficulty,
            subject=question.subject,
            topic=question.topic,
            subtopic=question.subtopic,
            tags=list(question.tags),
            feedback_correct=question.feedback_correct,
            feedback_incorrect=question.feedback_incorrect,
            attachments=AttachmentsPayload(
                images=list(question.attachments.images),
                videos=list(question.attachments.videos),
                links=list(question.attachments.links),
            ),
            created_on=question.created_on,
            usage_count=question.usage_count,
            rating=question.rating,
            has_multimedia=question.has_multimedia,
        )


def _non_blank(values: list[str]) -> list[str]:
    return [value.strip() for value in values if value.strip()]


def key_to_domain(key: MultipleChoiceKeyPayload | TrueFalseKeyPayload | FreeResponseKeyPayload) -> AnswerKey:
    if isinstance(key, MultipleChoiceKeyPayload):
        return MultipleChoiceKey(
            alternatives=tuple(Alternative(id=a.id, text=a.text, is_correct=a.is_correct) for a in key.alternatives)
        )
    if isinstance(key, TrueFalseKeyPayload):
        return TrueFalseKey(correct_answer=key.correct_answer)
    return FreeResponseKey(
        rubric=tuple(
            RubricCriterion(criterion=c.criterion, max_points=c.max_points, descriptor=c.descriptor)
            for c in key.rubric
        )
    )


def key_from_domain(key: AnswerKey) -> MultipleChoiceKeyPayload | TrueFalseKeyPayload | FreeResponseKeyPayload:
    if isinstance(key, MultipleChoiceKey):
        return MultipleChoiceKeyPayload(
            alternatives=[AlternativePayload(id=a.id, text=a.text, is_correct=a.is_correct) for a in key.alternatives]
        )
    if isinstance(key, TrueFalseKey):
        return TrueFalseKeyPayload(correct_answer=key.correct_answer)
    return FreeResponseKeyPayload(
        rubric=[
            RubricCriterionPayload(criterion=c.criterion, max_points=c.max_points, descriptor=c.descriptor)
            for c in key.rubric
        ]
    )


class QuizQuestionPayload(BaseModel):
    question_code: str
    points: int


class WindowPayload(BaseModel):
    start: datetime
    end: datetime

    def to_domain(self) -> AvailabilityWindow:
        return AvailabilityWindow(start=ensure_utc(self.start), end=ensure_utc(self.end))


class QuizPayload(BaseModel):
    id: str = ""
    title: str
    questions: list[QuizQuestionPayload]
    window: WindowPayload
    time_limit_minutes: int
    assigned_student_ids: list[str] = Field(default_factory=list)
    allowed_attempts: int = 1
    author: str = ""
    description: str = ""
    subject: str = ""
    source: Literal["bank", "ai"] = "bank"

    def to_domain(self) -> Quiz:
        return Quiz(
            id=self.id,
            title=self.title.strip(),
            questions=[QuizQuestion(question_code=q.question_code, points=q.points) for q in self.questions],
            window=self.window.to_domain(),
            time_limit_minutes=self.time_limit_minutes,
            assigned_student_ids=list(dict.fromkeys(self.assigned_student_ids)),
            allowed_attempts=self.allowed_attempts,
            author=self.author,
            description=self.description,
            subject=self.subject,
            source=self.source,
        )

    @classmethod
    def from_domain(cls, quiz: Quiz) -> "QuizPayload":
        return cls(
            id=quiz.id,
            title=quiz.title,
            questions=[QuizQuestionPayload(question_code=q.question_code, points=q.points) for q in quiz.questions],
            window=WindowPayload(start=quiz.window.start, end=quiz.window.end),
            time_limit_minutes=quiz.time_limit_minutes,
            assigned_student_ids=list(quiz.assigned_student_ids),
            allowed_attempts=quiz.allowed_attempts,
            author=quiz.author,
            description=quiz.description,
            subject=quiz.subject,
            source=quiz.source,
        )


class AnswerPayload(BaseModel):
    question_code: str
    response: str
    awarded_points: float


class AttemptPayload(BaseModel):
    id: str
    quiz_id: str
    student_id: str
    started_at: datetime
    finished_at: datetime
    answers: list[AnswerPayload]
    awarded_points: float
    possible_points: float
    percentage: float
    grade: float
    elapsed_seconds: int
    status: AttemptStatus

    @classmethod
    def from_domain(cls, attempt: Attempt) -> "AttemptPayload":
        return cls(
            id=attempt.id,
            quiz_id=attempt.quiz_id,
            student_id=attempt.student_id,
            started_at=attempt.started_at,
            finished_at=attempt.finished_at,
            answers=[
                AnswerPayload(question_code=a.question_code, response=a.response, awarded_points=a.awarded_points)
                for a in attempt.answers
            ],
            awarded_points=attempt.awarded_points,
            possible_points=attempt.possible_points,
            percentage=attempt.percentage,
            grade=attempt.grade,
            elapsed_seconds=attempt.elapsed_seconds,
            status=attempt.status,
        )

    def to_domain(self) -> Attempt:
        return Attempt(
            id=self.id,
            quiz_id=self.quiz_id,
            student_id=self.student_id,
            started_at=ensure_utc(self.started_at),
            finished_at=ensure_utc(self.finished_at),
            answers=[
                Answer(question_code=a.question_code, response=a.response, awarded_points=a.awarded_points)
                for a in self.answers
            ],
            awarded_points=self.awarded_points,
            possible_points=self.possible_points,
            percentage=self.percentage,
            grade=self.grade,
            elapsed_seconds=self.elapsed_seconds,
            status=self.status,
        )


class QuestionPatch(BaseModel):
    """Partial question returned by the assist collaborator.

    Only fields present in the response are applied to the draft.
    """

    model_config = ConfigDict(extra="ignore")

    prompt: str | None = None
    key: Optional[AnswerKeyPayload] = None
    difficulty: int | None = None
    topic: str | None = None
    subtopic: str | None = None
    tags: list[str] | None = None
    feedback_correct: str | None = None
    feedback_incorrect: str | None = None
