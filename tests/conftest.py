"""Shared fixtures: a small question bank, a quiz over it and a wired manager."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging

import pytest

from assessment_app.core.assessment_manager import AssessmentManager
from assessment_app.core.models import (
    Alternative,
    AvailabilityWindow,
    FreeResponseKey,
    MultipleChoiceKey,
    Question,
    Quiz,
    QuizQuestion,
    RubricCriterion,
    Student,
    Subject,
    TrueFalseKey,
)
from assessment_app.core.services import (
    AttemptRepository,
    QuestionRepository,
    QuizRepository,
    StudentRepository,
    SubjectRepository,
)

NOW = datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def quiet_warnings():
    """Expected clamping and consistency errors log loudly; keep output readable."""
    logger = logging.getLogger("assessment_app")
    old = logger.level
    logger.setLevel(logging.CRITICAL)
    try:
        yield
    finally:
        logger.setLevel(old)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def mc_question() -> Question:
    return Question(
        code="MAT-0001",
        prompt="What is $2 + 2$?",
        key=MultipleChoiceKey(
            alternatives=(
                Alternative(id="A", text="4", is_correct=True),
                Alternative(id="B", text="3"),
                Alternative(id="C", text="5"),
            )
        ),
        author="Ana",
        difficulty=2,
        subject="Math",
        feedback_correct="Well done.",
        feedback_incorrect="Count again.",
    )


@pytest.fixture
def tf_question() -> Question:
    return Question(
        code="MAT-0002",
        prompt="Zero is an even number.",
        key=TrueFalseKey(correct_answer=True),
        author="Ana",
        difficulty=4,
        subject="Math",
        feedback_correct="Yes.",
        feedback_incorrect="Zero is divisible by two.",
    )


@pytest.fixture
def fr_question() -> Question:
    return Question(
        code="HIS-0001",
        prompt="Explain the causes of the French Revolution.",
        key=FreeResponseKey(rubric=(RubricCriterion(criterion="Causes", max_points=4),)),
        author="Ben",
        difficulty=5,
        subject="History",
    )


@pytest.fixture
def window(now: datetime) -> AvailabilityWindow:
    return AvailabilityWindow(start=now - timedelta(days=1), end=now + timedelta(days=1))


@pytest.fixture
def quiz(mc_question: Question, tf_question: Question, window: AvailabilityWindow) -> Quiz:
    """Objective-only quiz worth 8 points: MC for 5 and TF for 3."""
    return Quiz(
        id="QUIZ-0001",
        title="Arithmetic basics",
        questions=[
            QuizQuestion(question_code=mc_question.code, points=5),
            QuizQuestion(question_code=tf_question.code, points=3),
        ],
        window=window,
        time_limit_minutes=10,
        assigned_student_ids=["s1", "s2"],
        allowed_attempts=1,
        author="Ana",
        subject="Math",
    )


@pytest.fixture
def essay_quiz(mc_question: Question, fr_question: Question, window: AvailabilityWindow) -> Quiz:
    """Mixed quiz with a free-response item worth 4 points."""
    return Quiz(
        id="QUIZ-0002",
        title="Mixed review",
        questions=[
            QuizQuestion(question_code=mc_question.code, points=2),
            QuizQuestion(question_code=fr_question.code, points=4),
        ],
        window=window,
        time_limit_minutes=20,
        assigned_student_ids=["s1"],
        allowed_attempts=0,
        author="Ben",
        subject="History",
    )


@pytest.fixture
def students() -> list[Student]:
    return [
        Student(id="s1", name="Carla Diaz", course="4A"),
        Student(id="s2", name="Diego Soto", course="4B"),
    ]


@pytest.fixture
def repositories(mc_question, tf_question, fr_question, quiz, essay_quiz, students):
    return {
        "questions": QuestionRepository([mc_question, tf_question, fr_question]),
        "quizzes": QuizRepository([quiz, essay_quiz]),
        "attempts": AttemptRepository(),
        "subjects": SubjectRepository([Subject(id="sub-1", name="Math"), Subject(id="sub-2", name="History")]),
        "students": StudentRepository(students),
    }


@pytest.fixture
def manager(repositories) -> AssessmentManager:
    manager = AssessmentManager(**repositories)
    manager.refresh()
    return manager
