"""In-memory storage for the question bank."""

from __future__ import annotations

from dataclasses import replace

from assessment_app.constants.quiz_constants import FALLBACK_CODE_PREFIX, QUESTION_CODE_PREFIX_LENGTH
from assessment_app.core.models import Question
from assessment_app.utils.clock import utc_now


class QuestionRepository:
    """Keeps questions keyed by code and assigns codes on creation."""

    def __init__(self, questions: list[Question] | None = None) -> None:
        self._questions: dict[str, Question] = {}
        self._code_counter: int = 0
        for question in questions or []:
            self._questions[question.code] = question

    def get_all(self) -> list[Question]:
        """Return a copy of all stored questions."""
        return list(self._questions.values())

    def create(self, question: Question) -> Question:
        created = replace(
            question,
            code=self._next_code(question.subject),
            created_on=question.created_on or utc_now().date(),
        )
        self._questions[created.code] = created
        return created

    def update(self, question: Question) -> None:
        if question.code not in self._questions:
            raise KeyError(f"Question {question.code} not found")
        self._questions[question.code] = question

    def delete(self, code: str) -> None:
        if code not in self._questions:
            raise KeyError(f"Question {code} not found")
        del self._questions[code]

    def _next_code(self, subject: str) -> str:
        prefix = subject.strip()[:QUESTION_CODE_PREFIX_LENGTH].upper() or FALLBACK_CODE_PREFIX
        while True:
            self._code_counter += 1
            code = f"{prefix}-{self._code_counter:04d}"
            if code not in self._questions:
                return code
