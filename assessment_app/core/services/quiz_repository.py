"""In-memory storage for quizzes."""

from __future__ import annotations

from dataclasses import replace

from assessment_app.constants.quiz_constants import QUIZ_ID_PREFIX
from assessment_app.core.models import Quiz


class QuizRepository:
    """Manages the lifecycle and storage of quizzes."""

    def __init__(self, quizzes: list[Quiz] | None = None) -> None:
        self._quizzes: dict[str, Quiz] = {quiz.id: quiz for quiz in quizzes or []}
        self._quiz_counter: int = 0

    def get_all(self) -> list[Quiz]:
        """Return a copy of all stored quizzes."""
        return list(self._quizzes.values())

    def create(self, quiz: Quiz) -> Quiz:
        created = replace(quiz, id=self._next_quiz_id())
        self._quizzes[created.id] = created
        return created

    def update(self, quiz: Quiz) -> None:
        if quiz.id not in self._quizzes:
            raise KeyError(f"Quiz {quiz.id} not found")
        self._quizzes[quiz.id] = quiz

    def delete(self, quiz_id: str) -> None:
        if quiz_id not in self._quizzes:
            raise KeyError(f"Quiz {quiz_id} not found")
        del self._quizzes[quiz_id]

    def _next_quiz_id(self) -> str:
        while True:
            self._quiz_counter += 1
            quiz_id = f"{QUIZ_ID_PREFIX}-{self._quiz_counter:04d}"
            if quiz_id not in self._quizzes:
                return quiz_id
