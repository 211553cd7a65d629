"""Collaborator contracts for the persistence layer.

Any object with these methods can back the application; the in-memory
repositories in this package are the default implementations.
"""

from __future__ import annotations

from typing import Protocol

from assessment_app.core.models import Attempt, Question, Quiz, Student, Subject


class QuestionService(Protocol):
    def get_all(self) -> list[Question]: ...

    def create(self, question: Question) -> Question: ...

    def update(self, question: Question) -> None: ...

    def delete(self, code: str) -> None: ...


class QuizService(Protocol):
    def get_all(self) -> list[Quiz]: ...

    def create(self, quiz: Quiz) -> Quiz: ...

    def update(self, quiz: Quiz) -> None: ...

    def delete(self, quiz_id: str) -> None: ...


class AttemptService(Protocol):
    def get_all(self) -> list[Attempt]: ...

    def create(self, attempt: Attempt) -> Attempt: ...

    def update(self, attempt: Attempt) -> None: ...


class SubjectService(Protocol):
    def get_all(self) -> list[Subject]: ...


class StudentService(Protocol):
    def get_all(self) -> list[Student]: ...
