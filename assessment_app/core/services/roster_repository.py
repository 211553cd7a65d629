"""Read-only label collections: subjects and the student roster."""

from __future__ import annotations

from assessment_app.core.models import Student, Subject


class SubjectRepository:
    def __init__(self, subjects: list[Subject] | None = None) -> None:
        self._subjects: list[Subject] = list(subjects or [])

    def get_all(self) -> list[Subject]:
        return list(self._subjects)


class StudentRepository:
    def __init__(self, students: list[Student] | None = None) -> None:
        self._students: list[Student] = list(students or [])

    def get_all(self) -> list[Student]:
        return list(self._students)
