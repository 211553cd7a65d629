"""In-memory storage for finalized attempts."""

from __future__ import annotations

from dataclasses import replace
from uuid import uuid4

from assessment_app.core.models import Attempt


class AttemptRepository:
    """Append-mostly store of attempts; only grading updates an attempt."""

    def __init__(self, attempts: list[Attempt] | None = None) -> None:
        self._attempts: dict[str, Attempt] = {attempt.id: attempt for attempt in attempts or []}

    def get_all(self) -> list[Attempt]:
        return list(self._attempts.values())

    def create(self, attempt: Attempt) -> Attempt:
        created = attempt
        if not created.id or created.id in self._attempts:
            created = replace(attempt, id=uuid4().hex)
        self._attempts[created.id] = created
        return created

    def update(self, attempt: Attempt) -> None:
        if attempt.id not in self._attempts:
            raise KeyError(f"Attempt {attempt.id} not found")
        self._attempts[attempt.id] = attempt
