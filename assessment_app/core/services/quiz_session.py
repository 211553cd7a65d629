"""State machine for a single student taking a quiz."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, auto

from assessment_app.constants.quiz_constants import SECONDS_PER_MINUTE, TICK_SECONDS
from assessment_app.core.grade_scale import DEFAULT_SCALE, GradeScale
from assessment_app.core.grading import finalize_attempt
from assessment_app.core.models import Attempt, Question, Quiz
from assessment_app.utils.clock import utc_now


class SessionState(Enum):
    """Lifecycle of an attempt in progress."""

    NOT_STARTED = auto()
    IN_PROGRESS = auto()
    CONFIRMING_SUBMIT = auto()
    FINISHED = auto()


class SessionError(RuntimeError):
    """Raised when an operation is not allowed in the current session state."""


@dataclass(slots=True, frozen=True)
class SessionSnapshot:
    """Point-in-time copy of a session, safe to read outside the manager lock."""

    session_id: str
    quiz_id: str
    student_id: str
    state: SessionState
    remaining_seconds: int
    current_index: int
    question_count: int
    answers: dict[str, str]
    current_question: Question | None = None
    attempt: Attempt | None = None

    @property
    def answered_count(self) -> int:
        return len(self.answers)


class QuizSession:
    """Holds the answers, position and countdown of one quiz attempt.

    The countdown keeps running while the submit confirmation is open. When it
    reaches zero the session finishes as expired, regardless of any pending
    confirmation.
    """

    def __init__(
        self,
        quiz: Quiz,
        questions: Sequence[Question],
        student_id: str,
        scale: GradeScale = DEFAULT_SCALE,
    ) -> None:
        self._quiz = quiz
        self._questions: list[Question] = list(questions)
        self._student_id = student_id
        self._scale = scale

        self._state = SessionState.NOT_STARTED
        self._current_index: int = 0
        self._answers: dict[str, str] = {}
        self._remaining_seconds: int = quiz.time_limit_minutes * SECONDS_PER_MINUTE
        self._started_at: datetime | None = None
        self._last_sync: datetime | None = None
        self._attempt: Attempt | None = None
        self._closed: bool = False

    # --- Read-only state ---

    @property
    def quiz(self) -> Quiz:
        return self._quiz

    @property
    def student_id(self) -> str:
        return self._student_id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def remaining_seconds(self) -> int:
        return self._remaining_seconds

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def attempt(self) -> Attempt | None:
        return self._attempt

    @property
    def is_closed(self) -> bool:
        return self._closed

    def get_answers(self) -> dict[str, str]:
        return dict(self._answers)

    def snapshot(self, session_id: str, attempt: Attempt | None = None) -> SessionSnapshot:
        """Copy the current state. ``attempt`` overrides the locally finalized one."""
        finished = self._state is SessionState.FINISHED
        current = None
        if not finished and self._questions:
            current = self._questions[self._current_index]
        return SessionSnapshot(
            session_id=session_id,
            quiz_id=self._quiz.id,
            student_id=self._student_id,
            state=self._state,
            remaining_seconds=self._remaining_seconds,
            current_index=self._current_index,
            question_count=len(self._questions),
            answers=self.get_answers(),
            current_question=current,
            attempt=attempt or self._attempt,
        )

    # --- Transitions ---

    def start(self, now: datetime | None = None) -> None:
        self._ensure_state(SessionState.NOT_STARTED)
        if not self._questions:
            raise SessionError("Quiz has no questions to answer.")
        moment = now or utc_now()
        self._started_at = moment
        self._last_sync = moment
        self._state = SessionState.IN_PROGRESS

    def go_to(self, index: int) -> Question:
        self._ensure_state(SessionState.IN_PROGRESS)
        if not 0 <= index < len(self._questions):
            raise IndexError(f"Question index {index} out of range")
        self._current_index = index
        return self._questions[index]

    def next_question(self) -> Question:
        return self.go_to(min(self._current_index + 1, len(self._questions) - 1))

    def previous_question(self) -> Question:
        return self.go_to(max(self._current_index - 1, 0))

    def record_answer(self, question_code: str, response: str) -> bool:
        """Store or overwrite a response. Returns True if it's a new answer, False if update."""
        self._ensure_state(SessionState.IN_PROGRESS)
        if not any(question.code == question_code for question in self._questions):
            raise ValueError(f"Question {question_code} is not part of quiz {self._quiz.id}.")
        if not response:
            self._answers.pop(question_code, None)
            return False
        is_new = question_code not in self._answers
        self._answers[question_code] = response
        return is_new

    def request_submit(self) -> None:
        self._ensure_state(SessionState.IN_PROGRESS)
        self._state = SessionState.CONFIRMING_SUBMIT

    def cancel_submit(self) -> None:
        self._ensure_state(SessionState.CONFIRMING_SUBMIT)
        self._state = SessionState.IN_PROGRESS

    def confirm_submit(self, now: datetime | None = None) -> Attempt:
        self._ensure_state(SessionState.CONFIRMING_SUBMIT)
        # Expiry wins when the countdown ran out in the same tick.
        return self._finish(now or utc_now(), expired=self._remaining_seconds <= 0)

    def tick(self, seconds: int = TICK_SECONDS, now: datetime | None = None) -> Attempt | None:
        """Advance the countdown. Returns the expired attempt when time runs out."""
        self._ensure_state(SessionState.IN_PROGRESS, SessionState.CONFIRMING_SUBMIT)
        self._remaining_seconds = max(0, self._remaining_seconds - seconds)
        if self._remaining_seconds == 0:
            return self._finish(now or utc_now(), expired=True)
        return None

    def advance_clock(self, now: datetime) -> Attempt | None:
        """Apply one tick per whole second elapsed since the last synchronization."""
        if self._state not in (SessionState.IN_PROGRESS, SessionState.CONFIRMING_SUBMIT):
            return None
        if self._last_sync is None:
            self._last_sync = now
            return None
        elapsed = int((now - self._last_sync).total_seconds())
        if elapsed <= 0:
            return None
        self._last_sync += timedelta(seconds=elapsed)
        return self.tick(seconds=elapsed, now=now)

    def close(self) -> None:
        """Abandon the session; unfinished answers are discarded."""
        if self._state is not SessionState.FINISHED:
            self._answers.clear()
        self._closed = True

    # --- Internals ---

    def _finish(self, now: datetime, expired: bool) -> Attempt:
        started = self._started_at or now
        finished = now
        if expired:
            # The countdown may be synchronized long after it ran out.
            finished = started + timedelta(seconds=self._quiz.time_limit_minutes * SECONDS_PER_MINUTE)
        self._attempt = finalize_attempt(
            self._quiz,
            self._questions,
            self._answers,
            started,
            finished,
            student_id=self._student_id,
            expired=expired,
            scale=self._scale,
        )
        self._state = SessionState.FINISHED
        return self._attempt

    def _ensure_state(self, *allowed: SessionState) -> None:
        if self._closed:
            raise SessionError("Session has been closed.")
        if self._state not in allowed:
            raise SessionError(f"Operation not allowed while session is {self._state.name.lower()}.")
