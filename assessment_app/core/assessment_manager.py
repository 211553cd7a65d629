"""Business logic shared between the API and the persistence collaborators."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime, timedelta
import logging
from threading import Lock
from typing import TypeVar
from uuid import uuid4

from assessment_app.constants.grading_constants import MAX_POINT_VALUE, MIN_POINT_VALUE
from assessment_app.constants.quiz_constants import (
    DEFAULT_ALLOWED_ATTEMPTS,
    DEFAULT_QUIZ_AUTHOR,
    DEFAULT_TIME_LIMIT_MINUTES,
    DEFAULT_WINDOW_DAYS,
    FINISHED_SESSION_RETENTION,
)
from assessment_app.core.eligibility import (
    Eligibility,
    EligibilityReason,
    check_eligibility,
    count_prior_attempts,
)
from assessment_app.core.grade_scale import DEFAULT_SCALE, GradeScale
from assessment_app.core.grading import GradingConsistencyError, apply_manual_grading
from assessment_app.core.models import (
    Attempt,
    AvailabilityWindow,
    Question,
    Quiz,
    QuizQuestion,
    Student,
    Subject,
)
from assessment_app.core.question_assistant import (
    AssistError,
    AssistOutcome,
    FeedbackProposal,
    QuestionAssistant,
    accept_feedback,
    apply_patch,
)
from assessment_app.core.services.contracts import (
    AttemptService,
    QuestionService,
    QuizService,
    StudentService,
    SubjectService,
)
from assessment_app.core.services.quiz_session import QuizSession, SessionError, SessionSnapshot, SessionState
from assessment_app.core.services import statistics
from assessment_app.core.validation import (
    ValidationError,
    ensure_question_editable,
    ensure_quiz_editable,
    validate_question,
    validate_quiz,
    validate_schedule,
)
from assessment_app.utils.clock import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ServiceError(RuntimeError):
    """A collaborator call failed; local state was left unchanged."""


class EligibilityError(RuntimeError):
    """The student may not start the requested quiz."""

    def __init__(self, eligibility: Eligibility) -> None:
        super().__init__(eligibility.describe())
        self.eligibility = eligibility


class AssessmentManager:
    """Facade over the collaborators, the lifecycle controller and statistics.

    Collections are re-fetched after every mutation, and statistics always
    read a fresh attempt set from the attempt service.
    """

    def __init__(
        self,
        questions: QuestionService,
        quizzes: QuizService,
        attempts: AttemptService,
        subjects: SubjectService,
        students: StudentService,
        assistant: QuestionAssistant | None = None,
        scale: GradeScale = DEFAULT_SCALE,
    ) -> None:
        self._lock = Lock()

        # Collaborators
        self._question_service = questions
        self._quiz_service = quizzes
        self._attempt_service = attempts
        self._subject_service = subjects
        self._student_service = students
        self._assistant = assistant
        self._scale = scale

        # Last loaded state
        self._questions: list[Question] = []
        self._quizzes: list[Quiz] = []
        self._attempts: list[Attempt] = []
        self._subjects: list[Subject] = []
        self._students: list[Student] = []

        # Open sessions, and finished ones whose attempt has been handed over
        self._sessions: dict[str, QuizSession] = {}
        self._finished: OrderedDict[str, SessionSnapshot] = OrderedDict()

    @property
    def scale(self) -> GradeScale:
        return self._scale

    # --- Loading ---

    def refresh(self) -> None:
        with self._lock:
            self._reload_all()

    def _reload_all(self) -> None:
        questions = self._call("load questions", self._question_service.get_all)
        quizzes = self._call("load quizzes", self._quiz_service.get_all)
        attempts = self._call("load attempts", self._attempt_service.get_all)
        subjects = self._call("load subjects", self._subject_service.get_all)
        students = self._call("load students", self._student_service.get_all)
        self._questions, self._quizzes, self._attempts = questions, quizzes, attempts
        self._subjects, self._students = subjects, students

    def _call(self, action: str, operation: Callable[..., T], *args: object) -> T:
        try:
            return operation(*args)
        except Exception as exc:
            logger.exception("Failed to %s", action)
            raise ServiceError(f"Could not {action}. Please try again.") from exc

    def get_questions(self) -> list[Question]:
        with self._lock:
            return list(self._questions)

    def get_quizzes(self) -> list[Quiz]:
        with self._lock:
            return list(self._quizzes)

    def get_attempts(self) -> list[Attempt]:
        with self._lock:
            return list(self._attempts)

    def get_subjects(self) -> list[Subject]:
        with self._lock:
            return list(self._subjects)

    def get_students(self) -> list[Student]:
        with self._lock:
            return list(self._students)

    def get_question(self, code: str) -> Question:
        with self._lock:
            return self._find_question(code)

    def get_quiz(self, quiz_id: str) -> Quiz:
        with self._lock:
            return self._find_quiz(quiz_id)

    def get_attempt(self, attempt_id: str) -> Attempt:
        with self._lock:
            return self._find_attempt(attempt_id)

    def _find_question(self, code: str) -> Question:
        question = next((q for q in self._questions if q.code == code), None)
        if question is None:
            raise KeyError(f"Question {code} not found")
        return question

    def _find_quiz(self, quiz_id: str) -> Quiz:
        quiz = next((q for q in self._quizzes if q.id == quiz_id), None)
        if quiz is None:
            raise KeyError(f"Quiz {quiz_id} not found")
        return quiz

    def _find_attempt(self, attempt_id: str) -> Attempt:
        attempt = next((a for a in self._attempts if a.id == attempt_id), None)
        if attempt is None:
            raise KeyError(f"Attempt {attempt_id} not found")
        return attempt

    # --- Question bank ---

    def create_question(self, question: Question) -> Question:
        validate_question(question)
        with self._lock:
            created = self._call("create the question", self._question_service.create, question)
            self._questions = self._call("load questions", self._question_service.get_all)
            return created

    def update_question(self, question: Question) -> None:
        validate_question(question)
        with self._lock:
            current = self._find_question(question.code)
            ensure_question_editable(current, question, self._attempts)
            self._call("update the question", self._question_service.update, question)
            self._questions = self._call("load questions", self._question_service.get_all)

    def delete_question(self, code: str) -> None:
        with self._lock:
            self._find_question(code)
            if any(code in quiz.question_codes() for quiz in self._quizzes):
                raise ValidationError(f"Question {code} is used by a quiz and cannot be deleted.")
            self._call("delete the question", self._question_service.delete, code)
            self._questions = self._call("load questions", self._question_service.get_all)

    def assist_question(self, draft: Question) -> AssistOutcome:
        if self._assistant is None:
            raise AssistError("The question assistant is not configured.")
        if not draft.prompt.strip():
            raise ValidationError("Write the question prompt before asking the assistant for help.")
        patch = self._assistant.suggest(draft)
        return apply_patch(draft, patch)

    def accept_assist_feedback(self, draft: Question, proposal: FeedbackProposal) -> Question:
        """Apply feedback proposed by the assistant once the author accepts it."""
        return accept_feedback(draft, proposal)

    # --- Quizzes ---

    def create_quiz(self, quiz: Quiz) -> Quiz:
        with self._lock:
            validate_quiz(quiz, {q.code for q in self._questions})
            created = self._call("create the quiz", self._quiz_service.create, quiz)
            counted: list[Question] = []
            try:
                for code in created.question_codes():
                    question = self._find_question(code)
                    self._call(
                        "update the question usage count",
                        self._question_service.update,
                        replace(question, usage_count=question.usage_count + 1),
                    )
                    counted.append(question)
            except ServiceError:
                self._undo_quiz_creation(created, counted)
                raise
            self._reload_all()
            return created

    def _undo_quiz_creation(self, created: Quiz, counted: list[Question]) -> None:
        for question in counted:
            try:
                self._call("restore the question usage count", self._question_service.update, question)
            except ServiceError:
                logger.error("Usage count of %s could not be restored", question.code)
        try:
            self._call("remove the partially created quiz", self._quiz_service.delete, created.id)
        except ServiceError:
            logger.error("Quiz %s could not be removed after a failed creation", created.id)

    def update_quiz(self, quiz: Quiz) -> None:
        with self._lock:
            current = self._find_quiz(quiz.id)
            validate_quiz(quiz, {q.code for q in self._questions})
            ensure_quiz_editable(current, quiz, self._attempts)
            self._call("update the quiz", self._quiz_service.update, quiz)
            self._quizzes = self._call("load quizzes", self._quiz_service.get_all)

    def assign_quiz(
        self,
        quiz_id: str,
        student_ids: list[str],
        window: AvailabilityWindow,
        allowed_attempts: int,
    ) -> Quiz:
        with self._lock:
            current = self._find_quiz(quiz_id)
            updated = replace(
                current,
                assigned_student_ids=list(dict.fromkeys(student_ids)),
                window=window,
                allowed_attempts=allowed_attempts,
            )
            validate_schedule(updated)
            self._call("update the quiz assignment", self._quiz_service.update, updated)
            self._quizzes = self._call("load quizzes", self._quiz_service.get_all)
            return updated

    def delete_quiz(self, quiz_id: str) -> None:
        with self._lock:
            self._find_quiz(quiz_id)
            self._call("delete the quiz", self._quiz_service.delete, quiz_id)
            self._quizzes = self._call("load quizzes", self._quiz_service.get_all)

    def draft_quiz_from_questions(self, codes: list[str], now: datetime | None = None) -> Quiz:
        """Build an unsaved quiz from bank questions, pointing each by difficulty."""
        start = now or utc_now()
        with self._lock:
            entries = []
            subject = ""
            for code in dict.fromkeys(codes):
                question = self._find_question(code)
                subject = subject or question.subject
                points = max(MIN_POINT_VALUE, min(MAX_POINT_VALUE, question.difficulty))
                entries.append(QuizQuestion(question_code=code, points=points))
        return Quiz(
            id="",
            title="",
            questions=entries,
            window=AvailabilityWindow(start=start, end=start + timedelta(days=DEFAULT_WINDOW_DAYS)),
            time_limit_minutes=DEFAULT_TIME_LIMIT_MINUTES,
            allowed_attempts=DEFAULT_ALLOWED_ATTEMPTS,
            author=DEFAULT_QUIZ_AUTHOR,
            subject=subject,
        )

    # --- Students ---

    def eligibility(self, quiz_id: str, student_id: str | None, now: datetime | None = None) -> Eligibility:
        with self._lock:
            quiz = self._find_quiz(quiz_id)
            open_sessions = self._open_session_count(quiz.id, student_id)
            return check_eligibility(quiz, student_id, self._attempts, now or utc_now(), open_sessions)

    def available_quizzes(self, student_id: str, now: datetime | None = None) -> list[Quiz]:
        moment = now or utc_now()
        with self._lock:
            return [
                quiz
                for quiz in self._quizzes
                if check_eligibility(
                    quiz, student_id, self._attempts, moment, self._open_session_count(quiz.id, student_id)
                ).eligible
            ]

    def student_history(self, student_id: str) -> list[Attempt]:
        with self._lock:
            history = [a for a in self._attempts if a.student_id == student_id]
        return sorted(history, key=lambda attempt: attempt.finished_at, reverse=True)

    # --- Quiz sessions ---

    def start_session(
        self,
        quiz_id: str,
        student_id: str | None,
        now: datetime | None = None,
    ) -> SessionSnapshot:
        """Check eligibility and start a new session. ``None`` is a preview student.

        Sessions already under way count against the attempt limit, so a
        student cannot hold two sessions beyond what the quiz allows.
        """
        moment = now or utc_now()
        with self._lock:
            self._sync_open_sessions(moment)
            quiz = self._find_quiz(quiz_id)
            result = check_eligibility(
                quiz, student_id, self._attempts, moment, self._open_session_count(quiz.id, student_id)
            )
            if not result.eligible:
                raise EligibilityError(result)
            by_code = {q.code: q for q in self._questions}
            missing = [code for code in quiz.question_codes() if code not in by_code]
            if missing:
                message = f"Quiz {quiz.id} references unknown questions: {', '.join(missing)}"
                logger.error(message)
                raise GradingConsistencyError(message)
            questions = [by_code[code] for code in quiz.question_codes()]
            session = QuizSession(quiz, questions, student_id or "", scale=self._scale)
            session.start(moment)
            session_id = uuid4().hex
            self._sessions[session_id] = session
            logger.info("Started session %s for quiz %s", session_id, quiz.id)
            return session.snapshot(session_id)

    def get_session(self, session_id: str, now: datetime | None = None) -> SessionSnapshot:
        return self._run_session(session_id, now)

    def record_answer(
        self,
        session_id: str,
        question_code: str,
        response: str,
        now: datetime | None = None,
    ) -> SessionSnapshot:
        return self._run_session(session_id, now, lambda s, _: s.record_answer(question_code, response))

    def navigate(
        self,
        session_id: str,
        index: int | None = None,
        direction: str | None = None,
        now: datetime | None = None,
    ) -> SessionSnapshot:
        """Jump to ``index``, or step ``"next"`` / ``"previous"``."""

        def move(session: QuizSession, _: datetime) -> None:
            if index is not None:
                session.go_to(index)
            elif direction == "next":
                session.next_question()
            elif direction == "previous":
                session.previous_question()
            else:
                raise ValueError("Provide either an index or a direction.")

        return self._run_session(session_id, now, move)

    def request_submit(self, session_id: str, now: datetime | None = None) -> SessionSnapshot:
        return self._run_session(session_id, now, lambda s, _: s.request_submit())

    def cancel_submit(self, session_id: str, now: datetime | None = None) -> SessionSnapshot:
        return self._run_session(session_id, now, lambda s, _: s.cancel_submit())

    def confirm_submit(self, session_id: str, now: datetime | None = None) -> SessionSnapshot:
        return self._run_session(session_id, now, lambda s, moment: s.confirm_submit(moment))

    def abandon_session(self, session_id: str) -> None:
        """Close a session and forget it. Unfinished answers are discarded."""
        with self._lock:
            if self._finished.pop(session_id, None) is not None:
                return
            session = self._sessions.get(session_id)
            if session is None:
                raise KeyError(f"Session {session_id} not found")
            if session.state is SessionState.FINISHED:
                raise SessionError("The attempt of this session has not been saved yet.")
            del self._sessions[session_id]
            session.close()

    def _run_session(
        self,
        session_id: str,
        now: datetime | None,
        operation: Callable[[QuizSession, datetime], object] | None = None,
    ) -> SessionSnapshot:
        """Synchronize the countdown, apply ``operation`` and save a finished attempt.

        An attempt that expired while nobody was looking is saved before the
        operation is rejected.
        """
        moment = now or utc_now()
        with self._lock:
            finished = self._finished.get(session_id)
            if finished is not None:
                if operation is not None:
                    raise SessionError("Session has already finished.")
                return finished
            session = self._sessions.get(session_id)
            if session is None:
                raise KeyError(f"Session {session_id} not found")
            session.advance_clock(moment)
            saved = self._persist(session_id, session)
            if operation is not None:
                operation(session, moment)
                saved = self._persist(session_id, session)
            return session.snapshot(session_id, saved)

    def _sync_open_sessions(self, now: datetime) -> None:
        for session_id, session in list(self._sessions.items()):
            session.advance_clock(now)
            try:
                self._persist(session_id, session)
            except (EligibilityError, ServiceError) as exc:
                # Reported to that session's owner on their next call.
                logger.warning("Session %s could not be saved during sweep: %s", session_id, exc)

    def _open_session_count(self, quiz_id: str, student_id: str | None) -> int:
        if not student_id:
            return 0
        return sum(
            1 for s in self._sessions.values() if s.quiz.id == quiz_id and s.student_id == student_id
        )

    def _persist(self, session_id: str, session: QuizSession) -> Attempt | None:
        """Hand a finished session's attempt to the attempt service once.

        Preview sessions are never saved. If the service fails the session
        stays open and the next call retries.
        """
        attempt = session.attempt
        if session.state is not SessionState.FINISHED or attempt is None:
            return None
        if not session.student_id:
            self._retire(session_id, session.snapshot(session_id))
            return attempt

        self._attempts = self._call("load attempts", self._attempt_service.get_all)
        limit = session.quiz.allowed_attempts
        used = count_prior_attempts(session.quiz.id, session.student_id, self._attempts)
        if limit and used >= limit:
            logger.warning(
                "Discarding attempt of %s on quiz %s: %s of %s attempts already saved",
                session.student_id,
                session.quiz.id,
                used,
                limit,
            )
            self._retire(session_id, replace(session.snapshot(session_id), attempt=None))
            raise EligibilityError(
                Eligibility(EligibilityReason.ATTEMPTS_EXHAUSTED, attempts_used=used, attempts_remaining=0)
            )

        created = self._call("save the attempt", self._attempt_service.create, attempt)
        self._attempts = self._call("load attempts", self._attempt_service.get_all)
        self._retire(session_id, session.snapshot(session_id, created))
        logger.info("Saved attempt %s (%s)", created.id, created.status.value)
        return created

    def _retire(self, session_id: str, snapshot: SessionSnapshot) -> None:
        self._sessions.pop(session_id, None)
        self._finished[session_id] = snapshot
        while len(self._finished) > FINISHED_SESSION_RETENTION:
            self._finished.popitem(last=False)

    # --- Manual grading ---

    def pending_reviews(self) -> list[Attempt]:
        with self._lock:
            return statistics.pending_attempts(self._attempts)

    def grade_attempt(self, attempt_id: str, scores: Mapping[str, float]) -> Attempt:
        with self._lock:
            attempt = self._find_attempt(attempt_id)
            if not attempt.is_pending:
                raise RuntimeError(f"Attempt {attempt_id} has already been graded.")
            quiz = self._find_quiz(attempt.quiz_id)
            graded = apply_manual_grading(attempt, self._questions, quiz.questions, scores, scale=self._scale)
            self._call("save the grading", self._attempt_service.update, graded)
            self._attempts = self._call("load attempts", self._attempt_service.get_all)
            return graded

    # --- Statistics ---

    def _fresh_attempts(self) -> list[Attempt]:
        self._attempts = self._call("load attempts", self._attempt_service.get_all)
        return self._attempts

    def student_statistics(self, text: str = "") -> list[statistics.StudentStats]:
        with self._lock:
            rows = statistics.compute_student_stats(self._students, self._fresh_attempts())
        return statistics.filter_student_stats(rows, text)

    def question_statistics(
        self,
        text: str = "",
        subject: str | None = None,
        author: str | None = None,
        hardest_first: bool = False,
    ) -> list[statistics.QuestionStats]:
        with self._lock:
            rows = statistics.compute_question_stats(self._questions, self._fresh_attempts())
        return statistics.filter_question_stats(rows, text, subject, author, hardest_first)

    def quiz_statistics(
        self,
        text: str = "",
        subject: str | None = None,
        author: str | None = None,
    ) -> list[statistics.QuizStats]:
        with self._lock:
            rows = statistics.compute_quiz_stats(self._quizzes, self._fresh_attempts())
        return statistics.filter_quiz_stats(rows, text, subject, author)

    def summary(self, now: datetime | None = None) -> statistics.SummaryStats:
        with self._lock:
            return statistics.compute_summary(
                self._quizzes, self._questions, self._fresh_attempts(), now or utc_now()
            )
