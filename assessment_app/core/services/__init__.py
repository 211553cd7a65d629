"""In-memory collaborators and the per-attempt session controller."""

from .attempt_repository import AttemptRepository
from .question_repository import QuestionRepository
from .quiz_repository import QuizRepository
from .quiz_session import QuizSession, SessionError, SessionSnapshot, SessionState
from .roster_repository import StudentRepository, SubjectRepository

__all__ = [
    "AttemptRepository",
    "QuestionRepository",
    "QuizRepository",
    "QuizSession",
    "SessionError",
    "SessionSnapshot",
    "SessionState",
    "StudentRepository",
    "SubjectRepository",
]
