"""Quiz-related defaults shared by the lifecycle controller and the facade."""

DEFAULT_TIME_LIMIT_MINUTES: int = 30
DEFAULT_ALLOWED_ATTEMPTS: int = 1
DEFAULT_WINDOW_DAYS: int = 7
DEFAULT_QUIZ_AUTHOR: str = "Teaching Team"

SECONDS_PER_MINUTE: int = 60
TICK_SECONDS: int = 1

QUESTION_CODE_PREFIX_LENGTH: int = 3
FALLBACK_CODE_PREFIX: str = "GEN"
QUIZ_ID_PREFIX: str = "QUIZ"

# Finished sessions kept readable after their attempt is saved.
FINISHED_SESSION_RETENTION: int = 256
