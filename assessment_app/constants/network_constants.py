"""Network configuration constants for the assessment application."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000

# The assist collaborator is optional; leave unset to disable it.
DEFAULT_ASSIST_URL: str | None = None
ASSIST_TIMEOUT_SECONDS: float = 30.0
