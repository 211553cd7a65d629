"""Application entry point for the assessment server."""

from __future__ import annotations

from assessment_app.constants.network_constants import DEFAULT_ASSIST_URL, DEFAULT_HOST, DEFAULT_PORT
from assessment_app.core.assessment_manager import AssessmentManager
from assessment_app.core.question_assistant import QuestionAssistant
from assessment_app.core.services import (
    AttemptRepository,
    QuestionRepository,
    QuizRepository,
    StudentRepository,
    SubjectRepository,
)
from assessment_app.server.api_server import start_api_server
from assessment_app.utils.logging_config import configure_logging


def build_manager(assist_url: str | None = DEFAULT_ASSIST_URL) -> AssessmentManager:
    """Wire the manager to in-memory collaborators."""
    assistant = QuestionAssistant(assist_url) if assist_url else None
    manager = AssessmentManager(
        questions=QuestionRepository(),
        quizzes=QuizRepository(),
        attempts=AttemptRepository(),
        subjects=SubjectRepository(),
        students=StudentRepository(),
        assistant=assistant,
    )
    manager.refresh()
    return manager


def main() -> None:
    """Initialize logging and serve the API until interrupted."""
    logger = configure_logging()
    logger.info("Starting assessment server...")

    manager = build_manager()
    if DEFAULT_ASSIST_URL is None:
        logger.info("Question assistant disabled; set DEFAULT_ASSIST_URL to enable it")
    server_thread = start_api_server(manager=manager, host=DEFAULT_HOST, port=DEFAULT_PORT)
    server_thread.join()


if __name__ == "__main__":
    main()
