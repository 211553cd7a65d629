"""Client for the external service that helps authors draft questions.

The service is opaque: it receives the current draft and answers with a
partial question. Any failure is reported as ``AssistError`` and the draft
is never modified.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging

import httpx
from pydantic import ValidationError as PayloadError

from assessment_app.constants.network_constants import ASSIST_TIMEOUT_SECONDS
from assessment_app.core.models import Question
from assessment_app.core.schemas import QuestionPatch, QuestionPayload, key_to_domain

logger = logging.getLogger(__name__)


class AssistError(RuntimeError):
    """Raised when the assist service cannot produce a usable suggestion."""


@dataclass(slots=True, frozen=True)
class FeedbackProposal:
    """Feedback suggested by the assistant, applied only once the author accepts it."""

    correct: str
    incorrect: str


@dataclass(slots=True, frozen=True)
class AssistOutcome:
    question: Question
    feedback: FeedbackProposal | None = None


class QuestionAssistant:
    """Posts question drafts to the assist endpoint and parses the reply."""

    def __init__(
        self,
        base_url: str,
        timeout: float = ASSIST_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def suggest(self, draft: Question) -> QuestionPatch:
        body = QuestionPayload.from_domain(draft).model_dump(mode="json")
        try:
            response = self._client.post("/assist", json=body)
            response.raise_for_status()
            return QuestionPatch.model_validate(response.json())
        except httpx.HTTPError as exc:
            logger.exception("Assist request for draft %r failed", draft.code or draft.prompt[:40])
            raise AssistError("The assistant could not be reached. Try again later.") from exc
        except (PayloadError, ValueError) as exc:
            logger.exception("Assist service returned an unusable payload")
            raise AssistError("The assistant returned an unexpected response.") from exc

    def close(self) -> None:
        self._client.close()


def apply_patch(draft: Question, patch: QuestionPatch) -> AssistOutcome:
    """Merge a suggestion into a draft; feedback is returned separately for review."""
    changes: dict[str, object] = {}
    if patch.prompt:
        changes["prompt"] = patch.prompt.strip()
    if patch.key is not None:
        changes["key"] = key_to_domain(patch.key)
    if patch.difficulty is not None:
        changes["difficulty"] = patch.difficulty
    if patch.topic:
        changes["topic"] = patch.topic
    if patch.subtopic:
        changes["subtopic"] = patch.subtopic
    if patch.tags:
        changes["tags"] = [tag.strip() for tag in patch.tags if tag.strip()]

    feedback = None
    if patch.feedback_correct or patch.feedback_incorrect:
        feedback = FeedbackProposal(
            correct=patch.feedback_correct or "",
            incorrect=patch.feedback_incorrect or "",
        )
    return AssistOutcome(question=replace(draft, **changes), feedback=feedback)


def accept_feedback(question: Question, proposal: FeedbackProposal) -> Question:
    """Apply proposed feedback, keeping the current text where nothing was proposed."""
    return replace(
        question,
        feedback_correct=proposal.correct or question.feedback_correct,
        feedback_incorrect=proposal.incorrect or question.feedback_incorrect,
    )
