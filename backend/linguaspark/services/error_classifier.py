"""Classification of lesson failures into user-facing messages."""

import uuid
from dataclasses import dataclass, field
from enum import Enum

from linguaspark.services.llm import FailureKind, GenerationServiceFailure
from linguaspark.services.regeneration import ExhaustedRegeneration
from linguaspark.services.response_parsing import ValidationFailure


class ErrorType(str, Enum):
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    CONTENT_ISSUE = "CONTENT_ISSUE"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN = "UNKNOWN"


@dataclass
class UserErrorMessage:
    title: str
    message: str
    actionable_steps: list[str] = field(default_factory=list)
    error_id: str = ""


_FAILURE_KIND_TYPES = {
    FailureKind.QUOTA: ErrorType.QUOTA_EXCEEDED,
    FailureKind.NETWORK: ErrorType.NETWORK_ERROR,
    FailureKind.MAX_TOKENS_NO_CONTENT: ErrorType.CONTENT_ISSUE,
    FailureKind.MALFORMED_RESPONSE: ErrorType.UNKNOWN,
}

_MESSAGES = {
    ErrorType.QUOTA_EXCEEDED: (
        "API Quota Exceeded",
        "The AI service quota is exhausted. Please try again later.",
        [
            "Wait a few minutes before trying again",
            "Try generating a lesson from a shorter text",
        ],
    ),
    ErrorType.CONTENT_ISSUE: (
        "Content Processing Error",
        "This content could not be turned into a complete lesson. Please try different text.",
        [
            "Make sure the text has at least a few paragraphs",
            "Try selecting a different part of the page",
            "Check that the text is in English",
        ],
    ),
    ErrorType.NETWORK_ERROR: (
        "Connection Error",
        "The AI service could not be reached. Please try again.",
        [
            "Wait a moment and try again",
            "Check that the server can reach the AI provider",
        ],
    ),
    ErrorType.UNKNOWN: (
        "Service Temporarily Unavailable",
        "The AI service returned an unexpected response. Please try again later.",
        [
            "Wait a few minutes and try again",
            "Report the error ID if the problem continues",
        ],
    ),
}


def classify(error: BaseException) -> ErrorType:
    if isinstance(error, GenerationServiceFailure):
        return _FAILURE_KIND_TYPES[error.kind]
    if isinstance(error, (ExhaustedRegeneration, ValidationFailure, ValueError)):
        return ErrorType.CONTENT_ISSUE
    return ErrorType.UNKNOWN


def new_error_id() -> str:
    return uuid.uuid4().hex[:12]


def user_message(error_type: ErrorType, error_id: str | None = None) -> UserErrorMessage:
    title, message, steps = _MESSAGES[error_type]
    return UserErrorMessage(
        title=title,
        message=message,
        actionable_steps=list(steps),
        error_id=error_id or new_error_id(),
    )
