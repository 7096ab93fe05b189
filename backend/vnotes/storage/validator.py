import logging
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from vnotes.config import NoteLimits
from vnotes.errors import ValidationError
from vnotes.models.notes import Note

logger = logging.getLogger(__name__)


def parse_note(candidate: Any, limits: Optional[NoteLimits] = None) -> Optional[Note]:
    """Return a Note for a well-formed record, None for anything else."""
    if not isinstance(candidate, dict):
        return None
    try:
        return Note.model_validate(candidate, context={"limits": limits or NoteLimits()})
    except PydanticValidationError as exc:
        logger.debug("Rejected note record %r: %s", candidate.get("id"), exc.errors()[0]["msg"])
        return None


def validate_note(candidate: Any, limits: Optional[NoteLimits] = None) -> bool:
    return parse_note(candidate, limits) is not None


def check_input(title: Any, content: Any, limits: NoteLimits) -> None:
    """Raise ValidationError with a user-facing message for bad form input."""
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title is required", field="title")
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Content is required", field="content")
    if len(title) > limits.max_title_length:
        raise ValidationError(
            f"Title must be {limits.max_title_length} characters or less", field="title"
        )
    if len(content) > limits.max_content_length:
        raise ValidationError(
            f"Content must be {limits.max_content_length} characters or less", field="content"
        )
