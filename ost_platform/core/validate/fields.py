from __future__ import annotations

from typing import Any, Optional

from ost_platform.core.errors import ValidationError
from ost_platform.core.model import (
    DESCRIPTION_MAX_LEN,
    NODE_STATUSES,
    NODE_TYPES,
    TITLE_MAX_LEN,
    NodeDraft,
    NodePatch,
    Position,
)


def check_title(title: Any) -> str:
    """Return the trimmed title or raise ValidationError."""
    if not isinstance(title, str) or not title.strip():
        raise ValidationError(code="E_EMPTY_TITLE", message="title is required", path="title")
    trimmed = title.strip()
    if len(trimmed) > TITLE_MAX_LEN:
        raise ValidationError(
            code="E_TITLE_TOO_LONG",
            message=f"title must be {TITLE_MAX_LEN} characters or less",
            path="title",
        )
    return trimmed


def check_description(description: Any) -> Optional[str]:
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError(
            code="E_INVALID_TYPE", message="description must be a string", path="description"
        )
    if len(description) > DESCRIPTION_MAX_LEN:
        raise ValidationError(
            code="E_DESCRIPTION_TOO_LONG",
            message=f"description must be {DESCRIPTION_MAX_LEN} characters or less",
            path="description",
        )
    return description


def check_type(node_type: Any) -> str:
    if node_type not in NODE_TYPES:
        raise ValidationError(
            code="E_INVALID_ENUM",
            message=f"type must be one of {list(NODE_TYPES)}",
            path="type",
        )
    return node_type


def check_status(status: Any) -> str:
    if status not in NODE_STATUSES:
        raise ValidationError(
            code="E_INVALID_ENUM",
            message=f"status must be one of {list(NODE_STATUSES)}",
            path="status",
        )
    return status


def validate_draft(draft: NodeDraft) -> None:
    check_type(draft.type)
    check_title(draft.title)
    check_description(draft.description)
    check_status(draft.status)


def validate_patch(patch: NodePatch) -> None:
    if not patch.fields:
        raise ValidationError(code="E_EMPTY_PATCH", message="no updates provided", path="patch")
    if "title" in patch:
        check_title(patch.get("title"))
    if "description" in patch:
        check_description(patch.get("description"))
    if "type" in patch:
        check_type(patch.get("type"))
    if "status" in patch:
        check_status(patch.get("status"))
    if "position" in patch and not isinstance(patch.get("position"), Position):
        raise ValidationError(
            code="E_INVALID_TYPE", message="position must be a Position", path="position"
        )
    if "display_order" in patch and not isinstance(patch.get("display_order"), int):
        raise ValidationError(
            code="E_INVALID_TYPE", message="display_order must be an integer", path="display_order"
        )
