from __future__ import annotations

from typing import Iterable, Optional

from ost_platform.core.errors import HierarchyError, InvalidChildError, NoChildrenAllowedError
from ost_platform.core.model import NODE_TYPES, NodeType


# OST hierarchy: Outcome -> Opportunity -> Solution -> Experiment.
ALLOWED_CHILDREN: dict[str, frozenset[str]] = {
    "outcome": frozenset({"opportunity"}),
    "opportunity": frozenset({"solution"}),
    "solution": frozenset({"experiment"}),
    "experiment": frozenset(),
}


def allowed_child_types(parent_type: str) -> frozenset[str]:
    return ALLOWED_CHILDREN.get(parent_type, frozenset())


def child_type_allowed(parent_type: str, child_type: str) -> bool:
    return child_type in allowed_child_types(parent_type)


def child_type_for(parent_type: str) -> Optional[NodeType]:
    """The type a new child of ``parent_type`` gets by default, or None for leaves."""
    allowed = allowed_child_types(parent_type)
    for t in NODE_TYPES:
        if t in allowed:
            return t  # type: ignore[return-value]
    return None


def root_types() -> list[str]:
    """Types that are never a valid child, i.e. the natural roots of a tree."""
    children = set().union(*ALLOWED_CHILDREN.values())
    return [t for t in NODE_TYPES if t not in children]


def validate_attach(parent_type: str, child_type: str) -> Optional[HierarchyError]:
    """Return None when ``child_type`` may sit under ``parent_type``, else the error."""
    allowed = allowed_child_types(parent_type)
    if child_type in allowed:
        return None

    parent_name = parent_type.capitalize()
    child_name = child_type.capitalize()
    if not allowed:
        return NoChildrenAllowedError(
            code="E_NO_CHILDREN_ALLOWED",
            message=f"{parent_name} nodes cannot have children. {child_name} cannot be added here.",
            path="type",
        )

    expected = ", ".join(t.capitalize() for t in NODE_TYPES if t in allowed)
    return InvalidChildError(
        code="E_INVALID_CHILD",
        message=f"{parent_name} nodes can only have {expected} children, not {child_name}.",
        path="type",
    )


def ensure_attach(parent_type: str, child_type: str) -> None:
    err = validate_attach(parent_type, child_type)
    if err is not None:
        raise err


def validate_retype(
    new_type: str, parent_type: Optional[str], child_types: Iterable[str]
) -> Optional[HierarchyError]:
    """Check a type change in both directions: against the parent and every child."""
    if parent_type is not None:
        err = validate_attach(parent_type, new_type)
        if err is not None:
            return InvalidChildError(
                code="E_INVALID_CHILD",
                message=err.message
                + " Move the node under a suitable parent before changing its type.",
                path="type",
            )

    for child_type in child_types:
        if validate_attach(new_type, child_type) is not None:
            return InvalidChildError(
                code="E_INVALID_CHILD",
                message=(
                    f"Cannot change type to {new_type.capitalize()}: this node has "
                    f"{child_type.capitalize()} children, which are not valid for the new type."
                ),
                path="type",
            )
    return None
