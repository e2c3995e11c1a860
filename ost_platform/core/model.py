from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional


NodeType = Literal["outcome", "opportunity", "solution", "experiment"]
NodeStatus = Literal["draft", "in_progress", "validated", "deprioritized", "completed"]

# Depth order: an outcome sits at the top of the tree, experiments are leaves.
NODE_TYPES: tuple[str, ...] = ("outcome", "opportunity", "solution", "experiment")
NODE_STATUSES: tuple[str, ...] = ("draft", "in_progress", "validated", "deprioritized", "completed")

TITLE_MAX_LEN = 255
DESCRIPTION_MAX_LEN = 500


@dataclass(frozen=True)
class Position:
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class Node:
    id: str
    tree_id: str
    type: NodeType
    title: str
    status: NodeStatus = "draft"
    parent_id: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    position: Position = field(default_factory=Position)
    display_order: int = 0


@dataclass(frozen=True)
class Tree:
    id: str
    title: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class NodeDraft:
    """Creation input for a node. The server assigns the id."""

    type: NodeType
    title: str
    parent_id: Optional[str] = None
    description: Optional[str] = None
    status: NodeStatus = "draft"
    color: Optional[str] = None
    position: Optional[Position] = None
    display_order: int = 0

    @classmethod
    def from_node(cls, node: Node, parent_id: Optional[str]) -> NodeDraft:
        return cls(
            type=node.type,
            title=node.title,
            parent_id=parent_id,
            description=node.description,
            status=node.status,
            color=node.color,
            position=node.position,
            display_order=node.display_order,
        )


PATCHABLE_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "type",
    "status",
    "color",
    "position",
    "display_order",
)


@dataclass(frozen=True)
class NodePatch:
    """Partial node update.

    A key missing from ``fields`` leaves the stored value untouched; ``None`` clears
    an optional field (description, color).
    """

    fields: dict[str, Any]

    def __post_init__(self) -> None:
        unknown = sorted(k for k in self.fields if k not in PATCHABLE_FIELDS)
        if unknown:
            raise ValueError(f"unknown patch fields: {', '.join(unknown)}")

    @classmethod
    def of(cls, **fields: Any) -> NodePatch:
        return cls(fields=dict(fields))

    @classmethod
    def capture(cls, node: Node, keys: Any) -> NodePatch:
        """Snapshot the current values of ``keys`` on ``node``, for reverting a patch."""
        return cls(fields={k: getattr(node, k) for k in keys})

    def __contains__(self, key: str) -> bool:
        return key in self.fields

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    def keys(self) -> list[str]:
        return list(self.fields.keys())
