from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol

from ost_platform.core.model import Node, NodeDraft, NodePatch, Position, Tree


class RemoteStore(Protocol):
    """Persistence collaborator. Every call may suspend; errors are OstError subclasses."""

    async def create_node(self, tree_id: str, draft: NodeDraft) -> Node: ...

    async def update_node(self, tree_id: str, node_id: str, patch: NodePatch) -> Node: ...

    async def delete_node(self, tree_id: str, node_id: str) -> str: ...

    async def get_tree_with_nodes(self, tree_id: str) -> tuple[Tree, list[Node]]: ...

    async def create_tree(self, title: str, description: Optional[str] = None) -> Tree: ...

    async def list_trees(self) -> list[Tree]: ...

    async def update_tree(
        self, tree_id: str, *, title: Optional[str] = None, description: Optional[str] = None
    ) -> Tree: ...

    async def delete_tree(self, tree_id: str) -> str: ...


# Wire format follows the REST API: snake_case keys, node_type, flat position_x/position_y.


def draft_to_dict(tree_id: str, draft: NodeDraft) -> dict[str, Any]:
    out: dict[str, Any] = {
        "tree_id": tree_id,
        "parent_id": draft.parent_id,
        "node_type": draft.type,
        "title": draft.title,
        "description": draft.description,
        "status": draft.status,
        "color": draft.color,
        "display_order": draft.display_order,
    }
    if draft.position is not None:
        out["position_x"] = draft.position.x
        out["position_y"] = draft.position.y
    return out


def patch_to_dict(patch: NodePatch) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in patch.fields.items():
        if k == "position":
            out["position_x"] = v.x
            out["position_y"] = v.y
        elif k == "type":
            out["node_type"] = v
        else:
            out[k] = v
    return out


def node_to_dict(node: Node) -> dict[str, Any]:
    return {
        "id": node.id,
        "tree_id": node.tree_id,
        "parent_id": node.parent_id,
        "node_type": node.type,
        "title": node.title,
        "description": node.description,
        "status": node.status,
        "color": node.color,
        "position_x": node.position.x,
        "position_y": node.position.y,
        "display_order": node.display_order,
    }


def parse_node(obj: Any) -> Node:
    if not isinstance(obj, dict):
        raise ValueError("node must be an object")
    node_id = obj.get("id")
    tree_id = obj.get("tree_id")
    if not isinstance(node_id, str) or not node_id:
        raise ValueError("node.id must be a non-empty string")
    if not isinstance(tree_id, str) or not tree_id:
        raise ValueError("node.tree_id must be a non-empty string")
    # Position columns are nullable (and numeric strings from some drivers).
    x = obj.get("position_x")
    y = obj.get("position_y")
    return Node(
        id=node_id,
        tree_id=tree_id,
        parent_id=obj.get("parent_id") or None,
        type=obj.get("node_type"),
        title=obj.get("title") or "",
        description=obj.get("description"),
        status=obj.get("status") or "draft",
        color=obj.get("color"),
        position=Position(float(x) if x is not None else 0.0, float(y) if y is not None else 0.0),
        display_order=int(obj.get("display_order") or 0),
    )


def tree_to_dict(tree: Tree) -> dict[str, Any]:
    return {
        "id": tree.id,
        "title": tree.title,
        "description": tree.description,
        "created_at": tree.created_at.isoformat() if tree.created_at else None,
        "updated_at": tree.updated_at.isoformat() if tree.updated_at else None,
    }


def parse_tree(obj: Any) -> Tree:
    if not isinstance(obj, dict):
        raise ValueError("tree must be an object")
    tree_id = obj.get("id")
    if not isinstance(tree_id, str) or not tree_id:
        raise ValueError("tree.id must be a non-empty string")
    return Tree(
        id=tree_id,
        title=obj.get("title") or "",
        description=obj.get("description"),
        created_at=parse_timestamp(obj.get("created_at")),
        updated_at=parse_timestamp(obj.get("updated_at")),
    )


def parse_timestamp(v: Any) -> Optional[datetime]:
    if v is None or isinstance(v, datetime):
        return v
    # JSON APIs send ISO-8601 with a trailing Z.
    return datetime.fromisoformat(str(v).replace("Z", "+00:00"))
