from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from itertools import count
from typing import Optional

from ost_platform.core.errors import NotFoundError, ValidationError
from ost_platform.core.model import Node, NodeDraft, NodePatch, Position, Tree
from ost_platform.core.validate.fields import check_description, check_status, check_title, check_type

logger = logging.getLogger(__name__)


class InMemoryRemoteStore:
    """Process-local RemoteStore with the same rules as the REST backend.

    Deletes are soft: a deleted node keeps its row but is invisible, and deleting a
    node cascades to its live descendants.
    """

    def __init__(self, id_prefix: str = "node") -> None:
        self._id_prefix = id_prefix
        self._ids = count(1)
        self._tree_ids = count(1)
        self.trees: dict[str, Tree] = {}
        self.nodes: dict[str, Node] = {}
        self.deleted: set[str] = set()
        # Method names in call order; lets callers assert what reached the store.
        self.calls: list[str] = []

    async def create_tree(self, title: str, description: Optional[str] = None) -> Tree:
        self.calls.append("create_tree")
        if not isinstance(title, str) or not title.strip():
            raise ValidationError(code="E_EMPTY_TITLE", message="title is required", path="title")
        now = _now()
        tree = Tree(
            id=f"tree-{next(self._tree_ids)}",
            title=title.strip(),
            description=description,
            created_at=now,
            updated_at=now,
        )
        self.trees[tree.id] = tree
        self._changed()
        return tree

    async def list_trees(self) -> list[Tree]:
        self.calls.append("list_trees")
        return sorted(self.trees.values(), key=lambda t: t.updated_at or _now(), reverse=True)

    async def update_tree(
        self, tree_id: str, *, title: Optional[str] = None, description: Optional[str] = None
    ) -> Tree:
        self.calls.append("update_tree")
        if title is None and description is None:
            raise ValidationError(code="E_EMPTY_PATCH", message="no updates provided", path="tree")
        tree = self._require_tree(tree_id)
        if title is not None:
            tree = replace(tree, title=check_title(title))
        if description is not None:
            tree = replace(tree, description=description or None)
        self.trees[tree_id] = replace(tree, updated_at=_now())
        self._changed()
        return self.trees[tree_id]

    async def delete_tree(self, tree_id: str) -> str:
        """Hard delete: the tree and every node in it, live or not."""
        self.calls.append("delete_tree")
        self._require_tree(tree_id)
        del self.trees[tree_id]
        for node_id in [n.id for n in self.nodes.values() if n.tree_id == tree_id]:
            del self.nodes[node_id]
            self.deleted.discard(node_id)
        logger.debug("deleted tree %s", tree_id)
        self._changed()
        return tree_id

    async def get_tree_with_nodes(self, tree_id: str) -> tuple[Tree, list[Node]]:
        self.calls.append("get_tree_with_nodes")
        tree = self._require_tree(tree_id)
        nodes = [n for n in self.live_nodes() if n.tree_id == tree_id]
        return tree, sorted(nodes, key=lambda n: n.display_order)

    async def create_node(self, tree_id: str, draft: NodeDraft) -> Node:
        self.calls.append("create_node")
        title = check_title(draft.title)
        check_type(draft.type)
        check_status(draft.status)
        self._require_tree(tree_id)
        if draft.parent_id is not None:
            parent = self.nodes.get(draft.parent_id)
            if parent is None or parent.tree_id != tree_id or parent.id in self.deleted:
                raise NotFoundError(
                    code="E_PARENT_NOT_FOUND",
                    message=f"parent node not found: {draft.parent_id}",
                    path="parent_id",
                )
        check_description(draft.description)

        node_id = f"{self._id_prefix}-{next(self._ids)}"
        if node_id in self.nodes:
            raise ValidationError(
                code="E_DUPLICATE_ID",
                message=f"generated id {node_id} is already taken; the id counter is behind",
                path="id",
            )
        node = Node(
            id=node_id,
            tree_id=tree_id,
            parent_id=draft.parent_id,
            type=draft.type,
            title=title,
            description=draft.description or None,
            status=draft.status,
            color=draft.color,
            position=draft.position or Position(),
            display_order=draft.display_order,
        )
        self.nodes[node.id] = node
        self._touch(tree_id)
        return node

    async def update_node(self, tree_id: str, node_id: str, patch: NodePatch) -> Node:
        self.calls.append("update_node")
        if not patch.fields:
            raise ValidationError(code="E_EMPTY_PATCH", message="no updates provided", path="patch")
        fields = dict(patch.fields)
        if "title" in fields:
            fields["title"] = check_title(fields["title"])
        if "description" in fields:
            fields["description"] = check_description(fields["description"]) or None
        if "type" in fields:
            check_type(fields["type"])
        if "status" in fields:
            check_status(fields["status"])

        node = self._require_live(tree_id, node_id)
        updated = replace(node, **fields)
        self.nodes[node_id] = updated
        self._touch(tree_id)
        return updated

    async def delete_node(self, tree_id: str, node_id: str) -> str:
        self.calls.append("delete_node")
        self._require_live(tree_id, node_id)
        doomed = [node_id]
        i = 0
        while i < len(doomed):
            parent = doomed[i]
            doomed.extend(n.id for n in self.live_nodes() if n.parent_id == parent)
            i += 1
        self.deleted.update(doomed)
        logger.debug("deleted %s (cascade: %d nodes)", node_id, len(doomed))
        self._touch(tree_id)
        return node_id

    def live_nodes(self) -> list[Node]:
        return [n for n in self.nodes.values() if n.id not in self.deleted]

    def _require_tree(self, tree_id: str) -> Tree:
        tree = self.trees.get(tree_id)
        if tree is None:
            raise NotFoundError(code="E_TREE_NOT_FOUND", message=f"tree not found: {tree_id}", path="tree_id")
        return tree

    def _require_live(self, tree_id: str, node_id: str) -> Node:
        node = self.nodes.get(node_id)
        if node is None or node.tree_id != tree_id or node_id in self.deleted:
            raise NotFoundError(code="E_NODE_NOT_FOUND", message=f"node not found: {node_id}", path="id")
        return node

    def _touch(self, tree_id: str) -> None:
        tree = self.trees.get(tree_id)
        if tree is not None:
            self.trees[tree_id] = replace(tree, updated_at=_now())
        self._changed()

    def _changed(self) -> None:
        """Hook for subclasses that persist the state somewhere."""


def _now() -> datetime:
    return datetime.now(timezone.utc)
