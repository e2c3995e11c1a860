from __future__ import annotations

from itertools import count
from typing import Iterable, Optional

from ost_platform.core.errors import DanglingParentError, NotFoundError, ValidationError
from ost_platform.core.model import Node


class TreeStore:
    """In-memory node collection for one open tree.

    Only structural checks live here (parent resolution, duplicate ids). Hierarchy
    and field rules are checked by the commands before they reach the store.
    """

    def __init__(self, tree_id: str) -> None:
        self.tree_id = tree_id
        self._nodes: dict[str, Node] = {}
        self._seq: dict[str, int] = {}
        self._counter = count()

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def require(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFoundError(code="E_NODE_NOT_FOUND", message=f"node not found: {node_id}", path="id")
        return node

    def nodes(self) -> list[Node]:
        return sorted(self._nodes.values(), key=lambda n: self._seq[n.id])

    def roots(self) -> list[Node]:
        return self._ordered(n for n in self._nodes.values() if n.parent_id is None)

    def children(self, node_id: str) -> list[Node]:
        return self._ordered(n for n in self._nodes.values() if n.parent_id == node_id)

    def edges(self) -> list[tuple[str, str]]:
        """(parent_id, child_id) pairs."""
        return [(n.parent_id, n.id) for n in self.nodes() if n.parent_id is not None]

    def descendants(self, node_id: str) -> list[Node]:
        """All transitive children of ``node_id`` in pre-order (parents before children)."""
        out: list[Node] = []
        for child in self.children(node_id):
            out.append(child)
            out.extend(self.descendants(child.id))
        return out

    def insert(self, node: Node) -> None:
        self._check_tree(node)
        if node.id in self._nodes:
            raise ValidationError(
                code="E_DUPLICATE_ID", message=f"duplicate node id: {node.id}", path="id"
            )
        self._check_parent(node)
        self._nodes[node.id] = node
        self._seq[node.id] = next(self._counter)

    def replace(self, node: Node) -> None:
        self._check_tree(node)
        self.require(node.id)
        self._check_parent(node)
        if node.parent_id is not None and node.id in self._ancestor_ids(node.parent_id):
            raise DanglingParentError(
                code="E_CYCLE",
                message=f"node {node.id} cannot be its own ancestor",
                path="parent_id",
            )
        self._nodes[node.id] = node

    def remove(self, node_id: str) -> Node:
        node = self.require(node_id)
        if self.children(node_id):
            raise DanglingParentError(
                code="E_HAS_CHILDREN",
                message=f"node {node_id} still has children; remove the subtree instead",
                path="id",
            )
        del self._nodes[node_id]
        del self._seq[node_id]
        return node

    def remove_subtree(self, node_id: str) -> list[Node]:
        """Remove a node and its descendants. Returns them in pre-order."""
        root = self.require(node_id)
        removed = [root] + self.descendants(node_id)
        for node in reversed(removed):
            self.remove(node.id)
        return removed

    def clear(self) -> None:
        self._nodes.clear()
        self._seq.clear()

    def load(self, nodes: Iterable[Node]) -> None:
        """Replace the content with ``nodes``, inserting parents before children."""
        self.clear()
        pending = list(nodes)
        while pending:
            ready = [n for n in pending if n.parent_id is None or n.parent_id in self._nodes]
            ready_ids = {n.id for n in ready}
            rest = [n for n in pending if n.id not in ready_ids]
            if not ready:
                # Whatever is left points at a missing node or forms a cycle.
                pending_ids = {n.id for n in rest}
                for n in rest:
                    if n.parent_id not in pending_ids:
                        self._check_parent(n)
                raise DanglingParentError(
                    code="E_CYCLE",
                    message=f"parent chain of {rest[0].id} does not reach a root",
                    path="parent_id",
                )
            for n in ready:
                self.insert(n)
            pending = rest

    def _ordered(self, nodes: Iterable[Node]) -> list[Node]:
        return sorted(nodes, key=lambda n: (n.display_order, self._seq[n.id]))

    def _ancestor_ids(self, node_id: str) -> set[str]:
        seen: set[str] = set()
        current = self._nodes.get(node_id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            current = self._nodes.get(current.parent_id) if current.parent_id else None
        return seen

    def _check_tree(self, node: Node) -> None:
        if node.tree_id != self.tree_id:
            raise ValidationError(
                code="E_FOREIGN_NODE",
                message=f"node {node.id} belongs to tree {node.tree_id}, not {self.tree_id}",
                path="tree_id",
            )

    def _check_parent(self, node: Node) -> None:
        if node.parent_id is None:
            return
        parent = self._nodes.get(node.parent_id)
        if parent is None or parent.tree_id != node.tree_id:
            raise DanglingParentError(
                code="E_DANGLING_PARENT",
                message=f"parent {node.parent_id} of node {node.id} is not a live node of this tree",
                path="parent_id",
            )
