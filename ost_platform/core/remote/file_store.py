from __future__ import annotations

from itertools import count
from typing import Optional

from ost_platform.core.errors import ValidationError
from ost_platform.core.io.workspace import SCHEMA_VERSION, dump_workspace, load_workspace
from ost_platform.core.model import Tree
from ost_platform.core.remote.contracts import node_to_dict, tree_to_dict
from ost_platform.core.remote.memory_store import InMemoryRemoteStore
from ost_platform.core.validate.validate_tree import validate_tree


class WorkspaceFileStore(InMemoryRemoteStore):
    """RemoteStore backed by a single-tree YAML/JSON workspace file.

    The file is rewritten after every successful mutation, so it always reflects
    what a reload would see.
    """

    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path

    @classmethod
    def open(cls, path: str) -> WorkspaceFileStore:
        """Load an existing workspace. Raises WorkspaceLoadError or the first ValidationError."""
        data = load_workspace(path)
        snapshot, errors = validate_tree(data)
        if errors or snapshot is None:
            raise errors[0]

        store = cls(path)
        store.trees[snapshot.tree.id] = snapshot.tree
        for node in snapshot.nodes:
            store.nodes[node.id] = node
        store._ids = count(snapshot.next_id)
        return store

    @property
    def tree_id(self) -> str:
        if not self.trees:
            raise ValidationError(code="E_EMPTY_WORKSPACE", message="workspace has no tree", file=self.path)
        return next(iter(self.trees))

    async def create_tree(self, title: str, description: Optional[str] = None) -> Tree:
        if self.trees:
            raise ValidationError(
                code="E_WORKSPACE_HAS_TREE",
                message="a workspace file holds exactly one tree",
                file=self.path,
            )
        return await super().create_tree(title, description)

    async def delete_tree(self, tree_id: str) -> str:
        raise ValidationError(
            code="E_WORKSPACE_TREE_DELETE",
            message="a workspace file cannot drop its only tree; remove the file instead",
            file=self.path,
        )

    def save(self) -> None:
        tree = self.trees[self.tree_id]
        # Peek the counter without consuming an id.
        next_id = next(self._ids)
        self._ids = count(next_id)
        dump_workspace(
            {
                "schema_version": SCHEMA_VERSION,
                "tree": tree_to_dict(tree),
                "next_id": next_id,
                "nodes": [
                    {k: v for k, v in node_to_dict(n).items() if k != "tree_id"}
                    for n in self.live_nodes()
                ],
            },
            self.path,
        )

    def _changed(self) -> None:
        if self.trees:
            self.save()
