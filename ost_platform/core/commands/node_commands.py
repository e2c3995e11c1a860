from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Union

from ost_platform.core.errors import NotFoundError, OstError
from ost_platform.core.hierarchy.rules import ensure_attach, validate_retype
from ost_platform.core.model import Node, NodeDraft, NodePatch, Position
from ost_platform.core.remote.contracts import RemoteStore
from ost_platform.core.store.tree_store import TreeStore
from ost_platform.core.validate.fields import validate_draft, validate_patch
from ost_platform.core.view import (
    Delta,
    DeltaSink,
    EdgeAdded,
    NodeAdded,
    NodeRemoved,
    NodeUpdated,
    PositionChanged,
)

logger = logging.getLogger(__name__)


# Command variants. Each one carries the data it needs to run in both directions;
# fields with init=False are filled in while executing.


@dataclass
class CreateNode:
    tree_id: str
    draft: NodeDraft
    created: Optional[Node] = field(default=None, init=False)

    @property
    def description(self) -> str:
        return f"Create {self.draft.type} node"


@dataclass
class UpdateNode:
    node: Node
    patch: NodePatch
    before: NodePatch = field(init=False)

    def __post_init__(self) -> None:
        self.before = NodePatch.capture(self.node, self.patch.keys())

    @property
    def description(self) -> str:
        return f"Update {self.node.type} node"


@dataclass
class DeleteNode:
    node: Node
    # Pre-order snapshot; the remote store cascades the delete, so undo has to
    # rebuild all of it.
    subtree: list[Node]

    @property
    def description(self) -> str:
        return f"Delete {self.node.type} node"


@dataclass
class MoveNode:
    node_id: str
    old: Position
    new: Position

    @property
    def description(self) -> str:
        return "Move node"


@dataclass
class MoveBatch:
    moves: list[MoveNode]
    label: str = "Move nodes"

    @property
    def description(self) -> str:
        return self.label


Command = Union[CreateNode, UpdateNode, DeleteNode, MoveNode, MoveBatch]


def create_node_command(store: TreeStore, tree_id: str, draft: NodeDraft) -> CreateNode:
    """Build a CreateNode, rejecting invalid fields or hierarchy up front."""
    validate_draft(draft)
    if draft.parent_id is not None:
        parent = store.get(draft.parent_id)
        if parent is None:
            raise NotFoundError(
                code="E_PARENT_NOT_FOUND",
                message=f"parent node not found: {draft.parent_id}",
                path="parent_id",
            )
        ensure_attach(parent.type, draft.type)
    return CreateNode(tree_id=tree_id, draft=draft)


def update_node_command(store: TreeStore, node: Node, patch: NodePatch) -> UpdateNode:
    validate_patch(patch)
    current = store.require(node.id)
    _check_retype(store, current, patch)
    return UpdateNode(node=current, patch=patch)


def delete_node_command(store: TreeStore, node: Node) -> DeleteNode:
    current = store.require(node.id)
    return DeleteNode(node=current, subtree=store.descendants(current.id))


def move_node_command(store: TreeStore, node_id: str, x: float, y: float) -> MoveNode:
    current = store.require(node_id)
    return MoveNode(node_id=node_id, old=current.position, new=Position(x, y))


def _check_retype(store: TreeStore, node: Node, patch: NodePatch) -> None:
    new_type = patch.get("type", node.type)
    if new_type == node.type:
        return
    parent = store.get(node.parent_id)
    err = validate_retype(
        new_type,
        parent.type if parent is not None else None,
        [c.type for c in store.children(node.id)],
    )
    if err is not None:
        raise err


class CommandEngine:
    """Runs commands against the remote store, then the tree store, then the view.

    Tree store changes only happen after the remote call they mirror has succeeded.
    Nodes recreated with a fresh server id (redo of a create, undo of a delete) are
    recorded as aliases so older commands still address the live node.
    """

    def __init__(
        self,
        store: TreeStore,
        remote: RemoteStore,
        sinks: Optional[list[DeltaSink]] = None,
    ) -> None:
        self.store = store
        self.remote = remote
        self._sinks: list[DeltaSink] = list(sinks or [])
        self._aliases: dict[str, str] = {}

    @property
    def tree_id(self) -> str:
        return self.store.tree_id

    def subscribe(self, sink: DeltaSink) -> None:
        self._sinks.append(sink)

    def resolve(self, node_id: str) -> str:
        seen: set[str] = set()
        while node_id in self._aliases and node_id not in seen:
            seen.add(node_id)
            node_id = self._aliases[node_id]
        return node_id

    def reset_aliases(self) -> None:
        self._aliases.clear()

    async def execute(self, command: Command) -> None:
        logger.debug("execute: %s", command.description)
        if isinstance(command, CreateNode):
            await self._create(command)
        elif isinstance(command, UpdateNode):
            await self._update(command, command.patch)
        elif isinstance(command, DeleteNode):
            await self._delete(command)
        elif isinstance(command, MoveNode):
            await self._move(command.node_id, command.new)
        elif isinstance(command, MoveBatch):
            await self._move_all([(m.node_id, m.new, m.old) for m in command.moves])
        else:
            raise TypeError(f"unknown command: {command!r}")

    async def undo(self, command: Command) -> None:
        logger.debug("undo: %s", command.description)
        if isinstance(command, CreateNode):
            await self._uncreate(command)
        elif isinstance(command, UpdateNode):
            await self._update(command, command.before)
        elif isinstance(command, DeleteNode):
            await self._undelete(command)
        elif isinstance(command, MoveNode):
            await self._move(command.node_id, command.old)
        elif isinstance(command, MoveBatch):
            await self._move_all([(m.node_id, m.old, m.new) for m in reversed(command.moves)])
        else:
            raise TypeError(f"unknown command: {command!r}")

    async def _create(self, cmd: CreateNode) -> None:
        draft = cmd.draft
        if draft.parent_id is not None:
            parent = self.store.get(self.resolve(draft.parent_id))
            if parent is None:
                raise NotFoundError(
                    code="E_PARENT_NOT_FOUND",
                    message=f"parent node not found: {draft.parent_id}",
                    path="parent_id",
                )
            ensure_attach(parent.type, draft.type)
            draft = replace(draft, parent_id=parent.id)

        node = await self.remote.create_node(cmd.tree_id, draft)
        if cmd.created is not None:
            self._alias(cmd.created.id, node.id)
        cmd.created = node
        self._insert(node)

    async def _uncreate(self, cmd: CreateNode) -> None:
        if cmd.created is None:
            return
        node_id = self.resolve(cmd.created.id)
        await self.remote.delete_node(cmd.tree_id, node_id)
        self._remove_subtree(node_id)

    async def _update(self, cmd: UpdateNode, patch: NodePatch) -> None:
        node_id = self.resolve(cmd.node.id)
        current = self.store.require(node_id)
        _check_retype(self.store, current, patch)
        updated = await self.remote.update_node(self.tree_id, node_id, patch)
        self.store.replace(updated)
        self._emit(NodeUpdated(updated))

    async def _delete(self, cmd: DeleteNode) -> None:
        node_id = self.resolve(cmd.node.id)
        self.store.require(node_id)
        await self.remote.delete_node(self.tree_id, node_id)
        self._remove_subtree(node_id)

    async def _undelete(self, cmd: DeleteNode) -> None:
        new_ids: dict[str, str] = {}
        for original in [cmd.node] + cmd.subtree:
            if original is cmd.node:
                parent_id = self.resolve(original.parent_id) if original.parent_id else None
            else:
                parent_id = new_ids[original.parent_id]
            node = await self.remote.create_node(self.tree_id, NodeDraft.from_node(original, parent_id))
            new_ids[original.id] = node.id
            # Ids handed out by an earlier restore of this subtree chain on to the new one.
            self._alias(self.resolve(original.id), node.id)
            self._alias(original.id, node.id)
            self._insert(node)
        logger.debug("restored subtree of %s (%d nodes)", cmd.node.id, len(new_ids))

    async def _move(self, node_id: str, to: Position) -> None:
        live_id = self.resolve(node_id)
        updated = await self.remote.update_node(self.tree_id, live_id, NodePatch.of(position=to))
        self.store.replace(updated)
        self._emit(PositionChanged(live_id, to.x, to.y))

    async def _move_all(self, steps: list[tuple[str, Position, Position]]) -> None:
        """Apply (node_id, target, revert_to) steps; on failure put applied ones back."""
        applied: list[tuple[str, Position]] = []
        try:
            for node_id, target, revert_to in steps:
                await self._move(node_id, target)
                applied.append((node_id, revert_to))
        except OstError:
            for node_id, revert_to in reversed(applied):
                try:
                    await self._move(node_id, revert_to)
                except OstError as e:
                    logger.warning("could not revert move of %s: %s", node_id, e)
            raise

    def _insert(self, node: Node) -> None:
        self.store.insert(node)
        self._emit(NodeAdded(node))
        if node.parent_id is not None:
            self._emit(EdgeAdded(node.parent_id, node.id))

    def _remove_subtree(self, node_id: str) -> None:
        if node_id not in self.store:
            return
        for node in self.store.remove_subtree(node_id):
            self._emit(NodeRemoved(node.id))

    def _alias(self, old_id: str, new_id: str) -> None:
        if old_id != new_id:
            self._aliases[old_id] = new_id

    def _emit(self, delta: Delta) -> None:
        for sink in self._sinks:
            sink(delta)
