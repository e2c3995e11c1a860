from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from ost_platform.core.commands.history import CommandHistory
from ost_platform.core.commands.node_commands import (
    CommandEngine,
    create_node_command,
    delete_node_command,
    move_node_command,
    update_node_command,
)
from ost_platform.core.config import EditorSettings
from ost_platform.core.errors import CommandInFlightError, OstError
from ost_platform.core.hierarchy.rules import ensure_attach
from ost_platform.core.layout.auto_layout import layout_command
from ost_platform.core.layout.layout_config import DEFAULT_LAYOUT, LayoutConfig
from ost_platform.core.model import Node, NodeDraft, NodePatch, NodeStatus, NodeType, Position, Tree
from ost_platform.core.remote.contracts import RemoteStore
from ost_platform.core.store.tree_store import TreeStore
from ost_platform.core.view import DeltaSink, ViewModel

logger = logging.getLogger(__name__)

# Placement of freshly added nodes, before any auto-layout.
CHILD_SPACING = 320.0
CHILD_DROP = 180.0
ROOT_START = Position(150.0, 150.0)
ROOT_STEP_X = 250.0
ROOT_STEP_Y = 200.0
ROOT_WRAP_X = 800.0


class TreeEditor:
    """Operations the UI calls on one open tree.

    Every mutation goes through the command history; the tree store and view model
    are never touched directly from outside.
    """

    def __init__(
        self,
        remote: RemoteStore,
        tree_id: str,
        *,
        settings: Optional[EditorSettings] = None,
        layout: LayoutConfig = DEFAULT_LAYOUT,
        sinks: Optional[list[DeltaSink]] = None,
    ) -> None:
        self.settings = settings or EditorSettings()
        self.layout = layout
        self.remote = remote
        self.store = TreeStore(tree_id)
        self.view = ViewModel()
        self.engine = CommandEngine(self.store, remote, sinks=[self.view, *(sinks or [])])
        self.history = CommandHistory(self.engine, max_size=self.settings.history_size)
        self.tree: Optional[Tree] = None
        self._next_root = ROOT_START
        self._busy = False

    @property
    def tree_id(self) -> str:
        return self.store.tree_id

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    async def open(self) -> Tree:
        """Load the tree from the remote store, dropping any history."""
        async with self._serialized():
            tree, nodes = await self.remote.get_tree_with_nodes(self.tree_id)
            self.store.load(nodes)
            self.view.reset(self.store.nodes())
            self.engine.reset_aliases()
            self.history.clear()
            self.tree = tree
            logger.info("opened tree %s (%d nodes)", tree.id, len(self.store))
            return tree

    async def reload(self) -> Tree:
        """Forced resync after an undo/redo failure left the history out of sync."""
        return await self.open()

    async def add_node(
        self,
        node_type: NodeType,
        parent: Optional[Node] = None,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        status: NodeStatus = "draft",
    ) -> Node:
        async with self._serialized():
            if parent is not None:
                parent = self._live(parent.id)
                ensure_attach(parent.type, node_type)

            draft = NodeDraft(
                type=node_type,
                title=title if title is not None else f"New {node_type}",
                parent_id=parent.id if parent is not None else None,
                description=description,
                status=status,
                position=self._placement(parent),
            )
            command = create_node_command(self.store, self.tree_id, draft)
            await self.history.execute(command)
            if parent is None:
                self._next_root = _next_grid_slot(self._next_root)
            created_id = command.created.id  # type: ignore[union-attr]

            if parent is not None and self.settings.auto_layout:
                # Kept out of the history: undoing the add should undo the add only.
                batch = layout_command(self.store, self.layout)
                if batch is not None:
                    try:
                        await self.engine.execute(batch)
                    except OstError as e:
                        logger.warning("auto layout after adding %s failed: %s", created_id, e)

            return self.store.require(self.engine.resolve(created_id))

    async def update_node(self, node: Node, patch: NodePatch) -> Node:
        async with self._serialized():
            command = update_node_command(self.store, self._live(node.id), patch)
            await self.history.execute(command)
            return self.store.require(command.node.id)

    async def delete_node(self, node: Node) -> None:
        async with self._serialized():
            command = delete_node_command(self.store, self._live(node.id))
            await self.history.execute(command)

    async def move_node(self, node_id: str, x: float, y: float) -> None:
        async with self._serialized():
            await self.history.execute(move_node_command(self.store, self._live(node_id).id, x, y))

    async def undo(self) -> None:
        async with self._serialized():
            await self.history.undo()

    async def redo(self) -> None:
        async with self._serialized():
            await self.history.redo()

    async def run_auto_layout(self) -> int:
        """Lay the whole forest out as a single undo step. Returns how many nodes moved."""
        async with self._serialized():
            batch = layout_command(self.store, self.layout)
            if batch is None:
                return 0
            await self.history.execute(batch)
            return len(batch.moves)

    async def rename_tree(
        self, *, title: Optional[str] = None, description: Optional[str] = None
    ) -> Tree:
        """Change the tree's own title or description. Not an undo step."""
        async with self._serialized():
            self.tree = await self.remote.update_tree(self.tree_id, title=title, description=description)
            return self.tree

    def _live(self, node_id: str) -> Node:
        """The stored node for ``node_id``, following ids replaced by undo/redo."""
        return self.store.require(self.engine.resolve(node_id))

    def _placement(self, parent: Optional[Node]) -> Position:
        if parent is not None:
            # Siblings spread out around the parent; auto-layout tidies up later.
            siblings = len(self.store.children(parent.id))
            start_offset = -(siblings * CHILD_SPACING) / 2 + CHILD_SPACING / 2
            return Position(
                parent.position.x + start_offset + siblings * CHILD_SPACING,
                parent.position.y + CHILD_DROP,
            )

        # Roots take the next grid slot; it is only consumed once the add succeeds.
        return self._next_root

    @asynccontextmanager
    async def _serialized(self) -> AsyncIterator[None]:
        if self._busy:
            raise CommandInFlightError(
                code="E_COMMAND_IN_FLIGHT",
                message="another editor operation is still running",
            )
        self._busy = True
        try:
            yield
        finally:
            self._busy = False


def _next_grid_slot(pos: Position) -> Position:
    nx, ny = pos.x + ROOT_STEP_X, pos.y
    if nx > ROOT_WRAP_X:
        nx, ny = ROOT_START.x, ny + ROOT_STEP_Y
    return Position(nx, ny)
