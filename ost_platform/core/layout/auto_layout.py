from __future__ import annotations

import logging

from ost_platform.core.commands.node_commands import MoveBatch, MoveNode
from ost_platform.core.layout.layout_config import DEFAULT_LAYOUT, LayoutConfig
from ost_platform.core.model import Position
from ost_platform.core.store.tree_store import TreeStore

logger = logging.getLogger(__name__)


def compute_layout(store: TreeStore, config: LayoutConfig = DEFAULT_LAYOUT) -> dict[str, Position]:
    """Tidy top-down layout of every root tree in ``store``.

    A leaf is one width unit; a subtree is as wide as its children together. Children
    are laid out left to right starting at the parent's x, then the parent is moved
    to the centre of its first and last child.
    """
    positions: dict[str, Position] = {}

    def place(node_id: str, x: float, y: float) -> int:
        positions[node_id] = Position(x, y)
        children = store.children(node_id)
        if not children:
            return 1

        child_x = x
        child_y = y + config.vertical_spacing
        total = 0
        for child in children:
            width = place(child.id, child_x, child_y)
            child_x += width * config.horizontal_spacing
            total += width

        first = positions[children[0].id].x
        last = positions[children[-1].id].x
        positions[node_id] = Position((first + last) / 2, y)
        return max(total, 1)

    current_x = config.start_x
    for root in store.roots():
        width = place(root.id, current_x, config.start_y)
        current_x += width * config.horizontal_spacing + config.tree_gap

    return positions


def layout_moves(store: TreeStore, config: LayoutConfig = DEFAULT_LAYOUT) -> list[MoveNode]:
    """MoveNode commands for every node whose laid-out position differs from its current one."""
    moves: list[MoveNode] = []
    for node_id, pos in compute_layout(store, config).items():
        node = store.require(node_id)
        if node.position != pos:
            moves.append(MoveNode(node_id=node_id, old=node.position, new=pos))
    logger.debug("layout: %d of %d nodes move", len(moves), len(store))
    return moves


def layout_command(store: TreeStore, config: LayoutConfig = DEFAULT_LAYOUT) -> MoveBatch | None:
    moves = layout_moves(store, config)
    if not moves:
        return None
    return MoveBatch(moves=moves, label="Auto layout")
