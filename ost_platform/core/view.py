from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Union

from ost_platform.core.model import Node, Position


@dataclass(frozen=True)
class NodeAdded:
    node: Node


@dataclass(frozen=True)
class EdgeAdded:
    parent_id: str
    child_id: str


@dataclass(frozen=True)
class NodeRemoved:
    id: str


@dataclass(frozen=True)
class NodeUpdated:
    node: Node


@dataclass(frozen=True)
class PositionChanged:
    id: str
    x: float
    y: float


Delta = Union[NodeAdded, EdgeAdded, NodeRemoved, NodeUpdated, PositionChanged]
DeltaSink = Callable[[Delta], None]


class ViewModel:
    """Renderer-side mirror of the tree, rebuilt purely from deltas.

    Removing a node also drops every edge touching it, the way a canvas does.
    """

    def __init__(self) -> None:
        self.nodes: dict[str, Node] = {}
        self.edges: set[tuple[str, str]] = set()
        self.log: list[Delta] = []

    def __call__(self, delta: Delta) -> None:
        self.apply(delta)

    def apply(self, delta: Delta) -> None:
        self.log.append(delta)
        if isinstance(delta, NodeAdded):
            self.nodes[delta.node.id] = delta.node
        elif isinstance(delta, EdgeAdded):
            self.edges.add((delta.parent_id, delta.child_id))
        elif isinstance(delta, NodeRemoved):
            self.nodes.pop(delta.id, None)
            self.edges = {e for e in self.edges if delta.id not in e}
        elif isinstance(delta, NodeUpdated):
            self.nodes[delta.node.id] = delta.node
        elif isinstance(delta, PositionChanged):
            node = self.nodes.get(delta.id)
            if node is not None:
                self.nodes[delta.id] = replace(node, position=Position(delta.x, delta.y))
        else:  # pragma: no cover
            raise TypeError(f"unknown delta: {delta!r}")

    def reset(self, nodes: list[Node]) -> None:
        self.nodes = {n.id: n for n in nodes}
        self.edges = {(n.parent_id, n.id) for n in nodes if n.parent_id is not None}
