from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Optional, cast

from ost_platform.core.errors import ValidationError
from ost_platform.core.hierarchy.rules import validate_attach
from ost_platform.core.model import (
    DESCRIPTION_MAX_LEN,
    NODE_STATUSES,
    NODE_TYPES,
    TITLE_MAX_LEN,
    Node,
    Tree,
)
from ost_platform.core.remote.contracts import parse_node, parse_timestamp, parse_tree

# Ids the workspace store hands out; next_id must stay ahead of them.
_GENERATED_ID = re.compile(r"^node-(\d+)$")


@dataclass(frozen=True)
class TreeSnapshot:
    tree: Tree
    nodes: list[Node]
    next_id: int


def validate_tree(data: dict[str, Any]) -> tuple[Optional[TreeSnapshot], list[ValidationError]]:
    """Validate a loaded workspace document.

    Returns (snapshot, errors). Snapshot is None when errors exist.
    """

    file = cast(Optional[str], data.get("__file__"))
    errors: list[ValidationError] = []

    def err(code: str, message: str, path: str) -> None:
        errors.append(ValidationError(code=code, message=message, file=file, path=path))

    schema_version = data.get("schema_version")
    if not isinstance(schema_version, str) or not schema_version.strip():
        err("E_REQUIRED_FIELD", "schema_version is required and must be a non-empty string", "schema_version")

    raw_tree = data.get("tree")
    tree: Optional[Tree] = None
    if not isinstance(raw_tree, dict):
        err("E_REQUIRED_FIELD", "tree is required and must be an object", "tree")
    else:
        if not isinstance(raw_tree.get("id"), str) or not raw_tree.get("id"):
            err("E_REQUIRED_FIELD", "tree.id is required and must be a non-empty string", "tree.id")
        elif not isinstance(raw_tree.get("title"), str) or not raw_tree["title"].strip():
            err("E_REQUIRED_FIELD", "tree.title is required and must be a non-empty string", "tree.title")
        else:
            stamps_ok = True
            for key in ("created_at", "updated_at"):
                try:
                    parse_timestamp(raw_tree.get(key))
                except (TypeError, ValueError):
                    err("E_INVALID_TYPE", f"tree.{key} must be an ISO-8601 timestamp", f"tree.{key}")
                    stamps_ok = False
            if stamps_ok:
                tree = parse_tree(raw_tree)

    nodes = data.get("nodes")
    if nodes is None:
        nodes = []
    if not isinstance(nodes, list):
        err("E_REQUIRED_FIELD", "nodes must be an array", "nodes")
        return None, _sorted(errors)

    raw_by_id: dict[str, dict[str, Any]] = {}
    index_of: dict[str, int] = {}
    seen_ids: set[str] = set()

    for i, raw in enumerate(nodes):
        node_path = f"nodes[{i}]"
        if not isinstance(raw, dict):
            err("E_INVALID_TYPE", "node must be an object", node_path)
            continue

        nid = raw.get("id")
        if not isinstance(nid, str) or not nid.strip():
            err("E_REQUIRED_FIELD", "id is required and must be a non-empty string", f"{node_path}.id")
            continue
        if nid in seen_ids:
            err("E_DUPLICATE_ID", f"duplicate node id: {nid}", f"{node_path}.id")
            continue
        seen_ids.add(nid)

        ok = True
        if raw.get("node_type") not in NODE_TYPES:
            err("E_INVALID_ENUM", f"node_type must be one of {list(NODE_TYPES)}", f"{node_path}.node_type")
            ok = False

        title = raw.get("title")
        if not isinstance(title, str) or not title.strip():
            err("E_EMPTY_TITLE", "title is required and must be a non-empty string", f"{node_path}.title")
            ok = False
        elif len(title.strip()) > TITLE_MAX_LEN:
            err("E_TITLE_TOO_LONG", f"title must be {TITLE_MAX_LEN} characters or less", f"{node_path}.title")
            ok = False

        description = raw.get("description")
        if description is not None and not isinstance(description, str):
            err("E_INVALID_TYPE", "description must be a string", f"{node_path}.description")
            ok = False
        elif isinstance(description, str) and len(description) > DESCRIPTION_MAX_LEN:
            err(
                "E_DESCRIPTION_TOO_LONG",
                f"description must be {DESCRIPTION_MAX_LEN} characters or less",
                f"{node_path}.description",
            )
            ok = False

        status = raw.get("status", "draft")
        if status not in NODE_STATUSES:
            err("E_INVALID_ENUM", f"status must be one of {list(NODE_STATUSES)}", f"{node_path}.status")
            ok = False

        for key in ("position_x", "position_y"):
            v = raw.get(key)
            if v is not None and (isinstance(v, bool) or not isinstance(v, (int, float))):
                err("E_INVALID_TYPE", f"{key} must be a number", f"{node_path}.{key}")
                ok = False

        parent_id = raw.get("parent_id")
        if parent_id is not None and not isinstance(parent_id, str):
            err("E_INVALID_TYPE", "parent_id must be a string or null", f"{node_path}.parent_id")
            ok = False

        if tree is not None and raw.get("tree_id") not in (None, tree.id):
            err("E_FOREIGN_NODE", f"node belongs to tree {raw.get('tree_id')}", f"{node_path}.tree_id")
            ok = False

        if ok:
            raw_by_id[nid] = raw
            index_of[nid] = i

    # Referential integrity and hierarchy.
    for nid, raw in raw_by_id.items():
        parent_id = raw.get("parent_id")
        if not parent_id:
            continue
        path = f"nodes[{index_of[nid]}].parent_id"
        parent = raw_by_id.get(parent_id)
        if parent is None:
            err("E_UNKNOWN_PARENT", f"parent_id references unknown id: {parent_id}", path)
            continue
        h = validate_attach(parent["node_type"], raw["node_type"])
        if h is not None:
            err(h.code, h.message, f"nodes[{index_of[nid]}].node_type")

    for nid in _cycle_members(raw_by_id):
        err("E_CYCLE_DETECTED", f"parent chain of {nid} loops back on itself", f"nodes[{index_of[nid]}].parent_id")

    highest = max((int(m.group(1)) for m in map(_GENERATED_ID.match, raw_by_id) if m), default=0)
    next_id = data.get("next_id", highest + 1)
    if isinstance(next_id, bool) or not isinstance(next_id, int) or next_id < 1:
        err("E_INVALID_TYPE", "next_id must be a positive integer", "next_id")
    elif next_id <= highest:
        err("E_STALE_NEXT_ID", f"next_id must be greater than node-{highest}, got {next_id}", "next_id")

    if errors or tree is None:
        return None, _sorted(errors)

    parsed = [parse_node({**raw, "tree_id": tree.id}) for raw in raw_by_id.values()]
    return TreeSnapshot(tree=tree, nodes=parsed, next_id=cast(int, next_id)), []


def summarize_tree(snapshot: TreeSnapshot) -> str:
    counts = Counter([n.type for n in snapshot.nodes])
    parts = [f"{t}={counts.get(t, 0)}" for t in NODE_TYPES]
    roots = [n.id for n in snapshot.nodes if n.parent_id is None]
    return (
        f"OK: {snapshot.tree.title} ({len(snapshot.nodes)} nodes: "
        + ", ".join(parts)
        + ")\nRoots: "
        + ", ".join(roots)
    )


def _cycle_members(raw_by_id: dict[str, dict[str, Any]]) -> list[str]:
    on_cycle: set[str] = set()
    for start in raw_by_id:
        seen: list[str] = []
        current: Optional[str] = start
        while current is not None and current in raw_by_id and current not in seen:
            seen.append(current)
            current = raw_by_id[current].get("parent_id") or None
        if current is not None and current in seen:
            on_cycle.update(seen[seen.index(current):])
    return sorted(on_cycle)


def _sorted(errors: Iterable[ValidationError]) -> list[ValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
