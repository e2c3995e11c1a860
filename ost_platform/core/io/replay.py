from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ost_platform.core.editor import TreeEditor
from ost_platform.core.errors import OstError
from ost_platform.core.model import PATCHABLE_FIELDS, Node, NodePatch


ACTIONS = ("add", "update", "delete", "move", "layout", "undo", "redo")
BARE_ACTIONS = {"layout", "undo", "redo"}


@dataclass(frozen=True)
class ReplayStep:
    action: str
    args: dict[str, Any]


class ScriptError(ValueError):
    pass


def parse_script(obj: Any) -> list[ReplayStep]:
    """Parse a replay script.

    Format:
      steps:
        - add: {ref: o1, type: outcome, title: "Grow retention"}
        - add: {ref: p1, type: opportunity, parent: o1}
        - update: {node: p1, title: "Onboarding is confusing"}
        - move: {node: o1, x: 100, y: 50}
        - delete: {node: p1}
        - undo
        - redo
        - layout
    """
    if not isinstance(obj, dict) or not isinstance(obj.get("steps"), list):
        raise ScriptError("script must be an object with a steps list")

    steps: list[ReplayStep] = []
    for i, raw in enumerate(obj["steps"]):
        if isinstance(raw, str):
            if raw not in BARE_ACTIONS:
                raise ScriptError(f"steps[{i}]: '{raw}' needs arguments (or is unknown)")
            steps.append(ReplayStep(action=raw, args={}))
            continue
        if not isinstance(raw, dict) or len(raw) != 1:
            raise ScriptError(f"steps[{i}] must be a single-key mapping like {{add: {{...}}}}")
        action, args = next(iter(raw.items()))
        if action not in ACTIONS:
            raise ScriptError(f"steps[{i}]: unknown action '{action}' (choose one of: {', '.join(ACTIONS)})")
        if args is None:
            args = {}
        if not isinstance(args, dict):
            raise ScriptError(f"steps[{i}].{action} must be a mapping")
        if action in {"update", "delete", "move"} and not isinstance(args.get("node"), str):
            raise ScriptError(f"steps[{i}].{action}.node must be a node ref or id")
        if action == "add" and not isinstance(args.get("type"), str):
            raise ScriptError(f"steps[{i}].add.type is required")
        if action == "move" and not all(isinstance(args.get(k), (int, float)) for k in ("x", "y")):
            raise ScriptError(f"steps[{i}].move needs numeric x and y")
        steps.append(ReplayStep(action=action, args=dict(args)))
    return steps


def load_script(path: str) -> list[ReplayStep]:
    p = Path(path)
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ScriptError(f"invalid YAML: {e}") from e
    return parse_script(raw)


class ScriptStepError(Exception):
    def __init__(self, index: int, step: ReplayStep, error: OstError) -> None:
        super().__init__(f"steps[{index}] ({step.action}): {error}")
        self.index = index
        self.step = step
        self.error = error


async def run_script(editor: TreeEditor, steps: list[ReplayStep]) -> list[str]:
    """Run steps in one editor session. Returns one report line per step.

    Refs name nodes created by earlier ``add`` steps; anything else is taken as a
    node id already in the tree.
    """
    refs: dict[str, str] = {}
    lines: list[str] = []

    def node_for(key: str) -> Node:
        return editor.store.require(editor.engine.resolve(refs.get(key, key)))

    for i, step in enumerate(steps):
        a = step.args
        try:
            if step.action == "add":
                parent = node_for(a["parent"]) if a.get("parent") else None
                node = await editor.add_node(
                    a["type"],
                    parent,
                    title=a.get("title"),
                    description=a.get("description"),
                    status=a.get("status", "draft"),
                )
                if a.get("ref"):
                    refs[str(a["ref"])] = node.id
                lines.append(f"add {node.type} -> {node.id}")
            elif step.action == "update":
                node = node_for(a["node"])
                fields = {k: v for k, v in a.items() if k != "node"}
                if "node_type" in fields:
                    fields["type"] = fields.pop("node_type")
                unknown = sorted(k for k in fields if k not in PATCHABLE_FIELDS)
                if unknown:
                    raise ScriptError(f"steps[{i}].update: unknown fields {', '.join(unknown)}")
                updated = await editor.update_node(node, NodePatch(fields=fields))
                lines.append(f"update {updated.id}")
            elif step.action == "delete":
                node = node_for(a["node"])
                await editor.delete_node(node)
                lines.append(f"delete {node.id}")
            elif step.action == "move":
                node = node_for(a["node"])
                await editor.move_node(node.id, float(a["x"]), float(a["y"]))
                lines.append(f"move {node.id} -> ({float(a['x']):g}, {float(a['y']):g})")
            elif step.action == "layout":
                moved = await editor.run_auto_layout()
                lines.append(f"layout ({moved} moved)")
            elif step.action == "undo":
                label = editor.history.undo_description
                await editor.undo()
                lines.append(f"undo {label or '(nothing)'}")
            elif step.action == "redo":
                label = editor.history.redo_description
                await editor.redo()
                lines.append(f"redo {label or '(nothing)'}")
        except OstError as e:
            raise ScriptStepError(i, step, e) from e
    return lines
