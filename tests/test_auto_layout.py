from dataclasses import replace
from pathlib import Path

import pytest

from ost_platform.core.layout.auto_layout import compute_layout, layout_command
from ost_platform.core.layout.layout_config import (
    DEFAULT_LAYOUT,
    LayoutConfig,
    LayoutConfigError,
    load_and_merge,
    load_layout_file,
)
from ost_platform.core.model import Node, Position
from ost_platform.core.store.tree_store import TreeStore


def _store(*specs) -> TreeStore:
    store = TreeStore("t1")
    for nid, ntype, parent in specs:
        store.insert(Node(id=nid, tree_id="t1", type=ntype, title=nid, parent_id=parent))
    return store


def test_three_leaves_spread_around_parent():
    store = _store(
        ("O", "outcome", None),
        ("P1", "opportunity", "O"),
        ("P2", "opportunity", "O"),
        ("P3", "opportunity", "O"),
    )
    pos = compute_layout(store)
    parent = pos["O"]
    assert [pos[p].x - parent.x for p in ("P1", "P2", "P3")] == [-350.0, 0.0, 350.0]
    assert all(pos[p].y == parent.y + 180.0 for p in ("P1", "P2", "P3"))
    assert parent == Position(450.0, 100.0)


def test_parent_centred_over_first_and_last_child():
    store = _store(
        ("O", "outcome", None),
        ("P1", "opportunity", "O"),
        ("P2", "opportunity", "O"),
        ("S1", "solution", "P1"),
        ("S2", "solution", "P1"),
    )
    pos = compute_layout(store)
    assert pos["P1"].x == (pos["S1"].x + pos["S2"].x) / 2
    assert pos["O"].x == (pos["P1"].x + pos["P2"].x) / 2
    # P1's subtree is two units wide, so P2 starts after it.
    assert pos["P2"].x == 100.0 + 2 * 350.0


def test_roots_laid_out_side_by_side_with_gap():
    store = _store(("A", "outcome", None), ("B", "outcome", None))
    pos = compute_layout(store)
    assert pos["A"] == Position(100.0, 100.0)
    assert pos["B"] == Position(100.0 + 350.0 + 100.0, 100.0)


def test_custom_spacing():
    store = _store(("O", "outcome", None), ("P", "opportunity", "O"))
    pos = compute_layout(store, LayoutConfig(start_x=0, start_y=0, vertical_spacing=50))
    assert pos["P"] == Position(0, 50)


def test_layout_command_only_moves_changed_nodes():
    store = _store(("O", "outcome", None), ("P", "opportunity", "O"))
    cmd = layout_command(store)
    assert cmd is not None
    assert cmd.description == "Auto layout"
    assert {m.node_id for m in cmd.moves} == {"O", "P"}

    for move in cmd.moves:
        store.replace(replace(store.require(move.node_id), position=move.new))
    assert layout_command(store) is None


def test_layout_file_overrides(tmp_path: Path):
    p = tmp_path / "layout.yaml"
    p.write_text("horizontal_spacing: 300\nvertical_spacing: 160\n", encoding="utf-8")
    cfg = load_and_merge(str(p))
    assert cfg.horizontal_spacing == 300.0
    assert cfg.vertical_spacing == 160.0
    assert cfg.start_x == DEFAULT_LAYOUT.start_x
    assert load_and_merge(None) is DEFAULT_LAYOUT


@pytest.mark.parametrize(
    "text, needle",
    [
        ("- 1\n- 2\n", "mapping"),
        ("spacing: 3\n", "unknown layout setting"),
        ("vertical_spacing: wide\n", "must be a number"),
        ("horizontal_spacing: 0\n", "must be > 0"),
    ],
)
def test_layout_file_errors(tmp_path: Path, text: str, needle: str):
    p = tmp_path / "layout.yaml"
    p.write_text(text, encoding="utf-8")
    with pytest.raises(LayoutConfigError) as ei:
        load_layout_file(p)
    assert needle in str(ei.value)
