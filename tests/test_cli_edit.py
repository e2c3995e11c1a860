import json
import shutil
from pathlib import Path

from typer.testing import CliRunner

from ost_platform.cli import app


runner = CliRunner()


def _workspace(tmp_path: Path) -> str:
    path = tmp_path / "tree.yaml"
    shutil.copy("examples/basic-tree.yaml", path)
    return str(path)


def _show_json(path: str) -> dict:
    r = runner.invoke(app, ["show", path, "--format", "json"])
    assert r.exit_code == 0
    return json.loads(r.stdout)


def test_cli_init_creates_empty_tree(tmp_path: Path):
    path = str(tmp_path / "new.yaml")
    r = runner.invoke(app, ["init", path, "--title", "Retention"])
    assert r.exit_code == 0
    assert f"OK: created tree tree-1 in {path}" in r.stdout

    r = runner.invoke(app, ["init", path, "--title", "Again"])
    assert r.exit_code == 1
    assert "E_FILE_EXISTS" in r.output


def test_cli_init_rejects_unknown_suffix(tmp_path: Path):
    r = runner.invoke(app, ["init", str(tmp_path / "tree.txt"), "--title", "T"])
    assert r.exit_code == 1
    assert "E_UNSUPPORTED_FORMAT" in r.output


def test_cli_add_child_persists(tmp_path: Path):
    path = _workspace(tmp_path)
    r = runner.invoke(app, ["add", path, "--type", "opportunity", "--parent", "node-1", "--title", "Slow sign-up"])
    assert r.exit_code == 0
    assert "OK: added opportunity node-5" in r.stdout

    payload = _show_json(path)
    assert len(payload["nodes"]) == 5
    assert ["node-1", "node-5"] in payload["edges"]


def test_cli_add_invalid_child(tmp_path: Path):
    path = _workspace(tmp_path)
    r = runner.invoke(app, ["add", path, "--type", "solution", "--parent", "node-1"])
    assert r.exit_code == 2
    assert "E_INVALID_CHILD" in r.output
    assert len(_show_json(path)["nodes"]) == 4


def test_cli_add_unknown_type(tmp_path: Path):
    r = runner.invoke(app, ["add", _workspace(tmp_path), "--type", "goal"])
    assert r.exit_code == 2
    assert "E_INVALID_ENUM" in r.output


def test_cli_update_and_retype(tmp_path: Path):
    path = _workspace(tmp_path)
    r = runner.invoke(app, ["update", path, "node-3", "--status", "validated"])
    assert r.exit_code == 0
    nodes = {n["id"]: n for n in _show_json(path)["nodes"]}
    assert nodes["node-3"]["status"] == "validated"

    r = runner.invoke(app, ["update", path, "node-1", "--type", "solution"])
    assert r.exit_code == 2
    assert "E_INVALID_CHILD" in r.output


def test_cli_delete_removes_subtree(tmp_path: Path):
    path = _workspace(tmp_path)
    r = runner.invoke(app, ["delete", path, "node-2"])
    assert r.exit_code == 0
    assert "OK: deleted node-2 (3 nodes)" in r.stdout
    assert [n["id"] for n in _show_json(path)["nodes"]] == ["node-1"]


def test_cli_delete_unknown_node(tmp_path: Path):
    r = runner.invoke(app, ["delete", _workspace(tmp_path), "node-99"])
    assert r.exit_code == 2
    assert "E_NODE_NOT_FOUND" in r.output


def test_cli_move_and_layout(tmp_path: Path):
    path = _workspace(tmp_path)
    r = runner.invoke(app, ["move", path, "node-4", "10", "20"])
    assert r.exit_code == 0
    assert "OK: moved node-4 to (10, 20)" in r.stdout

    r = runner.invoke(app, ["layout", path, "--layout-file", "examples/layout.yaml"])
    assert r.exit_code == 0
    assert "OK: layout moved 4 nodes" in r.stdout
    nodes = {n["id"]: n for n in _show_json(path)["nodes"]}
    assert (nodes["node-4"]["position_x"], nodes["node-4"]["position_y"]) == (100.0, 580.0)


def test_cli_layout_missing_file(tmp_path: Path):
    r = runner.invoke(app, ["layout", _workspace(tmp_path), "--layout-file", str(tmp_path / "nope.yaml")])
    assert r.exit_code == 1
    assert "E_LAYOUT_FILE_NOT_FOUND" in r.output


def test_cli_show_text(tmp_path: Path):
    r = runner.invoke(app, ["show", _workspace(tmp_path)])
    assert r.exit_code == 0
    assert "My First OST" in r.stdout
    assert "Guided onboarding tour" in r.stdout


def test_cli_replay_session(tmp_path: Path):
    path = str(tmp_path / "session.yaml")
    assert runner.invoke(app, ["init", path, "--title", "Session"]).exit_code == 0

    r = runner.invoke(app, ["replay", path, "examples/session.yaml"])
    assert r.exit_code == 0
    assert "1. add outcome -> node-1" in r.stdout
    assert "OK: replayed 10 steps" in r.stdout
    assert len(_show_json(path)["nodes"]) == 4


def test_cli_replay_invalid_script(tmp_path: Path):
    script = tmp_path / "bad.yaml"
    script.write_text("steps:\n  - jump\n", encoding="utf-8")
    r = runner.invoke(app, ["replay", _workspace(tmp_path), str(script)])
    assert r.exit_code == 2
    assert "E_SCRIPT_INVALID" in r.output


def test_cli_replay_failing_step(tmp_path: Path):
    script = tmp_path / "bad.yaml"
    script.write_text("steps:\n  - add: {type: experiment, parent: node-1}\n", encoding="utf-8")
    r = runner.invoke(app, ["replay", _workspace(tmp_path), str(script)])
    assert r.exit_code == 2
    assert "steps[0]" in r.output
    assert "E_INVALID_CHILD" in r.output


def test_cli_trees_lists_the_workspace_tree(tmp_path: Path):
    path = _workspace(tmp_path)
    r = runner.invoke(app, ["trees", path])
    assert r.exit_code == 0
    assert r.stdout.startswith("tree-1\tMy First OST\t")

    r = runner.invoke(app, ["trees", path, "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert [t["id"] for t in payload["trees"]] == ["tree-1"]

    r = runner.invoke(app, ["trees"])
    assert r.exit_code == 1
    assert "E_TARGET_REQUIRED" in r.output


def test_cli_rename_tree(tmp_path: Path):
    path = _workspace(tmp_path)
    r = runner.invoke(app, ["rename", path, "--title", "Retention 2025"])
    assert r.exit_code == 0
    assert "OK: renamed tree tree-1 to Retention 2025" in r.stdout
    assert _show_json(path)["tree"]["title"] == "Retention 2025"

    r = runner.invoke(app, ["rename", path])
    assert r.exit_code == 2
    assert "E_EMPTY_PATCH" in r.output


def test_cli_delete_tree_keeps_workspace(tmp_path: Path):
    path = _workspace(tmp_path)
    r = runner.invoke(app, ["delete-tree", path, "--yes"])
    assert r.exit_code == 2
    assert "E_WORKSPACE_TREE_DELETE" in r.output
    assert len(_show_json(path)["nodes"]) == 4

    r = runner.invoke(app, ["delete-tree", path], input="n\n")
    assert r.exit_code == 1
