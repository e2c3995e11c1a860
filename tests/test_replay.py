import asyncio

import pytest

from ost_platform.core.config import EditorSettings
from ost_platform.core.editor import TreeEditor
from ost_platform.core.errors import InvalidChildError
from ost_platform.core.io.replay import ScriptError, ScriptStepError, load_script, parse_script, run_script
from ost_platform.core.remote.memory_store import InMemoryRemoteStore


def _editor() -> TreeEditor:
    remote = InMemoryRemoteStore()
    tree = asyncio.run(remote.create_tree("Session"))
    editor = TreeEditor(remote, tree.id, settings=EditorSettings())
    asyncio.run(editor.open())
    return editor


def test_parse_script_accepts_bare_and_mapping_steps():
    steps = parse_script(
        {
            "steps": [
                {"add": {"ref": "o", "type": "outcome"}},
                {"move": {"node": "o", "x": 1, "y": 2.5}},
                "undo",
                {"redo": None},
            ]
        }
    )
    assert [s.action for s in steps] == ["add", "move", "undo", "redo"]
    assert steps[3].args == {}


@pytest.mark.parametrize(
    "obj, needle",
    [
        ([], "steps list"),
        ({"steps": ["add"]}, "needs arguments"),
        ({"steps": [{"rename": {}}]}, "unknown action"),
        ({"steps": [{"add": {"title": "x"}}]}, "add.type is required"),
        ({"steps": [{"delete": {}}]}, "node must be"),
        ({"steps": [{"move": {"node": "a", "x": "left", "y": 0}}]}, "numeric x and y"),
        ({"steps": [{"add": {"type": "outcome"}, "undo": None}]}, "single-key"),
    ],
)
def test_parse_script_errors(obj, needle):
    with pytest.raises(ScriptError) as ei:
        parse_script(obj)
    assert needle in str(ei.value)


def test_example_session_replays():
    editor = _editor()
    lines = asyncio.run(run_script(editor, load_script("examples/session.yaml")))

    assert lines[:9] == [
        "add outcome -> node-1",
        "add opportunity -> node-2",
        "add opportunity -> node-3",
        "add solution -> node-4",
        "update node-4",
        "delete node-2",
        "undo Delete opportunity node",
        "redo Delete opportunity node",
        "undo Delete opportunity node",
    ]
    assert lines[9].startswith("layout (")

    titles = {n.title: n for n in editor.store.nodes()}
    assert set(titles) == {
        "Increase User Retention",
        "Onboarding is confusing",
        "Users forget to come back",
        "Guided tour",
    }
    assert titles["Guided tour"].status == "in_progress"
    assert titles["Guided tour"].parent_id == titles["Onboarding is confusing"].id
    assert editor.history.undo_description == "Auto layout"


def test_failing_step_reports_its_index():
    editor = _editor()
    steps = parse_script(
        {
            "steps": [
                {"add": {"ref": "o", "type": "outcome"}},
                {"add": {"type": "experiment", "parent": "o"}},
            ]
        }
    )
    with pytest.raises(ScriptStepError) as ei:
        asyncio.run(run_script(editor, steps))
    assert ei.value.index == 1
    assert isinstance(ei.value.error, InvalidChildError)
    assert len(editor.store) == 1


def test_update_accepts_node_type_alias():
    editor = _editor()
    steps = parse_script(
        {
            "steps": [
                {"add": {"ref": "o", "type": "outcome"}},
                {"update": {"node": "o", "node_type": "opportunity", "title": "Now an opportunity"}},
                "undo",
            ]
        }
    )
    lines = asyncio.run(run_script(editor, steps))
    assert lines[-1] == "undo Update outcome node"
    (node,) = editor.store.nodes()
    assert node.type == "outcome"
