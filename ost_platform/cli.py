from __future__ import annotations

import asyncio
import json
from collections import Counter
from dataclasses import replace
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.tree import Tree as RichTree

from ost_platform.core.config import EditorSettings, configure_logging
from ost_platform.core.editor import TreeEditor
from ost_platform.core.errors import OstError, TransportError, ValidationError, WorkspaceLoadError
from ost_platform.core.io.replay import ScriptError, ScriptStepError, load_script, run_script
from ost_platform.core.io.workspace import load_workspace
from ost_platform.core.layout.layout_config import LayoutConfig, LayoutConfigError, load_and_merge
from ost_platform.core.model import NODE_STATUSES, NODE_TYPES, NodePatch, Tree
from ost_platform.core.remote.contracts import RemoteStore, node_to_dict, tree_to_dict
from ost_platform.core.remote.file_store import WorkspaceFileStore
from ost_platform.core.remote.http_store import HttpRemoteStore
from ost_platform.core.store.tree_store import TreeStore
from ost_platform.core.validate.validate_tree import summarize_tree, validate_tree

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()

_state: dict[str, Any] = {"settings": EditorSettings()}


@app.callback()
def _callback(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG|INFO|WARNING|ERROR"),
    api_url: Optional[str] = typer.Option(
        None, "--api-url", help="Use the REST API instead of a workspace file; TARGET is then a tree id"
    ),
) -> None:
    """OST editor CLI."""
    settings = EditorSettings.from_env()
    if api_url:
        settings = replace(settings, api_url=api_url)
    if log_level:
        settings = replace(settings, log_level=log_level.upper())
    _state["settings"] = settings
    configure_logging(settings.log_level)


@app.command("init")
def init(
    path: str = typer.Argument(..., help="Workspace file to create (.yaml/.yml/.json)"),
    title: str = typer.Option(..., "--title", help="Tree title"),
    description: Optional[str] = typer.Option(None, "--description"),
) -> None:
    """Create a new workspace file holding an empty tree."""
    if Path(path).exists():
        _print_errors(
            [WorkspaceLoadError(code="E_FILE_EXISTS", message="file already exists", file=path)]
        )
        raise typer.Exit(code=1)
    if Path(path).suffix.lower() not in {".yaml", ".yml", ".json"}:
        _print_errors(
            [
                WorkspaceLoadError(
                    code="E_UNSUPPORTED_FORMAT",
                    message="supported formats are .yaml/.yml and .json",
                    file=path,
                )
            ]
        )
        raise typer.Exit(code=1)

    async def _run() -> str:
        store = WorkspaceFileStore(path)
        tree = await store.create_tree(title, description)
        return tree.id

    tree_id = _run_async(_run)
    typer.echo(f"OK: created tree {tree_id} in {path}")


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a workspace file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Check a workspace file: shape, titles, parents, cycles and the OST hierarchy."""
    if format not in ("text", "json"):
        _print_errors(
            [
                ValidationError(
                    code="E_VALIDATE_UNKNOWN_FORMAT",
                    message=f"unknown format: {format} (choose one of: text, json)",
                    path="format",
                )
            ]
        )
        raise typer.Exit(code=2)

    def _emit_json(ok: bool, errors: list[OstError], exit_code: int, summary: Optional[dict]) -> None:
        payload = {
            "tool": "ost",
            "command": "validate",
            "ok": ok,
            "error_count": len(errors),
            "errors": [
                {
                    "code": e.code,
                    "message": e.message,
                    "file": e.file,
                    "path": e.path,
                    "severity": "error",
                    "source": "load" if isinstance(e, WorkspaceLoadError) else "validate",
                }
                for e in errors
            ],
            "summary": summary,
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        raise typer.Exit(code=exit_code)

    try:
        data = load_workspace(path)
    except WorkspaceLoadError as e:
        if format == "json":
            _emit_json(False, [e], 1, None)
        _print_errors([e])
        raise typer.Exit(code=1)

    snapshot, errors = validate_tree(data)
    if errors or snapshot is None:
        if format == "json":
            _emit_json(False, list(errors), 2, None)
        _print_errors(list(errors))
        raise typer.Exit(code=2)

    if format == "text":
        typer.echo(summarize_tree(snapshot))
        return

    counts = Counter(n.type for n in snapshot.nodes)
    _emit_json(
        True,
        [],
        0,
        {
            "tree_id": snapshot.tree.id,
            "node_count": len(snapshot.nodes),
            "type_counts": {k: int(v) for k, v in counts.items()},
            "roots": [n.id for n in snapshot.nodes if n.parent_id is None],
        },
    )


@app.command("show")
def show(
    target: str = typer.Argument(..., help="Workspace file (or tree id with --api-url)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Print the tree."""
    if format not in ("text", "json"):
        _print_errors(
            [
                ValidationError(
                    code="E_SHOW_UNKNOWN_FORMAT",
                    message=f"unknown format: {format} (choose one of: text, json)",
                    path="format",
                )
            ]
        )
        raise typer.Exit(code=2)

    async def _noop(editor: TreeEditor) -> None:
        return None

    editor = _with_editor(target, _noop)
    if format == "json":
        payload = {
            "tree": tree_to_dict(editor.tree) if editor.tree else None,
            "nodes": [node_to_dict(n) for n in editor.store.nodes()],
            "edges": [list(e) for e in editor.store.edges()],
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))
        return
    console.print(_render(editor))


@app.command("add")
def add(
    target: str = typer.Argument(..., help="Workspace file (or tree id with --api-url)"),
    node_type: str = typer.Option(..., "--type", help=f"Node type: {'|'.join(NODE_TYPES)}"),
    parent: Optional[str] = typer.Option(None, "--parent", help="Parent node id (omit for a root)"),
    title: Optional[str] = typer.Option(None, "--title", help="Defaults to 'New <type>'"),
    description: Optional[str] = typer.Option(None, "--description"),
    status: str = typer.Option("draft", "--status", help=f"Status: {'|'.join(NODE_STATUSES)}"),
    layout_file: Optional[str] = typer.Option(None, "--layout-file", help="YAML layout overrides"),
) -> None:
    """Add a node; adding a child re-runs the auto-layout."""
    if node_type not in NODE_TYPES:
        _print_errors(
            [
                ValidationError(
                    code="E_INVALID_ENUM",
                    message=f"unknown type: {node_type} (choose one of: {', '.join(NODE_TYPES)})",
                    path="type",
                )
            ]
        )
        raise typer.Exit(code=2)

    async def _run(editor: TreeEditor) -> str:
        parent_node = editor.store.require(parent) if parent else None
        node = await editor.add_node(
            node_type,  # type: ignore[arg-type]
            parent_node,
            title=title,
            description=description,
            status=status,  # type: ignore[arg-type]
        )
        return node.id

    node_id = _with_editor(target, _run, layout_file=layout_file, result=True)
    typer.echo(f"OK: added {node_type} {node_id}")


@app.command("update")
def update(
    target: str = typer.Argument(..., help="Workspace file (or tree id with --api-url)"),
    node_id: str = typer.Argument(..., help="Node id"),
    title: Optional[str] = typer.Option(None, "--title"),
    description: Optional[str] = typer.Option(None, "--description"),
    node_type: Optional[str] = typer.Option(None, "--type"),
    status: Optional[str] = typer.Option(None, "--status"),
    color: Optional[str] = typer.Option(None, "--color"),
) -> None:
    """Update node fields. Changing the type is checked against parent and children."""
    fields = {
        k: v
        for k, v in {
            "title": title,
            "description": description,
            "type": node_type,
            "status": status,
            "color": color,
        }.items()
        if v is not None
    }

    async def _run(editor: TreeEditor) -> None:
        await editor.update_node(editor.store.require(node_id), NodePatch(fields=fields))

    _with_editor(target, _run)
    typer.echo(f"OK: updated {node_id}")


@app.command("delete")
def delete(
    target: str = typer.Argument(..., help="Workspace file (or tree id with --api-url)"),
    node_id: str = typer.Argument(..., help="Node id; its whole subtree is removed"),
) -> None:
    """Delete a node and its subtree."""
    removed: list[int] = []

    async def _run(editor: TreeEditor) -> None:
        before = len(editor.store)
        await editor.delete_node(editor.store.require(node_id))
        removed.append(before - len(editor.store))

    _with_editor(target, _run)
    typer.echo(f"OK: deleted {node_id} ({removed[0]} nodes)")


@app.command("move")
def move(
    target: str = typer.Argument(..., help="Workspace file (or tree id with --api-url)"),
    node_id: str = typer.Argument(...),
    x: float = typer.Argument(...),
    y: float = typer.Argument(...),
) -> None:
    """Set a node's canvas position."""

    async def _run(editor: TreeEditor) -> None:
        await editor.move_node(node_id, x, y)

    _with_editor(target, _run)
    typer.echo(f"OK: moved {node_id} to ({x:g}, {y:g})")


@app.command("layout")
def layout(
    target: str = typer.Argument(..., help="Workspace file (or tree id with --api-url)"),
    layout_file: Optional[str] = typer.Option(None, "--layout-file", help="YAML layout overrides"),
) -> None:
    """Run the auto-layout over the whole tree and persist the positions."""

    async def _run(editor: TreeEditor) -> int:
        return await editor.run_auto_layout()

    moved = _with_editor(target, _run, layout_file=layout_file, result=True)
    typer.echo(f"OK: layout moved {moved} nodes")


@app.command("replay")
def replay(
    target: str = typer.Argument(..., help="Workspace file (or tree id with --api-url)"),
    script: str = typer.Argument(..., help="YAML script of add/update/delete/move/layout/undo/redo steps"),
    layout_file: Optional[str] = typer.Option(None, "--layout-file", help="YAML layout overrides"),
) -> None:
    """Run a scripted editing session (undo/redo included) against the tree."""
    try:
        steps = load_script(script)
    except FileNotFoundError:
        _print_errors(
            [WorkspaceLoadError(code="E_FILE_NOT_FOUND", message="script file does not exist", file=script)]
        )
        raise typer.Exit(code=1)
    except ScriptError as e:
        _print_errors([ValidationError(code="E_SCRIPT_INVALID", message=str(e), file=script)])
        raise typer.Exit(code=2)

    async def _run(editor: TreeEditor) -> list[str]:
        try:
            return await run_script(editor, steps)
        except ScriptStepError as e:
            raise type(e.error)(
                code=e.error.code,
                message=e.error.message,
                file=script,
                path=f"steps[{e.index}]",
            ) from e
        except ScriptError as e:
            raise ValidationError(code="E_SCRIPT_INVALID", message=str(e), file=script) from e

    lines = _with_editor(target, _run, layout_file=layout_file, result=True)
    for i, line in enumerate(lines, start=1):
        typer.echo(f"{i}. {line}")
    typer.echo(f"OK: replayed {len(lines)} steps")


@app.command("trees")
def trees(
    target: Optional[str] = typer.Argument(None, help="Workspace file (omit with --api-url)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """List trees: every tree behind --api-url, or the one tree in a workspace file."""
    if format not in ("text", "json"):
        _print_errors(
            [
                ValidationError(
                    code="E_TREES_UNKNOWN_FORMAT",
                    message=f"unknown format: {format} (choose one of: text, json)",
                    path="format",
                )
            ]
        )
        raise typer.Exit(code=2)

    async def _run(remote: RemoteStore) -> list[Tree]:
        return await remote.list_trees()

    found: list[Tree] = _with_remote(target, _run)
    if format == "json":
        typer.echo(json.dumps({"trees": [tree_to_dict(t) for t in found]}, indent=2, sort_keys=True))
        return
    if not found:
        typer.echo("No trees.")
        return
    for t in found:
        updated = t.updated_at.isoformat(timespec="seconds") if t.updated_at else "-"
        typer.echo(f"{t.id}\t{t.title}\t(updated {updated})")


@app.command("rename")
def rename(
    target: str = typer.Argument(..., help="Workspace file (or tree id with --api-url)"),
    title: Optional[str] = typer.Option(None, "--title", help="New tree title"),
    description: Optional[str] = typer.Option(None, "--description", help="New tree description"),
) -> None:
    """Change the tree's title and/or description."""

    async def _run(editor: TreeEditor) -> Tree:
        return await editor.rename_tree(title=title, description=description)

    tree = _with_editor(target, _run, result=True)
    typer.echo(f"OK: renamed tree {tree.id} to {tree.title}")


@app.command("delete-tree")
def delete_tree(
    target: str = typer.Argument(..., help="Tree id with --api-url; workspace files keep their tree"),
    yes: bool = typer.Option(False, "--yes", help="Do not ask for confirmation"),
) -> None:
    """Delete a tree and all of its nodes. Not undoable."""
    if not yes:
        typer.confirm(f"Delete tree {target} and all of its nodes?", abort=True)

    async def _run(remote: RemoteStore) -> str:
        tree_id = remote.tree_id if isinstance(remote, WorkspaceFileStore) else target
        return await remote.delete_tree(tree_id)

    deleted = _with_remote(target, _run)
    typer.echo(f"OK: deleted tree {deleted}")


def _with_remote(target: Optional[str], fn: Callable[[RemoteStore], Awaitable[Any]]) -> Any:
    """Run ``fn`` against the HTTP store (with --api-url) or the workspace file ``target``."""
    settings: EditorSettings = _state["settings"]

    async def _run() -> Any:
        if settings.api_url:
            async with HttpRemoteStore(settings.api_url, timeout=settings.http_timeout) as remote:
                return await fn(remote)
        if not target:
            raise WorkspaceLoadError(
                code="E_TARGET_REQUIRED", message="pass a workspace file, or --api-url to use the REST API"
            )
        return await fn(WorkspaceFileStore.open(target))

    return _run_async(_run)


def _with_editor(
    target: str,
    fn: Callable[[TreeEditor], Awaitable[Any]],
    *,
    layout_file: Optional[str] = None,
    result: bool = False,
) -> Any:
    """Open an editor on ``target``, run ``fn`` and map errors to exit codes.

    Returns fn's result when ``result`` is set, else the editor (for read-only commands).
    """
    layout_cfg = _load_layout(layout_file)
    settings: EditorSettings = _state["settings"]

    async def _run() -> Any:
        if settings.api_url:
            remote = HttpRemoteStore(settings.api_url, timeout=settings.http_timeout)
            async with remote:
                editor = TreeEditor(remote, target, settings=settings, layout=layout_cfg)
                await editor.open()
                out = await fn(editor)
        else:
            store = WorkspaceFileStore.open(target)
            editor = TreeEditor(store, store.tree_id, settings=settings, layout=layout_cfg)
            await editor.open()
            out = await fn(editor)
        return out if result else editor

    return _run_async(_run)


def _run_async(fn: Callable[[], Awaitable[Any]]) -> Any:
    try:
        return asyncio.run(fn())
    except (WorkspaceLoadError, TransportError) as e:
        _print_errors([e])
        raise typer.Exit(code=1)
    except OstError as e:
        _print_errors([e])
        raise typer.Exit(code=2)


def _load_layout(layout_file: Optional[str]) -> LayoutConfig:
    try:
        return load_and_merge(layout_file)
    except FileNotFoundError:
        _print_errors(
            [
                WorkspaceLoadError(
                    code="E_LAYOUT_FILE_NOT_FOUND",
                    message=f"layout file not found: {layout_file}",
                    path="layout_file",
                )
            ]
        )
        raise typer.Exit(code=1)
    except LayoutConfigError as e:
        _print_errors(
            [ValidationError(code="E_LAYOUT_FILE_INVALID", message=str(e), path="layout_file")]
        )
        raise typer.Exit(code=2)


def _render(editor: TreeEditor) -> RichTree:
    title = editor.tree.title if editor.tree else editor.tree_id
    root = RichTree(f"[bold]{escape(title)}[/bold] ({len(editor.store)} nodes)")

    def label(store: TreeStore, node_id: str) -> str:
        n = store.require(node_id)
        return f"[cyan]{n.type.upper()}[/cyan] {escape(n.title)} [dim]{n.id} · {n.status.replace('_', ' ')}[/dim]"

    def add(branch: RichTree, node_id: str) -> None:
        child_branch = branch.add(label(editor.store, node_id))
        for child in editor.store.children(node_id):
            add(child_branch, child.id)

    for r in editor.store.roots():
        add(root, r.id)
    return root


def _print_errors(errors: list[OstError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="ost")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
