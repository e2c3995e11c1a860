from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from ost_platform.core.errors import WorkspaceLoadError

SCHEMA_VERSION = "0.1.0"


def load_workspace(path: str) -> dict[str, Any]:
    """Load a YAML/JSON workspace file.

    Returns a dict with keys: schema_version, tree, nodes, next_id.
    Does not coerce types; validate_tree owns shape checking.
    """

    p = Path(path)
    if not p.exists():
        raise WorkspaceLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    suffix = p.suffix.lower()
    try:
        raw_text = p.read_text(encoding="utf-8")
    except Exception as e:  # pragma: no cover
        raise WorkspaceLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        elif suffix == ".json":
            data = json.loads(raw_text)
        else:
            raise WorkspaceLoadError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .yaml/.yml and .json",
                file=str(p),
            )
    except WorkspaceLoadError:
        raise
    except Exception as e:
        code = "E_YAML_PARSE" if suffix in {".yaml", ".yml"} else "E_JSON_PARSE"
        raise WorkspaceLoadError(code=code, message=str(e), file=str(p)) from e

    if not isinstance(data, dict):
        raise WorkspaceLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            file=str(p),
        )

    normalized: dict[str, Any] = {
        "schema_version": data.get("schema_version"),
        "tree": data.get("tree"),
        "nodes": data.get("nodes"),
    }
    if "next_id" in data:
        normalized["next_id"] = data.get("next_id")

    normalized["__file__"] = str(p)
    return normalized


def dump_workspace(data: dict[str, Any], path: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    payload = {k: v for k, v in data.items() if not k.startswith("__")}
    with open(p, "w", encoding="utf-8") as f:
        if p.suffix.lower() == ".json":
            json.dump(payload, f, indent=2, default=str)
            f.write("\n")
        else:
            yaml.safe_dump(payload, f, sort_keys=False, default_flow_style=False, allow_unicode=True)
