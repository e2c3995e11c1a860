from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class LayoutConfig:
    start_x: float = 100.0
    start_y: float = 100.0
    # Horizontal pitch per width unit, and the drop from a parent to its children.
    horizontal_spacing: float = 350.0
    vertical_spacing: float = 180.0
    # Extra space between two independent root trees.
    tree_gap: float = 100.0


DEFAULT_LAYOUT = LayoutConfig()


class LayoutConfigError(ValueError):
    pass


def load_layout_file(path: str | Path) -> dict[str, float]:
    """Load layout overrides from a YAML file.

    Format:
      horizontal_spacing: 300
      vertical_spacing: 160

    Returns only the keys present in the file.
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise LayoutConfigError("layout file must be a mapping of setting -> number")

    known = {f.name for f in fields(LayoutConfig)}
    out: dict[str, float] = {}
    for k, v in raw.items():
        if k not in known:
            raise LayoutConfigError(f"unknown layout setting '{k}' (known: {', '.join(sorted(known))})")
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise LayoutConfigError(f"layout setting '{k}' must be a number")
        if k in {"horizontal_spacing", "vertical_spacing"} and v <= 0:
            raise LayoutConfigError(f"layout setting '{k}' must be > 0")
        out[k] = float(v)
    return out


def merged_layout(overrides: dict[str, Any] | None = None) -> LayoutConfig:
    if not overrides:
        return DEFAULT_LAYOUT
    return LayoutConfig(**{**DEFAULT_LAYOUT.__dict__, **overrides})


def load_and_merge(layout_file: str | None) -> LayoutConfig:
    if not layout_file:
        return merged_layout()
    return merged_layout(load_layout_file(layout_file))
