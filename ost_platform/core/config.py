from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from ost_platform.core.commands.history import DEFAULT_MAX_HISTORY


def _env_int(key: str, default: int) -> int:
    raw = (os.getenv(key, "") or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from e


def _env_float(key: str, default: float) -> float:
    raw = (os.getenv(key, "") or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{key} must be a number, got {raw!r}") from e


def _env_bool(key: str, default: bool) -> bool:
    raw = (os.getenv(key, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class EditorSettings:
    history_size: int = DEFAULT_MAX_HISTORY
    # Re-run the layout after a child node is added.
    auto_layout: bool = True
    api_url: Optional[str] = None
    http_timeout: float = 10.0
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> EditorSettings:
        """Read settings from OST_* environment variables, falling back to defaults."""
        return cls(
            history_size=_env_int("OST_HISTORY_SIZE", DEFAULT_MAX_HISTORY),
            auto_layout=_env_bool("OST_AUTO_LAYOUT", True),
            api_url=(os.getenv("OST_API_URL", "") or "").strip() or None,
            http_timeout=_env_float("OST_HTTP_TIMEOUT", 10.0),
            log_level=(os.getenv("OST_LOG_LEVEL", "") or "WARNING").strip().upper(),
        )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
