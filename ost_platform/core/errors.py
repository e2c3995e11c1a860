from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class OstError(Exception):
    """Base error envelope. Carries a stable code so the CLI can report it as-is."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<tree>"
        return f"{loc}: {self.code}: {self.message}"


class WorkspaceLoadError(OstError):
    pass


class ValidationError(OstError):
    pass


class HierarchyError(OstError):
    pass


class InvalidChildError(HierarchyError):
    pass


class NoChildrenAllowedError(InvalidChildError):
    pass


class DanglingParentError(OstError):
    pass


class NotFoundError(OstError):
    pass


class TransportError(OstError):
    pass


class CommandInFlightError(OstError):
    pass
