from __future__ import annotations

import logging
from collections import deque
from typing import Any, Callable, Optional, Protocol

from ost_platform.core.errors import CommandInFlightError

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 50

StateListener = Callable[[bool, bool], None]


class CommandExecutor(Protocol):
    async def execute(self, command: Any) -> None: ...

    async def undo(self, command: Any) -> None: ...


class CommandHistory:
    """Bounded undo/redo stacks over executed commands.

    - execute: push on success (oldest entry evicted past ``max_size``), clear redo.
    - undo/redo: a command whose reverse action fails is dropped, not re-queued, and
      ``out_of_sync`` is set until the caller reloads and calls ``clear()``.
    - Calls are serialized; one made while another is still running is rejected.
    """

    def __init__(self, executor: CommandExecutor, max_size: int = DEFAULT_MAX_HISTORY) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._executor = executor
        self.max_size = max_size
        self._undo: deque[Any] = deque(maxlen=max_size)
        self._redo: deque[Any] = deque(maxlen=max_size)
        self._listeners: list[StateListener] = []
        self._busy = False
        self.out_of_sync = False

    @property
    def can_undo(self) -> bool:
        return len(self._undo) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._redo) > 0

    @property
    def undo_size(self) -> int:
        return len(self._undo)

    @property
    def redo_size(self) -> int:
        return len(self._redo)

    @property
    def undo_description(self) -> Optional[str]:
        return self._undo[-1].description if self._undo else None

    @property
    def redo_description(self) -> Optional[str]:
        return self._redo[-1].description if self._redo else None

    @property
    def busy(self) -> bool:
        return self._busy

    def subscribe(self, listener: StateListener) -> None:
        """Register ``listener(can_undo, can_redo)``; it is called once right away."""
        self._listeners.append(listener)
        listener(self.can_undo, self.can_redo)

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
        self.out_of_sync = False
        self._notify()

    async def execute(self, command: Any) -> None:
        self._enter()
        try:
            await self._executor.execute(command)
        finally:
            self._busy = False

        if len(self._undo) == self.max_size:
            logger.debug("history full; dropping %s", self._undo[0].description)
        self._undo.append(command)
        self._redo.clear()
        logger.info("did: %s", command.description)
        self._notify()

    async def undo(self) -> None:
        if not self._undo:
            return
        self._enter()
        command = self._undo.pop()
        try:
            await self._executor.undo(command)
        except Exception:
            self._drop(command, "undo")
            raise
        finally:
            self._busy = False

        self._redo.append(command)
        logger.info("undid: %s", command.description)
        self._notify()

    async def redo(self) -> None:
        if not self._redo:
            return
        self._enter()
        command = self._redo.pop()
        try:
            await self._executor.execute(command)
        except Exception:
            self._drop(command, "redo")
            raise
        finally:
            self._busy = False

        self._undo.append(command)
        logger.info("redid: %s", command.description)
        self._notify()

    def _enter(self) -> None:
        if self._busy:
            raise CommandInFlightError(
                code="E_COMMAND_IN_FLIGHT",
                message="another command is still running",
            )
        self._busy = True

    def _drop(self, command: Any, action: str) -> None:
        self.out_of_sync = True
        logger.warning(
            "%s of '%s' failed; command dropped, tree may differ from the remote store until reload",
            action,
            command.description,
        )
        self._notify()

    def _notify(self) -> None:
        for listener in self._listeners:
            listener(self.can_undo, self.can_redo)
