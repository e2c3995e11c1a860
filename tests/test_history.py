import asyncio

import pytest

from ost_platform.core.commands.history import CommandHistory
from ost_platform.core.errors import CommandInFlightError, OstError, TransportError


class Step:
    def __init__(self, name: str) -> None:
        self.name = name

    @property
    def description(self) -> str:
        return self.name


class RecordingExecutor:
    def __init__(self) -> None:
        self.log: list[str] = []
        self.fail_undo: set[str] = set()
        self.fail_execute: set[str] = set()

    async def execute(self, command) -> None:
        if command.name in self.fail_execute:
            raise TransportError(code="E_TRANSPORT", message="down")
        self.log.append(f"do {command.name}")

    async def undo(self, command) -> None:
        if command.name in self.fail_undo:
            raise TransportError(code="E_TRANSPORT", message="down")
        self.log.append(f"undo {command.name}")


def test_execute_undo_redo_order():
    ex = RecordingExecutor()
    h = CommandHistory(ex)

    async def run():
        await h.execute(Step("a"))
        await h.execute(Step("b"))
        await h.undo()
        await h.undo()
        await h.redo()

    asyncio.run(run())
    assert ex.log == ["do a", "do b", "undo b", "undo a", "do a"]
    assert h.undo_description == "a"
    assert h.redo_description == "b"


def test_execute_clears_redo():
    h = CommandHistory(RecordingExecutor())

    async def run():
        await h.execute(Step("a"))
        await h.undo()
        await h.execute(Step("b"))

    asyncio.run(run())
    assert not h.can_redo
    assert h.undo_size == 1


def test_bound_evicts_oldest():
    h = CommandHistory(RecordingExecutor(), max_size=50)

    async def run():
        for i in range(51):
            await h.execute(Step(f"s{i}"))
        for _ in range(60):
            await h.undo()

    asyncio.run(run())
    assert h.undo_size == 0
    assert h.redo_size == 50
    assert h.redo_description == "s1"


def test_failed_execute_is_not_pushed():
    ex = RecordingExecutor()
    ex.fail_execute.add("bad")
    h = CommandHistory(ex)

    with pytest.raises(OstError):
        asyncio.run(h.execute(Step("bad")))
    assert not h.can_undo
    assert not h.busy


def test_failed_undo_drops_command_and_flags_out_of_sync():
    ex = RecordingExecutor()
    ex.fail_undo.add("b")
    h = CommandHistory(ex)

    async def run():
        await h.execute(Step("a"))
        await h.execute(Step("b"))
        await h.undo()

    with pytest.raises(OstError):
        asyncio.run(run())
    assert h.out_of_sync
    assert h.undo_description == "a"
    assert not h.can_redo

    h.clear()
    assert not h.out_of_sync
    assert not h.can_undo


def test_undo_and_redo_on_empty_stacks_are_noops():
    ex = RecordingExecutor()
    h = CommandHistory(ex)
    asyncio.run(h.undo())
    asyncio.run(h.redo())
    assert ex.log == []


def test_listener_sees_state_changes():
    h = CommandHistory(RecordingExecutor())
    seen: list[tuple[bool, bool]] = []
    h.subscribe(lambda u, r: seen.append((u, r)))

    async def run():
        await h.execute(Step("a"))
        await h.undo()
        await h.redo()

    asyncio.run(run())
    assert seen == [(False, False), (True, False), (False, True), (True, False)]


def test_overlapping_calls_are_rejected():
    class SlowExecutor(RecordingExecutor):
        async def execute(self, command) -> None:
            await asyncio.sleep(0.01)
            await super().execute(command)

    ex = SlowExecutor()
    h = CommandHistory(ex)

    async def run():
        first = asyncio.create_task(h.execute(Step("a")))
        await asyncio.sleep(0)
        with pytest.raises(CommandInFlightError):
            await h.execute(Step("b"))
        await first

    asyncio.run(run())
    assert ex.log == ["do a"]
    assert h.undo_size == 1


def test_max_size_must_be_positive():
    with pytest.raises(ValueError):
        CommandHistory(RecordingExecutor(), max_size=0)
