import asyncio
from typing import Any

import pytest

from ray_bridge.agent.notifier import UiNotifier, tool_label
from ray_bridge.commands.executor import CommandExecutionResult


@pytest.mark.parametrize(
    ("call", "label"),
    [
        ({"command": "read", "args": ["src/pkg/mod.py"]}, "Reading mod.py"),
        ({"command": "read", "args": []}, "Reading file"),
        ({"command": "searchText", "args": ["short"]}, 'Searching "short"'),
        ({"command": "searchRegex", "args": ["a-very-long-search-term"]}, 'Searching "a-very-long-sea..."'),
        ({"command": "findSymbol", "args": ["Orchestrator"]}, "Finding Orchestrator"),
        ({"command": "findByExtension", "args": [".py"]}, "Finding .py files"),
        ({"command": "ls", "args": ["src/pkg/"]}, "Listing pkg"),
        ({"command": "ls"}, "Listing directory"),
        ({"command": "open", "args": ["C:\\work\\a.txt"]}, "Opening a.txt"),
        ({"command": "write", "args": ["notes/todo.md", "x"]}, "Writing todo.md"),
        ({"command": "createIndex"}, "Creating index"),
        ({"command": "getAllDiagnostics"}, "Analyzing diagnostics"),
        ({"command": "getFileDiagnostics", "args": ["a/b.ts"]}, "Checking b.ts"),
        ({"command": "customThing", "args": ["x"]}, "customThing"),
        ({"args": ["x"]}, "unknown"),
    ],
)
def test_tool_label(call, label):
    assert tool_label(call) == label


def test_tool_status_events():
    events: list[dict[str, Any]] = []
    notifier = UiNotifier(events.append)
    results = [
        CommandExecutionResult.success("read", ["a.txt"], "abc"),
        CommandExecutionResult.failure("ls", ["x"], "ENOENT"),
    ]

    async def run():
        await notifier.tool_starting(["Reading a.txt", "Listing x"])
        await notifier.tool_progress(0, "Reading a.txt", 2)
        await notifier.tool_finished(["Reading a.txt", "Listing x"], results)
        await notifier.tool_failed(["Reading a.txt"], "boom")

    asyncio.run(run())

    assert [e["data"]["status"] for e in events] == ["starting", "working", "partial", "failed"]
    assert events[1]["data"]["currentIndex"] == 1
    finished = events[2]["data"]
    assert finished["successCount"] == 1
    assert finished["failedCount"] == 1
    assert finished["results"][0]["outputLength"] == 3
    assert events[3]["data"]["error"] == "boom"


def test_async_sink_and_sink_failures():
    delivered: list[dict[str, Any]] = []

    async def async_sink(event: dict[str, Any]) -> None:
        delivered.append(event)

    def broken_sink(event: dict[str, Any]) -> None:
        raise RuntimeError("ui gone")

    async def run():
        await UiNotifier(async_sink).ray_response("hi", is_final=True)
        await UiNotifier(broken_sink).working_notice()
        await UiNotifier(None).working_notice()

    asyncio.run(run())

    assert delivered == [{"type": "rayResponse", "data": {"content": "hi", "isFinal": True, "isWorking": False}}]
