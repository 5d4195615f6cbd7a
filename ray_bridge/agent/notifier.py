"""UI events emitted while a turn is processed."""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Union

from loguru import logger

from ray_bridge.commands.executor import CommandCall, CommandExecutionResult, normalize_args

UiEvent = dict[str, Any]
UiSink = Callable[[UiEvent], Union[Awaitable[None], None]]

SEARCH_TERM_LIMIT = 15


def _basename(path: str) -> str:
    parts = [p for p in path.replace("\\", "/").split("/") if p]
    return parts[-1] if parts else path


def tool_label(call: CommandCall | dict[str, Any]) -> str:
    """Human-readable label for a command call."""
    call = CommandCall.from_payload(call)
    command = call.command if isinstance(call.command, str) else ""
    args = normalize_args(call.args)
    first = args[0] if args else ""

    if command == "read":
        return f"Reading {_basename(first) if first else 'file'}"
    if command in ("searchText", "searchRegex"):
        term = first or "text"
        if len(term) > SEARCH_TERM_LIMIT:
            term = term[:SEARCH_TERM_LIMIT] + "..."
        return f'Searching "{term}"'
    if command in ("findSymbol", "findSymbolFromIndex"):
        return f"Finding {first or 'symbol'}"
    if command == "findByExtension":
        return f"Finding {first or 'files'} files"
    if command == "loadIndex":
        return "Loading index"
    if command == "createIndex":
        return "Creating index"
    if command == "updateIndex":
        return "Updating index"
    if command in ("ls", "list"):
        return f"Listing {(_basename(first) or first) if first else 'directory'}"
    if command == "open":
        return f"Opening {_basename(first) if first else 'file'}"
    if command == "write":
        return f"Writing {_basename(first) if first else 'file'}"
    if command == "getAllDiagnostics":
        return "Analyzing diagnostics"
    if command == "getFileDiagnostics":
        return f"Checking {_basename(first) if first else 'file'}"
    return command or "unknown"


class UiNotifier:
    """Deliver toolStatus and rayResponse events to a UI sink."""

    def __init__(self, sink: UiSink | None = None):
        self.sink = sink

    async def emit(self, event: UiEvent) -> None:
        if self.sink is None:
            return
        try:
            delivered = self.sink(event)
            if inspect.isawaitable(delivered):
                await delivered
        except Exception as e:
            logger.warning(f"UI sink failed for {event.get('type')} event: {e}")

    async def _tool_status(self, **data: Any) -> None:
        await self.emit({"type": "toolStatus", "data": data})

    async def tool_starting(self, labels: list[str]) -> None:
        await self._tool_status(status="starting", tools=labels, totalCount=len(labels))

    async def tool_progress(self, index: int, label: str, total: int) -> None:
        await self._tool_status(
            status="working",
            tools=[label],
            currentIndex=index + 1,
            totalCount=total,
        )

    async def tool_finished(
        self,
        labels: list[str],
        results: list[CommandExecutionResult],
    ) -> None:
        success_count = sum(1 for result in results if result.ok)
        failed_count = len(results) - success_count
        await self._tool_status(
            status="completed" if failed_count == 0 else "partial",
            tools=labels,
            totalCount=len(results),
            successCount=success_count,
            failedCount=failed_count,
            results=[result.to_status_dict() for result in results],
        )

    async def tool_results_received(self, results: list[dict[str, Any]]) -> None:
        """Summarize results echoed back by the agent without new calls."""
        success_count = sum(1 for r in results if r.get("status") == "success" or r.get("ok") is True)
        await self._tool_status(
            status="completed",
            tools=[str(r.get("command", "")) for r in results],
            totalCount=len(results),
            successCount=success_count,
            failedCount=len(results) - success_count,
        )

    async def tool_failed(self, labels: list[str], error: str) -> None:
        await self._tool_status(
            status="failed",
            tools=labels,
            totalCount=len(labels),
            successCount=0,
            failedCount=len(labels),
            error=error,
        )

    async def ray_response(self, content: str, *, is_final: bool, is_working: bool = False) -> None:
        await self.emit(
            {
                "type": "rayResponse",
                "data": {"content": content, "isFinal": is_final, "isWorking": is_working},
            }
        )

    async def working_notice(self, content: str = "") -> None:
        await self.ray_response(content or "Working...", is_final=False, is_working=True)
