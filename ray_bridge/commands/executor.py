"""Command executor: run one call or an ordered batch against the registry."""

from __future__ import annotations

import inspect
import json
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Awaitable, Callable, Union

from loguru import logger

from ray_bridge.commands.registry import CommandRegistry
from ray_bridge.observability.metrics import MetricsStore

CANCELLED_ERROR = "Execution cancelled by user"

BeforeCallHook = Callable[[int, "CommandCall"], Union[Awaitable[None], None]]


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, (bool, dict, list, tuple)):
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError):
            pass
    try:
        return str(value)
    except Exception:
        return object.__repr__(value)


def normalize_args(args: Any) -> list[str]:
    """
    Coerce raw call arguments into a list of strings.

    None becomes an empty list, sequences are stringified element-wise
    (containers JSON-encoded), a bare string or object becomes a single
    element. Never raises.
    """
    if args is None:
        return []
    if isinstance(args, (list, tuple)):
        return [_stringify(item) for item in args]
    if isinstance(args, str):
        return [args]
    return [_stringify(args)]


@dataclass(slots=True)
class CommandCall:
    """A command requested by the remote agent."""

    command: Any
    args: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> CommandCall:
        if isinstance(payload, CommandCall):
            return payload
        if isinstance(payload, dict):
            return cls(command=payload.get("command"), args=payload.get("args"))
        return cls(command=None, args=None)

    def to_dict(self) -> dict[str, Any]:
        return {"command": self.command, "args": self.args}


@dataclass(slots=True)
class CommandExecutionResult:
    """Outcome of one command call. Exactly one of output/error is set."""

    command: str
    args: list[str]
    ok: bool
    output: str | None = None
    error: str | None = None

    @classmethod
    def success(cls, command: str, args: list[str], output: str) -> CommandExecutionResult:
        return cls(command=command, args=args, ok=True, output=output)

    @classmethod
    def failure(cls, command: str, args: list[str], error: str) -> CommandExecutionResult:
        return cls(command=command, args=args, ok=False, error=error)

    def to_wire(self) -> dict[str, Any]:
        """Shape sent back to the remote agent."""
        return {
            "command": self.command,
            "status": "success" if self.ok else "error",
            "output": self.output if self.ok else self.error,
            "args": list(self.args),
        }

    def to_status_dict(self) -> dict[str, Any]:
        """Shape rendered in UI tool-status events."""
        return {
            "command": self.command,
            "args": list(self.args),
            "ok": self.ok,
            "output": self.output,
            "outputLength": len(self.output or ""),
            "error": self.error,
        }


@dataclass(slots=True)
class BatchExecutionResult:
    """Results of a batch; any_executed is False only for an empty call list."""

    any_executed: bool
    results: list[CommandExecutionResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def failed_count(self) -> int:
        return len(self.results) - self.success_count


def _format_error(exc: BaseException) -> str:
    message = str(exc) or exc.__class__.__name__
    code = getattr(exc, "code", None)
    if code:
        return f"{message} [{code}]"
    return message


class CommandExecutor:
    """Dispatch command calls to registry handlers, capturing failures as data."""

    def __init__(self, registry: CommandRegistry, metrics: MetricsStore | None = None):
        self.registry = registry
        self.metrics = metrics

    async def execute_one(self, call: CommandCall | dict[str, Any]) -> CommandExecutionResult:
        """Execute a single call. Never raises for handler or lookup failures."""
        call = CommandCall.from_payload(call)
        args = normalize_args(call.args)
        command = call.command

        if not command or not isinstance(command, str):
            logger.warning(f"Invalid command name in call: {command!r}")
            return CommandExecutionResult.failure(
                "" if command is None else str(command),
                args,
                "Missing or invalid 'command' name",
            )

        spec = self.registry.get(command)
        if spec is None:
            logger.warning(f"Unknown command requested: {command}")
            return CommandExecutionResult.failure(command, args, f"Unknown command '{command}'")

        started = perf_counter()
        try:
            logger.debug(f"Executing command: {command} with args: {args}")
            output = await spec.invoke(args)
            result = CommandExecutionResult.success(command, args, output)
        except Exception as exc:
            logger.error(f"Command '{command}' failed: {exc}")
            result = CommandExecutionResult.failure(command, args, _format_error(exc))

        if self.metrics is not None:
            self.metrics.record_command_call(
                command=command,
                success=result.ok,
                latency_ms=(perf_counter() - started) * 1000.0,
                error=result.error or "",
            )
        return result

    async def execute_batch(
        self,
        calls: list[CommandCall | dict[str, Any]] | None,
        *,
        stop_on_error: bool = False,
        before_call: BeforeCallHook | None = None,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> BatchExecutionResult:
        """
        Execute calls strictly in order, one at a time.

        Args:
            calls: Command calls; anything that is not a list is treated as empty.
            stop_on_error: Halt after the first failed call. Unexecuted calls
                are left out of the results.
            before_call: Hook awaited before each call with (index, call).
            is_cancelled: Checked between calls; once true, the remaining
                calls are reported as cancelled failures.

        Returns:
            The batch result with one entry per executed (or cancelled) call.
        """
        items = [CommandCall.from_payload(c) for c in calls] if isinstance(calls, list) else []
        results: list[CommandExecutionResult] = []

        for index, call in enumerate(items):
            if is_cancelled is not None and is_cancelled():
                logger.info(f"Command execution cancelled at step {index + 1}/{len(items)}")
                for pending in items[index:]:
                    results.append(
                        CommandExecutionResult.failure(
                            str(pending.command or ""),
                            normalize_args(pending.args),
                            CANCELLED_ERROR,
                        )
                    )
                break

            if before_call is not None:
                hooked = before_call(index, call)
                if inspect.isawaitable(hooked):
                    await hooked

            result = await self.execute_one(call)
            results.append(result)
            if not result.ok and stop_on_error:
                logger.info(f"Stopping batch after failed command '{result.command}'")
                break

        return BatchExecutionResult(any_executed=len(results) > 0, results=results)
