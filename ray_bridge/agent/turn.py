"""Turn payloads, orchestrator states and step outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

WORKING_STATUSES = frozenset({"working", "start working"})
CONTENT_FIELDS = ("message", "content", "response", "text")


class TurnState(str, Enum):
    """Orchestrator state machine states."""

    IDLE = "idle"
    AWAITING_REMOTE = "awaiting_remote"
    EXECUTING_TOOLS = "executing_tools"
    FINALIZED = "finalized"


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True)
class Turn:
    """One message of the agent protocol as received from the remote side."""

    content: str = ""
    status: str | None = None
    command_calls: list[Any] = field(default_factory=list)
    command_results: list[dict[str, Any]] = field(default_factory=list)
    task_id: str | None = None
    chat_id: str | None = None
    project_id: str | None = None
    user_id: str | None = None
    is_final: bool = False
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Turn:
        content = ""
        for key in CONTENT_FIELDS:
            value = payload.get(key)
            if isinstance(value, str) and value:
                content = value
                break

        calls = payload.get("command_calls")
        if calls is None:
            calls = payload.get("commandCalls")
        results = payload.get("command_results")

        status = payload.get("status")
        return cls(
            content=content,
            status=status.strip().lower() if isinstance(status, str) else None,
            command_calls=list(calls) if isinstance(calls, list) else [],
            command_results=[r for r in results if isinstance(r, dict)]
            if isinstance(results, list)
            else [],
            task_id=_optional_str(payload.get("task_id")),
            chat_id=_optional_str(payload.get("chat_id")),
            project_id=_optional_str(payload.get("project_id")),
            user_id=_optional_str(payload.get("user_id")),
            is_final=_coerce_bool(payload.get("is_final")),
            raw=payload,
        )

    @property
    def is_working(self) -> bool:
        return self.status in WORKING_STATUSES

    @property
    def has_command_calls(self) -> bool:
        return len(self.command_calls) > 0


@dataclass(slots=True)
class Done:
    """The conversation reached a message with no further command calls."""

    content: str
    is_final: bool = True


@dataclass(slots=True)
class Continue:
    """Command results must be sent back to the agent as a new turn."""

    message: str
    command_results: list[dict[str, Any]]


@dataclass(slots=True)
class Ignored:
    """The payload caused no state advancement."""

    reason: str


TurnOutcome = Union[Done, Continue, Ignored]
