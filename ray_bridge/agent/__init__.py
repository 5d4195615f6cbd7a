"""Turn orchestration core."""

from ray_bridge.agent.backups import FileBackupStore
from ray_bridge.agent.guards import BoundedKeySet, ExecutionGuard, payload_key
from ray_bridge.agent.history import ChatHistoryStore
from ray_bridge.agent.notifier import UiNotifier, tool_label
from ray_bridge.agent.orchestrator import TurnOrchestrator
from ray_bridge.agent.session import DEFAULT_USER_ID, SessionContext
from ray_bridge.agent.turn import Continue, Done, Ignored, Turn, TurnOutcome, TurnState

__all__ = [
    "BoundedKeySet",
    "ChatHistoryStore",
    "Continue",
    "DEFAULT_USER_ID",
    "Done",
    "ExecutionGuard",
    "FileBackupStore",
    "Ignored",
    "SessionContext",
    "Turn",
    "TurnOrchestrator",
    "TurnOutcome",
    "TurnState",
    "UiNotifier",
    "payload_key",
    "tool_label",
]
