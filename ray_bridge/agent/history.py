"""Chat history persisted as one JSON file per chat."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger

from ray_bridge.utils.helpers import ensure_dir, now_iso

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")

MAX_SESSIONS_PER_PROJECT = 50
MAX_MESSAGES_PER_SESSION = 1000


class ChatHistoryStore:
    """Store chat transcripts in <root>/<chat_id>.json."""

    def __init__(
        self,
        root: Path,
        *,
        max_sessions: int = MAX_SESSIONS_PER_PROJECT,
        max_messages: int = MAX_MESSAGES_PER_SESSION,
    ):
        self.root = ensure_dir(root)
        self.max_sessions = max(1, int(max_sessions))
        self.max_messages = max(1, int(max_messages))

    def _chat_path(self, chat_id: str) -> Path:
        safe = _UNSAFE_CHARS.sub("_", chat_id or "") or "unknown"
        return self.root / f"{safe}.json"

    def _safe_read(self, path: Path) -> dict[str, Any] | None:
        try:
            if not path.exists():
                return None
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read chat history {path}: {e}")
            return None
        return payload if isinstance(payload, dict) else None

    def _safe_write(self, path: Path, payload: dict[str, Any]) -> bool:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(path)
            return True
        except OSError as e:
            logger.warning(f"Failed to write chat history {path}: {e}")
            return False

    def append(self, chat_id: str, project_id: str, role: str, content: str) -> bool:
        """Append one message, creating the chat file on first use."""
        if not content:
            return False
        path = self._chat_path(chat_id)
        now = now_iso()
        existing = self._safe_read(path)
        payload = existing or {
            "chat_id": chat_id,
            "project_id": project_id,
            "created_at": now,
            "messages": [],
        }
        messages = payload.setdefault("messages", [])
        messages.append({"role": role, "content": content, "ts": now})
        if len(messages) > self.max_messages:
            payload["messages"] = messages[-self.max_messages :]
        payload["updated_at"] = now
        if not self._safe_write(path, payload):
            return False
        if existing is None:
            self.prune_sessions(project_id, keep=chat_id)
        return True

    def prune_sessions(self, project_id: str, *, keep: str | None = None) -> int:
        """Delete the least recently updated chats beyond the per-project limit."""
        sessions = self.list_sessions(project_id)
        excess = len(sessions) - self.max_sessions
        if excess <= 0:
            return 0
        candidates = [item for item in reversed(sessions) if item["chat_id"] != keep]
        removed = 0
        for item in candidates[:excess]:
            if self.delete(item["chat_id"]):
                removed += 1
        if removed:
            logger.info(f"Pruned {removed} old chat(s) for project {project_id}")
        return removed

    def load(self, chat_id: str) -> dict[str, Any] | None:
        return self._safe_read(self._chat_path(chat_id))

    def list_sessions(self, project_id: str | None = None) -> list[dict[str, Any]]:
        """Summaries of stored chats, most recently updated first."""
        sessions: list[dict[str, Any]] = []
        for path in self.root.glob("*.json"):
            payload = self._safe_read(path)
            if not payload:
                continue
            if project_id and payload.get("project_id") != project_id:
                continue
            messages = payload.get("messages") or []
            sessions.append(
                {
                    "chat_id": payload.get("chat_id", path.stem),
                    "project_id": payload.get("project_id", ""),
                    "created_at": payload.get("created_at", ""),
                    "updated_at": payload.get("updated_at", ""),
                    "message_count": len(messages),
                }
            )
        sessions.sort(key=lambda item: item["updated_at"], reverse=True)
        return sessions

    def delete(self, chat_id: str) -> bool:
        path = self._chat_path(chat_id)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Failed to delete chat history {path}: {e}")
            return False
