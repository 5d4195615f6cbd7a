"""Process-wide conversation identifiers attached to every outbound turn."""

from __future__ import annotations

import hashlib
import re
import secrets
import uuid
from pathlib import Path
from typing import Any

from loguru import logger

DEFAULT_USER_ID = "00000000-0000-4000-8000-000000000000"

_UUID4_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def project_id_for_workspace(workspace: Path | str | None) -> str:
    """Derive a stable UUID-shaped project id from a workspace path."""
    if not workspace:
        return str(uuid.uuid4())
    digest = hashlib.md5(str(workspace).encode("utf-8")).hexdigest()
    return f"{digest[0:8]}-{digest[8:12]}-4{digest[13:16]}-{digest[16:20]}-{digest[20:32]}"


def new_chat_id() -> str:
    return f"chat-{secrets.token_hex(8)}"


def is_uuid4(value: str) -> bool:
    return bool(_UUID4_RE.match(value or ""))


class SessionContext:
    """
    Project, chat, user and task identifiers for the current conversation.

    Mutated only by explicit login/reset calls and by identifiers the agent
    pushes back; read whenever an outbound turn is built.
    """

    def __init__(
        self,
        workspace: Path | str | None = None,
        *,
        project_id: str | None = None,
        user_id: str | None = None,
    ):
        self.workspace = Path(workspace) if workspace else None
        self._fixed_project_id = project_id or None
        self.project_id = project_id or project_id_for_workspace(self.workspace)
        self._chat_id: str | None = None
        self.user_id = DEFAULT_USER_ID
        self.token: str | None = None
        self._last_task_id: str | None = None
        if user_id:
            self.login(user_id)

    @property
    def chat_id(self) -> str:
        if self._chat_id is None:
            self._chat_id = new_chat_id()
            logger.debug(f"Generated chat id: {self._chat_id}")
        return self._chat_id

    @property
    def last_task_id(self) -> str | None:
        return self._last_task_id

    @property
    def is_logged_in(self) -> bool:
        return self.user_id != DEFAULT_USER_ID

    def login(self, user_id: str, token: str | None = None) -> None:
        user_id = (user_id or "").strip()
        if not user_id:
            raise ValueError("user_id must not be empty")
        if not is_uuid4(user_id):
            logger.warning(f"User id is not a UUID4, using it anyway: {user_id}")
        self.user_id = user_id
        self.token = token
        logger.info(f"Logged in as {user_id}")

    def logout(self) -> None:
        self.user_id = DEFAULT_USER_ID
        self.token = None
        logger.info("Logged out, using default user id")

    def set_last_task_id(self, task_id: str | None) -> None:
        if task_id:
            self._last_task_id = task_id

    def start_new_chat(self) -> str:
        self._chat_id = new_chat_id()
        self._last_task_id = None
        logger.info(f"Started new chat: {self._chat_id}")
        return self._chat_id

    def reset_project(self) -> str:
        self.project_id = self._fixed_project_id or project_id_for_workspace(self.workspace)
        return self.project_id

    def reset(self) -> None:
        """Forget chat and task; keep project and login."""
        self._chat_id = None
        self._last_task_id = None

    def adopt_remote_session(self, chat_id: str | None, project_id: str | None) -> None:
        """Switch to identifiers the agent pushed for this conversation."""
        if not chat_id or not project_id:
            return
        if chat_id != self._chat_id or project_id != self.project_id:
            logger.info(f"Adopting remote session: chat={chat_id} project={project_id}")
        self._chat_id = chat_id
        self.project_id = project_id

    def wire_fields(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "chat_id": self.chat_id,
            "user_id": self.user_id,
        }

    def info(self) -> dict[str, Any]:
        return {
            "projectId": self.project_id,
            "chatId": self.chat_id,
            "userId": self.user_id,
            "taskId": self._last_task_id,
        }
