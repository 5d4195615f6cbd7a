from pathlib import Path

import pytest

from ray_bridge.agent.session import (
    DEFAULT_USER_ID,
    SessionContext,
    is_uuid4,
    project_id_for_workspace,
)


def test_project_id_is_deterministic_for_workspace(tmp_path: Path):
    first = project_id_for_workspace(tmp_path)
    second = project_id_for_workspace(str(tmp_path))

    assert first == second
    assert len(first) == 36
    assert first.split("-")[2].startswith("4")
    assert project_id_for_workspace(tmp_path / "other") != first


def test_project_id_without_workspace_is_random():
    assert project_id_for_workspace(None) != project_id_for_workspace(None)


def test_chat_id_is_generated_once(tmp_path: Path):
    session = SessionContext(tmp_path)

    chat_id = session.chat_id
    assert chat_id.startswith("chat-")
    assert len(chat_id) == len("chat-") + 16
    assert session.chat_id == chat_id

    new_id = session.start_new_chat()
    assert new_id != chat_id
    assert session.chat_id == new_id


def test_default_user_and_login(tmp_path: Path):
    session = SessionContext(tmp_path)
    assert session.user_id == DEFAULT_USER_ID
    assert session.is_logged_in is False

    session.login("3f0c9a52-8d1e-4b7a-9c3d-2e1f0a9b8c7d", token="secret")
    assert session.is_logged_in is True
    assert session.token == "secret"

    session.logout()
    assert session.user_id == DEFAULT_USER_ID
    assert session.token is None


def test_login_accepts_non_uuid_but_rejects_empty(tmp_path: Path):
    session = SessionContext(tmp_path)

    session.login("alice")
    assert session.user_id == "alice"
    with pytest.raises(ValueError):
        session.login("   ")


def test_is_uuid4():
    assert is_uuid4("3f0c9a52-8d1e-4b7a-9c3d-2e1f0a9b8c7d") is True
    assert is_uuid4("3f0c9a52-8d1e-1b7a-9c3d-2e1f0a9b8c7d") is False
    assert is_uuid4("nope") is False


def test_task_id_tracking_and_reset(tmp_path: Path):
    session = SessionContext(tmp_path, project_id="fixed-project")
    session.set_last_task_id("task-1")
    session.set_last_task_id("")
    assert session.last_task_id == "task-1"

    chat_id = session.chat_id
    session.reset()
    assert session.last_task_id is None
    assert session.chat_id != chat_id
    assert session.project_id == "fixed-project"


def test_adopt_remote_session_and_reset_project(tmp_path: Path):
    session = SessionContext(tmp_path)
    derived = session.project_id

    session.adopt_remote_session("chat-remote", None)
    assert session.chat_id != "chat-remote"

    session.adopt_remote_session("chat-remote", "proj-remote")
    assert session.chat_id == "chat-remote"
    assert session.project_id == "proj-remote"

    assert session.reset_project() == derived


def test_wire_fields_and_info(tmp_path: Path):
    session = SessionContext(tmp_path, project_id="p", user_id="u-1")
    session.set_last_task_id("t")

    assert session.wire_fields() == {"project_id": "p", "chat_id": session.chat_id, "user_id": "u-1"}
    assert session.info() == {"projectId": "p", "chatId": session.chat_id, "userId": "u-1", "taskId": "t"}
