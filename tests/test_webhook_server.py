import asyncio
import json
from pathlib import Path
from typing import Any

from ray_bridge.agent.notifier import UiNotifier
from ray_bridge.agent.orchestrator import TurnOrchestrator
from ray_bridge.agent.session import SessionContext
from ray_bridge.channel.webhook import MAX_BODY_BYTES, MAX_HEADER_BYTES, WebhookServer
from ray_bridge.commands.executor import CommandExecutor
from ray_bridge.commands.registry import CommandRegistry


class _FakeReader:
    def __init__(self, payload: bytes, chunk_size: int = 8192):
        self._chunks = [payload[i : i + chunk_size] for i in range(0, len(payload), chunk_size)]

    async def read(self, _size: int = -1) -> bytes:
        if not self._chunks:
            return b""
        return self._chunks.pop(0)


class _FakeWriter:
    def __init__(self):
        self._chunks: list[bytes] = []
        self.closed = False
        self.wait_closed_called = False

    def write(self, data: bytes) -> None:
        self._chunks.append(data)

    async def drain(self) -> None:
        return None

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        self.wait_closed_called = True

    @property
    def payload(self) -> bytes:
        return b"".join(self._chunks)


def _parse_http(payload: bytes) -> tuple[int, str, Any]:
    head, _, body = payload.partition(b"\r\n\r\n")
    head_text = head.decode("utf-8", errors="ignore")
    status_line = head_text.splitlines()[0] if head_text.splitlines() else ""
    try:
        status = int(status_line.split()[1])
    except (IndexError, ValueError):
        status = 0
    return status, head_text, json.loads(body.decode("utf-8")) if body else None


def _request(method: str, path: str, body: bytes = b"") -> bytes:
    head = f"{method} {path} HTTP/1.1\r\nHost: localhost\r\nContent-Type: application/json\r\n"
    head += f"Content-Length: {len(body)}\r\n\r\n"
    return head.encode("utf-8") + body


async def _send(server: WebhookServer, raw: bytes, chunk_size: int = 8192) -> tuple[int, str, Any]:
    reader = _FakeReader(raw, chunk_size=chunk_size)
    writer = _FakeWriter()
    await server._handle_client(reader, writer)
    assert writer.closed is True
    assert writer.wait_closed_called is True
    if server._tasks:
        await asyncio.gather(*list(server._tasks))
    return _parse_http(writer.payload)


def test_webhook_routes():
    received: list[dict[str, Any]] = []

    async def handler(payload: dict[str, Any]) -> None:
        received.append(payload)

    server = WebhookServer(handler, host="127.0.0.1", port=0)

    async def run():
        health = await _send(server, _request("GET", "/health"))
        posted = await _send(server, _request("POST", "/ray-response", b'{"content": "hi"}'))
        invalid = await _send(server, _request("POST", "/ray-response", b"{not json"))
        array = await _send(server, _request("POST", "/ray-response", b"[1, 2]"))
        missing = await _send(server, _request("GET", "/nope"))
        wrong_method = await _send(server, _request("GET", "/ray-response"))
        garbage = await _send(server, b"\r\n\r\n")
        return health, posted, invalid, array, missing, wrong_method, garbage

    health, posted, invalid, array, missing, wrong_method, garbage = asyncio.run(run())

    assert health[0] == 200
    assert "application/json" in health[1].lower()
    assert health[2]["status"] == "ok"
    assert health[2]["timestamp"]
    assert posted[0] == 200
    assert posted[2] == {"status": "received"}
    assert received == [{"content": "hi"}]
    assert invalid[0] == 400
    assert invalid[2] == {"error": "Invalid request"}
    assert array[0] == 400
    assert missing[0] == 404
    assert missing[2] == {"error": "Not found"}
    assert wrong_method[0] == 405
    assert garbage[0] == 400


def test_webhook_reads_body_split_across_chunks():
    received: list[dict[str, Any]] = []

    async def handler(payload: dict[str, Any]) -> None:
        received.append(payload)

    server = WebhookServer(handler, path="hooks/ray")
    body = json.dumps({"content": "x" * 5000}).encode("utf-8")

    status, _, _ = asyncio.run(_send(server, _request("POST", "/hooks/ray", body), chunk_size=1000))

    assert server.path == "/hooks/ray"
    assert status == 200
    assert received[0]["content"] == "x" * 5000


def test_webhook_handler_errors_do_not_break_response():
    async def handler(payload: dict[str, Any]) -> None:
        raise RuntimeError("handler broke")

    server = WebhookServer(handler)
    status, _, body = asyncio.run(_send(server, _request("POST", "/ray-response", b"{}")))

    assert status == 200
    assert body == {"status": "received"}


class _NoopChannel:
    async def send_message(self, message: str, command_results=None) -> dict[str, Any]:
        return {"status": "received"}

    async def cancel(self, task_id=None, chat_id=None):
        return None


def test_identical_webhook_deliveries_update_ui_once(tmp_path: Path):
    events: list[dict[str, Any]] = []
    orchestrator = TurnOrchestrator(
        CommandExecutor(CommandRegistry()),
        _NoopChannel(),
        SessionContext(tmp_path),
        UiNotifier(events.append),
    )
    server = WebhookServer(orchestrator.handle_inbound)
    body = b'{"content": "final answer", "is_final": "true"}'

    async def run():
        first = await _send(server, _request("POST", "/ray-response", body))
        second = await _send(server, _request("POST", "/ray-response", body))
        return first, second

    first, second = asyncio.run(run())

    assert first[0] == 200
    assert second[0] == 200
    assert len(events) == 1
    assert events[0]["data"] == {"content": "final answer", "isFinal": True, "isWorking": False}


def test_webhook_start_stop_with_mocked_server(monkeypatch):
    async def handler(payload: dict[str, Any]) -> None:
        return None

    server = WebhookServer(handler, host="127.0.0.1", port=3001)

    class _FakeSocket:
        def getsockname(self):
            return ("127.0.0.1", 39001)

    class _FakeAsyncServer:
        def __init__(self):
            self.sockets = [_FakeSocket()]
            self.closed = False
            self.wait_closed_called = False

        def close(self) -> None:
            self.closed = True

        async def wait_closed(self) -> None:
            self.wait_closed_called = True

    capture: dict[str, Any] = {}
    fake_server = _FakeAsyncServer()

    async def fake_start_server(client_handler, host, port):
        capture["host"] = host
        capture["port"] = port
        return fake_server

    monkeypatch.setattr("ray_bridge.channel.webhook.asyncio.start_server", fake_start_server)

    async def run_case() -> None:
        await server.start()
        assert server.is_running is True
        assert server.bound_port == 39001
        assert capture == {"host": "127.0.0.1", "port": 3001}

        await server.stop()
        assert fake_server.closed is True
        assert fake_server.wait_closed_called is True
        assert server.is_running is False

    asyncio.run(run_case())


def test_oversized_requests_are_rejected():
    received: list[dict[str, Any]] = []

    async def handler(payload: dict[str, Any]) -> None:
        received.append(payload)

    server = WebhookServer(handler)
    endless_head = b"POST /ray-response HTTP/1.1\r\nX-Filler: " + b"a" * (MAX_HEADER_BYTES + 10)
    huge_body_head = (
        f"POST /ray-response HTTP/1.1\r\nContent-Length: {MAX_BODY_BYTES + 1}\r\n\r\n".encode("utf-8")
    )

    async def run():
        head = await _send(server, endless_head)
        body = await _send(server, huge_body_head + b"{}")
        return head, body

    head, body = asyncio.run(run())

    assert head[0] == 413
    assert head[2] == {"error": "Request too large"}
    assert body[0] == 413
    assert received == []
