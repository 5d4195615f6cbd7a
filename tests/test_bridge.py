import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from ray_bridge.agent.turn import Done
from ray_bridge.bridge import Bridge
from ray_bridge.config.schema import Config
from ray_bridge.plugins.base import PluginBase, PluginContext


class EchoPlugin(PluginBase):
    name = "echo"

    def register_commands(self, registry: Any, context: PluginContext) -> None:
        registry.register("echo", lambda args: " ".join(args), "Echo arguments")


def _config(tmp_path: Path) -> Config:
    config = Config()
    config.session.workspace = str(tmp_path)
    config.remote.api_endpoint = "http://ray.test/api/vscode_user_message"
    return config


def test_bridge_ask_runs_tool_loop(tmp_path: Path):
    bodies: list[dict[str, Any]] = []
    replies = [
        {"content": "Echoing", "command_calls": [{"command": "echo", "args": ["hi", "there"]}]},
        {"content": "Echoed: hi there"},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=replies.pop(0))

    events: list[dict[str, Any]] = []

    async def run():
        async with Bridge(
            _config(tmp_path),
            plugins=[EchoPlugin()],
            ui_sink=events.append,
            data_dir=tmp_path / "data",
            transport=httpx.MockTransport(handler),
        ) as bridge:
            outcome = await bridge.ask("please echo")
            return bridge, outcome

    bridge, outcome = asyncio.run(run())

    assert isinstance(outcome, Done)
    assert outcome.content == "Echoed: hi there"
    assert "echo" in bridge.registry
    assert bodies[0]["message"] == "please echo"
    assert bodies[1]["command_results"] == [
        {"command": "echo", "status": "success", "output": "hi there", "args": ["hi", "there"]}
    ]
    assert bodies[0]["project_id"] == bodies[1]["project_id"] == bridge.session.project_id
    assert events[-1]["data"]["isFinal"] is True
    assert (tmp_path / "data" / "history").exists()
    assert bridge.metrics.snapshot(hours=1)["remote_requests"] == 2


def test_bridge_uses_configured_identity(tmp_path: Path):
    config = _config(tmp_path)
    config.session.project_id = "fixed-project"
    config.session.user_id = "3f0c9a52-8d1e-4b7a-9c3d-2e1f0a9b8c7d"
    config.webhook.port = 4999

    bridge = Bridge(config, plugins=[], data_dir=tmp_path / "data")

    assert bridge.session.project_id == "fixed-project"
    assert bridge.session.is_logged_in is True
    assert bridge.webhook.port == 4999
    assert bridge.client.cancel_endpoint == "http://ray.test/api/agent/stop"
    asyncio.run(bridge.aclose())


def test_closed_bridge_rejects_calls(tmp_path: Path):
    bridge = Bridge(_config(tmp_path), plugins=[], data_dir=tmp_path / "data")
    asyncio.run(bridge.aclose())

    with pytest.raises(RuntimeError):
        asyncio.run(bridge.ask("hi"))


def test_serve_skips_disabled_webhook(tmp_path: Path):
    config = _config(tmp_path)
    config.webhook.enabled = False
    bridge = Bridge(config, plugins=[], data_dir=tmp_path / "data")

    async def run():
        await bridge.serve()
        running = bridge.webhook.is_running
        await bridge.aclose()
        return running

    assert asyncio.run(run()) is False


def test_bridge_prunes_stale_metrics_and_applies_history_limits(tmp_path: Path):
    events_path = tmp_path / "data" / "metrics" / "events.jsonl"
    events_path.parent.mkdir(parents=True)
    stale = {"type": "command_call", "success": True, "latency_ms": 1, "ts": "2020-01-01T00:00:00+00:00"}
    events_path.write_text(json.dumps(stale) + "\n", encoding="utf-8")
    config = _config(tmp_path)
    config.session.history_max_messages = 7

    bridge = Bridge(config, plugins=[], data_dir=tmp_path / "data")

    assert events_path.read_text(encoding="utf-8") == ""
    assert bridge.orchestrator.history is not None
    assert bridge.orchestrator.history.max_messages == 7
    asyncio.run(bridge.aclose())
