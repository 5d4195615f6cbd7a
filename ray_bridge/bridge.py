"""Embeddable bridge wiring config, commands, remote channel and webhook together."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import httpx

from ray_bridge.agent.backups import FileBackupStore
from ray_bridge.agent.history import ChatHistoryStore
from ray_bridge.agent.notifier import UiNotifier, UiSink
from ray_bridge.agent.orchestrator import TurnOrchestrator
from ray_bridge.agent.session import SessionContext
from ray_bridge.agent.turn import TurnOutcome
from ray_bridge.channel.client import CancelResult, RemoteClient
from ray_bridge.channel.webhook import WebhookServer
from ray_bridge.commands.executor import CommandExecutor
from ray_bridge.commands.registry import CommandRegistry
from ray_bridge.config.loader import get_data_dir, load_config
from ray_bridge.config.schema import Config
from ray_bridge.observability.metrics import MetricsStore
from ray_bridge.plugins.base import PluginContext
from ray_bridge.plugins.loader import filter_plugins, load_installed_plugins, register_command_plugins


class Bridge:
    """Small embeddable wrapper around TurnOrchestrator for direct use in Python."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        registry: CommandRegistry | None = None,
        plugins: list[Any] | None = None,
        ui_sink: UiSink | None = None,
        data_dir: Path | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or load_config()
        self.data_dir = data_dir or get_data_dir()
        workspace = self.config.workspace_path

        self.session = SessionContext(
            workspace,
            project_id=self.config.session.project_id or None,
            user_id=self.config.session.user_id or None,
        )
        self.registry = registry if registry is not None else CommandRegistry()
        self.plugins = plugins if plugins is not None else filter_plugins(
            load_installed_plugins(),
            enabled=self.config.plugins.enabled,
            allow=self.config.plugins.allow,
            deny=self.config.plugins.deny,
        )
        register_command_plugins(
            self.plugins,
            PluginContext(workspace=workspace, config=self.config, session=self.session),
            registry=self.registry,
        )

        self.metrics = MetricsStore(self.data_dir / "metrics" / "events.jsonl")
        observability = self.config.observability
        self.metrics.prune_events(
            keep_hours=observability.metrics_retention_hours,
            max_events=observability.metrics_max_events,
        )
        remote = self.config.remote
        self.client = RemoteClient(
            remote.api_endpoint,
            self.session,
            cancel_endpoint=remote.cancel_endpoint or None,
            timeout=remote.timeout_seconds,
            headers=remote.headers,
            model=remote.model,
            metrics=self.metrics,
            transport=transport,
        )
        execution = self.config.execution
        self.orchestrator = TurnOrchestrator(
            CommandExecutor(self.registry, metrics=self.metrics),
            self.client,
            self.session,
            UiNotifier(ui_sink),
            backups=FileBackupStore(
                workspace,
                capacity=execution.backup_capacity,
                mutating_commands=execution.mutating_commands,
            ),
            history=ChatHistoryStore(
                self.data_dir / "history",
                max_sessions=self.config.session.history_max_sessions,
                max_messages=self.config.session.history_max_messages,
            ),
            dedup_capacity=execution.dedup_capacity,
            outbound_dedup_capacity=execution.outbound_dedup_capacity,
            stop_on_error=execution.stop_on_error,
        )
        webhook = self.config.webhook
        self.webhook = WebhookServer(
            self.orchestrator.handle_inbound,
            host=webhook.host,
            port=webhook.port,
            path=webhook.path,
        )
        self._closed = False

    async def ask(self, message: str) -> TurnOutcome:
        """Send one user message and drive the turn loop until it settles."""
        self._ensure_open()
        return await self.orchestrator.send_user_message(message)

    async def cancel(self) -> CancelResult:
        self._ensure_open()
        return await self.orchestrator.cancel()

    async def serve(self) -> None:
        """Start the webhook server if enabled."""
        self._ensure_open()
        if self.config.webhook.enabled:
            await self.webhook.start()

    async def serve_forever(self) -> None:
        await self.serve()
        try:
            await asyncio.Event().wait()
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.webhook.stop()
        await self.client.aclose()

    async def __aenter__(self) -> Bridge:
        self._ensure_open()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.aclose()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Bridge is closed. Create a new Bridge instance to continue.")
