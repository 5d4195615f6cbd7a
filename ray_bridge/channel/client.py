"""Outbound HTTP client for the remote agent."""

from __future__ import annotations

import json
from dataclasses import dataclass
from time import perf_counter
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx
from loguru import logger

from ray_bridge.agent.session import SessionContext
from ray_bridge.channel.errors import (
    HTTP_STATUS,
    PROTOCOL,
    RemoteChannelError,
    classify_transport_error,
)
from ray_bridge.observability.metrics import MetricsStore

CANCEL_PATH = "/api/agent/stop"
MESSAGE_PATH = "/api/vscode_user_message"


def derive_cancel_endpoint(endpoint: str) -> str:
    """Swap the message path of an API endpoint for the stop path."""
    if MESSAGE_PATH in endpoint:
        return endpoint.replace(MESSAGE_PATH, CANCEL_PATH)
    parts = urlsplit(endpoint)
    return urlunsplit((parts.scheme, parts.netloc, CANCEL_PATH, "", ""))


@dataclass(slots=True)
class CancelResult:
    status: str
    cancelled: bool
    task_id: str | None = None
    chat_id: str | None = None
    error: str = ""


class RemoteClient:
    """POST turns and cancellation requests to the remote agent."""

    def __init__(
        self,
        endpoint: str,
        session: SessionContext,
        *,
        cancel_endpoint: str | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        model: str | None = None,
        metrics: MetricsStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.endpoint = endpoint
        self.cancel_endpoint = cancel_endpoint or derive_cancel_endpoint(endpoint)
        self.session = session
        self.model = model
        self.metrics = metrics
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json", **(headers or {})},
            transport=transport,
        )

    def build_body(
        self,
        message: str,
        command_results: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"message": message}
        if command_results is not None:
            body["command_results"] = command_results
        body["model"] = self.model
        body.update(self.session.wire_fields())
        return body

    def _record(self, kind: str, started: float, error: RemoteChannelError | None = None) -> None:
        if self.metrics is None:
            return
        self.metrics.record_remote_request(
            kind=kind,
            success=error is None,
            latency_ms=(perf_counter() - started) * 1000.0,
            error_kind=error.kind if error else "",
        )

    async def _post(self, url: str, body: dict[str, Any]) -> httpx.Response:
        try:
            return await self._client.post(url, json=body)
        except httpx.HTTPError as e:
            raise classify_transport_error(e, url) from e
        except OSError as e:
            raise classify_transport_error(e, url) from e

    async def send_message(
        self,
        message: str,
        command_results: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """
        Send one turn and return the parsed response body.

        Raises:
            RemoteChannelError: On transport failure, non-2xx status or an
                unusable body.
        """
        body = self.build_body(message, command_results)
        kind = "command_results" if command_results is not None else "message"
        logger.debug(f"Sending {kind} to {self.endpoint}: {body}")
        started = perf_counter()
        try:
            response = await self._post(self.endpoint, body)
            payload = self._parse_response(response)
        except RemoteChannelError as e:
            logger.error(f"Ray API request failed ({e.kind}): {e.detail}")
            self._record(kind, started, e)
            raise
        self._record(kind, started)
        return payload

    def _parse_response(self, response: httpx.Response) -> dict[str, Any]:
        text = response.text
        if not response.is_success:
            raise RemoteChannelError(
                HTTP_STATUS,
                text[:200],
                self.endpoint,
                status_code=response.status_code,
            )
        try:
            payload = json.loads(text) if text.strip() else None
        except json.JSONDecodeError:
            payload = None
            if text.strip():
                return {"content": text}
        if isinstance(payload, dict):
            return payload
        raise RemoteChannelError(PROTOCOL, "Response body is not a JSON object", self.endpoint)

    async def cancel(self, task_id: str | None = None, chat_id: str | None = None) -> CancelResult:
        """Ask the agent to stop; best-effort, never raises."""
        body: dict[str, Any] = {}
        if task_id:
            body["task_id"] = task_id
        elif chat_id:
            body["chat_id"] = chat_id
        if not body:
            return CancelResult(status="ok", cancelled=False)

        started = perf_counter()
        try:
            response = await self._post(self.cancel_endpoint, body)
        except RemoteChannelError as e:
            logger.warning(f"Cancel request failed ({e.kind}): {e.detail}")
            self._record("cancel", started, e)
            return CancelResult(
                status="error",
                cancelled=False,
                task_id=body.get("task_id"),
                chat_id=body.get("chat_id"),
                error=e.user_message(),
            )

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError):
            data = {}
        if not isinstance(data, dict):
            data = {}
        self._record("cancel", started, None if response.is_success else RemoteChannelError(HTTP_STATUS))
        result = CancelResult(
            status=str(data.get("status") or ("ok" if response.is_success else "error")),
            cancelled=bool(data.get("cancelled")),
            task_id=data.get("task_id") or body.get("task_id"),
            chat_id=data.get("chat_id") or body.get("chat_id"),
        )
        logger.info(f"Cancel requested: cancelled={result.cancelled} task={result.task_id} chat={result.chat_id}")
        return result

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> RemoteClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
