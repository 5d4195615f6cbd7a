"""Inbound webhook server through which the agent pushes turns."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable
from urllib.parse import urlsplit

from loguru import logger

from ray_bridge.utils.helpers import now_iso

PayloadHandler = Callable[[dict[str, Any]], Awaitable[Any]]

MAX_BODY_BYTES = 10 * 1024 * 1024
MAX_HEADER_BYTES = 64 * 1024
_READ_CHUNK = 65536
_JSON = "application/json; charset=utf-8"


class RequestTooLarge(Exception):
    """Request head or declared body exceeds the server limits."""


class WebhookServer:
    """Serve GET /health and POST <path> on a raw asyncio stream server."""

    def __init__(
        self,
        handler: PayloadHandler,
        *,
        host: str = "0.0.0.0",
        port: int = 3001,
        path: str = "/ray-response",
    ):
        self.handler = handler
        self.host = str(host or "0.0.0.0").strip()
        self.port = max(0, int(port))
        raw_path = str(path or "/ray-response").strip()
        self.path = raw_path if raw_path.startswith("/") else f"/{raw_path}"
        self._server: asyncio.AbstractServer | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def bound_port(self) -> int:
        if not self._server or not self._server.sockets:
            return self.port
        return int(self._server.sockets[0].getsockname()[1])

    async def start(self) -> None:
        if self._server:
            return
        self._server = await asyncio.start_server(
            self._handle_client, host=self.host, port=self.port
        )
        logger.info(f"Webhook server listening on {self.host}:{self.bound_port}{self.path}")

    async def stop(self) -> None:
        if not self._server:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Webhook server stopped")

    def _http_response(self, status: int, payload: dict[str, Any], content_type: str = _JSON) -> bytes:
        reason = {
            200: "OK",
            400: "Bad Request",
            404: "Not Found",
            405: "Method Not Allowed",
            413: "Payload Too Large",
            500: "Internal Server Error",
        }.get(status, "OK")
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        headers = [
            f"HTTP/1.1 {status} {reason}",
            f"Content-Type: {content_type}",
            f"Content-Length: {len(data)}",
            "Connection: close",
            "",
            "",
        ]
        return "\r\n".join(headers).encode("utf-8") + data

    async def _read_request(self, reader: asyncio.StreamReader) -> tuple[str, dict[str, str], bytes]:
        raw = b""
        while b"\r\n\r\n" not in raw:
            chunk = await reader.read(_READ_CHUNK)
            if not chunk:
                break
            raw += chunk
            if b"\r\n\r\n" not in raw and len(raw) > MAX_HEADER_BYTES:
                raise RequestTooLarge(f"request head exceeds {MAX_HEADER_BYTES} bytes")
        head, _, body = raw.partition(b"\r\n\r\n")
        lines = head.decode("utf-8", errors="ignore").split("\r\n")
        request_line = lines[0].strip() if lines else ""
        headers: dict[str, str] = {}
        for line in lines[1:]:
            name, sep, value = line.partition(":")
            if sep:
                headers[name.strip().lower()] = value.strip()

        try:
            length = int(headers.get("content-length", "0"))
        except ValueError:
            length = 0
        if length > MAX_BODY_BYTES:
            raise RequestTooLarge(f"request body of {length} bytes exceeds {MAX_BODY_BYTES}")
        length = max(0, length)
        while len(body) < length:
            chunk = await reader.read(min(_READ_CHUNK, length - len(body)))
            if not chunk:
                break
            body += chunk
        return request_line, headers, body[:length] if length else body

    def _dispatch(self, payload: dict[str, Any]) -> None:
        task = asyncio.create_task(self._run_handler(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_handler(self, payload: dict[str, Any]) -> None:
        try:
            await self.handler(payload)
        except Exception as e:
            logger.error(f"Webhook payload handler failed: {e}")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            request_line, _headers, body = await self._read_request(reader)
            parts = request_line.split()
            if len(parts) < 2:
                writer.write(self._http_response(400, {"error": "Invalid request"}))
                await writer.drain()
                return

            method = parts[0].upper()
            path = urlsplit(parts[1]).path or "/"

            if path == "/health":
                if method != "GET":
                    writer.write(self._http_response(405, {"error": "Method not allowed"}))
                else:
                    writer.write(self._http_response(200, {"status": "ok", "timestamp": now_iso()}))
                await writer.drain()
                return

            if path != self.path:
                writer.write(self._http_response(404, {"error": "Not found"}))
                await writer.drain()
                return

            if method != "POST":
                writer.write(self._http_response(405, {"error": "Method not allowed"}))
                await writer.drain()
                return

            try:
                payload = json.loads(body.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                payload = None
            if not isinstance(payload, dict):
                logger.warning("Webhook received an invalid request body")
                writer.write(self._http_response(400, {"error": "Invalid request"}))
                await writer.drain()
                return

            logger.debug(f"Webhook received payload with keys: {sorted(payload.keys())}")
            self._dispatch(payload)
            writer.write(self._http_response(200, {"status": "received"}))
            await writer.drain()
        except RequestTooLarge as e:
            logger.warning(f"Webhook rejected request: {e}")
            writer.write(self._http_response(413, {"error": "Request too large"}))
            await writer.drain()
        except Exception as e:
            logger.error(f"Webhook request failed: {e}")
            writer.write(self._http_response(500, {"error": "Internal server error"}))
            await writer.drain()
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except Exception:
                pass
