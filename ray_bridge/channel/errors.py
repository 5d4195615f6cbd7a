"""Transport error taxonomy for the remote agent channel."""

from __future__ import annotations

import errno
import socket

import httpx

CONNECTION_REFUSED = "connection_refused"
DNS = "dns"
TIMEOUT = "timeout"
HTTP_STATUS = "http_status"
PROTOCOL = "protocol"
GENERIC = "generic"

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated",
    "enotfound",
)
_REFUSED_MARKERS = ("connection refused", "econnrefused", "actively refused")


class RemoteChannelError(Exception):
    """A categorized failure talking to the remote agent."""

    def __init__(self, kind: str, detail: str = "", endpoint: str = "", status_code: int | None = None):
        self.kind = kind
        self.detail = detail
        self.endpoint = endpoint
        self.status_code = status_code
        super().__init__(f"{kind}: {detail}" if detail else kind)

    def user_message(self) -> str:
        if self.kind == CONNECTION_REFUSED:
            return (
                f"**Connection Error**: Cannot connect to Ray API at {self.endpoint}. "
                "Please make sure your Ray server is running."
            )
        if self.kind == DNS:
            return "**DNS Error**: Cannot resolve hostname. Please check your API endpoint configuration."
        if self.kind == TIMEOUT:
            return "**Timeout Error**: Ray API is not responding. Please check if the server is running properly."
        if self.kind == HTTP_STATUS:
            return f"**API Error**: Ray API returned HTTP {self.status_code}. {self.detail}".rstrip()
        if self.kind == PROTOCOL:
            return f"**Protocol Error**: Unexpected response from Ray API. {self.detail}".rstrip()
        return f"**API Error**: {self.detail or 'Failed to process request'}"


def _exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def classify_transport_error(exc: BaseException, endpoint: str = "") -> RemoteChannelError:
    """Map an httpx/OS exception to a RemoteChannelError."""
    if isinstance(exc, RemoteChannelError):
        return exc
    detail = str(exc) or exc.__class__.__name__
    if isinstance(exc, httpx.TimeoutException) or isinstance(exc, TimeoutError):
        return RemoteChannelError(TIMEOUT, detail, endpoint)

    for item in _exception_chain(exc):
        if isinstance(item, socket.gaierror):
            return RemoteChannelError(DNS, detail, endpoint)
        if isinstance(item, ConnectionRefusedError):
            return RemoteChannelError(CONNECTION_REFUSED, detail, endpoint)
        if isinstance(item, OSError) and item.errno == errno.ECONNREFUSED:
            return RemoteChannelError(CONNECTION_REFUSED, detail, endpoint)

    lowered = detail.lower()
    if any(marker in lowered for marker in _REFUSED_MARKERS):
        return RemoteChannelError(CONNECTION_REFUSED, detail, endpoint)
    if any(marker in lowered for marker in _DNS_MARKERS):
        return RemoteChannelError(DNS, detail, endpoint)
    if "timeout" in lowered or "timed out" in lowered:
        return RemoteChannelError(TIMEOUT, detail, endpoint)
    return RemoteChannelError(GENERIC, detail, endpoint)
