"""Remote agent channel: outbound client, error taxonomy and webhook ingress."""

from ray_bridge.channel.errors import RemoteChannelError, classify_transport_error
from ray_bridge.channel.client import CancelResult, RemoteClient, derive_cancel_endpoint
from ray_bridge.channel.webhook import WebhookServer

__all__ = [
    "CancelResult",
    "RemoteChannelError",
    "RemoteClient",
    "WebhookServer",
    "classify_transport_error",
    "derive_cancel_endpoint",
]
