"""Ray Bridge - run a remote agent's tool calls against the local workspace."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ray-bridge")
except PackageNotFoundError:
    __version__ = "0.1.0"

__logo__ = "☀"
__brand__ = "ray-bridge"
