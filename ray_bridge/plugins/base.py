"""Plugin SDK base classes for workspace command providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ray_bridge.agent.session import SessionContext
    from ray_bridge.commands.registry import CommandRegistry
    from ray_bridge.config.schema import Config


@dataclass(slots=True)
class PluginContext:
    """Runtime context passed to plugins during registration."""

    workspace: Path
    config: Config | None = None
    session: SessionContext | None = None
    extras: dict[str, Any] = field(default_factory=dict)


class PluginBase:
    """Base class for ray-bridge plugins."""

    name: str = "unnamed-plugin"

    def register_commands(self, registry: "CommandRegistry", context: PluginContext) -> None:
        """Register command handlers the agent may call."""
        return
