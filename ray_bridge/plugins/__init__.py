"""Plugin SDK and loader exports."""

from ray_bridge.plugins.base import PluginBase, PluginContext
from ray_bridge.plugins.loader import (
    PLUGIN_GROUP,
    filter_plugins,
    load_installed_plugins,
    plugin_label,
    register_command_plugins,
)

__all__ = [
    "PLUGIN_GROUP",
    "PluginBase",
    "PluginContext",
    "filter_plugins",
    "load_installed_plugins",
    "plugin_label",
    "register_command_plugins",
]
