"""Plugin discovery and command registration."""

from __future__ import annotations

from importlib import metadata as importlib_metadata
from typing import Any, Callable, Iterable

from loguru import logger

from ray_bridge.plugins.base import PluginContext

PLUGIN_GROUP = "ray_bridge.plugins"

EntryPointProvider = Callable[[str], Iterable[Any]]


def _default_entry_points(group: str) -> list[Any]:
    return list(importlib_metadata.entry_points().select(group=group))


def plugin_label(plugin: Any) -> str:
    label = str(getattr(plugin, "name", "")).strip()
    return label or plugin.__class__.__name__


def _instantiate(entry_name: str, loaded: Any) -> Any:
    plugin = loaded() if isinstance(loaded, type) else loaded
    if not callable(getattr(plugin, "register_commands", None)):
        raise TypeError(f"Entry point '{entry_name}' has no register_commands hook")
    if not getattr(plugin, "name", ""):
        plugin.name = entry_name
    return plugin


def load_installed_plugins(
    group: str = PLUGIN_GROUP,
    entry_points_provider: EntryPointProvider | None = None,
) -> list[Any]:
    """Load command plugins (classes or instances) from Python entry points, sorted by name."""
    provider = entry_points_provider or _default_entry_points
    plugins: list[Any] = []
    for entry_point in sorted(provider(group), key=lambda item: getattr(item, "name", "")):
        entry_name = getattr(entry_point, "name", "<unknown>")
        try:
            plugin = _instantiate(entry_name, entry_point.load())
        except Exception as exc:
            logger.warning(f"Failed to load plugin entry point '{entry_name}': {exc}")
            continue
        plugins.append(plugin)
        logger.info(f"Loaded plugin '{plugin_label(plugin)}' from entry point '{entry_name}'")
    return plugins


def filter_plugins(
    plugins: list[Any],
    *,
    enabled: bool = True,
    allow: list[str] | None = None,
    deny: list[str] | None = None,
) -> list[Any]:
    """Apply the plugins.enabled/allow/deny config; labels match case-insensitively."""
    if not enabled:
        return []
    allowed = {item.strip().lower() for item in allow or [] if item.strip()}
    denied = {item.strip().lower() for item in deny or [] if item.strip()}
    selected = []
    for plugin in plugins:
        key = plugin_label(plugin).lower()
        if (allowed and key not in allowed) or key in denied:
            logger.debug(f"Plugin '{plugin_label(plugin)}' disabled by config")
            continue
        selected.append(plugin)
    return selected


def register_command_plugins(
    plugins: list[Any],
    context: PluginContext,
    *,
    registry: Any,
) -> list[str]:
    """Call register_commands() on each plugin; return the names they added."""
    added: list[str] = []
    for plugin in plugins:
        before = set(registry.names)
        try:
            plugin.register_commands(registry, context)
        except Exception as exc:
            logger.warning(f"Plugin '{plugin_label(plugin)}' command registration failed: {exc}")
            continue
        for name in registry.names:
            if name not in before:
                added.append(name)
                logger.info(f"Plugin '{plugin_label(plugin)}' registered command '{name}'")
    return added
