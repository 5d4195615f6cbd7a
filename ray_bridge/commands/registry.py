"""Command registry: name -> handler lookup table for workspace commands."""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from loguru import logger

CommandHandler = Callable[[list[str]], Union[Awaitable[str], str]]


class CommandError(Exception):
    """Error raised by command handlers for invalid input or failed operations."""

    def __init__(self, message: str, code: str = "EINVAL"):
        super().__init__(message)
        self.message = message
        self.code = code


@dataclass(slots=True)
class CommandSpec:
    """A registered command and its help text."""

    name: str
    handler: CommandHandler
    description: str = ""
    usage: str = ""

    async def invoke(self, args: list[str]) -> str:
        result = self.handler(args)
        if inspect.isawaitable(result):
            result = await result
        return "" if result is None else str(result)


class CommandRegistry:
    """
    Registry of commands the remote agent may call.

    Handlers are supplied by workspace capability providers (plugins or the
    embedding application); the registry only stores and looks them up.
    """

    def __init__(self, *, include_help: bool = True):
        self._commands: dict[str, CommandSpec] = {}
        if include_help:
            self.register(
                "help",
                self._help,
                description="Show available commands",
                usage="help",
            )

    def register(
        self,
        name: str,
        handler: CommandHandler,
        description: str = "",
        usage: str = "",
    ) -> CommandSpec:
        """Register (or replace) a command handler."""
        key = (name or "").strip()
        if not key:
            raise ValueError("command name must be a non-empty string")
        if not callable(handler):
            raise TypeError(f"handler for '{key}' is not callable")
        if key in self._commands:
            logger.debug(f"Replacing command handler: {key}")
        spec = CommandSpec(name=key, handler=handler, description=description, usage=usage or key)
        self._commands[key] = spec
        return spec

    def unregister(self, name: str) -> None:
        self._commands.pop(name, None)

    def get(self, name: str) -> CommandSpec | None:
        return self._commands.get(name)

    def has(self, name: str) -> bool:
        return name in self._commands

    @property
    def names(self) -> list[str]:
        return list(self._commands.keys())

    def describe(self) -> list[dict[str, Any]]:
        return [
            {"name": spec.name, "description": spec.description, "usage": spec.usage}
            for spec in self._commands.values()
        ]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._commands

    def __len__(self) -> int:
        return len(self._commands)

    async def _help(self, args: list[str]) -> str:
        lines = [
            f"**{spec.name}** - {spec.description}\n     Usage: `{spec.usage}`"
            for spec in self._commands.values()
        ]
        return "## Available Commands\n\n" + "\n\n".join(lines)
