import asyncio

import pytest

from ray_bridge.commands.registry import CommandRegistry


async def _read(args: list[str]) -> str:
    return f"contents of {args[0]}"


def test_registry_register_lookup_and_unregister():
    registry = CommandRegistry()
    registry.register("read", _read, "Read a file", "read <path>")

    assert "read" in registry
    assert registry.has("read")
    assert registry.get("missing") is None
    assert registry.names == ["help", "read"]
    assert len(registry) == 2

    registry.unregister("read")
    assert "read" not in registry
    assert len(registry) == 1


def test_registry_without_help():
    registry = CommandRegistry(include_help=False)
    assert len(registry) == 0
    assert registry.names == []


def test_registry_rejects_invalid_registrations():
    registry = CommandRegistry()
    with pytest.raises(ValueError):
        registry.register("  ", _read)
    with pytest.raises(TypeError):
        registry.register("read", "not callable")  # type: ignore[arg-type]


def test_registry_replaces_existing_handler():
    registry = CommandRegistry()
    registry.register("read", _read)
    registry.register("read", lambda args: "replaced")

    spec = registry.get("read")
    assert spec is not None
    assert asyncio.run(spec.invoke(["a.txt"])) == "replaced"


def test_help_lists_commands_in_registration_order():
    registry = CommandRegistry()
    registry.register("read", _read, "Read a file", "read <path>")
    registry.register("ls", lambda args: "", "List a directory")

    spec = registry.get("help")
    assert spec is not None
    text = asyncio.run(spec.invoke([]))

    assert text.startswith("## Available Commands")
    assert text.index("**help**") < text.index("**read**") < text.index("**ls**")
    assert "Usage: `read <path>`" in text
    assert "Usage: `ls`" in text


def test_describe_returns_help_rows():
    registry = CommandRegistry(include_help=False)
    registry.register("read", _read, "Read a file", "read <path>")

    assert registry.describe() == [
        {"name": "read", "description": "Read a file", "usage": "read <path>"}
    ]
