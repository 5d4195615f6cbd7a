"""Command registry and executor."""

from ray_bridge.commands.executor import (
    BatchExecutionResult,
    CommandCall,
    CommandExecutionResult,
    CommandExecutor,
    normalize_args,
)
from ray_bridge.commands.registry import CommandError, CommandRegistry, CommandSpec

__all__ = [
    "BatchExecutionResult",
    "CommandCall",
    "CommandError",
    "CommandExecutionResult",
    "CommandExecutor",
    "CommandRegistry",
    "CommandSpec",
    "normalize_args",
]
