"""Original-content snapshots of files touched by mutating commands."""

from __future__ import annotations

from collections import OrderedDict
from pathlib import Path
from typing import Any

from loguru import logger

from ray_bridge.commands.executor import CommandCall, normalize_args

DEFAULT_MUTATING_COMMANDS = ("write", "append", "replace")


class FileBackupStore:
    """
    Keep the pre-modification text of files changed during a conversation.

    The first mutating command that touches a path captures its content;
    later commands on the same path keep the original snapshot. Snapshots
    feed diff display only.
    """

    def __init__(
        self,
        workspace: Path | None = None,
        *,
        capacity: int = 50,
        mutating_commands: list[str] | tuple[str, ...] | None = None,
    ):
        self.workspace = workspace
        self.capacity = max(1, int(capacity))
        self.mutating_commands = set(mutating_commands or DEFAULT_MUTATING_COMMANDS)
        self._backups: OrderedDict[str, str] = OrderedDict()

    def target_path(self, command: Any, args: Any) -> str | None:
        """Return the file a mutating command will modify, if any."""
        if not isinstance(command, str) or command not in self.mutating_commands:
            return None
        normalized = normalize_args(args)
        if not normalized or not normalized[0].strip():
            return None
        return normalized[0]

    def _resolve(self, raw_path: str) -> Path | None:
        path = Path(raw_path).expanduser()
        if path.is_absolute():
            return path
        if self.workspace is None:
            return None
        return self.workspace / path

    def capture(self, raw_path: str) -> bool:
        """Snapshot a file unless already captured. Returns True on a new snapshot."""
        resolved = self._resolve(raw_path)
        if resolved is None:
            return False
        key = str(resolved)
        if key in self._backups:
            logger.debug(f"File already backed up: {key}")
            return False
        try:
            text = resolved.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Could not back up file (might be new): {key}: {e}")
            return False
        self._backups[key] = text
        logger.debug(f"Backed up file before modification: {key} ({len(text)} chars)")
        return True

    def capture_for(self, call: CommandCall) -> bool:
        path = self.target_path(call.command, call.args)
        if path is None:
            return False
        return self.capture(path)

    def get(self, raw_path: str) -> str | None:
        resolved = self._resolve(raw_path)
        if resolved is None:
            return None
        return self._backups.get(str(resolved))

    def prune(self) -> int:
        """Evict the oldest snapshots beyond capacity; return how many were dropped."""
        dropped = 0
        while len(self._backups) > self.capacity:
            self._backups.popitem(last=False)
            dropped += 1
        if dropped:
            logger.debug(f"Cleared {dropped} old file backups")
        return dropped

    def clear(self) -> None:
        self._backups.clear()

    @property
    def paths(self) -> list[str]:
        return list(self._backups.keys())

    def __len__(self) -> int:
        return len(self._backups)
