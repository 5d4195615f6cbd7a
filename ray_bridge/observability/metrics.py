"""Lightweight runtime metrics collector backed by JSONL."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from ray_bridge.utils.helpers import ensure_dir

DEFAULT_RETENTION_HOURS = 168
DEFAULT_MAX_EVENTS = 50000


def _now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _parse_iso(value: str | None) -> datetime | None:
    raw = (value or "").strip()
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except ValueError:
        return None


def _pct(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round((numerator / denominator) * 100.0, 2)


def _p95(values: list[float]) -> float:
    if not values:
        return 0.0
    data = sorted(float(v) for v in values)
    index = int(0.95 * (len(data) - 1))
    return round(data[index], 2)


class MetricsStore:
    """Append-only metrics event store with aggregated snapshots."""

    def __init__(self, events_path: Path):
        self.events_path = events_path
        ensure_dir(events_path.parent)

    def _append(self, payload: dict[str, Any]) -> bool:
        record = dict(payload)
        record.setdefault("ts", _now_utc().isoformat())
        line = json.dumps(record, ensure_ascii=False)
        try:
            with self.events_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
            return True
        except OSError:
            return False

    def record_command_call(
        self,
        *,
        command: str,
        success: bool,
        latency_ms: float,
        error: str = "",
    ) -> bool:
        return self._append(
            {
                "type": "command_call",
                "command": (command or "").strip(),
                "success": bool(success),
                "latency_ms": round(float(latency_ms), 2),
                "error": (error or "").strip()[:500],
            }
        )

    def record_remote_request(
        self,
        *,
        kind: str,
        success: bool,
        latency_ms: float,
        error_kind: str = "",
    ) -> bool:
        return self._append(
            {
                "type": "remote_request",
                "kind": (kind or "").strip(),
                "success": bool(success),
                "latency_ms": round(float(latency_ms), 2),
                "error_kind": (error_kind or "").strip(),
            }
        )

    def _iter_events(self, since: datetime) -> list[dict[str, Any]]:
        if not self.events_path.exists():
            return []
        events: list[dict[str, Any]] = []
        try:
            lines = self.events_path.read_text(encoding="utf-8").splitlines()
        except OSError:
            return []
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(event, dict):
                continue
            ts = _parse_iso(str(event.get("ts", "")))
            if ts is None or ts < since:
                continue
            events.append(event)
        return events

    def prune_events(
        self,
        *,
        keep_hours: int = DEFAULT_RETENTION_HOURS,
        max_events: int = DEFAULT_MAX_EVENTS,
    ) -> dict[str, Any]:
        """Drop events older than the retention window, then cap to the newest max_events."""
        cutoff = _now_utc() - timedelta(hours=max(1, int(keep_hours)))
        cap = max(0, int(max_events))
        result: dict[str, Any] = {"ok": True, "before": 0, "after": 0, "removed_by_age": 0, "removed_by_cap": 0}
        if not self.events_path.exists():
            return result

        try:
            lines = self.events_path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            return {**result, "ok": False, "error": str(e)}

        kept: list[str] = []
        for line in lines:
            line = line.strip()
            if not line:
                continue
            result["before"] += 1
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(event, dict):
                continue
            ts = _parse_iso(str(event.get("ts", "")))
            if ts is not None and ts < cutoff:
                result["removed_by_age"] += 1
                continue
            kept.append(line)

        if cap and len(kept) > cap:
            result["removed_by_cap"] = len(kept) - cap
            kept = kept[-cap:]
        result["after"] = len(kept)
        if result["after"] == result["before"]:
            return result

        tmp_path = self.events_path.with_name(f"{self.events_path.name}.tmp")
        try:
            tmp_path.write_text("".join(line + "\n" for line in kept), encoding="utf-8")
            tmp_path.replace(self.events_path)
        except OSError as e:
            return {**result, "ok": False, "error": str(e)}
        return result

    def snapshot(self, hours: int = 24) -> dict[str, Any]:
        """Aggregate command and remote request events over a time window."""
        window = max(1, int(hours))
        since = _now_utc() - timedelta(hours=window)
        events = self._iter_events(since)

        commands = [e for e in events if e.get("type") == "command_call"]
        remote = [e for e in events if e.get("type") == "remote_request"]
        command_ok = sum(1 for e in commands if e.get("success"))
        remote_ok = sum(1 for e in remote if e.get("success"))

        per_command: dict[str, dict[str, int]] = {}
        for event in commands:
            name = str(event.get("command", "")) or "unknown"
            bucket = per_command.setdefault(name, {"calls": 0, "errors": 0})
            bucket["calls"] += 1
            if not event.get("success"):
                bucket["errors"] += 1

        remote_errors: dict[str, int] = {}
        for event in remote:
            if event.get("success"):
                continue
            kind = str(event.get("error_kind", "")) or "generic"
            remote_errors[kind] = remote_errors.get(kind, 0) + 1

        return {
            "window_hours": window,
            "command_calls": len(commands),
            "command_errors": len(commands) - command_ok,
            "command_success_rate": _pct(command_ok, len(commands)),
            "command_latency_p95_ms": _p95([float(e.get("latency_ms", 0)) for e in commands]),
            "commands": per_command,
            "remote_requests": len(remote),
            "remote_errors": len(remote) - remote_ok,
            "remote_success_rate": _pct(remote_ok, len(remote)),
            "remote_latency_p95_ms": _p95([float(e.get("latency_ms", 0)) for e in remote]),
            "remote_error_kinds": remote_errors,
        }
