from pathlib import Path

from ray_bridge.agent.backups import FileBackupStore
from ray_bridge.commands.executor import CommandCall


def test_capture_keeps_first_snapshot(tmp_path: Path):
    target = tmp_path / "a.txt"
    target.write_text("original", encoding="utf-8")
    store = FileBackupStore(tmp_path)

    assert store.capture_for(CommandCall("write", ["a.txt", "new"])) is True
    target.write_text("new", encoding="utf-8")
    assert store.capture_for(CommandCall("append", ["a.txt", "more"])) is False

    assert store.get("a.txt") == "original"
    assert store.get(str(target)) == "original"
    assert len(store) == 1


def test_non_mutating_and_missing_files_are_skipped(tmp_path: Path):
    (tmp_path / "a.txt").write_text("x", encoding="utf-8")
    store = FileBackupStore(tmp_path)

    assert store.capture_for(CommandCall("read", ["a.txt"])) is False
    assert store.capture_for(CommandCall("write", ["new-file.txt", "x"])) is False
    assert store.capture_for(CommandCall("write", [])) is False
    assert store.capture_for(CommandCall(None, ["a.txt"])) is False
    assert len(store) == 0


def test_custom_mutating_commands(tmp_path: Path):
    (tmp_path / "a.txt").write_text("x", encoding="utf-8")
    store = FileBackupStore(tmp_path, mutating_commands=["edit"])

    assert store.target_path("write", ["a.txt"]) is None
    assert store.target_path("edit", "a.txt") == "a.txt"


def test_relative_paths_need_a_workspace(tmp_path: Path):
    absolute = tmp_path / "a.txt"
    absolute.write_text("abs", encoding="utf-8")
    store = FileBackupStore(None)

    assert store.capture("a.txt") is False
    assert store.capture(str(absolute)) is True
    assert store.get(str(absolute)) == "abs"


def test_prune_evicts_oldest_first(tmp_path: Path):
    store = FileBackupStore(tmp_path, capacity=2)
    for name in ("one", "two", "three"):
        (tmp_path / name).write_text(name, encoding="utf-8")
        store.capture(name)

    assert store.prune() == 1
    assert store.get("one") is None
    assert store.get("three") == "three"
    assert store.paths == [str(tmp_path / "two"), str(tmp_path / "three")]

    store.clear()
    assert len(store) == 0
