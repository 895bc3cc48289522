import asyncio
import os

import pytest

from ssg_zero import watcher as watcher_module
from ssg_zero.errors import NotInitializedError
from ssg_zero.watcher import (
    ChangeWatcher,
    FileFingerprint,
    WatchEvent,
    WatchEventType,
    diff_snapshots,
    iter_files,
    take_snapshot,
    watch,
)


def touch_later(path, seconds=5):
    """Push a file's mtime forward so the change is visible regardless of clock."""
    stat = os.stat(path)
    later = stat.st_mtime_ns + seconds * 1_000_000_000
    os.utime(path, ns=(later, later))


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "change.json").write_text('{"v": 1}')
    (tmp_path / "delete.json").write_text('{"v": 1}')
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "keep.json").write_text("{}")
    return tmp_path


def test_watch_before_init_raises(tmp_path):
    watcher = ChangeWatcher(tmp_path, 0, False)

    async def consume():
        async for _ in watcher.watch():
            break

    with pytest.raises(NotInitializedError):
        asyncio.run(consume())


def test_poll_before_init_raises(tmp_path):
    watcher = ChangeWatcher(tmp_path)
    with pytest.raises(NotInitializedError):
        asyncio.run(watcher.poll())


def test_emits_create_change_and_delete(tree):
    watcher = ChangeWatcher(tree, 0, False)

    async def scenario():
        await watcher.init()
        (tree / "create.json").write_text('{"v": 1}')
        touch_later(tree / "change.json")
        (tree / "delete.json").unlink()

        events = []
        stream = watcher.watch()
        async for event in stream:
            events.append(event)
            if len(events) == 3:
                break
        await stream.aclose()
        return events

    events = asyncio.run(scenario())
    assert set(events) == {
        WatchEvent(WatchEventType.CREATE, str(tree / "create.json")),
        WatchEvent(WatchEventType.CHANGE, str(tree / "change.json")),
        WatchEvent(WatchEventType.DELETE, str(tree / "delete.json")),
    }
    # Deletes come after creates and changes within a generation.
    assert events[-1].type is WatchEventType.DELETE
    assert not watcher.initialized


def test_unchanged_files_emit_nothing(tree):
    watcher = ChangeWatcher(tree)

    async def scenario():
        await watcher.init()
        return await watcher.poll(), await watcher.poll()

    assert asyncio.run(scenario()) == ([], [])


def test_delete_is_reported_once(tree):
    watcher = ChangeWatcher(tree)

    async def scenario():
        await watcher.init()
        (tree / "delete.json").unlink()
        first = await watcher.poll()
        second = await watcher.poll()
        return first, second

    first, second = asyncio.run(scenario())
    assert first == [WatchEvent(WatchEventType.DELETE, str(tree / "delete.json"))]
    assert second == []


def test_disable_delete_drops_deletions_silently(tree):
    watcher = ChangeWatcher(tree, disable_delete=True)
    target = tree / "delete.json"

    async def scenario():
        await watcher.init()
        target.unlink()
        gone = await watcher.poll()
        target.write_text("back")
        back = await watcher.poll()
        return gone, back

    gone, back = asyncio.run(scenario())
    assert gone == []
    assert back == [WatchEvent(WatchEventType.CREATE, str(target))]


def test_nested_files_are_watched(tree):
    watcher = ChangeWatcher(tree)
    nested = tree / "nested" / "keep.json"

    async def scenario():
        await watcher.init()
        touch_later(nested)
        return await watcher.poll()

    assert asyncio.run(scenario()) == [WatchEvent(WatchEventType.CHANGE, str(nested))]


def test_watcher_can_be_reinitialized_after_leaving_the_loop(tree):
    watcher = ChangeWatcher(tree, 0)

    async def scenario():
        for round_ in range(2):
            await watcher.init()
            (tree / f"file{round_}.txt").write_text("x")
            stream = watcher.watch()
            async for event in stream:
                assert event.type is WatchEventType.CREATE
                break
            await stream.aclose()
            assert not watcher.initialized

    asyncio.run(scenario())


def test_module_level_watch_yields_events(tree):
    async def scenario():
        stream = watch(tree, poll_interval_ms=10)
        pending = asyncio.ensure_future(stream.__anext__())
        # Give the generator time to take its initial snapshot.
        await asyncio.sleep(0.2)
        (tree / "late.json").write_text("{}")
        event = await asyncio.wait_for(pending, timeout=5)
        await stream.aclose()
        return event

    event = asyncio.run(scenario())
    assert event == WatchEvent(WatchEventType.CREATE, str(tree / "late.json"))


def test_file_vanishing_between_list_and_stat_is_absent(tree, monkeypatch):
    real_stat = os.stat
    vanished = str(tree / "change.json")

    def flaky_stat(path, *args, **kwargs):
        if os.fspath(path) == vanished:
            raise FileNotFoundError(2, "No such file or directory", vanished)
        return real_stat(path, *args, **kwargs)

    monkeypatch.setattr(watcher_module.os, "stat", flaky_stat)
    snapshot = take_snapshot(str(tree))
    assert vanished not in snapshot
    assert str(tree / "delete.json") in snapshot


def test_other_stat_errors_propagate(tree, monkeypatch):
    def denied(path, *args, **kwargs):
        raise PermissionError(13, "Permission denied", os.fspath(path))

    monkeypatch.setattr(watcher_module.os, "stat", denied)
    with pytest.raises(PermissionError):
        take_snapshot(str(tree))


def test_missing_root_raises(tmp_path):
    watcher = ChangeWatcher(tmp_path / "missing")
    with pytest.raises(FileNotFoundError):
        asyncio.run(watcher.init())


def test_iter_files_is_sorted_and_skips_directories(tree):
    files = list(iter_files(tree))
    assert files == [
        str(tree / "change.json"),
        str(tree / "delete.json"),
        str(tree / "nested" / "keep.json"),
    ]


def test_diff_snapshots():
    previous = {
        "a": FileFingerprint("a", 1),
        "b": FileFingerprint("b", 1),
        "c": FileFingerprint("c", 1),
    }
    current = {
        "a": FileFingerprint("a", 1),
        "b": FileFingerprint("b", 2),
        "d": FileFingerprint("d", 1),
    }
    assert diff_snapshots(previous, current) == [
        WatchEvent(WatchEventType.CHANGE, "b"),
        WatchEvent(WatchEventType.CREATE, "d"),
        WatchEvent(WatchEventType.DELETE, "c"),
    ]
    assert diff_snapshots(previous, current, disable_delete=True) == [
        WatchEvent(WatchEventType.CHANGE, "b"),
        WatchEvent(WatchEventType.CREATE, "d"),
    ]
