"""Tests for filesystem watcher module."""

import pytest
import time
import threading
from pathlib import Path

from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from devwatch.config import WatchConfig
from devwatch.exceptions import RawSourceError
from devwatch.models import RawEvent, RawEventKind
from devwatch.fs_watcher import RawEventDebouncer, RawEventHandler, RawWatchSource

from conftest import wait_for


class Recorder:
    """Thread-safe list of received raw events."""

    def __init__(self):
        self.events = []
        self.lock = threading.Lock()

    def __call__(self, event):
        with self.lock:
            self.events.append(event)

    def for_name(self, name):
        with self.lock:
            return [e for e in self.events if e.path.name == name]

    def kinds_for(self, name):
        return [e.kind for e in self.for_name(name)]


class BrokenObserver:
    """Observer whose schedule() always fails."""

    def start(self):
        pass

    def schedule(self, handler, path, recursive=False):
        raise OSError("inotify watch limit reached")

    def unschedule(self, watch):
        pass

    def stop(self):
        pass

    def join(self, timeout=None):
        pass


class TestRawEventDebouncer:
    """Tests for RawEventDebouncer class."""

    def event(self, kind, at, name="a.js"):
        return RawEvent(kind=kind, path=Path("/p") / name, timestamp=at)

    def test_event_held_until_quiet(self):
        debouncer = RawEventDebouncer(debounce_ms=50)
        debouncer.add(self.event(RawEventKind.CHANGE, 0.0))

        assert debouncer.flush(0.03) == []
        released = debouncer.flush(0.05)

        assert [e.kind for e in released] == [RawEventKind.CHANGE]
        assert len(debouncer) == 0

    def test_change_after_add_released_as_add(self):
        debouncer = RawEventDebouncer(debounce_ms=50)
        debouncer.add(self.event(RawEventKind.ADD, 0.0))
        debouncer.add(self.event(RawEventKind.CHANGE, 0.01))

        released = debouncer.flush(1.0)

        assert [e.kind for e in released] == [RawEventKind.ADD]
        assert released[0].timestamp == 0.01

    def test_later_change_extends_window(self):
        debouncer = RawEventDebouncer(debounce_ms=50)
        debouncer.add(self.event(RawEventKind.ADD, 0.0))
        debouncer.add(self.event(RawEventKind.CHANGE, 0.03))

        assert debouncer.flush(0.06) == []
        assert [e.kind for e in debouncer.flush(0.09)] == [RawEventKind.ADD]

    def test_chunked_write_released_once_after_last_chunk(self):
        debouncer = RawEventDebouncer(debounce_ms=50)
        debouncer.add(self.event(RawEventKind.CHANGE, 0.0))
        debouncer.add(self.event(RawEventKind.CHANGE, 0.02))
        debouncer.add(self.event(RawEventKind.CHANGE, 0.04))

        assert debouncer.flush(0.07) == []
        released = debouncer.flush(0.1)

        assert len(released) == 1
        assert released[0].timestamp == 0.04

    def test_unlink_then_add_is_change(self):
        debouncer = RawEventDebouncer(debounce_ms=50)
        debouncer.add(self.event(RawEventKind.UNLINK, 0.0))
        debouncer.add(self.event(RawEventKind.ADD, 0.01))

        assert [e.kind for e in debouncer.flush(1.0)] == [RawEventKind.CHANGE]

    def test_unlink_wins_over_pending_add(self):
        debouncer = RawEventDebouncer(debounce_ms=50)
        debouncer.add(self.event(RawEventKind.ADD, 0.0))
        debouncer.add(self.event(RawEventKind.UNLINK, 0.01))

        assert [e.kind for e in debouncer.flush(1.0)] == [RawEventKind.UNLINK]

    def test_change_then_unlink_is_unlink(self):
        debouncer = RawEventDebouncer(debounce_ms=50)
        debouncer.add(self.event(RawEventKind.CHANGE, 0.0))
        debouncer.add(self.event(RawEventKind.UNLINK, 0.01))

        assert [e.kind for e in debouncer.flush(1.0)] == [RawEventKind.UNLINK]

    def test_paths_independent(self):
        debouncer = RawEventDebouncer(debounce_ms=50)
        debouncer.add(self.event(RawEventKind.ADD, 0.0, "a.js"))
        debouncer.add(self.event(RawEventKind.CHANGE, 0.04, "b.js"))

        released = debouncer.flush(0.06)

        assert [e.path.name for e in released] == ["a.js"]
        assert [e.path.name for e in debouncer.flush(0.1)] == ["b.js"]

    def test_released_in_notification_order(self):
        debouncer = RawEventDebouncer(debounce_ms=50)
        debouncer.add(self.event(RawEventKind.ADD, 0.0, "a.js"))
        debouncer.add(self.event(RawEventKind.ADD, 0.01, "b.js"))
        debouncer.add(self.event(RawEventKind.CHANGE, 0.02, "a.js"))

        assert [e.path.name for e in debouncer.flush(1.0)] == ["b.js", "a.js"]

    def test_flush_all(self):
        debouncer = RawEventDebouncer(debounce_ms=50)
        debouncer.add(self.event(RawEventKind.ADD, 0.0, "a.js"))
        debouncer.add(self.event(RawEventKind.UNLINK, 0.0, "b.js"))

        assert len(debouncer.flush_all()) == 2
        assert len(debouncer) == 0

    def test_clear(self):
        debouncer = RawEventDebouncer(debounce_ms=50)
        debouncer.add(self.event(RawEventKind.ADD, 0.0))
        debouncer.clear()

        assert debouncer.flush(1.0) == []


class TestRawEventHandler:
    """Tests for RawEventHandler class."""

    class StubSource:
        def __init__(self):
            self.delivered = []

        def deliver(self, kind, raw_path, root):
            self.delivered.append((kind, raw_path, root))

    def test_maps_file_events(self, tmp_path):
        source = self.StubSource()
        handler = RawEventHandler(source, tmp_path)
        path = str(tmp_path / "a.js")

        handler.on_created(FileCreatedEvent(path))
        handler.on_modified(FileModifiedEvent(path))
        handler.on_deleted(FileDeletedEvent(path))

        assert [kind for kind, _, _ in source.delivered] == [
            RawEventKind.ADD,
            RawEventKind.CHANGE,
            RawEventKind.UNLINK,
        ]
        assert all(root == tmp_path for _, _, root in source.delivered)

    def test_move_is_unlink_then_add(self, tmp_path):
        source = self.StubSource()
        handler = RawEventHandler(source, tmp_path)

        handler.on_moved(FileMovedEvent(str(tmp_path / "old.js"), str(tmp_path / "new.js")))

        assert source.delivered == [
            (RawEventKind.UNLINK, str(tmp_path / "old.js"), tmp_path),
            (RawEventKind.ADD, str(tmp_path / "new.js"), tmp_path),
        ]

    def test_directory_events_skipped(self, tmp_path):
        source = self.StubSource()
        handler = RawEventHandler(source, tmp_path)

        handler.on_created(DirCreatedEvent(str(tmp_path / "sub")))

        assert source.delivered == []


class TestRawWatchSource:
    """Tests for RawWatchSource class."""

    def test_start_and_ready(self, tmp_path):
        source = RawWatchSource("test", [tmp_path], Recorder())

        assert source.is_ready is False
        source.start()

        assert source.wait_ready(5.0) is True
        assert len(source) == 1
        assert source.watched_paths() == [tmp_path.resolve()]
        source.close()

    def test_paths_before_start_are_pending(self, tmp_path):
        source = RawWatchSource("test", [], Recorder())

        assert source.add_path(tmp_path) is True
        assert source.add_path(tmp_path) is False
        assert len(source) == 0
        assert source.watched_paths() == [tmp_path.resolve()]

        source.start()
        assert len(source) == 1
        source.close()

    def test_remove_pending_path(self, tmp_path):
        source = RawWatchSource("test", [tmp_path], Recorder())

        assert source.remove_path(tmp_path) is True
        source.start()

        assert len(source) == 0
        source.close()

    def test_missing_path_watches_nearest_ancestor(self, tmp_path):
        source = RawWatchSource("test", [], Recorder()).start()

        assert source.add_path(tmp_path / "later" / "deeper") is True
        assert source.add_path(tmp_path / "later" / "other") is True
        assert len(source) == 1

        assert source.remove_path(tmp_path / "later" / "deeper") is True
        assert len(source) == 1
        assert source.remove_path(tmp_path / "later" / "other") is True
        assert len(source) == 0
        assert source.remove_path(tmp_path / "later" / "other") is False
        source.close()

    def test_close_is_idempotent(self, tmp_path):
        source = RawWatchSource("test", [tmp_path], Recorder()).start()

        assert source.close() is True
        assert source.close() is False
        assert source.is_closed
        assert len(source) == 0
        assert source.add_path(tmp_path) is False

    def test_close_before_start(self, tmp_path):
        source = RawWatchSource("test", [tmp_path], Recorder())

        assert source.close() is True
        assert source.wait_ready(0) is True
        source.start()
        assert len(source) == 0

    def test_start_failure_reported(self, tmp_path, monkeypatch):
        errors = []

        class FailingObserver(BrokenObserver):
            def start(self):
                raise RuntimeError("cannot start thread")

        source = RawWatchSource("test", [tmp_path], Recorder(), on_error=errors.append)
        monkeypatch.setattr(source, "_create_observer", FailingObserver)

        source.start()

        assert source.is_ready
        assert len(errors) == 1
        assert isinstance(errors[0], RawSourceError)
        assert errors[0].source == "test"
        source.close()

    def test_schedule_failure_reported(self, tmp_path, monkeypatch):
        errors = []
        source = RawWatchSource("test", [tmp_path], Recorder(), on_error=errors.append)
        monkeypatch.setattr(source, "_create_observer", BrokenObserver)

        source.start()

        assert source.is_ready
        assert [type(e) for e in errors] == [RawSourceError]
        assert "inotify watch limit reached" in str(errors[0])
        assert source.watched_paths() == []
        assert source.add_path(tmp_path / "other") is False
        source.close()

    def test_deliver_drops_after_close(self, tmp_path):
        recorder = Recorder()
        source = RawWatchSource("test", [tmp_path], recorder).start()
        source.close()

        source.deliver(RawEventKind.ADD, str(tmp_path / "a.js"), tmp_path.resolve())

        assert recorder.events == []

    def test_callback_failure_does_not_propagate(self, tmp_path):
        calls = []

        def failing(event):
            calls.append(event)
            raise RuntimeError("handler failed")

        config = WatchConfig(debounce_ms=0)
        source = RawWatchSource("test", [tmp_path], failing, config=config).start()
        source.deliver(RawEventKind.ADD, str(tmp_path / "a.js"), tmp_path.resolve())
        source.close()

        assert len(calls) == 1

    def test_deliver_decodes_bytes(self, tmp_path):
        recorder = Recorder()
        source = RawWatchSource("test", [tmp_path], recorder).start()

        source.deliver(RawEventKind.ADD, bytes(tmp_path / "a.js"), tmp_path.resolve())
        assert wait_for(lambda: recorder.events)
        source.close()

        assert recorder.events[0].path == tmp_path.resolve() / "a.js"
        assert recorder.events[0].source == "test"

    def test_zero_debounce_delivers_immediately(self, tmp_path):
        recorder = Recorder()
        config = WatchConfig(debounce_ms=0)
        source = RawWatchSource("test", [tmp_path], recorder, config=config).start()

        source.deliver(RawEventKind.ADD, str(tmp_path / "a.js"), tmp_path.resolve())
        source.deliver(RawEventKind.CHANGE, str(tmp_path / "a.js"), tmp_path.resolve())
        source.close()

        assert recorder.kinds_for("a.js") == [RawEventKind.ADD, RawEventKind.CHANGE]

    def test_deliver_merges_until_quiet(self, tmp_path):
        recorder = Recorder()
        config = WatchConfig(debounce_ms=100)
        source = RawWatchSource("test", [tmp_path], recorder, config=config).start()

        source.deliver(RawEventKind.ADD, str(tmp_path / "a.js"), tmp_path.resolve())
        source.deliver(RawEventKind.CHANGE, str(tmp_path / "a.js"), tmp_path.resolve())
        assert recorder.events == []

        assert wait_for(lambda: recorder.events)
        time.sleep(0.2)
        source.close()
        assert recorder.kinds_for("a.js") == [RawEventKind.ADD]

    def test_close_drops_pending_events(self, tmp_path):
        recorder = Recorder()
        config = WatchConfig(debounce_ms=500)
        source = RawWatchSource("test", [tmp_path], recorder, config=config).start()

        source.deliver(RawEventKind.ADD, str(tmp_path / "a.js"), tmp_path.resolve())
        source.close()
        time.sleep(0.6)

        assert recorder.events == []

    def test_close_from_callback(self, tmp_path):
        closed = []

        def closing(event):
            closed.append(source.close())

        source = RawWatchSource("test", [tmp_path], closing).start()
        source.deliver(RawEventKind.ADD, str(tmp_path / "a.js"), tmp_path.resolve())

        assert wait_for(lambda: closed)
        assert closed == [True]
        assert source.is_closed

    def test_detects_file_creation(self, tmp_path):
        recorder = Recorder()
        source = RawWatchSource("test", [tmp_path], recorder).start()
        time.sleep(0.2)

        (tmp_path / "test.txt").write_text("hello")

        assert wait_for(lambda: recorder.for_name("test.txt"))
        time.sleep(0.2)
        source.close()

        assert recorder.kinds_for("test.txt")[0] is RawEventKind.ADD
        assert recorder.kinds_for("test.txt").count(RawEventKind.ADD) == 1

    def test_chunked_write_delivered_after_last_chunk(self, tmp_path):
        test_file = tmp_path / "chunked.txt"
        test_file.write_text("")
        recorder = Recorder()
        source = RawWatchSource("test", [tmp_path], recorder).start()
        time.sleep(0.2)

        body = "0123456789" * 10
        with open(test_file, "w") as f:
            f.write(body[:10])
            f.flush()
            time.sleep(0.02)
            last_write = time.time()
            f.write(body[10:])
            f.flush()

        assert wait_for(lambda: any(e.timestamp >= last_write for e in recorder.for_name("chunked.txt")))
        source.close()
        assert test_file.read_text() == body

    def test_detects_file_modification(self, tmp_path):
        test_file = tmp_path / "test.txt"
        test_file.write_text("initial")
        recorder = Recorder()
        source = RawWatchSource("test", [tmp_path], recorder).start()
        time.sleep(0.2)

        test_file.write_text("modified")

        assert wait_for(lambda: RawEventKind.CHANGE in recorder.kinds_for("test.txt"))
        source.close()

    def test_detects_file_deletion(self, tmp_path):
        test_file = tmp_path / "test.txt"
        test_file.write_text("to be deleted")
        recorder = Recorder()
        source = RawWatchSource("test", [tmp_path], recorder).start()
        time.sleep(0.2)

        test_file.unlink()

        assert wait_for(lambda: RawEventKind.UNLINK in recorder.kinds_for("test.txt"))
        source.close()

    def test_detects_file_move(self, tmp_path):
        test_file = tmp_path / "old.txt"
        test_file.write_text("content")
        recorder = Recorder()
        source = RawWatchSource("test", [tmp_path], recorder).start()
        time.sleep(0.2)

        test_file.rename(tmp_path / "new.txt")

        assert wait_for(lambda: RawEventKind.ADD in recorder.kinds_for("new.txt"))
        assert RawEventKind.UNLINK in recorder.kinds_for("old.txt")
        source.close()

    def test_ignores_patterns(self, tmp_path):
        recorder = Recorder()
        config = WatchConfig(ignore_patterns=["*.tmp"])
        source = RawWatchSource("test", [tmp_path], recorder, config=config).start()
        time.sleep(0.2)

        (tmp_path / "test.tmp").write_text("ignored")
        (tmp_path / "test.txt").write_text("not ignored")

        assert wait_for(lambda: recorder.for_name("test.txt"))
        source.close()
        assert recorder.for_name("test.tmp") == []

    def test_matcher_filters(self, tmp_path):
        recorder = Recorder()
        source = RawWatchSource(
            "test", [tmp_path], recorder,
            matcher=lambda path: path.suffix == ".js",
        ).start()
        time.sleep(0.2)

        (tmp_path / "notes.md").write_text("skip")
        (tmp_path / "Main.js").write_text("keep")

        assert wait_for(lambda: recorder.for_name("Main.js"))
        source.close()
        assert recorder.for_name("notes.md") == []

    def test_watches_subdirectories(self, tmp_path):
        subdir = tmp_path / "subdir"
        subdir.mkdir()
        recorder = Recorder()
        source = RawWatchSource("test", [tmp_path], recorder).start()
        time.sleep(0.2)

        (subdir / "nested.txt").write_text("nested content")

        assert wait_for(lambda: recorder.for_name("nested.txt"))
        source.close()

    def test_nested_roots_report_once(self, tmp_path):
        inner = tmp_path / "inner"
        inner.mkdir()
        recorder = Recorder()
        source = RawWatchSource("test", [tmp_path, inner], recorder).start()
        assert len(source) == 2
        time.sleep(0.2)

        (inner / "file.txt").write_text("once")

        assert wait_for(lambda: recorder.for_name("file.txt"))
        time.sleep(0.3)
        source.close()
        assert recorder.kinds_for("file.txt").count(RawEventKind.ADD) == 1

    def test_removed_path_stops_reporting(self, tmp_path):
        watched = tmp_path / "watched"
        watched.mkdir()
        recorder = Recorder()
        source = RawWatchSource("test", [watched], recorder).start()
        time.sleep(0.2)

        source.remove_path(watched)
        (watched / "quiet.txt").write_text("nobody listens")
        time.sleep(0.5)
        source.close()

        assert recorder.for_name("quiet.txt") == []

    def test_path_added_while_running(self, tmp_path):
        later = tmp_path / "later"
        later.mkdir()
        recorder = Recorder()
        source = RawWatchSource("test", [], recorder).start()

        source.add_path(later)
        time.sleep(0.2)
        (later / "fresh.txt").write_text("hello")

        assert wait_for(lambda: recorder.for_name("fresh.txt"))
        source.close()

    def test_polling_observer(self, tmp_path):
        recorder = Recorder()
        config = WatchConfig(use_polling=True, polling_interval_s=0.1)
        source = RawWatchSource("test", [tmp_path], recorder, config=config).start()
        time.sleep(0.3)

        (tmp_path / "polled.txt").write_text("hello")

        assert wait_for(lambda: recorder.for_name("polled.txt"))
        source.close()
