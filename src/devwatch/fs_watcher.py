"""Raw watch sources built on the watchdog library."""

import logging
import os
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch
from watchdog.observers.polling import PollingObserver

from .config import WatchConfig
from .exceptions import RawSourceError
from .models import RawEvent, RawEventKind
from .paths import normalize_path

logger = logging.getLogger(__name__)

RawEventCallback = Callable[[RawEvent], None]
ErrorCallback = Callable[[Exception], None]
PathFilter = Callable[[Path], bool]

JOIN_TIMEOUT_S = 5.0
MIN_FLUSH_INTERVAL_S = 0.01


class RawEventDebouncer:
    """
    Holds raw events until their path has been quiet for the debounce window.

    Writing a file usually produces a created event followed by one or more
    modified events, and a large write may be split over several of them.
    Notifications for the same path are merged into one pending event whose
    timestamp is refreshed on every notification, so the merged event is
    released only after the last write.
    """

    def __init__(self, debounce_ms: int = 50):
        """
        Initialize the debouncer.

        Args:
            debounce_ms: Quiet period in milliseconds before an event is released
        """
        self.debounce_ms = debounce_ms
        self._pending: Dict[Path, RawEvent] = {}
        self._lock = threading.Lock()

    def add(self, event: RawEvent) -> None:
        """
        Add an event, merging it with a pending one for the same path.

        Merging rules:
        - CHANGE after ADD stays ADD
        - ADD after UNLINK becomes CHANGE (file replaced)
        - otherwise the latest kind wins

        Args:
            event: The raw event
        """
        with self._lock:
            existing = self._pending.pop(event.path, None)
            kind = event.kind
            if existing is not None:
                if kind is RawEventKind.CHANGE and existing.kind is RawEventKind.ADD:
                    kind = RawEventKind.ADD
                elif kind is RawEventKind.ADD and existing.kind is RawEventKind.UNLINK:
                    kind = RawEventKind.CHANGE
            self._pending[event.path] = replace(event, kind=kind)

    def flush(self, current_time: float) -> List[RawEvent]:
        """
        Release events whose path has been quiet for the window.

        Args:
            current_time: Current timestamp

        Returns:
            Released events, oldest notification first
        """
        window_sec = self.debounce_ms / 1000.0

        with self._lock:
            ready = [
                event for event in self._pending.values()
                if current_time - event.timestamp >= window_sec
            ]
            for event in ready:
                del self._pending[event.path]

        return sorted(ready, key=lambda e: e.timestamp)

    def flush_all(self) -> List[RawEvent]:
        """Release every pending event regardless of time."""
        with self._lock:
            events = sorted(self._pending.values(), key=lambda e: e.timestamp)
            self._pending.clear()
        return events

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)


class RawEventHandler(FileSystemEventHandler):
    """Handler that converts watchdog file events to RawEvents."""

    def __init__(self, source: "RawWatchSource", root: Path):
        super().__init__()
        self.source = source
        self.root = root

    def on_created(self, event):
        if not event.is_directory:
            self.source.deliver(RawEventKind.ADD, event.src_path, self.root)

    def on_modified(self, event):
        if not event.is_directory:
            self.source.deliver(RawEventKind.CHANGE, event.src_path, self.root)

    def on_deleted(self, event):
        if not event.is_directory:
            self.source.deliver(RawEventKind.UNLINK, event.src_path, self.root)

    def on_moved(self, event):
        if event.is_directory:
            return
        self.source.deliver(RawEventKind.UNLINK, event.src_path, self.root)
        self.source.deliver(RawEventKind.ADD, event.dest_path, self.root)


class RawWatchSource:
    """
    A set of recursively watched paths producing add/change/unlink events.

    Paths can be added and removed while the source runs. When watched paths
    are nested, each file is reported only by the watch of its nearest
    watched ancestor, so nested paths never produce duplicate events.

    With a positive ``debounce_ms`` events are debounced per path and
    delivered from a flush thread; with 0 they are delivered immediately
    from the observer thread.
    """

    def __init__(
        self,
        name: str,
        paths: Iterable[Path],
        on_event: RawEventCallback,
        on_error: Optional[ErrorCallback] = None,
        config: Optional[WatchConfig] = None,
        matcher: Optional[PathFilter] = None,
    ):
        """
        Initialize the watch source.

        Args:
            name: Name used in logs and in produced events
            paths: Directories to watch recursively
            on_event: Callback for raw events
            on_error: Callback for RawSourceErrors
            config: Watch configuration
            matcher: Optional filter; files it rejects are not reported
        """
        self.name = name
        self.config = config or WatchConfig()
        self.matcher = matcher
        self._on_event = on_event
        self._on_error = on_error
        self._requested: Dict[Path, Path] = {}
        self._pending: List[Path] = [normalize_path(p) for p in paths]
        self._watches: Dict[Path, ObservedWatch] = {}
        self._observer: Optional[BaseObserver] = None
        self._debouncer = RawEventDebouncer(self.config.debounce_ms)
        self._stop_event = threading.Event()
        self._flush_thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._closed = False
        self._lock = threading.RLock()

    def _create_observer(self) -> BaseObserver:
        if self.config.use_polling:
            return PollingObserver(timeout=self.config.polling_interval_s)
        return Observer()

    def start(self) -> "RawWatchSource":
        """
        Start the observer and schedule the initial paths.

        The readiness signal is set once every initial path is scheduled, or
        once starting has failed; failures are reported through ``on_error``.

        Returns:
            self
        """
        with self._lock:
            if self._observer is not None or self._closed:
                return self

            observer = self._create_observer()
            try:
                observer.start()
            except (OSError, RuntimeError) as e:
                failure = f"Cannot start watch source '{self.name}': {e}"
            else:
                failure = None
                self._observer = observer
                if self.config.debounce_ms > 0:
                    self._flush_thread = threading.Thread(
                        target=self._flush_loop,
                        name=f"RawFlush-{self.name}",
                        daemon=True,
                    )
                    self._flush_thread.start()
            pending, self._pending = self._pending, []

        if failure is not None:
            self._report_error(failure)
        else:
            for path in pending:
                self.add_path(path)

        self._ready.set()
        logger.debug(f"Watch source '{self.name}' ready with {len(self)} watch(es)")
        return self

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the readiness signal.

        Args:
            timeout: Maximum seconds to wait, None waits forever

        Returns:
            True if the source is ready
        """
        return self._ready.wait(timeout)

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def add_path(self, path: Path) -> bool:
        """
        Start watching a directory.

        A directory that does not exist yet is covered by a watch on its
        nearest existing ancestor.

        Args:
            path: Directory to watch

        Returns:
            True if the path was added, False if already watched or closed
        """
        path = normalize_path(path)

        with self._lock:
            if self._closed or path in self._requested:
                return False
            if self._observer is None:
                if path in self._pending:
                    return False
                self._pending.append(path)
                return True

            root = _nearest_existing(path)
            failure = None
            if root not in self._watches:
                try:
                    self._watches[root] = self._observer.schedule(
                        RawEventHandler(self, root),
                        str(root),
                        recursive=True,
                    )
                except OSError as e:
                    failure = f"Cannot watch '{root}' in source '{self.name}': {e}"
            if failure is None:
                self._requested[path] = root

        if failure is not None:
            self._report_error(failure)
            return False
        return True

    def remove_path(self, path: Path) -> bool:
        """
        Stop watching a directory.

        Args:
            path: Directory previously passed to ``add_path``

        Returns:
            True if the path was being watched
        """
        path = normalize_path(path)

        with self._lock:
            if path in self._pending:
                self._pending.remove(path)
                return True
            root = self._requested.pop(path, None)
            if root is None:
                return False
            if root in self._requested.values():
                return True

            watch = self._watches.pop(root)
            if self._observer is not None:
                try:
                    self._observer.unschedule(watch)
                except (KeyError, OSError) as e:
                    logger.debug(f"Unscheduling '{root}' from '{self.name}' failed: {e}")
            return True

    def watched_paths(self) -> List[Path]:
        """Get the directories currently requested, ordered."""
        with self._lock:
            return sorted(set(self._requested) | set(self._pending))

    def close(self) -> bool:
        """
        Stop the observer and release every watch.

        Returns:
            True if the source was closed by this call, False if already closed
        """
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            observer = self._observer
            flush_thread = self._flush_thread
            self._observer = None
            self._flush_thread = None
            self._watches.clear()
            self._requested.clear()
            self._pending.clear()

        self._ready.set()
        self._stop_event.set()
        self._debouncer.clear()

        if observer is not None:
            observer.stop()
            if observer is not threading.current_thread():
                observer.join(timeout=JOIN_TIMEOUT_S)
        if flush_thread is not None and flush_thread is not threading.current_thread():
            flush_thread.join(timeout=JOIN_TIMEOUT_S)
        logger.debug(f"Watch source '{self.name}' closed")
        return True

    def deliver(self, kind: RawEventKind, raw_path, root: Path) -> None:
        """
        Filter a notification and pass it on.

        Accepted events go to the debouncer, or straight to the event
        callback when debouncing is off.

        Args:
            kind: Raw event kind
            raw_path: Path reported by watchdog (str or bytes)
            root: Watched root whose handler saw the event
        """
        path = normalize_path(os.fsdecode(raw_path))

        if self.config.should_ignore(path):
            return
        if self.matcher is not None and not self.matcher(path):
            return

        with self._lock:
            if self._closed or _nearest_root(path, self._watches) != root:
                return
            debouncing = self._flush_thread is not None

        event = RawEvent(kind=kind, path=path, source=self.name)
        if debouncing:
            self._debouncer.add(event)
        else:
            self._dispatch(event)

    def _flush_loop(self) -> None:
        """Worker loop that releases debounced events."""
        interval = max(self.config.debounce_ms / 2000.0, MIN_FLUSH_INTERVAL_S)
        logger.debug(f"Flush loop for '{self.name}' started, interval={interval}s")

        while not self._stop_event.is_set():
            for event in self._debouncer.flush(time.time()):
                self._dispatch(event)
            self._stop_event.wait(timeout=interval)

    def _dispatch(self, event: RawEvent) -> None:
        if self._closed:
            return
        try:
            self._on_event(event)
        except Exception:
            logger.exception(
                f"Error handling {event.kind.value} event for {event.path} from '{self.name}'"
            )

    def _report_error(self, message: str) -> None:
        logger.warning(message)
        if self._on_error is not None:
            self._on_error(RawSourceError(message, source=self.name))

    def __len__(self) -> int:
        """Return the number of active watchdog watches."""
        with self._lock:
            return len(self._watches)

    def __repr__(self) -> str:
        return f"RawWatchSource({self.name!r}, paths={self.watched_paths()!r})"


def _nearest_existing(path: Path) -> Path:
    current = path
    while not current.is_dir() and current.parent != current:
        current = current.parent
    return current


def _nearest_root(path: Path, roots: Iterable[Path]) -> Optional[Path]:
    best: Optional[Path] = None
    for root in roots:
        if root == path or root in path.parents:
            if best is None or len(root.parts) > len(best.parts):
                best = root
    return best
