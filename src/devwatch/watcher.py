"""Watch orchestrator turning raw file events into entity lifecycle events."""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Optional, Set

from .classifier import classify, is_template
from .config import WatchConfig
from .exceptions import (
    ManifestParseError,
    RawSourceError,
    RegistryInvariantViolation,
    WatcherAlreadyRunningError,
)
from .finders import ComponentFinder, StoreFinder
from .fs_watcher import PathFilter, RawWatchSource
from .globs import GlobMatcher
from .loaders import EntityLoader
from .models import (
    ComponentDescriptor,
    ComponentTransition,
    EventType,
    FileRole,
    RawEvent,
    RawEventKind,
    TransitionKind,
    WatchEvent,
    WatchState,
)
from .resolver import resolve_component

logger = logging.getLogger(__name__)

STORES_SOURCE = "stores"
MANIFESTS_SOURCE = "manifests"
COMPONENT_DIRS_SOURCE = "component_dirs"

WatchListener = Callable[[WatchEvent], None]
SourceFactory = Callable[..., RawWatchSource]


class EntityWatcher:
    """
    Watches stores and components and reconciles file events into
    entity lifecycle events.

    Three watch sources run side by side: store files, component manifests
    and the directories of registered components. Their events are handled
    one at a time under a single lock, so resolving a path and mutating the
    registry and the component directory watch set happen atomically.
    """

    def __init__(
        self,
        store_finder: StoreFinder,
        component_finder: ComponentFinder,
        loader: EntityLoader,
        config: Optional[WatchConfig] = None,
        source_factory: Optional[SourceFactory] = None,
    ):
        """
        Initialize the watcher.

        Args:
            store_finder: Finder owning the store registry
            component_finder: Finder owning the component registry
            loader: Collaborator reloading and unloading entities
            config: Watch configuration
            source_factory: Builds raw watch sources (default: RawWatchSource)
        """
        self.store_finder = store_finder
        self.component_finder = component_finder
        self.loader = loader
        self.config = config or WatchConfig()
        self._source_factory = source_factory or RawWatchSource
        self._sources: Dict[str, RawWatchSource] = {}
        self._active_dirs: Set[Path] = set()
        self._listeners: List[WatchListener] = []
        self._state = WatchState.CREATED
        self._lock = threading.RLock()

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def active_watch_set(self) -> FrozenSet[Path]:
        """Component directories currently handed to the directory source."""
        with self._lock:
            return frozenset(self._active_dirs)

    @property
    def sources(self) -> Dict[str, RawWatchSource]:
        with self._lock:
            return dict(self._sources)

    def add_listener(self, listener: WatchListener) -> None:
        """Subscribe a callable to the semantic event stream."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: WatchListener) -> bool:
        """
        Unsubscribe a callable.

        Returns:
            True if the listener was subscribed
        """
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
                return True
            return False

    def watch(self) -> List[RawWatchSource]:
        """
        Start the three watch sources and wait until all of them are ready.

        A source that fails or does not become ready in time is reported as
        an ERROR event; the others keep running.

        Returns:
            The store, manifest and component directory sources

        Raises:
            WatcherAlreadyRunningError: If watch() was already called
        """
        with self._lock:
            if self._state is not WatchState.CREATED:
                raise WatcherAlreadyRunningError(
                    f"Watcher cannot start from state '{self._state.value}'"
                )
            self._state = WatchState.STARTING

            cwd = self.component_finder.cwd
            store_matcher = GlobMatcher(self.store_finder.get_stores_glob_expression(), cwd)
            manifest_matcher = GlobMatcher(self.component_finder.get_components_glob_expression(), cwd)
            self._active_dirs = set(self.component_finder.get_dirs_of_found_components())

            self._sources = {
                STORES_SOURCE: self._create_source(
                    STORES_SOURCE,
                    store_matcher.base_directories,
                    self._on_store_event,
                    store_matcher,
                ),
                MANIFESTS_SOURCE: self._create_source(
                    MANIFESTS_SOURCE,
                    manifest_matcher.base_directories,
                    self._on_manifest_event,
                    manifest_matcher,
                ),
                COMPONENT_DIRS_SOURCE: self._create_source(
                    COMPONENT_DIRS_SOURCE,
                    sorted(self._active_dirs),
                    self._on_component_file_event,
                ),
            }
            sources = list(self._sources.values())

        logger.info("Watching stores and components for changes...")

        for source in sources:
            source.start()

        deadline = time.monotonic() + self.config.ready_timeout_s
        for source in sources:
            if not source.wait_ready(max(0.0, deadline - time.monotonic())):
                self._report_error(RawSourceError(
                    f"Watch source '{source.name}' not ready after {self.config.ready_timeout_s}s",
                    source=source.name,
                ))

        with self._lock:
            if self._state is WatchState.STARTING:
                self._state = WatchState.READY

        return sources

    def close_watch(self) -> None:
        """
        Stop watching and close every source.

        Safe to call from any state and more than once.
        """
        with self._lock:
            if self._state is WatchState.CLOSED:
                return
            self._state = WatchState.CLOSED
            sources = list(self._sources.values())

        for source in sources:
            source.close()
        logger.info("Stopped watching stores and components")

    def _create_source(
        self,
        name: str,
        paths: List[Path],
        handler: Callable[[RawEvent], None],
        matcher: Optional[PathFilter] = None,
    ) -> RawWatchSource:
        return self._source_factory(
            name=name,
            paths=paths,
            on_event=handler,
            on_error=self._report_error,
            config=self.config,
            matcher=matcher,
        )

    def _accepting(self, event: RawEvent) -> bool:
        if self._state is WatchState.READY:
            return True
        logger.debug(
            f"Dropping {event.kind.value} event for {event.path}: watcher is {self._state.value}"
        )
        return False

    # Stores

    def _on_store_event(self, event: RawEvent) -> None:
        with self._lock:
            if not self._accepting(event):
                return

            if event.kind is RawEventKind.ADD:
                store = self.store_finder.add_store_by_filename(event.path)
                self._emit(WatchEvent(EventType.ADD_STORE, store=store))
                self._invoke(self.loader.reload_store, store)

            elif event.kind is RawEventKind.CHANGE:
                store = self.store_finder.add_store_by_filename(event.path)
                self._emit(WatchEvent(EventType.CHANGE_STORE, store=store))
                self._invoke(self.loader.reload_store, store)
                self._emit(WatchEvent(EventType.RELOAD_STORE, store=store))

            else:
                store = self.store_finder.delete_store_by_filename(event.path)
                if store is None:
                    logger.debug(f"Ignoring unlink of unknown store {event.path}")
                    return
                self._emit(WatchEvent(EventType.UNLINK_STORE, store=store))
                self._invoke(self.loader.reload_store, store)

    # Component manifests

    def _on_manifest_event(self, event: RawEvent) -> None:
        with self._lock:
            if not self._accepting(event):
                return

            # A manifest is never updated in place: whatever is registered at
            # this path goes away first, then the manifest is read again.
            retired = self._retire_component(event.path)
            if retired is not None:
                self._apply(retired)

            if event.kind is RawEventKind.UNLINK:
                return

            registered = self._register_component(event.path)
            if registered is not None:
                self._apply(registered)

    def _register_component(self, manifest_path: Path) -> Optional[ComponentTransition]:
        try:
            component = self.component_finder.create_component_descriptor(manifest_path)
        except ManifestParseError as e:
            self._report_error(e)
            return None

        try:
            self.component_finder.add_component_to_registry(component)
        except RegistryInvariantViolation as e:
            logger.error(f"Registry invariant violated: {e}")
            self._report_error(e)
            return None

        self._watch_dir(component.directory)
        return ComponentTransition(TransitionKind.ADD, component)

    def _retire_component(self, manifest_path: Path) -> Optional[ComponentTransition]:
        component = self.component_finder.get_component_by_manifest(manifest_path)
        if component is None:
            return None

        self.component_finder.remove_component_from_registry(component)
        self._unwatch_dir(component.directory)
        return ComponentTransition(TransitionKind.UNLINK, component)

    def _apply(self, transition: ComponentTransition) -> None:
        component = transition.component
        if transition.kind is TransitionKind.UNLINK:
            self._emit(WatchEvent(EventType.UNLINK_COMPONENT, component=component))
            self._invoke(self.loader.unload_component, component)
        else:
            self._emit(WatchEvent(EventType.ADD_COMPONENT, component=component))
            self._invoke(self.loader.reload_component, component)

    def _watch_dir(self, directory: Path) -> None:
        self._active_dirs.add(directory)
        source = self._sources.get(COMPONENT_DIRS_SOURCE)
        if source is not None:
            source.add_path(directory)

    def _unwatch_dir(self, directory: Path) -> None:
        self._active_dirs.discard(directory)
        source = self._sources.get(COMPONENT_DIRS_SOURCE)
        if source is not None:
            source.remove_path(directory)

    # Files inside component directories

    def _on_component_file_event(self, event: RawEvent) -> None:
        with self._lock:
            if not self._accepting(event):
                return

            resolution = resolve_component(
                event.path,
                self.component_finder.get_found_components_by_dirs(),
            )
            # Manifest events belong to the manifest source
            if not resolution.is_content_change:
                return

            component: ComponentDescriptor = resolution.component
            role = classify(component, event.path, self.component_finder.cwd)

            if role is FileRole.LOGIC:
                self._emit(WatchEvent(EventType.CHANGE_LOGIC, component=component))
            elif is_template(role):
                self._emit(WatchEvent(EventType.CHANGE_TEMPLATES, component=component))

            self._emit(WatchEvent(
                EventType.CHANGE_COMPONENT,
                component=component,
                filename=event.path,
            ))
            self._invoke(self.loader.reload_component, component)

    # Plumbing

    def _emit(self, event: WatchEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Listener failed on {event.event_type.value} event")

    def _invoke(self, operation: Callable, descriptor) -> None:
        try:
            operation(descriptor)
        except Exception as e:
            logger.exception(f"Loader failed for {descriptor.path}")
            self._report_error(e)

    def _report_error(self, error: Exception) -> None:
        with self._lock:
            if self._state is WatchState.CLOSED:
                logger.debug(f"Ignoring error after close: {error}")
                return
            self._emit(WatchEvent(EventType.ERROR, error=error))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_watch()
        return False
