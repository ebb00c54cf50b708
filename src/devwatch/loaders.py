"""Reload and unload collaborators invoked by the watcher."""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from .models import ComponentDescriptor, StoreDescriptor

logger = logging.getLogger(__name__)


class EntityLoader(ABC):
    """Abstract base class for whatever turns descriptors into live entities."""

    @abstractmethod
    def reload_store(self, store: StoreDescriptor) -> None:
        """
        (Re)initialize a store.

        Also called with the stale descriptor after a store was unlinked;
        the loader decides what unloading means.
        """
        pass

    @abstractmethod
    def reload_component(self, component: ComponentDescriptor) -> None:
        """(Re)initialize a component."""
        pass

    @abstractmethod
    def unload_component(self, component: ComponentDescriptor) -> None:
        """Release a component whose manifest changed or disappeared."""
        pass


class LoggingLoader(EntityLoader):
    """Loader that only records the requested operations in the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def reload_store(self, store: StoreDescriptor) -> None:
        logger.log(self.level, f"Reloading store \"{store.name}\" ({store.path})")

    def reload_component(self, component: ComponentDescriptor) -> None:
        logger.log(self.level, f"Reloading component \"{component.name}\" ({component.path})")

    def unload_component(self, component: ComponentDescriptor) -> None:
        logger.log(self.level, f"Unloading component \"{component.name}\" ({component.path})")


class BackgroundLoader(EntityLoader):
    """
    Runs another loader's operations on a single background worker.

    Calls return immediately, so the watcher never waits for a reload.
    Operations run one at a time in submission order, which keeps at most
    one reload per entity in flight.
    """

    def __init__(self, delegate: EntityLoader):
        """
        Initialize the background loader.

        Args:
            delegate: Loader doing the actual work
        """
        self.delegate = delegate
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="EntityLoader")
        self._closed = False
        self._lock = threading.Lock()

    def _submit(self, operation: Callable[[Any], None], descriptor: Any) -> Optional[Future]:
        with self._lock:
            if self._closed:
                logger.debug(f"Loader shut down, dropping {operation.__name__} for {descriptor.path}")
                return None
            return self._executor.submit(self._run, operation, descriptor)

    @staticmethod
    def _run(operation: Callable[[Any], None], descriptor: Any) -> None:
        try:
            operation(descriptor)
        except Exception:
            logger.exception(f"{operation.__name__} failed for {descriptor.path}")

    def reload_store(self, store: StoreDescriptor) -> None:
        self._submit(self.delegate.reload_store, store)

    def reload_component(self, component: ComponentDescriptor) -> None:
        self._submit(self.delegate.reload_component, component)

    def unload_component(self, component: ComponentDescriptor) -> None:
        self._submit(self.delegate.unload_component, component)

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting operations.

        Args:
            wait: Wait for queued operations to finish
        """
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
