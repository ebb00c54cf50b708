"""Thread-safe registry of known stores and components."""

import threading
from pathlib import Path
from typing import Dict, List, Optional

from .exceptions import RegistryInvariantViolation
from .models import ComponentDescriptor, StoreDescriptor


class EntityRegistry:
    """
    Thread-safe registry of the stores and components currently known.

    Stores are keyed by path. Components are keyed by the directory their
    manifest resides in, and at most one component may own a directory.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._stores: Dict[Path, StoreDescriptor] = {}
        self._components_by_dirs: Dict[Path, ComponentDescriptor] = {}
        self._lock = threading.RLock()

    # Stores

    def put_store(self, store: StoreDescriptor) -> Optional[StoreDescriptor]:
        """
        Register a store, replacing any store at the same path.

        Args:
            store: Descriptor to register

        Returns:
            The replaced descriptor, or None
        """
        with self._lock:
            previous = self._stores.get(store.path)
            self._stores[store.path] = store
            return previous

    def remove_store(self, path: Path) -> Optional[StoreDescriptor]:
        """
        Remove the store registered at a path.

        Args:
            path: Normalized store path

        Returns:
            The removed descriptor, or None if unknown
        """
        with self._lock:
            return self._stores.pop(path, None)

    def get_store(self, path: Path) -> Optional[StoreDescriptor]:
        with self._lock:
            return self._stores.get(path)

    def stores(self) -> List[StoreDescriptor]:
        """Get all registered stores, ordered by path."""
        with self._lock:
            return [self._stores[p] for p in sorted(self._stores)]

    # Components

    def add_component(self, component: ComponentDescriptor) -> None:
        """
        Register a component under its manifest directory.

        Args:
            component: Descriptor to register

        Raises:
            RegistryInvariantViolation: If the directory is already owned
        """
        directory = component.directory

        with self._lock:
            existing = self._components_by_dirs.get(directory)
            if existing is not None:
                raise RegistryInvariantViolation(directory, existing.path, component.path)
            self._components_by_dirs[directory] = component

    def remove_component(self, component: ComponentDescriptor) -> bool:
        """
        Remove a component.

        Only the exact registered descriptor is removed; a stale descriptor
        for a directory that has since been re-registered is left alone.

        Args:
            component: Descriptor to remove

        Returns:
            True if the component was removed
        """
        directory = component.directory

        with self._lock:
            if self._components_by_dirs.get(directory) != component:
                return False
            del self._components_by_dirs[directory]
            return True

    def get_component(self, manifest_path: Path) -> Optional[ComponentDescriptor]:
        """
        Look up the component whose manifest is exactly ``manifest_path``.

        Args:
            manifest_path: Normalized manifest path

        Returns:
            The descriptor, or None
        """
        with self._lock:
            component = self._components_by_dirs.get(manifest_path.parent)
            if component is not None and component.path == manifest_path:
                return component
            return None

    def components(self) -> List[ComponentDescriptor]:
        """Get all registered components, ordered by directory."""
        with self._lock:
            return [self._components_by_dirs[d] for d in sorted(self._components_by_dirs)]

    def components_by_dirs(self) -> Dict[Path, ComponentDescriptor]:
        """
        Get a snapshot of the directory index.

        Returns:
            Mapping of directory to component
        """
        with self._lock:
            return dict(self._components_by_dirs)

    def component_dirs(self) -> List[Path]:
        """Get the directories of all registered components."""
        with self._lock:
            return sorted(self._components_by_dirs)

    def clear(self) -> int:
        """
        Remove every store and component.

        Returns:
            Number of entities removed
        """
        with self._lock:
            count = len(self._stores) + len(self._components_by_dirs)
            self._stores.clear()
            self._components_by_dirs.clear()
            return count

    def __len__(self) -> int:
        """Return the number of registered entities."""
        with self._lock:
            return len(self._stores) + len(self._components_by_dirs)
