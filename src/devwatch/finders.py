"""Discovery of stores and components, and descriptor construction."""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from .config import WatchConfig
from .exceptions import ManifestParseError, RegistryInvariantViolation
from .globs import GlobMatcher
from .models import ComponentDescriptor, StoreDescriptor
from .paths import PathLike, normalize_path
from .registry import EntityRegistry

logger = logging.getLogger(__name__)

MANIFEST_STRING_FIELDS = ("name", "logic", "template", "errorTemplate")


class StoreFinder:
    """
    Finds store files and keeps the registry's store set up to date.
    """

    def __init__(
        self,
        registry: EntityRegistry,
        config: Optional[WatchConfig] = None,
        cwd: Optional[Path] = None,
    ):
        """
        Initialize the store finder.

        Args:
            registry: Registry receiving the found stores
            config: Watch configuration
            cwd: Base for relative paths (default: the process working directory)
        """
        self.registry = registry
        self.config = config or WatchConfig()
        self.cwd = cwd
        self.stores_directory = normalize_path(self.config.stores_directory, cwd)

    def get_stores_glob_expression(self) -> str:
        """Glob expression matching every store file."""
        return f"{self.stores_directory.as_posix()}/**/*{self.config.store_extension}"

    def find(self) -> List[StoreDescriptor]:
        """
        Scan the stores directory and register every store found.

        Returns:
            Registered store descriptors
        """
        matcher = GlobMatcher(self.get_stores_glob_expression(), self.cwd)
        found = [self.add_store_by_filename(path) for path in matcher.iter_matches()]
        logger.info(f"Found {len(found)} store(s) in {self.stores_directory}")
        return found

    def create_store_descriptor(self, filename: PathLike) -> StoreDescriptor:
        """
        Build a descriptor for a store file.

        The store name is the file's path relative to the stores directory,
        without extension and with ``/`` separators.
        """
        path = normalize_path(filename, self.cwd)
        try:
            relative = path.relative_to(self.stores_directory)
        except ValueError:
            relative = Path(path.name)
        name = relative.with_suffix("").as_posix()
        return StoreDescriptor(name=name, path=path)

    def add_store_by_filename(self, filename: PathLike) -> StoreDescriptor:
        """
        Register (or replace) the store at a path.

        Args:
            filename: Path to the store file

        Returns:
            The registered descriptor
        """
        store = self.create_store_descriptor(filename)
        self.registry.put_store(store)
        return store

    def delete_store_by_filename(self, filename: PathLike) -> Optional[StoreDescriptor]:
        """
        Remove the store at a path.

        Args:
            filename: Path to the store file

        Returns:
            The removed descriptor, or None if the store was unknown
        """
        return self.registry.remove_store(normalize_path(filename, self.cwd))


class ComponentFinder:
    """
    Finds component manifests and maintains the registry's directory index.
    """

    def __init__(
        self,
        registry: EntityRegistry,
        config: Optional[WatchConfig] = None,
        cwd: Optional[Path] = None,
    ):
        """
        Initialize the component finder.

        Args:
            registry: Registry receiving the found components
            config: Watch configuration
            cwd: Base for relative paths (default: the process working directory)
        """
        self.registry = registry
        self.config = config or WatchConfig()
        self.cwd = cwd

    def get_components_glob_expression(self) -> List[str]:
        """Glob expressions matching component manifests."""
        return list(self.config.components_glob)

    def find(self) -> List[ComponentDescriptor]:
        """
        Scan for manifests and register every component that parses.

        Manifests that fail to parse are skipped with a warning.

        Returns:
            Registered component descriptors
        """
        matcher = GlobMatcher(self.get_components_glob_expression(), self.cwd)
        found = []
        for path in matcher.iter_matches():
            try:
                component = self.create_component_descriptor(path)
            except ManifestParseError as e:
                logger.warning(f"Skipping component manifest {path}: {e}")
                continue
            try:
                self.add_component_to_registry(component)
            except RegistryInvariantViolation as e:
                logger.error(f"Registry invariant violated: {e}")
                continue
            found.append(component)
        logger.info(f"Found {len(found)} component(s)")
        return found

    def get_dirs_of_found_components(self) -> List[Path]:
        return self.registry.component_dirs()

    def get_found_components_by_dirs(self) -> Dict[Path, ComponentDescriptor]:
        return self.registry.components_by_dirs()

    def get_component_by_manifest(self, filename: PathLike) -> Optional[ComponentDescriptor]:
        """Get the registered component whose manifest is exactly ``filename``."""
        return self.registry.get_component(normalize_path(filename, self.cwd))

    def create_component_descriptor(self, filename: PathLike) -> ComponentDescriptor:
        """
        Read a manifest and build its component descriptor.

        Args:
            filename: Path to the manifest

        Returns:
            A new descriptor

        Raises:
            ManifestParseError: If the manifest is unreadable or malformed
        """
        path = normalize_path(filename, self.cwd)

        try:
            with open(path, "r", encoding="utf-8") as f:
                properties = json.load(f)
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestParseError(f"Cannot read manifest {path}: {e}", path) from e
        except json.JSONDecodeError as e:
            raise ManifestParseError(f"Invalid JSON in manifest {path}: {e}", path) from e

        if not isinstance(properties, dict):
            raise ManifestParseError(f"Manifest {path} must contain a JSON object", path)

        for key in MANIFEST_STRING_FIELDS:
            if key in properties and not isinstance(properties[key], str):
                raise ManifestParseError(f"Field '{key}' of manifest {path} must be a string", path)

        if "template" not in properties:
            raise ManifestParseError(f"Manifest {path} does not declare a template", path)

        if "logic" not in properties:
            properties = {**properties, "logic": self.config.default_logic}

        name = (properties.get("name") or path.parent.name).lower()
        return ComponentDescriptor(name=name, path=path, properties=properties)

    def add_component_to_registry(self, component: ComponentDescriptor) -> None:
        """
        Register a component.

        Raises:
            RegistryInvariantViolation: If its directory is already owned
        """
        self.registry.add_component(component)

    def remove_component_from_registry(self, component: ComponentDescriptor) -> bool:
        """
        Deregister a component.

        Returns:
            True if the component was registered
        """
        return self.registry.remove_component(component)
