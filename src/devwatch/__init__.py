"""
devwatch

Development-mode watcher that reconciles raw file system notifications into
lifecycle events for stores (single files) and components (directories
rooted at a manifest), and reloads them without restarting the process.

Features:
- Three watch sources: store files, component manifests, component directories
- Dynamic component directory watch set, kept in step with the registry
- Nearest-enclosing-directory ownership resolution for nested components
- Logic/template/error-template classification of changed files
- Manifest edits reported as unlink followed by add, never as in-place updates
- Coalescing of redundant change notifications
"""

from .models import (
    RawEventKind,
    EventType,
    FileRole,
    TransitionKind,
    WatchState,
    StoreDescriptor,
    ComponentDescriptor,
    RawEvent,
    ComponentTransition,
    WatchEvent,
)

from .config import WatchConfig

from .exceptions import (
    WatchError,
    RawSourceError,
    ManifestParseError,
    RegistryInvariantViolation,
    WatcherAlreadyRunningError,
)

from .paths import normalize_path, component_relative_path, same_path
from .globs import GlobMatcher
from .registry import EntityRegistry
from .finders import StoreFinder, ComponentFinder
from .resolver import Resolution, resolve_component
from .classifier import classify
from .fs_watcher import RawWatchSource, RawEventDebouncer
from .loaders import EntityLoader, LoggingLoader, BackgroundLoader
from .event_log import EventLogger
from .watcher import EntityWatcher


__all__ = [
    # Models
    "RawEventKind",
    "EventType",
    "FileRole",
    "TransitionKind",
    "WatchState",
    "StoreDescriptor",
    "ComponentDescriptor",
    "RawEvent",
    "ComponentTransition",
    "WatchEvent",
    # Config
    "WatchConfig",
    # Exceptions
    "WatchError",
    "RawSourceError",
    "ManifestParseError",
    "RegistryInvariantViolation",
    "WatcherAlreadyRunningError",
    # Reconciliation
    "normalize_path",
    "component_relative_path",
    "same_path",
    "GlobMatcher",
    "EntityRegistry",
    "StoreFinder",
    "ComponentFinder",
    "Resolution",
    "resolve_component",
    "classify",
    # Components
    "RawWatchSource",
    "RawEventDebouncer",
    "EntityLoader",
    "LoggingLoader",
    "BackgroundLoader",
    "EventLogger",
    # Orchestrator
    "EntityWatcher",
]

__version__ = "0.1.0"
