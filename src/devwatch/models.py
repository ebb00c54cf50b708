"""Data models for the devwatch package."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional
import time


class RawEventKind(Enum):
    """Kinds of raw notifications produced by a watch source."""
    ADD = "add"
    CHANGE = "change"
    UNLINK = "unlink"


class EventType(Enum):
    """Types of semantic events emitted by the watcher."""
    ADD_STORE = "add_store"
    CHANGE_STORE = "change_store"
    UNLINK_STORE = "unlink_store"
    RELOAD_STORE = "reload_store"
    ADD_COMPONENT = "add_component"
    CHANGE_COMPONENT = "change_component"
    CHANGE_LOGIC = "change_logic"
    CHANGE_TEMPLATES = "change_templates"
    UNLINK_COMPONENT = "unlink_component"
    ERROR = "error"


class FileRole(Enum):
    """Role of a file inside a component directory."""
    LOGIC = "logic"
    TEMPLATE = "template"
    ERROR_TEMPLATE = "error_template"
    ASSET = "asset"


class TransitionKind(Enum):
    """Lifecycle transitions a component descriptor can go through."""
    ADD = "add"
    UNLINK = "unlink"


class WatchState(Enum):
    """Lifecycle states of the watcher."""
    CREATED = "created"
    STARTING = "starting"
    READY = "ready"
    CLOSED = "closed"


@dataclass(frozen=True)
class StoreDescriptor:
    """
    A single-file store.

    Attributes:
        name: Store name, relative to the stores directory without extension
        path: Absolute path to the store file
    """
    name: str
    path: Path

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {"name": self.name, "path": str(self.path)}

    @classmethod
    def from_dict(cls, data: dict) -> "StoreDescriptor":
        """Create from dictionary."""
        return cls(name=data["name"], path=Path(data["path"]))


@dataclass(frozen=True)
class ComponentDescriptor:
    """
    A component rooted at its manifest file.

    Descriptors are never mutated; a manifest change produces a new one.
    Properties are copied into a read-only mapping on construction and are
    left out of the hash.

    Attributes:
        name: Lower-cased component name
        path: Absolute path to the manifest file
        properties: Parsed manifest content
    """
    name: str
    path: Path
    properties: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    @property
    def directory(self) -> Path:
        """Directory the manifest resides in."""
        return self.path.parent

    @property
    def logic(self) -> Optional[str]:
        return self.properties.get("logic")

    @property
    def template(self) -> Optional[str]:
        return self.properties.get("template")

    @property
    def error_template(self) -> Optional[str]:
        value = self.properties.get("errorTemplate")
        return value if isinstance(value, str) else None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "path": str(self.path),
            "properties": dict(self.properties),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ComponentDescriptor":
        """Create from dictionary."""
        return cls(
            name=data["name"],
            path=Path(data["path"]),
            properties=dict(data.get("properties", {})),
        )


@dataclass(frozen=True)
class RawEvent:
    """
    Raw notification from a watch source before reconciliation.

    Attributes:
        kind: ADD, CHANGE or UNLINK
        path: Normalized absolute path of the file
        source: Name of the watch source that produced the event
        timestamp: Unix timestamp when the event was observed
    """
    kind: RawEventKind
    path: Path
    source: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ComponentTransition:
    """A tagged lifecycle step for a component: it appears or it goes away."""
    kind: TransitionKind
    component: ComponentDescriptor


@dataclass(frozen=True)
class WatchEvent:
    """
    Semantic event emitted by the watcher.

    Attributes:
        event_type: What happened
        store: Affected store for store events
        component: Affected component for component events
        filename: Changed file for CHANGE_COMPONENT events
        error: Reported error for ERROR events
        timestamp: Unix timestamp when the event was emitted
    """
    event_type: EventType
    store: Optional[StoreDescriptor] = None
    component: Optional[ComponentDescriptor] = None
    filename: Optional[Path] = None
    error: Optional[BaseException] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def path(self) -> Optional[Path]:
        """Path of the affected entity, if any."""
        if self.store is not None:
            return self.store.path
        if self.component is not None:
            return self.component.path
        return None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type.value,
            "store": self.store.to_dict() if self.store else None,
            "component": self.component.to_dict() if self.component else None,
            "filename": str(self.filename) if self.filename else None,
            "error": str(self.error) if self.error else None,
            "timestamp": self.timestamp,
        }
