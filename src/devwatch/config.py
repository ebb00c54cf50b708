"""Configuration for the devwatch package."""

import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


@dataclass
class WatchConfig:
    """
    Configuration options for the entity watcher.

    Attributes:
        stores_directory: Directory containing store files
        store_extension: File extension of store files
        components_glob: Glob expressions matching component manifests
        default_logic: Logic file used when a manifest does not declare one
        debounce_ms: Quiet period in ms before a path's events are delivered; 0 disables debouncing
        ready_timeout_s: Maximum time watch() waits for a source to be ready
        use_polling: Use a polling observer instead of native OS events
        polling_interval_s: Interval of the polling observer
        ignore_patterns: Glob patterns for files to ignore
    """
    stores_directory: Path = field(default_factory=lambda: Path("catberry_stores"))
    store_extension: str = ".js"
    components_glob: List[str] = field(default_factory=lambda: [
        "catberry_components/**/cat-component.json",
    ])
    default_logic: str = "./index.js"
    debounce_ms: int = 50
    ready_timeout_s: float = 10.0
    use_polling: bool = False
    polling_interval_s: float = 1.0
    ignore_patterns: List[str] = field(default_factory=lambda: [
        "*.tmp",
        "*.swp",
        "*.swo",
        "*.swx",
        "*~",
        ".#*",
        "4913",
        ".git/*",
        ".git",
        "__pycache__/*",
        "__pycache__",
        "*.pyc",
        ".DS_Store",
        "Thumbs.db",
    ])

    def __post_init__(self):
        if isinstance(self.stores_directory, str):
            self.stores_directory = Path(self.stores_directory)
        if isinstance(self.components_glob, str):
            self.components_glob = [self.components_glob]

    def should_ignore(self, path: Path) -> bool:
        """
        Check if a path should be ignored based on ignore patterns.

        Args:
            path: Path to check

        Returns:
            True if the path should be ignored
        """
        path_str = path.as_posix()
        name = path.name

        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(name, pattern):
                return True
            if fnmatch.fnmatch(path_str, f"*/{pattern}"):
                return True
            if fnmatch.fnmatch(path_str, pattern):
                return True

        return False

    @classmethod
    def from_env(cls, prefix: str = "DEVWATCH_") -> "WatchConfig":
        """
        Build a configuration from environment variables.

        Recognized variables (with the default prefix): DEVWATCH_STORES_DIR,
        DEVWATCH_STORE_EXTENSION, DEVWATCH_COMPONENTS_GLOB (os.pathsep
        separated), DEVWATCH_DEBOUNCE_MS, DEVWATCH_READY_TIMEOUT,
        DEVWATCH_USE_POLLING.
        """
        config = cls()

        stores_dir = os.environ.get(f"{prefix}STORES_DIR")
        if stores_dir:
            config.stores_directory = Path(stores_dir)

        extension = os.environ.get(f"{prefix}STORE_EXTENSION")
        if extension:
            config.store_extension = extension if extension.startswith(".") else f".{extension}"

        globs = os.environ.get(f"{prefix}COMPONENTS_GLOB")
        if globs:
            config.components_glob = [g for g in globs.split(os.pathsep) if g]

        debounce = _env_int(f"{prefix}DEBOUNCE_MS")
        if debounce is not None:
            config.debounce_ms = debounce

        ready_timeout = os.environ.get(f"{prefix}READY_TIMEOUT")
        if ready_timeout:
            config.ready_timeout_s = float(ready_timeout)

        polling = os.environ.get(f"{prefix}USE_POLLING")
        if polling:
            config.use_polling = polling.strip().lower() in ("1", "true", "yes", "on")

        return config


def _env_int(name: str) -> Optional[int]:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return None
    return int(value)
