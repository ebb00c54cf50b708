"""Custom exceptions for the devwatch package."""

from pathlib import Path
from typing import Optional


class WatchError(Exception):
    """Base exception for all watch errors."""
    pass


class RawSourceError(WatchError):
    """A raw watch source failed to start or hit an OS level error."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class ManifestParseError(WatchError):
    """A component manifest could not be read or is malformed."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class RegistryInvariantViolation(WatchError):
    """Two components claim the same directory."""

    def __init__(self, directory: Path, existing: Path, claimant: Path):
        super().__init__(
            f"Directory '{directory}' is already owned by '{existing}', "
            f"cannot register '{claimant}'"
        )
        self.directory = directory
        self.existing = existing
        self.claimant = claimant


class WatcherAlreadyRunningError(WatchError):
    """watch() was called on a watcher that has already been started."""
    pass
