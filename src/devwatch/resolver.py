"""Resolution of a changed path to the component that owns it."""

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .models import ComponentDescriptor
from .paths import same_path


@dataclass(frozen=True)
class Resolution:
    """
    Outcome of resolving a changed path.

    Attributes:
        component: Owning component, or None when nothing owns the path
        is_manifest: The changed path is the component's own manifest
    """
    component: Optional[ComponentDescriptor] = None
    is_manifest: bool = False

    @property
    def is_miss(self) -> bool:
        return self.component is None

    @property
    def is_content_change(self) -> bool:
        """True when the path is a file inside a component other than its manifest."""
        return self.component is not None and not self.is_manifest


MISS = Resolution()


def find_owner(
    changed_path: Path,
    components_by_dirs: Mapping[Path, ComponentDescriptor],
) -> Optional[ComponentDescriptor]:
    """
    Find the component owning a path by walking up its parent directories.

    The nearest enclosing component directory wins, so a file inside a
    nested component belongs to the nested component.

    Args:
        changed_path: Normalized absolute path
        components_by_dirs: Directory index of the registry

    Returns:
        The owning component, or None if the filesystem root is reached
    """
    current = changed_path
    while True:
        parent = current.parent
        if parent == current:
            return None
        if parent in components_by_dirs:
            return components_by_dirs[parent]
        current = parent


def resolve_component(
    changed_path: Path,
    components_by_dirs: Mapping[Path, ComponentDescriptor],
) -> Resolution:
    """
    Resolve a changed path against the directory index.

    Args:
        changed_path: Normalized absolute path
        components_by_dirs: Directory index of the registry

    Returns:
        MISS, a content resolution, or a manifest ("self") resolution
    """
    component = find_owner(changed_path, components_by_dirs)
    if component is None:
        return MISS
    return Resolution(component, is_manifest=same_path(component.path, changed_path))
