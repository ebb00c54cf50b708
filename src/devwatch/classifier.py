"""Classification of a changed file by its role inside a component."""

from typing import List, Optional, Tuple

from .models import ComponentDescriptor, FileRole
from .paths import PathLike, component_relative_path, relative_to_cwd, same_path


def role_paths(
    component: ComponentDescriptor,
    cwd: Optional[PathLike] = None,
) -> List[Tuple[FileRole, str]]:
    """
    Expected cwd-relative paths of the component's declared files.

    The order is the tie-break order used by ``classify``. An undeclared
    error template is left out.
    """
    declared = [
        (FileRole.LOGIC, component.logic),
        (FileRole.TEMPLATE, component.template),
        (FileRole.ERROR_TEMPLATE, component.error_template),
    ]
    return [
        (role, component_relative_path(component.path, inner, cwd))
        for role, inner in declared
        if isinstance(inner, str)
    ]


def classify(
    component: ComponentDescriptor,
    changed_path: PathLike,
    cwd: Optional[PathLike] = None,
) -> FileRole:
    """
    Determine which role a changed file plays in a component.

    Args:
        component: Component owning the file
        changed_path: Changed file, absolute or relative to ``cwd``
        cwd: Working directory (default: the process working directory)

    Returns:
        LOGIC, TEMPLATE or ERROR_TEMPLATE for declared files (first match
        wins in that order), ASSET for anything else
    """
    relative = relative_to_cwd(changed_path, cwd)
    for role, expected in role_paths(component, cwd):
        if same_path(relative, expected):
            return role
    return FileRole.ASSET


def is_template(role: FileRole) -> bool:
    return role in (FileRole.TEMPLATE, FileRole.ERROR_TEMPLATE)
