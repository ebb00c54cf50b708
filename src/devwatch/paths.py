"""Path normalization shared by the finders, the resolver and the classifier.

Every path that enters the registry or arrives from a watch source goes
through ``normalize_path`` so that equality checks (most importantly the
"changed path is the manifest itself" guard) compare like with like.
"""

import os
from pathlib import Path, PurePath
from typing import Optional, Type, Union

PathLike = Union[str, "os.PathLike[str]"]


def normalize_path(path: PathLike, cwd: Optional[PathLike] = None) -> Path:
    """
    Turn a path into its absolute, resolved form.

    Args:
        path: Absolute path, or a path relative to ``cwd``
        cwd: Base for relative paths (default: the process working directory)

    Returns:
        Absolute path with symlinks, ``.`` and ``..`` resolved
    """
    base = os.fspath(cwd) if cwd is not None else os.getcwd()
    joined = os.path.join(base, os.fspath(path))
    return Path(os.path.normpath(joined)).resolve()


def relative_to_cwd(path: PathLike, cwd: Optional[PathLike] = None) -> str:
    """
    Express a path relative to the working directory.

    Args:
        path: Path to express
        cwd: Working directory (default: the process working directory)

    Returns:
        The relative path, or the normalized absolute path when no relative
        form exists (different drives on Windows)
    """
    base = normalize_path(cwd) if cwd is not None else normalize_path(os.getcwd())
    target = normalize_path(path, base)
    try:
        return os.path.relpath(target, base)
    except ValueError:
        return str(target)


def component_relative_path(
    component_path: PathLike,
    inner_path: str,
    cwd: Optional[PathLike] = None,
) -> str:
    """
    Get a component's inner path relative to the working directory.

    Args:
        component_path: Path to the component's manifest
        inner_path: Path declared in the manifest, relative to its directory
        cwd: Working directory (default: the process working directory)

    Returns:
        The inner path relative to the working directory
    """
    directory = os.path.dirname(os.fspath(component_path))
    return relative_to_cwd(os.path.join(directory, inner_path), cwd)


def same_path(
    left: PathLike,
    right: PathLike,
    flavour: Type[PurePath] = PurePath,
) -> bool:
    """
    Compare two paths after separator normalization.

    ``flavour`` selects the platform rules: ``PureWindowsPath`` treats ``/``
    and ``\\`` as the same separator and ignores case.
    """
    return flavour(os.fspath(left)) == flavour(os.fspath(right))
