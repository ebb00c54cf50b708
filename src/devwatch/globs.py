"""Glob expressions for store and manifest discovery.

A glob such as ``catberry_components/**/cat-component.json`` is split into a
static base directory (``catberry_components``), which is what gets watched,
and a wildcard remainder (``**/cat-component.json``), which is matched with
gitignore-style semantics against paths relative to that base.
"""

import os
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from pathspec import GitIgnoreSpec

from .paths import normalize_path

GLOB_CHARS = frozenset("*?[")


def split_glob(pattern: str, cwd: Optional[Path] = None) -> Tuple[Path, str]:
    """
    Split a glob expression into its static base and wildcard remainder.

    Args:
        pattern: Absolute glob, or glob relative to ``cwd``
        cwd: Base for relative globs (default: the process working directory)

    Returns:
        Tuple of (normalized base directory, remainder with ``/`` separators)
    """
    parts = PurePath(pattern).parts
    index = next(
        (i for i, part in enumerate(parts) if GLOB_CHARS.intersection(part)),
        None,
    )
    if index is None:
        # A plain path: watch its directory, match the name itself
        index = len(parts) - 1
    if index == 0:
        base = normalize_path(".", cwd)
    else:
        base = normalize_path(PurePath(*parts[:index]), cwd)
    return base, "/".join(parts[index:])


@dataclass(frozen=True)
class _CompiledGlob:
    base: Path
    remainder: str
    spec: GitIgnoreSpec

    def matches(self, path: Path) -> bool:
        try:
            relative = path.relative_to(self.base)
        except ValueError:
            return False
        return self.spec.match_file(relative.as_posix())


class GlobMatcher:
    """
    Matches normalized paths against one or more glob expressions.

    The matcher exposes the base directories a watch source has to observe
    for the globs to see every matching file.
    """

    def __init__(self, patterns: Union[str, Sequence[str]], cwd: Optional[Path] = None):
        """
        Initialize the matcher.

        Args:
            patterns: A glob expression or a list of them
            cwd: Base for relative globs (default: the process working directory)
        """
        if isinstance(patterns, str):
            patterns = [patterns]
        self.patterns: List[str] = list(patterns)
        self._globs: List[_CompiledGlob] = []
        for pattern in self.patterns:
            base, remainder = split_glob(pattern, cwd)
            # A leading slash anchors the remainder to the base directory
            spec = GitIgnoreSpec.from_lines([f"/{remainder}"])
            self._globs.append(_CompiledGlob(base, remainder, spec))

    @property
    def base_directories(self) -> List[Path]:
        """Distinct base directories, in declaration order."""
        seen: List[Path] = []
        for glob in self._globs:
            if glob.base not in seen:
                seen.append(glob.base)
        return seen

    def matches(self, path: Path) -> bool:
        """
        Check if a normalized path matches any of the globs.

        Args:
            path: Absolute, normalized path

        Returns:
            True if at least one glob matches
        """
        return any(glob.matches(path) for glob in self._globs)

    def __call__(self, path: Path) -> bool:
        return self.matches(path)

    def iter_matches(self) -> Iterator[Path]:
        """
        Walk the base directories and yield every matching file once.

        Yields:
            Normalized paths of matching files, sorted per directory
        """
        seen = set()
        for base in self.base_directories:
            if not base.is_dir():
                continue
            for dirpath, dirnames, filenames in os.walk(base):
                dirnames.sort()
                for filename in sorted(filenames):
                    path = Path(dirpath) / filename
                    if path in seen or not self.matches(path):
                        continue
                    seen.add(path)
                    yield path

    def __repr__(self) -> str:
        return f"GlobMatcher({self.patterns!r})"
