"""File system helpers: recursive listing, path flattening, resource lookup.

Symbolic links are never followed while walking directories, so a link that
points back to one of its parents cannot make a traversal loop forever.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

MATCH_ALL = ".*"
"""A regular expression matching every path."""


def list_files(
    start_dir: str | Path,
    recursive: bool = False,
    pattern: str | re.Pattern[str] = MATCH_ALL,
    cancel: threading.Event | None = None,
) -> list[Path]:
    """List the entries below ``start_dir`` whose path fully matches ``pattern``.

    Matching entries are collected whether they are files or directories.
    Returns an empty list if ``start_dir`` is not a directory.

    Args:
        start_dir: Directory to start from.
        recursive: Descend into subdirectories (never through symbolic links).
        pattern: Regular expression matched against the whole path string.
        cancel: Once set, no further directories are entered; the paths
            collected so far are still returned.
    """
    start_dir = Path(start_dir)
    if not start_dir.is_dir():
        return []

    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    paths: list[Path] = []
    _list_files(paths, start_dir, recursive, regex, cancel)
    return paths


def _list_files(
    paths: list[Path],
    current_dir: Path,
    recursive: bool,
    regex: re.Pattern[str],
    cancel: threading.Event | None,
) -> None:
    # A directory removed since it was listed makes scandir raise, which is logged below
    try:
        with os.scandir(current_dir) as entries:
            for entry in entries:
                path = current_dir / entry.name
                if regex.fullmatch(str(path)):
                    paths.append(path)

                cancelled = cancel is not None and cancel.is_set()
                if recursive and not cancelled and entry.is_dir(follow_symlinks=False):
                    _list_files(paths, path, recursive, regex, cancel)
    except OSError as exc:
        logger.error("Could not open directory %s: %s", current_dir, exc)


def flatten(
    paths: str | Path | Iterable[str | Path],
    cancel: threading.Event | None = None,
) -> list[Path]:
    """Expand directories among ``paths`` into the files they contain.

    Directories are walked recursively without following symbolic links.
    Plain files are kept as given, missing paths are dropped with a warning,
    and no directory ends up in the result.
    """
    if isinstance(paths, (str, Path)):
        paths = [paths]

    all_paths: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            all_paths.extend(list_files(path, recursive=True, cancel=cancel))
        elif path.exists() or path.is_symlink():
            all_paths.append(path)
        else:
            logger.warning("Skipping %s since it doesn't exist", path)

    return [path for path in all_paths if not path.is_dir()]


def get_resource(path: str | Path, roots: Iterable[str | Path] = (), warn: bool = True) -> Path | None:
    """Find ``path`` as given or below one of ``roots``.

    Returns the first existing candidate, or ``None`` (logging where we
    looked unless ``warn`` is false).
    """
    candidate = Path(path)
    if candidate.exists():
        return candidate

    if not candidate.is_absolute():
        for root in roots:
            rooted = Path(root) / candidate
            if rooted.exists():
                return rooted

    if warn:
        logger.warning("Did not find resource at %s (current dir: %s)", path, Path.cwd())
    return None
