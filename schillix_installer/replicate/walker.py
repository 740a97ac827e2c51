"""Lazy physical traversal of the live image tree.

Entries are produced depth-first, pre-order: a directory is yielded
before anything it contains, so the replicator can create it before
its children. Symlinks are never followed.
"""

from __future__ import annotations

import os
import stat
from pathlib import Path, PurePosixPath
from typing import Iterator

from schillix_installer.domain import EntryKind, TreeEntry
from schillix_installer.storage.exceptions import SourceTreeError


def classify(mode: int) -> EntryKind:
    if stat.S_ISLNK(mode):
        return EntryKind.SYMLINK
    if stat.S_ISDIR(mode):
        return EntryKind.DIRECTORY
    if stat.S_ISREG(mode):
        return EntryKind.FILE
    return EntryKind.OTHER


def stat_entry(path: Path, relative: PurePosixPath, depth: int = 0) -> TreeEntry:
    """lstat one path into a TreeEntry."""
    try:
        st = os.lstat(path)
    except OSError as error:
        raise SourceTreeError(str(path), error.strerror or str(error)) from error
    return TreeEntry(
        kind=classify(st.st_mode),
        path=path,
        relative=relative,
        depth=depth,
        stat=st,
    )


def _walk_directory(directory: TreeEntry) -> Iterator[TreeEntry]:
    try:
        with os.scandir(directory.path) as scanner:
            names = sorted(item.name for item in scanner)
    except OSError as error:
        raise SourceTreeError(str(directory.path), error.strerror or str(error)) from error

    for name in names:
        relative = PurePosixPath(name) if directory.depth == 0 else directory.relative / name
        entry = stat_entry(directory.path / name, relative, directory.depth + 1)
        yield entry
        if entry.kind is EntryKind.DIRECTORY:
            yield from _walk_directory(entry)


def walk_tree(source_root) -> Iterator[TreeEntry]:
    """Yield every entry below (and including) source_root.

    The root itself comes first with relative path "." and depth 0.

    Raises:
        SourceTreeError: If the root or a directory below it cannot be read
    """
    root = stat_entry(Path(source_root), PurePosixPath("."), 0)
    yield root
    if root.kind is EntryKind.DIRECTORY:
        yield from _walk_directory(root)
