"""Replicate the live image onto the mounted root pool.

Every entry of the source tree is recreated under the destination root
with the same type, permission bits and ownership:

    Directories: created (or, when they already exist below the root,
        re-moded, since they may be dataset mountpoints)
    Files: created exclusively and filled with os.sendfile; a
        pre-existing destination is unlinked and the create retried once
    Symlinks: recreated with the same target and owner
    Anything else: aborts the run

Three paths (see generators.DIVERTED_FILES) are written from fixed text
instead of being copied. The first failing entry stops the traversal;
nothing already written is removed.

Example:
    context = ReplicationContext(Path("/.cdrom"), Path("/mnt"), "rpool", "schillix")
    if not replicate("/.cdrom", "/mnt", context):
        ...
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

from schillix_installer.domain import EntryKind, ReplicationContext, TreeEntry
from schillix_installer.logging import EventLogger, LoggerFactory, ThrottledLogger
from schillix_installer.storage.exceptions import (
    EntryCopyError,
    ReplicationError,
    UnsupportedEntryError,
)

from .generators import generator_for
from .walker import walk_tree


log = LoggerFactory.for_copy()
entry_log = LoggerFactory.for_entry()

_CREATE_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_EXCL


@dataclass
class ReplicationStats:
    files: int = 0
    directories: int = 0
    symlinks: int = 0
    generated: int = 0
    bytes_copied: int = 0


def _fail(dest: Path, operation: str, error: OSError) -> EntryCopyError:
    return EntryCopyError(str(dest), operation, error.strerror or str(error))


def replicate_directory(entry: TreeEntry, dest: Path) -> None:
    try:
        os.mkdir(dest, entry.mode)
        created = True
    except FileExistsError:
        created = False
    except OSError as error:
        raise _fail(dest, "create directory", error) from error

    try:
        os.chown(dest, entry.stat.st_uid, entry.stat.st_gid)
    except OSError as error:
        raise _fail(dest, "chown directory", error) from error

    # The destination root is the pool mountpoint; leave its mode alone.
    if not created and entry.depth == 0:
        return
    try:
        os.chmod(dest, entry.mode)
    except OSError as error:
        raise _fail(dest, "chmod directory", error) from error


def _create_exclusive(dest: Path, mode: int) -> int:
    try:
        return os.open(dest, _CREATE_FLAGS, mode)
    except FileExistsError:
        pass
    except OSError as error:
        raise _fail(dest, "create file", error) from error

    try:
        os.unlink(dest)
    except OSError as error:
        raise _fail(dest, "remove existing file", error) from error
    try:
        return os.open(dest, _CREATE_FLAGS, mode)
    except OSError as error:
        raise _fail(dest, "recreate file", error) from error


def _apply_metadata(fd: int, entry: TreeEntry, dest: Path) -> None:
    # Mode last: fchown clears setuid/setgid.
    try:
        os.fchown(fd, entry.stat.st_uid, entry.stat.st_gid)
    except OSError as error:
        raise _fail(dest, "chown file", error) from error
    try:
        os.fchmod(fd, entry.mode)
    except OSError as error:
        raise _fail(dest, "chmod file", error) from error


def _send_all(out_fd: int, in_fd: int, size: int, dest: Path) -> int:
    offset = 0
    while offset < size:
        try:
            sent = os.sendfile(out_fd, in_fd, offset, size - offset)
        except OSError as error:
            raise _fail(dest, "copy contents of", error) from error
        if sent == 0:
            raise EntryCopyError(str(dest), "copy contents of", "source file shrank during copy")
        offset += sent
    return offset


def replicate_file(entry: TreeEntry, dest: Path) -> int:
    """Copy one regular file. Returns the number of bytes copied."""
    try:
        in_fd = os.open(entry.path, os.O_RDONLY)
    except OSError as error:
        raise EntryCopyError(str(entry.path), "open", error.strerror or str(error)) from error

    try:
        out_fd = _create_exclusive(dest, entry.mode)
        try:
            _apply_metadata(out_fd, entry, dest)
            return _send_all(out_fd, in_fd, entry.stat.st_size, dest)
        finally:
            os.close(out_fd)
    finally:
        os.close(in_fd)


def write_generated_file(entry: TreeEntry, dest: Path, content: str) -> int:
    """Write generated text in place of a source file's bytes."""
    fd = _create_exclusive(dest, entry.mode)

    data = content.encode()
    try:
        with os.fdopen(fd, "wb", closefd=False) as handle:
            handle.write(data)
        _apply_metadata(fd, entry, dest)
    except OSError as error:
        raise _fail(dest, "write generated file", error) from error
    finally:
        os.close(fd)
    return len(data)


def replicate_symlink(entry: TreeEntry, dest: Path) -> None:
    try:
        target = os.readlink(entry.path)
    except OSError as error:
        raise EntryCopyError(str(entry.path), "read symlink", error.strerror or str(error)) from error

    try:
        os.symlink(target, dest)
    except FileExistsError:
        try:
            os.unlink(dest)
            os.symlink(target, dest)
        except OSError as error:
            raise _fail(dest, "recreate symlink", error) from error
    except OSError as error:
        raise _fail(dest, "create symlink", error) from error

    try:
        os.lchown(dest, entry.stat.st_uid, entry.stat.st_gid)
    except OSError as error:
        raise _fail(dest, "chown symlink", error) from error


def replicate_entry(entry: TreeEntry, context: ReplicationContext, stats: ReplicationStats) -> None:
    """Materialize one entry at its destination.

    Raises:
        ReplicationError: On the first failure, naming the path and operation
    """
    dest = context.destination_for(entry)

    if entry.kind is EntryKind.DIRECTORY:
        replicate_directory(entry, dest)
        stats.directories += 1
    elif entry.kind is EntryKind.FILE:
        generator = generator_for(entry.relative)
        if generator is not None:
            write_generated_file(entry, dest, generator(context))
            stats.generated += 1
            log.debug(f"Generated {entry.relative}")
        else:
            stats.bytes_copied += replicate_file(entry, dest)
        stats.files += 1
    elif entry.kind is EntryKind.SYMLINK:
        replicate_symlink(entry, dest)
        stats.symlinks += 1
    else:
        raise UnsupportedEntryError(str(entry.path), entry.kind.value)

    entry_log.trace(f"{entry.kind.value} {entry.relative}")


def replicate_tree(source_root, dest_root, context: ReplicationContext) -> ReplicationStats:
    """Replicate the whole tree, raising on the first failure."""
    context = replace(
        context,
        source_root=Path(os.path.realpath(source_root)),
        dest_root=Path(os.path.realpath(dest_root)),
    )
    stats = ReplicationStats()
    progress = ThrottledLogger(log, interval_seconds=5.0)

    for entry in walk_tree(context.source_root):
        replicate_entry(entry, context, stats)
        progress.info(
            "progress",
            f"Replicated {stats.files} files, {stats.directories} directories "
            f"({stats.bytes_copied} bytes)",
        )
    return stats


def replicate(source_root, dest_root, context: ReplicationContext) -> bool:
    """Replicate the live image onto the destination root.

    Returns:
        True on success, False on failure
    """
    try:
        stats = replicate_tree(source_root, dest_root, context)
    except ReplicationError as error:
        log.error(f"Unable to copy files: {error}")
        return False
    EventLogger.log_replication_summary(
        log,
        files=stats.files,
        directories=stats.directories,
        symlinks=stats.symlinks,
        generated=stats.generated,
        bytes_copied=stats.bytes_copied,
    )
    return True
