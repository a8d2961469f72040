# Copyright Red Hat
#
# synclink/linksync/fsops.py - Hard link tree synchroniser file system primitives
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
The minimal set of file system operations needed to snapshot and
reconcile a pair of trees.

Wrapping the system calls in one place means they can be mocked for unit
tests, and every failure is reported uniformly as a ``SynclinkSystemError``
naming the operation, the path and the underlying error.
"""
from typing import Iterator, NamedTuple, Optional, Tuple
from enum import Enum
import logging
import errno
import stat
import os

from synclink import SYNCLINK_SUBSYSTEM_APPLY, SynclinkSystemError

from .records import EntryKind

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Errors from stat()/lstat() that mean "nothing there".
_NOT_FOUND_ERRNOS = (errno.ENOENT, errno.ENOTDIR)


def _log_debug_apply(msg, *args, **kwargs):
    """A wrapper for apply subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SYNCLINK_SUBSYSTEM_APPLY}, **kwargs)


class ObjectKind(Enum):
    """
    Enum for the kinds of object reported by ``stat()`` and ``readdir()``.
    """

    DIRECTORY = "directory"
    FILE = "file"
    SYMLINK = "symlink"
    OTHER = "other"
    UNKNOWN = "unknown"

    @property
    def entry_kind(self) -> Optional[EntryKind]:
        """
        The snapshot ``EntryKind`` for this object kind, or ``None`` if
        objects of this kind are not synchronised.
        """
        return _OBJECT_TO_ENTRY_KIND.get(self)

    @classmethod
    def from_mode(cls, mode: int) -> "ObjectKind":
        """
        Classify an ``st_mode`` value.

        :param mode: A mode value returned by ``stat()`` or ``lstat()``.
        :type mode: ``int``
        :returns: The corresponding ``ObjectKind``.
        :rtype: ``ObjectKind``
        """
        if stat.S_ISLNK(mode):
            return cls.SYMLINK
        if stat.S_ISDIR(mode):
            return cls.DIRECTORY
        if stat.S_ISREG(mode):
            return cls.FILE
        return cls.OTHER


_OBJECT_TO_ENTRY_KIND = {
    ObjectKind.DIRECTORY: EntryKind.DIRECTORY,
    ObjectKind.FILE: EntryKind.FILE,
    ObjectKind.SYMLINK: EntryKind.SYMLINK,
}


class StatInfo(NamedTuple):
    """
    The subset of ``stat()`` data used when reconciling trees.
    """

    exists: bool
    kind: Optional[ObjectKind] = None
    inode: int = 0
    mode: int = 0
    dev: int = 0


#: Result returned for a path that does not exist.
NOT_FOUND = StatInfo(exists=False)


class FsOps:
    """
    Wrap the file system operations needed to synchronise a tree.
    """

    @staticmethod
    def _stat(path: str, op: str, follow_symlinks: bool) -> StatInfo:
        try:
            st = os.stat(path, follow_symlinks=follow_symlinks)
        except OSError as err:
            if err.errno in _NOT_FOUND_ERRNOS:
                return NOT_FOUND
            raise SynclinkSystemError(op, path, err) from err
        return StatInfo(
            exists=True,
            kind=ObjectKind.from_mode(st.st_mode),
            inode=st.st_ino,
            mode=st.st_mode,
            dev=st.st_dev,
        )

    def stat(self, path: str) -> StatInfo:
        """
        Return ``StatInfo`` for ``path``, following symbolic links.

        :param path: The path to examine.
        :type path: ``str``
        :returns: ``StatInfo`` for ``path``; ``exists`` is ``False`` if the
                  path does not exist.
        :rtype: ``StatInfo``
        :raises SynclinkSystemError: For any other ``stat()`` failure.
        """
        return self._stat(path, "stat", True)

    def lstat(self, path: str) -> StatInfo:
        """
        Return ``StatInfo`` for ``path`` without following symbolic links.

        :param path: The path to examine.
        :type path: ``str``
        :returns: ``StatInfo`` for ``path``; ``exists`` is ``False`` if the
                  path does not exist.
        :rtype: ``StatInfo``
        :raises SynclinkSystemError: For any other ``lstat()`` failure.
        """
        return self._stat(path, "lstat", False)

    def readdir(self, path: str) -> Iterator[Tuple[str, ObjectKind]]:
        """
        Iterate over the entries of directory ``path``.

        Entries whose kind cannot be determined (for example because they
        vanished between listing and classification) are reported as
        ``ObjectKind.UNKNOWN``.

        :param path: The directory to list.
        :type path: ``str``
        :returns: An iterator over ``(name, kind)`` tuples.
        :rtype: ``Iterator[Tuple[str, ObjectKind]]``
        :raises SynclinkSystemError: If the directory cannot be read.
        """
        try:
            with os.scandir(path) as it:
                for entry in it:
                    yield entry.name, self._entry_kind(entry)
        except OSError as err:
            raise SynclinkSystemError("readdir", path, err) from err

    @staticmethod
    def _entry_kind(entry: os.DirEntry) -> ObjectKind:
        try:
            if entry.is_symlink():
                return ObjectKind.SYMLINK
            if entry.is_dir(follow_symlinks=False):
                return ObjectKind.DIRECTORY
            if entry.is_file(follow_symlinks=False):
                return ObjectKind.FILE
            # Confirm the entry still exists before calling it special.
            entry.stat(follow_symlinks=False)
        except OSError:
            return ObjectKind.UNKNOWN
        return ObjectKind.OTHER

    def mkdir(self, path: str, mode: int):
        """
        Create directory ``path`` with permission bits from ``mode``.

        :param path: The directory to create.
        :type path: ``str``
        :param mode: A mode value; only the permission bits are used.
        :type mode: ``int``
        :raises SynclinkSystemError: If the directory cannot be created.
        """
        _log_debug_apply("mkdir(%s, %04o)", path, stat.S_IMODE(mode))
        try:
            os.mkdir(path, stat.S_IMODE(mode))
        except OSError as err:
            raise SynclinkSystemError("mkdir", path, err) from err

    def link(self, src: str, dst: str):
        """
        Create hard link ``dst`` referring to the inode of ``src``. A
        symbolic link ``src`` is linked itself rather than its target.

        :param src: The existing path.
        :type src: ``str``
        :param dst: The new link to create.
        :type dst: ``str``
        :raises SynclinkSystemError: If the link cannot be created.
        """
        _log_debug_apply("link(%s, %s)", src, dst)
        try:
            os.link(src, dst, follow_symlinks=False)
        except OSError as err:
            raise SynclinkSystemError("link", dst, err) from err

    def unlink(self, path: str):
        """
        Remove the non-directory ``path``.

        :param path: The path to remove.
        :type path: ``str``
        :raises SynclinkSystemError: If the path cannot be removed.
        """
        _log_debug_apply("unlink(%s)", path)
        try:
            os.unlink(path)
        except OSError as err:
            raise SynclinkSystemError("unlink", path, err) from err

    def rmdir(self, path: str):
        """
        Remove the empty directory ``path``.

        :param path: The directory to remove.
        :type path: ``str``
        :raises SynclinkSystemError: If the directory cannot be removed.
        """
        _log_debug_apply("rmdir(%s)", path)
        try:
            os.rmdir(path)
        except OSError as err:
            raise SynclinkSystemError("rmdir", path, err) from err


__all__ = [
    "FsOps",
    "NOT_FOUND",
    "ObjectKind",
    "StatInfo",
]
