# Copyright Red Hat
#
# synclink/linksync/executor.py - Hard link tree synchroniser action executor
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Apply diff engine actions to the destination tree.

Creates and link verifications are applied as soon as the engine produces
them. Deletions are queued and removed later, in two passes over the queue
sorted in descending order: first every file and symbolic link, then every
directory, so that ``rmdir()`` only ever sees directories that have already
been emptied.
"""
from dataclasses import dataclass, fields
from typing import List, Optional
import logging
import errno

from synclink import (
    SYNCLINK_SUBSYSTEM_APPLY,
    SynclinkStateError,
    SynclinkSystemError,
)

from .engine import ActionType, SyncAction
from .fsops import FsOps
from .records import EntryKind, PathRecord, Snapshot
from .sorter import SortDirection, is_sorted

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_apply(msg, *args, **kwargs):
    """A wrapper for apply subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SYNCLINK_SUBSYSTEM_APPLY}, **kwargs)


@dataclass
class SyncStats:
    """
    Counters describing the work done by one synchronisation run.
    """

    #: Directories created in the destination
    dirs_created: int = 0
    #: New hard links created in the destination
    links_created: int = 0
    #: Destination paths re-linked to the source inode
    relinked: int = 0
    #: Paths already sharing the source inode
    unchanged: int = 0
    #: Files and symbolic links removed from the destination
    files_deleted: int = 0
    #: Directories removed from the destination
    dirs_deleted: int = 0
    #: Creates postponed until after the deletion phase
    deferred: int = 0
    #: Unsupported objects omitted from snapshots
    skipped: int = 0

    @property
    def total_changes(self) -> int:
        """
        The number of file system modifications made.
        """
        return (
            self.dirs_created
            + self.links_created
            + self.relinked
            + self.files_deleted
            + self.dirs_deleted
        )

    def __str__(self):
        return ", ".join(f"{f.name}={getattr(self, f.name)}" for f in fields(self))


class ActionExecutor:
    """
    Apply ``SyncAction`` objects through an ``FsOps`` instance.
    """

    def __init__(
        self,
        dest_root: str,
        fsops: Optional[FsOps] = None,
        stats: Optional[SyncStats] = None,
    ):
        """
        Initialise a new ``ActionExecutor``.

        :param dest_root: The absolute destination root directory.
        :type dest_root: ``str``
        :param fsops: The file system primitive layer to use.
        :type fsops: ``Optional[FsOps]``
        :param stats: Counters to update as actions are applied.
        :type stats: ``Optional[SyncStats]``
        """
        self.fsops: FsOps = fsops or FsOps()
        self.stats: SyncStats = stats if stats is not None else SyncStats()
        #: Deletion candidates queued during the merge pass
        self.deletions: Snapshot = Snapshot(dest_root)
        #: Creates postponed until after the deletion phase
        self.deferred: List[SyncAction] = []

    def apply(self, action: SyncAction):
        """
        Apply or queue a single action.

        :param action: The action to apply.
        :type action: ``SyncAction``
        :raises SynclinkSystemError: If a system call fails.
        :raises SynclinkStateError: If a source object has vanished.
        """
        if action.action_type is ActionType.CREATE:
            if action.deferred:
                _log_debug_apply("Queueing deferred create: %r", action)
                self.deferred.append(action)
                self.stats.deferred += 1
            else:
                self._create(action)
        elif action.action_type is ActionType.VERIFY_LINK:
            self._verify_link(action)
        elif action.action_type is ActionType.DELETE:
            _log_debug_apply("Queueing deletion candidate: %s", action.record)
            self.deletions.append(action.record)
        else:
            raise SynclinkStateError(f"Unknown action type: {action.action_type}")

    def _create(self, action: SyncAction):
        """
        Create a directory, or hard link a file or symbolic link, in the
        destination.
        """
        _log_info("Adding: %s %s", action.src_path, action.kind.value)
        if action.kind is EntryKind.DIRECTORY:
            src_stat = self.fsops.stat(action.src_path)
            if not src_stat.exists:
                raise SynclinkStateError(
                    f"Source directory '{action.src_path}' vanished during sync"
                )
            self.fsops.mkdir(action.dst_path, src_stat.mode)
            self.stats.dirs_created += 1
        else:
            self.fsops.link(action.src_path, action.dst_path)
            self.stats.links_created += 1

    def _verify_link(self, action: SyncAction):
        """
        Ensure the destination path shares the source path's inode,
        replacing it with a new hard link if it does not.
        """
        _log_info("Checking: %s -> %s", action.src_path, action.dst_path)
        if action.kind is EntryKind.SYMLINK or action.kind_mismatch:
            stat_fn = self.fsops.lstat
        else:
            stat_fn = self.fsops.stat

        src_stat = stat_fn(action.src_path)
        if not src_stat.exists:
            raise SynclinkStateError(
                f"Source '{action.src_path}' vanished during sync"
            )
        dst_stat = stat_fn(action.dst_path)

        if (
            dst_stat.exists
            and dst_stat.inode == src_stat.inode
            and dst_stat.dev == src_stat.dev
        ):
            _log_debug_apply("Already linked: %s", action.dst_path)
            self.stats.unchanged += 1
            return

        _log_info("Relinking: %s -> %s", action.src_path, action.dst_path)
        if dst_stat.exists:
            self.fsops.unlink(action.dst_path)
        self.fsops.link(action.src_path, action.dst_path)
        self.stats.relinked += 1

    def _remove(self, deletions: Snapshot, record: PathRecord):
        path = deletions.full_path(record)
        _log_info("Deleting: %s %s", path, record.kind.value)
        if not record.is_dir:
            self.fsops.unlink(path)
            self.stats.files_deleted += 1
            return
        try:
            self.fsops.rmdir(path)
        except SynclinkSystemError as err:
            if err.errno in (errno.ENOTEMPTY, errno.EEXIST):
                raise SynclinkStateError(
                    f"Cannot remove '{path}': directory contains objects "
                    "that were not recorded in the destination snapshot"
                ) from err
            raise
        self.stats.dirs_deleted += 1

    def run_deletions(self, deletions: Snapshot):
        """
        Remove every deletion candidate in ``deletions``.

        The candidates must already be sorted in descending order. Files
        and symbolic links are unlinked in a first pass and directories
        removed in a second.

        :param deletions: The sorted deletion candidates.
        :type deletions: ``Snapshot``
        :raises SynclinkStateError: If ``deletions`` is not sorted in
                                    descending order, or a directory is
                                    not empty when it is removed.
        :raises SynclinkSystemError: If a system call fails.
        """
        if not is_sorted(deletions, SortDirection.DESCENDING):
            raise SynclinkStateError("Deletion candidates are not sorted descending")

        _log_debug_apply("Removing %d deletion candidates", len(deletions))
        for record in deletions:
            if not record.is_dir:
                self._remove(deletions, record)
        for record in deletions:
            if record.is_dir:
                self._remove(deletions, record)

    def run_deferred(self):
        """
        Apply creates that were postponed until after the deletion phase.

        :raises SynclinkSystemError: If a system call fails.
        """
        if self.deferred:
            _log_debug_apply("Applying %d deferred creates", len(self.deferred))
        for action in self.deferred:
            self._create(action)
        self.deferred = []


__all__ = [
    "ActionExecutor",
    "SyncStats",
]
