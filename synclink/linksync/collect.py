# Copyright Red Hat
#
# synclink/linksync/collect.py - Hard link tree synchroniser snapshot collection
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree enumeration: build a ``Snapshot`` of every directory, regular file
and symbolic link beneath a root directory.
"""
from typing import Optional, TYPE_CHECKING
from datetime import datetime
import logging
import os

from synclink import SYNCLINK_SUBSYSTEM_COLLECT
from synclink.progress import ProgressFactory

from .fsops import FsOps, ObjectKind
from .records import EntryKind, Snapshot

if TYPE_CHECKING:
    from .executor import SyncStats

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_collect(msg, *args, **kwargs):
    """A wrapper for collect subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SYNCLINK_SUBSYSTEM_COLLECT}, **kwargs)


class SnapshotCollector:
    """
    Simple file system tree walker producing ``Snapshot`` objects.
    """

    def __init__(self, fsops: Optional[FsOps] = None):
        """
        Initialise a new ``SnapshotCollector`` object.

        :param fsops: The file system primitive layer to use.
        :type fsops: ``Optional[FsOps]``
        """
        self.fsops: FsOps = fsops or FsOps()

    def collect(
        self,
        root: str,
        quiet: bool = False,
        stats: Optional["SyncStats"] = None,
    ) -> Snapshot:
        """
        Enumerate ``root`` and return an unsorted ``Snapshot``.

        Directories are descended using an explicit stack rather than
        recursion so that very deep trees cannot exhaust the interpreter
        stack. Objects that are not directories, regular files or symbolic
        links are logged and omitted. The root directory itself is not
        recorded.

        :param root: The absolute path of the directory to enumerate.
        :type root: ``str``
        :param quiet: Suppress progress output.
        :type quiet: ``bool``
        :param stats: Optional counters to update with skipped objects.
        :type stats: ``Optional[SyncStats]``
        :returns: A new ``Snapshot`` rooted at ``root``.
        :rtype: ``Snapshot``
        :raises SynclinkSystemError: If a directory cannot be read.
        """
        snapshot = Snapshot(root)
        skipped = 0

        _log_info("Gathering paths from %s", root)
        throbber = ProgressFactory.get_throbber(
            f"Gathering paths from {root}",
            quiet=quiet,
        )

        start_time = datetime.now()
        throbber.start()
        try:
            # Stack of relative directory prefixes still to visit.
            to_visit = [""]
            while to_visit:
                prefix = to_visit.pop()
                dir_path = os.path.join(root, prefix) if prefix else root
                for name, kind in self.fsops.readdir(dir_path):
                    throbber.throb()
                    rel_path = prefix + name
                    entry_kind = kind.entry_kind
                    if entry_kind is None:
                        skipped += 1
                        full_path = os.path.join(root, rel_path)
                        if kind is ObjectKind.UNKNOWN:
                            _log_warn("Skipping '%s': unknown object type", full_path)
                        else:
                            _log_info("Skipping unsupported object '%s'", full_path)
                        continue
                    record = snapshot.add(rel_path, entry_kind)
                    _log_debug_collect("Recorded %s", record)
                    if entry_kind is EntryKind.DIRECTORY:
                        to_visit.append(record.path)
        except (KeyboardInterrupt, SystemExit):
            throbber.end("Quit!")
            raise
        except Exception:
            throbber.end("Error.")
            raise

        end_time = datetime.now()
        throbber.end(message=f"found {len(snapshot)} paths")
        _log_debug_collect(
            "Collected %d paths from %s in %s (skipped %d)",
            len(snapshot),
            root,
            end_time - start_time,
            skipped,
        )
        if stats is not None:
            stats.skipped += skipped
        return snapshot


__all__ = [
    "SnapshotCollector",
]
