# Copyright Red Hat
#
# synclink/linksync/linksyncer.py - Hard link tree synchroniser
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Top-level linksync interface.
"""
from typing import Optional
from datetime import datetime
import logging

from .collect import SnapshotCollector
from .dump import (
    DUMP_DELETIONS,
    DUMP_DELETIONS_SORTED,
    DUMP_DEST,
    DUMP_SOURCE,
    SnapshotDumper,
)
from .engine import DiffEngine, DiffResults
from .executor import ActionExecutor, SyncStats
from .fsops import FsOps
from .options import SyncOptions
from .records import Snapshot
from .sorter import SortDirection, sort_snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class LinkSyncer:
    """
    Top-level interface for reconciling a destination tree with a source
    tree using hard links.
    """

    def __init__(
        self,
        options: Optional[SyncOptions] = None,
        fsops: Optional[FsOps] = None,
        program: str = "synclink",
    ):
        """
        Initialise a new ``LinkSyncer``.

        :param options: Options to control this ``LinkSyncer`` instance.
        :type options: ``Optional[SyncOptions]``
        :param fsops: The file system primitive layer to use.
        :type fsops: ``Optional[FsOps]``
        :param program: The program name used to label dump work files.
        :type program: ``str``
        """
        self.options: SyncOptions = options or SyncOptions()
        self.fsops: FsOps = fsops or FsOps()
        self.program: str = program
        self.collector: SnapshotCollector = SnapshotCollector(self.fsops)
        self.diff_engine: DiffEngine = DiffEngine()

    def _snapshot(
        self, root: str, stats: SyncStats, dumper: SnapshotDumper, index: int
    ) -> Snapshot:
        """
        Collect, dump and sort the snapshot for ``root``.
        """
        snapshot = self.collector.collect(root, quiet=self.options.quiet, stats=stats)
        dumper.dump(index, snapshot)
        sort_snapshot(
            snapshot, SortDirection.ASCENDING, algorithm=self.options.sort_algorithm
        )
        dumper.dump(index + 1, snapshot)
        return snapshot

    def compare_roots(self, source_root: str, dest_root: str) -> DiffResults:
        """
        Compare two trees without modifying either.

        :param source_root: The absolute source directory.
        :type source_root: ``str``
        :param dest_root: The absolute destination directory.
        :type dest_root: ``str``
        :returns: The diff results for the comparison.
        :rtype: ``DiffResults``
        """
        stats = SyncStats()
        dumper = SnapshotDumper(self.options, program=self.program)
        source = self._snapshot(source_root, stats, dumper, DUMP_SOURCE)
        dest = self._snapshot(dest_root, stats, dumper, DUMP_DEST)
        return self.diff_engine.diff(source, dest)

    def sync(self, source_root: str, dest_root: str) -> SyncStats:
        """
        Make ``dest_root`` mirror ``source_root`` using hard links.

        The run stops at the first failure; re-running converges because
        every step is idempotent.

        :param source_root: The absolute source directory.
        :type source_root: ``str``
        :param dest_root: The absolute destination directory.
        :type dest_root: ``str``
        :returns: Counters describing the work done.
        :rtype: ``SyncStats``
        :raises SynclinkSystemError: If a system call fails.
        :raises SynclinkStateError: If a tree changes in a way the
                                    snapshots did not record.
        """
        stats = SyncStats()
        dumper = SnapshotDumper(self.options, program=self.program)
        executor = ActionExecutor(dest_root, fsops=self.fsops, stats=stats)

        start_time = datetime.now()
        source = self._snapshot(source_root, stats, dumper, DUMP_SOURCE)
        dest = self._snapshot(dest_root, stats, dumper, DUMP_DEST)

        _log_info("Pass 1")
        for action in self.diff_engine.iter_actions(source, dest):
            executor.apply(action)

        # Only the deletion queue outlives the merge pass.
        del source
        del dest

        deletions = executor.deletions
        dumper.dump(DUMP_DELETIONS, deletions)
        sort_snapshot(
            deletions, SortDirection.DESCENDING, algorithm=self.options.sort_algorithm
        )
        dumper.dump(DUMP_DELETIONS_SORTED, deletions)

        _log_info("Pass 2")
        executor.run_deletions(deletions)
        executor.run_deferred()

        end_time = datetime.now()
        _log_info(
            "Synchronised %s to %s in %s: %s",
            source_root,
            dest_root,
            end_time - start_time,
            stats,
        )
        if dumper.paths:
            _log_info("Kept snapshot dumps in %s", dumper.workdir)
        return stats


__all__ = [
    "LinkSyncer",
]
