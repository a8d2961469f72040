# Copyright Red Hat
#
# synclink/linksync/engine.py - Hard link tree synchroniser diff engine
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Snapshot merge-diff engine.

Two snapshots sorted in ascending path byte order are compared in a single
linear merge pass. Every source path missing from the destination yields a
``CREATE`` action, every destination path missing from the source yields a
``DELETE`` action, and every non-directory path present on both sides
yields a ``VERIFY_LINK`` action.
"""
from typing import Iterator, List, Optional
from enum import Enum
import logging
import os

from synclink import SYNCLINK_SUBSYSTEM_DIFF, SynclinkStateError

from .records import EntryKind, PathRecord, Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_diff(msg, *args, **kwargs):
    """A wrapper for diff subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SYNCLINK_SUBSYSTEM_DIFF}, **kwargs)


class ActionType(Enum):
    """
    Enum for the actions produced by the diff engine.
    """

    CREATE = "create"
    VERIFY_LINK = "verify_link"
    DELETE = "delete"


class SyncAction:
    """
    A single reconciliation step derived from comparing two snapshots.
    """

    __slots__ = (
        "action_type",
        "record",
        "src_path",
        "dst_path",
        "dst_kind",
        "deferred",
    )

    def __init__(
        self,
        action_type: ActionType,
        record: PathRecord,
        src_path: Optional[str],
        dst_path: str,
        dst_kind: Optional[EntryKind] = None,
        deferred: bool = False,
    ):
        """
        Initialise a new ``SyncAction``.

        :param action_type: The kind of action.
        :type action_type: ``ActionType``
        :param record: The source record for ``CREATE`` and ``VERIFY_LINK``
                       actions, or the destination record for ``DELETE``.
        :type record: ``PathRecord``
        :param src_path: The absolute source path, or ``None`` for
                         ``DELETE`` actions.
        :type src_path: ``Optional[str]``
        :param dst_path: The absolute destination path.
        :type dst_path: ``str``
        :param dst_kind: The kind recorded in the destination snapshot for
                         ``VERIFY_LINK`` actions.
        :type dst_kind: ``Optional[EntryKind]``
        :param deferred: ``True`` for a ``CREATE`` that must wait until the
                         destination object occupying the same name has
                         been deleted.
        :type deferred: ``bool``
        """
        self.action_type = action_type
        self.record = record
        self.src_path = src_path
        self.dst_path = dst_path
        self.dst_kind = dst_kind
        self.deferred = deferred

    @property
    def path(self) -> str:
        """The relative path this action applies to."""
        return self.record.path

    @property
    def kind(self) -> EntryKind:
        """The recorded kind for this action's path."""
        return self.record.kind

    @property
    def kind_mismatch(self) -> bool:
        """
        ``True`` for a ``VERIFY_LINK`` whose source and destination were
        recorded with different kinds (file vs. symbolic link).
        """
        return self.dst_kind is not None and self.dst_kind is not self.record.kind

    def __repr__(self):
        return (
            f"SyncAction({self.action_type.value}, {self.record.path!r}, "
            f"{self.record.kind}{', deferred' if self.deferred else ''})"
        )

    def __str__(self):
        if self.action_type is ActionType.VERIFY_LINK:
            return f"{self.action_type.value}: {self.src_path} -> {self.dst_path}"
        return f"{self.action_type.value}: {self.path} ({self.kind})"


class DiffResults:
    """
    The complete output of one merge-diff pass, collected into lists.
    """

    def __init__(
        self,
        creates: List[SyncAction],
        verifies: List[SyncAction],
        deletions: Snapshot,
    ):
        """
        Initialise a new ``DiffResults`` object.

        :param creates: ``CREATE`` actions in ascending path order.
        :param verifies: ``VERIFY_LINK`` actions in ascending path order.
        :param deletions: Deletion candidates relative to the destination
                          root, in ascending path order.
        """
        self.creates = creates
        self.verifies = verifies
        self.deletions = deletions

    def __repr__(self) -> str:
        return (
            f"DiffResults(creates={len(self.creates)}, "
            f"verifies={len(self.verifies)}, deletions={len(self.deletions)})"
        )

    @property
    def actions(self) -> List[SyncAction]:
        """
        All create and verify actions in merge order.
        """
        return sorted(self.creates + self.verifies, key=lambda a: a.record.key)

    @property
    def total_changes(self) -> int:
        """
        The number of creates and deletion candidates.
        """
        return len(self.creates) + len(self.deletions)


class DiffEngine:
    """
    Core merge-diff engine comparing two sorted snapshots.
    """

    def _create(
        self, source: Snapshot, dest: Snapshot, record: PathRecord, deferred: bool
    ) -> SyncAction:
        return SyncAction(
            ActionType.CREATE,
            record,
            source.full_path(record),
            dest.full_path(record),
            deferred=deferred,
        )

    @staticmethod
    def _delete(dest: Snapshot, record: PathRecord) -> SyncAction:
        return SyncAction(ActionType.DELETE, record, None, dest.full_path(record))

    @staticmethod
    def _check_order(snapshot: Snapshot, last: Optional[bytes], record: PathRecord):
        if last is not None and record.key < last:
            raise SynclinkStateError(
                f"Snapshot of {snapshot.root} is not sorted at '{record.path}'"
            )

    # pylint: disable=too-many-branches
    def iter_actions(self, source: Snapshot, dest: Snapshot) -> Iterator[SyncAction]:
        """
        Merge ``source`` and ``dest`` and yield actions as they are found.

        Both snapshots must be sorted in ascending path byte order. Actions
        are yielded in merge order so that callers may apply each one
        before the next comparison is made.

        A source path that has the same name as a destination object of a
        different kind (a directory against a file or symbolic link) cannot
        be created until that object is removed. Such a ``CREATE`` and,
        for a directory, every ``CREATE`` beneath it, is marked
        ``deferred``.

        :param source: The sorted source snapshot.
        :type source: ``Snapshot``
        :param dest: The sorted destination snapshot.
        :type dest: ``Snapshot``
        :returns: An iterator over ``SyncAction`` objects.
        :rtype: ``Iterator[SyncAction]``
        :raises SynclinkStateError: If either snapshot is not sorted.
        """
        dest_paths = {record.path for record in dest}
        deferred_prefix = None

        def _conflicts(record: PathRecord) -> bool:
            if record.is_dir:
                return record.name in dest_paths
            return record.path + os.sep in dest_paths

        def _create(record: PathRecord) -> SyncAction:
            nonlocal deferred_prefix
            deferred = False
            if deferred_prefix and record.path.startswith(deferred_prefix):
                deferred = True
            elif _conflicts(record):
                deferred = True
                if record.is_dir:
                    deferred_prefix = record.path
                _log_debug_diff(
                    "Deferring create of '%s': destination kind differs",
                    record.path,
                )
            _log_debug_diff("Adding: %s", record)
            return self._create(source, dest, record, deferred)

        def _delete(record: PathRecord) -> SyncAction:
            _log_debug_diff("Deleting: %s", record)
            return self._delete(dest, record)

        n_src, n_dst = len(source), len(dest)
        i = j = 0
        last_src = last_dst = None

        while i < n_src and j < n_dst:
            src_rec, dst_rec = source[i], dest[j]
            if src_rec.key < dst_rec.key:
                # Source has something that the destination does not.
                self._check_order(source, last_src, src_rec)
                last_src = src_rec.key
                yield _create(src_rec)
                i += 1
            elif src_rec.key > dst_rec.key:
                # Destination has something that the source does not.
                self._check_order(dest, last_dst, dst_rec)
                last_dst = dst_rec.key
                yield _delete(dst_rec)
                j += 1
            else:
                self._check_order(source, last_src, src_rec)
                self._check_order(dest, last_dst, dst_rec)
                last_src, last_dst = src_rec.key, dst_rec.key
                if not src_rec.is_dir:
                    _log_debug_diff(
                        "Checking: %s %s", src_rec, dst_rec.kind.value
                    )
                    yield SyncAction(
                        ActionType.VERIFY_LINK,
                        src_rec,
                        source.full_path(src_rec),
                        dest.full_path(dst_rec),
                        dst_kind=dst_rec.kind,
                    )
                i += 1
                j += 1

        # At most one of these loops runs.
        while i < n_src:
            self._check_order(source, last_src, source[i])
            last_src = source[i].key
            yield _create(source[i])
            i += 1

        while j < n_dst:
            self._check_order(dest, last_dst, dest[j])
            last_dst = dest[j].key
            yield _delete(dest[j])
            j += 1

    def diff(self, source: Snapshot, dest: Snapshot) -> DiffResults:
        """
        Compare ``source`` and ``dest`` without applying any action.

        :param source: The sorted source snapshot.
        :type source: ``Snapshot``
        :param dest: The sorted destination snapshot.
        :type dest: ``Snapshot``
        :returns: The collected diff results.
        :rtype: ``DiffResults``
        """
        creates = []
        verifies = []
        deletions = Snapshot(dest.root)
        for action in self.iter_actions(source, dest):
            if action.action_type is ActionType.CREATE:
                creates.append(action)
            elif action.action_type is ActionType.VERIFY_LINK:
                verifies.append(action)
            else:
                deletions.append(action.record)
        results = DiffResults(creates, verifies, deletions)
        _log_debug_diff("Computed %r", results)
        return results


__all__ = [
    "ActionType",
    "DiffEngine",
    "DiffResults",
    "SyncAction",
]
