# Copyright Red Hat
#
# synclink/linksync/sorter.py - Hard link tree synchroniser snapshot sorting
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
In-memory snapshot sorting.

Snapshots are ordered by the raw bytes of each record path so that the
result never depends on the host locale. Two interchangeable stable
algorithms are provided: a recursive merge sort using an auxiliary buffer,
and a comparison sort over an index array.
"""
from typing import Callable, List, TYPE_CHECKING
from functools import cmp_to_key
from enum import Enum
import logging

from synclink import SYNCLINK_SUBSYSTEM_DIFF, SynclinkArgumentError

if TYPE_CHECKING:
    from .records import PathRecord, Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_diff(msg, *args, **kwargs):
    """A wrapper for diff subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SYNCLINK_SUBSYSTEM_DIFF}, **kwargs)


class SortDirection(Enum):
    """
    Enum for snapshot sort order.
    """

    ASCENDING = "ascending"
    DESCENDING = "descending"


class SortAlgorithm(Enum):
    """
    Enum for the available sort implementations.
    """

    MERGE = "merge"
    INDEX = "index"


def _compare(a: bytes, b: bytes) -> int:
    return (a > b) - (a < b)


def _compare_reversed(a: bytes, b: bytes) -> int:
    return (a < b) - (a > b)


def _precedes_fn(direction: SortDirection) -> Callable[[bytes, bytes], bool]:
    """
    Return a predicate that is ``True`` when its first argument must be
    placed strictly before its second in ``direction`` order.
    """
    if direction is SortDirection.ASCENDING:
        return lambda a, b: a < b
    return lambda a, b: a > b


def _merge_sort(
    items: List["PathRecord"],
    lo: int,
    hi: int,
    buf: List["PathRecord"],
    precedes: Callable[[bytes, bytes], bool],
):
    """
    Sort ``items[lo:hi]`` in place.

    Only the left half of each run is copied into ``buf``; the merge then
    writes back into ``items`` from ``lo``. A right hand element is taken
    only when it strictly precedes the left hand one, so equal keys keep
    their original relative order.
    """
    if hi - lo < 2:
        return
    mid = (lo + hi) // 2
    _merge_sort(items, lo, mid, buf, precedes)
    _merge_sort(items, mid, hi, buf, precedes)

    # Runs already in order.
    if not precedes(items[mid].key, items[mid - 1].key):
        return

    n_left = mid - lo
    buf[:n_left] = items[lo:mid]
    i, j, k = 0, mid, lo
    while i < n_left and j < hi:
        if precedes(items[j].key, buf[i].key):
            items[k] = items[j]
            j += 1
        else:
            items[k] = buf[i]
            i += 1
        k += 1
    while i < n_left:
        items[k] = buf[i]
        i += 1
        k += 1


def merge_sort_records(
    records: List["PathRecord"], direction: SortDirection
) -> List["PathRecord"]:
    """
    Sort ``records`` in place with a stable recursive merge sort.

    :param records: The records to sort.
    :type records: ``List[PathRecord]``
    :param direction: The sort direction.
    :type direction: ``SortDirection``
    :returns: The ``records`` list.
    :rtype: ``List[PathRecord]``
    """
    # Sized to the larger half of the top level split.
    buf = [None] * ((len(records) + 1) // 2)
    _merge_sort(records, 0, len(records), buf, _precedes_fn(direction))
    return records


def index_sort_records(
    records: List["PathRecord"], direction: SortDirection
) -> List["PathRecord"]:
    """
    Sort ``records`` by ordering an index array with a byte string
    comparator, reversed for descending order.

    :param records: The records to sort.
    :type records: ``List[PathRecord]``
    :param direction: The sort direction.
    :type direction: ``SortDirection``
    :returns: A new, sorted list of records.
    :rtype: ``List[PathRecord]``
    """
    compare = _compare if direction is SortDirection.ASCENDING else _compare_reversed
    index = sorted(
        range(len(records)),
        key=cmp_to_key(lambda i, j: compare(records[i].key, records[j].key)),
    )
    return [records[i] for i in index]


_SORT_FUNCTIONS = {
    SortAlgorithm.MERGE: merge_sort_records,
    SortAlgorithm.INDEX: index_sort_records,
}


def sort_snapshot(
    snapshot: "Snapshot",
    direction: SortDirection = SortDirection.ASCENDING,
    algorithm: SortAlgorithm = SortAlgorithm.MERGE,
) -> "Snapshot":
    """
    Sort the records of ``snapshot`` in place by path byte order.

    Duplicate paths are preserved in their original relative order.

    :param snapshot: The snapshot to sort.
    :type snapshot: ``Snapshot``
    :param direction: The sort direction.
    :type direction: ``SortDirection``
    :param algorithm: The sort implementation to use.
    :type algorithm: ``SortAlgorithm``
    :returns: ``snapshot``, now sorted.
    :rtype: ``Snapshot``
    """
    if not isinstance(direction, SortDirection):
        raise SynclinkArgumentError(f"Invalid sort direction: {direction}")
    if algorithm not in _SORT_FUNCTIONS:
        raise SynclinkArgumentError(f"Invalid sort algorithm: {algorithm}")

    _log_debug_diff(
        "Sorting %d records from %s (%s, %s)",
        len(snapshot),
        snapshot.root,
        direction.value,
        algorithm.value,
    )
    records = _SORT_FUNCTIONS[algorithm](list(snapshot), direction)
    snapshot.replace_records(records)
    return snapshot


def is_sorted(
    snapshot: "Snapshot", direction: SortDirection = SortDirection.ASCENDING
) -> bool:
    """
    Return ``True`` if ``snapshot`` is ordered in ``direction``.

    :param snapshot: The snapshot to check.
    :type snapshot: ``Snapshot``
    :param direction: The expected sort direction.
    :type direction: ``SortDirection``
    :rtype: ``bool``
    """
    precedes = _precedes_fn(direction)
    return not any(
        precedes(snapshot[i].key, snapshot[i - 1].key) for i in range(1, len(snapshot))
    )


__all__ = [
    "SortAlgorithm",
    "SortDirection",
    "index_sort_records",
    "is_sorted",
    "merge_sort_records",
    "sort_snapshot",
]
