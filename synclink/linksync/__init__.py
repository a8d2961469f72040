# Copyright Red Hat
#
# synclink/linksync/__init__.py - Hard link tree synchroniser package
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Hard link tree synchronisation package.

Provides snapshot collection, sorting, the merge-diff engine and the action
executor. The main entry points are ``LinkSyncer`` and ``SyncOptions``.
"""
from .engine import ActionType, DiffEngine, DiffResults, SyncAction
from .executor import SyncStats
from .linksyncer import LinkSyncer
from .options import SyncOptions
from .records import EntryKind, PathRecord, Snapshot
from .sorter import SortAlgorithm, SortDirection, sort_snapshot

__all__ = [
    "ActionType",
    "DiffEngine",
    "DiffResults",
    "EntryKind",
    "LinkSyncer",
    "PathRecord",
    "Snapshot",
    "SortAlgorithm",
    "SortDirection",
    "SyncAction",
    "SyncOptions",
    "SyncStats",
    "sort_snapshot",
]
