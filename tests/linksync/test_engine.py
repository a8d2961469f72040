# Copyright Red Hat
#
# tests/linksync/test_engine.py - Merge-diff engine tests.
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest

from synclink import SynclinkStateError
from synclink.linksync.engine import ActionType, DiffEngine, SyncAction
from synclink.linksync.records import EntryKind, PathRecord

from ._util import make_snapshot


def _summary(actions):
    return [(a.action_type, a.path, a.deferred) for a in actions]


class TestSyncAction(unittest.TestCase):
    def test_properties(self):
        rec = PathRecord("l", EntryKind.SYMLINK)
        action = SyncAction(
            ActionType.VERIFY_LINK, rec, "/s/l", "/d/l", dst_kind=EntryKind.FILE
        )
        self.assertEqual(action.path, "l")
        self.assertIs(action.kind, EntryKind.SYMLINK)
        self.assertTrue(action.kind_mismatch)
        self.assertEqual(str(action), "verify_link: /s/l -> /d/l")

    def test_repr(self):
        rec = PathRecord("a", EntryKind.FILE)
        action = SyncAction(ActionType.CREATE, rec, "/s/a", "/d/a", deferred=True)
        self.assertEqual(repr(action), "SyncAction(create, 'a', file, deferred)")
        self.assertFalse(action.kind_mismatch)


class TestDiffEngine(unittest.TestCase):
    def setUp(self):
        self.engine = DiffEngine()

    def test_basic_merge(self):
        source = make_snapshot("/src", ["a f", "b f", "d f"])
        dest = make_snapshot("/dst", ["b f", "c f"])
        actions = list(self.engine.iter_actions(source, dest))
        self.assertEqual(
            _summary(actions),
            [
                (ActionType.CREATE, "a", False),
                (ActionType.VERIFY_LINK, "b", False),
                (ActionType.DELETE, "c", False),
                (ActionType.CREATE, "d", False),
            ],
        )
        self.assertEqual(actions[0].src_path, "/src/a")
        self.assertEqual(actions[0].dst_path, "/dst/a")
        self.assertEqual(actions[1].src_path, "/src/b")
        self.assertEqual(actions[1].dst_path, "/dst/b")
        self.assertIsNone(actions[2].src_path)
        self.assertEqual(actions[2].dst_path, "/dst/c")

    def test_diff_results(self):
        source = make_snapshot("/src", ["a f", "b f", "d f"])
        dest = make_snapshot("/dst", ["b f", "c f"])
        results = self.engine.diff(source, dest)
        self.assertEqual([a.path for a in results.creates], ["a", "d"])
        self.assertEqual([a.path for a in results.verifies], ["b"])
        self.assertEqual(results.deletions.paths, ["c"])
        self.assertEqual(results.deletions.root, "/dst")
        self.assertEqual([a.path for a in results.actions], ["a", "b", "d"])
        self.assertEqual(results.total_changes, 3)
        self.assertEqual(repr(results), "DiffResults(creates=2, verifies=1, deletions=1)")

    def test_new_directory(self):
        source = make_snapshot("/src", ["dir1 d", "dir1/a f"])
        dest = make_snapshot("/dst", [])
        actions = list(self.engine.iter_actions(source, dest))
        self.assertEqual(
            _summary(actions),
            [(ActionType.CREATE, "dir1/", False), (ActionType.CREATE, "dir1/a", False)],
        )
        self.assertEqual(actions[0].dst_path, "/dst/dir1")

    def test_removed_directory(self):
        source = make_snapshot("/src", [])
        dest = make_snapshot("/dst", ["dir1 d", "dir1/a f"])
        results = self.engine.diff(source, dest)
        self.assertEqual(results.deletions.paths, ["dir1/", "dir1/a"])
        self.assertEqual(results.creates, [])

    def test_directories_on_both_sides(self):
        source = make_snapshot("/src", ["dir1 d"])
        dest = make_snapshot("/dst", ["dir1 d"])
        self.assertEqual(list(self.engine.iter_actions(source, dest)), [])

    def test_empty(self):
        source = make_snapshot("/src", [])
        dest = make_snapshot("/dst", [])
        self.assertEqual(self.engine.diff(source, dest).total_changes, 0)

    def test_kind_mismatch_verified(self):
        source = make_snapshot("/src", ["l s"])
        dest = make_snapshot("/dst", ["l f"])
        actions = list(self.engine.iter_actions(source, dest))
        self.assertEqual(len(actions), 1)
        self.assertIs(actions[0].action_type, ActionType.VERIFY_LINK)
        self.assertIs(actions[0].dst_kind, EntryKind.FILE)
        self.assertTrue(actions[0].kind_mismatch)

    def test_file_replaces_directory_deferred(self):
        source = make_snapshot("/src", ["x f"])
        dest = make_snapshot("/dst", ["x d", "x/y f"])
        actions = list(self.engine.iter_actions(source, dest))
        self.assertEqual(
            _summary(actions),
            [
                (ActionType.CREATE, "x", True),
                (ActionType.DELETE, "x/", False),
                (ActionType.DELETE, "x/y", False),
            ],
        )

    def test_directory_replaces_file_deferred(self):
        source = make_snapshot("/src", ["x d", "x/y f", "x/z d", "x/z/w f", "z f"])
        dest = make_snapshot("/dst", ["x f"])
        actions = list(self.engine.iter_actions(source, dest))
        self.assertEqual(
            _summary(actions),
            [
                (ActionType.DELETE, "x", False),
                (ActionType.CREATE, "x/", True),
                (ActionType.CREATE, "x/y", True),
                (ActionType.CREATE, "x/z/", True),
                (ActionType.CREATE, "x/z/w", True),
                (ActionType.CREATE, "z", False),
            ],
        )

    def test_unsorted_source(self):
        source = make_snapshot("/src", ["b f", "a f"])
        dest = make_snapshot("/dst", [])
        with self.assertRaises(SynclinkStateError):
            list(self.engine.iter_actions(source, dest))

    def test_unsorted_dest(self):
        source = make_snapshot("/src", ["m f"])
        dest = make_snapshot("/dst", ["n f", "c f"])
        with self.assertRaises(SynclinkStateError):
            self.engine.diff(source, dest)
