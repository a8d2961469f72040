# Copyright Red Hat
#
# tests/linksync/test_dump.py - Snapshot dump work file tests.
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import patch
import tempfile
import shutil
import os

from synclink import SynclinkArgumentError, SynclinkParseError, SynclinkPathError
from synclink.linksync import dump
from synclink.linksync.dump import (
    DUMP_DELETIONS_SORTED,
    DUMP_SOURCE,
    NR_DUMP_FILES,
    SnapshotDumper,
    dump_file_name,
    read_snapshot_dump,
    write_snapshot_dump,
)
from synclink.linksync.options import SyncOptions

from ._util import make_snapshot


class TestDumpFiles(unittest.TestCase):
    def setUp(self):
        self.workdir = tempfile.mkdtemp(prefix="synclink-dump-")
        self.snapshot = make_snapshot(
            "/src", ["dir1 d", "dir1/a f", "dir1/b s", "name with spaces f"]
        )

    def tearDown(self):
        shutil.rmtree(self.workdir)

    def _path(self, name):
        return os.path.join(self.workdir, name)

    def _check_roundtrip(self, name, compression):
        path = write_snapshot_dump(self.snapshot, self._path(name), compression)
        loaded = read_snapshot_dump(path)
        self.assertEqual(loaded.root, "/src")
        self.assertEqual(list(loaded), list(self.snapshot))

    def test_plain(self):
        self._check_roundtrip("plain", None)

    def test_lzma(self):
        self._check_roundtrip("dump.xz", "lzma")

    @unittest.skipIf(not dump._HAVE_ZSTD, "zstandard not available")
    def test_zstd(self):
        self._check_roundtrip("dump.zst", "zstd")

    def test_dump_file_name(self):
        with patch.dict(os.environ, {"USER": "tester"}):
            self.assertEqual(
                dump_file_name("/work", "synclink", 3), "/work/testersynclink3"
            )
            self.assertEqual(
                dump_file_name("/work", "synclink", 0, "lzma"),
                "/work/testersynclink0.xz",
            )

    def test_dump_file_name_bad_compression(self):
        with self.assertRaises(SynclinkArgumentError):
            dump_file_name("/work", "synclink", 0, "gzip")

    def _write(self, name, text):
        with open(self._path(name), "w", encoding="utf8") as fp:
            fp.write(text)
        return self._path(name)

    def test_empty_file(self):
        with self.assertRaises(SynclinkParseError):
            read_snapshot_dump(self._write("empty", ""))

    def test_bad_version(self):
        path = self._write("badver", '{"version": 99, "root": "/", "count": 0}\n')
        with self.assertRaises(SynclinkParseError):
            read_snapshot_dump(path)

    def test_corrupt_line(self):
        path = self._write(
            "corrupt", '{"version": 1, "root": "/", "count": 1}\nnot json\n'
        )
        with self.assertRaises(SynclinkParseError):
            read_snapshot_dump(path)

    def test_bad_records(self):
        header = '{"version": 1, "root": "/", "count": 1}\n'
        for line in (
            '{"kind": "x", "path": "a"}',
            '{"kind": "f"}',
            '{"kind": "f", "path": "/abs"}',
            '{"kind": "f", "path": 7}',
            "[1, 2]",
        ):
            with self.subTest(line=line):
                path = self._write("bad", header + line + "\n")
                with self.assertRaises(SynclinkParseError):
                    read_snapshot_dump(path)

    def test_truncated(self):
        path = self._write(
            "short",
            '{"version": 1, "root": "/", "count": 2}\n{"kind": "f", "path": "a"}\n',
        )
        with self.assertRaises(SynclinkParseError):
            read_snapshot_dump(path)


class TestSnapshotDumper(unittest.TestCase):
    def setUp(self):
        self.workdir = tempfile.mkdtemp(prefix="synclink-dumper-")
        self.snapshot = make_snapshot("/src", ["a f"])

    def tearDown(self):
        shutil.rmtree(self.workdir)

    def test_disabled(self):
        dumper = SnapshotDumper(SyncOptions(workdir=self.workdir))
        self.assertIsNone(dumper.dump(DUMP_SOURCE, self.snapshot))
        self.assertEqual(dumper.paths, {})
        self.assertEqual(os.listdir(self.workdir), [])

    def test_enabled(self):
        options = SyncOptions(keep_snapshots=True, workdir=self.workdir)
        dumper = SnapshotDumper(options, program="/usr/bin/synclink")
        with patch.dict(os.environ, {"USER": "tester"}):
            for index in range(NR_DUMP_FILES):
                dumper.dump(index, self.snapshot)
        self.assertEqual(
            sorted(os.listdir(self.workdir)),
            [f"testersynclink{i}" for i in range(NR_DUMP_FILES)],
        )
        self.assertEqual(
            dumper.paths[DUMP_DELETIONS_SORTED],
            os.path.join(self.workdir, "testersynclink5"),
        )

    def test_bad_index(self):
        options = SyncOptions(keep_snapshots=True, workdir=self.workdir)
        with self.assertRaises(SynclinkArgumentError):
            SnapshotDumper(options).dump(NR_DUMP_FILES, self.snapshot)

    def test_workdir_created(self):
        workdir = os.path.join(self.workdir, "sub", "dir")
        options = SyncOptions(keep_snapshots=True, workdir=workdir)
        path = SnapshotDumper(options).dump(DUMP_SOURCE, self.snapshot)
        self.assertTrue(os.path.isfile(path))
        self.assertEqual(os.path.dirname(path), workdir)

    def test_workdir_not_a_directory(self):
        workdir = os.path.join(self.workdir, "file")
        with open(workdir, "w", encoding="utf8") as fp:
            fp.write("x")
        options = SyncOptions(keep_snapshots=True, workdir=workdir)
        with self.assertRaises(SynclinkPathError):
            SnapshotDumper(options).dump(DUMP_SOURCE, self.snapshot)

    def test_workdir_symlink(self):
        workdir = os.path.join(self.workdir, "link")
        os.symlink(self.workdir, workdir)
        options = SyncOptions(keep_snapshots=True, workdir=workdir)
        with self.assertRaises(SynclinkPathError):
            SnapshotDumper(options).dump(DUMP_SOURCE, self.snapshot)

    def test_temporary_workdir(self):
        dumper = SnapshotDumper(SyncOptions(keep_snapshots=True))
        path = dumper.dump(DUMP_SOURCE, self.snapshot)
        try:
            self.assertTrue(os.path.basename(dumper.workdir).startswith("synclink-"))
            self.assertTrue(os.path.isfile(path))
        finally:
            shutil.rmtree(dumper.workdir)

    def test_zstd_unavailable(self):
        options = SyncOptions(keep_snapshots=True, compression="zstd")
        with patch("synclink.linksync.dump._HAVE_ZSTD", False):
            with self.assertRaises(SynclinkArgumentError):
                SnapshotDumper(options)
