# Copyright Red Hat
#
# tests/test_progress.py - Busy indicator tests.
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import logging
from unittest.mock import MagicMock, patch
from datetime import datetime, timedelta
from io import StringIO

from synclink import ProgressAwareHandler, notify_log_output
from synclink.progress import (
    NullThrobber,
    ProgressFactory,
    SimpleThrobber,
    Throbber,
    _flush_with_broken_pipe_guard,
)


class TestFlushGuard(unittest.TestCase):
    def test_flush_guard_broken_pipe(self):
        """Test BrokenPipeError handling in flush guard."""
        mock_stream = MagicMock()
        mock_stream.flush.side_effect = BrokenPipeError()
        mock_stream.fileno.return_value = 10

        with patch("synclink.progress.os") as mock_os:
            mock_os.open.return_value = 999
            mock_os.devnull = "/dev/null"
            mock_os.O_WRONLY = 1

            with self.assertRaises(SystemExit):
                _flush_with_broken_pipe_guard(mock_stream)

            mock_os.open.assert_called_with("/dev/null", 1)
            mock_os.dup2.assert_called_with(999, 10)
            mock_os.close.assert_called_with(999)

    def test_flush_guard_no_flush_attr(self):
        """Test flush guard with stream lacking flush method."""
        mock_stream = MagicMock()
        del mock_stream.flush
        _flush_with_broken_pipe_guard(mock_stream)


class TestThrobber(unittest.TestCase):
    def test_init_frames(self):
        """Test Unicode frame selection and ASCII fallback."""
        stream = MagicMock()
        stream.encoding = "utf-8"
        t = Throbber("H", term_stream=stream)
        self.assertEqual(t.frames, Throbber.UNICODE_FRAMES)

        stream.encoding = "ascii"
        t_ascii = Throbber("H", term_stream=stream)
        self.assertEqual(t_ascii.frames, Throbber.ASCII_FRAMES)

        t_none = Throbber("H", term_stream=StringIO())
        self.assertEqual(t_none.frames, Throbber.ASCII_FRAMES)

    @patch("synclink.progress.datetime")
    def test_lifecycle_flow(self, mock_dt):
        """Test the start -> throb -> end lifecycle with output verification."""
        stream = StringIO()
        t = Throbber("Working", term_stream=stream)

        start_time = datetime(2024, 1, 1, 12, 0, 0)
        mock_dt.now.side_effect = [
            start_time,
            start_time,
            start_time + timedelta(microseconds=100001),
            start_time + timedelta(microseconds=150000),
        ]

        t.start()
        self.assertTrue(t.started)
        self.assertTrue(t.registered)
        self.assertEqual(stream.getvalue(), f"\r\x1b[KWorking: {t.frames[0]}")

        stream.truncate(0)
        stream.seek(0)
        t.throb()
        self.assertEqual(stream.getvalue(), f"\r\x1b[KWorking: {t.frames[1]}")

        # Too soon for another frame.
        stream.truncate(0)
        stream.seek(0)
        t.throb()
        self.assertEqual(stream.getvalue(), "")

        t.end("done")
        self.assertEqual(stream.getvalue(), "\r\x1b[KWorking: done\n")
        self.assertFalse(t.started)
        self.assertFalse(t.registered)

    def test_validation(self):
        """Test state validation (throb before start)."""
        t = Throbber("H", term_stream=StringIO())
        with self.assertRaisesRegex(ValueError, "called before start"):
            t.throb()
        with self.assertRaisesRegex(ValueError, "called before start"):
            t.end()


class TestSimpleThrobber(unittest.TestCase):
    def test_flow(self):
        stream = StringIO()
        t = SimpleThrobber("Gathering", term_stream=stream, register=False)
        t.start()
        t.end("found 3 paths")
        self.assertEqual(stream.getvalue(), "Gathering: ... found 3 paths\n")
        self.assertFalse(t.registered)

    @patch("synclink.progress.datetime")
    def test_header_redrawn_after_log_output(self, mock_dt):
        """Log output moves the dots to a new line that repeats the header."""
        stream = StringIO()
        start_time = datetime(2024, 1, 1, 12, 0, 0)
        mock_dt.now.side_effect = [
            start_time,
            start_time,
            start_time + timedelta(microseconds=100001),
        ]

        log = logging.getLogger("synclink_test_progress")
        log.propagate = False
        handler = ProgressAwareHandler(stream=stream)
        handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
        log.addHandler(handler)
        try:
            with patch("sys.stderr", stream):
                t = SimpleThrobber("Gathering", term_stream=stream)
                t.start()
                log.warning("Skipping 'fifo'")
                t.throb()
                t.end("found 1 paths")
        finally:
            log.removeHandler(handler)

        self.assertEqual(
            stream.getvalue(),
            "Gathering: ...WARNING - Skipping 'fifo'\n"
            "Gathering: . found 1 paths\n",
        )

    def test_end_after_log_output(self):
        """The completion message is not left on a line of its own."""
        stream = StringIO()
        t = SimpleThrobber("Gathering", term_stream=stream, register=False)
        t.start()
        stream.write("INFO - Skipping unsupported object 'sock'\n")
        t.reset_position()
        t.end("found 2 paths")
        self.assertEqual(
            stream.getvalue(),
            "Gathering: ...INFO - Skipping unsupported object 'sock'\n"
            "Gathering: found 2 paths\n",
        )

    def test_no_redraw_without_log_output(self):
        stream = StringIO()
        t = SimpleThrobber("Gathering", term_stream=stream)
        t.start()
        notify_log_output(StringIO())
        t.end("found 0 paths")
        self.assertEqual(stream.getvalue(), "Gathering: ... found 0 paths\n")


class TestNullThrobber(unittest.TestCase):
    def test_lifecycle(self):
        t = NullThrobber("H")
        t.start()
        t.throb()
        t.end("done")
        self.assertFalse(t.started)
        self.assertFalse(t.registered)

    def test_end_before_start_raises(self):
        with self.assertRaises(ValueError):
            NullThrobber("H").end()


class TestProgressFactory(unittest.TestCase):
    def test_get_throbber_quiet(self):
        self.assertIsInstance(
            ProgressFactory.get_throbber("H", quiet=True), NullThrobber
        )

    def test_get_throbber_simple(self):
        self.assertIsInstance(
            ProgressFactory.get_throbber("H", term_stream=StringIO()), SimpleThrobber
        )

    def test_get_throbber_fancy(self):
        stream = MagicMock()
        stream.isatty.return_value = True
        stream.encoding = "utf-8"
        t = ProgressFactory.get_throbber("H", term_stream=stream)
        self.assertIsInstance(t, Throbber)
        self.assertEqual(t.frames, Throbber.UNICODE_FRAMES)

    def test_get_throbber_missing_isatty_attr(self):
        stream = MagicMock()
        del stream.isatty
        self.assertIsInstance(
            ProgressFactory.get_throbber("H", term_stream=stream), SimpleThrobber
        )

    def test_get_throbber_defaults_to_stderr(self):
        """Progress never appears on stdout."""
        err = StringIO()
        out = StringIO()
        with patch("sys.stderr", err), patch("sys.stdout", out):
            t = ProgressFactory.get_throbber("Gathering", register=False)
            t.start()
            t.end("found 0 paths")
        self.assertIs(t.stream, err)
        self.assertEqual(out.getvalue(), "")
        self.assertEqual(err.getvalue(), "Gathering: ... found 0 paths\n")
