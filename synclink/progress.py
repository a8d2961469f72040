# Copyright Red Hat
#
# synclink/progress.py - Hard link tree synchroniser busy indicators
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Busy indicators shown while a source or destination tree is enumerated.

The number of paths in a tree is not known until the walk completes, so
progress is reported as a throbber rather than a bar. Indicators write to
``sys.stderr`` by default so that they share a stream with the console log
handler and never mix with anything a caller pipes from ``sys.stdout``.
"""
from typing import Optional, TextIO
from datetime import datetime, timedelta
from abc import ABC, abstractmethod
import sys
import os

from synclink import register_progress, unregister_progress

#: Frame rate used by all throbbers
DEFAULT_FPS = 10

#: Microseconds per second
_USECS_PER_SEC = 1000000

#: ANSI sequence to return to the beginning of the line and clear it.
_CLEAR_LINE = "\r\x1b[K"


def _flush_with_broken_pipe_guard(stream: TextIO) -> None:
    """
    Flush ``stream``, redirecting it to ``os.devnull`` and exiting if the
    reader has gone away.

    :param stream: The stream to flush.
    :type stream: TextIO
    """
    if stream is None or not hasattr(stream, "flush"):
        return
    try:
        stream.flush()
    except BrokenPipeError as err:
        devnull = os.open(os.devnull, os.O_WRONLY)
        try:
            if hasattr(stream, "fileno"):
                os.dup2(devnull, stream.fileno())
        finally:
            os.close(devnull)
        raise SystemExit() from err


class ThrobberBase(ABC):
    """
    Rate limited busy indicator for a walk of unknown length.

    Callers invoke ``throb()`` once per path visited; a frame is drawn at
    most ``DEFAULT_FPS`` times a second. While registered, log output
    written by ``synclink.ProgressAwareHandler`` calls ``reset_position()``
    so that the next frame is drawn on the fresh line below the log
    message instead of being appended to it.
    """

    def __init__(self, header: str, register: bool = True):
        """
        Initialise throbber state common to all indicators.

        :param header: The text printed before the indicator frames.
        :type header: ``str``
        :param register: Register for log output notifications.
        :type register: ``bool``
        """
        self.header: str = header
        self.frames: str = "."
        self.stream: Optional[TextIO] = None
        self.started: bool = False
        #: ``True`` when the header must be drawn again before the next frame
        self.first_update: bool = True
        self.nr_frames: int = len(self.frames)
        self.fps: int = DEFAULT_FPS
        self._frame_index: int = 0
        self._interval_us: int = round((1.0 / self.fps) * _USECS_PER_SEC)
        self._last: Optional[datetime] = None
        self.registered: bool = False
        self.register: bool = register

    def reset_position(self):
        """
        Note that other output moved the cursor to a new line.
        """
        self.first_update = True

    def start(self):
        """
        Draw the header and the first frame.
        """
        self.started = True
        # Back-date the last frame so that the first throb() always draws.
        self._last = datetime.now() - timedelta(microseconds=self._interval_us)

        if self.register:
            register_progress(self)

        self._do_start()
        self.first_update = False
        self.throb()

    def _check_started(self, step: str):
        """
        :raises ``ValueError``: If ``start()`` has not been called.
        """
        if not self.started or self._last is None:
            raise ValueError(
                f"{self.__class__.__name__}.{step}() called before start()"
            )

    def throb(self):
        """
        Draw the next frame if at least one frame interval has elapsed.
        """
        self._check_started("throb")
        now = datetime.now()
        if (now - self._last).total_seconds() * _USECS_PER_SEC >= self._interval_us:
            self._do_throb()
            _flush_with_broken_pipe_guard(self.stream)
            self._last = now
            self._frame_index = (self._frame_index + 1) % self.nr_frames
            self.first_update = False

    def end(self, message: Optional[str] = None):
        """
        Finish the indicator line with ``message``.

        :param message: A summary of the completed walk.
        :type message: ``Optional[str]``
        """
        self._check_started("end")
        self._do_end(message=message)
        _flush_with_broken_pipe_guard(self.stream)
        self.started = False
        self._last = None
        if self.registered:
            unregister_progress(self)

    @abstractmethod
    def _do_start(self):
        """Draw whatever precedes the first frame."""

    @abstractmethod
    def _do_throb(self):
        """Draw the current frame."""

    @abstractmethod
    def _do_end(self, message: Optional[str] = None):
        """Draw the completion message and end the line."""


class Throbber(ThrobberBase):
    """
    Spinner redrawn in place on a terminal.
    """

    #: Frames used when the stream can encode them
    UNICODE_FRAMES = "⠁⠂⠄⡀⢀⠠⠐⠈"
    #: Fallback frames
    ASCII_FRAMES = r"-\|/"

    def __init__(
        self, header: str, register: bool = True, term_stream: Optional[TextIO] = None
    ):
        """
        Initialise a spinner for ``term_stream``.

        :param header: The text printed before the spinner.
        :type header: ``str``
        :param register: Register for log output notifications.
        :type register: ``bool``
        :param term_stream: The terminal to draw on, ``sys.stderr`` if unset.
        :type term_stream: ``Optional[TextIO]``
        """
        super().__init__(header, register=register)
        self.stream: Optional[TextIO] = term_stream or sys.stderr

        encoding = getattr(self.stream, "encoding", None)
        self.frames = self.ASCII_FRAMES
        if encoding:
            try:
                self.UNICODE_FRAMES.encode(encoding)
                self.frames = self.UNICODE_FRAMES
            except UnicodeEncodeError:
                pass
        self.nr_frames = len(self.frames)

    def _do_start(self):
        """
        The header is drawn with each frame.
        """

    def _do_throb(self):
        # Every frame rewrites the whole line, so a line started by log
        # output gets its header back without special handling.
        print(
            f"{_CLEAR_LINE}{self.header}: {self.frames[self._frame_index]}",
            end="",
            file=self.stream,
        )

    def _do_end(self, message: Optional[str] = None):
        print(f"{_CLEAR_LINE}{self.header}: {message or ''}", file=self.stream)


class SimpleThrobber(ThrobberBase):
    """
    Row of dots for streams that are not terminals.

    Nothing is ever erased: after log output the header is printed again
    and the dots continue on the new line.
    """

    def __init__(
        self, header: str, register: bool = True, term_stream: Optional[TextIO] = None
    ):
        """
        Initialise a dot throbber for ``term_stream``.

        :param header: The text printed before the dots.
        :type header: ``str``
        :param register: Register for log output notifications.
        :type register: ``bool``
        :param term_stream: The stream to write to, ``sys.stderr`` if unset.
        :type term_stream: ``Optional[TextIO]``
        """
        super().__init__(header, register=register)
        self.stream = term_stream or sys.stderr

    def _do_start(self):
        print(f"{self.header}: ..", end="", file=self.stream)

    def _do_throb(self):
        if self.first_update:
            print(f"{self.header}: ", end="", file=self.stream)
        print(self.frames[self._frame_index], end="", file=self.stream)

    def _do_end(self, message: Optional[str] = None):
        if self.first_update:
            print(f"{self.header}:", end="", file=self.stream)
        print(f" {message}" if message else "", file=self.stream)


class NullThrobber(ThrobberBase):
    """
    Throbber used with ``--quiet``: tracks state but draws nothing.
    """

    def _do_start(self):
        pass

    def _do_throb(self):
        pass

    def _do_end(self, message: Optional[str] = None):
        pass

    def throb(self):
        self._check_started("throb")


class ProgressFactory:
    """
    Choose a throbber implementation for an output stream.
    """

    @staticmethod
    def get_throbber(
        header: str,
        quiet: bool = False,
        term_stream: Optional[TextIO] = None,
        register: bool = True,
    ) -> ThrobberBase:
        """
        Return a ``NullThrobber`` if ``quiet`` is set, a ``Throbber`` if
        ``term_stream`` is a terminal and a ``SimpleThrobber`` otherwise.

        :param header: The throbber header.
        :type header: ``str``
        :param quiet: Suppress all output.
        :type quiet: ``bool``
        :param term_stream: The stream to draw on, ``sys.stderr`` if unset.
        :type term_stream: ``Optional[TextIO]``
        :param register: Register for log output notifications.
        :type register: ``bool``
        :returns: A throbber for ``term_stream``.
        :rtype: ``ThrobberBase``
        """
        if quiet:
            return NullThrobber(header, register=register)
        term_stream = term_stream or sys.stderr
        if not hasattr(term_stream, "isatty") or not term_stream.isatty():
            return SimpleThrobber(header, register=register, term_stream=term_stream)
        return Throbber(header, register=register, term_stream=term_stream)


__all__ = [
    "DEFAULT_FPS",
    "NullThrobber",
    "ProgressFactory",
    "SimpleThrobber",
    "ThrobberBase",
    "Throbber",
]
