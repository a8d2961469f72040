# Copyright Red Hat
#
# synclink/_synclink.py - Hard link tree synchroniser global definitions
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level synclink package.
"""
from typing import Optional, TextIO, Union, TYPE_CHECKING
import logging
import weakref
import sys
import os

if TYPE_CHECKING:
    from .progress import ThrobberBase

_log = logging.getLogger("synclink")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Synclink debugging subsystem mask (legacy interface)
SYNCLINK_DEBUG_COMMAND = 1
SYNCLINK_DEBUG_COLLECT = 2
SYNCLINK_DEBUG_DIFF = 4
SYNCLINK_DEBUG_APPLY = 8
SYNCLINK_DEBUG_ALL = (
    SYNCLINK_DEBUG_COMMAND
    | SYNCLINK_DEBUG_COLLECT
    | SYNCLINK_DEBUG_DIFF
    | SYNCLINK_DEBUG_APPLY
)

# Synclink debugging subsystem names
SYNCLINK_SUBSYSTEM_COMMAND = "synclink.command"
SYNCLINK_SUBSYSTEM_COLLECT = "synclink.collect"
SYNCLINK_SUBSYSTEM_DIFF = "synclink.diff"
SYNCLINK_SUBSYSTEM_APPLY = "synclink.apply"

_DEBUG_MASK_TO_SUBSYSTEM = {
    SYNCLINK_DEBUG_COMMAND: SYNCLINK_SUBSYSTEM_COMMAND,
    SYNCLINK_DEBUG_COLLECT: SYNCLINK_SUBSYSTEM_COLLECT,
    SYNCLINK_DEBUG_DIFF: SYNCLINK_SUBSYSTEM_DIFF,
    SYNCLINK_DEBUG_APPLY: SYNCLINK_SUBSYSTEM_APPLY,
}

_debug_subsystems = set()

# Registry of active throbber instances: uses a WeakSet so we don't prevent
# garbage collection.
_active_progress: weakref.WeakSet = weakref.WeakSet()


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        if record.levelno != logging.DEBUG:
            return True

        if not hasattr(record, "subsystem"):
            return True

        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``synclink`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    enabled_subsystems = set(_debug_subsystems)
    synclink_log = logging.getLogger("synclink")

    for handler in synclink_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                enabled_subsystems.update(f.enabled_subsystems)

    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in enabled_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``synclink`` package.

    :param mask: the logical OR of the ``SYNCLINK_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > SYNCLINK_DEBUG_ALL:
        raise ValueError(f"Invalid synclink debug mask: {mask}")

    enabled_subsystems = [
        subsystem_name
        for flag, subsystem_name in _DEBUG_MASK_TO_SUBSYSTEM.items()
        if mask & flag
    ]

    synclink_log = logging.getLogger("synclink")
    for handler in synclink_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


def register_progress(progress: "ThrobberBase"):
    """Register a throbber instance for log coordination."""
    _active_progress.add(progress)
    progress.registered = True


def unregister_progress(progress: "ThrobberBase"):
    """Unregister a throbber instance."""
    _active_progress.discard(progress)
    progress.registered = False


def notify_log_output(stream: TextIO):
    """
    Notify throbber instances that log output occurred on stream.

    Called by ProgressAwareHandler after emitting a record.

    :param stream: The stream that received output.
    :type stream: ``TextIO``
    """
    if stream not in (sys.stdout, sys.stderr):
        return
    for progress in list(_active_progress):
        if hasattr(progress, "reset_position"):
            progress.reset_position()


class ProgressAwareHandler(logging.StreamHandler):
    """
    A logging handler that coordinates with active throbber instances.

    After emitting a log record, notifies any throbber writing to the
    same stream so that the next frame starts on a fresh line.
    """

    def __init__(self, stream: Optional[TextIO] = None, **kwargs):
        super().__init__(stream=stream or sys.stderr, **kwargs)

    def emit(self, record):
        try:
            msg = self.format(record)
            self.stream.write(msg + "\n")
            self.stream.flush()
            notify_log_output(self.stream)
        except Exception:  # pylint: disable=broad-exception-caught
            self.handleError(record)


#
# Synclink exception types
#


class SynclinkError(Exception):
    """
    Base class for synclink errors.
    """


class SynclinkSystemError(SynclinkError):
    """
    An error when calling the operating system.
    """

    def __init__(self, op: str, path: Union[str, bytes], err: OSError):
        """
        Initialise a new ``SynclinkSystemError`` exception.

        :param op: The name of the failed operation (for e.g. "link").
        :param path: The path the operation was applied to.
        :param err: The ``OSError`` raised by the operation.
        """
        self.op, self.path, self.errno = op, path, err.errno
        self.strerror = err.strerror or os.strerror(err.errno or 0)
        msg = f"{op} failed for {path}: {self.strerror}"
        super().__init__(msg)


class SynclinkPathError(SynclinkError):
    """
    An invalid path was supplied, for example a source or destination
    that does not exist or is not a directory.
    """


class SynclinkParseError(SynclinkError):
    """
    A record could not be parsed into a path and object kind.
    """


class SynclinkStateError(SynclinkError):
    """
    The state of the file system does not match what a snapshot
    recorded, for example a directory that is not empty at removal time.
    """


class SynclinkArgumentError(SynclinkError):
    """
    An invalid argument was passed to a synclink API call.
    """


__all__ = [
    "SYNCLINK_DEBUG_COMMAND",
    "SYNCLINK_DEBUG_COLLECT",
    "SYNCLINK_DEBUG_DIFF",
    "SYNCLINK_DEBUG_APPLY",
    "SYNCLINK_DEBUG_ALL",
    # Debug logging - subsystem name interface
    "SubsystemFilter",
    "SYNCLINK_SUBSYSTEM_COMMAND",
    "SYNCLINK_SUBSYSTEM_COLLECT",
    "SYNCLINK_SUBSYSTEM_DIFF",
    "SYNCLINK_SUBSYSTEM_APPLY",
    # Debug logging - legacy interface
    "set_debug_mask",
    "get_debug_mask",
    # Progress log callbacks
    "register_progress",
    "unregister_progress",
    "notify_log_output",
    "ProgressAwareHandler",
    "SynclinkError",
    "SynclinkSystemError",
    "SynclinkPathError",
    "SynclinkParseError",
    "SynclinkStateError",
    "SynclinkArgumentError",
]
