# Copyright Red Hat
#
# synclink/command.py - Hard link tree synchroniser command interface
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``synclink.command`` module provides both the synclink command line
interface infrastructure, and a simple procedural interface to the
``synclink.linksync`` package.

The procedural interface is used by the ``synclink`` command line tool,
and may be used by application programs, or interactively in the
Python shell by users who do not require all the features present
in the ``LinkSyncer`` object API.
"""
from argparse import ArgumentParser
from typing import Optional, Tuple
from os.path import basename
import logging
import os

from synclink import (
    SynclinkPathError,
    SubsystemFilter,
    ProgressAwareHandler,
    set_debug_mask,
    SYNCLINK_DEBUG_COMMAND,
    SYNCLINK_DEBUG_COLLECT,
    SYNCLINK_DEBUG_DIFF,
    SYNCLINK_DEBUG_APPLY,
    SYNCLINK_DEBUG_ALL,
    SYNCLINK_SUBSYSTEM_COMMAND,
    __version__,
)
from .linksync import LinkSyncer, SyncOptions, SyncStats
from .linksync.options import COMPRESSION_TYPES
from .linksync.sorter import SortAlgorithm

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SYNCLINK_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.WARNING
_CONSOLE_HANDLER = None


def _check_root(path: str, what: str) -> str:
    """
    Canonicalise ``path`` and check that it names an existing directory.

    :param path: The path given on the command line.
    :type path: ``str``
    :param what: "source" or "destination", for error messages.
    :type what: ``str``
    :returns: The canonical absolute path.
    :rtype: ``str``
    :raises SynclinkPathError: If ``path`` is not an existing directory.
    """
    real = os.path.realpath(path)
    if not os.path.exists(real):
        raise SynclinkPathError(f"The {what} directory '{path}' does not exist")
    if not os.path.isdir(real):
        raise SynclinkPathError(f"The {what} path '{path}' is not a directory")
    return real


def check_roots(
    source: str, dest: str, one_file_system: bool = True
) -> Tuple[str, str]:
    """
    Validate a source and destination pair before any modification is made.

    Both paths are canonicalised. Neither may lie inside the other and,
    when ``one_file_system`` is set, both must reside on the same device
    since hard links cannot cross file systems.

    :param source: The source directory.
    :type source: ``str``
    :param dest: The destination directory.
    :type dest: ``str``
    :param one_file_system: Require both roots to share a device.
    :type one_file_system: ``bool``
    :returns: A ``(source, dest)`` tuple of canonical paths.
    :rtype: ``Tuple[str, str]``
    :raises SynclinkPathError: If either path is unusable.
    """
    source = _check_root(source, "source")
    dest = _check_root(dest, "destination")

    if os.path.commonpath([source, dest]) in (source, dest):
        raise SynclinkPathError(
            f"Source '{source}' and destination '{dest}' must not be nested"
        )

    if one_file_system:
        try:
            src_dev = os.stat(source).st_dev
            dst_dev = os.stat(dest).st_dev
        except OSError as err:
            raise SynclinkPathError(f"Failed to stat sync roots: {err}") from err
        if src_dev != dst_dev:
            raise SynclinkPathError(
                f"Source '{source}' and destination '{dest}' are on "
                "different file systems"
            )
    return (source, dest)


def sync_trees(
    source: str,
    dest: str,
    options: Optional[SyncOptions] = None,
    program: str = "synclink",
) -> SyncStats:
    """
    Synchronise the tree at ``dest`` with the tree at ``source``.

    :param source: The source directory.
    :type source: ``str``
    :param dest: The destination directory.
    :type dest: ``str``
    :param options: Options for this run.
    :type options: ``SyncOptions``
    :param program: The program name used to label dump work files.
    :type program: ``str``
    :returns: Counters describing the work done.
    :rtype: ``SyncStats``
    """
    options = options or SyncOptions()
    source, dest = check_roots(source, dest, one_file_system=options.one_file_system)
    _log_debug_command("Synchronising %s to %s with options:\n%s", source, dest, options)
    syncer = LinkSyncer(options, program=program)
    return syncer.sync(source, dest)


def _sync_cmd(cmd_args):
    """
    Synchronise command handler.

    :param cmd_args: Command line arguments for the command.
    :returns: integer status code returned from ``main()``
    """
    options = SyncOptions.from_cmd_args(cmd_args)
    stats = sync_trees(
        cmd_args.source, cmd_args.dest, options=options, program=cmd_args.program
    )
    _log_debug_command("Sync complete: %s", stats)
    return 0


def setup_logging(cmd_args):
    """
    Set up synclink logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose and cmd_args.verbose > 1:
        level = logging.DEBUG
    elif cmd_args.verbose and cmd_args.verbose > 0:
        level = logging.INFO

    synclink_log = logging.getLogger("synclink")
    formatter = logging.Formatter("%(levelname)s - %(message)s")
    synclink_log.setLevel(level)
    if synclink_log.hasHandlers():
        synclink_log.handlers.clear()

    # Subsystem log filtering
    _synclink_subsystem_filter = SubsystemFilter("synclink")

    # Main console handler
    _CONSOLE_HANDLER = ProgressAwareHandler()

    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.setFormatter(formatter)
    _CONSOLE_HANDLER.addFilter(_synclink_subsystem_filter)

    synclink_log.addHandler(_CONSOLE_HANDLER)


def shutdown_logging():
    """
    Shut down synclink logging.
    """
    logging.shutdown()


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return

    mask_map = {
        "command": SYNCLINK_DEBUG_COMMAND,
        "collect": SYNCLINK_DEBUG_COLLECT,
        "diff": SYNCLINK_DEBUG_DIFF,
        "apply": SYNCLINK_DEBUG_APPLY,
        "all": SYNCLINK_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    set_debug_mask(mask)


def _add_sync_args(parser):
    """
    Add synchronisation arguments.
    """
    parser.add_argument(
        "source",
        metavar="SOURCE",
        type=str,
        help="The directory tree to mirror",
    )
    parser.add_argument(
        "dest",
        metavar="DEST",
        type=str,
        help="The directory tree to update with hard links",
    )
    parser.add_argument(
        "-D",
        "--keep-snapshots",
        action="store_true",
        help="Write the intermediate snapshots of the run to work files",
    )
    parser.add_argument(
        "--workdir",
        metavar="DIR",
        type=str,
        help="The directory to write snapshot work files to",
    )
    parser.add_argument(
        "--compress",
        dest="compression",
        choices=[c for c in COMPRESSION_TYPES if c],
        help="Compress snapshot work files",
    )
    parser.add_argument(
        "--sort-algorithm",
        choices=[a.value for a in SortAlgorithm],
        help="The algorithm used to sort snapshots",
    )
    parser.add_argument(
        "--allow-cross-device",
        dest="one_file_system",
        action="store_false",
        default=None,
        help="Do not require the source and destination to share a file system",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Do not display progress output",
    )


def main(args):
    """
    Main entry point for synclink.
    """
    program = basename(args[0])
    parser = ArgumentParser(
        description="Mirror a directory tree using hard links", prog=program
    )

    # Global arguments
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of synclink",
        version=__version__,
    )
    _add_sync_args(parser)
    parser.set_defaults(func=_sync_cmd, program=program)

    cmd_args = parser.parse_args(args[1:])

    status = 1

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err)
        parser.print_help()
        return status

    setup_logging(cmd_args)

    _log_debug_command("Parsed %s", " ".join(args[1:]))

    if cmd_args.debug:
        status = cmd_args.func(cmd_args)
    else:
        try:
            status = cmd_args.func(cmd_args)
        # pylint: disable=broad-except
        except KeyboardInterrupt:  # pragma: no cover
            _log_info("Exiting on user cancel")
        except Exception as err:
            _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


__all__ = [
    "check_roots",
    "main",
    "set_debug",
    "setup_logging",
    "shutdown_logging",
    "sync_trees",
]

# vim: set et ts=4 sw=4 :
