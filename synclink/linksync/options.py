# Copyright Red Hat
#
# synclink/linksync/options.py - Hard link tree synchroniser options
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree synchronisation options.
"""
from dataclasses import dataclass, fields
from typing import Optional, Union
from argparse import Namespace
import logging

from synclink import SynclinkArgumentError

from .sorter import SortAlgorithm

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Valid snapshot dump compression types.
COMPRESSION_TYPES = (None, "lzma", "zstd")


@dataclass(frozen=True)
class SyncOptions:
    """
    Tree synchronisation options.
    """

    #: Write snapshot dump files and keep them after the run
    keep_snapshots: bool = False
    #: Directory for snapshot dump files (a private temporary
    #: directory is created if unset)
    workdir: Optional[str] = None
    #: Compression for snapshot dump files: None, "lzma" or "zstd"
    compression: Optional[str] = None
    #: Algorithm used to sort snapshots
    sort_algorithm: SortAlgorithm = SortAlgorithm.MERGE
    #: Require source and destination to be on the same file system
    one_file_system: bool = True
    #: Do not output progress or status updates
    quiet: bool = False

    def __post_init__(self):
        if self.compression not in COMPRESSION_TYPES:
            raise SynclinkArgumentError(
                f"Unknown compression type: {self.compression}"
            )
        if not isinstance(self.sort_algorithm, SortAlgorithm):
            raise SynclinkArgumentError(
                f"Unknown sort algorithm: {self.sort_algorithm}"
            )

    def __str__(self):
        """
        Return a human readable string representation of this
        ``SyncOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """
        return "\n".join(f"{key}={val}" for key, val in self.__dict__.items())

    @classmethod
    def from_cmd_args(cls, cmd_args: Namespace) -> "SyncOptions":
        """
        Initialise SyncOptions from command line arguments.

        Construct a new ``SyncOptions`` object from the command line
        arguments in ``cmd_args``. Arguments not present in ``cmd_args``
        take their default values.

        :param cmd_args: The command line arguments.
        :type cmd_args: ``Namespace``
        :returns: A new ``SyncOptions`` instance
        :rtype: ``SyncOptions``
        """

        def get_value(name: str) -> Union[bool, Optional[str], SortAlgorithm]:
            """
            Get a value from ``cmd_args``, converting the sort algorithm
            name to a ``SortAlgorithm``.

            :param name: The name of the argument.
            :type name: ``str``
            :returns: The argument converted if appropriate.
            """
            attr = getattr(cmd_args, name)
            if name == "sort_algorithm" and isinstance(attr, str):
                try:
                    return SortAlgorithm(attr)
                except ValueError as err:
                    raise SynclinkArgumentError(
                        f"Unknown sort algorithm: {attr}"
                    ) from err
            return attr

        field_names = {f.name for f in fields(cls)}
        kwargs = {
            name: get_value(name)
            for name in field_names
            if getattr(cmd_args, name, None) is not None
        }
        options = cls(**kwargs)
        _log_debug("Initialised SyncOptions from arguments: %s", repr(options))
        return options


__all__ = [
    "COMPRESSION_TYPES",
    "SyncOptions",
]
