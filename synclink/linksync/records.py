# Copyright Red Hat
#
# synclink/linksync/records.py - Hard link tree synchroniser snapshot records
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Snapshot path records and the snapshot store.
"""
from typing import Iterable, Iterator, List, Optional
from enum import Enum
import os

from synclink import SynclinkArgumentError, SynclinkParseError


class EntryKind(Enum):
    """
    Enum for the kinds of file system object tracked in a snapshot.
    """

    DIRECTORY = "d"
    FILE = "f"
    SYMLINK = "s"

    def __str__(self):
        return self.name.lower()

    @classmethod
    def from_tag(cls, tag: str) -> "EntryKind":
        """
        Return the ``EntryKind`` for the one character tag ``tag``.

        :param tag: A kind tag: "d", "f" or "s".
        :type tag: ``str``
        :returns: The corresponding ``EntryKind``.
        :rtype: ``EntryKind``
        :raises SynclinkParseError: If ``tag`` is not a valid kind tag.
        """
        try:
            return cls(tag)
        except ValueError as err:
            raise SynclinkParseError(f"Invalid object kind tag: {tag!r}") from err


class PathRecord:
    """
    A single snapshot entry: a path relative to the snapshot root and the
    kind of object found there when the snapshot was taken.

    Directory paths always end with ``os.sep`` so that a directory sorts
    immediately before its own children.
    """

    __slots__ = ("path", "kind", "key")

    def __init__(self, path: str, kind: EntryKind):
        """
        Initialise a new ``PathRecord``.

        :param path: The path relative to the snapshot root, with no
                     leading separator.
        :type path: ``str``
        :param kind: The object kind recorded for ``path``.
        :type kind: ``EntryKind``
        """
        if not isinstance(kind, EntryKind):
            raise SynclinkArgumentError(f"Invalid PathRecord kind: {kind!r}")
        if not path or path.startswith(os.sep):
            raise SynclinkArgumentError(f"Invalid PathRecord path: {path!r}")
        if kind is EntryKind.DIRECTORY and not path.endswith(os.sep):
            path += os.sep
        #: Relative path (directories carry a trailing separator)
        self.path: str = path
        #: Object kind at snapshot time
        self.kind: EntryKind = kind
        #: Byte string sort key for ``path``
        self.key: bytes = os.fsencode(path)

    @property
    def is_dir(self) -> bool:
        """
        True if this ``PathRecord`` is a directory.
        """
        return self.kind is EntryKind.DIRECTORY

    @property
    def name(self) -> str:
        """
        The path with any trailing directory separator removed, suitable
        for passing to system calls.
        """
        return self.path.rstrip(os.sep) if self.is_dir else self.path

    def __eq__(self, other):
        if not isinstance(other, PathRecord):
            return NotImplemented
        return self.path == other.path and self.kind == other.kind

    def __hash__(self):
        return hash((self.path, self.kind))

    def __repr__(self):
        return f"PathRecord({self.path!r}, {self.kind})"

    def __str__(self):
        return f"{self.path} {self.kind.value}"


class Snapshot:
    """
    An append-only, growable sequence of ``PathRecord`` objects describing
    every supported object found beneath ``root``.
    """

    def __init__(self, root: str, records: Optional[Iterable[PathRecord]] = None):
        """
        Initialise a new ``Snapshot``.

        :param root: The absolute directory this snapshot describes.
        :type root: ``str``
        :param records: Optional initial records.
        :type records: ``Optional[Iterable[PathRecord]]``
        """
        self.root: str = root
        self._records: List[PathRecord] = list(records) if records else []

    def __len__(self):
        return len(self._records)

    def __iter__(self) -> Iterator[PathRecord]:
        return iter(self._records)

    def __getitem__(self, index):
        return self._records[index]

    def __repr__(self):
        return f"Snapshot({self.root!r}, {len(self._records)} records)"

    def append(self, record: PathRecord):
        """
        Append ``record`` to this snapshot.

        :param record: The record to add.
        :type record: ``PathRecord``
        """
        self._records.append(record)

    def add(self, path: str, kind: EntryKind) -> PathRecord:
        """
        Create a new ``PathRecord`` for ``path`` and append it.

        :param path: The relative path to record.
        :type path: ``str``
        :param kind: The kind of object at ``path``.
        :type kind: ``EntryKind``
        :returns: The new record.
        :rtype: ``PathRecord``
        """
        record = PathRecord(path, kind)
        self._records.append(record)
        return record

    def replace_records(self, records: List[PathRecord]):
        """
        Replace the record sequence wholesale (used by the sorter).

        :param records: The new record list, which must contain the same
                        number of records.
        :type records: ``List[PathRecord]``
        """
        if len(records) != len(self._records):
            raise SynclinkArgumentError(
                f"Record count mismatch: {len(records)} != {len(self._records)}"
            )
        self._records = records

    def full_path(self, record: PathRecord) -> str:
        """
        Return the absolute path of ``record`` beneath this snapshot's root.

        :param record: A record belonging to this snapshot.
        :type record: ``PathRecord``
        :returns: The root joined with the record path, without any
                  trailing separator.
        :rtype: ``str``
        """
        return os.path.join(self.root, record.name)

    @property
    def paths(self) -> List[str]:
        """
        The relative paths of all records, in current order.
        """
        return [record.path for record in self._records]


__all__ = [
    "EntryKind",
    "PathRecord",
    "Snapshot",
]
