# Copyright Red Hat
#
# synclink/linksync/dump.py - Hard link tree synchroniser snapshot dumps
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Snapshot dump work files.

When requested, each intermediate snapshot of a run (source and
destination in walk order and sorted order, and the deletion candidates
before and after sorting) is written to a work file for later inspection.
Each file holds one JSON header line followed by one JSON object per
record, so that no file name can be confused with record structure.
"""
from typing import Dict, IO, Iterator, Optional
from stat import S_ISDIR, S_ISLNK
import tempfile
import logging
import json
import lzma
import io
import os

try:
    import zstandard as zstd

    _HAVE_ZSTD = True
except ModuleNotFoundError:
    _HAVE_ZSTD = False

from synclink import (
    SYNCLINK_SUBSYSTEM_COMMAND,
    SynclinkArgumentError,
    SynclinkParseError,
    SynclinkPathError,
)

from .options import SyncOptions
from .records import EntryKind, PathRecord, Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SYNCLINK_SUBSYSTEM_COMMAND}, **kwargs)


#: Work directory file mode
_WORKDIR_MODE: int = 0o700

#: Number of work files written per run
NR_DUMP_FILES: int = 6

#: Work file indexes
DUMP_SOURCE = 0
DUMP_SOURCE_SORTED = 1
DUMP_DEST = 2
DUMP_DEST_SORTED = 3
DUMP_DELETIONS = 4
DUMP_DELETIONS_SORTED = 5

#: Compression types
_COMPRESSION_EXTENSIONS: Dict[Optional[str], str] = {
    None: "",
    "lzma": ".xz",
    "zstd": ".zst",
}

#: Dump format version
_DUMP_VERSION = 1


def _check_workdir(dirpath: str) -> str:
    """
    Check for the presence of a dump work directory and create it if
    necessary.

    :param dirpath: Path to the directory.
    :type dirpath: ``str``
    :returns: The directory path.
    :rtype: ``str``
    :raises SynclinkPathError: If ``dirpath`` is not a usable directory.
    """
    if os.path.lexists(dirpath):
        try:
            st = os.lstat(dirpath)
        except OSError as err:
            raise SynclinkPathError(f"Failed to stat work dir {dirpath}: {err}") from err
        if S_ISLNK(st.st_mode):
            raise SynclinkPathError(f"Work dir {dirpath} is a symlink (not secure)")
        if not S_ISDIR(st.st_mode):
            raise SynclinkPathError(f"Work dir {dirpath} exists but is not a directory")
        return dirpath

    try:
        os.makedirs(dirpath, mode=_WORKDIR_MODE, exist_ok=True)
    except OSError as err:
        raise SynclinkPathError(f"Failed to create work dir {dirpath}: {err}") from err
    return dirpath


def _user_name() -> str:
    return os.environ.get("USER") or str(os.getuid())


def dump_file_name(workdir: str, program: str, index: int, compression=None) -> str:
    """
    Return the path of work file ``index`` for ``program``.

    :param workdir: The work directory.
    :type workdir: ``str``
    :param program: The program name.
    :type program: ``str``
    :param index: The work file number.
    :type index: ``int``
    :param compression: The compression type in use.
    :type compression: ``Optional[str]``
    :returns: The work file path.
    :rtype: ``str``
    """
    if compression not in _COMPRESSION_EXTENSIONS:
        raise SynclinkArgumentError(f"Unknown compression type: {compression}")
    name = f"{_user_name()}{program}{index}{_COMPRESSION_EXTENSIONS[compression]}"
    return os.path.join(workdir, name)


def _open_dump(path: str, mode: str, compression: Optional[str]) -> IO[str]:
    if compression == "zstd":
        if not _HAVE_ZSTD:
            raise SynclinkArgumentError("zstd compression support not available")
        # pylint: disable=consider-using-with
        fp = open(path, mode=mode.replace("t", "b"))
        if "w" in mode:
            stream = zstd.ZstdCompressor().stream_writer(fp, closefd=True)
        else:
            stream = zstd.ZstdDecompressor().stream_reader(fp, closefd=True)
        return io.TextIOWrapper(stream, encoding="utf8")
    if compression == "lzma":
        return lzma.open(path, mode=mode, encoding="utf8")
    return open(path, mode=mode, encoding="utf8")


def write_snapshot_dump(
    snapshot: Snapshot, path: str, compression: Optional[str] = None
) -> str:
    """
    Write ``snapshot`` to the work file at ``path``.

    :param snapshot: The snapshot to write.
    :type snapshot: ``Snapshot``
    :param path: The file to write.
    :type path: ``str``
    :param compression: Optional compression type: "lzma" or "zstd".
    :type compression: ``Optional[str]``
    :returns: ``path``
    :rtype: ``str``
    """
    header = {"version": _DUMP_VERSION, "root": snapshot.root, "count": len(snapshot)}
    with _open_dump(path, "wt", compression) as fp:
        fp.write(json.dumps(header) + "\n")
        for record in snapshot:
            fp.write(json.dumps({"kind": record.kind.value, "path": record.path}))
            fp.write("\n")
    _log_debug_command("Wrote %d records to %s", len(snapshot), path)
    return path


def _compression_from_name(path: str) -> Optional[str]:
    for compression, ext in _COMPRESSION_EXTENSIONS.items():
        if ext and path.endswith(ext):
            return compression
    return None


def _parse_lines(fp: IO[str], path: str) -> Iterator[dict]:
    for lineno, line in enumerate(fp, start=1):
        try:
            value = json.loads(line)
        except ValueError as err:
            raise SynclinkParseError(f"{path}:{lineno}: corrupt record: {err}") from err
        if not isinstance(value, dict):
            raise SynclinkParseError(f"{path}:{lineno}: corrupt record: {line!r}")
        yield value


def read_snapshot_dump(path: str) -> Snapshot:
    """
    Load a snapshot previously written by ``write_snapshot_dump()``.

    The compression type is inferred from the file name extension.

    :param path: The work file to read.
    :type path: ``str``
    :returns: The snapshot recorded in ``path``.
    :rtype: ``Snapshot``
    :raises SynclinkParseError: If the file does not contain a valid
                                snapshot dump.
    """
    with _open_dump(path, "rt", _compression_from_name(path)) as fp:
        lines = _parse_lines(fp, path)
        header = next(lines, None)
        if header is None or header.get("version") != _DUMP_VERSION:
            raise SynclinkParseError(f"{path}: missing or invalid dump header")
        snapshot = Snapshot(header.get("root", ""))
        for value in lines:
            try:
                kind = EntryKind.from_tag(value["kind"])
                snapshot.append(PathRecord(value["path"], kind))
            except (
                AttributeError,
                KeyError,
                TypeError,
                SynclinkArgumentError,
            ) as err:
                raise SynclinkParseError(
                    f"{path}: cannot parse record {value!r}"
                ) from err
    if len(snapshot) != header.get("count"):
        raise SynclinkParseError(
            f"{path}: truncated dump ({len(snapshot)} of {header.get('count')} records)"
        )
    return snapshot


class SnapshotDumper:
    """
    Write the intermediate snapshots of one run to numbered work files.
    """

    def __init__(self, options: SyncOptions, program: str = "synclink"):
        """
        Initialise a new ``SnapshotDumper``.

        Nothing is written unless ``options.keep_snapshots`` is set.

        :param options: The options for this run.
        :type options: ``SyncOptions``
        :param program: The program name used in work file names.
        :type program: ``str``
        """
        self.enabled: bool = options.keep_snapshots
        self.compression: Optional[str] = options.compression
        self.program: str = os.path.basename(program)
        self._workdir: Optional[str] = options.workdir
        self.paths: Dict[int, str] = {}

        if self.compression == "zstd" and not _HAVE_ZSTD:
            raise SynclinkArgumentError("zstd compression support not available")

    @property
    def workdir(self) -> str:
        """
        The work directory, created on first use.
        """
        if self._workdir is None:
            self._workdir = tempfile.mkdtemp(prefix="synclink-")
        else:
            _check_workdir(self._workdir)
        return self._workdir

    def dump(self, index: int, snapshot: Snapshot) -> Optional[str]:
        """
        Write ``snapshot`` as work file ``index`` if dumps are enabled.

        :param index: The work file number (``DUMP_*``).
        :type index: ``int``
        :param snapshot: The snapshot to write.
        :type snapshot: ``Snapshot``
        :returns: The path written, or ``None`` if dumps are disabled.
        :rtype: ``Optional[str]``
        """
        if not self.enabled:
            return None
        if not 0 <= index < NR_DUMP_FILES:
            raise SynclinkArgumentError(f"Invalid dump file index: {index}")
        path = dump_file_name(self.workdir, self.program, index, self.compression)
        self.paths[index] = write_snapshot_dump(snapshot, path, self.compression)
        return path


__all__ = [
    "DUMP_DELETIONS",
    "DUMP_DELETIONS_SORTED",
    "DUMP_DEST",
    "DUMP_DEST_SORTED",
    "DUMP_SOURCE",
    "DUMP_SOURCE_SORTED",
    "NR_DUMP_FILES",
    "SnapshotDumper",
    "dump_file_name",
    "read_snapshot_dump",
    "write_snapshot_dump",
]
