# Copyright Red Hat
#
# tests/linksync/_util.py - Tree synchroniser test utilities.
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
import stat
import os

from synclink.linksync.records import EntryKind, PathRecord, Snapshot


def make_tree(root, entries):
    """
    Populate ``root`` from a dictionary of relative paths.

    Keys ending in "/" create directories. Values beginning with "->"
    create symbolic links to the remainder of the value, and any other
    value is written as the content of a regular file. Missing parent
    directories are created as needed.
    """
    for path in sorted(entries):
        value = entries[path]
        full = os.path.join(root, path)
        if path.endswith("/"):
            os.makedirs(full, exist_ok=True)
            continue
        os.makedirs(os.path.dirname(full), exist_ok=True)
        if value is not None and value.startswith("->"):
            os.symlink(value[2:], full)
        else:
            with open(full, "w", encoding="utf8") as fp:
                fp.write(value or "")


def make_snapshot(root, entries):
    """
    Build a ``Snapshot`` from "path tag" strings, for e.g. "a/b f".
    """
    snapshot = Snapshot(root)
    for entry in entries:
        path, tag = entry.rsplit(" ", 1)
        snapshot.append(PathRecord(path, EntryKind.from_tag(tag)))
    return snapshot


def tree_state(root):
    """
    Return a dictionary mapping each relative path beneath ``root`` to a
    ``(kind, inode)`` tuple. Directories are keyed with a trailing "/".
    """
    state = {}
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = os.path.relpath(dirpath, root)
        for name in dirnames + filenames:
            rel = name if rel_dir == "." else os.path.join(rel_dir, name)
            full = os.path.join(dirpath, name)
            st = os.lstat(full)
            if stat.S_ISDIR(st.st_mode):
                state[rel + "/"] = ("d", None)
            elif stat.S_ISLNK(st.st_mode):
                state[rel] = ("s", st.st_ino)
            elif stat.S_ISREG(st.st_mode):
                state[rel] = ("f", st.st_ino)
            else:
                state[rel] = ("o", st.st_ino)
    return state
