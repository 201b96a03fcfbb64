from __future__ import annotations

import os
import stat
from typing import List

from .archive import ArchiveEntry


def _entry(arc: str, full: str, st: os.stat_result) -> ArchiveEntry:
    is_dir = stat.S_ISDIR(st.st_mode)
    return ArchiveEntry(
        path=arc,
        is_dir=is_dir,
        mode=st.st_mode & 0o7777,
        size=0 if is_dir else st.st_size,
        source=None if is_dir else full,
        mtime=st.st_mtime,
    )


def walk_entries(root: str) -> List[ArchiveEntry]:
    """Flatten ``root`` into archive entries named relative to its parent.

    The root itself comes first (named by its basename); directories are
    walked depth-first in name order, so every directory precedes its
    contents. Symlinks and special files are skipped.
    """
    full_root = os.path.abspath(root)
    base = os.path.basename(full_root.rstrip(os.sep)) or full_root.strip(os.sep)
    st = os.lstat(full_root)
    if stat.S_ISREG(st.st_mode):
        return [_entry(base, full_root, st)]
    if not stat.S_ISDIR(st.st_mode):
        return []

    entries: List[ArchiveEntry] = []
    for dirpath, dirnames, filenames in os.walk(full_root):
        rel_dir = os.path.relpath(dirpath, full_root)
        arc_dir = base if rel_dir == "." else os.path.join(base, rel_dir)
        entries.append(_entry(arc_dir.replace(os.sep, "/"), dirpath, os.lstat(dirpath)))
        # prune symlinked directories; os.walk lists them but must not descend
        dirnames[:] = sorted(d for d in dirnames if not os.path.islink(os.path.join(dirpath, d)))
        for fn in sorted(filenames):
            full = os.path.join(dirpath, fn)
            fst = os.lstat(full)
            if not stat.S_ISREG(fst.st_mode):
                continue
            entries.append(_entry(f"{arc_dir}/{fn}".replace(os.sep, "/"), full, fst))
    return entries


def collect_entries(roots: List[str]) -> List[ArchiveEntry]:
    entries: List[ArchiveEntry] = []
    for root in roots:
        entries.extend(walk_entries(root))
    return entries
