"""
Change detection — content and structure checksums for generated files.

Each artifact gets a JSON sidecar next to it::

    modules_generated.py
    modules_generated.checksum   {"content": "<md5>", "structure": "<md5>"}

An artifact is rewritten only when its content hash or the structure
hash of the tracked module roots differs from the sidecar (or there is
no sidecar).  The structure hash covers file names, sizes and mtimes, so
a touched or renamed file invalidates downstream caches even when the
generated text comes out identical.  Directories count only through
their children; a new ``__pycache__`` must not look like a source change.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Derived state that must never invalidate generated output
_IGNORED_NAMES = frozenset({"__pycache__"})


@dataclass(frozen=True)
class ChecksumRecord:
    """Persisted hashes for one artifact."""

    content: str
    structure: str

    def to_dict(self) -> dict:
        return {"content": self.content, "structure": self.structure}


def content_hash(text: str) -> str:
    """Fast digest of the exact artifact text (not a security boundary)."""
    return hashlib.md5(text.encode("utf-8"), usedforsecurity=False).hexdigest()


def read_checksum_record(path: Path) -> ChecksumRecord | None:
    """Load a sidecar.  Missing or malformed sidecars read as None."""
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.debug("Ignoring unreadable checksum file %s: %s", path, e)
        return None
    if (
        isinstance(data, dict)
        and isinstance(data.get("content"), str)
        and isinstance(data.get("structure"), str)
    ):
        return ChecksumRecord(content=data["content"], structure=data["structure"])
    return None


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with open(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def write_checksum_record(path: Path, record: ChecksumRecord) -> None:
    _atomic_write(path, json.dumps(record.to_dict()) + "\n")


# ── Structure hash ──────────────────────────────────────────────


def _collect_entries(target: Path, base: Path, acc: list[str]) -> None:
    """Depth-first, name-sorted walk.  Files record size and mtime; directories
    record only their path, so ignored children never change an entry.
    """
    try:
        with os.scandir(target) as it:
            children = sorted(it, key=lambda e: e.name)
    except OSError as e:
        acc.append(f"error:{os.path.relpath(target, base)}:{e.strerror or e}")
        return

    for entry in children:
        if entry.name in _IGNORED_NAMES:
            continue
        rel = os.path.relpath(entry.path, base)
        try:
            st = entry.stat()
        except FileNotFoundError:
            # Deleted between listing and stat
            continue
        except OSError as e:
            acc.append(f"error:{rel}:{e.strerror or e}")
            continue
        if entry.is_dir():
            acc.append(f"dir:{rel}")
            _collect_entries(Path(entry.path), base, acc)
        elif entry.is_file():
            acc.append(f"file:{rel}:{st.st_size}:{st.st_mtime_ns}")
        else:
            acc.append(f"other:{rel}:{st.st_mtime_ns}")


def structure_entries(roots: Iterable[Path], extra_markers: Iterable[str] = ()) -> list[str]:
    """The raw entries hashed by ``structure_hash`` (useful for debugging)."""
    normalized = sorted({str(Path(p).resolve()) for p in roots})
    entries: list[str] = []
    for target in normalized:
        path = Path(target)
        if not path.exists():
            entries.append(f"missing:{target}")
            continue
        if path.is_dir():
            entries.append(f"dir:{target}")
            _collect_entries(path, path, entries)
        else:
            st = path.stat()
            entries.append(f"file:{target}:{st.st_size}:{st.st_mtime_ns}")
    entries.extend(sorted(extra_markers))
    return entries


def structure_hash(roots: Iterable[Path], extra_markers: Iterable[str] = ()) -> str:
    """Digest the file set under every tracked root.

    Args:
        roots: Tracked module roots (app and package copies).
        extra_markers: Additional entries, e.g. ``error:<path>:<message>``
            markers recorded by a scan.
    """
    return content_hash("\n".join(structure_entries(roots, extra_markers)))


# ── Gate ────────────────────────────────────────────────────────


def write_if_changed(
    file_path: Path,
    content: str,
    checksum_path: Path,
    structure: str = "",
) -> bool:
    """Write an artifact and its sidecar unless both hashes are unchanged.

    Returns:
        True if the artifact was written.
    """
    new_record = ChecksumRecord(content=content_hash(content), structure=structure)
    existing = read_checksum_record(checksum_path)

    if existing == new_record and file_path.is_file():
        logger.debug("unchanged: %s", file_path.name)
        return False

    _atomic_write(file_path, content)
    write_checksum_record(checksum_path, new_record)
    logger.debug("written: %s", file_path.name)
    return True
