"""Change-set detection: snapshot a directory by content hash and diff it.

Pure apart from filesystem reads. Callers on the event loop run these
through ``asyncio.to_thread``.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from ..types import FileWritten

logger = logging.getLogger(__name__)

ContentSnapshot = dict[str, str]  # relative path (forward slashes) -> sha256 hex


def read_text_file(path: str | Path) -> str | None:
    """Return UTF-8 text, or None for missing, binary (NUL byte) or undecodable files."""
    try:
        raw = Path(path).read_bytes()
    except OSError:
        return None
    if b"\x00" in raw:
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _walk(root: Path) -> list[Path]:
    """All regular files under root, in lexicographic order."""
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.is_file():
                found.append(path)
    return found


def _scan(root: str | Path) -> list[tuple[str, str, str]]:
    """(relative path, sha256, text) for every text file under root."""
    base = Path(root)
    if not base.is_dir():
        return []
    entries: list[tuple[str, str, str]] = []
    for path in _walk(base):
        try:
            raw = path.read_bytes()
        except OSError as e:
            logger.debug("Skipping unreadable %s: %s", path, e)
            continue
        if b"\x00" in raw:
            continue
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            continue
        rel = path.relative_to(base).as_posix()
        entries.append((rel, hashlib.sha256(raw).hexdigest(), text))
    entries.sort(key=lambda e: e[0])
    return entries


def snapshot(root: str | Path) -> ContentSnapshot:
    return {rel: digest for rel, digest, _ in _scan(root)}


def diff(
    baseline: ContentSnapshot,
    root: str | Path,
) -> tuple[list[FileWritten], ContentSnapshot]:
    """Files under root that are new or whose hash changed since baseline.

    Returns (changes, new_snapshot). Deleted files are not reported.
    """
    changes: list[FileWritten] = []
    current: ContentSnapshot = {}
    for rel, digest, text in _scan(root):
        current[rel] = digest
        if baseline.get(rel) != digest:
            changes.append(FileWritten(path=rel, content=text))
    return changes, current
