"""Atomic file writes.

Vault folders are usually synced (Obsidian Sync, iCloud, Dropbox, git). A
reader must never observe a half-written file, so every write goes to a
uniquely named hidden sibling first and is then moved over the target with
os.replace.
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def write_bytes(data: bytes, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp-{uuid.uuid4().hex}")
    try:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def write_text(text: str, path: str | Path) -> None:
    write_bytes(text.encode("utf-8"), path)


def append_text_atomically(text: str, path: str | Path) -> None:
    """Append by rewriting the whole file: read existing, concatenate, replace."""
    path = Path(path)
    existing = path.read_bytes() if path.exists() else b""
    write_bytes(existing + text.encode("utf-8"), path)


def quarantine(path: str | Path, now: Optional[datetime] = None) -> Optional[Path]:
    """Rename an unreadable file to `<name>.corrupt-<yyyyMMdd-HHmmss>-<uuid>.bak`.

    Returns the backup path, or None if the rename itself failed.
    """
    path = Path(path)
    ts = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    backup = path.with_name(f"{path.name}.corrupt-{ts}-{uuid.uuid4()}.bak")
    try:
        os.replace(path, backup)
    except OSError as e:
        logger.warning("Could not quarantine %s: %s", path, e)
        return None
    logger.warning("Quarantined corrupt file %s -> %s", path, backup.name)
    return backup
