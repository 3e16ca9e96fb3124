"""Plain-text session log kept inside the vault.

Each session is appended as:

    [2026-02-09 21:14:03] Import (merged)
    - 2 sentence(s), 3 vocab appended
    - vocab.csv line 7: empty word
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from .atomic_write import append_text_atomically
from .imported_index import LOG_FILE_NAME, PRIMARY_DIR_NAME


class ImportLogger:
    def __init__(self, vault_path: str | Path) -> None:
        self.path = Path(vault_path) / PRIMARY_DIR_NAME / LOG_FILE_NAME

    def append_session(self, title: str, lines: Iterable[str], now: Optional[datetime] = None) -> Path:
        stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
        body = "".join(f"- {line}\n" for line in lines)
        append_text_atomically(f"\n[{stamp}] {title}\n{body}", self.path)
        return self.path
