"""Vault-wide maintenance: archive checked entries in every existing note."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from .atomic_write import write_text
from .import_log import ImportLogger
from .ingest import UnreadableEncodingError, read_text_lossy
from .models import check_cancelled
from .preferences import Preferences
from .self_heal import iter_markdown_files
from .synchronizer import archive_mastered

logger = logging.getLogger(__name__)


@dataclass
class MaintenanceSummary:
    scanned_files: int = 0
    changed_paths: List[Path] = field(default_factory=list)
    moved_sentences: int = 0
    moved_vocab: int = 0
    failed_paths: List[Tuple[Path, str]] = field(default_factory=list)
    preview_only: bool = False

    def render(self) -> str:
        verb = "Would update" if self.preview_only else "Updated"
        lines = [
            f"Scanned notes: {self.scanned_files}",
            f"{verb} notes: {len(self.changed_paths)}",
            f"Archived mastered: {self.moved_sentences} sentence(s), {self.moved_vocab} vocab",
        ]
        for path, reason in self.failed_paths:
            lines.append(f"Failed: {path}: {reason}")
        return "\n".join(lines)


def scan_and_archive(
    vault_path: str | Path,
    preferences: Optional[Preferences] = None,
    preview_only: bool = False,
    *,
    cancel=None,
    now: Optional[datetime] = None,
) -> MaintenanceSummary:
    prefs = preferences or Preferences()
    root = prefs.output_root_path(vault_path)
    summary = MaintenanceSummary(preview_only=preview_only)
    if not root.is_dir():
        return summary

    for path in iter_markdown_files(root):
        check_cancelled(cancel)
        summary.scanned_files += 1
        try:
            text = read_text_lossy(path)
            if text is None:
                raise UnreadableEncodingError(path)
            result = archive_mastered(text, prefs)
            if result.updated_document == text:
                continue
            if not preview_only:
                write_text(result.updated_document, path)
        except (OSError, UnreadableEncodingError) as e:
            logger.error("Maintenance failed for %s: %s", path, e)
            summary.failed_paths.append((path, str(e)))
            continue
        summary.changed_paths.append(path)
        summary.moved_sentences += len(result.moved_mastered_sentence_ids)
        summary.moved_vocab += len(result.moved_mastered_vocab_ids)

    if not preview_only and (summary.changed_paths or summary.failed_paths):
        lines = [f"archived in {p}" for p in summary.changed_paths]
        lines += [f"failed: {p}: {reason}" for p, reason in summary.failed_paths]
        ImportLogger(vault_path).append_session("Archive mastered", lines, now)
    return summary
