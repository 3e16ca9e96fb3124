"""Rebuild dedup state from the documents already in the vault.

The persisted index can be lost (new machine, deleted hidden folder) or
fall behind (notes synced in from elsewhere). Document IDs are the ground
truth, so when the index is missing, or a sample of documents shows IDs it
does not know, every document under the output root is scanned.

Nothing is written here; the caller gets the observed IDs back and decides
when to persist them.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .document import extract_ids
from .imported_index import IndexSets

logger = logging.getLogger(__name__)

SAMPLE_LIMIT = 30


class HealReason(str, Enum):
    MISSING_INDEX = "missing_index"
    INCOMPLETE_INDEX = "incomplete_index"


@dataclass
class SelfHealResult:
    observed: IndexSets = field(default_factory=IndexSets)
    reason: Optional[HealReason] = None
    scanned_files: int = 0
    unreadable: List[Path] = field(default_factory=list)


def iter_markdown_files(root: str | Path) -> Iterator[Path]:
    """All `*.md` files under root, newest date folders first, hidden entries skipped."""
    root = Path(root)
    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if not d.startswith(".")]
        for name in filenames:
            if name.startswith(".") or not name.endswith(".md"):
                continue
            found.append(Path(dirpath) / name)
    # Date-named paths sort chronologically; recent notes are the likeliest to be unknown.
    yield from sorted(found, reverse=True)


def scan_ids(paths) -> Tuple[IndexSets, List[Path]]:
    observed = IndexSets()
    unreadable: List[Path] = []
    for path in paths:
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("Skipping unreadable note %s: %s", path, e)
            unreadable.append(path)
            continue
        sentences, vocab = extract_ids(text)
        observed.union(sentences, vocab)
    return observed, unreadable


def self_heal(
    output_root: str | Path,
    index: IndexSets,
    primary_present: bool,
    sample_limit: int = SAMPLE_LIMIT,
) -> SelfHealResult:
    root = Path(output_root)
    if not root.is_dir():
        return SelfHealResult()

    files = list(iter_markdown_files(root))
    reason: Optional[HealReason] = None
    if not primary_present:
        reason = HealReason.MISSING_INDEX
    else:
        sample, _ = scan_ids(files[:sample_limit])
        if (sample.sentences - index.sentences) or (sample.vocab - index.vocab):
            reason = HealReason.INCOMPLETE_INDEX

    if reason is None:
        return SelfHealResult(scanned_files=min(len(files), sample_limit))

    observed, unreadable = scan_ids(files)
    logger.info(
        "Self-heal (%s): scanned %d notes, found %d sentence and %d vocab IDs",
        reason.value, len(files), len(observed.sentences), len(observed.vocab),
    )
    return SelfHealResult(observed, reason, len(files), unreadable)
