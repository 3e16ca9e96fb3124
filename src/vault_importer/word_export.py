"""Export vocabulary words as a plain word list (one word per line).

Words already exported once are remembered in the word-export index so a
flashcard app fed from the list never gets the same word twice. When the
destination is a file, words already present in it are skipped as well.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Set

from .atomic_write import append_text_atomically
from .column_mapping import ColumnMappingStore
from .ingest import load_table
from .models import make_vocab_id
from .normalize import collapse_whitespace
from .record_parser import resolve_import_config
from .imported_index import WordExportIndexStore
from .schema import RecordKind


@dataclass
class WordExportResult:
    words: List[str] = field(default_factory=list)
    ids: List[str] = field(default_factory=list)
    skipped_already_exported: int = 0
    skipped_in_destination: int = 0
    destination: Optional[Path] = None


def _words_in_file(path: Optional[Path]) -> Set[str]:
    if path is None or not path.exists():
        return set()
    return {line.strip().lower() for line in path.read_text(encoding="utf-8").splitlines() if line.strip()}


def collect_new_words(
    vocab_csv: str | Path,
    exported_ids: Set[str],
    destination: Optional[Path] = None,
    mapping_store: Optional[ColumnMappingStore] = None,
) -> WordExportResult:
    vocab_csv = Path(vocab_csv)
    config = resolve_import_config(vocab_csv, RecordKind.VOCABULARY, mapping_store)
    table = load_table(vocab_csv, delimiter=config.delimiter)
    word_idx = config.field_to_index["word"]
    in_destination = _words_in_file(destination)

    result = WordExportResult(destination=destination)
    seen: Set[str] = set()
    for row in table.rows:
        word = collapse_whitespace(row[word_idx]) if word_idx < len(row) else ""
        if not word:
            continue
        wid = make_vocab_id(word)
        if wid in seen:
            continue
        seen.add(wid)
        if wid in exported_ids:
            result.skipped_already_exported += 1
            continue
        if word.lower() in in_destination:
            result.skipped_in_destination += 1
            continue
        result.words.append(word)
        result.ids.append(wid)
    return result


def export_words(
    vault_path: str | Path,
    vocab_csv: str | Path,
    destination: str | Path | None = None,
    *,
    mapping_store: Optional[ColumnMappingStore] = None,
    preview_only: bool = False,
) -> WordExportResult:
    """Collect unexported words and, unless previewing, append them and record them.

    With no destination the caller is expected to print `result.words`; the
    words are still recorded as exported.
    """
    store = WordExportIndexStore(vault_path)
    exported = store.load()
    dest = Path(destination) if destination else None
    result = collect_new_words(vocab_csv, exported, dest, mapping_store)
    if preview_only or not result.words:
        return result

    if dest is not None:
        existing = dest.read_text(encoding="utf-8") if dest.exists() else ""
        prefix = "\n" if existing and not existing.endswith("\n") else ""
        append_text_atomically(prefix + "\n".join(result.words) + "\n", dest)
    store.save(exported | set(result.ids))
    return result
