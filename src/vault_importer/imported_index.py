"""Persistent dedup index of record IDs already written to the vault.

The index lives inside the vault (hidden folder) so it travels with it across
machines. Two locations are read:
- primary: `.obsidian-vocab-importer/` (read-write)
- legacy:  `.english-importer/` (read-only, migration source)

The loaded index is the union of both; saves only ever touch the primary.
A file that fails to decode is renamed to a timestamped `.corrupt-*.bak`
backup and treated as empty; it is never silently discarded.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Set

from .atomic_write import quarantine, write_text

logger = logging.getLogger(__name__)

PRIMARY_DIR_NAME = ".obsidian-vocab-importer"
LEGACY_DIR_NAME = ".english-importer"
IMPORTED_INDEX_FILE_NAME = "imported_index.json"
WORD_EXPORT_INDEX_FILE_NAME = "momo_exported_vocab.json"
LOG_FILE_NAME = "import_log.txt"
COLUMN_MAPPINGS_FILE_NAME = "column_mappings.json"


class IndexFormatError(ValueError):
    pass


@dataclass
class IndexSets:
    sentences: Set[str] = field(default_factory=set)
    vocab: Set[str] = field(default_factory=set)

    def union(self, sentences: Iterable[str] = (), vocab: Iterable[str] = ()) -> None:
        self.sentences.update(sentences)
        self.vocab.update(vocab)

    def merged(self, other: "IndexSets") -> "IndexSets":
        return IndexSets(self.sentences | other.sentences, self.vocab | other.vocab)

    def __len__(self) -> int:
        return len(self.sentences) + len(self.vocab)


def _string_list(data: dict, key: str) -> List[str]:
    value = data.get(key)
    if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
        raise IndexFormatError(f"'{key}' must be a list of strings")
    return value


class _ResilientJSONStore:
    """Shared load/quarantine/save logic for the primary + legacy JSON stores."""

    file_name = ""

    def __init__(self, vault_path: str | Path) -> None:
        vault = Path(vault_path)
        self.directory = vault / PRIMARY_DIR_NAME
        self.index_path = self.directory / self.file_name
        self.legacy_directory = vault / LEGACY_DIR_NAME
        self.legacy_index_path = self.legacy_directory / self.file_name
        self.quarantined: List[Path] = []

    def has_primary(self) -> bool:
        return self.index_path.exists()

    def has_any_index_file(self) -> bool:
        return self.index_path.exists() or self.legacy_index_path.exists()

    def _read_json(self, path: Path) -> Optional[dict]:
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise IndexFormatError("top-level value must be an object")
            self._validate(data)
            return data
        except (json.JSONDecodeError, UnicodeDecodeError, IndexFormatError) as e:
            logger.warning("Index %s is unreadable (%s); quarantining", path, e)
            backup = quarantine(path)
            if backup is not None:
                self.quarantined.append(backup)
            return None

    def _validate(self, data: dict) -> None:
        raise NotImplementedError

    def _save_json(self, data: dict) -> None:
        write_text(json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True) + "\n", self.index_path)


class ImportedIndexStore(_ResilientJSONStore):
    file_name = IMPORTED_INDEX_FILE_NAME

    def _validate(self, data: dict) -> None:
        _string_list(data, "sentences")
        _string_list(data, "vocab")

    def load(self) -> IndexSets:
        merged = IndexSets()
        for path in (self.index_path, self.legacy_index_path):
            data = self._read_json(path)
            if data is not None:
                merged.union(data["sentences"], data["vocab"])
        return merged

    def save(self, sets: IndexSets) -> None:
        # Sorted for stable diffs when the vault is version-controlled.
        self._save_json({"sentences": sorted(sets.sentences), "vocab": sorted(sets.vocab)})


class WordExportIndexStore(_ResilientJSONStore):
    """IDs of vocabulary words already exported to a word-list file."""

    file_name = WORD_EXPORT_INDEX_FILE_NAME

    def _validate(self, data: dict) -> None:
        _string_list(data, "vocab")

    def load(self) -> Set[str]:
        out: Set[str] = set()
        for path in (self.index_path, self.legacy_index_path):
            data = self._read_json(path)
            if data is not None:
                out.update(data["vocab"])
        return out

    def save(self, ids: Iterable[str]) -> None:
        self._save_json({"vocab": sorted(set(ids))})
