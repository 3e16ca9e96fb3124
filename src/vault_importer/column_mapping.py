"""User-confirmed column mappings for CSV headers the aliases cannot resolve.

A mapping is keyed by record kind plus the header signature, so the same
export layout only has to be mapped once.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .atomic_write import quarantine, write_text
from .ingest import Delimiter
from .schema import RecordKind

logger = logging.getLogger(__name__)


@dataclass
class ColumnMapping:
    kind: RecordKind
    header_signature: str
    field_to_index: Dict[str, int]

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "header_signature": self.header_signature,
            "field_to_index": dict(sorted(self.field_to_index.items())),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ColumnMapping":
        return cls(
            kind=RecordKind(data["kind"]),
            header_signature=str(data["header_signature"]),
            field_to_index={str(k): int(v) for k, v in data.get("field_to_index", {}).items()},
        )


@dataclass
class PendingColumnMapping:
    """Everything a caller needs to ask a human for a column mapping."""
    file_path: Path
    kind: RecordKind
    delimiter: Delimiter
    header: List[str]
    header_signature: str
    suggested_field_to_index: Dict[str, int] = field(default_factory=dict)
    missing_required: List[str] = field(default_factory=list)
    sample_rows: List[List[str]] = field(default_factory=list)


class NeedsColumnMapping(Exception):
    def __init__(self, pending: PendingColumnMapping) -> None:
        self.pending = pending
        missing = ", ".join(pending.missing_required)
        super().__init__(
            f"{pending.file_path.name}: cannot identify required {pending.kind.value} "
            f"column(s): {missing}"
        )


class ColumnMappingStore:
    """JSON file of confirmed mappings keyed by "<kind>.<signature>"."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @staticmethod
    def _key(kind: RecordKind, signature: str) -> str:
        return f"{kind.value}.{signature}"

    def _read_all(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            quarantine(self.path)
            return {}
        if not isinstance(data, dict):
            quarantine(self.path)
            return {}
        return data

    def load(self, kind: RecordKind, signature: str) -> Optional[ColumnMapping]:
        raw = self._read_all().get(self._key(kind, signature))
        if raw is None:
            return None
        try:
            return ColumnMapping.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed column mapping %s: %s", self._key(kind, signature), e)
            return None

    def save(self, mapping: ColumnMapping) -> None:
        data = self._read_all()
        data[self._key(mapping.kind, mapping.header_signature)] = mapping.to_dict()
        write_text(json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True) + "\n", self.path)
