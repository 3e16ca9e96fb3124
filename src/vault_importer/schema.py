"""Column schemas and alias-based header matching."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Sequence

from .models import sha1_hex
from .normalize import normalize_header


class RecordKind(str, Enum):
    SENTENCE = "sentence"
    VOCABULARY = "vocabulary"


@dataclass(frozen=True)
class ColumnField:
    canonical_name: str
    aliases: Sequence[str]
    required: bool

    @property
    def normalized_aliases(self) -> List[str]:
        return [a for a in (normalize_header(x) for x in self.aliases) if a]


@dataclass(frozen=True)
class ColumnSchema:
    kind: RecordKind
    fields: Sequence[ColumnField]

    @property
    def required_names(self) -> List[str]:
        return [f.canonical_name for f in self.fields if f.required]


_TRANSLATION_ALIASES = ("translation", "cn", "chinese", "meaning", "释义", "翻译", "中文")
_DATE_ALIASES = ("date", "time", "created", "added", "日期")

SENTENCE_SCHEMA = ColumnSchema(
    kind=RecordKind.SENTENCE,
    fields=(
        ColumnField("sentence", ("sentence", "text", "english", "en", "content", "例句"), True),
        ColumnField("translation", _TRANSLATION_ALIASES, False),
        ColumnField("url", ("url", "link", "source", "来源"), False),
        ColumnField("date", _DATE_ALIASES, True),
    ),
)

VOCABULARY_SCHEMA = ColumnSchema(
    kind=RecordKind.VOCABULARY,
    fields=(
        ColumnField("word", ("word", "vocabulary", "vocab", "term", "单词"), True),
        ColumnField("phonetic", ("phonetic", "ipa", "pronunciation", "音标"), False),
        ColumnField("translation", _TRANSLATION_ALIASES, False),
        ColumnField("date", _DATE_ALIASES, True),
    ),
)


def schema_for(kind: RecordKind) -> ColumnSchema:
    return SENTENCE_SCHEMA if kind == RecordKind.SENTENCE else VOCABULARY_SCHEMA


@dataclass
class AutoMapping:
    kind: RecordKind
    field_to_index: Dict[str, int] = field(default_factory=dict)
    missing_required: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing_required


def header_index_map(header: Sequence[str]) -> Dict[str, int]:
    """Map normalized header text to its column index (last one wins)."""
    out: Dict[str, int] = {}
    for idx, raw in enumerate(header):
        key = normalize_header(raw)
        if key:
            out[key] = idx
    return out


def header_signature(header: Sequence[str]) -> str:
    """Stable fingerprint of a header row, used to remember manual mappings."""
    return sha1_hex("|".join(normalize_header(h) for h in header))


def auto_map(schema: ColumnSchema, header: Sequence[str]) -> AutoMapping:
    """Match each schema field to the first alias present in the header."""
    index = header_index_map(header)
    mapped: Dict[str, int] = {}
    for f in schema.fields:
        for alias in f.normalized_aliases:
            if alias in index:
                mapped[f.canonical_name] = index[alias]
                break
    missing = [name for name in schema.required_names if name not in mapped]
    return AutoMapping(kind=schema.kind, field_to_index=mapped, missing_required=missing)


def detect_kind(header: Sequence[str], file_name: str | Path = "") -> RecordKind | None:
    """Guess whether a header belongs to a sentence or a vocabulary export.

    A header that satisfies exactly one schema decides it; if both fit, the
    schema with more matched columns wins. Otherwise the file name is used
    ("sentence" / "vocab"); None when still undecided.
    """
    s = auto_map(SENTENCE_SCHEMA, header)
    v = auto_map(VOCABULARY_SCHEMA, header)
    if s.complete and not v.complete:
        return RecordKind.SENTENCE
    if v.complete and not s.complete:
        return RecordKind.VOCABULARY
    if s.complete and v.complete:
        if len(s.field_to_index) > len(v.field_to_index):
            return RecordKind.SENTENCE
        if len(v.field_to_index) > len(s.field_to_index):
            return RecordKind.VOCABULARY

    name = Path(file_name).name.lower()
    if "sentence" in name:
        return RecordKind.SENTENCE
    if "vocab" in name:
        return RecordKind.VOCABULARY
    return None
