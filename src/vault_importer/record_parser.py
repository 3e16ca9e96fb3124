"""Turn CSV rows into typed records.

Row problems (empty word/sentence, unparseable date) become ParseFailure
entries and never abort the batch. Rows are also de-duplicated here:
- within the file (first occurrence wins) -> skipped_batch_duplicates
- against the loaded dedup index          -> skipped_index_duplicates
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from .column_mapping import ColumnMappingStore, NeedsColumnMapping, PendingColumnMapping
from .dates import format_ymd, parse_sentence_date, parse_vocabulary_date
from .ingest import Delimiter, load_preview, load_table
from .models import ParseFailure, SentenceRecord, VocabularyRecord, check_cancelled
from .normalize import is_blank
from .schema import RecordKind, auto_map, header_signature, schema_for


@dataclass
class ResolvedImportConfig:
    delimiter: Delimiter
    header_signature: str
    field_to_index: Dict[str, int]


@dataclass
class SentenceParseResult:
    records: List[SentenceRecord] = field(default_factory=list)
    failures: List[ParseFailure] = field(default_factory=list)
    skipped_index_duplicates: int = 0
    skipped_batch_duplicates: int = 0
    year_counts: Counter = field(default_factory=Counter)


@dataclass
class VocabParseResult:
    records: List[VocabularyRecord] = field(default_factory=list)
    failures: List[ParseFailure] = field(default_factory=list)
    skipped_index_duplicates: int = 0
    skipped_batch_duplicates: int = 0


def resolve_import_config(
    path: str | Path,
    kind: RecordKind,
    mapping_store: Optional[ColumnMappingStore] = None,
) -> ResolvedImportConfig:
    """Decide which column holds which field.

    Priority: a stored, user-confirmed mapping that still covers the required
    fields; then alias matching; otherwise NeedsColumnMapping is raised.
    """
    path = Path(path)
    preview = load_preview(path)
    signature = header_signature(preview.header)
    schema = schema_for(kind)

    if mapping_store is not None:
        stored = mapping_store.load(kind, signature)
        if stored is not None:
            cleaned = {
                name: idx
                for name, idx in stored.field_to_index.items()
                if 0 <= idx < len(preview.header)
            }
            if all(name in cleaned for name in schema.required_names):
                return ResolvedImportConfig(preview.delimiter, signature, cleaned)

    auto = auto_map(schema, preview.header)
    if auto.complete:
        return ResolvedImportConfig(preview.delimiter, signature, auto.field_to_index)

    raise NeedsColumnMapping(
        PendingColumnMapping(
            file_path=path,
            kind=kind,
            delimiter=preview.delimiter,
            header=list(preview.header),
            header_signature=signature,
            suggested_field_to_index=dict(auto.field_to_index),
            missing_required=list(auto.missing_required),
            sample_rows=[list(r) for r in preview.sample_rows],
        )
    )


def _cell(row: List[str], idx: Optional[int]) -> str:
    if idx is None or idx >= len(row):
        return ""
    return row[idx].strip()


def parse_sentence_csv(
    path: str | Path,
    config: ResolvedImportConfig,
    existing_ids: Set[str],
    progress: Optional[Callable[[float], None]] = None,
    cancel=None,
) -> SentenceParseResult:
    path = Path(path)
    table = load_table(path, delimiter=config.delimiter, progress=progress, cancel=cancel)
    sentence_idx = config.field_to_index["sentence"]
    date_idx = config.field_to_index["date"]
    translation_idx = config.field_to_index.get("translation")
    url_idx = config.field_to_index.get("url")

    result = SentenceParseResult()
    seen: Set[str] = set()

    for i, row in enumerate(table.rows):
        check_cancelled(cancel)
        line_no = table.first_data_row_number + i
        if all(is_blank(c) for c in row):
            continue

        sentence = _cell(row, sentence_idx)
        if not sentence:
            result.failures.append(ParseFailure(path.name, line_no, "empty sentence"))
            continue

        raw_date = _cell(row, date_idx)
        ymd = parse_sentence_date(raw_date)
        if ymd is None:
            result.failures.append(ParseFailure(path.name, line_no, f"unparseable date: {raw_date}"))
            continue
        result.year_counts[ymd[0]] += 1

        record = SentenceRecord(
            sentence=sentence,
            translation=_cell(row, translation_idx),
            url=_cell(row, url_idx) or None,
            date=format_ymd(ymd),
        )
        rid = record.id
        if rid in seen:
            result.skipped_batch_duplicates += 1
            continue
        seen.add(rid)
        if rid in existing_ids:
            result.skipped_index_duplicates += 1
            continue
        result.records.append(record)

    return result


def parse_vocab_csv(
    path: str | Path,
    config: ResolvedImportConfig,
    fallback_year: int,
    existing_ids: Set[str],
    progress: Optional[Callable[[float], None]] = None,
    cancel=None,
) -> VocabParseResult:
    path = Path(path)
    table = load_table(path, delimiter=config.delimiter, progress=progress, cancel=cancel)
    word_idx = config.field_to_index["word"]
    date_idx = config.field_to_index["date"]
    phonetic_idx = config.field_to_index.get("phonetic")
    translation_idx = config.field_to_index.get("translation")

    result = VocabParseResult()
    seen: Set[str] = set()

    for i, row in enumerate(table.rows):
        check_cancelled(cancel)
        line_no = table.first_data_row_number + i
        if all(is_blank(c) for c in row):
            continue

        word = _cell(row, word_idx)
        if not word:
            result.failures.append(ParseFailure(path.name, line_no, "empty word"))
            continue

        raw_date = _cell(row, date_idx)
        ymd = parse_vocabulary_date(raw_date, fallback_year)
        if ymd is None:
            result.failures.append(ParseFailure(path.name, line_no, f"unparseable date: {raw_date}"))
            continue

        record = VocabularyRecord(
            word=word,
            phonetic=_cell(row, phonetic_idx) or None,
            translation=_cell(row, translation_idx),
            date=format_ymd(ymd),
        )
        rid = record.id
        if rid in seen:
            result.skipped_batch_duplicates += 1
            continue
        seen.add(rid)
        if rid in existing_ids:
            result.skipped_index_duplicates += 1
            continue
        result.records.append(record)

    return result
