"""Two-phase import: `prepare_plan` (read-only preview) and `perform_import` (commit).

prepare_plan never writes. The only filesystem mutation it can cause is the
rename of a corrupt index file to its `.corrupt-*.bak` backup. IDs recovered
by the self-heal scan travel in `ImportPlan.observed_existing_ids` and are
persisted by perform_import together with the newly appended ones.

perform_import re-reads every target document instead of reusing the
preview snapshot, so manual edits made between preview and commit survive.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .atomic_write import write_text
from .column_mapping import ColumnMappingStore, NeedsColumnMapping
from .document import extract_ids
from .import_log import ImportLogger
from .imported_index import ImportedIndexStore, IndexSets
from .ingest import IngestError, UnreadableEncodingError, read_text_lossy
from .models import (
    ImportMode,
    ParseFailure,
    SentenceRecord,
    VocabularyRecord,
    YearCompletionStrategy,
    check_cancelled,
)
from .preferences import Preferences
from .record_parser import parse_sentence_csv, parse_vocab_csv, resolve_import_config
from .schema import RecordKind
from .self_heal import HealReason, self_heal
from .synchronizer import UpdateResult, update

logger = logging.getLogger(__name__)

LARGE_DAY_THRESHOLD = 600

ProgressFn = Callable[[float, str], None]


class WarningSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return {"error": 0, "warning": 1, "info": 2}[self.value]


@dataclass(frozen=True)
class ImportWarning:
    severity: WarningSeverity
    title: str
    detail: str = ""
    path: Optional[Path] = None

    @property
    def blocking(self) -> bool:
        return self.severity is WarningSeverity.ERROR

    def render(self) -> str:
        text = f"[{self.severity.value}] {self.title}"
        if self.detail:
            text += f": {self.detail}"
        if self.path is not None:
            text += f" ({self.path})"
        return text


@dataclass
class DayPlan:
    date: str
    path: Path
    is_new_file: bool
    sentences: List[SentenceRecord]
    vocab: List[VocabularyRecord]
    preview: UpdateResult

    @property
    def appended_sentences(self) -> int:
        return self.preview.appended_sentences

    @property
    def appended_vocab(self) -> int:
        return self.preview.appended_vocab

    @property
    def moved_mastered(self) -> int:
        return len(self.preview.moved_mastered_sentence_ids) + len(self.preview.moved_mastered_vocab_ids)


@dataclass
class ImportPlan:
    vault_path: Path
    mode: ImportMode
    preferences: Preferences
    sentence_csv: Optional[Path] = None
    vocab_csv: Optional[Path] = None
    fallback_year: int = 0
    days: List[DayPlan] = field(default_factory=list)
    warnings: List[ImportWarning] = field(default_factory=list)
    failures: List[ParseFailure] = field(default_factory=list)
    observed_existing_ids: IndexSets = field(default_factory=IndexSets)
    heal_reason: Optional[HealReason] = None
    skipped_index_duplicates: int = 0
    skipped_batch_duplicates: int = 0

    @property
    def blocking_warnings(self) -> List[ImportWarning]:
        return [w for w in self.warnings if w.blocking]

    @property
    def can_commit(self) -> bool:
        return not self.blocking_warnings

    @property
    def appended_sentences(self) -> int:
        return sum(d.appended_sentences for d in self.days)

    @property
    def appended_vocab(self) -> int:
        return sum(d.appended_vocab for d in self.days)

    @property
    def moved_mastered(self) -> int:
        return sum(d.moved_mastered for d in self.days)


@dataclass
class ImportSummary:
    appended_sentences: int = 0
    appended_vocab: int = 0
    skipped_index_duplicates: int = 0
    skipped_batch_duplicates: int = 0
    failed_rows: int = 0
    moved_mastered_sentences: int = 0
    moved_mastered_vocab: int = 0
    written_paths: List[Path] = field(default_factory=list)
    failed_paths: List[Tuple[Path, str]] = field(default_factory=list)
    log_path: Optional[Path] = None

    def render(self) -> str:
        lines = [
            f"Appended: {self.appended_sentences} sentence(s), {self.appended_vocab} vocab",
            f"Skipped (already imported): {self.skipped_index_duplicates}",
            f"Skipped (duplicate rows): {self.skipped_batch_duplicates}",
            f"Failed rows: {self.failed_rows}",
        ]
        if self.moved_mastered_sentences or self.moved_mastered_vocab:
            lines.append(
                f"Archived mastered: {self.moved_mastered_sentences} sentence(s), "
                f"{self.moved_mastered_vocab} vocab"
            )
        lines.append(f"Notes written: {len(self.written_paths)}")
        for path, reason in self.failed_paths:
            lines.append(f"Write failed: {path}: {reason}")
        return "\n".join(lines)


class BlockingWarningsError(RuntimeError):
    def __init__(self, warnings: List[ImportWarning]) -> None:
        self.warnings = warnings
        super().__init__("; ".join(w.render() for w in warnings) or "plan has blocking warnings")


def resolve_fallback_year(
    strategy: YearCompletionStrategy,
    sentence_year_counts: Optional[Counter],
    system_year: int,
) -> int:
    """Year used for vocabulary dates written without one.

    For MOST_COMMON_SENTENCE_YEAR, ties between equally frequent years go to
    the earliest year.
    """
    if strategy is YearCompletionStrategy.MOST_COMMON_SENTENCE_YEAR and sentence_year_counts:
        return min(sentence_year_counts, key=lambda y: (-sentence_year_counts[y], y))
    return system_year


def dedupe_and_sort_warnings(warnings: List[ImportWarning]) -> List[ImportWarning]:
    seen = set()
    unique: List[ImportWarning] = []
    for w in warnings:
        key = (w.severity, w.title, str(w.path) if w.path is not None else "")
        if key in seen:
            continue
        seen.add(key)
        unique.append(w)
    return sorted(unique, key=lambda w: (w.severity.rank, w.title))


def _nearest_existing(path: Path) -> Path:
    p = path
    while not p.exists() and p != p.parent:
        p = p.parent
    return p


def _preflight_vault(vault: Path, root: Path) -> List[ImportWarning]:
    if not vault.is_dir():
        return [ImportWarning(WarningSeverity.ERROR, "Vault folder not found", path=vault)]
    out: List[ImportWarning] = []
    if not os.access(vault, os.W_OK):
        out.append(ImportWarning(WarningSeverity.ERROR, "Vault folder is not writable", path=vault))
    if root.exists() and not root.is_dir():
        out.append(
            ImportWarning(WarningSeverity.ERROR, "Output folder path is occupied by a file", path=root)
        )
    return out


def _preflight_day(path: Path, result: UpdateResult) -> List[ImportWarning]:
    out: List[ImportWarning] = []
    existing = _nearest_existing(path.parent)
    if not existing.is_dir():
        out.append(
            ImportWarning(WarningSeverity.ERROR, "Note folder path is occupied by a file", path=existing)
        )
    elif not os.access(existing, os.W_OK):
        out.append(ImportWarning(WarningSeverity.ERROR, "Note folder is not writable", path=existing))

    if path.exists():
        if not os.access(path, os.W_OK):
            out.append(ImportWarning(WarningSeverity.ERROR, "Note is read-only", path=path))
        else:
            # Best-effort contention check; opening for append does not modify the file.
            try:
                with open(path, "a", encoding="utf-8"):
                    pass
            except OSError as e:
                out.append(
                    ImportWarning(WarningSeverity.WARNING, "Note may be open in another app", str(e), path)
                )

    sentences, vocab = extract_ids(result.updated_document)
    total = len(sentences) + len(vocab)
    if total >= LARGE_DAY_THRESHOLD:
        out.append(
            ImportWarning(
                WarningSeverity.WARNING,
                "Note is getting large",
                f"{total} entries (threshold {LARGE_DAY_THRESHOLD})",
                path,
            )
        )
    return out


def _scaled(progress: Optional[ProgressFn], start: float, span: float, message: str):
    if progress is None:
        return None
    return lambda fraction: progress(start + span * fraction, message)


def prepare_plan(
    vault_path: str | Path,
    sentence_csv: str | Path | None = None,
    vocab_csv: str | Path | None = None,
    mode: ImportMode = ImportMode.MERGED,
    preferences: Optional[Preferences] = None,
    *,
    mapping_store: Optional[ColumnMappingStore] = None,
    today: Optional[dt.date] = None,
    progress: Optional[ProgressFn] = None,
    cancel=None,
) -> ImportPlan:
    """Parse inputs, filter known records and preview every affected note.

    Raises:
        ValueError: if a CSV required by `mode` is not given
        FileNotFoundError: if a given CSV does not exist
        IngestError / NeedsColumnMapping: if a required CSV cannot be used
    """
    vault = Path(vault_path)
    prefs = preferences or Preferences()
    today = today or dt.date.today()
    sentence_csv = Path(sentence_csv) if sentence_csv else None
    vocab_csv = Path(vocab_csv) if vocab_csv else None

    if mode.wants_sentences and sentence_csv is None:
        raise ValueError(f"Mode '{mode.value}' needs a sentence CSV")
    if mode.wants_vocab and vocab_csv is None:
        raise ValueError(f"Mode '{mode.value}' needs a vocabulary CSV")
    for csv_path in (sentence_csv, vocab_csv):
        if csv_path is not None and not csv_path.exists():
            raise FileNotFoundError(f"CSV file not found: {csv_path}")

    plan = ImportPlan(vault, mode, prefs, sentence_csv, vocab_csv)
    warnings: List[ImportWarning] = []
    root = prefs.output_root_path(vault)

    # Dedup state: persisted index plus whatever the notes themselves carry.
    store = ImportedIndexStore(vault)
    index = store.load()
    for backup in store.quarantined:
        warnings.append(
            ImportWarning(
                WarningSeverity.WARNING,
                "Dedup index was corrupted",
                f"moved aside as {backup.name}; continuing with an empty index",
                backup,
            )
        )
    heal = self_heal(root, index, store.has_primary())
    plan.heal_reason = heal.reason
    plan.observed_existing_ids = heal.observed
    if heal.reason is HealReason.MISSING_INDEX:
        warnings.append(
            ImportWarning(WarningSeverity.INFO, "Dedup index rebuilt from existing notes", "no index file found")
        )
    elif heal.reason is HealReason.INCOMPLETE_INDEX:
        warnings.append(
            ImportWarning(
                WarningSeverity.WARNING,
                "Dedup index rebuilt from existing notes",
                "notes contain IDs the index did not know",
            )
        )
    for path in heal.unreadable:
        warnings.append(ImportWarning(WarningSeverity.WARNING, "Could not read existing note", path=path))
    known = index.merged(heal.observed)

    # Sentences: imported, or only consulted for the vocabulary year.
    sentence_result = None
    wants_year = (
        mode.wants_vocab
        and prefs.year_completion_strategy is YearCompletionStrategy.MOST_COMMON_SENTENCE_YEAR
    )
    if sentence_csv is not None and (mode.wants_sentences or wants_year):
        check_cancelled(cancel)
        step = _scaled(progress, 0.0, 0.3, "Parsing sentences")
        if mode.wants_sentences:
            config = resolve_import_config(sentence_csv, RecordKind.SENTENCE, mapping_store)
            sentence_result = parse_sentence_csv(sentence_csv, config, known.sentences, step, cancel)
        else:
            try:
                config = resolve_import_config(sentence_csv, RecordKind.SENTENCE, mapping_store)
                sentence_result = parse_sentence_csv(sentence_csv, config, known.sentences, step, cancel)
            except (IngestError, NeedsColumnMapping) as e:
                warnings.append(
                    ImportWarning(
                        WarningSeverity.WARNING,
                        "Sentence CSV not usable for year completion",
                        str(e),
                        sentence_csv,
                    )
                )

    plan.fallback_year = resolve_fallback_year(
        prefs.year_completion_strategy,
        sentence_result.year_counts if sentence_result is not None else None,
        today.year,
    )

    by_date: Dict[str, Tuple[List[SentenceRecord], List[VocabularyRecord]]] = defaultdict(lambda: ([], []))
    if sentence_result is not None and mode.wants_sentences:
        plan.failures.extend(sentence_result.failures)
        plan.skipped_index_duplicates += sentence_result.skipped_index_duplicates
        plan.skipped_batch_duplicates += sentence_result.skipped_batch_duplicates
        for record in sentence_result.records:
            by_date[record.date][0].append(record)

    if mode.wants_vocab:
        check_cancelled(cancel)
        step = _scaled(progress, 0.3, 0.3, "Parsing vocabulary")
        config = resolve_import_config(vocab_csv, RecordKind.VOCABULARY, mapping_store)
        vocab_result = parse_vocab_csv(vocab_csv, config, plan.fallback_year, known.vocab, step, cancel)
        plan.failures.extend(vocab_result.failures)
        plan.skipped_index_duplicates += vocab_result.skipped_index_duplicates
        plan.skipped_batch_duplicates += vocab_result.skipped_batch_duplicates
        for record in vocab_result.records:
            by_date[record.date][1].append(record)

    warnings.extend(_preflight_vault(vault, root))

    dates = sorted(by_date)
    for i, date in enumerate(dates):
        check_cancelled(cancel)
        if progress is not None:
            progress(0.6 + 0.4 * i / len(dates), f"Previewing {date}")
        sentences, vocab = by_date[date]
        path = prefs.output_file_path(vault, date)
        existing = None
        if path.exists():
            try:
                existing = read_text_lossy(path)
            except OSError as e:
                plan.failures.append(ParseFailure(path.name, 0, f"cannot read existing note: {e}"))
                continue
            if existing is None:
                plan.failures.append(
                    ParseFailure(path.name, 0, "cannot read existing note: unsupported text encoding")
                )
                continue

        result = update(existing, date, mode, sentences, vocab, prefs)
        if existing is None:
            changed = (result.appended_sentences + result.appended_vocab) > 0
        else:
            changed = result.updated_document != existing
        if not changed:
            continue
        plan.days.append(DayPlan(date, path, existing is None, sentences, vocab, result))
        warnings.extend(_preflight_day(path, result))

    if progress is not None:
        progress(1.0, "Preview ready")
    plan.warnings = dedupe_and_sort_warnings(warnings)
    return plan


def _session_lines(plan: ImportPlan, summary: ImportSummary) -> List[str]:
    lines = [
        f"{summary.appended_sentences} sentence(s), {summary.appended_vocab} vocab appended",
        f"{summary.skipped_index_duplicates} already imported, "
        f"{summary.skipped_batch_duplicates} duplicate row(s)",
    ]
    if plan.heal_reason is not None:
        lines.append(f"dedup index rebuilt ({plan.heal_reason.value})")
    lines.extend(f.log_line for f in plan.failures)
    lines.extend(f"write failed: {path}: {reason}" for path, reason in summary.failed_paths)
    return lines


def perform_import(
    plan: ImportPlan,
    *,
    progress: Optional[ProgressFn] = None,
    cancel=None,
    now: Optional[dt.datetime] = None,
) -> ImportSummary:
    """Commit a plan: write each note atomically, then save the index once.

    A failed note write is recorded and the remaining notes are still
    written. On cancellation the index is saved for the notes already
    written before ImportCancelled propagates.

    Raises:
        BlockingWarningsError: if the plan has error-severity warnings
    """
    if not plan.can_commit:
        raise BlockingWarningsError(plan.blocking_warnings)

    store = ImportedIndexStore(plan.vault_path)
    index = store.load().merged(plan.observed_existing_ids)
    summary = ImportSummary(
        skipped_index_duplicates=plan.skipped_index_duplicates,
        skipped_batch_duplicates=plan.skipped_batch_duplicates,
        failed_rows=len(plan.failures),
    )

    try:
        for i, day in enumerate(plan.days):
            check_cancelled(cancel)
            if progress is not None:
                progress(i / len(plan.days), f"Writing {day.date}")
            try:
                existing = None
                if day.path.exists():
                    existing = read_text_lossy(day.path)
                    if existing is None:
                        raise UnreadableEncodingError(day.path)
                result = update(existing, day.date, plan.mode, day.sentences, day.vocab, plan.preferences)
                if result.updated_document != existing:
                    write_text(result.updated_document, day.path)
            except (OSError, UnreadableEncodingError) as e:
                logger.error("Failed to write %s: %s", day.path, e)
                summary.failed_paths.append((day.path, str(e)))
                continue

            index.union((r.id for r in day.sentences), (r.id for r in day.vocab))
            summary.appended_sentences += result.appended_sentences
            summary.appended_vocab += result.appended_vocab
            summary.moved_mastered_sentences += len(result.moved_mastered_sentence_ids)
            summary.moved_mastered_vocab += len(result.moved_mastered_vocab_ids)
            summary.written_paths.append(day.path)
    finally:
        try:
            store.save(index)
        except OSError as e:
            logger.error("Failed to save dedup index: %s", e)
        summary.log_path = ImportLogger(plan.vault_path).append_session(
            f"Import ({plan.mode.value})", _session_lines(plan, summary), now
        )

    if progress is not None:
        progress(1.0, "Import finished")
    return summary
