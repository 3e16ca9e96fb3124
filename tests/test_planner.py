"""End-to-end tests for preview and commit."""

import builtins
import datetime as dt
import json
import os
import threading
from collections import Counter
from pathlib import Path

import pytest

import vault_importer.planner as planner_module
from vault_importer.imported_index import ImportedIndexStore
from vault_importer.models import (
    ImportCancelled,
    ImportMode,
    YearCompletionStrategy,
    make_sentence_id,
    make_vocab_id,
)
from vault_importer.planner import (
    BlockingWarningsError,
    ImportWarning,
    WarningSeverity,
    dedupe_and_sort_warnings,
    perform_import,
    prepare_plan,
    resolve_fallback_year,
)
from vault_importer.preferences import Preferences
from vault_importer.self_heal import HealReason

SENTENCES = "Sentence,Translation,URL,Date\nI like apple pie.,我喜欢苹果派。,https://a.test,2026-02-09\n"
VOCAB = "Word,Phonetic,Translation,Date\napple,/ˈæpl/,苹果,2026-02-09\n"
NOW = dt.datetime(2026, 2, 9, 21, 0, 0)
TODAY = dt.date(2026, 2, 9)
PIE_ID = make_sentence_id("I like apple pie.", "https://a.test")
APPLE_ID = make_vocab_id("apple")


@pytest.fixture
def csvs(write_file):
    return write_file("sentences.csv", SENTENCES), write_file("vocab.csv", VOCAB)


def note_path(vault):
    return vault / "English Clips" / "2026-02-09" / "Review.md"


def plan_merged(vault, csvs, prefs=None, **kwargs):
    sentence_csv, vocab_csv = csvs
    return prepare_plan(vault, sentence_csv, vocab_csv, ImportMode.MERGED, prefs, today=TODAY, **kwargs)


class TestPreview:
    """Test that previews are read-only and complete."""

    def test_preview_writes_nothing(self, vault, csvs):
        """The vault stays empty after a preview."""
        plan = plan_merged(vault, csvs)

        assert list(vault.rglob("*")) == []
        assert len(plan.days) == 1
        day = plan.days[0]
        assert day.is_new_file
        assert day.path == note_path(vault)
        assert plan.appended_sentences == 1
        assert plan.appended_vocab == 1
        assert plan.can_commit
        assert plan.warnings == []

    def test_flat_layout(self, vault, csvs):
        """Without date folders notes are named after the date."""
        plan = plan_merged(vault, csvs, Preferences(organize_by_date_folder=False))
        assert plan.days[0].path == vault / "English Clips" / "2026-02-09.md"

    def test_missing_csv_for_mode(self, vault, csvs):
        """Merged mode needs both CSVs."""
        with pytest.raises(ValueError):
            prepare_plan(vault, csvs[0], None, ImportMode.MERGED)

    def test_nonexistent_csv(self, vault, tmp_path):
        """A CSV path that does not exist is rejected."""
        with pytest.raises(FileNotFoundError):
            prepare_plan(vault, tmp_path / "nope.csv", None, ImportMode.SENTENCES)

    def test_progress_reported(self, vault, csvs):
        """Progress fractions stay in range and end at 1.0."""
        calls = []
        plan_merged(vault, csvs, progress=lambda fraction, message: calls.append((fraction, message)))
        assert calls[-1] == (1.0, "Preview ready")
        assert all(0.0 <= fraction <= 1.0 for fraction, _ in calls)

    def test_cancel(self, vault, csvs):
        """A set cancel event aborts the preview."""
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ImportCancelled):
            plan_merged(vault, csvs, cancel=cancel)


class TestCommit:
    """Test committing a plan."""

    def test_commit_writes_note_index_and_log(self, vault, csvs):
        """Commit writes the note, records IDs and appends a log session."""
        summary = perform_import(plan_merged(vault, csvs), now=NOW)

        text = note_path(vault).read_text(encoding="utf-8")
        assert PIE_ID in text
        assert APPLE_ID in text
        assert summary.appended_sentences == 1
        assert summary.appended_vocab == 1
        assert summary.written_paths == [note_path(vault)]

        index = ImportedIndexStore(vault).load()
        assert index.sentences == {PIE_ID}
        assert index.vocab == {APPLE_ID}

        log = summary.log_path.read_text(encoding="utf-8")
        assert "[2026-02-09 21:00:00] Import (merged)" in log
        assert "- 1 sentence(s), 1 vocab appended" in log

    def test_rerun_is_a_no_op(self, vault, csvs):
        """Importing the same files again appends nothing."""
        perform_import(plan_merged(vault, csvs), now=NOW)
        before = note_path(vault).read_text(encoding="utf-8")

        plan = plan_merged(vault, csvs)
        assert plan.days == []
        assert plan.skipped_index_duplicates == 2
        summary = perform_import(plan, now=NOW)
        assert summary.appended_sentences == 0
        assert note_path(vault).read_text(encoding="utf-8") == before

    def test_edits_between_preview_and_commit_survive(self, vault, csvs):
        """Commit re-reads the note instead of using the preview snapshot."""
        plan = plan_merged(vault, csvs)
        note_path(vault).parent.mkdir(parents=True)
        note_path(vault).write_text("my own notes\n", encoding="utf-8")

        perform_import(plan, now=NOW)

        text = note_path(vault).read_text(encoding="utf-8")
        assert "my own notes" in text
        assert PIE_ID in text

    def test_latin1_note_is_merged(self, vault, csvs):
        """A note saved as Latin-1 is merged and rewritten as UTF-8."""
        note_path(vault).parent.mkdir(parents=True)
        note_path(vault).write_bytes("Notizen: caf\u00e9, na\u00efve\n".encode("latin-1"))

        plan = plan_merged(vault, csvs)
        assert plan.failures == []
        assert [d.date for d in plan.days] == ["2026-02-09"]
        assert not plan.days[0].is_new_file

        summary = perform_import(plan, now=NOW)

        assert summary.failed_paths == []
        text = note_path(vault).read_text(encoding="utf-8")
        assert "Notizen: caf\u00e9, na\u00efve" in text
        assert PIE_ID in text
        assert APPLE_ID in text

    def test_failed_write_keeps_other_notes(self, vault, write_file, monkeypatch):
        """A note that cannot be written is reported; the others still land."""
        sentence_csv = write_file(
            "sentences.csv",
            SENTENCES + "Pears are sweet.,\u68a8\u662f\u751c\u7684\u3002,https://b.test,2026-02-10\n",
        )
        real_write_text = planner_module.write_text

        def failing_write_text(text, path):
            if "2026-02-09" in str(path):
                raise PermissionError(13, "Permission denied", str(path))
            real_write_text(text, path)

        monkeypatch.setattr(planner_module, "write_text", failing_write_text)
        plan = prepare_plan(vault, sentence_csv, None, ImportMode.SENTENCES, today=TODAY)

        summary = perform_import(plan, now=NOW)

        other = vault / "English Clips" / "2026-02-10" / "Review.md"
        assert summary.written_paths == [other]
        assert [p for p, _ in summary.failed_paths] == [note_path(vault)]
        assert not note_path(vault).exists()
        index = ImportedIndexStore(vault).load()
        assert index.sentences == {make_sentence_id("Pears are sweet.", "https://b.test")}
        assert "Write failed" in summary.render()

    def test_index_save_failure_still_logs(self, vault, csvs, monkeypatch):
        """The session log is written even when the index cannot be saved."""

        def failing_save(self, sets):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(ImportedIndexStore, "save", failing_save)

        summary = perform_import(plan_merged(vault, csvs), now=NOW)

        assert summary.written_paths == [note_path(vault)]
        assert summary.log_path is not None
        assert "Import (merged)" in summary.log_path.read_text(encoding="utf-8")

    def test_blocking_warning_prevents_commit(self, vault, csvs):
        """An output root occupied by a file blocks the import."""
        (vault / "English Clips").write_text("not a folder", encoding="utf-8")

        plan = plan_merged(vault, csvs)

        assert not plan.can_commit
        assert plan.warnings[0].severity is WarningSeverity.ERROR
        with pytest.raises(BlockingWarningsError):
            perform_import(plan, now=NOW)
        assert not ImportedIndexStore(vault).has_primary()


class TestPreflight:
    """Test hazards detected on existing notes before writing."""

    def test_read_only_note_blocks_commit(self, vault, csvs, monkeypatch):
        """A note the process cannot write to is a blocking error."""
        note = note_path(vault)
        note.parent.mkdir(parents=True)
        note.write_text("my own notes\n", encoding="utf-8")
        real_access = os.access
        monkeypatch.setattr(
            planner_module.os, "access",
            lambda p, mode, **kw: False if Path(p) == note else real_access(p, mode, **kw),
        )

        plan = plan_merged(vault, csvs)

        assert plan.can_commit is False
        assert [(w.title, w.path) for w in plan.blocking_warnings] == [("Note is read-only", note)]
        with pytest.raises(BlockingWarningsError):
            perform_import(plan, now=NOW)
        assert note.read_text(encoding="utf-8") == "my own notes\n"

    @pytest.mark.skipif(not hasattr(os, "geteuid") or os.geteuid() == 0, reason="root ignores file modes")
    def test_chmod_read_only_note(self, vault, csvs):
        """File permissions are honoured, not just simulated."""
        note = note_path(vault)
        note.parent.mkdir(parents=True)
        note.write_text("my own notes\n", encoding="utf-8")
        note.chmod(0o444)
        try:
            plan = plan_merged(vault, csvs)
        finally:
            note.chmod(0o644)

        assert plan.can_commit is False
        assert "Note is read-only" in [w.title for w in plan.warnings]

    def test_locked_note_warns(self, vault, csvs, monkeypatch):
        """A note that cannot be opened for append is flagged but not blocking."""
        note = note_path(vault)
        note.parent.mkdir(parents=True)
        note.write_text("my own notes\n", encoding="utf-8")
        real_open = builtins.open

        def locking_open(file, mode="r", *args, **kwargs):
            if mode == "a" and Path(file) == note:
                raise PermissionError(13, "The process cannot access the file", str(file))
            return real_open(file, mode, *args, **kwargs)

        monkeypatch.setattr(planner_module, "open", locking_open, raising=False)

        plan = plan_merged(vault, csvs)

        assert plan.can_commit
        [warning] = plan.warnings
        assert warning.title == "Note may be open in another app"
        assert warning.severity is WarningSeverity.WARNING
        assert warning.path == note

    def test_large_note_warns(self, vault, write_file):
        """A day reaching the size threshold gets a non-blocking warning."""
        rows = "".join(f"w{i},/w/,x,2026-02-09\n" for i in range(planner_module.LARGE_DAY_THRESHOLD - 1))
        vocab_csv = write_file("vocab.csv", "Word,Phonetic,Translation,Date\n" + rows)
        sentence_csv = write_file("sentences.csv", SENTENCES)

        plan = prepare_plan(vault, sentence_csv, vocab_csv, ImportMode.MERGED, today=TODAY)

        assert plan.can_commit
        [warning] = plan.warnings
        assert warning.title == "Note is getting large"
        assert warning.detail == "600 entries (threshold 600)"
        assert warning.path == note_path(vault)

    def test_small_note_does_not_warn(self, vault, csvs):
        plan = plan_merged(vault, csvs)
        assert all(w.title != "Note is getting large" for w in plan.warnings)


class TestSelfHeal:
    """Test rebuilding the dedup index from notes."""

    def test_missing_index_rebuilt(self, vault, csvs):
        """Deleting the index does not cause duplicates."""
        perform_import(plan_merged(vault, csvs), now=NOW)
        store = ImportedIndexStore(vault)
        store.index_path.unlink()

        plan = plan_merged(vault, csvs)
        assert plan.heal_reason is HealReason.MISSING_INDEX
        assert plan.days == []
        assert [w.title for w in plan.warnings] == ["Dedup index rebuilt from existing notes"]
        assert plan.warnings[0].severity is WarningSeverity.INFO

        perform_import(plan, now=NOW)
        assert store.load().vocab == {APPLE_ID}

    def test_incomplete_index_rebuilt(self, vault, csvs):
        """Notes with IDs the index lacks trigger a full scan."""
        perform_import(plan_merged(vault, csvs), now=NOW)
        store = ImportedIndexStore(vault)
        store.index_path.write_text(json.dumps({"sentences": [], "vocab": []}), encoding="utf-8")

        plan = plan_merged(vault, csvs)
        assert plan.heal_reason is HealReason.INCOMPLETE_INDEX
        assert plan.days == []
        assert plan.observed_existing_ids.sentences == {PIE_ID}

    def test_corrupt_index_warns(self, vault, csvs):
        """A corrupt index is quarantined and reported."""
        perform_import(plan_merged(vault, csvs), now=NOW)
        ImportedIndexStore(vault).index_path.write_text("{broken", encoding="utf-8")

        plan = plan_merged(vault, csvs)
        titles = [w.title for w in plan.warnings]
        assert "Dedup index was corrupted" in titles
        assert plan.days == []


class TestYearCompletion:
    """Test the year used for vocab dates without one."""

    def test_most_common_sentence_year(self, vault, write_file):
        """Vocab-only imports can still borrow the year from sentences."""
        sentences = write_file(
            "sentences.csv",
            "Sentence,Date\na,2025-01-01\nb,2025-03-01\nc,2026-01-01\n",
        )
        vocab = write_file("vocab.csv", "Word,Date\napple,2-9\n")
        prefs = Preferences(year_completion_strategy=YearCompletionStrategy.MOST_COMMON_SENTENCE_YEAR)

        plan = prepare_plan(vault, sentences, vocab, ImportMode.VOCABULARY, prefs, today=TODAY)

        assert plan.fallback_year == 2025
        assert [d.date for d in plan.days] == ["2025-02-09"]
        assert plan.appended_sentences == 0

    def test_unusable_sentence_csv_warns(self, vault, write_file):
        """An unusable sentence CSV falls back to the system year with a warning."""
        sentences = write_file("sentences.csv", "")
        vocab = write_file("vocab.csv", "Word,Date\napple,2-9\n")
        prefs = Preferences(year_completion_strategy=YearCompletionStrategy.MOST_COMMON_SENTENCE_YEAR)

        plan = prepare_plan(vault, sentences, vocab, ImportMode.VOCABULARY, prefs, today=dt.date(2030, 1, 1))

        assert plan.fallback_year == 2030
        assert [w.title for w in plan.warnings] == ["Sentence CSV not usable for year completion"]
        assert plan.can_commit

    def test_resolve_fallback_year(self):
        """Ties go to the earliest year; no data means the system year."""
        strategy = YearCompletionStrategy.MOST_COMMON_SENTENCE_YEAR
        assert resolve_fallback_year(strategy, Counter({2024: 2, 2023: 2, 2025: 1}), 2030) == 2023
        assert resolve_fallback_year(strategy, Counter(), 2030) == 2030
        assert resolve_fallback_year(YearCompletionStrategy.SYSTEM_YEAR, Counter({2024: 5}), 2030) == 2030


class TestWarnings:
    """Test warning bookkeeping."""

    def test_dedupe_and_sort(self):
        """Duplicates collapse; errors come first, then by title."""
        info = ImportWarning(WarningSeverity.INFO, "b")
        warn = ImportWarning(WarningSeverity.WARNING, "a")
        err = ImportWarning(WarningSeverity.ERROR, "z")
        result = dedupe_and_sort_warnings([info, warn, err, info, ImportWarning(WarningSeverity.WARNING, "a", "other")])
        assert result == [err, warn, info]

    def test_render(self, tmp_path):
        """Rendering includes severity, detail and path."""
        w = ImportWarning(WarningSeverity.WARNING, "Note is getting large", "700 entries", tmp_path)
        assert w.render() == f"[warning] Note is getting large: 700 entries ({tmp_path})"
