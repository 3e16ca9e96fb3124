"""Tests for the vault-wide archive pass."""

import datetime as dt

from vault_importer.maintenance import scan_and_archive
from vault_importer.models import make_vocab_id
from vault_importer.preferences import Preferences

VID = make_vocab_id("banana")
NOTE = f"## Vocabulary\n\n- [x] banana %% id: {VID} %%\n  - 释义：香蕉\n"
CLEAN = "## Vocabulary\n\n- [ ] pear\n"
NOW = dt.datetime(2026, 2, 10, 8, 0, 0)


def make_vault(vault):
    root = vault / "English Clips"
    (root / "2026-02-09").mkdir(parents=True)
    (root / "2026-02-10").mkdir()
    checked = root / "2026-02-09" / "Review.md"
    clean = root / "2026-02-10" / "Review.md"
    checked.write_text(NOTE, encoding="utf-8")
    clean.write_text(CLEAN, encoding="utf-8")
    return checked, clean


class TestScanAndArchive:
    """Test archiving checked entries across notes."""

    def test_archives_and_logs(self, vault):
        """Checked entries move; untouched notes are not rewritten."""
        checked, clean = make_vault(vault)

        summary = scan_and_archive(vault, Preferences(), now=NOW)

        assert summary.scanned_files == 2
        assert summary.changed_paths == [checked]
        assert summary.moved_vocab == 1
        text = checked.read_text(encoding="utf-8")
        assert "## Mastered Vocabulary" in text
        assert "Vocabulary: 0 (Mastered 1)" in text
        assert clean.read_text(encoding="utf-8") == CLEAN
        log = (vault / ".obsidian-vocab-importer" / "import_log.txt").read_text(encoding="utf-8")
        assert "[2026-02-10 08:00:00] Archive mastered" in log

    def test_dry_run_writes_nothing(self, vault):
        """Preview reports changes without touching files."""
        checked, _ = make_vault(vault)

        summary = scan_and_archive(vault, Preferences(), preview_only=True)

        assert summary.changed_paths == [checked]
        assert checked.read_text(encoding="utf-8") == NOTE
        assert not (vault / ".obsidian-vocab-importer").exists()
        assert summary.render().startswith("Scanned notes: 2\nWould update notes: 1")

    def test_missing_root(self, vault):
        """A vault without the output folder is a no-op."""
        summary = scan_and_archive(vault)
        assert summary.scanned_files == 0
        assert summary.changed_paths == []

    def test_latin1_note_is_archived(self, vault):
        """Notes in a legacy encoding are decoded instead of failing."""
        note = vault / "English Clips" / "2026-02-09" / "Review.md"
        note.parent.mkdir(parents=True)
        cafe_id = make_vocab_id("café")
        note.write_bytes(f"## Vocabulary\n\n- [x] café %% id: {cafe_id} %%\n".encode("latin-1"))

        summary = scan_and_archive(vault, Preferences(), now=NOW)

        assert summary.failed_paths == []
        assert summary.changed_paths == [note]
        assert summary.moved_vocab == 1
        text = note.read_text(encoding="utf-8")
        assert "## Mastered Vocabulary" in text
        assert "café" in text
        assert cafe_id in text
