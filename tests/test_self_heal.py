"""Tests for rebuilding dedup state from notes."""

from vault_importer.imported_index import IndexSets
from vault_importer.models import make_sentence_id, make_vocab_id
from vault_importer.self_heal import HealReason, iter_markdown_files, scan_ids, self_heal

VID = make_vocab_id("apple")
SID = make_sentence_id("Hello there.")


def make_notes(root):
    (root / "2026-02-08").mkdir(parents=True)
    (root / "2026-02-09").mkdir()
    (root / ".trash").mkdir()
    (root / "2026-02-08" / "Review.md").write_text(f"- [ ] Hello there. %% id: {SID} %%\n", encoding="utf-8")
    (root / "2026-02-09" / "Review.md").write_text(f"- [ ] apple %% id: {VID} %%\n", encoding="utf-8")
    (root / "2026-02-09" / "notes.txt").write_text(f"{VID}\n", encoding="utf-8")
    (root / ".trash" / "old.md").write_text(f"{make_vocab_id('gone')}\n", encoding="utf-8")


class TestIterMarkdownFiles:
    """Test note discovery."""

    def test_newest_first_hidden_skipped(self, tmp_path):
        """Only visible .md files are listed, newest date first."""
        make_notes(tmp_path)
        names = [p.relative_to(tmp_path).as_posix() for p in iter_markdown_files(tmp_path)]
        assert names == ["2026-02-09/Review.md", "2026-02-08/Review.md"]


class TestScanIds:
    """Test ID collection."""

    def test_union_of_all_notes(self, tmp_path):
        """IDs from every note are collected by kind."""
        make_notes(tmp_path)
        observed, unreadable = scan_ids(iter_markdown_files(tmp_path))
        assert observed == IndexSets({SID}, {VID})
        assert unreadable == []


class TestSelfHeal:
    """Test when the full scan runs."""

    def test_missing_root(self, tmp_path):
        """No output folder means nothing to heal."""
        result = self_heal(tmp_path / "missing", IndexSets(), primary_present=False)
        assert result.reason is None
        assert len(result.observed) == 0

    def test_missing_index(self, tmp_path):
        """Without an index file every note is scanned."""
        make_notes(tmp_path)
        result = self_heal(tmp_path, IndexSets(), primary_present=False)
        assert result.reason is HealReason.MISSING_INDEX
        assert result.observed == IndexSets({SID}, {VID})
        assert result.scanned_files == 2

    def test_complete_index(self, tmp_path):
        """A sample fully known to the index triggers nothing."""
        make_notes(tmp_path)
        result = self_heal(tmp_path, IndexSets({SID}, {VID}), primary_present=True)
        assert result.reason is None
        assert len(result.observed) == 0

    def test_incomplete_index(self, tmp_path):
        """An unknown ID in the sample triggers a full scan."""
        make_notes(tmp_path)
        result = self_heal(tmp_path, IndexSets({SID}, set()), primary_present=True)
        assert result.reason is HealReason.INCOMPLETE_INDEX
        assert result.observed.vocab == {VID}

    def test_sample_limit(self, tmp_path):
        """Only the newest notes are sampled."""
        make_notes(tmp_path)
        result = self_heal(tmp_path, IndexSets(set(), {VID}), primary_present=True, sample_limit=1)
        assert result.reason is None
        assert result.scanned_files == 1
