"""Tests for the plain word-list export."""

from vault_importer.imported_index import WordExportIndexStore
from vault_importer.models import make_vocab_id
from vault_importer.word_export import export_words

VOCAB = "Word,Date\napple,2-9\nApple,2-9\npear,2-9\nkiwi,2-9\n,2-9\n"


class TestExportWords:
    """Test exporting words once."""

    def test_appends_and_remembers(self, vault, write_file):
        """New words are appended; existing and exported ones are skipped."""
        csv_path = write_file("vocab.csv", VOCAB)
        dest = write_file("words.txt", "Kiwi")

        result = export_words(vault, csv_path, dest)

        assert result.words == ["apple", "pear"]
        assert result.skipped_in_destination == 1
        assert dest.read_text(encoding="utf-8") == "Kiwi\napple\npear\n"
        assert WordExportIndexStore(vault).load() == {make_vocab_id("apple"), make_vocab_id("pear")}

        again = export_words(vault, csv_path, dest)
        assert again.words == []
        assert again.skipped_already_exported == 2
        assert dest.read_text(encoding="utf-8") == "Kiwi\napple\npear\n"

    def test_preview_only(self, vault, write_file, tmp_path):
        """A preview records nothing."""
        csv_path = write_file("vocab.csv", VOCAB)
        dest = tmp_path / "out.txt"

        result = export_words(vault, csv_path, dest, preview_only=True)

        assert result.words == ["apple", "pear", "kiwi"]
        assert not dest.exists()
        assert not WordExportIndexStore(vault).has_primary()

    def test_stdout_export_is_recorded(self, vault, write_file):
        """Without a destination the words are still marked exported."""
        csv_path = write_file("vocab.csv", VOCAB)
        result = export_words(vault, csv_path)
        assert result.destination is None
        assert len(WordExportIndexStore(vault).load()) == 3
