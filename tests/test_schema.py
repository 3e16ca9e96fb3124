"""Tests for column schemas and header matching."""

from vault_importer.schema import (
    SENTENCE_SCHEMA,
    VOCABULARY_SCHEMA,
    RecordKind,
    auto_map,
    detect_kind,
    header_signature,
)


class TestAutoMap:
    """Test alias-based column mapping."""

    def test_sentence_aliases(self):
        """Aliases map to canonical fields."""
        m = auto_map(SENTENCE_SCHEMA, ["English", "Chinese", "Link", "Date"])
        assert m.complete
        assert m.field_to_index == {"sentence": 0, "translation": 1, "url": 2, "date": 3}

    def test_chinese_headers(self):
        """Chinese aliases work too."""
        m = auto_map(VOCABULARY_SCHEMA, ["单词", "音标", "释义", "日期"])
        assert m.field_to_index == {"word": 0, "phonetic": 1, "translation": 2, "date": 3}

    def test_case_and_punctuation_insensitive(self):
        """Header decoration does not matter."""
        m = auto_map(VOCABULARY_SCHEMA, [" WORD ", "Date:"])
        assert m.complete

    def test_missing_required(self):
        """Required fields without a column are reported."""
        m = auto_map(VOCABULARY_SCHEMA, ["Word", "Meaning"])
        assert not m.complete
        assert m.missing_required == ["date"]


class TestHeaderSignature:
    """Test header fingerprints."""

    def test_stable_under_decoration(self):
        """Case and spacing do not change the signature."""
        assert header_signature([" Word ", "DATE"]) == header_signature(["word", "date"])

    def test_order_matters(self):
        """Column order is part of the signature."""
        assert header_signature(["a", "b"]) != header_signature(["b", "a"])


class TestDetectKind:
    """Test sentence/vocabulary detection."""

    def test_by_header(self):
        """Headers satisfying one schema decide."""
        assert detect_kind(["Word", "Date"]) is RecordKind.VOCABULARY
        assert detect_kind(["Sentence", "Date"]) is RecordKind.SENTENCE

    def test_by_file_name(self):
        """Unknown headers fall back to the file name."""
        assert detect_kind(["a", "b"], "my_vocab_export.csv") is RecordKind.VOCABULARY
        assert detect_kind(["a", "b"], "sentences.csv") is RecordKind.SENTENCE
        assert detect_kind(["a", "b"], "data.csv") is None
