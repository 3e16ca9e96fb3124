"""Core record types, import policies and deterministic record identity.

Record IDs are the backbone of cross-session dedup: they depend only on the
UTF-8 bytes of a normalized key, so identical content yields the identical ID
on any machine.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .normalize import normalize_for_identity

VOCAB_ID_PREFIX = "vocab_"
SENTENCE_ID_PREFIX = "sent_"


class ImportMode(str, Enum):
    SENTENCES = "sentences"
    VOCABULARY = "vocabulary"
    MERGED = "merged"

    @property
    def wants_sentences(self) -> bool:
        return self in (ImportMode.SENTENCES, ImportMode.MERGED)

    @property
    def wants_vocab(self) -> bool:
        return self in (ImportMode.VOCABULARY, ImportMode.MERGED)


class YearCompletionStrategy(str, Enum):
    """Where the year comes from when a vocabulary date omits it.

    SYSTEM_YEAR: the current calendar year.
    MOST_COMMON_SENTENCE_YEAR: the most frequent year among parsed sentence
        dates; ties go to the earliest year; no sentence dates -> system year.
    """

    SYSTEM_YEAR = "system_year"
    MOST_COMMON_SENTENCE_YEAR = "most_common_sentence_year"


class MergedLayoutStrategy(str, Enum):
    # Sections, vocabulary first then sentences.
    VOCAB_THEN_SENTENCES = "vocab_then_sentences"
    # Single "Review" section, vocab and sentences alternating.
    INTERLEAVED = "interleaved"
    # Sentences first; each sentence lists the vocabulary words it contains.
    SENTENCE_PRIMARY = "sentence_primary"


def sha1_hex(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def make_vocab_id(word: str) -> str:
    """ID for a vocabulary item: the lowercased, trimmed word only.

    Phonetic and translation may change between exports without creating a
    new identity.
    """
    return VOCAB_ID_PREFIX + sha1_hex((word or "").strip().lower())


def make_sentence_id(sentence: str, url: Optional[str] = None) -> str:
    """ID for a sentence: normalized sentence plus trimmed URL.

    The same sentence clipped from two different sources stays two records.
    """
    key = normalize_for_identity(sentence) + "|" + (url or "").strip()
    return SENTENCE_ID_PREFIX + sha1_hex(key)


@dataclass(frozen=True)
class VocabularyRecord:
    word: str
    translation: str
    date: str  # yyyy-MM-dd
    phonetic: Optional[str] = None
    source: Optional[str] = None

    @property
    def id(self) -> str:
        return make_vocab_id(self.word)


@dataclass(frozen=True)
class SentenceRecord:
    sentence: str
    translation: str
    date: str  # yyyy-MM-dd
    url: Optional[str] = None

    @property
    def id(self) -> str:
        return make_sentence_id(self.sentence, self.url)


Record = Union[VocabularyRecord, SentenceRecord]


@dataclass(frozen=True)
class ParseFailure:
    file_name: str
    line_number: int  # 1-based, header counted; 0 when not tied to a line
    reason: str

    @property
    def log_line(self) -> str:
        if self.line_number > 0:
            return f"{self.file_name} line {self.line_number}: {self.reason}"
        return f"{self.file_name}: {self.reason}"


class ImportCancelled(Exception):
    """Raised when a cooperative cancel request is observed."""


def check_cancelled(cancel) -> None:
    """Raise ImportCancelled if `cancel` (a threading.Event or None) is set."""
    if cancel is not None and cancel.is_set():
        raise ImportCancelled()
