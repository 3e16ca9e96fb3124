"""Merge new records into a per-day review document.

`update()` is a pure text -> text transformation. It is idempotent: feeding
its output back in with the same records changes nothing. Malformed content
never raises; unrecognized lines are carried through untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, TypeVar

from .document import (
    REVIEW_HEADING,
    SENTENCES_HEADING,
    VOCAB_HEADING,
    append_to_section,
    extract_ids,
    join_lines,
    split_lines,
)
from .frontmatter import refresh_overview, upsert_frontmatter, upsert_overview_placeholder
from .highlight import apply_highlight, build_token_map, upsert_related_words
from .layout import archive_checked_blocks, normalize_layout
from .models import ImportMode, MergedLayoutStrategy, SentenceRecord, VocabularyRecord
from .normalize import normalize_line_endings
from .preferences import Preferences
from .render import (
    normalize_id_lines,
    reflow_vocab_translations,
    render_interleaved,
    render_sentence_entry,
    render_vocab_entry,
)

R = TypeVar("R", SentenceRecord, VocabularyRecord)


@dataclass
class UpdateResult:
    updated_document: str
    appended_sentences: int = 0
    appended_vocab: int = 0
    total_sentences: int = 0
    total_vocab: int = 0
    moved_mastered_sentence_ids: List[str] = field(default_factory=list)
    moved_mastered_vocab_ids: List[str] = field(default_factory=list)


@dataclass
class ArchiveResult:
    updated_document: str
    moved_mastered_sentence_ids: List[str] = field(default_factory=list)
    moved_mastered_vocab_ids: List[str] = field(default_factory=list)

    @property
    def moved_count(self) -> int:
        return len(self.moved_mastered_sentence_ids) + len(self.moved_mastered_vocab_ids)


def _fresh(records: Iterable[R], present: set) -> List[R]:
    out: List[R] = []
    seen = set(present)
    for r in records:
        if r.id not in seen:
            seen.add(r.id)
            out.append(r)
    return out


def update(
    existing: Optional[str],
    date: str,
    mode: ImportMode,
    new_sentences: Sequence[SentenceRecord],
    new_vocab: Sequence[VocabularyRecord],
    preferences: Preferences,
) -> UpdateResult:
    """Return the document with new records merged in.

    `existing` is the current file content or None for a new file. Records
    whose ID already appears anywhere in the document are ignored.
    """
    text = normalize_line_endings(existing) if existing else ""
    present_sentences, present_vocab = extract_ids(text)
    sentences = _fresh(new_sentences, present_sentences) if mode.wants_sentences else []
    vocab = _fresh(new_vocab, present_vocab) if mode.wants_vocab else []

    strategy = preferences.merged_layout_strategy
    merged = mode is ImportMode.MERGED

    lines = split_lines(text) if text else []
    lines = upsert_frontmatter(lines, date)
    lines = upsert_overview_placeholder(lines)
    normalize_layout(lines, mode, strategy)

    moved_sentences: List[str] = []
    moved_vocab: List[str] = []
    if preferences.auto_archive_mastered:
        moved_sentences, moved_vocab = archive_checked_blocks(lines, preferences.add_mastered_tag)

    highlight = None
    related = None
    if merged:
        tokens = build_token_map(lines, vocab)
        if preferences.highlight_vocab_in_sentences:
            apply_highlight(lines, tokens)
            highlight = tokens
        if strategy is MergedLayoutStrategy.SENTENCE_PRIMARY:
            upsert_related_words(lines, tokens)
            related = tokens

    if merged and strategy is MergedLayoutStrategy.INTERLEAVED:
        append_to_section(REVIEW_HEADING, render_interleaved(vocab, sentences, highlight), lines)
    else:
        if mode.wants_vocab:
            vocab_lines = [l for r in vocab for l in render_vocab_entry(r)]
            append_to_section(VOCAB_HEADING, vocab_lines, lines)
        if mode.wants_sentences:
            sentence_lines = [l for r in sentences for l in render_sentence_entry(r, highlight, related)]
            append_to_section(SENTENCES_HEADING, sentence_lines, lines)

    reflow_vocab_translations(lines)
    normalize_id_lines(lines)
    total_vocab, total_sentences = refresh_overview(lines)

    return UpdateResult(
        updated_document=join_lines(lines),
        appended_sentences=len(sentences),
        appended_vocab=len(vocab),
        total_sentences=total_sentences,
        total_vocab=total_vocab,
        moved_mastered_sentence_ids=moved_sentences,
        moved_mastered_vocab_ids=moved_vocab,
    )


def archive_mastered(existing: str, preferences: Preferences) -> ArchiveResult:
    """Archive-only pass: move checked entries and refresh the overview.

    Documents with nothing to move are returned unchanged.
    """
    text = normalize_line_endings(existing or "")
    lines = split_lines(text)
    before = list(lines)
    moved_sentences, moved_vocab = archive_checked_blocks(lines, preferences.add_mastered_tag)
    if lines == before:
        return ArchiveResult(existing or "")
    lines = upsert_overview_placeholder(lines)
    normalize_id_lines(lines)
    refresh_overview(lines)
    return ArchiveResult(join_lines(lines), moved_sentences, moved_vocab)
