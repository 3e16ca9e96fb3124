"""Section layout normalization and mastery archiving.

Migrations move whole entry blocks between sections and never drop one, so
the set of embedded IDs is preserved across any change of layout.
"""

from __future__ import annotations

from typing import List, Tuple

from .document import (
    ACTIVE_HEADINGS,
    MASTERED_HEADINGS,
    MASTERED_SENTENCES_HEADING,
    MASTERED_VOCAB_HEADING,
    REVIEW_HEADING,
    SENTENCES_HEADING,
    VOCAB_HEADING,
    BlockKind,
    append_to_section,
    ensure_heading,
    extract_section,
    flatten,
    heading_index,
    is_blank,
    section_blocks,
    section_end,
    split_entry_blocks,
)
from .models import ImportMode, MergedLayoutStrategy

MASTERED_TAG = "#mastered"


def _collapse_blank_pair(lines: List[str], at: int) -> None:
    if 0 < at < len(lines) and is_blank(lines[at - 1]) and is_blank(lines[at]):
        del lines[at]


def _cut_section(heading: str, lines: List[str]) -> List[str]:
    """Remove heading + content and return them, ending in a blank line."""
    h = heading_index(heading, lines)
    end = section_end(h, lines)
    block = lines[h:end]
    del lines[h:end]
    _collapse_blank_pair(lines, h)
    if not is_blank(block[-1]):
        block.append("")
    return block


def migrate_sectioned_to_review(lines: List[str]) -> None:
    ensure_heading(REVIEW_HEADING, lines)
    for heading in (VOCAB_HEADING, SENTENCES_HEADING):
        content = extract_section(heading, lines)
        if content:
            append_to_section(REVIEW_HEADING, content, lines)


def migrate_review_to_sectioned(lines: List[str]) -> None:
    """Split a Review section into Vocabulary and Sentences.

    Blocks without a vocab ID (sentences, unknown blocks, loose lines) go to
    Sentences.
    """
    content = extract_section(REVIEW_HEADING, lines)
    if content is None:
        return
    vocab, rest = [], []
    for block in split_entry_blocks(content):
        (vocab if block.kind is BlockKind.VOCAB else rest).append(block)
    append_to_section(VOCAB_HEADING, flatten(vocab), lines)
    append_to_section(SENTENCES_HEADING, flatten(rest), lines)


def ensure_section_order(first: str, second: str, lines: List[str]) -> None:
    """Make sure both sections exist and `first` comes before `second`."""
    ensure_heading(first, lines)
    ensure_heading(second, lines)
    if heading_index(first, lines) < heading_index(second, lines):
        return
    block = _cut_section(first, lines)
    at = heading_index(second, lines)
    lines[at:at] = block


def keep_mastered_last(lines: List[str]) -> None:
    for heading in MASTERED_HEADINGS:
        h = heading_index(heading, lines)
        if h is None:
            continue
        tail = lines[section_end(h, lines):]
        if not any(l.strip() in ACTIVE_HEADINGS for l in tail):
            continue
        block = _cut_section(heading, lines)
        if lines and not is_blank(lines[-1]):
            lines.append("")
        lines.extend(block)


def normalize_layout(lines: List[str], mode: ImportMode, strategy: MergedLayoutStrategy) -> None:
    if mode is ImportMode.SENTENCES:
        ensure_heading(SENTENCES_HEADING, lines)
    elif mode is ImportMode.VOCABULARY:
        ensure_heading(VOCAB_HEADING, lines)
    elif strategy is MergedLayoutStrategy.INTERLEAVED:
        migrate_sectioned_to_review(lines)
    else:
        migrate_review_to_sectioned(lines)
        if strategy is MergedLayoutStrategy.SENTENCE_PRIMARY:
            ensure_section_order(SENTENCES_HEADING, VOCAB_HEADING, lines)
        else:
            ensure_section_order(VOCAB_HEADING, SENTENCES_HEADING, lines)
    keep_mastered_last(lines)


def _with_mastered_tag(block_lines: List[str]) -> List[str]:
    head = block_lines[0]
    if MASTERED_TAG in head:
        return block_lines
    return [head.rstrip() + " " + MASTERED_TAG] + block_lines[1:]


def archive_checked_blocks(lines: List[str], add_tag: bool = False) -> Tuple[List[str], List[str]]:
    """Move checked entries from active sections to the Mastered sections.

    Kind comes from the embedded ID. Checked blocks without an ID follow the
    section they sit in; inside Review their kind cannot be known and they
    stay put. Returns (moved sentence IDs, moved vocab IDs).
    """
    moved_vocab: List[List[str]] = []
    moved_sentences: List[List[str]] = []
    vocab_ids: List[str] = []
    sentence_ids: List[str] = []

    for heading in ACTIVE_HEADINGS:
        found = section_blocks(heading, lines)
        if found is None:
            continue
        start, end, blocks = found
        kept: List[str] = []
        for block in blocks:
            target = None
            if block.is_entry and block.checked:
                if block.kind is BlockKind.VOCAB:
                    target, ids = moved_vocab, vocab_ids
                elif block.kind is BlockKind.SENTENCE:
                    target, ids = moved_sentences, sentence_ids
                elif heading == VOCAB_HEADING:
                    target, ids = moved_vocab, vocab_ids
                elif heading == SENTENCES_HEADING:
                    target, ids = moved_sentences, sentence_ids
            if target is None:
                kept.extend(block.lines)
                continue
            content = block.content_lines
            target.append(_with_mastered_tag(content) if add_tag else content)
            if block.id:
                ids.append(block.id)
            if kept and not is_blank(kept[-1]):
                kept.extend(block.trailing_blank_lines)
        lines[start:end] = kept

    if moved_vocab:
        append_to_section(MASTERED_VOCAB_HEADING, [l for b in moved_vocab for l in b], lines)
    if moved_sentences:
        append_to_section(MASTERED_SENTENCES_HEADING, [l for b in moved_sentences for l in b], lines)
    return sentence_ids, vocab_ids
