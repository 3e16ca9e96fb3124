"""Vocabulary highlighting inside sentence entries.

Only ASCII words of three or more letters take part. Matching is on whole
letter runs, case-insensitive; `**` toggles a bold span and text already
inside one is never re-bolded, so repeated passes are no-ops.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional

from .document import (
    SENTENCE_BEARING_HEADINGS,
    BlockKind,
    EntryBlock,
    checklist_head_text,
    flatten,
    section_blocks,
    split_entry_blocks,
    split_head_line,
)
from .models import VocabularyRecord

MIN_TOKEN_LENGTH = 3
RELATED_PREFIX = "- 相关词："


def _is_ascii_letter(ch: str) -> bool:
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z")


def highlight_token(text: str) -> Optional[str]:
    """The highlightable token of a vocabulary head: its first word, if eligible."""
    parts = (text or "").split()
    if not parts:
        return None
    token = parts[0].strip(".,;:!?\"'()[]*")
    if len(token) >= MIN_TOKEN_LENGTH and all(_is_ascii_letter(c) for c in token):
        return token
    return None


def build_token_map(lines: List[str], new_vocab: Iterable[VocabularyRecord] = ()) -> Dict[str, str]:
    """lowercase token -> display form, from existing vocab blocks plus new words."""
    tokens: Dict[str, str] = {}
    for block in split_entry_blocks(lines):
        if block.kind is not BlockKind.VOCAB:
            continue
        token = highlight_token(checklist_head_text(block.lines[0]) or "")
        if token:
            tokens.setdefault(token.lower(), token)
    for record in new_vocab:
        token = highlight_token(record.word)
        if token:
            tokens.setdefault(token.lower(), token)
    return tokens


def bold_keywords(text: str, tokens: Dict[str, str]) -> str:
    """Wrap whole-word matches of `tokens` in `**`, skipping existing bold spans."""
    if not tokens or not text:
        return text
    out: List[str] = []
    in_bold = False
    i = 0
    n = len(text)
    while i < n:
        if text.startswith("**", i):
            in_bold = not in_bold
            out.append("**")
            i += 2
            continue
        if _is_ascii_letter(text[i]):
            j = i
            while j < n and _is_ascii_letter(text[j]):
                j += 1
            word = text[i:j]
            tagged = i > 0 and text[i - 1] == "#"
            if not in_bold and not tagged and word.lower() in tokens:
                out.append(f"**{word}**")
            else:
                out.append(word)
            i = j
            continue
        out.append(text[i])
        i += 1
    return "".join(out)


def related_words(text: str, tokens: Dict[str, str]) -> List[str]:
    """Display forms of the vocabulary tokens a sentence contains, in order."""
    found: List[str] = []
    i = 0
    n = len(text or "")
    while i < n:
        if _is_ascii_letter(text[i]):
            j = i
            while j < n and _is_ascii_letter(text[j]):
                j += 1
            display = tokens.get(text[i:j].lower())
            if display and display not in found:
                found.append(display)
            i = j
        else:
            i += 1
    return found


def _rewrite_sentence_blocks(lines: List[str], rewrite: Callable[[EntryBlock], List[str]]) -> None:
    for heading in SENTENCE_BEARING_HEADINGS:
        found = section_blocks(heading, lines)
        if found is None:
            continue
        start, end, blocks = found
        for block in blocks:
            if block.kind is BlockKind.SENTENCE:
                block.lines = rewrite(block)
        lines[start:end] = flatten(blocks)


def apply_highlight(lines: List[str], tokens: Dict[str, str]) -> None:
    """Bold vocabulary in the visible text of every sentence head line."""
    if not tokens:
        return

    def rewrite(block: EntryBlock) -> List[str]:
        prefix, visible, comment = split_head_line(block.lines[0])
        return [prefix + bold_keywords(visible, tokens) + comment] + block.lines[1:]

    _rewrite_sentence_blocks(lines, rewrite)


def upsert_related_words(lines: List[str], tokens: Dict[str, str]) -> None:
    """Replace each sentence's related-words line with a freshly computed one."""

    def rewrite(block: EntryBlock) -> List[str]:
        content = [l for l in block.content_lines if not l.strip().startswith(RELATED_PREFIX)]
        words = related_words(checklist_head_text(content[0]) or "", tokens)
        if words:
            content.append(f"  {RELATED_PREFIX}{', '.join(words)}")
        return content + block.trailing_blank_lines

    _rewrite_sentence_blocks(lines, rewrite)
