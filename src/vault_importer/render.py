"""Rendering of new entries and in-place cleanup of existing entry lines."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence

from .document import LineKind, classify_line, is_blank
from .highlight import bold_keywords, related_words
from .models import SentenceRecord, VocabularyRecord
from .normalize import collapse_whitespace, strip_surrounding_slashes

TRANSLATION_LABEL = "释义："
SENTENCE_TRANSLATION_LABEL = "中文："
SOURCE_LABEL = "来源："
RELATED_LABEL = "相关词："

_CIRCLED = "①②③④⑤⑥⑦⑧⑨⑩⑪⑫⑬⑭⑮⑯⑰⑱⑲⑳"
_HAN_RE = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]")
_TRANSLATION_LINE_RE = re.compile(r"^(\s*)- " + TRANSLATION_LABEL + r"(.*)$")

_ANY_ID = r"(?:vocab|sent)_[0-9a-f]{40}"
_ANY_ID_RE = re.compile(r"\b" + _ANY_ID + r"\b")
_ID_COMMENT_RE = re.compile(r"\s*(?:<!--\s*id:[^>]*?-->|%%\s*id:[^%]*?%%)")
_LEGACY_ID_LINE_RE = re.compile(r"^\s*-\s*id:\s*" + _ANY_ID + r"\s*$")


def format_translation_lines(text: str) -> List[str]:
    """Split a dictionary gloss into one line per sense.

    Breaks before circled sense markers and bullets; when the text has Han
    characters, also after full- or half-width semicolons.
    """
    t = (text or "").strip()
    if not t:
        return []
    split_semicolons = bool(_HAN_RE.search(t))
    out: List[str] = []
    for ch in t:
        if ch in _CIRCLED or ch == "•":
            if out and out[-1] != "\n":
                out.append("\n")
            out.append(ch)
        elif split_semicolons and ch in "；;":
            out.append(ch)
            out.append("\n")
        else:
            out.append(ch)
    lines = [collapse_whitespace(l) for l in "".join(out).split("\n")]
    return [l for l in lines if l]


def _translation_lines(indent: str, text: str) -> List[str]:
    senses = format_translation_lines(text)
    if len(senses) <= 1:
        return [f"{indent}- {TRANSLATION_LABEL}{senses[0] if senses else ''}"]
    return [f"{indent}- {TRANSLATION_LABEL}"] + [f"{indent}  - {s}" for s in senses]


def render_vocab_entry(record: VocabularyRecord) -> List[str]:
    head = f"- [ ] {collapse_whitespace(record.word)}"
    phonetic = strip_surrounding_slashes(record.phonetic or "")
    if phonetic:
        head += f"  /{phonetic}/"
    head += f" %% id: {record.id} %%"
    lines = [head] + _translation_lines("  ", record.translation)
    if record.source and record.source.strip():
        lines.append(f"  - {SOURCE_LABEL}{collapse_whitespace(record.source)}")
    return lines


def render_sentence_entry(
    record: SentenceRecord,
    highlight: Optional[Dict[str, str]] = None,
    related: Optional[Dict[str, str]] = None,
) -> List[str]:
    text = collapse_whitespace(record.sentence)
    if highlight:
        text = bold_keywords(text, highlight)
    lines = [
        f"- [ ] {text} %% id: {record.id} %%",
        f"  - {SENTENCE_TRANSLATION_LABEL}{collapse_whitespace(record.translation)}",
    ]
    if record.url and record.url.strip():
        lines.append(f"  - {SOURCE_LABEL}{record.url.strip()}")
    if related:
        words = related_words(text, related)
        if words:
            lines.append(f"  - {RELATED_LABEL}{', '.join(words)}")
    return lines


def render_interleaved(
    vocab: Sequence[VocabularyRecord],
    sentences: Sequence[SentenceRecord],
    highlight: Optional[Dict[str, str]] = None,
) -> List[str]:
    """Alternate vocab and sentence entries; leftovers of the longer list follow."""
    lines: List[str] = []
    for i in range(max(len(vocab), len(sentences))):
        if i < len(vocab):
            lines.extend(render_vocab_entry(vocab[i]))
        if i < len(sentences):
            lines.extend(render_sentence_entry(sentences[i], highlight))
    return lines


def reflow_vocab_translations(lines: List[str]) -> None:
    """Rewrite single-line `释义：` glosses with several senses as nested lists."""
    i = 0
    while i < len(lines):
        m = _TRANSLATION_LINE_RE.match(lines[i])
        if not m or m.group(2).lstrip().startswith("<!--"):
            i += 1
            continue
        replacement = _translation_lines(m.group(1), m.group(2))
        lines[i:i + 1] = replacement
        i += len(replacement)


def normalize_id_lines(lines: List[str]) -> None:
    """Move every block's ID to a trailing ` %% id: … %%` on its head line.

    Legacy `- id: …` lines and `<!-- id: … -->` comments are folded into the
    head line and blank lines between a block's content lines are dropped.
    Blocks without an ID are left alone.
    """
    i = 0
    while i < len(lines):
        if classify_line(lines[i]) is not LineKind.ENTRY_HEAD:
            i += 1
            continue
        j = i + 1
        while j < len(lines) and classify_line(lines[j]) not in (LineKind.ENTRY_HEAD, LineKind.HEADING):
            j += 1
        content_end = j
        while content_end > i + 1 and is_blank(lines[content_end - 1]):
            content_end -= 1

        m = _ANY_ID_RE.search("\n".join(lines[i:content_end]))
        if m is None:
            i = j
            continue

        head = _ID_COMMENT_RE.sub("", lines[i]).rstrip() + f" %% id: {m.group(0)} %%"
        rebuilt = [head]
        for line in lines[i + 1:content_end]:
            if is_blank(line) or _LEGACY_ID_LINE_RE.match(line):
                continue
            cleaned = _ID_COMMENT_RE.sub("", line).rstrip()
            if cleaned.strip():
                rebuilt.append(cleaned)

        lines[i:content_end] = rebuilt
        i += len(rebuilt) + (j - content_end)
