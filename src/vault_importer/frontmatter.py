"""Frontmatter and overview line handling for review documents."""

from __future__ import annotations

import re
from typing import List, Tuple

from .document import (
    FRONTMATTER_FENCE,
    MASTERED_SENTENCES_HEADING,
    MASTERED_VOCAB_HEADING,
    REVIEW_HEADING,
    SENTENCES_HEADING,
    SENT_ID_RE,
    VOCAB_HEADING,
    VOCAB_ID_RE,
    LineKind,
    classify_line,
    heading_index,
    is_blank,
    section_end,
)

DEFAULT_SOURCE = "imported"
REQUIRED_TAGS = ("english", "review")
OVERVIEW_PLACEHOLDER = "**Overview:** Vocabulary: 0 | Sentences: 0"

_KEY_RE = re.compile(r"^([A-Za-z_][\w-]*)\s*:(.*)$")


def frontmatter_end(lines: List[str]) -> int:
    """Index of the closing fence, or -1 if the document has no frontmatter."""
    if not lines or lines[0] != FRONTMATTER_FENCE:
        return -1
    for i in range(1, len(lines)):
        if lines[i] == FRONTMATTER_FENCE:
            return i
    return -1


def _merge_tags(rhs: str) -> str | None:
    """Merge the required tags into an inline `[a, b]` list; None if not inline."""
    value = rhs.strip()
    if not (value.startswith("[") and value.endswith("]")):
        return None
    tags = set(REQUIRED_TAGS)
    for part in value[1:-1].split(","):
        tag = part.strip().strip("\"'").strip()
        if tag:
            tags.add(tag)
    return "[" + ", ".join(sorted(tags)) + "]"


def upsert_frontmatter(lines: List[str], date: str) -> List[str]:
    """Ensure canonical frontmatter keys.

    `date` is always rewritten, `source` is kept when present, inline tag
    lists are merged with the required tags. Other keys and tag forms that
    are not inline lists are left untouched.
    """
    end = frontmatter_end(lines)
    if end < 0:
        body: List[str] = []
        rest = list(lines)
    else:
        body = list(lines[1:end])
        rest = list(lines[end + 1:])

    seen = set()
    for i, line in enumerate(body):
        m = _KEY_RE.match(line)
        if not m:
            continue
        key, rhs = m.group(1), m.group(2)
        if key in seen:
            continue
        seen.add(key)
        if key == "date":
            body[i] = f"date: {date}"
        elif key == "tags":
            merged = _merge_tags(rhs)
            if merged is not None:
                body[i] = f"tags: {merged}"

    if "date" not in seen:
        body.append(f"date: {date}")
    if "source" not in seen:
        body.append(f"source: {DEFAULT_SOURCE}")
    if "tags" not in seen:
        body.append("tags: [" + ", ".join(REQUIRED_TAGS) + "]")

    return [FRONTMATTER_FENCE] + body + [FRONTMATTER_FENCE] + rest


def upsert_overview_placeholder(lines: List[str]) -> List[str]:
    """Keep exactly one overview line, directly below the frontmatter.

    The header region is rebuilt as: frontmatter, blank, overview, blank,
    then the rest of the document with its leading blank lines removed.
    """
    end = frontmatter_end(lines)
    head = lines[: end + 1] if end >= 0 else []
    rest = [l for l in lines[end + 1:] if classify_line(l) is not LineKind.OVERVIEW]
    start = 0
    while start < len(rest) and is_blank(rest[start]):
        start += 1
    rest = rest[start:]
    prefix = head + [""] if head else []
    return prefix + [OVERVIEW_PLACEHOLDER, ""] + rest


def _ids_in_section(heading: str, lines: List[str]) -> Tuple[set, set]:
    h = heading_index(heading, lines)
    if h is None:
        return set(), set()
    sents, vocab = set(), set()
    for line in lines[h + 1:section_end(h, lines)]:
        sents.update(SENT_ID_RE.findall(line))
        vocab.update(VOCAB_ID_RE.findall(line))
    return sents, vocab


def overview_counts(lines: List[str]) -> Tuple[int, int, int, int]:
    """(active vocab, mastered vocab, active sentences, mastered sentences)."""
    active_s, active_v = set(), set()
    for heading in (VOCAB_HEADING, SENTENCES_HEADING, REVIEW_HEADING):
        s, v = _ids_in_section(heading, lines)
        active_s |= s
        active_v |= v
    _, mastered_v = _ids_in_section(MASTERED_VOCAB_HEADING, lines)
    mastered_s, _ = _ids_in_section(MASTERED_SENTENCES_HEADING, lines)
    return len(active_v), len(mastered_v), len(active_s), len(mastered_s)


def render_overview(vocab: int, mastered_vocab: int, sentences: int, mastered_sentences: int) -> str:
    v = f"Vocabulary: {vocab}"
    if mastered_vocab:
        v += f" (Mastered {mastered_vocab})"
    s = f"Sentences: {sentences}"
    if mastered_sentences:
        s += f" (Mastered {mastered_sentences})"
    return f"**Overview:** {v} | {s}"


def refresh_overview(lines: List[str]) -> Tuple[int, int]:
    """Rewrite the overview line in place; returns (active vocab, active sentences)."""
    vocab, m_vocab, sents, m_sents = overview_counts(lines)
    rendered = render_overview(vocab, m_vocab, sents, m_sents)
    for i, line in enumerate(lines):
        if classify_line(line) is LineKind.OVERVIEW:
            lines[i] = rendered
            break
    return vocab, sents
