"""Line-buffer primitives for the review documents this package writes.

The documents are a narrow, self-produced Markdown dialect:

    ---
    date: 2026-02-09
    source: imported
    tags: [english, review]
    ---

    **Overview:** Vocabulary: 1 | Sentences: 1

    ## Vocabulary

    - [ ] word  /phonetic/ %% id: vocab_<sha1> %%
      - 释义：translation

Everything here works in two passes: classify a line (classify_line /
split_entry_blocks), then mutate the list of lines. Content that does not
fit the dialect is kept verbatim as opaque lines or unknown blocks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Set, Tuple

VOCAB_HEADING = "## Vocabulary"
SENTENCES_HEADING = "## Sentences"
REVIEW_HEADING = "## Review"
MASTERED_VOCAB_HEADING = "## Mastered Vocabulary"
MASTERED_SENTENCES_HEADING = "## Mastered Sentences"

ACTIVE_HEADINGS = (VOCAB_HEADING, SENTENCES_HEADING, REVIEW_HEADING)
MASTERED_HEADINGS = (MASTERED_VOCAB_HEADING, MASTERED_SENTENCES_HEADING)
SENTENCE_BEARING_HEADINGS = (REVIEW_HEADING, SENTENCES_HEADING, MASTERED_SENTENCES_HEADING)

OVERVIEW_PREFIX = "**Overview:**"
FRONTMATTER_FENCE = "---"
ENTRY_HEAD_PREFIX = "- ["

VOCAB_ID_RE = re.compile(r"\bvocab_[0-9a-f]{40}\b")
SENT_ID_RE = re.compile(r"\bsent_[0-9a-f]{40}\b")


class LineKind(Enum):
    BLANK = "blank"
    FENCE = "fence"
    HEADING = "heading"
    OVERVIEW = "overview"
    ENTRY_HEAD = "entry_head"
    TEXT = "text"


def classify_line(raw: str) -> LineKind:
    stripped = raw.strip()
    if not stripped:
        return LineKind.BLANK
    if raw == FRONTMATTER_FENCE:
        return LineKind.FENCE
    if stripped.startswith("## "):
        return LineKind.HEADING
    if raw.startswith(OVERVIEW_PREFIX):
        return LineKind.OVERVIEW
    if raw.startswith(ENTRY_HEAD_PREFIX):
        return LineKind.ENTRY_HEAD
    return LineKind.TEXT


def is_blank(raw: str) -> bool:
    return classify_line(raw) is LineKind.BLANK


def extract_ids(text: str) -> Tuple[Set[str], Set[str]]:
    """All embedded (sentence IDs, vocab IDs) in a document."""
    return set(SENT_ID_RE.findall(text or "")), set(VOCAB_ID_RE.findall(text or ""))


def split_lines(text: Optional[str]) -> List[str]:
    if text is None:
        return []
    return text.split("\n")


def join_lines(lines: List[str]) -> str:
    out = "\n".join(lines)
    if not out.endswith("\n"):
        out += "\n"
    return out


# --- Entry blocks ----------------------------------------------------------


class BlockKind(Enum):
    VOCAB = "vocab"
    SENTENCE = "sentence"
    UNKNOWN = "unknown"


@dataclass
class EntryBlock:
    kind: BlockKind
    id: Optional[str]
    checked: bool
    lines: List[str]
    is_entry: bool = True

    @property
    def content_lines(self) -> List[str]:
        """Block lines without trailing blank lines."""
        end = len(self.lines)
        while end > 1 and is_blank(self.lines[end - 1]):
            end -= 1
        return self.lines[:end]

    @property
    def trailing_blank_lines(self) -> List[str]:
        return self.lines[len(self.content_lines):]


def parse_entry_block(lines: List[str]) -> EntryBlock:
    """Infer kind and ID from the embedded ID pattern, never from position."""
    checked = bool(lines) and lines[0].lower().startswith("- [x]")
    text = "\n".join(lines)
    m = VOCAB_ID_RE.search(text)
    if m:
        return EntryBlock(BlockKind.VOCAB, m.group(0), checked, list(lines))
    m = SENT_ID_RE.search(text)
    if m:
        return EntryBlock(BlockKind.SENTENCE, m.group(0), checked, list(lines))
    return EntryBlock(BlockKind.UNKNOWN, None, checked, list(lines))


def split_entry_blocks(section_lines: List[str]) -> List[EntryBlock]:
    """Group lines into entry blocks.

    An entry block runs from a checklist head line up to the next head line or
    heading. Lines before the first head become single-line non-entry blocks.
    """
    blocks: List[EntryBlock] = []
    i = 0
    n = len(section_lines)
    while i < n:
        if classify_line(section_lines[i]) is LineKind.ENTRY_HEAD:
            start = i
            i += 1
            while i < n and classify_line(section_lines[i]) not in (LineKind.ENTRY_HEAD, LineKind.HEADING):
                i += 1
            blocks.append(parse_entry_block(section_lines[start:i]))
        else:
            blocks.append(
                EntryBlock(BlockKind.UNKNOWN, None, False, [section_lines[i]], is_entry=False)
            )
            i += 1
    return blocks


def flatten(blocks: List[EntryBlock]) -> List[str]:
    return [line for b in blocks for line in b.lines]


def checklist_head_text(line: str) -> Optional[str]:
    """Visible text of a checklist head line, without app comments or tags."""
    if not line.startswith(ENTRY_HEAD_PREFIX):
        return None
    pos = line.find("] ")
    if pos < 0:
        return None
    return strip_trailing_app_tags(line[pos + 2:])


def split_head_line(line: str) -> Tuple[str, str, str]:
    """Split a head line into (checkbox prefix, visible text, trailing comment).

    The trailing comment starts at the first `%%` or `<!--` and is returned
    untouched so rewriting the visible text can never alter an embedded ID.
    """
    pos = line.find("] ")
    if not line.startswith(ENTRY_HEAD_PREFIX) or pos < 0:
        return "", line, ""
    prefix, rest = line[: pos + 2], line[pos + 2:]
    cut = len(rest)
    for marker in ("%%", "<!--"):
        k = rest.find(marker)
        if 0 <= k < cut:
            cut = k
    return prefix, rest[:cut], rest[cut:]


def strip_inline_comments(text: str) -> str:
    """Remove `<!-- ... -->` and `%% ... %%` comments (unterminated: to end)."""
    t = text
    for opener, closer in (("<!--", "-->"), ("%%", "%%")):
        while True:
            start = t.find(opener)
            if start < 0:
                break
            end = t.find(closer, start + len(opener))
            if end < 0:
                t = t[:start]
                break
            t = t[:start] + t[end + len(closer):]
    return t


def strip_trailing_app_tags(text: str) -> str:
    # Only tags this package writes; splitting on '#' generally would break "C#".
    t = strip_inline_comments(text).strip()
    changed = True
    while changed:
        changed = False
        for tag in (" #wrong", " #mastered"):
            if t.endswith(tag):
                t = t[: -len(tag)].strip()
                changed = True
    return t


# --- Sections --------------------------------------------------------------


def heading_index(heading: str, lines: List[str]) -> Optional[int]:
    for i, line in enumerate(lines):
        if line.strip() == heading:
            return i
    return None


def section_end(start: int, lines: List[str]) -> int:
    """Index of the next heading after `start`, or len(lines)."""
    i = start + 1
    while i < len(lines) and classify_line(lines[i]) is not LineKind.HEADING:
        i += 1
    return i


def _first_mastered_index(lines: List[str]) -> Optional[int]:
    for i, line in enumerate(lines):
        if line.strip() in MASTERED_HEADINGS:
            return i
    return None


def ensure_heading(heading: str, lines: List[str]) -> None:
    """Create `heading` if absent; active sections go before any Mastered one."""
    if heading_index(heading, lines) is not None:
        return
    at = len(lines)
    if heading not in MASTERED_HEADINGS:
        first_mastered = _first_mastered_index(lines)
        if first_mastered is not None:
            at = first_mastered

    if at > 0 and not is_blank(lines[at - 1]):
        lines.insert(at, "")
        at += 1
    lines.insert(at, heading)
    at += 1
    if at >= len(lines) or not is_blank(lines[at]):
        lines.insert(at, "")


def extract_section(heading: str, lines: List[str]) -> Optional[List[str]]:
    """Remove a whole section (heading + content) and return its content lines."""
    h = heading_index(heading, lines)
    if h is None:
        return None
    end = section_end(h, lines)
    content = lines[h + 1:end]
    del lines[h:end]
    # Collapse the double blank line the removal may leave behind.
    if 0 < h < len(lines) and is_blank(lines[h - 1]) and is_blank(lines[h]):
        del lines[h]
    return content


def strip_blank_edges(entry_lines: List[str]) -> List[str]:
    start, end = 0, len(entry_lines)
    while start < end and is_blank(entry_lines[start]):
        start += 1
    while end > start and is_blank(entry_lines[end - 1]):
        end -= 1
    return entry_lines[start:end]


def append_to_section(heading: str, entry_lines: List[str], lines: List[str]) -> None:
    """Append entry lines at the end of a section, creating it if needed.

    Appended content is separated from earlier content (or the heading) by
    exactly one blank line and followed by exactly one blank line.
    """
    ensure_heading(heading, lines)
    entry_lines = strip_blank_edges(entry_lines)
    if not entry_lines:
        return
    h = heading_index(heading, lines)
    end = section_end(h, lines)
    while end > h + 1 and is_blank(lines[end - 1]):
        del lines[end - 1]
        end -= 1
    lines[end:end] = [""] + entry_lines + [""]


def section_blocks(heading: str, lines: List[str]) -> Optional[Tuple[int, int, List[EntryBlock]]]:
    """(content start, content end, blocks) for a section, or None if absent."""
    h = heading_index(heading, lines)
    if h is None:
        return None
    end = section_end(h, lines)
    return h + 1, end, split_entry_blocks(lines[h + 1:end])
