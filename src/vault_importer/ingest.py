"""Tolerant CSV ingest for vocabulary/sentence exports.

Exports come from several apps and are often hand-edited, so this reader is
deliberately more forgiving than the stdlib csv module:
- the delimiter (comma, tab, semicolon) is sniffed from the first non-blank line;
- the text encoding is guessed from a fallback chain;
- a quote only opens a quoted field at the start of a field, so stray quotes
  inside unquoted text are kept literally;
- CR, CRLF and LF all end a row;
- blank lines before the header are skipped.
"""

from __future__ import annotations

import codecs
import csv
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .models import check_cancelled
from .normalize import is_blank

SNIFF_BYTES = 65_536

# UTF-16 variants are only attempted when the data looks like UTF-16 (BOM or
# NUL bytes); otherwise any even-length Latin-1 file would "decode" as UTF-16.
ENCODING_CHAIN = ("utf-8", "utf-16", "utf-16-le", "utf-16-be", "latin-1", "mac_roman")
_UTF16_ENCODINGS = {"utf-16", "utf-16-le", "utf-16-be"}

ProgressFn = Callable[[float], None]


class IngestError(ValueError):
    """Input file cannot be used at all (as opposed to a bad row)."""


class EmptyFileError(IngestError):
    def __init__(self, path: str | Path | None = None) -> None:
        name = Path(path).name if path else "CSV"
        super().__init__(f"{name} is empty")


class UnreadableEncodingError(IngestError):
    def __init__(self, path: str | Path | None = None) -> None:
        name = Path(path).name if path else "file"
        super().__init__(
            f"{name}: unsupported text encoding (tried UTF-8/UTF-16/Latin-1/Mac Roman)"
        )


class Delimiter(str, Enum):
    COMMA = "comma"
    TAB = "tab"
    SEMICOLON = "semicolon"

    @property
    def char(self) -> str:
        return {"comma": ",", "tab": "\t", "semicolon": ";"}[self.value]


def _looks_like_utf16(data: bytes) -> bool:
    return data[:2] in (codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE) or b"\x00" in data


def decode_lossy(data: bytes, partial: bool = False) -> Optional[str]:
    """Decode bytes with the first encoding in ENCODING_CHAIN that succeeds.

    With partial=True a multi-byte sequence cut off at the end of `data` is
    tolerated (used when sniffing a prefix of a file).
    """
    utf16_ok = _looks_like_utf16(data)
    for enc in ENCODING_CHAIN:
        if enc in _UTF16_ENCODINGS and not utf16_ok:
            continue
        try:
            decoder = codecs.getincrementaldecoder(enc)()
            return decoder.decode(data, final=not partial)
        except UnicodeDecodeError:
            continue
    return None


def read_text_lossy(path: str | Path) -> Optional[str]:
    """Read a text file with the encoding fallback chain; None if undecodable."""
    return decode_lossy(Path(path).read_bytes())


def detect_delimiter(data: bytes) -> Delimiter:
    """Pick the delimiter that occurs most in the first non-blank line.

    Ties prefer comma, then tab; no candidates at all means comma.
    """
    if not data:
        return Delimiter.COMMA
    text = decode_lossy(data[:SNIFF_BYTES], partial=True)
    if text is None:
        return Delimiter.COMMA

    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    first = next((ln for ln in lines if not is_blank(ln)), None)
    if first is None:
        return Delimiter.COMMA

    comma = first.count(",")
    tab = first.count("\t")
    semi = first.count(";")
    best = max(comma, tab, semi)
    if best == 0 or comma == best:
        return Delimiter.COMMA
    if tab == best:
        return Delimiter.TAB
    return Delimiter.SEMICOLON


def parse_rows(
    text: str,
    delimiter: str = ",",
    max_rows: Optional[int] = None,
    progress: Optional[ProgressFn] = None,
    cancel=None,
) -> List[List[str]]:
    """Split text into rows of fields.

    `cancel` is an optional threading.Event checked after each row.
    """
    total = len(text)
    rows: List[List[str]] = []
    row: List[str] = []
    buf: List[str] = []
    in_quotes = False
    last_report = 0
    i = 0

    def end_row() -> None:
        nonlocal row
        row.append("".join(buf))
        buf.clear()
        rows.append(row)
        row = []

    while i < total:
        ch = text[i]
        if in_quotes:
            if ch == '"':
                if i + 1 < total and text[i + 1] == '"':
                    buf.append('"')
                    i += 1
                else:
                    in_quotes = False
            else:
                buf.append(ch)
        elif ch == '"':
            if all(c in " \t" for c in buf):
                # Leading whitespace before an opening quote is dropped.
                buf.clear()
                in_quotes = True
            else:
                buf.append(ch)
        elif ch == delimiter:
            row.append("".join(buf))
            buf.clear()
        elif ch == "\r" or ch == "\n":
            end_row()
            check_cancelled(cancel)
            if ch == "\r" and i + 1 < total and text[i + 1] == "\n":
                i += 1
            if max_rows is not None and len(rows) >= max_rows:
                break
        else:
            buf.append(ch)

        i += 1
        if progress is not None and (i - last_report >= SNIFF_BYTES or i == total):
            last_report = i
            progress(i / total)

    if (max_rows is None or len(rows) < max_rows) and (row or buf):
        end_row()

    if progress is not None and total == 0:
        progress(1.0)
    return rows


@dataclass
class CSVTable:
    header: List[str]
    rows: List[List[str]] = field(default_factory=list)
    first_data_row_number: int = 2  # 1-based line number of rows[0]


@dataclass
class CSVPreview:
    delimiter: Delimiter
    header: List[str]
    sample_rows: List[List[str]]


def _split_header(rows: List[List[str]], path: str | Path) -> tuple[int, List[str]]:
    for idx, r in enumerate(rows):
        if not all(is_blank(c) for c in r):
            return idx, r
    raise EmptyFileError(path)


def load_table(
    path: str | Path,
    delimiter: Optional[Delimiter] = None,
    progress: Optional[ProgressFn] = None,
    cancel=None,
) -> CSVTable:
    """Read a whole CSV file into a header plus data rows."""
    path = Path(path)
    data = path.read_bytes()
    text = decode_lossy(data)
    if text is None:
        raise UnreadableEncodingError(path)
    delim = delimiter or detect_delimiter(data)
    rows = parse_rows(text, delim.char, progress=progress, cancel=cancel)
    if not rows:
        raise EmptyFileError(path)
    header_idx, header = _split_header(rows, path)
    return CSVTable(
        header=header,
        rows=rows[header_idx + 1:],
        first_data_row_number=header_idx + 2,
    )


def load_preview(path: str | Path, max_rows: int = 16, sample_size: int = 5) -> CSVPreview:
    """Read just enough of a CSV for header resolution and a few sample rows."""
    path = Path(path)
    with path.open("rb") as f:
        prefix = f.read(SNIFF_BYTES)
    delimiter = detect_delimiter(prefix)
    text = decode_lossy(prefix, partial=True)
    if text is None:
        raise UnreadableEncodingError(path)
    rows = parse_rows(text, delimiter.char, max_rows=max_rows)
    if not rows:
        raise EmptyFileError(path)
    header_idx, header = _split_header(rows, path)
    sample = rows[header_idx + 1: header_idx + 1 + sample_size]
    return CSVPreview(delimiter=delimiter, header=header, sample_rows=sample)


def write_csv(path: str | Path, rows: Iterable[dict]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = list(rows)
    if not rows:
        # Write empty file with no rows
        with path.open("w", encoding="utf-8", newline="") as f:
            f.write("")
        return
    fieldnames = list(rows[0].keys())
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for r in rows:
            writer.writerow(r)
