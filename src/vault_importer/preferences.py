"""Import preferences, passed explicitly into every planner/synchronizer call.

Loaded from a JSON file; a missing file means defaults. Unknown enum values
fall back to the default rather than failing the run.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Dict

from .models import MergedLayoutStrategy, YearCompletionStrategy

DEFAULT_OUTPUT_ROOT = "English Clips"


@dataclass(frozen=True)
class Preferences:
    output_root: str = DEFAULT_OUTPUT_ROOT
    organize_by_date_folder: bool = True
    year_completion_strategy: YearCompletionStrategy = YearCompletionStrategy.SYSTEM_YEAR
    merged_layout_strategy: MergedLayoutStrategy = MergedLayoutStrategy.VOCAB_THEN_SENTENCES
    highlight_vocab_in_sentences: bool = True
    auto_archive_mastered: bool = True
    add_mastered_tag: bool = False

    def with_overrides(self, **kwargs: Any) -> "Preferences":
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["year_completion_strategy"] = self.year_completion_strategy.value
        out["merged_layout_strategy"] = self.merged_layout_strategy.value
        return out

    def output_root_path(self, vault_path: str | Path) -> Path:
        return Path(vault_path) / self.output_root

    def output_file_path(self, vault_path: str | Path, date: str) -> Path:
        """`<root>/<date>/Review.md` when organizing by folder, else `<root>/<date>.md`."""
        root = self.output_root_path(vault_path)
        if self.organize_by_date_folder:
            return root / date / "Review.md"
        return root / f"{date}.md"


def sanitize_root_relative_path(raw: str) -> str:
    """Keep the output root inside the vault: no absolute paths, no `..`."""
    parts = (raw or "").strip().replace("\\", "/").split("/")
    return "/".join(p for p in parts if p and p not in (".", ".."))


def _enum_or_default(enum_cls, raw, default):
    try:
        return enum_cls(raw)
    except ValueError:
        return default


def preferences_from_dict(data: Dict[str, Any]) -> Preferences:
    d = Preferences()
    root = sanitize_root_relative_path(str(data.get("output_root", d.output_root)))
    return Preferences(
        output_root=root or DEFAULT_OUTPUT_ROOT,
        organize_by_date_folder=bool(data.get("organize_by_date_folder", d.organize_by_date_folder)),
        year_completion_strategy=_enum_or_default(
            YearCompletionStrategy, data.get("year_completion_strategy"), d.year_completion_strategy
        ),
        merged_layout_strategy=_enum_or_default(
            MergedLayoutStrategy, data.get("merged_layout_strategy"), d.merged_layout_strategy
        ),
        highlight_vocab_in_sentences=bool(
            data.get("highlight_vocab_in_sentences", d.highlight_vocab_in_sentences)
        ),
        auto_archive_mastered=bool(data.get("auto_archive_mastered", d.auto_archive_mastered)),
        add_mastered_tag=bool(data.get("add_mastered_tag", d.add_mastered_tag)),
    )


def load_preferences(path: str | Path | None) -> Preferences:
    """Load preferences from JSON.

    Raises:
        ValueError: if the file exists but is not a JSON object
    """
    if path is None:
        return Preferences()
    path = Path(path)
    if not path.exists():
        return Preferences()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in preferences file: {e}")
    if not isinstance(data, dict):
        raise ValueError("Preferences file must contain a JSON object")
    return preferences_from_dict(data)
