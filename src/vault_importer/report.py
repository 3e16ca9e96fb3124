"""Reporting utilities for import plans."""

from __future__ import annotations

from typing import List

from .ingest import write_csv
from .planner import ImportPlan


def plan_to_rows(plan: ImportPlan) -> List[dict]:
    rows = []
    for day in plan.days:
        rows.append(
            {
                "date": day.date,
                "path": str(day.path),
                "new_file": day.is_new_file,
                "appended_sentences": day.appended_sentences,
                "appended_vocab": day.appended_vocab,
                "total_sentences": day.preview.total_sentences,
                "total_vocab": day.preview.total_vocab,
                "moved_mastered": day.moved_mastered,
            }
        )
    return rows


def write_plan_csv(path: str, plan: ImportPlan) -> None:
    """Write one row per affected note.

    Args:
        path: Output CSV file path
        plan: Plan returned by prepare_plan
    """
    write_csv(path, plan_to_rows(plan))


def print_plan_summary(plan: ImportPlan) -> None:
    """Print a human summary of a plan (nothing has been written yet)."""
    print("Import Preview:")
    print(f"  Mode:                   {plan.mode.value}")
    if plan.mode.wants_vocab:
        print(f"  Fallback year:          {plan.fallback_year}")
    print(f"  Notes to update:        {len(plan.days)}")
    print(f"  New sentences:          {plan.appended_sentences}")
    print(f"  New vocab:              {plan.appended_vocab}")
    print(f"  Already imported:       {plan.skipped_index_duplicates}")
    print(f"  Duplicate rows:         {plan.skipped_batch_duplicates}")
    print(f"  Failed rows:            {len(plan.failures)}")
    if plan.moved_mastered:
        print(f"  Mastered to archive:    {plan.moved_mastered}")
    print()

    if plan.days:
        print("Notes:")
        for day in plan.days:
            marker = "new" if day.is_new_file else "update"
            print(
                f"  {day.date} [{marker:>6}] +{day.appended_sentences} sentence(s), "
                f"+{day.appended_vocab} vocab -> {day.path}"
            )
        print()

    if plan.failures:
        print("Row failures:")
        for failure in plan.failures:
            print(f"  {failure.log_line}")
        print()

    if plan.warnings:
        print("Warnings:")
        for w in plan.warnings:
            print(f"  {w.render()}")
        print()
