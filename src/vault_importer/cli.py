"""CLI entrypoint for the vault importer.

Usage:
  vaultimporter preview --vault ~/Notes --sentences sentences.csv --vocab vocab.csv
  vaultimporter import  --vault ~/Notes --sentences sentences.csv --vocab vocab.csv
  vaultimporter archive --vault ~/Notes
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List

from .column_mapping import ColumnMapping, ColumnMappingStore, NeedsColumnMapping
from .imported_index import COLUMN_MAPPINGS_FILE_NAME, PRIMARY_DIR_NAME
from .ingest import IngestError, load_preview
from .maintenance import scan_and_archive
from .models import ImportMode, ImportCancelled, MergedLayoutStrategy, YearCompletionStrategy
from .planner import BlockingWarningsError, perform_import, prepare_plan
from .preferences import Preferences, load_preferences, sanitize_root_relative_path
from .report import print_plan_summary, write_plan_csv
from .schema import RecordKind, auto_map, detect_kind, header_signature, schema_for
from .word_export import export_words


def config_path(args: argparse.Namespace) -> Path:
    if args.config:
        return Path(args.config)
    return Path(args.vault) / PRIMARY_DIR_NAME / "config.json"


def mapping_store(args: argparse.Namespace) -> ColumnMappingStore:
    return ColumnMappingStore(Path(args.vault) / PRIMARY_DIR_NAME / COLUMN_MAPPINGS_FILE_NAME)


def resolve_preferences(args: argparse.Namespace) -> Preferences:
    prefs = load_preferences(config_path(args))
    return prefs.with_overrides(
        output_root=sanitize_root_relative_path(args.output_root) if args.output_root else None,
        organize_by_date_folder=False if args.flat else None,
        merged_layout_strategy=MergedLayoutStrategy(args.layout) if args.layout else None,
        year_completion_strategy=YearCompletionStrategy(args.year_strategy) if args.year_strategy else None,
        highlight_vocab_in_sentences=False if args.no_highlight else None,
        auto_archive_mastered=False if args.no_archive else None,
        add_mastered_tag=True if args.mastered_tag else None,
    )


def _print_needs_mapping(e: NeedsColumnMapping) -> None:
    pending = e.pending
    print(f"Error: {e}")
    print("Columns:")
    for idx, name in enumerate(pending.header):
        print(f"  {idx}: {name}")
    print(
        f"Run: vaultimporter map-columns --vault <vault> --csv {pending.file_path} "
        f"--kind {pending.kind.value} --map <field>=<column index> ..."
    )


def _plan(args: argparse.Namespace):
    prefs = resolve_preferences(args)
    return prepare_plan(
        args.vault,
        sentence_csv=args.sentences,
        vocab_csv=args.vocab,
        mode=ImportMode(args.mode),
        preferences=prefs,
        mapping_store=mapping_store(args),
    )


def cmd_preview(args: argparse.Namespace) -> int:
    try:
        plan = _plan(args)
    except NeedsColumnMapping as e:
        _print_needs_mapping(e)
        return 1
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    print_plan_summary(plan)
    if args.report:
        write_plan_csv(args.report, plan)
        print(f"Wrote report: {args.report}")
    if not plan.can_commit:
        print("Import is blocked until the errors above are resolved.")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    try:
        plan = _plan(args)
    except NeedsColumnMapping as e:
        _print_needs_mapping(e)
        return 1
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    print_plan_summary(plan)
    try:
        summary = perform_import(plan)
    except BlockingWarningsError as e:
        print(f"Error: import blocked: {e}")
        return 1
    except ImportCancelled:
        print("Import cancelled.")
        return 1

    print(summary.render())
    if summary.log_path is not None:
        print(f"Log: {summary.log_path}")
    return 1 if summary.failed_paths else 0


def cmd_archive(args: argparse.Namespace) -> int:
    try:
        prefs = resolve_preferences(args)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    summary = scan_and_archive(args.vault, prefs, preview_only=args.dry_run)
    print(summary.render())
    return 1 if summary.failed_paths else 0


def cmd_export_words(args: argparse.Namespace) -> int:
    try:
        result = export_words(
            args.vault,
            args.vocab,
            args.out,
            mapping_store=mapping_store(args),
            preview_only=args.dry_run,
        )
    except NeedsColumnMapping as e:
        _print_needs_mapping(e)
        return 1
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    if args.out is None or args.dry_run:
        for word in result.words:
            print(word)
    print(
        f"Exported {len(result.words)} word(s); skipped {result.skipped_already_exported} "
        f"already exported, {result.skipped_in_destination} already in file"
    )
    if args.out and not args.dry_run:
        print(f"Wrote word list: {args.out}")
    return 0


def _parse_assignments(pairs: List[str], header: List[str]) -> dict:
    out = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f"Expected <field>=<column>, got '{pair}'")
        value = value.strip()
        if value.isdigit():
            idx = int(value)
        elif value in header:
            idx = header.index(value)
        else:
            raise ValueError(f"Unknown column '{value}'")
        if not 0 <= idx < len(header):
            raise ValueError(f"Column index out of range: {idx}")
        out[name.strip()] = idx
    return out


def cmd_map_columns(args: argparse.Namespace) -> int:
    kind = RecordKind(args.kind)
    schema = schema_for(kind)
    try:
        preview = load_preview(args.csv)
    except (OSError, IngestError) as e:
        print(f"Error: {e}")
        return 1

    if not args.map:
        suggested = auto_map(schema, preview.header)
        print(f"Header ({preview.delimiter.value}-separated):")
        for idx, name in enumerate(preview.header):
            print(f"  {idx}: {name}")
        print("Suggested mapping:")
        for name, idx in suggested.field_to_index.items():
            print(f"  {name}={idx}")
        if suggested.missing_required:
            print(f"Missing required: {', '.join(suggested.missing_required)}")
        return 0

    try:
        fields = _parse_assignments(args.map, preview.header)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    known = {f.canonical_name for f in schema.fields}
    unknown = sorted(set(fields) - known)
    if unknown:
        print(f"Error: unknown field(s) for {kind.value}: {', '.join(unknown)}")
        return 1
    missing = [name for name in schema.required_names if name not in fields]
    if missing:
        print(f"Error: missing required field(s): {', '.join(missing)}")
        return 1

    mapping = ColumnMapping(kind, header_signature(preview.header), fields)
    store = mapping_store(args)
    store.save(mapping)
    print(f"Saved {kind.value} mapping to: {store.path}")
    return 0


def cmd_detect(args: argparse.Namespace) -> int:
    try:
        preview = load_preview(args.csv)
    except (OSError, IngestError) as e:
        print(f"Error: {e}")
        return 1
    kind = detect_kind(preview.header, args.csv)
    print(f"Delimiter: {preview.delimiter.value}")
    print(f"Header:    {', '.join(preview.header)}")
    print(f"Kind:      {kind.value if kind else 'unknown'}")
    if kind is not None:
        mapping = auto_map(schema_for(kind), preview.header)
        for name, idx in mapping.field_to_index.items():
            print(f"  {name} -> {preview.header[idx]}")
    return 0


def _add_vault_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--vault", required=True, help="Path to the Obsidian vault")
    p.add_argument(
        "--config",
        help="Path to preferences JSON (default: <vault>/.obsidian-vocab-importer/config.json)",
    )


def _add_preference_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--output-root", help="Notes folder inside the vault (default: English Clips)")
    p.add_argument("--flat", action="store_true", help="Write <date>.md instead of <date>/Review.md")
    p.add_argument(
        "--layout",
        choices=[s.value for s in MergedLayoutStrategy],
        help="Section layout for merged imports",
    )
    p.add_argument(
        "--year-strategy",
        choices=[s.value for s in YearCompletionStrategy],
        help="Where the year comes from for vocabulary dates without one",
    )
    p.add_argument("--no-highlight", action="store_true", help="Do not bold vocabulary in sentences")
    p.add_argument("--no-archive", action="store_true", help="Do not move checked entries to Mastered")
    p.add_argument("--mastered-tag", action="store_true", help="Tag archived entries with #mastered")


def _add_input_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--sentences", help="Path to sentence CSV export")
    p.add_argument("--vocab", help="Path to vocabulary CSV export")
    p.add_argument(
        "--mode",
        choices=[m.value for m in ImportMode],
        default=ImportMode.MERGED.value,
        help="What to import (default: merged)",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="vaultimporter", description="Import vocabulary exports into an Obsidian vault")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    preview = sub.add_parser("preview", help="Show what an import would change (writes nothing)")
    _add_vault_args(preview)
    _add_input_args(preview)
    _add_preference_args(preview)
    preview.add_argument("--report", help="Optional path to a per-note CSV report")
    preview.set_defaults(func=cmd_preview)

    imp = sub.add_parser("import", help="Import CSV exports into daily notes")
    _add_vault_args(imp)
    _add_input_args(imp)
    _add_preference_args(imp)
    imp.set_defaults(func=cmd_import)

    archive = sub.add_parser("archive", help="Move checked entries to Mastered sections in all notes")
    _add_vault_args(archive)
    _add_preference_args(archive)
    archive.add_argument("--dry-run", action="store_true", help="Report only, write nothing")
    archive.set_defaults(func=cmd_archive)

    export = sub.add_parser("export-words", help="Export words not yet exported as a plain word list")
    _add_vault_args(export)
    export.add_argument("--vocab", required=True, help="Path to vocabulary CSV export")
    export.add_argument("--out", help="Word list file to append to (default: print to stdout)")
    export.add_argument("--dry-run", action="store_true", help="List words without recording them")
    export.set_defaults(func=cmd_export_words)

    mapc = sub.add_parser("map-columns", help="Show or save a column mapping for a CSV header")
    _add_vault_args(mapc)
    mapc.add_argument("--csv", required=True, help="CSV file whose header should be mapped")
    mapc.add_argument("--kind", required=True, choices=[k.value for k in RecordKind])
    mapc.add_argument(
        "--map",
        action="append",
        metavar="FIELD=COLUMN",
        help="Field assignment by column index or header text (repeatable)",
    )
    mapc.set_defaults(func=cmd_map_columns)

    detect = sub.add_parser("detect", help="Detect delimiter and record kind of a CSV")
    detect.add_argument("--csv", required=True, help="CSV file to inspect")
    detect.set_defaults(func=cmd_detect)

    return p


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
