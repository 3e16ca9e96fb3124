"""Vault importer package.

Merges vocabulary and sentence CSV exports into dated Markdown review notes
inside an Obsidian vault, without ever duplicating an entry.
"""

__all__ = [
    "normalize",
    "models",
    "dates",
    "ingest",
    "schema",
    "column_mapping",
    "record_parser",
    "atomic_write",
    "imported_index",
    "self_heal",
    "document",
    "frontmatter",
    "layout",
    "highlight",
    "render",
    "synchronizer",
    "preferences",
    "import_log",
    "planner",
    "maintenance",
    "word_export",
    "report",
    "cli",
]
