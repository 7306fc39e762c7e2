"""report-writer — Assemble grouped-header spreadsheet reports from cached rows."""

__version__ = "0.1.0"

CACHE_SUFFIX = ".jsonl"
SCHEMA_SUFFIX = ".headers.json"
