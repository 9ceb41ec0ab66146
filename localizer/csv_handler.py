"""CSV import/export of the translation store, plus the text report."""

import csv
import io
import logging
import os
from datetime import datetime
from typing import Iterable, Optional

from .utils import atomic_write_text

log = logging.getLogger(__name__)


def escape_field(value: Optional[str]) -> str:
    """Quote a field only when it contains a comma, quote or line break."""
    if not value:
        return ""
    if any(c in value for c in (",", '"', "\n", "\r")):
        return '"' + value.replace('"', '""') + '"'
    return value


def write_csv(path: str, rows: Iterable[list]):
    lines = [",".join(escape_field(v) for v in row) for row in rows]
    atomic_write_text(path, "\n".join(lines) + "\n")


def read_csv(path: str) -> Optional[list]:
    """Read all rows of a CSV file; returns None when the file is missing."""
    if not os.path.isfile(path):
        log.error("CSV file not found: %s", path)
        return None
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        return [row for row in csv.reader(f) if row]


def _store_row(data, key: str) -> list:
    return [key] + [data.get_translation(key, lang) for lang in data.languages]


# ── Export ───────────────────────────────────────────────────────

def export_current_keys(path: str, data) -> int:
    """Write every key of the store with its translations.

    Any CSV already at *path* is ignored.  Returns the row count.
    """
    data.ensure_alignment()
    rows = [list(data.supported_languages)]
    rows.extend(_store_row(data, key) for key in data.all_keys)
    write_csv(path, rows)
    log.info("Exported %d keys to %s", len(rows) - 1, path)
    return len(rows) - 1


def extract_to_csv(path: str, extracted: Iterable[str], data) -> int:
    """Write a fresh CSV for *extracted*, reusing in-memory translations."""
    rows = [list(data.supported_languages)]
    blanks = [""] * len(data.languages)
    for text in sorted(extracted):
        rows.append(_store_row(data, text) if data.has_key(text) else [text] + blanks)
    write_csv(path, rows)
    log.info("Extracted %d keys to %s", len(rows) - 1, path)
    return len(rows) - 1


def update_existing_csv(path: str, extracted: Iterable[str], data) -> int:
    """Rewrite the CSV at *path* for *extracted* keys.

    Translations already in the CSV win; blanks are then filled from the
    store.  Keys known to neither get empty translation columns.  Columns
    are matched by language name; store languages missing from the old
    header are appended.
    """
    existing = {}
    header = list(data.supported_languages)
    old_rows = read_csv(path) if os.path.isfile(path) else None
    if old_rows:
        old_header = old_rows[0]
        header = list(old_header) + [l for l in data.supported_languages if l not in old_header]
        for row in old_rows[1:]:
            if row[0].strip():
                existing[row[0]] = {old_header[i]: row[i]
                                    for i in range(1, min(len(row), len(old_header)))}

    rows = [header]
    for text in sorted(extracted):
        previous = existing.get(text, {})
        row = [text]
        for lang in header[1:]:
            value = previous.get(lang, "")
            if not value and data.has_key(text):
                value = data.get_translation(text, lang)
            row.append(value)
        rows.append(row)
    write_csv(path, rows)
    log.info("Updated %s: %d keys (%d carried over from the previous file)",
             path, len(rows) - 1, sum(1 for t in rows[1:] if t[0] in existing))
    return len(rows) - 1


# ── Import ───────────────────────────────────────────────────────

def import_csv(path: str, data) -> dict:
    """Replace the store's keys and translations with the CSV content.

    The header must contain the store's default language.  Other columns
    become languages of the store.  Rows shorter than the header leave
    the missing columns blank; rows with an empty key are skipped.

    Returns:
        Dict with stats: {"keys": int, "languages": int, "skipped": int}
    """
    rows = read_csv(path)
    if not rows:
        log.error("Nothing to import from %s", path)
        return {"keys": 0, "languages": 0, "skipped": 0}

    header = [h.strip() for h in rows[0]]
    if data.default_language not in header:
        raise ValueError(
            f"CSV header of {path} has no column for the default language "
            f"{data.default_language!r}")
    key_col = header.index(data.default_language)
    lang_cols = [(i, lang) for i, lang in enumerate(header) if i != key_col and lang]

    for _, lang in lang_cols:
        data.add_language(lang)
    data.clear()
    stats = {"keys": 0, "languages": len(lang_cols), "skipped": 0}

    for line_no, row in enumerate(rows[1:], start=2):
        key = row[key_col] if key_col < len(row) else ""
        if not key.strip():
            stats["skipped"] += 1
            continue
        if len(row) < len(header):
            log.warning("%s line %d: %d of %d columns, padding with blanks",
                        path, line_no, len(row), len(header))
        if not data.add_key(key):
            log.warning("%s line %d: duplicate key %r, later row wins", path, line_no, key)
        for i, lang in lang_cols:
            data.set_translation(key, lang, row[i] if i < len(row) else "")
        stats["keys"] += 1

    log.info("Imported %d keys in %d languages from %s",
             stats["keys"], stats["languages"], path)
    return stats


# ── Report ───────────────────────────────────────────────────────

def _write_sources(out, metadata, key: str, title: str):
    sources = metadata.get_sources(key) if metadata is not None else []
    if sources:
        out.write(f"  {title}:\n")
        for s in sources:
            out.write(f"    - {s.source_type.value} in {s.source_path}\n")


def generate_report(path: str, data, extracted: Iterable[str],
                    metadata=None, extractors: Optional[list] = None,
                    enabled: Optional[dict] = None):
    """Write a plain-text health report of the translation store.

    Args:
        extracted: Keys found by the latest extraction.
        extractors: Extractor instances to list (name, priority, description).
        enabled: {extractor name: bool}; missing names use the extractor default.
    """
    extracted = set(extracted)
    known = set(data.all_keys)
    unused = [k for k in data.all_keys if k not in extracted]
    missing = sorted(extracted - known)
    enabled = enabled or {}

    out = io.StringIO()
    out.write("Translation System Report\n")
    out.write("========================\n")
    out.write(f"Generated: {datetime.now():%Y-%m-%d %H:%M:%S}\n\n")

    out.write("Statistics:\n")
    out.write(f"Total Keys: {len(data.all_keys)}\n")
    out.write(f"Total Languages: {len(data.supported_languages)}\n")
    out.write(f"Unused Keys: {len(unused)}\n")
    out.write(f"Missing Keys: {len(missing)}\n\n")

    out.write("Active Extractors:\n")
    for ex in extractors or []:
        on = enabled.get(ex.name, ex.enabled_by_default)
        out.write(f"- [{'X' if on else ' '}] {ex.name}\n")
        out.write(f"    Priority: {ex.priority}\n")
        out.write(f"    Description: {ex.description}\n\n")

    out.write("Language Coverage:\n")
    for lang in data.languages:
        done, total = data.coverage(lang)
        pct = done * 100.0 / total if total else 100.0
        out.write(f"{lang}: {pct:.1f}% ({done}/{total})\n")

    if unused:
        out.write("\nUnused Keys:\n")
        for key in unused:
            out.write(f"- {key}\n")
            _write_sources(out, metadata, key, "Last known locations")

    if missing:
        out.write("\nMissing Keys:\n")
        for key in missing:
            out.write(f"- {key}\n")
            _write_sources(out, metadata, key, "Found in")

    atomic_write_text(path, out.getvalue())
    log.info("Report written to %s (%d unused, %d missing)", path, len(unused), len(missing))
