from __future__ import annotations

import io
import json
import re
import sqlite3
import tempfile
import zipfile
from html import unescape
from pathlib import Path
from typing import Any


_IMG_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", flags=re.IGNORECASE)
_SOUND_RE = re.compile(r"\[sound:([^\]]+)\]", flags=re.IGNORECASE)

# Created by every collection; not one of ours.
_DEFAULT_DECK_ID = "1"


def _referenced_filenames(rows: list[tuple[Any]]) -> set[str]:
    referenced: set[str] = set()
    for (flds,) in rows:
        if not isinstance(flds, str):
            flds = str(flds)
        for pattern in (_IMG_RE, _SOUND_RE):
            for m in pattern.finditer(flds):
                src = unescape(m.group(1)).strip()
                if src:
                    referenced.add(Path(src).name)
    return referenced


def _read_collection(col_bytes: bytes) -> tuple[list[tuple[Any]], list[str]]:
    """Return (note field rows, deck names) from a collection.anki2 blob."""
    with tempfile.TemporaryDirectory(prefix="apkg_collection_") as tmp:
        tmp_path = Path(tmp) / "collection.anki2"
        tmp_path.write_bytes(col_bytes)
        conn = sqlite3.connect(str(tmp_path))
        try:
            cur = conn.cursor()
            cur.execute("SELECT flds FROM notes ORDER BY id")
            rows = cur.fetchall()
            cur.execute("SELECT decks FROM col")
            col_row = cur.fetchone()
        finally:
            conn.close()

    deck_names: list[str] = []
    if col_row and col_row[0]:
        decks = json.loads(col_row[0])
        for did, deck in decks.items():
            if str(did) == _DEFAULT_DECK_ID:
                continue
            deck_names.append(str(deck.get("name", "")))
    return rows, deck_names


def validate_apkg(apkg: str | Path | bytes) -> tuple[bool, dict[str, Any]]:
    """Validate an Anki .apkg file or in-memory package.

    Rules:
    - Valid zip containing collection.anki2 and the media mapping file
    - Every filename referenced by a note field (<img src=...>, [sound:...])
      maps to exactly one media index, and that index has a blob in the zip
    - Every media entry is referenced by some note (no orphans)
    """
    errors: list[str] = []
    warnings: list[str] = []
    summary: dict[str, Any] = {
        "referenced_filenames": [],
        "media_filenames": [],
        "deck_names": [],
        "note_count": 0,
        "note_fields": [],
        "warnings": warnings,
        "errors": errors,
    }

    if isinstance(apkg, (bytes, bytearray)):
        source: Any = io.BytesIO(apkg)
    else:
        apkg_path = Path(apkg)
        if not apkg_path.exists() or not apkg_path.is_file():
            errors.append(f"apkg_missing: {apkg_path}")
            return False, summary
        source = apkg_path

    try:
        with zipfile.ZipFile(source, "r") as z:
            names = set(z.namelist())
            if "collection.anki2" not in names:
                errors.append("apkg_missing_collection.anki2")
            if "media" not in names:
                errors.append("apkg_missing_media_mapping")
            if errors:
                return False, summary

            try:
                media_map = json.loads(z.read("media").decode("utf-8", errors="replace"))
            except json.JSONDecodeError as e:
                errors.append(f"apkg_media_mapping_invalid_json: {e}")
                return False, summary
            if not isinstance(media_map, dict):
                errors.append("apkg_media_mapping_not_object")
                return False, summary

            name_to_indices: dict[str, list[str]] = {}
            for k, v in media_map.items():
                if k is None or v is None or not str(k):
                    continue
                name_to_indices.setdefault(str(v), []).append(str(k))
            summary["media_filenames"] = sorted(name_to_indices)

            try:
                rows, deck_names = _read_collection(z.read("collection.anki2"))
            except (sqlite3.Error, json.JSONDecodeError, AttributeError) as e:
                errors.append(f"apkg_sqlite_read_failed: {e}")
                return False, summary
    except zipfile.BadZipFile:
        errors.append("apkg_invalid_zip")
        return False, summary

    summary["deck_names"] = deck_names
    summary["note_count"] = len(rows)
    summary["note_fields"] = [str(flds).split("\x1f") for (flds,) in rows]

    referenced = _referenced_filenames(rows)
    summary["referenced_filenames"] = sorted(referenced)
    bare_notes = sum(1 for row in rows if not _referenced_filenames([row]))
    if bare_notes:
        warnings.append(f"apkg_notes_without_media: {bare_notes}")

    missing_in_mapping: list[str] = []
    missing_blob: list[str] = []
    for fn in sorted(referenced):
        idxs = name_to_indices.get(fn) or []
        if not idxs:
            missing_in_mapping.append(fn)
            continue
        if not any(idx in names for idx in idxs):
            missing_blob.append(f"{fn} (indices={idxs})")

    dupes = {fn: idxs for fn, idxs in name_to_indices.items() if len(idxs) > 1}
    orphans = sorted(fn for fn in name_to_indices if fn not in referenced)

    if missing_in_mapping:
        errors.append("apkg_missing_media_mapping_filenames: " + ", ".join(missing_in_mapping[:50]))
    if missing_blob:
        errors.append("apkg_missing_media_blobs: " + ", ".join(missing_blob[:50]))
    if dupes:
        details = "; ".join(f"{fn}=>{idxs}" for fn, idxs in sorted(dupes.items())[:10])
        errors.append(f"apkg_media_mapping_duplicate_filenames: {details}")
    if orphans:
        errors.append("apkg_orphaned_media: " + ", ".join(orphans[:50]))

    return not errors, summary
