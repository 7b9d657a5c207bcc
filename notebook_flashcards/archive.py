from __future__ import annotations

import json
import zipfile
import zlib
from pathlib import Path
from typing import Any

from .errors import ArchiveOpenError, MalformedIndex, MissingManifest, MissingPageData
from .types import Notebook


MANIFEST_SUFFIX = ".content"
METADATA_SUFFIX = ".metadata"


def page_entry_name(uuid: str, page_id: str, ext: str = "rm") -> str:
    return f"{uuid}/{page_id}.{ext}"


class NotebookArchive:
    """Read-only view of one exported notebook zip."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        try:
            self._zip = zipfile.ZipFile(self.path, "r")
        except FileNotFoundError as e:
            raise ArchiveOpenError(f"Could not open notebook zip file: {self.path}") from e
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveOpenError(f"Failed to read zip file {self.path}: {e}") from e

    def __enter__(self) -> "NotebookArchive":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    def names(self) -> list[str]:
        return self._zip.namelist()

    def read(self, name: str) -> bytes:
        try:
            return self._zip.read(name)
        except (zipfile.BadZipFile, OSError, RuntimeError, EOFError, zlib.error) as e:
            # RuntimeError also covers encrypted entries and NotImplementedError (unsupported compression)
            raise ArchiveOpenError(f"Failed to read {name} from {self.path}: {e}") from e

    def find_manifest(self, suffix: str = MANIFEST_SUFFIX) -> str:
        # First match in archive order wins if there are several.
        for name in self.names():
            if name.endswith(suffix) and len(name) > len(suffix):
                return name
        raise MissingManifest(f"Could not find content file in {self.path}")

    def read_page(self, uuid: str, page_id: str, ext: str = "rm") -> bytes:
        name = page_entry_name(uuid, page_id, ext)
        try:
            return self.read(name)
        except KeyError:
            raise MissingPageData(f"Missing page data {name} for notebook {uuid}") from None


def _is_safe_page_id(page_id: str) -> bool:
    """Page ids become media filenames, so they must be a single plain path component."""
    if page_id in ("", ".", "..") or "\x00" in page_id:
        return False
    if "/" in page_id or "\\" in page_id:
        return False
    p = Path(page_id)
    return not (p.is_absolute() or p.drive) and p.name == page_id


def _read_json_entry(archive: NotebookArchive, name: str, *, kind: str, uuid: str) -> Any:
    try:
        raw = archive.read(name)
    except KeyError:
        raise MalformedIndex(f"Could not find {kind} file for notebook {uuid}") from None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedIndex(f"Could not parse {kind} file for notebook {uuid}: {e}") from e


def read_notebook(archive: NotebookArchive, source_path: str | Path | None = None) -> Notebook:
    """Locate the content index and metadata of the notebook in the archive."""
    manifest = archive.find_manifest()
    uuid = manifest[: -len(MANIFEST_SUFFIX)]

    metadata = _read_json_entry(archive, f"{uuid}{METADATA_SUFFIX}", kind="metadata", uuid=uuid)
    if not isinstance(metadata, dict) or not isinstance(metadata.get("visibleName"), str):
        raise MalformedIndex(f"Could not parse metadata file for notebook {uuid}: visibleName missing")

    index = _read_json_entry(archive, manifest, kind="contents", uuid=uuid)
    pages = index.get("pages") if isinstance(index, dict) else None
    if not isinstance(pages, list) or not all(isinstance(p, str) for p in pages):
        raise MalformedIndex(f"Could not parse contents file for notebook {uuid}: pages must be a list of strings")
    unsafe = [p for p in pages if not _is_safe_page_id(p)]
    if unsafe:
        raise MalformedIndex(f"Could not parse contents file for notebook {uuid}: unsafe page ids {unsafe!r}")

    return Notebook(
        uuid=uuid,
        visible_name=metadata["visibleName"],
        pages=tuple(pages),
        source_path=str(source_path if source_path is not None else archive.path),
    )
