from __future__ import annotations

import io
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

import genanki

from ..errors import PackageWriteError
from ..types import RenderedMedia


@contextmanager
def staged_package(decks: Sequence[Any], media: Sequence[RenderedMedia]) -> Iterator[genanki.Package]:
    """Yield a genanki.Package whose media files exist on disk under their exact names.

    genanki embeds media by path and names each entry after the path's
    basename, so every blob is written into a scratch directory first.
    """
    with tempfile.TemporaryDirectory(prefix="notebook_flashcards_media_") as tmp:
        media_tmp = Path(tmp)
        media_files: list[str] = []
        seen: set[str] = set()
        for m in media:
            if m.filename in seen:
                raise PackageWriteError(f"Duplicate media filename in package: {m.filename}")
            seen.add(m.filename)
            dst = media_tmp / m.filename
            dst.write_bytes(m.data)
            media_files.append(str(dst))

        pkg = genanki.Package(list(decks))
        pkg.media_files = media_files
        yield pkg


def write_package(
    decks: Sequence[Any],
    media: Sequence[RenderedMedia],
    out_path: str | Path,
    *,
    timestamp: float | None = None,
) -> Path:
    out_path = Path(out_path)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with staged_package(decks, media) as pkg:
            pkg.write_to_file(str(out_path), timestamp=timestamp)
    except PackageWriteError:
        raise
    except OSError as e:
        raise PackageWriteError(f"Could not write package to file {out_path}: {e}") from e
    return out_path


def package_bytes(
    decks: Sequence[Any],
    media: Sequence[RenderedMedia],
    *,
    timestamp: float | None = None,
) -> bytes:
    """Build the package in memory; callers decide where it goes."""
    buf = io.BytesIO()
    try:
        with staged_package(decks, media) as pkg:
            pkg.write_to_file(buf, timestamp=timestamp)
    except PackageWriteError:
        raise
    except OSError as e:
        raise PackageWriteError(f"Could not create Anki package: {e}") from e
    return buf.getvalue()
