"""Shared fixtures: synthetic notebook archives with real `.lines` page data."""
from __future__ import annotations

import json
import shutil
import struct
import tempfile
import zipfile
from pathlib import Path
from typing import Callable

import numpy as np
import pytest

from notebook_flashcards.lines import encode_lines
from notebook_flashcards.types import Layer, Stroke, StructuredPage


# lower 64 bits == 42
UUID_42 = "00000000-0000-0000-0000-00000000002a"


def make_stroke(points: list[tuple[float, float]], *, pen: int = 15, color: int = 0, width: float = 2.0) -> Stroke:
    segs = np.array([[x, y, 0.1, 0.0, width, 0.5] for x, y in points], dtype=np.float32).reshape(-1, 6)
    return Stroke(pen=pen, color=color, width=width, segments=segs)


def make_page(seed: int = 0, *, version: int = 5, layers: int = 1) -> StructuredPage:
    """A small page whose strokes differ by seed."""
    out = []
    for li in range(layers):
        base = 100.0 + 50.0 * seed + 10.0 * li
        strokes = (
            make_stroke([(base, base), (base + 40, base + 5), (base + 80, base + 30)]),
            make_stroke([(base, base + 200), (base + 10, base + 260)], color=1),
        )
        out.append(Layer(strokes=strokes))
    return StructuredPage(version=version, layers=tuple(out))


def page_bytes(seed: int = 0, **kwargs) -> bytes:
    return encode_lines(make_page(seed, **kwargs))


def write_notebook_zip(
    path: Path,
    *,
    uuid: str = UUID_42,
    visible_name: str = "Math Notes",
    pages: list[str] | None = None,
    page_data: dict[str, bytes] | None = None,
    include_content: bool = True,
    include_metadata: bool = True,
    metadata_text: str | None = None,
    content_text: str | None = None,
    compression: int = zipfile.ZIP_STORED,
) -> Path:
    pages = ["p1", "p2"] if pages is None else pages
    data = dict(page_data or {})
    with zipfile.ZipFile(path, "w", compression=compression) as z:
        if include_metadata:
            z.writestr(
                f"{uuid}.metadata",
                metadata_text if metadata_text is not None else json.dumps({"visibleName": visible_name}),
            )
        if include_content:
            z.writestr(
                f"{uuid}.content",
                content_text if content_text is not None else json.dumps({"pages": pages}),
            )
        # archive order deliberately reversed from index order
        for i, page_id in reversed(list(enumerate(pages))):
            blob = data.get(page_id, page_bytes(i))
            if blob is not None:
                z.writestr(f"{uuid}/{page_id}.rm", blob)
    return path


def corrupt_deflated_entry(path: Path, name: str) -> None:
    """Overwrite the first deflate byte of an entry so it declares a reserved block type."""
    with zipfile.ZipFile(path) as z:
        info = z.getinfo(name)
    raw = bytearray(path.read_bytes())
    # local file header: 30 fixed bytes, then the name and extra field
    name_len, extra_len = struct.unpack_from("<HH", raw, info.header_offset + 26)
    raw[info.header_offset + 30 + name_len + extra_len] = 0xFF
    path.write_bytes(bytes(raw))


@pytest.fixture
def workspace_dir() -> Path:
    """Create temporary workspace."""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def notebook_factory(workspace_dir: Path) -> Callable[..., Path]:
    def _make(filename: str = "notebook.zip", **kwargs) -> Path:
        return write_notebook_zip(workspace_dir / filename, **kwargs)

    return _make
