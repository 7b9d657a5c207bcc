"""Raster previews of notebook pages.

Handy for eyeballing what a notebook contains before building a deck; the
cards themselves always embed the SVG rendering.
"""
from __future__ import annotations

from pathlib import Path

from PIL import Image, ImageDraw

from .archive import NotebookArchive, read_notebook
from .config import DEFAULT_PAGE_EXT
from .lines import LinesBackend
from .pipeline import iter_structured_pages
from .svg import HIGHLIGHTER_PENS, NON_DRAWING_PENS, simplify_points
from .types import PAGE_HEIGHT, PAGE_WIDTH, LayerColor, StrokeBackend, StructuredPage
from .utils import ensure_dir


HIGHLIGHTER_RGBA = (255, 235, 59, 102)


def render_preview(
    page: StructuredPage,
    *,
    scale: float = 0.5,
    epsilon: float = 0.0001,
    colors: LayerColor | None = None,
) -> Image.Image:
    """Rasterize a decoded page onto a white RGB canvas."""
    if scale <= 0:
        raise ValueError(f"scale must be positive: {scale}")
    colors = colors or LayerColor()
    size = (max(1, round(PAGE_WIDTH * scale)), max(1, round(PAGE_HEIGHT * scale)))
    img = Image.new("RGBA", size, color=(255, 255, 255, 255))
    overlay = Image.new("RGBA", size, color=(0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    hl_draw = ImageDraw.Draw(overlay)

    for layer in page.layers:
        for stroke in layer.strokes:
            if stroke.pen in NON_DRAWING_PENS or len(stroke.segments) == 0:
                continue
            pts = simplify_points(stroke.points, epsilon) * scale
            xy = [(float(x), float(y)) for x, y in pts]
            if len(xy) == 1:
                xy = xy * 2
            width = max(1, round(float(stroke.segments[:, 4].mean() or stroke.width) * scale))
            if stroke.pen in HIGHLIGHTER_PENS:
                hl_draw.line(xy, fill=HIGHLIGHTER_RGBA, width=width, joint="curve")
            else:
                draw.line(xy, fill=colors.for_code(stroke.color), width=width, joint="curve")

    return Image.alpha_composite(img, overlay).convert("RGB")


def write_previews(
    source: str | Path,
    out_dir: str | Path,
    *,
    scale: float = 0.5,
    backend: StrokeBackend | None = None,
    page_ext: str = DEFAULT_PAGE_EXT,
) -> list[Path]:
    """Write <page-id>.png for every page of a notebook archive.

    Pages are decoded before anything is written, so a corrupt page leaves
    out_dir untouched.
    """
    backend = backend or LinesBackend()
    with NotebookArchive(source) as archive:
        notebook = read_notebook(archive, source)
        pages = list(iter_structured_pages(archive, notebook, backend, page_ext=page_ext))

    ensure_dir(out_dir)
    written: list[Path] = []
    for page_id, page in pages:
        out_path = Path(out_dir) / f"{page_id}.png"
        render_preview(page, scale=scale).save(out_path, format="PNG")
        written.append(out_path)
    return written
