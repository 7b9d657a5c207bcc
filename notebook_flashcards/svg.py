from __future__ import annotations

import xml.etree.ElementTree as ET

import numpy as np

from .errors import RenderFailure
from .types import PAGE_HEIGHT, PAGE_WIDTH, LayerColor, RenderStyle, Stroke, StructuredPage
from .utils import format_number


SVG_NS = "http://www.w3.org/2000/svg"

PEN_ERASER = 6
PEN_ERASE_AREA = 8
NON_DRAWING_PENS = {PEN_ERASER, PEN_ERASE_AREA}
HIGHLIGHTER_PENS = {5, 18}
HIGHLIGHTER_COLOR = "rgb(255,235,59)"
HIGHLIGHTER_OPACITY = "0.4"


def default_style(page: StructuredPage, *, epsilon: float = 0.0001) -> RenderStyle:
    """One default LayerColor per layer, no background, no crop."""
    return RenderStyle(
        layer_colors=tuple(LayerColor() for _ in page.layers),
        background=False,
        epsilon=epsilon,
        crop=None,
    )


def simplify_points(points: np.ndarray, epsilon: float) -> np.ndarray:
    """Ramer-Douglas-Peucker simplification; endpoints are always kept."""
    n = len(points)
    if n < 3 or epsilon <= 0:
        return points

    pts = points.astype(np.float64)
    keep = np.zeros(n, dtype=bool)
    keep[0] = keep[-1] = True
    stack = [(0, n - 1)]
    while stack:
        start, end = stack.pop()
        if end - start < 2:
            continue
        a = pts[start]
        d = pts[end] - a
        inner = pts[start + 1:end]
        norm = float(np.hypot(d[0], d[1]))
        if norm == 0.0:
            dist = np.hypot(inner[:, 0] - a[0], inner[:, 1] - a[1])
        else:
            dist = np.abs(d[0] * (inner[:, 1] - a[1]) - d[1] * (inner[:, 0] - a[0])) / norm
        i = int(np.argmax(dist))
        if dist[i] > epsilon:
            mid = start + 1 + i
            keep[mid] = True
            stack.append((start, mid))
            stack.append((mid, end))
    return points[keep]


def _stroke_width(stroke: Stroke) -> float:
    widths = stroke.segments[:, 4]
    if len(widths) and float(np.max(widths)) > 0:
        return float(np.mean(widths, dtype=np.float64))
    return float(stroke.width)


def _points_attr(points: np.ndarray) -> str:
    if len(points) == 1:
        # single tap: a zero-length line still paints a round cap
        points = np.vstack([points, points])
    return " ".join(f"{format_number(float(x))},{format_number(float(y))}" for x, y in points)


def _stroke_element(parent: ET.Element, stroke: Stroke, colors: LayerColor, epsilon: float) -> None:
    if stroke.pen in NON_DRAWING_PENS or len(stroke.segments) == 0:
        return
    points = simplify_points(stroke.points, epsilon)
    attrib = {
        "points": _points_attr(points),
        "fill": "none",
        "stroke": colors.for_code(stroke.color),
        "stroke-width": format_number(_stroke_width(stroke)),
        "stroke-linecap": "round",
        "stroke-linejoin": "round",
    }
    if stroke.pen in HIGHLIGHTER_PENS:
        attrib["stroke"] = HIGHLIGHTER_COLOR
        attrib["stroke-opacity"] = HIGHLIGHTER_OPACITY
    ET.SubElement(parent, "polyline", attrib)


def render_svg(page: StructuredPage, style: RenderStyle) -> bytes:
    """Render a decoded page as a standalone SVG document.

    Output depends only on the page and the style, so the same input always
    yields the same bytes.
    """
    if len(style.layer_colors) != len(page.layers):
        raise RenderFailure(
            f"Rendering failed: {len(style.layer_colors)} layer colors for {len(page.layers)} layers"
        )

    if style.crop is None:
        x, y, w, h = 0.0, 0.0, float(PAGE_WIDTH), float(PAGE_HEIGHT)
    else:
        x, y, w, h = style.crop
        if w <= 0 or h <= 0:
            raise RenderFailure(f"Rendering failed: empty crop {style.crop}")

    root = ET.Element(
        "svg",
        {
            "xmlns": SVG_NS,
            "width": format_number(w),
            "height": format_number(h),
            "viewBox": " ".join(format_number(v) for v in (x, y, w, h)),
        },
    )
    if style.background:
        ET.SubElement(
            root,
            "rect",
            {
                "x": format_number(x),
                "y": format_number(y),
                "width": format_number(w),
                "height": format_number(h),
                "fill": "white",
            },
        )

    try:
        for idx, (layer, colors) in enumerate(zip(page.layers, style.layer_colors)):
            group = ET.SubElement(root, "g", {"id": f"layer{idx + 1}"})
            for stroke in layer.strokes:
                _stroke_element(group, stroke, colors, style.epsilon)
        body = ET.tostring(root, encoding="unicode")
    except (ValueError, TypeError, IndexError) as e:
        raise RenderFailure(f"Rendering failed: {e}") from e

    return ('<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n").encode("utf-8")
