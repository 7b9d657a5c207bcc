"""Decoder for the reMarkable `.lines` stroke format (versions 3 and 5).

Layout, all little-endian:

    header        43 bytes, "reMarkable .lines file, version=N" padded with spaces
    int32         layer count
    per layer:    int32 stroke count
    per stroke:   int32 pen, int32 color, int32 unused, float32 width,
                  int32 unused (version 5 only), int32 segment count
    per segment:  float32 x, y, speed, direction, width, pressure

Version 6 files use a different, tagged block format and are rejected.
"""
from __future__ import annotations

import struct

import numpy as np

from .errors import CorruptPageData
from .svg import render_svg
from .types import Layer, RenderStyle, Stroke, StructuredPage


HEADER_PREFIX = b"reMarkable .lines file, version="
HEADER_SIZE = 43
SUPPORTED_VERSIONS = (3, 5)
SEGMENT_FIELDS = 6

_INT = struct.Struct("<i")
_STROKE_V3 = struct.Struct("<iiif")
_STROKE_V5 = struct.Struct("<iiifi")


def _parse_header(data: bytes) -> int:
    if len(data) < HEADER_SIZE or not data.startswith(HEADER_PREFIX):
        raise CorruptPageData("Failed to parse line data: unknown header")
    tail = data[len(HEADER_PREFIX):HEADER_SIZE].decode("ascii", errors="replace").strip()
    try:
        version = int(tail)
    except ValueError:
        raise CorruptPageData(f"Failed to parse line data: bad version {tail!r}") from None
    if version not in SUPPORTED_VERSIONS:
        raise CorruptPageData(f"Failed to parse line data: unsupported version {version}")
    return version


class _Reader:
    def __init__(self, data: bytes, offset: int):
        self.data = data
        self.offset = offset

    def unpack(self, st: struct.Struct) -> tuple:
        end = self.offset + st.size
        if end > len(self.data):
            raise CorruptPageData(f"Failed to parse line data: truncated at byte {self.offset}")
        values = st.unpack_from(self.data, self.offset)
        self.offset = end
        return values

    def count(self, what: str) -> int:
        (n,) = self.unpack(_INT)
        if n < 0:
            raise CorruptPageData(f"Failed to parse line data: negative {what} count {n}")
        return n

    def segments(self, n: int) -> np.ndarray:
        size = n * SEGMENT_FIELDS * 4
        end = self.offset + size
        if end > len(self.data):
            raise CorruptPageData(f"Failed to parse line data: truncated at byte {self.offset}")
        arr = np.frombuffer(self.data, dtype="<f4", count=n * SEGMENT_FIELDS, offset=self.offset)
        self.offset = end
        return arr.reshape(n, SEGMENT_FIELDS).astype(np.float32)


def decode_lines(data: bytes) -> StructuredPage:
    """Parse one page of `.lines` data into layers of strokes."""
    version = _parse_header(data)
    reader = _Reader(data, HEADER_SIZE)
    stroke_struct = _STROKE_V5 if version == 5 else _STROKE_V3

    layers: list[Layer] = []
    for _ in range(reader.count("layer")):
        strokes: list[Stroke] = []
        for _ in range(reader.count("stroke")):
            pen, color, _unused, width = reader.unpack(stroke_struct)[:4]
            n = reader.count("segment")
            segs = reader.segments(n)
            if not np.all(np.isfinite(segs)):
                raise CorruptPageData("Failed to parse line data: non-finite coordinates")
            strokes.append(Stroke(pen=int(pen), color=int(color), width=float(width), segments=segs))
        layers.append(Layer(strokes=tuple(strokes)))

    if reader.offset != len(data):
        raise CorruptPageData(
            f"Failed to parse line data: {len(data) - reader.offset} trailing bytes"
        )
    return StructuredPage(version=version, layers=tuple(layers))


def encode_lines(page: StructuredPage) -> bytes:
    """Serialise a page back to `.lines` bytes (used for fixtures and debugging)."""
    version = page.version
    if version not in SUPPORTED_VERSIONS:
        raise ValueError(f"unsupported version {version}")
    header = (HEADER_PREFIX + str(version).encode("ascii")).ljust(HEADER_SIZE, b" ")
    out = bytearray(header)
    out += _INT.pack(len(page.layers))
    for layer in page.layers:
        out += _INT.pack(len(layer.strokes))
        for s in layer.strokes:
            if version == 5:
                out += _STROKE_V5.pack(s.pen, s.color, 0, s.width, 0)
            else:
                out += _STROKE_V3.pack(s.pen, s.color, 0, s.width)
            segs = np.asarray(s.segments, dtype="<f4").reshape(-1, SEGMENT_FIELDS)
            out += _INT.pack(segs.shape[0])
            out += segs.tobytes()
    return bytes(out)


class LinesBackend:
    """Default StrokeBackend: `.lines` decoder plus the SVG renderer."""

    def decode(self, data: bytes) -> StructuredPage:
        return decode_lines(data)

    def render(self, page: StructuredPage, style: RenderStyle) -> bytes:
        return render_svg(page, style)
