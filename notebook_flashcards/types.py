from __future__ import annotations

import uuid as uuid_mod
from dataclasses import dataclass, field
from typing import Any, Protocol

import numpy as np

from .errors import MalformedIndex


# Page size of the device screen, in stroke coordinate units.
PAGE_WIDTH = 1404
PAGE_HEIGHT = 1872


@dataclass(frozen=True)
class Notebook:
    uuid: str
    visible_name: str
    pages: tuple[str, ...]  # order of the content index, never archive order
    source_path: str


@dataclass(frozen=True, eq=False)
class Stroke:
    pen: int
    color: int
    width: float
    # float32 (n, 6): x, y, speed, direction, width, pressure
    segments: np.ndarray

    @property
    def points(self) -> np.ndarray:
        return self.segments[:, :2]


@dataclass(frozen=True)
class Layer:
    strokes: tuple[Stroke, ...]


@dataclass(frozen=True)
class StructuredPage:
    version: int
    layers: tuple[Layer, ...]

    @property
    def stroke_count(self) -> int:
        return sum(len(layer.strokes) for layer in self.layers)


@dataclass(frozen=True)
class LayerColor:
    black: str = "black"
    grey: str = "grey"
    white: str = "white"

    def for_code(self, code: int) -> str:
        if code == 1:
            return self.grey
        if code == 2:
            return self.white
        return self.black


@dataclass(frozen=True)
class RenderStyle:
    layer_colors: tuple[LayerColor, ...]
    background: bool = False
    epsilon: float = 0.0001
    crop: tuple[float, float, float, float] | None = None


@dataclass(frozen=True)
class RenderedMedia:
    filename: str
    data: bytes


class StrokeBackend(Protocol):
    """Decode and render capability for one page of stroke data.

    decode raises CorruptPageData, render raises RenderFailure.
    """

    def decode(self, data: bytes) -> StructuredPage: ...

    def render(self, page: StructuredPage, style: RenderStyle) -> bytes: ...


@dataclass
class ConvertedDeck:
    notebook: Notebook
    deck: Any  # genanki.Deck
    media: list[RenderedMedia] = field(default_factory=list)

    @property
    def deck_id(self) -> int:
        return int(self.deck.deck_id)


@dataclass(frozen=True)
class NotebookFailure:
    source: str
    stage: str
    message: str


@dataclass
class ConversionRun:
    converted: list[ConvertedDeck] = field(default_factory=list)
    failures: list[NotebookFailure] = field(default_factory=list)

    @property
    def deck_count(self) -> int:
        return len(self.converted)


def deck_id_from_uuid(uuid: str) -> int:
    """Lower 64 bits of the notebook UUID, read as a signed 64-bit integer.

    Must stay stable: the consuming app matches re-imported decks by id.
    """
    try:
        value = uuid_mod.UUID(uuid).int
    except (ValueError, AttributeError, TypeError) as e:
        raise MalformedIndex(f"Notebook id is not a UUID: {uuid!r}") from e
    low = value & 0xFFFF_FFFF_FFFF_FFFF
    if low >= 2**63:
        low -= 2**64
    return low
