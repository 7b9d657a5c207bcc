from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from .utils import load_json, stable_int_id


DEFAULT_DECK_DESCRIPTION = "Deck generated from remarkable notebook"
DEFAULT_EPSILON = 0.0001
DEFAULT_PAGE_EXT = "rm"


@dataclass(frozen=True)
class CardLayout:
    """How one rendered page is clipped into a front and a back face.

    The image is scaled past its container and shifted up by front_top /
    back_top, so the two faces show different regions of the same page.
    """

    name: str
    model_id: int
    model_name: str
    front_top: str = "-44%"
    back_top: str = "-157%"
    image_width: str = "153%"
    image_height: str = "303%"
    image_left: str = "-26%"
    aspect_ratio: str = "915 / 622"
    include_dummy_field: bool = False


LAYOUTS: dict[str, CardLayout] = {
    "split": CardLayout(
        name="split",
        model_id=8779108157104849532,
        model_name="Remarkable Flashcard v2",
    ),
    "split-attach": CardLayout(
        name="split-attach",
        model_id=stable_int_id("notebook_flashcards:model:split-attach"),
        model_name="Remarkable Flashcard",
        include_dummy_field=True,
    ),
}

DEFAULT_LAYOUT = "split"

_LAYOUT_OVERRIDE_KEYS = (
    "front_top",
    "back_top",
    "image_width",
    "image_height",
    "image_left",
    "aspect_ratio",
    "include_dummy_field",
)


@dataclass(frozen=True)
class ConverterConfig:
    layout: CardLayout
    deck_description: str = DEFAULT_DECK_DESCRIPTION
    epsilon: float = DEFAULT_EPSILON
    page_ext: str = DEFAULT_PAGE_EXT


def get_layout(name: str) -> CardLayout:
    try:
        return LAYOUTS[name]
    except KeyError:
        raise ValueError(f"Unknown card layout: {name} (expected one of {', '.join(sorted(LAYOUTS))})") from None


def _apply_layout_overrides(layout: CardLayout, overrides: dict[str, Any]) -> CardLayout:
    changes: dict[str, Any] = {}
    for k in _LAYOUT_OVERRIDE_KEYS:
        if k not in overrides:
            continue
        v = overrides[k]
        changes[k] = bool(v) if k == "include_dummy_field" else str(v)
    return replace(layout, **changes) if changes else layout


def default_config() -> ConverterConfig:
    return ConverterConfig(layout=LAYOUTS[DEFAULT_LAYOUT])


def load_config(config_path: str | Path | None) -> ConverterConfig:
    """Load converter settings from a JSON file; None gives the defaults.

    Recognised keys: layout, deck_description, epsilon, page_ext and a
    "layouts" object of per-layout crop overrides.
    """
    if config_path is None:
        return default_config()

    data = load_json(config_path)
    if not isinstance(data, dict):
        raise ValueError(f"Config must be a JSON object: {config_path}")

    layout = get_layout(str(data.get("layout", DEFAULT_LAYOUT)))
    overrides = (data.get("layouts") or {}).get(layout.name)
    if isinstance(overrides, dict):
        layout = _apply_layout_overrides(layout, overrides)

    return ConverterConfig(
        layout=layout,
        deck_description=str(data.get("deck_description", DEFAULT_DECK_DESCRIPTION)),
        epsilon=float(data.get("epsilon", DEFAULT_EPSILON)),
        page_ext=str(data.get("page_ext", DEFAULT_PAGE_EXT)).lstrip("."),
    )
