from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Any

import genanki

from .config import CardLayout


MEDIA_EXT = "svg"

FIELD_FRONT = "MediaFront"
FIELD_BACK = "MediaBack"
FIELD_ATTACH = "Media"

_CSS_TEMPLATE = """
div.container {{
    all: initial;
    display: block;
    overflow: hidden;
    width: 100%;
    aspect-ratio: {aspect_ratio};
}}
.chrome img {{
    /* Overwrite AnkiDroid stylesheet */
    max-width: none;
    max-height: none;
}}

img {{
    overflow: hidden;
    position: relative;
    width: {image_width};
    height: {image_height};
    left: {image_left};

    /* Overwrite default Anki values */
    max-width: none;
    max-height: none;
}}

.front {{
    top: {front_top};
}}

.back {{
    top: {back_top};
}}
"""


def media_filename(page_id: str) -> str:
    return f"{page_id}.{MEDIA_EXT}"


def front_field(filename: str) -> str:
    return f'<div class="container"><img class="front" src="{html.escape(filename)}"></div>'


def back_field(filename: str) -> str:
    return f'<div class="container"><img class="back" src="{html.escape(filename)}"></div>'


def attach_field(filename: str) -> str:
    # Bare reference so importers that skip nested markup still attach the file.
    return f'<img src="{html.escape(filename)}">'


def layout_css(layout: CardLayout) -> str:
    return _CSS_TEMPLATE.format(
        aspect_ratio=layout.aspect_ratio,
        image_width=layout.image_width,
        image_height=layout.image_height,
        image_left=layout.image_left,
        front_top=layout.front_top,
        back_top=layout.back_top,
    )


def build_model(layout: CardLayout) -> genanki.Model:
    fields = [{"name": FIELD_FRONT}, {"name": FIELD_BACK}]
    if layout.include_dummy_field:
        fields.append({"name": FIELD_ATTACH})
    return genanki.Model(
        layout.model_id,
        layout.model_name,
        fields=fields,
        templates=[
            {
                "name": "Card 1",
                "qfmt": "{{%s}}" % FIELD_FRONT,
                "afmt": "{{%s}}" % FIELD_BACK,
            }
        ],
        css=layout_css(layout),
    )


@dataclass
class CardBuilder:
    """Turns page ids into notes sharing one model."""

    layout: CardLayout
    model: Any = field(init=False)

    def __post_init__(self) -> None:
        self.model = build_model(self.layout)

    def fields_for_page(self, page_id: str) -> list[str]:
        filename = media_filename(page_id)
        fields = [front_field(filename), back_field(filename)]
        if self.layout.include_dummy_field:
            fields.append(attach_field(filename))
        return fields

    def build_note(self, notebook_uuid: str, page_id: str) -> genanki.Note:
        # Identical pages in different notebooks must stay distinct notes.
        return genanki.Note(
            model=self.model,
            fields=self.fields_for_page(page_id),
            guid=genanki.guid_for(notebook_uuid, page_id),
        )

    def add_page(self, deck: genanki.Deck, notebook_uuid: str, page_id: str) -> str:
        """Append the card for page_id to deck; returns the media filename it references."""
        deck.add_note(self.build_note(notebook_uuid, page_id))
        return media_filename(page_id)
