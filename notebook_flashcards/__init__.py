"""Notebook-to-flashcard converter.

Each page of an exported handwritten notebook becomes one Anki card whose
front and back show two crops of the same rendered SVG page. All converted
notebooks go into a single .apkg.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
