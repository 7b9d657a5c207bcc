"""Conversion error taxonomy.

Everything except PackageWriteError is fatal to one notebook only: the
pipeline catches it at the notebook boundary, reports it and moves on.
PackageWriteError is fatal to the run.
"""
from __future__ import annotations


class ConversionError(Exception):
    """Base class for every expected conversion failure."""

    stage = "conversion"


class ArchiveOpenError(ConversionError):
    stage = "archive"


class MissingManifest(ConversionError):
    stage = "manifest"


class MalformedIndex(ConversionError):
    stage = "index"


class MissingPageData(ConversionError):
    stage = "page_data"


class CorruptPageData(ConversionError):
    stage = "decode"


class RenderFailure(ConversionError):
    stage = "render"


class MediaExportError(ConversionError):
    stage = "media_export"


class DuplicateDeck(ConversionError):
    stage = "assemble"


class PackageWriteError(ConversionError):
    stage = "package"
