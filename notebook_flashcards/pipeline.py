from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Sequence

import genanki

from .archive import NotebookArchive, read_notebook
from .builder import CardBuilder
from .config import DEFAULT_DECK_DESCRIPTION, DEFAULT_EPSILON, DEFAULT_LAYOUT, DEFAULT_PAGE_EXT, LAYOUTS, CardLayout
from .errors import ConversionError, DuplicateDeck, MediaExportError
from .lines import LinesBackend
from .svg import default_style
from .types import (
    ConversionRun,
    ConvertedDeck,
    Notebook,
    NotebookFailure,
    RenderedMedia,
    StrokeBackend,
    StructuredPage,
    deck_id_from_uuid,
)
from .utils import append_jsonl


@dataclass
class ConvertOptions:
    name_from_filename: bool = False
    media_dir: str | None = None
    layout: CardLayout = field(default_factory=lambda: LAYOUTS[DEFAULT_LAYOUT])
    deck_description: str = DEFAULT_DECK_DESCRIPTION
    epsilon: float = DEFAULT_EPSILON
    page_ext: str = DEFAULT_PAGE_EXT


def resolve_deck_name(notebook: Notebook, source: str | Path, name_from_filename: bool) -> str:
    if not name_from_filename:
        return notebook.visible_name
    stem = Path(source).stem
    if not stem:
        raise ConversionError(f"Can not extract deck name from filename {source}")
    return stem


def iter_structured_pages(
    archive: NotebookArchive,
    notebook: Notebook,
    backend: StrokeBackend,
    *,
    page_ext: str = DEFAULT_PAGE_EXT,
) -> Iterable[tuple[str, StructuredPage]]:
    """Decode pages in index order. Raises on the first page that fails."""
    for page_id in notebook.pages:
        data = archive.read_page(notebook.uuid, page_id, page_ext)
        yield page_id, backend.decode(data)


def render_page(backend: StrokeBackend, page: StructuredPage, *, epsilon: float) -> bytes:
    return backend.render(page, default_style(page, epsilon=epsilon))


def export_media_files(media: Sequence[RenderedMedia], media_dir: str | Path) -> None:
    """Write loose copies of the rendered pages, e.g. into a collection.media directory.

    On failure the files written so far are removed again.
    """
    target_dir = Path(media_dir)
    written: list[Path] = []
    for m in media:
        target = target_dir / m.filename
        print(f"Writing to {target}")
        try:
            target.write_bytes(m.data)
        except OSError as e:
            for p in written:
                p.unlink(missing_ok=True)
            raise MediaExportError(f"Could not write to Anki media file {m.filename}: {e}") from e
        written.append(target)


def convert_notebook(
    source: str | Path,
    opts: ConvertOptions | None = None,
    backend: StrokeBackend | None = None,
) -> ConvertedDeck:
    """Convert one notebook archive into a deck plus its media.

    All pages must decode and render; otherwise the whole notebook fails.
    """
    opts = opts or ConvertOptions()
    backend = backend or LinesBackend()

    with NotebookArchive(source) as archive:
        notebook = read_notebook(archive, source)
        deck_name = resolve_deck_name(notebook, source, opts.name_from_filename)
        print(f"Processing deck {deck_name}")

        deck = genanki.Deck(deck_id_from_uuid(notebook.uuid), deck_name, opts.deck_description)
        builder = CardBuilder(opts.layout)

        media: list[RenderedMedia] = []
        for page_id, page in iter_structured_pages(archive, notebook, backend, page_ext=opts.page_ext):
            svg = render_page(backend, page, epsilon=opts.epsilon)
            filename = builder.add_page(deck, notebook.uuid, page_id)
            media.append(RenderedMedia(filename=filename, data=svg))

    if opts.media_dir:
        export_media_files(media, opts.media_dir)

    return ConvertedDeck(notebook=notebook, deck=deck, media=media)


def _record_failure(
    run: ConversionRun,
    source: str,
    stage: str,
    message: str,
    error_log: str | Path | None,
) -> None:
    failure = NotebookFailure(source=source, stage=stage, message=message)
    run.failures.append(failure)
    print(message, file=sys.stderr)
    if error_log:
        append_jsonl(error_log, {"source": source, "stage": stage, "message": message})


def convert_notebooks(
    sources: Sequence[str | Path],
    opts: ConvertOptions | None = None,
    backend: StrokeBackend | None = None,
    *,
    error_log: str | Path | None = None,
) -> ConversionRun:
    """Convert notebooks one after the other, dropping the ones that fail."""
    opts = opts or ConvertOptions()
    backend = backend or LinesBackend()
    run = ConversionRun()

    for source in sources:
        try:
            converted = convert_notebook(source, opts, backend)
        except ConversionError as e:
            _record_failure(run, str(source), e.stage, str(e), error_log)
            continue
        except OSError as e:
            _record_failure(run, str(source), "io", f"{source}: {e}", error_log)
            continue
        run.converted.append(converted)

    return run


def _check_unique(c: ConvertedDeck, deck_sources: dict[int, str], media_by_name: dict[str, bytes]) -> None:
    source = c.notebook.source_path
    if c.deck_id in deck_sources:
        raise DuplicateDeck(f"Deck id {c.deck_id} of {source} already used by {deck_sources[c.deck_id]}; skipping")
    # identical bytes under one name are shared, different bytes are not
    clashes = [m.filename for m in c.media if media_by_name.get(m.filename, m.data) != m.data]
    if clashes:
        raise DuplicateDeck(f"Media filenames of {source} clash with another deck: {', '.join(clashes)}")


def assemble_package(
    run: ConversionRun,
    *,
    error_log: str | Path | None = None,
) -> tuple[list[Any], list[RenderedMedia]]:
    """Flatten converted notebooks into (decks, media) for the package writer.

    Guarantees one media entry per referenced filename: a notebook whose deck
    id repeats an earlier one, or whose media names clash with different
    content, is moved from run.converted to run.failures.
    """
    decks: list[Any] = []
    media: list[RenderedMedia] = []
    media_by_name: dict[str, bytes] = {}
    deck_sources: dict[int, str] = {}
    kept: list[ConvertedDeck] = []

    for c in run.converted:
        source = c.notebook.source_path
        try:
            _check_unique(c, deck_sources, media_by_name)
        except DuplicateDeck as e:
            _record_failure(run, source, e.stage, str(e), error_log)
            continue

        deck_sources[c.deck_id] = source
        decks.append(c.deck)
        for m in c.media:
            if m.filename not in media_by_name:
                media_by_name[m.filename] = m.data
                media.append(m)
        kept.append(c)

    run.converted = kept
    return decks, media

