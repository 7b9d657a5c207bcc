"""Archive index reading and `.lines` decoding."""
from __future__ import annotations

import json
import zipfile
from pathlib import Path

import numpy as np
import pytest

from conftest import UUID_42, corrupt_deflated_entry, make_page, make_stroke, page_bytes
from notebook_flashcards.archive import NotebookArchive, page_entry_name, read_notebook
from notebook_flashcards.errors import (
    ArchiveOpenError,
    CorruptPageData,
    MalformedIndex,
    MissingManifest,
    MissingPageData,
)
from notebook_flashcards.lines import HEADER_SIZE, decode_lines, encode_lines
from notebook_flashcards.types import Layer, StructuredPage, deck_id_from_uuid


# ═══════════════════════════════════════════════════════════════════════════════
# ARCHIVE INDEX
# ═══════════════════════════════════════════════════════════════════════════════

class TestArchiveIndex:
    def test_reads_name_and_page_order(self, notebook_factory):
        path = notebook_factory(pages=["p3", "p1", "p2"])
        with NotebookArchive(path) as archive:
            nb = read_notebook(archive)

        assert nb.uuid == UUID_42
        assert nb.visible_name == "Math Notes"
        # index order, not the (reversed) archive order
        assert nb.pages == ("p3", "p1", "p2")
        assert nb.source_path == str(path)

    def test_missing_manifest(self, notebook_factory):
        path = notebook_factory(include_content=False)
        with NotebookArchive(path) as archive:
            with pytest.raises(MissingManifest):
                read_notebook(archive)

    def test_first_manifest_wins(self, workspace_dir: Path):
        path = workspace_dir / "two.zip"
        with zipfile.ZipFile(path, "w") as z:
            z.writestr("aaaa.content", json.dumps({"pages": []}))
            z.writestr("bbbb.content", json.dumps({"pages": []}))
        with NotebookArchive(path) as archive:
            assert archive.find_manifest() == "aaaa.content"

    def test_missing_metadata_is_malformed_index(self, notebook_factory):
        path = notebook_factory(include_metadata=False)
        with NotebookArchive(path) as archive:
            with pytest.raises(MalformedIndex, match="metadata"):
                read_notebook(archive)

    @pytest.mark.parametrize(
        "metadata_text",
        ["{not json", json.dumps({"name": "x"}), json.dumps({"visibleName": 3}), json.dumps(["x"])],
    )
    def test_bad_metadata(self, notebook_factory, metadata_text):
        path = notebook_factory(metadata_text=metadata_text)
        with NotebookArchive(path) as archive:
            with pytest.raises(MalformedIndex):
                read_notebook(archive)

    @pytest.mark.parametrize(
        "content_text",
        ["", json.dumps({}), json.dumps({"pages": "p1"}), json.dumps({"pages": [1, 2]})],
    )
    def test_bad_content(self, notebook_factory, content_text):
        path = notebook_factory(content_text=content_text)
        with NotebookArchive(path) as archive:
            with pytest.raises(MalformedIndex, match="contents"):
                read_notebook(archive)

    def test_missing_page_entry(self, notebook_factory):
        path = notebook_factory(page_data={"p2": None})
        with NotebookArchive(path) as archive:
            assert archive.read_page(UUID_42, "p1")
            with pytest.raises(MissingPageData, match="p2"):
                archive.read_page(UUID_42, "p2")

    def test_open_missing_file(self, workspace_dir: Path):
        with pytest.raises(ArchiveOpenError):
            NotebookArchive(workspace_dir / "nope.zip")

    def test_open_not_a_zip(self, workspace_dir: Path):
        path = workspace_dir / "fake.zip"
        path.write_bytes(b"definitely not a zip")
        with pytest.raises(ArchiveOpenError):
            NotebookArchive(path)

    @pytest.mark.parametrize("page_id", ["sub/x", "../x", "/abs/x", "..", ".", "", "a\\b"])
    def test_unsafe_page_ids(self, notebook_factory, page_id):
        path = notebook_factory(pages=["p1", page_id], page_data={page_id: None})
        with NotebookArchive(path) as archive:
            with pytest.raises(MalformedIndex, match="unsafe page ids"):
                read_notebook(archive)

    def test_damaged_entry_is_archive_error(self, notebook_factory):
        path = notebook_factory(compression=zipfile.ZIP_DEFLATED)
        corrupt_deflated_entry(path, page_entry_name(UUID_42, "p1"))
        with NotebookArchive(path) as archive:
            assert read_notebook(archive).pages == ("p1", "p2")
            with pytest.raises(ArchiveOpenError):
                archive.read_page(UUID_42, "p1")

    def test_page_entry_name(self):
        assert page_entry_name("u", "p1") == "u/p1.rm"
        assert page_entry_name("u", "p1", "lines") == "u/p1.lines"


class TestDeckId:
    def test_lower_64_bits(self):
        assert deck_id_from_uuid(UUID_42) == 42

    def test_signed_reinterpretation(self):
        assert deck_id_from_uuid("00000000-0000-0000-ffff-ffffffffffff") == -1
        assert deck_id_from_uuid("ffffffff-ffff-ffff-0000-000000000001") == 1

    def test_pure(self):
        u = "3f2504e0-4f89-11d3-9a0c-0305e82c3301"
        assert deck_id_from_uuid(u) == deck_id_from_uuid(u)
        assert deck_id_from_uuid(u) == 0x9A0C0305E82C3301 - 2**64

    def test_not_a_uuid(self):
        with pytest.raises(MalformedIndex):
            deck_id_from_uuid("not-a-uuid")


# ═══════════════════════════════════════════════════════════════════════════════
# LINES DECODER
# ═══════════════════════════════════════════════════════════════════════════════

class TestLinesDecoder:
    @pytest.mark.parametrize("version", [3, 5])
    def test_decode_encoded_page(self, version):
        page = make_page(1, version=version, layers=2)
        decoded = decode_lines(encode_lines(page))

        assert decoded.version == version
        assert len(decoded.layers) == 2
        assert decoded.stroke_count == 4
        first = decoded.layers[0].strokes[0]
        assert first.pen == 15
        assert first.segments.shape == (3, 6)
        assert np.allclose(first.points, page.layers[0].strokes[0].points)
        assert decoded.layers[0].strokes[1].color == 1

    def test_empty_page(self):
        decoded = decode_lines(encode_lines(StructuredPage(version=5, layers=(Layer(strokes=()),))))
        assert decoded.stroke_count == 0

    def test_header_is_padded(self):
        data = page_bytes()
        assert data[:HEADER_SIZE].decode("ascii") == "reMarkable .lines file, version=5          "

    def test_deterministic(self):
        data = page_bytes(2)
        a, b = decode_lines(data), decode_lines(data)
        assert np.array_equal(a.layers[0].strokes[0].segments, b.layers[0].strokes[0].segments)

    def test_truncated(self):
        data = page_bytes()
        with pytest.raises(CorruptPageData, match="truncated"):
            decode_lines(data[:-5])

    def test_trailing_bytes(self):
        with pytest.raises(CorruptPageData, match="trailing"):
            decode_lines(page_bytes() + b"\x00\x00")

    def test_unknown_header(self):
        with pytest.raises(CorruptPageData, match="header"):
            decode_lines(b"PK\x03\x04" + b"\x00" * 60)

    def test_version_6_rejected(self):
        data = b"reMarkable .lines file, version=6          " + b"\x00" * 16
        with pytest.raises(CorruptPageData, match="unsupported version 6"):
            decode_lines(data)

    def test_negative_count(self):
        header = page_bytes()[:HEADER_SIZE]
        with pytest.raises(CorruptPageData, match="negative"):
            decode_lines(header + (-1).to_bytes(4, "little", signed=True))

    def test_stroke_single_point(self):
        page = StructuredPage(version=5, layers=(Layer(strokes=(make_stroke([(5.0, 6.0)]),)),))
        decoded = decode_lines(encode_lines(page))
        assert decoded.layers[0].strokes[0].segments.shape == (1, 6)
