from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

from .config import LAYOUTS, get_layout, load_config
from .errors import ConversionError, PackageWriteError
from .exporters.apkg import write_package
from .pipeline import ConvertOptions, assemble_package, convert_notebooks
from .preview import write_previews
from .types import ConversionRun
from .utils import utc_now_iso, write_json
from .validator import validate_apkg


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="notebook-flashcards",
        description="Turn exported notebook zips into an Anki package, one card per page.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    conv = sub.add_parser("convert", help="Convert notebooks into one .apkg")
    conv.add_argument("output", help="Path to the destination .apkg")
    conv.add_argument("notebooks", nargs="+", help="Path to a notebook in rmapi zip file format")
    conv.add_argument(
        "-n",
        "--name-from-filename",
        action="store_true",
        help="Use zipfile basename as deck name. Default is to use notebook name.",
    )
    conv.add_argument("-a", "--anki-media-dir", default=None, help="Path to Anki collection.media directory")
    conv.add_argument("--layout", default=None, choices=sorted(LAYOUTS), help="Card layout (default: split)")
    conv.add_argument("--config", default=None, help="JSON config path")
    conv.add_argument("--errors-jsonl", default=None, help="Append per-notebook errors to this JSONL file")
    conv.add_argument("--report", default=None, help="Write a JSON run summary to this path")

    val = sub.add_parser("validate", help="Check media references of an .apkg")
    val.add_argument("--apkg", required=True, help="Package to validate")

    prev = sub.add_parser("preview", help="Write PNG previews of a notebook's pages")
    prev.add_argument("notebook", help="Path to a notebook in rmapi zip file format")
    prev.add_argument("--out-dir", required=True, help="Directory for <page-id>.png files")
    prev.add_argument("--scale", type=float, default=0.5)

    return p


def _run_report(run: ConversionRun, *, created_at: str, notebooks_total: int, written: bool) -> dict[str, Any]:
    return {
        "created_at": created_at,
        "completed_at": utc_now_iso(),
        "finished": True,
        "package_written": written,
        "notebooks_total": notebooks_total,
        "decks_converted": run.deck_count,
        "cards_total": sum(len(c.deck.notes) for c in run.converted),
        "media_total": sum(len(c.media) for c in run.converted),
        "failures": [{"source": f.source, "stage": f.stage, "message": f.message} for f in run.failures],
    }


def cmd_convert(args: argparse.Namespace) -> int:
    created_at = utc_now_iso()
    cfg = load_config(args.config)
    layout = get_layout(args.layout) if args.layout else cfg.layout

    opts = ConvertOptions(
        name_from_filename=bool(args.name_from_filename),
        media_dir=args.anki_media_dir,
        layout=layout,
        deck_description=cfg.deck_description,
        epsilon=cfg.epsilon,
        page_ext=cfg.page_ext,
    )

    run = convert_notebooks(args.notebooks, opts, error_log=args.errors_jsonl)
    decks, media = assemble_package(run, error_log=args.errors_jsonl)

    written = False
    try:
        write_package(decks, media, args.output)
        written = True
        print(f"Wrote {len(decks)} decks to the package")
    except PackageWriteError as e:
        print(str(e), file=sys.stderr)

    if args.report:
        write_json(
            args.report,
            _run_report(run, created_at=created_at, notebooks_total=len(args.notebooks), written=written),
        )

    return 0 if written and decks else 1


def cmd_validate(args: argparse.Namespace) -> int:
    ok, summary = validate_apkg(args.apkg)
    print(f"decks={len(summary['deck_names'])}")
    print(f"notes={summary['note_count']}")
    print(f"media={len(summary['media_filenames'])}")
    print(f"referenced_media={len(summary['referenced_filenames'])}")
    for w in summary["warnings"]:
        print(f"warning: {w}")
    if not ok:
        for m in summary["errors"]:
            print(m)
        return 1
    print("OK")
    return 0


def cmd_preview(args: argparse.Namespace) -> int:
    try:
        written = write_previews(args.notebook, args.out_dir, scale=args.scale)
    except ConversionError as e:
        print(str(e), file=sys.stderr)
        return 1
    print(f"Wrote {len(written)} previews to {Path(args.out_dir)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "convert":
        return cmd_convert(args)

    if args.command == "validate":
        return cmd_validate(args)

    if args.command == "preview":
        return cmd_preview(args)

    raise SystemExit(2)


if __name__ == "__main__":
    raise SystemExit(main())
