"""Command line export of conversation artifacts without the bot or database."""
import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from config.settings import load_settings
from core.archive import archive_filename, write_zip_archive
from core.export_service import build_export
from core.logging_utils import configure_logging, get_logger
from core.naming import NamingOptions
from extract.base import ExtractionError
from extract.engine import load_conversation
from storage.models import LayoutPolicy

LAYOUT_CHOICES = {
    "flat": LayoutPolicy.FLAT,
    "directory": LayoutPolicy.DIRECTORY_STRUCTURE,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="artifact-archiver",
        description="Extract artifacts from a conversation export into a zip archive",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    export_parser = subparsers.add_parser("export", help="Export artifacts from a transcript file")
    export_parser.add_argument("transcript", help="Path to the conversation JSON export")
    export_parser.add_argument("--out", default=None, help="Output directory (defaults to EXPORT_ROOT)")
    export_parser.add_argument(
        "--layout", choices=sorted(LAYOUT_CHOICES), default=None, help="Path layout policy"
    )
    index_group = export_parser.add_mutually_exclusive_group()
    index_group.add_argument("--index", dest="include_index", action="store_true", default=None,
                             help="Always add numeric message prefixes")
    index_group.add_argument("--no-index", dest="include_index", action="store_false",
                             help="Never add numeric message prefixes")
    export_parser.add_argument("--flatten-dirs", action="store_true",
                               help="Join directory segments with _ instead of nesting")
    export_parser.add_argument("--suffix", default=None, help="Suffix inserted before each extension")
    export_parser.add_argument("--max-depth", type=int, default=None, help="Maximum reply depth to walk")
    export_parser.add_argument("--list", action="store_true", help="Print resolved paths instead of writing")
    return parser


def run_export(parsed_args: argparse.Namespace) -> int:
    settings = load_settings(require_token=False)
    configure_logging(settings, log_filename=None)
    logger = get_logger("cli")

    layout = LAYOUT_CHOICES.get(parsed_args.layout, settings.default_layout)
    options = NamingOptions(
        layout=layout,
        include_index=parsed_args.include_index,
        nest_directories=not parsed_args.flatten_dirs,
        suffix=parsed_args.suffix,
        collision_marker=settings.collision_marker,
    )
    max_depth = parsed_args.max_depth if parsed_args.max_depth is not None else settings.max_traversal_depth

    try:
        raw = Path(parsed_args.transcript).read_bytes()
        payload = load_conversation(raw)
    except OSError as exc:
        print(f"Cannot read transcript: {exc}", file=sys.stderr)
        return 1
    except ExtractionError as exc:
        print(f"Invalid transcript: {exc}", file=sys.stderr)
        return 1

    result = build_export(payload, options, max_depth=max_depth, sink=logger)

    if parsed_args.list:
        for path in result.paths:
            print(path)
        return 0

    if not result.entries:
        print("No artifacts found in conversation", file=sys.stderr)
        return 1

    out_dir = parsed_args.out or settings.export_root
    destination = os.path.join(out_dir, archive_filename(result.conversation_name))
    write_zip_archive(result.entries, destination)
    print(f"{result.artifact_count} artifact(s) written to {destination}")
    return 0


def main(args: Optional[List[str]] = None) -> int:
    if args is None:
        args = sys.argv[1:]

    parser = _build_parser()
    parsed_args = parser.parse_args(args)

    if parsed_args.command is None:
        parser.print_help()
        return 0
    if parsed_args.command == "export":
        return run_export(parsed_args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
