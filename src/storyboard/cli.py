"""Command-line entry point for the storyboard tools."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Sequence, TextIO

import uvicorn

from .codec import ArchiveCodec, ArchiveSummary
from .errors import StoryboardError
from .facade import EditorFacade
from .settings import StoryboardSettings

LOG = logging.getLogger(__name__)


def _summary_payload(summary: ArchiveSummary) -> Dict[str, Any]:
    return {
        "entries": list(summary.entries),
        "timeline": list(summary.timeline),
        "boards": len(summary.timeline),
        "animatedNodes": list(summary.animated_nodes),
        "meshes": summary.meshes,
        "clipKeyCounts": summary.clip_key_counts,
        "sunBoards": summary.sun_boards,
        "warnings": summary.report.warnings(),
    }


def _print_summary(summary: ArchiveSummary, out: TextIO) -> None:
    print(f"Boards: {len(summary.timeline)} (frames {list(summary.timeline)})", file=out)
    print(f"Animated objects: {len(summary.animated_nodes)}", file=out)
    for name in summary.animated_nodes:
        print(f"  - {name}", file=out)
    print(f"Meshes with clips: {len(summary.meshes)}", file=out)
    for mesh, clips in sorted(summary.meshes.items()):
        print(f"  - {mesh}: {', '.join(clips) or '(none)'}", file=out)
    if summary.sun_boards is None:
        print("Sun rotation: not stored", file=out)
    else:
        print(f"Sun rotation: {summary.sun_boards} key(s)", file=out)
    for warning in summary.report.warnings():
        print(f"Warning: {warning}", file=out)


def _inspect(args: argparse.Namespace, settings: StoryboardSettings, out: TextIO) -> int:
    path: Path = args.archive
    try:
        data = path.read_bytes()
    except OSError as exc:
        print(f"Failed to read '{path}': {exc}", file=sys.stderr)
        return 2

    codec = ArchiveCodec(settings.archive_names, frame_rate=settings.frame_rate)
    try:
        summary = codec.inspect(data)
        report = EditorFacade(settings=settings).deserialize(data) if args.resolve else None
    except StoryboardError as exc:
        print(f"Invalid archive '{path}': {exc}", file=sys.stderr)
        return 1

    if args.json:
        payload = _summary_payload(summary)
        if report is not None:
            payload["unresolved"] = [reference.describe() for reference in report.unresolved]
        print(json.dumps(payload, indent=2), file=out)
        return 0

    _print_summary(summary, out)
    if report is not None:
        if report.unresolved:
            print(f"Unresolved references: {len(report.unresolved)}", file=out)
            for reference in report.unresolved:
                print(f"  - {reference.describe()}", file=out)
        else:
            print("All references resolved.", file=out)
    return 0


def _serve(args: argparse.Namespace, settings: StoryboardSettings) -> int:
    LOG.info("Serving storyboard API on %s:%d", args.host, args.port)
    uvicorn.run(
        "storyboard.api.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="storyboard", description="Storyboard keyframe archive tools"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    inspect_parser = subparsers.add_parser(
        "inspect", help="Validate an archive and summarise its contents."
    )
    inspect_parser.add_argument("archive", type=Path, help="Path to a storyboard archive.")
    inspect_parser.add_argument(
        "--json", action="store_true", help="Print the summary as JSON."
    )
    inspect_parser.add_argument(
        "--resolve",
        action="store_true",
        help="Also load the archive and report names that do not resolve.",
    )

    serve_parser = subparsers.add_parser("serve", help="Run the editor HTTP API.")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host interface for the API server."
    )
    serve_parser.add_argument(
        "--port", type=int, default=8000, help="Port where the API server should listen."
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Restart the server when code changes."
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None, *, out: TextIO | None = None) -> int:
    """Run the ``storyboard`` command and return its exit status."""

    args = _parse_args(argv)
    try:
        settings = StoryboardSettings.from_env()
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(level=settings.log_level)
    if args.command == "inspect":
        return _inspect(args, settings, out or sys.stdout)
    return _serve(args, settings)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
