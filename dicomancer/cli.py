"""
cli.py - Command-line entry point for the Dicomancer viewer.

Usage
-----
    dicomancer scan.dcm other.dcm           # open the viewer window
    dicomancer data/samples --mode uid_tree # load a whole folder
    dicomancer data/samples --headless      # print tree + metadata instead
"""

import argparse
import logging
import sys
from typing import Optional

from dicomancer.config import CONFIG, load_config
from dicomancer.loader import collect_paths, load_files
from dicomancer.state import ViewerState
from dicomancer.tree import TreeViewMode

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dicomancer",
        description="Browse DICOM metadata and preview the first image frame.",
    )
    parser.add_argument("paths", nargs="+", help="DICOM files or folders to import")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in TreeViewMode],
        help="Tree panel presentation (default from config)",
    )
    parser.add_argument("--workers", type=int, help="Number of files loaded in parallel")
    parser.add_argument("--config", help="Path to an alternative config.yaml")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default from config)",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Print the tree and metadata instead of opening a window",
    )
    return parser


def format_state(state: ViewerState) -> str:
    """Plain-text rendering of the tree and the selected instance."""
    lines = ["Imported Instances"]
    for row in state.tree_rows():
        lines.append("  " * row.depth + row.label)

    view = state.selected_view
    if view is not None:
        lines.append("")
        lines.append(f"Metadata: {view.file_path}")
        for r in view.metadata:
            lines.append(f"  ({r.tag}) {r.vr:<2} {r.alias:<36} {r.value}")
        if view.image is not None:
            lines.append(f"Image: {view.image.width} x {view.image.height} RGBA")
        else:
            lines.append("Image: none")

    if state.last_error:
        lines.append("")
        lines.append(state.last_error)
    return "\n".join(lines)


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config) if args.config else CONFIG

    logging.basicConfig(
        level=(args.log_level or config["logging"]["level"]).upper(),
        format=config["logging"]["format"],
    )

    paths = collect_paths(args.paths, recursive=config["loading"]["recursive"])
    if not paths:
        logger.error("No files to load.")
        return 1

    report = load_files(
        paths,
        max_workers=args.workers or config["loading"]["max_workers"],
        max_value_len=config["metadata"]["max_value_len"],
    )

    state = ViewerState(
        tree_view_mode=TreeViewMode(args.mode or config["viewer"]["tree_view_mode"])
    )
    state.files_loaded(report)

    if args.headless:
        print(format_state(state))
        print(report.summary())
    else:
        # Imported lazily so headless runs never touch a GUI backend
        from dicomancer.viewer import ViewerWindow

        ViewerWindow(state, config["viewer"]).show()

    return 0 if state.entries else 1


if __name__ == "__main__":
    sys.exit(main())
