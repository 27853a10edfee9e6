#!/usr/bin/env python3
"""
DocScrub - DOCX Package Optimizer

CLI tool that shrinks Word documents in place at the ZIP/XML level without
rebuilding them.

Features:
- optimize: remove embedded fonts, orphaned media and unused styles, and
  recompress images; a file is written only if it got smaller
- clean: delete files generated by earlier runs from a directory
"""

import argparse
import logging
import sys
from pathlib import Path

import yaml

from cleanup import delete_files, find_generated_files
from errors import DocScrubError
from processor import OptimizeOptions, collect_docx_files, optimize_batch
from results import FileResult, Outcome

DEFAULT_CONFIG_PATH = Path(__file__).parent / "docscrub.yaml"


def load_config(config_path: Path) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        sys.exit(1)

    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


def ask_for_confirmation(question: str, input_fn=None) -> bool:
    answer = (input_fn or input)(question)
    return answer.strip().lower() in ("y", "yes")


def print_result(result: FileResult, verbose: bool = False):
    """Print a per-file summary."""
    print()
    print("-" * 60)
    print(f"Input:  {result.input_path}")

    for stage in result.stages:
        if stage.changed:
            touched = len(stage.removed) + len(stage.replaced)
            print(f"  • {stage.stage}: {touched} change(s), ~{stage.bytes_saved / 1024:.0f} KB")
            if verbose:
                for path in stage.removed:
                    print(f"      - removed {path}")
                for path in stage.replaced:
                    print(f"      - recompressed {path}")
        else:
            print(f"  • {stage.stage}: skipped ({stage.reason})")
        for warning in stage.warnings:
            print(f"      ! {warning}")

    if result.outcome is Outcome.FAILED:
        print(f"  ✗ Failed: {result.error}")
        return

    decision = result.decision
    if result.outcome is Outcome.NO_IMPROVEMENT:
        print("  Optimization did not result in a smaller file. No file was written.")
        print(f"     Original Size: {decision.original_size / 1024:.0f} KB, "
              f"Candidate Size: {decision.candidate_size / 1024:.0f} KB")
        return

    print(f"  ✓ Successfully wrote file: {result.output_path.name}")
    print(f"     Original Size: {decision.original_size / 1024:.0f} KB, "
          f"New Size: {decision.candidate_size / 1024:.0f} KB, "
          f"Saved: {decision.savings / 1024:.0f} KB ({decision.savings_ratio * 100:.1f}%)")


def run_optimize(args) -> int:
    config_path = args.config or (DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.exists() else None)
    config = load_config(config_path) if config_path else {}
    if not isinstance(config, dict):
        print(f"Error: Config file must contain a mapping: {config_path}", file=sys.stderr)
        return 1

    try:
        options = OptimizeOptions.from_config(
            config.get("optimize"),
            remove_embedded_fonts=args.remove_embedded_fonts,
            remove_unused_media=args.remove_unused_media,
            recompress_images=args.recompress_images,
            image_quality=args.image_quality,
            clean_styles=args.clean_styles,
            overwrite=args.overwrite,
            force=args.force,
            jobs=args.jobs,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        files = collect_docx_files(args.path)
    except DocScrubError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not files:
        print("No applicable .docx files found to optimize.")
        return 0

    if options.overwrite and not options.force:
        print(f"The following {len(files)} file(s) will be overwritten:")
        for f in files:
            print(f"  - {f.name}")
        if not ask_for_confirmation("\nThis action cannot be undone. Are you sure? (y/n) "):
            print("Operation aborted by user.")
            return 0

    if not args.quiet:
        print(f"\nProcessing {len(files)} file(s)...")
    results = optimize_batch(files, options)

    if not args.quiet:
        for result in results:
            print_result(result, verbose=args.verbose)
        written = sum(1 for r in results if r.outcome is Outcome.WRITTEN)
        unchanged = sum(1 for r in results if r.outcome is Outcome.NO_IMPROVEMENT)
        failed = sum(1 for r in results if r.outcome is Outcome.FAILED)
        print()
        print(f"Written: {written}, No improvement: {unchanged}, Failed: {failed}")

    return 0 if all(r.success for r in results) else 1


def run_clean(args) -> int:
    print(f"\n--- Scanning directory for generated files: {args.path} ---")
    try:
        files = find_generated_files(args.path)
    except DocScrubError as e:
        print(f"Error during clean operation: {e}", file=sys.stderr)
        return 1

    if not files:
        print("No generated files found to clean.")
        return 0

    print(f"Found {len(files)} generated file(s) to delete:")
    for f in files:
        print(f"  - {f.name}")

    if not args.force and not ask_for_confirmation(
            "\nAre you sure you want to permanently delete these files? (y/n) "):
        print("\nClean operation aborted by user.")
        return 0

    result = delete_files(files)
    for path, error in result.failed:
        print(f"  - Failed to delete {path.name}: {error}", file=sys.stderr)
    print(f"\nSuccessfully deleted {len(result.deleted)} file(s).")
    return 0 if not result.failed else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docscrub",
        description="Shrink .docx files by removing fonts, orphaned media and unused styles.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Strip unused styles only (default), writing report_optimized.docx
  docscrub optimize report.docx

  # Everything, overwriting every .docx in a folder without asking
  docscrub optimize docs/ --remove-embedded-fonts --remove-unused-media \\
      --recompress-images --image-quality 70 --overwrite -y

  # Delete *_optimized.docx and other generated files
  docscrub clean docs/
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show per-entry details")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress all output except errors")
    parser.add_argument("--version", action="version", version="%(prog)s 1.0.0")

    subparsers = parser.add_subparsers(dest="command", required=True)

    optimize = subparsers.add_parser("optimize", help="Optimize .docx file(s) in place at the ZIP/XML level")
    optimize.add_argument("path", type=Path, help="Path to a source .docx file or a directory")
    optimize.add_argument("-c", "--config", type=Path, default=None,
                          help="YAML config file (default: docscrub.yaml beside this script, if any)")
    optimize.add_argument("--overwrite", action="store_true", default=None,
                          help="Overwrite the original file(s)")
    optimize.add_argument("-y", "--force", action="store_true", default=None,
                          help="Skip confirmation prompts")
    optimize.add_argument("--remove-embedded-fonts", action="store_true", default=None,
                          help="Remove embedded font files and the embedding flag")
    optimize.add_argument("--remove-unused-media", action="store_true", default=None,
                          help="Remove media files no relationship refers to")
    optimize.add_argument("--recompress-images", action="store_true", default=None,
                          help="Re-encode JPEG/PNG media, keeping smaller results")
    optimize.add_argument("--image-quality", type=int, default=None,
                          help="Quality for recompressed images, 1-100 (default: 80)")
    optimize.add_argument("--no-styles", dest="clean_styles", action="store_false", default=None,
                          help="Skip removing unused style definitions")
    optimize.add_argument("-j", "--jobs", type=int, default=None,
                          help="Number of files to optimize in parallel")
    optimize.set_defaults(handler=run_optimize)

    clean = subparsers.add_parser("clean", help="Remove all generated files from a directory")
    clean.add_argument("path", type=Path, help="The directory to clean")
    clean.add_argument("-y", "--force", action="store_true", help="Skip confirmation prompt")
    clean.set_defaults(handler=run_clean)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.quiet:
        level = logging.ERROR
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    sys.exit(args.handler(args))


if __name__ == "__main__":
    main()
