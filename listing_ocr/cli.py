"""Command-line interface for listing extraction and CSV export.

Provides subcommands to extract records from a single listing image as
JSON, process a folder of images into one CSV of records, and run the
HTTP API server.
"""

import argparse
import csv
import json
import sys
import time
from pathlib import Path

from listing_ocr.errors import ListingOCRError
from listing_ocr.ocr.listing_processor import ListingProcessor, load_image
from listing_ocr.utils.config import AppConfig, load_config
from listing_ocr.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.tiff", "*.tif", "*.bmp")
_RECORD_COLUMNS = [
    "filename",
    "sku",
    "name",
    "quantity",
    "location",
    "category",
    "subcategory",
    "status",
    "source",
]


def _find_images(input_dir: Path) -> list[Path]:
    """Find all supported listing images in a directory.

    Args:
        input_dir: Directory to scan.

    Returns:
        Sorted list of image paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def process_folder(
    input_dir: Path,
    output_csv: Path,
    config: AppConfig | None = None,
    verbose: bool = False,
) -> dict[str, int]:
    """Extract records from every image in a folder into one CSV file.

    The recognition pool is initialized once for the whole folder and
    released when processing ends, even on failure.

    Args:
        input_dir: Directory containing listing images.
        output_csv: Path for the output CSV file.
        config: Application configuration. Loaded from disk when omitted.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, failed, and record counts.
    """
    config = config or load_config()
    files = _find_images(input_dir)
    if not files:
        logger.warning("No images found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0, "records": 0}

    logger.info("Found %d images to process", len(files))
    rows: list[dict[str, object]] = []
    successful = 0
    failed = 0

    with ListingProcessor(config) as processor:
        for i, file_path in enumerate(files, 1):
            if verbose:
                print(f"Processing [{i}/{len(files)}]: {file_path.name}")

            start_time = time.time()
            try:
                result = processor.extract_from_image(load_image(file_path))
            except ListingOCRError as exc:
                logger.error("Failed to process %s: %s", file_path.name, exc)
                failed += 1
                continue

            for record in result.records:
                rows.append({"filename": file_path.name, **record.to_dict()})
            successful += 1
            logger.debug(
                "%s: %d records in %.2fs",
                file_path.name,
                len(result.records),
                time.time() - start_time,
            )

    _write_csv(rows, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {
        "total": len(files),
        "successful": successful,
        "failed": failed,
        "records": len(rows),
    }
    _print_summary(summary, output_csv)
    return summary


def _write_csv(rows: list[dict[str, object]], output_path: Path) -> None:
    """Write record rows to a CSV file with a fixed column order."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_RECORD_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    """Print batch processing summary to stdout."""
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Records:    {summary['records']}")
    print(f"Output:     {output_csv}")


def extract_single(
    file_path: Path, config: AppConfig | None = None
) -> dict[str, object]:
    """Extract records from a single listing image.

    Args:
        file_path: Path to the image.
        config: Application configuration. Loaded from disk when omitted.

    Returns:
        Dictionary with filename, records, and recognized text.

    Raises:
        ListingOCRError: If any pipeline stage fails.
    """
    config = config or load_config()
    with ListingProcessor(config) as processor:
        result = processor.extract_from_image(load_image(file_path))

    return {
        "filename": file_path.name,
        "records": [record.to_dict() for record in result.records],
        "confidence": round(result.confidence, 3),
        "raw_text": result.raw_text,
    }


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Listing OCR inventory extractor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="YAML configuration file"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    batch_parser = subparsers.add_parser("batch", help="Process a folder of images")
    batch_parser.add_argument(
        "input_dir", type=Path, help="Input directory with images"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("records.csv"),
        help="Output CSV file (default: records.csv)",
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    single_parser = subparsers.add_parser("extract", help="Process a single image")
    single_parser.add_argument("file", type=Path, help="Listing image to process")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API server")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        try:
            process_folder(args.input_dir, args.output, config, args.verbose)
        except ListingOCRError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(2)
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            result = extract_single(args.file, config)
        except ListingOCRError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(2)
        output_str = json.dumps(result, indent=2)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    elif args.command == "serve":
        from listing_ocr.main import main as serve

        serve(args.host, args.port, config)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
