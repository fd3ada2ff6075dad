"""Command-line interface for single-file and folder processing.

Each document is registered as an upload and resolved through the run
service, so CLI runs are stored and visible to the API as well.
"""

import argparse
import csv
import sys
from pathlib import Path

from docstruct.export import to_csv, to_json
from docstruct.models import RunStatus
from docstruct.pipeline.confidence import aggregate_confidence
from docstruct.pipeline.orchestrator import RunOutcome
from docstruct.services import Components, build_components
from docstruct.utils.config import AppConfig, load_config
from docstruct.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_DOCUMENT_SUFFIXES = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".pdf"}
_SUMMARY_COLUMNS = [
    "filename",
    "status",
    "run_id",
    "document_type",
    "page_count",
    "field_count",
    "avg_confidence",
    "warnings",
    "error",
]


def _find_documents(input_dir: Path) -> list[Path]:
    """List the documents directly inside ``input_dir``, sorted by path.

    Suffixes are matched case-insensitively.
    """
    return sorted(
        p for p in input_dir.iterdir() if p.is_file() and p.suffix.lower() in _DOCUMENT_SUFFIXES
    )


def process_file(components: Components, file_path: Path) -> tuple[str, RunOutcome]:
    """Register a document as an upload and run the pipeline on it.

    Returns:
        The new run ID and its outcome.
    """
    _, run_id = components.register_upload(file_path.read_bytes(), file_path.name)
    return run_id, components.run_service.resolve(run_id)


def _summary_row(file_path: Path, run_id: str | None, outcome: RunOutcome) -> dict[str, object]:
    result = outcome.result
    return {
        "filename": file_path.name,
        "status": outcome.status.value,
        "run_id": run_id,
        "document_type": result.document_type if result else None,
        "page_count": len(result.pages) if result else 0,
        "field_count": sum(len(p.fields) for p in result.pages) if result else 0,
        "avg_confidence": round(aggregate_confidence(result), 3),
        "warnings": "; ".join(result.warnings) if result else "",
        "error": outcome.error,
    }


def process_folder(
    input_dir: Path,
    output_csv: Path,
    components: Components,
    verbose: bool = False,
) -> dict[str, int]:
    """Run every document in a folder and write one summary row per file.

    Args:
        input_dir: Folder to scan (not recursive).
        output_csv: Where the summary CSV goes.
        components: Wired stores and run service.
        verbose: Print a progress line per document.

    Returns:
        Counts under ``total``, ``successful`` (COMPLETED runs) and ``failed``.
    """
    documents = _find_documents(input_dir)
    counts = {"total": len(documents), "successful": 0, "failed": 0}
    if not documents:
        logger.warning("Nothing to process in %s", input_dir)
        return counts

    logger.info("Processing %d document(s) from %s", len(documents), input_dir)
    rows: list[dict[str, object]] = []
    for position, document in enumerate(documents, 1):
        if verbose:
            print(f"[{position}/{len(documents)}] {document.name}")
        try:
            run_id, outcome = process_file(components, document)
        except Exception as exc:
            logger.error("Failed to process %s: %s", document.name, exc)
            run_id, outcome = None, RunOutcome(status=RunStatus.FAILED, error=str(exc))
        rows.append(_summary_row(document, run_id, outcome))
        key = "successful" if outcome.status is RunStatus.COMPLETED else "failed"
        counts[key] += 1

    _write_csv(rows, output_csv)
    logger.info("Summary of %d run(s) written to %s", len(rows), output_csv)
    _print_summary(counts, output_csv)
    return counts


def _write_csv(rows: list[dict[str, object]], output_path: Path) -> None:
    """Write summary rows to a CSV file; nothing is written for no rows."""
    if not rows:
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_SUMMARY_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    print()
    print(
        f"{summary['total']} document(s): {summary['successful']} completed, "
        f"{summary['failed']} failed"
    )
    print(f"Summary CSV: {output_csv}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docstruct",
        description="Structure scanned documents into fields and tables with OCR and an LLM",
    )
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")
    commands = parser.add_subparsers(dest="command")

    extract = commands.add_parser("extract", help="Structure one document")
    extract.add_argument("file", type=Path, help="PDF or image to process")
    extract.add_argument("-o", "--output", type=Path, help="Write the result here instead of stdout")
    extract.add_argument("-f", "--format", choices=["json", "csv"], default="json")

    batch = commands.add_parser("batch", help="Structure every document in a folder")
    batch.add_argument("input_dir", type=Path, help="Folder of PDFs and images")
    batch.add_argument("-o", "--output", type=Path, default=Path("results.csv"), help="Summary CSV")
    batch.add_argument("-v", "--verbose", action="store_true", help="Print progress per document")
    return parser


def _fail(message: str) -> None:
    print(f"docstruct: {message}", file=sys.stderr)
    sys.exit(1)


def _run_extract(args: argparse.Namespace, config: AppConfig) -> None:
    if not args.file.is_file():
        _fail(f"no such file: {args.file}")

    _, outcome = process_file(build_components(config), args.file)
    if outcome.result is None:
        _fail(f"run {outcome.status.value}: {outcome.error}")

    rendered = to_csv(outcome.result) if args.format == "csv" else to_json(outcome.result, indent=2)
    if args.output is None:
        print(rendered)
        return
    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(rendered)
    print(f"Result written to {args.output}")


def _run_batch(args: argparse.Namespace, config: AppConfig) -> None:
    if not args.input_dir.is_dir():
        _fail(f"not a directory: {args.input_dir}")
    process_folder(args.input_dir, args.output, build_components(config), args.verbose)


def main(argv: list[str] | None = None) -> None:
    """Entry point of the ``docstruct`` command.

    Args:
        argv: Arguments without the program name; ``sys.argv`` when omitted.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "extract":
        _run_extract(args, config)
    else:
        _run_batch(args, config)


if __name__ == "__main__":
    main()
