"""Maintenance entry point that recomputes stored exam results."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

from cbt_engine.constants.engine_constants import DEFAULT_REPAIR_WORKERS
from cbt_engine.core.errors import InvalidExamError, RecordFormatError
from cbt_engine.core.record_io import load_exams, load_results, save_results
from cbt_engine.core.services.exam_catalog import ExamCatalog
from cbt_engine.core.services.result_repair import repair_results
from cbt_engine.utils.logging_config import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Recalculate scores of stored exam results.")
    parser.add_argument("--exams", type=Path, required=True, help="JSON file with exam definitions")
    parser.add_argument("--results", type=Path, required=True, help="JSON file with stored results (rewritten in place)")
    parser.add_argument("--exam-id", default=None, help="Only repair results of this exam")
    parser.add_argument("--dry-run", action="store_true", help="Report changes without writing them")
    parser.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_REPAIR_WORKERS,
        help=f"Worker threads (default {DEFAULT_REPAIR_WORKERS})",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logger = configure_logging(verbose=args.verbose)

    try:
        catalog = ExamCatalog(load_exams(args.exams))
        loaded = load_results(args.results)
    except (OSError, RecordFormatError, InvalidExamError) as exc:
        logger.error("Cannot read input: %s", exc)
        return 2

    results = loaded.results
    logger.info("Loaded %d exams and %d results", len(catalog), len(results))
    report = repair_results(
        results,
        catalog.find_exam,
        exam_id=args.exam_id,
        dry_run=args.dry_run,
        max_workers=args.workers,
    )
    for record in loaded.unreadable:
        report.record_skip(f"Skipped: record {record.position} - unreadable ({record.error})")

    for line in report.details:
        print(line)
    print(report.summary())

    if not args.dry_run and report.fixed:
        save_results(args.results, loaded.entries)
        logger.info("Wrote %d results to %s", len(loaded.entries), args.results)
    return 0


if __name__ == "__main__":
    sys.exit(main())
