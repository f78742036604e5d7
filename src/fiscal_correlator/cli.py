"""Command-line interface for the fiscal document correlator."""

import argparse
import dataclasses
import json
import logging
import sys
from collections.abc import Iterable
from pathlib import Path

from fiscal_correlator.config import DEFAULT_ITEMS, CorrelationOptions
from fiscal_correlator.documents import FiscalDocuments
from fiscal_correlator.records.parse import read_cte_records, read_events, read_nfe_records
from fiscal_correlator.solver.execution import DEFAULT_PARTITIONS


def configure_logging(level: int = logging.INFO) -> None:
    """Configure logging to write to stderr."""
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fiscal-correlator",
        description="Correlate CT-e transport documents with NF-e invoices.",
    )

    parser.add_argument("ctes_file", help="Path to CT-e records (JSON lines)")
    parser.add_argument("nfes_file", help="Path to NF-e item records (JSON lines)")

    parser.add_argument("--cte-events", help="Path to CT-e events (JSON lines)")
    parser.add_argument("--nfe-events", help="Path to NF-e events (JSON lines)")

    parser.add_argument(
        "--output-dir",
        default=".",
        help="Directory for the enriched records (default: current directory)",
    )

    parser.add_argument(
        "--items",
        type=int,
        default=DEFAULT_ITEMS,
        help=f"Maximum entries per ranked breakdown (default: {DEFAULT_ITEMS})",
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of workers for partitioned stages (default: executor default)",
    )

    parser.add_argument(
        "--partitions",
        type=int,
        default=DEFAULT_PARTITIONS,
        help=f"Number of chunks for partitioned stages (default: {DEFAULT_PARTITIONS})",
    )

    parser.add_argument(
        "--show-missing",
        action="store_true",
        help="Print referenced keys found in neither collection",
    )

    parser.add_argument(
        "--show-correlations",
        action="store_true",
        help="Print the correlated keys, totals and breakdowns",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    return parser


def write_records(path: Path, records: Iterable[object]) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        for record in records:
            data = dataclasses.asdict(record)
            handle.write(json.dumps(data, ensure_ascii=False, default=str) + "\n")


def main(argv: list[str] | None = None) -> int:
    """Entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Configure logging based on --log-level
    log_level = getattr(logging, args.log_level)
    configure_logging(log_level)

    try:
        options = CorrelationOptions(
            items=args.items,
            workers=args.workers,
            partitions=args.partitions,
            show_missing=args.show_missing,
            show_correlations=args.show_correlations,
        )
    except ValueError as exc:
        parser.error(str(exc))

    docs = FiscalDocuments()
    docs.ctes, _ = read_cte_records(args.ctes_file)
    docs.nfes, _ = read_nfe_records(args.nfes_file)
    if args.cte_events:
        docs.cte_events, _ = read_events(args.cte_events)
    if args.nfe_events:
        docs.nfe_events, _ = read_events(args.nfe_events)

    docs.apply_events()
    docs.unique()
    docs.sort()
    docs.get_correlations(options)

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    write_records(output_dir / "ctes-enriched.jsonl", docs.ctes)
    write_records(output_dir / "nfes-enriched.jsonl", docs.nfes)

    return 0


if __name__ == "__main__":
    sys.exit(main())
