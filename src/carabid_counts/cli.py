#!/usr/bin/env python3
"""Build per-trap carabid counts from NEON beetle sorting, pinning and expert tables."""
from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .errors import SampleDataError
from .pipeline import CarabidCountPipeline, PipelineResult
from .provider import (
    DEFAULT_TABLE_STEMS,
    EXPERT_TABLE,
    FIELD_TABLE,
    PINNING_TABLE,
    SORTING_TABLE,
    DirectoryProvider,
)
from .schema import COUNT, IDENTIFICATION_SOURCE, INDIVIDUAL_COUNT
from .sink import write_counts, write_report

logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[2]
DATA_DIR = REPO_ROOT / "data" / "neon_beetles"
OUTPUT_CSV = REPO_ROOT / "results" / "carabid_counts.csv"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path(os.environ.get("CARABID_DATA_DIR", DATA_DIR)),
        help="Directory holding the four beetle tables (parquet/csv/tsv)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path(os.environ.get("CARABID_OUTPUT", OUTPUT_CSV)),
        help="Count table path (.csv or .parquet)",
    )
    parser.add_argument("--reconciled-output", type=Path, help="Optional path for the per-individual rows")
    parser.add_argument("--report", type=Path, help="Optional path to JSON integrity report")
    parser.add_argument("--field-table", default=DEFAULT_TABLE_STEMS[FIELD_TABLE])
    parser.add_argument("--sorting-table", default=DEFAULT_TABLE_STEMS[SORTING_TABLE])
    parser.add_argument("--pinning-table", default=DEFAULT_TABLE_STEMS[PINNING_TABLE])
    parser.add_argument("--expert-table", default=DEFAULT_TABLE_STEMS[EXPERT_TABLE])
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def print_summary(result: PipelineResult) -> None:
    print("=" * 80)
    print("CARABID COUNTS")
    print("=" * 80)
    print(f"  Trapping records:  {len(result.trapping):,}")
    print(f"  Reconciled rows:   {len(result.reconciled):,}")
    print(f"  Count rows:        {len(result.counts):,}")
    total = int(result.counts[COUNT].sum()) if len(result.counts) else 0
    print(f"  Individuals:       {total:,}")
    if len(result.reconciled):
        by_source = result.reconciled.groupby(IDENTIFICATION_SOURCE)[INDIVIDUAL_COUNT].sum()
        for source, n in by_source.items():
            print(f"    {source:8s}: {int(n):8,}")
    print()
    for r in result.audit.results:
        print(f"[{r.status}] {r.name}: {r.details}")


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    provider = DirectoryProvider(
        data_dir=args.data_dir,
        stems={
            FIELD_TABLE: args.field_table,
            SORTING_TABLE: args.sorting_table,
            PINNING_TABLE: args.pinning_table,
            EXPERT_TABLE: args.expert_table,
        },
    )
    try:
        result = CarabidCountPipeline(provider).run()
    except SampleDataError as err:
        logger.error(str(err))
        return 1

    write_counts(result.counts, args.output)
    if args.reconciled_output:
        write_counts(result.reconciled, args.reconciled_output)
    if args.report:
        write_report(result.audit.as_dict(), args.report)

    print_summary(result)
    return 1 if result.audit.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
