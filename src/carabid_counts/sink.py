"""Write the count table and the integrity report."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict

import pandas as pd

logger = logging.getLogger(__name__)


def write_counts(counts: pd.DataFrame, path: Path) -> Path:
    """CSV unless the path ends in ``.parquet``; parent directories are created."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".parquet":
        counts.to_parquet(path, index=False)
    else:
        counts.to_csv(path, index=False)
    logger.info("Wrote %d count rows -> %s", len(counts), path)
    return path


def write_report(report: Dict[str, Dict[str, str]], path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as fh:
        json.dump(report, fh, indent=2)
    logger.info("Wrote integrity report -> %s", path)
    return path
