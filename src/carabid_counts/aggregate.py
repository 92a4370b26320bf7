"""Collapse reconciled individuals into summed counts per trap, date and taxon."""
from __future__ import annotations

import logging
from typing import List

import duckdb
import pandas as pd

from .schema import (
    COUNT,
    INDIVIDUAL_COUNT,
    NON_KEY_COLUMNS,
)

logger = logging.getLogger(__name__)


def _quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def count_key_columns(reconciled: pd.DataFrame) -> List[str]:
    """Every column except the count and the per-individual bookkeeping."""
    dropped = set(NON_KEY_COLUMNS) | {INDIVIDUAL_COUNT}
    return [col for col in reconciled.columns if col not in dropped]


def aggregate_counts(reconciled: pd.DataFrame) -> pd.DataFrame:
    key = count_key_columns(reconciled)
    if reconciled.empty:
        return pd.DataFrame(columns=key + [COUNT])

    frame = reconciled[key + [INDIVIDUAL_COUNT]].copy()
    frame[INDIVIDUAL_COUNT] = frame[INDIVIDUAL_COUNT].astype("int64")
    for col in frame.columns[frame.dtypes == object]:
        frame[col] = frame[col].where(frame[col].notna(), None)
    # duckdb cannot type a column that is entirely NULL; such columns
    # do not split any group and are restored afterwards.
    empty_cols = [col for col in key if frame[col].isna().all()]
    sql_key = [col for col in key if col not in empty_cols]

    cols = ", ".join(_quote(col) for col in sql_key)
    con = duckdb.connect()
    try:
        con.register("reconciled_df", frame[sql_key + [INDIVIDUAL_COUNT]])
        counts = con.execute(
            f"""
            SELECT {cols}, CAST(SUM({_quote(INDIVIDUAL_COUNT)}) AS BIGINT) AS {_quote(COUNT)}
            FROM reconciled_df
            GROUP BY {cols}
            ORDER BY {cols}
            """
        ).df()
    finally:
        con.close()

    for col in empty_cols:
        counts[col] = None
    counts = counts[key + [COUNT]]

    logger.info(
        "Aggregated %d reconciled rows into %d count rows (%d individuals)",
        len(reconciled),
        len(counts),
        int(counts[COUNT].sum()),
    )
    return counts
