"""Sources for the four raw beetle tables.

The pipeline only sees a :class:`DataProvider`; where the tables come from
(an in-memory frame, a directory of NEON downloads, a cache) is the caller's
business.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Protocol

import pandas as pd

logger = logging.getLogger(__name__)

FIELD_TABLE = "field"
SORTING_TABLE = "sorting"
PINNING_TABLE = "pinning"
EXPERT_TABLE = "expert"

# NEON DP1.10022.001 table names.
DEFAULT_TABLE_STEMS: Dict[str, str] = {
    FIELD_TABLE: "bet_fielddata",
    SORTING_TABLE: "bet_sorting",
    PINNING_TABLE: "bet_parataxonomistID",
    EXPERT_TABLE: "bet_expertTaxonomistIDProcessed",
}

SUPPORTED_SUFFIXES = (".parquet", ".csv", ".tsv")


class DataProvider(Protocol):
    def field_samples(self) -> pd.DataFrame: ...

    def sorting(self) -> pd.DataFrame: ...

    def pinning(self) -> pd.DataFrame: ...

    def expert(self) -> pd.DataFrame: ...


@dataclass
class FrameProvider:
    """Tables already held in memory."""

    field_data: pd.DataFrame
    sorting_data: pd.DataFrame
    pinning_data: pd.DataFrame
    expert_data: pd.DataFrame

    def field_samples(self) -> pd.DataFrame:
        return self.field_data.copy()

    def sorting(self) -> pd.DataFrame:
        return self.sorting_data.copy()

    def pinning(self) -> pd.DataFrame:
        return self.pinning_data.copy()

    def expert(self) -> pd.DataFrame:
        return self.expert_data.copy()


def read_table(path: Path) -> pd.DataFrame:
    """Read a parquet, CSV or TSV table with every column as text."""
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    suffix = path.suffix.lower()
    if suffix == ".parquet":
        df = pd.read_parquet(path)
    elif suffix in (".csv", ".tsv"):
        df = pd.read_csv(
            path,
            sep="\t" if suffix == ".tsv" else ",",
            dtype=str,
            keep_default_na=False,
            na_values=["", "NA"],
        )
    else:
        raise ValueError(f"Unsupported table format: {path}")
    logger.info("Loaded %s: %d rows, %d columns", path.name, len(df), len(df.columns))
    return df


@dataclass
class DirectoryProvider:
    """Tables stored as ``<stem>.parquet`` / ``.csv`` / ``.tsv`` in one directory."""

    data_dir: Path
    stems: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TABLE_STEMS))

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)
        self.stems = {**DEFAULT_TABLE_STEMS, **self.stems}

    def locate(self, table: str) -> Path:
        stem = self.stems[table]
        for suffix in SUPPORTED_SUFFIXES:
            candidate = self.data_dir / f"{stem}{suffix}"
            if candidate.exists():
                return candidate
        raise FileNotFoundError(
            f"No {table} table '{stem}' ({'/'.join(SUPPORTED_SUFFIXES)}) in {self.data_dir}"
        )

    def _load(self, table: str) -> pd.DataFrame:
        return read_table(self.locate(table))

    def field_samples(self) -> pd.DataFrame:
        return self._load(FIELD_TABLE)

    def sorting(self) -> pd.DataFrame:
        return self._load(SORTING_TABLE)

    def pinning(self) -> pd.DataFrame:
        return self._load(PINNING_TABLE)

    def expert(self) -> pd.DataFrame:
        return self._load(EXPERT_TABLE)

