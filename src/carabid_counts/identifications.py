"""Identification merger: sort -> pin -> expert.

Every admitted sort record starts as a sort-level identification. Pinned
specimens split off their subsample as one-individual rows, leaving a residual
row for whatever was not pinned. Expert calls then override pin-level rows,
except for individuals whose expert records disagree with each other.

An expert call on one individual is not propagated to the un-pinned siblings
of the same subsample, so a subsample may end up split across several taxa.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import List, Set

import pandas as pd

from .schema import (
    CARABID_SAMPLE_TYPES,
    EXPERT_COLUMNS,
    IDENTIFICATION_SOURCE,
    INDIVIDUAL_COUNT,
    INDIVIDUAL_ID,
    PIN_COLUMNS,
    RECONCILED_COLUMNS,
    SAMPLE_ID,
    SAMPLE_TYPE,
    SORT_COLUMNS,
    SUBSAMPLE_ID,
    TAXON_ID,
    TAXONOMY_COLUMNS,
    require_columns,
)

logger = logging.getLogger(__name__)

_ORDER = "_sort_position"
_PART = "_part"


class IdentificationSource(str, Enum):
    """Where an identification came from, lowest precedence first."""

    SORT = "sort"
    PIN = "pin"
    EXPERT = "expert"

    @property
    def precedence(self) -> int:
        return list(IdentificationSource).index(self)

    @property
    def prefix(self) -> str:
        return f"{self.value}_"


def _tier_columns(tier: IdentificationSource) -> dict:
    return {col: tier.prefix + col for col in TAXONOMY_COLUMNS}


def admit_sort_records(sorting: pd.DataFrame) -> pd.DataFrame:
    """Carabid sort records with a usable individualCount; bycatch is dropped."""
    require_columns(sorting, SORT_COLUMNS, "sorting")
    df = sorting[SORT_COLUMNS].copy()
    sample_type = df[SAMPLE_TYPE].astype("string").str.strip().str.lower()
    df = df[sample_type.isin(CARABID_SAMPLE_TYPES).fillna(False)].copy()

    counts = pd.to_numeric(df[INDIVIDUAL_COUNT], errors="coerce")
    usable = counts.notna() & (counts >= 1) & (counts % 1 == 0)
    if (~usable).any():
        logger.warning(
            "Dropping %d carabid sort records without a positive whole individualCount: %s",
            int((~usable).sum()),
            ", ".join(df.loc[~usable, SUBSAMPLE_ID].astype(str).head(10)),
        )
    df = df[usable].copy()
    df[INDIVIDUAL_COUNT] = counts[usable].astype("int64")

    dupes = df[SUBSAMPLE_ID].duplicated(keep="first")
    if dupes.any():
        logger.warning(
            "Ignoring %d repeated subsampleIDs in sorting (first record kept)", int(dupes.sum())
        )
        df = df[~dupes]
    logger.info("Sorting: %d rows, %d carabid subsamples admitted", len(sorting), len(df))
    return df.reset_index(drop=True)


def join_sorting(trapping: pd.DataFrame, sorting: pd.DataFrame) -> pd.DataFrame:
    """Pass 1: sort-level baseline, one row per subsample with a trapping record."""
    admitted = admit_sort_records(sorting)
    joined = trapping.merge(admitted, on=SAMPLE_ID, how="inner", validate="one_to_many")
    dropped = len(admitted) - len(joined)
    if dropped:
        logger.info("Dropped %d subsamples with no collected field sample", dropped)
    return joined.reset_index(drop=True)


def expand_pinned(sorted_rows: pd.DataFrame, pinning: pd.DataFrame) -> pd.DataFrame:
    """Pass 2: one row per pinned individual plus a residual per subsample.

    Pinned rows carry the pin identification under ``pin_*`` columns and a
    count of 1. The residual keeps the sort-level identification and whatever
    part of the declared individualCount was not pinned.
    """
    require_columns(pinning, PIN_COLUMNS, "pinning")
    pins = pinning[PIN_COLUMNS].dropna(subset=[SUBSAMPLE_ID, INDIVIDUAL_ID])
    pins = pins[pins[SUBSAMPLE_ID].isin(sorted_rows[SUBSAMPLE_ID])]
    pins = pins.drop_duplicates(subset=[INDIVIDUAL_ID], keep="first")
    pins = pins.rename(columns=_tier_columns(IdentificationSource.PIN))

    base = sorted_rows.copy()
    base[_ORDER] = range(len(base))

    pinned = base.merge(pins, on=SUBSAMPLE_ID, how="inner")
    pinned[INDIVIDUAL_COUNT] = 1
    pinned[_PART] = 0

    n_pinned = pins.groupby(SUBSAMPLE_ID).size()
    remainder = base[INDIVIDUAL_COUNT] - base[SUBSAMPLE_ID].map(n_pinned).fillna(0).astype("int64")
    residual = base[remainder > 0].copy()
    residual[INDIVIDUAL_COUNT] = remainder[remainder > 0]
    residual[INDIVIDUAL_ID] = pd.NA
    residual[_PART] = 1

    partial = int(((remainder > 0) & base[SUBSAMPLE_ID].isin(n_pinned.index)).sum())
    logger.info(
        "Pinning: %d pinned individuals, %d partially pinned subsamples given a residual row",
        len(pinned),
        partial,
    )

    rows = pd.concat([pinned, residual], ignore_index=True)
    rows = rows.sort_values([_ORDER, _PART], kind="stable").drop(columns=[_ORDER, _PART])
    rows[INDIVIDUAL_COUNT] = rows[INDIVIDUAL_COUNT].astype("int64")
    return rows.reset_index(drop=True)


def expert_conflicts(expert: pd.DataFrame) -> Set[str]:
    """individualIDs whose expert records name more than one taxonID."""
    require_columns(expert, EXPERT_COLUMNS, "expert")
    calls = expert.dropna(subset=[INDIVIDUAL_ID, TAXON_ID])
    distinct = calls.groupby(INDIVIDUAL_ID)[TAXON_ID].nunique()
    return set(distinct[distinct > 1].index)


def apply_expert(rows: pd.DataFrame, expert: pd.DataFrame) -> pd.DataFrame:
    """Pass 3: attach consistent expert calls to pin-level rows as ``expert_*``."""
    conflicts = expert_conflicts(expert)
    if conflicts:
        logger.warning(
            "Excluding %d individuals with conflicting expert identifications: %s",
            len(conflicts),
            ", ".join(sorted(map(str, conflicts))[:10]),
        )
    calls = expert[EXPERT_COLUMNS].dropna(subset=[INDIVIDUAL_ID, TAXON_ID])
    calls = calls[~calls[INDIVIDUAL_ID].isin(conflicts)]
    calls = calls.drop_duplicates(subset=[INDIVIDUAL_ID], keep="first")
    calls = calls.rename(columns=_tier_columns(IdentificationSource.EXPERT))

    merged = rows.merge(calls, on=INDIVIDUAL_ID, how="left")
    # Only pin-level identifications are open to expert override.
    pin_level = merged[IdentificationSource.PIN.prefix + TAXON_ID].notna()
    for col in _tier_columns(IdentificationSource.EXPERT).values():
        merged[col] = merged[col].where(pin_level)
    logger.info(
        "Expert review: %d individuals re-identified",
        int(merged[IdentificationSource.EXPERT.prefix + TAXON_ID].notna().sum()),
    )
    return merged


def resolve_identifications(rows: pd.DataFrame) -> pd.DataFrame:
    """Collapse tiered identification columns into one, highest precedence wins.

    A tier counts only where it supplies a taxonID; a missing call never
    erases the identification of a lower tier.
    """
    out = rows.copy()
    source = pd.Series(IdentificationSource.SORT.value, index=out.index, dtype=object)
    tier_cols: List[str] = []
    for tier in sorted(IdentificationSource, key=lambda t: t.precedence):
        if tier is IdentificationSource.SORT:
            continue
        columns = _tier_columns(tier)
        if columns[TAXON_ID] not in out.columns:
            continue
        present = out[columns[TAXON_ID]].notna()
        for col, tier_col in columns.items():
            out[col] = out[tier_col].where(present, out[col])
        source = source.mask(present, tier.value)
        tier_cols.extend(columns.values())
    out[IDENTIFICATION_SOURCE] = source
    return out.drop(columns=tier_cols)


def reconcile_identifications(
    baseline: pd.DataFrame,
    pinning: pd.DataFrame,
    expert: pd.DataFrame,
) -> pd.DataFrame:
    """Passes 2 and 3 over the sort baseline from :func:`join_sorting`.

    Returns the trapping context columns followed by one reconciled
    identification per pinned individual or residual group.
    """
    rows = expand_pinned(baseline, pinning)
    rows = apply_expert(rows, expert)
    rows = resolve_identifications(rows)

    context = [col for col in baseline.columns if col not in RECONCILED_COLUMNS]
    reconciled = rows[context + RECONCILED_COLUMNS]
    summary = reconciled[IDENTIFICATION_SOURCE].value_counts()
    logger.info(
        "Reconciled %d rows (%s)",
        len(reconciled),
        ", ".join(f"{src}={n}" for src, n in summary.items()),
    )
    return reconciled.reset_index(drop=True)
