"""Sample normalizer: collected field samples -> trapping records with bouts.

Steps, in order:
  1. keep rows flagged as collected
  2. trappingDays = whole days between setDate and collectDate
  3. multi-bout traps (one setDate, several collectDates) count days for the
     later collections from the shortest interval in the series
  4. collectDate per eventID resolves to its most common value, so an event
     split across consecutive days lands in one bout
  5. boutID = siteID + "_" + resolved collectDate
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

import pandas as pd

from .errors import SampleDataError
from .schema import (
    BOUT_ID,
    COLLECT_DATE,
    COLLECTED,
    DOMAIN_ID,
    EVENT_ID,
    FIELD_SAMPLE_COLUMNS,
    NEON_COLUMN_ALIASES,
    PLOT_ID,
    REQUIRED_SAMPLE_KEYS,
    SAMPLE_ID,
    SET_DATE,
    SITE_ID,
    TRAPPING_COLUMNS,
    TRAP_ID,
    TRAPPING_DAYS,
    require_columns,
)

logger = logging.getLogger(__name__)

TRUE_TOKENS = {"y", "yes", "true", "t", "1"}
FALSE_TOKENS = {"n", "no", "false", "f", "0"}

# One trap setting; collections sharing these fields form a multi-bout series.
TRAP_SETTING_COLUMNS = [DOMAIN_ID, SITE_ID, PLOT_ID, TRAP_ID, SET_DATE, COLLECTED]


def first_mode(values: Iterable[Any]) -> Any:
    """Most frequent value; ties go to the value seen first."""
    counts: Dict[Any, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    if not counts:
        return None
    best = max(counts.values())
    return next(value for value, n in counts.items() if n == best)


def normalize_event_id(events: pd.Series) -> pd.Series:
    """Strip separator noise ("BET.HARV.2018.26" -> "BETHARV201826")."""
    cleaned = events.astype("string").str.replace(r"[^0-9A-Za-z]", "", regex=True)
    return cleaned.mask(cleaned.fillna("") == "")


def _row_labels(df: pd.DataFrame, mask: pd.Series) -> List[str]:
    labels = []
    for idx, sample_id in df.loc[mask, SAMPLE_ID].items():
        if pd.isna(sample_id) or str(sample_id).strip() == "":
            labels.append(f"row {idx}")
        else:
            labels.append(f"{sample_id} (row {idx})")
    return labels


def parse_collected(values: pd.Series) -> pd.Series:
    def _parse(value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if pd.isna(value):
            return None
        token = str(value).strip().lower()
        if token in TRUE_TOKENS:
            return True
        if token in FALSE_TOKENS:
            return False
        return None

    return values.map(_parse)


def _parse_dates(df: pd.DataFrame, column: str) -> pd.Series:
    parsed = pd.to_datetime(df[column], errors="coerce", utc=True, format="ISO8601")
    bad = parsed.isna()
    if bad.any():
        raise SampleDataError(f"Missing or unparseable {column}", _row_labels(df, bad))
    return parsed.dt.tz_localize(None).dt.normalize()


def _validate_keys(df: pd.DataFrame) -> None:
    for column in REQUIRED_SAMPLE_KEYS:
        values = df[column]
        blank = values.isna() | (values.astype("string").str.strip() == "")
        if blank.any():
            raise SampleDataError(f"Missing required key {column}", _row_labels(df, blank.fillna(True)))
    dupes = df[SAMPLE_ID].duplicated(keep=False)
    if dupes.any():
        raise SampleDataError("Duplicate sampleID among collected samples", _row_labels(df, dupes))


def adjust_multi_bout_days(df: pd.DataFrame) -> pd.DataFrame:
    """Recount trappingDays for traps set once but collected on several dates.

    The shortest interval in a series anchors it and keeps its value; every
    other collection becomes its interval minus that minimum.
    """
    grouped = df.groupby(TRAP_SETTING_COLUMNS, dropna=False, sort=False)
    n_dates = grouped[COLLECT_DATE].transform("nunique")
    min_days = grouped[TRAPPING_DAYS].transform("min")

    multi = n_dates > 1
    diff = df[TRAPPING_DAYS] - min_days
    out = df.copy()
    out[TRAPPING_DAYS] = df[TRAPPING_DAYS].where(~multi | (diff == 0), diff).astype("int64")
    if multi.any():
        logger.info(
            "Adjusted trappingDays for %d collections across multi-bout traps",
            int((multi & (diff != 0)).sum()),
        )
    return out


def resolve_bout_dates(df: pd.DataFrame) -> pd.Series:
    """collectDate per sampling event, resolved to the event's modal date."""
    events = normalize_event_id(df[EVENT_ID])
    has_event = events.notna()
    # Rows without an eventID stand alone.
    resolved = df[COLLECT_DATE].copy()
    if has_event.any():
        dates = df.loc[has_event, COLLECT_DATE]
        resolved[has_event] = dates.groupby(events[has_event], sort=False).transform(first_mode)
    changed = int((resolved != df[COLLECT_DATE]).sum())
    if changed:
        logger.info("Moved %d samples onto their event's modal collectDate", changed)
    return resolved


def normalize_samples(field: pd.DataFrame) -> pd.DataFrame:
    """Filter, date and bout raw field samples into trapping records."""
    aliases = {raw: name for raw, name in NEON_COLUMN_ALIASES.items() if name not in field.columns}
    df = field.rename(columns=aliases).reset_index(drop=True)
    require_columns(df, FIELD_SAMPLE_COLUMNS, "field sample")
    # NEON publishes its own trappingDays; it is recomputed here.
    df = df.drop(columns=[col for col in (TRAPPING_DAYS, BOUT_ID) if col in df.columns])

    collected = parse_collected(df[COLLECTED])
    unparsed = collected.isna()
    if unparsed.any():
        raise SampleDataError("Missing or unparseable collected flag", _row_labels(df, unparsed))
    df = df[collected.astype(bool)].copy()
    df[COLLECTED] = True
    logger.info("Field samples: %d rows, %d collected", len(field), len(df))

    extras = [col for col in df.columns if col not in FIELD_SAMPLE_COLUMNS]
    if extras:
        logger.info("Dropping field columns outside the trapping schema: %s", ", ".join(extras))
    df = df[FIELD_SAMPLE_COLUMNS].copy()
    if df.empty:
        return pd.DataFrame(columns=TRAPPING_COLUMNS)

    _validate_keys(df)
    set_dates = _parse_dates(df, SET_DATE)
    collect_dates = _parse_dates(df, COLLECT_DATE)

    days = (collect_dates - set_dates).dt.days
    negative = days < 0
    if negative.any():
        raise SampleDataError("collectDate precedes setDate", _row_labels(df, negative))

    df[SET_DATE] = set_dates.dt.strftime("%Y-%m-%d")
    df[COLLECT_DATE] = collect_dates.dt.strftime("%Y-%m-%d")
    df[TRAPPING_DAYS] = days.astype("int64")

    df = adjust_multi_bout_days(df)
    df[COLLECT_DATE] = resolve_bout_dates(df)
    df[BOUT_ID] = df[SITE_ID].astype(str) + "_" + df[COLLECT_DATE]

    out = df[TRAPPING_COLUMNS].reset_index(drop=True)
    logger.info("Trapping records: %d across %d bouts", len(out), out[BOUT_ID].nunique())
    return out
