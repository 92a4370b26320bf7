"""Column names and table layouts shared by every pipeline stage."""
from __future__ import annotations

# FieldSample
SAMPLE_ID = "sampleID"
DOMAIN_ID = "domainID"
SITE_ID = "siteID"
PLOT_ID = "plotID"
TRAP_ID = "trapID"
SET_DATE = "setDate"
COLLECT_DATE = "collectDate"
EVENT_ID = "eventID"
COLLECTED = "collected"

# Derived on TrappingRecord
TRAPPING_DAYS = "trappingDays"
BOUT_ID = "boutID"

# Sort / pin / expert
SUBSAMPLE_ID = "subsampleID"
SAMPLE_TYPE = "sampleType"
INDIVIDUAL_ID = "individualID"
TAXON_ID = "taxonID"
SCIENTIFIC_NAME = "scientificName"
TAXON_RANK = "taxonRank"
IDENTIFICATION_QUALIFIER = "identificationQualifier"
INDIVIDUAL_COUNT = "individualCount"
IDENTIFICATION_SOURCE = "identificationSource"

COUNT = "count"

FIELD_SAMPLE_COLUMNS = [
    SAMPLE_ID,
    DOMAIN_ID,
    SITE_ID,
    PLOT_ID,
    TRAP_ID,
    SET_DATE,
    COLLECT_DATE,
    EVENT_ID,
    COLLECTED,
]
REQUIRED_SAMPLE_KEYS = [SAMPLE_ID, SITE_ID, PLOT_ID, TRAP_ID]

TAXONOMY_COLUMNS = [TAXON_ID, SCIENTIFIC_NAME, TAXON_RANK, IDENTIFICATION_QUALIFIER]

SORT_COLUMNS = [SAMPLE_ID, SUBSAMPLE_ID, SAMPLE_TYPE, *TAXONOMY_COLUMNS, INDIVIDUAL_COUNT]
PIN_COLUMNS = [SUBSAMPLE_ID, INDIVIDUAL_ID, *TAXONOMY_COLUMNS]
EXPERT_COLUMNS = [INDIVIDUAL_ID, *TAXONOMY_COLUMNS]

# eventID and setDate are dropped once trappingDays and boutID exist.
TRAPPING_COLUMNS = [
    SAMPLE_ID,
    DOMAIN_ID,
    SITE_ID,
    PLOT_ID,
    TRAP_ID,
    COLLECT_DATE,
    COLLECTED,
    TRAPPING_DAYS,
    BOUT_ID,
]

RECONCILED_COLUMNS = [
    SUBSAMPLE_ID,
    SAMPLE_TYPE,
    INDIVIDUAL_ID,
    *TAXONOMY_COLUMNS,
    INDIVIDUAL_COUNT,
    IDENTIFICATION_SOURCE,
]

# Projected out of the reconciled rows before counting.
NON_KEY_COLUMNS = [
    SUBSAMPLE_ID,
    SAMPLE_TYPE,
    INDIVIDUAL_ID,
    IDENTIFICATION_SOURCE,
    IDENTIFICATION_QUALIFIER,
]

CARABID_SAMPLE_TYPES = {"carabid", "other carabid"}

# NEON bet_fielddata publishes the collection flag as sampleCollected = Y/N.
NEON_COLUMN_ALIASES = {
    "sampleCollected": COLLECTED,
}


def require_columns(df, columns, table: str) -> None:
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise ValueError(f"Columns {missing} are required in the {table} table")
