"""Integrity audit for a pipeline run: count conservation and key uniqueness."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .aggregate import count_key_columns
from .schema import COUNT, INDIVIDUAL_COUNT, INDIVIDUAL_ID, SUBSAMPLE_ID

logger = logging.getLogger(__name__)

PASS = "PASS"
WARN = "WARN"
FAIL = "FAIL"


@dataclass
class CheckResult:
    name: str
    status: str  # PASS, WARN, FAIL
    details: str


def _preview(values: Iterable, limit: int = 10) -> str:
    values = [str(v) for v in values]
    shown = ", ".join(values[:limit])
    if len(values) > limit:
        shown += f", … ({len(values) - limit} more)"
    return shown


class IntegrityAudit:
    def __init__(
        self,
        baseline: pd.DataFrame,
        reconciled: pd.DataFrame,
        counts: pd.DataFrame,
        expert_conflicts: Optional[Iterable[str]] = None,
    ) -> None:
        self.baseline = baseline
        self.reconciled = reconciled
        self.counts = counts
        self.expert_conflicts = sorted(map(str, expert_conflicts or []))
        self.results: List[CheckResult] = []

    # --------------------------------------------------------------
    # Helpers
    # --------------------------------------------------------------
    def record(self, name: str, status: str, details: str) -> None:
        self.results.append(CheckResult(name=name, status=status, details=details))
        if status == WARN:
            logger.warning("%s: %s", name, details)
        elif status == FAIL:
            logger.error("%s: %s", name, details)

    # --------------------------------------------------------------
    # Checks
    # --------------------------------------------------------------
    def check_subsample_conservation(self) -> None:
        declared = self.baseline.groupby(SUBSAMPLE_ID)[INDIVIDUAL_COUNT].sum()
        reconciled = self.reconciled.groupby(SUBSAMPLE_ID)[INDIVIDUAL_COUNT].sum()
        declared, reconciled = declared.align(reconciled, fill_value=0)
        off = declared[declared != reconciled].index
        if len(off):
            self.record(
                "Subsample count conservation",
                WARN,
                f"{len(off)} subsamples do not reproduce their sorted individualCount: {_preview(off)}",
            )
        else:
            self.record(
                "Subsample count conservation",
                PASS,
                f"{len(declared)} subsamples, {int(declared.sum())} individuals conserved",
            )

    def check_over_pinned(self) -> None:
        pinned = (
            self.reconciled[self.reconciled[INDIVIDUAL_ID].notna()]
            .groupby(SUBSAMPLE_ID)
            .size()
        )
        declared = self.baseline.set_index(SUBSAMPLE_ID)[INDIVIDUAL_COUNT]
        over = pinned[pinned > declared.reindex(pinned.index).fillna(0)].index
        if len(over):
            self.record(
                "Pinned individuals within sorted count",
                WARN,
                f"{len(over)} subsamples have more pinned individuals than sorted: {_preview(over)}",
            )
        else:
            self.record("Pinned individuals within sorted count", PASS, f"{int(pinned.sum())} pinned individuals")

    def check_total_conservation(self) -> None:
        reconciled_total = int(self.reconciled[INDIVIDUAL_COUNT].sum())
        counted_total = int(self.counts[COUNT].sum()) if len(self.counts) else 0
        if reconciled_total != counted_total:
            self.record(
                "Total count conservation",
                WARN,
                f"reconciled {reconciled_total} individuals but counted {counted_total}",
            )
        else:
            self.record("Total count conservation", PASS, f"{counted_total} individuals")

    def check_key_uniqueness(self) -> None:
        key = [col for col in count_key_columns(self.reconciled) if col in self.counts.columns]
        dupes = self.counts.duplicated(subset=key, keep=False) if len(self.counts) else pd.Series(dtype=bool)
        if dupes.any():
            self.record("Count key uniqueness", FAIL, f"{int(dupes.sum())} rows share a key")
        else:
            self.record("Count key uniqueness", PASS, f"{len(self.counts)} unique keys")

    def check_expert_conflicts(self) -> None:
        if self.expert_conflicts:
            details = (
                f"{len(self.expert_conflicts)} individuals kept at pin level: "
                f"{_preview(self.expert_conflicts)}"
            )
        else:
            details = "no conflicting expert identifications"
        self.record("Expert identification consistency", PASS, details)

    # --------------------------------------------------------------
    def run(self) -> "IntegrityAudit":
        self.check_subsample_conservation()
        self.check_over_pinned()
        self.check_total_conservation()
        self.check_key_uniqueness()
        self.check_expert_conflicts()
        return self

    @property
    def failed(self) -> bool:
        return any(r.status == FAIL for r in self.results)

    def as_dict(self) -> Dict[str, Dict[str, str]]:
        return {
            r.name: {"status": r.status, "details": r.details}
            for r in self.results
        }
