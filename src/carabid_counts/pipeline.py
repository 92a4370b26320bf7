"""Field samples + three identification tiers -> per-trap taxon counts."""
from __future__ import annotations

import logging
from dataclasses import dataclass

import pandas as pd

from .aggregate import aggregate_counts
from .identifications import expert_conflicts, join_sorting, reconcile_identifications
from .integrity import IntegrityAudit
from .provider import DataProvider
from .samples import normalize_samples

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    trapping: pd.DataFrame
    reconciled: pd.DataFrame
    counts: pd.DataFrame
    audit: IntegrityAudit


class CarabidCountPipeline:
    """Runs the reconciliation over whatever tables ``provider`` supplies.

    Each call to :meth:`run` reads the four tables once and returns fresh
    frames; nothing is cached between runs.
    """

    def __init__(self, provider: DataProvider) -> None:
        self.provider = provider

    def run(self) -> PipelineResult:
        field = self.provider.field_samples()
        sorting = self.provider.sorting()
        pinning = self.provider.pinning()
        expert = self.provider.expert()

        trapping = normalize_samples(field)
        baseline = join_sorting(trapping, sorting)
        reconciled = reconcile_identifications(baseline, pinning, expert)
        counts = aggregate_counts(reconciled)

        audit = IntegrityAudit(baseline, reconciled, counts, expert_conflicts(expert)).run()
        logger.info(
            "Run complete: %d trapping records, %d reconciled rows, %d count rows",
            len(trapping),
            len(reconciled),
            len(counts),
        )
        return PipelineResult(trapping=trapping, reconciled=reconciled, counts=counts, audit=audit)
