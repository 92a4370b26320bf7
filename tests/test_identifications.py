from __future__ import annotations

import pandas as pd

from carabid_counts.identifications import (
    IdentificationSource,
    admit_sort_records,
    apply_expert,
    expand_pinned,
    expert_conflicts,
    join_sorting,
    reconcile_identifications,
    resolve_identifications,
)


def _trapping(*sample_ids: str) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "sampleID": list(sample_ids),
            "domainID": "D01",
            "siteID": "HARV",
            "plotID": "HARV_001",
            "trapID": [f"T{i}" for i in range(len(sample_ids))],
            "collectDate": "2018-06-04",
            "collected": True,
            "trappingDays": 3,
            "boutID": "HARV_2018-06-04",
        }
    )


def _sort(subsample_id: str, sample_id: str, count, taxon: str = "CARSP1", sample_type: str = "carabid") -> dict:
    return {
        "sampleID": sample_id,
        "subsampleID": subsample_id,
        "sampleType": sample_type,
        "taxonID": taxon,
        "scientificName": f"{taxon} sp.",
        "taxonRank": "species",
        "identificationQualifier": None,
        "individualCount": count,
    }


def _pin(individual_id: str, subsample_id: str, taxon) -> dict:
    return {
        "subsampleID": subsample_id,
        "individualID": individual_id,
        "taxonID": taxon,
        "scientificName": f"{taxon} sp." if taxon else None,
        "taxonRank": "species",
        "identificationQualifier": None,
    }


def _expert(individual_id: str, taxon: str, qualifier=None) -> dict:
    return {
        "individualID": individual_id,
        "taxonID": taxon,
        "scientificName": f"{taxon} sp.",
        "taxonRank": "species",
        "identificationQualifier": qualifier,
    }


def _frame(rows, columns) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=columns)


PIN_COLUMNS = ["subsampleID", "individualID", "taxonID", "scientificName", "taxonRank", "identificationQualifier"]
EXPERT_COLUMNS = ["individualID", "taxonID", "scientificName", "taxonRank", "identificationQualifier"]


def _reconcile(trapping, sorts, pins=(), experts=()) -> pd.DataFrame:
    baseline = join_sorting(trapping, pd.DataFrame(sorts))
    return reconcile_identifications(
        baseline,
        _frame(list(pins), PIN_COLUMNS),
        _frame(list(experts), EXPERT_COLUMNS),
    )


def test_precedence_runs_sort_pin_expert() -> None:
    ordered = sorted(IdentificationSource, key=lambda s: s.precedence)
    assert [s.value for s in ordered] == ["sort", "pin", "expert"]


def test_bycatch_and_unusable_counts_are_not_admitted() -> None:
    sorting = pd.DataFrame(
        [
            _sort("SS1", "S1", 2),
            _sort("SS2", "S1", 1, sample_type=" Other Carabid "),
            _sort("SS3", "S1", 5, sample_type="invert bycatch"),
            _sort("SS4", "S1", 4, sample_type="vert bycatch herp"),
            _sort("SS5", "S1", 0),
            _sort("SS6", "S1", None),
        ]
    )
    admitted = admit_sort_records(sorting)
    assert list(admitted["subsampleID"]) == ["SS1", "SS2"]
    assert admitted["individualCount"].dtype == "int64"


def test_text_counts_are_coerced() -> None:
    admitted = admit_sort_records(pd.DataFrame([_sort("SS1", "S1", "7")]))
    assert admitted.loc[0, "individualCount"] == 7


def test_subsamples_without_collected_sample_are_dropped() -> None:
    baseline = join_sorting(_trapping("S1"), pd.DataFrame([_sort("SS1", "S1", 2), _sort("SS2", "S9", 3)]))
    assert list(baseline["subsampleID"]) == ["SS1"]
    assert baseline.loc[0, "boutID"] == "HARV_2018-06-04"


def test_partially_pinned_subsample_keeps_residual() -> None:
    baseline = join_sorting(_trapping("S1"), pd.DataFrame([_sort("SS1", "S1", 5)]))
    pins = _frame([_pin("I1", "SS1", "CARSP1"), _pin("I2", "SS1", "CARSP2")], PIN_COLUMNS)
    rows = expand_pinned(baseline, pins)

    assert list(rows["individualID"].fillna("-")) == ["I1", "I2", "-"]
    assert list(rows["individualCount"]) == [1, 1, 3]
    assert list(rows["pin_taxonID"].fillna("-")) == ["CARSP1", "CARSP2", "-"]
    assert rows["individualCount"].sum() == 5


def test_fully_pinned_subsample_has_no_residual() -> None:
    baseline = join_sorting(_trapping("S1"), pd.DataFrame([_sort("SS1", "S1", 2)]))
    pins = _frame([_pin("I1", "SS1", "CARSP1"), _pin("I2", "SS1", "CARSP1")], PIN_COLUMNS)
    rows = expand_pinned(baseline, pins)
    assert rows["individualID"].notna().all()
    assert rows["individualCount"].sum() == 2


def test_repeated_pin_records_count_once() -> None:
    reconciled = _reconcile(
        _trapping("S1"),
        [_sort("SS1", "S1", 3)],
        pins=[_pin("I1", "SS1", "CARSP2"), _pin("I1", "SS1", "CARSP3")],
    )
    assert reconciled["individualCount"].sum() == 3
    pinned = reconciled[reconciled["individualID"] == "I1"]
    assert len(pinned) == 1
    assert pinned.iloc[0]["taxonID"] == "CARSP2"


def test_unpinned_subsample_stays_at_sort_level() -> None:
    reconciled = _reconcile(_trapping("S1"), [_sort("SS1", "S1", 4)])
    assert len(reconciled) == 1
    row = reconciled.iloc[0]
    assert row["identificationSource"] == "sort"
    assert row["individualCount"] == 4
    assert row["taxonID"] == "CARSP1"
    assert pd.isna(row["individualID"])


def test_pin_without_taxon_keeps_sort_identification() -> None:
    reconciled = _reconcile(
        _trapping("S1"),
        [_sort("SS1", "S1", 2)],
        pins=[_pin("I1", "SS1", None)],
    )
    pinned = reconciled[reconciled["individualID"] == "I1"].iloc[0]
    assert pinned["taxonID"] == "CARSP1"
    assert pinned["scientificName"] == "CARSP1 sp."
    assert pinned["identificationSource"] == "sort"
    assert reconciled["individualCount"].sum() == 2


def test_pin_under_bycatch_does_not_hide_later_carabid_pin() -> None:
    reconciled = _reconcile(
        _trapping("S1"),
        [_sort("SS1", "S1", 2), _sort("SS9", "S1", 5, sample_type="invert bycatch")],
        pins=[_pin("I1", "SS9", "CARSP2"), _pin("I1", "SS1", "CARSP2")],
    )
    pinned = reconciled[reconciled["individualID"] == "I1"].iloc[0]
    assert pinned["subsampleID"] == "SS1"
    assert pinned["identificationSource"] == "pin"
    residual = reconciled[reconciled["individualID"].isna()].iloc[0]
    assert residual["individualCount"] == 1


def test_expert_call_skips_pin_left_at_sort_level() -> None:
    reconciled = _reconcile(
        _trapping("S1"),
        [_sort("SS1", "S1", 2)],
        pins=[_pin("I1", "SS1", None)],
        experts=[_expert("I1", "COLSP1")],
    )
    pinned = reconciled[reconciled["individualID"] == "I1"].iloc[0]
    assert pinned["taxonID"] == "CARSP1"
    assert pinned["identificationSource"] == "sort"
    assert "COLSP1" not in set(reconciled["taxonID"])


def test_expert_conflicts_are_individuals_with_disagreeing_calls() -> None:
    expert = _frame(
        [
            _expert("I1", "COLSP1"),
            _expert("I1", "COLSP2"),
            _expert("I2", "COLSP1"),
            _expert("I2", "COLSP1"),
        ],
        EXPERT_COLUMNS,
    )
    assert expert_conflicts(expert) == {"I1"}


def test_conflicting_expert_calls_leave_pin_identification() -> None:
    reconciled = _reconcile(
        _trapping("S1"),
        [_sort("SS1", "S1", 2)],
        pins=[_pin("I1", "SS1", "CARSP2"), _pin("I2", "SS1", "CARSP3")],
        experts=[_expert("I1", "COLSP1"), _expert("I1", "COLSP2"), _expert("I2", "COLSP3"), _expert("I2", "COLSP3")],
    )
    by_id = reconciled.set_index("individualID")
    assert by_id.loc["I1", "taxonID"] == "CARSP2"
    assert by_id.loc["I1", "identificationSource"] == "pin"
    assert by_id.loc["I2", "taxonID"] == "COLSP3"
    assert by_id.loc["I2", "identificationSource"] == "expert"


def test_expert_call_replaces_qualifier_with_taxon() -> None:
    reconciled = _reconcile(
        _trapping("S1"),
        [_sort("SS1", "S1", 1)],
        pins=[_pin("I1", "SS1", "CARSP2")],
        experts=[_expert("I1", "COLSP1", qualifier="cf. species")],
    )
    row = reconciled.iloc[0]
    assert row["taxonID"] == "COLSP1"
    assert row["scientificName"] == "COLSP1 sp."
    assert row["identificationQualifier"] == "cf. species"


def test_expert_call_does_not_reach_unpinned_siblings() -> None:
    reconciled = _reconcile(
        _trapping("S1"),
        [_sort("SS1", "S1", 4)],
        pins=[_pin("I1", "SS1", "CARSP1")],
        experts=[_expert("I1", "COLSP1")],
    )
    residual = reconciled[reconciled["individualID"].isna()].iloc[0]
    assert residual["taxonID"] == "CARSP1"
    assert residual["individualCount"] == 3
    assert set(reconciled["taxonID"]) == {"CARSP1", "COLSP1"}


def test_expert_records_for_unknown_individuals_are_ignored() -> None:
    baseline = join_sorting(_trapping("S1"), pd.DataFrame([_sort("SS1", "S1", 1)]))
    rows = expand_pinned(baseline, _frame([], PIN_COLUMNS))
    merged = apply_expert(rows, _frame([_expert("I99", "COLSP1")], EXPERT_COLUMNS))
    resolved = resolve_identifications(merged)
    assert len(resolved) == 1
    assert resolved.iloc[0]["identificationSource"] == "sort"
    assert not any(col.startswith(("pin_", "expert_")) for col in resolved.columns)


def test_reconciled_example_from_one_trap() -> None:
    reconciled = _reconcile(
        _trapping("S1"),
        [_sort("SS1", "S1", 3)],
        pins=[_pin("I1", "SS1", "CARSP1"), _pin("I2", "SS1", "CARSP2")],
        experts=[_expert("I2", "COLSP1")],
    )
    rows = [
        (r.individualID if isinstance(r.individualID, str) else None, r.taxonID, r.identificationSource, r.individualCount)
        for r in reconciled.itertuples()
    ]
    assert rows == [
        ("I1", "CARSP1", "pin", 1),
        ("I2", "COLSP1", "expert", 1),
        (None, "CARSP1", "sort", 1),
    ]


def test_counts_are_conserved_per_subsample() -> None:
    sorts = [_sort("SS1", "S1", 3), _sort("SS2", "S1", 1, taxon="CARSP2"), _sort("SS3", "S2", 6)]
    pins = [
        _pin("I1", "SS1", "CARSP1"),
        _pin("I2", "SS2", "CARSP5"),
        _pin("I3", "SS3", "CARSP1"),
        _pin("I4", "SS3", "CARSP9"),
    ]
    experts = [_expert("I4", "COLSP1"), _expert("I3", "COLSP2"), _expert("I3", "COLSP3")]
    reconciled = _reconcile(_trapping("S1", "S2"), sorts, pins, experts)
    totals = reconciled.groupby("subsampleID")["individualCount"].sum().to_dict()
    assert totals == {"SS1": 3, "SS2": 1, "SS3": 6}
