"""
Batch orchestrator tests — bwcontacts.pipeline.

The structure loader and the interaction detector are replaced by stubs
built around conftest's toy complex (TM1 residues 45-55, residue 47
missing), so every missing-data policy can be checked cell by cell.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest.mock import patch

import numpy as np
import pandas as pd
import pytest

from bwcontacts.config import LIGAND_COLUMN, RECEPTOR_COLUMN, TARGET_COLUMN
from bwcontacts.errors import SchemaError, StructureLoadError, TargetNotFoundError
from bwcontacts.interactions import InteractionCandidate
from bwcontacts.pipeline import (
    load_docking_table,
    load_tm_boundaries,
    lookup_boundaries,
    run_interaction_pipeline,
    save_results,
    summarize_interactions,
)
from bwcontacts.schemas import CATEGORICAL, INTERACTION_CATEGORIES, build_output_schema
from conftest import boundary_row


class StubDetector:
    """Returns fixed candidates keyed by the first atom of the residue."""

    def __init__(self, by_atom=None, fail_on=()):
        self.by_atom = by_atom or {}
        self.fail_on = set(fail_on)
        self.calls = []

    def detect(self, categories, ligand_atoms, receptor_atoms, options):
        self.calls.append((list(categories), receptor_atoms[0]))
        if receptor_atoms[0] in self.fail_on:
            raise RuntimeError("detector crashed")
        return list(self.by_atom.get(receptor_atoms[0], []))


@pytest.fixture()
def stub_detector(complex_atoms) -> StubDetector:
    """Residue 50: ligand-donor H-bond with no energy.  Residue 51: four
    interactions.  Residue 52: only a non-reportable distance contact."""
    rec = complex_atoms["receptor"]
    donor, acceptor = complex_atoms["ligand"]
    return StubDetector(
        {
            rec[50]: [InteractionCandidate("Hbond", (donor,), (rec[50],), None)],
            rec[51]: [
                InteractionCandidate("Ionic", (rec[51],), (acceptor,), -1.0),
                InteractionCandidate("Hbond", (rec[51],), (acceptor,), -2.0),
                InteractionCandidate("Covalent", (donor,), (rec[51],), -0.5),
                InteractionCandidate("Arene", (rec[51],), (donor,), -0.3),
            ],
            rec[52]: [InteractionCandidate("Distance", (donor,), (rec[52],), None)],
        }
    )


@pytest.fixture()
def result(docking_df, boundaries_df, stub_detector, complex_loader) -> pd.DataFrame:
    return run_interaction_pipeline(
        docking_df, boundaries_df, detector=stub_detector, loader=complex_loader,
    )


# ---------------------------------------------------------------------------
# Missing-data policies
# ---------------------------------------------------------------------------


class TestResiduePolicies:

    def test_missing_residue_nan_sum_and_na_types(self, result):
        row = result.iloc[0]
        assert np.isnan(row["1.47_intenergysum"])
        assert row["1.47_inttype1"] == "NA"
        assert row["1.47_inttype2"] == "NA"
        assert np.isnan(row["1.47_intenergy1"])

    def test_residue_without_interactions_scores_zero(self, result):
        row = result.iloc[0]
        assert row["1.45_intenergysum"] == 0.0
        assert row["1.45_inttype1"] == "NA"
        assert np.isnan(row["1.45_intenergy1"])
        assert row["1.45_inttype2"] == "NA"

    def test_null_energy_hbond_reported_as_zero(self, result):
        row = result.iloc[0]
        assert row["1.50_intenergysum"] == 0.0
        assert row["1.50_inttype1"] == "hbdon"
        assert row["1.50_intenergy1"] == 0.0
        assert row["1.50_inttype2"] == "NA"
        assert np.isnan(row["1.50_intenergy2"])

    def test_sum_covers_unreported_interactions(self, result):
        row = result.iloc[0]
        assert row["1.51_intenergysum"] == pytest.approx(-3.8)
        assert row["1.51_inttype1"] == "ion"
        assert row["1.51_intenergy1"] == -1.0
        assert row["1.51_inttype2"] == "hbacc"
        assert row["1.51_intenergy2"] == -2.0

    def test_distance_only_residue_scores_zero(self, result):
        row = result.iloc[0]
        assert row["1.52_intenergysum"] == 0.0
        assert row["1.52_inttype1"] == "NA"

    def test_absent_domains_are_nan(self, result):
        """TM2-7 residues are absent from the toy complex."""
        assert result["2.50_intenergysum"].isna().all()
        assert (result["7.51_inttype1"] == "NA").all()


# ---------------------------------------------------------------------------
# Table shape and totality
# ---------------------------------------------------------------------------


class TestOutputTable:

    def test_rows_match_docking_table(self, result, docking_df, boundaries_df):
        assert len(result) == len(docking_df)
        assert list(result.index) == list(docking_df.index)
        assert list(result.columns) == [
            spec.name for spec in build_output_schema(boundaries_df).values()
        ]

    def test_every_cell_is_set(self, result, boundaries_df):
        for spec in build_output_schema(boundaries_df).values():
            if spec.kind == CATEGORICAL:
                assert result[spec.name].notna().all(), spec.name
            else:
                assert result[spec.name].dtype == np.float64, spec.name

    def test_identical_entries_give_identical_rows(self, result):
        pd.testing.assert_series_equal(
            result.iloc[0], result.iloc[2], check_names=False,
        )

    def test_no_failures_recorded(self, result):
        assert result.attrs["failed_entries"] == {}


# ---------------------------------------------------------------------------
# Traversal order and detector contract
# ---------------------------------------------------------------------------


def test_residues_visited_in_ascending_order(
    docking_df, boundaries_df, stub_detector, complex_loader, complex_atoms,
):
    run_interaction_pipeline(
        docking_df.iloc[:1], boundaries_df, detector=stub_detector, loader=complex_loader,
    )
    by_atom = {atom: n for n, atom in complex_atoms["receptor"].items()}
    visited = [by_atom[atom] for _, atom in stub_detector.calls]

    assert visited == [45, 46, 48, 49, 50, 51, 52, 53, 54, 55]
    assert all(categories == INTERACTION_CATEGORIES for categories, _ in stub_detector.calls)


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


def test_structure_load_failure_skips_entry(docking_df, boundaries_df, stub_detector, complex_loader):
    def flaky_loader(record):
        if record[LIGAND_COLUMN] == "pose_2.sdf":
            raise StructureLoadError("corrupt pose")
        return complex_loader(record)

    result = run_interaction_pipeline(
        docking_df, boundaries_df, detector=stub_detector, loader=flaky_loader,
    )

    assert list(result.attrs["failed_entries"]) == [1]
    assert "corrupt pose" in result.attrs["failed_entries"][1]
    assert np.isnan(result.iloc[1]["1.51_intenergysum"])
    assert result.iloc[1]["1.51_inttype1"] == "NA"
    assert result.iloc[0]["1.51_intenergysum"] == pytest.approx(-3.8)
    assert result.iloc[2]["1.51_intenergysum"] == pytest.approx(-3.8)


def test_unknown_target_is_surfaced(docking_df, boundaries_df, stub_detector, complex_loader):
    docking_df.loc[0, TARGET_COLUMN] = "OPRM1"

    result = run_interaction_pipeline(
        docking_df, boundaries_df, detector=stub_detector, loader=complex_loader,
    )

    assert "TargetNotFoundError" in result.attrs["failed_entries"][0]
    assert result.iloc[0]["1.50_inttype1"] == "NA"
    assert result.iloc[1]["1.50_inttype1"] == "hbdon"


def test_residue_failure_does_not_stop_siblings(
    docking_df, boundaries_df, stub_detector, complex_loader, complex_atoms,
):
    stub_detector.fail_on = {complex_atoms["receptor"][50]}

    result = run_interaction_pipeline(
        docking_df.iloc[:1], boundaries_df, detector=stub_detector, loader=complex_loader,
    )

    row = result.iloc[0]
    assert np.isnan(row["1.50_intenergysum"])
    assert row["1.50_inttype1"] == "NA"
    assert row["1.51_intenergysum"] == pytest.approx(-3.8)
    assert result.attrs["failed_entries"] == {}


def test_entry_without_ligand_chain_fails_cleanly(docking_df, boundaries_df, stub_detector, complex_loader):
    def receptor_only(record):
        structure = complex_loader(record)
        structure.chains.pop()
        return structure

    result = run_interaction_pipeline(
        docking_df.iloc[:1], boundaries_df, detector=stub_detector, loader=receptor_only,
    )

    assert "ChainClassificationError" in result.attrs["failed_entries"][0]


def test_missing_columns_raise(docking_df, boundaries_df):
    with pytest.raises(SchemaError, match="target"):
        run_interaction_pipeline(docking_df.drop(columns=[TARGET_COLUMN]), boundaries_df)
    with pytest.raises(SchemaError, match="TM3_end"):
        run_interaction_pipeline(docking_df, boundaries_df.drop(columns=["TM3_end"]))


def test_pool_path_matches_sequential(docking_df, boundaries_df, stub_detector, complex_loader, result):
    with patch("bwcontacts.pipeline.ProcessPoolExecutor", ThreadPoolExecutor):
        pooled = run_interaction_pipeline(
            docking_df, boundaries_df, detector=stub_detector, loader=complex_loader,
            max_workers=2,
        )

    pd.testing.assert_frame_equal(pooled, result)


# ---------------------------------------------------------------------------
# Boundary lookup and table I/O
# ---------------------------------------------------------------------------


def test_lookup_boundaries_exact_match(boundaries_df):
    assert lookup_boundaries(boundaries_df, "ADRB2")[1] == {"start": 45, "x50": 50, "end": 55}
    with pytest.raises(TargetNotFoundError):
        lookup_boundaries(boundaries_df, "adrb2")


def test_load_tables_from_csv(tmp_path: Path):
    pd.DataFrame([boundary_row("5HT2A", (45, 50, 55))]).to_csv(tmp_path / "tm.csv", index=False)
    pd.DataFrame(
        {
            LIGAND_COLUMN: ["poses/a.sdf", "/abs/b.sdf"],
            RECEPTOR_COLUMN: ["rec.pdb", "rec.pdb"],
            TARGET_COLUMN: ["5HT2A", "5HT2A"],
        }
    ).to_csv(tmp_path / "docking.csv", index=False)

    boundaries = load_tm_boundaries(tmp_path / "tm.csv")
    docking = load_docking_table(tmp_path / "docking.csv")

    assert boundaries[TARGET_COLUMN].tolist() == ["5HT2A"]
    assert docking[LIGAND_COLUMN].tolist() == [str(tmp_path / "poses/a.sdf"), "/abs/b.sdf"]
    assert docking[RECEPTOR_COLUMN].iloc[0] == str(tmp_path / "rec.pdb")


def test_load_docking_table_requires_columns(tmp_path: Path):
    pd.DataFrame({LIGAND_COLUMN: ["a.sdf"]}).to_csv(tmp_path / "bad.csv", index=False)
    with pytest.raises(SchemaError, match="receptor"):
        load_docking_table(tmp_path / "bad.csv")


def test_summarize_and_save(result, tmp_path: Path):
    summary = summarize_interactions(result)

    assert summary.loc["1.50", "hbdon"] == 3
    assert summary.loc["1.51", "ion"] == 3
    assert summary.loc["1.51", "hbacc"] == 3
    assert list(summary.index) == ["1.50", "1.51"]

    path = save_results(result, tmp_path / "out" / "bw.csv")
    assert path.exists()
    assert len(pd.read_csv(path)) == len(result)
