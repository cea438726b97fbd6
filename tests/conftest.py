"""Shared pytest fixtures using BWContacts schemas."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from bwcontacts.config import LIGAND_COLUMN, RECEPTOR_COLUMN, TARGET_COLUMN, TM_DOMAINS
from bwcontacts.schemas import DOCKING_COLUMNS, TM_BOUNDARY_COLUMNS, boundary_columns
from bwcontacts.structure import Atom, Chain, Residue, Structure


@pytest.fixture()
def make_atom():
    """Factory for atoms at a given position with optional features."""
    serials = iter(range(1, 10_000))

    def _make(position, features=(), element="C", rings=(), name=None) -> Atom:
        serial = next(serials)
        return Atom(
            serial=serial,
            name=name or f"{element}{serial}",
            element=element,
            position=np.asarray(position, dtype=np.float64),
            features=frozenset(features),
            rings=tuple(rings),
        )

    return _make


def boundary_row(target: str, tm1: tuple[int, int, int]) -> dict:
    """One boundary-table row: TM1 as given, TM2-7 three residues each."""
    row = {TARGET_COLUMN: target}
    for tm in TM_DOMAINS:
        start_col, x50_col, end_col = boundary_columns(tm)
        if tm == 1:
            start, x50, end = tm1
        else:
            x50 = 100 * tm
            start, end = x50 - 1, x50 + 1
        row[start_col], row[x50_col], row[end_col] = start, x50, end
    return row


@pytest.fixture()
def boundaries_df() -> pd.DataFrame:
    df = pd.DataFrame([boundary_row("ADRB2", (45, 50, 55))])
    assert list(df.columns) == TM_BOUNDARY_COLUMNS
    return df


@pytest.fixture()
def docking_df() -> pd.DataFrame:
    df = pd.DataFrame(
        {
            LIGAND_COLUMN: ["pose_1.sdf", "pose_2.sdf", "pose_3.sdf"],
            RECEPTOR_COLUMN: ["rec_1.pdb", "rec_2.pdb", "rec_3.pdb"],
            TARGET_COLUMN: ["ADRB2", "ADRB2", "ADRB2"],
        }
    )
    for col in DOCKING_COLUMNS:
        assert col in df.columns, f"Missing column: {col}"
    return df


@pytest.fixture()
def complex_atoms(make_atom) -> dict:
    """Atoms of a toy complex: TM1 residues 45-55 without residue 47.

    Receptor atoms sit far apart on the x axis; the ligand sits at the
    origin.  Returns ``{"receptor": {number: Atom}, "ligand": [Atom, ...]}``.
    """
    receptor = {
        number: make_atom((10.0 * number, 0.0, 0.0), name=f"CA{number}")
        for number in range(45, 56)
        if number != 47
    }
    ligand = [
        make_atom((0.0, 0.0, 0.0), features={"donor"}, element="N"),
        make_atom((1.5, 0.0, 0.0), features={"acceptor"}, element="O"),
    ]
    return {"receptor": receptor, "ligand": ligand}


@pytest.fixture()
def complex_loader(complex_atoms):
    """Loader building a fresh structure around the same atoms on each call."""

    def _load(record) -> Structure:
        residues = [
            Residue(number=number, name="ALA", chain_id="A", atoms=[atom])
            for number, atom in complex_atoms["receptor"].items()
        ]
        ligand = Residue(number=1, name="LIG", chain_id="L", atoms=list(complex_atoms["ligand"]))
        return Structure(
            chains=[Chain("A", residues), Chain("L", [ligand])],
            label=str(record[LIGAND_COLUMN]),
        )

    return _load
