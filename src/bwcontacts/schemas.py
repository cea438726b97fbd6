"""
BWContacts shared data contracts.

Every module imports its input/output shapes from here.
This is the single source of truth — do not redefine these elsewhere.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple, TypedDict

from bwcontacts.config import (
    LIGAND_COLUMN,
    RECEPTOR_COLUMN,
    TARGET_COLUMN,
    TM_DOMAINS,
)

if TYPE_CHECKING:
    import pandas as pd


# ── Docking table ────────────────────────────────────────────────────
DOCKING_COLUMNS = [LIGAND_COLUMN, RECEPTOR_COLUMN, TARGET_COLUMN]


# ── TM boundary table ────────────────────────────────────────────────
class TMBoundary(TypedDict):
    start: int
    x50: int
    end: int


def boundary_columns(tm: int) -> tuple[str, str, str]:
    """Return the ``(start, x50, end)`` column names for TM domain *tm*."""
    return f"TM{tm}_start", f"TM_{tm}.50", f"TM{tm}_end"


TM_BOUNDARY_COLUMNS = [TARGET_COLUMN] + [
    col for tm in TM_DOMAINS for col in boundary_columns(tm)
]


# ── Interaction detector ─────────────────────────────────────────────
class DetectorOptions(TypedDict):
    hbond_energy_min: float
    hydrophobic_energy_min: float
    ionic_energy_min: float
    distance_threshold: float
    include_receptor_receptor_hbonds: bool


# Raw detector categories, in the order they are requested.
INTERACTION_CATEGORIES = ["Hbond", "Metal", "Ionic", "Covalent", "Arene", "Distance"]

# Canonical labels written to the output table.
INTERACTION_LABELS = ["hbdon", "hbacc", "ion", "cov", "arene"]


# ── Output table ─────────────────────────────────────────────────────
NUMERIC = "numeric"
CATEGORICAL = "categorical"

# Per-BW-code output fields and their declared kinds, in column order.
OUTPUT_SLOTS = {
    "intenergysum": NUMERIC,
    "intenergy1": NUMERIC,
    "inttype1": CATEGORICAL,
    "intenergy2": NUMERIC,
    "inttype2": CATEGORICAL,
}

# Reported interaction slots: (energy field, type field).
REPORTED_SLOTS = [("intenergy1", "inttype1"), ("intenergy2", "inttype2")]


class FieldSpec(NamedTuple):
    name: str
    kind: str


OutputSchema = dict[tuple[int, int, str], FieldSpec]


def build_output_schema(boundaries_df: pd.DataFrame) -> OutputSchema:
    """Enumerate every output field reachable from *boundaries_df*.

    Each target row contributes the BW positions of every residue in
    ``[start, end]`` of every TM domain.  The result maps
    ``(tm, bw_position, slot)`` to a :class:`FieldSpec`, ordered by TM,
    then BW position, then slot as listed in :data:`OUTPUT_SLOTS`.
    """
    from bwcontacts.bw_numbering import boundaries_from_row, bw_position

    positions: set[tuple[int, int]] = set()
    for _, row in boundaries_df.iterrows():
        for tm, boundary in boundaries_from_row(row).items():
            for a in range(boundary["start"], boundary["end"] + 1):
                positions.add((tm, bw_position(a, **boundary)))

    schema: OutputSchema = {}
    for tm, bw in sorted(positions):
        for slot, kind in OUTPUT_SLOTS.items():
            schema[(tm, bw, slot)] = FieldSpec(f"{tm}.{bw}_{slot}", kind)
    return schema


def output_columns(schema: OutputSchema) -> list[str]:
    """Return the output column names in schema order."""
    return [spec.name for spec in schema.values()]
