"""
Per-residue energy aggregation and the missing-data post-pass.

Each residue of a TM domain yields one energy sum and at most two reported
interactions.  Cells that are never written during the main loop are filled
afterwards by :func:`fill_missing` with ``"NA"`` (categorical) or ``NaN``
(numeric), so every output cell ends in a well-defined state.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from bwcontacts.config import NA_LABEL, NULL_LABEL
from bwcontacts.interactions import ValidatedInteraction
from bwcontacts.schemas import CATEGORICAL, NUMERIC, REPORTED_SLOTS, OutputSchema

logger = logging.getLogger(__name__)


@dataclass
class ResidueScore:
    """Aggregated result for one residue.

    *slots* holds up to two ``(label, energy)`` pairs, in detector order.
    """

    total: float
    slots: list[tuple[str, float]] = field(default_factory=list)


def aggregate_residue(
    interactions: Sequence[ValidatedInteraction],
    residue_exists: bool = True,
) -> ResidueScore:
    """Sum the energies of *interactions* and pick the two to report.

    An absent residue scores ``NaN`` with nothing reported.  A missing
    energy contributes 0 to the sum and is reported as 0; a missing label
    is reported as ``"None"``.  Interactions beyond the second still count
    toward the sum.
    """
    if not residue_exists:
        return ResidueScore(total=math.nan)
    if not interactions:
        return ResidueScore(total=0.0)

    total = sum(i.energy for i in interactions if i.energy is not None)

    slots: list[tuple[str, float]] = []
    for interaction in interactions[: len(REPORTED_SLOTS)]:
        energy = interaction.energy if interaction.energy is not None else 0.0
        label = interaction.label if interaction.label is not None else NULL_LABEL
        slots.append((label, float(energy)))
    return ResidueScore(total=float(total), slots=slots)


def score_fields(score: ResidueScore, tm: int, bw: int, schema: OutputSchema) -> dict[str, Any]:
    """Map *score* onto the output fields of BW position ``tm.bw``."""
    fields: dict[str, Any] = {schema[(tm, bw, "intenergysum")].name: score.total}
    for (energy_slot, type_slot), (label, energy) in zip(REPORTED_SLOTS, score.slots):
        fields[schema[(tm, bw, energy_slot)].name] = energy
        fields[schema[(tm, bw, type_slot)].name] = label
    return fields


# ── Output table ─────────────────────────────────────────────────────


def new_output_table(n_rows: int, schema: OutputSchema) -> pd.DataFrame:
    """Create an output table with every cell unset (``None``)."""
    columns = [spec.name for spec in schema.values()]
    return pd.DataFrame(None, index=pd.RangeIndex(n_rows), columns=columns, dtype=object)


def write_field(table: pd.DataFrame, row_index: int, field_name: str, value: Any) -> None:
    """Write one cell.  Writing the same value twice is harmless."""
    table.at[row_index, field_name] = value


def fill_missing(table: pd.DataFrame, schema: OutputSchema) -> pd.DataFrame:
    """Fill every unset cell of *table* with its declared sentinel.

    Categorical columns receive ``"NA"``; numeric columns receive ``NaN`` and
    are cast to ``float64``.  The table is modified in place and returned.
    """
    filled = 0
    for spec in schema.values():
        column = table[spec.name]
        missing = column.isna()
        filled += int(missing.sum())
        if spec.kind == CATEGORICAL:
            table[spec.name] = column.where(~missing, NA_LABEL).astype(object)
        elif spec.kind == NUMERIC:
            table[spec.name] = pd.to_numeric(column, errors="coerce").astype(np.float64)
        else:
            raise ValueError(f"Unknown field kind {spec.kind!r} for {spec.name}")
    logger.info("Post-pass filled %d unset cell(s) across %d field(s)", filled, len(schema))
    return table
