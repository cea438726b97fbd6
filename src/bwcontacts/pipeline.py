"""
BWContacts batch orchestrator.

Walks every docking entry, every TM domain (1-7) and every residue of the
domain in ascending order, and turns the interactions between the docked
ligand and each residue into per-BW-code output fields.  A final post-pass
fills every cell that was never written with its sentinel.

Usage
-----
::

    from bwcontacts.pipeline import load_docking_table, load_tm_boundaries, run_interaction_pipeline

    docking = load_docking_table("data/docking.csv")
    boundaries = load_tm_boundaries("data/tm_boundaries.csv")
    table = run_interaction_pipeline(docking, boundaries)

Entries that fail to load, whose target has no boundary record, or whose
chains cannot be classified are logged and skipped; their cells end as
sentinels and the failure is recorded in ``table.attrs["failed_entries"]``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any

import pandas as pd

from bwcontacts.bw_numbering import boundaries_from_row, iter_domain_residues
from bwcontacts.config import (
    NA_LABEL,
    RESULTS_DIR,
    TARGET_COLUMN,
    TM_DOMAINS,
)
from bwcontacts.detector import (
    GeometricInteractionDetector,
    InteractionDetector,
    default_detector_options,
)
from bwcontacts.errors import BWContactsError, SchemaError, TargetNotFoundError
from bwcontacts.interactions import validate_interactions
from bwcontacts.schemas import (
    DOCKING_COLUMNS,
    INTERACTION_CATEGORIES,
    TM_BOUNDARY_COLUMNS,
    DetectorOptions,
    OutputSchema,
    TMBoundary,
    build_output_schema,
)
from bwcontacts.scoring import (
    aggregate_residue,
    fill_missing,
    new_output_table,
    score_fields,
    write_field,
)
from bwcontacts.structure import (
    Atom,
    Residue,
    StructureLoader,
    classify_chains,
    entry_context,
    load_structure,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input tables
# ---------------------------------------------------------------------------


def _require_columns(df: pd.DataFrame, required: list[str], what: str) -> None:
    missing = set(required) - set(df.columns)
    if missing:
        raise SchemaError(f"{what} is missing required columns: {sorted(missing)}")


def load_docking_table(docking_csv: str | Path) -> pd.DataFrame:
    """Load the docking table from *docking_csv*.

    The CSV must contain the ligand, receptor and target columns named in
    :data:`~bwcontacts.schemas.DOCKING_COLUMNS`; structure fields hold file
    paths.  Relative paths are resolved against the CSV's directory.
    """
    csv_path = Path(docking_csv)
    logger.info("Loading docking table from %s", csv_path)
    df = pd.read_csv(csv_path, dtype={TARGET_COLUMN: str})
    _require_columns(df, DOCKING_COLUMNS, "Docking table")

    for col in DOCKING_COLUMNS[:2]:
        df[col] = [
            str(csv_path.parent / value) if not Path(value).is_absolute() else value
            for value in df[col].astype(str)
        ]
    logger.info("Docking table ready: %d entries", len(df))
    return df


def load_tm_boundaries(boundaries_csv: str | Path) -> pd.DataFrame:
    """Load the TM boundary table from *boundaries_csv*."""
    csv_path = Path(boundaries_csv)
    logger.info("Loading TM boundaries from %s", csv_path)
    df = pd.read_csv(csv_path, dtype={TARGET_COLUMN: str})
    _require_columns(df, TM_BOUNDARY_COLUMNS, "TM boundary table")
    logger.info("TM boundaries ready: %d target(s)", len(df))
    return df


def lookup_boundaries(boundaries_df: pd.DataFrame, target: Any) -> dict[int, TMBoundary]:
    """Return the TM boundaries of *target* (exact string match).

    Raises
    ------
    TargetNotFoundError
        If no boundary record matches *target*.
    """
    matches = boundaries_df.loc[boundaries_df[TARGET_COLUMN].astype(str) == str(target)]
    if matches.empty:
        raise TargetNotFoundError(f"No TM boundary record for target {target!r}")
    if len(matches) > 1:
        logger.warning(
            "%d boundary records for target %r; using the first", len(matches), target,
        )
    return boundaries_from_row(matches.iloc[0])


# ---------------------------------------------------------------------------
# Per-entry processing
# ---------------------------------------------------------------------------


def _score_residue(
    residues: dict[int, Residue],
    ligand_atoms: list[Atom],
    tm: int,
    number: int,
    bw: int,
    schema: OutputSchema,
    detector: InteractionDetector,
    options: DetectorOptions,
) -> dict[str, Any]:
    residue = residues.get(number)
    if residue is None:
        logger.debug("TM%d residue %d (%d.%d) absent from structure", tm, number, tm, bw)
        return score_fields(aggregate_residue([], residue_exists=False), tm, bw, schema)

    candidates = detector.detect(INTERACTION_CATEGORIES, ligand_atoms, residue.atoms, options)
    valid = validate_interactions(candidates, residue.atoms, ligand_atoms)
    return score_fields(aggregate_residue(valid), tm, bw, schema)


def process_entry(
    record: Any,
    boundaries_df: pd.DataFrame,
    schema: OutputSchema,
    detector: InteractionDetector,
    options: DetectorOptions,
    loader: StructureLoader = load_structure,
) -> dict[str, Any]:
    """Compute every output field of one docking entry.

    Residues are visited TM1 to TM7, ascending within each domain.  A failure
    on one residue is logged and does not affect the others.

    Returns
    -------
    dict[str, Any]
        Mapping of output field name to value for the fields written.

    Raises
    ------
    TargetNotFoundError
        If the entry's target has no boundary record.
    StructureLoadError, ChainClassificationError
        If the entry's complex cannot be loaded or split into receptor and
        ligand.
    """
    boundaries = lookup_boundaries(boundaries_df, record[TARGET_COLUMN])

    fields: dict[str, Any] = {}
    with entry_context(record, loader) as structure:
        receptor, ligand = classify_chains(structure.chains)
        residues = receptor.residue_index()
        ligand_atoms = ligand.atoms
        for tm in TM_DOMAINS:
            for number, bw in iter_domain_residues(tm, boundaries[tm]):
                try:
                    fields.update(
                        _score_residue(
                            residues, ligand_atoms, tm, number, bw, schema, detector, options,
                        )
                    )
                except Exception:
                    logger.exception(
                        "Scoring failed for TM%d residue %d (%s); skipping.",
                        tm, number, structure.label,
                    )
    return fields


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


def run_interaction_pipeline(
    docking_df: pd.DataFrame,
    boundaries_df: pd.DataFrame,
    detector: InteractionDetector | None = None,
    options: DetectorOptions | None = None,
    loader: StructureLoader = load_structure,
    max_workers: int | None = None,
) -> pd.DataFrame:
    """Build the per-BW-code interaction table for every docking entry.

    Parameters
    ----------
    docking_df:
        Docking table with ligand, receptor and target columns.
    boundaries_df:
        TM boundary table keyed by target.
    detector:
        Interaction detector.  Defaults to
        :class:`~bwcontacts.detector.GeometricInteractionDetector`.
    options:
        Detector thresholds.  Defaults to
        :func:`~bwcontacts.detector.default_detector_options`.
    loader:
        Callable turning a docking record into a
        :class:`~bwcontacts.structure.Structure`.
    max_workers:
        Process entries in a process pool of this size.  ``None`` or ``1``
        processes entries sequentially.  The detector and loader must be
        picklable when a pool is used.

    Returns
    -------
    pd.DataFrame
        One row per docking entry, in docking-table order and index, with
        the columns of :func:`~bwcontacts.schemas.build_output_schema`.
        ``attrs["failed_entries"]`` maps row positions to error messages.
    """
    _require_columns(docking_df, DOCKING_COLUMNS, "Docking table")
    _require_columns(boundaries_df, TM_BOUNDARY_COLUMNS, "TM boundary table")

    if detector is None:
        detector = GeometricInteractionDetector()
    if options is None:
        options = default_detector_options()

    schema = build_output_schema(boundaries_df)
    table = new_output_table(len(docking_df), schema)
    failures: dict[int, str] = {}
    total = len(docking_df)
    logger.info(
        "Processing %d entries against %d target(s), %d output fields",
        total, len(boundaries_df), len(schema),
    )

    def _record(position: int, fields: dict[str, Any]) -> None:
        for name, value in fields.items():
            write_field(table, position, name, value)

    def _fail(position: int, exc: Exception) -> None:
        failures[position] = f"{type(exc).__name__}: {exc}"

    records = [row for _, row in docking_df.iterrows()]

    if max_workers is not None and max_workers > 1:
        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(
                    process_entry, record, boundaries_df, schema, detector, options, loader,
                ): position
                for position, record in enumerate(records)
            }
            for done, future in enumerate(as_completed(futures), start=1):
                position = futures[future]
                try:
                    _record(position, future.result())
                    logger.info("[%d/%d] Entry %d done", done, total, position)
                except BWContactsError as exc:
                    logger.error("Entry %d skipped: %s", position, exc)
                    _fail(position, exc)
                except Exception as exc:
                    logger.exception("Entry %d failed; skipping.", position)
                    _fail(position, exc)
    else:
        for position, record in enumerate(records):
            logger.info(
                "[%d/%d] Processing entry (target %s)",
                position + 1, total, record[TARGET_COLUMN],
            )
            try:
                _record(
                    position,
                    process_entry(record, boundaries_df, schema, detector, options, loader),
                )
            except BWContactsError as exc:
                logger.error("Entry %d skipped: %s", position, exc)
                _fail(position, exc)
            except Exception as exc:
                logger.exception("Entry %d failed; skipping.", position)
                _fail(position, exc)

    fill_missing(table, schema)
    table.index = docking_df.index
    table.attrs["failed_entries"] = failures

    logger.info(
        "Batch complete: %d/%d entries processed successfully.",
        total - len(failures), total,
    )
    return table


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def summarize_interactions(table: pd.DataFrame) -> pd.DataFrame:
    """Count reported interaction labels per BW code.

    Returns
    -------
    pd.DataFrame
        Indexed by BW code, one column per label, ordered by TM then BW
        position.
    """
    type_cols = [c for c in table.columns if c.endswith(("_inttype1", "_inttype2"))]
    long = table[type_cols].melt(var_name="field", value_name="label")
    long = long.loc[long["label"] != NA_LABEL].copy()
    long["bw_code"] = long["field"].str.rsplit("_", n=1).str[0]

    counts = long.groupby(["bw_code", "label"]).size().unstack(fill_value=0)
    order = sorted(counts.index, key=lambda code: tuple(int(p) for p in code.split(".")))
    return counts.loc[order]


def save_results(table: pd.DataFrame, output_path: str | Path | None = None) -> Path:
    """Write *table* to CSV (default ``results/bw_interactions.csv``)."""
    path = Path(output_path) if output_path is not None else RESULTS_DIR / "bw_interactions.csv"
    path.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(path, index=False)
    logger.info("Saved %d rows x %d fields to %s", len(table), len(table.columns), path)
    return path
