"""
Interaction candidates: multi-atom collapsing, validation and classification.

The detector reports each candidate between two *sites*; a site is one atom
or a group of atoms (e.g. an aromatic ring).  Before a candidate can be
attributed to a residue it is collapsed to its nearest atom pair, then
checked against the residue's and the ligand's atoms.  The detector does
not guarantee which site belongs to the ligand, so both orientations are
tried.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

import numpy as np

from bwcontacts.structure import Atom

logger = logging.getLogger(__name__)

# category -> label for categories whose label does not depend on orientation
_CATEGORY_LABELS = {
    "Metal": "ion",
    "Ionic": "ion",
    "Covalent": "cov",
    "Arene": "arene",
}
_HBOND = "Hbond"
VALID_CATEGORIES = frozenset(_CATEGORY_LABELS) | {_HBOND}


@dataclass(frozen=True)
class InteractionCandidate:
    """A raw interaction reported by a detector.

    For ``Hbond`` candidates *site_a* is the donor side and *site_b* the
    acceptor side.  *energy* is in kcal/mol and may be ``None``.
    """

    category: str
    site_a: tuple[Atom, ...]
    site_b: tuple[Atom, ...]
    energy: float | None = None
    distance: float | None = None


@dataclass(frozen=True)
class ValidatedInteraction:
    candidate: InteractionCandidate
    is_valid: bool
    is_ligand_donor: bool = False
    label: str | None = None

    @property
    def energy(self) -> float | None:
        return self.candidate.energy


# ── Collapsing ───────────────────────────────────────────────────────


def _nearest_pair(group_a: Sequence[Atom], group_b: Sequence[Atom]) -> tuple[Atom, Atom]:
    """Return the atom pair, one from each group, with the smallest distance."""
    coords_a = np.array([atom.position for atom in group_a], dtype=np.float64)
    coords_b = np.array([atom.position for atom in group_b], dtype=np.float64)
    diff = coords_a[:, np.newaxis, :] - coords_b[np.newaxis, :, :]
    sq_dist = np.sum(diff ** 2, axis=-1)
    i, j = np.unravel_index(np.argmin(sq_dist), sq_dist.shape)
    return group_a[int(i)], group_b[int(j)]


def collapse_atom_groups(
    ligand_groups: Sequence[Sequence[Atom]],
    receptor_groups: Sequence[Sequence[Atom]],
) -> tuple[list[Atom], list[Atom]]:
    """Reduce parallel sequences of atom groups to single atoms.

    Where either group of a pair holds more than one atom, the pair is
    replaced by its nearest atom pair (minimum squared distance over every
    combination of members).  Single-atom pairs pass through unchanged.

    Returns
    -------
    tuple[list[Atom], list[Atom]]
        Two parallel lists with one atom per input pair.
    """
    if len(ligand_groups) != len(receptor_groups):
        raise ValueError(
            f"Group sequences differ in length: {len(ligand_groups)} != {len(receptor_groups)}"
        )

    ligand_atoms: list[Atom] = []
    receptor_atoms: list[Atom] = []
    for lig_group, rec_group in zip(ligand_groups, receptor_groups):
        if not lig_group or not rec_group:
            raise ValueError("Cannot collapse an empty atom group")
        if len(lig_group) == 1 and len(rec_group) == 1:
            lig_atom, rec_atom = lig_group[0], rec_group[0]
        else:
            lig_atom, rec_atom = _nearest_pair(lig_group, rec_group)
        ligand_atoms.append(lig_atom)
        receptor_atoms.append(rec_atom)
    return ligand_atoms, receptor_atoms


def collapse_candidates(candidates: Sequence[InteractionCandidate]) -> list[InteractionCandidate]:
    """Collapse both sites of every candidate to a single atom."""
    sites_a, sites_b = collapse_atom_groups(
        [c.site_a for c in candidates], [c.site_b for c in candidates]
    )
    collapsed: list[InteractionCandidate] = []
    for candidate, atom_a, atom_b in zip(candidates, sites_a, sites_b):
        if len(candidate.site_a) == 1 and len(candidate.site_b) == 1:
            collapsed.append(candidate)
        else:
            collapsed.append(replace(candidate, site_a=(atom_a,), site_b=(atom_b,)))
    return collapsed


# ── Validation & classification ──────────────────────────────────────


def assess_candidate(
    candidate: InteractionCandidate,
    residue_atoms: set[Atom],
    ligand_atoms: set[Atom],
) -> ValidatedInteraction:
    """Validate and label one collapsed *candidate*.

    A candidate is valid when its category is reportable and one site lies
    in the ligand while the other lies in the residue.  ``Hbond`` labels
    depend on which side donates; every other label does not.
    """
    if candidate.category not in VALID_CATEGORIES:
        return ValidatedInteraction(candidate, is_valid=False)
    if len(candidate.site_a) != 1 or len(candidate.site_b) != 1:
        raise ValueError(f"Candidate must be collapsed before validation: {candidate}")

    atom_a, atom_b = candidate.site_a[0], candidate.site_b[0]
    ligand_first = atom_a in ligand_atoms and atom_b in residue_atoms
    residue_first = atom_a in residue_atoms and atom_b in ligand_atoms
    if not (ligand_first or residue_first):
        return ValidatedInteraction(candidate, is_valid=False)

    if candidate.category == _HBOND:
        label = "hbdon" if ligand_first else "hbacc"
    else:
        label = _CATEGORY_LABELS[candidate.category]
    return ValidatedInteraction(
        candidate, is_valid=True, is_ligand_donor=ligand_first, label=label,
    )


def validate_interactions(
    candidates: Iterable[InteractionCandidate],
    residue_atoms: Iterable[Atom],
    ligand_atoms: Iterable[Atom],
) -> list[ValidatedInteraction]:
    """Collapse, validate and label *candidates* for one residue.

    Invalid candidates are dropped; the detector's order is preserved.
    """
    candidates = list(candidates)
    if not candidates:
        return []

    residue_set = set(residue_atoms)
    ligand_set = set(ligand_atoms)
    assessed = [
        assess_candidate(candidate, residue_set, ligand_set)
        for candidate in collapse_candidates(candidates)
    ]
    valid = [interaction for interaction in assessed if interaction.is_valid]
    logger.debug("%d/%d candidate(s) valid", len(valid), len(assessed))
    return valid
