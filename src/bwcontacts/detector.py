"""
Interaction detection between ligand atoms and receptor atoms.

The pipeline talks to detectors through the :class:`InteractionDetector`
protocol so that any geometric/energetic engine can be plugged in.  The
default :class:`GeometricInteractionDetector` works from the pharmacophore
features annotated at load time and a heavy-atom distance matrix, and
estimates an interaction energy that decays linearly from the ideal
distance to the cutoff.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from typing import Protocol

import numpy as np

from bwcontacts.config import (
    DISTANCE_THRESHOLD,
    HBOND_ENERGY_MIN,
    HYDROPHOBIC_ENERGY_MIN,
    INCLUDE_RECEPTOR_RECEPTOR_HBONDS,
    IONIC_ENERGY_MIN,
)
from bwcontacts.interactions import InteractionCandidate
from bwcontacts.schemas import DetectorOptions
from bwcontacts.structure import Atom

logger = logging.getLogger(__name__)

# Distances in Angstroms, well depths in kcal/mol.
INTERACTION_GEOMETRY = {
    "Hbond": {"ideal": 2.8, "cutoff": 3.5, "depth": 2.5},
    "Ionic": {"ideal": 3.0, "cutoff": 4.0, "depth": 3.0},
    "Metal": {"ideal": 2.2, "cutoff": 2.8, "depth": 3.0},
    "Arene": {"ideal": 3.8, "cutoff": 5.5, "depth": 1.5},
}
# Heavy atoms closer than this are treated as bonded.
COVALENT_CUTOFF = 2.1
# Cation-pi contacts reach further than ring-ring stacking.
CATION_PI_CUTOFF = 6.0
# Donor/acceptor pairs closer than this belong to the same functional group.
MIN_HBOND_DISTANCE = 2.5


def default_detector_options(**overrides: object) -> DetectorOptions:
    """Return :class:`DetectorOptions` from ``config`` defaults plus *overrides*."""
    options = DetectorOptions(
        hbond_energy_min=HBOND_ENERGY_MIN,
        hydrophobic_energy_min=HYDROPHOBIC_ENERGY_MIN,
        ionic_energy_min=IONIC_ENERGY_MIN,
        distance_threshold=DISTANCE_THRESHOLD,
        include_receptor_receptor_hbonds=INCLUDE_RECEPTOR_RECEPTOR_HBONDS,
    )
    unknown = set(overrides) - set(options)
    if unknown:
        raise ValueError(f"Unknown detector options: {sorted(unknown)}")
    options.update(overrides)  # type: ignore[typeddict-item]
    return options


class InteractionDetector(Protocol):
    """Anything that can report interaction candidates between two atom sets."""

    def detect(
        self,
        categories: Sequence[str],
        ligand_atoms: Sequence[Atom],
        receptor_atoms: Sequence[Atom],
        options: DetectorOptions,
    ) -> list[InteractionCandidate]:
        ...


def _decay_energy(distance: float, category: str, cutoff: float | None = None) -> float:
    """Linear well: full depth up to the ideal distance, 0 at the cutoff."""
    geom = INTERACTION_GEOMETRY[category]
    cutoff = geom["cutoff"] if cutoff is None else cutoff
    if distance <= geom["ideal"]:
        quality = 1.0
    else:
        quality = max(0.0, (cutoff - distance) / (cutoff - geom["ideal"]))
    return -geom["depth"] * quality


def _coords(atoms: Sequence[Atom]) -> np.ndarray:
    if not atoms:
        return np.zeros((0, 3), dtype=np.float64)
    return np.array([atom.position for atom in atoms], dtype=np.float64)


def _distance_matrix(coords_a: np.ndarray, coords_b: np.ndarray) -> np.ndarray:
    diff = coords_a[:, np.newaxis, :] - coords_b[np.newaxis, :, :]
    return np.sqrt(np.sum(diff ** 2, axis=-1))


def _aromatic_rings(atoms: Sequence[Atom]) -> list[tuple[Atom, ...]]:
    """Group aromatic *atoms* into rings, keeping only complete rings."""
    rings: dict[int, list[Atom]] = defaultdict(list)
    for atom in atoms:
        for ring_id in atom.rings:
            rings[ring_id].append(atom)
    return [tuple(members) for _, members in sorted(rings.items()) if len(members) >= 5]


class GeometricInteractionDetector:
    """Distance-based detector over pharmacophore-annotated atoms.

    Categories:

    - ``Hbond``: donor/acceptor heavy atoms within 3.5 A; *site_a* is the
      donor.  At most one per atom pair, with the ligand as donor when
      either atom could donate.
    - ``Ionic``: opposite charges within 4.0 A.
    - ``Metal``: a metal and an acceptor or anion within 2.8 A.
    - ``Covalent``: non-metal heavy atoms of the two sets closer than
      2.1 A (no energy estimate).
    - ``Arene``: aromatic ring pairs, or a ring and a cation, by centroid
      distance; both sites hold every ring atom.
    - ``Distance``: every heavy-atom pair within
      ``distance_threshold`` (no energy estimate).

    Candidates whose energy magnitude falls below the category minimum
    (``hbond_energy_min``, ``ionic_energy_min``, ``hydrophobic_energy_min``
    for arenes) are discarded.
    """

    def detect(
        self,
        categories: Sequence[str],
        ligand_atoms: Sequence[Atom],
        receptor_atoms: Sequence[Atom],
        options: DetectorOptions,
    ) -> list[InteractionCandidate]:
        lig = [atom for atom in ligand_atoms if atom.element != "H"]
        rec = [atom for atom in receptor_atoms if atom.element != "H"]
        dist = _distance_matrix(_coords(lig), _coords(rec))

        candidates: list[InteractionCandidate] = []
        for category in categories:
            if category == "Hbond":
                candidates.extend(self._hbonds(lig, rec, dist, options))
            elif category == "Ionic":
                candidates.extend(self._ionic(lig, rec, dist, options))
            elif category == "Metal":
                candidates.extend(self._metal(lig, rec, dist, options))
            elif category == "Covalent":
                candidates.extend(self._covalent(lig, rec, dist))
            elif category == "Arene":
                candidates.extend(self._arene(lig, rec, options))
            elif category == "Distance":
                candidates.extend(self._contacts(lig, rec, dist, options))
            else:
                raise ValueError(f"Unknown interaction category: {category!r}")

        logger.debug(
            "Detected %d candidate(s) between %d ligand and %d receptor heavy atoms",
            len(candidates), len(lig), len(rec),
        )
        return candidates

    # ── Per-category detection ──────────────────────────────────────────

    @staticmethod
    def _pairs(dist: np.ndarray, cutoff: float) -> list[tuple[int, int, float]]:
        lig_idx, rec_idx = np.where(dist < cutoff)
        return [(int(i), int(j), float(dist[i, j])) for i, j in zip(lig_idx, rec_idx)]

    def _hbonds(self, lig, rec, dist, options) -> list[InteractionCandidate]:
        found: list[InteractionCandidate] = []
        cutoff = INTERACTION_GEOMETRY["Hbond"]["cutoff"]
        for i, j, d in self._pairs(dist, cutoff):
            energy = _decay_energy(d, "Hbond")
            if abs(energy) < options["hbond_energy_min"]:
                continue
            # One H-bond per atom pair; ligand-donor wins when both directions fit.
            if "donor" in lig[i].features and "acceptor" in rec[j].features:
                found.append(InteractionCandidate("Hbond", (lig[i],), (rec[j],), energy, d))
            elif "donor" in rec[j].features and "acceptor" in lig[i].features:
                found.append(InteractionCandidate("Hbond", (rec[j],), (lig[i],), energy, d))

        if options["include_receptor_receptor_hbonds"]:
            rr = _distance_matrix(_coords(rec), _coords(rec))
            seen: set[frozenset[int]] = set()
            for i, j, d in self._pairs(rr, cutoff):
                if d < MIN_HBOND_DISTANCE or frozenset((i, j)) in seen:
                    continue
                if "donor" in rec[i].features and "acceptor" in rec[j].features:
                    seen.add(frozenset((i, j)))
                    energy = _decay_energy(d, "Hbond")
                    if abs(energy) >= options["hbond_energy_min"]:
                        found.append(InteractionCandidate("Hbond", (rec[i],), (rec[j],), energy, d))
        return found

    def _ionic(self, lig, rec, dist, options) -> list[InteractionCandidate]:
        found: list[InteractionCandidate] = []
        for i, j, d in self._pairs(dist, INTERACTION_GEOMETRY["Ionic"]["cutoff"]):
            opposite = (
                ("positive" in lig[i].features and "negative" in rec[j].features)
                or ("negative" in lig[i].features and "positive" in rec[j].features)
            )
            if not opposite:
                continue
            energy = _decay_energy(d, "Ionic")
            if abs(energy) >= options["ionic_energy_min"]:
                found.append(InteractionCandidate("Ionic", (lig[i],), (rec[j],), energy, d))
        return found

    def _metal(self, lig, rec, dist, options) -> list[InteractionCandidate]:
        ligating = {"acceptor", "negative"}
        found: list[InteractionCandidate] = []
        for i, j, d in self._pairs(dist, INTERACTION_GEOMETRY["Metal"]["cutoff"]):
            coordinated = (
                ("metal" in lig[i].features and ligating & rec[j].features)
                or ("metal" in rec[j].features and ligating & lig[i].features)
            )
            if not coordinated:
                continue
            energy = _decay_energy(d, "Metal")
            if abs(energy) >= options["ionic_energy_min"]:
                found.append(InteractionCandidate("Metal", (rec[j],), (lig[i],), energy, d))
        return found

    def _covalent(self, lig, rec, dist) -> list[InteractionCandidate]:
        # Metal coordination distances fall under the bond cutoff.
        return [
            InteractionCandidate("Covalent", (lig[i],), (rec[j],), None, d)
            for i, j, d in self._pairs(dist, COVALENT_CUTOFF)
            if "metal" not in lig[i].features and "metal" not in rec[j].features
        ]

    def _arene(self, lig, rec, options) -> list[InteractionCandidate]:
        lig_rings = _aromatic_rings(lig)
        rec_rings = _aromatic_rings(rec)
        found: list[InteractionCandidate] = []

        def centroid(ring: tuple[Atom, ...]) -> np.ndarray:
            return _coords(ring).mean(axis=0)

        def add(site_a: tuple[Atom, ...], site_b: tuple[Atom, ...], d: float, cutoff: float) -> None:
            if d >= cutoff:
                return
            energy = _decay_energy(d, "Arene", cutoff)
            if abs(energy) >= options["hydrophobic_energy_min"]:
                found.append(InteractionCandidate("Arene", site_a, site_b, energy, d))

        stacking_cutoff = INTERACTION_GEOMETRY["Arene"]["cutoff"]
        for lig_ring in lig_rings:
            for rec_ring in rec_rings:
                d = float(np.linalg.norm(centroid(lig_ring) - centroid(rec_ring)))
                add(lig_ring, rec_ring, d, stacking_cutoff)
            for atom in rec:
                if "positive" in atom.features:
                    d = float(np.linalg.norm(centroid(lig_ring) - atom.position))
                    add((atom,), lig_ring, d, CATION_PI_CUTOFF)
        for rec_ring in rec_rings:
            for atom in lig:
                if "positive" in atom.features:
                    d = float(np.linalg.norm(centroid(rec_ring) - atom.position))
                    add((atom,), rec_ring, d, CATION_PI_CUTOFF)
        return found

    def _contacts(self, lig, rec, dist, options) -> list[InteractionCandidate]:
        return [
            InteractionCandidate("Distance", (lig[i],), (rec[j],), None, d)
            for i, j, d in self._pairs(dist, options["distance_threshold"])
        ]
