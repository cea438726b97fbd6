"""
Receptor/ligand structure model, loading and chain classification.

A loaded complex is a :class:`Structure` holding the receptor chains read
from the receptor file followed by a single-residue ligand chain.  Atoms are
annotated with pharmacophore features once at load time so the interaction
detector never has to look at the underlying RDKit molecules.

RDKit is imported lazily inside the loader so the data model and the chain
classifier remain usable in environments where RDKit is not installed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np

from bwcontacts.config import LIGAND_COLUMN, RECEPTOR_COLUMN
from bwcontacts.errors import ChainClassificationError, StructureLoadError

logger = logging.getLogger(__name__)

LIGAND_CHAIN_ID = "L"

# ── Pharmacophore annotation ─────────────────────────────────────────
_FEATURE_SMARTS = {
    "donor": "[$([N;!H0;v3,v4&+1]),$([O,S;H1;+0]),n&H1&+0]",
    "acceptor": (
        "[$([O,S;H1;v2;!$(*-*=[O,N,P,S])]),"
        "$([O,S;H0;v2]),"
        "$([O,S;-]),"
        "$([N;v3;!$(N-*=[O,N,P,S])]),"
        "n&H0&+0,"
        "$([o,s;+0;!$([o,s]:n);!$([o,s]:c:n)])]"
    ),
    "positive": "[$([N,n;+;!$(N~[O-])]),$([NX3;H2,H1;!$(NC=[O,N,S])][CX4])]",
    "negative": "[$([O,S;-]),$([OX1]=[C,S,P]-[OX2H1]),$([OX2H1]-[C,S,P]=[OX1])]",
}

METAL_ELEMENTS = frozenset({"Zn", "Fe", "Mg", "Mn", "Cu", "Co", "Ni", "Ca", "Na", "K"})


# ── Data model ───────────────────────────────────────────────────────


@dataclass(eq=False)
class Atom:
    """A single atom.  Atoms compare and hash by identity."""

    serial: int
    name: str
    element: str
    position: np.ndarray
    features: frozenset[str] = frozenset()
    rings: tuple[int, ...] = ()

    def __repr__(self) -> str:
        return f"Atom({self.serial}, {self.name!r})"


@dataclass
class Residue:
    number: int
    name: str
    chain_id: str
    atoms: list[Atom] = field(default_factory=list)


@dataclass
class Chain:
    id: str
    residues: list[Residue] = field(default_factory=list)

    def residue_index(self) -> dict[int, Residue]:
        """Map residue number to residue; the first residue wins on duplicates."""
        index: dict[int, Residue] = {}
        for residue in self.residues:
            index.setdefault(residue.number, residue)
        return index

    @property
    def atoms(self) -> list[Atom]:
        return [atom for residue in self.residues for atom in residue.atoms]


@dataclass
class Structure:
    """A receptor-ligand complex loaded for one docking entry."""

    chains: list[Chain]
    label: str = ""

    def close(self) -> None:
        """Drop every chain so the atoms can be garbage collected."""
        self.chains.clear()


StructureLoader = Callable[[Any], Structure]


# ── Chain classification ─────────────────────────────────────────────


def classify_chains(chains: list[Chain]) -> tuple[Chain, Chain]:
    """Split *chains* into one receptor chain and one ligand chain.

    Chains with more than one residue are receptor chains; chains with
    exactly one residue are ligand chains.  When several receptor chains
    exist, the residues of all but the first are reparented onto the first
    and the emptied chains are removed from *chains* in place.

    Raises
    ------
    ChainClassificationError
        If no receptor chain or no ligand chain is found.
    """
    receptor_chains = [chain for chain in chains if len(chain.residues) > 1]
    ligand_chains = [chain for chain in chains if len(chain.residues) == 1]

    if not receptor_chains:
        raise ChainClassificationError("No chain with more than one residue (receptor) found")
    if not ligand_chains:
        raise ChainClassificationError("No single-residue chain (ligand) found")

    receptor = receptor_chains[0]
    for other in receptor_chains[1:]:
        logger.debug(
            "Merging %d residues of chain %r into receptor chain %r",
            len(other.residues), other.id, receptor.id,
        )
        for residue in other.residues:
            residue.chain_id = receptor.id
            receptor.residues.append(residue)
        other.residues.clear()
        chains.remove(other)

    # The ligand chain is appended after the receptor chains on load.
    ligand = ligand_chains[-1]
    if len(ligand_chains) > 1:
        logger.info(
            "%d single-residue chains found; using chain %r as the ligand",
            len(ligand_chains), ligand.id,
        )
    return receptor, ligand


# ── Loading ──────────────────────────────────────────────────────────


def load_structure(record: Any) -> Structure:
    """Load the receptor and ligand of one docking-table *record*.

    The receptor and ligand fields may hold an RDKit ``Chem.Mol`` or a path
    to a structure file (receptor: ``.pdb``; ligand: ``.sdf``, ``.mol``,
    ``.mol2`` or ``.pdb``).

    Returns
    -------
    Structure
        Receptor chains in file order followed by a single ligand chain.

    Raises
    ------
    StructureLoadError
        If either molecule cannot be read.
    """
    receptor_mol = _read_molecule(record[RECEPTOR_COLUMN])
    ligand_mol = _read_molecule(record[LIGAND_COLUMN])

    chains = _receptor_chains(receptor_mol)
    chains.append(_ligand_chain(ligand_mol))
    label = f"{_describe(record[RECEPTOR_COLUMN])}/{_describe(record[LIGAND_COLUMN])}"
    logger.debug("Loaded %s with %d chain(s)", label, len(chains))
    return Structure(chains=chains, label=label)


@contextmanager
def entry_context(record: Any, loader: StructureLoader = load_structure) -> Iterator[Structure]:
    """Load the structure of *record* and release it when the block exits."""
    structure = loader(record)
    try:
        yield structure
    finally:
        structure.close()


def _describe(value: Any) -> str:
    if isinstance(value, (str, Path)):
        return Path(value).name
    return type(value).__name__


def _read_molecule(value: Any) -> Any:
    """Return an RDKit molecule for *value* (a ``Chem.Mol`` or a file path)."""
    from rdkit import Chem  # lazy import

    if isinstance(value, Chem.Mol):
        mol = value
    elif isinstance(value, (str, Path)):
        mol = _read_file(Path(value))
    else:
        raise StructureLoadError(f"Unsupported structure value of type {type(value).__name__}")

    if mol.GetNumConformers() == 0:
        raise StructureLoadError(f"{_describe(value)} has no 3-D coordinates")
    return mol


def _read_file(path: Path) -> Any:
    from rdkit import Chem  # lazy import

    if not path.is_file():
        raise StructureLoadError(f"Structure file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".pdb":
        mol = Chem.MolFromPDBFile(str(path), removeHs=False)
    elif suffix == ".sdf":
        # First record only; the handle is closed before returning.
        with path.open("rb") as handle:
            mol = next(Chem.ForwardSDMolSupplier(handle, removeHs=False), None)
    elif suffix == ".mol":
        mol = Chem.MolFromMolFile(str(path), removeHs=False)
    elif suffix == ".mol2":
        mol = Chem.MolFromMol2File(str(path), removeHs=False)
    else:
        raise StructureLoadError(f"Unsupported structure format '{suffix}': {path}")

    if mol is None:
        raise StructureLoadError(f"RDKit could not parse {path}")
    return mol


def _annotate_atoms(mol: Any) -> list[Atom]:
    """Build one :class:`Atom` per atom of *mol* with pharmacophore features."""
    from rdkit import Chem  # lazy import

    features: list[set[str]] = [set() for _ in range(mol.GetNumAtoms())]
    for name, smarts in _FEATURE_SMARTS.items():
        pattern = Chem.MolFromSmarts(smarts)
        for match in mol.GetSubstructMatches(pattern):
            for idx in match:
                features[idx].add(name)

    rings: list[list[int]] = [[] for _ in range(mol.GetNumAtoms())]
    ring_id = 0
    for ring in mol.GetRingInfo().AtomRings():
        if all(mol.GetAtomWithIdx(idx).GetIsAromatic() for idx in ring):
            for idx in ring:
                rings[idx].append(ring_id)
            ring_id += 1

    positions = mol.GetConformer().GetPositions()
    atoms: list[Atom] = []
    for rd_atom in mol.GetAtoms():
        idx = rd_atom.GetIdx()
        element = rd_atom.GetSymbol()
        if rd_atom.GetIsAromatic():
            features[idx].add("aromatic")
        if element in METAL_ELEMENTS:
            features[idx].add("metal")
        info = rd_atom.GetPDBResidueInfo()
        atoms.append(
            Atom(
                serial=info.GetSerialNumber() if info is not None else idx + 1,
                name=info.GetName().strip() if info is not None else f"{element}{idx + 1}",
                element=element,
                position=np.asarray(positions[idx], dtype=np.float64),
                features=frozenset(features[idx]),
                rings=tuple(rings[idx]),
            )
        )
    return atoms


def _receptor_chains(mol: Any) -> list[Chain]:
    """Group receptor atoms into chains and residues by PDB residue info."""
    chains: dict[str, Chain] = {}
    residues: dict[tuple[str, int, str], Residue] = {}

    for rd_atom, atom in zip(mol.GetAtoms(), _annotate_atoms(mol)):
        info = rd_atom.GetPDBResidueInfo()
        if info is None:
            chain_id, number, res_name, icode = "", 0, "UNK", ""
        else:
            chain_id = info.GetChainId().strip()
            number = info.GetResidueNumber()
            res_name = info.GetResidueName().strip()
            icode = info.GetInsertionCode().strip()

        chain = chains.get(chain_id)
        if chain is None:
            chain = chains[chain_id] = Chain(id=chain_id)

        key = (chain_id, number, icode)
        residue = residues.get(key)
        if residue is None:
            residue = residues[key] = Residue(number=number, name=res_name, chain_id=chain_id)
            chain.residues.append(residue)
        residue.atoms.append(atom)

    return list(chains.values())


def _ligand_chain(mol: Any) -> Chain:
    """Wrap every ligand atom into a single pseudo-residue chain."""
    atoms = _annotate_atoms(mol)
    name = "LIG"
    info = mol.GetAtomWithIdx(0).GetPDBResidueInfo() if mol.GetNumAtoms() else None
    if info is not None:
        name = info.GetResidueName().strip() or name
    residue = Residue(number=1, name=name, chain_id=LIGAND_CHAIN_ID, atoms=atoms)
    return Chain(id=LIGAND_CHAIN_ID, residues=[residue])
