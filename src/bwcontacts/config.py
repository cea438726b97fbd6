"""
BWContacts configuration — paths, table columns and detector defaults.
"""

from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
RESULTS_DIR = PROJECT_ROOT / "results"

# Docking table columns
LIGAND_COLUMN = "ligand"
RECEPTOR_COLUMN = "receptor"
TARGET_COLUMN = "target"

# Transmembrane helices of a class-A GPCR
TM_DOMAINS = range(1, 8)

# Sentinels written by the missing-data post-pass
NA_LABEL = "NA"
NULL_LABEL = "None"

# Interaction detector defaults (energies in kcal/mol, distances in Angstroms)
HBOND_ENERGY_MIN = 0.5
HYDROPHOBIC_ENERGY_MIN = 0.5
IONIC_ENERGY_MIN = 0.5
DISTANCE_THRESHOLD = 4.5
INCLUDE_RECEPTOR_RECEPTOR_HBONDS = False
