"""
Ballesteros-Weinstein numbering of transmembrane residues.

A TM domain is described by the sequential residue numbers of its first
residue, its most conserved residue (the ``x.50`` anchor) and its last
residue.  Every residue inside the domain is given a BW code ``"TM.n"``
relative to the anchor.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from bwcontacts.config import TM_DOMAINS
from bwcontacts.schemas import TMBoundary, boundary_columns


def bw_position(a: int, start: int, x50: int, end: int) -> int:
    """Return the BW position of residue *a* in a domain anchored at *x50*.

    The first branch compares *a* with the literal position 50 rather than
    with *x50*.  Every branch evaluates to ``a - x50 + 50``, so positions
    are continuous across 50.  No bounds check is made against *start* /
    *end*.
    """
    if a <= 50:
        return 50 - (x50 - a)
    if a == x50:
        return 50
    return 50 + (a - x50)


def bw_code(tm: int, a: int, boundary: TMBoundary) -> str:
    """Return the BW code ``"{tm}.{n}"`` of residue *a*."""
    return f"{tm}.{bw_position(a, **boundary)}"


def iter_domain_residues(tm: int, boundary: TMBoundary) -> Iterator[tuple[int, int]]:
    """Yield ``(residue_number, bw_position)`` for every residue of domain *tm*.

    Residues are yielded in ascending sequential order from ``start`` to
    ``end`` inclusive.
    """
    for a in range(boundary["start"], boundary["end"] + 1):
        yield a, bw_position(a, **boundary)


def boundaries_from_row(row: Any) -> dict[int, TMBoundary]:
    """Read the seven TM boundary triples from one boundary-table row."""
    boundaries: dict[int, TMBoundary] = {}
    for tm in TM_DOMAINS:
        start_col, x50_col, end_col = boundary_columns(tm)
        boundaries[tm] = TMBoundary(
            start=int(row[start_col]),
            x50=int(row[x50_col]),
            end=int(row[end_col]),
        )
    return boundaries
