"""Shared error types for bwcontacts."""

from __future__ import annotations


class BWContactsError(Exception):
    """Base error type for bwcontacts."""


class StructureLoadError(BWContactsError, RuntimeError):
    """Raised when an entry's receptor or ligand cannot be loaded."""


class ChainClassificationError(BWContactsError, ValueError):
    """Raised when a complex has no receptor chain or no ligand chain."""


class TargetNotFoundError(BWContactsError, LookupError):
    """Raised when a target has no TM boundary record."""


class SchemaError(BWContactsError, ValueError):
    """Raised when an input table is missing required columns."""
