"""Built-in checks."""

from __future__ import annotations

from pg_health.checks.base import Check
from pg_health.checks.constraints.foreign_keys_without_index import ForeignKeysWithoutIndexCheck
from pg_health.checks.constraints.not_valid_constraints import NotValidConstraintsCheck
from pg_health.checks.indexes.bloated_indexes import BloatedIndexesCheck
from pg_health.checks.indexes.duplicated_indexes import DuplicatedIndexesCheck
from pg_health.checks.indexes.invalid_indexes import InvalidIndexesCheck
from pg_health.checks.indexes.unused_indexes import UnusedIndexesCheck
from pg_health.checks.sequences.sequence_overflow import SequenceOverflowCheck
from pg_health.checks.tables.bloated_tables import BloatedTablesCheck
from pg_health.checks.tables.tables_without_primary_key import TablesWithoutPrimaryKeyCheck

# Registration order of the default registry.
ALL_CHECKS = (
    InvalidIndexesCheck,
    DuplicatedIndexesCheck,
    UnusedIndexesCheck,
    BloatedIndexesCheck,
    TablesWithoutPrimaryKeyCheck,
    BloatedTablesCheck,
    ForeignKeysWithoutIndexCheck,
    NotValidConstraintsCheck,
    SequenceOverflowCheck,
)


def default_checks() -> list[Check]:
    """Fresh instances of every built-in check."""
    return [cls() for cls in ALL_CHECKS]


__all__ = ["ALL_CHECKS", "Check", "default_checks"]
