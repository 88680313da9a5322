"""The evaluation capability every check provides."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pg_health.models import Finding, Severity

if TYPE_CHECKING:
    from pg_health.config import Thresholds
    from pg_health.snapshot import Snapshot


@runtime_checkable
class Check(Protocol):
    """A diagnostic rule evaluated against one snapshot.

    Any object with these attributes and a ``run`` method is a check; there
    is no base class to inherit. To add a check, write a class in the
    matching category package and list it in ``pg_health.checks.ALL_CHECKS``.

    Attributes:
        name: Unique identifier for this check.
        category: Grouping category (indexes, tables, constraints, sequences).
        description: Human-readable summary of what this check does.
        priority: Optional explicit ordering; None keeps registration order.

    ``run`` must be a pure function of its arguments. Malformed metadata is
    skipped or reported with ``cannot_evaluate``; it must never raise.
    """

    name: str
    category: str
    description: str
    priority: int | None

    def run(self, snapshot: Snapshot, thresholds: Thresholds) -> list[Finding]: ...


def cannot_evaluate(check: Check, object_name: str, reason: str) -> Finding:
    """INFO finding for an object whose metadata is too incomplete to judge."""
    return Finding(
        severity=Severity.INFO,
        check_name=check.name,
        category=check.category,
        title=f"Cannot evaluate '{object_name}'",
        detail=f"Check '{check.name}' skipped '{object_name}': {reason}.",
        object_name=object_name,
        metadata={"reason": reason},
    )


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "kB", "MB", "GB", "TB"):
        if abs(value) < 1024 or unit == "TB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"
