"""Check for indexes that duplicate, or are a redundant prefix of, another index."""

from __future__ import annotations

from itertools import combinations

from pg_health.checks.base import cannot_evaluate, format_bytes
from pg_health.models import Finding, Severity
from pg_health.snapshot import IndexDef


class DuplicatedIndexesCheck:
    name = "duplicated_indexes"
    category = "indexes"
    description = "Identical or prefix-redundant indexes on the same table"
    priority = None

    def run(self, snapshot, thresholds) -> list[Finding]:
        """
        Compare every pair of valid indexes on each table.

        Two indexes are duplicates when access method, predicate and the
        ordered key signature (column or expression, direction, operator
        class, collation) are all identical. A non-unique index whose
        signature is a strict prefix of another non-unique btree index is
        redundant. Hash indexes are ignored, as are invalid indexes (those
        belong to ``invalid_indexes``).
        """
        findings: list[Finding] = []
        by_table: dict[str, list[IndexDef]] = {}
        for idx in sorted(snapshot.indexes, key=lambda i: i.qualified_name):
            if not idx.columns:
                findings.append(cannot_evaluate(self, idx.qualified_name, "index has no key columns"))
                continue
            if not idx.is_valid or idx.index_method == "hash":
                continue
            by_table.setdefault(idx.table_qualified_name, []).append(idx)

        for fqn in sorted(by_table):
            for a, b in combinations(by_table[fqn], 2):
                finding = self._compare(fqn, a, b)
                if finding is not None:
                    findings.append(finding)
        return findings

    def _compare(self, fqn: str, a: IndexDef, b: IndexDef) -> Finding | None:
        if a.index_method != b.index_method or _predicate(a) != _predicate(b):
            return None

        if a.signature == b.signature:
            redundant, kept = _pick_redundant(a, b)
            reason = "identical"
        else:
            shorter, longer = (a, b) if len(a.columns) < len(b.columns) else (b, a)
            if a.index_method != "btree" or len(shorter.columns) == len(longer.columns):
                return None
            if longer.signature[: len(shorter.columns)] != shorter.signature:
                return None
            if shorter.is_unique or longer.is_unique or shorter.is_constraint_backing:
                return None
            redundant, kept = shorter, longer
            reason = "prefix"

        objects = tuple(sorted((a.qualified_name, b.qualified_name)))
        if redundant is None:
            title = f"Indexes '{objects[0]}' and '{objects[1]}' are identical"
            detail = (
                f"Both indexes on '{fqn}' back constraints and have identical definitions. "
                "Review which constraint is needed before dropping either."
            )
            remediation = "Drop one of the constraints and its index manually."
            object_name = objects[0]
        else:
            if reason == "identical":
                title = f"Index '{redundant.qualified_name}' duplicates '{kept.qualified_name}'"
            else:
                title = (
                    f"Index '{redundant.qualified_name}' is redundant, "
                    f"prefix of '{kept.qualified_name}'"
                )
            detail = (
                f"Index '{redundant.name}' on '{fqn}' "
                f"({format_bytes(redundant.size_bytes)}) adds write overhead and storage "
                f"without serving any lookup that '{kept.name}' cannot serve."
            )
            remediation = f"Drop index '{redundant.qualified_name}'."
            object_name = redundant.qualified_name

        return Finding(
            severity=Severity.WARNING,
            check_name=self.name,
            category=self.category,
            title=title,
            detail=detail,
            object_name=object_name,
            objects=objects,
            remediation=remediation,
            metadata={
                "schema": a.table_schema,
                "table": a.table_name,
                "reason": reason,
                "redundant_index": redundant.name if redundant else None,
                "kept_index": kept.name if kept else None,
                "wasted_bytes": redundant.size_bytes if redundant else 0,
            },
        )


def _predicate(idx: IndexDef) -> str:
    return " ".join((idx.predicate or "").split())


def _pick_redundant(a: IndexDef, b: IndexDef) -> tuple[IndexDef | None, IndexDef | None]:
    """Choose which of two identical indexes to drop.

    Constraint-backing indexes are kept first, then unique ones, then the
    more used one; the lexically larger name loses a remaining tie.
    """
    if a.is_constraint_backing and b.is_constraint_backing:
        return None, None

    def keep_rank(idx: IndexDef) -> tuple:
        return (
            not idx.is_constraint_backing,
            not idx.is_unique,
            -(idx.scan_count or 0),
            idx.qualified_name,
        )

    kept, redundant = sorted((a, b), key=keep_rank)
    return redundant, kept
