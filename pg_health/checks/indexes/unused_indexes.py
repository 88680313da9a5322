"""Check for indexes the planner never scans."""

from __future__ import annotations

from pg_health.checks.base import format_bytes
from pg_health.models import Finding, Severity


class UnusedIndexesCheck:
    name = "unused_indexes"
    category = "indexes"
    description = "Indexes with (almost) no scans on non-trivial tables"
    priority = None

    def run(self, snapshot, thresholds) -> list[Finding]:
        """
        Report non-unique, non-constraint indexes that are effectively never scanned.

        An index is unused when ``scan_count <= unused_index_max_scans`` and its
        table is at least ``unused_index_min_table_size`` bytes. Indexes without
        scan statistics, or whose table is missing from the snapshot, are skipped.
        """
        findings: list[Finding] = []
        max_scans = thresholds.unused_index_max_scans
        min_size = thresholds.unused_index_min_table_size

        for idx in sorted(snapshot.indexes, key=lambda i: i.qualified_name):
            if idx.is_unique or idx.is_constraint_backing or not idx.is_valid:
                continue
            if idx.scan_count is None:
                continue
            table = snapshot.get_table(idx.table_qualified_name)
            if table is None or table.size_bytes < min_size:
                continue
            if idx.scan_count > max_scans:
                continue

            findings.append(
                Finding(
                    severity=Severity.WARNING,
                    check_name=self.name,
                    category=self.category,
                    title=f"Index '{idx.qualified_name}' is unused",
                    detail=(
                        f"Index '{idx.qualified_name}' ({format_bytes(idx.size_bytes)}) has "
                        f"{idx.scan_count} scan(s) since statistics were last reset, while "
                        f"table '{table.qualified_name}' holds {format_bytes(table.size_bytes)}. "
                        "Check replicas before dropping: statistics are per host."
                    ),
                    object_name=idx.qualified_name,
                    remediation=f"Drop index '{idx.qualified_name}' if it is unused on every host.",
                    metadata={
                        "schema": idx.table_schema,
                        "table": idx.table_name,
                        "index": idx.name,
                        "scan_count": idx.scan_count,
                        "index_size": idx.size_bytes,
                    },
                )
            )
        return findings
