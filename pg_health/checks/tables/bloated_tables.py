"""Check for tables with a high estimated bloat ratio."""

from __future__ import annotations

from pg_health.checks.base import cannot_evaluate, format_bytes
from pg_health.models import Finding, Severity


class BloatedTablesCheck:
    name = "bloated_tables"
    category = "tables"
    description = "Tables whose estimated bloat exceeds the configured ratio"
    priority = None

    def run(self, snapshot, thresholds) -> list[Finding]:
        findings: list[Finding] = []
        for tbl in sorted(snapshot.tables, key=lambda t: t.qualified_name):
            ratio = tbl.bloat_ratio
            if ratio is None:
                continue
            if not 0 <= ratio <= 1:
                findings.append(
                    cannot_evaluate(self, tbl.qualified_name, f"bloat ratio {ratio} out of range")
                )
                continue
            if ratio < thresholds.bloat_ratio or tbl.size_bytes < thresholds.bloat_min_size:
                continue

            bloat_bytes = int(tbl.size_bytes * ratio)
            findings.append(
                Finding(
                    severity=Severity.WARNING,
                    check_name=self.name,
                    category=self.category,
                    title=f"Table '{tbl.qualified_name}' is {ratio:.0%} bloated",
                    detail=(
                        f"About {format_bytes(bloat_bytes)} of the "
                        f"{format_bytes(tbl.size_bytes)} used by '{tbl.qualified_name}' "
                        "is dead or free space."
                    ),
                    object_name=tbl.qualified_name,
                    remediation=(
                        "Check autovacuum settings for the table. Reclaiming the space needs "
                        "VACUUM FULL or pg_repack, which lock or rewrite the table; "
                        "schedule it by hand."
                    ),
                    metadata={
                        "schema": tbl.schema_name,
                        "table": tbl.table_name,
                        "bloat_ratio": ratio,
                        "bloat_bytes": bloat_bytes,
                    },
                )
            )
        return findings
