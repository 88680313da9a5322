"""Check for indexes with a high estimated bloat ratio."""

from __future__ import annotations

from pg_health.checks.base import cannot_evaluate, format_bytes
from pg_health.models import Finding, Severity


class BloatedIndexesCheck:
    name = "bloated_indexes"
    category = "indexes"
    description = "Indexes whose estimated bloat exceeds the configured ratio"
    priority = None

    def run(self, snapshot, thresholds) -> list[Finding]:
        findings: list[Finding] = []
        for idx in sorted(snapshot.indexes, key=lambda i: i.qualified_name):
            ratio = idx.bloat_ratio
            if ratio is None:
                continue
            if not 0 <= ratio <= 1:
                findings.append(
                    cannot_evaluate(self, idx.qualified_name, f"bloat ratio {ratio} out of range")
                )
                continue
            if ratio < thresholds.bloat_ratio or idx.size_bytes < thresholds.bloat_min_size:
                continue

            bloat_bytes = int(idx.size_bytes * ratio)
            findings.append(
                Finding(
                    severity=Severity.WARNING,
                    check_name=self.name,
                    category=self.category,
                    title=f"Index '{idx.qualified_name}' is {ratio:.0%} bloated",
                    detail=(
                        f"About {format_bytes(bloat_bytes)} of the "
                        f"{format_bytes(idx.size_bytes)} used by '{idx.qualified_name}' "
                        "is wasted space."
                    ),
                    object_name=idx.qualified_name,
                    remediation=f"Rebuild with REINDEX INDEX CONCURRENTLY {idx.qualified_name}.",
                    metadata={
                        "schema": idx.table_schema,
                        "table": idx.table_name,
                        "index": idx.name,
                        "bloat_ratio": ratio,
                        "bloat_bytes": bloat_bytes,
                    },
                )
            )
        return findings
