"""Check for indexes left invalid by a failed concurrent build."""

from pg_health.models import Finding, Severity


class InvalidIndexesCheck:
    name = "invalid_indexes"
    category = "indexes"
    description = "Invalid indexes — maintained on writes but never used by the planner"
    priority = None

    def run(self, snapshot, thresholds) -> list[Finding]:
        findings = []
        for idx in sorted(snapshot.indexes, key=lambda i: i.qualified_name):
            if idx.is_valid:
                continue
            findings.append(
                Finding(
                    severity=Severity.HIGH,
                    check_name=self.name,
                    category=self.category,
                    title=f"Index '{idx.qualified_name}' is invalid",
                    detail=(
                        f"Index '{idx.qualified_name}' on '{idx.table_qualified_name}' is "
                        "marked invalid, usually after CREATE INDEX CONCURRENTLY or "
                        "REINDEX CONCURRENTLY failed. It still slows down writes but is "
                        "never used for reads, and an invalid unique index does not "
                        "enforce uniqueness."
                    ),
                    object_name=idx.qualified_name,
                    remediation=f"Rebuild it with REINDEX INDEX CONCURRENTLY {idx.qualified_name}.",
                    metadata={
                        "schema": idx.table_schema,
                        "table": idx.table_name,
                        "index": idx.name,
                    },
                )
            )
        return findings
