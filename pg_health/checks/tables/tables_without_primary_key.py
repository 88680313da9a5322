"""Check for tables missing primary keys."""

from pg_health.models import Finding, Severity
from pg_health.snapshot import PRIMARY_KEY


class TablesWithoutPrimaryKeyCheck:
    name = "tables_without_primary_key"
    category = "tables"
    description = "Tables without primary keys"
    priority = None

    def run(self, snapshot, thresholds) -> list[Finding]:
        pk_tables = {
            c.table_qualified_name for c in snapshot.constraints if c.constraint_type == PRIMARY_KEY
        }

        findings = []
        for tbl in sorted(snapshot.tables, key=lambda t: t.qualified_name):
            fqn = tbl.qualified_name
            if fqn in pk_tables:
                continue
            findings.append(
                Finding(
                    severity=Severity.WARNING,
                    check_name=self.name,
                    category=self.category,
                    title=f"Table '{fqn}' has no primary key",
                    detail=(
                        f"Table '{fqn}' lacks a primary key. Rows cannot be addressed "
                        "reliably, duplicates go unnoticed, and logical replication cannot "
                        "apply UPDATE or DELETE without a replica identity."
                    ),
                    object_name=fqn,
                    remediation=(
                        f"Choose a key for '{fqn}' and add it with "
                        "ALTER TABLE ... ADD PRIMARY KEY. No statement is generated: "
                        "the key columns are a modelling decision."
                    ),
                    metadata={"schema": tbl.schema_name, "table": tbl.table_name},
                )
            )
        return findings
