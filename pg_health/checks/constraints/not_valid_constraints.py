"""Check for constraints added NOT VALID and never validated."""

from pg_health.models import Finding, Severity


class NotValidConstraintsCheck:
    name = "not_valid_constraints"
    category = "constraints"
    description = "Constraints created NOT VALID that were never validated"
    priority = None

    def run(self, snapshot, thresholds) -> list[Finding]:
        findings = []
        for con in sorted(snapshot.constraints, key=lambda c: c.qualified_name):
            if con.validated:
                continue
            findings.append(
                Finding(
                    severity=Severity.WARNING,
                    check_name=self.name,
                    category=self.category,
                    title=f"Constraint '{con.qualified_name}' is not validated",
                    detail=(
                        f"{con.constraint_type} constraint '{con.name}' on "
                        f"'{con.table_qualified_name}' applies to new rows only; existing "
                        "rows were never checked against it."
                    ),
                    object_name=con.qualified_name,
                    remediation=(
                        f"ALTER TABLE {con.table_qualified_name} VALIDATE CONSTRAINT {con.name};"
                    ),
                    metadata={
                        "schema": con.table_schema,
                        "table": con.table_name,
                        "constraint": con.name,
                        "constraint_type": con.constraint_type,
                    },
                )
            )
        return findings
