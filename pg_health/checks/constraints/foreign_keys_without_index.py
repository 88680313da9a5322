"""Check for foreign key columns without supporting indexes."""

from __future__ import annotations

from pg_health.checks.base import cannot_evaluate
from pg_health.models import Finding, Severity
from pg_health.snapshot import FOREIGN_KEY, PRIMARY_KEY, UNIQUE


class ForeignKeysWithoutIndexCheck:
    name = "foreign_keys_without_index"
    category = "constraints"
    description = "Foreign key columns without indexes — slow cascades and lock contention"
    priority = None

    def run(self, snapshot, thresholds) -> list[Finding]:
        """
        Report foreign keys whose referencing columns lead no index on the child table.

        An index covers a foreign key when its first N key columns are exactly the
        N constraint columns, in any order. Only valid, non-partial btree indexes
        count (a hash index covers a single-column key); primary key and unique
        constraints count too, since they are backed by such an index.
        """
        findings: list[Finding] = []
        fk_constraints = sorted(
            (c for c in snapshot.constraints if c.constraint_type == FOREIGN_KEY),
            key=lambda c: c.qualified_name,
        )

        for fk in fk_constraints:
            if not fk.columns:
                findings.append(
                    cannot_evaluate(self, fk.qualified_name, "foreign key has no columns")
                )
                continue

            fqn = fk.table_qualified_name
            fk_cols = set(fk.columns)
            n = len(fk.columns)

            candidates = []
            for idx in snapshot.get_indexes_for_table(fqn):
                names = idx.column_names
                if not idx.is_valid or idx.predicate or not names:
                    continue
                if idx.index_method == "btree" or (idx.index_method == "hash" and n == 1):
                    candidates.append(names)
            candidates.extend(
                c.columns for c in snapshot.get_constraints_for_table(fqn)
                if c.constraint_type in (PRIMARY_KEY, UNIQUE)
            )

            if any(set(cols[:n]) == fk_cols for cols in candidates):
                continue

            # Columns missing from the table definition count as NOT NULL, so the
            # generated index is a full one.
            table = snapshot.get_table(fqn)
            nullable = []
            for col_name in fk.columns:
                col = table.get_column(col_name) if table is not None else None
                if col is not None and not col.not_null:
                    nullable.append(col_name)

            col_list = ", ".join(fk.columns)
            findings.append(
                Finding(
                    severity=Severity.WARNING,
                    check_name=self.name,
                    category=self.category,
                    title=f"Foreign key '{fk.qualified_name}' has no covering index",
                    detail=(
                        f"Foreign key '{fk.name}' on '{fqn}' ({col_list}) references "
                        f"'{fk.ref_qualified_name or 'unknown'}' but no index starts with "
                        "its columns. DELETE and UPDATE on the referenced table must scan "
                        f"'{fqn}' while holding a lock."
                    ),
                    object_name=fk.qualified_name,
                    remediation=f"Create an index:\n  CREATE INDEX CONCURRENTLY ON {fqn} ({col_list});",
                    metadata={
                        "schema": fk.table_schema,
                        "table": fk.table_name,
                        "constraint": fk.name,
                        "columns": list(fk.columns),
                        "nullable_columns": nullable,
                        "references": fk.ref_qualified_name,
                    },
                )
            )

        return findings
