"""Check for sequences close to exhausting their value range."""

from __future__ import annotations

from pg_health.checks.base import cannot_evaluate
from pg_health.models import Finding, Severity

# Upper bounds of the sequence data types PostgreSQL allows.
_TYPE_MAX = {
    "smallint": 32767,
    "integer": 2147483647,
    "bigint": 9223372036854775807,
}


class SequenceOverflowCheck:
    name = "sequence_overflow"
    category = "sequences"
    description = "Sequences close to running out of values"
    priority = None

    def run(self, snapshot, thresholds) -> list[Finding]:
        findings: list[Finding] = []
        for seq in sorted(snapshot.sequences, key=lambda s: s.qualified_name):
            if seq.cycle or seq.last_value is None:
                continue
            if seq.increment == 0:
                findings.append(cannot_evaluate(self, seq.qualified_name, "increment is zero"))
                continue

            type_max = _TYPE_MAX.get(seq.data_type, _TYPE_MAX["bigint"])
            if seq.increment > 0:
                lo = seq.min_value if seq.min_value is not None else 1
                hi = seq.max_value if seq.max_value is not None else type_max
            else:
                lo = seq.min_value if seq.min_value is not None else -type_max - 1
                hi = seq.max_value if seq.max_value is not None else -1
            if hi <= lo:
                findings.append(
                    cannot_evaluate(self, seq.qualified_name, "sequence range is empty")
                )
                continue

            left = hi - seq.last_value if seq.increment > 0 else seq.last_value - lo
            remaining = max(left, 0) / (hi - lo)
            if remaining >= thresholds.sequence_remaining_ratio:
                continue

            findings.append(
                Finding(
                    severity=Severity.HIGH,
                    check_name=self.name,
                    category=self.category,
                    title=f"Sequence '{seq.qualified_name}' is {1 - remaining:.0%} used",
                    detail=(
                        f"Sequence '{seq.qualified_name}' ({seq.data_type}) is at "
                        f"{seq.last_value} of [{lo}, {hi}]; about "
                        f"{max(left, 0) // abs(seq.increment)} values remain. nextval() fails "
                        "once the range is exhausted."
                    ),
                    object_name=seq.qualified_name,
                    remediation=(
                        "Widen the sequence and every column it feeds to bigint "
                        "(ALTER SEQUENCE ... AS bigint). Not generated: the column change "
                        "rewrites the table."
                    ),
                    metadata={
                        "schema": seq.schema_name,
                        "sequence": seq.sequence_name,
                        "remaining_ratio": remaining,
                    },
                )
            )
        return findings
