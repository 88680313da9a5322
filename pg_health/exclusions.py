"""Per-object, per-check exclusion rules that silence findings."""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable
from dataclasses import dataclass

from pg_health.models import Finding
from pg_health.snapshot import Snapshot


@dataclass(frozen=True)
class ExclusionRule:
    """Hide matching objects from one check, or from every check when ``check`` is None.

    Patterns are shell globs. A pattern containing a dot is matched against the
    qualified identifier (``audit.*`` excludes a whole schema; constraints are
    ``schema.table.name``); otherwise it is matched against the bare object
    name (``orders_tmp_*``).
    """

    pattern: str
    check: str | None = None

    def __post_init__(self):
        if not self.pattern:
            raise ValueError("Exclusion pattern must not be empty")

    def applies_to(self, check_name: str) -> bool:
        return self.check is None or self.check == check_name

    def matches(self, obj) -> bool:
        target = obj.qualified_name if "." in self.pattern else obj.name
        return fnmatch.fnmatchcase(target, self.pattern)

    @classmethod
    def parse(cls, text: str) -> ExclusionRule:
        """Parse the ``PATTERN[:CHECK]`` command-line form."""
        pattern, sep, check = text.partition(":")
        return cls(pattern=pattern, check=check if sep and check else None)


class ExclusionSet:
    """The exclusion rules of one evaluation.

    Exclusions silence findings; they never change what a check sees. Every
    check runs on the full snapshot, so an excluded index still covers foreign
    keys and an excluded primary key still counts for its table. Afterwards a
    finding is dropped when any object it names, or that object's owning
    table, matches a rule for the check.
    """

    def __init__(self, rules: Iterable[ExclusionRule] = ()):
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[ExclusionRule, ...]:
        return self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def rules_for(self, check_name: str) -> list[ExclusionRule]:
        return [r for r in self._rules if r.applies_to(check_name)]

    def is_excluded(self, obj, check_name: str, snapshot: Snapshot | None = None) -> bool:
        """True when ``obj``, or with ``snapshot`` given its owning table, is excluded."""
        targets = [obj]
        owner = getattr(obj, "table_qualified_name", None)
        if snapshot is not None and owner:
            table = snapshot.get_table(owner)
            if table is not None:
                targets.append(table)
        return any(r.matches(t) for r in self.rules_for(check_name) for t in targets)

    def filter_findings(
        self, findings: Iterable[Finding], snapshot: Snapshot, check_name: str
    ) -> list[Finding]:
        """Drop the findings of ``check_name`` that name an excluded object."""
        findings = list(findings)
        if not self.rules_for(check_name):
            return findings
        kept = []
        for finding in findings:
            objects = [snapshot.get_object(name) for name in finding.objects]
            if any(
                obj is not None and self.is_excluded(obj, check_name, snapshot) for obj in objects
            ):
                continue
            kept.append(finding)
        return kept

    def check_names(self) -> set[str]:
        return {r.check for r in self._rules if r.check}
