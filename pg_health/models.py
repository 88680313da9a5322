"""Data models for findings, check results and generated statements."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class Severity(enum.Enum):
    HIGH = "HIGH"
    WARNING = "WARNING"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other):
        return self.rank < other.rank


# Lower rank sorts first.
_SEVERITY_RANK = {Severity.HIGH: 0, Severity.WARNING: 1, Severity.INFO: 2}


@dataclass(frozen=True)
class Finding:
    severity: Severity
    check_name: str
    category: str
    title: str
    detail: str
    object_name: str = ""
    objects: tuple[str, ...] = ()
    remediation: str = ""
    metadata: dict = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        # A finding always names at least its primary object.
        if not self.objects and self.object_name:
            object.__setattr__(self, "objects", (self.object_name,))

    @property
    def key(self) -> tuple[str, tuple[str, ...]]:
        """Stable deduplication key: (check id, affected object identifiers)."""
        return (self.check_name, self.objects)

    def sort_key(self) -> tuple:
        return (self.severity.rank, self.objects, self.check_name, self.title)


@dataclass
class CheckResult:
    check_name: str
    category: str
    description: str
    findings: list[Finding] = field(default_factory=list)
    error: str | None = None
    completed: bool = True


@dataclass(frozen=True)
class SqlStatement:
    sql: str
    check_name: str
    finding_key: tuple[str, tuple[str, ...]]
    transactional: bool = True


@dataclass
class EvaluationReport:
    database: str = ""
    results: list[CheckResult] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    complete: bool = True

    @property
    def high_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.HIGH)

    @property
    def warning_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.WARNING)

    @property
    def info_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.INFO)

    @property
    def checks_failed(self) -> int:
        return sum(1 for r in self.results if r.error)

    @property
    def checks_passed(self) -> int:
        return sum(1 for r in self.results if not r.findings and not r.error and r.completed)

    @property
    def checks_total(self) -> int:
        return len(self.results)

    @property
    def incomplete_checks(self) -> list[str]:
        return [r.check_name for r in self.results if not r.completed]
