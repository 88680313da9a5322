"""JSON report renderer."""

from __future__ import annotations

import json

from pg_health import __version__
from pg_health.models import EvaluationReport, SqlStatement


def render(report: EvaluationReport, statements: list[SqlStatement] | None = None) -> str:
    """Render an EvaluationReport (and optional statements) as a JSON string."""
    data = {
        "meta": {
            "tool": "pg-health",
            "version": __version__,
            "database": report.database,
            "complete": report.complete,
        },
        "summary": {
            "total_checks": report.checks_total,
            "checks_passed": report.checks_passed,
            "checks_failed": report.checks_failed,
            "incomplete_checks": report.incomplete_checks,
            "high": report.high_count,
            "warnings": report.warning_count,
            "info": report.info_count,
        },
        "results": [
            {
                "check_name": result.check_name,
                "category": result.category,
                "description": result.description,
                "passed": not result.findings and not result.error and result.completed,
                "completed": result.completed,
                "error": result.error,
            }
            for result in report.results
        ],
        "findings": [
            {
                "severity": f.severity.value,
                "check_name": f.check_name,
                "category": f.category,
                "title": f.title,
                "detail": f.detail,
                "object_name": f.object_name,
                "objects": list(f.objects),
                "remediation": f.remediation,
                "metadata": f.metadata,
            }
            for f in report.findings
        ],
    }

    if statements is not None:
        data["statements"] = [
            {
                "sql": s.sql,
                "check_name": s.check_name,
                "objects": list(s.finding_key[1]),
                "transactional": s.transactional,
            }
            for s in statements
        ]

    return json.dumps(data, indent=2, default=str)
