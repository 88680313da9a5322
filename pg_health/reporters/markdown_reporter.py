"""Markdown report renderer."""

from __future__ import annotations

from pg_health.models import EvaluationReport, Severity

_SEVERITY_HEADINGS = {
    Severity.HIGH: "High",
    Severity.WARNING: "Warnings",
    Severity.INFO: "Informational",
}


def render(report: EvaluationReport) -> str:
    lines = [f"# pg-health report: {report.database or 'snapshot'}", ""]
    lines.append(
        f"**{report.checks_total}** checks run, **{report.checks_passed}** passed. "
        f"{report.high_count} high, {report.warning_count} warnings, "
        f"{report.info_count} info."
    )
    if not report.complete:
        lines.append("")
        lines.append(
            "> **Partial report:** unfinished checks: "
            + ", ".join(report.incomplete_checks)
        )

    for severity, heading in _SEVERITY_HEADINGS.items():
        findings = [f for f in report.findings if f.severity == severity]
        if not findings:
            continue
        lines += ["", f"## {heading} ({len(findings)})", ""]
        for f in findings:
            lines.append(f"### {f.title}")
            lines.append("")
            lines.append(f"*{f.category}/{f.check_name}* — `{f.object_name}`")
            lines.append("")
            lines.append(f.detail)
            if f.remediation:
                lines.append("")
                lines.append(f"**Remediation:** {f.remediation}")
            lines.append("")

    if not report.findings:
        lines += ["", "No problems found."]
    return "\n".join(lines).rstrip() + "\n"
