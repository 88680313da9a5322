"""Diagnostic engine — runs registered checks against a snapshot, collects findings."""

from __future__ import annotations

import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor, wait

from pg_health.checks import Check
from pg_health.config import Thresholds
from pg_health.exclusions import ExclusionSet
from pg_health.models import CheckResult, EvaluationReport, Finding, Severity
from pg_health.registry import CheckRegistry
from pg_health.snapshot import Snapshot

logger = logging.getLogger(__name__)

ENGINE_OBJECT = "(engine)"


def evaluate(
    snapshot: Snapshot,
    registry: CheckRegistry,
    exclusions: ExclusionSet | None = None,
    thresholds: Thresholds | None = None,
    *,
    categories: list[str] | None = None,
    workers: int = 1,
    timeout: float | None = None,
    verbose: bool = False,
) -> EvaluationReport:
    """Run every enabled check against the snapshot.

    Args:
        snapshot: Metadata to evaluate. Never modified.
        registry: Checks to run, in registry order.
        exclusions: Objects whose findings are dropped, per check.
        thresholds: Numeric policy for the runtime checks.
        categories: Optional list of categories to limit checks.
        workers: Number of threads; 1 runs checks serially.
        timeout: Seconds after which unfinished checks are abandoned and
            the report is marked incomplete.
        verbose: Print progress to stderr.

    Raises:
        ConfigError: If ``thresholds`` are out of range.

    Returns:
        EvaluationReport with per-check results and the merged, deduplicated,
        sorted findings.
    """
    exclusions = exclusions or ExclusionSet()
    thresholds = thresholds or Thresholds()
    thresholds.validate()
    checks = registry.enabled_checks(categories)
    total = len(checks)

    logger.info("Evaluating %d checks against %s", total, snapshot.database or "snapshot")
    if verbose:
        print(f"Evaluating {total} checks...", file=sys.stderr)

    results = {
        check.name: CheckResult(
            check_name=check.name,
            category=check.category,
            description=check.description,
            completed=False,
        )
        for check in checks
    }

    def record(index: int, check: Check, findings: list[Finding], error: str | None) -> None:
        result = results[check.name]
        result.findings = exclusions.filter_findings(findings, snapshot, check.name)
        result.error = error
        result.completed = True
        if verbose:
            print(f"  [{index}/{total}] {check.category}/{check.name}: {check.description}", file=sys.stderr)
            if error:
                print(f"    ERROR: {error}", file=sys.stderr)

    deadline = time.monotonic() + timeout if timeout is not None else None

    if workers <= 1:
        for i, check in enumerate(checks, 1):
            if deadline is not None and time.monotonic() >= deadline:
                break
            record(i, check, *_run_check(check, snapshot, thresholds))
    else:
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pg-health")
        try:
            futures = {
                executor.submit(_run_check, check, snapshot, thresholds): (i, check)
                for i, check in enumerate(checks, 1)
            }
            done, _ = wait(futures, timeout=timeout)
            for future in done:
                i, check = futures[future]
                record(i, check, *future.result())
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    report = EvaluationReport(database=snapshot.database)
    merged: list[Finding] = []
    # Merge in registry order, never arrival order.
    for check in checks:
        result = results[check.name]
        report.results.append(result)
        if result.error:
            merged.append(_failure_finding(check, result.error))
        elif not result.completed:
            report.complete = False
            logger.warning("Check %s did not finish before the deadline", check.name)
            merged.append(_incomplete_finding(check))
        merged.extend(result.findings)

    report.findings = _dedup_and_sort(merged)

    if verbose:
        print(
            f"Done. {report.high_count} high, "
            f"{report.warning_count} warnings, "
            f"{report.info_count} info.",
            file=sys.stderr,
        )
    return report


def _run_check(
    check: Check, snapshot: Snapshot, thresholds: Thresholds
) -> tuple[list[Finding], str | None]:
    try:
        return list(check.run(snapshot, thresholds)), None
    except Exception as exc:
        error = f"{type(exc).__name__}: {exc}"
        logger.warning("Check %s failed: %s", check.name, error, exc_info=True)
        return [], error


def _dedup_and_sort(findings: list[Finding]) -> list[Finding]:
    """Keep the first finding per key, then order by severity, objects, check."""
    unique: dict[tuple, Finding] = {}
    for finding in findings:
        unique.setdefault(finding.key, finding)
    return sorted(unique.values(), key=Finding.sort_key)


def _failure_finding(check: Check, error: str) -> Finding:
    return Finding(
        severity=Severity.INFO,
        check_name=check.name,
        category=check.category,
        title=f"Check '{check.name}' failed",
        detail=(
            f"Check '{check.name}' raised {error}. Its results are missing from this "
            "report; all other checks ran normally."
        ),
        object_name=ENGINE_OBJECT,
        metadata={"error": error},
    )


def _incomplete_finding(check: Check) -> Finding:
    return Finding(
        severity=Severity.INFO,
        check_name=check.name,
        category=check.category,
        title=f"Check '{check.name}' did not complete",
        detail=(
            f"Check '{check.name}' was not finished before the evaluation deadline. "
            "This report is partial."
        ),
        object_name=ENGINE_OBJECT,
    )
