"""Tests for pg_health.engine — merging, determinism, exclusions, failures, deadlines."""

from __future__ import annotations

import threading

import pytest
from conftest import make_fk, make_index, make_pk, make_table

from pg_health.config import ConfigError, Thresholds
from pg_health.engine import ENGINE_OBJECT, evaluate
from pg_health.exclusions import ExclusionRule, ExclusionSet
from pg_health.migrations import GeneratingOptions, generate
from pg_health.models import Finding, Severity
from pg_health.registry import CheckRegistry, default_registry
from pg_health.snapshot import ColumnDef, Snapshot


class _Raising:
    name = "exploding"
    category = "tables"
    description = "Always fails"
    priority = None

    def run(self, snapshot, thresholds):
        raise RuntimeError("boom")


class _Blocking:
    name = "blocking"
    category = "tables"
    description = "Waits until released"
    priority = None

    def __init__(self):
        self.release = threading.Event()

    def run(self, snapshot, thresholds):
        self.release.wait(5)
        return []


class _Echo:
    """Reports one finding per table, twice, to exercise dedup."""

    name = "echo"
    category = "tables"
    description = "Echo tables"
    priority = None

    def run(self, snapshot, thresholds):
        findings = []
        for tbl in snapshot.tables:
            for title in ("first", "second"):
                findings.append(
                    Finding(
                        severity=Severity.INFO,
                        check_name=self.name,
                        category=self.category,
                        title=title,
                        detail="",
                        object_name=tbl.qualified_name,
                    )
                )
        return findings


class TestEvaluate:
    def test_orders_scenario(self, orders_snapshot):
        report = evaluate(orders_snapshot, default_registry())
        assert report.complete
        assert [f.check_name for f in report.findings] == ["duplicated_indexes"]
        assert report.findings[0].object_name == "public.idx_a"

    def test_payments_scenario(self, payments_snapshot):
        report = evaluate(payments_snapshot, default_registry())
        assert [f.check_name for f in report.findings] == ["foreign_keys_without_index"]

    def test_unhealthy_counts(self, unhealthy_snapshot):
        report = evaluate(unhealthy_snapshot, default_registry())
        assert len(report.findings) == 9
        assert report.high_count == 2
        assert report.warning_count == 7
        assert report.checks_passed == 0

    def test_sorted_by_severity(self, unhealthy_snapshot):
        report = evaluate(unhealthy_snapshot, default_registry())
        ranks = [f.severity.rank for f in report.findings]
        assert ranks == sorted(ranks)

    def test_deterministic(self, unhealthy_snapshot):
        first = evaluate(unhealthy_snapshot, default_registry())
        second = evaluate(unhealthy_snapshot, default_registry())
        assert first.findings == second.findings

    def test_parallel_matches_serial(self, unhealthy_snapshot):
        serial = evaluate(unhealthy_snapshot, default_registry())
        parallel = evaluate(unhealthy_snapshot, default_registry(), workers=4)
        assert parallel.findings == serial.findings
        assert [r.check_name for r in parallel.results] == [r.check_name for r in serial.results]

    def test_snapshot_not_modified(self, unhealthy_snapshot):
        before = unhealthy_snapshot.indexes
        evaluate(unhealthy_snapshot, default_registry(), ExclusionSet([ExclusionRule("idx_*")]))
        assert unhealthy_snapshot.indexes == before

    def test_categories(self, unhealthy_snapshot):
        report = evaluate(unhealthy_snapshot, default_registry(), categories=["sequences"])
        assert [f.check_name for f in report.findings] == ["sequence_overflow"]

    def test_dedup_keeps_first(self, orders_snapshot):
        report = evaluate(orders_snapshot, CheckRegistry([_Echo()]))
        assert len(report.findings) == 1
        assert report.findings[0].title == "first"

    def test_invalid_thresholds_rejected(self, orders_snapshot):
        with pytest.raises(ConfigError, match="bloat_ratio"):
            evaluate(orders_snapshot, default_registry(), thresholds=Thresholds(bloat_ratio=-0.1))


class TestExclusions:
    def test_scoped_exclusion_hides_only_that_pair(self, unhealthy_snapshot):
        exclusions = ExclusionSet([ExclusionRule("orders_created_idx", "unused_indexes")])
        report = evaluate(unhealthy_snapshot, default_registry(), exclusions)
        keys = {(f.check_name, f.object_name) for f in report.findings}
        assert ("unused_indexes", "public.orders_created_idx") not in keys
        assert len(report.findings) == 8

    def test_global_exclusion_hides_object_everywhere(self, unhealthy_snapshot):
        exclusions = ExclusionSet([ExclusionRule("public.orders")])
        report = evaluate(unhealthy_snapshot, default_registry(), exclusions)
        assert {f.check_name for f in report.findings} == {
            "bloated_indexes",
            "tables_without_primary_key",
            "sequence_overflow",
        }

    def test_other_checks_unaffected(self, unhealthy_snapshot):
        baseline = evaluate(unhealthy_snapshot, default_registry())
        exclusions = ExclusionSet([ExclusionRule("events", "tables_without_primary_key")])
        report = evaluate(unhealthy_snapshot, default_registry(), exclusions)
        expected = [f for f in baseline.findings if f.check_name != "tables_without_primary_key"]
        assert report.findings == expected


    def test_excluding_covering_objects_adds_no_findings(self):
        snap = Snapshot(
            tables=[
                make_table("orders", columns=["id", ColumnDef("customer_id", "bigint", False)]),
                make_table("customers"),
            ],
            indexes=[
                make_index("orders_pkey", "orders", ["id"], is_unique=True, constraint_name="orders_pkey"),
                make_index("orders_tmp_customer", "orders", ["customer_id"], scan_count=5),
            ],
            constraints=[
                make_pk("orders"),
                make_pk("customers"),
                make_fk("orders_customer_fk", "orders", ["customer_id"], "customers"),
            ],
        )
        baseline = evaluate(snap, default_registry())
        assert baseline.findings == []
        exclusions = ExclusionSet([ExclusionRule("orders_tmp_*"), ExclusionRule("orders_pkey")])
        report = evaluate(snap, default_registry(), exclusions)
        assert report.findings == []
        assert generate(report.findings, GeneratingOptions(index_foreign_keys=True)) == []

    def test_excluding_object_only_removes_findings(self, unhealthy_snapshot):
        baseline = evaluate(unhealthy_snapshot, default_registry())
        for pattern in ("idx_b", "orders_pkey", "customers_pkey", "orders_customer_fk"):
            report = evaluate(
                unhealthy_snapshot, default_registry(), ExclusionSet([ExclusionRule(pattern)])
            )
            assert set(report.findings) <= set(baseline.findings), pattern


class TestFailures:
    def test_failing_check_becomes_info(self, orders_snapshot):
        registry = default_registry()
        registry.register(_Raising())
        report = evaluate(orders_snapshot, registry)
        failure = [f for f in report.findings if f.check_name == "exploding"]
        assert len(failure) == 1
        assert failure[0].severity == Severity.INFO
        assert failure[0].object_name == ENGINE_OBJECT
        assert "RuntimeError: boom" in failure[0].detail
        # Other checks still report.
        assert any(f.check_name == "duplicated_indexes" for f in report.findings)
        assert report.checks_failed == 1
        assert report.complete

    def test_failing_check_in_pool(self, orders_snapshot):
        registry = CheckRegistry([_Raising()])
        report = evaluate(orders_snapshot, registry, workers=2)
        assert report.results[0].error == "RuntimeError: boom"


class TestDeadline:
    def test_timeout_marks_report_incomplete(self, orders_snapshot):
        blocking = _Blocking()
        registry = CheckRegistry([blocking, _Echo()])
        try:
            report = evaluate(orders_snapshot, registry, workers=2, timeout=0.2)
        finally:
            blocking.release.set()
        assert not report.complete
        assert report.incomplete_checks == ["blocking"]
        incomplete = [f for f in report.findings if f.check_name == "blocking"]
        assert incomplete[0].object_name == ENGINE_OBJECT
        assert any(f.check_name == "echo" for f in report.findings)

    def test_zero_timeout_serial(self, orders_snapshot):
        report = evaluate(orders_snapshot, default_registry(), timeout=0)
        assert not report.complete
        assert all(f.object_name == ENGINE_OBJECT for f in report.findings)
