"""Shared fixtures for pg-health tests."""

from __future__ import annotations

import pytest

from pg_health.config import Thresholds
from pg_health.models import Finding, Severity
from pg_health.snapshot import (
    FOREIGN_KEY,
    PRIMARY_KEY,
    ColumnDef,
    ConstraintDef,
    IndexColumn,
    IndexDef,
    SequenceDef,
    Snapshot,
    TableDef,
)

MB = 1024 * 1024


def make_finding(
    severity: Severity = Severity.INFO,
    check_name: str = "test_check",
    category: str = "indexes",
    title: str = "Test finding",
    detail: str = "Test detail",
    **kwargs,
) -> Finding:
    """Factory for creating Finding instances with sensible defaults."""
    return Finding(
        severity=severity,
        check_name=check_name,
        category=category,
        title=title,
        detail=detail,
        **kwargs,
    )


def make_table(name: str, schema: str = "public", size: int = 100 * MB, **kwargs) -> TableDef:
    columns = kwargs.pop("columns", ())
    return TableDef(
        schema_name=schema,
        table_name=name,
        columns=tuple(c if isinstance(c, ColumnDef) else ColumnDef(name=c) for c in columns),
        size_bytes=size,
        **kwargs,
    )


def make_index(name: str, table: str, columns, schema: str = "public", **kwargs) -> IndexDef:
    return IndexDef(
        name=name,
        table_schema=schema,
        table_name=table,
        columns=tuple(c if isinstance(c, IndexColumn) else IndexColumn(name=c) for c in columns),
        **kwargs,
    )


def make_pk(table: str, columns=("id",), schema: str = "public") -> ConstraintDef:
    return ConstraintDef(
        name=f"{table}_pkey",
        constraint_type=PRIMARY_KEY,
        table_schema=schema,
        table_name=table,
        columns=tuple(columns),
    )


def make_fk(
    name: str, table: str, columns, ref_table: str, ref_columns=("id",), schema: str = "public"
) -> ConstraintDef:
    return ConstraintDef(
        name=name,
        constraint_type=FOREIGN_KEY,
        table_schema=schema,
        table_name=table,
        columns=tuple(columns),
        ref_schema=schema,
        ref_table=ref_table,
        ref_columns=tuple(ref_columns),
    )


@pytest.fixture
def thresholds() -> Thresholds:
    return Thresholds()


@pytest.fixture
def orders_snapshot() -> Snapshot:
    """Table ``orders`` with a prefix-redundant index pair."""
    return Snapshot(
        tables=[make_table("orders", columns=["id", "customer_id", "created_at"])],
        indexes=[
            make_index("orders_pkey", "orders", ["id"], is_unique=True, constraint_name="orders_pkey", scan_count=10),
            make_index("idx_a", "orders", ["customer_id"], scan_count=5),
            make_index("idx_b", "orders", ["customer_id", "created_at"], scan_count=5),
        ],
        constraints=[make_pk("orders")],
        database="shop",
    )


@pytest.fixture
def payments_snapshot() -> Snapshot:
    """Table ``payments`` referencing ``customers`` without an index on the FK column."""
    return Snapshot(
        tables=[
            make_table("customers", columns=["id"]),
            make_table(
                "payments",
                columns=[ColumnDef("id", "bigint", True), ColumnDef("customer_id", "bigint", True)],
            ),
        ],
        indexes=[
            make_index("customers_pkey", "customers", ["id"], is_unique=True, constraint_name="customers_pkey", scan_count=3),
            make_index("payments_pkey", "payments", ["id"], is_unique=True, constraint_name="payments_pkey", scan_count=3),
        ],
        constraints=[
            make_pk("customers"),
            make_pk("payments"),
            make_fk("payments_customer_id_fkey", "payments", ["customer_id"], "customers"),
        ],
        database="shop",
    )


@pytest.fixture
def unhealthy_snapshot() -> Snapshot:
    """A snapshot that trips every built-in check at least once."""
    return Snapshot(
        tables=[
            make_table("orders", columns=["id", "customer_id", "coupon_id", "created_at"], bloat_ratio=0.7),
            make_table("customers", columns=["id"]),
            make_table("events", columns=["payload"]),
        ],
        indexes=[
            make_index("orders_pkey", "orders", ["id"], is_unique=True, constraint_name="orders_pkey", scan_count=100),
            make_index("idx_a", "orders", ["customer_id"], scan_count=5),
            make_index("idx_b", "orders", ["customer_id", "created_at"], scan_count=5),
            make_index("orders_created_idx", "orders", ["created_at"], scan_count=0),
            make_index("orders_broken_idx", "orders", ["created_at", "id"], is_valid=False, scan_count=0),
            make_index("customers_pkey", "customers", ["id"], is_unique=True, constraint_name="customers_pkey", scan_count=3, bloat_ratio=0.8),
        ],
        constraints=[
            make_pk("orders"),
            make_pk("customers"),
            ConstraintDef(
                name="orders_customer_fk",
                constraint_type=FOREIGN_KEY,
                table_schema="public",
                table_name="orders",
                columns=("coupon_id",),
                ref_schema="public",
                ref_table="customers",
                ref_columns=("id",),
                validated=False,
            ),
        ],
        sequences=[
            SequenceDef(
                schema_name="public",
                sequence_name="orders_id_seq",
                data_type="integer",
                last_value=2_100_000_000,
            ),
        ],
        database="shop",
    )
