"""Tests for pg_health.snapshot — model invariants, lookups, filtering, loading."""

from __future__ import annotations

import json
import tempfile

import pytest
from conftest import make_fk, make_index, make_pk, make_table

from pg_health.snapshot import (
    FOREIGN_KEY,
    PRIMARY_KEY,
    IndexColumn,
    SequenceDef,
    Snapshot,
    load_snapshot,
    snapshot_from_dict,
)


class TestSnapshotInvariants:
    def test_lists_become_tuples(self):
        snap = Snapshot(tables=[make_table("orders")])
        assert isinstance(snap.tables, tuple)

    def test_duplicate_table_rejected(self):
        with pytest.raises(ValueError, match="public.orders"):
            Snapshot(tables=[make_table("orders"), make_table("orders")])

    def test_same_name_in_other_schema_allowed(self):
        snap = Snapshot(tables=[make_table("orders"), make_table("orders", schema="archive")])
        assert len(snap.tables) == 2

    def test_duplicate_index_rejected(self):
        with pytest.raises(ValueError):
            Snapshot(indexes=[make_index("i", "t", ["a"]), make_index("i", "u", ["b"])])

    def test_constraint_name_reused_across_tables(self):
        snap = Snapshot(
            tables=[make_table("a"), make_table("b"), make_table("customers")],
            constraints=[
                make_fk("fk_customer", "a", ["customer_id"], "customers"),
                make_fk("fk_customer", "b", ["customer_id"], "customers"),
            ],
        )
        assert [c.qualified_name for c in snap.constraints] == [
            "public.a.fk_customer",
            "public.b.fk_customer",
        ]

    def test_duplicate_constraint_on_one_table_rejected(self):
        with pytest.raises(ValueError, match="public.a.fk_customer"):
            Snapshot(
                constraints=[
                    make_fk("fk_customer", "a", ["x"], "customers"),
                    make_fk("fk_customer", "a", ["y"], "customers"),
                ]
            )

    def test_frozen(self):
        snap = Snapshot()
        with pytest.raises(AttributeError):
            snap.tables = ()

    def test_equal_snapshots(self):
        assert Snapshot(tables=[make_table("t")]) == Snapshot(tables=[make_table("t")])


class TestLookups:
    def test_get_table(self, orders_snapshot):
        assert orders_snapshot.get_table("public.orders").table_name == "orders"
        assert orders_snapshot.get_table("public.missing") is None

    def test_indexes_for_table(self, orders_snapshot):
        names = {i.name for i in orders_snapshot.get_indexes_for_table("public.orders")}
        assert names == {"orders_pkey", "idx_a", "idx_b"}

    def test_constraints_by_type(self, payments_snapshot):
        fks = payments_snapshot.get_constraints_for_table("public.payments", FOREIGN_KEY)
        assert [c.name for c in fks] == ["payments_customer_id_fkey"]
        pks = payments_snapshot.get_constraints_for_table("public.payments", PRIMARY_KEY)
        assert len(pks) == 1

    def test_get_object(self, payments_snapshot):
        assert payments_snapshot.get_object("public.payments").table_name == "payments"
        assert payments_snapshot.get_object("public.payments_pkey").name == "payments_pkey"
        fk = payments_snapshot.get_object("public.payments.payments_customer_id_fkey")
        assert fk.constraint_type == FOREIGN_KEY
        assert payments_snapshot.get_object("public.missing") is None


class TestIndexDef:
    def test_column_names(self):
        idx = make_index("i", "t", ["a", "b"])
        assert idx.column_names == ("a", "b")

    def test_expression_has_no_column_names(self):
        idx = make_index("i", "t", [IndexColumn(expression="lower(email)")])
        assert idx.column_names is None

    def test_signature_includes_opclass(self):
        a = make_index("a", "t", [IndexColumn(name="x")])
        b = make_index("b", "t", [IndexColumn(name="x", opclass="text_pattern_ops")])
        assert a.signature != b.signature

    def test_qualified_names(self):
        idx = make_index("i", "t", ["a"], schema="s")
        assert idx.qualified_name == "s.i"
        assert idx.table_qualified_name == "s.t"


class TestFiltered:
    def test_drop_table_drops_owned_objects(self, payments_snapshot):
        view = payments_snapshot.filtered(lambda o: o.name != "payments")
        assert payments_snapshot.get_table("public.payments") is not None
        assert view.get_table("public.payments") is None
        assert view.get_indexes_for_table("public.payments") == []
        assert view.get_constraints_for_table("public.payments") == []
        assert view.get_table("public.customers") is not None

    def test_drop_single_index(self, orders_snapshot):
        view = orders_snapshot.filtered(lambda o: o.name != "idx_a")
        assert {i.name for i in view.indexes} == {"orders_pkey", "idx_b"}
        assert len(view.tables) == 1

    def test_keeps_database(self, orders_snapshot):
        assert orders_snapshot.filtered(lambda o: True).database == "shop"


class TestSnapshotFromDict:
    DOC = {
        "database": "shop",
        "tables": [
            {
                "name": "orders",
                "size": 1000,
                "rows": 10,
                "bloat_ratio": 0.2,
                "columns": [{"name": "id", "type": "bigint", "not_null": True}, "customer_id"],
            },
            {"name": "audit.log"},
        ],
        "indexes": [
            {"name": "idx_a", "table": "orders", "columns": ["customer_id"], "scans": 0},
            {
                "name": "idx_expr",
                "table": "orders",
                "columns": [{"expression": "lower(note)"}],
                "valid": False,
            },
        ],
        "constraints": [
            {"name": "orders_pkey", "table": "orders", "type": "primary key", "columns": ["id"]},
            {
                "name": "orders_customer_fkey",
                "table": "orders",
                "type": "foreign_key",
                "columns": ["customer_id"],
                "references": "customers",
                "ref_columns": ["id"],
            },
        ],
        "sequences": [{"name": "orders_id_seq", "type": "integer", "last_value": 5}],
    }

    def test_parses_all_entities(self):
        snap = snapshot_from_dict(self.DOC)
        assert snap.database == "shop"
        assert len(snap.tables) == 2
        assert len(snap.indexes) == 2
        assert len(snap.constraints) == 2
        assert snap.sequences[0] == SequenceDef("public", "orders_id_seq", "integer", last_value=5)

    def test_qualified_table_name(self):
        snap = snapshot_from_dict(self.DOC)
        assert snap.get_table("audit.log") is not None

    def test_columns(self):
        orders = snapshot_from_dict(self.DOC).get_table("public.orders")
        assert orders.get_column("id").not_null is True
        assert orders.get_column("customer_id").not_null is False
        assert orders.bloat_ratio == 0.2

    def test_index_fields(self):
        snap = snapshot_from_dict(self.DOC)
        idx = next(i for i in snap.indexes if i.name == "idx_expr")
        assert idx.is_valid is False
        assert idx.columns[0].expression == "lower(note)"
        assert next(i for i in snap.indexes if i.name == "idx_a").scan_count == 0

    def test_constraint_type_normalized(self):
        snap = snapshot_from_dict(self.DOC)
        fk = next(c for c in snap.constraints if c.name == "orders_customer_fkey")
        assert fk.constraint_type == FOREIGN_KEY
        assert fk.ref_qualified_name == "public.customers"

    def test_unknown_constraint_type(self):
        with pytest.raises(ValueError, match="Unknown constraint type"):
            snapshot_from_dict(
                {"constraints": [{"name": "c", "table": "t", "type": "magic"}]}
            )

    def test_missing_required_key(self):
        with pytest.raises(ValueError, match="Malformed"):
            snapshot_from_dict({"indexes": [{"name": "i"}]})

    def test_empty_document(self):
        assert snapshot_from_dict({}) == Snapshot()


class TestLoadSnapshot:
    def test_loads_yaml(self):
        content = """
tables:
  - name: orders
indexes:
  - name: idx_a
    table: orders
    columns: [customer_id]
"""
        with tempfile.NamedTemporaryFile(suffix=".yaml", delete=False, mode="w") as f:
            f.write(content)
            f.flush()
            snap = load_snapshot(f.name)
        assert snap.indexes[0].table_qualified_name == "public.orders"

    def test_loads_json(self):
        with tempfile.NamedTemporaryFile(suffix=".json", delete=False, mode="w") as f:
            json.dump({"tables": [{"name": "orders"}]}, f)
            f.flush()
            snap = load_snapshot(f.name)
        assert snap.tables[0].table_name == "orders"

    def test_file_not_found(self):
        with pytest.raises(FileNotFoundError):
            load_snapshot("/nonexistent/snapshot.yaml")

    def test_non_mapping_rejected(self):
        with tempfile.NamedTemporaryFile(suffix=".yaml", delete=False, mode="w") as f:
            f.write("- just\n- a list\n")
            f.flush()
            with pytest.raises(ValueError):
                load_snapshot(f.name)


def test_helpers_build_expected_constraints():
    assert make_pk("t").constraint_type == PRIMARY_KEY
    assert make_fk("f", "t", ["a"], "u").ref_qualified_name == "public.u"
