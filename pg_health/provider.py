"""Build a Snapshot from the live system catalogs of a PostgreSQL database."""

from __future__ import annotations

import logging
from itertools import groupby

import psycopg2

from pg_health.snapshot import (
    CHECK,
    EXCLUDE,
    FOREIGN_KEY,
    NOT_NULL,
    PRIMARY_KEY,
    UNIQUE,
    ColumnDef,
    ConstraintDef,
    IndexColumn,
    IndexDef,
    SequenceDef,
    Snapshot,
    TableDef,
)

logger = logging.getLogger(__name__)

_EXCLUDED_SCHEMAS = ("pg_catalog", "information_schema", "pg_toast")

_CONTYPE = {
    "p": PRIMARY_KEY,
    "f": FOREIGN_KEY,
    "u": UNIQUE,
    "c": CHECK,
    "n": NOT_NULL,
    "x": EXCLUDE,
}

# Dead-tuple share of all tuples. A cheap estimate from the statistics
# collector; pgstattuple gives exact numbers at the cost of a full scan.
TABLES_QUERY = """
    SELECT
        n.nspname AS schema_name,
        c.relname AS table_name,
        greatest(c.reltuples, 0)::bigint AS row_estimate,
        pg_catalog.pg_table_size(c.oid) AS size_bytes,
        s.n_live_tup,
        s.n_dead_tup
    FROM pg_catalog.pg_class c
    JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
    LEFT JOIN pg_catalog.pg_stat_user_tables s ON s.relid = c.oid
    WHERE c.relkind IN ('r', 'p')
      AND n.nspname <> ALL(%(excluded)s)
      AND n.nspname NOT LIKE 'pg_temp%%'
      {schema_filter}
    ORDER BY n.nspname, c.relname;
"""

COLUMNS_QUERY = """
    SELECT
        n.nspname AS schema_name,
        c.relname AS table_name,
        a.attname AS column_name,
        pg_catalog.format_type(a.atttypid, a.atttypmod) AS data_type,
        a.attnotnull
    FROM pg_catalog.pg_attribute a
    JOIN pg_catalog.pg_class c ON c.oid = a.attrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
    WHERE c.relkind IN ('r', 'p')
      AND a.attnum > 0
      AND NOT a.attisdropped
      AND n.nspname <> ALL(%(excluded)s)
      AND n.nspname NOT LIKE 'pg_temp%%'
      {schema_filter}
    ORDER BY n.nspname, c.relname, a.attnum;
"""

# One row per index key; expression keys have a NULL column name.
INDEXES_QUERY = """
    SELECT
        n.nspname AS schema_name,
        t.relname AS table_name,
        ic.relname AS index_name,
        i.indisunique,
        i.indisvalid,
        am.amname,
        pg_catalog.pg_get_expr(i.indpred, i.indrelid) AS predicate,
        con.conname,
        pg_catalog.pg_relation_size(ic.oid) AS size_bytes,
        s.idx_scan,
        pg_catalog.pg_get_indexdef(ic.oid) AS definition,
        k.ord,
        a.attname,
        pg_catalog.pg_get_indexdef(ic.oid, k.ord::int, true) AS key_definition,
        (i.indoption[k.ord - 1] & 1) = 1 AS descending,
        (i.indoption[k.ord - 1] & 2) = 2 AS nulls_first,
        CASE WHEN opc.opcdefault THEN '' ELSE opc.opcname END AS opclass,
        CASE WHEN coll.collname IS NULL OR coll.collname = 'default'
             THEN '' ELSE coll.collname END AS collation
    FROM pg_catalog.pg_index i
    JOIN pg_catalog.pg_class ic ON ic.oid = i.indexrelid
    JOIN pg_catalog.pg_class t ON t.oid = i.indrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = t.relnamespace
    JOIN pg_catalog.pg_am am ON am.oid = ic.relam
    LEFT JOIN pg_catalog.pg_constraint con
      ON con.conindid = i.indexrelid AND con.contype IN ('p', 'u', 'x')
    LEFT JOIN pg_catalog.pg_stat_user_indexes s ON s.indexrelid = i.indexrelid
    LEFT JOIN LATERAL unnest(i.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord)
      ON k.ord <= i.indnkeyatts
    LEFT JOIN pg_catalog.pg_attribute a
      ON a.attrelid = i.indrelid AND a.attnum = k.attnum AND k.attnum > 0
    LEFT JOIN pg_catalog.pg_opclass opc ON opc.oid = i.indclass[k.ord - 1]
    LEFT JOIN pg_catalog.pg_collation coll ON coll.oid = i.indcollation[k.ord - 1]
    WHERE t.relkind IN ('r', 'p', 'm')
      AND n.nspname <> ALL(%(excluded)s)
      AND n.nspname NOT LIKE 'pg_temp%%'
      {schema_filter}
    ORDER BY n.nspname, t.relname, ic.relname, k.ord;
"""

CONSTRAINTS_QUERY = """
    SELECT
        n.nspname AS schema_name,
        c.relname AS table_name,
        con.conname,
        con.contype,
        con.convalidated,
        ARRAY(
            SELECT a.attname
            FROM unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord)
            JOIN pg_catalog.pg_attribute a
              ON a.attrelid = con.conrelid AND a.attnum = k.attnum
            ORDER BY k.ord
        ) AS columns,
        rn.nspname AS ref_schema,
        rc.relname AS ref_table,
        ARRAY(
            SELECT a.attname
            FROM unnest(con.confkey) WITH ORDINALITY AS k(attnum, ord)
            JOIN pg_catalog.pg_attribute a
              ON a.attrelid = con.confrelid AND a.attnum = k.attnum
            ORDER BY k.ord
        ) AS ref_columns
    FROM pg_catalog.pg_constraint con
    JOIN pg_catalog.pg_class c ON c.oid = con.conrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
    LEFT JOIN pg_catalog.pg_class rc ON rc.oid = con.confrelid
    LEFT JOIN pg_catalog.pg_namespace rn ON rn.oid = rc.relnamespace
    WHERE con.contype IN ('p', 'f', 'u', 'c', 'n', 'x')
      AND n.nspname <> ALL(%(excluded)s)
      AND n.nspname NOT LIKE 'pg_temp%%'
      {schema_filter}
    ORDER BY n.nspname, c.relname, con.conname;
"""

SEQUENCES_QUERY = """
    SELECT
        n.schemaname,
        n.sequencename,
        n.data_type::text,
        n.last_value,
        n.min_value,
        n.max_value,
        n.increment_by,
        n.cycle
    FROM pg_catalog.pg_sequences n
    WHERE n.schemaname <> ALL(%(excluded)s)
      {schema_filter}
    ORDER BY n.schemaname, n.sequencename;
"""

INDEX_BLOAT_QUERY = """
    SELECT avg_leaf_density FROM pgstatindex(%(index)s::regclass);
"""


class MetadataProvider:
    """Read-only catalog reader producing a Snapshot.

    Takes an open connection (see ``pg_health.connection.connect``); the
    caller owns and closes it. Queries run in a fixed order: tables, columns,
    indexes, constraints, sequences.

    Args:
        conn: psycopg2 connection.
        schemas: Optional list of schemas to read; all user schemas by default.
        index_bloat: Estimate btree index bloat with pgstattuple's
            ``pgstatindex()``. Reads every index in full; off by default.
    """

    def __init__(self, conn, schemas: list[str] | None = None, index_bloat: bool = False):
        self.conn = conn
        self.schemas = list(schemas) if schemas else None
        self.index_bloat = index_bloat

    def snapshot(self, database: str = "") -> Snapshot:
        columns_by_table: dict[tuple[str, str], list[ColumnDef]] = {}
        table_rows = self._fetch(TABLES_QUERY)
        for schema_name, table_name, column_name, data_type, not_null in self._fetch(
            COLUMNS_QUERY
        ):
            columns_by_table.setdefault((schema_name, table_name), []).append(
                ColumnDef(name=column_name, data_type=data_type, not_null=bool(not_null))
            )

        indexes = self._build_indexes(self._fetch(INDEXES_QUERY))
        constraints = [self._build_constraint(row) for row in self._fetch(CONSTRAINTS_QUERY)]
        sequences = [self._build_sequence(row) for row in self._fetch(SEQUENCES_QUERY)]

        index_names: dict[tuple[str, str], list[str]] = {}
        for idx in indexes:
            index_names.setdefault((idx.table_schema, idx.table_name), []).append(idx.name)
        constraint_names: dict[tuple[str, str], list[str]] = {}
        for con in constraints:
            constraint_names.setdefault((con.table_schema, con.table_name), []).append(con.name)

        tables = []
        for schema_name, table_name, row_estimate, size_bytes, live, dead in table_rows:
            key = (schema_name, table_name)
            tables.append(
                TableDef(
                    schema_name=schema_name,
                    table_name=table_name,
                    columns=tuple(columns_by_table.get(key, ())),
                    row_estimate=int(row_estimate or 0),
                    size_bytes=int(size_bytes or 0),
                    bloat_ratio=_dead_tuple_ratio(live, dead),
                    index_names=tuple(index_names.get(key, ())),
                    constraint_names=tuple(constraint_names.get(key, ())),
                )
            )

        logger.info(
            "Read %d tables, %d indexes, %d constraints, %d sequences",
            len(tables),
            len(indexes),
            len(constraints),
            len(sequences),
        )
        return Snapshot(
            tables=tables,
            indexes=indexes,
            constraints=constraints,
            sequences=sequences,
            database=database,
        )

    def _fetch(self, query: str, params: dict | None = None) -> list[tuple]:
        sql, base_params = self._with_schema_filter(query)
        base_params.update(params or {})
        with self.conn.cursor() as cur:
            cur.execute(sql, base_params)
            return cur.fetchall()

    def _with_schema_filter(self, query: str) -> tuple[str, dict]:
        params: dict = {"excluded": list(_EXCLUDED_SCHEMAS)}
        schema_column = "n.schemaname" if query is SEQUENCES_QUERY else "n.nspname"
        if self.schemas:
            params["schemas"] = self.schemas
            return query.format(schema_filter=f"AND {schema_column} = ANY(%(schemas)s)"), params
        return query.format(schema_filter=""), params

    def _build_indexes(self, rows: list[tuple]) -> list[IndexDef]:
        indexes = []
        for (schema_name, table_name, index_name), group in groupby(
            rows, key=lambda r: (r[0], r[1], r[2])
        ):
            group = list(group)
            first = group[0]
            (
                _, _, _, is_unique, is_valid, method, predicate, con_name,
                size_bytes, scans, definition,
            ) = first[:11]
            columns = []
            for row in group:
                ord_, attname, key_def, descending, nulls_first, opclass, collation = row[11:]
                if ord_ is None:
                    continue
                columns.append(
                    IndexColumn(
                        name=attname,
                        expression=None if attname else key_def,
                        descending=bool(descending),
                        nulls_first=bool(nulls_first) if method == "btree" else None,
                        opclass=opclass or "",
                        collation=collation or "",
                    )
                )
            bloat = None
            if self.index_bloat and method == "btree" and is_valid:
                bloat = self._index_bloat(schema_name, index_name)
            indexes.append(
                IndexDef(
                    name=index_name,
                    table_schema=schema_name,
                    table_name=table_name,
                    columns=tuple(columns),
                    is_unique=bool(is_unique),
                    is_valid=bool(is_valid),
                    index_method=method,
                    predicate=predicate,
                    constraint_name=con_name,
                    size_bytes=int(size_bytes or 0),
                    scan_count=int(scans) if scans is not None else None,
                    bloat_ratio=bloat,
                    definition=definition or "",
                )
            )
        return indexes

    def _index_bloat(self, schema_name: str, index_name: str) -> float | None:
        """Share of leaf space not used, relative to the default 90% fillfactor."""
        ident = f'"{schema_name}"."{index_name}"'
        try:
            rows = self._fetch(INDEX_BLOAT_QUERY, {"index": ident})
        except psycopg2.Error as exc:
            logger.warning("pgstatindex failed for %s: %s", ident, exc)
            return None
        if not rows or rows[0][0] is None:
            return None
        density = float(rows[0][0])
        return max(0.0, min(1.0, 1 - density / 90.0))

    @staticmethod
    def _build_constraint(row: tuple) -> ConstraintDef:
        (
            schema_name, table_name, con_name, contype, validated,
            columns, ref_schema, ref_table, ref_columns,
        ) = row
        return ConstraintDef(
            name=con_name,
            constraint_type=_CONTYPE[contype],
            table_schema=schema_name,
            table_name=table_name,
            columns=tuple(columns or ()),
            ref_schema=ref_schema or "",
            ref_table=ref_table or "",
            ref_columns=tuple(ref_columns or ()),
            validated=bool(validated),
        )

    @staticmethod
    def _build_sequence(row: tuple) -> SequenceDef:
        schema_name, name, data_type, last_value, min_value, max_value, increment, cycle = row
        return SequenceDef(
            schema_name=schema_name,
            sequence_name=name,
            data_type=data_type,
            last_value=last_value,
            min_value=min_value,
            max_value=max_value,
            increment=int(increment),
            cycle=bool(cycle),
        )


def _dead_tuple_ratio(live, dead) -> float | None:
    if live is None or dead is None:
        return None
    total = live + dead
    if total <= 0:
        return None
    return dead / total
