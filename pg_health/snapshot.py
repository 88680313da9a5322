"""Immutable in-memory model of the schema metadata under inspection."""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

PRIMARY_KEY = "PRIMARY KEY"
FOREIGN_KEY = "FOREIGN KEY"
UNIQUE = "UNIQUE"
CHECK = "CHECK"
NOT_NULL = "NOT NULL"
EXCLUDE = "EXCLUDE"

CONSTRAINT_TYPES = frozenset({PRIMARY_KEY, FOREIGN_KEY, UNIQUE, CHECK, NOT_NULL, EXCLUDE})


def qualify(schema: str, name: str) -> str:
    return f"{schema}.{name}"


@dataclass(frozen=True)
class ColumnDef:
    name: str
    data_type: str = ""
    not_null: bool = False


@dataclass(frozen=True)
class IndexColumn:
    """One key of an index: a plain column or an expression."""

    name: str | None = None
    expression: str | None = None
    descending: bool = False
    nulls_first: bool | None = None
    opclass: str = ""
    collation: str = ""

    @property
    def is_expression(self) -> bool:
        return self.name is None

    @property
    def signature(self) -> tuple:
        return (
            self.name if self.name is not None else f"({self.expression or ''})",
            self.descending,
            self.nulls_first,
            self.opclass,
            self.collation,
        )


@dataclass(frozen=True)
class TableDef:
    schema_name: str
    table_name: str
    columns: tuple[ColumnDef, ...] = ()
    row_estimate: int = 0
    size_bytes: int = 0
    bloat_ratio: float | None = None
    index_names: tuple[str, ...] = ()
    constraint_names: tuple[str, ...] = ()

    @property
    def qualified_name(self) -> str:
        return qualify(self.schema_name, self.table_name)

    @property
    def name(self) -> str:
        return self.table_name

    def get_column(self, name: str) -> ColumnDef | None:
        return next((c for c in self.columns if c.name == name), None)


@dataclass(frozen=True)
class IndexDef:
    name: str
    table_schema: str
    table_name: str
    columns: tuple[IndexColumn, ...] = ()
    is_unique: bool = False
    is_valid: bool = True
    index_method: str = "btree"
    predicate: str | None = None
    constraint_name: str | None = None
    size_bytes: int = 0
    scan_count: int | None = None
    bloat_ratio: float | None = None
    definition: str = ""

    @property
    def qualified_name(self) -> str:
        return qualify(self.table_schema, self.name)

    @property
    def table_qualified_name(self) -> str:
        return qualify(self.table_schema, self.table_name)

    @property
    def column_names(self) -> tuple[str, ...] | None:
        """Plain column names in key order, or None when any key is an expression."""
        if any(c.is_expression for c in self.columns):
            return None
        return tuple(c.name for c in self.columns)

    @property
    def signature(self) -> tuple:
        return tuple(c.signature for c in self.columns)

    @property
    def is_constraint_backing(self) -> bool:
        return bool(self.constraint_name)


@dataclass(frozen=True)
class ConstraintDef:
    name: str
    constraint_type: str
    table_schema: str
    table_name: str
    columns: tuple[str, ...] = ()
    # FK-specific
    ref_schema: str = ""
    ref_table: str = ""
    ref_columns: tuple[str, ...] = ()
    validated: bool = True

    @property
    def qualified_name(self) -> str:
        # Only index-backed constraint names are unique per schema; FK, CHECK and
        # NOT NULL names are unique per table.
        return qualify(self.table_qualified_name, self.name)

    @property
    def table_qualified_name(self) -> str:
        return qualify(self.table_schema, self.table_name)

    @property
    def ref_qualified_name(self) -> str:
        return qualify(self.ref_schema or self.table_schema, self.ref_table) if self.ref_table else ""


@dataclass(frozen=True)
class SequenceDef:
    schema_name: str
    sequence_name: str
    data_type: str = "bigint"
    last_value: int | None = None
    min_value: int | None = None
    max_value: int | None = None
    increment: int = 1
    cycle: bool = False

    @property
    def qualified_name(self) -> str:
        return qualify(self.schema_name, self.sequence_name)

    @property
    def name(self) -> str:
        return self.sequence_name


@dataclass(frozen=True)
class Snapshot:
    """Metadata for one database at one instant.

    Identifiers are unique within each entity set. Indexes are identified by
    the schema of their owning table plus their own name, constraints by the
    owning table plus their name (``schema.table.constraint``).
    """

    tables: tuple[TableDef, ...] = ()
    indexes: tuple[IndexDef, ...] = ()
    constraints: tuple[ConstraintDef, ...] = ()
    sequences: tuple[SequenceDef, ...] = ()
    database: str = ""
    _tables_by_name: dict = field(default_factory=dict, init=False, repr=False, compare=False)
    _objects_by_name: dict = field(default_factory=dict, init=False, repr=False, compare=False)
    _indexes_by_table: dict = field(default_factory=dict, init=False, repr=False, compare=False)
    _constraints_by_table: dict = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        for attr in ("tables", "indexes", "constraints", "sequences"):
            object.__setattr__(self, attr, tuple(getattr(self, attr)))
            _ensure_unique(attr, getattr(self, attr))

        for tbl in self.tables:
            self._tables_by_name[tbl.qualified_name] = tbl
        for idx in self.indexes:
            self._indexes_by_table.setdefault(idx.table_qualified_name, []).append(idx)
        for con in self.constraints:
            self._constraints_by_table.setdefault(con.table_qualified_name, []).append(con)
        for attr in ("tables", "indexes", "constraints", "sequences"):
            for obj in getattr(self, attr):
                self._objects_by_name.setdefault(obj.qualified_name, obj)

    def get_table(self, qualified_name: str) -> TableDef | None:
        return self._tables_by_name.get(qualified_name)

    def get_object(self, qualified_name: str):
        """Table, index, constraint or sequence with this identifier, or None."""
        return self._objects_by_name.get(qualified_name)

    def get_indexes_for_table(self, qualified_name: str) -> list[IndexDef]:
        return list(self._indexes_by_table.get(qualified_name, ()))

    def get_constraints_for_table(
        self, qualified_name: str, con_type: str | None = None
    ) -> list[ConstraintDef]:
        result = list(self._constraints_by_table.get(qualified_name, ()))
        if con_type:
            result = [c for c in result if c.constraint_type == con_type]
        return result

    def filtered(self, keep: Callable[[Any], bool]) -> Snapshot:
        """Return a new snapshot holding only the objects for which ``keep`` is true.

        Dropping a table also drops the indexes and constraints it owns.
        """
        tables = tuple(t for t in self.tables if keep(t))
        dropped = {t.qualified_name for t in self.tables} - {t.qualified_name for t in tables}
        indexes = tuple(
            i for i in self.indexes if i.table_qualified_name not in dropped and keep(i)
        )
        constraints = tuple(
            c for c in self.constraints if c.table_qualified_name not in dropped and keep(c)
        )
        sequences = tuple(s for s in self.sequences if keep(s))
        return Snapshot(
            tables=tables,
            indexes=indexes,
            constraints=constraints,
            sequences=sequences,
            database=self.database,
        )


def _ensure_unique(entity: str, objects: tuple) -> None:
    seen: set[str] = set()
    for obj in objects:
        if obj.qualified_name in seen:
            raise ValueError(f"Duplicate identifier in {entity}: {obj.qualified_name}")
        seen.add(obj.qualified_name)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_snapshot(file_path: str) -> Snapshot:
    """Load a snapshot from a YAML or JSON file.

    Args:
        file_path: Path to the snapshot document.

    Returns:
        Snapshot built from the document.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the document is not a valid snapshot.
    """
    if not os.path.isfile(file_path):
        raise FileNotFoundError(f"Snapshot file not found: {file_path}")

    with open(file_path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Snapshot document must be a mapping: {file_path}")
    return snapshot_from_dict(data)


def snapshot_from_dict(data: dict) -> Snapshot:
    """Build a snapshot from plain dicts and lists (the loaded document shape)."""
    default_schema = data.get("default_schema", "public")
    try:
        tables = [_parse_table(t, default_schema) for t in data.get("tables") or []]
        indexes = [_parse_index(i, default_schema) for i in data.get("indexes") or []]
        constraints = [
            _parse_constraint(c, default_schema) for c in data.get("constraints") or []
        ]
        sequences = [_parse_sequence(s, default_schema) for s in data.get("sequences") or []]
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed snapshot entry: {exc}") from exc

    return Snapshot(
        tables=tables,
        indexes=indexes,
        constraints=constraints,
        sequences=sequences,
        database=data.get("database", ""),
    )


def _split_qualified(name: str, default_schema: str) -> tuple[str, str]:
    if "." in name:
        schema, _, rel = name.partition(".")
        return schema, rel
    return default_schema, name


def _parse_table(data: dict, default_schema: str) -> TableDef:
    schema, name = _split_qualified(data["name"], data.get("schema", default_schema))
    columns = []
    for col in data.get("columns") or []:
        if isinstance(col, str):
            columns.append(ColumnDef(name=col))
        else:
            columns.append(
                ColumnDef(
                    name=col["name"],
                    data_type=col.get("type", ""),
                    not_null=bool(col.get("not_null", False)),
                )
            )
    return TableDef(
        schema_name=schema,
        table_name=name,
        columns=tuple(columns),
        row_estimate=int(data.get("rows", 0)),
        size_bytes=int(data.get("size", 0)),
        bloat_ratio=_optional_float(data.get("bloat_ratio")),
        index_names=tuple(data.get("indexes") or ()),
        constraint_names=tuple(data.get("constraints") or ()),
    )


def _parse_index_column(col: Any) -> IndexColumn:
    if isinstance(col, str):
        return IndexColumn(name=col)
    return IndexColumn(
        name=col.get("name"),
        expression=col.get("expression"),
        descending=bool(col.get("descending", False)),
        nulls_first=col.get("nulls_first"),
        opclass=col.get("opclass", ""),
        collation=col.get("collation", ""),
    )


def _parse_index(data: dict, default_schema: str) -> IndexDef:
    schema, table = _split_qualified(data["table"], data.get("schema", default_schema))
    scans = data.get("scans")
    return IndexDef(
        name=data["name"],
        table_schema=schema,
        table_name=table,
        columns=tuple(_parse_index_column(c) for c in data.get("columns") or []),
        is_unique=bool(data.get("unique", False)),
        is_valid=bool(data.get("valid", True)),
        index_method=data.get("method", "btree"),
        predicate=data.get("predicate"),
        constraint_name=data.get("constraint"),
        size_bytes=int(data.get("size", 0)),
        scan_count=int(scans) if scans is not None else None,
        bloat_ratio=_optional_float(data.get("bloat_ratio")),
        definition=data.get("definition", ""),
    )


def _parse_constraint(data: dict, default_schema: str) -> ConstraintDef:
    schema, table = _split_qualified(data["table"], data.get("schema", default_schema))
    con_type = data["type"].upper().replace("_", " ")
    if con_type not in CONSTRAINT_TYPES:
        raise ValueError(f"Unknown constraint type for {data['name']}: {data['type']}")
    ref_schema, ref_table = "", ""
    if data.get("references"):
        ref_schema, ref_table = _split_qualified(data["references"], schema)
    return ConstraintDef(
        name=data["name"],
        constraint_type=con_type,
        table_schema=schema,
        table_name=table,
        columns=tuple(data.get("columns") or ()),
        ref_schema=ref_schema,
        ref_table=ref_table,
        ref_columns=tuple(data.get("ref_columns") or ()),
        validated=bool(data.get("validated", True)),
    )


def _parse_sequence(data: dict, default_schema: str) -> SequenceDef:
    schema, name = _split_qualified(data["name"], data.get("schema", default_schema))
    return SequenceDef(
        schema_name=schema,
        sequence_name=name,
        data_type=data.get("type", "bigint"),
        last_value=data.get("last_value"),
        min_value=data.get("min_value"),
        max_value=data.get("max_value"),
        increment=int(data.get("increment", 1)),
        cycle=bool(data.get("cycle", False)),
    )


def _optional_float(value: Any) -> float | None:
    return float(value) if value is not None else None
