"""Turn findings into idempotent, schema-qualified corrective SQL statements."""

from __future__ import annotations

import enum
import re
import zlib
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from pg_health.models import Finding, SqlStatement

MAX_IDENTIFIER_LENGTH = 63

_SIMPLE_IDENT = re.compile(r"^[a-z_][a-z0-9_$]*$")

# Reserved words that must be quoted even when they look like plain identifiers.
_RESERVED = frozenset(
    {
        "all", "analyse", "analyze", "and", "any", "array", "as", "asc", "both", "case",
        "cast", "check", "collate", "column", "constraint", "create", "default",
        "deferrable", "desc", "distinct", "do", "else", "end", "except", "false", "fetch",
        "for", "foreign", "from", "grant", "group", "having", "in", "initially", "intersect",
        "into", "lateral", "leading", "limit", "not", "null", "offset", "on", "only", "or",
        "order", "placing", "primary", "references", "returning", "select", "some",
        "symmetric", "table", "then", "to", "trailing", "true", "union", "unique", "user",
        "using", "variadic", "when", "where", "window", "with",
    }
)


class IdxPosition(enum.Enum):
    SUFFIX = "suffix"
    PREFIX = "prefix"
    NONE = "none"


@dataclass(frozen=True)
class GeneratingOptions:
    """Options for the generated statements.

    Attributes:
        concurrently: Use CONCURRENTLY for index builds, drops and rebuilds.
            Such statements cannot run inside a transaction block.
        uppercase_keywords: Emit SQL keywords in capitals.
        break_lines: Put the ON clause of CREATE INDEX on its own line.
        indentation: Spaces before continuation lines, 0 to 8.
        exclude_nulls: Build foreign key indexes as partial indexes skipping
            NULLs in nullable columns.
        name_without_nulls: Add "without_nulls" to the names of such indexes.
        idx_position: Where "idx" goes in generated index names.
        index_foreign_keys: Generate indexes for uncovered foreign keys.
            Off by default; the right index shape is a judgement call.
    """

    concurrently: bool = True
    uppercase_keywords: bool = False
    break_lines: bool = True
    indentation: int = 4
    exclude_nulls: bool = True
    name_without_nulls: bool = True
    idx_position: IdxPosition = IdxPosition.SUFFIX
    index_foreign_keys: bool = False

    def __post_init__(self):
        if isinstance(self.indentation, bool) or not isinstance(self.indentation, int):
            raise ValueError("indentation should be an integer")
        if not 0 <= self.indentation <= 8:
            raise ValueError("indentation should be in the range [0, 8]")
        if not isinstance(self.idx_position, IdxPosition):
            object.__setattr__(self, "idx_position", IdxPosition(self.idx_position))


def quote_ident(name: str) -> str:
    if _SIMPLE_IDENT.match(name) and name not in _RESERVED:
        return name
    return '"' + name.replace('"', '""') + '"'


def qualified(schema: str, name: str) -> str:
    return f"{quote_ident(schema)}.{quote_ident(name)}"


def generate(
    findings: Iterable[Finding], options: GeneratingOptions | None = None
) -> list[SqlStatement]:
    """Generate corrective statements for ``findings``.

    Statements follow finding order (severity, objects, check). Findings
    without a known safe remediation produce nothing and stay advisory, as do
    findings lacking the metadata a template needs (engine failures,
    "cannot evaluate" reports). A statement already emitted for an earlier
    finding is not repeated.
    """
    options = options or GeneratingOptions()

    unique: dict[tuple, Finding] = {}
    for finding in findings:
        unique.setdefault(finding.key, finding)

    statements: list[SqlStatement] = []
    seen: set[str] = set()
    for finding in sorted(unique.values(), key=Finding.sort_key):
        template = _TEMPLATES.get(finding.check_name)
        if template is None or not _has_metadata(finding):
            continue
        for statement in template(finding, options):
            if statement.sql not in seen:
                seen.add(statement.sql)
                statements.append(statement)
    return statements


def _has_metadata(finding: Finding) -> bool:
    return all(finding.metadata.get(key) for key in _REQUIRED_METADATA[finding.check_name])


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def _kw(options: GeneratingOptions, text: str) -> str:
    return text.upper() if options.uppercase_keywords else text


def _statement(finding: Finding, sql: str, transactional: bool) -> SqlStatement:
    return SqlStatement(
        sql=sql,
        check_name=finding.check_name,
        finding_key=finding.key,
        transactional=transactional,
    )


def _drop_index(finding: Finding, options: GeneratingOptions, index_name: str) -> SqlStatement:
    keyword = "drop index concurrently if exists" if options.concurrently else "drop index if exists"
    target = qualified(finding.metadata["schema"], index_name)
    return _statement(
        finding, f"{_kw(options, keyword)} {target};", transactional=not options.concurrently
    )


def _reindex(finding: Finding, options: GeneratingOptions) -> list[SqlStatement]:
    keyword = "reindex index concurrently" if options.concurrently else "reindex index"
    target = qualified(finding.metadata["schema"], finding.metadata["index"])
    return [
        _statement(
            finding, f"{_kw(options, keyword)} {target};", transactional=not options.concurrently
        )
    ]


def _duplicated_index(finding: Finding, options: GeneratingOptions) -> list[SqlStatement]:
    redundant = finding.metadata.get("redundant_index")
    if not redundant:
        # Both indexes back constraints; dropping either needs a human decision.
        return []
    return [_drop_index(finding, options, redundant)]


def _unused_index(finding: Finding, options: GeneratingOptions) -> list[SqlStatement]:
    return [_drop_index(finding, options, finding.metadata["index"])]


def _validate_constraint(finding: Finding, options: GeneratingOptions) -> list[SqlStatement]:
    table = qualified(finding.metadata["schema"], finding.metadata["table"])
    constraint = quote_ident(finding.metadata["constraint"])
    sql = (
        f"{_kw(options, 'alter table if exists')} {table} "
        f"{_kw(options, 'validate constraint')} {constraint};"
    )
    return [_statement(finding, sql, transactional=True)]


def _index_on_foreign_key(finding: Finding, options: GeneratingOptions) -> list[SqlStatement]:
    if not options.index_foreign_keys:
        return []
    meta = finding.metadata
    columns: list[str] = list(meta.get("columns") or [])
    if not columns:
        return []
    nullable = [c for c in columns if c in set(meta.get("nullable_columns") or [])]
    without_nulls = options.exclude_nulls and bool(nullable)

    full_name = _index_name(meta["table"], columns, without_nulls, options)
    name = _shorten_index_name(meta["table"], columns, without_nulls, options)

    create = (
        "create index concurrently if not exists"
        if options.concurrently
        else "create index if not exists"
    )
    separator = "\n" + " " * options.indentation if options.break_lines else " "
    column_list = ", ".join(quote_ident(c) for c in columns)
    sql = (
        f"{_kw(options, create)} {quote_ident(name)}{separator}"
        f"{_kw(options, 'on')} {qualified(meta['schema'], meta['table'])} ({column_list})"
    )
    if without_nulls:
        predicate = f" {_kw(options, 'and')} ".join(
            f"{quote_ident(c)} {_kw(options, 'is not null')}" for c in nullable
        )
        sql += f" {_kw(options, 'where')} {predicate}"
    sql += ";"
    if name != full_name:
        sql = f"/* {full_name} */" + ("\n" if options.break_lines else " ") + sql
    return [_statement(finding, sql, transactional=not options.concurrently)]


def _index_name(
    table: str, columns: list[str], without_nulls: bool, options: GeneratingOptions
) -> str:
    return _decorate_name([table, *columns], without_nulls, options)


def _shorten_index_name(
    table: str, columns: list[str], without_nulls: bool, options: GeneratingOptions
) -> str:
    name = _index_name(table, columns, without_nulls, options)
    if len(name.encode()) <= MAX_IDENTIFIER_LENGTH:
        return name
    digest = str(zlib.crc32("_".join(columns).encode()) % 10_000_000)
    tail = _decorate_name([digest], without_nulls, options)
    room = MAX_IDENTIFIER_LENGTH - len(tail.encode()) - 1
    head = table.encode()[:room].decode(errors="ignore")
    return _decorate_name([head, digest], without_nulls, options)


def _decorate_name(parts: list[str], without_nulls: bool, options: GeneratingOptions) -> str:
    parts = list(parts)
    if without_nulls and options.name_without_nulls:
        parts.append("without_nulls")
    if options.idx_position == IdxPosition.SUFFIX:
        parts.append("idx")
    elif options.idx_position == IdxPosition.PREFIX:
        parts.insert(0, "idx")
    return "_".join(parts)


_TEMPLATES: dict[str, Callable[[Finding, GeneratingOptions], list[SqlStatement]]] = {
    "duplicated_indexes": _duplicated_index,
    "unused_indexes": _unused_index,
    "invalid_indexes": _reindex,
    "bloated_indexes": _reindex,
    "not_valid_constraints": _validate_constraint,
    "foreign_keys_without_index": _index_on_foreign_key,
}

# Metadata keys a finding must carry before its template can run.
_REQUIRED_METADATA: dict[str, tuple[str, ...]] = {
    "duplicated_indexes": ("schema",),
    "unused_indexes": ("schema", "index"),
    "invalid_indexes": ("schema", "index"),
    "bloated_indexes": ("schema", "index"),
    "not_valid_constraints": ("schema", "table", "constraint"),
    "foreign_keys_without_index": ("schema", "table", "columns"),
}
