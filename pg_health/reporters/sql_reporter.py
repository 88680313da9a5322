"""Render generated statements as a migration file."""

from __future__ import annotations

from pg_health.models import SqlStatement


def render(statements: list[SqlStatement], database: str = "") -> str:
    """Render statements in order, wrapping runs of transaction-safe ones in BEGIN/COMMIT.

    Statements that cannot run in a transaction block (the CONCURRENTLY forms)
    stay outside any BEGIN/COMMIT pair.
    """
    lines = [f"-- pg-health migration{': ' + database if database else ''}"]
    if not statements:
        lines.append("-- nothing to do")
        return "\n".join(lines) + "\n"

    in_transaction = False
    for stmt in statements:
        if stmt.transactional and not in_transaction:
            lines += ["", "BEGIN;"]
            in_transaction = True
        elif not stmt.transactional and in_transaction:
            lines.append("COMMIT;")
            in_transaction = False
        if not stmt.transactional:
            lines += ["", "-- must run outside a transaction block"]
        lines.append(f"-- {stmt.check_name}: {', '.join(stmt.finding_key[1])}")
        lines.append(stmt.sql)
    if in_transaction:
        lines.append("COMMIT;")
    return "\n".join(lines) + "\n"
