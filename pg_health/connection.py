"""Database connection management."""

from __future__ import annotations

import psycopg2
import psycopg2.extensions


def connect(dsn: str) -> psycopg2.extensions.connection:
    """Open a read-only, autocommit connection for catalog queries.

    The DSN is passed to libpq unchanged, so standard PG* environment
    variables and ~/.pgpass apply.
    """
    conn = psycopg2.connect(dsn)
    conn.set_session(readonly=True, autocommit=True)
    return conn


def get_pg_version(conn) -> str:
    """Return the PostgreSQL server version string."""
    with conn.cursor() as cur:
        cur.execute("SELECT version()")
        return cur.fetchone()[0]
