"""pg-health: PostgreSQL schema health checks and migration generator."""

__version__ = "0.1.0"
