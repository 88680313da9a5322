"""Configuration loading and management for pg-health."""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

import yaml

from pg_health.exclusions import ExclusionRule
from pg_health.migrations import GeneratingOptions

CONFIG_FILE_NAME = "pg-health.yaml"


class ConfigError(ValueError):
    """Raised for invalid configuration, before any evaluation starts."""


@dataclass(frozen=True)
class Thresholds:
    """Numeric policy knobs for the runtime checks.

    The defaults are policy, not measured fact; tune them per database.
    """

    bloat_ratio: float = 0.5
    bloat_min_size: int = 0
    unused_index_max_scans: int = 0
    unused_index_min_table_size: int = 10 * 1024 * 1024
    sequence_remaining_ratio: float = 0.1

    def validate(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ConfigError(f"Threshold '{f.name}' must be a number, got {value!r}")
            if value < 0:
                raise ConfigError(f"Threshold '{f.name}' must not be negative, got {value}")
        for name in ("bloat_ratio", "sequence_remaining_ratio"):
            if getattr(self, name) > 1:
                raise ConfigError(f"Threshold '{name}' must be between 0 and 1")


@dataclass
class CheckConfig:
    """Configuration for which checks to include/exclude."""

    exclude: set[str] = field(default_factory=set)
    include_only: set[str] | None = None  # None = no whitelist, run all minus exclude


@dataclass
class Config:
    """Complete configuration for pg-health."""

    checks: CheckConfig = field(default_factory=CheckConfig)
    thresholds: Thresholds = field(default_factory=Thresholds)
    exclusions: list[ExclusionRule] = field(default_factory=list)
    migrations: GeneratingOptions = field(default_factory=GeneratingOptions)

    def validate(self, known_checks: Iterable[str]) -> None:
        """Fail fast on settings that reference unknown checks or break threshold ranges.

        Raises:
            ConfigError: On the first problem found.
        """
        known = set(known_checks)
        named = set(self.checks.exclude) | set(self.checks.include_only or ())
        unknown = sorted(named - known)
        if unknown:
            raise ConfigError(f"Unknown check id(s): {', '.join(unknown)}")

        scoped = sorted({r.check for r in self.exclusions if r.check} - known)
        if scoped:
            raise ConfigError(f"Exclusion scoped to unknown check id(s): {', '.join(scoped)}")

        self.thresholds.validate()


def find_config_file() -> str | None:
    """Search for pg-health.yaml in cwd, then home dir.

    Returns:
        Path to config file if found, None otherwise.
    """
    cwd_config = Path.cwd() / CONFIG_FILE_NAME
    if cwd_config.is_file():
        return str(cwd_config)

    home_config = Path.home() / CONFIG_FILE_NAME
    if home_config.is_file():
        return str(home_config)

    return None


def load_config(config_path: str | None = None, auto_discover: bool = True) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Explicit path to config file. If None and auto_discover is True,
                     searches default locations.
        auto_discover: If True and config_path is None, search for config file.

    Returns:
        Config object. Returns default config if no file found.
    """
    if config_path is None and auto_discover:
        config_path = find_config_file()

    if config_path is None:
        return Config()

    if not os.path.isfile(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")
    return _parse_config(data)


def _parse_config(data: dict) -> Config:
    """Parse YAML data into Config object."""
    config = Config()

    if "checks" in data:
        config.checks = _parse_check_config(data["checks"] or {})

    if "thresholds" in data:
        config.thresholds = _parse_dataclass(Thresholds, data["thresholds"] or {}, "thresholds")

    for entry in data.get("exclusions") or []:
        config.exclusions.append(_parse_exclusion(entry))

    if "migrations" in data:
        config.migrations = _parse_dataclass(
            GeneratingOptions, data["migrations"] or {}, "migrations"
        )

    return config


def _parse_check_config(data: dict) -> CheckConfig:
    """Parse check configuration section."""
    exclude = set(data.get("exclude") or [])

    include_only = None
    if data.get("include_only") is not None:
        include_only = set(data["include_only"])

    return CheckConfig(exclude=exclude, include_only=include_only)


def _parse_exclusion(entry) -> ExclusionRule:
    if isinstance(entry, str):
        return ExclusionRule.parse(entry)
    if not isinstance(entry, dict) or "pattern" not in entry:
        raise ConfigError(f"Exclusion entry needs a 'pattern': {entry!r}")
    try:
        return ExclusionRule(pattern=str(entry["pattern"]), check=entry.get("check"))
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def _parse_dataclass(cls, data: dict, section: str):
    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{section}': {', '.join(unknown)}")
    try:
        return cls(**data)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid '{section}' section: {exc}") from exc


def merge_cli_with_config(
    config: Config,
    cli_exclude: set[str] | None = None,
    cli_include_only: set[str] | None = None,
    cli_ignore: list[ExclusionRule] | None = None,
    cli_index_foreign_keys: bool = False,
    cli_no_concurrently: bool = False,
) -> Config:
    """Merge CLI arguments with config file settings.

    CLI arguments take precedence over config file.

    Args:
        config: Loaded configuration.
        cli_exclude: Checks to disable (from --exclude flag).
        cli_include_only: Checks to run exclusively (from --include-only flag).
        cli_ignore: Extra exclusion rules (from --ignore flags).
        cli_index_foreign_keys: Generate indexes for uncovered foreign keys.
        cli_no_concurrently: Generate plain (locking) index statements.

    Returns:
        A new Config with merged settings.
    """
    checks = CheckConfig(
        exclude=config.checks.exclude | (cli_exclude or set()),
        include_only=(
            cli_include_only if cli_include_only is not None else config.checks.include_only
        ),
    )

    migrations = config.migrations
    if cli_index_foreign_keys:
        migrations = replace(migrations, index_foreign_keys=True)
    if cli_no_concurrently:
        migrations = replace(migrations, concurrently=False)

    return Config(
        checks=checks,
        thresholds=config.thresholds,
        exclusions=list(config.exclusions) + list(cli_ignore or []),
        migrations=migrations,
    )
