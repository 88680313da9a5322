"""Registration, enabling and ordering of checks."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pg_health.checks import Check, default_checks

logger = logging.getLogger(__name__)


class CheckRegistry:
    """The ordered set of checks one evaluation runs.

    Checks without a priority iterate in registration order. Checks that
    declare a priority come first, ordered by (priority, name).
    """

    def __init__(self, checks: Iterable[Check] = ()):
        self._checks: list[Check] = []
        self._disabled: set[str] = set()
        for check in checks:
            self.register(check)

    def register(self, check: Check) -> None:
        if not isinstance(check, Check) or not check.name:
            raise ValueError(f"Not a check: {check!r}")
        if self.get(check.name) is not None:
            raise ValueError(f"Check already registered: {check.name}")
        self._checks.append(check)

    def disable(self, name: str) -> None:
        """Disable a check; unknown names are ignored."""
        if self.get(name) is None:
            logger.debug("Ignoring disable of unregistered check %s", name)
            return
        self._disabled.add(name)

    def enable(self, name: str) -> None:
        self._disabled.discard(name)

    def is_enabled(self, name: str) -> bool:
        return self.get(name) is not None and name not in self._disabled

    def get(self, name: str) -> Check | None:
        return next((c for c in self._checks if c.name == name), None)

    def names(self) -> list[str]:
        return [c.name for c in self._checks]

    def categories(self) -> list[str]:
        return sorted({c.category for c in self._checks})

    def enabled_checks(self, categories: list[str] | None = None) -> list[Check]:
        enabled = [c for c in self._checks if c.name not in self._disabled]
        if categories:
            enabled = [c for c in enabled if c.category in categories]
        prioritized = sorted(
            (c for c in enabled if c.priority is not None), key=lambda c: (c.priority, c.name)
        )
        return prioritized + [c for c in enabled if c.priority is None]

    def __len__(self) -> int:
        return len(self._checks)

    def __iter__(self):
        return iter(list(self._checks))


def default_registry(
    exclude: set[str] | None = None,
    include_only: set[str] | None = None,
) -> CheckRegistry:
    """
    Build a new registry holding every built-in check.

    Parameters:
        exclude (set[str] | None): Check names to disable.
        include_only (set[str] | None): If provided, disable every check not named here.
            Exclusions still apply on top.

    Returns:
        CheckRegistry: A registry owned by the caller; nothing is shared between calls.
    """
    registry = CheckRegistry(default_checks())
    if include_only is not None:
        for name in registry.names():
            if name not in include_only:
                registry.disable(name)
    for name in exclude or ():
        registry.disable(name)
    return registry
