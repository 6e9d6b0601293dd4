"""
Dependency evaluation.

Pure functions over the configured dependency keys. The evaluator compares
freshly resolved values with the snapshot stored in the record and decides
which command, if any, the change should produce.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from resource_cache.config import ResourceSettings
from resource_cache.models import (
    Command,
    DependencyInvalidate,
    DependencySnapshot,
    InvalidationMode,
)

logger = logging.getLogger(__name__)


def resolve_dependencies(
    config: ResourceSettings, state: Mapping[str, Any]
) -> dict[str, Any]:
    """Read the current value of every configured key from external state."""
    return {dep.key: state.get(dep.key) for dep in config.dependencies}


def dependencies_satisfied(
    config: ResourceSettings, snapshot: Optional[Mapping[str, Any]]
) -> bool:
    """
    True when every key that does not allow blanks has a value.

    Blank means missing or None. A resource without dependencies is
    always satisfied.
    """
    values = snapshot or {}
    return all(
        dep.allow_blank or values.get(dep.key) is not None
        for dep in config.dependencies
    )


def evaluate_dependencies(
    config: ResourceSettings,
    previous: Optional[Mapping[str, Any]],
    current: Mapping[str, Any],
    last_resolved: Optional[Mapping[str, Any]] = None,
) -> Optional[Command]:
    """
    Decide what a change in dependency values means for the record.

    Args:
        previous: Snapshot stored in the record, None if never evaluated.
        current: Freshly resolved values.
        last_resolved: Last stored snapshot that satisfied every required
                       dependency, None if there never was one.

    Returns:
        None if nothing changed. DependencySnapshot if the values only need
        to be recorded: first evaluation, unsatisfied values, values seen for
        the first time, or a return to the last resolved values.
        DependencyInvalidate otherwise, in stale mode when any key that
        differs from the last resolved values has stale_on_change set.
    """
    if not config.dependencies:
        return None

    current = dict(current)
    if previous is not None and dict(previous) == current:
        return None

    satisfied = dependencies_satisfied(config, current)
    if previous is None or not satisfied or last_resolved is None:
        return DependencySnapshot(snapshot=current, resolved=satisfied)

    changed = [
        dep for dep in config.dependencies
        if last_resolved.get(dep.key) != current.get(dep.key)
    ]
    if not changed:
        return DependencySnapshot(snapshot=current, resolved=True)

    mode = InvalidationMode.clear
    if any(dep.stale_on_change for dep in changed):
        mode = InvalidationMode.stale

    logger.debug(
        "%s: dependencies %s changed, invalidating (%s)",
        config.name,
        [dep.key for dep in changed],
        mode.value,
    )
    return DependencyInvalidate(snapshot=current, mode=mode)
