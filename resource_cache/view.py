"""
Pure view computation.

Combines the raw record, static configuration and the current time into a
ResourceView. Nothing here is stored: staleness, expiry and retry readiness
are all derived from timestamps on every read, so no timers are needed.
"""

from __future__ import annotations

from typing import Optional

from resource_cache.config import ResourceConfig
from resource_cache.dependencies import dependencies_satisfied
from resource_cache.models import RawRecord, ResourceView


def _elapsed(now: float, since: Optional[float], duration: Optional[float]) -> bool:
    """True when duration is configured and has passed since the timestamp."""
    if duration is None or since is None:
        return False
    return now - since >= duration


def is_expired(record: RawRecord, config: ResourceConfig, now: float) -> bool:
    """Whether the data is old enough to be discarded rather than shown stale."""
    return record.has_data and _elapsed(now, record.last_success_time, config.expire_after)


def compute_view(record: RawRecord, config: ResourceConfig, now: float) -> ResourceView:
    """
    Derive the view of a record at time now.

    Expiry masks everything: an expired record reads as if it had been
    cleared, including any error from a refetch layered on top of the old
    success.
    """
    satisfied = dependencies_satisfied(config, record.dependency_snapshot)
    dependency_values = dict(record.dependency_snapshot or {})

    if is_expired(record, config, now):
        return ResourceView(
            is_loading=record.is_loading,
            is_pending_for_fetch=satisfied and not record.is_loading,
            dependency_values=dependency_values,
            dependencies_satisfied=satisfied,
        )

    has_error = record.has_error
    is_stale = record.has_data and (
        record.is_manually_stale
        or _elapsed(now, record.last_success_time, config.stale_after)
    )
    is_ready_for_retry = (
        has_error
        and not record.error_is_permanent
        and _elapsed(now, record.last_failure_time, config.retry_after)
    )

    retry_at = None
    if has_error and config.retry_after is not None and record.last_failure_time is not None:
        retry_at = record.last_failure_time + config.retry_after

    if not satisfied or record.is_loading:
        is_pending = False
    elif has_error:
        # Covers permanent errors too: they are never ready for retry, so
        # stale data under a permanent error waits for a clear, a dependency
        # change, expiry or a manual fetch
        is_pending = is_ready_for_retry
    else:
        is_pending = not record.has_data or is_stale

    return ResourceView(
        data=record.data,
        is_present=record.has_data,
        is_loading=record.is_loading,
        is_pending_for_fetch=is_pending,
        error=record.error,
        has_error=has_error,
        error_is_permanent=has_error and record.error_is_permanent,
        is_stale=is_stale,
        is_ready_for_retry=is_ready_for_retry,
        retry_at=retry_at,
        dependency_values=dependency_values,
        dependencies_satisfied=satisfied,
    )
