"""
Pure transition function for the raw record.

No I/O, no clock. Every command carries the timestamps it needs, and the
input record is never mutated.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from resource_cache.config import ResourceConfig
from resource_cache.models import (
    Adjust,
    Adjustment,
    Clear,
    Command,
    DependencyInvalidate,
    DependencySnapshot,
    FetchFailed,
    FetchStarted,
    FetchSucceeded,
    InvalidationMode,
    MarkStale,
    RawRecord,
    Replace,
    Transform,
    is_permanent,
)

EMPTY_RECORD = RawRecord()


def initial_record(config: ResourceConfig) -> RawRecord:
    """Empty record, seeded with initial_data when the config has it."""
    if config.has_initial_data:
        return RawRecord(data=config.initial_data, has_data=True)
    return EMPTY_RECORD


def _cleared(record: RawRecord) -> RawRecord:
    # Dependency values describe external state, so they outlive a clear
    return replace(
        EMPTY_RECORD,
        dependency_snapshot=record.dependency_snapshot,
        resolved_snapshot=record.resolved_snapshot,
    )


def _adjusted(data: Any, adjustment: Adjustment) -> Any:
    if isinstance(adjustment, Replace):
        return adjustment.value
    if isinstance(adjustment, Transform):
        return adjustment.func(data)
    raise TypeError(f"Unknown adjustment: {adjustment!r}")


def apply_command(record: RawRecord, command: Command) -> RawRecord:
    """Return the record that results from applying command to record."""
    if isinstance(command, FetchStarted):
        return replace(record, is_loading=True)

    if isinstance(command, FetchSucceeded):
        return replace(
            record,
            data=command.value,
            has_data=True,
            is_loading=False,
            error=None,
            has_error=False,
            error_is_permanent=False,
            last_success_time=command.time,
            is_manually_stale=False,
        )

    if isinstance(command, FetchFailed):
        # Existing data and its success time are kept
        return replace(
            record,
            is_loading=False,
            error=command.error,
            has_error=True,
            error_is_permanent=is_permanent(command.error),
            last_failure_time=command.time,
        )

    if isinstance(command, Clear):
        return _cleared(record)

    if isinstance(command, MarkStale):
        return replace(record, is_manually_stale=True)

    if isinstance(command, Adjust):
        if not record.has_data:
            return record
        return replace(record, data=_adjusted(record.data, command.adjustment))

    if isinstance(command, DependencyInvalidate):
        if command.mode == InvalidationMode.stale:
            # The in-flight fetch and the last error belong to the old values
            base = replace(
                record,
                is_manually_stale=True,
                is_loading=False,
                error=None,
                has_error=False,
                error_is_permanent=False,
            )
        else:
            base = _cleared(record)
        snapshot = dict(command.snapshot)
        return replace(base, dependency_snapshot=snapshot, resolved_snapshot=snapshot)

    if isinstance(command, DependencySnapshot):
        snapshot = dict(command.snapshot)
        if command.resolved:
            return replace(record, dependency_snapshot=snapshot, resolved_snapshot=snapshot)
        return replace(record, dependency_snapshot=snapshot)

    raise TypeError(f"Unknown command: {command!r}")
