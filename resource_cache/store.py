"""
Single-writer store for one resource.

Holds the raw record, the external state the dependencies read from, and
the clock. Commands are applied one at a time through apply_command();
listeners run after every change.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping, Optional

from resource_cache.config import ResourceConfig
from resource_cache.dependencies import evaluate_dependencies, resolve_dependencies
from resource_cache.models import (
    Adjust,
    Adjustment,
    Clear,
    Command,
    DependencyInvalidate,
    MarkStale,
    RawRecord,
    ResourceView,
)
from resource_cache.transition import apply_command, initial_record
from resource_cache.view import compute_view

logger = logging.getLogger(__name__)

# Commands after which an in-flight fetch no longer describes the record
SUPERSEDING_COMMANDS = (Clear, DependencyInvalidate)


class ResourceStore:
    """
    Owner of one resource's record.

    - dispatch(): applies a command and notifies listeners.
    - view(): derives the current ResourceView.
    - update_state(): feeds external state to the dependency evaluator.

    epoch increases whenever a command supersedes in-flight fetches, so the
    orchestrator can tell current responses from stale ones.
    """

    def __init__(
        self,
        config: ResourceConfig,
        clock: Callable[[], float] = time.monotonic,
        state: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._record = initial_record(config)
        self._state: dict[str, Any] = {}
        self._epoch = 0
        self._listeners: list[Callable[[], None]] = []
        self.update_state(state or {})

    @property
    def config(self) -> ResourceConfig:
        return self._config

    @property
    def record(self) -> RawRecord:
        return self._record

    @property
    def epoch(self) -> int:
        return self._epoch

    def now(self) -> float:
        return self._clock()

    def view(self, now: Optional[float] = None) -> ResourceView:
        """Compute the view at now (default: the store clock)."""
        if now is None:
            now = self._clock()
        return compute_view(self._record, self._config, now)

    def dispatch(self, command: Command) -> RawRecord:
        """Apply one command and notify listeners. Returns the new record."""
        logger.debug("%s: %s", self._config.name, type(command).__name__)
        self._record = apply_command(self._record, command)
        if isinstance(command, SUPERSEDING_COMMANDS):
            self._epoch += 1
        for listener in list(self._listeners):
            listener()
        return self._record

    def update_state(self, values: Mapping[str, Any]) -> None:
        """Merge values into external state and re-evaluate dependencies."""
        self._state.update(values)
        snapshot = resolve_dependencies(self._config, self._state)
        command = evaluate_dependencies(
            self._config,
            self._record.dependency_snapshot,
            snapshot,
            last_resolved=self._record.resolved_snapshot,
        )
        if command is not None:
            self.dispatch(command)

    def clear(self) -> None:
        self.dispatch(Clear())

    def mark_stale(self) -> None:
        self.dispatch(MarkStale())

    def adjust(self, adjustment: Adjustment) -> None:
        """Replace or transform the data. Ignored when no data is present."""
        self.dispatch(Adjust(adjustment))

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
