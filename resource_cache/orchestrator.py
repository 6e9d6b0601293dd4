"""
Fetch orchestrator: issues fetches when the view asks for one.

Runs the external fetch operation as an asyncio task and routes its outcome
back into the store as a command. At most one current fetch is in flight;
results of fetches superseded by a clear or a dependency invalidation are
discarded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional

from resource_cache.models import FetchFailed, FetchStarted, FetchSucceeded
from resource_cache.store import ResourceStore

logger = logging.getLogger(__name__)


class FetchOrchestrator:
    """
    Policy loop around one ResourceStore.

    - evaluate(): start a fetch if the view is pending and none is in flight.
    - fetch(): manual fetch, ignored while loading.
    - start(): re-evaluate automatically after every state change.
    """

    def __init__(
        self, store: ResourceStore, services: Optional[Mapping[str, Any]] = None
    ) -> None:
        self._store = store
        self._services = dict(services or {})
        self._current: Optional[asyncio.Task] = None
        self._current_epoch: Optional[int] = None
        self._tasks: set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._evaluation_scheduled = False

    @property
    def in_flight(self) -> bool:
        """Whether a fetch for the current epoch is still running."""
        return (
            self._current is not None
            and not self._current.done()
            and self._current_epoch == self._store.epoch
        )

    def start(self) -> None:
        """Subscribe to the store. Must be called from a running event loop."""
        self._loop = asyncio.get_running_loop()
        self._store.subscribe(self._schedule_evaluation)
        self._schedule_evaluation()

    def stop(self) -> None:
        self._store.unsubscribe(self._schedule_evaluation)
        self._loop = None

    def evaluate(self) -> Optional[asyncio.Task]:
        """Start a fetch if one is due. Returns the new task, if any."""
        view = self._store.view()
        if not view.is_pending_for_fetch or self.in_flight:
            return None
        return self._start_fetch(view.dependency_values)

    def fetch(self) -> Optional[asyncio.Task]:
        """Fetch now regardless of freshness. No-op while already loading."""
        if self._store.record.is_loading or self.in_flight:
            logger.debug("%s: already loading, fetch ignored", self._store.config.name)
            return None
        return self._start_fetch(self._store.view().dependency_values)

    async def drain(self) -> None:
        """Wait for every outstanding fetch, superseded ones included."""
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    def _start_fetch(self, dependency_values: dict[str, Any]) -> asyncio.Task:
        name = self._store.config.name
        context = {**self._services, **dependency_values}
        self._store.dispatch(FetchStarted())
        epoch = self._store.epoch

        logger.info("Fetching %s (dependencies: %s)", name, dependency_values)
        task = asyncio.create_task(self._run(context, epoch), name=f"fetch-{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._current = task
        self._current_epoch = epoch
        return task

    async def _run(self, context: dict[str, Any], epoch: int) -> None:
        config = self._store.config
        try:
            value = await config.fetch_operation(context)
        except Exception as exc:
            logger.warning("Fetch failed for %s: %s", config.name, exc)
            outcome = FetchFailed(error=exc, time=self._store.now())
        else:
            logger.info("Fetched %s", config.name)
            outcome = FetchSucceeded(value=value, time=self._store.now())

        if epoch != self._store.epoch:
            logger.info("Discarding superseded fetch result for %s", config.name)
            return
        self._store.dispatch(outcome)

    def _schedule_evaluation(self) -> None:
        if self._loop is None or self._evaluation_scheduled:
            return
        self._evaluation_scheduled = True
        self._loop.call_soon(self._run_scheduled_evaluation)

    def _run_scheduled_evaluation(self) -> None:
        self._evaluation_scheduled = False
        if self._loop is not None:
            self.evaluate()
