"""Serialized, coalescing snapshot saves with debounce and retry."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import PersistenceError
from ..events import EventBus, SaveCompleted, SaveFailed, SaveRequested

if TYPE_CHECKING:  # pragma: no cover
    from ..domain.models import Snapshot
    from .persistence import PersistenceGateway

__all__ = ["SaveQueueConfig", "SaveCoordinator"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SaveQueueConfig:
    """Tunable parameters for the save coordinator."""

    debounce_seconds: float = 0.5
    max_attempts: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 8.0


class SaveCoordinator:
    """Pushes full-state snapshots to a persistence gateway.

    At most one save is in flight. Requests that arrive while a save runs
    collapse into a single follow-up save, and the snapshot is taken when
    that save starts, so the gateway always receives states in order and
    the last one it receives is the latest.

    Debounced requests (free-text edits) restart a quiet-period timer and
    only turn into a save once the timer fires.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        snapshot_provider: Callable[[], Snapshot],
        event_bus: EventBus,
        *,
        config: SaveQueueConfig | None = None,
        on_failure: Callable[[str], None] | None = None,
    ) -> None:
        self._gateway = gateway
        self._snapshot_provider = snapshot_provider
        self._bus = event_bus
        self._config = config or SaveQueueConfig()
        self._on_failure = on_failure
        self._wanted = False
        self._worker: asyncio.Task[None] | None = None
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._sequence = 0
        self._completed = 0
        self._failed = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def config(self) -> SaveQueueConfig:
        return self._config

    @property
    def in_flight(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def debounce_pending(self) -> bool:
        return self._debounce_handle is not None

    @property
    def has_pending_work(self) -> bool:
        return self._wanted or self.in_flight or self.debounce_pending

    @property
    def completed_count(self) -> int:
        return self._completed

    @property
    def failed_count(self) -> int:
        return self._failed

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def request_save(self) -> None:
        """Ask for a save as soon as the current one (if any) finishes."""

        if self._closed:
            LOGGER.debug("SaveCoordinator.request_save: closed, ignoring")
            return
        self._cancel_debounce()
        self._wanted = True
        self._bus.publish(SaveRequested(debounced=False))
        self._ensure_worker()

    def request_debounced_save(self) -> None:
        """Ask for a save once no further request arrives for the quiet period."""

        if self._closed:
            return
        self._bus.publish(SaveRequested(debounced=True))
        loop = _running_loop()
        if loop is None:
            # Nothing can fire later; remember the request for the next flush
            self._wanted = True
            return
        self._cancel_debounce()
        self._debounce_handle = loop.call_later(
            max(0.0, self._config.debounce_seconds), self._debounce_fired
        )

    async def flush(self) -> None:
        """Run any pending or debounced save now and wait until all are done."""

        if self._debounce_handle is not None:
            self._cancel_debounce()
            self._wanted = True
        if self._wanted and not self._closed:
            self._ensure_worker()
        while self._worker is not None:
            worker = self._worker
            await asyncio.shield(worker)
            if self._worker is worker:
                break

    async def aclose(self) -> None:
        """Flush outstanding work and refuse further requests."""

        if self._closed:
            return
        await self.flush()
        self._closed = True
        self._cancel_debounce()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _debounce_fired(self) -> None:
        self._debounce_handle = None
        self._wanted = True
        self._ensure_worker()

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    def _ensure_worker(self) -> None:
        if self.in_flight:
            return
        loop = _running_loop()
        if loop is None:
            LOGGER.warning("No running event loop; save deferred until the next flush")
            return
        self._worker = loop.create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._wanted and not self._closed:
                self._wanted = False
                self._sequence += 1
                sequence = self._sequence
                try:
                    snapshot = self._snapshot_provider()
                    attempts = await self._save_with_retry(snapshot)
                except Exception as exc:
                    self._failed += 1
                    error = str(exc) or type(exc).__name__
                    LOGGER.warning("Save #%d failed: %s", sequence, error)
                    self._bus.publish(SaveFailed(sequence=sequence, error=error))
                    if self._on_failure is not None:
                        self._on_failure(error)
                    continue
                self._completed += 1
                LOGGER.debug("Save #%d completed after %d attempt(s)", sequence, attempts)
                self._bus.publish(SaveCompleted(sequence=sequence, attempts=attempts))
        finally:
            if self._worker is asyncio.current_task():
                self._worker = None

    async def _save_with_retry(self, snapshot: Any) -> int:
        attempts = 0
        async for attempt in self._retrying():
            with attempt:
                attempts = attempt.retry_state.attempt_number
                if attempts > 1:
                    LOGGER.info("Retrying save (attempt %d)", attempts)
                await self._gateway.save_snapshot(snapshot)
        return attempts

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._config.max_attempts)),
            wait=wait_exponential(
                multiplier=self._config.retry_min_seconds,
                max=self._config.retry_max_seconds,
            ),
            retry=retry_if_exception_type((PersistenceError, OSError)),
        )


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
