"""Ordered toast queue with timed self-expiry."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from ..events import EventBus, ToastAdded, ToastDismissed
from .models import IdAllocator, ToastSeverity

LOGGER = logging.getLogger(__name__)
DEFAULT_TOAST_TTL_SECONDS = 5.0


@dataclass(slots=True)
class Toast:
    """A user-facing notification.

    Attributes:
        id: Timestamp-derived identity, unique within the queue.
        message: Text shown to the user.
        severity: ``success`` or ``error``.
        created_at: Monotonic time the toast was added.
        expires_at: Monotonic time after which the toast is gone.
    """

    id: int
    message: str
    severity: ToastSeverity
    created_at: float
    expires_at: float


class ToastQueue:
    """Keeps toasts in insertion order and removes each after ``ttl`` seconds.

    Expiry is driven by ``loop.call_later`` when an event loop is running.
    Toasts added outside a loop are still removed by :meth:`expire_due`,
    which :attr:`toasts` calls on every read.
    """

    def __init__(
        self,
        event_bus: EventBus,
        *,
        ttl: float = DEFAULT_TOAST_TTL_SECONDS,
        ids: IdAllocator | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._bus = event_bus
        self._ttl = max(0.0, float(ttl))
        self._ids = ids or IdAllocator()
        self._clock = clock
        self._toasts: list[Toast] = []
        self._timers: dict[int, asyncio.TimerHandle] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def toasts(self) -> tuple[Toast, ...]:
        self.expire_due()
        return tuple(self._toasts)

    def add(self, message: str, severity: ToastSeverity | str = ToastSeverity.SUCCESS) -> Toast:
        level = ToastSeverity(severity)
        now = self._clock()
        toast = Toast(
            id=self._ids.next_id(),
            message=message,
            severity=level,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._toasts.append(toast)
        self._schedule_expiry(toast)
        log = LOGGER.warning if level is ToastSeverity.ERROR else LOGGER.info
        log("Toast %s: %s", level.value, message)
        self._bus.publish(ToastAdded(toast_id=toast.id, message=message, severity=level.value))
        return toast

    def dismiss(self, toast_id: int) -> bool:
        """Remove a toast before it expires. Returns False for unknown ids."""

        return self._remove(toast_id, expired=False)

    def expire_due(self) -> list[int]:
        """Drop every toast whose deadline has passed and return their ids."""

        now = self._clock()
        due = [toast.id for toast in self._toasts if toast.expires_at <= now]
        for toast_id in due:
            self._remove(toast_id, expired=True)
        return due

    def clear(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._toasts.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _schedule_expiry(self, toast: Toast) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.debug("No running loop; toast %s expires lazily", toast.id)
            return
        self._timers[toast.id] = loop.call_later(self._ttl, self._remove, toast.id, True)

    def _remove(self, toast_id: int, expired: bool) -> bool:
        handle = self._timers.pop(toast_id, None)
        if handle is not None:
            handle.cancel()
        for index, toast in enumerate(self._toasts):
            if toast.id == toast_id:
                del self._toasts[index]
                self._bus.publish(ToastDismissed(toast_id=toast_id, expired=expired))
                return True
        return False


__all__ = ["Toast", "ToastQueue", "DEFAULT_TOAST_TTL_SECONDS"]
