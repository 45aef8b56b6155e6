"""Navigation guard: holds a navigation back while the active surface is dirty."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from ..errors import NavigationPendingError, NavigationStateError
from ..events import EventBus, NavigationConfirmationRequested, NavigationResolved
from .dirty import DirtyStateTracker

LOGGER = logging.getLogger(__name__)

NavigationAction = Callable[[], Any]
SurfaceHook = Callable[[str], "Awaitable[None] | None"]


class GuardState(str, Enum):
    IDLE = "Idle"
    PENDING_CONFIRMATION = "PendingConfirmation"


@dataclass(slots=True)
class PendingNavigation:
    """A navigation captured while the surface was dirty."""

    action: NavigationAction
    surface: str
    description: str = ""


class NavigationGuard:
    """Idle / PendingConfirmation state machine.

    ``commit`` and ``discard`` are called with the name of the surface that
    was dirty when the navigation was captured. ``commit`` may be a
    coroutine function; it runs before the captured action.
    """

    def __init__(
        self,
        tracker: DirtyStateTracker,
        event_bus: EventBus,
        *,
        commit: SurfaceHook,
        discard: Callable[[str], None],
    ) -> None:
        self._tracker = tracker
        self._bus = event_bus
        self._commit = commit
        self._discard = discard
        self._pending: PendingNavigation | None = None
        self._resolving = False

    @property
    def state(self) -> GuardState:
        return GuardState.IDLE if self._pending is None else GuardState.PENDING_CONFIRMATION

    @property
    def pending(self) -> PendingNavigation | None:
        return self._pending

    @property
    def is_pending(self) -> bool:
        return self._pending is not None

    def request(self, action: NavigationAction, description: str = "") -> bool:
        """Run ``action`` now if the surface is clean, otherwise capture it.

        Returns:
            True when the action ran immediately.

        Raises:
            NavigationPendingError: A navigation is already awaiting confirmation.
        """
        if self._pending is not None:
            raise NavigationPendingError(
                f"Navigation '{self._pending.description}' is still awaiting confirmation"
            )
        if not self._tracker.is_dirty:
            action()
            return True

        surface = self._tracker.active_surface or ""
        self._pending = PendingNavigation(action=action, surface=surface, description=description)
        LOGGER.info("Navigation '%s' held: %s has unsaved changes", description, surface)
        self._bus.publish(NavigationConfirmationRequested(surface=surface, description=description))
        return False

    @property
    def is_resolving(self) -> bool:
        """True while a save-and-continue commit is in flight."""

        return self._resolving

    async def save_and_continue(self) -> None:
        """Commit the dirty surface, then run the captured action.

        Other resolutions raise :class:`NavigationStateError` until the commit
        finishes. A failed commit leaves the navigation pending.
        """
        pending = self._require_pending()
        self._resolving = True
        try:
            result = self._commit(pending.surface)
            if inspect.isawaitable(result):
                await result
        finally:
            self._resolving = False
        if self._pending is not pending:
            LOGGER.warning("Navigation '%s' was resolved during its commit", pending.description)
            return
        self._finish(pending, "save")
        pending.action()

    def discard_and_continue(self) -> None:
        pending = self._require_pending()
        self._discard(pending.surface)
        self._finish(pending, "discard")
        pending.action()

    def cancel(self) -> None:
        pending = self._require_pending()
        self._finish(pending, "cancel")

    def _require_pending(self) -> PendingNavigation:
        if self._pending is None:
            raise NavigationStateError("No navigation is awaiting confirmation")
        if self._resolving:
            raise NavigationStateError(
                f"Navigation '{self._pending.description}' is already being saved"
            )
        return self._pending

    def _finish(self, pending: PendingNavigation, resolution: str) -> None:
        self._pending = None
        LOGGER.debug("Navigation '%s' resolved with %s", pending.description, resolution)
        self._bus.publish(NavigationResolved(resolution=resolution, description=pending.description))


__all__ = ["GuardState", "PendingNavigation", "NavigationGuard"]
