"""Event bus infrastructure for decoupled communication between layers.

The domain store, save coordinator and editing sessions publish events here
so a presentation layer (or a test) can observe state changes without the
core holding references to it.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    TypeVar,
    TYPE_CHECKING,
)
from weakref import WeakMethod, ref

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

# Type variable for event types
E = TypeVar("E", bound="Event")

# Handler type: a callable that takes an event and returns None
Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events in the system.

    Subclasses use ``@dataclass(slots=True)`` like this one.

    Example::

        @dataclass(slots=True)
        class ToastAdded(Event):
            toast_id: int
            message: str
            severity: str
    """

    pass


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Store Events
# =============================================================================


@dataclass(slots=True)
class StoreInitialized(Event):
    """Emitted once the store finished its startup load.

    Attributes:
        loaded: False when the snapshot fetch failed and the store started
            with empty collections.
    """

    loaded: bool


@dataclass(slots=True)
class EntityMutated(Event):
    """Emitted after an in-memory mutation was applied.

    Attributes:
        entity_kind: ``release``, ``book``, ``music_task`` or ``publishing_task``.
        operation: ``add``, ``update`` or ``toggle``.
        entity_id: Identity of the affected entity.
    """

    entity_kind: str
    operation: str
    entity_id: int


_QUIET_EVENT_TYPES.add(EntityMutated)


@dataclass(slots=True)
class ViewChanged(Event):
    """Emitted when the top-level view switches."""

    view: str


@dataclass(slots=True)
class LoadingChanged(Event):
    """Emitted when a per-action loading flag flips.

    Attributes:
        key: The loading flag name (e.g. ``"proofread"``).
        value: The new flag value.
    """

    key: str
    value: bool


@dataclass(slots=True)
class OnboardingChanged(Event):
    """Emitted when the tour pointer moves or the tour completes.

    Attributes:
        step_index: Current tour step, ``-1`` when the tour is not showing.
        complete: Whether onboarding has been completed or skipped.
        target_tab: Tab the active step wants the module to show, if any.
    """

    step_index: int
    complete: bool
    target_tab: str | None = None


# =============================================================================
# Notification Events
# =============================================================================


@dataclass(slots=True)
class ToastAdded(Event):
    """Emitted when a toast is appended to the queue."""

    toast_id: int
    message: str
    severity: str


@dataclass(slots=True)
class ToastDismissed(Event):
    """Emitted when a toast leaves the queue.

    Attributes:
        toast_id: Identity of the removed toast.
        expired: True when the toast timed out rather than being dismissed.
    """

    toast_id: int
    expired: bool = False


# =============================================================================
# Persistence Events
# =============================================================================


@dataclass(slots=True)
class SaveRequested(Event):
    """Emitted whenever a full-state save is requested.

    Attributes:
        debounced: True for coalesced free-text edits.
    """

    debounced: bool


_QUIET_EVENT_TYPES.add(SaveRequested)


@dataclass(slots=True)
class SaveCompleted(Event):
    """Emitted after the persistence gateway accepted a snapshot.

    Attributes:
        sequence: Monotonic save number, in completion order.
        attempts: Number of attempts the save took.
    """

    sequence: int
    attempts: int


@dataclass(slots=True)
class SaveFailed(Event):
    """Emitted after a save exhausted its retries.

    Attributes:
        sequence: Monotonic save number.
        error: Description of the final failure.
    """

    sequence: int
    error: str


# =============================================================================
# Navigation Events
# =============================================================================


@dataclass(slots=True)
class NavigationConfirmationRequested(Event):
    """Emitted when a navigation was captured because the surface is dirty.

    Attributes:
        surface: Name of the dirty editing surface.
        description: Human-readable label for the captured navigation.
    """

    surface: str
    description: str


@dataclass(slots=True)
class NavigationResolved(Event):
    """Emitted when a pending navigation is resolved.

    Attributes:
        resolution: ``save``, ``discard`` or ``cancel``.
        description: Label of the navigation that was captured.
    """

    resolution: str
    description: str


class EventBus(Generic[E]):
    """A typed publish-subscribe event bus for decoupled communication.

    Handlers are stored as weak references where possible to prevent
    memory leaks.

    Example::

        bus = EventBus()

        def on_toast(event: ToastAdded) -> None:
            print(event.message)

        bus.subscribe(ToastAdded, on_toast)
        bus.publish(ToastAdded(toast_id=1, message="Saved", severity="success"))
        bus.unsubscribe(ToastAdded, on_toast)

    Thread Safety:
        This implementation is NOT thread-safe. All operations should be
        performed from the event loop thread.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        """Initialize an empty event bus."""
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register a handler to receive events of the specified type.

        Args:
            event_type: The class of events to subscribe to.
            handler: A callable that will be invoked with the event.

        Note:
            Subscribing the same handler multiple times will result in
            multiple invocations when an event is published.
        """
        handler_ref = _HandlerRef.create(handler)
        self._handlers[event_type].append(handler_ref)
        logger.debug(
            "Subscribed handler %s to event type %s",
            _handler_name(handler),
            event_type.__name__,
        )

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove a previously registered handler.

        If the handler was registered multiple times, only the first
        occurrence is removed. Unknown handlers are ignored.
        """
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return

        for i, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(i)
                logger.debug(
                    "Unsubscribed handler %s from event type %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
                return

    def publish(self, event: E) -> None:
        """Broadcast an event to all registered handlers.

        Handlers are invoked synchronously in registration order. A handler
        that raises is logged and the remaining handlers still run.
        """
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        is_quiet = event_type in _QUIET_EVENT_TYPES

        if handlers is None:
            if not is_quiet:
                logger.debug("No handlers for event type %s", event_type.__name__)
            return

        if not is_quiet:
            logger.debug(
                "Publishing %s to %d handler(s)",
                event_type.__name__,
                len(handlers),
            )

        dead_refs: list[_HandlerRef] = []

        # Iterate over a copy so handlers may subscribe/unsubscribe re-entrantly
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                dead_refs.append(handler_ref)
                continue

            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )

        for handler_ref in dead_refs:
            if handler_ref in handlers:
                handlers.remove(handler_ref)

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()
        logger.debug("Cleared all event handlers")

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Return the number of registered handlers.

        Args:
            event_type: If provided, return count for that event type only.
        """
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Wrapper for handler references supporting both weak and strong refs.

    Bound methods are held through ``WeakMethod`` so subscribers can be
    garbage collected; plain functions and lambdas are held strongly.
    """

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | ref | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        if resolved is None:
            return False
        return resolved == handler


def _handler_name(handler: Handler) -> str:
    """Get a human-readable name for a handler for logging purposes."""
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        cls_name = type(handler.__self__).__name__
        return f"{cls_name}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


__all__ = [
    # Core infrastructure
    "Event",
    "EventBus",
    "Handler",
    # Store events
    "StoreInitialized",
    "EntityMutated",
    "ViewChanged",
    "LoadingChanged",
    "OnboardingChanged",
    # Notification events
    "ToastAdded",
    "ToastDismissed",
    # Persistence events
    "SaveRequested",
    "SaveCompleted",
    "SaveFailed",
    # Navigation events
    "NavigationConfirmationRequested",
    "NavigationResolved",
]
