"""Domain store: the single authority for persisted entities and UI flags.

Mutations update memory synchronously and then hand a save request to the
:class:`~hardbanlab.services.save_queue.SaveCoordinator`. Free-text chapter
edits are debounced; everything else saves immediately.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from ..errors import UnknownEntityKindError
from ..events import (
    EntityMutated,
    EventBus,
    LoadingChanged,
    OnboardingChanged,
    StoreInitialized,
    ViewChanged,
)
from ..services.save_queue import SaveCoordinator, SaveQueueConfig
from .models import (
    LOADING_KEYS,
    Book,
    BookStatus,
    Collaborator,
    IdAllocator,
    Release,
    ReleaseStatus,
    Snapshot,
    Task,
    ToastSeverity,
    View,
    coerce_fields,
)
from .onboarding import TOUR_STEPS, OnboardingState
from .toasts import DEFAULT_TOAST_TTL_SECONDS, Toast, ToastQueue

if TYPE_CHECKING:  # pragma: no cover
    from ..services.persistence import PersistenceGateway

LOGGER = logging.getLogger(__name__)

LOAD_FAILED_MESSAGE = "Could not load data from the server. Please ensure the backend is running."
SAVE_FAILED_MESSAGE = "Could not save your changes. They will be retried with the next save."
TOUR_DONE_MESSAGE = "You're all set! Feel free to explore."

ENTITY_KINDS: tuple[str, ...] = ("release", "book", "music_task", "publishing_task")
_ENTITY_TYPES: dict[str, type] = {
    "release": Release,
    "book": Book,
    "music_task": Task,
    "publishing_task": Task,
}
OPERATIONS: tuple[str, ...] = ("add", "update", "toggle")


class DomainStore:
    """Process-wide application state.

    Collections are only changed through :meth:`mutate` and the typed
    command methods built on it. Each mutation is an independent
    read-modify-write by identity; there is no optimistic-concurrency token.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        event_bus: EventBus,
        *,
        save_config: SaveQueueConfig | None = None,
        toast_ttl: float = DEFAULT_TOAST_TTL_SECONDS,
        ids: IdAllocator | None = None,
    ) -> None:
        self._gateway = gateway
        self._bus = event_bus
        self._ids = ids or IdAllocator()
        self._toasts = ToastQueue(event_bus, ttl=toast_ttl, ids=IdAllocator())
        self._saver = SaveCoordinator(
            gateway,
            self.snapshot,
            event_bus,
            config=save_config,
            on_failure=self._handle_save_failure,
        )
        self._initialized = False
        self._view = View.DASHBOARD
        self._loading: dict[str, bool] = {key: False for key in LOADING_KEYS}
        self._onboarding = OnboardingState()
        self._releases: list[Release] = []
        self._music_tasks: list[Task] = []
        self._books: list[Book] = []
        self._publishing_tasks: list[Task] = []

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def saver(self) -> SaveCoordinator:
        return self._saver

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def view(self) -> View:
        return self._view

    @property
    def loading(self) -> dict[str, bool]:
        return dict(self._loading)

    @property
    def toasts(self) -> tuple[Toast, ...]:
        return self._toasts.toasts

    @property
    def onboarding(self) -> OnboardingState:
        return self._onboarding

    @property
    def releases(self) -> tuple[Release, ...]:
        return tuple(self._releases)

    @property
    def books(self) -> tuple[Book, ...]:
        return tuple(self._books)

    @property
    def music_tasks(self) -> tuple[Task, ...]:
        return tuple(self._music_tasks)

    @property
    def publishing_tasks(self) -> tuple[Task, ...]:
        return tuple(self._publishing_tasks)

    def get_release(self, release_id: int) -> Release | None:
        return _find(self._releases, release_id)

    def get_book(self, book_id: int) -> Book | None:
        return _find(self._books, book_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def initialize(self) -> bool:
        """Load the snapshot from the gateway.

        Returns:
            True when the snapshot loaded. On failure an error toast is
            posted, collections stay empty and the store is still marked
            ready.
        """
        self._initialized = False
        loaded = False
        try:
            snapshot = await self._gateway.fetch_snapshot()
        except Exception as exc:
            LOGGER.error("Failed to initialize store from persistence gateway: %s", exc)
            self.add_toast(LOAD_FAILED_MESSAGE, ToastSeverity.ERROR)
        else:
            self._apply_snapshot(snapshot)
            loaded = True
            LOGGER.info(
                "Store initialized: %d release(s), %d book(s), %d music task(s), %d publishing task(s)",
                len(self._releases),
                len(self._books),
                len(self._music_tasks),
                len(self._publishing_tasks),
            )
        self._initialized = True
        self._bus.publish(StoreInitialized(loaded=loaded))
        return loaded

    def snapshot(self) -> Snapshot:
        """Return a detached copy of the persisted subset of the state."""

        return Snapshot(
            releases=copy.deepcopy(self._releases),
            music_tasks=copy.deepcopy(self._music_tasks),
            books=copy.deepcopy(self._books),
            publishing_tasks=copy.deepcopy(self._publishing_tasks),
            onboarding_complete=self._onboarding.complete,
        )

    async def force_save(self) -> None:
        """Save now, including any debounced edits, and wait for completion."""

        self._saver.request_save()
        await self._saver.flush()

    async def aclose(self) -> None:
        await self._saver.aclose()
        self._toasts.clear()

    # ------------------------------------------------------------------
    # Generic mutation entry point
    # ------------------------------------------------------------------
    def mutate(self, entity_kind: str, operation: str, payload: Mapping[str, Any]) -> Any:
        """Apply ``operation`` to a collection and request an immediate save.

        Args:
            entity_kind: ``release``, ``book``, ``music_task`` or ``publishing_task``.
            operation: ``add`` (payload holds the new entity's fields),
                ``update`` (payload holds ``id`` plus changed fields) or
                ``toggle`` (tasks only; payload holds ``id``).
            payload: Operation arguments.

        Returns:
            The added or updated entity, or None when ``id`` matched nothing.

        Raises:
            UnknownEntityKindError: For an unknown kind or operation.
        """
        if entity_kind not in ENTITY_KINDS:
            raise UnknownEntityKindError(f"Unknown entity kind '{entity_kind}'")
        if operation not in OPERATIONS:
            raise UnknownEntityKindError(f"Unknown operation '{operation}'")

        if operation == "add":
            entity = self._add(entity_kind, payload)
        elif operation == "update":
            entity = self._update(entity_kind, payload)
        else:
            if not entity_kind.endswith("_task"):
                raise UnknownEntityKindError(f"Cannot toggle a {entity_kind}")
            entity = self._toggle(entity_kind, payload)

        if entity is None:
            return None
        self._bus.publish(EntityMutated(entity_kind=entity_kind, operation=operation, entity_id=entity.id))
        self._saver.request_save()
        return entity

    # ------------------------------------------------------------------
    # Typed commands: music
    # ------------------------------------------------------------------
    def add_release(
        self,
        title: str,
        artist: str,
        *,
        genre: str | None = None,
        release_date: str | None = None,
        splits: Iterable[Collaborator] | None = None,
    ) -> Release:
        return self.mutate(
            "release",
            "add",
            {
                "title": title,
                "artist": artist,
                "genre": genre,
                "release_date": release_date,
                "splits": list(splits or []),
            },
        )

    def update_music_splits(self, release_id: int, splits: Iterable[Collaborator]) -> Release | None:
        return self.mutate("release", "update", {"id": release_id, "splits": list(splits)})

    def add_music_task(self, text: str, due_date: str = "") -> Task:
        return self.mutate("music_task", "add", {"text": text, "due_date": due_date})

    def toggle_music_task(self, task_id: int) -> Task | None:
        return self.mutate("music_task", "toggle", {"id": task_id})

    # ------------------------------------------------------------------
    # Typed commands: publishing
    # ------------------------------------------------------------------
    def add_book(self, title: str, author: str, **fields: Any) -> Book:
        return self.mutate("book", "add", {"title": title, "author": author, **fields})

    def update_book(self, book_id: int, **changes: Any) -> Book | None:
        return self.mutate("book", "update", {"id": book_id, **changes})

    def update_chapter_content(self, book_id: int, chapter_index: int, content: str) -> Book | None:
        """Replace one chapter's text and schedule a debounced save."""

        book = _find(self._books, book_id)
        if book is None:
            LOGGER.debug("update_chapter_content: unknown book %s", book_id)
            return None
        if not 0 <= chapter_index < len(book.chapters):
            LOGGER.warning(
                "update_chapter_content: book %s has no chapter %d", book_id, chapter_index
            )
            return None
        chapters = list(book.chapters)
        chapters[chapter_index] = dataclasses.replace(chapters[chapter_index], content=content)
        updated = dataclasses.replace(book, chapters=chapters)
        _replace(self._books, updated)
        self._bus.publish(EntityMutated(entity_kind="book", operation="update", entity_id=book_id))
        self._saver.request_debounced_save()
        return updated

    def add_publishing_task(self, text: str, due_date: str = "") -> Task:
        return self.mutate("publishing_task", "add", {"text": text, "due_date": due_date})

    def toggle_publishing_task(self, task_id: int) -> Task | None:
        return self.mutate("publishing_task", "toggle", {"id": task_id})

    # ------------------------------------------------------------------
    # UI flags
    # ------------------------------------------------------------------
    def set_view(self, view: View | str) -> None:
        target = View(view)
        if target is self._view:
            return
        self._view = target
        LOGGER.debug("View changed to %s", target.value)
        self._bus.publish(ViewChanged(view=target.value))

    def set_loading(self, key: str, value: bool) -> None:
        if key not in self._loading:
            raise KeyError(f"Unknown loading flag '{key}'")
        if self._loading[key] == value:
            return
        self._loading[key] = value
        self._bus.publish(LoadingChanged(key=key, value=value))

    def add_toast(self, message: str, severity: ToastSeverity | str = ToastSeverity.SUCCESS) -> Toast:
        return self._toasts.add(message, severity)

    def dismiss_toast(self, toast_id: int) -> bool:
        return self._toasts.dismiss(toast_id)

    # ------------------------------------------------------------------
    # Onboarding
    # ------------------------------------------------------------------
    def start_tour(self) -> None:
        if self._onboarding.complete:
            return
        self._go_to_step(0)

    def next_tour_step(self) -> None:
        index = self._onboarding.step_index
        if index < len(TOUR_STEPS) - 1:
            self._go_to_step(index + 1)
        else:
            self.skip_tour()

    def skip_tour(self) -> None:
        self._onboarding = OnboardingState(step_index=-1, complete=True, active_tab_override=None)
        self.set_view(View.DASHBOARD)
        self._bus.publish(OnboardingChanged(step_index=-1, complete=True))
        self._saver.request_save()
        self.add_toast(TOUR_DONE_MESSAGE, ToastSeverity.SUCCESS)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _go_to_step(self, index: int) -> None:
        step = TOUR_STEPS[index]
        self._onboarding.step_index = index
        self._onboarding.active_tab_override = step.target_tab
        self.set_view(step.view)
        self._bus.publish(
            OnboardingChanged(step_index=index, complete=self._onboarding.complete, target_tab=step.target_tab)
        )

    def _apply_snapshot(self, snapshot: Snapshot) -> None:
        self._releases = list(snapshot.releases)
        self._music_tasks = list(snapshot.music_tasks)
        self._books = list(snapshot.books)
        self._publishing_tasks = list(snapshot.publishing_tasks)
        self._onboarding.complete = snapshot.onboarding_complete
        self._ids.observe(
            [item.id for item in (*self._releases, *self._music_tasks, *self._books, *self._publishing_tasks)]
        )

    def _collection(self, entity_kind: str) -> list[Any]:
        return {
            "release": self._releases,
            "book": self._books,
            "music_task": self._music_tasks,
            "publishing_task": self._publishing_tasks,
        }[entity_kind]

    def _add(self, entity_kind: str, payload: Mapping[str, Any]) -> Any:
        values = dict(payload)
        values.pop("id", None)
        entity_type = _ENTITY_TYPES[entity_kind]
        fields = coerce_fields(entity_type, values)
        new_id = self._ids.next_id()
        if entity_kind == "release":
            fields["status"] = ReleaseStatus.SUBMITTED
        elif entity_kind == "book":
            fields.setdefault("status", BookStatus.DRAFT)
        else:
            fields.setdefault("text", "")
        try:
            entity = entity_type(id=new_id, **fields)
        except TypeError as exc:
            raise ValueError(f"Incomplete {entity_kind} payload: {exc}") from exc
        self._collection(entity_kind).append(entity)
        LOGGER.debug("Added %s %s", entity_kind, new_id)
        return entity

    def _update(self, entity_kind: str, payload: Mapping[str, Any]) -> Any:
        changes = dict(payload)
        entity_id = changes.pop("id", None)
        collection = self._collection(entity_kind)
        current = _find(collection, entity_id)
        if current is None:
            LOGGER.debug("Update of unknown %s %s ignored", entity_kind, entity_id)
            return None
        updated = dataclasses.replace(current, **coerce_fields(type(current), changes))
        _replace(collection, updated)
        return updated

    def _toggle(self, entity_kind: str, payload: Mapping[str, Any]) -> Task | None:
        collection = self._collection(entity_kind)
        current = _find(collection, payload.get("id"))
        if current is None:
            LOGGER.debug("Toggle of unknown %s %s ignored", entity_kind, payload.get("id"))
            return None
        updated = dataclasses.replace(current, completed=not current.completed)
        _replace(collection, updated)
        return updated

    def _handle_save_failure(self, error: str) -> None:
        del error  # already logged by the coordinator
        self.add_toast(SAVE_FAILED_MESSAGE, ToastSeverity.ERROR)


def _find(collection: list[Any], entity_id: Any) -> Any:
    for entity in collection:
        if entity.id == entity_id:
            return entity
    return None


def _replace(collection: list[Any], updated: Any) -> None:
    for index, entity in enumerate(collection):
        if entity.id == updated.id:
            collection[index] = updated
            return


__all__ = [
    "DomainStore",
    "ENTITY_KINDS",
    "OPERATIONS",
    "LOAD_FAILED_MESSAGE",
    "SAVE_FAILED_MESSAGE",
    "TOUR_DONE_MESSAGE",
]
