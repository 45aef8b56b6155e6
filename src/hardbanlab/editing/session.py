"""Module sessions: the view x tab x editing-surface state of each module.

A session owns the edit buffers of its module, registers them with a
:class:`DirtyStateTracker` and routes every tab switch, entity selection,
chapter switch and module exit through a :class:`NavigationGuard`.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Awaitable

from ..domain.models import (
    Book,
    BookRights,
    Chapter,
    Collaborator,
    Illustration,
    Release,
    ToastSeverity,
    View,
)
from ..domain.store import DomainStore
from ..errors import SplitValidationError
from ..events import EntityMutated, EventBus, OnboardingChanged, StoreInitialized
from .dirty import (
    MANUSCRIPT_SURFACE,
    SPLITS_SURFACE,
    DirtyStateTracker,
    ManuscriptEditBuffer,
    SplitsEditBuffer,
)
from .guard import NavigationGuard

LOGGER = logging.getLogger(__name__)

MUSIC_TABS: tuple[str, ...] = (
    "studio",
    "releases",
    "analytics",
    "splits",
    "sync",
    "career",
    "tasks",
    "help",
)
PUBLISHING_TABS: tuple[str, ...] = (
    "studio",
    "distribution",
    "analytics",
    "rights_splits",
    "marketing",
    "audiobook",
    "world_building",
    "tasks",
    "help",
)
DEFAULT_BOOK_GENRE = "Sci-Fi"


class ModuleSession:
    """Shared tab, guard and split-editor plumbing for both modules.

    Subclasses name the entity whose splits are being edited
    (:meth:`_split_owner`) and how committed rows reach the store
    (:meth:`_store_splits`).
    """

    tabs: tuple[str, ...] = ()
    view: View = View.DASHBOARD
    splits_tab: str = ""

    def __init__(self, store: DomainStore, event_bus: EventBus) -> None:
        self._store = store
        self._bus = event_bus
        self._splits = SplitsEditBuffer()
        self._tracker = DirtyStateTracker()
        self._tracker.register(SPLITS_SURFACE, self._splits_dirty)
        self._guard = NavigationGuard(
            self._tracker,
            event_bus,
            commit=self._commit_surface,
            discard=self._discard_surface,
        )
        self._active_tab = self.tabs[0]
        event_bus.subscribe(OnboardingChanged, self._handle_onboarding)
        event_bus.subscribe(StoreInitialized, self._handle_store_initialized)
        event_bus.subscribe(EntityMutated, self._handle_entity_mutated)

    @property
    def active_tab(self) -> str:
        return self._active_tab

    @property
    def guard(self) -> NavigationGuard:
        return self._guard

    @property
    def tracker(self) -> DirtyStateTracker:
        return self._tracker

    @property
    def is_dirty(self) -> bool:
        return self._tracker.is_dirty

    @property
    def splits(self) -> SplitsEditBuffer:
        return self._splits

    @property
    def splits_total(self) -> float:
        return self._splits.total()

    def enter(self) -> None:
        """Show this module. Entering from the dashboard is never guarded."""

        self._store.set_view(self.view)

    def select_tab(self, tab: str) -> bool:
        if tab not in self.tabs:
            raise ValueError(f"Unknown tab '{tab}' for {self.view.value}")
        return self._guard.request(lambda: self._set_tab(tab), f"tab:{tab}")

    def leave(self, view: View | str = View.DASHBOARD) -> bool:
        target = View(view)
        return self._guard.request(lambda: self._store.set_view(target), f"view:{target.value}")

    # ------------------------------------------------------------------
    # Split editing
    # ------------------------------------------------------------------
    def add_split_row(self) -> int:
        return self._splits.add_row()

    def remove_split_row(self, index: int) -> None:
        self._splits.remove_row(index)

    def set_split_name(self, index: int, value: str) -> None:
        self._splits.set_name(index, value)

    def set_split_share(self, index: int, value: str) -> bool:
        return self._splits.set_share(index, value)

    def save_splits(self) -> Any:
        """Validate the 100% total and commit the buffer to the store.

        Raises:
            SplitValidationError: The shares do not total 100.
        """
        if self._split_owner() is None:
            return None
        total = self._splits.total()
        if not math.isclose(total, 100.0, abs_tol=1e-9):
            raise SplitValidationError(total)
        return self._commit_splits()

    # ------------------------------------------------------------------
    # Hooks for subclasses
    # ------------------------------------------------------------------
    def _split_owner(self) -> Release | Book | None:
        raise NotImplementedError

    def _store_splits(self, entity_id: int, rows: list[Collaborator]) -> Any:
        raise NotImplementedError

    def _sync_surface(self) -> None:
        raise NotImplementedError

    def _ensure_selection(self) -> None:
        pass

    def _set_tab(self, tab: str) -> None:
        self._active_tab = tab
        owner = self._split_owner()
        if tab == self.splits_tab and owner is not None:
            self._splits.mount(owner.splits)
        self._sync_surface()

    def _splits_dirty(self) -> bool:
        owner = self._split_owner()
        return owner is not None and self._splits.differs_from(owner.splits)

    def _commit_splits(self) -> Any:
        owner = self._split_owner()
        if owner is None:
            return None
        cleaned = self._splits.cleaned_rows()
        updated = self._store_splits(owner.id, cleaned)
        self._splits.mount(cleaned)
        self._store.add_toast(f'Splits for "{owner.title}" have been updated.', ToastSeverity.SUCCESS)
        return updated

    def _commit_surface(self, surface: str) -> Awaitable[None] | None:
        if surface == SPLITS_SURFACE:
            self._commit_splits()
        return None

    def _discard_surface(self, surface: str) -> None:
        owner = self._split_owner()
        if surface == SPLITS_SURFACE and owner is not None:
            self._splits.mount(owner.splits)

    def _handle_onboarding(self, event: OnboardingChanged) -> None:
        if event.target_tab and event.target_tab in self.tabs and self._store.view is self.view:
            self._set_tab(event.target_tab)

    def _handle_store_initialized(self, event: StoreInitialized) -> None:
        self._ensure_selection()

    def _handle_entity_mutated(self, event: EntityMutated) -> None:
        if event.operation == "add":
            self._ensure_selection()


class MusicSession(ModuleSession):
    """Music hub: release selection and the royalty-split editor."""

    tabs = MUSIC_TABS
    view = View.MUSIC
    splits_tab = "splits"

    def __init__(self, store: DomainStore, event_bus: EventBus) -> None:
        self._selected_release_id: int | None = None
        super().__init__(store, event_bus)
        self._ensure_selection()

    @property
    def selected_release(self) -> Release | None:
        if self._selected_release_id is None:
            return None
        return self._store.get_release(self._selected_release_id)

    def select_release(self, release_id: int) -> bool:
        return self._guard.request(lambda: self._select_release(release_id), f"release:{release_id}")

    def submit_release(
        self,
        title: str,
        artist: str,
        genre: str,
        *,
        release_date: str | None = None,
    ) -> Release | None:
        if not title or not artist or not genre:
            self._store.add_toast("Please fill in Artist, Title, and Genre.", ToastSeverity.ERROR)
            return None
        release = self._store.add_release(
            title,
            artist,
            genre=genre,
            release_date=release_date,
            splits=[Collaborator(name=artist, share="100")],
        )
        self._store.add_toast(f'"{title}" has been submitted for distribution!', ToastSeverity.SUCCESS)
        self._set_tab("releases")
        return release

    # Internals ---------------------------------------------------------
    def _select_release(self, release_id: int) -> None:
        self._selected_release_id = release_id
        release = self.selected_release
        self._splits.mount(release.splits if release else [])
        self._sync_surface()

    def _ensure_selection(self) -> None:
        if self._selected_release_id is None and self._store.releases:
            self._select_release(self._store.releases[0].id)

    def _split_owner(self) -> Release | None:
        return self.selected_release

    def _store_splits(self, entity_id: int, rows: list[Collaborator]) -> Release | None:
        return self._store.update_music_splits(entity_id, rows)

    def _sync_surface(self) -> None:
        active = self._active_tab == self.splits_tab and self.selected_release is not None
        self._tracker.activate(SPLITS_SURFACE if active else None)


class PublishingSession(ModuleSession):
    """Publishing hub: book selection, manuscript editor and split editor."""

    tabs = PUBLISHING_TABS
    view = View.PUBLISHING
    splits_tab = "rights_splits"

    def __init__(self, store: DomainStore, event_bus: EventBus) -> None:
        self._selected_book_id: int | None = None
        self._chapter_index = 0
        self._manuscript = ManuscriptEditBuffer()
        super().__init__(store, event_bus)
        self._tracker.register(MANUSCRIPT_SURFACE, lambda: self._manuscript.is_dirty)
        self._ensure_selection()
        self._sync_surface()

    @property
    def selected_book(self) -> Book | None:
        if self._selected_book_id is None:
            return None
        return self._store.get_book(self._selected_book_id)

    @property
    def chapter_index(self) -> int:
        return self._chapter_index

    @property
    def manuscript(self) -> ManuscriptEditBuffer:
        return self._manuscript

    # Navigation --------------------------------------------------------
    def select_book(self, book_id: int) -> bool:
        return self._guard.request(lambda: self._select_book(book_id), f"book:{book_id}")

    def select_chapter(self, index: int) -> bool:
        return self._guard.request(lambda: self._select_chapter(index), f"chapter:{index}")

    def create_chapter(self) -> bool:
        """Append "Chapter N" to the selected book and switch to it (guarded)."""

        book = self.selected_book
        if book is None:
            return False

        def action() -> None:
            current = self.selected_book
            if current is None:
                return
            chapters = [*current.chapters, Chapter(title=f"Chapter {len(current.chapters) + 1}")]
            self._store.update_book(current.id, chapters=chapters)
            self._select_chapter(len(chapters) - 1)
            self._store.add_toast("New chapter added.", ToastSeverity.SUCCESS)

        return self._guard.request(action, "chapter:new")

    # Manuscript ----------------------------------------------------------
    def edit_manuscript(self, text: str) -> None:
        """Keystroke path: update the buffer and write through with a debounced save."""

        book = self.selected_book
        self._manuscript.edit(text)
        if book is not None:
            self._store.update_chapter_content(book.id, self._chapter_index, text)

    def upload_manuscript(self, text: str) -> Book | None:
        """Replace every chapter of the selected book with one uploaded text."""

        book = self.selected_book
        if book is None:
            return None
        updated = self._store.update_book(
            book.id, chapters=[Chapter(title="Chapter 1 (from TXT)", content=text)]
        )
        self._chapter_index = 0
        self._manuscript.mount(text)
        self._store.add_toast("Manuscript uploaded successfully.", ToastSeverity.SUCCESS)
        return updated

    def apply_ai_text(self, text: str, generation: int) -> bool:
        """Apply an AI rewrite computed from buffer ``generation``.

        Returns False, leaving everything untouched, when the buffer was
        remounted since the request was issued.
        """
        book = self.selected_book
        if book is None or generation != self._manuscript.generation:
            LOGGER.info("Discarding stale manuscript rewrite (generation %d)", generation)
            return False
        self._manuscript.apply_replacement(text)
        self._store.update_chapter_content(book.id, self._chapter_index, text)
        return True

    def undo_ai_change(self) -> bool:
        book = self.selected_book
        if book is None:
            return False
        text = self._manuscript.undo()
        if text is None:
            return False
        self._store.update_chapter_content(book.id, self._chapter_index, text)
        self._store.add_toast("AI change has been reverted.", ToastSeverity.SUCCESS)
        return True

    # Book management -----------------------------------------------------
    def create_book(self, title: str, author: str, genre: str = DEFAULT_BOOK_GENRE) -> Book | None:
        if not title.strip() or not author.strip():
            return None
        book = self._store.add_book(
            title,
            author,
            genre=genre,
            rights=BookRights(territorial=True, drm=True),
            splits=[Collaborator(name=author, share="100")],
            chapters=[Chapter(title="Chapter 1")],
        )
        self._select_book(book.id)
        self._set_tab("studio")
        self._store.add_toast(f'Book "{title}" created!', ToastSeverity.SUCCESS)
        return book

    def toggle_right(self, key: str) -> Book | None:
        book = self.selected_book
        if book is None:
            return None
        return self._store.update_book(book.id, rights=book.rights.toggled(key))

    def save_illustration(self, illustration: Illustration) -> Book | None:
        book = self.selected_book
        if book is None:
            return None
        updated = self._store.update_book(book.id, illustrations=[*book.illustrations, illustration])
        self._store.add_toast("Illustration saved to gallery.", ToastSeverity.SUCCESS)
        return updated

    # Internals -----------------------------------------------------------
    def _select_book(self, book_id: int) -> None:
        self._selected_book_id = book_id
        self._chapter_index = 0
        book = self.selected_book
        self._manuscript.mount(book.chapter_text(0) if book else "")
        self._splits.mount(book.splits if book else [])
        self._sync_surface()

    def _select_chapter(self, index: int) -> None:
        self._chapter_index = index
        book = self.selected_book
        self._manuscript.mount(book.chapter_text(index) if book else "")
        self._sync_surface()

    def _ensure_selection(self) -> None:
        if self._selected_book_id is None and self._store.books:
            self._select_book(self._store.books[0].id)

    def _split_owner(self) -> Book | None:
        return self.selected_book

    def _store_splits(self, entity_id: int, rows: list[Collaborator]) -> Book | None:
        return self._store.update_book(entity_id, splits=rows)

    def _sync_surface(self) -> None:
        if self.selected_book is None:
            self._tracker.activate(None)
        elif self._active_tab == "studio":
            self._tracker.activate(MANUSCRIPT_SURFACE)
        elif self._active_tab == self.splits_tab:
            self._tracker.activate(SPLITS_SURFACE)
        else:
            self._tracker.activate(None)

    async def _commit_surface(self, surface: str) -> None:
        if surface == MANUSCRIPT_SURFACE:
            await self._store.force_save()
            self._manuscript.mark_committed()
        else:
            super()._commit_surface(surface)

    def _discard_surface(self, surface: str) -> None:
        book = self.selected_book
        if surface == MANUSCRIPT_SURFACE and book is not None:
            text = self._manuscript.revert()
            if book.chapter_text(self._chapter_index) != text:
                self._store.update_chapter_content(book.id, self._chapter_index, text)
        else:
            super()._discard_surface(surface)


__all__ = [
    "MUSIC_TABS",
    "PUBLISHING_TABS",
    "ModuleSession",
    "MusicSession",
    "PublishingSession",
]
