"""Integration tests for the music and publishing module sessions."""

from __future__ import annotations

import asyncio

import pytest

from hardbanlab.domain.models import Chapter, Collaborator, Illustration, Snapshot, ToastSeverity, View
from hardbanlab.editing.dirty import MANUSCRIPT_SURFACE, SPLITS_SURFACE
from hardbanlab.editing.guard import GuardState
from hardbanlab.errors import NavigationStateError, SplitValidationError
from hardbanlab.events import NavigationConfirmationRequested
from tests.helpers import EventRecorder, FakeGateway, build_workspace, make_snapshot, toast_messages


def _pairs(rows) -> list[tuple[str, str]]:
    return [(row.name, row.share) for row in rows]


class TestMusicSplitsEditor:
    """Dirty tracking and guarded navigation around the royalty-split editor."""

    @pytest.mark.asyncio
    async def test_first_release_is_selected_after_load(self) -> None:
        ws = await build_workspace()

        assert ws.music.selected_release is not None
        assert ws.music.selected_release.id == 1
        assert ws.music.active_tab == "studio"
        assert ws.music.tracker.active_surface is None

    @pytest.mark.asyncio
    async def test_entering_splits_tab_is_clean(self) -> None:
        ws = await build_workspace()
        ws.music.enter()

        assert ws.music.select_tab("splits") is True

        assert ws.music.tracker.active_surface == SPLITS_SURFACE
        assert _pairs(ws.music.splits.rows) == [("Nova", "60"), ("Kai", "40")]
        assert not ws.music.is_dirty

    @pytest.mark.asyncio
    async def test_dirty_leave_waits_for_confirmation_then_discard_restores(self) -> None:
        """60/40 edited to 60/41 holds navigation; discarding restores the saved rows."""
        ws = await build_workspace()
        recorder = EventRecorder(ws.bus, NavigationConfirmationRequested)
        ws.music.enter()
        ws.music.select_tab("splits")

        ws.music.set_split_share(1, "41")
        assert ws.music.is_dirty

        assert ws.music.leave() is False
        assert ws.store.view is View.MUSIC
        assert ws.music.guard.state is GuardState.PENDING_CONFIRMATION
        assert recorder.events == [
            NavigationConfirmationRequested(surface=SPLITS_SURFACE, description="view:DASHBOARD")
        ]

        ws.music.guard.discard_and_continue()

        assert ws.store.view is View.DASHBOARD
        assert ws.music.splits.rows == tuple(ws.store.get_release(1).splits)
        assert not ws.music.is_dirty

    @pytest.mark.asyncio
    async def test_appended_empty_row_does_not_block_navigation(self) -> None:
        ws = await build_workspace()
        ws.music.enter()
        ws.music.select_tab("splits")

        ws.music.add_split_row()

        assert not ws.music.is_dirty
        assert ws.music.leave() is True
        assert ws.store.view is View.DASHBOARD

    @pytest.mark.asyncio
    async def test_save_and_continue_commits_rows(self) -> None:
        ws = await build_workspace()
        ws.music.enter()
        ws.music.select_tab("splits")
        ws.music.set_split_share(1, "41")
        ws.music.leave()

        await ws.music.guard.save_and_continue()
        await ws.store.saver.flush()

        assert not ws.music.is_dirty
        assert ws.store.view is View.DASHBOARD
        assert _pairs(ws.store.get_release(1).splits) == [("Nova", "60"), ("Kai", "41")]
        assert _pairs(ws.gateway.last_saved.releases[0].splits) == [("Nova", "60"), ("Kai", "41")]
        assert 'Splits for "Midnight Circuit" have been updated.' in toast_messages(ws.store)

    @pytest.mark.asyncio
    async def test_cancel_keeps_tab_and_edits(self) -> None:
        ws = await build_workspace()
        ws.music.select_tab("splits")
        ws.music.set_split_share(1, "41")

        assert ws.music.select_tab("releases") is False
        ws.music.guard.cancel()

        assert ws.music.active_tab == "splits"
        assert ws.music.is_dirty
        assert ws.music.splits.rows[1].share == "41"

    @pytest.mark.asyncio
    async def test_selecting_another_release_is_guarded(self) -> None:
        ws = await build_workspace()
        ws.music.select_tab("splits")
        ws.music.set_split_name(0, "Nova X")

        assert ws.music.select_release(2) is False
        ws.music.guard.discard_and_continue()

        assert ws.music.selected_release.id == 2
        assert _pairs(ws.music.splits.rows) == [("Nova", "100")]
        assert ws.store.get_release(1).splits[0].name == "Nova"

    @pytest.mark.asyncio
    async def test_unrelated_store_changes_keep_edits(self) -> None:
        ws = await build_workspace()
        ws.music.select_tab("splits")
        ws.music.set_split_share(1, "41")

        ws.store.add_music_task("Send stems")
        ws.store.update_book(10, blurb="x")

        assert ws.music.is_dirty
        assert ws.music.splits.rows[1].share == "41"

    @pytest.mark.asyncio
    async def test_save_splits_requires_hundred_percent(self) -> None:
        ws = await build_workspace()
        ws.music.select_tab("splits")
        ws.music.set_split_share(1, "41")

        with pytest.raises(SplitValidationError) as excinfo:
            ws.music.save_splits()
        assert excinfo.value.total == pytest.approx(101.0)

        ws.music.set_split_share(1, "30")
        row = ws.music.add_split_row()
        ws.music.set_split_name(row, "Lee")
        ws.music.set_split_share(row, "10")
        ws.music.add_split_row()
        updated = ws.music.save_splits()

        assert _pairs(updated.splits) == [("Nova", "60"), ("Kai", "30"), ("Lee", "10")]
        assert not ws.music.is_dirty

    @pytest.mark.asyncio
    async def test_unknown_tab_is_rejected(self) -> None:
        ws = await build_workspace()

        with pytest.raises(ValueError):
            ws.music.select_tab("lyrics")


class TestMusicReleases:
    """Release submission."""

    @pytest.mark.asyncio
    async def test_submit_requires_fields(self) -> None:
        ws = await build_workspace()

        assert ws.music.submit_release("Title", "Nova", "") is None
        assert ws.store.toasts[-1].message == "Please fill in Artist, Title, and Genre."
        assert ws.store.toasts[-1].severity is ToastSeverity.ERROR
        assert len(ws.store.releases) == 2

    @pytest.mark.asyncio
    async def test_submit_adds_release_and_switches_tab(self) -> None:
        ws = await build_workspace()

        release = ws.music.submit_release("Solar Wind", "Nova", "House", release_date="2025-01-10")
        await ws.store.saver.flush()

        assert release.splits == [Collaborator("Nova", "100")]
        assert ws.music.active_tab == "releases"
        assert '"Solar Wind" has been submitted for distribution!' in toast_messages(ws.store)
        assert ws.gateway.last_saved.releases[-1].title == "Solar Wind"

    @pytest.mark.asyncio
    async def test_first_release_is_selected_when_added(self) -> None:
        ws = await build_workspace(Snapshot(onboarding_complete=True))
        assert ws.music.selected_release is None

        release = ws.music.submit_release("Debut", "Nova", "Pop")

        assert ws.music.selected_release.id == release.id


class TestPublishingManuscript:
    """Manuscript buffer, write-through edits and guarded chapter switches."""

    @pytest.mark.asyncio
    async def test_studio_tab_tracks_manuscript(self) -> None:
        ws = await build_workspace()

        assert ws.publishing.selected_book.id == 10
        assert ws.publishing.chapter_index == 0
        assert ws.publishing.manuscript.text == "It began with a seed."
        assert ws.publishing.tracker.active_surface == MANUSCRIPT_SURFACE
        assert not ws.publishing.is_dirty

    @pytest.mark.asyncio
    async def test_typing_writes_through_with_debounced_save(self) -> None:
        ws = await build_workspace()

        ws.publishing.edit_manuscript("It began with a seed. Then rain.")

        assert ws.publishing.is_dirty
        assert ws.store.get_book(10).chapters[0].content == "It began with a seed. Then rain."
        assert ws.store.saver.debounce_pending

    @pytest.mark.asyncio
    async def test_chapter_switch_save_persists_and_moves_on(self) -> None:
        ws = await build_workspace()
        ws.publishing.edit_manuscript("Rewritten opening.")

        assert ws.publishing.select_chapter(1) is False
        await ws.publishing.guard.save_and_continue()

        assert ws.gateway.last_saved.books[0].chapters[0].content == "Rewritten opening."
        assert ws.publishing.chapter_index == 1
        assert ws.publishing.manuscript.text == "The garden grew."
        assert not ws.publishing.is_dirty

    @pytest.mark.asyncio
    async def test_cancel_is_refused_while_tab_switch_save_is_in_flight(self) -> None:
        ws = await build_workspace(gateway=FakeGateway(make_snapshot(), save_delay=0.05))
        ws.publishing.edit_manuscript("Edited while the backend is slow.")
        assert ws.publishing.select_tab("marketing") is False

        task = asyncio.create_task(ws.publishing.guard.save_and_continue())
        await asyncio.sleep(0.01)
        with pytest.raises(NavigationStateError):
            ws.publishing.guard.cancel()
        await task

        assert ws.publishing.active_tab == "marketing"
        assert ws.publishing.guard.state is GuardState.IDLE
        assert ws.gateway.last_saved.books[0].chapters[0].content == "Edited while the backend is slow."

    @pytest.mark.asyncio
    async def test_chapter_switch_discard_restores_store_text(self) -> None:
        ws = await build_workspace()
        ws.publishing.edit_manuscript("Scrapped idea.")

        ws.publishing.select_chapter(1)
        ws.publishing.guard.discard_and_continue()
        await ws.store.saver.flush()

        assert ws.store.get_book(10).chapters[0].content == "It began with a seed."
        assert ws.gateway.last_saved.books[0].chapters[0].content == "It began with a seed."
        assert ws.publishing.manuscript.text == "The garden grew."

    @pytest.mark.asyncio
    async def test_leaving_module_with_dirty_manuscript_is_guarded(self) -> None:
        ws = await build_workspace()
        ws.publishing.enter()
        ws.publishing.edit_manuscript("unsaved")

        assert ws.publishing.leave() is False
        assert ws.store.view is View.PUBLISHING

    @pytest.mark.asyncio
    async def test_create_chapter_appends_and_selects(self) -> None:
        ws = await build_workspace()

        assert ws.publishing.create_chapter() is True

        book = ws.store.get_book(10)
        assert [chapter.title for chapter in book.chapters][-1] == "Chapter 3"
        assert ws.publishing.chapter_index == 2
        assert ws.publishing.manuscript.text == ""
        assert "New chapter added." in toast_messages(ws.store)

    @pytest.mark.asyncio
    async def test_upload_replaces_all_chapters(self) -> None:
        ws = await build_workspace()
        ws.publishing.select_chapter(1)

        ws.publishing.upload_manuscript("Whole novel text")

        assert ws.store.get_book(10).chapters == [Chapter("Chapter 1 (from TXT)", "Whole novel text")]
        assert ws.publishing.chapter_index == 0
        assert ws.publishing.manuscript.text == "Whole novel text"
        assert not ws.publishing.is_dirty

    @pytest.mark.asyncio
    async def test_stale_ai_text_is_dropped(self) -> None:
        ws = await build_workspace()
        generation = ws.publishing.manuscript.generation

        ws.publishing.select_chapter(1)

        assert ws.publishing.apply_ai_text("Polished", generation) is False
        assert ws.publishing.manuscript.text == "The garden grew."
        assert ws.store.get_book(10).chapters == make_snapshot().books[0].chapters

    @pytest.mark.asyncio
    async def test_ai_text_can_be_undone(self) -> None:
        ws = await build_workspace()
        generation = ws.publishing.manuscript.generation

        assert ws.publishing.apply_ai_text("It began with one seed.", generation) is True
        assert ws.store.get_book(10).chapters[0].content == "It began with one seed."

        assert ws.publishing.undo_ai_change() is True
        assert ws.publishing.manuscript.text == "It began with a seed."
        assert ws.store.get_book(10).chapters[0].content == "It began with a seed."
        assert "AI change has been reverted." in toast_messages(ws.store)
        assert ws.publishing.undo_ai_change() is False


class TestPublishingBooks:
    """Book creation, rights and the rights/splits tab."""

    @pytest.mark.asyncio
    async def test_create_book_selects_it(self) -> None:
        ws = await build_workspace()
        ws.publishing.select_tab("marketing")

        book = ws.publishing.create_book("Orbit", "Ada Vale")

        assert ws.publishing.selected_book.id == book.id
        assert ws.publishing.active_tab == "studio"
        assert book.genre == "Sci-Fi"
        assert book.chapters == [Chapter("Chapter 1")]
        assert book.rights.territorial and book.rights.drm and not book.rights.audio
        assert book.splits == [Collaborator("Ada Vale", "100")]
        assert 'Book "Orbit" created!' in toast_messages(ws.store)

    @pytest.mark.asyncio
    async def test_create_book_requires_title_and_author(self) -> None:
        ws = await build_workspace()

        assert ws.publishing.create_book("  ", "Ada") is None
        assert len(ws.store.books) == 2

    @pytest.mark.asyncio
    async def test_toggle_right_and_illustrations(self) -> None:
        ws = await build_workspace()

        ws.publishing.toggle_right("audio")
        ws.publishing.save_illustration(Illustration(url="data:image/png;base64,AA", prompt="moon"))

        book = ws.store.get_book(10)
        assert book.rights.audio is True
        assert book.illustrations == [Illustration(url="data:image/png;base64,AA", prompt="moon")]
        assert "Illustration saved to gallery." in toast_messages(ws.store)

    @pytest.mark.asyncio
    async def test_rights_tab_uses_book_splits(self) -> None:
        ws = await build_workspace()
        ws.publishing.select_tab("rights_splits")

        assert ws.publishing.tracker.active_surface == SPLITS_SURFACE
        ws.publishing.set_split_share(0, "90")
        assert ws.publishing.is_dirty
        assert ws.publishing.splits_total == pytest.approx(90.0)

        row = ws.publishing.add_split_row()
        ws.publishing.set_split_name(row, "Illustrator")
        ws.publishing.set_split_share(row, "10")
        ws.publishing.save_splits()

        assert _pairs(ws.store.get_book(10).splits) == [("Ada Vale", "90"), ("Illustrator", "10")]
        assert 'Splits for "The Quantum Garden" have been updated.' in toast_messages(ws.store)

    @pytest.mark.asyncio
    async def test_selecting_book_with_dirty_splits_is_guarded(self) -> None:
        ws = await build_workspace()
        ws.publishing.select_tab("rights_splits")
        ws.publishing.remove_split_row(0)

        assert ws.publishing.select_book(11) is False
        ws.publishing.guard.discard_and_continue()

        assert ws.publishing.selected_book.id == 11
        assert _pairs(ws.store.get_book(10).splits) == [("Ada Vale", "100")]


class TestOnboardingTabs:
    """Tour steps that point at a module tab."""

    @pytest.mark.asyncio
    async def test_tour_moves_module_tabs(self) -> None:
        ws = await build_workspace(make_snapshot(onboarding_complete=False))
        ws.music.select_tab("releases")
        ws.publishing.select_tab("marketing")

        ws.store.start_tour()
        ws.store.next_tour_step()
        ws.store.next_tour_step()

        assert ws.store.view is View.MUSIC
        assert ws.music.active_tab == "studio"
        assert ws.publishing.active_tab == "marketing"

        for _ in range(3):
            ws.store.next_tour_step()

        assert ws.store.view is View.PUBLISHING
        assert ws.publishing.active_tab == "studio"
