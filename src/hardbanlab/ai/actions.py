"""AI helpers for the music and publishing modules.

Each helper is one request/response call wrapped by :class:`AIActionRunner`,
which owns the loading flag and turns any failure into an error toast.
Results that target a persisted field are applied by entity id; manuscript
rewrites go through :meth:`PublishingSession.apply_ai_text`, which drops
them when the buffer was remounted in the meantime.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, Sequence, TypeVar

from ..domain.models import Book, Collaborator, Illustration, Release, ToastSeverity
from ..domain.store import DomainStore
from ..editing.session import PublishingSession
from .client import GenerationClient

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

METADATA_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "mood": {"type": "string"},
        "tags": {"type": "string"},
    },
    "required": ["mood", "tags"],
}

COVER_ART_ASPECT = "1:1"
ILLUSTRATION_ASPECT = "9:16"
BOOK_COVER_ASPECT = "2:3"
_EXCERPT_LIMIT = 2000


class AIActionRunner:
    """Runs one generation call with loading-flag and failure-toast handling."""

    def __init__(self, store: DomainStore) -> None:
        self._store = store

    async def run(
        self,
        key: str,
        call: Callable[[], Awaitable[T]],
        *,
        failure_message: str,
    ) -> T | None:
        """Await ``call`` with loading flag ``key`` raised.

        Returns:
            The call's result, or None when it failed. Failures are logged
            and reported through an error toast; they never propagate.
        """
        self._store.set_loading(key, True)
        try:
            return await call()
        except Exception as exc:
            LOGGER.error("AI action %s failed: %s", key, exc)
            self._store.add_toast(failure_message, ToastSeverity.ERROR)
            return None
        finally:
            self._store.set_loading(key, False)


class MusicAssistant:
    """Generation helpers offered by the music hub."""

    def __init__(self, store: DomainStore, client: GenerationClient, runner: AIActionRunner | None = None) -> None:
        self._store = store
        self._client = client
        self._runner = runner or AIActionRunner(store)

    async def generate_metadata(self, artist: str, title: str, genre: str) -> dict[str, str] | None:
        if not artist or not title or not genre:
            return None
        prompt = (
            f'Generate music metadata for the track "{title}" by "{artist}" in the genre "{genre}". '
            'Return JSON with "mood" (a short phrase) and "tags" (3-5 comma-separated tags).'
        )
        data = await self._runner.run(
            "metadata",
            lambda: self._client.complete_text(prompt, schema=METADATA_SCHEMA),
            failure_message="Failed to generate metadata. Please try again.",
        )
        if data is None:
            return None
        self._store.add_toast("Metadata generated successfully.", ToastSeverity.SUCCESS)
        return {"mood": str(data.get("mood") or ""), "tags": str(data.get("tags") or "")}

    async def suggest_release_date(self, genre: str) -> str | None:
        if not genre:
            return None
        return await self._text(
            "release_date",
            f'Suggest an optimal release date within the next 3 months for a "{genre}" release, '
            "with a one-sentence justification.",
            "Failed to suggest a date. Please try again later.",
        )

    async def forecast_earnings(self, genre: str) -> str | None:
        if not genre:
            return None
        return await self._text(
            "forecast",
            f'Write a short speculative earnings forecast for a new "{genre}" release.',
            "Failed to generate a forecast. The model may be busy.",
        )

    async def generate_cover_art(self, title: str, artist: str, genre: str) -> str | None:
        """Return a cover-art data URL; it is not stored on any release."""

        if not title or not artist:
            return None
        prompt = (
            f'An abstract, minimalist album cover for "{title}" by {artist}, genre {genre}, '
            "neon colors on a dark background."
        )
        url = await self._runner.run(
            "cover_art",
            lambda: self._client.generate_image(prompt, aspect_ratio=COVER_ART_ASPECT),
            failure_message="Failed to generate cover art. The model may be unavailable.",
        )
        if url is not None:
            self._store.add_toast("Cover art generated successfully!", ToastSeverity.SUCCESS)
        return url

    async def find_sync_match(self, release: Release | None, brief: str) -> str | None:
        if release is None:
            self._store.add_toast("You don't have any releases to check for a sync match.", ToastSeverity.ERROR)
            return None
        return await self._text(
            "sync_match",
            f'Rate how well "{release.title}" by {release.artist} ({release.genre or "unknown genre"}) '
            f"fits this sync brief and justify briefly: {brief}",
            "Failed to find a sync match. Please try again later.",
        )

    async def generate_split_agreement(self, release: Release, rows: Sequence[Collaborator]) -> str | None:
        collaborators = ", ".join(f"{row.name}: {row.share}%" for row in rows)
        return await self._text(
            "split_agreement",
            f'Write a simple split sheet agreement paragraph for "{release.title}" by {release.artist}. '
            f"Collaborators and shares: {collaborators}.",
            "Failed to generate split agreement text.",
        )

    async def career_advice(self, artist: str, genre: str) -> str | None:
        if not artist or not genre:
            return None
        return await self._text(
            "aandr_scout",
            f'Suggest three concrete next career steps for artist "{artist}" in genre "{genre}".',
            "Failed to get career advice from AI Scout.",
        )

    async def find_funding(self, genre: str) -> str | None:
        if not genre:
            return None
        return await self._text(
            "funding",
            f'Find 3 potential grants or stipends for an independent artist in the "{genre}" genre. '
            "Give the name and a brief description of each.",
            "Failed to find funding opportunities.",
        )

    async def find_collaborators(self, genre: str) -> str | None:
        if not genre:
            return None
        return await self._text(
            "collab_finder",
            'Suggest 3 types of collaborators (for example a producer with specific skills or a vocalist '
            f'with a certain style) for a "{genre}" artist.',
            "Failed to find collaborators.",
        )

    async def listener_analytics(self, genre: str) -> str | None:
        if not genre:
            return None
        return await self._text(
            "listener_analytics",
            f'Write a short paragraph describing a plausible listener profile for a "{genre}" artist: '
            "age range, common interests and primary listening platforms.",
            "Failed to generate listener analytics.",
        )

    async def _text(self, key: str, prompt: str, failure_message: str) -> str | None:
        return await self._runner.run(
            key,
            lambda: self._client.complete_text(prompt),
            failure_message=failure_message,
        )


class PublishingAssistant:
    """Generation helpers offered by the publishing hub."""

    def __init__(self, store: DomainStore, client: GenerationClient, runner: AIActionRunner | None = None) -> None:
        self._store = store
        self._client = client
        self._runner = runner or AIActionRunner(store)

    # Manuscript rewrites -------------------------------------------------
    async def proofread(self, session: PublishingSession) -> bool:
        return await self._rewrite(
            session,
            "proofread",
            "Proofread the following text for grammar and spelling. Return only the corrected text:\n---\n",
            success_message="Proofreading complete.",
            failure_message="Failed to proofread the text.",
        )

    async def enrich_prose(self, session: PublishingSession) -> bool:
        return await self._rewrite(
            session,
            "enrichment",
            "Rewrite the following text to be more descriptive while keeping plot and meaning. "
            "Return only the rewritten text:\n---\n",
            success_message="Prose has been enriched.",
            failure_message="Failed to enrich the prose.",
        )

    async def analyze_plot(self, text: str) -> str | None:
        if not text:
            return None
        return await self._runner.run(
            "plot_analysis",
            lambda: self._client.complete_text(
                "List plot holes, pacing problems or character inconsistencies in this text:\n---\n" + text
            ),
            failure_message="Failed to analyze the plot.",
        )

    # Results stored on the book -------------------------------------------
    async def generate_blurb(self, book_id: int, excerpt: str) -> Book | None:
        book = self._store.get_book(book_id)
        if book is None or not excerpt:
            return None
        prompt = (
            f'Write a one-paragraph blurb for the {book.genre} novel "{book.title}" '
            f"inspired by this excerpt:\n---\n{excerpt[:_EXCERPT_LIMIT]}"
        )
        text = await self._runner.run(
            "blurb",
            lambda: self._client.complete_text(prompt),
            failure_message="Failed to generate blurb.",
        )
        if text is None:
            return None
        updated = self._store.update_book(book_id, blurb=text)
        if updated is not None:
            self._store.add_toast("Blurb generated and saved.", ToastSeverity.SUCCESS)
        return updated

    async def generate_keywords(self, book_id: int) -> Book | None:
        book = self._store.get_book(book_id)
        if book is None:
            return None
        prompt = f'List 10 comma-separated SEO keywords for the {book.genre} book "{book.title}".'
        text = await self._runner.run(
            "keywords",
            lambda: self._client.complete_text(prompt),
            failure_message="Failed to generate keywords.",
        )
        if text is None:
            return None
        updated = self._store.update_book(book_id, keywords=text)
        if updated is not None:
            self._store.add_toast("Keywords generated and saved.", ToastSeverity.SUCCESS)
        return updated

    async def generate_book_cover(self, book_id: int) -> Book | None:
        book = self._store.get_book(book_id)
        if book is None:
            return None
        prompt = (
            f'A modern, eye-catching book cover for the {book.genre} book "{book.title}" by {book.author}.'
        )
        url = await self._runner.run(
            "book_cover",
            lambda: self._client.generate_image(prompt, aspect_ratio=BOOK_COVER_ASPECT),
            failure_message="Failed to generate book cover.",
        )
        if url is None:
            return None
        updated = self._store.update_book(book_id, cover_image_url=url)
        if updated is not None:
            self._store.add_toast("Book cover generated.", ToastSeverity.SUCCESS)
        return updated

    async def generate_illustration(self, prompt: str) -> Illustration | None:
        """Return a candidate illustration; :meth:`PublishingSession.save_illustration` stores it."""

        if not prompt:
            return None
        url = await self._runner.run(
            "illustration",
            lambda: self._client.generate_image(prompt, aspect_ratio=ILLUSTRATION_ASPECT),
            failure_message="Failed to generate illustration.",
        )
        if url is None:
            return None
        return Illustration(url=url, prompt=prompt)

    async def sales_forecast(self, book_id: int) -> str | None:
        book = self._store.get_book(book_id)
        if book is None:
            return None
        return await self._runner.run(
            "sales_forecast",
            lambda: self._client.complete_text(
                f'Write a short, speculative sales forecast for a new book in the "{book.genre}" genre, '
                "considering market trends and audience potential."
            ),
            failure_message="Failed to generate sales forecast.",
        )

    async def marketing_post(self, book_id: int) -> str | None:
        book = self._store.get_book(book_id)
        if book is None:
            return None
        return await self._runner.run(
            "marketing_assets",
            lambda: self._client.complete_text(
                f'Write a short social media post with hashtags announcing "{book.title}" by {book.author}, '
                f"a {book.genre} novel."
            ),
            failure_message="Failed to generate marketing assets.",
        )

    async def check_world_consistency(self, world_bible: str, text: str) -> str | None:
        if not world_bible or not text:
            return None
        return await self._runner.run(
            "world_consistency",
            lambda: self._client.complete_text(
                "Compare the world bible with the manuscript and list inconsistencies, "
                f"or state that it is consistent.\n\nWORLD BIBLE:\n{world_bible}\n\nMANUSCRIPT:\n{text[:4000]}"
            ),
            failure_message="Failed to check world consistency.",
        )

    async def _rewrite(
        self,
        session: PublishingSession,
        key: str,
        instruction: str,
        *,
        success_message: str,
        failure_message: str,
    ) -> bool:
        text = session.manuscript.text
        if not text or session.selected_book is None:
            return False
        generation = session.manuscript.generation
        result = await self._runner.run(
            key,
            lambda: self._client.complete_text(instruction + text),
            failure_message=failure_message,
        )
        if result is None:
            return False
        if not session.apply_ai_text(result, generation):
            return False
        self._store.add_toast(success_message, ToastSeverity.SUCCESS)
        return True


__all__ = [
    "AIActionRunner",
    "MusicAssistant",
    "PublishingAssistant",
    "METADATA_SCHEMA",
]
