"""Shared test helpers and stub classes.

This module contains reusable test stubs that are used across multiple test files.
Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
import copy
import json
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

from hardbanlab.domain.models import (
    Book,
    BookRights,
    BookStatus,
    Chapter,
    Collaborator,
    Release,
    ReleaseStatus,
    Snapshot,
    Task,
)
from hardbanlab.domain.store import DomainStore
from hardbanlab.editing.session import MusicSession, PublishingSession
from hardbanlab.errors import PersistenceError
from hardbanlab.events import EventBus
from hardbanlab.services.save_queue import SaveQueueConfig

# Saves retry without waiting and debounce quickly in tests
FAST_SAVE_CONFIG = SaveQueueConfig(
    debounce_seconds=0.02,
    max_attempts=3,
    retry_min_seconds=0.0,
    retry_max_seconds=0.0,
)


def make_snapshot(*, onboarding_complete: bool = True) -> Snapshot:
    """Two releases, one book with two chapters and a task per module."""

    return Snapshot(
        releases=[
            Release(
                id=1,
                title="Midnight Circuit",
                artist="Nova",
                status=ReleaseStatus.LIVE,
                genre="Synthwave",
                release_date="2024-03-01",
                splits=[Collaborator("Nova", "60"), Collaborator("Kai", "40")],
            ),
            Release(
                id=2,
                title="Glass Rivers",
                artist="Nova",
                status=ReleaseStatus.IN_REVIEW,
                genre="Ambient",
                splits=[Collaborator("Nova", "100")],
            ),
        ],
        music_tasks=[Task(id=100, text="Register with PRO", due_date="2024-05-01")],
        books=[
            Book(
                id=10,
                title="The Quantum Garden",
                author="Ada Vale",
                genre="Sci-Fi",
                status=BookStatus.DRAFT,
                rights=BookRights(territorial=True, drm=True),
                splits=[Collaborator("Ada Vale", "100")],
                chapters=[
                    Chapter("Chapter 1", "It began with a seed."),
                    Chapter("Chapter 2", "The garden grew."),
                ],
            ),
            Book(
                id=11,
                title="Salt and Static",
                author="Ada Vale",
                genre="Literary",
                chapters=[Chapter("Chapter 1", "Waves.")],
            ),
        ],
        publishing_tasks=[Task(id=200, text="Commission cover", completed=True)],
        onboarding_complete=onboarding_complete,
    )


class FakeGateway:
    """In-memory persistence gateway recording every accepted snapshot.

    Saves go through the JSON wire format, so ``saved`` holds what a backend
    would hand back and ``payloads`` the raw documents it received.

    ``fail_saves`` makes that many save attempts raise before saves succeed
    again; ``save_delay`` keeps each save in flight for a while.
    """

    def __init__(
        self,
        snapshot: Snapshot | None = None,
        *,
        fetch_error: Exception | None = None,
        fail_saves: int = 0,
        save_delay: float = 0.0,
    ) -> None:
        self.snapshot = snapshot if snapshot is not None else Snapshot()
        self.fetch_error = fetch_error
        self.fail_saves = fail_saves
        self.save_delay = save_delay
        self.saved: list[Snapshot] = []
        self.payloads: list[dict[str, Any]] = []
        self.save_attempts = 0
        self.max_active = 0
        self._active = 0

    async def fetch_snapshot(self) -> Snapshot:
        if self.fetch_error is not None:
            raise self.fetch_error
        return copy.deepcopy(self.snapshot)

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        self.save_attempts += 1
        self._active += 1
        self.max_active = max(self.max_active, self._active)
        try:
            if self.save_delay:
                await asyncio.sleep(self.save_delay)
            if self.fail_saves > 0:
                self.fail_saves -= 1
                raise PersistenceError("backend unavailable", status_code=503)
            payload = json.loads(json.dumps(snapshot.to_payload()))
            self.payloads.append(payload)
            self.saved.append(Snapshot.from_payload(payload))
        finally:
            self._active -= 1

    @property
    def last_saved(self) -> Snapshot | None:
        return self.saved[-1] if self.saved else None


class EventRecorder:
    """Collects published events of the given types in order."""

    def __init__(self, bus: EventBus, *event_types: type) -> None:
        self.events: list[Any] = []
        for event_type in event_types:
            bus.subscribe(event_type, self.events.append)

    def of_type(self, event_type: type) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]


class StubGenerationClient:
    """Stands in for :class:`hardbanlab.ai.client.GenerationClient`.

    ``text`` and ``image`` are returned as-is; an exception instance makes
    the call raise it. ``on_call`` runs before each result is returned, so
    tests can change state while a request is in flight.
    """

    def __init__(
        self,
        *,
        text: Any = "generated text",
        image: Any = "data:image/png;base64,aW1n",
        on_call: Callable[[], None] | None = None,
    ) -> None:
        self.text = text
        self.image = image
        self.on_call = on_call
        self.prompts: list[str] = []
        self.schemas: list[Any] = []
        self.aspect_ratios: list[str] = []
        self.closed = False

    async def complete_text(self, prompt: str, *, schema: Any = None, temperature: float | None = None) -> Any:
        self.prompts.append(prompt)
        self.schemas.append(schema)
        return self._result(self.text)

    async def generate_image(self, prompt: str, *, aspect_ratio: str = "1:1") -> str:
        self.prompts.append(prompt)
        self.aspect_ratios.append(aspect_ratio)
        return self._result(self.image)

    async def aclose(self) -> None:
        self.closed = True

    def _result(self, value: Any) -> Any:
        if self.on_call is not None:
            self.on_call()
        if isinstance(value, Exception):
            raise value
        return value


def make_openai_stub(
    *,
    content: str | None = "hello",
    b64_json: str | None = "aW1hZ2U=",
) -> MagicMock:
    """Mock of ``AsyncOpenAI`` exposing the two endpoints the client uses."""

    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion(content))
    client.images.generate = AsyncMock(return_value=SimpleNamespace(data=[SimpleNamespace(b64_json=b64_json)]))
    client.close = AsyncMock()
    return client


def completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@dataclass
class Workspace:
    """A store with both module sessions attached to the same bus."""

    bus: EventBus
    gateway: FakeGateway
    store: DomainStore
    music: MusicSession
    publishing: PublishingSession


async def build_workspace(
    snapshot: Snapshot | None = None,
    *,
    gateway: FakeGateway | None = None,
    toast_ttl: float = 5.0,
) -> Workspace:
    """Create and initialise a store plus sessions backed by a fake gateway."""

    bus = EventBus()
    active_gateway = gateway or FakeGateway(snapshot if snapshot is not None else make_snapshot())
    store = DomainStore(active_gateway, bus, save_config=FAST_SAVE_CONFIG, toast_ttl=toast_ttl)
    music = MusicSession(store, bus)
    publishing = PublishingSession(store, bus)
    await store.initialize()
    return Workspace(bus=bus, gateway=active_gateway, store=store, music=music, publishing=publishing)


def toast_messages(store: DomainStore) -> list[str]:
    return [toast.message for toast in store.toasts]
