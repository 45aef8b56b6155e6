"""Dataclasses describing releases, books, tasks and the persisted snapshot.

Python attributes are snake_case; the wire payload exchanged with the
persistence gateway keeps the camelCase keys the backend emits
(``releaseDate``, ``dueDate``, ``coverImageUrl``, ``onboardingComplete``).
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

LOGGER = logging.getLogger(__name__)


class ReleaseStatus(str, Enum):
    """Distribution status of a music release."""

    LIVE = "Live"
    IN_REVIEW = "In Review"
    SUBMITTED = "Submitted"
    PROCESSING = "Processing"


class BookStatus(str, Enum):
    """Publication status of a book."""

    PUBLISHED = "Published"
    PROCESSING = "Processing"
    DRAFT = "Draft"


class View(str, Enum):
    """Top-level views of the dashboard."""

    DASHBOARD = "DASHBOARD"
    MUSIC = "MUSIC"
    PUBLISHING = "PUBLISHING"


class ToastSeverity(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


# One flag per AI action; the store keeps them all False until an action runs.
LOADING_KEYS: tuple[str, ...] = (
    # Music
    "metadata",
    "release_date",
    "forecast",
    "sync_match",
    "cover_art",
    "aandr_scout",
    "funding",
    "collab_finder",
    "listener_analytics",
    "split_agreement",
    # Publishing
    "proofread",
    "plot_analysis",
    "enrichment",
    "illustration",
    "blurb",
    "keywords",
    "sales_forecast",
    "marketing_assets",
    "world_consistency",
    "book_cover",
)


@dataclass(slots=True)
class Collaborator:
    """One row of a royalty split. ``share`` stays a string for input control."""

    name: str = ""
    share: str = ""

    def is_blank(self) -> bool:
        return not self.name.strip() and not self.share.strip()

    def to_payload(self) -> dict[str, str]:
        return {"name": self.name, "share": self.share}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Collaborator:
        return cls(name=str(payload.get("name") or ""), share=_share_text(payload.get("share")))


@dataclass(slots=True)
class Task:
    """A to-do item; the same shape serves the music and publishing modules."""

    id: int
    text: str
    due_date: str = ""
    completed: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "dueDate": self.due_date,
            "completed": self.completed,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Task:
        return cls(
            id=int(payload["id"]),
            text=str(payload.get("text") or ""),
            due_date=str(payload.get("dueDate") or ""),
            completed=bool(payload.get("completed", False)),
        )


@dataclass(slots=True)
class Release:
    id: int
    title: str
    artist: str
    status: ReleaseStatus = ReleaseStatus.PROCESSING
    genre: str | None = None
    release_date: str | None = None
    splits: list[Collaborator] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "status": self.status.value,
            "splits": [split.to_payload() for split in self.splits],
        }
        # Optional keys are omitted rather than sent as null
        if self.genre is not None:
            payload["genre"] = self.genre
        if self.release_date is not None:
            payload["releaseDate"] = self.release_date
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Release:
        return cls(
            id=int(payload["id"]),
            title=str(payload.get("title") or ""),
            artist=str(payload.get("artist") or ""),
            status=_coerce_enum(ReleaseStatus, payload.get("status"), ReleaseStatus.PROCESSING),
            genre=_optional_text(payload.get("genre")),
            release_date=_optional_text(payload.get("releaseDate")),
            splits=_collaborators(payload.get("splits")),
        )


@dataclass(slots=True)
class BookRights:
    territorial: bool = False
    translation: bool = False
    adaptation: bool = False
    audio: bool = False
    drm: bool = False

    def toggled(self, key: str) -> BookRights:
        """Return a copy with ``key`` flipped."""

        if key not in _RIGHTS_KEYS:
            raise KeyError(f"Unknown right '{key}'")
        values = self.to_payload()
        values[key] = not values[key]
        return BookRights(**values)

    def to_payload(self) -> dict[str, bool]:
        return {key: bool(getattr(self, key)) for key in _RIGHTS_KEYS}

    @classmethod
    def from_payload(cls, payload: Any) -> BookRights:
        if not isinstance(payload, Mapping):
            return cls()
        return cls(**{key: bool(payload.get(key, False)) for key in _RIGHTS_KEYS})


_RIGHTS_KEYS: tuple[str, ...] = ("territorial", "translation", "adaptation", "audio", "drm")


@dataclass(slots=True)
class Chapter:
    title: str
    content: str = ""

    def to_payload(self) -> dict[str, str]:
        return {"title": self.title, "content": self.content}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Chapter:
        return cls(title=str(payload.get("title") or ""), content=str(payload.get("content") or ""))


@dataclass(slots=True)
class Illustration:
    url: str
    prompt: str = ""

    def to_payload(self) -> dict[str, str]:
        return {"url": self.url, "prompt": self.prompt}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Illustration:
        return cls(url=str(payload.get("url") or ""), prompt=str(payload.get("prompt") or ""))


@dataclass(slots=True)
class Book:
    id: int
    title: str
    author: str
    genre: str = ""
    status: BookStatus = BookStatus.DRAFT
    rights: BookRights = field(default_factory=BookRights)
    splits: list[Collaborator] = field(default_factory=list)
    chapters: list[Chapter] = field(default_factory=list)
    blurb: str = ""
    keywords: str = ""
    illustrations: list[Illustration] = field(default_factory=list)
    cover_image_url: str = ""

    def chapter_text(self, index: int) -> str:
        """Return the content of chapter ``index`` or ``""`` when out of range."""

        if 0 <= index < len(self.chapters):
            return self.chapters[index].content
        return ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "status": self.status.value,
            "rights": self.rights.to_payload(),
            "splits": [split.to_payload() for split in self.splits],
            "chapters": [chapter.to_payload() for chapter in self.chapters],
            "blurb": self.blurb,
            "keywords": self.keywords,
            "illustrations": [item.to_payload() for item in self.illustrations],
            "coverImageUrl": self.cover_image_url,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Book:
        return cls(
            id=int(payload["id"]),
            title=str(payload.get("title") or ""),
            author=str(payload.get("author") or ""),
            genre=str(payload.get("genre") or ""),
            status=_coerce_enum(BookStatus, payload.get("status"), BookStatus.DRAFT),
            rights=BookRights.from_payload(payload.get("rights")),
            splits=_collaborators(payload.get("splits")),
            chapters=[Chapter.from_payload(entry) for entry in _mappings(payload.get("chapters"))],
            blurb=str(payload.get("blurb") or ""),
            keywords=str(payload.get("keywords") or ""),
            illustrations=[
                Illustration.from_payload(entry) for entry in _mappings(payload.get("illustrations"))
            ],
            cover_image_url=str(payload.get("coverImageUrl") or ""),
        )


@dataclass(slots=True)
class Snapshot:
    """The full persisted state exchanged with the persistence gateway."""

    releases: list[Release] = field(default_factory=list)
    music_tasks: list[Task] = field(default_factory=list)
    books: list[Book] = field(default_factory=list)
    publishing_tasks: list[Task] = field(default_factory=list)
    onboarding_complete: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "music": {
                "releases": [release.to_payload() for release in self.releases],
                "tasks": [task.to_payload() for task in self.music_tasks],
            },
            "publishing": {
                "books": [book.to_payload() for book in self.books],
                "tasks": [task.to_payload() for task in self.publishing_tasks],
            },
            "onboardingComplete": self.onboarding_complete,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Snapshot:
        """Build a snapshot from a wire payload, skipping malformed entries."""

        if not isinstance(payload, Mapping):
            raise TypeError("Snapshot payload must be a mapping")
        music = payload.get("music") if isinstance(payload.get("music"), Mapping) else {}
        publishing = (
            payload.get("publishing") if isinstance(payload.get("publishing"), Mapping) else {}
        )
        return cls(
            releases=_parse_entries(Release.from_payload, music.get("releases"), "release"),
            music_tasks=_parse_entries(Task.from_payload, music.get("tasks"), "music task"),
            books=_parse_entries(Book.from_payload, publishing.get("books"), "book"),
            publishing_tasks=_parse_entries(
                Task.from_payload, publishing.get("tasks"), "publishing task"
            ),
            onboarding_complete=bool(payload.get("onboardingComplete", False)),
        )


class IdAllocator:
    """Hands out timestamp-derived identities that never repeat.

    Identities are milliseconds since the epoch, bumped past the previous
    value when two allocations land in the same millisecond.
    """

    def __init__(self, clock: Any = time.time) -> None:
        self._clock = clock
        self._last = 0

    def next_id(self) -> int:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last:
            candidate = self._last + 1
        self._last = candidate
        return candidate

    def observe(self, used: Sequence[int]) -> None:
        """Make sure future identities sort after ``used``."""

        if used:
            self._last = max(self._last, max(used))


def coerce_fields(entity_type: type, values: Mapping[str, Any]) -> dict[str, Any]:
    """Convert loosely typed snake_case ``values`` into ``entity_type``'s field types.

    Nested rows may be model instances or wire-shaped mappings; statuses may
    be enum members or their string values.

    Raises:
        ValueError: A field is unknown or a value has no model representation.
    """
    allowed = {item.name for item in dataclasses.fields(entity_type)}
    unknown = sorted(set(values) - allowed)
    if unknown:
        raise ValueError(f"Unknown {entity_type.__name__} field(s): {', '.join(unknown)}")

    optional = _OPTIONAL_TEXT_FIELDS.get(entity_type, ())
    coerced: dict[str, Any] = {}
    for name, value in values.items():
        if name == "id":
            coerced[name] = value
        elif name == "status":
            coerced[name] = _strict_enum(_STATUS_TYPES[entity_type], value)
        elif name == "rights":
            coerced[name] = _rights(value)
        elif name in _ROW_MODELS:
            coerced[name] = _rows(name, value, _ROW_MODELS[name])
        elif name == "completed":
            coerced[name] = bool(value)
        elif name in optional:
            coerced[name] = _optional_text(value)
        else:
            coerced[name] = "" if value is None else str(value)
    return coerced


def _strict_enum(enum_type: type[Enum], value: Any) -> Any:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        raise ValueError(f"Unknown {enum_type.__name__} value {value!r}") from None


def _rights(value: Any) -> BookRights:
    if isinstance(value, BookRights):
        return BookRights(**value.to_payload())
    if isinstance(value, Mapping):
        return BookRights.from_payload(value)
    raise ValueError(f"rights must be a mapping, got {type(value).__name__}")


def _rows(name: str, value: Any, model: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Sequence):
        raise ValueError(f"{name} must be a list, got {type(value).__name__}")
    rows: list[Any] = []
    for entry in value:
        if isinstance(entry, model):
            rows.append(model.from_payload(entry.to_payload()))
        elif isinstance(entry, Mapping):
            rows.append(model.from_payload(entry))
        else:
            raise ValueError(f"{name} entries must be mappings, got {type(entry).__name__}")
    return rows


_STATUS_TYPES: dict[type, type[Enum]] = {Release: ReleaseStatus, Book: BookStatus}
_OPTIONAL_TEXT_FIELDS: dict[type, tuple[str, ...]] = {Release: ("genre", "release_date")}
_ROW_MODELS: dict[str, Any] = {
    "splits": Collaborator,
    "chapters": Chapter,
    "illustrations": Illustration,
}


def _parse_entries(factory: Any, entries: Any, label: str) -> list[Any]:
    parsed: list[Any] = []
    for entry in _mappings(entries):
        try:
            parsed.append(factory(entry))
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Skipping malformed %s entry: %s", label, exc)
    return parsed


def _mappings(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return []
    return [entry for entry in value if isinstance(entry, Mapping)]


def _collaborators(value: Any) -> list[Collaborator]:
    return [Collaborator.from_payload(entry) for entry in _mappings(value)]


def _share_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


def _coerce_enum(enum_type: type[Enum], value: Any, default: Enum) -> Any:
    if value in (None, ""):
        return default
    try:
        return enum_type(value)
    except ValueError:
        LOGGER.warning("Unknown %s value %r; using %s", enum_type.__name__, value, default.value)
        return default


__all__ = [
    "ReleaseStatus",
    "BookStatus",
    "View",
    "ToastSeverity",
    "LOADING_KEYS",
    "Collaborator",
    "Task",
    "Release",
    "BookRights",
    "Chapter",
    "Illustration",
    "Book",
    "Snapshot",
    "IdAllocator",
    "coerce_fields",
]
