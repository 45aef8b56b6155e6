"""Edit buffers and dirty-state computation for the editing surfaces."""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, Sequence

from ..domain.models import Collaborator

LOGGER = logging.getLogger(__name__)

SHARE_PATTERN = re.compile(r"^\d*\.?\d*$")
MAX_SHARE = 100.0

SPLITS_SURFACE = "splits"
MANUSCRIPT_SURFACE = "manuscript"


# ----------------------------------------------------------------------
# Row helpers
# ----------------------------------------------------------------------
def normalize_rows(rows: Iterable[Collaborator]) -> list[tuple[str, str]]:
    """Drop rows whose fields are all blank and keep the rest in order.

    Only blank detection strips whitespace; kept rows compare by their raw
    values.
    """

    return [(row.name, row.share) for row in rows if not row.is_blank()]


def rows_dirty(buffer: Iterable[Collaborator], saved: Iterable[Collaborator]) -> bool:
    return normalize_rows(buffer) != normalize_rows(saved)


def sanitize_share(value: str) -> str | None:
    """Return the accepted share text, or None when the input is rejected.

    Only digits with at most one decimal point are accepted. Anything above
    100 is clamped to ``"100"``.
    """

    if value and not SHARE_PATTERN.match(value):
        return None
    if _parse_share(value) > MAX_SHARE:
        return "100"
    return value


def splits_total(rows: Iterable[Collaborator]) -> float:
    """Sum every parseable share; unparseable values count as zero."""

    return sum(_parse_share(row.share) for row in rows)


def _parse_share(value: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


# ----------------------------------------------------------------------
# Buffers
# ----------------------------------------------------------------------
class SplitsEditBuffer:
    """Working copy of an entity's collaborator rows."""

    def __init__(self, saved: Iterable[Collaborator] = ()) -> None:
        self._rows: list[Collaborator] = []
        self.mount(saved)

    @property
    def rows(self) -> tuple[Collaborator, ...]:
        return tuple(self._rows)

    def mount(self, saved: Iterable[Collaborator]) -> None:
        """Rebuild the buffer from the entity's persisted rows."""

        self._rows = [Collaborator(name=row.name, share=row.share) for row in saved]

    def add_row(self) -> int:
        self._rows.append(Collaborator())
        return len(self._rows) - 1

    def remove_row(self, index: int) -> None:
        del self._rows[index]

    def set_name(self, index: int, value: str) -> None:
        self._rows[index].name = value

    def set_share(self, index: int, value: str) -> bool:
        """Apply a share edit. Returns False when the input was rejected."""

        accepted = sanitize_share(value)
        if accepted is None:
            LOGGER.debug("Rejected share input %r for row %d", value, index)
            return False
        self._rows[index].share = accepted
        return True

    def cleaned_rows(self) -> list[Collaborator]:
        """Copies of the non-blank rows, in order."""

        return [Collaborator(name=row.name, share=row.share) for row in self._rows if not row.is_blank()]

    def total(self) -> float:
        return splits_total(self._rows)

    def differs_from(self, saved: Sequence[Collaborator]) -> bool:
        return rows_dirty(self._rows, saved)


class ManuscriptEditBuffer:
    """Live text of the selected chapter plus the baseline it started from.

    ``generation`` increases on every mount so asynchronous results can tell
    whether the buffer they were computed from is still on screen.
    """

    def __init__(self, text: str = "") -> None:
        self._text = text
        self._baseline = text
        self._undo: str | None = None
        self._generation = 0

    @property
    def text(self) -> str:
        return self._text

    @property
    def baseline(self) -> str:
        return self._baseline

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def can_undo(self) -> bool:
        return self._undo is not None

    @property
    def is_dirty(self) -> bool:
        return self._text != self._baseline

    def mount(self, text: str) -> None:
        self._text = text
        self._baseline = text
        self._undo = None
        self._generation += 1

    def edit(self, text: str) -> None:
        self._text = text

    def apply_replacement(self, text: str) -> None:
        """Replace the text and remember the previous one for a single undo."""

        self._undo = self._text
        self._text = text

    def undo(self) -> str | None:
        if self._undo is None:
            return None
        self._text, self._undo = self._undo, None
        return self._text

    def mark_committed(self) -> None:
        self._baseline = self._text

    def revert(self) -> str:
        self._text = self._baseline
        self._undo = None
        return self._text


# ----------------------------------------------------------------------
# Tracker
# ----------------------------------------------------------------------
class DirtyStateTracker:
    """Answers "is the active editing surface dirty?" on every read.

    Each surface registers a check that compares its buffer against the
    entity currently held by the store. A surface that is not active is
    never dirty.
    """

    def __init__(self) -> None:
        self._checks: dict[str, Callable[[], bool]] = {}
        self._active: str | None = None

    @property
    def active_surface(self) -> str | None:
        return self._active

    @property
    def surfaces(self) -> tuple[str, ...]:
        return tuple(self._checks)

    def register(self, surface: str, check: Callable[[], bool]) -> None:
        self._checks[surface] = check

    def activate(self, surface: str | None) -> None:
        if surface is not None and surface not in self._checks:
            raise KeyError(f"Unknown editing surface '{surface}'")
        self._active = surface

    @property
    def is_dirty(self) -> bool:
        if self._active is None:
            return False
        return bool(self._checks[self._active]())


__all__ = [
    "SHARE_PATTERN",
    "SPLITS_SURFACE",
    "MANUSCRIPT_SURFACE",
    "normalize_rows",
    "rows_dirty",
    "sanitize_share",
    "splits_total",
    "SplitsEditBuffer",
    "ManuscriptEditBuffer",
    "DirtyStateTracker",
]
