"""Editing layer: edit buffers, dirty tracking and the navigation guard."""

from __future__ import annotations

from .dirty import (
    DirtyStateTracker,
    ManuscriptEditBuffer,
    SplitsEditBuffer,
    normalize_rows,
    rows_dirty,
    sanitize_share,
    splits_total,
)
from .guard import GuardState, NavigationGuard, PendingNavigation
from .session import MUSIC_TABS, PUBLISHING_TABS, ModuleSession, MusicSession, PublishingSession

__all__: list[str] = [
    "DirtyStateTracker",
    "ManuscriptEditBuffer",
    "SplitsEditBuffer",
    "normalize_rows",
    "rows_dirty",
    "sanitize_share",
    "splits_total",
    "GuardState",
    "NavigationGuard",
    "PendingNavigation",
    "MUSIC_TABS",
    "PUBLISHING_TABS",
    "ModuleSession",
    "MusicSession",
    "PublishingSession",
]
