"""Domain layer: entities, the process-wide store and its notification queue.

Domain components:
    - DomainStore: single authority for persisted entities and UI flags
    - ToastQueue: ordered, self-expiring notifications
    - OnboardingState: tour progress pointer

All domain components:
    - Receive dependencies via constructor injection
    - Emit events to notify other layers of state changes
    - Have no dependency on any UI toolkit
"""

from __future__ import annotations

from .models import (
    Book,
    BookRights,
    BookStatus,
    Chapter,
    Collaborator,
    Illustration,
    Release,
    ReleaseStatus,
    Snapshot,
    Task,
    ToastSeverity,
    View,
)
from .onboarding import TOUR_STEPS, OnboardingState, TourStep
from .store import DomainStore
from .toasts import Toast, ToastQueue

__all__: list[str] = [
    "Book",
    "BookRights",
    "BookStatus",
    "Chapter",
    "Collaborator",
    "Illustration",
    "Release",
    "ReleaseStatus",
    "Snapshot",
    "Task",
    "ToastSeverity",
    "View",
    "TOUR_STEPS",
    "OnboardingState",
    "TourStep",
    "DomainStore",
    "Toast",
    "ToastQueue",
]
