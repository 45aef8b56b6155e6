"""Onboarding tour steps and progress pointer."""

from __future__ import annotations

from dataclasses import dataclass

from .models import View


@dataclass(frozen=True, slots=True)
class TourStep:
    title: str
    view: View
    target_tab: str | None = None


TOUR_STEPS: tuple[TourStep, ...] = (
    TourStep("Welcome to Your Creative Universe!", View.DASHBOARD),
    TourStep("The Music Publishing Hub", View.MUSIC),
    TourStep("AI-Powered Studio", View.MUSIC, target_tab="studio"),
    TourStep("Digital Publishing for Authors", View.DASHBOARD),
    TourStep("The Digital Publishing Hub", View.PUBLISHING),
    TourStep("Your AI Writing Partner", View.PUBLISHING, target_tab="studio"),
    TourStep("You're Ready to Go!", View.DASHBOARD),
)


@dataclass(slots=True)
class OnboardingState:
    """Where the user is in the tour.

    ``step_index`` is ``-1`` whenever the tour is not on screen.
    """

    step_index: int = -1
    complete: bool = False
    active_tab_override: str | None = None

    @property
    def current_step(self) -> TourStep | None:
        if 0 <= self.step_index < len(TOUR_STEPS):
            return TOUR_STEPS[self.step_index]
        return None

    @property
    def is_last_step(self) -> bool:
        return self.step_index == len(TOUR_STEPS) - 1


__all__ = ["TourStep", "TOUR_STEPS", "OnboardingState"]
