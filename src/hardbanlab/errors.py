"""Exception hierarchy shared across the store, editing and service layers."""

from __future__ import annotations


class HardbanLabError(Exception):
    """Base class for all errors raised by this package."""


class MissingCredentialsError(HardbanLabError):
    """Raised at startup when no generation API key is configured."""


class PersistenceError(HardbanLabError):
    """Raised by persistence gateways when a fetch or save fails.

    Attributes:
        status_code: HTTP status of the failed response, when there was one.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GenerationError(HardbanLabError):
    """Raised when the generation provider returns an unusable response."""


class SchemaValidationError(GenerationError):
    """Raised when a structured completion does not match its schema."""


class UnknownEntityKindError(HardbanLabError, ValueError):
    """Raised by ``DomainStore.mutate`` for unknown kinds or operations."""


class NavigationPendingError(HardbanLabError, RuntimeError):
    """Raised when a navigation is requested while one awaits confirmation."""


class NavigationStateError(HardbanLabError, RuntimeError):
    """Raised when a confirmation is resolved while nothing is pending."""


class SplitValidationError(HardbanLabError, ValueError):
    """Raised when an explicit split save does not total 100 percent.

    Attributes:
        total: The computed share total.
    """

    def __init__(self, total: float) -> None:
        super().__init__(f"Collaborator shares must total 100% (currently {total:g}%)")
        self.total = total


__all__ = [
    "HardbanLabError",
    "MissingCredentialsError",
    "PersistenceError",
    "GenerationError",
    "SchemaValidationError",
    "UnknownEntityKindError",
    "NavigationPendingError",
    "NavigationStateError",
    "SplitValidationError",
]
