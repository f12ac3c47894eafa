"""Error hierarchy raised by the flashdeck core."""
from __future__ import annotations


class FlashdeckError(Exception):
    """Base class for domain level failures."""


class NotFoundError(FlashdeckError):
    """Raised when a deck, card or analytics row does not exist."""


class UnauthorizedError(FlashdeckError):
    """Raised when the caller has no access to the requested deck."""


class InvalidInputError(FlashdeckError, ValueError):
    """Raised when required fields are missing or out of range."""


class EmptyDeckError(FlashdeckError):
    """Raised when a quiz is requested for a deck without cards."""


class UpstreamUnavailableError(FlashdeckError):
    """Raised by text generators when the generative service fails."""


__all__ = [
    "EmptyDeckError",
    "FlashdeckError",
    "InvalidInputError",
    "NotFoundError",
    "UnauthorizedError",
    "UpstreamUnavailableError",
]
