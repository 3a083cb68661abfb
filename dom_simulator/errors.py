"""Exception hierarchy for the DOM Simulator."""

from __future__ import annotations


class DomSimulatorError(Exception):
    """Base class for all errors raised by this package."""


class UnsupportedVenueError(DomSimulatorError, ValueError):
    """Raised when a venue name does not map to a known protocol family."""


class InvalidSettingsError(DomSimulatorError, ValueError):
    """Raised when a FeedSettings field is out of range."""


class TransportError(DomSimulatorError):
    """Socket could not be opened, written to or closed."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
