"""
Custom exceptions for the allostat engine.

All of them describe local, recoverable conditions. Both concrete errors also
subclass ValueError so callers that already guard on ValueError keep working.
"""

from typing import List, Optional


class AllostatError(Exception):
    """Base exception for engine failures."""
    pass


class InsufficientDataError(AllostatError, ValueError):
    """Raised when fewer entries are available than a computation requires.

    Callers should defer the computation until more data arrives rather than
    retry immediately.
    """

    def __init__(self, required: int, available: int, message: Optional[str] = None):
        self.required = required
        self.available = available
        super().__init__(
            message or f"Need at least {required} entries, got {available}"
        )


class EntryValidationError(AllostatError, ValueError):
    """Raised when a candidate entry fails validation. Carries field-level messages."""

    def __init__(self, errors: List[str], message: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(message or "Invalid entry: " + "; ".join(self.errors))
