"""
Error types raised by the checker.
"""

from __future__ import annotations

from typing import Optional


class CheckerError(Exception):
    """Base class for every error the checker raises on purpose."""


class ParseError(CheckerError, ValueError):
    """Malformed FMRI, catalog record or component definition."""

    def __init__(self, message: str, origin: Optional[str] = None) -> None:
        self.origin = origin
        if origin:
            message = f"{origin}: {message}"
        super().__init__(message)


class AssetError(CheckerError):
    """A catalog asset or component tree could not be read."""


class ConflictError(CheckerError):
    """Two definitions claim the same thing."""


class PersistenceError(CheckerError):
    """A persisted artifact could not be read or written."""


class SchemaVersionError(PersistenceError):
    """A persisted artifact was written with an incompatible schema."""

    def __init__(self, path: str, found: str, expected: str) -> None:
        self.found = found
        self.expected = expected
        super().__init__(
            f"{path}: schema version {found} is not supported (expected {expected})"
        )


class QueryError(CheckerError):
    """A query named something the graph does not know."""
