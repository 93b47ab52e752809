"""
Interfaces for the collaborators that feed the checker.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Protocol, Tuple

from .models import RawCatalogRecord, RawComponent


class CatalogReader(Protocol):
    """Supply raw package records from catalog asset files."""

    def read_catalog(self, path: Path) -> Iterable[RawCatalogRecord]:
        ...


class ComponentScanner(Protocol):
    """Supply raw component records from a tree of build definitions.

    Malformed definitions are returned as ``(path, message)`` failures
    instead of aborting the scan.
    """

    def scan(self, root: Path) -> Tuple[List[RawComponent], List[Tuple[str, str]]]:
        ...
