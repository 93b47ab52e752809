"""
OpenIndiana Package Checker

Finds structural problems in the package dependency graph of an
OpenIndiana repository: missing targets, cycles, references to renamed
or obsolete packages and mismatches between components and catalogs.
"""

__version__ = "0.1.0"

from .cli import main

__all__ = ["main"]
