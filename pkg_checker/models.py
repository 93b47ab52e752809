"""
Core data models for the package checker.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from .fmri import FMRI


class DependencyKind(str, Enum):
    """Type attribute of a depend action."""

    REQUIRE = "require"
    OPTIONAL = "optional"
    INCORPORATE = "incorporate"
    GROUP = "group"
    CONDITIONAL = "conditional"


class DependencyScope(str, Enum):
    """When a dependency is needed."""

    RUNTIME = "runtime"
    BUILD = "build"
    TEST = "test"
    SYSTEM_BUILD = "system-build"
    SYSTEM_TEST = "system-test"


VariantTags = FrozenSet[Tuple[str, str]]


@dataclass(frozen=True)
class Dependency:
    """One declared dependency."""

    kind: DependencyKind
    target: FMRI
    predicate: Optional[FMRI] = None
    variants: VariantTags = frozenset()
    scope: DependencyScope = DependencyScope.RUNTIME

    @property
    def sort_key(self) -> tuple:
        predicate_key = () if self.predicate is None else self.predicate.sort_key
        return (
            self.kind.value,
            self.target.sort_key,
            predicate_key,
            sorted(self.variants),
            self.scope.value,
        )

    def applies_to(self, variants: Optional[Dict[str, str]]) -> bool:
        """Whether the dependency is present for the given variant selection.

        ``None`` selects every variant.
        """
        if not variants:
            return True
        for name, value in self.variants:
            if name in variants and variants[name] != value:
                return False
        return True


def sort_dependencies(dependencies) -> Tuple[Dependency, ...]:
    return tuple(sorted(set(dependencies), key=lambda d: d.sort_key))


@dataclass(frozen=True)
class Package:
    """One catalog entry, keyed by its fully qualified FMRI."""

    fmri: FMRI
    dependencies: Tuple[Dependency, ...] = ()
    obsolete: bool = False
    renamed_to: Optional[FMRI] = None
    variants: VariantTags = frozenset()

    @property
    def name(self) -> str:
        return self.fmri.name

    @property
    def renamed(self) -> bool:
        return self.renamed_to is not None


@dataclass(frozen=True)
class Component:
    """A source build definition and the packages it produces."""

    path: str
    produces: Tuple[FMRI, ...] = ()
    dependencies: Tuple[Dependency, ...] = ()

    @property
    def product_names(self) -> Tuple[str, ...]:
        return tuple(sorted({fmri.name for fmri in self.produces}))


class ProblemKind(str, Enum):
    """Kinds of problems the detectors report."""

    MISSING_DEPENDENCY = "missing-dependency"
    MISSING_DEPENDENCY_BY_RENAMED = "missing-dependency-by-renamed"
    RENAMED_REFERENCE = "renamed-reference"
    OBSOLETE_REFERENCE = "obsolete-reference"
    OBSOLETE_REFERENCE_BY_RENAMED = "obsolete-reference-by-renamed"
    PARTLY_OBSOLETE_REFERENCE = "partly-obsolete-reference"
    PARTLY_OBSOLETE_REFERENCE_BY_RENAMED = "partly-obsolete-reference-by-renamed"
    DEPENDENCY_CYCLE = "dependency-cycle"
    DUPLICATE_DEFINITION = "duplicate-definition"
    ORPHAN_COMPONENT = "orphan-component"
    MISSING_COMPONENT = "missing-component"
    OBSOLETE_IN_COMPONENT = "obsolete-in-component"
    RENAMED_IN_COMPONENT = "renamed-in-component"
    UNPUBLISHED_PRODUCT = "unpublished-product"
    RENAMED_NEEDS_RENAMED = "renamed-needs-renamed"
    CONFLICTING_PUBLISHERS = "conflicting-publishers"
    USELESS_COMPONENT = "useless-component"


@dataclass(frozen=True)
class Problem:
    """A structural problem found in the dependency graph."""

    kind: ProblemKind
    subject: str
    related: Tuple[str, ...] = ()
    source_component: Optional[str] = None
    scope: Optional[DependencyScope] = None

    def describe(self) -> str:
        text = f"[{self.kind.value}] {self.subject}"
        if self.related:
            text += " -> " + ", ".join(self.related)
        if self.scope is not None:
            text += f" ({self.scope.value})"
        if self.source_component:
            text += f" (component {self.source_component})"
        return text


@dataclass(frozen=True)
class RawDependency:
    """A depend action as read from a catalog, before parsing."""

    kind: str
    targets: Tuple[str, ...]
    predicate: Optional[str] = None
    variants: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class RawCatalogRecord:
    """One catalog entry as supplied by a catalog reader."""

    fmri: str
    dependencies: Tuple[RawDependency, ...] = ()
    obsolete: bool = False
    renamed: bool = False
    variants: Tuple[Tuple[str, str], ...] = ()
    origin: str = ""


@dataclass(frozen=True)
class RawComponent:
    """One component definition as supplied by a component scanner."""

    path: str
    fmris: Tuple[str, ...] = ()
    dependencies: Tuple[Tuple[str, str], ...] = ()
