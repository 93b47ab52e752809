"""
Catalog ingestion: raw catalog records to typed packages grouped by name.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .errors import ParseError
from .fmri import FMRI, parse
from .models import (
    Dependency,
    DependencyKind,
    Package,
    RawCatalogRecord,
    RawDependency,
    sort_dependencies,
)


logger = logging.getLogger(__name__)

# depend action types that expand into one dependency per listed target
_ANY_KINDS = {
    "require-any": DependencyKind.REQUIRE,
    "group-any": DependencyKind.GROUP,
}
# depend action types that do not describe a package relationship
_IGNORED_KINDS = {"origin", "exclude", "parent"}


def _version_order(package: Package) -> tuple:
    return (package.fmri.version.sort_key, package.fmri.publisher or "")


class Catalog:
    """All known versions of every published package, keyed by name."""

    def __init__(
        self,
        versions: Mapping[str, Iterable[Package]],
        conflicts: Iterable[FMRI] = (),
    ) -> None:
        self._versions: Dict[str, Tuple[Package, ...]] = {
            name: tuple(sorted(packages, key=_version_order))
            for name, packages in versions.items()
        }
        self.conflicts: Tuple[FMRI, ...] = tuple(sorted(set(conflicts)))

    def __contains__(self, name: object) -> bool:
        return name in self._versions

    def __len__(self) -> int:
        return len(self._versions)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def names(self) -> List[str]:
        return sorted(self._versions)

    def versions(self, name: str) -> Tuple[Package, ...]:
        """Every version of ``name`` in ascending order."""
        return self._versions.get(name, ())

    def newest(self, name: str) -> Optional[Package]:
        versions = self._versions.get(name)
        if not versions:
            return None
        return versions[-1]

    def get(self, fmri: FMRI) -> Optional[Package]:
        for package in self._versions.get(fmri.name, ()):
            if package.fmri == fmri:
                return package
        return None

    def packages(self) -> Iterator[Package]:
        for name in self.names():
            yield from self._versions[name]


def _parse_target(text: str, origin: str) -> FMRI:
    try:
        return parse(text)
    except ParseError as e:
        raise ParseError(str(e), origin=origin) from e


def _parse_dependency(raw: RawDependency, origin: str) -> List[Dependency]:
    variants = frozenset(raw.variants)
    if not raw.targets:
        raise ParseError(f"depend action of type {raw.kind!r} without fmri", origin=origin)

    if raw.kind in _IGNORED_KINDS:
        logger.debug("%s: ignoring depend action of type %s", origin, raw.kind)
        return []

    if raw.kind in _ANY_KINDS:
        kind = _ANY_KINDS[raw.kind]
        return [
            Dependency(kind=kind, target=_parse_target(t, origin), variants=variants)
            for t in raw.targets
        ]

    try:
        kind = DependencyKind(raw.kind)
    except ValueError:
        raise ParseError(f"unknown dependency type {raw.kind!r}", origin=origin) from None

    if len(raw.targets) != 1:
        raise ParseError(f"{raw.kind} dependency lists {len(raw.targets)} fmris", origin=origin)

    predicate = None
    if kind is DependencyKind.CONDITIONAL:
        if not raw.predicate:
            raise ParseError("conditional dependency without predicate", origin=origin)
        predicate = _parse_target(raw.predicate, origin)

    return [
        Dependency(
            kind=kind,
            target=_parse_target(raw.targets[0], origin),
            predicate=predicate,
            variants=variants,
        )
    ]


def parse_record(record: RawCatalogRecord) -> Package:
    """Turn one raw catalog record into a Package.

    A renamed record without a required successor is kept as renamed to
    itself.

    Raises:
        ParseError: if the FMRI or any dependency is malformed.
    """
    origin = record.origin or record.fmri
    fmri = _parse_target(record.fmri, origin)
    if fmri.version is None:
        raise ParseError(f"catalog entry {record.fmri!r} has no version", origin=origin)
    if record.obsolete and record.renamed:
        raise ParseError(f"{record.fmri} is both obsolete and renamed", origin=origin)

    dependencies: List[Dependency] = []
    for raw in record.dependencies:
        dependencies.extend(_parse_dependency(raw, origin))

    renamed_to = None
    if record.renamed:
        for dependency in dependencies:
            if dependency.kind is DependencyKind.REQUIRE:
                renamed_to = dependency.target.stem()
                break
        else:
            logger.warning("%s: renamed package %s names no successor", origin, record.fmri)
            renamed_to = fmri.stem()

    return Package(
        fmri=fmri,
        dependencies=sort_dependencies(dependencies),
        obsolete=record.obsolete,
        renamed_to=renamed_to,
        variants=frozenset(record.variants),
    )


class _CatalogBuilder:
    """Single-threaded fold of parsed packages into a Catalog."""

    def __init__(self) -> None:
        self.by_fmri: Dict[FMRI, Package] = {}
        self.conflicts: List[FMRI] = []

    def add(self, package: Package) -> None:
        existing = self.by_fmri.get(package.fmri)
        if existing is None:
            self.by_fmri[package.fmri] = package
            return

        if set(existing.dependencies) != set(package.dependencies):
            logger.debug("Conflicting duplicate definition of %s", package.fmri)
            self.conflicts.append(package.fmri)
        self.by_fmri[package.fmri] = Package(
            fmri=existing.fmri,
            dependencies=sort_dependencies(existing.dependencies + package.dependencies),
            obsolete=existing.obsolete or package.obsolete,
            renamed_to=existing.renamed_to or package.renamed_to,
            variants=existing.variants | package.variants,
        )

    def build(self, conflicts: Iterable[FMRI] = ()) -> Catalog:
        grouped: Dict[str, List[Package]] = {}
        for package in self.by_fmri.values():
            grouped.setdefault(package.name, []).append(package)
        return Catalog(grouped, conflicts=list(conflicts) + self.conflicts)


def ingest_catalog(records: Iterable[RawCatalogRecord], workers: int = 1) -> Catalog:
    """Parse raw records (optionally on a thread pool) and fold them in order.

    A single malformed record aborts ingestion of the whole catalog.
    """
    records = list(records)
    if workers > 1 and len(records) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            packages = list(executor.map(parse_record, records))
    else:
        packages = [parse_record(record) for record in records]

    builder = _CatalogBuilder()
    for package in packages:
        builder.add(package)
    catalog = builder.build()
    logger.info("Ingested %d catalog entries for %d package names", len(packages), len(catalog))
    return catalog


def merge_catalogs(*catalogs: Catalog) -> Catalog:
    """Union several catalogs; versions of a shared name merge."""
    builder = _CatalogBuilder()
    conflicts: List[FMRI] = []
    for catalog in catalogs:
        conflicts.extend(catalog.conflicts)
        for package in catalog.packages():
            builder.add(package)
    return builder.build(conflicts)
