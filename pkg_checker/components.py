"""
Component ingestion: raw component definitions to typed components.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Tuple, Union

from .errors import ParseError
from .fmri import parse
from .models import (
    Component,
    Dependency,
    DependencyKind,
    DependencyScope,
    RawComponent,
    sort_dependencies,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComponentIngest:
    """Result of ingesting component definitions."""

    components: Tuple[Component, ...]
    failures: Tuple[Tuple[str, str], ...] = ()


def parse_component(raw: RawComponent) -> Component:
    """Turn one raw component record into a Component.

    Products and dependencies are reduced to stems; resolution against
    the catalog happens in the graph.

    Raises:
        ParseError: if the path is empty or any FMRI is malformed.
    """
    if not raw.path:
        raise ParseError("component without path")

    try:
        produces = tuple(sorted({parse(text).stem() for text in raw.fmris}))
        dependencies = []
        for text, scope in raw.dependencies:
            dependencies.append(
                Dependency(
                    kind=DependencyKind.REQUIRE,
                    target=parse(text).stem(),
                    scope=DependencyScope(scope),
                )
            )
    except ValueError as e:
        # ParseError is a ValueError; so is an unknown scope
        raise ParseError(str(e), origin=raw.path) from e

    return Component(
        path=raw.path,
        produces=produces,
        dependencies=sort_dependencies(dependencies),
    )


def _parse_or_fail(raw: RawComponent) -> Union[Component, Tuple[str, str]]:
    try:
        return parse_component(raw)
    except ParseError as e:
        return (raw.path, str(e))


def ingest_components(records: Iterable[RawComponent], workers: int = 1) -> ComponentIngest:
    """Parse component records, skipping malformed ones.

    Records are ordered by path first so that conflict resolution later
    on does not depend on filesystem enumeration order.
    """
    records = sorted(records, key=lambda r: r.path)
    if workers > 1 and len(records) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(_parse_or_fail, records))
    else:
        results = [_parse_or_fail(record) for record in records]

    components: List[Component] = []
    failures: List[Tuple[str, str]] = []
    for result in results:
        if isinstance(result, Component):
            components.append(result)
        else:
            failures.append(result)

    if failures:
        logger.warning("Skipped %d malformed component definitions", len(failures))
        for path, message in failures:
            logger.debug("Skipped component %s: %s", path, message)
    logger.info("Ingested %d components", len(components))
    return ComponentIngest(components=tuple(components), failures=tuple(failures))
