"""
Checker orchestration: ``data run``, ``check-fmri`` and problem loading.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from .catalog import Catalog, ingest_catalog, merge_catalogs
from .components import ComponentIngest, ingest_components
from .config import CheckerConfig
from .detectors import run_detectors
from .errors import QueryError
from .fmri import FMRI, parse, satisfies
from .graph import Graph, build
from .interfaces import CatalogReader, ComponentScanner
from .models import Problem
from .persistence import load_graph, load_problems, save_run
from .readers import ComponentDirectoryScanner, Pkg5CatalogReader, read_catalogs


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    """Everything a ``data run`` produced."""

    graph: Graph
    problems: Tuple[Problem, ...]
    component_failures: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class DependentsResult:
    """Answer of a ``check-fmri`` query."""

    fmri: FMRI
    packages: Tuple[str, ...] = ()
    components: Tuple[str, ...] = ()

    @property
    def found(self) -> bool:
        return bool(self.packages or self.components)


def _accepts(constraint: Optional[FMRI], fmri: FMRI) -> bool:
    if fmri.version is None or constraint is None:
        return True
    return satisfies(constraint, fmri)


def find_dependents(graph: Graph, fmri: FMRI) -> DependentsResult:
    """Everything that directly or transitively depends on ``fmri``'s stem.

    With a versioned FMRI, direct dependents that need a newer version
    than the one given are left out. The queried name itself is never
    reported, even when it sits on a dependency cycle.
    """
    try:
        graph.node(fmri.name)
    except QueryError as e:
        logger.info("No dependents found: %s", e)
        return DependentsResult(fmri=fmri)

    direct: Set[str] = set()
    for source, kind in graph.reverse_neighbors(fmri.name):
        edge = graph.edge(source, fmri.name, kind)
        if _accepts(edge.constraint, fmri):
            direct.add(source)

    reached: Set[str] = set()
    queue = deque(sorted(direct))
    while queue:
        name = queue.popleft()
        if name in reached or name == fmri.name:
            continue
        reached.add(name)
        for source, _ in graph.reverse_neighbors(name):
            if source not in reached:
                queue.append(source)

    components = {
        graph.node(name).component.path
        for name in reached
        if graph.node(name).component is not None
    }
    for dependency in graph.component_dependencies:
        if dependency.target in reached:
            components.add(dependency.component)
        elif dependency.target == fmri.name and _accepts(dependency.constraint, fmri):
            components.add(dependency.component)
    if not reached and not components:
        logger.info("No dependents found for %s", fmri)
    return DependentsResult(
        fmri=fmri,
        packages=tuple(sorted(reached)),
        components=tuple(sorted(components)),
    )


class PackageChecker:
    """Run the whole analysis over a catalog set and a component tree."""

    def __init__(
        self,
        config: Optional[CheckerConfig] = None,
        catalog_reader: Optional[CatalogReader] = None,
        component_scanner: Optional[ComponentScanner] = None,
    ):
        """Initialize the checker.

        Args:
            config: Paths, URLs and tuning; defaults to ``CheckerConfig()``
            catalog_reader: Source of raw catalog records
            component_scanner: Source of raw component records
        """
        self.config = config or CheckerConfig()
        self.catalog_reader = catalog_reader or Pkg5CatalogReader()
        self.component_scanner = component_scanner or ComponentDirectoryScanner(
            use_make=self.config.use_make
        )

    def load_catalog(self) -> Catalog:
        raw = read_catalogs(self.config.catalog_paths(), self.catalog_reader)
        catalogs = []
        for name, records in raw.items():
            logger.info("Ingesting %s catalog (%d entries)", name, len(records))
            catalogs.append(ingest_catalog(records, workers=self.config.workers))
        return merge_catalogs(*catalogs)

    def load_components(self) -> ComponentIngest:
        records, scan_failures = self.component_scanner.scan(self.config.components_dir)
        ingest = ingest_components(records, workers=self.config.workers)
        if scan_failures:
            logger.warning("%d component definitions could not be read", len(scan_failures))
        return ComponentIngest(
            components=ingest.components,
            failures=tuple(scan_failures) + ingest.failures,
        )

    def analyze(self) -> RunResult:
        """Build the graph and run every detector without writing anything."""
        catalog = self.load_catalog()
        components = self.load_components()
        graph = build(
            catalog,
            components.components,
            variants=self.config.variants,
            workers=self.config.workers,
        )
        problems = run_detectors(graph, workers=self.config.workers)
        return RunResult(
            graph=graph,
            problems=tuple(problems),
            component_failures=components.failures,
        )

    def run(self) -> RunResult:
        """``data run``: analyze and persist both artifacts."""
        result = self.analyze()
        save_run(
            result.graph,
            result.problems,
            self.config.graph_path,
            self.config.problems_path,
        )
        return result

    def load_problems(self) -> List[Problem]:
        return load_problems(self.config.problems_path)

    def check_fmri(self, text: str) -> DependentsResult:
        """``check-fmri``: query the saved graph snapshot only."""
        fmri = parse(text)
        graph = load_graph(self.config.graph_path)
        return find_dependents(graph, fmri)
