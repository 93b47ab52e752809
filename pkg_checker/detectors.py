"""
Problem detectors.

Every pass reads the frozen graph, never sees another pass's output and
walks names in lexicographic order, so an unchanged input always yields
the same problem sequence.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import (
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from .graph import Graph
from .models import DependencyKind, DependencyScope, Package, Problem, ProblemKind


logger = logging.getLogger(__name__)

Detector = Callable[[Graph], List[Problem]]


def _owner(graph: Graph, name: str) -> Optional[str]:
    component = graph.node(name).component
    return component.path if component is not None else None


def _package(graph: Graph, name: str) -> Optional[Package]:
    return graph.node(name).package


class Reference(NamedTuple):
    """One dependency in one scope, from a package name or a product-less component."""

    source: str
    target: str
    kind: DependencyKind
    scope: DependencyScope
    source_component: Optional[str]
    source_package: Optional[Package]


def _in_scope_order(scopes: FrozenSet[DependencyScope]) -> List[DependencyScope]:
    return [scope for scope in DependencyScope if scope in scopes]


def _references(graph: Graph) -> Iterator[Reference]:
    """Edges in key order, then dependencies of components without products."""
    for edge in graph.edges():
        source_component = _owner(graph, edge.source)
        source_package = _package(graph, edge.source)
        for scope in _in_scope_order(edge.scopes):
            yield Reference(edge.source, edge.target, edge.kind, scope, source_component, source_package)
    scope_rank = {scope: rank for rank, scope in enumerate(DependencyScope)}
    unattached = sorted(
        graph.component_dependencies,
        key=lambda d: (d.component, d.target, d.kind.value, scope_rank[d.scope]),
    )
    for dependency in unattached:
        yield Reference(
            dependency.component,
            dependency.target,
            dependency.kind,
            dependency.scope,
            dependency.component,
            None,
        )


def detect_missing_dependencies(graph: Graph) -> List[Problem]:
    """Dependencies pointing at names nothing defines."""
    problems = []
    for ref in _references(graph):
        if not graph.node(ref.target).unresolved:
            continue
        if ref.source_package is not None and ref.source_package.renamed:
            kind = ProblemKind.MISSING_DEPENDENCY_BY_RENAMED
        else:
            kind = ProblemKind.MISSING_DEPENDENCY
        problems.append(
            Problem(
                kind,
                subject=ref.target,
                related=(ref.source,),
                source_component=ref.source_component,
                scope=ref.scope,
            )
        )
    return problems


def detect_renamed_references(graph: Graph) -> List[Problem]:
    """Dependencies that still point at a renamed package instead of its successor."""
    problems = []
    seen: Set[Tuple[str, str, DependencyScope]] = set()
    for ref in _references(graph):
        target = _package(graph, ref.target)
        if target is None or target.renamed_to is None:
            continue
        if ref.target == target.renamed_to.name or (ref.source, ref.target, ref.scope) in seen:
            continue
        source = ref.source_package
        if source is not None and (source.obsolete or source.renamed):
            continue
        seen.add((ref.source, ref.target, ref.scope))
        problems.append(
            Problem(
                ProblemKind.RENAMED_REFERENCE,
                subject=ref.source,
                related=(target.renamed_to.name,),
                source_component=ref.source_component,
                scope=ref.scope,
            )
        )
    return problems


def _obsolete_kind(graph: Graph, name: str, source: Optional[Package]) -> Optional[ProblemKind]:
    node = graph.node(name)
    target = node.package
    if target is None or not target.obsolete:
        return None
    partly = any(not p.obsolete and not p.renamed for p in node.history)
    by_renamed = source is not None and source.renamed
    if partly:
        if by_renamed:
            return ProblemKind.PARTLY_OBSOLETE_REFERENCE_BY_RENAMED
        return ProblemKind.PARTLY_OBSOLETE_REFERENCE
    if by_renamed:
        return ProblemKind.OBSOLETE_REFERENCE_BY_RENAMED
    return ProblemKind.OBSOLETE_REFERENCE


def detect_obsolete_references(graph: Graph) -> List[Problem]:
    """Dependencies on names whose newest version is obsolete.

    A name that still has an active older version is only partly obsolete.
    Incorporations and obsolete dependents are exempt.
    """
    problems = []
    seen: Set[Tuple[str, str, DependencyScope]] = set()
    for ref in _references(graph):
        if ref.kind is DependencyKind.INCORPORATE:
            continue
        if ref.source_package is not None and ref.source_package.obsolete:
            continue
        kind = _obsolete_kind(graph, ref.target, ref.source_package)
        if kind is None or (ref.source, ref.target, ref.scope) in seen:
            continue
        seen.add((ref.source, ref.target, ref.scope))
        problems.append(
            Problem(
                kind,
                subject=ref.source,
                related=(ref.target,),
                source_component=ref.source_component,
                scope=ref.scope,
            )
        )
    return problems


def strongly_connected_components(
    names: Iterable[str], successors: Callable[[str], Iterable[str]]
) -> List[List[str]]:
    """Tarjan's algorithm, iterative so deep chains do not hit the recursion limit."""
    index: Dict[str, int] = {}
    lowlink: Dict[str, int] = {}
    on_stack: Set[str] = set()
    stack: List[str] = []
    result: List[List[str]] = []
    counter = 0

    for root in names:
        if root in index:
            continue
        index[root] = lowlink[root] = counter
        counter += 1
        stack.append(root)
        on_stack.add(root)
        work = [(root, iter(successors(root)))]

        while work:
            node, children = work[-1]
            for child in children:
                if child not in index:
                    index[child] = lowlink[child] = counter
                    counter += 1
                    stack.append(child)
                    on_stack.add(child)
                    work.append((child, iter(successors(child))))
                    break
                if child in on_stack:
                    lowlink[node] = min(lowlink[node], index[child])
            else:
                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node])
                if lowlink[node] == index[node]:
                    component = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    result.append(component)
    return result


def detect_cycles(graph: Graph) -> List[Problem]:
    """Cycles over Require edges; one problem per cycle member."""

    def successors(name: str) -> List[str]:
        return [target for target, _ in graph.neighbors(name, DependencyKind.REQUIRE)]

    cycles = sorted(
        sorted(scc)
        for scc in strongly_connected_components(graph.names(), successors)
        if len(scc) > 1
    )
    problems = []
    for members in cycles:
        for name in members:
            problems.append(
                Problem(
                    ProblemKind.DEPENDENCY_CYCLE,
                    subject=name,
                    related=tuple(members),
                    source_component=_owner(graph, name),
                )
            )
    return problems


def detect_duplicate_definitions(graph: Graph) -> List[Problem]:
    """Products claimed twice and catalog entries defined twice differently."""
    problems = []
    for conflict in sorted(graph.product_conflicts, key=lambda c: (c.name, c.kept, c.rejected)):
        problems.append(
            Problem(
                ProblemKind.DUPLICATE_DEFINITION,
                subject=conflict.name,
                related=(conflict.kept, conflict.rejected),
                source_component=conflict.rejected,
            )
        )
    for fmri in graph.catalog_conflicts:
        problems.append(Problem(ProblemKind.DUPLICATE_DEFINITION, subject=str(fmri)))
    return problems


def _components_by_path(graph: Graph):
    return sorted(graph.components, key=lambda c: c.path)


def _published(graph: Graph, name: str) -> bool:
    return bool(graph.node(name).history)


def detect_orphan_components(graph: Graph) -> List[Problem]:
    """Components producing nothing, or nothing that was ever published."""
    problems = []
    for component in _components_by_path(graph):
        products = component.product_names
        if not products:
            problems.append(
                Problem(ProblemKind.ORPHAN_COMPONENT, subject=component.path, source_component=component.path)
            )
        elif not any(_published(graph, name) for name in products):
            problems.append(
                Problem(
                    ProblemKind.ORPHAN_COMPONENT,
                    subject=component.path,
                    related=products,
                    source_component=component.path,
                )
            )
    return problems


def detect_missing_components(graph: Graph) -> List[Problem]:
    """Active packages that no component builds."""
    if not graph.components:
        return []
    problems = []
    for node in graph.nodes():
        package = node.package
        if package is None or node.component is not None:
            continue
        if package.obsolete or package.renamed:
            continue
        problems.append(Problem(ProblemKind.MISSING_COMPONENT, subject=node.name))
    return problems


def detect_retired_products(graph: Graph) -> List[Problem]:
    """Components still building packages that are obsolete or renamed."""
    problems = []
    for node in graph.nodes():
        package = node.package
        if package is None or node.component is None:
            continue
        if package.obsolete:
            problems.append(
                Problem(
                    ProblemKind.OBSOLETE_IN_COMPONENT,
                    subject=node.name,
                    source_component=node.component.path,
                )
            )
        elif package.renamed_to is not None:
            problems.append(
                Problem(
                    ProblemKind.RENAMED_IN_COMPONENT,
                    subject=node.name,
                    related=(package.renamed_to.name,),
                    source_component=node.component.path,
                )
            )
    return problems


def detect_unpublished_products(graph: Graph) -> List[Problem]:
    problems = []
    for component in _components_by_path(graph):
        products = component.product_names
        published = [name for name in products if _published(graph, name)]
        if not published:
            # reported as an orphan component
            continue
        for name in products:
            if name not in published:
                problems.append(
                    Problem(
                        ProblemKind.UNPUBLISHED_PRODUCT,
                        subject=name,
                        source_component=component.path,
                    )
                )
    return problems


def detect_renamed_chains(graph: Graph) -> List[Problem]:
    """Renamed packages that depend on other renamed packages."""
    problems = []
    seen: Set[Tuple[str, str]] = set()
    for edge in graph.edges():
        source = _package(graph, edge.source)
        target = _package(graph, edge.target)
        if source is None or target is None or not (source.renamed and target.renamed):
            continue
        if (edge.source, edge.target) in seen:
            continue
        seen.add((edge.source, edge.target))
        problems.append(
            Problem(
                ProblemKind.RENAMED_NEEDS_RENAMED,
                subject=edge.source,
                related=(edge.target,),
                source_component=_owner(graph, edge.source),
            )
        )
    return problems


def detect_conflicting_publishers(graph: Graph) -> List[Problem]:
    """Names still actively published by more than one publisher."""
    problems = []
    for node in graph.nodes():
        newest: Dict[str, Package] = {}
        for package in node.history:
            # history is in ascending version order
            newest[package.fmri.publisher or ""] = package
        if len(newest) < 2:
            continue

        active = [p for p in newest.values() if not p.obsolete]
        obsolete = [p for p in newest.values() if p.obsolete]
        conflicting = len(active) > 1 or (
            len(active) == 1
            and any(o.fmri.version > active[0].fmri.version for o in obsolete)
        )
        if conflicting:
            problems.append(
                Problem(
                    ProblemKind.CONFLICTING_PUBLISHERS,
                    subject=node.name,
                    related=tuple(sorted(newest)),
                    source_component=_owner(graph, node.name),
                )
            )
    return problems


def detect_useless_components(graph: Graph) -> List[Problem]:
    """Components whose packages only their own packages or incorporations need."""
    needed_by_unattached = {
        dependency.target
        for dependency in graph.component_dependencies
        if dependency.kind is not DependencyKind.INCORPORATE
    }
    problems = []
    for component in _components_by_path(graph):
        products = component.product_names
        if not products:
            continue
        packages = [_package(graph, name) for name in products]
        if any(p is None or p.obsolete or p.renamed for p in packages):
            continue

        needed = any(name in needed_by_unattached for name in products) or any(
            kind is not DependencyKind.INCORPORATE and source not in products
            for name in products
            for source, kind in graph.reverse_neighbors(name)
        )
        if not needed:
            problems.append(
                Problem(
                    ProblemKind.USELESS_COMPONENT,
                    subject=component.path,
                    related=products,
                    source_component=component.path,
                )
            )
    return problems


PIPELINE: Tuple[Tuple[str, Detector], ...] = (
    ("missing-dependency", detect_missing_dependencies),
    ("renamed-reference", detect_renamed_references),
    ("obsolete-reference", detect_obsolete_references),
    ("cycle", detect_cycles),
    ("duplicate-definition", detect_duplicate_definitions),
    ("orphan-component", detect_orphan_components),
    ("missing-component", detect_missing_components),
    ("retired-product", detect_retired_products),
    ("unpublished-product", detect_unpublished_products),
    ("renamed-chain", detect_renamed_chains),
    ("conflicting-publishers", detect_conflicting_publishers),
    ("useless-component", detect_useless_components),
)


def run_detectors(
    graph: Graph,
    workers: int = 1,
    passes: Sequence[Tuple[str, Detector]] = PIPELINE,
) -> List[Problem]:
    """Run every pass and concatenate their problems in pipeline order."""
    if workers > 1 and len(passes) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(lambda item: item[1](graph), passes))
    else:
        results = [detector(graph) for _, detector in passes]

    problems: List[Problem] = []
    for (name, _), found in zip(passes, results):
        logger.debug("Pass %s found %d problems", name, len(found))
        problems.extend(found)
    logger.info("Found %d problems", len(problems))
    return problems
