"""
Dependency graph over package names.

Nodes are package names. Each node is in exactly one state:

- ``Resolved``: the name is cataloged; carries its newest Package.
- ``ComponentOnly``: only a component claims the name as a product.
- ``Unresolved``: something depends on the name but nothing defines it.

Edges are ``(source, target, kind)`` triples. A graph is never mutated
after ``build`` returns and can be shared between threads freely.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .catalog import Catalog
from .errors import ConflictError, QueryError
from .fmri import FMRI
from .models import Component, DependencyKind, DependencyScope, Package


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolved:
    package: Package


@dataclass(frozen=True)
class Unresolved:
    pass


@dataclass(frozen=True)
class ComponentOnly:
    component: Component


NodeState = Union[Resolved, Unresolved, ComponentOnly]


@dataclass(frozen=True)
class Node:
    """A package name in the graph."""

    name: str
    state: NodeState
    component: Optional[Component] = None
    history: Tuple[Package, ...] = ()

    @property
    def package(self) -> Optional[Package]:
        if isinstance(self.state, Resolved):
            return self.state.package
        return None

    @property
    def unresolved(self) -> bool:
        return isinstance(self.state, Unresolved)


@dataclass(frozen=True)
class Edge:
    """A dependency from one name to another.

    ``constraint`` is the first FMRI seen for the edge; it is not part of
    the edge's identity. ``scopes`` collects when the dependency is needed
    over every declaration merged into the edge.
    """

    source: str
    target: str
    kind: DependencyKind
    constraint: Optional[FMRI] = field(default=None, compare=False)
    scopes: FrozenSet[DependencyScope] = frozenset({DependencyScope.RUNTIME})

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.source, self.target, self.kind.value)


@dataclass(frozen=True)
class ComponentDependency:
    """A dependency declared by a component that produces no packages.

    Without a product there is no node to start an edge from, so the
    dependency is kept on the graph as is.
    """

    component: str
    target: str
    kind: DependencyKind
    scope: DependencyScope
    constraint: Optional[FMRI] = field(default=None, compare=False)


@dataclass(frozen=True)
class ProductConflict:
    """A product name claimed by a second component."""

    name: str
    kept: str
    rejected: str


Neighbor = Tuple[str, DependencyKind]


class Graph:
    """Immutable dependency graph."""

    def __init__(
        self,
        nodes: Iterable[Node],
        edges: Iterable[Edge],
        components: Sequence[Component] = (),
        product_conflicts: Iterable[ProductConflict] = (),
        catalog_conflicts: Iterable[FMRI] = (),
        component_dependencies: Iterable[ComponentDependency] = (),
    ) -> None:
        node_map = {node.name: node for node in nodes}
        edge_map = merge_edges(edges)

        forward: Dict[str, List[Neighbor]] = {}
        reverse: Dict[str, List[Neighbor]] = {}
        for edge in edge_map.values():
            forward.setdefault(edge.source, []).append((edge.target, edge.kind))
            reverse.setdefault(edge.target, []).append((edge.source, edge.kind))

        self._nodes: Mapping[str, Node] = MappingProxyType(node_map)
        self._edges: Mapping[Tuple[str, str, str], Edge] = MappingProxyType(edge_map)
        self._forward: Mapping[str, Tuple[Neighbor, ...]] = MappingProxyType(
            {name: tuple(sorted(n, key=_neighbor_key)) for name, n in forward.items()}
        )
        self._reverse: Mapping[str, Tuple[Neighbor, ...]] = MappingProxyType(
            {name: tuple(sorted(n, key=_neighbor_key)) for name, n in reverse.items()}
        )
        self.components: Tuple[Component, ...] = tuple(components)
        self.product_conflicts: Tuple[ProductConflict, ...] = tuple(product_conflicts)
        self.catalog_conflicts: Tuple[FMRI, ...] = tuple(sorted(set(catalog_conflicts)))
        self.component_dependencies: Tuple[ComponentDependency, ...] = tuple(
            dict.fromkeys(component_dependencies)
        )

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Graph):
            return NotImplemented
        return (
            dict(self._nodes) == dict(other._nodes)
            and set(self._edges.values()) == set(other._edges.values())
            and self.components == other.components
            and self.product_conflicts == other.product_conflicts
            and self.catalog_conflicts == other.catalog_conflicts
            and self.component_dependencies == other.component_dependencies
        )

    __hash__ = None

    def __repr__(self) -> str:
        return f"Graph(nodes={len(self._nodes)}, edges={len(self._edges)})"

    def names(self) -> List[str]:
        return sorted(self._nodes)

    def nodes(self) -> List[Node]:
        return [self._nodes[name] for name in self.names()]

    def node(self, name: str) -> Node:
        try:
            return self._nodes[name]
        except KeyError:
            raise QueryError(f"no package named {name!r} in the graph") from None

    def edges(self, kind: Optional[DependencyKind] = None) -> List[Edge]:
        """Edges in (source, target, kind) order."""
        return [
            self._edges[key]
            for key in sorted(self._edges)
            if kind is None or self._edges[key].kind is kind
        ]

    def edge(self, source: str, target: str, kind: DependencyKind) -> Optional[Edge]:
        return self._edges.get((source, target, kind.value))

    def neighbors(self, name: str, kind: Optional[DependencyKind] = None) -> Tuple[Neighbor, ...]:
        """Names ``name`` depends on."""
        self.node(name)
        return _filter(self._forward.get(name, ()), kind)

    def reverse_neighbors(
        self, name: str, kind: Optional[DependencyKind] = None
    ) -> Tuple[Neighbor, ...]:
        """Names that depend on ``name``."""
        self.node(name)
        return _filter(self._reverse.get(name, ()), kind)


def _neighbor_key(neighbor: Neighbor) -> Tuple[str, str]:
    return (neighbor[0], neighbor[1].value)


def _filter(neighbors: Tuple[Neighbor, ...], kind: Optional[DependencyKind]) -> Tuple[Neighbor, ...]:
    if kind is None:
        return neighbors
    return tuple(n for n in neighbors if n[1] is kind)


def merge_edges(edges: Iterable[Edge]) -> Dict[Tuple[str, str, str], Edge]:
    """Collapse edges sharing a key, keeping the first constraint and every scope."""
    merged: Dict[Tuple[str, str, str], Edge] = {}
    for edge in edges:
        first = merged.get(edge.key)
        if first is None:
            merged[edge.key] = edge
        elif not edge.scopes <= first.scopes:
            merged[edge.key] = replace(first, scopes=first.scopes | edge.scopes)
    return merged


def _package_edges(package: Package, variants: Optional[Dict[str, str]]) -> List[Edge]:
    edges = []
    for dependency in package.dependencies:
        if not dependency.applies_to(variants):
            continue
        edges.append(Edge(package.name, dependency.target.name, dependency.kind, dependency.target))
        if dependency.predicate is not None:
            edges.append(
                Edge(package.name, dependency.predicate.name, dependency.kind, dependency.predicate)
            )
    return edges


def _component_edges(component: Component, variants: Optional[Dict[str, str]]) -> List[Edge]:
    edges = []
    for name in component.product_names:
        for dependency in component.dependencies:
            if dependency.applies_to(variants):
                edges.append(
                    Edge(
                        name,
                        dependency.target.name,
                        dependency.kind,
                        dependency.target,
                        frozenset({dependency.scope}),
                    )
                )
    return edges


def _unattached_dependencies(
    component: Component, variants: Optional[Dict[str, str]]
) -> List[ComponentDependency]:
    if component.product_names:
        return []
    return [
        ComponentDependency(
            component.path,
            dependency.target.name,
            dependency.kind,
            dependency.scope,
            dependency.target,
        )
        for dependency in component.dependencies
        if dependency.applies_to(variants)
    ]


def _claim(claims: Dict[str, Component], name: str, component: Component) -> None:
    owner = claims.get(name)
    if owner is not None:
        raise ConflictError(f"{name} is claimed by {owner.path} and {component.path}")
    claims[name] = component


def build(
    catalog: Catalog,
    components: Sequence[Component] = (),
    variants: Optional[Dict[str, str]] = None,
    workers: int = 1,
) -> Graph:
    """Build the dependency graph from a catalog and components.

    Args:
        catalog: Merged catalog of every published package
        components: Components in ingestion order; the first component
            to claim a product keeps it
        variants: Variant selection such as ``{"variant.arch": "i386"}``;
            ``None`` keeps every dependency regardless of its variant tags
        workers: Threads used to collect per-package edges

    Returns:
        The frozen Graph
    """
    names = set(catalog.names())

    claims: Dict[str, Component] = {}
    product_conflicts: List[ProductConflict] = []
    for component in components:
        for name in component.product_names:
            names.add(name)
            try:
                _claim(claims, name, component)
            except ConflictError as e:
                logger.debug("%s", e)
                product_conflicts.append(ProductConflict(name, claims[name].path, component.path))

    newest = [catalog.newest(name) for name in catalog.names()]
    if workers > 1 and len(newest) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            bins = list(executor.map(lambda p: _package_edges(p, variants), newest))
    else:
        bins = [_package_edges(package, variants) for package in newest]
    bins.extend(_component_edges(component, variants) for component in components)
    edges = merge_edges(edge for edge_bin in bins for edge in edge_bin)

    unattached: List[ComponentDependency] = []
    for component in components:
        unattached.extend(_unattached_dependencies(component, variants))

    targets = {edge.target for edge in edges.values()}
    targets.update(dependency.target for dependency in unattached)
    unresolved = targets - names
    nodes = []
    for name in sorted(names | unresolved):
        package = catalog.newest(name)
        component = claims.get(name)
        if package is not None:
            state: NodeState = Resolved(package)
        elif component is not None:
            state = ComponentOnly(component)
        else:
            state = Unresolved()
        nodes.append(Node(name, state, component, catalog.versions(name)))

    logger.info(
        "Built graph with %d nodes (%d unresolved) and %d edges",
        len(nodes),
        len(unresolved),
        len(edges),
    )
    return Graph(
        nodes,
        edges.values(),
        components=components,
        product_conflicts=product_conflicts,
        catalog_conflicts=catalog.conflicts,
        component_dependencies=unattached,
    )
