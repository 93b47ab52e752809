"""
Graph snapshot and problem report files.

Both files start with a ``<magic> <schema-version>`` header line followed
by a JSON payload. Files are written to a temporary name next to the
target and renamed into place, so a failed run never leaves a partial
artifact behind.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .errors import ParseError, PersistenceError, SchemaVersionError
from .fmri import FMRI, parse
from .graph import (
    ComponentDependency,
    ComponentOnly,
    Edge,
    Graph,
    Node,
    NodeState,
    ProductConflict,
    Resolved,
    Unresolved,
)
from .models import (
    Component,
    Dependency,
    DependencyKind,
    DependencyScope,
    Package,
    Problem,
    ProblemKind,
)


logger = logging.getLogger(__name__)

SCHEMA_VERSION = "2"
GRAPH_MAGIC = "pkg-checker-graph"
PROBLEMS_MAGIC = "pkg-checker-problems"

PathLike = Union[str, Path]


def _fmri_or_none(text: Optional[str]) -> Optional[FMRI]:
    return None if text is None else parse(text)


def _str_or_none(fmri: Optional[FMRI]) -> Optional[str]:
    return None if fmri is None else str(fmri)


def _dump_dependency(dependency: Dependency) -> Dict:
    return {
        "kind": dependency.kind.value,
        "target": str(dependency.target),
        "predicate": _str_or_none(dependency.predicate),
        "variants": sorted(dependency.variants),
        "scope": dependency.scope.value,
    }


def _load_dependency(data: Dict) -> Dependency:
    return Dependency(
        kind=DependencyKind(data["kind"]),
        target=parse(data["target"]),
        predicate=_fmri_or_none(data["predicate"]),
        variants=frozenset(tuple(v) for v in data["variants"]),
        scope=DependencyScope(data["scope"]),
    )


def _dump_package(package: Package) -> Dict:
    return {
        "fmri": str(package.fmri),
        "dependencies": [_dump_dependency(d) for d in package.dependencies],
        "obsolete": package.obsolete,
        "renamed_to": _str_or_none(package.renamed_to),
        "variants": sorted(package.variants),
    }


def _load_package(data: Dict) -> Package:
    return Package(
        fmri=parse(data["fmri"]),
        dependencies=tuple(_load_dependency(d) for d in data["dependencies"]),
        obsolete=data["obsolete"],
        renamed_to=_fmri_or_none(data["renamed_to"]),
        variants=frozenset(tuple(v) for v in data["variants"]),
    )


def _dump_component(component: Component) -> Dict:
    return {
        "path": component.path,
        "produces": [str(f) for f in component.produces],
        "dependencies": [_dump_dependency(d) for d in component.dependencies],
    }


def _load_component(data: Dict) -> Component:
    return Component(
        path=data["path"],
        produces=tuple(parse(f) for f in data["produces"]),
        dependencies=tuple(_load_dependency(d) for d in data["dependencies"]),
    )


def _dump_node(node: Node, component_index: Dict[Component, int]) -> Dict:
    history = list(node.history)
    data = {
        "name": node.name,
        "component": None if node.component is None else component_index[node.component],
        "history": [_dump_package(p) for p in history],
    }
    if isinstance(node.state, Resolved):
        package = node.state.package
        data["state"] = "resolved"
        # the resolved package is normally the newest entry of the history
        data["package"] = history.index(package) if package in history else _dump_package(package)
    elif isinstance(node.state, ComponentOnly):
        data["state"] = "component"
        data["package"] = component_index[node.state.component]
    else:
        data["state"] = "unresolved"
    return data


def _load_node(data: Dict, components: List[Component]) -> Node:
    history = tuple(_load_package(p) for p in data["history"])
    state_name = data["state"]
    state: NodeState
    if state_name == "resolved":
        ref = data["package"]
        state = Resolved(history[ref] if isinstance(ref, int) else _load_package(ref))
    elif state_name == "component":
        state = ComponentOnly(components[data["package"]])
    elif state_name == "unresolved":
        state = Unresolved()
    else:
        raise ValueError(f"unknown node state {state_name!r}")
    ref = data["component"]
    return Node(
        name=data["name"],
        state=state,
        component=None if ref is None else components[ref],
        history=history,
    )


def _dump_scopes(scopes) -> List[str]:
    return [scope.value for scope in DependencyScope if scope in scopes]


def graph_to_payload(graph: Graph) -> Dict:
    table: List[Component] = list(graph.components)
    index: Dict[Component, int] = {}
    for position, component in enumerate(table):
        index.setdefault(component, position)
    for node in graph.nodes():
        referenced = [node.component]
        if isinstance(node.state, ComponentOnly):
            referenced.append(node.state.component)
        for component in referenced:
            if component is not None and component not in index:
                index[component] = len(table)
                table.append(component)

    return {
        "components": [_dump_component(c) for c in table],
        "graph_components": len(graph.components),
        "nodes": [_dump_node(node, index) for node in graph.nodes()],
        "edges": [
            [e.source, e.target, e.kind.value, _str_or_none(e.constraint), _dump_scopes(e.scopes)]
            for e in graph.edges()
        ],
        "component_dependencies": [
            [d.component, d.target, d.kind.value, d.scope.value, _str_or_none(d.constraint)]
            for d in graph.component_dependencies
        ],
        "product_conflicts": [[c.name, c.kept, c.rejected] for c in graph.product_conflicts],
        "catalog_conflicts": [str(f) for f in graph.catalog_conflicts],
    }


def graph_from_payload(payload: Dict) -> Graph:
    components = [_load_component(c) for c in payload["components"]]
    return Graph(
        nodes=[_load_node(n, components) for n in payload["nodes"]],
        edges=[
            Edge(
                source,
                target,
                DependencyKind(kind),
                _fmri_or_none(constraint),
                frozenset(DependencyScope(s) for s in scopes),
            )
            for source, target, kind, constraint, scopes in payload["edges"]
        ],
        components=components[: payload["graph_components"]],
        product_conflicts=[ProductConflict(*c) for c in payload["product_conflicts"]],
        catalog_conflicts=[parse(f) for f in payload["catalog_conflicts"]],
        component_dependencies=[
            ComponentDependency(
                component,
                target,
                DependencyKind(kind),
                DependencyScope(scope),
                _fmri_or_none(constraint),
            )
            for component, target, kind, scope, constraint in payload["component_dependencies"]
        ],
    )


def problems_to_payload(problems: Sequence[Problem]) -> List[Dict]:
    return [
        {
            "kind": p.kind.value,
            "subject": p.subject,
            "related": list(p.related),
            "source_component": p.source_component,
            "scope": None if p.scope is None else p.scope.value,
        }
        for p in problems
    ]


def problems_from_payload(payload: List[Dict]) -> List[Problem]:
    return [
        Problem(
            kind=ProblemKind(p["kind"]),
            subject=p["subject"],
            related=tuple(p["related"]),
            source_component=p["source_component"],
            scope=None if p["scope"] is None else DependencyScope(p["scope"]),
        )
        for p in payload
    ]


def _write_temp(path: Path, magic: str, payload) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{magic} {SCHEMA_VERSION}\n")
            json.dump(payload, f, separators=(",", ":"))
    except BaseException:
        os.unlink(tmp_name)
        raise
    return Path(tmp_name)


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def _rollback(replaced: List[Tuple[Path, Optional[Path]]]) -> None:
    """Put back what a partial commit replaced, newest first."""
    for path, backup in reversed(replaced):
        try:
            if backup is None:
                _discard(path)
            else:
                os.replace(backup, path)
        except OSError as e:
            logger.error("Could not restore %s, previous copy kept at %s: %s", path, backup, e)


def _commit(pending: Sequence[Tuple[Path, str, object]]) -> None:
    """Write every artifact to a temporary file, then move them all into place.

    Existing targets are moved aside first. When a later move fails the
    earlier targets are restored, so either every artifact is replaced or
    none is.
    """
    written: List[Tuple[Path, Path]] = []
    backups: List[Path] = []
    replaced: List[Tuple[Path, Optional[Path]]] = []
    try:
        for path, magic, payload in pending:
            written.append((_write_temp(path, magic, payload), path))
        for tmp, path in written:
            backup = None
            if path.exists():
                backup = path.with_name(f".{path.name}.bak")
                os.replace(path, backup)
                backups.append(backup)
            replaced.append((path, backup))
            os.replace(tmp, path)
    except BaseException as e:
        _rollback(replaced)
        for tmp, _ in written:
            _discard(tmp)
        if isinstance(e, OSError):
            raise PersistenceError(f"failed to write artifacts: {e}") from e
        raise

    for backup in backups:
        _discard(backup)
    for _, path in written:
        logger.info("Wrote %s", path)


def _read(path: Path, magic: str):
    try:
        with open(path, "r", encoding="utf-8") as f:
            header = f.readline().split()
            if len(header) != 2 or header[0] != magic:
                raise PersistenceError(f"{path}: not a {magic} file")
            if header[1] != SCHEMA_VERSION:
                raise SchemaVersionError(str(path), header[1], SCHEMA_VERSION)
            return json.load(f)
    except OSError as e:
        raise PersistenceError(f"{path}: {e}") from e
    except ValueError as e:
        # malformed JSON or undecodable bytes
        raise PersistenceError(f"{path}: corrupt payload: {e}") from e


def save_graph(graph: Graph, path: PathLike) -> None:
    _commit([(Path(path), GRAPH_MAGIC, graph_to_payload(graph))])


def load_graph(path: PathLike) -> Graph:
    path = Path(path)
    payload = _read(path, GRAPH_MAGIC)
    try:
        return graph_from_payload(payload)
    except (KeyError, IndexError, TypeError, ValueError, ParseError) as e:
        raise PersistenceError(f"{path}: malformed graph snapshot: {e}") from e


def save_problems(problems: Sequence[Problem], path: PathLike) -> None:
    _commit([(Path(path), PROBLEMS_MAGIC, problems_to_payload(problems))])


def load_problems(path: PathLike) -> List[Problem]:
    path = Path(path)
    payload = _read(path, PROBLEMS_MAGIC)
    try:
        return problems_from_payload(payload)
    except (KeyError, TypeError, ValueError) as e:
        raise PersistenceError(f"{path}: malformed problem report: {e}") from e


def save_run(
    graph: Graph,
    problems: Sequence[Problem],
    graph_path: PathLike,
    problems_path: PathLike,
) -> None:
    """Persist both artifacts of a run; neither is replaced unless both were written."""
    _commit(
        [
            (Path(graph_path), GRAPH_MAGIC, graph_to_payload(graph)),
            (Path(problems_path), PROBLEMS_MAGIC, problems_to_payload(problems)),
        ]
    )
