"""Tests for the problem detectors."""

from conftest import make_component, make_graph, make_record
from pkg_checker.components import parse_component
from pkg_checker.detectors import (
    PIPELINE,
    detect_conflicting_publishers,
    detect_cycles,
    detect_duplicate_definitions,
    detect_missing_components,
    detect_missing_dependencies,
    detect_obsolete_references,
    detect_orphan_components,
    detect_renamed_chains,
    detect_renamed_references,
    detect_retired_products,
    detect_unpublished_products,
    detect_useless_components,
    run_detectors,
    strongly_connected_components,
)
from pkg_checker.models import DependencyScope, Problem, ProblemKind, RawComponent

RUNTIME = DependencyScope.RUNTIME


def test_two_node_cycle_reports_both_members():
    graph = make_graph([make_record("a@1", "pkg:/b"), make_record("b@1", "pkg:/a")])

    assert detect_cycles(graph) == [
        Problem(ProblemKind.DEPENDENCY_CYCLE, "a", ("a", "b")),
        Problem(ProblemKind.DEPENDENCY_CYCLE, "b", ("a", "b")),
    ]


def test_chain_is_not_a_cycle():
    graph = make_graph(
        [make_record("a@1", "pkg:/b"), make_record("b@1", "pkg:/c"), make_record("c@1")]
    )

    assert detect_cycles(graph) == []


def test_optional_edges_do_not_form_cycles():
    graph = make_graph(
        [make_record("a@1", "pkg:/b", kind="optional"), make_record("b@1", "pkg:/a")]
    )

    assert detect_cycles(graph) == []


def test_cycles_are_ordered_by_smallest_member():
    graph = make_graph(
        [
            make_record("z@1", "pkg:/y"),
            make_record("y@1", "pkg:/z"),
            make_record("m@1", "pkg:/n"),
            make_record("n@1", "pkg:/o"),
            make_record("o@1", "pkg:/m"),
        ]
    )

    problems = detect_cycles(graph)

    assert [p.subject for p in problems] == ["m", "n", "o", "y", "z"]
    assert problems[0].related == ("m", "n", "o")
    assert problems[-1].related == ("y", "z")


def test_tarjan_handles_deep_chains_without_recursion():
    size = 20000
    successors = {str(i): [str(i + 1)] for i in range(size)}
    successors[str(size)] = ["0"]

    sccs = strongly_connected_components(sorted(successors), lambda n: successors[n])

    assert len(sccs) == 1
    assert len(sccs[0]) == size + 1


def test_missing_dependency_reports_target_and_disappears_with_a_component():
    records = [make_record("a@1", "pkg:/x")]

    assert detect_missing_dependencies(make_graph(records)) == [
        Problem(ProblemKind.MISSING_DEPENDENCY, "x", ("a",), scope=RUNTIME)
    ]

    fixed = make_graph(records, [make_component("components/x", ["pkg:/x"])])
    assert detect_missing_dependencies(fixed) == []


def test_missing_dependency_names_the_source_component():
    graph = make_graph([], [make_component("components/a", ["pkg:/a"], ["pkg:/x"])])

    (problem,) = detect_missing_dependencies(graph)
    assert problem.subject == "x"
    assert problem.source_component == "components/a"


def test_component_without_products_reports_its_missing_dependencies():
    graph = make_graph(
        [make_record("a@1.0")],
        [make_component("components/tools", [], ["pkg:/does/not/exist"])],
    )

    assert detect_missing_dependencies(graph) == [
        Problem(
            ProblemKind.MISSING_DEPENDENCY,
            "does/not/exist",
            ("components/tools",),
            source_component="components/tools",
            scope=RUNTIME,
        )
    ]


def test_missing_dependency_of_renamed_package():
    records = [make_record("old@1", "pkg:/new", "pkg:/x", renamed=True), make_record("new@1")]

    assert detect_missing_dependencies(make_graph(records)) == [
        Problem(ProblemKind.MISSING_DEPENDENCY_BY_RENAMED, "x", ("old",), scope=RUNTIME)
    ]


def test_reference_to_renamed_package_points_at_successor():
    records = [
        make_record("old@1.0", "pkg:/new@1.0", renamed=True),
        make_record("new@1.0"),
        make_record("x@1", "pkg:/old"),
    ]

    assert detect_renamed_references(make_graph(records)) == [
        Problem(ProblemKind.RENAMED_REFERENCE, "x", ("new",), scope=RUNTIME)
    ]


def test_direct_reference_to_successor_is_fine():
    records = [
        make_record("old@1.0", "pkg:/new@1.0", renamed=True),
        make_record("new@1.0"),
        make_record("x@1", "pkg:/new"),
    ]

    assert detect_renamed_references(make_graph(records)) == []


def test_obsolete_reference():
    records = [make_record("o@1", obsolete=True), make_record("a@1", "pkg:/o")]

    assert detect_obsolete_references(make_graph(records)) == [
        Problem(ProblemKind.OBSOLETE_REFERENCE, "a", ("o",), scope=RUNTIME)
    ]


def test_partly_obsolete_reference():
    records = [make_record("o@1"), make_record("o@2", obsolete=True), make_record("a@1", "pkg:/o")]

    assert detect_obsolete_references(make_graph(records)) == [
        Problem(ProblemKind.PARTLY_OBSOLETE_REFERENCE, "a", ("o",), scope=RUNTIME)
    ]


def test_older_obsolete_version_is_not_a_reference_problem():
    records = [make_record("o@1", obsolete=True), make_record("o@2"), make_record("a@1", "pkg:/o")]

    assert detect_obsolete_references(make_graph(records)) == []


def test_obsolete_reference_by_renamed_package():
    records = [
        make_record("old@1", "pkg:/new", "pkg:/o", renamed=True),
        make_record("new@1"),
        make_record("o@1", obsolete=True),
    ]

    assert detect_obsolete_references(make_graph(records)) == [
        Problem(ProblemKind.OBSOLETE_REFERENCE_BY_RENAMED, "old", ("o",), scope=RUNTIME)
    ]


def test_partly_obsolete_reference_by_renamed_package():
    records = [
        make_record("old@1", "pkg:/new", "pkg:/o", renamed=True),
        make_record("new@1"),
        make_record("o@1"),
        make_record("o@2", obsolete=True),
    ]

    assert detect_obsolete_references(make_graph(records)) == [
        Problem(ProblemKind.PARTLY_OBSOLETE_REFERENCE_BY_RENAMED, "old", ("o",), scope=RUNTIME)
    ]


def test_obsolete_reference_is_reported_once_per_scope():
    component = parse_component(
        RawComponent(
            path="components/app",
            fmris=("pkg:/app",),
            dependencies=(("pkg:/o", "test"), ("pkg:/o", "build")),
        )
    )
    graph = make_graph([make_record("app@1"), make_record("o@1", obsolete=True)], [component])

    assert detect_obsolete_references(graph) == [
        Problem(
            ProblemKind.OBSOLETE_REFERENCE,
            "app",
            ("o",),
            source_component="components/app",
            scope=DependencyScope.BUILD,
        ),
        Problem(
            ProblemKind.OBSOLETE_REFERENCE,
            "app",
            ("o",),
            source_component="components/app",
            scope=DependencyScope.TEST,
        ),
    ]


def test_obsolete_reference_from_component_without_products():
    graph = make_graph(
        [make_record("o@1", obsolete=True)],
        [make_component("components/tools", [], ["pkg:/o"], scope="system-build")],
    )

    assert detect_obsolete_references(graph) == [
        Problem(
            ProblemKind.OBSOLETE_REFERENCE,
            "components/tools",
            ("o",),
            source_component="components/tools",
            scope=DependencyScope.SYSTEM_BUILD,
        )
    ]


def test_incorporation_of_obsolete_package_is_fine():
    records = [make_record("o@1", obsolete=True), make_record("inc@1", "pkg:/o@1", kind="incorporate")]

    assert detect_obsolete_references(make_graph(records)) == []


def test_obsolete_package_may_reference_obsolete_package():
    records = [make_record("o@1", obsolete=True), make_record("p@1", "pkg:/o", obsolete=True)]

    assert detect_obsolete_references(make_graph(records)) == []


def test_duplicate_definitions():
    records = [make_record("a@1", "pkg:/b"), make_record("a@1", "pkg:/c")]
    components = [
        make_component("components/one", ["pkg:/shared"]),
        make_component("components/two", ["pkg:/shared"]),
    ]

    assert detect_duplicate_definitions(make_graph(records, components)) == [
        Problem(
            ProblemKind.DUPLICATE_DEFINITION,
            "shared",
            ("components/one", "components/two"),
            source_component="components/two",
        ),
        Problem(ProblemKind.DUPLICATE_DEFINITION, "pkg:/a@1"),
    ]


def test_orphan_components():
    components = [
        make_component("components/empty"),
        make_component("components/ghost", ["pkg:/ghost"]),
        make_component("components/real", ["pkg:/real"]),
    ]
    graph = make_graph([make_record("real@1")], components)

    assert detect_orphan_components(graph) == [
        Problem(ProblemKind.ORPHAN_COMPONENT, "components/empty", source_component="components/empty"),
        Problem(
            ProblemKind.ORPHAN_COMPONENT,
            "components/ghost",
            ("ghost",),
            source_component="components/ghost",
        ),
    ]


def test_missing_components_only_when_components_are_known():
    records = [make_record("built@1"), make_record("lonely@1"), make_record("gone@1", obsolete=True)]

    assert detect_missing_components(make_graph(records)) == []

    graph = make_graph(records, [make_component("components/built", ["pkg:/built"])])
    assert detect_missing_components(graph) == [Problem(ProblemKind.MISSING_COMPONENT, "lonely")]


def test_retired_products():
    records = [
        make_record("gone@1", obsolete=True),
        make_record("old@1", "pkg:/new", renamed=True),
        make_record("new@1"),
    ]
    components = [make_component("components/legacy", ["pkg:/gone", "pkg:/old"])]

    assert detect_retired_products(make_graph(records, components)) == [
        Problem(ProblemKind.OBSOLETE_IN_COMPONENT, "gone", source_component="components/legacy"),
        Problem(ProblemKind.RENAMED_IN_COMPONENT, "old", ("new",), source_component="components/legacy"),
    ]


def test_unpublished_products():
    components = [
        make_component("components/a", ["pkg:/a", "pkg:/a/docs"]),
        make_component("components/ghost", ["pkg:/ghost"]),
    ]
    graph = make_graph([make_record("a@1")], components)

    assert detect_unpublished_products(graph) == [
        Problem(ProblemKind.UNPUBLISHED_PRODUCT, "a/docs", source_component="components/a")
    ]


def test_renamed_package_depending_on_renamed_package():
    records = [
        make_record("r1@1", "pkg:/r2", renamed=True),
        make_record("r2@1", "pkg:/r3", renamed=True),
        make_record("r3@1"),
    ]
    graph = make_graph(records)

    assert detect_renamed_chains(graph) == [
        Problem(ProblemKind.RENAMED_NEEDS_RENAMED, "r1", ("r2",))
    ]
    # a renamed source is reported as a chain, not as a stale reference
    assert detect_renamed_references(graph) == []


def test_two_active_publishers_conflict():
    graph = make_graph([make_record("pkg://a/x@1"), make_record("pkg://b/x@1")])

    assert detect_conflicting_publishers(graph) == [
        Problem(ProblemKind.CONFLICTING_PUBLISHERS, "x", ("a", "b"))
    ]


def test_newer_obsolete_publisher_conflicts_with_active_one():
    graph = make_graph([make_record("pkg://a/x@1"), make_record("pkg://b/x@2", obsolete=True)])

    assert [p.subject for p in detect_conflicting_publishers(graph)] == ["x"]


def test_older_obsolete_publisher_is_fine():
    graph = make_graph([make_record("pkg://a/x@1"), make_record("pkg://b/x@0.5", obsolete=True)])

    assert detect_conflicting_publishers(graph) == []


def test_useless_component():
    components = [
        make_component("components/lib", ["pkg:/lib"]),
        make_component("components/unused", ["pkg:/unused", "pkg:/unused/docs"]),
    ]
    records = [
        make_record("lib@1"),
        make_record("unused@1"),
        make_record("unused/docs@1", "pkg:/unused"),
        make_record("app@1", "pkg:/lib"),
        make_record("inc@1", "pkg:/unused@1", kind="incorporate"),
    ]

    assert detect_useless_components(make_graph(records, components)) == [
        Problem(
            ProblemKind.USELESS_COMPONENT,
            "components/unused",
            ("unused", "unused/docs"),
            source_component="components/unused",
        )
    ]


def test_component_needed_only_by_a_component_without_products_is_not_useless():
    components = [
        make_component("components/lib", ["pkg:/lib"]),
        make_component("components/tools", [], ["pkg:/lib"], scope="build"),
    ]

    assert detect_useless_components(make_graph([make_record("lib@1")], components)) == []


def test_pipeline_order_and_determinism():
    records = [
        make_record("a@1", "pkg:/b", "pkg:/missing"),
        make_record("b@1", "pkg:/a", "pkg:/o"),
        make_record("o@1", obsolete=True),
    ]
    graph = make_graph(records)

    problems = run_detectors(graph)

    assert [p.kind for p in problems] == [
        ProblemKind.MISSING_DEPENDENCY,
        ProblemKind.OBSOLETE_REFERENCE,
        ProblemKind.DEPENDENCY_CYCLE,
        ProblemKind.DEPENDENCY_CYCLE,
    ]
    assert run_detectors(graph) == problems
    assert run_detectors(graph, workers=4) == problems


def test_custom_pass_selection():
    graph = make_graph([make_record("a@1", "pkg:/x")])
    passes = [entry for entry in PIPELINE if entry[0] == "cycle"]

    assert run_detectors(graph, passes=passes) == []


def test_clean_repository_has_no_problems():
    records = [make_record("app@1", "pkg:/lib"), make_record("lib@1")]
    components = [
        make_component("components/app", ["pkg:/app"], ["pkg:/lib"]),
        make_component("components/lib", ["pkg:/lib"]),
    ]

    problems = run_detectors(make_graph(records, components))

    # nothing depends on app, so only its component is flagged as unneeded
    assert [(p.kind, p.subject) for p in problems] == [
        (ProblemKind.USELESS_COMPONENT, "components/app")
    ]
