"""Tests for component ingestion."""

import pytest

from pkg_checker.components import ingest_components, parse_component
from pkg_checker.errors import ParseError
from pkg_checker.fmri import FMRI
from pkg_checker.models import DependencyKind, DependencyScope, RawComponent


def test_parse_component_reduces_fmris_to_stems():
    component = parse_component(
        RawComponent(
            path="components/library/glib",
            fmris=("pkg:/library/glib2@2.78,5.11", "pkg:/library/glib2/docs"),
            dependencies=(
                ("pkg:/library/zlib@1.2", "runtime"),
                ("pkg:/developer/meson", "build"),
            ),
        )
    )

    assert component.produces == (FMRI("library/glib2"), FMRI("library/glib2/docs"))
    assert component.product_names == ("library/glib2", "library/glib2/docs")
    assert {(d.target.name, d.scope) for d in component.dependencies} == {
        ("library/zlib", DependencyScope.RUNTIME),
        ("developer/meson", DependencyScope.BUILD),
    }
    assert all(d.kind is DependencyKind.REQUIRE for d in component.dependencies)


@pytest.mark.parametrize(
    "raw",
    [
        RawComponent(path=""),
        RawComponent(path="components/a", fmris=("pkg:/a@",)),
        RawComponent(path="components/a", dependencies=(("pkg:/b", "sometimes"),)),
    ],
)
def test_parse_component_rejects_malformed(raw):
    with pytest.raises(ParseError):
        parse_component(raw)


def test_malformed_component_error_names_its_path():
    with pytest.raises(ParseError) as excinfo:
        parse_component(RawComponent(path="components/a", fmris=("a@@1",)))

    assert excinfo.value.origin == "components/a"


def test_ingest_skips_malformed_and_keeps_the_rest():
    result = ingest_components(
        [
            RawComponent(path="components/b", fmris=("pkg:/b",)),
            RawComponent(path="components/bad", fmris=("pkg:/x@1..2",)),
            RawComponent(path="components/a", fmris=("pkg:/a",)),
        ]
    )

    assert [c.path for c in result.components] == ["components/a", "components/b"]
    assert [path for path, _ in result.failures] == ["components/bad"]


def test_threaded_ingest_keeps_path_order():
    records = [RawComponent(path=f"components/{i:03d}", fmris=(f"pkg:/p{i}",)) for i in range(30)]

    result = ingest_components(reversed(records), workers=4)

    assert [c.path for c in result.components] == [r.path for r in records]
    assert result.failures == ()
