"""Shared helpers for building catalogs and graphs in tests."""

import pytest

from pkg_checker.catalog import ingest_catalog
from pkg_checker.components import parse_component
from pkg_checker.graph import build
from pkg_checker.models import RawCatalogRecord, RawComponent, RawDependency


def make_record(fmri, *requires, kind="require", obsolete=False, renamed=False):
    return RawCatalogRecord(
        fmri=fmri,
        dependencies=tuple(RawDependency(kind=kind, targets=(t,)) for t in requires),
        obsolete=obsolete,
        renamed=renamed,
    )


def make_component(path, produces=(), requires=(), scope="runtime"):
    return parse_component(
        RawComponent(
            path=path,
            fmris=tuple(produces),
            dependencies=tuple((t, scope) for t in requires),
        )
    )


def make_graph(records, components=(), variants=None):
    return build(ingest_catalog(records), components, variants=variants)


@pytest.fixture
def sample_graph():
    """A small repository with one of every node state."""
    records = [
        make_record("pkg://openindiana.org/library/glib2@2.78", "pkg:/library/zlib@1.2", "pkg:/library/libffi"),
        make_record("pkg://openindiana.org/library/zlib@1.2.13"),
        make_record("pkg://openindiana.org/library/zlib@1.3"),
        make_record("pkg://openindiana.org/desktop/gimp@2.10", "pkg:/library/glib2"),
    ]
    components = [
        make_component("components/library/glib", ["pkg:/library/glib2"], ["pkg:/developer/meson"]),
        make_component("components/desktop/gimp", ["pkg:/desktop/gimp", "pkg:/desktop/gimp/docs"]),
    ]
    return make_graph(records, components)
