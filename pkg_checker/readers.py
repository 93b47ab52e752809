"""
Readers for pkg5 catalog files and oi-userland component trees.
"""

from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from tqdm import tqdm

from .errors import AssetError, ParseError
from .interfaces import CatalogReader, ComponentScanner
from .models import DependencyScope, RawCatalogRecord, RawComponent, RawDependency


logger = logging.getLogger(__name__)

# make variables holding a component's dependencies, per scope
MAKE_VARIABLES = {
    DependencyScope.BUILD: "REQUIRED_PACKAGES",
    DependencyScope.TEST: "TEST_REQUIRED_PACKAGES",
    DependencyScope.SYSTEM_BUILD: "USERLAND_REQUIRED_PACKAGES",
    DependencyScope.SYSTEM_TEST: "USERLAND_TEST_REQUIRED_PACKAGES",
}

COMPONENT_FILE = "pkg5"


def parse_action(text: str, origin: str) -> Tuple[str, Dict[str, List[str]]]:
    """Split a manifest action into its type and attributes.

    Attributes may repeat (``fmri`` on require-any), so every value list
    keeps declaration order.
    """
    try:
        tokens = shlex.split(text)
    except ValueError as e:
        raise ParseError(f"malformed action {text!r}: {e}", origin=origin) from e
    if not tokens:
        raise ParseError("empty action", origin=origin)

    attributes: Dict[str, List[str]] = {}
    for token in tokens[1:]:
        key, sep, value = token.partition("=")
        if not sep:
            continue
        attributes.setdefault(key, []).append(value)
    return tokens[0], attributes


def _variant_tags(attributes: Dict[str, List[str]]) -> Tuple[Tuple[str, str], ...]:
    return tuple(
        (key, value)
        for key, values in sorted(attributes.items())
        if key.startswith("variant.")
        for value in values
    )


def record_from_actions(fmri: str, actions: List[str], origin: str) -> RawCatalogRecord:
    dependencies: List[RawDependency] = []
    obsolete = renamed = False
    variants: List[Tuple[str, str]] = []

    for text in actions:
        action, attributes = parse_action(text, origin)
        if action == "depend":
            kind = attributes.get("type", [""])[0]
            predicate = attributes.get("predicate", [None])[0]
            dependencies.append(
                RawDependency(
                    kind=kind,
                    targets=tuple(attributes.get("fmri", [])),
                    predicate=predicate,
                    variants=_variant_tags(attributes),
                )
            )
        elif action == "set":
            name = attributes.get("name", [""])[0]
            values = attributes.get("value", [])
            if name == "pkg.obsolete":
                obsolete = "true" in values
            elif name == "pkg.renamed":
                renamed = "true" in values
            elif name.startswith("variant."):
                variants.extend((name, value) for value in values)

    return RawCatalogRecord(
        fmri=fmri,
        dependencies=tuple(dependencies),
        obsolete=obsolete,
        renamed=renamed,
        variants=tuple(variants),
        origin=origin,
    )


class Pkg5CatalogReader(CatalogReader):
    """Read a pkg5 ``catalog.dependency.C`` file."""

    def read_catalog(self, path: Path) -> Iterator[RawCatalogRecord]:
        path = Path(path)
        logger.info("Reading catalog %s", path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise AssetError(f"failed to read catalog {path}: {e}") from e
        if not isinstance(data, dict):
            raise AssetError(f"catalog {path} is not a JSON object")

        entry = 0
        for publisher, packages in data.items():
            # _SIGNATURE and other metadata keys
            if publisher.startswith("_"):
                continue
            for name, versions in packages.items():
                for version in versions:
                    entry += 1
                    origin = f"{path}:{entry}"
                    if "version" not in version:
                        raise ParseError(f"{name} entry without version", origin=origin)
                    yield record_from_actions(
                        f"pkg://{publisher}/{name}@{version['version']}",
                        version.get("actions", []),
                        origin,
                    )


class ComponentDirectoryScanner(ComponentScanner):
    """Scan an oi-userland ``components`` tree.

    Every directory holding a ``pkg5`` file is a component; its path
    relative to the root is the component key. ``pkg5`` lists the
    produced FMRIs and the build dependencies. With ``use_make`` the
    dependencies of every scope are asked from ``gmake`` instead.
    """

    def __init__(self, use_make: bool = False, make_command: str = "gmake", timeout: int = 120):
        self.use_make = use_make
        self.make_command = make_command
        self.timeout = timeout

    def scan(self, root: Path) -> Tuple[List[RawComponent], List[Tuple[str, str]]]:
        root = Path(root)
        if not root.is_dir():
            raise AssetError(f"components directory {root} does not exist")

        definitions = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            if COMPONENT_FILE in filenames:
                definitions.append(Path(dirpath))

        components: List[RawComponent] = []
        failures: List[Tuple[str, str]] = []
        for directory in tqdm(sorted(definitions), desc="components", unit="component"):
            key = directory.relative_to(root).as_posix()
            try:
                components.append(self._read_component(directory, key))
            except (ParseError, OSError, ValueError, subprocess.SubprocessError) as e:
                failures.append((key, str(e)))
        logger.info("Scanned %d components (%d failed)", len(components), len(failures))
        return components, failures

    def _read_component(self, directory: Path, key: str) -> RawComponent:
        with open(directory / COMPONENT_FILE, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict) or not isinstance(data.get("fmris"), list):
            raise ParseError("pkg5 file has no fmris list", origin=key)

        if self.use_make:
            dependencies = []
            for scope, variable in MAKE_VARIABLES.items():
                dependencies.extend((fmri, scope.value) for fmri in self._make_value(directory, variable))
        else:
            declared = data.get("dependencies", [])
            if not isinstance(declared, list):
                raise ParseError("pkg5 dependencies is not a list", origin=key)
            dependencies = [(fmri, DependencyScope.BUILD.value) for fmri in declared]

        return RawComponent(
            path=key,
            fmris=tuple(data["fmris"]),
            dependencies=tuple(dependencies),
        )

    def _make_value(self, directory: Path, variable: str) -> List[str]:
        cmd = [self.make_command, f"print-value-{variable}"]
        result = subprocess.run(
            cmd,
            cwd=directory,
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )
        if result.returncode != 0:
            raise ParseError(f"{' '.join(cmd)} failed: {result.stderr.strip()}")
        return result.stdout.split()


def read_catalogs(
    paths: Dict[str, Path], reader: Optional[CatalogReader] = None
) -> Dict[str, List[RawCatalogRecord]]:
    """Read every catalog file up front so asset errors surface before ingestion."""
    reader = reader or Pkg5CatalogReader()
    return {name: list(reader.read_catalog(path)) for name, path in paths.items()}
