"""
Checker configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional


CATALOG_URLS = {
    "regular": "https://pkg.openindiana.org/hipster/catalog/1/catalog.dependency.C",
    "encumbered": "https://pkg.openindiana.org/hipster-encumbered/catalog/1/catalog.dependency.C",
}

COMPONENTS_REPOSITORY = "https://github.com/OpenIndiana/oi-userland.git"


def _default_workers() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class CheckerConfig:
    """Where the checker reads its inputs and writes its artifacts."""

    data_dir: Path = Path("./data")
    assets_dir: Optional[Path] = None
    components_path: Optional[Path] = None
    catalog_urls: Dict[str, str] = field(default_factory=lambda: dict(CATALOG_URLS))
    components_repository: str = COMPONENTS_REPOSITORY
    workers: int = field(default_factory=_default_workers)
    variants: Optional[Dict[str, str]] = None
    use_make: bool = False
    graph_file: str = "data.bin"
    problems_file: str = "problems.bin"

    @property
    def assets_path(self) -> Path:
        return Path(self.assets_dir) if self.assets_dir else Path(self.data_dir) / "assets"

    @property
    def graph_path(self) -> Path:
        return Path(self.data_dir) / self.graph_file

    @property
    def problems_path(self) -> Path:
        return Path(self.data_dir) / self.problems_file

    @property
    def components_dir(self) -> Path:
        if self.components_path:
            return Path(self.components_path)
        return self.assets_path / "oi-userland" / "components"

    def catalog_path(self, name: str) -> Path:
        return self.assets_path / f"catalog.{name}.C"

    def catalog_paths(self) -> Dict[str, Path]:
        return {name: self.catalog_path(name) for name in self.catalog_urls}
