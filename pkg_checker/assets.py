"""
Catalog and component repository downloads (``data update-assets``).
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, Optional

import requests
from tqdm import tqdm

from .config import CheckerConfig
from .errors import AssetError


logger = logging.getLogger(__name__)


class AssetUpdater:
    """Fetch the catalog files and keep the component checkout current."""

    def __init__(self, config: CheckerConfig, session: Optional[requests.Session] = None):
        """Initialize the updater.

        Args:
            config: Checker configuration with catalog URLs and asset paths
            session: HTTP session to reuse; a new one is created if omitted
        """
        self.config = config
        self.session = session or requests.Session()

    def download_catalog(self, name: str) -> Path:
        """Download one catalog, replacing the old copy only on success."""
        url = self.config.catalog_urls[name]
        target = self.config.catalog_path(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + ".part")

        logger.info("Downloading %s catalog from %s", name, url)
        try:
            with self.session.get(url, stream=True, timeout=60) as response:
                response.raise_for_status()
                total_size = int(response.headers.get("content-length", 0))
                with open(partial, "wb") as f:
                    with tqdm(total=total_size, unit="B", unit_scale=True, desc=name) as pbar:
                        for chunk in response.iter_content(chunk_size=8192):
                            f.write(chunk)
                            pbar.update(len(chunk))
            os.replace(partial, target)
        except BaseException:
            if partial.exists():
                partial.unlink()
            raise

        logger.info("Saved %s catalog to %s", name, target)
        return target

    def download_catalogs(self) -> Dict[str, Path]:
        return {name: self.download_catalog(name) for name in self.config.catalog_urls}

    def update_components(self) -> Path:
        """Clone the component repository, or fast-forward an existing clone."""
        components = self.config.components_dir
        checkout = components.parent
        if (checkout / ".git").is_dir():
            cmd = ["git", "-C", str(checkout), "pull", "--ff-only"]
        else:
            checkout.parent.mkdir(parents=True, exist_ok=True)
            cmd = ["git", "clone", "--depth", "1", self.config.components_repository, str(checkout)]

        logger.info("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=1800)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise AssetError(f"failed to update components: {e}") from e
        if result.returncode != 0:
            raise AssetError(f"{' '.join(cmd)} failed: {result.stderr.strip()}")
        return components

    def update(self, components: bool = True) -> None:
        self.download_catalogs()
        if components:
            self.update_components()
