"""Baseline registry: named baseline PNGs plus a JSON index with hashes."""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
import time
from pathlib import Path
from typing import Optional

from e2eguard.models.visual import BaselineEntry, VisualBaselineRegistry

logger = logging.getLogger(__name__)

REGISTRY_FILE = "registry.json"


def _sha256(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


class VisualBaselineRegistryManager:
    """Stores baseline images as ``<baselines_dir>/<screenshot name>``."""

    def __init__(self, baselines_dir: Path, base_url: str = ""):
        self.baselines_dir = Path(baselines_dir)
        self.registry_path = self.baselines_dir / REGISTRY_FILE
        self.base_url = base_url

    def load(self) -> VisualBaselineRegistry:
        """Load registry from disk, or create a new one."""
        if self.registry_path.exists():
            try:
                with open(self.registry_path) as f:
                    data = json.load(f)
                return VisualBaselineRegistry(**data)
            except (OSError, ValueError) as e:
                logger.warning("Failed to load baseline registry: %s. Creating new.", e)
        return VisualBaselineRegistry(base_url=self.base_url)

    def save(self, registry: VisualBaselineRegistry) -> None:
        """Persist registry to disk."""
        self.registry_path.parent.mkdir(parents=True, exist_ok=True)
        registry.last_updated = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        with open(self.registry_path, "w") as f:
            json.dump(registry.model_dump(), f, indent=2)
        logger.debug("Saved baseline registry to %s", self.registry_path)

    def image_path(self, screenshot_name: str) -> Path:
        return self.baselines_dir / screenshot_name

    def get_baseline(self, registry: VisualBaselineRegistry, screenshot_name: str) -> Optional[Path]:
        """Path of the baseline image for ``screenshot_name``, or None.

        Images present on disk but missing from the registry still count,
        so baselines committed without a registry keep working.
        """
        path = self.image_path(screenshot_name)
        if not path.exists():
            if screenshot_name in registry.baselines:
                logger.warning("Baseline image missing for %s: %s", screenshot_name, path)
            return None
        entry = registry.baselines.get(screenshot_name)
        if entry is not None and entry.image_hash != _sha256(path):
            logger.warning("Baseline %s changed on disk since it was registered", screenshot_name)
        return path

    def store_baseline(
        self,
        registry: VisualBaselineRegistry,
        screenshot_name: str,
        image: Path | bytes,
        run_id: str,
    ) -> BaselineEntry:
        """Copy a screenshot (file or PNG bytes) into the baselines directory and register it."""
        dest = self.image_path(screenshot_name)
        dest.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(image, bytes):
            dest.write_bytes(image)
        elif Path(image).resolve() != dest.resolve():
            shutil.copy2(image, dest)

        entry = BaselineEntry(
            screenshot_name=screenshot_name,
            image_path=str(dest.relative_to(self.baselines_dir)),
            captured_at=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            run_id=run_id,
            image_hash=_sha256(dest),
        )
        registry.baselines[screenshot_name] = entry
        logger.info("Stored baseline %s", screenshot_name)
        return entry
