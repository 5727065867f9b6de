"""Artifact capture: screenshots, DOM, logs and reports for one test."""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from collections import deque
from pathlib import Path
from typing import Any, Callable, Optional

from playwright.async_api import Page

from e2eguard.errors import FilesystemError
from e2eguard.executor.filesystem import ensure_directory_exists, write_data_to_file
from e2eguard.models.artifacts import (
    Artifact,
    ArtifactBundle,
    ArtifactCategory,
    TestOutcome,
)
from e2eguard.models.config import ArtifactDirs
from e2eguard.models.environment import EnvironmentInfo
from e2eguard.models.test_mode import TestMode
from e2eguard.models.test_result import Evidence

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOG_ENTRIES = 500

_CONTENT_TYPES = {
    ".png": "image/png",
    ".html": "text/html",
    ".json": "application/json",
    ".log": "text/plain",
    ".txt": "text/plain",
    ".webm": "video/webm",
    ".zip": "application/zip",
}


def slugify(title: str, max_length: int = 80) -> str:
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", title).strip("-").lower()
    return slug[:max_length] or "test"


def _timestamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def artifact_dir_for(root: str | Path, test_title: str) -> Path:
    """Directory for one test's artifacts.

    Titles repeat within a plan, so a random suffix keeps concurrent
    workers out of each other's directories.
    """
    stamp = time.strftime("%Y%m%d-%H%M%S", time.gmtime()) + f"-{int(time.time() * 1000) % 1000:03d}"
    return Path(root) / f"{slugify(test_title)}-{stamp}-{uuid.uuid4().hex[:6]}"


class ArtifactCapture:
    """Collects forensic artifacts for a single test.

    Console, page error and network events go into bounded buffers; the
    oldest entries are dropped once ``max_log_entries`` is reached. Every
    file written is recorded in an ArtifactBundle that ``flush`` persists.
    """

    def __init__(
        self,
        output_dir: Path,
        test_title: str,
        max_log_entries: int = DEFAULT_MAX_LOG_ENTRIES,
        dirs: Optional[ArtifactDirs] = None,
    ):
        self.output_dir = Path(output_dir)
        self.test_title = test_title
        self.dirs = dirs or ArtifactDirs()
        self.console_logs: deque[str] = deque(maxlen=max_log_entries)
        self.page_errors: deque[str] = deque(maxlen=max_log_entries)
        self.network_log: deque[dict[str, Any]] = deque(maxlen=max_log_entries)
        self.dropped_entries = 0
        self._max_log_entries = max_log_entries
        self._bundle: Optional[ArtifactBundle] = None
        self._listeners: list[tuple[Page, str, Callable]] = []
        self._screenshot_count = 0
        self._flushed_path: Optional[Path] = None

    # -- directories -----------------------------------------------------

    def category_dir(self, category: ArtifactCategory) -> Path:
        return self.output_dir / getattr(self.dirs, category.value)

    def ensure_directories(self) -> bool:
        """Create every category directory. Failures are warnings only."""
        ok = True
        for category in ArtifactCategory:
            try:
                ensure_directory_exists(self.category_dir(category))
            except FilesystemError as e:
                logger.warning("Could not prepare artifact directory: %s", e)
                ok = False
        return ok

    # -- listeners -------------------------------------------------------

    def _append(self, buffer: deque, entry: Any) -> None:
        if len(buffer) == self._max_log_entries:
            self.dropped_entries += 1
        buffer.append(entry)

    def setup_listeners(self, page: Page) -> None:
        """Attach console, page error and network listeners to a page."""
        handlers: dict[str, Callable] = {
            "console": lambda msg: self._append(
                self.console_logs, f"[{msg.type}] {msg.text}"
            ),
            "pageerror": lambda error: self._append(self.page_errors, str(error)),
            "response": lambda resp: self._append(self.network_log, {
                "url": resp.url,
                "method": resp.request.method,
                "status": resp.status,
                "resource_type": resp.request.resource_type,
            }),
            "requestfailed": lambda req: self._append(self.network_log, {
                "url": req.url,
                "method": req.method,
                "status": None,
                "resource_type": req.resource_type,
                "failure": req.failure,
            }),
        }
        for event, handler in handlers.items():
            page.on(event, handler)
            self._listeners.append((page, event, handler))

    def detach_listeners(self) -> None:
        for page, event, handler in self._listeners:
            try:
                page.remove_listener(event, handler)
            except Exception as e:
                logger.debug("Could not detach %s listener: %s", event, e)
        self._listeners.clear()

    # -- capture ---------------------------------------------------------

    def _record(self, category: ArtifactCategory, path: Path, content_type: Optional[str] = None) -> None:
        if self._bundle is None:
            self._bundle = ArtifactBundle(test_title=self.test_title, timestamp=_timestamp())
        size = path.stat().st_size if path.exists() else 0
        self._bundle.artifacts.append(Artifact(
            category=category,
            name=path.name,
            path=str(path.relative_to(self.output_dir)) if path.is_relative_to(self.output_dir) else str(path),
            content_type=content_type or _CONTENT_TYPES.get(path.suffix, "application/octet-stream"),
            size_bytes=size,
            captured_at=_timestamp(),
        ))

    def record_file(self, category: ArtifactCategory, path: str | Path) -> str:
        """Add a file written outside this collector to the bundle."""
        self._record(category, Path(path))
        return str(path)

    @property
    def bundle(self) -> Optional[ArtifactBundle]:
        return self._bundle

    async def take_screenshot(self, page: Page, label: str = "", full_page: bool = False) -> str:
        """Capture a screenshot and return the file path, or "" on failure."""
        self._screenshot_count += 1
        stem = slugify(label) if label else "screenshot"
        path = self.category_dir(ArtifactCategory.SCREENSHOTS) / f"{stem}-{self._screenshot_count}.png"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=full_page)
        except Exception as e:
            logger.warning("Screenshot failed: %s", e)
            return ""
        self._record(ArtifactCategory.SCREENSHOTS, path)
        return str(path)

    async def capture_dom_snapshot(self, page: Page, label: str = "dom-snapshot") -> str:
        """Save the current DOM state."""
        try:
            content = await page.content()
        except Exception as e:
            logger.warning("DOM snapshot failed: %s", e)
            return ""
        return self.save_artifact(ArtifactCategory.REPORTS, f"{slugify(label)}.html", content)

    def save_artifact(
        self,
        category: ArtifactCategory,
        name: str,
        content: str | bytes | dict | list,
        content_type: Optional[str] = None,
    ) -> str:
        """Write ``content`` to ``<category>/<name>``; returns "" on failure."""
        if isinstance(content, (dict, list)):
            content = json.dumps(content, indent=2, default=str)
        path = self.category_dir(category) / name
        try:
            write_data_to_file(path, content)
        except FilesystemError as e:
            logger.warning("Could not save artifact %s: %s", name, e)
            return ""
        self._record(category, path, content_type)
        return str(path)

    def write_environment_report(
        self,
        env: EnvironmentInfo,
        mode: TestMode,
        extra: Optional[dict[str, Any]] = None,
    ) -> str:
        report = {
            "test_title": self.test_title,
            "timestamp": _timestamp(),
            "mode": mode.value,
            "environment": env.model_dump(mode="json"),
            "artifact_dir": str(self.output_dir),
        }
        if extra:
            report.update(extra)
        return self.save_artifact(ArtifactCategory.REPORTS, "environment-report.json", report)

    def save_logs(self) -> None:
        """Persist the buffered console, page error and network logs."""
        self.save_artifact(ArtifactCategory.LOGS, "console.log", "\n".join(self.console_logs))
        if self.page_errors:
            self.save_artifact(ArtifactCategory.LOGS, "page-errors.log", "\n".join(self.page_errors))
        self.save_artifact(ArtifactCategory.LOGS, "network.json", list(self.network_log))

    def build_evidence(self, screenshots: list[str]) -> Evidence:
        """Build an Evidence model from collected data."""
        dom_path = self.category_dir(ArtifactCategory.REPORTS) / "dom-snapshot.html"
        return Evidence(
            screenshots=screenshots,
            console_logs=list(self.console_logs),
            network_log=list(self.network_log),
            dom_snapshot_path=str(dom_path) if dom_path.exists() else None,
            artifact_dir=str(self.output_dir),
        )

    def flush(self, outcome: TestOutcome = TestOutcome.UNKNOWN) -> Optional[Path]:
        """Detach listeners, persist logs and write the bundle manifest.

        Only the first call writes; later calls return the same path.
        """
        if self._flushed_path is not None:
            logger.warning("Artifact bundle for %r already flushed", self.test_title)
            return self._flushed_path
        self.detach_listeners()
        self.save_logs()
        if self._bundle is None:
            self._bundle = ArtifactBundle(test_title=self.test_title, timestamp=_timestamp())
        self._bundle.outcome = outcome
        try:
            self._flushed_path = self._bundle.save(self.output_dir)
        except OSError as e:
            logger.warning("Could not write artifact bundle for %r: %s", self.test_title, e)
            return None
        logger.debug("Flushed %d artifacts to %s", len(self._bundle.artifacts), self._flushed_path)
        return self._flushed_path
