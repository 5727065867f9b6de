"""Per-test debugging lifecycle: initialize, capture on error, finalize."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from playwright.async_api import Browser, Page

from e2eguard.context import RunContext
from e2eguard.environment.detector import print_environment_diagnosis, with_browser
from e2eguard.executor.evidence_collector import ArtifactCapture, artifact_dir_for, slugify
from e2eguard.executor.failure_capture import build_failure_info
from e2eguard.executor.filesystem import (
    apply_ci_filesystem_optimizations,
    validate_artifact_structure,
)
from e2eguard.executor.metrics import MetricsCollector, get_browser_info
from e2eguard.models.artifacts import ArtifactCategory, FailureInfo, TestOutcome
from e2eguard.models.config import DebugLevel
from e2eguard.reporter.failure_report import render_failure_report

logger = logging.getLogger(__name__)

_DETAILED_LEVELS = (DebugLevel.COMPREHENSIVE, DebugLevel.MAXIMUM)


def effective_debug_level(level: DebugLevel, is_ci: bool) -> DebugLevel:
    """Standard debugging is upgraded to comprehensive on CI runners."""
    if is_ci and level is DebugLevel.STANDARD:
        return DebugLevel.COMPREHENSIVE
    return level


class CIDebugger:
    """Composes environment facts, artifact capture and directory checks for one test.

    Nothing in here is allowed to fail the test: problems during setup,
    capture or teardown are logged and the run continues.
    """

    def __init__(
        self,
        page: Page,
        test_title: str,
        context: RunContext,
        debug_level: Optional[DebugLevel] = None,
        output_dir: Optional[Path] = None,
        browser: Optional[Browser] = None,
    ):
        self.page = page
        self.test_title = test_title
        self.context = context
        self.debug_level = effective_debug_level(
            debug_level or context.config.debug_level, context.is_ci
        )
        self.output_dir = Path(output_dir) if output_dir else artifact_dir_for(context.artifact_root, test_title)
        self.capture = ArtifactCapture(
            self.output_dir,
            test_title,
            max_log_entries=context.config.max_log_entries,
            dirs=context.config.artifact_dirs,
        )
        self.metrics = MetricsCollector(page, test_title)
        self.environment = context.environment
        self.browser = browser
        self.logs: list[str] = []
        self.failures: list[FailureInfo] = []
        self.current_step: Optional[str] = None
        self._handled: set[int] = set()
        self.initialized = False
        self.finalized = False
        self._started = time.monotonic()

        self.log(f"CI debugger created for test: {test_title}")
        self.log(f"Debug level: {self.debug_level.value}")
        self.log(f"Running in CI: {'Yes' if context.is_ci else 'No'}")

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._started

    def log(self, message: str, is_error: bool = False) -> None:
        """Append a timestamped line to the debug log and forward it to logging."""
        stamp = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        self.logs.append(f"[{stamp}] {'ERROR: ' if is_error else ''}{message}")
        if is_error:
            logger.error("[%s] %s", self.test_title, message)
        elif self.context.mode_config.verbose_logging:
            logger.info("[%s] %s", self.test_title, message)
        else:
            logger.debug("[%s] %s", self.test_title, message)

    def _ensure_artifact_directories(self) -> None:
        self.log(f"Ensuring artifact directories in {self.output_dir}")
        results = validate_artifact_structure(self.output_dir, self.context.config.artifact_dirs.all())
        if self.debug_level in _DETAILED_LEVELS:
            for r in results:
                self.log(
                    f"Directory {r.path}: {'OK' if r.has_permission else 'ISSUE'} "
                    f"(R:{'Yes' if r.readable else 'No'}, W:{'Yes' if r.writable else 'No'}, "
                    f"X:{'Yes' if r.executable else 'No'})",
                    is_error=not r.has_permission,
                )
        self.capture.ensure_directories()

    async def initialize(self) -> None:
        """Prepare directories, listeners and the initial environment report."""
        if self.initialized:
            return
        try:
            if self.browser is not None:
                browser_type, version = get_browser_info(self.browser)
                self.environment = with_browser(self.environment, browser_type, version)
                self.log(f"Browser: {browser_type.value} {version or ''}".rstrip())

            if self.context.is_ci:
                apply_ci_filesystem_optimizations(self.context.artifact_root, self.environment)
            self._ensure_artifact_directories()

            if self.debug_level in _DETAILED_LEVELS:
                print_environment_diagnosis(self.environment)

            self.capture.setup_listeners(self.page)
            if self.debug_level is not DebugLevel.ESSENTIAL:
                await self.metrics.collect()
                self.log("Performance metrics collection started")

            self.capture.write_environment_report(
                self.environment,
                self.context.mode,
                extra={"debug_level": self.debug_level.value},
            )
            self.initialized = True
            self.log("CI debugger initialization complete")
        except Exception as e:
            self.log(f"Initialization failed: {e}", is_error=True)

    def _annotate_screenshot(self, path: str) -> None:
        """Stamp environment facts onto the bottom of a screenshot."""
        from PIL import Image, ImageDraw

        env = self.environment
        text = (
            f"{self.test_title} | mode={self.context.mode.value} | os={env.os.value} | "
            f"browser={env.browser_type.value if env.browser_type else 'unknown'} | run={env.run_id}"
        )
        with Image.open(path) as img:
            canvas = Image.new("RGB", (img.width, img.height + 24), (30, 41, 59))
            canvas.paste(img.convert("RGB"), (0, 0))
        ImageDraw.Draw(canvas).text((6, canvas.height - 18), text, fill=(248, 250, 252))
        canvas.save(path)

    async def handle_error(self, error: BaseException, step_name: Optional[str] = None) -> Optional[FailureInfo]:
        """Record a failure with screenshot, DOM and environment snapshot.

        Never raises; the caller re-raises the original error.
        """
        self._handled.add(id(error))
        step_name = step_name or self.current_step
        where = f' in step "{step_name}"' if step_name else ""
        self.log(f"Error encountered{where}: {error}", is_error=True)
        try:
            info = build_failure_info(
                error,
                self.test_title,
                self.environment,
                self.context.mode,
                step_name=step_name,
                elapsed_seconds=self.elapsed_seconds,
                artifact_root=str(self.context.artifact_root),
            )
            label = f"failure-{step_name}" if step_name else "failure"
            screenshot = await self.capture.take_screenshot(self.page, label, full_page=True)
            if screenshot and self.debug_level is DebugLevel.MAXIMUM:
                try:
                    self._annotate_screenshot(screenshot)
                except OSError as e:
                    self.log(f"Could not annotate screenshot: {e}", is_error=True)
            info.artifacts["screenshot"] = self._relative(screenshot)
            if self.debug_level is not DebugLevel.ESSENTIAL:
                info.artifacts["dom_snapshot"] = self._relative(
                    await self.capture.capture_dom_snapshot(self.page, f"dom-{label}")
                )
            info.artifacts["environment_report"] = self._relative(self.capture.write_environment_report(
                self.environment, self.context.mode, extra={"failure_id": info.id},
            ))

            stem = f"failure-{slugify(step_name or 'test', 40)}-{info.id[:8]}"
            self.capture.save_artifact(ArtifactCategory.REPORTS, f"{stem}.json", info.model_dump(mode="json"))
            self.capture.save_artifact(ArtifactCategory.REPORTS, f"{stem}.html", render_failure_report(info))
            self.failures.append(info)
            return info
        except Exception as e:
            self.log(f"Failure capture itself failed: {e}", is_error=True)
            return None

    def was_handled(self, error: BaseException) -> bool:
        return id(error) in self._handled

    def _relative(self, path: str) -> str:
        if not path:
            return ""
        p = Path(path)
        return str(p.relative_to(self.output_dir)) if p.is_relative_to(self.output_dir) else path

    @asynccontextmanager
    async def step(self, name: str) -> AsyncIterator[None]:
        """Named test step; failures are captured and re-raised unchanged."""
        previous, self.current_step = self.current_step, name
        self.log(f"Starting step: {name}")
        try:
            yield
        except Exception as e:
            if not self.was_handled(e):
                await self.handle_error(e, name)
            raise
        else:
            self.log(f"Completed step: {name}")
        finally:
            self.current_step = previous

    async def finalize(self, outcome: TestOutcome = TestOutcome.UNKNOWN) -> Optional[Path]:
        """Flush metrics, the debug log and the artifact bundle. Returns the bundle path."""
        if self.finalized:
            return None
        self.finalized = True
        self.log(f"Test result: {outcome.value}")
        try:
            if self.debug_level is not DebugLevel.ESSENTIAL:
                await self.metrics.collect()
                if self.metrics.snapshots:
                    self.capture.save_artifact(
                        ArtifactCategory.METRICS, "performance-metrics.json", self.metrics.to_report()
                    )
            if self.capture.dropped_entries:
                self.log(f"Dropped {self.capture.dropped_entries} buffered browser log entries")
            self.log("CI debugger finalization complete")
            self.capture.save_artifact(ArtifactCategory.LOGS, "ci-debugger.log", "\n".join(self.logs))
            return self.capture.flush(outcome)
        except Exception as e:
            logger.error("CI debugger finalization failed for %r: %s", self.test_title, e)
            return None


@asynccontextmanager
async def ci_debugging(
    page: Page,
    test_title: str,
    context: RunContext,
    debug_level: Optional[DebugLevel] = None,
    output_dir: Optional[Path] = None,
    browser: Optional[Browser] = None,
) -> AsyncIterator[CIDebugger]:
    """Initialize a CIDebugger, yield it, and finalize with the test's outcome."""
    debugger = CIDebugger(page, test_title, context, debug_level, output_dir, browser)
    await debugger.initialize()
    outcome = TestOutcome.PASSED
    try:
        yield debugger
    except Exception as e:
        outcome = TestOutcome.FAILED
        if not debugger.was_handled(e):
            await debugger.handle_error(e)
        raise
    finally:
        await debugger.finalize(outcome)
