"""Visual comparison gate: decides whether, and how strictly, pixel diffs run."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

from playwright.async_api import Locator, Page

from e2eguard.context import RunContext
from e2eguard.environment.modes import is_ci_mode
from e2eguard.errors import OperationTimeoutError, VisualComparisonError
from e2eguard.executor.baseline_registry import VisualBaselineRegistryManager
from e2eguard.executor.evidence_collector import ArtifactCapture
from e2eguard.executor.waits import wait_for_animations_complete, wait_for_network_idle
from e2eguard.models.artifacts import ArtifactCategory
from e2eguard.models.test_mode import TestMode, UpdateMode
from e2eguard.models.visual import (
    VIEWPORT_DIMENSIONS,
    BaselineEntry,
    ImageDiff,
    StandardViewport,
    ThresholdPreset,
    VisualBaselineRegistry,
    VisualOutcome,
    VisualResult,
    VisualThreshold,
)

logger = logging.getLogger(__name__)

DEFAULT_STABILITY_DELAY_MS = 200
VIEWPORT_SETTLE_MS = 100

# (local, ci); CI always tolerates more noise.
THRESHOLDS: dict[ThresholdPreset, tuple[VisualThreshold, VisualThreshold]] = {
    ThresholdPreset.DEFAULT: (
        VisualThreshold(pixel_threshold=0.2, max_diff_pixel_ratio=0.01),
        VisualThreshold(pixel_threshold=0.35, max_diff_pixel_ratio=0.05),
    ),
    ThresholdPreset.STRICT: (
        VisualThreshold(pixel_threshold=0.1, max_diff_pixel_ratio=0.005),
        VisualThreshold(pixel_threshold=0.25, max_diff_pixel_ratio=0.03),
    ),
    ThresholdPreset.LENIENT: (
        VisualThreshold(pixel_threshold=0.3, max_diff_pixel_ratio=0.03),
        VisualThreshold(pixel_threshold=0.45, max_diff_pixel_ratio=0.08),
    ),
}


def should_skip(mode: TestMode, explicit_enable: bool) -> bool:
    """CI modes skip pixel comparisons unless explicitly enabled; local never skips."""
    return is_ci_mode(mode) and not explicit_enable


def resolve_threshold(preset: ThresholdPreset | str, mode: TestMode) -> VisualThreshold:
    local, ci = THRESHOLDS[ThresholdPreset(preset)]
    return ci if is_ci_mode(mode) else local


def resolve_update_mode(
    explicit: Optional[str], mode: TestMode, visual_enabled: bool = False
) -> Optional[UpdateMode]:
    """Snapshot update mode: a valid explicit value, else ``missing`` in CI with visual tests on."""
    if explicit:
        try:
            update_mode = UpdateMode(explicit.strip().lower())
            logger.info("Using snapshot update mode: %s", update_mode.value)
            return update_mode
        except ValueError:
            logger.warning(
                "Invalid snapshot update mode %r (expected one of %s), ignoring",
                explicit, ", ".join(m.value for m in UpdateMode),
            )
    if is_ci_mode(mode) and visual_enabled:
        return UpdateMode.MISSING
    return None


def screenshot_name(
    base: str,
    viewport: Optional[StandardViewport | str | dict] = None,
    platform: str = "",
    is_ci: bool = False,
) -> str:
    """Baseline file name: ``{base}[-{viewport}]-{platform}[-ci].png``."""
    name = base.removesuffix(".png")
    if isinstance(viewport, dict):
        name += f"-{viewport['width']}x{viewport['height']}"
    elif viewport:
        name += f"-{StandardViewport(viewport).value}"
    if platform:
        name += f"-{platform}"
    if is_ci:
        name += "-ci"
    return f"{name}.png"


def compare_images(
    baseline: Path | bytes,
    actual: Path | bytes,
    threshold: VisualThreshold,
    diff_path: Optional[Path] = None,
) -> ImageDiff:
    """Pixel diff of two images.

    A pixel differs when its largest channel difference, as a fraction of
    255, exceeds ``threshold.pixel_threshold``. The comparison passes when
    the share of differing pixels is at most ``max_diff_pixel_ratio``.
    Differing pixels are painted red onto the actual image at ``diff_path``
    when the comparison fails.
    """
    from PIL import Image, ImageChops

    def _open(source: Path | bytes) -> Image.Image:
        with Image.open(io.BytesIO(source) if isinstance(source, bytes) else source) as img:
            return img.convert("RGB")

    base_img = _open(baseline)
    actual_img = _open(actual)

    if base_img.size != actual_img.size:
        total = actual_img.width * actual_img.height
        logger.debug("Size mismatch: baseline %s vs actual %s", base_img.size, actual_img.size)
        return ImageDiff(
            diff_pixels=total, total_pixels=total, diff_ratio=1.0, size_mismatch=True, passed=False
        )

    red, green, blue = ImageChops.difference(base_img, actual_img).split()
    channel_max = ImageChops.lighter(ImageChops.lighter(red, green), blue)
    cutoff = int(threshold.pixel_threshold * 255)
    diff_pixels = sum(channel_max.histogram()[cutoff + 1:])
    total = actual_img.width * actual_img.height
    ratio = diff_pixels / total if total else 0.0
    passed = ratio <= threshold.max_diff_pixel_ratio

    if not passed and diff_path is not None:
        mask = channel_max.point(lambda v: 255 if v > cutoff else 0)
        highlight = Image.new("RGB", actual_img.size, (255, 0, 0))
        diff_path.parent.mkdir(parents=True, exist_ok=True)
        Image.composite(highlight, actual_img, mask).save(diff_path)

    return ImageDiff(diff_pixels=diff_pixels, total_pixels=total, diff_ratio=ratio, passed=passed)


async def set_viewport(page: Page, viewport: StandardViewport | str | dict) -> None:
    dimensions = viewport if isinstance(viewport, dict) else VIEWPORT_DIMENSIONS[StandardViewport(viewport)]
    await page.set_viewport_size(dimensions)
    # Let responsive layout settle.
    await page.wait_for_timeout(VIEWPORT_SETTLE_MS)
    logger.debug("Viewport set to %dx%d", dimensions["width"], dimensions["height"])


class VisualComparisonGate:
    """Runs screenshot assertions for one test according to the run's mode.

    Skipped comparisons still leave a debug screenshot behind. A mismatch
    fails the test locally; in CI with visual tests opted in it is recorded
    as a soft failure instead.
    """

    def __init__(
        self,
        context: RunContext,
        capture: ArtifactCapture,
        registry_manager: Optional[VisualBaselineRegistryManager] = None,
    ):
        self.context = context
        self.capture = capture
        self.registry_manager = registry_manager or VisualBaselineRegistryManager(
            Path(context.config.baseline_dir), context.config.base_url
        )
        self.skip = should_skip(context.mode, context.visual_enabled)
        self.update_mode = resolve_update_mode(
            context.environment.flags.update_snapshots, context.mode, context.visual_enabled
        )
        self.results: list[VisualResult] = []
        self._registry: Optional[VisualBaselineRegistry] = None

    @property
    def soft_failures(self) -> list[VisualResult]:
        return [r for r in self.results if r.outcome == VisualOutcome.SOFT_FAILED]

    @property
    def registry(self) -> VisualBaselineRegistry:
        if self._registry is None:
            self._registry = self.registry_manager.load()
        return self._registry

    def _name_for(self, base: str, viewport) -> str:
        # Baselines follow the mode so a forced CI mode compares against CI baselines.
        return screenshot_name(
            base, viewport, self.context.environment.platform, is_ci_mode(self.context.mode)
        )

    def _soft_failure_allowed(self) -> bool:
        return is_ci_mode(self.context.mode) and self.context.visual_enabled

    def _add(self, result: VisualResult) -> VisualResult:
        self.results.append(result)
        return result

    async def _stabilize(self, page: Page, stability_delay_ms: int) -> None:
        timeouts = self.context.timeouts
        await wait_for_animations_complete(page, timeouts)
        try:
            await wait_for_network_idle(page, timeouts)
        except OperationTimeoutError as e:
            logger.warning("Network did not go idle before screenshot: %s", e)
        await page.wait_for_load_state("load", timeout=timeouts.navigation)
        await page.wait_for_timeout(stability_delay_ms)

    def _store(self, shot: str, data: bytes) -> BaselineEntry:
        entry = self.registry_manager.store_baseline(
            self.registry, shot, data, self.context.environment.run_id
        )
        self.registry_manager.save(self.registry)
        return entry

    def _compare(self, name: str, shot: str, data: bytes, threshold: VisualThreshold) -> VisualResult:
        actual_path = self.capture.save_artifact(ArtifactCategory.SCREENSHOTS, f"actual-{shot}", data) or None
        baseline = self.registry_manager.get_baseline(self.registry, shot)
        result = VisualResult(
            name=name, screenshot_name=shot, outcome=VisualOutcome.PASSED,
            threshold=threshold, actual_path=actual_path,
        )

        if baseline is None:
            self._store(shot, data)
            if self.update_mode is None:
                raise VisualComparisonError(
                    f"No baseline for {shot}; one was written from this run", shot
                )
            logger.info("Wrote missing baseline %s", shot)
            return result.model_copy(update={
                "outcome": VisualOutcome.BASELINE_WRITTEN, "message": "baseline written",
            })

        if self.update_mode is UpdateMode.ALL:
            self._store(shot, data)
            return result.model_copy(update={
                "outcome": VisualOutcome.UPDATED, "message": "baseline replaced",
            })

        diff_path = self.capture.category_dir(ArtifactCategory.SCREENSHOTS) / f"diff-{shot}"
        diff = compare_images(baseline, data, threshold, diff_path)
        result = result.model_copy(update={"diff_ratio": diff.diff_ratio})
        if diff.passed:
            logger.debug("Visual comparison passed for %s (%.4f)", shot, diff.diff_ratio)
            return result

        if diff_path.exists():
            result = result.model_copy(update={
                "diff_path": self.capture.record_file(ArtifactCategory.SCREENSHOTS, diff_path)
            })

        match self.update_mode:
            case UpdateMode.ON_FAILURE:
                self._store(shot, data)
                return result.model_copy(update={
                    "outcome": VisualOutcome.UPDATED, "message": "baseline replaced after mismatch",
                })
            case UpdateMode.MISSING | None:
                reason = "size differs from baseline" if diff.size_mismatch else (
                    f"{diff.diff_ratio:.2%} of pixels differ "
                    f"(allowed {threshold.max_diff_pixel_ratio:.2%})"
                )
                raise VisualComparisonError(f"Screenshot {shot} mismatch: {reason}", shot, diff.diff_ratio)

    def _log_remediation(self, error: Exception) -> None:
        update_mode = self.update_mode.value if self.update_mode else "none"
        logger.warning("Visual comparison failed in CI (update mode: %s): %s", update_mode, error)
        logger.info("Available options to fix this issue:")
        logger.info("1. Set VISUAL_TESTS_ENABLED_IN_CI=0 to disable visual tests in CI completely")
        logger.info("2. Set PLAYWRIGHT_UPDATE_SNAPSHOTS=all to update all snapshots")
        logger.info("3. Set PLAYWRIGHT_UPDATE_SNAPSHOTS=on-failure to update failing snapshots")

    async def expect_screenshot(
        self,
        page: Page,
        name: str,
        *,
        viewport: Optional[StandardViewport | str | dict] = None,
        preset: Optional[ThresholdPreset | str] = None,
        full_page: bool = False,
        mask: Optional[list[Locator]] = None,
        stability_delay_ms: int = DEFAULT_STABILITY_DELAY_MS,
    ) -> VisualResult:
        """Compare the page against its baseline, or capture a debug screenshot when skipped."""
        shot = self._name_for(name, viewport)

        if self.skip:
            logger.info(
                "Skipping visual comparison for %r in CI (set VISUAL_TESTS_ENABLED_IN_CI=1 to enable)", name
            )
            if viewport:
                await set_viewport(page, viewport)
            path = await self.capture.take_screenshot(page, f"debug-ci-skipped-{name}")
            return self._add(VisualResult(
                name=name, screenshot_name=shot, outcome=VisualOutcome.SKIPPED,
                message="visual comparison skipped", actual_path=path or None,
            ))

        threshold = resolve_threshold(preset or self.context.config.default_threshold, self.context.mode)
        try:
            if viewport:
                await set_viewport(page, viewport)
            await self._stabilize(page, stability_delay_ms)
            try:
                data = await page.screenshot(full_page=full_page, mask=mask or [])
                return self._add(self._compare(name, shot, data, threshold))
            except Exception as e:
                # Capture and diff errors are non-fatal in CI once visual tests are opted in.
                if not self._soft_failure_allowed():
                    raise
                self._log_remediation(e)
                visual_error = e if isinstance(e, VisualComparisonError) else None
                return self._add(VisualResult(
                    name=name, screenshot_name=shot, outcome=VisualOutcome.SOFT_FAILED,
                    diff_ratio=visual_error.diff_ratio if visual_error else None,
                    threshold=threshold,
                    message=visual_error.message if visual_error else f"{type(e).__name__}: {e}",
                ))
        except Exception as e:
            logger.error("Visual comparison failed for %r: %s", name, e)
            await self.capture.take_screenshot(page, f"failure-{name}")
            raise

    async def expect_screenshot_for_viewports(
        self,
        page: Page,
        name: str,
        viewports: Optional[list[StandardViewport | str]] = None,
        **options,
    ) -> list[VisualResult]:
        """Run ``expect_screenshot`` once per viewport.

        When skipped only the first viewport gets a debug screenshot.
        """
        viewports = list(viewports) if viewports is not None else list(self.context.config.viewports)
        if not self.skip:
            return [
                await self.expect_screenshot(page, name, viewport=viewport, **options)
                for viewport in viewports
            ]

        logger.info("Skipping multi-viewport visual test for %r in CI", name)
        path = ""
        if viewports:
            first = StandardViewport(viewports[0]).value
            await set_viewport(page, viewports[0])
            path = await self.capture.take_screenshot(page, f"debug-ci-skipped-{name}-{first}")
        return [
            self._add(VisualResult(
                name=name,
                screenshot_name=self._name_for(name, viewport),
                outcome=VisualOutcome.SKIPPED,
                message="visual comparison skipped",
                actual_path=(path or None) if i == 0 else None,
            ))
            for i, viewport in enumerate(viewports)
        ]

    async def generate_baseline(
        self,
        page: Page,
        name: str,
        *,
        viewport: Optional[StandardViewport | str | dict] = None,
        full_page: bool = False,
    ) -> BaselineEntry:
        """Capture the page and store it as the baseline, replacing any existing one."""
        if self.context.is_ci:
            logger.warning("Generating baseline screenshot in CI for %r; existing baselines are overwritten", name)
            logger.info("For controlled updates prefer PLAYWRIGHT_UPDATE_SNAPSHOTS with expect_screenshot")
        if viewport:
            await set_viewport(page, viewport)
        await self._stabilize(page, DEFAULT_STABILITY_DELAY_MS)
        data = await page.screenshot(full_page=full_page)
        shot = self._name_for(name, viewport)
        entry = self._store(shot, data)
        logger.info("Baseline screenshot generated: %s", self.registry_manager.image_path(shot))
        return entry
