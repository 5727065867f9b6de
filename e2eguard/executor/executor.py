"""Test executor: runs test plans across the mode's browsers using Playwright."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from e2eguard.context import RunContext
from e2eguard.environment.modes import get_runner_timeouts, should_skip_tags
from e2eguard.errors import FilesystemError, OperationTimeoutError
from e2eguard.executor.action_runner import run_action
from e2eguard.executor.assertion_checker import check_assertion
from e2eguard.executor.debugger import CIDebugger
from e2eguard.executor.evidence_collector import artifact_dir_for
from e2eguard.executor.filesystem import apply_ci_filesystem_optimizations, ensure_directory_exists
from e2eguard.executor.visual import VisualComparisonGate
from e2eguard.models.artifacts import ArtifactCategory, TestOutcome
from e2eguard.models.environment import BrowserType
from e2eguard.models.test_plan import Action, TestCase, TestPlan
from e2eguard.models.test_result import (
    AssertionResult as AssertionResultModel,
    RunResult,
    StepResult,
    TestResult,
)
from e2eguard.models.visual import VisualOutcome
from e2eguard.utils.browser import create_context, launch_browser

logger = logging.getLogger(__name__)

_OUTCOMES = {
    "pass": TestOutcome.PASSED,
    "fail": TestOutcome.FAILED,
    "skip": TestOutcome.SKIPPED,
    "error": TestOutcome.ERROR,
}


def _capture_policy(setting: str, attempt: int) -> bool:
    """Whether a video/trace setting (on, off, on-first-retry) applies to ``attempt``."""
    return setting == "on" or (setting == "on-first-retry" and attempt == 2)


def _step_result(index: int, action: Action, status: str, error: Optional[str] = None) -> StepResult:
    return StepResult(
        step_index=index, action_type=action.action_type,
        selector=action.selector, value=action.value,
        description=action.description, status=status, error_message=error,
    )


class Executor:
    """Executes test plans against a live site.

    Each test attempt runs in its own browser context with its own
    artifact directory; up to ``context.workers`` tests run at once.
    """

    def __init__(self, context: RunContext, browsers: Optional[list[BrowserType]] = None):
        self.context = context
        self.browsers = browsers or list(context.mode_config.browsers)
        self.run_id = context.environment.run_id

    async def execute(self, plan: TestPlan) -> RunResult:
        """Execute a full test plan and return results.

        Browser launch failures are not retried and propagate to the caller.
        """
        ctx = self.context
        started_at = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        start_time = time.time()
        base_url = ctx.config.base_url or plan.base_url
        sorted_tests = sorted(plan.test_cases, key=lambda tc: tc.priority)
        logger.info("Starting plan %s in %s mode (%d tests, browsers: %s, workers: %d)",
                    plan.plan_id, ctx.mode.value, len(sorted_tests),
                    ", ".join(b.value for b in self.browsers), ctx.workers)

        try:
            ensure_directory_exists(ctx.artifact_root)
        except FilesystemError as e:
            logger.warning("Artifact root unavailable, continuing without it: %s", e)
        apply_ci_filesystem_optimizations(ctx.artifact_root, ctx.environment)

        test_results: list[TestResult] = []
        async with async_playwright() as p:
            for browser_type in self.browsers:
                browser = await launch_browser(p, browser_type, headless=ctx.headless)
                try:
                    test_results.extend(await self._run_all(browser, browser_type, sorted_tests, base_url))
                finally:
                    await browser.close()

        duration = time.time() - start_time
        soft_failures = [
            v for r in test_results for v in r.visual_results
            if v.outcome == VisualOutcome.SOFT_FAILED
        ]
        run_result = RunResult(
            run_id=self.run_id,
            plan_id=plan.plan_id,
            mode=ctx.mode.value,
            started_at=started_at,
            completed_at=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            base_url=base_url,
            total_tests=len(test_results),
            passed=sum(1 for r in test_results if r.result == "pass"),
            failed=sum(1 for r in test_results if r.result == "fail"),
            skipped=sum(1 for r in test_results if r.result == "skip"),
            errors=sum(1 for r in test_results if r.result == "error"),
            flaky=sum(1 for r in test_results if r.result == "pass" and r.attempts > 1),
            duration_seconds=round(duration, 2),
            test_results=test_results,
            visual_soft_failures=soft_failures,
            environment=ctx.environment.model_dump(mode="json", exclude={"environment_variables"}),
        )
        logger.info(
            "Execution complete: %d passed, %d failed, %d skipped, %d errors, %d flaky (%.1fs)",
            run_result.passed, run_result.failed, run_result.skipped,
            run_result.errors, run_result.flaky, duration,
        )
        if soft_failures:
            logger.warning("%d visual comparison(s) soft-failed in CI", len(soft_failures))
        return run_result

    async def _run_all(
        self, browser: Browser, browser_type: BrowserType, tests: list[TestCase], base_url: str
    ) -> list[TestResult]:
        semaphore = asyncio.Semaphore(self.context.workers)
        total = len(tests)

        async def _run_one(index: int, tc: TestCase) -> TestResult:
            if should_skip_tags(self.context.mode, tc.tags):
                logger.info("Skipping %s: tags %s filtered out in %s mode",
                            tc.test_id, [t.value for t in tc.tags], self.context.mode.value)
                return TestResult(
                    test_id=tc.test_id, test_name=tc.name, description=tc.description,
                    tags=[t.value for t in tc.tags], browser=browser_type.value,
                    priority=tc.priority, result="skip", attempts=0,
                    failure_reason=f"Filtered out by {self.context.mode.value} mode",
                )
            async with semaphore:
                logger.info("Running test [%d/%d] on %s: %s",
                            index + 1, total, browser_type.value, tc.name)
                result = await self._run_with_retries(browser, browser_type, tc, base_url)
                logger.info("[%s] %s: %s (%.1fs, %d attempt(s))",
                            result.result.upper(), tc.test_id, tc.name,
                            result.duration_seconds, result.attempts)
                return result

        return list(await asyncio.gather(*(_run_one(i, tc) for i, tc in enumerate(tests))))

    async def _run_with_retries(
        self, browser: Browser, browser_type: BrowserType, tc: TestCase, base_url: str
    ) -> TestResult:
        """Re-run a failing test case up to the mode's test-level retry count."""
        max_attempts = self.context.mode_config.retries + 1
        result: Optional[TestResult] = None
        for attempt in range(1, max_attempts + 1):
            result = await self._run_test(browser, browser_type, tc, base_url, attempt)
            result.attempts = attempt
            if result.result == "pass":
                if attempt > 1:
                    logger.warning("Test %s is flaky: passed on attempt %d", tc.test_id, attempt)
                break
            if attempt < max_attempts:
                logger.warning("Test %s %s on attempt %d/%d, retrying",
                               tc.test_id, result.result, attempt, max_attempts)
        return result

    async def _run_test(
        self,
        browser: Browser,
        browser_type: BrowserType,
        tc: TestCase,
        base_url: str,
        attempt: int = 1,
    ) -> TestResult:
        """Run one attempt of a test case with full step/assertion recording."""
        ctx = self.context
        settings = ctx.mode_config.artifacts
        title = f"{tc.name} [{browser_type.value}]" + (f" retry {attempt - 1}" if attempt > 1 else "")
        output_dir = artifact_dir_for(ctx.artifact_root, title)
        record_video = _capture_policy(settings.video, attempt)
        record_trace = _capture_policy(settings.trace, attempt)
        test_start = time.time()

        browser_context = await create_context(
            browser,
            timeouts=ctx.timeouts,
            record_video_dir=str(output_dir / ctx.config.artifact_dirs.videos) if record_video else None,
        )
        if record_trace:
            await browser_context.tracing.start(screenshots=True, snapshots=True)
        page = await browser_context.new_page()
        debugger = CIDebugger(page, title, ctx, output_dir=output_dir, browser=browser)
        await debugger.initialize()
        gate = VisualComparisonGate(ctx, debugger.capture)

        result = TestResult(
            test_id=tc.test_id, test_name=tc.name, description=tc.description,
            tags=[t.value for t in tc.tags], browser=browser_type.value,
            priority=tc.priority, result="pass", attempts=attempt,
        )
        budget_ms = tc.timeout_seconds * 1000 if tc.timeout_seconds else (
            get_runner_timeouts(ctx.mode, ctx.timeouts).test_timeout
        )
        try:
            await asyncio.wait_for(
                self._run_body(page, tc, base_url, debugger, gate, result), timeout=budget_ms / 1000
            )
        except asyncio.TimeoutError:
            error = OperationTimeoutError("test", budget_ms, int((time.time() - test_start) * 1000))
            await debugger.handle_error(error, "test timeout")
            result.result = "fail"
            result.failure_reason = str(error)
        except Exception as e:
            logger.error("Test %s crashed: %s", tc.test_id, e)
            if not debugger.was_handled(e):
                await debugger.handle_error(e)
            result.result = "error"
            result.failure_reason = str(e)

        try:
            screenshots = [a.path for a in (debugger.capture.bundle.artifacts if debugger.capture.bundle else [])
                           if a.category == ArtifactCategory.SCREENSHOTS]
            if result.result == "pass" and (ctx.mode_config.capture_screenshots_on_success or settings.screenshot == "on"):
                shot = await debugger.capture.take_screenshot(page, "final")
                if shot:
                    screenshots.append(shot)
            result.actual_url = page.url if page.url.startswith(("http://", "https://")) else ""
            evidence = debugger.capture.build_evidence(screenshots)
            if record_trace:
                trace_path = output_dir / ctx.config.artifact_dirs.traces / "trace.zip"
                await browser_context.tracing.stop(path=str(trace_path))
                evidence.trace_path = debugger.capture.record_file(ArtifactCategory.TRACES, trace_path)
            if record_video and page.video is not None:
                evidence.video_path = debugger.capture.record_file(
                    ArtifactCategory.VIDEOS, await page.video.path()
                )
            result.evidence = evidence
        finally:
            if debugger.failures:
                result.failure_type = debugger.failures[-1].failure_type.value
            result.visual_results = list(gate.results)
            result.duration_seconds = round(time.time() - test_start, 2)
            await debugger.finalize(_OUTCOMES[result.result])
            await self._close(page, browser_context)
        return result

    async def _run_body(
        self,
        page: Page,
        tc: TestCase,
        base_url: str,
        debugger: CIDebugger,
        gate: VisualComparisonGate,
        result: TestResult,
    ) -> None:
        ctx = self.context
        retries = ctx.mode_config.action_retries

        for i, action in enumerate(tc.preconditions):
            async with debugger.step(f"precondition {i + 1}: {action.description or action.action_type}"):
                try:
                    await run_action(page, action, ctx.timeouts, retries, base_url, debugger.capture)
                except Exception as e:
                    result.precondition_results.append(_step_result(i, action, "fail", str(e)))
                    raise
            result.precondition_results.append(_step_result(i, action, "pass"))

        aborted = False
        for i, action in enumerate(tc.steps):
            if aborted:
                result.step_results.append(_step_result(i, action, "skip", "Skipped due to earlier failure"))
                continue
            try:
                async with debugger.step(f"step {i + 1}: {action.description or action.action_type}"):
                    await run_action(page, action, ctx.timeouts, retries, base_url, debugger.capture)
                result.step_results.append(_step_result(i, action, "pass"))
            except Exception as e:
                result.step_results.append(_step_result(i, action, "fail", str(e)))
                result.result = "fail"
                result.failure_reason = f"Step {i + 1} failed: {e}"
                aborted = True

        if aborted:
            return

        failure_reasons = []
        for assertion in tc.assertions:
            check = await check_assertion(
                page, assertion, ctx.timeouts, gate,
                list(debugger.capture.console_logs), retries,
            )
            result.assertion_results.append(AssertionResultModel(
                assertion_type=assertion.assertion_type,
                selector=assertion.selector,
                expected_value=assertion.expected_value,
                description=assertion.description,
                passed=check.passed,
                message=check.message,
            ))
            if not check.passed:
                failure_reasons.append(f"{assertion.description or assertion.assertion_type}: {check.message}")

        result.assertions_total = len(tc.assertions)
        result.assertions_failed = len(failure_reasons)
        result.assertions_passed = result.assertions_total - result.assertions_failed
        if failure_reasons:
            result.result = "fail"
            result.failure_reason = "; ".join(failure_reasons)
            await debugger.handle_error(AssertionError(result.failure_reason), "assertions")

    @staticmethod
    async def _close(page: Page, browser_context: BrowserContext) -> None:
        try:
            await page.close()
            await browser_context.close()
        except Exception as e:
            logger.warning("Failed to close browser context: %s", e)
