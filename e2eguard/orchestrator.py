"""Run orchestrator: coordinates context, execution, reporting and baselines."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Mapping, Optional

from playwright.async_api import async_playwright

from e2eguard.context import RunContext, build_run_context
from e2eguard.environment.validator import ValidationResult, validate_environment
from e2eguard.executor.action_runner import resolve_url
from e2eguard.executor.evidence_collector import ArtifactCapture
from e2eguard.executor.executor import Executor
from e2eguard.executor.retry import retry_navigation
from e2eguard.executor.visual import VisualComparisonGate
from e2eguard.models.config import FrameworkConfig
from e2eguard.models.test_plan import TestPlan
from e2eguard.models.test_result import RunResult
from e2eguard.models.visual import BaselineEntry, StandardViewport
from e2eguard.policy.timeouts import log_timeout_configuration
from e2eguard.reporter.reporter import Reporter
from e2eguard.utils.browser import create_context, launch_browser

logger = logging.getLogger(__name__)

BASELINE_CAPTURE_DIR = "baseline-generation"


class Orchestrator:
    """Builds the run context once and hands it to every stage."""

    def __init__(
        self,
        config: FrameworkConfig,
        mode_override: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.config = config
        self.context: RunContext = build_run_context(config, mode_override, environ)
        self.reporter = Reporter(config)

    def validate_environment(self) -> ValidationResult:
        return validate_environment(self.config, self.context.environment)

    def run_plan(self, plan: TestPlan) -> tuple[RunResult, dict[str, str]]:
        """Execute ``plan`` and write the run reports."""
        return asyncio.run(self._run_plan(plan))

    async def _run_plan(self, plan: TestPlan) -> tuple[RunResult, dict[str, str]]:
        logger.info("=== Running plan %s (%s mode) ===", plan.plan_id, self.context.mode.value)
        log_timeout_configuration(self.context.mode, self.context.timeouts)
        run_result = await Executor(self.context).execute(plan)
        reports = self.reporter.generate_reports(run_result)
        return run_result, reports

    def exit_code(self, run_result: RunResult) -> int:
        """0 when every required test passed, 1 on hard failures.

        Visual soft failures map to ``soft_failure_exit_code`` when it is set.
        """
        if run_result.has_hard_failures:
            return 1
        if run_result.visual_soft_failures and self.config.soft_failure_exit_code is not None:
            return self.config.soft_failure_exit_code
        return 0

    def generate_baselines(
        self,
        pages: Mapping[str, str],
        viewports: Optional[list[StandardViewport]] = None,
    ) -> list[BaselineEntry]:
        """Capture a baseline for every ``name -> url`` pair at every viewport."""
        return asyncio.run(self._generate_baselines(pages, viewports))

    async def _generate_baselines(
        self,
        pages: Mapping[str, str],
        viewports: Optional[list[StandardViewport]],
    ) -> list[BaselineEntry]:
        ctx = self.context
        viewports = viewports or list(ctx.config.viewports)
        capture = ArtifactCapture(
            Path(ctx.config.artifact_root) / BASELINE_CAPTURE_DIR,
            BASELINE_CAPTURE_DIR,
            max_log_entries=ctx.config.max_log_entries,
            dirs=ctx.config.artifact_dirs,
        )
        gate = VisualComparisonGate(ctx, capture)
        entries: list[BaselineEntry] = []

        async with async_playwright() as p:
            browser = await launch_browser(p, ctx.mode_config.browsers[0], headless=ctx.headless)
            try:
                browser_context = await create_context(browser, timeouts=ctx.timeouts)
                page = await browser_context.new_page()
                for name, target in pages.items():
                    url = resolve_url(target, ctx.config.base_url)
                    logger.info("Generating baselines for %s (%s)", name, url)
                    await retry_navigation(
                        page, url, ctx.timeouts,
                        retries=ctx.mode_config.action_retries,
                        wait_until="load",
                    )
                    for viewport in viewports:
                        entries.append(await gate.generate_baseline(page, name, viewport=viewport, full_page=True))
                await browser_context.close()
            finally:
                await browser.close()

        logger.info("Generated %d baseline(s) in %s", len(entries), ctx.config.baseline_dir)
        return entries
