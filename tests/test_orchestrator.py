"""Tests for the run orchestrator."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from e2eguard.executor.baseline_registry import REGISTRY_FILE
from e2eguard.models.test_mode import TestMode
from e2eguard.models.visual import StandardViewport, VisualOutcome, VisualResult
from e2eguard.orchestrator import Orchestrator


@pytest.fixture
def orchestrator(framework_config):
    return Orchestrator(framework_config, environ={})


class TestConstruction:
    def test_context_built_once(self, orchestrator):
        assert orchestrator.context.mode is TestMode.LOCAL_DEVELOPMENT
        assert orchestrator.reporter.config is orchestrator.config

    def test_mode_override(self, framework_config):
        assert Orchestrator(framework_config, "ci-lightweight", environ={}).context.mode is TestMode.CI_LIGHTWEIGHT


class TestExitCode:
    def test_clean(self, orchestrator, run_result):
        assert orchestrator.exit_code(run_result) == 0

    def test_hard_failures(self, orchestrator, run_result):
        run_result.failed = 1
        assert orchestrator.exit_code(run_result) == 1

    def test_soft_failures_pass_by_default(self, orchestrator, run_result):
        run_result.visual_soft_failures = [VisualResult(name="home", outcome=VisualOutcome.SOFT_FAILED)]
        assert orchestrator.exit_code(run_result) == 0

    def test_soft_failure_exit_code(self, framework_config, run_result):
        config = framework_config.model_copy(update={"soft_failure_exit_code": 3})
        run_result.visual_soft_failures = [VisualResult(name="home", outcome=VisualOutcome.SOFT_FAILED)]
        assert Orchestrator(config, environ={}).exit_code(run_result) == 3

    def test_hard_failures_beat_soft_exit_code(self, framework_config, run_result):
        config = framework_config.model_copy(update={"soft_failure_exit_code": 3})
        run_result.errors = 1
        run_result.visual_soft_failures = [VisualResult(name="home", outcome=VisualOutcome.SOFT_FAILED)]
        assert Orchestrator(config, environ={}).exit_code(run_result) == 1


class TestRunPlan:
    def test_executes_and_reports(self, orchestrator, test_plan, run_result):
        with patch("e2eguard.orchestrator.Executor") as executor_cls:
            executor_cls.return_value.execute = AsyncMock(return_value=run_result)
            result, reports = orchestrator.run_plan(test_plan)

        executor_cls.assert_called_once_with(orchestrator.context)
        executor_cls.return_value.execute.assert_awaited_once_with(test_plan)
        assert result is run_result
        assert json.loads(Path(reports["json"]).read_text())["run_id"] == "run-001"
        assert Path(reports["summary"]).exists()


class TestValidateEnvironment:
    def test_delegates(self, orchestrator, framework_config):
        result = orchestrator.validate_environment()
        assert result.success is True
        assert Path(framework_config.baseline_dir).is_dir()


class TestGenerateBaselines:
    def test_captures_every_page_and_viewport(self, orchestrator, mock_page, mock_context, mock_browser):
        mock_context.new_page.return_value = mock_page
        with (
            patch("e2eguard.orchestrator.async_playwright"),
            patch("e2eguard.orchestrator.launch_browser", new=AsyncMock(return_value=mock_browser)),
            patch("e2eguard.orchestrator.create_context", new=AsyncMock(return_value=mock_context)),
        ):
            entries = orchestrator.generate_baselines(
                {"home": "/", "pricing": "/pricing"},
                [StandardViewport.MOBILE, StandardViewport.DESKTOP],
            )

        assert len(entries) == 4
        platform = orchestrator.context.environment.platform
        assert entries[0].screenshot_name == f"home-mobile-{platform}.png"
        assert entries[3].screenshot_name == f"pricing-desktop-{platform}.png"
        urls = [c.args[0] for c in mock_page.goto.await_args_list]
        assert urls == ["https://example.com/", "https://example.com/pricing"]
        assert mock_page.goto.await_args.kwargs["wait_until"] == "load"
        assert all(kw.kwargs["full_page"] is True for kw in mock_page.screenshot.await_args_list)
        baseline_dir = Path(orchestrator.config.baseline_dir)
        assert (baseline_dir / entries[0].image_path).exists()
        assert (baseline_dir / REGISTRY_FILE).exists()
        mock_context.close.assert_awaited_once()
        mock_browser.close.assert_awaited_once()

    def test_browser_closed_on_failure(self, orchestrator, mock_page, mock_context, mock_browser):
        mock_context.new_page.return_value = mock_page
        mock_page.goto.side_effect = RuntimeError("net::ERR_NAME_NOT_RESOLVED")
        with (
            patch("e2eguard.orchestrator.async_playwright"),
            patch("e2eguard.orchestrator.launch_browser", new=AsyncMock(return_value=mock_browser)),
            patch("e2eguard.orchestrator.create_context", new=AsyncMock(return_value=mock_context)),
            patch("e2eguard.executor.retry.asyncio.sleep", new=AsyncMock()),
        ):
            with pytest.raises(RuntimeError):
                orchestrator.generate_baselines({"home": "/"}, [StandardViewport.DESKTOP])
        mock_browser.close.assert_awaited_once()
