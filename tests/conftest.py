"""Pytest configuration and shared fixtures."""

import io
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from playwright.async_api import Browser, BrowserContext, Page

from e2eguard.context import RunContext, build_run_context
from e2eguard.environment.detector import detect
from e2eguard.models.config import FrameworkConfig
from e2eguard.models.environment import EnvironmentInfo
from e2eguard.models.test_plan import Action, Assertion, TestCase, TestPlan
from e2eguard.models.test_result import (
    AssertionResult,
    Evidence,
    RunResult,
    StepResult,
    TestResult,
)
from e2eguard.models.timeouts import TimeoutConfig

CI_ENVIRON = {"CI": "true", "GITHUB_ACTIONS": "true", "GITHUB_RUN_ID": "4242"}


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def local_env() -> EnvironmentInfo:
    """Environment of a developer machine."""
    return detect({})


@pytest.fixture
def ci_env() -> EnvironmentInfo:
    """Environment of a GitHub Actions runner."""
    return detect(CI_ENVIRON)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def framework_config(tmp_path: Path) -> FrameworkConfig:
    """Config with every output directory under tmp_path."""
    return FrameworkConfig(
        base_url="https://example.com",
        artifact_root=str(tmp_path / "test-results"),
        baseline_dir=str(tmp_path / "baselines"),
        report_output_dir=str(tmp_path / "reports"),
    )


@pytest.fixture
def local_context(framework_config: FrameworkConfig) -> RunContext:
    return build_run_context(framework_config, environ={})


@pytest.fixture
def ci_context(framework_config: FrameworkConfig) -> RunContext:
    """ci-functional: visual comparisons skipped."""
    return build_run_context(framework_config, environ=CI_ENVIRON)


@pytest.fixture
def ci_visual_context(framework_config: FrameworkConfig) -> RunContext:
    """ci-visual with visual comparisons explicitly enabled."""
    return build_run_context(
        framework_config,
        environ={**CI_ENVIRON, "PLAYWRIGHT_TEST_GREP": "@visual", "VISUAL_TESTS_ENABLED_IN_CI": "1"},
    )


@pytest.fixture
def fast_timeouts() -> TimeoutConfig:
    """Small budgets so timeout paths run quickly."""
    return TimeoutConfig(
        element_wait=200,
        form_ready=200,
        network_idle=200,
        navigation=200,
        api_call=200,
        element_stability=100,
    )


# ============================================================================
# Test Plan Fixtures
# ============================================================================


@pytest.fixture
def action() -> Action:
    """Create a test action."""
    return Action(
        action_type="click",
        selector="button#submit",
        value=None,
        description="Click the submit button",
    )


@pytest.fixture
def assertion() -> Assertion:
    """Create a test assertion."""
    return Assertion(
        assertion_type="element_visible",
        selector=".success-message",
        description="Success message should be visible",
    )


@pytest.fixture
def test_case(action: Action, assertion: Assertion) -> TestCase:
    """Create a test case."""
    return TestCase(
        test_id="test-001",
        name="Login with valid credentials",
        description="Test that users can log in with valid credentials",
        priority=1,
        steps=[action],
        assertions=[assertion],
        timeout_seconds=30,
    )


@pytest.fixture
def test_plan(test_case: TestCase) -> TestPlan:
    """Create a test plan."""
    return TestPlan(
        plan_id="plan-001",
        base_url="https://example.com",
        test_cases=[test_case],
    )


# ============================================================================
# Test Result Fixtures
# ============================================================================


@pytest.fixture
def step_result() -> StepResult:
    return StepResult(
        step_index=0,
        action_type="click",
        selector="button#submit",
        description="Click submit button",
        status="pass",
    )


@pytest.fixture
def assertion_result() -> AssertionResult:
    return AssertionResult(
        assertion_type="element_visible",
        selector=".success-message",
        description="Success message should be visible",
        passed=True,
        message="Element '.success-message' is visible",
    )


@pytest.fixture
def test_result(step_result: StepResult, assertion_result: AssertionResult) -> TestResult:
    return TestResult(
        test_id="test-001",
        test_name="Login with valid credentials",
        description="Test login functionality",
        result="pass",
        duration_seconds=0.5,
        step_results=[step_result],
        assertion_results=[assertion_result],
        assertions_passed=1,
        assertions_total=1,
        evidence=Evidence(),
    )


@pytest.fixture
def run_result(test_result: TestResult) -> RunResult:
    return RunResult(
        run_id="run-001",
        plan_id="plan-001",
        mode="local-development",
        started_at="2025-01-01T00:00:00Z",
        completed_at="2025-01-01T00:05:00Z",
        base_url="https://example.com",
        total_tests=1,
        passed=1,
        duration_seconds=300.0,
        test_results=[test_result],
    )


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_page() -> AsyncMock:
    """Create a mock Playwright page."""
    page = AsyncMock(spec=Page)
    page.url = "https://example.com"
    page.title.return_value = "Example Page"
    page.on = Mock()
    page.remove_listener = Mock()
    page.locator = Mock(return_value=AsyncMock())
    page.keyboard = AsyncMock()
    page.evaluate = AsyncMock(return_value=True)
    page.content = AsyncMock(return_value="<html><body>ok</body></html>")
    page.screenshot = AsyncMock(return_value=png_bytes())
    return page


@pytest.fixture
def mock_context() -> AsyncMock:
    """Create a mock Playwright browser context."""
    context = AsyncMock(spec=BrowserContext)
    context.new_page = AsyncMock()
    return context


@pytest.fixture
def mock_browser() -> AsyncMock:
    """Create a mock Playwright browser."""
    browser = AsyncMock(spec=Browser)
    browser.new_context = AsyncMock()
    return browser


# ============================================================================
# Temporary Directory Fixtures
# ============================================================================


@pytest.fixture
def temp_baseline_dir(tmp_path: Path) -> Path:
    """Create a temporary baseline directory."""
    baseline_dir = tmp_path / "baselines"
    baseline_dir.mkdir()
    return baseline_dir


# ============================================================================
# Helper Functions
# ============================================================================


def png_bytes(size: tuple[int, int] = (20, 20), color: tuple[int, int, int] = (255, 255, 255)) -> bytes:
    """Encode a solid-colour PNG."""
    from PIL import Image

    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def write_png(path: Path, size: tuple[int, int] = (20, 20), color: tuple[int, int, int] = (255, 255, 255)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(png_bytes(size, color))
    return path
