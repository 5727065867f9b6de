"""Tests for assertion checker."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from conftest import write_png
from e2eguard.executor.assertion_checker import check_assertion
from e2eguard.executor.evidence_collector import ArtifactCapture
from e2eguard.executor.visual import VisualComparisonGate, screenshot_name
from e2eguard.models.test_plan import Assertion
from e2eguard.models.visual import StandardViewport, VisualOutcome


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("e2eguard.executor.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


@pytest.fixture
def element(mock_page):
    """The ``.first`` element behind every locator."""
    locator = AsyncMock()
    mock_page.locator = Mock(return_value=locator)
    return locator.first


def _gate(context, tmp_path):
    return VisualComparisonGate(context, ArtifactCapture(tmp_path / "artifacts", "assertions"))


@pytest.mark.asyncio
class TestCheckAssertion:
    """Tests for check_assertion function."""

    async def test_element_visible_success(self, mock_page, element, fast_timeouts):
        element.is_visible.return_value = True
        assertion = Assertion(assertion_type="element_visible", selector=".success-message")

        result = await check_assertion(mock_page, assertion, fast_timeouts)

        assert result.passed is True
        assert "visible" in result.message.lower()

    async def test_element_visible_failure_after_retries(self, mock_page, element, fast_timeouts, no_sleep):
        element.is_visible.return_value = False
        assertion = Assertion(assertion_type="element_visible", selector=".missing-element")

        result = await check_assertion(mock_page, assertion, fast_timeouts, retries=2)

        assert result.passed is False
        assert result.message == "Element '.missing-element' not visible"
        assert element.is_visible.await_count == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [0.25, 0.5]

    async def test_element_becomes_visible_on_retry(self, mock_page, element, fast_timeouts):
        element.is_visible.side_effect = [False, True]
        assertion = Assertion(assertion_type="element_visible", selector=".toast")
        result = await check_assertion(mock_page, assertion, fast_timeouts, retries=1)
        assert result.passed is True

    async def test_element_hidden(self, mock_page, element, fast_timeouts):
        element.is_hidden.return_value = True
        assertion = Assertion(assertion_type="element_hidden", selector=".spinner")
        assert (await check_assertion(mock_page, assertion, fast_timeouts)).passed is True

    async def test_text_contains_in_body(self, mock_page, fast_timeouts):
        body = AsyncMock()
        body.text_content.return_value = "Welcome back, Ada"
        mock_page.locator = Mock(return_value=body)
        assertion = Assertion(assertion_type="text_contains", expected_value="Welcome")

        result = await check_assertion(mock_page, assertion, fast_timeouts)

        assert result.passed is True
        mock_page.locator.assert_called_with("body")
        body.text_content.assert_awaited_with(timeout=200)

    async def test_text_contains_failure(self, mock_page, element, fast_timeouts):
        element.text_content.return_value = "Goodbye"
        assertion = Assertion(assertion_type="text_contains", selector="h1", expected_value="Welcome")
        result = await check_assertion(mock_page, assertion, fast_timeouts, retries=0)
        assert result.passed is False
        assert "'Welcome' not in text" in result.message

    async def test_text_equals_strips(self, mock_page, element, fast_timeouts):
        element.text_content.return_value = "  Total: $10  "
        assertion = Assertion(assertion_type="text_equals", selector=".total", expected_value="Total: $10")
        assert (await check_assertion(mock_page, assertion, fast_timeouts)).passed is True

    async def test_text_matches(self, mock_page, element, fast_timeouts):
        element.text_content.return_value = "Order #12345 confirmed"
        assertion = Assertion(assertion_type="text_matches", selector=".order", expected_value=r"#\d+")
        assert (await check_assertion(mock_page, assertion, fast_timeouts)).passed is True

    async def test_url_matches(self, mock_page, fast_timeouts):
        mock_page.url = "https://example.com/dashboard?tab=1"
        assertion = Assertion(assertion_type="url_matches", expected_value=r"/dashboard")
        assert (await check_assertion(mock_page, assertion, fast_timeouts)).passed is True

    async def test_url_mismatch(self, mock_page, fast_timeouts):
        assertion = Assertion(assertion_type="url_matches", expected_value="/account")
        result = await check_assertion(mock_page, assertion, fast_timeouts, retries=0)
        assert result.passed is False
        assert "doesn't match" in result.message

    async def test_page_title_contains(self, mock_page, fast_timeouts):
        assertion = Assertion(assertion_type="page_title_contains", expected_value="Example")
        assert (await check_assertion(mock_page, assertion, fast_timeouts)).passed is True

    async def test_element_count(self, mock_page, fast_timeouts):
        locator = AsyncMock()
        locator.count.return_value = 3
        mock_page.locator = Mock(return_value=locator)
        assertion = Assertion(assertion_type="element_count", selector="li", expected_value="3")
        result = await check_assertion(mock_page, assertion, fast_timeouts)
        assert result.passed is True
        assert result.message == "Found 3 elements"

    async def test_page_loaded(self, mock_page, fast_timeouts):
        mock_page.evaluate = AsyncMock(return_value="complete")
        assertion = Assertion(assertion_type="page_loaded")
        assert (await check_assertion(mock_page, assertion, fast_timeouts)).passed is True

    async def test_page_still_loading(self, mock_page, fast_timeouts):
        mock_page.evaluate = AsyncMock(return_value="interactive")
        result = await check_assertion(mock_page, Assertion(assertion_type="page_loaded"), fast_timeouts, retries=0)
        assert result.passed is False
        assert "interactive" in result.message

    async def test_no_console_errors_ignores_favicon(self, mock_page, fast_timeouts):
        logs = ["[log] ready", "[error] GET /favicon.ico 404"]
        assertion = Assertion(assertion_type="no_console_errors")
        assert (await check_assertion(mock_page, assertion, fast_timeouts, console_logs=logs)).passed is True

    async def test_console_errors_fail(self, mock_page, fast_timeouts):
        logs = ["[error] Uncaught TypeError: x is undefined"]
        assertion = Assertion(assertion_type="no_console_errors")
        result = await check_assertion(mock_page, assertion, fast_timeouts, console_logs=logs, retries=0)
        assert result.passed is False
        assert result.message.startswith("1 console error(s)")

    async def test_missing_field_fails_without_retry(self, mock_page, fast_timeouts, no_sleep):
        result = await check_assertion(mock_page, Assertion(assertion_type="text_equals"), fast_timeouts, retries=3)
        assert result.passed is False
        assert result.message == "Assertion error: Assertion requires selector"
        no_sleep.assert_not_awaited()

    async def test_unknown_assertion_type(self, mock_page, fast_timeouts):
        result = await check_assertion(mock_page, Assertion(assertion_type="is_pretty"), fast_timeouts)
        assert result.passed is False
        assert "Unknown assertion type" in result.message


@pytest.mark.asyncio
class TestScreenshotAssertion:
    async def test_without_gate(self, mock_page, fast_timeouts):
        assertion = Assertion(assertion_type="screenshot_matches", expected_value="home")
        result = await check_assertion(mock_page, assertion, fast_timeouts)
        assert result.passed is False
        assert "No visual comparison gate" in result.message

    async def test_matching_baseline(self, local_context, mock_page, fast_timeouts, tmp_path):
        gate = _gate(local_context, tmp_path)
        env = local_context.environment
        write_png(gate.registry_manager.image_path(screenshot_name("home", None, env.platform, env.is_ci)))

        assertion = Assertion(assertion_type="screenshot_matches", expected_value="home")
        result = await check_assertion(mock_page, assertion, fast_timeouts, gate=gate)

        assert result.passed is True
        assert result.visual_results[0].outcome == VisualOutcome.PASSED

    async def test_mismatch_fails(self, local_context, mock_page, fast_timeouts, tmp_path):
        gate = _gate(local_context, tmp_path)
        env = local_context.environment
        write_png(gate.registry_manager.image_path(screenshot_name("home", None, env.platform, env.is_ci)),
                  color=(0, 0, 0))

        assertion = Assertion(assertion_type="screenshot_matches", expected_value="home")
        result = await check_assertion(mock_page, assertion, fast_timeouts, gate=gate)

        assert result.passed is False
        assert "mismatch" in result.message

    async def test_soft_failure_passes(self, ci_visual_context, mock_page, fast_timeouts, tmp_path):
        gate = _gate(ci_visual_context, tmp_path)
        env = ci_visual_context.environment
        write_png(gate.registry_manager.image_path(screenshot_name("home", None, env.platform, env.is_ci)),
                  color=(0, 0, 0))

        assertion = Assertion(assertion_type="screenshot_matches", expected_value="home")
        result = await check_assertion(mock_page, assertion, fast_timeouts, gate=gate)

        assert result.passed is True
        assert result.message.startswith("1 soft visual failure(s)")

    async def test_skipped_in_ci_across_viewports(self, ci_context, mock_page, fast_timeouts, tmp_path):
        gate = _gate(ci_context, tmp_path)
        assertion = Assertion(
            assertion_type="screenshot_matches",
            expected_value="pricing",
            viewports=[StandardViewport.MOBILE, StandardViewport.DESKTOP],
        )
        result = await check_assertion(mock_page, assertion, fast_timeouts, gate=gate)

        assert result.passed is True
        assert [r.outcome for r in result.visual_results] == [VisualOutcome.SKIPPED] * 2
        mock_page.screenshot.assert_awaited_once()
