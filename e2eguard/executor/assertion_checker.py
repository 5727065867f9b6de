"""Assertion checker: evaluates test assertions against page state."""

from __future__ import annotations

import logging
import re
from typing import Optional

from playwright.async_api import Page

from e2eguard.errors import VisualComparisonError
from e2eguard.executor.retry import retry_assertion
from e2eguard.executor.visual import VisualComparisonGate
from e2eguard.models.test_plan import Assertion
from e2eguard.models.timeouts import TimeoutConfig
from e2eguard.models.visual import VisualOutcome, VisualResult

logger = logging.getLogger(__name__)

# Retry spacing for DOM assertions; state usually settles within a frame or two.
ASSERTION_BACKOFF_MS = 250


class CheckResult:
    def __init__(self, passed: bool, message: str = "", visual_results: Optional[list[VisualResult]] = None):
        self.passed = passed
        self.message = message
        self.visual_results = visual_results or []


async def check_assertion(
    page: Page,
    assertion: Assertion,
    timeouts: TimeoutConfig,
    gate: Optional[VisualComparisonGate] = None,
    console_logs: Optional[list[str]] = None,
    retries: int = 1,
) -> CheckResult:
    """Evaluate a single assertion and return the result.

    DOM assertions are re-evaluated with a short backoff before they are
    reported as failed.
    """
    logger.debug("Checking assertion: %s", assertion.assertion_type)
    if assertion.assertion_type == "screenshot_matches":
        return await _check_screenshot(page, assertion, gate)

    try:
        message = await retry_assertion(
            lambda: _evaluate(page, assertion, timeouts, console_logs),
            retries=retries,
            backoff_base_ms=ASSERTION_BACKOFF_MS,
            description=assertion.description or assertion.assertion_type,
        )
        return CheckResult(True, message)
    except AssertionError as e:
        return CheckResult(False, str(e))
    except Exception as e:
        return CheckResult(False, f"Assertion error: {e}")


async def _evaluate(
    page: Page, assertion: Assertion, timeouts: TimeoutConfig, console_logs: Optional[list[str]]
) -> str:
    """Raise AssertionError on failure; return a message on success."""
    selector = assertion.selector
    expected = assertion.expected_value
    wait_ms = timeouts.element_wait

    match assertion.assertion_type:
        case "element_visible":
            _need(selector, "selector")
            visible = await page.locator(selector).first.is_visible()
            _expect(visible, f"Element '{selector}' not visible")
            return f"Element '{selector}' is visible"

        case "element_hidden":
            _need(selector, "selector")
            hidden = await page.locator(selector).first.is_hidden()
            _expect(hidden, f"Element '{selector}' still visible")
            return f"Element '{selector}' is hidden"

        case "text_contains":
            _need(expected, "expected_value")
            if selector:
                text = await page.locator(selector).first.text_content(timeout=wait_ms) or ""
            else:
                text = await page.locator("body").text_content(timeout=wait_ms) or ""
            _expect(expected in text, f"'{expected}' not in text")
            return f"Found '{expected}'"

        case "text_equals":
            _need(selector, "selector")
            _need(expected, "expected_value")
            text = (await page.locator(selector).first.text_content(timeout=wait_ms) or "").strip()
            _expect(text == expected, f"Expected '{expected}', got '{text}'")
            return "Text matches"

        case "text_matches":
            _need(selector, "selector")
            _need(expected, "expected_value")
            text = await page.locator(selector).first.text_content(timeout=wait_ms) or ""
            _expect(re.search(expected, text) is not None, f"Text '{text[:80]}' doesn't match /{expected}/")
            return "Text matches pattern"

        case "url_matches":
            _need(expected, "expected_value")
            current = page.url
            _expect(
                expected in current or re.search(expected, current) is not None,
                f"URL '{current}' doesn't match '{expected}'",
            )
            return f"URL matches: {current}"

        case "page_title_contains":
            _need(expected, "expected_value")
            title = await page.title()
            _expect(expected in title, f"Title '{title}' doesn't contain '{expected}'")
            return f"Title contains '{expected}'"

        case "element_count":
            _need(selector, "selector")
            _need(expected, "expected_value")
            actual = await page.locator(selector).count()
            _expect(actual == int(expected), f"Expected {expected} elements, found {actual}")
            return f"Found {actual} elements"

        case "page_loaded":
            state = await page.evaluate("document.readyState")
            _expect(state == "complete", f"Document readyState is '{state}'")
            return "Page loaded"

        case "no_console_errors":
            errors = [
                line for line in (console_logs or [])
                if line.startswith("[error]") and "favicon" not in line.lower()
            ]
            if errors:
                raise AssertionError(f"{len(errors)} console error(s): {errors[0][:100]}")
            return "No console errors"

        case _:
            raise ValueError(f"Unknown assertion type: {assertion.assertion_type}")


def _expect(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


def _need(value: Optional[str], field: str) -> None:
    if not value:
        raise ValueError(f"Assertion requires {field}")


async def _check_screenshot(
    page: Page, assertion: Assertion, gate: Optional[VisualComparisonGate]
) -> CheckResult:
    if gate is None:
        return CheckResult(False, "No visual comparison gate configured")
    name = assertion.expected_value or assertion.description or "screenshot"
    options = {"preset": assertion.threshold, "full_page": assertion.selector == "full_page"}
    try:
        if assertion.viewports:
            results = await gate.expect_screenshot_for_viewports(page, name, assertion.viewports, **options)
        else:
            results = [await gate.expect_screenshot(page, name, **options)]
    except VisualComparisonError as e:
        return CheckResult(False, e.message)

    soft = [r for r in results if r.outcome == VisualOutcome.SOFT_FAILED]
    if soft:
        message = f"{len(soft)} soft visual failure(s): {soft[0].message}"
    else:
        message = ", ".join(f"{r.screenshot_name}: {r.outcome.value}" for r in results)
    return CheckResult(True, message, results)
