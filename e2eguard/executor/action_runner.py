"""Action runner: translates Action models to retried Playwright calls."""

from __future__ import annotations

import json
import logging
from typing import Optional
from urllib.parse import urljoin

from playwright.async_api import Page

from e2eguard.errors import OperationTimeoutError
from e2eguard.executor.evidence_collector import ArtifactCapture
from e2eguard.executor.retry import (
    is_retryable,
    retry_click,
    retry_fill,
    retry_navigation,
    run_with_budget,
    with_retry,
)
from e2eguard.executor.visual import set_viewport
from e2eguard.executor.waits import wait_for_network_idle
from e2eguard.models.retry import RetryPolicy
from e2eguard.models.test_plan import Action
from e2eguard.models.timeouts import TimeoutConfig, TimeoutOperation

logger = logging.getLogger(__name__)

DEFAULT_WAIT_MS = 1000


def resolve_url(value: str, base_url: str) -> str:
    """Absolute URL for a navigate action; relative paths join ``base_url``."""
    if not base_url or value.startswith(("http://", "https://", "about:", "data:", "file:")):
        return value
    return urljoin(base_url.rstrip("/") + "/", value.lstrip("/"))


def _require_selector(action: Action) -> str:
    if not action.selector:
        raise ValueError(f"{action.action_type} action requires a selector")
    return action.selector


async def run_action(
    page: Page,
    action: Action,
    timeouts: TimeoutConfig,
    retries: int = 1,
    base_url: str = "",
    capture: Optional[ArtifactCapture] = None,
) -> None:
    """Execute a single action on the page.

    Navigation, clicks and fills go through the retry wrappers with the
    mode's action retry count; every wait is bounded by a policy budget.
    """
    logger.debug("Running action: %s | selector=%s | value=%s | %s",
                 action.action_type, action.selector, action.value,
                 action.description or "")
    description = action.description or None

    match action.action_type:
        case "navigate":
            url = resolve_url(action.value or action.selector or "", base_url)
            await retry_navigation(page, url, timeouts, retries=retries, description=description)
            try:
                await wait_for_network_idle(page, timeouts)
            except OperationTimeoutError as e:
                logger.debug("Network idle not reached after navigation, continuing: %s", e)

        case "click":
            await retry_click(page, _require_selector(action), timeouts,
                              retries=retries, description=description)

        case "fill":
            selector = _require_selector(action)
            logger.debug("Filling %s with '%s'", selector,
                         "***" if "password" in selector.lower() else action.value)
            await retry_fill(page, selector, action.value or "", timeouts,
                             retries=retries, description=description)

        case "select":
            selector = _require_selector(action)
            wait_ms = timeouts.element_wait
            await with_retry(
                lambda: run_with_budget(
                    lambda: page.locator(selector).select_option(action.value or "", timeout=wait_ms),
                    TimeoutOperation.ELEMENT_WAIT, wait_ms,
                ),
                RetryPolicy(retries=retries, description=description or f"select in {selector}"),
                retry_if=is_retryable,
            )

        case "hover":
            selector = _require_selector(action)
            wait_ms = timeouts.element_wait
            await with_retry(
                lambda: run_with_budget(
                    lambda: page.locator(selector).hover(timeout=wait_ms),
                    TimeoutOperation.ELEMENT_WAIT, wait_ms,
                ),
                RetryPolicy(retries=retries, description=description or f"hover {selector}"),
                retry_if=is_retryable,
            )

        case "scroll":
            if action.value:
                await page.evaluate("y => window.scrollTo(0, y)", int(action.value))
            elif action.selector:
                await page.locator(action.selector).scroll_into_view_if_needed(
                    timeout=timeouts.element_wait
                )
            else:
                await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")

        case "wait":
            if action.selector:
                await run_with_budget(
                    lambda: page.locator(action.selector).wait_for(
                        state="visible", timeout=timeouts.element_wait
                    ),
                    TimeoutOperation.ELEMENT_WAIT,
                    timeouts.element_wait,
                )
            else:
                await page.wait_for_timeout(int(action.value) if action.value else DEFAULT_WAIT_MS)

        case "screenshot":
            if capture is not None:
                await capture.take_screenshot(page, action.value or action.description or "step",
                                              full_page=action.selector == "full_page")

        case "keyboard":
            await page.keyboard.press(action.value or "Enter")

        case "viewport":
            value = action.value or "desktop"
            await set_viewport(page, json.loads(value) if value.startswith("{") else value)

        case _:
            raise ValueError(f"Unknown action type: {action.action_type}")
