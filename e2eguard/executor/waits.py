"""Page readiness waits bounded by policy budgets."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from playwright.async_api import Locator, Page

from e2eguard.errors import OperationTimeoutError
from e2eguard.executor.retry import run_with_budget
from e2eguard.models.timeouts import TimeoutConfig, TimeoutOperation

logger = logging.getLogger(__name__)

STABILITY_POLL_MS = 100

_ANIMATIONS_DONE_JS = """
() => {
    const animating = document.querySelectorAll('[class*="animate-"], [class*="transition-"]');
    return Array.from(animating).every(el => {
        const styles = window.getComputedStyle(el);
        return styles.animationPlayState !== 'running' || styles.animationName === 'none';
    });
}
"""


async def wait_for_network_idle(page: Page, timeouts: TimeoutConfig) -> None:
    budget = timeouts.network_idle
    await run_with_budget(
        lambda: page.wait_for_load_state("networkidle", timeout=budget),
        TimeoutOperation.NETWORK_IDLE,
        budget,
    )


async def wait_for_element_stability(
    locator: Locator,
    timeouts: TimeoutConfig,
    poll_ms: int = STABILITY_POLL_MS,
) -> None:
    """Wait until the element's bounding box is unchanged across two polls."""
    budget = timeouts.element_stability
    start = time.monotonic()
    last_box: Optional[dict] = None

    while (elapsed := int((time.monotonic() - start) * 1000)) < budget:
        box = await locator.bounding_box()
        if box is not None and box == last_box:
            return
        last_box = box
        await asyncio.sleep(poll_ms / 1000)

    raise OperationTimeoutError(
        TimeoutOperation.ELEMENT_STABILITY.value, budget, elapsed, "element kept moving"
    )


async def wait_for_form_ready(page: Page, form_selector: str, timeouts: TimeoutConfig) -> None:
    """Wait for a form and at least one of its controls to be visible."""
    budget = timeouts.form_ready

    async def ready() -> None:
        await page.locator(form_selector).wait_for(state="visible", timeout=budget // 2)
        control = page.locator(f"{form_selector} input, {form_selector} button").first
        await control.wait_for(state="visible", timeout=budget // 2)

    await run_with_budget(ready, TimeoutOperation.FORM_READY, budget)
    logger.debug("Form ready: %s", form_selector)


async def wait_for_animations_complete(page: Page, timeouts: TimeoutConfig) -> bool:
    """Best effort: returns False instead of raising when animations keep running."""
    budget = timeouts.element_stability
    try:
        await run_with_budget(
            lambda: page.wait_for_function(_ANIMATIONS_DONE_JS, timeout=budget),
            TimeoutOperation.ELEMENT_STABILITY,
            budget,
        )
        return True
    except OperationTimeoutError as e:
        logger.warning("Could not confirm animations completed: %s", e)
        return False
