"""Retry with linear backoff, plus wrappers for flaky browser actions."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from playwright.async_api import Page, Response
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from e2eguard.errors import ElementStateError, OperationTimeoutError
from e2eguard.models.retry import RetryPolicy
from e2eguard.models.timeouts import TimeoutConfig, TimeoutOperation

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BACKOFF_MS = 500

OnRetry = Callable[[BaseException, int], None]
RetryIf = Callable[[BaseException], bool]


async def with_retry(
    action: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    on_retry: Optional[OnRetry] = None,
    retry_if: Optional[RetryIf] = None,
) -> T:
    """Run ``action`` until it succeeds or the policy is exhausted.

    ``action`` is invoked at most ``policy.retries + 1`` times. After failed
    attempt ``k`` with attempts remaining, waits ``backoff_base_ms * k``
    before the next one. On exhaustion the final attempt's exception is
    re-raised with a note naming the operation and attempt count.

    Cancellation is never retried. ``retry_if`` returning False stops
    retrying early for errors that will not go away.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            result = await action()
        except Exception as e:
            if attempt >= policy.max_attempts or (retry_if is not None and not retry_if(e)):
                e.add_note(f"{policy.description}: gave up after {attempt} attempt(s)")
                logger.error(
                    "%s failed after %d attempt(s): %s", policy.description, attempt, e
                )
                raise
            delay_ms = policy.delay_ms(attempt)
            logger.warning(
                "Retry %d/%d for %s in %dms: %s",
                attempt, policy.retries, policy.description, delay_ms, e,
            )
            if on_retry is not None:
                on_retry(e, attempt)
            await asyncio.sleep(delay_ms / 1000)
            continue
        if attempt > 1:
            logger.info("%s succeeded after %d retries", policy.description, attempt - 1)
        return result


async def run_with_budget(
    action: Callable[[], Awaitable[T]],
    operation: TimeoutOperation | str,
    budget_ms: int,
) -> T:
    """Await ``action()`` for at most ``budget_ms``.

    Overruns, including Playwright's own timeouts, surface as
    OperationTimeoutError carrying the budget and the elapsed time.
    """
    operation = TimeoutOperation(operation).value
    start = time.monotonic()
    try:
        return await asyncio.wait_for(action(), timeout=budget_ms / 1000)
    except (asyncio.TimeoutError, PlaywrightTimeoutError) as e:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        detail = str(e).splitlines()[0] if str(e) else ""
        raise OperationTimeoutError(operation, budget_ms, elapsed_ms, detail) from e


async def retry_navigation(
    page: Page,
    url: str,
    timeouts: TimeoutConfig,
    *,
    retries: int = 1,
    backoff_base_ms: int = DEFAULT_BACKOFF_MS,
    wait_until: str = "domcontentloaded",
    description: Optional[str] = None,
) -> Optional[Response]:
    """Navigate to ``url``, bounding each attempt by the navigation budget."""
    budget = timeouts.navigation
    policy = RetryPolicy(
        retries=retries,
        backoff_base_ms=backoff_base_ms,
        description=description or f"navigate to {url}",
    )

    async def attempt() -> Optional[Response]:
        return await run_with_budget(
            lambda: page.goto(url, wait_until=wait_until, timeout=budget),
            TimeoutOperation.NAVIGATION,
            budget,
        )

    return await with_retry(attempt, policy)


async def retry_click(
    page: Page,
    selector: str,
    timeouts: TimeoutConfig,
    *,
    retries: int = 1,
    backoff_base_ms: int = DEFAULT_BACKOFF_MS,
    description: Optional[str] = None,
) -> None:
    """Click ``selector``, re-resolving and re-checking it on every attempt."""
    wait_ms = timeouts.element_wait
    policy = RetryPolicy(
        retries=retries,
        backoff_base_ms=backoff_base_ms,
        description=description or f"click {selector}",
    )

    async def click() -> None:
        locator = page.locator(selector)
        await locator.wait_for(state="visible", timeout=wait_ms)
        if not await locator.is_enabled():
            raise ElementStateError(f"Element is disabled: {selector}", selector, "disabled")
        await locator.click(timeout=wait_ms)

    await with_retry(
        lambda: run_with_budget(click, TimeoutOperation.ELEMENT_WAIT, wait_ms), policy
    )


async def retry_fill(
    page: Page,
    selector: str,
    value: str,
    timeouts: TimeoutConfig,
    *,
    retries: int = 1,
    backoff_base_ms: int = DEFAULT_BACKOFF_MS,
    description: Optional[str] = None,
) -> None:
    """Fill ``selector`` with ``value`` and verify the field holds it.

    The locator is resolved again on every attempt.
    """
    wait_ms = timeouts.element_wait
    policy = RetryPolicy(
        retries=retries,
        backoff_base_ms=backoff_base_ms,
        description=description or f"fill {selector}",
    )

    async def fill() -> None:
        locator = page.locator(selector)
        await locator.wait_for(state="visible", timeout=wait_ms)
        if not await locator.is_editable():
            raise ElementStateError(f"Element is not editable: {selector}", selector, "readonly")
        await locator.fill(value, timeout=wait_ms)
        actual = await locator.input_value()
        if actual != value:
            raise ElementStateError(
                f"Field {selector} holds {actual!r} after fill", selector, "value-mismatch"
            )

    await with_retry(
        lambda: run_with_budget(fill, TimeoutOperation.FORM_READY, timeouts.form_ready), policy
    )


async def retry_assertion(
    check: Callable[[], Awaitable[T]],
    *,
    retries: int = 2,
    backoff_base_ms: int = DEFAULT_BACKOFF_MS,
    description: str = "assertion",
) -> T:
    """Re-evaluate ``check`` until it stops raising.

    Errors ``is_retryable`` rejects, such as a malformed assertion, fail at once.
    """
    policy = RetryPolicy(retries=retries, backoff_base_ms=backoff_base_ms, description=description)
    return await with_retry(check, policy, retry_if=is_retryable)


def is_retryable(error: BaseException) -> bool:
    """False for errors that a repeated attempt cannot fix."""
    return not isinstance(error, (ValueError, TypeError, NotImplementedError))
