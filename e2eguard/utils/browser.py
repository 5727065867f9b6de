"""Browser launch and context helpers with stable rendering defaults."""

from __future__ import annotations

from typing import Optional

from playwright.async_api import Browser, BrowserContext, Playwright

from e2eguard.models.environment import BrowserType
from e2eguard.models.timeouts import TimeoutConfig

DEFAULT_VIEWPORT = {"width": 1280, "height": 800}

_CHROMIUM_ARGS = [
    "--disable-dev-shm-usage",
    "--font-render-hinting=none",
]

# Caret blink and transitions are the usual sources of screenshot noise.
_STABLE_RENDERING_CSS = """
*, *::before, *::after {
    caret-color: transparent !important;
    transition-duration: 0s !important;
    animation-duration: 0s !important;
}
"""

_INIT_SCRIPT = f"""
window.addEventListener('DOMContentLoaded', () => {{
    const style = document.createElement('style');
    style.setAttribute('data-e2eguard', 'stable-rendering');
    style.textContent = `{_STABLE_RENDERING_CSS}`;
    document.head.appendChild(style);
}});
"""


async def launch_browser(
    playwright: Playwright, browser_type: BrowserType = BrowserType.CHROMIUM, headless: bool = True
) -> Browser:
    """Launch the given engine. Launch failures propagate unchanged."""
    if browser_type is BrowserType.UNKNOWN:
        raise ValueError("Cannot launch an unknown browser type")
    launcher = getattr(playwright, browser_type.value)
    if browser_type is BrowserType.CHROMIUM:
        return await launcher.launch(headless=headless, args=_CHROMIUM_ARGS)
    return await launcher.launch(headless=headless)


async def create_context(
    browser: Browser,
    viewport: Optional[dict] = None,
    timeouts: Optional[TimeoutConfig] = None,
    record_video_dir: str | None = None,
    stable_rendering: bool = True,
) -> BrowserContext:
    """Create an isolated browser context.

    Args:
        timeouts: When given, element and navigation budgets become the
            context's Playwright defaults.
        record_video_dir: Optional directory for .webm recordings of every page.
        stable_rendering: Disable caret blink, transitions and animations.
    """
    viewport = viewport or DEFAULT_VIEWPORT
    context_kwargs: dict = {
        "viewport": viewport,
        "locale": "en-US",
        "timezone_id": "UTC",
        "device_scale_factor": 1,
        "reduced_motion": "reduce",
    }
    if record_video_dir:
        context_kwargs["record_video_dir"] = record_video_dir
        context_kwargs["record_video_size"] = viewport

    context = await browser.new_context(**context_kwargs)
    if timeouts is not None:
        context.set_default_timeout(timeouts.element_wait)
        context.set_default_navigation_timeout(timeouts.navigation)
    if stable_rendering:
        await context.add_init_script(_INIT_SCRIPT)
    return context
