"""Browser performance metrics and browser identification."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from playwright.async_api import Browser, Page

from e2eguard.models.artifacts import PerformanceMetrics
from e2eguard.models.environment import BrowserType

logger = logging.getLogger(__name__)

_COLLECT_JS = """
() => {
    const perf = window.performance;
    const out = { paint: {}, resources: { count: 0, totalSize: 0, byType: {} } };
    const nav = perf.getEntriesByType('navigation')[0];
    if (nav) {
        out.timing = {
            domContentLoaded: nav.domContentLoadedEventEnd,
            domComplete: nav.domComplete,
            loadEvent: nav.loadEventEnd,
        };
    }
    perf.getEntriesByType('paint').forEach(e => { out.paint[e.name] = e.startTime; });
    const lcp = perf.getEntriesByType('largest-contentful-paint');
    if (lcp.length) { out.lcp = lcp[lcp.length - 1].startTime; }
    const shifts = perf.getEntriesByType('layout-shift');
    if (shifts.length) { out.cls = shifts.filter(s => !s.hadRecentInput).reduce((a, s) => a + s.value, 0); }
    perf.getEntriesByType('resource').forEach(r => {
        const type = r.initiatorType || 'other';
        const bucket = out.resources.byType[type] || (out.resources.byType[type] = { count: 0, size: 0 });
        bucket.count += 1;
        bucket.size += r.transferSize || 0;
        out.resources.count += 1;
        out.resources.totalSize += r.transferSize || 0;
    });
    if (perf.memory) {
        out.memory = {
            jsHeapSizeLimit: perf.memory.jsHeapSizeLimit,
            totalJSHeapSize: perf.memory.totalJSHeapSize,
            usedJSHeapSize: perf.memory.usedJSHeapSize,
        };
    }
    return out;
}
"""


def parse_metrics(raw: dict[str, Any], test_name: str, url: str, browser: Optional[str] = None) -> PerformanceMetrics:
    """Turn the in-page collection result into a PerformanceMetrics record."""
    vitals: dict[str, float] = {}
    if "first-contentful-paint" in raw.get("paint", {}):
        vitals["fcp"] = raw["paint"]["first-contentful-paint"]
    for key in ("lcp", "cls"):
        if raw.get(key) is not None:
            vitals[key] = raw[key]

    memory = raw.get("memory") or {}
    js_metrics = {
        "js_heap_size": memory["totalJSHeapSize"],
        "js_heap_size_limit": memory["jsHeapSizeLimit"],
        "used_js_heap_size": memory["usedJSHeapSize"],
    } if memory else {}

    resources = raw.get("resources") or {}
    by_type = resources.get("byType", {})
    resource_metrics = {
        "resource_count": resources.get("count", 0),
        "total_resource_size": resources.get("totalSize", 0),
        "resource_count_by_type": {t: d["count"] for t, d in by_type.items()},
        "transfer_size_by_type": {t: d["size"] for t, d in by_type.items()},
    }

    timing = raw.get("timing") or {}
    network_metrics = {
        "dom_content_loaded": timing.get("domContentLoaded", 0.0),
        "dom_complete": timing.get("domComplete", 0.0),
        "load_event": timing.get("loadEvent", 0.0),
        "request_count": float(resources.get("count", 0)),
        "transfer_size": float(resources.get("totalSize", 0)),
    } if timing else {}

    return PerformanceMetrics(
        test_name=test_name,
        timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        url=url,
        browser=browser,
        core_web_vitals=vitals,
        js_metrics=js_metrics,
        resource_metrics=resource_metrics,
        network_metrics=network_metrics,
    )


async def collect_performance_metrics(
    page: Page, test_name: str, browser: Optional[str] = None
) -> Optional[PerformanceMetrics]:
    """Read navigation, paint, resource and memory timings from the page.

    Returns None when the page cannot be evaluated.
    """
    try:
        raw = await page.evaluate(_COLLECT_JS)
    except Exception as e:
        logger.warning("Performance metrics collection failed: %s", e)
        return None
    return parse_metrics(raw or {}, test_name, page.url, browser)


def get_browser_info(browser: Optional[Browser]) -> tuple[BrowserType, Optional[str]]:
    """Browser engine and version, or (UNKNOWN, None) if unavailable."""
    if browser is None:
        return BrowserType.UNKNOWN, None
    try:
        name = browser.browser_type.name
        version = browser.version
    except Exception as e:
        logger.debug("Could not read browser info: %s", e)
        return BrowserType.UNKNOWN, None
    try:
        return BrowserType(name), version
    except ValueError:
        return BrowserType.UNKNOWN, version


class MetricsCollector:
    """Snapshots performance metrics for one page over a test's lifetime."""

    def __init__(self, page: Page, test_name: str, browser: Optional[str] = None):
        self.page = page
        self.test_name = test_name
        self.browser = browser
        self.snapshots: list[PerformanceMetrics] = []

    async def collect(self) -> Optional[PerformanceMetrics]:
        metrics = await collect_performance_metrics(self.page, self.test_name, self.browser)
        if metrics is not None:
            self.snapshots.append(metrics)
        return metrics

    @property
    def latest(self) -> Optional[PerformanceMetrics]:
        return self.snapshots[-1] if self.snapshots else None

    def to_report(self) -> dict[str, Any]:
        return {
            "test_name": self.test_name,
            "browser": self.browser,
            "snapshots": [m.model_dump(mode="json") for m in self.snapshots],
        }
