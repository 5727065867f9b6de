"""Failure forensics: classification, resource snapshot and failure records."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
import traceback
import uuid
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from e2eguard.errors import (
    ElementStateError,
    FilesystemError,
    OperationTimeoutError,
    VisualComparisonError,
)
from e2eguard.models.artifacts import FailureInfo, FailureType
from e2eguard.models.environment import EnvironmentInfo
from e2eguard.models.test_mode import TestMode

logger = logging.getLogger(__name__)

# Checked in order against the lowercased message and traceback.
_TEXT_RULES: list[tuple[FailureType, tuple[str, ...]]] = [
    (FailureType.TIMEOUT, ("timeout", "timed out")),
    (FailureType.NETWORK_ERROR, ("net::err_", "econnrefused", "network error", "connection refused")),
    (FailureType.ELEMENT_NOT_FOUND, ("waiting for selector", "element not found", "no element matches",
                                     "strict mode violation")),
    (FailureType.NAVIGATION, ("navigation failed", "page.goto", "navigating to")),
    (FailureType.ELEMENT_INTERACTION, ("click", "fill", "press", "not editable", "disabled",
                                       "intercepts pointer events")),
    (FailureType.PERMISSION_ERROR, ("eacces", "permission denied", "permissionerror")),
    (FailureType.JAVASCRIPT_ERROR, ("referenceerror", "typeerror:", "syntaxerror", "cannot read propert")),
    (FailureType.ENVIRONMENT_ERROR, ("environment", "no space left", "executable doesn't exist")),
]

_GENERAL_SUGGESTIONS = [
    "Check the screenshot and video recordings to see the state of the UI at failure time",
    "Review the step name and debug log to locate where the test stopped",
    "Consider whether the failure is consistent or intermittent",
]

_TYPE_SUGGESTIONS: dict[FailureType, list[str]] = {
    FailureType.TIMEOUT: [
        "Compare the elapsed time with the configured budget in the failure record",
        "Check for long-running animations or network requests",
        "Verify that the expected condition will actually be met",
        "Confirm the selector is correct and the element appears in the DOM",
    ],
    FailureType.ELEMENT_NOT_FOUND: [
        "Verify the selector matches the expected element",
        "Check if the element is added to the DOM asynchronously",
        "Consider whether the element is inside an iframe or shadow DOM",
        "Prefer data-testid selectors",
    ],
    FailureType.NETWORK_ERROR: [
        "Check that the application under test is running and reachable",
        "Look for CORS or certificate problems",
        "Look for connection resets in network.json",
    ],
    FailureType.ASSERTION: [
        "Compare the expected and actual values",
        "Consider whether the assertion needs to wait for a state change",
        "Look for differences between CI and local environments",
    ],
    FailureType.ELEMENT_INTERACTION: [
        "Check the element is visible, enabled and not covered by another element",
        "Verify the element is in the viewport",
        "Look for transitions changing the element during interaction",
    ],
    FailureType.PERMISSION_ERROR: [
        "Check file and directory permissions of the artifact root",
        "Look for permission differences between CI and local runs",
    ],
    FailureType.JAVASCRIPT_ERROR: [
        "Examine page-errors.log for the exact error and stack",
        "Check for undefined properties or null references",
        "Consider browser compatibility issues",
    ],
    FailureType.ENVIRONMENT_ERROR: [
        "Check memory and disk space on the runner",
        "Verify environment variables with `e2eguard validate-env`",
    ],
    FailureType.NAVIGATION: [
        "Verify the URL is correct and accessible",
        "Check for redirect loops or authentication redirects",
        "Look for HTTPS or certificate problems",
    ],
}

_CI_SUGGESTIONS = [
    "Check CI runner resource constraints (memory, CPU)",
    "Verify artifact paths and permissions on the runner",
    "Look for differences in browser behavior between CI and local",
]


def classify_failure(error: BaseException) -> FailureType:
    """Map an exception to a FailureType, by type first and then by text."""
    if isinstance(error, (OperationTimeoutError, PlaywrightTimeoutError, asyncio.TimeoutError)):
        return FailureType.TIMEOUT
    if isinstance(error, (AssertionError, VisualComparisonError)):
        return FailureType.ASSERTION
    if isinstance(error, (FilesystemError, PermissionError)):
        return FailureType.PERMISSION_ERROR
    if isinstance(error, ElementStateError):
        return FailureType.ELEMENT_INTERACTION

    text = f"{error} {''.join(traceback.format_exception(error))}".lower()
    for failure_type, needles in _TEXT_RULES:
        if any(needle in text for needle in needles):
            return failure_type
    if isinstance(error, PlaywrightError):
        return FailureType.ENVIRONMENT_ERROR
    return FailureType.UNKNOWN


def troubleshooting_suggestions(info: FailureInfo) -> list[str]:
    suggestions = list(_GENERAL_SUGGESTIONS)
    suggestions.extend(_TYPE_SUGGESTIONS.get(info.failure_type, []))
    if info.environment.get("is_ci"):
        suggestions.extend(_CI_SUGGESTIONS)
    return suggestions


def resource_snapshot(path: str = ".") -> dict[str, Any]:
    """CPU, load and disk facts at the time of failure. Never raises."""
    resources: dict[str, Any] = {"cpu_count": os.cpu_count() or 0}
    try:
        resources["load_average"] = [round(v, 2) for v in os.getloadavg()]
    except (AttributeError, OSError):
        resources["load_average"] = []
    try:
        usage = shutil.disk_usage(path)
        resources["disk_free_mb"] = usage.free // (1024 * 1024)
        resources["disk_total_mb"] = usage.total // (1024 * 1024)
    except OSError as e:
        logger.debug("Disk usage unavailable for %s: %s", path, e)
    return resources


def build_failure_info(
    error: BaseException,
    test_title: str,
    env: EnvironmentInfo,
    mode: TestMode,
    step_name: Optional[str] = None,
    elapsed_seconds: float = 0.0,
    artifact_root: str = ".",
) -> FailureInfo:
    """Assemble the structured record written next to a failed test's artifacts."""
    return FailureInfo(
        id=uuid.uuid4().hex,
        timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        test_title=test_title,
        failure_message=str(error) or type(error).__name__,
        failure_type=classify_failure(error),
        failure_stack="".join(traceback.format_exception(error)),
        step_name=step_name,
        mode=mode.value,
        elapsed_seconds=round(elapsed_seconds, 3),
        environment={
            "is_ci": env.is_ci,
            "ci_provider": env.ci_provider.value if env.ci_provider else None,
            "ci_pipeline_id": env.ci_pipeline_id,
            "ci_job_id": env.ci_job_id,
            "os": env.os.value,
            "python_version": env.python_version,
            "browser": env.browser_type.value if env.browser_type else None,
            "browser_version": env.browser_version,
        },
        resources=resource_snapshot(artifact_root),
    )
