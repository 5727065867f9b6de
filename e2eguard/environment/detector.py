"""Environment detection: CI provider, OS, browser and run flags."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
import uuid
from typing import Mapping, Optional

from e2eguard.models.environment import (
    BrowserType,
    CIProvider,
    EnvironmentFlags,
    EnvironmentInfo,
    OperatingSystem,
)

logger = logging.getLogger(__name__)

TRUTHY = {"1", "true", "yes", "on"}

# Checked in order; the first variable present wins.
_PROVIDER_MARKERS: list[tuple[str, CIProvider]] = [
    ("GITHUB_ACTIONS", CIProvider.GITHUB_ACTIONS),
    ("CIRCLECI", CIProvider.CIRCLE_CI),
    ("JENKINS_URL", CIProvider.JENKINS),
    ("TRAVIS", CIProvider.TRAVIS),
    ("SYSTEM_TEAMFOUNDATIONCOLLECTIONURI", CIProvider.AZURE_PIPELINES),
    ("GITLAB_CI", CIProvider.GITLAB_CI),
]

# (pipeline id variable, job id variable)
_PROVIDER_IDS: dict[CIProvider, tuple[str, str]] = {
    CIProvider.GITHUB_ACTIONS: ("GITHUB_RUN_ID", "GITHUB_JOB"),
    CIProvider.CIRCLE_CI: ("CIRCLE_WORKFLOW_ID", "CIRCLE_BUILD_NUM"),
    CIProvider.JENKINS: ("BUILD_TAG", "BUILD_NUMBER"),
    CIProvider.TRAVIS: ("TRAVIS_BUILD_ID", "TRAVIS_JOB_ID"),
    CIProvider.AZURE_PIPELINES: ("BUILD_BUILDID", "SYSTEM_JOBID"),
    CIProvider.GITLAB_CI: ("CI_PIPELINE_ID", "CI_JOB_ID"),
}

RELEVANT_VARIABLES = [
    # CI
    "CI", "GITHUB_ACTIONS", "GITHUB_WORKFLOW", "GITHUB_RUN_ID", "GITHUB_SHA",
    "CIRCLE_BRANCH", "CIRCLE_BUILD_NUM", "CIRCLE_JOB",
    "TRAVIS_BUILD_ID", "TRAVIS_JOB_ID", "CI_PIPELINE_ID", "CI_JOB_ID",
    # Playwright
    "PLAYWRIGHT_BROWSERS_PATH", "PWDEBUG", "PLAYWRIGHT_UPDATE_SNAPSHOTS",
    "PLAYWRIGHT_TEST_GREP",
    # Framework
    "TEST_MODE", "VISUAL_TESTS_ENABLED_IN_CI", "RUN_ALL_BROWSERS",
    "LIGHTWEIGHT_TESTS", "HEADLESS", "DEBUG",
]

_cached_info: Optional[EnvironmentInfo] = None


def is_truthy(value: Optional[str]) -> bool:
    """Interpret an environment variable value as a boolean flag."""
    if value is None:
        return False
    return value.strip().lower() in TRUTHY


def _is_ci(environ: Mapping[str, str]) -> bool:
    return is_truthy(environ.get("CI")) or bool(environ.get("GITHUB_ACTIONS"))


def detect_ci_provider(environ: Mapping[str, str]) -> Optional[CIProvider]:
    """Return the CI provider, or None outside CI."""
    if not _is_ci(environ):
        return None
    for variable, provider in _PROVIDER_MARKERS:
        if environ.get(variable):
            return provider
    return CIProvider.UNKNOWN


def detect_operating_system(sys_platform: Optional[str] = None) -> OperatingSystem:
    sys_platform = sys_platform or sys.platform
    if sys_platform.startswith("win"):
        return OperatingSystem.WINDOWS
    if sys_platform == "darwin":
        return OperatingSystem.MACOS
    if sys_platform.startswith("linux"):
        return OperatingSystem.LINUX
    return OperatingSystem.OTHER


def _parse_flags(environ: Mapping[str, str]) -> EnvironmentFlags:
    return EnvironmentFlags(
        test_mode_override=(environ.get("TEST_MODE") or "").strip() or None,
        visual_tests_enabled=(environ.get("VISUAL_TESTS_ENABLED_IN_CI") or "").strip() == "1",
        update_snapshots=(environ.get("PLAYWRIGHT_UPDATE_SNAPSHOTS") or "").strip() or None,
        run_all_browsers=is_truthy(environ.get("RUN_ALL_BROWSERS")),
        lightweight=is_truthy(environ.get("LIGHTWEIGHT_TESTS")),
        test_grep=(environ.get("PLAYWRIGHT_TEST_GREP") or "").strip() or None,
        headless=is_truthy(environ.get("HEADLESS")),
        debug=is_truthy(environ.get("DEBUG")),
    )


def _generate_run_id() -> str:
    return f"run-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


def detect(environ: Optional[Mapping[str, str]] = None) -> EnvironmentInfo:
    """Build an EnvironmentInfo from ``environ`` (defaults to ``os.environ``).

    Never raises: unreadable or malformed values fall back to a non-CI
    environment.
    """
    if environ is None:
        environ = os.environ

    try:
        is_ci = _is_ci(environ)
        provider = detect_ci_provider(environ)
        pipeline_id = job_id = None
        if provider in _PROVIDER_IDS:
            pipeline_var, job_var = _PROVIDER_IDS[provider]
            pipeline_id = environ.get(pipeline_var) or None
            job_id = environ.get(job_var) or None
        flags = _parse_flags(environ)
        variables = {k: str(environ[k]) for k in RELEVANT_VARIABLES if k in environ}
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning("Could not read environment variables, assuming local run: %s", e)
        is_ci, provider, pipeline_id, job_id = False, None, None, None
        flags = EnvironmentFlags()
        variables = {}

    try:
        hostname = socket.gethostname()
    except OSError:
        hostname = ""

    return EnvironmentInfo(
        is_ci=is_ci,
        ci_provider=provider,
        ci_pipeline_id=pipeline_id,
        ci_job_id=job_id,
        os=detect_operating_system(),
        platform=sys.platform,
        hostname=hostname,
        cpu_count=os.cpu_count() or 0,
        python_version=platform.python_version(),
        run_id=_generate_run_id(),
        start_time=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        flags=flags,
        environment_variables=variables,
    )


def get_environment_info() -> EnvironmentInfo:
    """Return the process-wide EnvironmentInfo, detecting it on first use."""
    global _cached_info
    if _cached_info is None:
        _cached_info = detect()
    return _cached_info


def reset_environment_cache() -> None:
    global _cached_info
    _cached_info = None


def with_browser(
    info: EnvironmentInfo, browser_type: BrowserType | str, browser_version: Optional[str]
) -> EnvironmentInfo:
    """Return a copy of ``info`` carrying browser facts."""
    try:
        browser_type = BrowserType(browser_type)
    except ValueError:
        browser_type = BrowserType.UNKNOWN
    return info.model_copy(
        update={"browser_type": browser_type, "browser_version": browser_version}
    )


def is_running_headless(info: EnvironmentInfo) -> bool:
    return info.is_ci or info.flags.headless


def print_environment_diagnosis(info: EnvironmentInfo) -> None:
    """Log a summary of the detected environment."""
    logger.info("=== Environment Diagnosis ===")
    logger.info("Running in CI: %s", info.is_ci)
    logger.info("CI provider: %s", info.ci_provider.value if info.ci_provider else "local")
    if info.ci_pipeline_id or info.ci_job_id:
        logger.info("CI pipeline/job: %s / %s", info.ci_pipeline_id, info.ci_job_id)
    logger.info("OS: %s (%s)", info.os.value, info.platform)
    logger.info("Hostname: %s", info.hostname)
    logger.info("CPU cores: %d", info.cpu_count)
    logger.info("Python: %s", info.python_version)
    logger.info("Run ID: %s", info.run_id)
    logger.info("Start time: %s", info.start_time)
    if info.browser_type:
        logger.info("Browser: %s %s", info.browser_type.value, info.browser_version or "")
    for key, value in sorted(info.environment_variables.items()):
        logger.info("  %s=%s", key, value)
