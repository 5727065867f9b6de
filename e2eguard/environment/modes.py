"""Test mode resolution and per-mode configuration."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from e2eguard.models.environment import BrowserType, EnvironmentInfo
from e2eguard.models.test_mode import (
    ArtifactSettings,
    TestMode,
    TestModeConfig,
    TestTag,
    UpdateMode,
)
from e2eguard.models.timeouts import RunnerTimeouts, TimeoutConfig

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 2
MAX_WORKERS = 4

ALL_BROWSERS = [BrowserType.CHROMIUM, BrowserType.FIREFOX, BrowserType.WEBKIT]

MODE_CONFIGS: dict[TestMode, TestModeConfig] = {
    TestMode.LOCAL_DEVELOPMENT: TestModeConfig(
        mode=TestMode.LOCAL_DEVELOPMENT,
        description="Local development with full testing capabilities",
        retries=0,
        action_retries=1,
        artifacts=ArtifactSettings(screenshot="only-on-failure", video="off", trace="on-first-retry"),
        visual_testing_enabled=True,
        environment_variables={"VISUAL_TESTS_ENABLED_IN_CI": "0"},
    ),
    TestMode.CI_FUNCTIONAL: TestModeConfig(
        mode=TestMode.CI_FUNCTIONAL,
        description="CI mode focused on functional tests (skips visual tests)",
        exclude_tags=[TestTag.VISUAL],
        retries=1,
        action_retries=2,
        artifacts=ArtifactSettings(screenshot="only-on-failure", video="on-first-retry", trace="on-first-retry"),
        performance_threshold_multiplier=1.5,
        workers=DEFAULT_WORKERS,
        visual_testing_enabled=False,
        environment_variables={
            "VISUAL_TESTS_ENABLED_IN_CI": "0",
            "PLAYWRIGHT_TEST_GREP_INVERT": "@visual",
        },
    ),
    TestMode.CI_VISUAL: TestModeConfig(
        mode=TestMode.CI_VISUAL,
        description="CI mode for visual testing (only runs visual tests)",
        include_tags=[TestTag.VISUAL],
        retries=1,
        action_retries=2,
        artifacts=ArtifactSettings(screenshot="on", video="on", trace="on-first-retry"),
        capture_screenshots_on_success=True,
        performance_threshold_multiplier=1.5,
        workers=DEFAULT_WORKERS,
        visual_testing_enabled=True,
        visual_update_mode=UpdateMode.MISSING,
        environment_variables={
            "VISUAL_TESTS_ENABLED_IN_CI": "1",
            "PLAYWRIGHT_TEST_GREP": "@visual",
            "PLAYWRIGHT_UPDATE_SNAPSHOTS": "missing",
        },
    ),
    TestMode.CI_FULL: TestModeConfig(
        mode=TestMode.CI_FULL,
        description="Complete test suite in CI environment",
        retries=2,
        action_retries=3,
        artifacts=ArtifactSettings(screenshot="on", video="on", trace="on"),
        performance_threshold_multiplier=1.5,
        browsers=ALL_BROWSERS,
        workers=DEFAULT_WORKERS,
        visual_testing_enabled=True,
        visual_update_mode=UpdateMode.MISSING,
        environment_variables={
            "VISUAL_TESTS_ENABLED_IN_CI": "1",
            "RUN_ALL_BROWSERS": "1",
        },
    ),
    TestMode.CI_LIGHTWEIGHT: TestModeConfig(
        mode=TestMode.CI_LIGHTWEIGHT,
        description="Minimal test suite for quick CI verification",
        include_tags=[TestTag.FUNCTIONAL],
        exclude_tags=[TestTag.VISUAL, TestTag.PERFORMANCE],
        retries=1,
        action_retries=2,
        artifacts=ArtifactSettings(screenshot="only-on-failure", video="on-first-retry", trace="on-first-retry"),
        performance_threshold_multiplier=2.0,
        workers=MAX_WORKERS,
        visual_testing_enabled=False,
        verbose_logging=False,
        environment_variables={
            "VISUAL_TESTS_ENABLED_IN_CI": "0",
            "PLAYWRIGHT_TEST_GREP": "@functional",
            "PLAYWRIGHT_TEST_GREP_INVERT": "@visual\\|@performance",
            "LIGHTWEIGHT_TESTS": "true",
        },
    ),
}


def parse_mode(value: Optional[str]) -> Optional[TestMode]:
    """Return the TestMode named by ``value``, or None if it names none."""
    if not value:
        return None
    try:
        return TestMode(value.strip().lower())
    except ValueError:
        return None


def resolve(env: EnvironmentInfo, override: Optional[str] = None) -> TestMode:
    """Derive the single active TestMode.

    An explicit ``override`` (from the command line) wins, then the
    ``TEST_MODE`` variable. Unknown names are logged and ignored. Outside CI
    the mode is always local development; in CI the browser-matrix flag beats
    the lightweight flag, which beats a visual-only grep, which beats the
    functional default.
    """
    for source, candidate in (("override", override), ("TEST_MODE", env.flags.test_mode_override)):
        if not candidate:
            continue
        mode = parse_mode(candidate)
        if mode is not None:
            return mode
        logger.warning(
            "Ignoring unknown test mode %r from %s (known: %s)",
            candidate, source, ", ".join(m.value for m in TestMode),
        )

    if not env.is_ci:
        return TestMode.LOCAL_DEVELOPMENT

    if env.flags.run_all_browsers:
        return TestMode.CI_FULL
    if env.flags.lightweight:
        return TestMode.CI_LIGHTWEIGHT
    if env.flags.test_grep == TestTag.VISUAL.value:
        return TestMode.CI_VISUAL
    return TestMode.CI_FUNCTIONAL


def get_config_for_mode(mode: TestMode) -> TestModeConfig:
    return MODE_CONFIGS[mode]


def is_ci_mode(mode: TestMode) -> bool:
    return mode is not TestMode.LOCAL_DEVELOPMENT


def mode_environment(mode: TestMode) -> dict[str, str]:
    """Environment variables a child test process needs to reproduce ``mode``."""
    config = MODE_CONFIGS[mode]
    variables = dict(config.environment_variables)
    variables["TEST_MODE"] = mode.value
    variables["PLAYWRIGHT_RETRIES"] = str(config.retries)
    return variables


def get_artifact_settings(mode: TestMode) -> ArtifactSettings:
    return MODE_CONFIGS[mode].artifacts


def should_skip_tags(mode: TestMode, tags: Iterable[TestTag | str]) -> bool:
    """Return True when a test carrying ``tags`` is filtered out by ``mode``.

    Untagged tests count as functional.
    """
    config = MODE_CONFIGS[mode]
    tag_set = {TestTag(t) for t in tags} or {TestTag.FUNCTIONAL}
    if tag_set & set(config.exclude_tags):
        return True
    if config.include_tags and not tag_set & set(config.include_tags):
        return True
    return False


def get_runner_timeouts(mode: TestMode, timeouts: TimeoutConfig) -> RunnerTimeouts:
    """Test-level budgets for the runner, derived from operation budgets."""
    match mode:
        case TestMode.CI_FULL:
            return RunnerTimeouts(
                test_timeout=timeouts.navigation * 2,
                action_timeout=timeouts.element_wait,
                navigation_timeout=timeouts.navigation,
            )
        case TestMode.CI_LIGHTWEIGHT:
            return RunnerTimeouts(
                test_timeout=max(1, round(timeouts.navigation * 0.75)),
                action_timeout=max(1, round(timeouts.element_wait * 0.75)),
                navigation_timeout=max(1, round(timeouts.navigation * 0.75)),
            )
        case _:
            return RunnerTimeouts(
                test_timeout=timeouts.navigation,
                action_timeout=timeouts.element_wait,
                navigation_timeout=timeouts.navigation,
            )


def get_test_mode_summary(
    mode: TestMode, env: EnvironmentInfo, timeouts: Optional[TimeoutConfig] = None
) -> dict[str, Any]:
    """Flat description of the active mode for logs and the CLI."""
    config = MODE_CONFIGS[mode]
    summary: dict[str, Any] = {
        "mode": mode.value,
        "description": config.description,
        "is_ci": env.is_ci,
        "os": env.os.value,
        "browsers": [b.value for b in config.browsers],
        "visual_testing": "enabled" if config.visual_testing_enabled else "disabled",
        "retries": config.retries,
        "workers": config.workers,
        "include_tags": [t.value for t in config.include_tags],
        "exclude_tags": [t.value for t in config.exclude_tags],
        "environment_variables": dict(config.environment_variables),
    }
    if timeouts is not None:
        summary["timeouts"] = get_runner_timeouts(mode, timeouts).model_dump()
    return summary
