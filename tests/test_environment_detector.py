"""Tests for environment detection."""

import logging

import pytest

from e2eguard.environment.detector import (
    detect,
    detect_ci_provider,
    detect_operating_system,
    get_environment_info,
    is_running_headless,
    is_truthy,
    print_environment_diagnosis,
    reset_environment_cache,
    with_browser,
)
from e2eguard.models.environment import BrowserType, CIProvider, OperatingSystem


class TestIsTruthy:
    @pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes", "on", " True "])
    def test_truthy_values(self, value):
        assert is_truthy(value) is True

    @pytest.mark.parametrize("value", [None, "", "0", "false", "no", "maybe"])
    def test_falsy_values(self, value):
        assert is_truthy(value) is False


class TestCIDetection:
    def test_local_when_no_variables(self):
        info = detect({})
        assert info.is_ci is False
        assert info.ci_provider is None

    def test_ci_flag(self):
        info = detect({"CI": "1"})
        assert info.is_ci is True
        assert info.ci_provider == CIProvider.UNKNOWN

    def test_github_actions_alone_means_ci(self):
        info = detect({"GITHUB_ACTIONS": "true", "GITHUB_RUN_ID": "99", "GITHUB_JOB": "e2e"})
        assert info.is_ci is True
        assert info.ci_provider == CIProvider.GITHUB_ACTIONS
        assert info.ci_pipeline_id == "99"
        assert info.ci_job_id == "e2e"

    @pytest.mark.parametrize(
        "marker, provider",
        [
            ("CIRCLECI", CIProvider.CIRCLE_CI),
            ("JENKINS_URL", CIProvider.JENKINS),
            ("TRAVIS", CIProvider.TRAVIS),
            ("SYSTEM_TEAMFOUNDATIONCOLLECTIONURI", CIProvider.AZURE_PIPELINES),
            ("GITLAB_CI", CIProvider.GITLAB_CI),
        ],
    )
    def test_provider_markers(self, marker, provider):
        assert detect_ci_provider({"CI": "true", marker: "x"}) == provider

    def test_provider_markers_ignored_outside_ci(self):
        assert detect_ci_provider({"CIRCLECI": "true"}) is None

    def test_malformed_ci_value_is_local(self):
        info = detect({"CI": "definitely-not"})
        assert info.is_ci is False

    def test_unreadable_environment_degrades_to_local(self, caplog):
        class Broken(dict):
            def get(self, key, default=None):
                raise TypeError("unreadable")

        with caplog.at_level(logging.WARNING):
            info = detect(Broken())
        assert info.is_ci is False
        assert info.environment_variables == {}
        assert "assuming local run" in caplog.text


class TestFlags:
    def test_flags_parsed(self):
        info = detect({
            "TEST_MODE": " ci-full ",
            "VISUAL_TESTS_ENABLED_IN_CI": "1",
            "PLAYWRIGHT_UPDATE_SNAPSHOTS": "missing",
            "RUN_ALL_BROWSERS": "true",
            "LIGHTWEIGHT_TESTS": "yes",
            "PLAYWRIGHT_TEST_GREP": "@visual",
            "HEADLESS": "1",
            "DEBUG": "on",
        })
        flags = info.flags
        assert flags.test_mode_override == "ci-full"
        assert flags.visual_tests_enabled is True
        assert flags.update_snapshots == "missing"
        assert flags.run_all_browsers is True
        assert flags.lightweight is True
        assert flags.test_grep == "@visual"
        assert flags.headless is True
        assert flags.debug is True

    def test_visual_opt_in_requires_exactly_one(self):
        assert detect({"VISUAL_TESTS_ENABLED_IN_CI": "true"}).flags.visual_tests_enabled is False

    def test_only_relevant_variables_recorded(self):
        info = detect({"CI": "1", "SECRET_TOKEN": "hunter2", "TEST_MODE": "local-development"})
        assert info.environment_variables == {"CI": "1", "TEST_MODE": "local-development"}


class TestOperatingSystem:
    @pytest.mark.parametrize(
        "platform, expected",
        [
            ("win32", OperatingSystem.WINDOWS),
            ("darwin", OperatingSystem.MACOS),
            ("linux", OperatingSystem.LINUX),
            ("freebsd13", OperatingSystem.OTHER),
        ],
    )
    def test_mapping(self, platform, expected):
        assert detect_operating_system(platform) == expected


class TestEnvironmentInfo:
    def test_snapshot_is_immutable(self):
        info = detect({})
        with pytest.raises(Exception):
            info.is_ci = True

    def test_run_ids_are_unique(self):
        assert detect({}).run_id != detect({}).run_id

    def test_cached_info_is_reused(self):
        reset_environment_cache()
        try:
            assert get_environment_info() is get_environment_info()
        finally:
            reset_environment_cache()

    def test_with_browser_returns_copy(self):
        info = detect({})
        updated = with_browser(info, "firefox", "120.0")
        assert updated.browser_type == BrowserType.FIREFOX
        assert updated.browser_version == "120.0"
        assert info.browser_type is None

    def test_with_unknown_browser(self):
        updated = with_browser(detect({}), "netscape", None)
        assert updated.browser_type == BrowserType.UNKNOWN

    def test_headless_in_ci_or_when_requested(self):
        assert is_running_headless(detect({"CI": "1"})) is True
        assert is_running_headless(detect({"HEADLESS": "1"})) is True
        assert is_running_headless(detect({})) is False

    def test_diagnosis_logs_summary(self, caplog):
        with caplog.at_level(logging.INFO, logger="e2eguard.environment.detector"):
            print_environment_diagnosis(detect({"CI": "1", "GITHUB_ACTIONS": "true"}))
        assert "Environment Diagnosis" in caplog.text
        assert "github-actions" in caplog.text
