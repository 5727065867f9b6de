"""Tests for failure classification, failure records and the HTML failure report."""

import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from e2eguard.environment.detector import detect
from e2eguard.errors import (
    ElementStateError,
    FilesystemError,
    OperationTimeoutError,
    VisualComparisonError,
)
from e2eguard.executor.failure_capture import (
    build_failure_info,
    classify_failure,
    resource_snapshot,
    troubleshooting_suggestions,
)
from e2eguard.models.artifacts import FailureType
from e2eguard.models.test_mode import TestMode
from e2eguard.reporter.failure_report import render_failure_report


class TestClassifyFailure:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (OperationTimeoutError("navigation", 100, 120), FailureType.TIMEOUT),
            (PlaywrightTimeoutError("Timeout 30000ms exceeded"), FailureType.TIMEOUT),
            (asyncio.TimeoutError(), FailureType.TIMEOUT),
            (AssertionError("Expected 'a', got 'b'"), FailureType.ASSERTION),
            (VisualComparisonError("mismatch", "home.png", 0.5), FailureType.ASSERTION),
            (FilesystemError("no", "PERMISSION_DENIED", "/x", "write"), FailureType.PERMISSION_ERROR),
            (PermissionError("denied"), FailureType.PERMISSION_ERROR),
            (ElementStateError("disabled", "#b", "disabled"), FailureType.ELEMENT_INTERACTION),
            (RuntimeError("net::ERR_CONNECTION_REFUSED at https://x"), FailureType.NETWORK_ERROR),
            (RuntimeError("strict mode violation: 3 elements"), FailureType.ELEMENT_NOT_FOUND),
            (RuntimeError("Navigation failed because page crashed"), FailureType.NAVIGATION),
            (RuntimeError("Element intercepts pointer events"), FailureType.ELEMENT_INTERACTION),
            (RuntimeError("ReferenceError: foo is not defined"), FailureType.JAVASCRIPT_ERROR),
            (OSError("No space left on device"), FailureType.ENVIRONMENT_ERROR),
            (PlaywrightError("Browser has been closed"), FailureType.ENVIRONMENT_ERROR),
            (KeyError("x"), FailureType.UNKNOWN),
        ],
    )
    def test_classification(self, error, expected):
        assert classify_failure(error) == expected


class TestSuggestions:
    def test_type_specific_and_ci(self):
        info = build_failure_info(
            OperationTimeoutError("navigation", 100, 150), "t", detect({"CI": "1"}), TestMode.CI_FUNCTIONAL
        )
        suggestions = troubleshooting_suggestions(info)
        assert any("budget" in s for s in suggestions)
        assert any("CI runner" in s for s in suggestions)

    def test_no_ci_suggestions_locally(self):
        info = build_failure_info(KeyError("x"), "t", detect({}), TestMode.LOCAL_DEVELOPMENT)
        assert not any("CI runner" in s for s in troubleshooting_suggestions(info))


class TestBuildFailureInfo:
    def test_fields(self):
        try:
            raise AssertionError("Title 'Home' doesn't contain 'Shop'")
        except AssertionError as e:
            error = e
        info = build_failure_info(
            error, "Checkout", detect({"CI": "1", "GITHUB_ACTIONS": "1"}), TestMode.CI_FULL,
            step_name="verify title", elapsed_seconds=1.23456,
        )
        assert info.failure_type == FailureType.ASSERTION
        assert info.failure_message == "Title 'Home' doesn't contain 'Shop'"
        assert "AssertionError" in info.failure_stack
        assert info.step_name == "verify title"
        assert info.mode == "ci-full"
        assert info.elapsed_seconds == 1.235
        assert info.environment["ci_provider"] == "github-actions"
        assert len(info.id) == 32

    def test_empty_message_uses_type_name(self):
        info = build_failure_info(asyncio.TimeoutError(), "t", detect({}), TestMode.LOCAL_DEVELOPMENT)
        assert info.failure_message == "TimeoutError"

    def test_resource_snapshot(self, tmp_path):
        resources = resource_snapshot(str(tmp_path))
        assert resources["cpu_count"] >= 0
        assert "disk_free_mb" in resources

    def test_resource_snapshot_bad_path(self, tmp_path):
        resources = resource_snapshot(str(tmp_path / "missing"))
        assert "disk_free_mb" not in resources


class TestFailureReport:
    def test_renders_escaped_html(self):
        info = build_failure_info(
            AssertionError("<script>alert(1)</script>"), "Login & out", detect({}),
            TestMode.LOCAL_DEVELOPMENT, step_name="submit",
        )
        info.artifacts["screenshot"] = "screenshots/failure-1.png"
        html = render_failure_report(info)
        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;" in html
        assert "Login &amp; out" in html
        assert "screenshots/failure-1.png" in html
        assert "Troubleshooting Suggestions" in html

    def test_no_artifacts(self):
        info = build_failure_info(KeyError("x"), "t", detect({}), TestMode.LOCAL_DEVELOPMENT)
        assert "No artifacts captured." in render_failure_report(info)
