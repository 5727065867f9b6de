"""Environment data structures produced by the detector."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CIProvider(str, Enum):
    GITHUB_ACTIONS = "github-actions"
    CIRCLE_CI = "circle-ci"
    JENKINS = "jenkins"
    TRAVIS = "travis"
    AZURE_PIPELINES = "azure-pipelines"
    GITLAB_CI = "gitlab-ci"
    UNKNOWN = "unknown"


class OperatingSystem(str, Enum):
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    OTHER = "other"


class BrowserType(str, Enum):
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"
    UNKNOWN = "unknown"


class EnvironmentFlags(BaseModel):
    """Secondary signals parsed from environment variables."""

    model_config = ConfigDict(frozen=True)

    test_mode_override: Optional[str] = None  # TEST_MODE
    visual_tests_enabled: bool = False  # VISUAL_TESTS_ENABLED_IN_CI == "1"
    update_snapshots: Optional[str] = None  # PLAYWRIGHT_UPDATE_SNAPSHOTS, unvalidated
    run_all_browsers: bool = False  # RUN_ALL_BROWSERS
    lightweight: bool = False  # LIGHTWEIGHT_TESTS
    test_grep: Optional[str] = None  # PLAYWRIGHT_TEST_GREP
    headless: bool = False  # HEADLESS
    debug: bool = False  # DEBUG


class EnvironmentInfo(BaseModel):
    """Immutable snapshot of the process environment for one test worker."""

    model_config = ConfigDict(frozen=True)

    is_ci: bool = False
    ci_provider: Optional[CIProvider] = None
    ci_pipeline_id: Optional[str] = None
    ci_job_id: Optional[str] = None

    os: OperatingSystem = OperatingSystem.OTHER
    platform: str = ""  # sys.platform, used in baseline names
    hostname: str = ""
    cpu_count: int = 0
    python_version: str = ""

    run_id: str = ""
    start_time: str = ""  # ISO timestamp

    browser_type: Optional[BrowserType] = None
    browser_version: Optional[str] = None

    flags: EnvironmentFlags = Field(default_factory=EnvironmentFlags)
    environment_variables: dict[str, str] = Field(default_factory=dict)
