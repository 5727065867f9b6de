"""Configuration models for the test framework."""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from e2eguard.models.timeouts import TimeoutOperation
from e2eguard.models.visual import StandardViewport, ThresholdPreset

DEFAULT_CONFIG_FILE = "e2eguard.json"


class DebugLevel(str, Enum):
    ESSENTIAL = "essential"
    STANDARD = "standard"
    COMPREHENSIVE = "comprehensive"
    MAXIMUM = "maximum"


class ArtifactDirs(BaseModel):
    """Per-test subdirectory names under the artifact root."""

    screenshots: str = "screenshots"
    videos: str = "videos"
    traces: str = "traces"
    logs: str = "logs"
    reports: str = "reports"
    metrics: str = "metrics"

    def all(self) -> list[str]:
        return [
            self.screenshots, self.videos, self.traces,
            self.logs, self.reports, self.metrics,
        ]


class FrameworkConfig(BaseModel):
    # Target
    base_url: str = ""

    # Artifacts
    artifact_root: str = "./test-results"
    artifact_dirs: ArtifactDirs = Field(default_factory=ArtifactDirs)
    max_log_entries: int = Field(default=500, ge=1)
    debug_level: DebugLevel = DebugLevel.STANDARD

    # Visual testing
    baseline_dir: str = "./baselines"
    default_threshold: ThresholdPreset = ThresholdPreset.DEFAULT
    viewports: list[StandardViewport] = Field(
        default_factory=lambda: [
            StandardViewport.MOBILE,
            StandardViewport.TABLET,
            StandardViewport.DESKTOP,
        ]
    )

    # Execution
    headless: Optional[bool] = None  # None: headless in CI, headed locally
    workers: Optional[int] = None  # None: use the mode's worker count
    timeout_overrides: dict[TimeoutOperation, int] = Field(default_factory=dict)

    # Reporting
    report_output_dir: str = "./e2e-reports"
    soft_failure_exit_code: Optional[int] = None

    @field_validator("workers")
    @classmethod
    def check_workers(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("workers must be at least 1")
        return v

    @classmethod
    def load(cls, path: str | Path) -> "FrameworkConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)
