"""Artifact and forensic data structures."""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

BUNDLE_MANIFEST = Path("reports") / "artifact-bundle.json"


class ArtifactCategory(str, Enum):
    SCREENSHOTS = "screenshots"
    VIDEOS = "videos"
    TRACES = "traces"
    LOGS = "logs"
    REPORTS = "reports"
    METRICS = "metrics"


class TestOutcome(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERROR = "error"
    UNKNOWN = "unknown"


class Artifact(BaseModel):
    category: ArtifactCategory
    name: str
    path: str
    content_type: str = "application/octet-stream"
    size_bytes: int = 0
    captured_at: str = ""


class ArtifactBundle(BaseModel):
    """Ordered artifacts captured for one test."""

    test_title: str
    timestamp: str
    outcome: TestOutcome = TestOutcome.UNKNOWN
    artifacts: list[Artifact] = Field(default_factory=list)

    def names(self) -> list[str]:
        return [a.name for a in self.artifacts]

    def save(self, output_dir: Path) -> Path:
        """Write the bundle manifest under ``output_dir``."""
        path = output_dir / BUNDLE_MANIFEST
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)
        return path

    @classmethod
    def load(cls, output_dir: str | Path) -> "ArtifactBundle":
        """Read a bundle manifest previously written by ``save``."""
        path = Path(output_dir) / BUNDLE_MANIFEST
        if not path.exists():
            raise FileNotFoundError(f"Artifact bundle not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)


class PermissionResult(BaseModel):
    path: str
    has_permission: bool = False
    readable: bool = False
    writable: bool = False
    executable: bool = False
    is_directory: bool = False
    is_file: bool = False
    error: Optional[str] = None


class FailureType(str, Enum):
    TIMEOUT = "timeout"
    ASSERTION = "assertion"
    NAVIGATION = "navigation"
    ELEMENT_NOT_FOUND = "element-not-found"
    ELEMENT_INTERACTION = "element-interaction"
    NETWORK_ERROR = "network-error"
    JAVASCRIPT_ERROR = "js-error"
    ENVIRONMENT_ERROR = "environment-error"
    PERMISSION_ERROR = "permission-error"
    UNKNOWN = "unknown"


class FailureInfo(BaseModel):
    id: str
    timestamp: str
    test_title: str
    failure_message: str
    failure_type: FailureType = FailureType.UNKNOWN
    failure_stack: Optional[str] = None
    step_name: Optional[str] = None
    mode: str = ""
    elapsed_seconds: float = 0.0

    environment: dict[str, Any] = Field(default_factory=dict)
    resources: dict[str, Any] = Field(default_factory=dict)
    artifacts: dict[str, str] = Field(default_factory=dict)


class PerformanceMetrics(BaseModel):
    test_name: str
    timestamp: str
    url: str = ""
    browser: Optional[str] = None
    core_web_vitals: dict[str, float] = Field(default_factory=dict)
    js_metrics: dict[str, float] = Field(default_factory=dict)
    resource_metrics: dict[str, Any] = Field(default_factory=dict)
    network_metrics: dict[str, float] = Field(default_factory=dict)
