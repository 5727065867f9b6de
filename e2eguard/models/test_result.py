"""Test result data structures produced by the executor."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from e2eguard.models.visual import VisualResult


class Evidence(BaseModel):
    screenshots: list[str] = Field(default_factory=list)  # file paths
    console_logs: list[str] = Field(default_factory=list)
    network_log: list[dict[str, Any]] = Field(default_factory=list)
    dom_snapshot_path: Optional[str] = None
    video_path: Optional[str] = None
    trace_path: Optional[str] = None
    artifact_dir: Optional[str] = None


class StepResult(BaseModel):
    """Result of executing a single test step."""
    step_index: int
    action_type: str
    selector: Optional[str] = None
    value: Optional[str] = None
    description: str = ""
    status: str = "pass"  # pass, fail, skip
    error_message: Optional[str] = None


class AssertionResult(BaseModel):
    """Result of evaluating a single assertion."""
    assertion_type: str
    selector: Optional[str] = None
    expected_value: Optional[str] = None
    description: str = ""
    passed: bool = False
    actual_value: Optional[str] = None
    message: str = ""


class TestResult(BaseModel):
    test_id: str
    test_name: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    browser: str = "chromium"
    priority: int = 3
    actual_url: str = ""
    result: str  # pass, fail, skip, error
    attempts: int = 1
    duration_seconds: float = 0.0
    failure_reason: Optional[str] = None
    failure_type: Optional[str] = None
    evidence: Evidence = Field(default_factory=Evidence)
    precondition_results: list[StepResult] = Field(default_factory=list)
    step_results: list[StepResult] = Field(default_factory=list)
    assertion_results: list[AssertionResult] = Field(default_factory=list)
    visual_results: list[VisualResult] = Field(default_factory=list)
    assertions_passed: int = 0
    assertions_failed: int = 0
    assertions_total: int = 0


class RunResult(BaseModel):
    run_id: str
    plan_id: str
    mode: str
    started_at: str
    completed_at: str
    base_url: str
    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0
    flaky: int = 0  # passed only after a test-level retry
    duration_seconds: float = 0.0
    test_results: list[TestResult] = Field(default_factory=list)
    visual_soft_failures: list[VisualResult] = Field(default_factory=list)
    environment: dict[str, Any] = Field(default_factory=dict)

    @property
    def has_hard_failures(self) -> bool:
        return self.failed > 0 or self.errors > 0
