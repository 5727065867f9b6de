"""JSON report output."""

from __future__ import annotations

import json
from pathlib import Path

from e2eguard.models.test_result import RunResult


def build_summary(run_result: RunResult) -> str:
    """One-paragraph plain text summary of a run."""
    parts = [
        f"Tested {run_result.base_url or 'target'} in {run_result.mode} mode: "
        f"{run_result.total_tests} tests in {run_result.duration_seconds:.1f}s.",
        f"Results: {run_result.passed} passed, {run_result.failed} failed, "
        f"{run_result.skipped} skipped, {run_result.errors} errors, {run_result.flaky} flaky.",
    ]
    failures = [r for r in run_result.test_results if r.result in ("fail", "error")]
    if failures:
        parts.append(f"Key failures: {', '.join(f.test_name for f in failures[:5])}")
    if run_result.visual_soft_failures:
        parts.append(
            f"Visual soft failures: {', '.join(v.screenshot_name for v in run_result.visual_soft_failures)}"
        )
    return " ".join(parts)


def generate_json_report(run_result: RunResult, output_path: Path) -> None:
    """Write a machine-readable JSON report."""
    report = run_result.model_dump(mode="json")
    report["summary"] = build_summary(run_result)
    report["has_hard_failures"] = run_result.has_hard_failures

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(report, f, indent=2, default=str)


def load_json_report(path: Path) -> RunResult:
    """Read a report written by ``generate_json_report`` back into a RunResult."""
    with open(path) as f:
        data = json.load(f)
    data.pop("summary", None)
    data.pop("has_hard_failures", None)
    return RunResult(**data)
