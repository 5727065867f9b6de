"""Report generation orchestration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from e2eguard.models.config import FrameworkConfig
from e2eguard.models.test_result import RunResult

from .json_report import build_summary, generate_json_report

logger = logging.getLogger(__name__)


class Reporter:
    """Writes run-level reports; per-test failure reports live with the test's artifacts."""

    def __init__(self, config: FrameworkConfig):
        self.config = config

    def generate_reports(self, run_result: RunResult, output_dir: Optional[Path] = None) -> dict[str, str]:
        """Generate the run reports. Returns format -> file path."""
        out_dir = output_dir or Path(self.config.report_output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("Report output directory: %s", out_dir)

        generated = {}
        path = out_dir / f"report_{run_result.run_id}.json"
        generate_json_report(run_result, path)
        generated["json"] = str(path)
        logger.info("JSON report: %s", path)

        summary_path = out_dir / f"summary_{run_result.run_id}.txt"
        summary_path.write_text(build_summary(run_result) + "\n")
        generated["summary"] = str(summary_path)
        return generated
