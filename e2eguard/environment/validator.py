"""Pre-run environment validation: artifact directories and variables."""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from e2eguard.environment.modes import parse_mode
from e2eguard.errors import FilesystemError
from e2eguard.executor.filesystem import check_permissions, ensure_directory_exists
from e2eguard.models.config import FrameworkConfig
from e2eguard.models.environment import EnvironmentInfo
from e2eguard.models.test_mode import UpdateMode

logger = logging.getLogger(__name__)

WRITE_PROBE = ".write-test"


class ValidationResult(BaseModel):
    success: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


def required_directories(config: FrameworkConfig) -> list[Path]:
    """Directories a run writes into before any test starts."""
    return [
        Path(config.artifact_root),
        Path(config.report_output_dir),
        Path(config.baseline_dir),
    ]


def _validate_directories(config: FrameworkConfig, result: ValidationResult) -> None:
    details: dict[str, dict[str, bool]] = {}
    for directory in required_directories(config):
        existed = directory.exists()
        try:
            ensure_directory_exists(directory)
            if not existed:
                result.warnings.append(f"Directory created: {directory}")
            probe = directory / WRITE_PROBE
            probe.write_text("test", encoding="utf-8")
            probe.unlink()
            details[str(directory)] = {"exists": True, "writable": True}
        except (FilesystemError, OSError) as e:
            result.errors.append(f'Directory validation failed for "{directory}": {e}')
            details[str(directory)] = {
                "exists": directory.exists(),
                "writable": check_permissions(directory).writable,
            }
    result.details["directories"] = details


def _validate_variables(config: FrameworkConfig, env: EnvironmentInfo, result: ValidationResult) -> None:
    flags = env.flags
    if flags.test_mode_override and parse_mode(flags.test_mode_override) is None:
        result.warnings.append(
            f"TEST_MODE={flags.test_mode_override!r} is not a known mode and will be ignored"
        )
    if flags.update_snapshots:
        known = {m.value for m in UpdateMode}
        if flags.update_snapshots.strip().lower() not in known:
            result.warnings.append(
                f"PLAYWRIGHT_UPDATE_SNAPSHOTS={flags.update_snapshots!r} is not one of "
                f"{', '.join(sorted(known))}"
            )
    if not config.base_url:
        result.errors.append("No base_url configured; relative navigation cannot be resolved")
    result.details["environment_variables"] = dict(env.environment_variables)


def validate_environment(config: FrameworkConfig, env: EnvironmentInfo) -> ValidationResult:
    """Check that a run can start. Problems are reported, never raised."""
    result = ValidationResult(
        details={
            "is_ci": env.is_ci,
            "python_version": sys.version.split()[0],
            "platform": env.platform or sys.platform,
            "cwd": os.getcwd(),
            "validated_at": datetime.now(timezone.utc).isoformat(),
        }
    )
    _validate_directories(config, result)
    _validate_variables(config, env, result)
    result.success = not result.errors

    for warning in result.warnings:
        logger.warning("Environment: %s", warning)
    for error in result.errors:
        logger.error("Environment: %s", error)
    return result
