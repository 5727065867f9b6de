"""Run context: environment, mode and budgets resolved once per process."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

from e2eguard.environment.detector import detect, get_environment_info
from e2eguard.environment.modes import MAX_WORKERS, get_config_for_mode, resolve
from e2eguard.models.config import FrameworkConfig
from e2eguard.models.environment import EnvironmentInfo
from e2eguard.models.retry import RetryPolicy
from e2eguard.models.test_mode import TestMode, TestModeConfig
from e2eguard.models.timeouts import TimeoutConfig
from e2eguard.policy.timeouts import create_custom_timeout_config, derive_config

logger = logging.getLogger(__name__)


class RunContext(BaseModel):
    """Everything components need to know about the run, passed explicitly."""

    model_config = ConfigDict(frozen=True)

    environment: EnvironmentInfo
    mode: TestMode
    mode_config: TestModeConfig
    timeouts: TimeoutConfig
    config: FrameworkConfig

    @property
    def is_ci(self) -> bool:
        return self.environment.is_ci

    @property
    def visual_enabled(self) -> bool:
        """Explicit opt-in for pixel comparisons in CI."""
        return self.environment.flags.visual_tests_enabled

    @property
    def artifact_root(self) -> Path:
        return Path(self.config.artifact_root)

    @property
    def headless(self) -> bool:
        if self.config.headless is not None:
            return self.config.headless
        return self.environment.is_ci or self.environment.flags.headless

    @property
    def workers(self) -> int:
        if self.config.workers is not None:
            return self.config.workers
        return min(self.mode_config.workers or 1, MAX_WORKERS)

    def action_retry_policy(self, description: str) -> RetryPolicy:
        return RetryPolicy(retries=self.mode_config.action_retries, description=description)


def build_run_context(
    config: Optional[FrameworkConfig] = None,
    override: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RunContext:
    """Detect the environment, resolve the mode and derive timeouts.

    ``environ`` bypasses the process-wide environment cache.
    """
    config = config or FrameworkConfig()
    env = detect(environ) if environ is not None else get_environment_info()
    mode = resolve(env, override)
    if config.timeout_overrides:
        timeouts = create_custom_timeout_config(mode, config.timeout_overrides)
    else:
        timeouts = derive_config(mode)
    logger.debug("Run context: mode=%s ci=%s", mode.value, env.is_ci)
    return RunContext(
        environment=env,
        mode=mode,
        mode_config=get_config_for_mode(mode),
        timeouts=timeouts,
        config=config,
    )
