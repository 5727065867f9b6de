"""Mode-aware timeout budgets with hard ceilings."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from e2eguard.models.test_mode import TestMode
from e2eguard.models.timeouts import TimeoutConfig, TimeoutOperation

logger = logging.getLogger(__name__)

BASE_TIMEOUTS: dict[TimeoutOperation, int] = {
    TimeoutOperation.ELEMENT_WAIT: 10_000,
    TimeoutOperation.FORM_READY: 15_000,
    TimeoutOperation.NETWORK_IDLE: 20_000,
    TimeoutOperation.NAVIGATION: 30_000,
    TimeoutOperation.API_CALL: 15_000,
    TimeoutOperation.ELEMENT_STABILITY: 5_000,
}

MAX_TIMEOUTS: dict[TimeoutOperation, int] = {
    TimeoutOperation.ELEMENT_WAIT: 60_000,
    TimeoutOperation.FORM_READY: 90_000,
    TimeoutOperation.NETWORK_IDLE: 120_000,
    TimeoutOperation.NAVIGATION: 120_000,
    TimeoutOperation.API_CALL: 60_000,
    TimeoutOperation.ELEMENT_STABILITY: 30_000,
}

MODE_MULTIPLIERS: dict[TestMode, float] = {
    TestMode.LOCAL_DEVELOPMENT: 1.0,
    TestMode.CI_FUNCTIONAL: 2.5,
    TestMode.CI_VISUAL: 2.5,
    TestMode.CI_LIGHTWEIGHT: 2.0,
    TestMode.CI_FULL: 3.0,
}

# Cap for ad hoc budgets that have no operation of their own.
ADJUSTED_TIMEOUT_CEILING = 120_000


def get_multiplier(mode: TestMode) -> float:
    return MODE_MULTIPLIERS[mode]


def _clamp(value: float, ceiling: int) -> int:
    return max(1, min(round(value), ceiling))


def _check_multiplier(multiplier: float) -> None:
    if multiplier <= 0:
        raise ValueError(f"Timeout multiplier must be positive, got {multiplier}")


def calculate_timeout(
    operation: TimeoutOperation | str,
    mode: TestMode,
    custom_multiplier: Optional[float] = None,
) -> int:
    """Budget in milliseconds for one operation.

    The result is always at least 1 and never above the operation's ceiling,
    whatever multiplier is used.
    """
    operation = TimeoutOperation(operation)
    multiplier = get_multiplier(mode) if custom_multiplier is None else custom_multiplier
    _check_multiplier(multiplier)
    return _clamp(BASE_TIMEOUTS[operation] * multiplier, MAX_TIMEOUTS[operation])


def derive_config(mode: TestMode, custom_multiplier: Optional[float] = None) -> TimeoutConfig:
    """Every operation budget for ``mode``."""
    return TimeoutConfig(**{
        op.value: calculate_timeout(op, mode, custom_multiplier) for op in TimeoutOperation
    })


# (longer, shorter, strict): budgets that must not fall below another.
_ORDERING: list[tuple[TimeoutOperation, TimeoutOperation, bool]] = [
    (TimeoutOperation.FORM_READY, TimeoutOperation.ELEMENT_WAIT, False),
    (TimeoutOperation.NETWORK_IDLE, TimeoutOperation.ELEMENT_WAIT, True),
    (TimeoutOperation.NAVIGATION, TimeoutOperation.NETWORK_IDLE, False),
]


def ordering_violations(config: TimeoutConfig) -> list[str]:
    violations = []
    for longer, shorter, strict in _ORDERING:
        long_ms, short_ms = config.for_operation(longer), config.for_operation(shorter)
        if long_ms < short_ms or (strict and long_ms == short_ms):
            relation = ">" if strict else ">="
            violations.append(
                f"{longer.value} ({long_ms}ms) should be {relation} {shorter.value} ({short_ms}ms)"
            )
    return violations


def get_environment_timeouts(mode: TestMode) -> TimeoutConfig:
    return derive_config(mode)


def create_custom_timeout_config(
    mode: TestMode, overrides: Mapping[TimeoutOperation | str, int]
) -> TimeoutConfig:
    """Derived budgets with explicit per-operation overrides applied.

    Overrides are clamped to ``[1, ceiling]`` like derived values. Overrides
    that leave a budget shorter than one it depends on are kept but logged.
    """
    values = derive_config(mode).model_dump()
    for key, value in overrides.items():
        operation = TimeoutOperation(key)
        clamped = _clamp(value, MAX_TIMEOUTS[operation])
        if clamped != value:
            logger.warning(
                "Timeout override for %s clamped from %s to %dms", operation.value, value, clamped
            )
        values[operation.value] = clamped
    config = TimeoutConfig(**values)
    for violation in ordering_violations(config):
        logger.warning("Timeout overrides break budget ordering: %s", violation)
    return config


def get_adjusted_timeout(
    base_ms: int, mode: TestMode, multiplier: Optional[float] = None
) -> int:
    """Scale an ad hoc budget for CI; local runs keep ``base_ms``."""
    if mode is TestMode.LOCAL_DEVELOPMENT:
        return max(1, base_ms)
    multiplier = get_multiplier(mode) if multiplier is None else multiplier
    _check_multiplier(multiplier)
    return _clamp(base_ms * multiplier, ADJUSTED_TIMEOUT_CEILING)


def log_timeout_configuration(mode: TestMode, config: Optional[TimeoutConfig] = None) -> None:
    config = config or derive_config(mode)
    logger.info("=== Timeout Configuration ===")
    logger.info("Test mode: %s (multiplier %.1fx)", mode.value, get_multiplier(mode))
    for operation in TimeoutOperation:
        logger.info(
            "  %s: %dms (base %dms, max %dms)",
            operation.value,
            config.for_operation(operation),
            BASE_TIMEOUTS[operation],
            MAX_TIMEOUTS[operation],
        )
