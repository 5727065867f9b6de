"""Timeout data structures."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, PositiveInt


class TimeoutOperation(str, Enum):
    ELEMENT_WAIT = "element_wait"
    FORM_READY = "form_ready"
    NETWORK_IDLE = "network_idle"
    NAVIGATION = "navigation"
    API_CALL = "api_call"
    ELEMENT_STABILITY = "element_stability"


class TimeoutConfig(BaseModel):
    """Per-operation budgets in milliseconds."""

    model_config = ConfigDict(frozen=True)

    element_wait: PositiveInt
    form_ready: PositiveInt
    network_idle: PositiveInt
    navigation: PositiveInt
    api_call: PositiveInt
    element_stability: PositiveInt

    def for_operation(self, operation: TimeoutOperation | str) -> int:
        return getattr(self, TimeoutOperation(operation).value)


class RunnerTimeouts(BaseModel):
    """Test-level timeouts handed to the runner."""

    model_config = ConfigDict(frozen=True)

    test_timeout: PositiveInt
    action_timeout: PositiveInt
    navigation_timeout: PositiveInt
