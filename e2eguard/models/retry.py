"""Retry policy data structure."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RetryPolicy(BaseModel):
    """How often and how slowly to retry one operation.

    Built per call site; never shared between operations.
    """

    model_config = ConfigDict(frozen=True)

    retries: int = Field(default=1, ge=0)
    backoff_base_ms: int = Field(default=500, gt=0)
    description: str = "operation"

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def delay_ms(self, attempt: int) -> int:
        """Backoff after failed attempt number ``attempt`` (1-based)."""
        return self.backoff_base_ms * attempt
