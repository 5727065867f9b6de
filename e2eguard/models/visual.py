"""Visual comparison data structures."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ThresholdPreset(str, Enum):
    DEFAULT = "default"
    STRICT = "strict"
    LENIENT = "lenient"


class StandardViewport(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    LARGE_DESKTOP = "large-desktop"


VIEWPORT_DIMENSIONS: dict[StandardViewport, dict[str, int]] = {
    StandardViewport.MOBILE: {"width": 375, "height": 667},
    StandardViewport.TABLET: {"width": 768, "height": 1024},
    StandardViewport.DESKTOP: {"width": 1280, "height": 800},
    StandardViewport.LARGE_DESKTOP: {"width": 1920, "height": 1080},
}


class VisualThreshold(BaseModel):
    model_config = ConfigDict(frozen=True)

    pixel_threshold: float = Field(ge=0.0, le=1.0)
    max_diff_pixel_ratio: float = Field(ge=0.0, le=1.0)


class VisualOutcome(str, Enum):
    PASSED = "passed"
    SKIPPED = "skipped"
    BASELINE_WRITTEN = "baseline-written"
    UPDATED = "updated"
    SOFT_FAILED = "soft-failed"


class VisualResult(BaseModel):
    name: str
    screenshot_name: str = ""
    outcome: VisualOutcome
    diff_ratio: Optional[float] = None
    threshold: Optional[VisualThreshold] = None
    message: str = ""
    actual_path: Optional[str] = None
    diff_path: Optional[str] = None


class BaselineEntry(BaseModel):
    screenshot_name: str  # {base}-{viewport}-{platform}[-ci].png
    image_path: str  # relative path from baselines_dir to the PNG
    captured_at: str  # ISO timestamp
    run_id: str
    image_hash: str  # SHA-256 hex digest


class VisualBaselineRegistry(BaseModel):
    base_url: str
    last_updated: str = ""
    baselines: dict[str, BaselineEntry] = Field(default_factory=dict)
    # key: screenshot_name


class ImageDiff(BaseModel):
    """Outcome of a pixel comparison between a baseline and a screenshot."""

    diff_pixels: int = 0
    total_pixels: int = 0
    diff_ratio: float = 0.0
    size_mismatch: bool = False
    passed: bool = True
