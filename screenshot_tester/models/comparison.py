"""Pixel comparison and baseline regression result structures."""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from screenshot_tester.models.base import CamelModel


class ComparisonResult(CamelModel):
    is_match: bool
    diff_percentage: float
    diff_pixels: int
    total_pixels: int
    diff_image_path: Optional[str] = None


class FrameComparison(CamelModel):
    screenshot: str
    result: ComparisonResult


class VisualRegressionResult(CamelModel):
    baseline_exists: bool
    comparisons: list[FrameComparison] = Field(default_factory=list)
    overall_match: bool = False
    max_diff_percentage: float = 0.0

    @property
    def failures(self) -> list[FrameComparison]:
        return [c for c in self.comparisons if not c.result.is_match]
