"""Capture manifest data structures: the persisted record of one session."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from screenshot_tester.models.base import CamelModel
from screenshot_tester.models.config import ViewportConfig
from screenshot_tester.models.metrics import PerformanceMetrics, PerformanceSummary

Phase = Literal["initial", "loading", "final"]

MANIFEST_FILENAME = "manifest.json"


def screenshot_filename(index: int, elapsed_ms: int, error: bool = False) -> str:
    """Filename for the sample at ``index``.

    The zero-padded prefix keeps lexicographic order equal to capture order
    up to index 999; the key-frame list itself is built in index order.
    """
    suffix = "-ERROR" if error else ""
    return f"{index:03d}-{elapsed_ms}ms{suffix}.png"


class Annotations(CamelModel):
    blank_screen: bool = False
    has_content: bool = False
    loading_indicators: list[str] = Field(default_factory=list)
    has_errors: bool = False
    error_messages: list[str] = Field(default_factory=list)
    is_key_frame: bool = False


class Screenshot(CamelModel):
    filename: str
    timestamp: int  # ms since navigation completed
    phase: Phase
    annotations: Annotations = Field(default_factory=Annotations)


class CaptureMetadata(CamelModel):
    url: str
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    user_agent: str = "Playwright"
    timestamp: str  # ISO 8601


class CaptureAnalysis(CamelModel):
    loading_duration: int = 0  # ms
    key_frames: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class PerformanceBlock(CamelModel):
    metrics: list[PerformanceMetrics] = Field(default_factory=list)
    summary: Optional[PerformanceSummary] = None


class CaptureManifest(CamelModel):
    capture_id: str
    metadata: CaptureMetadata
    screenshots: list[Screenshot] = Field(default_factory=list)
    analysis: CaptureAnalysis = Field(default_factory=CaptureAnalysis)
    performance: PerformanceBlock = Field(default_factory=PerformanceBlock)
    output_dir: str

    @property
    def key_frame_screenshots(self) -> list[Screenshot]:
        names = set(self.analysis.key_frames)
        return [s for s in self.screenshots if s.filename in names]
