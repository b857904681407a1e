"""Performance metric structures recorded per sample."""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from screenshot_tester.models.base import CamelModel


class SlowestResource(CamelModel):
    url: str = ""
    duration: float = 0.0
    size: int = 0


class PerformanceMetrics(CamelModel):
    # Navigation timings, ms relative to navigation start
    navigation_start: float = 0.0
    dom_content_loaded: float = 0.0
    load_event: float = 0.0

    # Web vitals
    first_contentful_paint: Optional[float] = None
    largest_contentful_paint: Optional[float] = None
    cumulative_layout_shift: Optional[float] = None
    first_input_delay: Optional[float] = None

    resource_count: int = 0
    total_resource_size: int = 0  # bytes transferred
    slowest_resource: SlowestResource = Field(default_factory=SlowestResource)

    used_js_heap_size: Optional[int] = Field(default=None, alias="usedJSHeapSize")
    total_js_heap_size: Optional[int] = Field(default=None, alias="totalJSHeapSize")

    request_count: int = 0
    failed_requests: int = 0

    timestamp: int = 0  # epoch ms


class InitialLoadSummary(CamelModel):
    dom_content_loaded: float = 0.0
    load_event: float = 0.0
    first_contentful_paint: Optional[float] = None


class FinalStateSummary(CamelModel):
    total_requests: int = 0
    failed_requests: int = 0
    total_resource_size: int = 0
    resource_count: int = 0


class WebVitalsSummary(CamelModel):
    largest_contentful_paint: Optional[float] = None
    cumulative_layout_shift: Optional[float] = None
    first_input_delay: Optional[float] = None


class PerformanceSummary(CamelModel):
    initial_load: InitialLoadSummary = Field(default_factory=InitialLoadSummary)
    final_state: FinalStateSummary = Field(default_factory=FinalStateSummary)
    web_vitals: WebVitalsSummary = Field(default_factory=WebVitalsSummary)
