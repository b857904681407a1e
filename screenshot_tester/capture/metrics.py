"""Metrics collector: navigation timing, web vitals and resource usage per sample."""

from __future__ import annotations

import logging
import time

from playwright.async_api import Page

from screenshot_tester.models.config import PerformanceThresholds
from screenshot_tester.models.metrics import (
    FinalStateSummary,
    InitialLoadSummary,
    PerformanceMetrics,
    PerformanceSummary,
    SlowestResource,
    WebVitalsSummary,
)

logger = logging.getLogger(__name__)

_WEB_VITALS_SCRIPT = """
(() => {
    window.__webVitals = {};
    if (!('PerformanceObserver' in window)) return;

    const observe = (type, callback) => {
        try {
            new PerformanceObserver((list) => callback(list.getEntries()))
                .observe({ type, buffered: true });
        } catch (e) {
            // entry type unsupported by this browser
        }
    };

    let cls = 0;
    observe('layout-shift', (entries) => {
        for (const entry of entries) {
            if (!entry.hadRecentInput) cls += entry.value;
        }
        window.__webVitals.cls = cls;
    });
    observe('largest-contentful-paint', (entries) => {
        window.__webVitals.lcp = entries[entries.length - 1].startTime;
    });
    observe('paint', (entries) => {
        for (const entry of entries) {
            if (entry.name === 'first-contentful-paint') window.__webVitals.fcp = entry.startTime;
        }
    });
    observe('first-input', (entries) => {
        const first = entries[0];
        window.__webVitals.fid = first.processingStart - first.startTime;
    });
})();
"""

_COLLECT_SCRIPT = """() => {
    const nav = performance.getEntriesByType('navigation')[0];
    const resources = performance.getEntriesByType('resource').map(r => ({
        name: r.name,
        duration: r.duration,
        size: r.transferSize || 0,
    }));
    const memory = performance.memory;
    return {
        navigation: nav ? {
            navigationStart: nav.startTime,
            domContentLoaded: nav.domContentLoadedEventEnd - nav.startTime,
            loadEvent: nav.loadEventEnd - nav.startTime,
        } : null,
        vitals: window.__webVitals || {},
        memory: memory ? {
            used: memory.usedJSHeapSize,
            total: memory.totalJSHeapSize,
        } : null,
        resources,
    };
}"""


class MetricsCollector:
    """Counts page requests and reads browser performance APIs on demand."""

    def __init__(self, thresholds: PerformanceThresholds | None = None):
        self.thresholds = thresholds or PerformanceThresholds()
        self.request_count = 0
        self.failed_requests = 0

    def _on_request(self, _request) -> None:
        self.request_count += 1

    def _on_request_failed(self, _request) -> None:
        self.failed_requests += 1

    async def setup_metrics_collection(self, page: Page) -> None:
        """Attach request counters and the web-vitals observer. Run before navigation."""
        page.on("request", self._on_request)
        page.on("requestfailed", self._on_request_failed)
        await page.add_init_script(_WEB_VITALS_SCRIPT)

    async def collect_metrics(self, page: Page) -> PerformanceMetrics:
        raw = await page.evaluate(_COLLECT_SCRIPT)
        nav = raw.get("navigation") or {}
        vitals = raw.get("vitals") or {}
        memory = raw.get("memory") or {}
        resources = raw.get("resources") or []

        slowest = SlowestResource()
        for resource in resources:
            if resource.get("duration", 0) > slowest.duration:
                slowest = SlowestResource(
                    url=resource.get("name", ""),
                    duration=resource["duration"],
                    size=int(resource.get("size") or 0),
                )

        return PerformanceMetrics(
            navigation_start=nav.get("navigationStart", 0.0),
            dom_content_loaded=nav.get("domContentLoaded", 0.0),
            load_event=nav.get("loadEvent", 0.0),
            first_contentful_paint=vitals.get("fcp"),
            largest_contentful_paint=vitals.get("lcp"),
            cumulative_layout_shift=vitals.get("cls"),
            first_input_delay=vitals.get("fid"),
            resource_count=len(resources),
            total_resource_size=int(sum(r.get("size") or 0 for r in resources)),
            slowest_resource=slowest,
            used_js_heap_size=memory.get("used"),
            total_js_heap_size=memory.get("total"),
            request_count=self.request_count,
            failed_requests=self.failed_requests,
            timestamp=int(time.time() * 1000),
        )

    def analyze_performance(self, metrics: PerformanceMetrics) -> list[str]:
        """Issues for metrics exceeding the configured thresholds."""
        t = self.thresholds
        issues = []
        if metrics.load_event > t.max_load_time:
            issues.append(f"Slow page load: {metrics.load_event:.0f}ms (target: <{t.max_load_time}ms)")
        if metrics.dom_content_loaded > t.max_dom_content_loaded:
            issues.append(
                f"Slow DOM ready: {metrics.dom_content_loaded:.0f}ms (target: <{t.max_dom_content_loaded}ms)"
            )
        if metrics.largest_contentful_paint and metrics.largest_contentful_paint > t.max_lcp:
            issues.append(f"Poor LCP: {metrics.largest_contentful_paint:.0f}ms (target: <{t.max_lcp}ms)")
        if metrics.cumulative_layout_shift and metrics.cumulative_layout_shift > t.max_cls:
            issues.append(f"High CLS: {metrics.cumulative_layout_shift:.3f} (target: <{t.max_cls})")
        if metrics.failed_requests > 0:
            issues.append(f"{metrics.failed_requests} failed network requests")
        return issues

    def performance_recommendations(self, metrics: PerformanceMetrics) -> list[str]:
        t = self.thresholds
        recommendations = []
        if metrics.request_count > t.max_requests:
            recommendations.append("High number of network requests - consider bundling resources")
        if metrics.total_resource_size > t.max_resource_size:
            recommendations.append(
                f"Large total resource size ({metrics.total_resource_size / 1024 / 1024:.1f}MB)"
                " - consider optimizing assets"
            )
        if metrics.resource_count > t.max_resource_count:
            recommendations.append(
                f"Consider reducing resource count: {metrics.resource_count} resources loaded"
            )
        if metrics.slowest_resource.duration > t.slow_resource_ms:
            recommendations.append(
                f"Slow resource detected: {metrics.slowest_resource.url}"
                f" ({metrics.slowest_resource.duration:.0f}ms)"
            )
        return recommendations


def summarize(metrics: list[PerformanceMetrics]) -> PerformanceSummary | None:
    """Initial-load figures from the first sample, final state from the last."""
    if not metrics:
        return None
    first, last = metrics[0], metrics[-1]
    return PerformanceSummary(
        initial_load=InitialLoadSummary(
            dom_content_loaded=first.dom_content_loaded,
            load_event=first.load_event,
            first_contentful_paint=first.first_contentful_paint,
        ),
        final_state=FinalStateSummary(
            total_requests=last.request_count,
            failed_requests=last.failed_requests,
            total_resource_size=last.total_resource_size,
            resource_count=last.resource_count,
        ),
        web_vitals=WebVitalsSummary(
            largest_contentful_paint=last.largest_contentful_paint,
            cumulative_layout_shift=last.cumulative_layout_shift,
            first_input_delay=last.first_input_delay,
        ),
    )
