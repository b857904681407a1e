"""Screenshot capturer: samples a page while it loads and assembles the manifest."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from screenshot_tester.browser.controller import BrowserController
from screenshot_tester.capture.analyzer import VisualAnalyzer
from screenshot_tester.capture.detector import LoadingDetector, LoadingStrategy
from screenshot_tester.capture.metrics import MetricsCollector, summarize
from screenshot_tester.models.config import CaptureConfig, PerformanceThresholds
from screenshot_tester.models.manifest import (
    Annotations,
    CaptureAnalysis,
    CaptureManifest,
    CaptureMetadata,
    PerformanceBlock,
    Phase,
    Screenshot,
    screenshot_filename,
)
from screenshot_tester.models.metrics import PerformanceMetrics
from screenshot_tester.models.snapshot import VisualSnapshot
from screenshot_tester.storage.storage import StorageManager

logger = logging.getLogger(__name__)

# Recommendation heuristics
HIGH_KEY_FRAME_RATIO = 0.5
LOW_KEY_FRAME_RATIO = 0.1
LOW_RATIO_MIN_SAMPLES = 5
MAX_SAMPLES_BEFORE_WARNING = 20


class CaptureState(str, Enum):
    INIT = "init"
    LAUNCHING = "launching"
    NAVIGATING = "navigating"
    SAMPLING = "sampling"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class ScreenshotCapturer:
    """Runs one capture session against one URL.

    Lifecycle: launch the browser, inject error/metrics instrumentation, navigate,
    take the ``initial`` sample, then sample every ``interval`` ms while the
    loading detector races the ``duration`` deadline, take the ``final`` sample
    and write the manifest. The browser is closed on every exit path; a fatal
    error is re-raised and no manifest is written.

    Page errors and crashes produce extra error samples in between. Every sample
    gets its index when it is appended, so indices follow completion order.
    """

    def __init__(
        self,
        config: CaptureConfig,
        browser: BrowserController | None = None,
        storage: StorageManager | None = None,
        thresholds: PerformanceThresholds | None = None,
    ):
        self.config = config
        self.browser = browser or BrowserController(
            viewport=config.viewport,
            headless=config.headless,
            user_agent=config.user_agent,
            device_name=config.device,
            throttling=config.throttling,
        )
        self.storage = storage or StorageManager(config.output_dir)
        self.analyzer = VisualAnalyzer()
        self.metrics = MetricsCollector(thresholds)

        self.state = CaptureState.INIT
        self.capture_dir: Path | None = None
        self.screenshots: list[Screenshot] = []
        self.key_frame_indices: set[int] = set()
        self.performance_metrics: list[PerformanceMetrics] = []
        self.loading_complete = False
        self.loading_complete_time: int | None = None

        self._start: float | None = None
        self._previous_snapshot: VisualSnapshot | None = None
        self._stop_sampling = asyncio.Event()
        self._error_tasks: set[asyncio.Future] = set()
        self._queued_errors: list[tuple[str, str]] = []
        self._accepting_errors = False
        self._errors_closed = False

    def run(self) -> CaptureManifest:
        """Run the capture from synchronous code."""
        return asyncio.run(self.capture_sequence())

    async def capture_sequence(self) -> CaptureManifest:
        logger.info(
            "Starting capture of %s (duration=%dms, interval=%dms)",
            self.config.url, self.config.duration, self.config.interval,
        )
        try:
            self.state = CaptureState.LAUNCHING
            await self.browser.launch()
            self.capture_dir = self.storage.create_capture_directory(self.config.name)

            # Instrumentation goes in before navigation so early errors are seen
            page = self.browser.page
            await self.analyzer.inject_error_capture(page)
            await self.metrics.setup_metrics_collection(page)
            self.browser.on("pageerror", self._on_page_error)
            self.browser.on("crash", self._on_crash)

            self.state = CaptureState.NAVIGATING
            await self.browser.navigate(self.config.url)
            self._start = time.monotonic()

            self.state = CaptureState.SAMPLING
            await self._take_screenshot("initial", 0)
            self._open_error_capture()
            await self._sample_until_loaded()

            self.state = CaptureState.FINALIZING
            await self._close_error_capture()
            await self._take_screenshot("final", self._elapsed_ms())

            manifest = self._generate_manifest()
            self.storage.save_manifest(self.capture_dir, manifest)
            if self.config.key_frames_only:
                self.storage.prune_non_key_frames(self.capture_dir, manifest)

            self.state = CaptureState.DONE
            logger.info("Capture completed: %d screenshots taken", len(self.screenshots))
            return manifest
        except Exception as e:
            self.state = CaptureState.FAILED
            logger.error("Capture failed: %s", e)
            raise
        finally:
            await self._cancel_error_captures()
            await self.browser.close()

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def _elapsed_ms(self) -> int:
        if self._start is None:
            return 0
        return int((time.monotonic() - self._start) * 1000)

    async def _sample_until_loaded(self) -> None:
        """Run the interval sampler and the loading race until one ends or the deadline hits."""
        detector = LoadingDetector.create_from_config(self.config)
        detection = asyncio.ensure_future(self._detect_loading(detector))
        sampler = asyncio.ensure_future(self._capture_at_intervals())

        remaining = max(self.config.duration - self._elapsed_ms(), 0) / 1000
        try:
            await asyncio.wait({detection, sampler}, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self._stop_sampling.set()
            if not detection.done():
                detection.cancel()
            await asyncio.gather(detection, return_exceptions=True)
        # An in-flight sample finishes; a failed one propagates
        await sampler

    async def _detect_loading(self, detector: LoadingStrategy) -> None:
        complete = await detector.detect(self.browser.page)
        winner = getattr(detector, "winner", None)
        if complete and not (winner is not None and winner.is_fallback):
            self.loading_complete = True
            self.loading_complete_time = self._elapsed_ms()
            logger.info("Loading complete at %dms", self.loading_complete_time)
        else:
            logger.warning("Loading completion not detected within %dms", self.config.duration)

    async def _capture_at_intervals(self) -> None:
        interval = self.config.interval / 1000
        while not self._stop_sampling.is_set():
            try:
                await asyncio.wait_for(self._stop_sampling.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if (
                self._stop_sampling.is_set()
                or self.loading_complete
                or self._elapsed_ms() >= self.config.duration
            ):
                break
            await self._take_screenshot("loading", self._elapsed_ms())

    def _pending_path(self) -> Path:
        return self.capture_dir / f".pending-{uuid.uuid4().hex[:8]}.png"

    async def _take_screenshot(self, phase: Phase, timestamp: int) -> Screenshot:
        """Capture, analyze and append one sample."""
        pending = self._pending_path()
        await self.browser.screenshot(str(pending), full_page=self.config.full_page)
        snapshot = await self.analyzer.analyze_page(self.browser.page)
        metrics = await self._collect_metrics(timestamp)

        # No awaits from here on: the append is atomic for the event loop
        index = len(self.screenshots)
        is_key_frame = self._is_key_frame(snapshot)
        if is_key_frame:
            self.key_frame_indices.add(index)
        self._previous_snapshot = snapshot

        filename = screenshot_filename(index, timestamp)
        pending.rename(self.capture_dir / filename)
        screenshot = Screenshot(
            filename=filename,
            timestamp=timestamp,
            phase=phase,
            annotations=Annotations(
                blank_screen=snapshot.is_blank,
                has_content=snapshot.has_content,
                loading_indicators=snapshot.loading_indicators,
                has_errors=snapshot.has_errors,
                error_messages=snapshot.error_messages,
                is_key_frame=is_key_frame,
            ),
        )
        self.screenshots.append(screenshot)
        if metrics is not None:
            self.performance_metrics.append(metrics)
        logger.info("Captured %s (%s)", filename, phase)
        return screenshot

    def _is_key_frame(self, snapshot: VisualSnapshot) -> bool:
        if self._previous_snapshot is None:
            return True
        diff = self.analyzer.compare_snapshots(self._previous_snapshot, snapshot)
        if diff.has_significant_change:
            reasons = diff.changed_elements or [f"text changed {diff.change_percentage:.0f}%"]
            logger.info("Detected key frame: %s", ", ".join(reasons))
        return diff.has_significant_change

    async def _collect_metrics(self, timestamp: int) -> PerformanceMetrics | None:
        try:
            metrics = await self.metrics.collect_metrics(self.browser.page)
        except Exception as e:
            logger.warning("Failed to collect metrics at %dms: %s", timestamp, e)
            return None
        logger.debug("Performance data collected at %dms", timestamp)
        return metrics

    # ------------------------------------------------------------------
    # Page error samples
    # ------------------------------------------------------------------

    def _on_page_error(self, error) -> None:
        message = getattr(error, "message", None) or str(error)
        logger.error("JavaScript error: %s", message)
        self._schedule_error_capture("js-error", message)

    def _on_crash(self, _page=None) -> None:
        logger.error("Page crashed!")
        self._schedule_error_capture("crash", "Page crashed")

    def _schedule_error_capture(self, error_type: str, message: str) -> None:
        if self._errors_closed:
            logger.debug("Ignoring %s after sampling ended: %s", error_type, message)
            return
        if not self._accepting_errors:
            # Index 0 belongs to the initial sample
            self._queued_errors.append((error_type, message))
            return
        task = asyncio.ensure_future(self._capture_error_screenshot(error_type, message))
        self._error_tasks.add(task)
        task.add_done_callback(self._error_tasks.discard)

    def _open_error_capture(self) -> None:
        self._accepting_errors = True
        queued, self._queued_errors = self._queued_errors, []
        for error_type, message in queued:
            self._schedule_error_capture(error_type, message)

    async def _close_error_capture(self) -> None:
        """Stop taking error samples and wait for those in flight."""
        self._errors_closed = True
        if self._error_tasks:
            await asyncio.gather(*list(self._error_tasks), return_exceptions=True)

    async def _cancel_error_captures(self) -> None:
        self._errors_closed = True
        tasks = list(self._error_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _capture_error_screenshot(self, error_type: str, message: str) -> None:
        timestamp = self._elapsed_ms()
        try:
            pending = self._pending_path()
            await self.browser.screenshot(str(pending), full_page=self.config.full_page)

            index = len(self.screenshots)
            filename = screenshot_filename(index, timestamp, error=True)
            pending.rename(self.capture_dir / filename)
            self.screenshots.append(Screenshot(
                filename=filename,
                timestamp=timestamp,
                phase="loading",
                annotations=Annotations(
                    has_errors=True,
                    error_messages=[f"{error_type}: {message}"],
                    is_key_frame=True,
                ),
            ))
            self.key_frame_indices.add(index)
            logger.warning("Captured error screenshot: %s", filename)
        except Exception as e:
            logger.error("Failed to capture error screenshot: %s", e)

    # ------------------------------------------------------------------
    # Manifest
    # ------------------------------------------------------------------

    def _generate_manifest(self) -> CaptureManifest:
        issues = self._detect_issues()
        if self.performance_metrics:
            issues.extend(self.metrics.analyze_performance(self.performance_metrics[-1]))

        loading_duration = (
            self.loading_complete_time if self.loading_complete else self.config.duration
        )
        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        return CaptureManifest(
            capture_id=self.capture_dir.name,
            metadata=CaptureMetadata(
                url=self.config.url,
                viewport=self.config.viewport,
                user_agent=self.config.user_agent or "Playwright",
                timestamp=timestamp.replace("+00:00", "Z"),
            ),
            screenshots=self.screenshots,
            analysis=CaptureAnalysis(
                loading_duration=loading_duration,
                key_frames=self._identify_key_frames(),
                issues=issues,
                recommendations=self._generate_recommendations(),
            ),
            performance=PerformanceBlock(
                metrics=self.performance_metrics,
                summary=summarize(self.performance_metrics),
            ),
            output_dir=str(self.capture_dir),
        )

    def _identify_key_frames(self) -> list[str]:
        # Index order; filename order diverges once indices reach four digits
        last = len(self.screenshots) - 1
        return [
            shot.filename
            for i, shot in enumerate(self.screenshots)
            if i in self.key_frame_indices or i == last
        ]

    def _detect_issues(self) -> list[str]:
        issues = []
        if self.screenshots and self.screenshots[-1].annotations.blank_screen:
            issues.append("Page appears blank at end of capture")
        if not self.loading_complete:
            issues.append("Loading did not complete within timeout")
        error_count = sum(1 for s in self.screenshots if s.annotations.has_errors)
        if error_count:
            issues.append(f"{error_count} screenshots contain errors")
        return issues

    def _generate_recommendations(self) -> list[str]:
        recommendations = []
        total = len(self.screenshots)
        ratio = len(self.key_frame_indices) / total if total else 0.0
        if ratio > HIGH_KEY_FRAME_RATIO:
            recommendations.append("High key frame ratio - page may be changing too frequently")
        elif ratio < LOW_KEY_FRAME_RATIO and total > LOW_RATIO_MIN_SAMPLES:
            recommendations.append("Low key frame ratio - consider checking for loading indicators")

        if total > MAX_SAMPLES_BEFORE_WARNING:
            recommendations.append("Consider increasing capture interval to reduce screenshot count")

        if self.performance_metrics:
            recommendations.extend(
                self.metrics.performance_recommendations(self.performance_metrics[-1])
            )
        return recommendations
