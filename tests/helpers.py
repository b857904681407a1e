"""Builders for mock pages, browsers, images and saved captures."""

from pathlib import Path
from typing import Callable
from unittest.mock import AsyncMock, Mock

from PIL import Image
from playwright.async_api import Page

from screenshot_tester.capture.analyzer import _SNAPSHOT_SCRIPT
from screenshot_tester.capture.metrics import _COLLECT_SCRIPT
from screenshot_tester.models.manifest import (
    Annotations,
    CaptureAnalysis,
    CaptureManifest,
    CaptureMetadata,
    Screenshot,
)
from screenshot_tester.storage.storage import StorageManager


def write_png(path: Path, size: tuple[int, int] = (20, 20), color=(255, 255, 255)) -> Path:
    """Write a solid-color PNG."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(path)
    return path


def snapshot_data(
    text: str = "Welcome to the dashboard",
    element_count: int = 50,
    loading_indicators: list[str] | None = None,
    error_messages: list[str] | None = None,
) -> dict:
    """Data as returned by the in-page snapshot script."""
    has_content = bool(text)
    return {
        "has_content": has_content,
        "is_blank": not has_content or element_count < 10,
        "text_content": text,
        "element_count": element_count,
        "image_count": 0,
        "has_errors": bool(error_messages),
        "error_messages": error_messages or [],
        "loading_indicators": loading_indicators or [],
    }


def metrics_data(load_event: float = 800.0, resources: list[dict] | None = None) -> dict:
    """Data as returned by the in-page metrics script."""
    return {
        "navigation": {"navigationStart": 0, "domContentLoaded": 400.0, "loadEvent": load_event},
        "vitals": {"fcp": 300.0},
        "memory": None,
        "resources": resources or [],
    }


def make_page(snapshot_fn: Callable[[int], dict] | None = None, metrics_fn: Callable[[], dict] | None = None) -> AsyncMock:
    """A mock page whose ``evaluate`` answers the analyzer and metrics scripts.

    ``snapshot_fn`` receives the zero-based number of the snapshot call.
    """
    page = AsyncMock(spec=Page)
    page.on = Mock()
    page.add_init_script = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.snapshot_calls = 0

    async def evaluate(script, arg=None):
        if script == _SNAPSHOT_SCRIPT:
            n = page.snapshot_calls
            page.snapshot_calls += 1
            return snapshot_fn(n) if snapshot_fn else snapshot_data()
        if script == _COLLECT_SCRIPT:
            return metrics_fn() if metrics_fn else metrics_data()
        return {}

    page.evaluate = AsyncMock(side_effect=evaluate)
    return page


def make_browser(page: AsyncMock) -> Mock:
    """A mock BrowserController that writes a real PNG for every screenshot."""
    browser = Mock()
    browser.page = page
    browser.handlers = {}
    browser.launch = AsyncMock()
    browser.navigate = AsyncMock()
    browser.close = AsyncMock()

    async def screenshot(path, full_page=False):
        write_png(Path(path))

    browser.screenshot = AsyncMock(side_effect=screenshot)
    browser.on = Mock(side_effect=lambda event, handler: browser.handlers.__setitem__(event, handler))
    return browser


def make_manifest(capture_dir: Path, filenames: list[str], key_frames: list[str], url: str = "https://example.com") -> CaptureManifest:
    """Write PNGs plus a manifest.json into ``capture_dir``."""
    screenshots = []
    for i, name in enumerate(filenames):
        write_png(capture_dir / name)
        screenshots.append(Screenshot(
            filename=name,
            timestamp=i * 500,
            phase="initial" if i == 0 else ("final" if i == len(filenames) - 1 else "loading"),
            annotations=Annotations(has_content=True, is_key_frame=name in key_frames),
        ))
    manifest = CaptureManifest(
        capture_id=capture_dir.name,
        metadata=CaptureMetadata(url=url, timestamp="2025-01-01T00:00:00.000Z"),
        screenshots=screenshots,
        analysis=CaptureAnalysis(loading_duration=1000, key_frames=key_frames),
        output_dir=str(capture_dir),
    )
    StorageManager().save_manifest(capture_dir, manifest)
    return manifest

