"""Pytest configuration and shared fixtures."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from screenshot_tester.models.config import CaptureConfig, ScreenshotTestConfig, ViewportConfig
from screenshot_tester.storage.storage import StorageManager

from helpers import make_browser, make_manifest, make_page


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def capture_config(tmp_path: Path) -> CaptureConfig:
    """A short capture session writing under tmp_path."""
    return CaptureConfig(
        url="https://example.com",
        name="test",
        duration=300,
        interval=100,
        output_dir=str(tmp_path / "screenshots"),
        viewport=ViewportConfig(width=1280, height=720),
    )


@pytest.fixture
def storage(tmp_path: Path) -> StorageManager:
    return StorageManager(tmp_path / "screenshots", project_name="proj")


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Sample configuration saved to a temporary file."""
    config_file = tmp_path / "screenshot-test.json"
    ScreenshotTestConfig.sample().save(config_file)
    return config_file


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_page() -> AsyncMock:
    return make_page()


@pytest.fixture
def mock_browser(mock_page: AsyncMock) -> Mock:
    return make_browser(mock_page)


# ============================================================================
# Directory Fixtures
# ============================================================================


@pytest.fixture
def capture_dir(tmp_path: Path) -> Path:
    """A saved capture with three screenshots, two of them key frames."""
    path = tmp_path / "captures" / "home-2025-01-01T00-00-00-000000Z"
    make_manifest(path, ["000-0ms.png", "001-500ms.png", "002-1000ms.png"], ["000-0ms.png", "002-1000ms.png"])
    return path


@pytest.fixture
def manifest_json(capture_dir: Path) -> dict:
    with open(capture_dir / "manifest.json") as f:
        return json.load(f)
