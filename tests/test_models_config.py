"""Tests for configuration models."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from screenshot_tester.models.config import (
    CaptureConfig,
    CaptureDefaults,
    ScenarioConfig,
    ScreenshotTestConfig,
    ViewportConfig,
)


class TestViewportConfig:
    """Tests for ViewportConfig model."""

    def test_default_values(self):
        config = ViewportConfig()
        assert config.width == 1280
        assert config.height == 720

    def test_parse(self):
        config = ViewportConfig.parse("375x667")
        assert config.width == 375
        assert config.height == 667

    @pytest.mark.parametrize("value", ["1280", "axb", "1280x720x3", ""])
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            ViewportConfig.parse(value)

    def test_rejects_non_positive(self):
        with pytest.raises(ValidationError):
            ViewportConfig(width=0, height=720)


class TestCaptureConfig:
    """Tests for CaptureConfig model."""

    def test_default_values(self):
        config = CaptureConfig(url="http://localhost:3000")
        assert config.duration == 10000
        assert config.interval == 500
        assert config.output_dir == "./screenshots"
        assert config.full_page is False
        assert config.key_frames_only is False
        assert config.wait_for is None
        assert config.throttling is None
        assert config.headless is True

    def test_url_required(self):
        with pytest.raises(ValidationError):
            CaptureConfig()

    @pytest.mark.parametrize("field", ["duration", "interval"])
    def test_rejects_non_positive_timing(self, field):
        with pytest.raises(ValidationError):
            CaptureConfig(url="http://localhost", **{field: 0})


class TestCaptureDefaults:
    """Tests for config-file capture defaults."""

    def test_duration_minimum(self):
        with pytest.raises(ValidationError, match="Duration must be at least 1000ms"):
            CaptureDefaults(duration=500)

    def test_interval_minimum(self):
        with pytest.raises(ValidationError, match="Interval must be at least 100ms"):
            CaptureDefaults(interval=50)

    def test_viewport_minimum(self):
        with pytest.raises(ValidationError):
            CaptureDefaults(viewport=ViewportConfig(width=50, height=720))


class TestScreenshotTestConfig:
    """Tests for the config file model."""

    def test_default_values(self):
        config = ScreenshotTestConfig()
        assert config.output_dir == "./screenshots"
        assert config.baseline_dir == "./baselines"
        assert config.scenarios == []
        assert config.ci.threshold_override is None
        assert config.performance.max_load_time == 5000

    def test_save_and_load(self, tmp_path: Path):
        config = ScreenshotTestConfig.sample()
        config_file = tmp_path / "screenshot-test.json"
        config.save(config_file)

        loaded = ScreenshotTestConfig.load(config_file)
        assert loaded == config

    def test_save_omits_unset_optionals(self, tmp_path: Path):
        config_file = tmp_path / "config.json"
        ScreenshotTestConfig().save(config_file)
        data = json.loads(config_file.read_text())
        assert "threshold_override" not in data["ci"]

    def test_load_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            ScreenshotTestConfig.load(tmp_path / "missing.json")

    def test_find_searches_known_names(self, tmp_path: Path):
        (tmp_path / ".screenshot-test.json").write_text(json.dumps({"output_dir": "./out"}))
        config = ScreenshotTestConfig.find(search_dir=tmp_path)
        assert config.output_dir == "./out"

    def test_find_prefers_first_name(self, tmp_path: Path):
        (tmp_path / "screenshot-test.json").write_text(json.dumps({"output_dir": "./first"}))
        (tmp_path / "screenshot-tester.json").write_text(json.dumps({"output_dir": "./last"}))
        assert ScreenshotTestConfig.find(search_dir=tmp_path).output_dir == "./first"

    def test_find_falls_back_to_defaults(self, tmp_path: Path):
        config = ScreenshotTestConfig.find(search_dir=tmp_path)
        assert config == ScreenshotTestConfig()

    def test_find_explicit_path_must_exist(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            ScreenshotTestConfig.find(tmp_path / "nope.json")

    def test_invalid_defaults_rejected(self, tmp_path: Path):
        config_file = tmp_path / "bad.json"
        config_file.write_text(json.dumps({"defaults": {"duration": 10}}))
        with pytest.raises(ValidationError):
            ScreenshotTestConfig.load(config_file)

    def test_get_scenario(self):
        config = ScreenshotTestConfig.sample()
        assert config.get_scenario("homepage").url == "http://localhost:3000"
        assert config.get_scenario("missing") is None


class TestMergeCaptureConfig:
    """Tests for combining defaults, scenarios and command-line overrides."""

    def _config(self) -> ScreenshotTestConfig:
        return ScreenshotTestConfig(
            output_dir="./shots",
            defaults=CaptureDefaults(duration=8000, interval=250),
            scenarios=[
                ScenarioConfig(
                    name="mobile",
                    url="http://localhost:4000",
                    duration=4000,
                    viewport=ViewportConfig(width=375, height=667),
                    wait_for="#app",
                ),
            ],
        )

    def test_defaults_apply(self):
        capture = self._config().merge_capture_config({"url": "http://localhost"})
        assert capture.duration == 8000
        assert capture.interval == 250
        assert capture.output_dir == "./shots"

    def test_scenario_overrides_defaults(self):
        capture = self._config().merge_capture_config({}, scenario_name="mobile")
        assert capture.url == "http://localhost:4000"
        assert capture.name == "mobile"
        assert capture.duration == 4000
        assert capture.interval == 250
        assert capture.viewport.width == 375
        assert capture.wait_for == "#app"

    def test_explicit_values_win(self):
        capture = self._config().merge_capture_config(
            {"duration": 2000, "interval": None, "url": "http://other"}, scenario_name="mobile"
        )
        assert capture.duration == 2000
        assert capture.interval == 250
        assert capture.url == "http://other"

    def test_unknown_scenario(self):
        with pytest.raises(ValueError, match="Unknown scenario"):
            self._config().merge_capture_config({}, scenario_name="desktop")
