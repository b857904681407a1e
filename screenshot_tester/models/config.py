"""Configuration models for capture sessions and the optional config file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_NAMES = (
    "screenshot-test.json",
    ".screenshot-test.json",
    "screenshot-tester.json",
)


class ViewportConfig(BaseModel):
    width: int = Field(default=1280, gt=0)
    height: int = Field(default=720, gt=0)

    @classmethod
    def parse(cls, value: str) -> "ViewportConfig":
        """Parse a ``WIDTHxHEIGHT`` string such as ``1280x720``."""
        try:
            width, height = (int(part) for part in value.lower().split("x"))
        except ValueError:
            raise ValueError(f"Invalid viewport '{value}', expected WIDTHxHEIGHT") from None
        return cls(width=width, height=height)


class ThrottlingConfig(BaseModel):
    download_speed: float = 1.5 * 1024 * 1024  # bits per second
    upload_speed: float = 750 * 1024
    latency: float = 40  # ms


class CaptureConfig(BaseModel):
    """Parameters for one capture session."""

    url: str
    name: str = "capture"
    duration: int = Field(default=10000, gt=0)  # ms
    interval: int = Field(default=500, gt=0)  # ms
    output_dir: str = "./screenshots"
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    wait_for: Optional[str] = None
    full_page: bool = False
    key_frames_only: bool = False
    device: Optional[str] = None
    throttling: Optional[ThrottlingConfig] = None
    user_agent: Optional[str] = None
    headless: bool = True


class CaptureDefaults(BaseModel):
    duration: int = 10000
    interval: int = 500
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    threshold: float = 0.1  # percent of pixels
    pixel_threshold: int = 10  # 0-255 per channel

    @field_validator("duration")
    @classmethod
    def check_duration(cls, v: int) -> int:
        if v < 1000:
            raise ValueError("Duration must be at least 1000ms")
        return v

    @field_validator("interval")
    @classmethod
    def check_interval(cls, v: int) -> int:
        if v < 100:
            raise ValueError("Interval must be at least 100ms")
        return v

    @field_validator("viewport")
    @classmethod
    def check_viewport(cls, v: ViewportConfig) -> ViewportConfig:
        if v.width < 100 or v.height < 100:
            raise ValueError("Invalid viewport dimensions in config")
        return v


class ScenarioConfig(BaseModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    start_command: Optional[str] = None
    wait_before_capture: Optional[int] = None
    duration: Optional[int] = None
    interval: Optional[int] = None
    viewport: Optional[ViewportConfig] = None
    wait_for: Optional[str] = None
    baseline: Optional[str] = None


class CIConfig(BaseModel):
    threshold_override: Optional[float] = None


class PerformanceThresholds(BaseModel):
    max_load_time: int = 5000  # ms
    max_dom_content_loaded: int = 2000  # ms
    max_lcp: int = 2500  # ms
    max_cls: float = 0.1
    max_resource_size: int = 5 * 1024 * 1024  # bytes
    max_requests: int = 50
    max_resource_count: int = 100
    slow_resource_ms: int = 1000


class ScreenshotTestConfig(BaseModel):
    output_dir: str = "./screenshots"
    baseline_dir: str = "./baselines"
    defaults: CaptureDefaults = Field(default_factory=CaptureDefaults)
    scenarios: list[ScenarioConfig] = Field(default_factory=list)
    ci: CIConfig = Field(default_factory=CIConfig)
    performance: PerformanceThresholds = Field(default_factory=PerformanceThresholds)

    @classmethod
    def load(cls, path: str | Path) -> "ScreenshotTestConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    @classmethod
    def find(cls, path: str | Path | None = None, search_dir: Path | None = None) -> "ScreenshotTestConfig":
        """Load an explicit config, else the first known config name found, else defaults."""
        if path:
            return cls.load(path)
        base = search_dir or Path.cwd()
        for name in CONFIG_NAMES:
            candidate = base / name
            if candidate.exists():
                logger.info("Loaded configuration from %s", candidate)
                return cls.load(candidate)
        logger.debug("No configuration file found, using defaults")
        return cls()

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(exclude_none=True), f, indent=2)

    def get_scenario(self, name: str) -> ScenarioConfig | None:
        for scenario in self.scenarios:
            if scenario.name == name:
                return scenario
        return None

    def merge_capture_config(self, overrides: dict, scenario_name: str | None = None) -> CaptureConfig:
        """Build a CaptureConfig: explicit overrides win, then the scenario, then defaults."""
        values: dict = {
            "duration": self.defaults.duration,
            "interval": self.defaults.interval,
            "viewport": self.defaults.viewport,
            "output_dir": self.output_dir,
        }
        if scenario_name:
            scenario = self.get_scenario(scenario_name)
            if scenario is None:
                raise ValueError(f"Unknown scenario: {scenario_name}")
            values["url"] = scenario.url
            values["name"] = scenario.name
            for key in ("duration", "interval", "viewport", "wait_for"):
                value = getattr(scenario, key)
                if value is not None:
                    values[key] = value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return CaptureConfig(**values)

    @classmethod
    def sample(cls) -> "ScreenshotTestConfig":
        return cls(
            defaults=CaptureDefaults(),
            scenarios=[
                ScenarioConfig(
                    name="homepage",
                    url="http://localhost:3000",
                    start_command="npm run dev",
                    wait_before_capture=3000,
                    duration=8000,
                    wait_for=".app-loaded",
                ),
                ScenarioConfig(
                    name="mobile-homepage",
                    url="http://localhost:3000",
                    viewport=ViewportConfig(width=375, height=667),
                    duration=6000,
                ),
            ],
            ci=CIConfig(threshold_override=0.2),
            performance=PerformanceThresholds(max_resource_size=3 * 1024 * 1024, max_requests=40),
        )
