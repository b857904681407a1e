"""Pixel-level comparison of captures against a stored baseline."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from PIL import Image, ImageChops

from screenshot_tester.models.comparison import (
    ComparisonResult,
    FrameComparison,
    VisualRegressionResult,
)
from screenshot_tester.models.manifest import MANIFEST_FILENAME
from screenshot_tester.storage.storage import StorageManager

logger = logging.getLogger(__name__)

DIFF_COLOR = (255, 0, 0, 255)


class ScreenshotComparator:
    """Compares screenshots pixel by pixel.

    ``pixel_threshold`` is the per-channel difference (0-255) above which a
    pixel counts as changed; ``threshold`` is the percentage of changed pixels
    tolerated before two images stop matching.
    """

    def __init__(self, threshold: float | None = None, pixel_threshold: int | None = None):
        self.threshold = 0.1 if threshold is None else threshold
        self.pixel_threshold = 10 if pixel_threshold is None else pixel_threshold

    def compare_screenshots(
        self,
        baseline_path: str | Path,
        current_path: str | Path,
        output_path: str | Path | None = None,
    ) -> ComparisonResult:
        with Image.open(baseline_path) as b, Image.open(current_path) as c:
            baseline = b.convert("RGBA")
            current = c.convert("RGBA")

        width, height = baseline.size
        total_pixels = width * height
        if baseline.size != current.size:
            logger.warning(
                "Image dimensions differ: %s vs %s", baseline.size, current.size
            )
            return ComparisonResult(
                is_match=False,
                diff_percentage=100.0,
                diff_pixels=total_pixels,
                total_pixels=total_pixels,
            )

        mask = self._diff_mask(baseline, current)
        diff_pixels = mask.histogram()[255]
        diff_percentage = diff_pixels / total_pixels * 100 if total_pixels else 0.0

        diff_image_path = None
        if output_path is not None and diff_pixels > 0:
            self._write_diff_image(baseline, mask, Path(output_path))
            diff_image_path = str(output_path)

        return ComparisonResult(
            is_match=diff_percentage <= self.threshold,
            diff_percentage=diff_percentage,
            diff_pixels=diff_pixels,
            total_pixels=total_pixels,
            diff_image_path=diff_image_path,
        )

    def _diff_mask(self, baseline: Image.Image, current: Image.Image) -> Image.Image:
        """Single-band mask: 255 where any channel differs by more than the pixel threshold."""
        difference = ImageChops.difference(baseline, current)
        bands = difference.split()
        largest = bands[0]
        for band in bands[1:]:
            largest = ImageChops.lighter(largest, band)
        limit = self.pixel_threshold
        return largest.point(lambda v: 255 if v > limit else 0)

    @staticmethod
    def _write_diff_image(baseline: Image.Image, mask: Image.Image, path: Path) -> None:
        """Changed pixels in red over a faded copy of the baseline."""
        faded = baseline.copy()
        faded.putalpha(128)
        highlight = Image.new("RGBA", baseline.size, DIFF_COLOR)
        Image.composite(highlight, faded, mask).save(path)
        logger.debug("Diff image written to %s", path)

    def compare_with_baseline(
        self, current_dir: str | Path, baseline_dir: str | Path
    ) -> VisualRegressionResult:
        """Compare every key frame of a capture with the same-named baseline image."""
        current_dir = Path(current_dir)
        baseline_dir = Path(baseline_dir)

        if not baseline_dir.exists():
            logger.warning("No baseline found at %s", baseline_dir)
            return VisualRegressionResult(baseline_exists=False, comparisons=[], overall_match=False)

        manifest = StorageManager.read_manifest(current_dir)
        if (baseline_dir / MANIFEST_FILENAME).exists():
            baseline_manifest = StorageManager.read_manifest(baseline_dir)
            if baseline_manifest.metadata.url != manifest.metadata.url:
                logger.warning(
                    "Baseline was captured from %s, current capture from %s",
                    baseline_manifest.metadata.url, manifest.metadata.url,
                )

        comparisons = []
        for name in manifest.analysis.key_frames:
            baseline_file = baseline_dir / name
            current_file = current_dir / name
            if not baseline_file.exists():
                logger.warning("Baseline screenshot not found: %s", name)
                result = _missing_result()
            else:
                try:
                    result = self.compare_screenshots(
                        baseline_file, current_file, current_dir / f"diff-{name}"
                    )
                except (OSError, ValueError) as e:
                    logger.warning("Failed to compare %s: %s", name, e)
                    result = _missing_result()
            logger.info(
                "%s: %s (%.2f%% different)",
                name, "match" if result.is_match else "MISMATCH", result.diff_percentage,
            )
            comparisons.append(FrameComparison(screenshot=name, result=result))

        return VisualRegressionResult(
            baseline_exists=True,
            comparisons=comparisons,
            overall_match=all(c.result.is_match for c in comparisons),
            max_diff_percentage=max((c.result.diff_percentage for c in comparisons), default=0.0),
        )

    @staticmethod
    def create_baseline(capture_dir: str | Path, baseline_dir: str | Path) -> Path:
        """Copy a capture's key frames and manifest into ``baseline_dir``."""
        capture_dir = Path(capture_dir)
        baseline_dir = Path(baseline_dir)
        manifest = StorageManager.read_manifest(capture_dir)
        missing = [name for name in manifest.analysis.key_frames if not (capture_dir / name).exists()]
        if missing:
            raise FileNotFoundError(f"Key frames missing from capture: {', '.join(missing)}")

        baseline_dir.mkdir(parents=True, exist_ok=True)
        for name in manifest.analysis.key_frames:
            shutil.copy2(capture_dir / name, baseline_dir / name)
        shutil.copy2(capture_dir / MANIFEST_FILENAME, baseline_dir / MANIFEST_FILENAME)

        logger.info(
            "Baseline created at %s with %d key frames",
            baseline_dir, len(manifest.analysis.key_frames),
        )
        return baseline_dir


def _missing_result() -> ComparisonResult:
    return ComparisonResult(is_match=False, diff_percentage=100.0, diff_pixels=0, total_pixels=0)
