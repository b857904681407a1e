"""Storage manager: capture directories, manifest persistence and housekeeping."""

from __future__ import annotations

import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

from screenshot_tester.models.manifest import MANIFEST_FILENAME, CaptureManifest

logger = logging.getLogger(__name__)


class StorageManager:
    """Lays out captures as ``<output_dir>/<project>/<name>-<timestamp>/``."""

    def __init__(self, output_dir: str | Path = "./screenshots", project_name: str | None = None):
        self.output_dir = Path(output_dir)
        self.project_name = project_name or Path.cwd().name

    @property
    def project_dir(self) -> Path:
        return self.output_dir / self.project_name

    def create_capture_directory(self, name: str) -> Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        path = self.project_dir / f"{name}-{timestamp}"
        path.mkdir(parents=True, exist_ok=True)
        logger.info("Created capture directory: %s", path)
        return path

    def save_manifest(self, capture_dir: Path, manifest: CaptureManifest) -> Path:
        path = Path(capture_dir) / MANIFEST_FILENAME
        with open(path, "w") as f:
            json.dump(manifest.to_json_dict(), f, indent=2)
        logger.info("Manifest saved to %s", path)
        return path

    @staticmethod
    def read_manifest(capture_dir: str | Path) -> CaptureManifest:
        path = Path(capture_dir) / MANIFEST_FILENAME
        if not path.exists():
            raise FileNotFoundError(f"Manifest not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return CaptureManifest.model_validate(data)

    def list_captures(self) -> list[Path]:
        """Capture directories of this project, most recent first."""
        if not self.project_dir.exists():
            return []
        captures = [p for p in self.project_dir.iterdir() if p.is_dir()]
        return sorted(captures, key=lambda p: p.stat().st_mtime, reverse=True)

    def cleanup_old_captures(self, keep_count: int = 10) -> list[Path]:
        removed = []
        for capture in self.list_captures()[keep_count:]:
            try:
                shutil.rmtree(capture)
            except OSError as e:
                logger.warning("Failed to remove %s: %s", capture, e)
                continue
            logger.info("Cleaned up old capture: %s", capture.name)
            removed.append(capture)
        return removed

    @staticmethod
    def prune_non_key_frames(capture_dir: str | Path, manifest: CaptureManifest) -> int:
        """Delete screenshot files that are not key frames; the manifest keeps their entries."""
        key_frames = set(manifest.analysis.key_frames)
        removed = 0
        for screenshot in manifest.screenshots:
            if screenshot.filename in key_frames:
                continue
            path = Path(capture_dir) / screenshot.filename
            if path.exists():
                path.unlink()
                removed += 1
        logger.info("Removed %d non-key-frame screenshots", removed)
        return removed
