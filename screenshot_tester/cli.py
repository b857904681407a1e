"""CLI entry point for the screenshot tester."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from screenshot_tester.app_runner import AppProcess, AppStartError
from screenshot_tester.browser.controller import available_devices
from screenshot_tester.capture.capturer import ScreenshotCapturer
from screenshot_tester.comparison.comparator import ScreenshotComparator
from screenshot_tester.models.config import (
    CONFIG_NAMES,
    CaptureConfig,
    ScreenshotTestConfig,
    ThrottlingConfig,
    ViewportConfig,
)
from screenshot_tester.models.manifest import MANIFEST_FILENAME, CaptureManifest
from screenshot_tester.storage.storage import StorageManager

console = Console()

DEFAULT_URL = "http://localhost:3000"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(path: str | None) -> ScreenshotTestConfig:
    try:
        return ScreenshotTestConfig.find(path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Invalid configuration: {escape(str(e))}[/red]")
        sys.exit(1)


def _build_capture_config(cfg: ScreenshotTestConfig, scenario: str | None, **overrides) -> CaptureConfig:
    viewport = overrides.pop("viewport", None)
    if viewport:
        overrides["viewport"] = ViewportConfig.parse(viewport)
    if overrides.pop("throttle", False):
        overrides["throttling"] = ThrottlingConfig()
    if not scenario and not overrides.get("url"):
        overrides["url"] = DEFAULT_URL
    return cfg.merge_capture_config(overrides, scenario)


def _print_manifest_summary(manifest: CaptureManifest, title: str = "Capture Summary") -> None:
    table = Table(title=title)
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Capture ID", manifest.capture_id)
    table.add_row("URL", manifest.metadata.url)
    table.add_row("Screenshots", str(len(manifest.screenshots)))
    table.add_row("Key Frames", str(len(manifest.analysis.key_frames)))
    table.add_row("Loading Duration", f"{manifest.analysis.loading_duration}ms")
    table.add_row("Output", f"[blue]{manifest.output_dir}[/blue]")
    console.print(table)

    if manifest.analysis.issues:
        console.print("[yellow]Issues detected:[/yellow]")
        for issue in manifest.analysis.issues:
            console.print(f"  - {issue}")
    if manifest.analysis.recommendations:
        console.print("[blue]Recommendations:[/blue]")
        for rec in manifest.analysis.recommendations:
            console.print(f"  - {rec}")


def capture_options(f):
    """Options shared by ``capture`` and ``test``."""
    for option in reversed([
        click.option("--name", "-n", default=None, help="Name for the capture session"),
        click.option("--duration", "-d", type=int, default=None, help="Maximum capture duration (ms)"),
        click.option("--interval", "-i", type=int, default=None, help="Screenshot interval (ms)"),
        click.option("--output-dir", "-o", default=None, help="Output directory"),
        click.option("--viewport", default=None, help="Viewport dimensions, e.g. 1280x720"),
        click.option("--wait-for", default=None, help="CSS selector that marks loading complete"),
        click.option("--full-page", is_flag=True, help="Capture the full scrollable page"),
        click.option("--key-frames-only", is_flag=True, help="Only keep key frame screenshots"),
        click.option("--device", default=None, help="Playwright device to emulate"),
        click.option("--throttle", is_flag=True, help="Emulate a slow network"),
        click.option("--config", "-c", "config_path", default=None, help="Config file path"),
    ]):
        f = option(f)
    return f


@click.group()
@click.version_option("1.0.0", prog_name="screenshot-tester")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Capture and analyze web application loading screenshots"""
    setup_logging(verbose)


@cli.command()
@click.option("--url", "-u", default=None, help="URL to capture")
@click.option("--scenario", "-s", default=None, help="Scenario name from the config file")
@capture_options
def capture(url: str | None, scenario: str | None, config_path: str | None, **options) -> None:
    """Capture screenshots of a page while it loads."""
    cfg = _load_config(config_path)
    try:
        capture_config = _build_capture_config(cfg, scenario, url=url, **options)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    console.print(
        f"Capturing [blue]{capture_config.url}[/blue] "
        f"({capture_config.duration}ms every {capture_config.interval}ms, "
        f"{capture_config.viewport.width}x{capture_config.viewport.height})"
    )
    try:
        manifest = ScreenshotCapturer(capture_config, thresholds=cfg.performance).run()
    except Exception as e:
        console.print(f"[red]Capture failed: {escape(str(e))}[/red]")
        sys.exit(1)

    console.print("\n[bold green]Capture Complete[/bold green]")
    _print_manifest_summary(manifest)


@cli.command()
@click.argument("capture_dir", type=click.Path())
def analyze(capture_dir: str) -> None:
    """Summarize a saved capture session."""
    if not Path(capture_dir).is_dir():
        console.print(f"[red]Capture directory not found: {capture_dir}[/red]")
        sys.exit(1)
    try:
        manifest = StorageManager.read_manifest(capture_dir)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Failed to read manifest: {escape(str(e))}[/red]")
        sys.exit(1)

    _print_manifest_summary(manifest, title="Capture Analysis")
    if manifest.analysis.key_frames:
        console.print(f"Key frames: {', '.join(manifest.analysis.key_frames)}")

    summary = manifest.performance.summary
    if summary is not None:
        table = Table(title="Performance")
        table.add_column("Metric", style="bold")
        table.add_column("Value")
        table.add_row("DOM Content Loaded", f"{summary.initial_load.dom_content_loaded:.0f}ms")
        table.add_row("Load Event", f"{summary.initial_load.load_event:.0f}ms")
        table.add_row("Requests", str(summary.final_state.total_requests))
        table.add_row("Failed Requests", str(summary.final_state.failed_requests))
        table.add_row("Resource Size", f"{summary.final_state.total_resource_size / 1024:.0f}KB")
        if summary.web_vitals.largest_contentful_paint is not None:
            table.add_row("LCP", f"{summary.web_vitals.largest_contentful_paint:.0f}ms")
        if summary.web_vitals.cumulative_layout_shift is not None:
            table.add_row("CLS", f"{summary.web_vitals.cumulative_layout_shift:.3f}")
        console.print(table)


@cli.command()
@click.option("--start-command", "-S", required=True, help="Command that starts the application")
@click.option("--url", "-u", required=True, help="URL to capture after the app starts")
@click.option("--wait-before-capture", "-w", type=int, default=3000, help="Time to wait for the app (ms)")
@click.option("--port", "-p", type=int, default=None, help="Port to look for in app output")
@capture_options
def test(
    start_command: str,
    url: str,
    wait_before_capture: int,
    port: int | None,
    config_path: str | None,
    **options,
) -> None:
    """Start an application, then capture it loading."""
    cfg = _load_config(config_path)
    if not options.get("name"):
        options["name"] = "test"
    try:
        capture_config = _build_capture_config(cfg, None, url=url, **options)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    async def run_app_and_capture() -> CaptureManifest:
        async with AppProcess(start_command, wait_before_capture, port):
            capturer = ScreenshotCapturer(capture_config, thresholds=cfg.performance)
            return await capturer.capture_sequence()

    try:
        manifest = asyncio.run(run_app_and_capture())
    except AppStartError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Test failed: {escape(str(e))}[/red]")
        sys.exit(1)

    console.print("\n[bold green]Test Complete[/bold green]")
    _print_manifest_summary(manifest)


@cli.command()
@click.argument("current_dir", type=click.Path())
@click.argument("baseline_dir", type=click.Path())
@click.option("--threshold", "-t", type=float, default=None, help="Allowed difference (% of pixels)")
@click.option("--pixel-threshold", type=int, default=None, help="Per-channel difference threshold (0-255)")
@click.option("--report", "-r", default=None, help="Write the comparison result as JSON")
@click.option("--config", "-c", "config_path", default=None, help="Config file path")
def compare(
    current_dir: str,
    baseline_dir: str,
    threshold: float | None,
    pixel_threshold: int | None,
    report: str | None,
    config_path: str | None,
) -> None:
    """Compare a capture's key frames with a baseline."""
    cfg = _load_config(config_path)
    if threshold is None:
        threshold = cfg.ci.threshold_override
    if threshold is None:
        threshold = cfg.defaults.threshold
    if pixel_threshold is None:
        pixel_threshold = cfg.defaults.pixel_threshold

    comparator = ScreenshotComparator(threshold=threshold, pixel_threshold=pixel_threshold)
    try:
        result = comparator.compare_with_baseline(current_dir, baseline_dir)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Comparison failed: {escape(str(e))}[/red]")
        sys.exit(1)

    if report:
        with open(report, "w") as f:
            json.dump(result.to_json_dict(), f, indent=2)
        console.print(f"Report written to [blue]{report}[/blue]")

    if not result.baseline_exists:
        console.print("[yellow]No baseline found. Create one with the 'baseline' command.[/yellow]")
        sys.exit(1)

    table = Table(title="Comparison Results")
    table.add_column("Screenshot", style="bold")
    table.add_column("Status")
    table.add_column("Difference")
    table.add_column("Diff Image")
    for comparison in result.comparisons:
        status = "[green]match[/green]" if comparison.result.is_match else "[red]differs[/red]"
        table.add_row(
            comparison.screenshot,
            status,
            f"{comparison.result.diff_percentage:.2f}%",
            comparison.result.diff_image_path or "",
        )
    console.print(table)
    console.print(f"Max difference: {result.max_diff_percentage:.2f}%")

    if result.overall_match:
        console.print("[bold green]All screenshots match baseline[/bold green]")
        return

    console.print(f"[red]{len(result.failures)} screenshots differ from baseline[/red]")
    sys.exit(1)


@cli.command()
@click.argument("capture_dir", type=click.Path())
@click.option("--output", "-o", default=None, help="Baseline output directory")
@click.option("--config", "-c", "config_path", default=None, help="Config file path")
def baseline(capture_dir: str, output: str | None, config_path: str | None) -> None:
    """Create a baseline from a capture directory."""
    capture_path = Path(capture_dir)
    if not capture_path.is_dir():
        console.print(f"[red]Capture directory not found: {capture_dir}[/red]")
        sys.exit(1)
    if not (capture_path / MANIFEST_FILENAME).exists():
        console.print(f"[red]Manifest not found: {capture_path / MANIFEST_FILENAME}[/red]")
        sys.exit(1)

    output_dir = Path(output) if output else Path(_load_config(config_path).baseline_dir)
    baseline_path = output_dir / f"baseline-{capture_path.resolve().name}"
    try:
        ScreenshotComparator.create_baseline(capture_path, baseline_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Failed to create baseline: {escape(str(e))}[/red]")
        sys.exit(1)

    manifest = StorageManager.read_manifest(baseline_path)
    console.print(f"[green]Baseline created at:[/green] [blue]{baseline_path}[/blue]")
    for name in manifest.analysis.key_frames:
        console.print(f"  {name}")
    console.print("\nCompare future captures with:")
    console.print(f"  [blue]screenshot-tester compare <capture-dir> {baseline_path}[/blue]")


@cli.command("config")
@click.option("--init", "init_", is_flag=True, help="Create a sample configuration file")
@click.option("--validate", is_flag=False, flag_value="", default=None, help="Validate a configuration file")
def config_cmd(init_: bool, validate: str | None) -> None:
    """Create, validate or show the configuration file."""
    if init_:
        config_path = Path(CONFIG_NAMES[0])
        if config_path.exists():
            if not click.confirm(f"{config_path} already exists. Overwrite?"):
                return
        ScreenshotTestConfig.sample().save(config_path)
        console.print(f"[green]Created {config_path}[/green]")
        console.print("Edit it to set scenarios, performance thresholds, CI settings and capture defaults.")
        return

    if validate is not None:
        try:
            cfg = ScreenshotTestConfig.find(validate or None)
        except (FileNotFoundError, ValueError) as e:
            console.print(f"[red]Configuration validation failed: {escape(str(e))}[/red]")
            sys.exit(1)
        console.print("[green]Configuration is valid[/green]")
        table = Table(title="Configuration Summary")
        table.add_column("Setting", style="bold")
        table.add_column("Value")
        table.add_row("Output Directory", cfg.output_dir)
        table.add_row("Baseline Directory", cfg.baseline_dir)
        table.add_row("Default Viewport", f"{cfg.defaults.viewport.width}x{cfg.defaults.viewport.height}")
        table.add_row("Default Duration", f"{cfg.defaults.duration}ms")
        table.add_row("Default Interval", f"{cfg.defaults.interval}ms")
        table.add_row("Scenarios", str(len(cfg.scenarios)))
        table.add_row("Max Load Time", f"{cfg.performance.max_load_time}ms")
        table.add_row("Max LCP", f"{cfg.performance.max_lcp}ms")
        table.add_row("Max CLS", str(cfg.performance.max_cls))
        console.print(table)
        for scenario in cfg.scenarios:
            console.print(f"  {scenario.name}: {scenario.url}")
        return

    cfg = _load_config(None)
    console.print_json(cfg.model_dump_json(exclude_none=True))
    console.print("\nUse [blue]--init[/blue] to create a sample file or [blue]--validate[/blue] to check one.")


@cli.command()
def devices() -> None:
    """List device names available for emulation."""
    names = asyncio.run(available_devices())
    for name in names:
        console.print(f"  {name}")
    console.print(f"\n{len(names)} devices")


if __name__ == "__main__":
    cli()
