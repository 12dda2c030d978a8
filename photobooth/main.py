import json
import time
from pathlib import Path
from typing import Optional, List
import typer
import yaml
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from photobooth.config.loader import load_config
from photobooth.config.models import AppConfig
from photobooth.domain.catalog import MusicCatalog, FontCatalog
from photobooth.domain.errors import FailureKind, ProbeError, ValidationError
from photobooth.domain.models import JobRequest, StyleDescriptor, JobStatus
from photobooth.infrastructure.event_bus import EventBus
from photobooth.infrastructure.ffmpeg import FFmpegRunner
from photobooth.infrastructure.ffprobe import FFprobeAdapter
from photobooth.infrastructure.housekeeping import HousekeepingService
from photobooth.infrastructure.logging import setup_logging
from photobooth.pipeline.orchestrator import Orchestrator
from photobooth.ui.reporter import ConsoleReporter, options_table, choices_table

app = typer.Typer(help="Photobooth reel renderer: speed-ramped vertical clips with overlay and music")

DEFAULT_CONFIG = Path("conf/photobooth.yaml")


def _load(config_path: Optional[Path], output_dir: Optional[Path] = None,
          work_dir: Optional[Path] = None, timeout: Optional[float] = None,
          debug: bool = False) -> AppConfig:
    try:
        config = load_config(config_path)
    except (PydanticValidationError, ValueError, yaml.YAMLError) as e:
        typer.secho(f"Error: invalid config {config_path}: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=FailureKind.INTERNAL.exit_code)
    if output_dir is not None: config.paths.output_dir = output_dir
    if work_dir is not None: config.paths.work_dir = work_dir
    if timeout is not None: config.encoder.command_timeout_seconds = timeout
    if debug: config.debug = True
    return config


def _build_orchestrator(config: AppConfig) -> Orchestrator:
    logger = setup_logging(config.paths.log_dir, debug=config.debug)
    logger.info(f"Photobooth started: work={config.paths.work_dir}, output={config.paths.output_dir}")
    logger.info(
        f"Encoder: canvas={config.encoder.canvas_width}x{config.encoder.canvas_height}, "
        f"fps={config.encoder.frame_rate}, timeout={config.encoder.command_timeout_seconds:g}s"
    )

    bus = EventBus()
    ConsoleReporter(bus)
    return Orchestrator(
        config=config,
        event_bus=bus,
        ffprobe_adapter=FFprobeAdapter(config.encoder),
        ffmpeg_runner=FFmpegRunner(bus, config.encoder),
        housekeeping=HousekeepingService(),
    )


def _parse_style(style_json: Optional[str], **overrides) -> StyleDescriptor:
    try:
        data = json.loads(style_json) if style_json else {}
        style = StyleDescriptor.model_validate(data)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"--style is not valid JSON: {e}")
    except PydanticValidationError as e:
        raise typer.BadParameter(f"--style is not a valid style descriptor: {e}")
    updates = {k: v for k, v in overrides.items() if v is not None}
    return style.model_copy(update=updates) if updates else style


@app.command()
def process(
    video: Path = typer.Argument(..., help="Recorded source video"),
    overlay: Path = typer.Argument(..., help="Transparent PNG overlay rendered at canvas size"),
    music: Optional[str] = typer.Option(None, "--music", "-m", help="Music id from the catalog, or 'none'"),
    frame: Optional[str] = typer.Option(None, "--frame", help="Frame id"),
    frame_color: Optional[str] = typer.Option(None, "--frame-color", help="Frame color"),
    text: Optional[str] = typer.Option(None, "--text", help="Caption text"),
    text_font: Optional[str] = typer.Option(None, "--text-font", help="Caption font id"),
    text_color: Optional[str] = typer.Option(None, "--text-color", help="Caption color"),
    style: Optional[str] = typer.Option(None, "--style", help="Style descriptor as JSON (client format)"),
    normal: Optional[float] = typer.Option(None, "--normal", help="Normal-speed seconds"),
    slow: Optional[float] = typer.Option(None, "--slow", help="Slow-motion source seconds"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Override output directory"),
    work_dir: Optional[Path] = typer.Option(None, "--work-dir", help="Override working directory root"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-command timeout in seconds"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging")
):
    """Render one stylized reel from a recorded clip."""
    config = _load(config_path, output_dir, work_dir, timeout, debug)
    descriptor = _parse_style(
        style, music=music, frame=frame, frame_color=frame_color,
        text=text, text_font=text_font, text_color=text_color,
    )
    try:
        request = JobRequest(
            source_path=video,
            overlay_path=overlay,
            style=descriptor,
            normal_seconds=normal if normal is not None else config.intake.default_normal_seconds,
            slow_seconds=slow if slow is not None else config.intake.default_slow_seconds,
        )
    except PydanticValidationError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=FailureKind.INVALID_SOURCE.exit_code)

    orchestrator = _build_orchestrator(config)
    try:
        job = orchestrator.process(request)
    except ValidationError as e:
        typer.secho(f"Rejected: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=FailureKind.INVALID_SOURCE.exit_code)
    except KeyboardInterrupt:
        typer.echo("\nInterrupted by user")
        raise typer.Exit(code=130)

    if job.status != JobStatus.COMPLETED:
        failure = job.failure
        typer.secho(f"Failed: {failure.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=failure.kind.exit_code)
    typer.echo(str(job.output_path))


def _read_manifest(manifest: Path, config: AppConfig) -> List[JobRequest]:
    entries = yaml.safe_load(manifest.read_text(encoding="utf-8")) or []
    if not isinstance(entries, list):
        raise typer.BadParameter("Manifest must be a list of jobs")
    base = manifest.parent
    requests = []
    for entry in entries:
        requests.append(JobRequest(
            source_path=base / entry["video"],
            overlay_path=base / entry["overlay"],
            style=StyleDescriptor.model_validate(entry.get("style") or {}),
            normal_seconds=entry.get("normal", config.intake.default_normal_seconds),
            slow_seconds=entry.get("slow", config.intake.default_slow_seconds),
        ))
    return requests


@app.command()
def batch(
    manifest: Path = typer.Argument(..., help="YAML list of jobs: video, overlay, style, normal, slow"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Override output directory"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", help="Override number of concurrent jobs"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging")
):
    """Render several reels concurrently."""
    if not manifest.is_file():
        typer.secho(f"Error: manifest {manifest} does not exist.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    config = _load(config_path, output_dir, debug=debug)
    if jobs: config.max_concurrent_jobs = jobs
    try:
        requests = _read_manifest(manifest, config)
    except (KeyError, PydanticValidationError, yaml.YAMLError) as e:
        typer.secho(f"Error: invalid manifest: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    results = _build_orchestrator(config).process_many(requests)
    failed = [job for job in results if job.status != JobStatus.COMPLETED]
    typer.echo(f"{len(results) - len(failed)} completed, {len(failed)} failed")
    if failed:
        raise typer.Exit(code=1)


@app.command()
def options(
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
):
    """List music, fonts, frames and colors with asset availability."""
    config = _load(config_path)
    console = Console()
    console.print(options_table("Music", MusicCatalog(config.catalog.music, config.paths.music_dir)))
    console.print(options_table("Fonts", FontCatalog(config.catalog.fonts, config.paths.fonts_dir)))
    console.print(choices_table(config.catalog))


@app.command()
def probe(
    video: Path = typer.Argument(..., help="Media file to inspect"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
):
    """Print the metadata the pipeline sees for a file."""
    config = _load(config_path)
    try:
        info = FFprobeAdapter(config.encoder).probe(video)
    except ProbeError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=FailureKind.INVALID_SOURCE.exit_code)
    typer.echo(info.model_dump_json(indent=2))


@app.command()
def sweep(
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
    retention: Optional[float] = typer.Option(None, "--retention", help="Override retention window in seconds"),
    watch: bool = typer.Option(False, "--watch", help="Keep sweeping every housekeeping.interval_seconds"),
):
    """Remove stale files from the upload, work and output directories."""
    config = _load(config_path)
    setup_logging(config.paths.log_dir, debug=config.debug)
    paths = config.paths
    window = retention if retention is not None else config.housekeeping.retention_seconds
    service = HousekeepingService()

    try:
        while True:
            removed = service.sweep([paths.upload_dir, paths.work_dir, paths.output_dir], window)
            typer.echo(f"Removed {removed} stale entries")
            if not watch:
                break
            time.sleep(config.housekeeping.interval_seconds)
    except KeyboardInterrupt:
        typer.echo("\nInterrupted by user")
        raise typer.Exit(code=130)


if __name__ == "__main__":
    app()
