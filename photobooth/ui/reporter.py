import threading
from typing import Optional
from rich.console import Console
from rich.table import Table
from photobooth.config.models import CatalogConfig
from photobooth.domain.catalog import Catalog
from photobooth.domain.events import (
    JobStarted, JobProgressUpdated, FeatureDegraded, JobCompleted, JobFailed
)
from photobooth.domain.models import ProcessingJob
from photobooth.infrastructure.event_bus import EventBus


class ConsoleReporter:
    """Subscribes to the EventBus and prints job progress."""

    def __init__(self, bus: EventBus, console: Optional[Console] = None):
        self.bus = bus
        self.console = console or Console(stderr=True)
        self._lock = threading.Lock()
        self.completed_count = 0
        self.failed_count = 0
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobProgressUpdated, self.on_job_progress)
        self.bus.subscribe(FeatureDegraded, self.on_feature_degraded)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)

    @staticmethod
    def _tag(job: ProcessingJob) -> str:
        return f"[dim]{job.job_id[:8]}[/dim]"

    def on_job_started(self, event: JobStarted):
        self.console.print(f"{self._tag(event.job)} [bold]{event.job.source_path.name}[/bold] started")

    def on_job_progress(self, event: JobProgressUpdated):
        self.console.print(f"{self._tag(event.job)} {event.progress_percent:>3.0f}% {event.step}")

    def on_feature_degraded(self, event: FeatureDegraded):
        self.console.print(f"{self._tag(event.job)} [yellow]skipped {event.feature}[/yellow]: {event.reason}")

    def on_job_completed(self, event: JobCompleted):
        with self._lock:
            self.completed_count += 1
        duration = f" in {event.job.duration_seconds:.1f}s" if event.job.duration_seconds else ""
        self.console.print(f"{self._tag(event.job)} [green]done[/green]{duration}: {event.job.output_path}")

    def on_job_failed(self, event: JobFailed):
        with self._lock:
            self.failed_count += 1
        hint = f" ({event.job.failure.kind.hint})" if event.job.failure else ""
        self.console.print(f"{self._tag(event.job)} [red]failed[/red]: {event.error_message}{hint}")


def options_table(title: str, catalog: Catalog) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("File")
    table.add_column("Available")
    availability = catalog.availability()
    for entry in catalog.entries:
        if entry.id in availability:
            available = "[green]yes[/green]" if availability[entry.id] else "[red]missing[/red]"
        else:
            available = "-"
        table.add_row(entry.id, entry.name, entry.file or "-", available)
    return table


def choices_table(catalog: CatalogConfig) -> Table:
    table = Table(title="Frames & colors")
    table.add_column("Frames")
    table.add_column("Colors")
    frames = [f"{f.id} ({f.name})" for f in catalog.frames]
    rows = max(len(frames), len(catalog.colors))
    for i in range(rows):
        table.add_row(
            frames[i] if i < len(frames) else "",
            catalog.colors[i] if i < len(catalog.colors) else "",
        )
    return table
