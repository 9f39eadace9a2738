"""Console rendering and progress helpers for the filetransfer CLI."""
from __future__ import annotations

from typing import Any, Dict, Optional
import time

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from .batch import TransferBatch
from .errors import TransferCanceledError
from .models import BatchSnapshot, TransferItem, TransferProgress

console = Console()


def human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any], output: Optional[Console] = None) -> None:
    """Render startup configuration summary."""
    output = output or console
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]filetransfer[/bold green]",
        subtitle="[dim]batch upload[/dim]",
        border_style="blue",
    )
    output.print(panel)


class BatchProgressDisplay:
    """Event-based console display for a batch upload process."""

    def __init__(self, output: Optional[Console] = None):
        self._console = output or console
        self._overall_task_id: Optional[TaskID] = None
        self._item_tasks: Dict[int, TaskID] = {}
        self._live: Optional[Live] = None

        self._overall_progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=28),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[dim]{task.fields[detail]}", justify="left"),
            expand=False,
            console=self._console,
        )
        self._item_progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold green]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            expand=False,
            console=self._console,
        )

    def _emit_timeline(self, status: str, name: str, size_bytes: Optional[int] = None, error: Optional[str] = None) -> None:
        stamp = time.strftime("%H:%M:%S")
        size_label = f" {human_size(size_bytes)}" if size_bytes and size_bytes > 0 else ""
        error_label = f" cause={error}" if error else ""
        palette = {
            "DONE": "green",
            "FAIL": "red",
            "SKIP": "yellow",
            "INFO": "blue",
        }
        color = palette.get(status, "white")
        self._console.print(
            f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] {name}{size_label}{error_label}"
        )

    def start(self) -> None:
        if self._live is not None:
            return
        self._live = Live(
            Group(self._overall_progress, self._item_progress),
            console=self._console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()
        self._overall_task_id = self._overall_progress.add_task(
            "overall",
            label="Overall",
            total=1,
            completed=0,
            detail="uploaded=0 failed=0",
        )

    def stop(self) -> None:
        if self._live is None:
            return
        self._live.stop()
        self._live = None

    def on_progress(self, snapshot: BatchSnapshot) -> None:
        self.start()
        if self._overall_task_id is None:
            return
        total = max(snapshot.bytes_total, 1)
        self._overall_progress.update(
            self._overall_task_id,
            completed=min(snapshot.bytes_loaded, total),
            total=total,
            detail=(
                f"files={snapshot.num_loaded + snapshot.num_failed}/{snapshot.length} "
                f"uploaded={snapshot.num_loaded} failed={snapshot.num_failed}"
            ),
        )

    def on_item_start(self, item: TransferItem) -> None:
        self.start()
        key = id(item)
        task_id = self._item_tasks.get(key)
        if task_id is None:
            self._item_tasks[key] = self._item_progress.add_task(
                "upload",
                label=item.file.path[-60:],
                total=max(item.bytes_total, 1),
            )
        else:
            # Retry restarts from zero
            self._item_progress.reset(task_id, total=max(item.bytes_total, 1))

    def on_item_progress(self, item: TransferItem, progress: TransferProgress) -> None:
        task_id = self._item_tasks.get(id(item))
        if task_id is None:
            return
        self._item_progress.update(task_id, completed=item.bytes_loaded)

    def _remove_item(self, item: TransferItem) -> None:
        task_id = self._item_tasks.pop(id(item), None)
        if task_id is not None:
            self._item_progress.remove_task(task_id)

    def on_item_complete(self, item: TransferItem) -> None:
        self._remove_item(item)
        self._emit_timeline("DONE", f"{item.file.path} -> {item.filename}", item.bytes_total)

    def on_item_fail(self, item: TransferItem) -> None:
        self._remove_item(item)
        if isinstance(item.error, TransferCanceledError):
            self._emit_timeline("SKIP", item.file.path, error="canceled")
            return
        self._emit_timeline("FAIL", item.file.path, item.bytes_total, error=str(item.error))

    def on_finish(self, batch: TransferBatch) -> None:
        self.stop()
        color = "green" if batch.num_failed == 0 else "red"
        self._console.print(
            f"[bold {color}]Finished:[/bold {color}] {batch.num_loaded}/{len(batch)} uploaded, "
            f"{batch.num_failed} failed ({human_size(batch.bytes_loaded)})"
        )

    def on_error(self, error: Exception) -> None:
        self.stop()
        self._console.print(f"[bold red]ERROR:[/bold red] {error}")
