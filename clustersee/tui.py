"""Rich TUI for cluster job monitoring."""

from __future__ import annotations

import sys
import time
from datetime import datetime

from rich.console import Console
from rich.console import Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from clustersee.constants import DEFAULT_REFRESH_RATE
from clustersee.constants import MAX_REFRESH_RATE
from clustersee.constants import MIN_REFRESH_RATE
from clustersee.log_follow import LogFollowWatcher
from clustersee.models import POLLED_SOURCES
from clustersee.models import DataSource
from clustersee.models import Job
from clustersee.models import JobStatus
from clustersee.models import format_duration
from clustersee.session import MonitorSession
from clustersee.state.job_store import JobFilter
from clustersee.state.job_store import SortMode
from clustersee.state.job_store import StoreSnapshot

# Accent colors for borders, headings and completed jobs
ACCENT_BLUE = "#26a8e0"
ACCENT_GREEN = "#38b44a"

STATUS_STYLES: dict[JobStatus, str] = {
    JobStatus.PENDING: "dim",
    JobStatus.QUEUED: "yellow",
    JobStatus.RUNNING: "bold green",
    JobStatus.COMPLETED: ACCENT_BLUE,
    JobStatus.FAILED: "bold red",
    JobStatus.CANCELLED: "magenta",
    JobStatus.UNKNOWN: "dim",
}

# Rows reserved for header, footer and table chrome
_CHROME_ROWS = 10


def _format_time(timestamp: float | None) -> str:
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime("%H:%M:%S")


def _format_memory(memory_mb: int | None) -> str:
    if memory_mb is None:
        return "-"
    if memory_mb >= 1024:
        return f"{memory_mb / 1024:.1f}G"
    return f"{memory_mb}M"


class ClusterMonitorTUI:
    """
    Rich TUI for monitoring Snakemake jobs on a cluster.

    The TUI only reads store snapshots; its commands change what is shown,
    never what is stored.

    Keyboard Controls:
        q: Quit
        ?: Show help
        p: Pause/resume auto-refresh
        r: Poll every source now
        f: Cycle status filter (all/running/failed/pending/completed)
        s: Cycle sort order (status/rule/time)
        u: Toggle per-rule summary
        j / Down: Select next job
        k / Up: Select previous job
        g / G: Select first/last job
        Enter: Follow the selected job's log
        Esc: Close the log viewer
        + / -: Slower/faster refresh
        0: Reset refresh rate

    Attributes:
        session: The monitoring session being displayed.
        refresh_rate: How often to refresh the display (seconds).
    """

    def __init__(
        self,
        session: MonitorSession,
        refresh_rate: float = DEFAULT_REFRESH_RATE,
        console: Console | None = None,
    ) -> None:
        """
        Initialize the TUI.

        Args:
            session: Monitoring session whose store is displayed.
            refresh_rate: Refresh interval in seconds.
            console: Console to draw on. Defaults to the terminal.
        """
        self.session = session
        self.refresh_rate = refresh_rate
        self.console = console or Console()
        self._running = True
        self._force_refresh = False
        self._paused = False
        self._show_help = False
        self._show_rule_summary = False

        self._filter = JobFilter.ALL
        self._sort = SortMode.STATUS
        self._selected_index = 0
        self._visible_keys: list[str] = []

        # Log viewer state
        self._log_watcher: LogFollowWatcher | None = None
        self._log_job_key: str | None = None

    # Input handling

    def _handle_key(self, key: str) -> bool:
        """
        Handle a keypress.

        Args:
            key: The key that was pressed.

        Returns:
            True if should quit, False otherwise.
        """
        if self._show_help:
            # Any key closes help
            self._show_help = False
            self._force_refresh = True
            return False

        if key.lower() == "q":
            return True

        if self._handle_toggle_key(key):
            return False
        if self._handle_view_key(key):
            return False
        if self._handle_navigation_key(key):
            return False
        self._handle_refresh_rate_key(key)
        return False

    def _handle_toggle_key(self, key: str) -> bool:
        """Handle toggle keys (?, p, r, u). Returns True if key was handled."""
        if key == "?":
            self._show_help = True
        elif key.lower() == "p":
            self._paused = not self._paused
        elif key.lower() == "r":
            self.session.poller.poll_now()
        elif key.lower() == "u":
            self._show_rule_summary = not self._show_rule_summary
        else:
            return False
        self._force_refresh = True
        return True

    def _handle_view_key(self, key: str) -> bool:
        """Handle filter/sort keys (f, s). Returns True if key was handled."""
        if key == "f":
            self._filter = self._filter.next()
            self._selected_index = 0
        elif key == "s":
            self._sort = self._sort.next()
        else:
            return False
        self._force_refresh = True
        return True

    def _handle_navigation_key(self, key: str) -> bool:
        """Handle selection and log keys. Returns True if key was handled."""
        last = max(0, len(self._visible_keys) - 1)
        if key in ("j", "\x0e"):  # j or Down arrow
            self._selected_index = min(last, self._selected_index + 1)
        elif key in ("k", "\x10"):  # k or Up arrow
            self._selected_index = max(0, self._selected_index - 1)
        elif key == "g":
            self._selected_index = 0
        elif key == "G":
            self._selected_index = last
        elif key in ("\r", "\n"):
            self._open_log()
        elif key == "\x1b":
            self._close_log()
        else:
            return False
        self._force_refresh = True
        return True

    def _handle_refresh_rate_key(self, key: str) -> bool:
        """Handle refresh rate keys (+, -, 0). Returns True if key was handled."""
        if key == "+":
            self.refresh_rate = min(MAX_REFRESH_RATE, self.refresh_rate + 0.5)
        elif key == "-":
            self.refresh_rate = max(MIN_REFRESH_RATE, self.refresh_rate - 0.5)
        elif key == "0":
            self.refresh_rate = DEFAULT_REFRESH_RATE
        else:
            return False
        self._force_refresh = True
        return True

    # Log viewer

    def _selected_job(self, snapshot: StoreSnapshot) -> Job | None:
        if not self._visible_keys:
            return None
        return snapshot.jobs.get(self._visible_keys[self._selected_index])

    def _open_log(self) -> None:
        """Follow the selected job's log, replacing any log already open."""
        job = self._selected_job(self.session.store.snapshot())
        self._close_log()
        if job is None:
            return
        self._log_job_key = job.key
        self._log_watcher = self.session.follow_log(job)

    def _close_log(self) -> None:
        """Close the log viewer and cancel its watcher."""
        if self._log_watcher is not None:
            self._log_watcher.stop()
        self._log_watcher = None
        self._log_job_key = None

    # Rendering

    def _poll_state(self) -> StoreSnapshot:
        """Take a snapshot and recompute the visible job keys."""
        snapshot = self.session.store.snapshot()
        self._visible_keys = snapshot.view(self._filter, self._sort)
        self._selected_index = min(self._selected_index, max(0, len(self._visible_keys) - 1))
        return snapshot

    def _make_header(self, snapshot: StoreSnapshot) -> Panel:
        """Create the header panel with workflow path, scheduler and source health."""
        header_text = Text()
        header_text.append("CLUSTERSEE", style=f"bold {ACCENT_BLUE}")
        header_text.append(" │ ", style="dim")
        header_text.append("Cluster Monitor", style="bold white")
        header_text.append("  │  ", style="dim")
        header_text.append(str(self.session.config.working_dir), style="dim")
        header_text.append("  │  Scheduler: ")
        header_text.append(self.session.scheduler_name, style=ACCENT_BLUE)

        degraded = snapshot.degraded_sources
        if degraded:
            header_text.append("  │  ")
            labels = ", ".join(source.label for source in degraded)
            header_text.append(f"DEGRADED: {labels}", style="bold red")

        if self._paused:
            header_text.append("  │  ")
            header_text.append("PAUSED", style="bold yellow")

        return Panel(header_text, style="white on grey23", border_style=ACCENT_BLUE, height=3)

    def _make_counts(self, snapshot: StoreSnapshot) -> Text:
        """One-line count of jobs per status."""
        counts = Text()
        counts.append(f"{len(snapshot)} jobs", style="bold")
        for status in JobStatus:
            count = snapshot.counts.get(status, 0)
            if count:
                counts.append("  ")
                label = f"{status.symbol} {status.value} {count}"
                counts.append(label, style=STATUS_STYLES[status])
        return counts

    def _make_jobs_table(self, snapshot: StoreSnapshot) -> Panel:
        """Create the job table for the current filter and sort."""
        table = Table(expand=True, show_header=True, header_style="bold magenta")
        table.add_column("", width=1)
        table.add_column("Job", style="cyan", no_wrap=True, ratio=3)
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Status", no_wrap=True)
        table.add_column("From", style="dim", no_wrap=True)
        table.add_column("Started", justify="right")
        table.add_column("Runtime", justify="right")
        table.add_column("CPU", justify="right", style="dim")
        table.add_column("Mem", justify="right", style="dim")

        now = snapshot.taken_at
        visible_rows = max(5, (self.console.height or 24) - _CHROME_ROWS)
        if self._log_watcher is not None or self._show_rule_summary:
            visible_rows = max(5, visible_rows // 2)
        start = max(0, self._selected_index - visible_rows + 1)

        for idx, key in enumerate(self._visible_keys[start : start + visible_rows], start=start):
            job = snapshot.jobs[key]
            style = STATUS_STYLES[job.status]
            runtime = job.runtime(now)
            name_style = "bold cyan on dark_blue" if idx == self._selected_index else "cyan"
            table.add_row(
                Text(job.status.symbol, style=style),
                Text(job.display_name, style=name_style),
                job.scheduler_job_id or "-",
                Text(job.status.value, style=style),
                job.status_source.label,
                _format_time(job.timing.started),
                format_duration(runtime) if runtime is not None else "-",
                str(job.resources.cpus) if job.resources.cpus is not None else "-",
                _format_memory(job.resources.memory_mb),
            )

        if not self._visible_keys:
            table.add_row("", "[dim]No jobs[/dim]", "", "", "", "", "", "", "")

        title = Text.assemble(
            "Jobs ",
            (f"[{self._filter.value}]", "yellow"),
            " sorted by ",
            (self._sort.value, "yellow"),
        )
        return Panel(
            Group(self._make_counts(snapshot), table),
            title=title,
            border_style=ACCENT_BLUE,
            padding=0,
        )

    def _make_detail_panel(self, job: Job | None, now: float) -> Panel:
        """Create the detail panel for the selected job."""
        if job is None:
            return Panel("[dim]No job selected[/dim]", title="Job", border_style=ACCENT_BLUE)

        details = Table(show_header=False, box=None, padding=(0, 1))
        details.add_column("Field", style="bold cyan")
        details.add_column("Value")
        details.add_row("Rule", job.rule)
        if job.wildcards:
            details.add_row("Wildcards", job.wildcards)
        details.add_row("Key", job.key)
        details.add_row("Status", Text(job.status.value, style=STATUS_STYLES[job.status]))
        sources = [s.label for s in POLLED_SOURCES if s in job.provenance]
        details.add_row("Sources", ", ".join(sources) or "-")
        if job.scheduler_job_id:
            scheduler = job.scheduler.value if job.scheduler else "?"
            details.add_row("Scheduler", f"{scheduler} {job.scheduler_job_id}")
        details.add_row("Submitted", _format_time(job.timing.submitted))
        details.add_row("Started", _format_time(job.timing.started))
        details.add_row("Ended", _format_time(job.timing.ended))
        runtime = job.runtime(now)
        if runtime is not None:
            details.add_row("Runtime", format_duration(runtime))
        if job.resources.partition:
            details.add_row("Partition", job.resources.partition)
        if job.resources.node:
            details.add_row("Node", job.resources.node)
        if job.resources.time_limit_seconds is not None:
            details.add_row("Time limit", format_duration(job.resources.time_limit_seconds))
        if job.outputs:
            details.add_row("Outputs", "\n".join(job.outputs[:3]))
        if job.shell_command:
            details.add_row("Command", job.shell_command.strip()[:200])
        if job.conda_env:
            details.add_row("Conda", job.conda_env)
        if job.container_img_url:
            details.add_row("Container", job.container_img_url)
        if job.error is not None:
            details.add_row("Error", Text(job.error.message, style="bold red"))
        if job.log_paths:
            details.add_row("Logs", "\n".join(sorted(job.log_paths)))

        return Panel(details, title=f"Job: {job.display_name}", border_style=ACCENT_BLUE)

    def _make_log_panel(self) -> Panel:
        """Create the log panel for the followed job."""
        watcher = self._log_watcher
        if watcher is None:
            return Panel(
                f"[dim]No log file for {self._log_job_key}[/dim]",
                title="Job Log",
                subtitle="[dim]Esc close[/dim]",
                border_style=ACCENT_BLUE,
            )

        lines = watcher.lines()
        if not lines:
            return Panel(
                "[dim]Log file is empty[/dim]",
                title=f"Job Log: {watcher.path}",
                subtitle="[dim]Esc close[/dim]",
                border_style=ACCENT_BLUE,
            )

        # Panel takes ~5 lines for border, title, and padding
        visible_lines = max(5, (self.console.height or 24) // 2 - 5)
        content = Text()
        for line in lines[-visible_lines:]:
            display_line = line[:117] + "..." if len(line) > 120 else line
            content.append(display_line + "\n")

        return Panel(
            content,
            title=f"Job Log: {watcher.path} [latest {min(visible_lines, len(lines))}/{len(lines)}]",
            subtitle="[dim]Esc close[/dim]",
            border_style="cyan",
        )

    def _make_rule_summary_panel(self, snapshot: StoreSnapshot) -> Panel:
        """Create the per-rule job count panel."""
        table = Table(expand=True, show_header=True, header_style="bold magenta")
        table.add_column("Rule", style="cyan", no_wrap=True)
        for status in JobStatus:
            table.add_column(status.symbol, justify="right", style=STATUS_STYLES[status])
        for rule, counts in snapshot.rule_summary().items():
            cells = (str(counts[status]) if counts[status] else "" for status in JobStatus)
            table.add_row(rule, *cells)
        return Panel(table, title="Jobs by Rule", border_style=ACCENT_BLUE, padding=0)

    def _make_help_panel(self) -> Panel:
        """Create the help overlay panel."""
        help_text = Table(show_header=False, box=None, padding=(0, 2))
        help_text.add_column("Key", style="bold cyan")
        help_text.add_column("Action")

        help_text.add_row("", "[bold]General[/bold]")
        help_text.add_row("q", "Quit")
        help_text.add_row("?", "Toggle this help")
        help_text.add_row("p", "Pause/resume auto-refresh")
        help_text.add_row("r", "Poll scheduler and metadata now")
        help_text.add_row("+ / -", "Slower/faster refresh")
        help_text.add_row("0", f"Reset refresh to default ({DEFAULT_REFRESH_RATE}s)")
        help_text.add_row("", "")
        help_text.add_row("", "[bold]View[/bold]")
        help_text.add_row("f", "Cycle filter (all/running/failed/pending/completed)")
        help_text.add_row("s", "Cycle sort (status/rule/time)")
        help_text.add_row("u", "Toggle jobs-by-rule summary")
        help_text.add_row("", "")
        help_text.add_row("", "[bold]Jobs[/bold]")
        help_text.add_row("j / k", "Select next/previous job")
        help_text.add_row("g / G", "Select first/last job")
        help_text.add_row("Enter", "Follow the selected job's log")
        help_text.add_row("Esc", "Close the log")

        return Panel(
            help_text,
            title="[bold]Keyboard Shortcuts[/bold]",
            subtitle="Press any key to close",
            border_style="cyan",
        )

    def _make_footer(self, snapshot: StoreSnapshot) -> Panel:
        """Create the footer with poll times and key bindings."""
        footer = Text()
        now = datetime.now().strftime("%H:%M:%S")
        footer.append(f"Updated: {now}", style="dim")

        for source in POLLED_SOURCES:
            health = snapshot.health.get(source)
            if health is None:
                continue
            if source is not DataSource.METADATA and self.session.scheduler is None:
                continue
            footer.append("  │  ", style="dim")
            footer.append(f"{source.label}: ", style="dim")
            if health.degraded:
                footer.append("FAILED", style="bold red")
            elif health.last_success is None:
                footer.append("waiting", style="yellow")
            else:
                footer.append(_format_time(health.last_success), style=ACCENT_GREEN)
            if health.parse_errors:
                footer.append(f" ({health.parse_errors} skipped)", style="yellow")

        footer.append("  │  ", style="dim")
        footer.append(f"Refresh: {self.refresh_rate}s", style="dim")
        if snapshot.ambiguities:
            footer.append("  │  ", style="dim")
            footer.append(f"{len(snapshot.ambiguities)} ambiguous", style="yellow")
        footer.append("  │  ")
        footer.append("clustersee", style=f"bold {ACCENT_BLUE}")
        footer.append("  │  ")
        footer.append("?", style="bold")
        footer.append("=help", style="dim")

        return Panel(footer, border_style=ACCENT_BLUE, padding=(0, 1))

    def _make_layout(self, snapshot: StoreSnapshot) -> Layout:
        """Create the complete TUI layout."""
        layout = Layout()

        if self._show_help:
            layout.split_column(
                Layout(name="header", size=3),
                Layout(name="help"),
                Layout(name="footer", size=3),
            )
            layout["header"].update(self._make_header(snapshot))
            layout["help"].update(self._make_help_panel())
            layout["footer"].update(self._make_footer(snapshot))
            return layout

        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="body"),
            Layout(name="footer", size=3),
        )
        layout["header"].update(self._make_header(snapshot))
        layout["footer"].update(self._make_footer(snapshot))

        body = layout["body"]
        body.split_row(Layout(name="main", ratio=3), Layout(name="detail", ratio=2))
        selected = self._selected_job(snapshot)
        body["detail"].update(self._make_detail_panel(selected, snapshot.taken_at))

        main = body["main"]
        if self._log_job_key is not None:
            main.split_column(Layout(name="jobs"), Layout(name="log"))
            main["log"].update(self._make_log_panel())
        elif self._show_rule_summary:
            main.split_column(Layout(name="jobs"), Layout(name="rules"))
            main["rules"].update(self._make_rule_summary_panel(snapshot))
        else:
            main.split_column(Layout(name="jobs"))
        main["jobs"].update(self._make_jobs_table(snapshot))
        return layout

    def run(self) -> None:
        """
        Run the TUI main loop.

        Continuously refreshes the display until the user presses 'q'.
        """
        if not self.console.is_terminal:
            self.console.print(
                "[yellow]Warning:[/yellow] Not running in an interactive terminal.",
            )
            return

        try:
            import select
            import termios
            import tty
        except ImportError:
            # termios/tty not available (Windows without WSL)
            self._run_simple()
            return

        fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(fd)

        try:
            tty.setcbreak(fd)
            snapshot = self._poll_state()

            with Live(
                self._make_layout(snapshot),
                console=self.console,
                refresh_per_second=4,
                screen=True,
            ) as live:
                last_update = time.time()

                while self._running:
                    if sys.stdin in select.select([sys.stdin], [], [], 0.1)[0]:
                        key = sys.stdin.read(1)

                        # Handle escape sequences (arrow keys, etc.)
                        if key == "\x1b":
                            if sys.stdin in select.select([sys.stdin], [], [], 0.05)[0]:
                                seq = sys.stdin.read(2)
                                if seq == "[A":  # Up arrow
                                    key = "\x10"
                                elif seq == "[B":  # Down arrow
                                    key = "\x0e"

                        if self._handle_key(key):
                            break

                    now = time.time()
                    # A followed log refreshes at least twice a second
                    interval = self.refresh_rate
                    if self._log_watcher is not None:
                        interval = min(interval, 0.5)
                    should_refresh = self._force_refresh or (
                        not self._paused and now - last_update >= interval
                    )

                    if should_refresh:
                        if not self._paused or self._force_refresh:
                            snapshot = self._poll_state()
                        live.update(self._make_layout(snapshot))
                        last_update = now
                        self._force_refresh = False

        except KeyboardInterrupt:
            pass  # Clean exit on Ctrl+C
        finally:
            self._close_log()
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)

    def _run_simple(self) -> None:
        """
        Simple run loop for environments without select().

        Falls back to a non-interactive refresh loop.
        """
        self.console.print("[yellow]Running in simple mode (no keyboard input)[/yellow]")
        self.console.print("Press Ctrl+C to exit\n")

        try:
            while self._running:
                snapshot = self._poll_state()
                self.console.clear()
                self.console.print(self._make_layout(snapshot))
                time.sleep(self.refresh_rate)
        except KeyboardInterrupt:
            pass
