"""
NetWarden Console Output Module

Rich console formatting for the CLI interface.
Provides structured output for scan results and monitoring sessions.
"""

from rich.box import ROUNDED
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from netwarden import __version__


# =============================================================================
# Constants
# =============================================================================

BANNER = r"""
 _   _      _ __        __            _
| \ | | ___| |\ \      / /_ _ _ __ __| | ___ _ __
|  \| |/ _ \ __\ \ /\ / / _` | '__/ _` |/ _ \ '_ \
| |\  |  __/ |_ \ V  V / (_| | | | (_| |  __/ | | |
|_| \_|\___|\__| \_/\_/ \__,_|_|  \__,_|\___|_| |_|
"""

# Severity colors
SEVERITY_COLORS = {
    "critical": "red bold",
    "high": "bright_red",
    "medium": "yellow",
    "low": "blue",
}

# Phase icons
PHASE_ICONS = {
    "baseline": "📏",
    "scan": "🔍",
    "monitor": "📡",
    "complete": "✅",
    "error": "❌",
}


# =============================================================================
# Console Display Class
# =============================================================================


class NetWardenConsole:
    """Rich console interface for the NetWarden CLI."""

    def __init__(self, console: Console | None = None):
        """Initialize the console."""
        self.console = console or Console()
        self._width = self.console.width

    def print_banner(self) -> None:
        """Print the NetWarden banner."""
        self.console.print(BANNER, style="cyan bold")

        info_text = Text()
        info_text.append(f"v{__version__}", style="bright_white bold")
        info_text.append(" | ", style="dim")
        info_text.append("Baseline traffic monitoring", style="bright_blue")
        self.console.print(info_text, justify="center")
        self.console.print()

    def print_phase_header(self, phase: str, title: str, description: str = "") -> None:
        """Print a phase header with icon and description."""
        icon = PHASE_ICONS.get(phase, "▶")

        self.console.print()
        self.console.print(f"{'═' * self._width}", style="bright_blue")
        self.console.print(f" {icon} [bold bright_white]{title}[/bold bright_white]")
        if description:
            self.console.print(f"    [dim]{description}[/dim]")
        self.console.print(f"{'═' * self._width}", style="bright_blue")
        self.console.print()

    def print_success(self, text: str) -> None:
        """Print a success message."""
        self.console.print(f"  [green]✓[/green] {text}")

    def print_warning(self, text: str) -> None:
        """Print a warning message."""
        self.console.print(f"  [yellow]⚠[/yellow] {text}")

    def print_error(self, text: str) -> None:
        """Print an error message."""
        self.console.print(f"  [red]✗[/red] {text}")

    def print_info(self, text: str) -> None:
        """Print an info message."""
        self.console.print(f"  [cyan]ℹ[/cyan] {text}")

    # =========================================================================
    # Scans
    # =========================================================================

    def print_scan_start(self, ip: str, scan_seconds: float, baseline_seconds: float | None) -> None:
        """Announce a one-time scan."""
        self.print_phase_header("scan", f"SCAN: {ip}", "Capturing traffic to and from the target")
        if baseline_seconds is not None:
            self.print_info(
                f"No baseline cached; establishing one over {self._format_duration(baseline_seconds)} first"
            )
        self.print_info(f"Scan window: {self._format_duration(scan_seconds)}")

    def print_profile(self, title: str, profile: dict) -> None:
        """Print a traffic profile as a compact table."""
        table = Table(title=title, box=None, show_header=False, padding=(0, 2), title_style="bold cyan")
        table.add_column("Metric", style="dim")
        table.add_column("Value", style="bright_white")

        table.add_row("Packets/sec", f"{profile['packets_per_second']:.2f}")
        table.add_row("Bytes/sec", f"{self._format_bytes(int(profile['bytes_per_second']))}/s")
        table.add_row("Unique Sources", str(profile["unique_source_count"]))
        table.add_row("Connection Attempts", str(profile["connection_attempts"]))
        table.add_row("Packets", f"{profile['packet_count']:,}")
        table.add_row("Window", self._format_duration(profile["window_seconds"]))

        protocols = profile.get("protocol_counts") or {}
        if protocols:
            table.add_row(
                "Protocols",
                ", ".join(f"{name} {count}" for name, count in sorted(protocols.items())),
            )

        self.console.print(table)
        self.console.print()

    def print_scan_result(self, result: dict) -> None:
        """Print a ScanResult dictionary."""
        if result.get("degraded"):
            self.print_warning("Capture failed transiently; this result is empty")

        self.print_profile("Current Traffic", result["profile"])
        self.print_profile("Baseline", result["baseline"])

        survey = result.get("survey")
        if survey:
            self.print_survey(survey)

        anomalies = result.get("anomalies") or []
        if not anomalies:
            self.print_success("No anomalies detected")
            return

        table = Table(
            title=f"Anomalies ({len(anomalies)})",
            box=ROUNDED,
            border_style="red",
            header_style="bold bright_white",
            title_style="bold red",
        )
        table.add_column("#", style="bright_yellow", justify="center", width=4)
        table.add_column("Description", style="bright_white")
        for i, anomaly in enumerate(anomalies, 1):
            table.add_row(str(i), anomaly)
        self.console.print(table)

        classification = result.get("classification")
        if classification:
            self.print_classification(classification)

    def print_survey(self, survey: dict) -> None:
        """Print reachability and open ports."""
        reachability = survey.get("reachability")
        if reachability is None:
            self.print_warning("Reachability unknown (ping unavailable)")
        elif reachability["reachable"]:
            self.print_info(
                f"Reachable: {reachability['packet_loss']:g}% loss, "
                f"{reachability['response_time_ms']:.1f} ms average"
            )
        else:
            self.print_warning("Unreachable: no ping replies")

        ports = survey.get("open_ports")
        if ports is None:
            return
        if not ports:
            self.print_info("No open TCP ports found")
            return
        listed = ", ".join(
            f"{p['port']}/{p['service']}" if p.get("service") else str(p["port"]) for p in ports
        )
        self.print_info(f"Open TCP ports ({len(ports)}): {listed}")
        self.console.print()

    def print_classification(self, classification: dict) -> None:
        """Print a classifier verdict."""
        severity = classification["severity"]
        color = SEVERITY_COLORS.get(severity, "white")

        body = (
            f"[{color}]{severity.upper()}[/{color}] · [bright_white]{classification['category']}[/bright_white]\n\n"
            f"{classification['narrative']}\n\n"
            f"[bold]Recommendation[/bold]\n{classification['recommendation']}"
        )
        self.console.print(Panel(body, title="Classification", border_style=color, padding=(1, 2)))

    # =========================================================================
    # Monitoring
    # =========================================================================

    def print_monitoring_started(self, ip: str, interval_minutes: float) -> None:
        """Announce a recurring monitoring session."""
        self.print_phase_header(
            "monitor",
            f"MONITORING: {ip}",
            f"Scanning every {interval_minutes:g} minute(s); press Ctrl-C to stop",
        )

    def print_monitoring_stopped(self, ip: str) -> None:
        self.console.print()
        self.print_success(f"Stopped monitoring {ip}")

    def print_scan_error(self, error: str) -> None:
        """Print a failed scan."""
        self.console.print()
        self.console.print(f"{'═' * self._width}", style="red")
        self.console.print(f" {PHASE_ICONS['error']} [bold red]SCAN FAILED[/bold red]")
        self.console.print(f"{'═' * self._width}", style="red")
        self.console.print()
        self.print_error(error)

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def _format_bytes(self, bytes_count: int) -> str:
        """Format bytes to human readable string."""
        if bytes_count < 1024:
            return f"{bytes_count} B"
        elif bytes_count < 1024 ** 2:
            return f"{bytes_count / 1024:.1f} KB"
        elif bytes_count < 1024 ** 3:
            return f"{bytes_count / (1024 ** 2):.1f} MB"
        else:
            return f"{bytes_count / (1024 ** 3):.2f} GB"

    def _format_duration(self, seconds: float) -> str:
        """Format duration to human readable string."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            mins = int(seconds // 60)
            secs = int(seconds % 60)
            return f"{mins}m {secs}s"
        else:
            hours = int(seconds // 3600)
            mins = int((seconds % 3600) // 60)
            return f"{hours}h {mins}m"


# =============================================================================
# Singleton Instance
# =============================================================================

_console: NetWardenConsole | None = None


def get_console() -> NetWardenConsole:
    """Get the singleton console instance."""
    global _console
    if _console is None:
        _console = NetWardenConsole()
    return _console
