"""Rich-based display functions for netwatch."""

from datetime import datetime
from typing import Optional

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from netwatch.models import ConnectionInfo, InterfaceRates, InterfaceStats, TrafficSnapshot
from netwatch.sampler import CycleResult, Sampler
from netwatch.utils import format_bytes, format_rate, rate_label

console = Console()

STATE_STYLES = {
    "ESTABLISHED": "green",
    "LISTEN": "cyan",
    "TIME_WAIT": "yellow",
    "CLOSE_WAIT": "yellow",
    "SYN_SENT": "dark_orange",
    "SYN_RECEIVED": "dark_orange",
}


def print_success(message: str) -> None:
    """Print success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print error message."""
    console.print(f"[red]✗[/red] {message}")


def print_info(message: str) -> None:
    """Print info message."""
    console.print(f"[blue]ℹ[/blue] {message}")


def print_warning(message: str) -> None:
    """Print warning message."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def state_style(state: Optional[str]) -> str:
    """Rich style for a socket state."""
    return STATE_STYLES.get((state or "").upper(), "dim")


def build_process_table(snapshot: TrafficSnapshot, max_rows: int = 20) -> Table:
    """Build the per-process traffic table.

    Args:
        snapshot: Traffic snapshot
        max_rows: Maximum rows to display

    Returns:
        Rich Table object
    """
    table = Table(
        title=(
            f"[bold]Process traffic[/bold]\n"
            f"↓ {format_bytes(snapshot.total_bytes_in)}  ↑ {format_bytes(snapshot.total_bytes_out)}"
            f"  ({snapshot.connection_count} processes)"
        ),
        show_header=True,
        header_style="bold cyan"
    )

    table.add_column("Process", style="white", width=28)
    table.add_column("PID", justify="right", style="dim")
    table.add_column("In", justify="right", style="blue")
    table.add_column("Out", justify="right", style="dark_orange")
    table.add_column("Total", justify="right", style="yellow")

    for proc in snapshot.processes[:max_rows]:
        table.add_row(
            proc.process_name[:27],
            str(proc.pid),
            format_bytes(proc.bytes_in),
            format_bytes(proc.bytes_out),
            format_bytes(proc.total_bytes),
        )

    return table


def build_connections_table(connections: list[ConnectionInfo], max_rows: int = 50) -> Table:
    """Build the connections table, colour-coded by state."""
    established = sum(1 for c in connections if c.is_established)
    listening = sum(1 for c in connections if c.is_listening)

    table = Table(
        title=(
            f"[bold]Connections[/bold]\n"
            f"{len(connections)} total, {established} established, {listening} listening"
        ),
        show_header=True,
        header_style="bold cyan"
    )

    table.add_column("Process", width=20)
    table.add_column("PID", justify="right", style="dim")
    table.add_column("Proto")
    table.add_column("Local", overflow="fold")
    table.add_column("Remote", overflow="fold")
    table.add_column("State")

    for conn in connections[:max_rows]:
        local = f"{conn.local_address}:{conn.local_port}"
        remote = f"{conn.remote_address}:{conn.remote_port}" if conn.remote_address else "-"
        style = state_style(conn.state)
        table.add_row(
            conn.process_name[:19],
            str(conn.pid),
            conn.transport.value.upper(),
            f"[dim]{local}[/dim]" if conn.is_local else local,
            remote,
            f"[{style}]{conn.state or '-'}[/{style}]",
        )

    return table


def print_snapshot(snapshot: TrafficSnapshot, max_rows: int = 20) -> None:
    """Print per-process traffic table."""
    console.print()
    console.print(build_process_table(snapshot, max_rows))

    if len(snapshot.processes) > max_rows:
        console.print(f"\n[dim]... and {len(snapshot.processes) - max_rows} more processes[/dim]")

    console.print()


def print_connections(connections: list[ConnectionInfo], max_rows: int = 50) -> None:
    """Print connections table."""
    if not connections:
        console.print("\n[dim]No connections.[/dim]\n")
        return

    console.print()
    console.print(build_connections_table(connections, max_rows))

    if len(connections) > max_rows:
        console.print(f"\n[dim]... and {len(connections) - max_rows} more connections[/dim]")

    console.print()


def print_rates(rates: InterfaceRates, interval: float) -> None:
    """Print aggregate interface rates panel."""
    lines = [
        f"Download: [blue]{format_rate(rates.bytes_in)}[/blue]",
        f"Upload:   [dark_orange]{format_rate(rates.bytes_out)}[/dark_orange]",
        f"[dim]Sampled over {interval:g}s, loopback excluded[/dim]",
    ]

    panel = Panel(
        "\n".join(lines),
        title=f"[bold]Interface throughput {rate_label(rates)}[/bold]",
        border_style="cyan"
    )

    console.print()
    console.print(panel)
    console.print()


def print_interface_stats(stats: list[InterfaceStats]) -> None:
    """Print cumulative per-interface counters."""
    table = Table(title="[bold]Interface counters since boot[/bold]")
    table.add_column("Interface", style="cyan")
    table.add_column("Bytes in", justify="right", style="blue")
    table.add_column("Bytes out", justify="right", style="dark_orange")
    table.add_column("Packets in", justify="right")
    table.add_column("Packets out", justify="right")

    for stat in sorted(stats, key=lambda s: s.name):
        table.add_row(
            stat.name,
            format_bytes(stat.bytes_in),
            format_bytes(stat.bytes_out),
            str(stat.packets_in),
            str(stat.packets_out),
        )

    console.print()
    console.print(table)
    console.print(f"\nTotal: {len(stats)} interfaces")
    console.print()


def build_live_panel(result: Optional[CycleResult], show_rate: bool = True) -> Panel:
    """Build live monitor panel for Rich Live display.

    Args:
        result: Latest cycle result (None before the first cycle completes)
        show_rate: Include the interface rate in the panel title

    Returns:
        Rich Panel object
    """
    if result is None:
        return Panel("[dim]Sampling...[/dim]", title="[bold]netwatch[/bold]", border_style="cyan")

    parts = []
    if result.snapshot is not None:
        parts.append(build_process_table(result.snapshot, max_rows=15))
    if result.connections is not None:
        parts.append(build_connections_table(
            [c for c in result.connections if c.is_established],
            max_rows=15
        ))
    for error in result.errors:
        parts.append(f"[red]✗[/red] {error}")

    title = f"[bold]netwatch - {result.timestamp.strftime('%H:%M:%S')}[/bold]"
    if show_rate:
        title += f"  {rate_label(result.rates)}"

    return Panel(
        Group(*parts),
        title=title,
        subtitle="[dim]Ctrl+C to exit[/dim]",
        border_style="cyan"
    )


def run_live_monitor(sampler: Sampler, show_rate: bool = True) -> None:
    """Run the live monitor until interrupted.

    Args:
        sampler: Sampler whose on_cycle callback will be replaced
        show_rate: Include the interface rate in the panel title
    """
    console.print()

    with Live(build_live_panel(None, show_rate), console=console, refresh_per_second=4) as live:
        sampler.on_cycle = lambda result: live.update(build_live_panel(result, show_rate))
        sampler.start()
        try:
            while sampler.is_alive():
                sampler.shutdown_event.wait(timeout=0.5)
        except KeyboardInterrupt:
            pass
        finally:
            sampler.stop(timeout=5)

    console.print(f"\n[dim]Live monitor stopped at {datetime.now().strftime('%H:%M:%S')}.[/dim]\n")
