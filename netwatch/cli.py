"""CLI commands for netwatch using Typer."""

import time

import typer

from netwatch import __version__
from netwatch.config import NetwatchConfig, load_config, set_config_value, setup_logging
from netwatch.display import (
    console,
    print_connections,
    print_error,
    print_info,
    print_interface_stats,
    print_rates,
    print_snapshot,
    print_success,
    run_live_monitor,
)
from netwatch.monitor import InterfaceMonitor, RateTracker, TrafficMonitor
from netwatch.runner import ExecutionFailed, SubprocessRunner
from netwatch.sampler import Sampler
from netwatch.utils import filter_connections, filter_processes

# Create Typer app
app = typer.Typer(
    name="netwatch",
    help="Per-process network traffic and connection monitor",
    add_completion=False,
    no_args_is_help=True,
)

config_app = typer.Typer(help="Configuration commands")
app.add_typer(config_app, name="config")


def build_monitors(config: NetwatchConfig) -> tuple[TrafficMonitor, InterfaceMonitor]:
    """Wire monitors to a subprocess runner from config."""
    runner = SubprocessRunner(config.tools, timeout=config.command_timeout_sec)
    tracker = RateTracker(loopback_prefix=config.loopback_prefix)
    return TrafficMonitor(runner), InterfaceMonitor(runner, tracker)


def _load() -> NetwatchConfig:
    config = load_config()
    setup_logging(config)
    return config


# ═══════════════════════════════════════════════════════════════
# SAMPLING COMMANDS
# ═══════════════════════════════════════════════════════════════

@app.command()
def snapshot(
    search: str = typer.Option("", "--search", "-s", help="Filter by process name or PID"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum rows to show"),
):
    """Per-process traffic snapshot."""
    traffic_monitor, _ = build_monitors(_load())

    try:
        snap = traffic_monitor.snapshot()
    except ExecutionFailed as e:
        print_error(str(e))
        raise typer.Exit(1)

    if search:
        processes = filter_processes(snap.processes, search)
        snap = snap.model_copy(update={'processes': processes})

    print_snapshot(snap, max_rows=limit)


@app.command()
def connections(
    search: str = typer.Option("", "--search", "-s", help="Filter by process, PID, address or port"),
    established: bool = typer.Option(False, "--established", "-e", help="Only established connections"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum rows to show"),
):
    """Active connections (lsof)."""
    traffic_monitor, _ = build_monitors(_load())

    try:
        conns = traffic_monitor.connections()
    except ExecutionFailed as e:
        print_error(str(e))
        raise typer.Exit(1)

    conns = filter_connections(conns, search)
    if established:
        conns = [c for c in conns if c.is_established]

    print_connections(conns, max_rows=limit)


@app.command()
def rates(
    interval: float = typer.Option(1.0, "--interval", "-i", min=0, help="Seconds between the two samples"),
):
    """Aggregate interface throughput."""
    _, interface_monitor = build_monitors(_load())

    # First sample only primes the tracker
    interface_monitor.sample_rates()
    time.sleep(interval)
    print_rates(interface_monitor.sample_rates(), interval)


@app.command()
def interfaces():
    """Cumulative per-interface counters (netstat)."""
    _, interface_monitor = build_monitors(_load())
    print_interface_stats(interface_monitor.read_interface_stats())


@app.command()
def live(
    interval: float = typer.Option(0, "--interval", "-i", min=0, help="Refresh interval (default from config)"),
):
    """Live traffic monitor."""
    config = _load()
    traffic_monitor, interface_monitor = build_monitors(config)

    sampler = Sampler(
        traffic_monitor,
        interface_monitor,
        interval=interval or config.refresh_interval,
        on_cycle=lambda result: None,
    )
    run_live_monitor(sampler, show_rate=config.show_rate_in_header)


# ═══════════════════════════════════════════════════════════════
# CONFIG COMMANDS
# ═══════════════════════════════════════════════════════════════

@config_app.command("show")
def config_show():
    """Show configuration."""
    config = load_config()
    console.print_json(config.model_dump_json())


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Config key"),
    value: str = typer.Argument(..., help="New value")
):
    """Set a configuration value.

    Keys:
    - refresh_interval: live refresh interval (seconds)
    - command_timeout_sec: external tool timeout (seconds)
    - loopback_prefix: interface name prefix excluded from rates
    - log_level: DEBUG, INFO, WARNING, ERROR
    - show_rate_in_header: true/false
    - tools.nettop, tools.lsof, tools.netstat: command line
    """
    try:
        set_config_value(key, value)
        print_success(f"{key} = {value}")
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)
    except PermissionError:
        print_error("Permission denied writing config file")
        raise typer.Exit(1)


# ═══════════════════════════════════════════════════════════════
# OTHER COMMANDS
# ═══════════════════════════════════════════════════════════════

@app.command()
def version():
    """Show version."""
    console.print(f"netwatch v{__version__}")
    print_info("Uses nettop, lsof and netstat (macOS)")


if __name__ == "__main__":
    app()
