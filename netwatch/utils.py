"""Utility functions for netwatch."""

from typing import Iterable

from netwatch.models import ConnectionInfo, InterfaceRates, ProcessTraffic

BYTE_UNITS = ('B', 'KB', 'MB', 'GB', 'TB')
RATE_UNITS = ('B/s', 'KB/s', 'MB/s', 'GB/s')
SHORT_UNITS = ('B', 'K', 'M', 'G')


def _scale(value: float, units: tuple) -> tuple[float, int]:
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return value, index


def format_bytes(bytes_val: int) -> str:
    """Format bytes to human readable string.

    Args:
        bytes_val: Number of bytes

    Returns:
        Formatted string like "1.5 KB" (whole bytes have no decimals)
    """
    value, index = _scale(float(bytes_val), BYTE_UNITS)
    if index == 0:
        return f"{value:.0f} {BYTE_UNITS[index]}"
    return f"{value:.1f} {BYTE_UNITS[index]}"


def format_rate(bytes_per_sec: int) -> str:
    """Format a byte rate, e.g. "1.5 MB/s"."""
    value, index = _scale(float(bytes_per_sec), RATE_UNITS)
    if index == 0:
        return f"{value:.0f} {RATE_UNITS[index]}"
    return f"{value:.1f} {RATE_UNITS[index]}"


def short_rate(bytes_per_sec: int) -> str:
    """Compact rate for narrow headers, e.g. "1.2M" or "150M"."""
    value, index = _scale(float(bytes_per_sec), SHORT_UNITS)
    if index == 0 or value >= 100:
        return f"{value:.0f}{SHORT_UNITS[index]}"
    return f"{value:.1f}{SHORT_UNITS[index]}"


def rate_label(rates: InterfaceRates) -> str:
    """Download/upload label like "↓1.2M ↑340K"."""
    return f"↓{short_rate(rates.bytes_in)} ↑{short_rate(rates.bytes_out)}"


def filter_processes(processes: Iterable[ProcessTraffic], query: str) -> list[ProcessTraffic]:
    """Filter processes by name or pid (case-insensitive substring)."""
    processes = list(processes)
    if not query:
        return processes

    lowered = query.lower()
    return [
        p for p in processes
        if lowered in p.process_name.lower() or lowered in str(p.pid)
    ]


def filter_connections(connections: Iterable[ConnectionInfo], query: str) -> list[ConnectionInfo]:
    """Filter connections by name, pid, local endpoint or remote address."""
    connections = list(connections)
    if not query:
        return connections

    lowered = query.lower()
    return [
        c for c in connections
        if lowered in c.process_name.lower()
        or lowered in str(c.pid)
        or lowered in c.local_address.lower()
        or lowered in str(c.local_port)
        or (c.remote_address is not None and lowered in c.remote_address.lower())
    ]
