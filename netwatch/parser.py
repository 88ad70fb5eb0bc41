"""Parsers for nettop, lsof and netstat output.

All parsers are total: malformed lines are skipped (and logged at DEBUG),
never raised, so a partially garbled listing still yields usable data.
"""

import logging
import re
from datetime import datetime
from typing import Optional, Tuple

from netwatch.models import (
    ConnectionInfo,
    InterfaceStats,
    ProcessTraffic,
    TrafficSnapshot,
    Transport,
)

logger = logging.getLogger(__name__)

_UINT_RE = re.compile(r'[0-9]+')
_INT_RE = re.compile(r'[+-]?[0-9]+')

# lsof: COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME
LSOF_MIN_COLUMNS = 9
LSOF_NODE_COLUMN = 7
LSOF_NAME_COLUMN = 8

# netstat -ib: Name Mtu Network Address Ipkts Ierrs Ibytes Opkts Oerrs Obytes Coll
NETSTAT_MIN_COLUMNS = 11
NETSTAT_PACKETS_IN = 4
NETSTAT_BYTES_IN = 6
NETSTAT_PACKETS_OUT = 7
NETSTAT_BYTES_OUT = 9


def parse_uint(text: str) -> Optional[int]:
    """Parse a non-negative decimal integer, or return None."""
    if _UINT_RE.fullmatch(text):
        return int(text)
    return None


def parse_int(text: str) -> Optional[int]:
    """Parse a signed decimal integer, or return None."""
    if _INT_RE.fullmatch(text):
        return int(text)
    return None


# ─── nettop ────────────────────────────────────────────────────────────


def parse_process_field(field: str) -> Tuple[str, Optional[int]]:
    """Split a nettop ``name.pid`` field on its last dot.

    Process names may themselves contain dots (``com.apple.WebKit.1234``),
    so only the final component is taken as the pid.

    Returns:
        Tuple of (name, pid); pid is None when absent or not an integer
    """
    name, dot, pid_tail = field.rpartition('.')
    if not dot:
        return field, None

    pid = parse_int(pid_tail)
    if pid is None:
        return field, None

    return name, pid


def parse_nettop_output(output: str, now: Optional[datetime] = None) -> TrafficSnapshot:
    """Parse nettop per-process output into a traffic snapshot.

    Each meaningful line looks like ``Safari.1234, 1048576, 524288``.
    Lines for the same pid are summed; idle lines (0 in, 0 out) are dropped.

    Args:
        output: Raw nettop stdout
        now: Snapshot timestamp (defaults to parse completion time)

    Returns:
        TrafficSnapshot with processes sorted by total bytes, descending
    """
    # pid -> [name, bytes_in, bytes_out]
    accumulated: dict[int, list] = {}

    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue

        columns = [c.strip() for c in line.split(',')]
        if len(columns) < 3:
            logger.debug(f"nettop: too few columns: {line!r}")
            continue

        bytes_in = parse_uint(columns[1])
        bytes_out = parse_uint(columns[2])
        if bytes_in is None or bytes_out is None:
            logger.debug(f"nettop: bad byte counters: {line!r}")
            continue

        name, pid = parse_process_field(columns[0])
        if pid is None:
            logger.debug(f"nettop: no pid in {columns[0]!r}")
            continue

        if bytes_in == 0 and bytes_out == 0:
            continue

        entry = accumulated.get(pid)
        if entry is None:
            accumulated[pid] = [name, bytes_in, bytes_out]
        else:
            entry[1] += bytes_in
            entry[2] += bytes_out

    processes = sorted(
        (
            ProcessTraffic(process_name=name, pid=pid, bytes_in=b_in, bytes_out=b_out)
            for pid, (name, b_in, b_out) in accumulated.items()
        ),
        key=lambda p: p.total_bytes,
        reverse=True,
    )

    return TrafficSnapshot(
        processes=processes,
        total_bytes_in=sum(p.bytes_in for p in processes),
        total_bytes_out=sum(p.bytes_out for p in processes),
        connection_count=len(processes),
        timestamp=now or datetime.now(),
    )


# ─── lsof ──────────────────────────────────────────────────────────────


def parse_address_field(
    field: str,
) -> Tuple[str, Optional[int], Optional[str], Optional[int], Optional[str]]:
    """Parse the lsof NAME column.

    Example formats:
    - 192.168.1.5:52100->10.0.0.1:443 (ESTABLISHED)
    - *:3000 (LISTEN)
    - [::1]:631
    - *:*

    Returns:
        Tuple of (local_addr, local_port, remote_addr, remote_port, state).
        local_port is None when the local endpoint has no usable port.
    """
    parts = field.split()
    if not parts:
        return '', None, None, None, None

    state = None
    if len(parts) > 1:
        last = parts[-1]
        if last.startswith('(') and last.endswith(')'):
            state = last[1:-1]

    address = parts[0]
    remote_addr: Optional[str] = None
    remote_port: Optional[int] = None

    if '->' in address:
        address, _, remote = address.partition('->')
        host, colon, port_str = remote.rpartition(':')
        port = parse_uint(port_str) if colon else None
        if port is not None:
            remote_addr = host
            remote_port = port

    host, colon, port_str = address.rpartition(':')
    if not colon:
        return address, None, remote_addr, remote_port, state

    return host, parse_uint(port_str), remote_addr, remote_port, state


def parse_lsof_output(output: str) -> list[ConnectionInfo]:
    """Parse ``lsof -i -P -n`` output into deduplicated connections.

    The first line is the column header. Rows sharing the same
    (pid, local port, transport, remote address, remote port) are one
    logical connection; the first row seen wins.

    Args:
        output: Raw lsof stdout

    Returns:
        Connections in first-occurrence order
    """
    connections: list[ConnectionInfo] = []
    seen: set[tuple] = set()

    for line in output.splitlines()[1:]:
        columns = line.split()
        if len(columns) < LSOF_MIN_COLUMNS:
            if columns:
                logger.debug(f"lsof: too few columns: {line!r}")
            continue

        pid = parse_int(columns[1])
        if pid is None:
            logger.debug(f"lsof: bad pid: {line!r}")
            continue

        node = columns[LSOF_NODE_COLUMN].upper()
        if node == 'TCP':
            transport = Transport.TCP
        elif node == 'UDP':
            transport = Transport.UDP
        else:
            continue

        name_field = ' '.join(columns[LSOF_NAME_COLUMN:])
        local_addr, local_port, remote_addr, remote_port, state = parse_address_field(name_field)
        if local_port is None:
            logger.debug(f"lsof: no local port: {line!r}")
            continue

        conn = ConnectionInfo(
            process_name=columns[0],
            pid=pid,
            local_address=local_addr,
            local_port=local_port,
            remote_address=remote_addr,
            remote_port=remote_port,
            transport=transport,
            state=state,
        )
        if conn.key in seen:
            continue
        seen.add(conn.key)
        connections.append(conn)

    return connections


# ─── netstat ───────────────────────────────────────────────────────────


def parse_netstat_output(output: str) -> list[InterfaceStats]:
    """Parse ``netstat -ib`` output into one record per interface.

    netstat prints a link-layer row plus one row per address family for
    each interface; rows with the same name are summed.

    Args:
        output: Raw netstat stdout

    Returns:
        Per-interface cumulative counters (unordered)
    """
    stats: dict[str, InterfaceStats] = {}

    for line in output.splitlines()[1:]:
        columns = line.split()
        if len(columns) < NETSTAT_MIN_COLUMNS:
            if columns:
                logger.debug(f"netstat: too few columns: {line!r}")
            continue

        packets_in = parse_uint(columns[NETSTAT_PACKETS_IN])
        bytes_in = parse_uint(columns[NETSTAT_BYTES_IN])
        packets_out = parse_uint(columns[NETSTAT_PACKETS_OUT])
        bytes_out = parse_uint(columns[NETSTAT_BYTES_OUT])
        if None in (packets_in, bytes_in, packets_out, bytes_out):
            logger.debug(f"netstat: bad counters: {line!r}")
            continue

        row = InterfaceStats(
            name=columns[0],
            bytes_in=bytes_in,
            bytes_out=bytes_out,
            packets_in=packets_in,
            packets_out=packets_out,
        )
        existing = stats.get(row.name)
        stats[row.name] = existing.merge(row) if existing else row

    return list(stats.values())
