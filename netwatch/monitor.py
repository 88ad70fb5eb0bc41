"""Traffic and interface monitors for netwatch."""

import logging
import time
from threading import Lock
from typing import Callable, Iterable, Optional

from netwatch.models import ConnectionInfo, InterfaceRates, InterfaceStats, TrafficSnapshot
from netwatch.parser import parse_lsof_output, parse_netstat_output, parse_nettop_output
from netwatch.runner import LSOF, NETSTAT, NETTOP, CommandRunner, ExecutionFailed

logger = logging.getLogger(__name__)


class RateTracker:
    """Turns cumulative interface counters into per-second rates.

    Holds the previous sample and its timestamp. Calls are serialized by an
    internal lock since each one reads and then replaces that state.
    """

    def __init__(
        self,
        loopback_prefix: str = "lo",
        clock: Callable[[], float] = time.monotonic
    ):
        self.loopback_prefix = loopback_prefix
        self._clock = clock
        self._lock = Lock()
        self._previous_stats: dict[str, InterfaceStats] = {}
        self._previous_timestamp: Optional[float] = None

    @property
    def previous_stats(self) -> dict[str, InterfaceStats]:
        with self._lock:
            return dict(self._previous_stats)

    @property
    def previous_timestamp(self) -> Optional[float]:
        with self._lock:
            return self._previous_timestamp

    def sample_rates(self, current_stats: Iterable[InterfaceStats]) -> InterfaceRates:
        """Compute aggregate bytes/second since the previous sample.

        The first sample, and any sample taken with non-positive elapsed
        time, yields a zero rate. A counter lower than its previous value is
        treated as reset: its whole current value counts as the delta.

        Args:
            current_stats: Latest per-interface cumulative counters

        Returns:
            Aggregate rate over non-loopback interfaces seen in both samples
        """
        current = list(current_stats)

        with self._lock:
            now = self._clock()
            try:
                if self._previous_timestamp is None:
                    return InterfaceRates.zero()

                elapsed = now - self._previous_timestamp
                if elapsed <= 0:
                    logger.debug(f"Non-positive sample interval ({elapsed}s), skipping")
                    return InterfaceRates.zero()

                rate_in = 0
                rate_out = 0
                for stat in current:
                    if stat.name.startswith(self.loopback_prefix):
                        continue

                    prev = self._previous_stats.get(stat.name)
                    if prev is None:
                        continue

                    delta_in = _counter_delta(stat.bytes_in, prev.bytes_in)
                    delta_out = _counter_delta(stat.bytes_out, prev.bytes_out)
                    rate_in += int(delta_in / elapsed)
                    rate_out += int(delta_out / elapsed)

                return InterfaceRates(bytes_in=rate_in, bytes_out=rate_out)
            finally:
                self._previous_stats = {s.name: s for s in current}
                self._previous_timestamp = now


def _counter_delta(current: int, previous: int) -> int:
    if current >= previous:
        return current - previous
    # Counter went backwards: assume it reset and everything is new.
    return current


class TrafficMonitor:
    """Per-process traffic and socket listings via nettop and lsof."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def snapshot(self) -> TrafficSnapshot:
        """Take a per-process traffic snapshot.

        Raises:
            ExecutionFailed: nettop could not be run
        """
        output = self.runner.run(NETTOP)
        snapshot = parse_nettop_output(output)
        logger.debug(f"Snapshot: {len(snapshot.processes)} processes")
        return snapshot

    def connections(self) -> list[ConnectionInfo]:
        """List current connections, deduplicated.

        Raises:
            ExecutionFailed: lsof could not be run
        """
        output = self.runner.run(LSOF)
        connections = parse_lsof_output(output)
        logger.debug(f"Connections: {len(connections)}")
        return connections


class InterfaceMonitor:
    """Aggregate interface throughput from netstat counters.

    sample_rates() holds a per-instance lock from the netstat read to the
    tracker update, so overlapping calls commit in the order they read.
    """

    def __init__(self, runner: CommandRunner, tracker: Optional[RateTracker] = None):
        self.runner = runner
        self.tracker = tracker or RateTracker()
        self._sample_lock = Lock()

    def read_interface_stats(self) -> list[InterfaceStats]:
        """Read cumulative counters; a failed netstat run yields no interfaces."""
        try:
            output = self.runner.run(NETSTAT)
        except ExecutionFailed as e:
            logger.warning(f"Interface sample skipped: {e}")
            return []
        return parse_netstat_output(output)

    def sample_rates(self) -> InterfaceRates:
        """Sample current aggregate interface rates (bytes/second)."""
        with self._sample_lock:
            return self.tracker.sample_rates(self.read_interface_stats())
