"""Concurrent sampling cycles and the periodic driver."""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime
from threading import Event, Thread
from typing import Callable, Optional

from pydantic import BaseModel, Field

from netwatch.models import ConnectionInfo, InterfaceRates, TrafficSnapshot
from netwatch.monitor import InterfaceMonitor, TrafficMonitor
from netwatch.runner import ExecutionFailed

logger = logging.getLogger(__name__)


class CycleResult(BaseModel):
    """Everything gathered in one sampling cycle.

    ``snapshot`` or ``connections`` is None when its tool failed this cycle;
    the failure message is in ``errors``.
    """

    snapshot: Optional[TrafficSnapshot] = None
    connections: Optional[list[ConnectionInfo]] = None
    rates: InterfaceRates = Field(default_factory=InterfaceRates.zero)
    errors: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def established_count(self) -> int:
        return sum(1 for c in self.connections or [] if c.is_established)

    @property
    def listening_count(self) -> int:
        return sum(1 for c in self.connections or [] if c.is_listening)


def run_cycle(
    traffic_monitor: TrafficMonitor,
    interface_monitor: InterfaceMonitor,
    executor: Optional[Executor] = None
) -> CycleResult:
    """Run snapshot, connections and rate sampling concurrently.

    All three are joined before returning. A failed tool only blanks its
    own part of the result.

    Args:
        traffic_monitor: Source of snapshot and connections
        interface_monitor: Source of interface rates
        executor: Executor to run on (a private pool is used if omitted)

    Returns:
        CycleResult for this cycle
    """
    if executor is None:
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix='netwatch-cycle') as pool:
            return run_cycle(traffic_monitor, interface_monitor, pool)

    snapshot_future = executor.submit(traffic_monitor.snapshot)
    connections_future = executor.submit(traffic_monitor.connections)
    rates_future = executor.submit(interface_monitor.sample_rates)

    result = CycleResult(rates=rates_future.result())

    try:
        result.snapshot = snapshot_future.result()
    except ExecutionFailed as e:
        logger.warning(str(e))
        result.errors.append(str(e))

    try:
        result.connections = connections_future.result()
    except ExecutionFailed as e:
        logger.warning(str(e))
        result.errors.append(str(e))

    return result


class Sampler:
    """Runs a sampling cycle every ``interval`` seconds until stopped.

    A cycle still in flight when stop() is called is abandoned: its result
    is not delivered and no further cycles start.
    """

    def __init__(
        self,
        traffic_monitor: TrafficMonitor,
        interface_monitor: InterfaceMonitor,
        interval: float,
        on_cycle: Callable[[CycleResult], None]
    ):
        self.traffic_monitor = traffic_monitor
        self.interface_monitor = interface_monitor
        self.interval = interval
        self.on_cycle = on_cycle
        self.shutdown_event = Event()
        self._thread: Optional[Thread] = None

    def start(self) -> Thread:
        """Run the sampling loop in a background thread."""
        self._thread = Thread(
            target=self.run,
            daemon=True,
            name='netwatch-sampler'
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop sampling and wait for the loop thread, if any."""
        self.shutdown_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        """Blocking sampling loop."""
        logger.info(f"Sampler started (interval: {self.interval}s)")

        with ThreadPoolExecutor(max_workers=3, thread_name_prefix='netwatch-cycle') as pool:
            while not self.shutdown_event.is_set():
                try:
                    result = run_cycle(self.traffic_monitor, self.interface_monitor, pool)
                    if self.shutdown_event.is_set():
                        break
                    self.on_cycle(result)
                except Exception as e:
                    logger.error(f"Sampling cycle error: {e}")

                self.shutdown_event.wait(timeout=self.interval)

        logger.info("Sampler stopped")
