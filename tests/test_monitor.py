import threading
import unittest

from netwatch.models import InterfaceRates, InterfaceStats
from netwatch.monitor import InterfaceMonitor, RateTracker, TrafficMonitor
from netwatch.runner import ExecutionFailed

NETSTAT_HEADER = "Name Mtu Network Address Ipkts Ierrs Ibytes Opkts Oerrs Obytes Coll"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRunner:
    """Returns canned output per tool; an Exception value is raised instead."""

    def __init__(self, outputs: dict):
        self.outputs = outputs
        self.calls: list[str] = []

    def run(self, tool: str) -> str:
        self.calls.append(tool)
        value = self.outputs[tool]
        if isinstance(value, Exception):
            raise value
        if isinstance(value, list):
            value = value.pop(0)
            if isinstance(value, Exception):
                raise value
        return value


def iface(name: str, bytes_in: int, bytes_out: int = 0) -> InterfaceStats:
    return InterfaceStats(name=name, bytes_in=bytes_in, bytes_out=bytes_out)


def netstat_row(name: str, bytes_in: int, bytes_out: int) -> str:
    return f"{name} 1500 <Link#4> aa:bb:cc:dd:ee:ff 1 0 {bytes_in} 1 0 {bytes_out} 0"


class TestRateTracker(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.tracker = RateTracker(clock=self.clock)

    def test_first_sample_is_zero_and_stored(self):
        rates = self.tracker.sample_rates([iface("en0", 5000, 7000)])
        self.assertEqual(rates, InterfaceRates.zero())
        self.assertEqual(set(self.tracker.previous_stats), {"en0"})
        self.assertEqual(self.tracker.previous_timestamp, 1000.0)

    def test_rate_is_delta_over_elapsed(self):
        self.tracker.sample_rates([iface("en0", 1000, 500)])
        self.clock.advance(2.0)
        rates = self.tracker.sample_rates([iface("en0", 3001, 1500)])
        self.assertEqual(rates.bytes_in, 1000)  # 2001 / 2 truncated
        self.assertEqual(rates.bytes_out, 500)

    def test_counter_reset_uses_current_value(self):
        self.tracker.sample_rates([iface("en0", 10_000, 10_000)])
        self.clock.advance(1.0)
        rates = self.tracker.sample_rates([iface("en0", 300, 10_400)])
        self.assertEqual(rates.bytes_in, 300)
        self.assertEqual(rates.bytes_out, 400)

    def test_loopback_excluded(self):
        self.tracker.sample_rates([iface("lo0", 0, 0), iface("en0", 0, 0)])
        self.clock.advance(1.0)
        rates = self.tracker.sample_rates([iface("lo0", 1_000_000, 1_000_000), iface("en0", 10, 20)])
        self.assertEqual(rates, InterfaceRates(bytes_in=10, bytes_out=20))

    def test_custom_loopback_prefix(self):
        tracker = RateTracker(loopback_prefix="loop", clock=self.clock)
        tracker.sample_rates([iface("lo0", 0), iface("loop1", 0)])
        self.clock.advance(1.0)
        rates = tracker.sample_rates([iface("lo0", 50), iface("loop1", 70)])
        self.assertEqual(rates.bytes_in, 50)

    def test_sums_across_interfaces(self):
        self.tracker.sample_rates([iface("en0", 0), iface("en1", 0)])
        self.clock.advance(4.0)
        rates = self.tracker.sample_rates([iface("en0", 400), iface("en1", 802)])
        self.assertEqual(rates.bytes_in, 100 + 200)

    def test_added_and_removed_interfaces_contribute_nothing(self):
        self.tracker.sample_rates([iface("en0", 0), iface("utun3", 0)])
        self.clock.advance(1.0)
        rates = self.tracker.sample_rates([iface("en0", 10), iface("bridge0", 99_999)])
        self.assertEqual(rates.bytes_in, 10)
        self.assertEqual(set(self.tracker.previous_stats), {"en0", "bridge0"})

    def test_non_positive_elapsed_is_zero_and_replaces_state(self):
        self.tracker.sample_rates([iface("en0", 0)])
        rates = self.tracker.sample_rates([iface("en0", 500)])
        self.assertEqual(rates, InterfaceRates.zero())
        self.clock.advance(1.0)
        rates = self.tracker.sample_rates([iface("en0", 600)])
        self.assertEqual(rates.bytes_in, 100)

    def test_clock_going_backwards(self):
        self.tracker.sample_rates([iface("en0", 0)])
        self.clock.advance(-5.0)
        self.assertEqual(self.tracker.sample_rates([iface("en0", 500)]), InterfaceRates.zero())
        self.assertEqual(self.tracker.previous_timestamp, 995.0)

    def test_state_replaced_even_on_error(self):
        class BrokenStats:
            name = "en0"
            bytes_out = 0

            @property
            def bytes_in(self):
                raise RuntimeError("boom")

        self.tracker.sample_rates([iface("en0", 0)])
        self.clock.advance(1.0)
        with self.assertRaises(RuntimeError):
            self.tracker.sample_rates([BrokenStats()])
        self.assertEqual(self.tracker.previous_timestamp, 1001.0)
        self.assertIsInstance(self.tracker.previous_stats["en0"], BrokenStats)

    def test_concurrent_calls_are_serialized(self):
        tracker = RateTracker()
        errors = []

        def worker():
            try:
                for i in range(200):
                    tracker.sample_rates([iface("en0", i)])
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        self.assertIsNotNone(tracker.previous_timestamp)


class TestTrafficMonitor(unittest.TestCase):
    def test_snapshot(self):
        runner = FakeRunner({"nettop": "Safari.1234, 1048576, 524288\nSlack.5678, 102400, 51200"})
        snap = TrafficMonitor(runner).snapshot()
        self.assertEqual(runner.calls, ["nettop"])
        self.assertEqual(snap.processes[0].process_name, "Safari")
        self.assertEqual(snap.total_bytes_in, 1_150_976)

    def test_connections(self):
        row = "Safari 1234 user 10u IPv4 0x1 0t0 TCP 127.0.0.1:8080->10.0.0.1:443 (ESTABLISHED)"
        runner = FakeRunner({"lsof": "\n".join(["COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME", row, row])})
        conns = TrafficMonitor(runner).connections()
        self.assertEqual(runner.calls, ["lsof"])
        self.assertEqual(len(conns), 1)
        self.assertEqual(conns[0].remote_port, 443)

    def test_execution_failure_propagates(self):
        runner = FakeRunner({
            "nettop": ExecutionFailed("nettop", "not found"),
            "lsof": ExecutionFailed("lsof", "permission denied"),
        })
        monitor = TrafficMonitor(runner)
        with self.assertRaises(ExecutionFailed):
            monitor.snapshot()
        with self.assertRaises(ExecutionFailed) as ctx:
            monitor.connections()
        self.assertIn("permission denied", str(ctx.exception))


class TestInterfaceMonitor(unittest.TestCase):
    def test_sample_rates(self):
        clock = FakeClock()
        runner = FakeRunner({"netstat": [
            "\n".join([NETSTAT_HEADER, netstat_row("en0", 1000, 100), netstat_row("lo0", 0, 0)]),
            "\n".join([NETSTAT_HEADER, netstat_row("en0", 3000, 300), netstat_row("lo0", 9999, 9999)]),
        ]})
        monitor = InterfaceMonitor(runner, RateTracker(clock=clock))

        self.assertEqual(monitor.sample_rates(), InterfaceRates.zero())
        clock.advance(2.0)
        self.assertEqual(monitor.sample_rates(), InterfaceRates(bytes_in=1000, bytes_out=100))

    def test_failure_means_no_interfaces(self):
        clock = FakeClock()
        runner = FakeRunner({"netstat": [
            "\n".join([NETSTAT_HEADER, netstat_row("en0", 1000, 100)]),
            ExecutionFailed("netstat", "not found"),
            "\n".join([NETSTAT_HEADER, netstat_row("en0", 5000, 500)]),
        ]})
        tracker = RateTracker(clock=clock)
        monitor = InterfaceMonitor(runner, tracker)

        monitor.sample_rates()
        clock.advance(1.0)
        self.assertEqual(monitor.sample_rates(), InterfaceRates.zero())
        self.assertEqual(tracker.previous_stats, {})
        clock.advance(1.0)
        # en0 was not seen in the failed cycle, so it contributes nothing yet
        self.assertEqual(monitor.sample_rates(), InterfaceRates.zero())

    def test_overlapping_samples_commit_in_read_order(self):
        release = threading.Event()
        blocked = threading.Event()
        lock = threading.Lock()
        in_flight = [0, 0]  # current, max
        outputs = [
            "\n".join([NETSTAT_HEADER, netstat_row("en0", 1000, 0)]),
            "\n".join([NETSTAT_HEADER, netstat_row("en0", 2000, 0)]),
            "\n".join([NETSTAT_HEADER, netstat_row("en0", 3000, 0)]),
        ]

        class SlowRunner:
            def __init__(self):
                self.calls = 0

            def run(self, tool):
                with lock:
                    self.calls += 1
                    call = self.calls
                    output = outputs.pop(0)
                    in_flight[0] += 1
                    in_flight[1] = max(in_flight[1], in_flight[0])
                if call == 2:
                    blocked.set()
                    release.wait(timeout=10)
                with lock:
                    in_flight[0] -= 1
                return output

        ticks = iter(range(1000, 1100))
        tracker = RateTracker(clock=lambda: float(next(ticks)))
        monitor = InterfaceMonitor(SlowRunner(), tracker)
        monitor.sample_rates()

        results = []
        first = threading.Thread(target=lambda: results.append(monitor.sample_rates()))
        first.start()
        self.assertTrue(blocked.wait(timeout=10))
        second = threading.Thread(target=lambda: results.append(monitor.sample_rates()))
        second.start()
        second.join(timeout=0.1)
        release.set()
        first.join(timeout=10)
        second.join(timeout=10)

        self.assertEqual(in_flight[1], 1)
        self.assertEqual(results, [InterfaceRates(bytes_in=1000), InterfaceRates(bytes_in=1000)])
        self.assertEqual(tracker.previous_stats["en0"].bytes_in, 3000)

    def test_read_interface_stats(self):
        runner = FakeRunner({"netstat": "\n".join([
            NETSTAT_HEADER, netstat_row("en0", 100, 1), netstat_row("en0", 200, 2),
        ])})
        stats = InterfaceMonitor(runner).read_interface_stats()
        self.assertEqual(len(stats), 1)
        self.assertEqual(stats[0].bytes_in, 300)


if __name__ == '__main__':
    unittest.main()
