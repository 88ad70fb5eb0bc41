"""netwatch - per-process network traffic, connections and interface throughput."""

__version__ = "1.0.0"
