"""Pydantic data models for netwatch."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProcessTraffic(BaseModel):
    """Bandwidth sample for a single process."""

    model_config = ConfigDict(frozen=True)

    process_name: str
    pid: int
    bytes_in: int = Field(default=0, ge=0)
    bytes_out: int = Field(default=0, ge=0)

    @property
    def id(self) -> int:
        return self.pid

    @property
    def total_bytes(self) -> int:
        return self.bytes_in + self.bytes_out


class TrafficSnapshot(BaseModel):
    """Point-in-time per-process traffic, sorted by total bytes."""

    model_config = ConfigDict(frozen=True)

    processes: list[ProcessTraffic] = Field(default_factory=list)
    total_bytes_in: int = 0
    total_bytes_out: int = 0
    connection_count: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def total_bytes(self) -> int:
        return self.total_bytes_in + self.total_bytes_out

    @classmethod
    def empty(cls) -> "TrafficSnapshot":
        """Snapshot with no processes and all-zero totals."""
        return cls()


class Transport(str, Enum):
    """Socket transport protocol."""

    TCP = "tcp"
    UDP = "udp"


class ConnectionInfo(BaseModel):
    """One socket from the active connections listing."""

    model_config = ConfigDict(frozen=True)

    process_name: str
    pid: int
    local_address: str
    local_port: int
    remote_address: Optional[str] = None
    remote_port: Optional[int] = None
    transport: Transport
    state: Optional[str] = None

    @property
    def key(self) -> tuple[int, int, str, str, int]:
        """Identity used for deduplication."""
        return (
            self.pid,
            self.local_port,
            self.transport.value,
            self.remote_address or "",
            self.remote_port or 0,
        )

    @property
    def id(self) -> str:
        return "-".join(str(part) for part in self.key)

    @property
    def is_local(self) -> bool:
        """Whether the local address is a loopback literal."""
        return self.local_address.startswith("127.") or self.local_address == "::1"

    @property
    def is_established(self) -> bool:
        return (
            self.remote_address is not None
            and self.state is not None
            and self.state.upper() == "ESTABLISHED"
        )

    @property
    def is_listening(self) -> bool:
        return self.state is not None and self.state.upper() == "LISTEN"


class InterfaceStats(BaseModel):
    """Cumulative counters since boot for one network interface."""

    model_config = ConfigDict(frozen=True)

    name: str
    bytes_in: int = Field(default=0, ge=0)
    bytes_out: int = Field(default=0, ge=0)
    packets_in: int = Field(default=0, ge=0)
    packets_out: int = Field(default=0, ge=0)

    def merge(self, other: "InterfaceStats") -> "InterfaceStats":
        """Sum counters field-wise, keeping this record's name."""
        return InterfaceStats(
            name=self.name,
            bytes_in=self.bytes_in + other.bytes_in,
            bytes_out=self.bytes_out + other.bytes_out,
            packets_in=self.packets_in + other.packets_in,
            packets_out=self.packets_out + other.packets_out,
        )


class InterfaceRates(BaseModel):
    """Aggregate interface throughput in bytes per second."""

    model_config = ConfigDict(frozen=True)

    bytes_in: int = 0
    bytes_out: int = 0

    @property
    def total(self) -> int:
        return self.bytes_in + self.bytes_out

    @classmethod
    def zero(cls) -> "InterfaceRates":
        return cls()
