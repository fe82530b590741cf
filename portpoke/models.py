from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .errors import ConfigError
from .ports import PortRange

OUTPUT_FORMATS = ("text", "json", "csv")


class PortState(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
    ERROR = "error"


class ErrorReason(str, enum.Enum):
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    OS_ERROR = "os_error"


@dataclass(frozen=True)
class ServiceGuess:
    name: str
    version: Optional[str] = None


@dataclass(frozen=True)
class ScanTarget:
    host: str
    port: int


@dataclass(frozen=True)
class ScanOutcome:
    port: int
    state: PortState
    elapsed_s: float = 0.0
    banner: Optional[str] = None
    service: Optional[ServiceGuess] = None
    reason: Optional[ErrorReason] = None
    detail: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.state is PortState.OPEN

    @property
    def timed_out(self) -> bool:
        return self.state is PortState.ERROR and self.reason is ErrorReason.TIMEOUT


def open_outcome(port: int, elapsed_s: float, banner: Optional[str] = None,
                 service: Optional[ServiceGuess] = None) -> ScanOutcome:
    return ScanOutcome(port=port, state=PortState.OPEN, elapsed_s=elapsed_s,
                       banner=banner, service=service)


def closed_outcome(port: int, elapsed_s: float) -> ScanOutcome:
    return ScanOutcome(port=port, state=PortState.CLOSED, elapsed_s=elapsed_s)


def error_outcome(port: int, elapsed_s: float, reason: ErrorReason,
                  detail: Optional[str] = None) -> ScanOutcome:
    return ScanOutcome(port=port, state=PortState.ERROR, elapsed_s=elapsed_s,
                       reason=reason, detail=detail)


@dataclass(frozen=True)
class ScanSummary:
    scanned: int = 0
    open: int = 0
    closed: int = 0
    timed_out: int = 0
    errored: int = 0


@dataclass(frozen=True)
class Report:
    """Open ports sorted by port number, plus the counters for the whole scan."""

    target: str
    address: str
    port_range: PortRange
    entries: Tuple[ScanOutcome, ...] = ()
    summary: ScanSummary = field(default_factory=ScanSummary)
    elapsed_s: float = 0.0


@dataclass(frozen=True)
class ScanConfig:
    target: str
    port_range: PortRange
    concurrency: int = 1000
    timeout_s: float = 0.75
    output_format: str = "text"
    output_path: Optional[str] = None
    progress_every: int = 0

    def __post_init__(self) -> None:
        if not self.target or not self.target.strip():
            raise ConfigError("Empty target")
        if self.concurrency < 1:
            raise ConfigError("--threads must be >= 1")
        if self.timeout_s <= 0:
            raise ConfigError("--timeout must be > 0")
        if self.output_format not in OUTPUT_FORMATS:
            raise ConfigError(f"Unsupported format: {self.output_format}")
        if self.progress_every < 0:
            raise ConfigError("--progress-every must be >= 0")
