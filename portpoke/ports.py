from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .errors import InvalidRange

MIN_PORT = 1
MAX_PORT = 65535


@dataclass(frozen=True)
class PortRange:
    """
    Inclusive TCP port interval.

    Iterating yields ports in ascending order. The sequence is backed by
    range(), so a full 1-65535 sweep is never materialised, and it can be
    iterated again.
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        for name, value in (("start", self.start), ("end", self.end)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidRange(f"{name} port must be an integer, got {value!r}")
            if value < MIN_PORT or value > MAX_PORT:
                raise InvalidRange(f"{name} port {value} outside {MIN_PORT}-{MAX_PORT}")
        if self.start > self.end:
            raise InvalidRange(f"Invalid port range: {self.start}-{self.end}")

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.start, self.end + 1))

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __contains__(self, port: object) -> bool:
        return isinstance(port, int) and self.start <= port <= self.end

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


def enumerate_ports(start: int, end: int) -> PortRange:
    return PortRange(start, end)


def parse_range(spec: str) -> PortRange:
    """
    Parses "80" or "1-1024" into a PortRange.
    """
    spec = spec.strip()
    if not spec:
        raise InvalidRange("Empty port spec")

    start_s, sep, end_s = spec.partition("-")
    try:
        start = int(start_s)
        end = int(end_s) if sep else start
    except ValueError as e:
        raise InvalidRange(f"Invalid port spec: {spec}") from e
    return PortRange(start, end)
