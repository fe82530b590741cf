from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional

from .models import PortState, Report, ScanOutcome, ScanSummary
from .ports import PortRange


class ResultCollector:
    """
    Accumulates per-port outcomes in whatever order the pool finishes them.

    A port is kept once; if it is seen again the later outcome replaces the
    earlier one. Only open ports make it into the report, but closed and
    errored ones are still counted in the summary.
    """

    def __init__(self) -> None:
        self._outcomes: Dict[int, ScanOutcome] = {}
        self._lock = threading.Lock()

    def add(self, outcome: ScanOutcome) -> None:
        with self._lock:
            self._outcomes[outcome.port] = outcome

    def __len__(self) -> int:
        with self._lock:
            return len(self._outcomes)

    def open_ports(self) -> List[ScanOutcome]:
        with self._lock:
            kept = [o for o in self._outcomes.values() if o.state is PortState.OPEN]
        return sorted(kept, key=lambda o: o.port)

    def summary(self) -> ScanSummary:
        with self._lock:
            outcomes = list(self._outcomes.values())

        open_count = closed = timed_out = errored = 0
        for o in outcomes:
            if o.state is PortState.OPEN:
                open_count += 1
            elif o.state is PortState.CLOSED:
                closed += 1
            elif o.timed_out:
                timed_out += 1
            else:
                errored += 1

        return ScanSummary(
            scanned=len(outcomes),
            open=open_count,
            closed=closed,
            timed_out=timed_out,
            errored=errored,
        )

    def report(
        self,
        target: str = "",
        address: str = "",
        port_range: Optional[PortRange] = None,
        elapsed_s: float = 0.0,
    ) -> Report:
        entries = tuple(self.open_ports())
        if port_range is None:
            # cover whatever was seen; only for callers that collect ad hoc outcomes
            with self._lock:
                seen = sorted(self._outcomes)
            port_range = PortRange(seen[0], seen[-1]) if seen else PortRange(1, 1)
        return Report(
            target=target,
            address=address or target,
            port_range=port_range,
            entries=entries,
            summary=self.summary(),
            elapsed_s=round(elapsed_s, 4),
        )


def collect(outcomes: Iterable[ScanOutcome], **report_fields) -> Report:
    collector = ResultCollector()
    for outcome in outcomes:
        collector.add(outcome)
    return collector.report(**report_fields)
