from __future__ import annotations

import errno
import logging
import socket
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import asdict
from functools import partial
from typing import Callable, Iterable, Iterator, Optional, Set

from .banner import identify_service
from .collector import ResultCollector
from .errors import ConfigError, ResolutionFailure, ScanCancelled
from .logger import get_logger, log_event
from .models import (
    ErrorReason,
    Report,
    ScanConfig,
    ScanOutcome,
    ScanTarget,
    closed_outcome,
    error_outcome,
    open_outcome,
)
from .targets import address_family, resolve_target

# Share of the per-port timeout the banner read may use. It is carved out of
# the same budget as connect, so a probe never runs longer than the timeout.
BANNER_SHARE = 0.5

# How often a blocked pool wakes up to notice cancel().
CANCEL_POLL_S = 0.05

_UNREACHABLE = {errno.ENETUNREACH, errno.EHOSTUNREACH}

Prober = Callable[[int], ScanOutcome]


def probe(target: ScanTarget, timeout_s: float) -> ScanOutcome:
    start = time.perf_counter()
    sock: Optional[socket.socket] = None
    try:
        # names are resolved here; run_scan hands over a literal already
        address = resolve_target(target.host)
        sock = socket.socket(address_family(address), socket.SOCK_STREAM)
        sock.settimeout(timeout_s)
        sock.connect((address, target.port))
        connected = time.perf_counter() - start

        budget = max(min(timeout_s - connected, timeout_s * BANNER_SHARE), 0.0)
        banner, service = identify_service(sock, target.host, target.port, budget)
        return open_outcome(
            target.port,
            round(time.perf_counter() - start, 4),
            banner=banner,
            service=service,
        )
    except socket.timeout:
        return error_outcome(
            target.port,
            round(time.perf_counter() - start, 4),
            ErrorReason.TIMEOUT,
            "connect timed out",
        )
    except ConnectionRefusedError:
        return closed_outcome(target.port, round(time.perf_counter() - start, 4))
    except ResolutionFailure as e:
        return error_outcome(target.port, round(time.perf_counter() - start, 4), ErrorReason.OS_ERROR, str(e))
    except OSError as e:
        reason = ErrorReason.UNREACHABLE if e.errno in _UNREACHABLE else ErrorReason.OS_ERROR
        return error_outcome(target.port, round(time.perf_counter() - start, 4), reason, str(e))
    finally:
        if sock:
            try:
                sock.close()
            except OSError:
                pass


def probe_port(host: str, timeout_s: float, port: int) -> ScanOutcome:
    return probe(ScanTarget(host, port), timeout_s)


def default_prober(host: str, timeout_s: float) -> Prober:
    return partial(probe_port, host, timeout_s)


class WorkerPool:
    """
    Bounded-futures scanner: at most `concurrency` probes are submitted at any
    time, and each completion admits the next port. Outcomes are yielded in
    completion order.
    """

    def __init__(self, concurrency: int, prober: Prober,
                 cancel_event: Optional[threading.Event] = None):
        if concurrency < 1:
            raise ConfigError("concurrency must be >= 1")
        self.concurrency = concurrency
        self.prober = prober
        self._cancel = cancel_event if cancel_event is not None else threading.Event()

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _call(self, port: int) -> ScanOutcome:
        try:
            return self.prober(port)
        except Exception as e:
            # a broken prober costs one port, not the scan
            return error_outcome(port, 0.0, ErrorReason.OS_ERROR, f"{type(e).__name__}: {e}")

    def run(self, ports: Iterable[int]) -> Iterator[ScanOutcome]:
        workers = self.concurrency
        if hasattr(ports, "__len__"):
            workers = max(1, min(workers, len(ports)))  # type: ignore[arg-type]

        jobs = iter(ports)
        pending: Set[Future] = set()
        exhausted = False
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="portpoke-probe")

        def submit_next() -> bool:
            nonlocal exhausted
            if self.cancelled or exhausted:
                return False
            try:
                p = next(jobs)
            except StopIteration:
                exhausted = True
                return False
            pending.add(pool.submit(self._call, p))
            return True

        try:
            # Prime the queue
            while len(pending) < self.concurrency and submit_next():
                pass

            while pending:
                done, pending = wait(pending, timeout=CANCEL_POLL_S, return_when=FIRST_COMPLETED)
                for fut in done:
                    if self.cancelled:
                        break
                    yield fut.result()

                if self.cancelled:
                    raise ScanCancelled(f"scan cancelled with {len(pending)} probes in flight")

                # Refill queue
                while len(pending) < self.concurrency and submit_next():
                    pass

            if self.cancelled and not exhausted:
                raise ScanCancelled("scan cancelled before every port was admitted")
        finally:
            # in-flight probes run out their timeout and close their own sockets;
            # whatever they return is dropped
            for fut in pending:
                fut.cancel()
            pool.shutdown(wait=True)


def run_scan(
    config: ScanConfig,
    cancel_event: Optional[threading.Event] = None,
    prober_factory: Callable[[str, float], Prober] = default_prober,
) -> Report:
    """
    Resolve the target, push every port of the range through the pool and
    return the ordered report. Configuration problems surface before the
    first probe; per-port problems only show up in the summary.
    """
    logger = get_logger()
    address = resolve_target(config.target)
    total = len(config.port_range)

    log_event(logger, "scan_started", {
        "target": config.target,
        "address": address,
        "ports": str(config.port_range),
        "total": total,
        "concurrency": config.concurrency,
        "timeout_s": config.timeout_s,
    })

    pool = WorkerPool(config.concurrency, prober_factory(address, config.timeout_s), cancel_event)
    collector = ResultCollector()
    scanned = 0
    open_count = 0
    start_all = time.perf_counter()

    for outcome in pool.run(config.port_range):
        collector.add(outcome)
        scanned += 1
        if outcome.is_open:
            open_count += 1

        log_event(logger, f"port_{outcome.state.value}", {
            "port": outcome.port,
            "elapsed_s": outcome.elapsed_s,
            "reason": outcome.reason,
            "banner": outcome.banner,
        }, level=logging.DEBUG)

        if config.progress_every > 0 and (scanned % config.progress_every == 0 or scanned == total):
            elapsed = time.perf_counter() - start_all
            rate = scanned / elapsed if elapsed > 0 else 0.0
            log_event(logger, "progress", {
                "scanned": scanned,
                "total": total,
                "open": open_count,
                "rate": round(rate),
            })

    elapsed_all = time.perf_counter() - start_all
    report = collector.report(
        target=config.target,
        address=address,
        port_range=config.port_range,
        elapsed_s=elapsed_all,
    )
    log_event(logger, "scan_finished", {**asdict(report.summary), "elapsed_s": report.elapsed_s})
    return report
