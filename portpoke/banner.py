from __future__ import annotations

import re
import socket
import time
from typing import Optional, Tuple

from .models import ServiceGuess
from .services import guess_service, probe_payload

BANNER_BYTES = 1024
# Below this there is no point in waiting for a reply.
MIN_READ_S = 0.005

_PRINTABLE = re.compile(r"[^\x09\x0a\x0d\x20-\x7e]")


def _clean_text(s: str, max_len: int = 300) -> str:
    s = _PRINTABLE.sub("", s)
    s = s.strip()
    if len(s) > max_len:
        return s[:max_len] + "..."
    return s


def _try_recv(sock: socket.socket, n: int = BANNER_BYTES, timeout: float = 0.25) -> bytes:
    if timeout < MIN_READ_S:
        return b""
    sock.settimeout(timeout)
    try:
        return sock.recv(n)
    except OSError:
        # timeout, reset by peer: the port is still open, just quiet
        return b""


def banner_text(data: bytes) -> Optional[str]:
    """
    One printable line for the report. For HTTP the Server header says more
    than the status line, so prefer it when present.
    """
    if not data:
        return None
    text = data.decode("utf-8", errors="ignore")
    lines = [ln for ln in (_clean_text(x, 200) for x in text.splitlines()) if ln]
    if not lines:
        return None

    if lines[0].startswith("HTTP/"):
        for line in lines[1:]:
            if line.lower().startswith("server:"):
                return _clean_text(f"Server: {line.split(':', 1)[1].strip()}", 200)
    return lines[0]


def grab_banner(sock: socket.socket, host: str, port: int, budget_s: float) -> bytes:
    """
    Called only after connect() succeeds. Waits for an unprompted banner and,
    if the service stays silent and has a known probe, sends it and reads
    once more. Never takes longer than `budget_s` in total.
    """
    deadline = time.monotonic() + max(budget_s, 0.0)
    payload = probe_payload(port, host)

    # leave half of the budget for the active probe if there is one
    passive = budget_s / 2 if payload else budget_s
    first = _try_recv(sock, timeout=passive)
    if first or not payload:
        return first

    try:
        sock.settimeout(max(deadline - time.monotonic(), MIN_READ_S))
        sock.sendall(payload)
    except OSError:
        return b""
    return _try_recv(sock, timeout=deadline - time.monotonic())


def identify_service(sock: socket.socket, host: str, port: int,
                     budget_s: float) -> Tuple[Optional[str], Optional[ServiceGuess]]:
    """
    Returns (banner, service_guess); both None when nothing was read.
    """
    data = grab_banner(sock, host, port, budget_s)
    if not data:
        return None, None
    return banner_text(data), guess_service(port, data)
