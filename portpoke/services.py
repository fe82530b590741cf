from __future__ import annotations

import re
import struct
from types import MappingProxyType
from typing import Mapping, NamedTuple, Optional

from .models import ServiceGuess

# Well-known port -> service name.
PORT_SERVICES: Mapping[int, str] = MappingProxyType({
    21: "FTP",
    22: "SSH",
    23: "Telnet",
    25: "SMTP",
    53: "DNS",
    80: "HTTP",
    110: "POP3",
    143: "IMAP",
    443: "HTTPS",
    465: "SMTPS",
    993: "IMAPS",
    995: "POP3S",
    1723: "PPTP",
    3306: "MySQL",
    3389: "RDP",
    5432: "PostgreSQL",
    5900: "VNC",
    5901: "VNC",
    6379: "Redis",
    8080: "HTTP",
    8443: "HTTPS",
})

HTTP_HEAD = "HEAD / HTTP/1.1\r\nHost: {host}\r\nConnection: close\r\n\r\n"

DNS_QUERY_ID = b"\x12\x34"

# length prefix, header (id, RD flag, one question), root NS query
DNS_QUERY = b"\x00\x11" + DNS_QUERY_ID + b"\x01\x00\x00\x01\x00\x00\x00\x00\x00\x00" + b"\x00\x00\x02\x00\x01"

PPTP_MAGIC = b"\x1a\x2b\x3c\x4d"

# Start-Control-Connection-Request, 156 bytes
PPTP_START = struct.pack(
    ">HHIHHHHIIHH64s64s",
    156, 1, 0x1a2b3c4d, 1, 0, 0x0100, 0, 1, 1, 0, 0, b"", b"",
)

# Payloads for protocols where the server waits for the client to talk first.
# "{host}" is substituted with the target address.
PORT_PROBES: Mapping[int, bytes] = MappingProxyType({
    80: HTTP_HEAD.encode(),
    443: HTTP_HEAD.encode(),
    8080: HTTP_HEAD.encode(),
    8443: HTTP_HEAD.encode(),
    53: DNS_QUERY,
    6379: b"PING\r\n",
    # SSLRequest
    5432: b"\x00\x00\x00\x08\x04\xd2\x16\x2f",
    # X.224 connection request
    3389: b"\x03\x00\x00\x13\x0e\xe0\x00\x00\x00\x00\x00\x01\x00\x08\x00\x03\x00\x00\x00",
    1723: PPTP_START,
})

HTTPS_PORTS = frozenset(p for p, name in PORT_SERVICES.items() if name == "HTTPS")


class ServiceSignature(NamedTuple):
    name: str
    pattern: re.Pattern[str]
    version: Optional[re.Pattern[str]] = None


def _rx(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE | re.MULTILINE)


_DOTTED = _rx(r"(\d+(?:\.\d+)+)")

# Ordered: first match wins.
SIGNATURES = (
    ServiceSignature("SSH", _rx(r"\ASSH-\d+\.\d+-"), _rx(r"\ASSH-\d+\.\d+-(\S+)")),
    ServiceSignature("FTP", _rx(r"\A220[ -][^\r\n]*FTP"), _DOTTED),
    ServiceSignature("SMTP", _rx(r"\A220[ -][^\r\n]*SMTP"), _DOTTED),
    ServiceSignature("POP3", _rx(r"\A\+OK[^\r\n]*POP3?"), _DOTTED),
    ServiceSignature("IMAP", _rx(r"\A\* OK[^\r\n]*IMAP"), _rx(r"(IMAP4[\w.-]*)")),
    ServiceSignature("VNC", _rx(r"\ARFB \d{3}\.\d{3}"), _rx(r"\ARFB (\d{3}\.\d{3})")),
    ServiceSignature("Redis", _rx(r"\A(?:\+PONG|-NOAUTH|-DENIED)")),
    ServiceSignature("nginx", _rx(r"\AHTTP/\d(?:\.\d)?(?=[\s\S]*^server:[ \t]*nginx)"), _rx(r"nginx/([\d.]+)")),
    ServiceSignature("Apache HTTP", _rx(r"\AHTTP/\d(?:\.\d)?(?=[\s\S]*^server:[ \t]*apache)"), _rx(r"apache/([\d.]+)")),
    ServiceSignature("HTTP", _rx(r"\AHTTP/\d(?:\.\d)?"), _rx(r"^server:[ \t]*([^\r\n]+?)[ \t]*\r?$")),
)


def _detect_mysql(data: bytes) -> Optional[ServiceGuess]:
    """
    MySQL handshake: [payload length(3)][sequence id(1)][protocol(1)][server_version null-terminated]...
    """
    if len(data) < 6 or data[3] != 0x00 or data[4] != 0x0a:
        return None
    end = data.find(b"\x00", 5)
    if end == -1:
        return None
    version = data[5:end].decode("ascii", errors="ignore").strip()
    return ServiceGuess("MySQL", version or None)


def _detect_pptp(data: bytes) -> Optional[ServiceGuess]:
    """
    Start-Control-Connection-Reply: [length(2)][control message(2)][magic cookie(4)][type 2(2)]...
    """
    if len(data) < 10 or data[4:8] != PPTP_MAGIC or data[8:10] != b"\x00\x02":
        return None
    return ServiceGuess("PPTP")


def _detect_dns(port: int, data: bytes) -> Optional[ServiceGuess]:
    # TCP answer: [length(2)][our query id(2)][flags with QR set]...
    if port != 53 or len(data) < 6 or data[2:4] != DNS_QUERY_ID or not data[4] & 0x80:
        return None
    return ServiceGuess("DNS")


def _looks_like_tls(data: bytes) -> bool:
    # record header: content type (alert 0x15 / handshake 0x16), major version 3
    return len(data) >= 3 and data[0] in (0x15, 0x16) and data[1] == 0x03 and data[2] <= 0x04


def guess_service(port: int, data: bytes) -> Optional[ServiceGuess]:
    """
    Best-effort label for whatever answered on `port`. Returns None when no
    bytes were read or nothing matched; the port number alone is only used to
    disambiguate an answer, never as a guess on its own.
    """
    if not data:
        return None

    text = data.decode("utf-8", errors="ignore")
    for sig in SIGNATURES:
        if not sig.pattern.search(text):
            continue
        version = None
        if sig.version is not None:
            m = sig.version.search(text)
            if m:
                version = m.group(1)
        name = sig.name
        if name == "HTTP" and port in HTTPS_PORTS:
            name = "HTTPS"
        return ServiceGuess(name, version)

    binary = _detect_pptp(data) or _detect_dns(port, data)
    if binary:
        return binary

    mysql = _detect_mysql(data)
    if mysql:
        return mysql

    # TPKT header answering the X.224 request
    if data[:2] == b"\x03\x00" and len(data) >= 4:
        return ServiceGuess("RDP")

    # single-byte answer to SSLRequest
    if port == 5432 and data in (b"S", b"N"):
        return ServiceGuess("PostgreSQL")

    if _looks_like_tls(data):
        return ServiceGuess("HTTPS" if port in HTTPS_PORTS else "TLS")

    return None


def probe_payload(port: int, host: str) -> Optional[bytes]:
    payload = PORT_PROBES.get(port)
    if payload is None:
        return None
    if ":" in host:
        host = f"[{host}]"
    return payload.replace(b"{host}", host.encode())
