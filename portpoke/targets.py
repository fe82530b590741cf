from __future__ import annotations

import ipaddress
import socket

from .errors import ResolutionFailure


def resolve_target(target: str) -> str:
    """
    Supports:
      - IPv4 / IPv6 literal: "172.20.0.10", "::1"
      - Hostname: "webapp" (first address returned by the resolver)
    """
    target = target.strip()
    if not target:
        raise ResolutionFailure("Empty target")

    # Try IP literal first
    try:
        return str(ipaddress.ip_address(target.strip("[]")))
    except ValueError:
        pass

    # Fallback: hostname
    try:
        infos = socket.getaddrinfo(target, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        raise ResolutionFailure(f"Could not resolve target '{target}': {e}") from e
    if not infos:
        raise ResolutionFailure(f"Could not resolve target '{target}'")

    # prefer IPv4 when the name has both
    infos.sort(key=lambda info: info[0] != socket.AF_INET)
    return str(infos[0][4][0])


def address_family(address: str) -> socket.AddressFamily:
    return socket.AF_INET6 if ipaddress.ip_address(address).version == 6 else socket.AF_INET
