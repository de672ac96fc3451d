# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Address-family aware target resolution.

The family is chosen once per probe: the preferred family is tried first, then the
other one when fallback is allowed. Every later socket the probe opens is pinned to
the family of the address returned here.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import time
from dataclasses import dataclass

from ..errors import ResolutionError

logger = logging.getLogger(__name__)

_FAMILIES = {"ip4": socket.AF_INET, "ip6": socket.AF_INET6}
_OTHER = {"ip4": "ip6", "ip6": "ip4"}


@dataclass(frozen=True)
class ResolvedTarget:
    host: str
    address: str
    family: int
    lookup_seconds: float

    @property
    def ip_version(self) -> int:
        return 6 if self.family == socket.AF_INET6 else 4

    def dial_network(self, transport: str = "tcp") -> str:
        """Network name pinned to the resolved family, e.g. ``tcp4`` or ``udp6``."""
        return f"{transport}{self.ip_version}"


def split_host_port(target: str, default_port: int | None = None) -> tuple[str, int | None]:
    """
    Split ``host:port``, ``[v6]:port``, bare hosts and bare IPv6 literals.

    Returns ``default_port`` when the target carries no port.
    """
    target = target.strip()
    if target.startswith("["):
        end = target.find("]")
        if end == -1:
            raise ValueError(f"missing ']' in address {target!r}")
        host = target[1:end]
        rest = target[end + 1 :]
        if not rest:
            return host, default_port
        if not rest.startswith(":"):
            raise ValueError(f"unexpected text after address in {target!r}")
        return host, int(rest[1:])
    if target.count(":") == 1:
        host, _, port = target.partition(":")
        return host, int(port)
    return target, default_port


def _lookup(host: str, family: int) -> str:
    try:
        literal = ipaddress.ip_address(host)
    except ValueError:
        literal = None
    if literal is not None:
        if (literal.version == 6) != (family == socket.AF_INET6):
            raise ResolutionError(f"address {host} is not in the requested family")
        return str(literal)
    infos = socket.getaddrinfo(host, None, family=family, type=socket.SOCK_STREAM)
    if not infos:
        raise ResolutionError(f"no addresses for {host}")
    return str(infos[0][4][0])


def resolve_target(host: str, preferred: str = "ip6", *, fallback: bool = True) -> ResolvedTarget:
    """Resolve ``host`` preferring ``preferred`` (``ip4``/``ip6``), raising ResolutionError on failure."""
    if preferred not in _FAMILIES:
        preferred = "ip6"
    order = [preferred, _OTHER[preferred]] if fallback else [preferred]

    start = time.perf_counter()
    last_error: Exception | None = None
    for name in order:
        family = _FAMILIES[name]
        try:
            address = _lookup(host, family)
        except OSError as exc:
            logger.debug("Resolving %s as %s failed: %s", host, name, exc)
            last_error = exc
            continue
        elapsed = time.perf_counter() - start
        logger.debug("Resolved %s to %s (%s) in %.6fs", host, address, name, elapsed)
        return ResolvedTarget(host=host, address=address, family=family, lookup_seconds=elapsed)

    error = ResolutionError(f"error resolving address {host!r}: {last_error}")
    error.lookup_seconds = time.perf_counter() - start
    raise error


__all__ = ["ResolvedTarget", "resolve_target", "split_host_port"]
