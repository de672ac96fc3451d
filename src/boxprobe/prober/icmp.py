# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""ICMP echo prober."""

from __future__ import annotations

import ipaddress
import logging
import os
import socket
import struct
import threading
from collections.abc import Callable

from ..errors import ErrorCategory, ResolutionError
from ..models.module import ICMPProbe, Module
from ..models.probe import ProbeResult
from ..utils.context import ProbeContext
from .keys import PROBE_DNS_LOOKUP_TIME_SECONDS, PROBE_IP_PROTOCOL
from .resolve import ResolvedTarget, resolve_target

logger = logging.getLogger(__name__)

ICMP4_ECHO_REQUEST = 8
ICMP4_ECHO_REPLY = 0
ICMP6_ECHO_REQUEST = 128
ICMP6_ECHO_REPLY = 129

_HEADER = struct.Struct("!BBHHH")
_READ_SIZE = 1500

SocketFactory = Callable[[int, int, int], socket.socket]


class SequenceCounter:
    """Thread-safe 16-bit echo sequence shared by every ICMP probe of one engine."""

    def __init__(self, start: int = 0):
        self._value = start & 0xFFFF
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._value = (self._value + 1) & 0xFFFF
            return self._value


def checksum(data: bytes) -> int:
    """RFC 1071 internet checksum."""
    if len(data) % 2:
        data += b"\x00"
    total = 0
    for i in range(0, len(data), 2):
        total += (data[i] << 8) + data[i + 1]
        total = (total & 0xFFFF) + (total >> 16)
    return (~total) & 0xFFFF


def build_echo(icmp_type: int, ident: int, seq: int, payload: bytes, *, with_checksum: bool) -> bytes:
    """
    Serialize an echo message.

    IPv6 messages go out with a zero checksum; the kernel fills it in from the
    pseudo-header it owns.
    """
    packet = _HEADER.pack(icmp_type, 0, 0, ident & 0xFFFF, seq & 0xFFFF) + payload
    if not with_checksum:
        return packet
    return packet[:2] + struct.pack("!H", checksum(packet)) + packet[4:]


def expected_reply(request: bytes, reply_type: int, *, ipv6: bool) -> bytes:
    """The reply we expect: the request bytes with only the type (and checksum) changed."""
    reply = bytearray(request)
    reply[0] = reply_type
    reply[2:4] = b"\x00\x00"
    if not ipv6:
        reply[2:4] = struct.pack("!H", checksum(bytes(reply)))
    return bytes(reply)


def _strip_ipv4_header(packet: bytes) -> bytes:
    if not packet or packet[0] >> 4 != 4:
        return packet
    return packet[(packet[0] & 0x0F) * 4 :]


def _same_address(peer: str, address: str) -> bool:
    try:
        return ipaddress.ip_address(peer.split("%", 1)[0]) == ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return peer == address


def _target_family(probe: ICMPProbe) -> tuple[str, bool]:
    if probe.protocol == "icmp4":
        return "ip4", False
    if probe.protocol == "icmp6":
        return "ip6", False
    return probe.preferred_ip_protocol, probe.ip_protocol_fallback


def open_icmp_socket(resolved: ResolvedTarget, factory: SocketFactory) -> tuple[socket.socket, bool]:
    """
    Open a raw echo socket for the resolved family, bound to the wildcard address.

    Falls back to an unprivileged datagram ping socket when raw sockets are not
    permitted. Returns ``(socket, privileged)``.
    """
    if resolved.family == socket.AF_INET6:
        proto, wildcard = socket.IPPROTO_ICMPV6, "::"
    else:
        proto, wildcard = socket.IPPROTO_ICMP, "0.0.0.0"
    try:
        sock = factory(resolved.family, socket.SOCK_RAW, proto)
        privileged = True
    except PermissionError:
        logger.debug("Raw ICMP socket not permitted, using an unprivileged ping socket")
        sock = factory(resolved.family, socket.SOCK_DGRAM, proto)
        privileged = False
    try:
        sock.bind((wildcard, 0))
    except OSError:
        sock.close()
        raise
    return sock, privileged


def _set_ttl(sock: socket.socket, resolved: ResolvedTarget, ttl: int) -> None:
    if resolved.family == socket.AF_INET6:
        sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_UNICAST_HOPS, ttl)
    else:
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_TTL, ttl)


def _matches(received: bytes, expected: bytes, *, ipv6: bool, privileged: bool) -> bool:
    data = bytearray(received)
    if len(data) != len(expected):
        return False
    if ipv6 and len(data) >= 4:
        data[2:4] = b"\x00\x00"
    if not privileged:
        # Ping sockets rewrite the identifier (and with it the checksum).
        reference = bytearray(expected)
        data[2:6] = reference[2:6] = b"\x00\x00\x00\x00"
        return bytes(data) == bytes(reference)
    return bytes(data) == expected


def probe_icmp(
    ctx: ProbeContext,
    target: str,
    module: Module,
    *,
    sequence: SequenceCounter,
    socket_factory: SocketFactory = socket.socket,
) -> ProbeResult:
    """Send one echo request to ``target`` and wait for the matching reply until the deadline."""
    probe = module.icmp
    result = ProbeResult()

    preferred, fallback = _target_family(probe)
    try:
        resolved = resolve_target(target, preferred, fallback=fallback)
    except ResolutionError as exc:
        result.set(PROBE_DNS_LOOKUP_TIME_SECONDS, exc.lookup_seconds)
        logger.warning("Error resolving address %s: %s", target, exc)
        return result.fail("Error resolving address", ErrorCategory.RESOLUTION_ERROR)
    result.set(PROBE_DNS_LOOKUP_TIME_SECONDS, resolved.lookup_seconds)
    result.set(PROBE_IP_PROTOCOL, resolved.ip_version)

    ipv6 = resolved.family == socket.AF_INET6
    request_type, reply_type = (ICMP6_ECHO_REQUEST, ICMP6_ECHO_REPLY) if ipv6 else (ICMP4_ECHO_REQUEST, ICMP4_ECHO_REPLY)

    try:
        sock, privileged = open_icmp_socket(resolved, socket_factory)
    except OSError as exc:
        logger.error("Error listening to socket for %s: %s", target, exc)
        return result.fail("Error listening to socket", ErrorCategory.SETUP_ERROR)

    with sock:
        if probe.ttl > 0:
            try:
                _set_ttl(sock, resolved, probe.ttl)
            except OSError as exc:
                logger.error("Error setting TTL %d for %s: %s", probe.ttl, target, exc)
                return result.fail("Error setting socket TTL", ErrorCategory.SETUP_ERROR)

        payload = ctx.settings.icmp_payload.encode("utf-8")
        request = build_echo(request_type, os.getpid() & 0xFFFF, sequence.next(), payload, with_checksum=not ipv6)
        try:
            sock.sendto(request, (resolved.address, 0))
        except OSError as exc:
            logger.warning("Error writing to socket for %s: %s", target, exc)
            return result.fail("Error writing to socket", ErrorCategory.CONNECTION_ERROR)

        expected = expected_reply(request, reply_type, ipv6=ipv6)
        while True:
            remaining = ctx.remaining()
            if remaining <= 0:
                logger.warning("Timeout reading from socket for %s", target)
                return result.fail("Timeout reading from socket", ErrorCategory.TIMEOUT)
            sock.settimeout(remaining)
            try:
                data, peer = sock.recvfrom(_READ_SIZE)
            except TimeoutError as exc:
                logger.warning("Timeout reading from socket for %s: %s", target, exc)
                return result.fail("Timeout reading from socket", ErrorCategory.TIMEOUT)
            except OSError as exc:
                logger.error("Error reading from socket for %s: %s", target, exc)
                continue
            if not _same_address(str(peer[0]), resolved.address):
                continue
            if not ipv6 and privileged:
                data = _strip_ipv4_header(data)
            if _matches(data, expected, ipv6=ipv6, privileged=privileged):
                return result.succeed()


__all__ = [
    "ICMP4_ECHO_REPLY",
    "ICMP4_ECHO_REQUEST",
    "ICMP6_ECHO_REPLY",
    "ICMP6_ECHO_REQUEST",
    "SequenceCounter",
    "build_echo",
    "checksum",
    "expected_reply",
    "open_icmp_socket",
    "probe_icmp",
]
