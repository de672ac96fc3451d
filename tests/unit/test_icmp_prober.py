# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import os
import socket
import struct
import threading

import pytest

from boxprobe.config import ProberSettings
from boxprobe.errors import ErrorCategory
from boxprobe.models import parse_config
from boxprobe.prober.icmp import (
    ICMP4_ECHO_REPLY,
    ICMP4_ECHO_REQUEST,
    ICMP6_ECHO_REPLY,
    ICMP6_ECHO_REQUEST,
    SequenceCounter,
    build_echo,
    checksum,
    expected_reply,
    probe_icmp,
)
from boxprobe.utils.context import ProbeContext

IPV4_HEADER = bytes([0x45, 0, 0, 0, 0, 0, 0, 0, 64, 1, 0, 0, 127, 0, 0, 1, 127, 0, 0, 1])


def _module(**icmp):
    return parse_config({"modules": {"m": {"prober": "icmp", "icmp": icmp}}}).modules["m"]


def _ctx(timeout: float = 2.0) -> ProbeContext:
    return ProbeContext.with_timeout(timeout, ProberSettings(icmp_payload="boxprobe test"))


class FakeSocket:
    """In-memory ICMP socket: replies are produced from each sent packet by ``responder``."""

    def __init__(self, family, kind, proto, responder):
        self.family = family
        self.kind = kind
        self.proto = proto
        self.responder = responder
        self.sent = []
        self.inbox = []
        self.options = []
        self.bound = None
        self.closed = False

    def bind(self, address):
        self.bound = address

    def setsockopt(self, level, option, value):
        self.options.append((level, option, value))

    def settimeout(self, value):
        self.timeout = value

    def sendto(self, packet, address):
        self.sent.append((packet, address))
        self.inbox.extend(self.responder(self, packet, address))
        return len(packet)

    def recvfrom(self, size):  # noqa: ARG002
        if not self.inbox:
            raise TimeoutError("timed out")
        item = self.inbox.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeFactory:
    def __init__(self, responder, raw_allowed=True, fail=False):
        self.responder = responder
        self.raw_allowed = raw_allowed
        self.fail = fail
        self.sockets = []

    def __call__(self, family, kind, proto):
        if self.fail:
            raise OSError("socket: operation not permitted")
        if kind == socket.SOCK_RAW and not self.raw_allowed:
            raise PermissionError("raw sockets need privileges")
        sock = FakeSocket(family, kind, proto, self.responder)
        self.sockets.append(sock)
        return sock


def echo_v4(sock, packet, address):
    return [(IPV4_HEADER + expected_reply(packet, ICMP4_ECHO_REPLY, ipv6=False), address)]


def echo_v6(sock, packet, address):
    reply = bytearray(expected_reply(packet, ICMP6_ECHO_REPLY, ipv6=True))
    reply[2:4] = b"\xbe\xef"  # kernel-computed checksum
    return [(bytes(reply), (address[0], 0, 0, 0))]


def silent(sock, packet, address):
    return []


def test_checksum_of_built_packet_verifies():
    packet = build_echo(ICMP4_ECHO_REQUEST, 0x1234, 7, b"payload", with_checksum=True)
    assert checksum(packet) == 0
    assert packet[0] == ICMP4_ECHO_REQUEST
    assert struct.unpack("!HH", packet[4:8]) == (0x1234, 7)


def test_ipv6_request_leaves_checksum_to_kernel():
    packet = build_echo(ICMP6_ECHO_REQUEST, 1, 1, b"x", with_checksum=False)
    assert packet[2:4] == b"\x00\x00"


def test_expected_reply_only_changes_type_and_checksum():
    request = build_echo(ICMP4_ECHO_REQUEST, 9, 10, b"abc", with_checksum=True)
    reply = expected_reply(request, ICMP4_ECHO_REPLY, ipv6=False)
    assert reply[0] == ICMP4_ECHO_REPLY
    assert reply[4:] == request[4:]
    assert checksum(reply) == 0


def test_ipv4_echo_success():
    factory = FakeFactory(echo_v4)
    result = probe_icmp(
        _ctx(), "127.0.0.1", _module(preferred_ip_protocol="ip4"), sequence=SequenceCounter(41), socket_factory=factory
    )

    assert result.success
    assert result.metrics["probe_ip_protocol"] == 4
    assert "probe_dns_lookup_time_seconds" in result.metrics

    sock = factory.sockets[0]
    assert sock.kind == socket.SOCK_RAW
    assert sock.bound == ("0.0.0.0", 0)
    assert sock.closed
    packet, address = sock.sent[0]
    assert address == ("127.0.0.1", 0)
    assert packet[0] == ICMP4_ECHO_REQUEST
    ident, seq = struct.unpack("!HH", packet[4:8])
    assert ident == os.getpid() & 0xFFFF
    assert seq == 42
    assert packet[8:] == b"boxprobe test"


def test_ipv6_echo_success():
    factory = FakeFactory(echo_v6)
    result = probe_icmp(_ctx(), "::1", _module(), sequence=SequenceCounter(), socket_factory=factory)

    assert result.success
    assert result.metrics["probe_ip_protocol"] == 6
    sock = factory.sockets[0]
    assert sock.family == socket.AF_INET6
    assert sock.proto == socket.IPPROTO_ICMPV6
    assert sock.bound == ("::", 0)
    assert sock.sent[0][0][0] == ICMP6_ECHO_REQUEST


def test_unprivileged_fallback_ignores_rewritten_identifier():
    def rewritten(sock, packet, address):
        reply = bytearray(expected_reply(packet, ICMP4_ECHO_REPLY, ipv6=False))
        reply[4:6] = b"\x99\x99"
        return [(bytes(reply), address)]

    factory = FakeFactory(rewritten, raw_allowed=False)
    result = probe_icmp(
        _ctx(), "127.0.0.1", _module(protocol="icmp4"), sequence=SequenceCounter(), socket_factory=factory
    )

    assert result.success
    assert factory.sockets[0].kind == socket.SOCK_DGRAM


def test_foreign_and_mismatched_replies_are_skipped():
    def noisy(sock, packet, address):
        stale = bytearray(expected_reply(packet, ICMP4_ECHO_REPLY, ipv6=False))
        stale[6:8] = b"\x00\x00"
        return [
            (IPV4_HEADER + expected_reply(packet, ICMP4_ECHO_REPLY, ipv6=False), ("192.0.2.9", 0)),
            (IPV4_HEADER + bytes(stale), address),
            OSError("transient read error"),
            (IPV4_HEADER + expected_reply(packet, ICMP4_ECHO_REPLY, ipv6=False), address),
        ]

    factory = FakeFactory(noisy)
    result = probe_icmp(
        _ctx(), "127.0.0.1", _module(preferred_ip_protocol="ip4"), sequence=SequenceCounter(), socket_factory=factory
    )
    assert result.success


def test_timeout_without_reply():
    factory = FakeFactory(silent)
    result = probe_icmp(
        _ctx(0.5), "127.0.0.1", _module(preferred_ip_protocol="ip4"), sequence=SequenceCounter(), socket_factory=factory
    )

    assert not result.success
    assert result.category is ErrorCategory.TIMEOUT
    assert result.diagnostic == "Timeout reading from socket"
    assert factory.sockets[0].closed


def test_ttl_is_applied():
    factory = FakeFactory(echo_v4)
    probe_icmp(
        _ctx(), "127.0.0.1", _module(preferred_ip_protocol="ip4", ttl=36), sequence=SequenceCounter(), socket_factory=factory
    )
    assert factory.sockets[0].options == [(socket.IPPROTO_IP, socket.IP_TTL, 36)]


def test_socket_setup_failure():
    factory = FakeFactory(echo_v4, fail=True)
    result = probe_icmp(
        _ctx(), "127.0.0.1", _module(preferred_ip_protocol="ip4"), sequence=SequenceCounter(), socket_factory=factory
    )

    assert not result.success
    assert result.category is ErrorCategory.SETUP_ERROR
    assert result.metrics["probe_ip_protocol"] == 4


def test_icmp6_protocol_forces_family():
    result = probe_icmp(
        _ctx(), "127.0.0.1", _module(protocol="icmp6"), sequence=SequenceCounter(), socket_factory=FakeFactory(echo_v4)
    )

    assert not result.success
    assert result.category is ErrorCategory.RESOLUTION_ERROR
    assert "probe_dns_lookup_time_seconds" in result.metrics


def test_sequence_counter_wraps_and_is_thread_safe():
    counter = SequenceCounter(0xFFFE)
    assert counter.next() == 0xFFFF
    assert counter.next() == 0

    shared = SequenceCounter()
    seen = []
    lock = threading.Lock()

    def worker():
        values = [shared.next() for _ in range(500)]
        with lock:
            seen.extend(values)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(seen) == len(set(seen)) == 4000


@pytest.mark.parametrize("payload", [b"", b"a", b"odd!!"])
def test_checksum_handles_odd_lengths(payload):
    packet = build_echo(ICMP4_ECHO_REQUEST, 1, 2, payload, with_checksum=True)
    assert checksum(packet) == 0
