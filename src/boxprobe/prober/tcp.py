# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""TCP connect / dialogue prober."""

from __future__ import annotations

import logging
import re
import socket
import ssl
from collections.abc import Callable

from ..errors import ErrorCategory, ResolutionError, categorize_exception
from ..http.tls import build_ssl_context, earliest_cert_expiry
from ..models.module import Module, TCPProbe
from ..models.probe import ProbeResult
from ..utils.context import ProbeContext
from .keys import (
    PROBE_DNS_LOOKUP_TIME_SECONDS,
    PROBE_FAILED_DUE_TO_REGEX,
    PROBE_IP_PROTOCOL,
    PROBE_SSL_EARLIEST_CERT_EXPIRY,
)
from .resolve import resolve_target, split_host_port

logger = logging.getLogger(__name__)

_TEMPLATE_RE = re.compile(r"\$\{(\w+)\}|\$(\w+)")
_MAX_LINE = 64 * 1024

Connector = Callable[..., socket.socket]


def expand_template(template: str, match: re.Match[str] | None) -> str:
    """Substitute ``${1}``/``$name`` references with groups from the last expect match."""
    if match is None:
        return template

    def replace(ref: re.Match[str]) -> str:
        key = ref.group(1) or ref.group(2)
        group: int | str = int(key) if key.isdigit() else key
        try:
            return match.group(group) or ""
        except IndexError:
            return ""

    return _TEMPLATE_RE.sub(replace, template)


def _arm(sock: socket.socket, ctx: ProbeContext) -> None:
    sock.settimeout(max(ctx.remaining(), 0.001))


class _LineReader:
    def __init__(self, sock: socket.socket):
        self.sock = sock
        self._buffer = b""

    def readline(self) -> bytes:
        while b"\n" not in self._buffer:
            if len(self._buffer) > _MAX_LINE:
                break
            chunk = self.sock.recv(4096)
            if not chunk:
                break
            self._buffer += chunk
        line, sep, rest = self._buffer.partition(b"\n")
        self._buffer = rest
        return line + sep


def _wrap(sock: socket.socket, probe: TCPProbe, host: str) -> ssl.SSLSocket:
    context = build_ssl_context(probe.tls_config)
    return context.wrap_socket(sock, server_hostname=probe.tls_config.server_name or host)


def _record_expiry(sock: socket.socket, result: ProbeResult) -> None:
    if isinstance(sock, ssl.SSLSocket):
        expiry = earliest_cert_expiry(sock)
        if expiry is not None:
            result.set(PROBE_SSL_EARLIEST_CERT_EXPIRY, expiry)


def _dialogue(sock: socket.socket, probe: TCPProbe, host: str, ctx: ProbeContext, result: ProbeResult) -> socket.socket:
    reader = _LineReader(sock)
    last_match: re.Match[str] | None = None
    for step, exchange in enumerate(probe.query_response):
        if exchange.expect is not None:
            logger.debug("Step %d: expecting %r", step, exchange.expect.source)
            while True:
                _arm(sock, ctx)
                try:
                    raw = reader.readline()
                except TimeoutError:
                    logger.warning("Timed out waiting for %r", exchange.expect.source)
                    result.set(PROBE_FAILED_DUE_TO_REGEX, 1)
                    result.fail(f"Regexp {exchange.expect.source!r} did not match before timeout", ErrorCategory.TIMEOUT)
                    return sock
                if not raw:
                    result.set(PROBE_FAILED_DUE_TO_REGEX, 1)
                    result.fail(f"Regexp {exchange.expect.source!r} did not match", ErrorCategory.VALIDATION_FAILED)
                    return sock
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                logger.debug("Read line %r", line)
                last_match = exchange.expect.search(line)
                if last_match is not None:
                    break
        if exchange.send:
            payload = expand_template(exchange.send, last_match)
            logger.debug("Step %d: sending %r", step, payload)
            _arm(sock, ctx)
            sock.sendall((payload + "\n").encode("utf-8"))
        if exchange.starttls:
            logger.debug("Step %d: upgrading to TLS", step)
            _arm(sock, ctx)
            sock = _wrap(sock, probe, host)
            reader.sock = sock
            _record_expiry(sock, result)
    result.set(PROBE_FAILED_DUE_TO_REGEX, 0)
    return sock


def probe_tcp(
    ctx: ProbeContext,
    target: str,
    module: Module,
    *,
    connector: Connector = socket.create_connection,
) -> ProbeResult:
    """Connect to ``host:port`` and run the configured query/response dialogue."""
    probe = module.tcp
    result = ProbeResult()

    try:
        host, port = split_host_port(target)
    except ValueError as exc:
        logger.error("Could not parse target %s: %s", target, exc)
        return result.fail("Could not parse target", ErrorCategory.SETUP_ERROR)
    if port is None:
        logger.error("Target %s has no port", target)
        return result.fail("Target must include a port", ErrorCategory.SETUP_ERROR)

    try:
        resolved = resolve_target(host, probe.preferred_ip_protocol, fallback=probe.ip_protocol_fallback)
    except ResolutionError as exc:
        result.set(PROBE_DNS_LOOKUP_TIME_SECONDS, exc.lookup_seconds)
        logger.warning("Error resolving address %s: %s", host, exc)
        return result.fail("Error resolving address", ErrorCategory.RESOLUTION_ERROR)
    result.set(PROBE_DNS_LOOKUP_TIME_SECONDS, resolved.lookup_seconds)
    result.set(PROBE_IP_PROTOCOL, resolved.ip_version)

    source = (probe.source_ip_address, 0) if probe.source_ip_address else None
    try:
        sock = connector((resolved.address, port), timeout=ctx.remaining(), source_address=source)
    except OSError as exc:
        logger.warning("Error dialing TCP %s: %s", target, exc)
        return result.fail("Error dialing TCP", categorize_exception(exc))

    try:
        if probe.tls:
            sock = _wrap(sock, probe, host)
            _record_expiry(sock, result)
        sock = _dialogue(sock, probe, host, ctx, result)
    except (OSError, ssl.SSLError) as exc:
        category = categorize_exception(exc)
        level = logging.ERROR if category is ErrorCategory.SETUP_ERROR else logging.WARNING
        logger.log(level, "TCP dialogue with %s failed: %s", target, exc)
        return result.fail("Error during TCP dialogue", category)
    finally:
        sock.close()

    if result.diagnostic:
        return result
    return result.succeed()


__all__ = ["expand_template", "probe_tcp"]
