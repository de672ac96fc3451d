# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""httpx client factory for the HTTP prober."""

from __future__ import annotations

import ipaddress
import logging
import socket
import ssl
import threading
import urllib.request
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_LOCAL_ADDRESSES = {socket.AF_INET: "0.0.0.0", socket.AF_INET6: "::"}
_PROXY_MOUNTS = (("all", "all://"), ("http", "http://"), ("https", "https://"))


def build_transport(
    *,
    family: int | None,
    ssl_context: ssl.SSLContext | bool,
    proxy_url: str = "",
) -> httpx.HTTPTransport:
    """
    Transport pinned to one address family, without connection reuse.

    Binding the local side to the wildcard address of a family keeps every connect,
    redirects and proxy hops included, on that family.
    """
    return httpx.HTTPTransport(
        verify=ssl_context,
        local_address=_LOCAL_ADDRESSES.get(family) if family is not None else None,
        proxy=proxy_url or None,
        limits=httpx.Limits(max_connections=None, max_keepalive_connections=0),
        retries=0,
    )


def _no_proxy_pattern(host: str) -> str:
    if "://" in host:
        return host
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return "all://localhost" if host == "localhost" else f"all://*{host}"
    return f"all://[{address}]" if address.version == 6 else f"all://{address}"


def environment_proxy_mounts(
    *,
    family: int | None,
    ssl_context: ssl.SSLContext | bool,
) -> dict[str, httpx.BaseTransport | None]:
    """
    httpx mounts for the proxies named by ``HTTP_PROXY``/``HTTPS_PROXY``/``ALL_PROXY``.

    Each proxy transport is pinned to ``family`` like the direct one. ``NO_PROXY``
    entries map to ``None``, which sends matching URLs through the client's own
    transport.
    """
    proxies = urllib.request.getproxies()
    mounts: dict[str, httpx.BaseTransport | None] = {}
    for scheme, pattern in _PROXY_MOUNTS:
        url = proxies.get(scheme)
        if not url:
            continue
        if "://" not in url:
            url = f"http://{url}"
        mounts[pattern] = build_transport(family=family, ssl_context=ssl_context, proxy_url=url)
    if not mounts:
        return mounts

    for entry in proxies.get("no", "").split(","):
        host = entry.strip()
        if not host:
            continue
        if host == "*":
            return {}
        mounts[_no_proxy_pattern(host)] = None
    return mounts


def create_probe_client(
    *,
    timeout: float,
    family: int | None,
    ssl_context: ssl.SSLContext | bool,
    proxy_url: str = "",
    auth: httpx.Auth | None = None,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """
    One client per probe: fresh connections, explicit redirect handling.

    A module ``proxy_url`` wins over the environment; otherwise proxies from the
    environment are mounted. An injected ``transport`` is used as is.
    """
    mounts: dict[str, httpx.BaseTransport | None] = {}
    if transport is None:
        if not proxy_url:
            mounts = environment_proxy_mounts(family=family, ssl_context=ssl_context)
        transport = build_transport(family=family, ssl_context=ssl_context, proxy_url=proxy_url)
    return httpx.Client(
        transport=transport,
        mounts=mounts,
        timeout=timeout,
        follow_redirects=False,
        auth=auth,
    )


class DeadlineGuard:
    """
    One overall deadline for a whole exchange.

    httpx timeouts apply per connect, read and write, so a peer that trickles bytes
    keeps resetting them. The guard collects every socket the client opens through
    the ``trace`` request extension and shuts them down once ``seconds`` have passed,
    which fails whatever call is blocked on them.
    """

    def __init__(self, seconds: float):
        self.expired = False
        self._lock = threading.Lock()
        self._sockets: list[socket.socket] = []
        self._timer = threading.Timer(seconds, self._expire)
        self._timer.daemon = True

    def __enter__(self) -> DeadlineGuard:
        self._timer.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._timer.cancel()

    def trace(self, event_name: str, info: dict[str, Any]) -> None:
        if not event_name.endswith(("connect_tcp.complete", "start_tls.complete")):
            return
        stream = info.get("return_value")
        sock = stream.get_extra_info("socket") if stream is not None else None
        if sock is None:
            return
        with self._lock:
            self._sockets.append(sock)
            expired = self.expired
        if expired:
            _shutdown(sock)

    def _expire(self) -> None:
        with self._lock:
            self.expired = True
            sockets = list(self._sockets)
        logger.debug("Deadline reached, closing %d socket(s)", len(sockets))
        for sock in sockets:
            _shutdown(sock)


def _shutdown(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as exc:
        logger.debug("Socket already closed at deadline: %s", exc)


__all__ = ["DeadlineGuard", "build_transport", "create_probe_client", "environment_proxy_mounts"]
