# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP prober."""

from __future__ import annotations

import logging
import ssl
import time
from pathlib import Path
from typing import Any

import httpx

from ..errors import ErrorCategory, ResolutionError, categorize_exception
from ..http.client import DeadlineGuard, create_probe_client
from ..http.headers import find_header, is_host_header
from ..http.tls import build_ssl_context, earliest_cert_expiry
from ..models.module import HeaderMatch, HTTPProbe, Module
from ..models.probe import ProbeResult
from ..utils.context import ProbeContext
from ..utils.matching import match_regexps
from .keys import (
    PROBE_DNS_LOOKUP_TIME_SECONDS,
    PROBE_FAILED_DUE_TO_REGEX,
    PROBE_HTTP_CONTENT_LENGTH,
    PROBE_HTTP_DURATION_SECONDS,
    PROBE_HTTP_REDIRECTS,
    PROBE_HTTP_SSL,
    PROBE_HTTP_STATUS_CODE,
    PROBE_HTTP_VERSION,
    PROBE_IP_PROTOCOL,
    PROBE_SSL_EARLIEST_CERT_EXPIRY,
)
from .resolve import resolve_target

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 10
REQUEST_ERROR = "request error"


class _RedirectState:
    def __init__(self) -> None:
        self.redirects = 0


def _normalize_target(target: str) -> str:
    if target.startswith(("http://", "https://")):
        return target
    return "http://" + target


def tls_ssl_object(response: httpx.Response) -> Any:
    """Return the live ``ssl.SSLObject`` behind a streamed response, if it was served over TLS."""
    stream = response.extensions.get("network_stream")
    if stream is None:
        return None
    return stream.get_extra_info("ssl_object")


def _read_secret_file(path: str) -> str:
    return Path(path).read_text(encoding="utf-8").strip()


def _build_auth(probe: HTTPProbe, headers: dict[str, str]) -> httpx.Auth | None:
    client_config = probe.http_client_config
    if client_config.bearer_token is not None:
        headers["Authorization"] = f"Bearer {client_config.bearer_token.get_secret_value()}"
    elif client_config.bearer_token_file:
        headers["Authorization"] = f"Bearer {_read_secret_file(client_config.bearer_token_file)}"
    basic = client_config.basic_auth
    if basic is None:
        return None
    if basic.password is not None:
        password = basic.password.get_secret_value()
    elif basic.password_file:
        password = _read_secret_file(basic.password_file)
    else:
        password = ""
    return httpx.BasicAuth(basic.username, password)


def _request_headers(probe: HTTPProbe, user_agent: str) -> tuple[dict[str, str], str | None]:
    """Configured headers plus defaults; the Host entry is split out as the request authority."""
    headers: dict[str, str] = {"User-Agent": user_agent}
    host: str | None = None
    for key, value in probe.headers.items():
        if is_host_header(key):
            host = value
            continue
        headers[key] = value
    if probe.compression and find_header(probe.headers, "Accept-Encoding") is None:
        headers["Accept-Encoding"] = probe.compression
    return headers, host


def _send(
    client: httpx.Client,
    request: httpx.Request,
    probe: HTTPProbe,
    ctx: ProbeContext,
    state: _RedirectState,
) -> httpx.Response:
    """
    Send ``request`` and walk its redirect chain by hand.

    Once more than ``MAX_REDIRECTS`` hops were seen, or following is disabled, the last
    redirect response is returned as the final one; that is a stop, not an error.
    """
    response = client.send(request, stream=True)
    while response.next_request is not None:
        state.redirects += 1
        if state.redirects > MAX_REDIRECTS or not probe.follow_redirects:
            logger.debug("Not following redirect %d for %s", state.redirects, request.url)
            break
        next_request = response.next_request
        response.close()
        if ctx.expired():
            raise httpx.TimeoutException("probe deadline exceeded while following redirects", request=next_request)
        logger.debug("Following redirect to %s", next_request.url)
        response = client.send(next_request, stream=True)
    return response


def _check_header_matchers(response: httpx.Response, probe: HTTPProbe) -> str:
    def check(matcher: HeaderMatch, must_match: bool) -> str:
        values = response.headers.get_list(matcher.header)
        if not values:
            if matcher.allow_missing:
                return ""
            return f"Missing required header {matcher.header!r}"
        regexp = matcher.regexp
        matched = regexp is not None and any(regexp.matches(value) for value in values)
        if must_match and not matched:
            return f"Header {matcher.header!r} did not match required regexp"
        if not must_match and matched:
            return f"Header {matcher.header!r} matched forbidden regexp"
        return ""

    for matcher in probe.fail_if_header_matches:
        reason = check(matcher, must_match=False)
        if reason:
            return reason
    for matcher in probe.fail_if_header_not_matches:
        reason = check(matcher, must_match=True)
        if reason:
            return reason
    return ""


def _http_version_number(version: str) -> float:
    try:
        return float(version.split("/", 1)[1])
    except (IndexError, ValueError):
        return 0.0


def _content_length(response: httpx.Response, body_read: int | None) -> int:
    raw = response.headers.get("Content-Length")
    if raw is not None:
        try:
            return int(raw)
        except ValueError:
            pass
    return body_read if body_read is not None else -1


def _evaluate(
    response: httpx.Response,
    probe: HTTPProbe,
    result: ProbeResult,
    deadline: DeadlineGuard,
) -> int | None:
    """Run the response checks in order; returns the number of body bytes read, if any."""
    status = response.status_code
    if probe.valid_status_codes:
        status_ok = status in probe.valid_status_codes
    else:
        status_ok = 200 <= status < 300
    if not status_ok:
        logger.info("Invalid HTTP response status code %d, wanted %s", status, probe.valid_status_codes or "2xx")
        result.fail(f"Invalid HTTP response status code {status}", ErrorCategory.VALIDATION_FAILED)
        return None
    result.succeed()

    if probe.valid_http_versions and response.http_version not in probe.valid_http_versions:
        logger.info("Invalid HTTP version %s", response.http_version)
        result.fail(f"Invalid HTTP version {response.http_version}", ErrorCategory.VALIDATION_FAILED)
        return None

    if probe.compression:
        encoding = response.headers.get("Content-Encoding", "")
        if encoding.strip().lower() != probe.compression.lower():
            result.fail(
                f"Invalid Content-Encoding {encoding!r}, expected {probe.compression!r}",
                ErrorCategory.VALIDATION_FAILED,
            )
            return None

    if probe.fail_if_header_matches or probe.fail_if_header_not_matches:
        reason = _check_header_matchers(response, probe)
        result.set(PROBE_FAILED_DUE_TO_REGEX, bool(reason))
        if reason:
            result.fail(reason, ErrorCategory.VALIDATION_FAILED)
            return None

    if not probe.has_body_matchers:
        return None

    try:
        body = response.read()
    except httpx.HTTPError as exc:
        logger.warning("Error reading HTTP body: %s", exc)
        result.fail("Error reading HTTP body", ErrorCategory.TIMEOUT if deadline.expired else categorize_exception(exc))
        return None
    text = body.decode(response.encoding or "utf-8", errors="replace")
    ok, reason = match_regexps(text, probe.fail_if_body_matches_regexp, probe.fail_if_body_not_matches_regexp)
    result.set(PROBE_FAILED_DUE_TO_REGEX, not ok)
    if not ok:
        result.fail(f"Body {reason}", ErrorCategory.VALIDATION_FAILED)
    return len(body)


def _record_tls(response: httpx.Response, probe: HTTPProbe, result: ProbeResult) -> None:
    ssl_object = tls_ssl_object(response)
    result.set(PROBE_HTTP_SSL, ssl_object is not None)
    if ssl_object is not None:
        expiry = earliest_cert_expiry(ssl_object)
        if expiry is not None:
            result.set(PROBE_SSL_EARLIEST_CERT_EXPIRY, expiry)
        if probe.fail_if_ssl and result.success:
            result.fail("Final request was over SSL", ErrorCategory.VALIDATION_FAILED)
    elif probe.fail_if_not_ssl and result.success:
        result.fail("Final request was not over SSL", ErrorCategory.VALIDATION_FAILED)


def probe_http(
    ctx: ProbeContext,
    target: str,
    module: Module,
    *,
    transport: httpx.BaseTransport | None = None,
) -> ProbeResult:
    """Probe ``target`` over HTTP(S) according to ``module.http``."""
    probe = module.http
    result = ProbeResult()
    target = _normalize_target(target)

    try:
        url = httpx.URL(target)
    except httpx.InvalidURL as exc:
        logger.error("Could not parse target URL %s: %s", target, exc)
        return result.fail("Could not parse target URL", ErrorCategory.SETUP_ERROR)

    family: int | None = None
    if probe.protocol == "tcp":
        try:
            resolved = resolve_target(url.host, probe.preferred_ip_protocol, fallback=probe.ip_protocol_fallback)
        except ResolutionError as exc:
            result.set(PROBE_DNS_LOOKUP_TIME_SECONDS, exc.lookup_seconds)
            logger.warning("Error resolving address %s: %s", url.host, exc)
            return result.fail("Error resolving address", ErrorCategory.RESOLUTION_ERROR)
        result.set(PROBE_DNS_LOOKUP_TIME_SECONDS, resolved.lookup_seconds)
        result.set(PROBE_IP_PROTOCOL, resolved.ip_version)
        family = resolved.family
    else:
        # no dial family is chosen for this transport; reported as IPv4
        result.set(PROBE_IP_PROTOCOL, 4)

    try:
        ssl_context = build_ssl_context(probe.http_client_config.tls_config)
    except (OSError, ssl.SSLError) as exc:
        logger.error("Error generating TLS config: %s", exc)
        return result.fail("Error generating TLS config", ErrorCategory.SETUP_ERROR)

    headers, host = _request_headers(probe, ctx.settings.user_agent)
    try:
        auth = _build_auth(probe, headers)
        content = Path(probe.body_file).read_bytes() if probe.body_file else probe.body.encode("utf-8")
    except OSError as exc:
        logger.error("Error reading request credentials or body for %s: %s", target, exc)
        return result.fail("Error reading request body or credentials", ErrorCategory.SETUP_ERROR)

    extensions: dict[str, Any] = {}
    server_name = probe.http_client_config.tls_config.server_name
    if server_name:
        extensions["sni_hostname"] = server_name

    state = _RedirectState()
    response: httpx.Response | None = None
    body_read: int | None = None
    started = time.perf_counter()
    deadline = DeadlineGuard(ctx.remaining())
    extensions["trace"] = deadline.trace
    with deadline, create_probe_client(
        timeout=ctx.remaining(),
        family=family,
        ssl_context=ssl_context,
        proxy_url=probe.http_client_config.proxy_url,
        auth=auth,
        transport=transport,
    ) as client:
        request = client.build_request(
            probe.method,
            url,
            headers=headers,
            content=content or None,
            extensions=extensions,
        )
        if host:
            request.headers["Host"] = host
        try:
            response = _send(client, request, probe, ctx, state)
        except httpx.HTTPError as exc:
            logger.warning("Error for HTTP request to %s: %s", target, exc)
            result.fail(REQUEST_ERROR, ErrorCategory.TIMEOUT if deadline.expired else categorize_exception(exc))
        else:
            try:
                body_read = _evaluate(response, probe, result, deadline)
                _record_tls(response, probe, result)
            finally:
                response.close()

    result.set(PROBE_HTTP_DURATION_SECONDS, time.perf_counter() - started)
    result.set(PROBE_HTTP_STATUS_CODE, response.status_code if response is not None else 0)
    result.set(PROBE_HTTP_CONTENT_LENGTH, _content_length(response, body_read) if response is not None else 0)
    result.set(PROBE_HTTP_REDIRECTS, state.redirects)
    if response is None:
        result.set(PROBE_HTTP_SSL, 0)
    else:
        result.set(PROBE_HTTP_VERSION, _http_version_number(response.http_version))
    return result


__all__ = ["MAX_REDIRECTS", "REQUEST_ERROR", "probe_http", "tls_ssl_object"]
