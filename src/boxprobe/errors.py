# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Error taxonomy and exception helpers."""

from __future__ import annotations

import socket
import ssl
from enum import Enum
from typing import Any

import dns.exception
import httpx
from pydantic import ValidationError

CONFIG_ERROR_PREFIX = "error parsing config file"


class ErrorCategory(str, Enum):
    NONE = "NONE"
    CONFIG_ERROR = "CONFIG_ERROR"
    RESOLUTION_ERROR = "RESOLUTION_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    SSL_ERROR = "SSL_ERROR"
    TIMEOUT = "TIMEOUT"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    SETUP_ERROR = "SETUP_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ConfigError(ValueError):
    """A configuration document failed to parse or validate."""

    def __init__(self, message: str, problems: list[str] | None = None):
        super().__init__(message)
        self.problems = list(problems or [message])


class UnknownProberError(LookupError):
    """Raised at dispatch time for a module name or prober kind that is not known."""


class ResolutionError(OSError):
    """A target could not be resolved in any permitted address family."""

    lookup_seconds: float = 0.0


def config_error(*problems: str) -> ConfigError:
    """Build the aggregated error for one document load."""
    joined = "; ".join(problems)
    return ConfigError(f"{CONFIG_ERROR_PREFIX}: {joined}", list(problems))


def _format_loc(loc: tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc)


def config_error_from_validation(exc: ValidationError) -> ConfigError:
    """Flatten a pydantic ValidationError into a single ConfigError."""
    problems: list[str] = []
    for error in exc.errors(include_url=False):
        loc = tuple(error.get("loc") or ())
        kind = error.get("type")
        if kind == "extra_forbidden":
            parent = _format_loc(loc[:-1]) or "config"
            problems.append(f"{parent}: field {loc[-1]} not found")
            continue
        ctx_error = (error.get("ctx") or {}).get("error")
        message = str(ctx_error) if ctx_error is not None else str(error.get("msg"))
        where = _format_loc(loc)
        problems.append(f"{where}: {message}" if where else message)
    return config_error(*problems)


def categorize_exception(exc: BaseException) -> ErrorCategory:
    """
    Map Python/httpx/dnspython exceptions to ErrorCategory.
    """
    if isinstance(exc, (httpx.TimeoutException, dns.exception.Timeout, TimeoutError)):
        return ErrorCategory.TIMEOUT

    if isinstance(exc, (ssl.SSLError, ssl.CertificateError)):
        return ErrorCategory.SSL_ERROR

    if isinstance(exc, httpx.ConnectError) and isinstance(exc.__cause__, ssl.SSLError):
        return ErrorCategory.SSL_ERROR

    if isinstance(exc, (ResolutionError, socket.gaierror, socket.herror)):
        return ErrorCategory.RESOLUTION_ERROR

    if isinstance(
        exc, (httpx.ConnectError, httpx.RemoteProtocolError, httpx.NetworkError, httpx.ProxyError)
    ):
        return ErrorCategory.CONNECTION_ERROR

    if isinstance(exc, (dns.exception.DNSException, OSError)):
        return ErrorCategory.CONNECTION_ERROR

    return ErrorCategory.UNKNOWN_ERROR


def error_category_to_reason(category: ErrorCategory | None) -> str:
    """User-facing reason string."""
    mapping = {
        ErrorCategory.CONFIG_ERROR: "Invalid probe configuration",
        ErrorCategory.RESOLUTION_ERROR: "Target could not be resolved",
        ErrorCategory.CONNECTION_ERROR: "Network connectivity issue",
        ErrorCategory.SSL_ERROR: "TLS/certificate issue",
        ErrorCategory.TIMEOUT: "Network timeout during probe",
        ErrorCategory.VALIDATION_FAILED: "Response did not satisfy module constraints",
        ErrorCategory.SETUP_ERROR: "Local probe setup failed",
        ErrorCategory.UNKNOWN_ERROR: "Network error during probe",
        ErrorCategory.NONE: "",
        None: "",
    }
    return mapping.get(category, "Probe failed due to network error")


__all__ = [
    "CONFIG_ERROR_PREFIX",
    "ConfigError",
    "ErrorCategory",
    "ResolutionError",
    "UnknownProberError",
    "categorize_exception",
    "config_error",
    "config_error_from_validation",
    "error_category_to_reason",
]
