# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP helper exports."""

from .client import build_transport, create_probe_client, environment_proxy_mounts
from .headers import find_header, is_compression_accept_encoding_valid, parse_accept_encoding
from .tls import build_ssl_context, earliest_cert_expiry, presented_certificates

__all__ = [
    "build_ssl_context",
    "build_transport",
    "create_probe_client",
    "earliest_cert_expiry",
    "environment_proxy_mounts",
    "find_header",
    "is_compression_accept_encoding_valid",
    "parse_accept_encoding",
    "presented_certificates",
]
