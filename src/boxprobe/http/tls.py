# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""TLS option handling shared by the HTTP and TCP probers."""

from __future__ import annotations

import ssl
from typing import TYPE_CHECKING, Any

from cryptography import x509

if TYPE_CHECKING:
    from ..models.module import TLSConfig

_MIN_VERSIONS = {
    "TLS10": ssl.TLSVersion.TLSv1,
    "TLS11": ssl.TLSVersion.TLSv1_1,
    "TLS12": ssl.TLSVersion.TLSv1_2,
    "TLS13": ssl.TLSVersion.TLSv1_3,
}


def build_ssl_context(tls: TLSConfig) -> ssl.SSLContext:
    """Turn module TLS options into a client context. Raises OSError/ssl.SSLError on bad files."""
    context = ssl.create_default_context(cafile=tls.ca_file or None)
    if tls.cert_file:
        context.load_cert_chain(tls.cert_file, tls.key_file or None)
    if tls.insecure_skip_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    if tls.min_version:
        context.minimum_version = _MIN_VERSIONS[tls.min_version]
    return context


def _load_certificate(cert: Any) -> x509.Certificate:
    if isinstance(cert, bytes):
        return x509.load_der_x509_certificate(cert)
    # _ssl.Certificate entries from the low-level socket object
    pem = cert.public_bytes()
    return x509.load_pem_x509_certificate(pem.encode("ascii") if isinstance(pem, str) else pem)


def presented_certificates(ssl_object: Any) -> list[x509.Certificate]:
    """
    Certificates the peer sent, leaf first.

    Uses the full unverified chain when the interpreter exposes it and the DER leaf
    otherwise; both are available with verification disabled.
    """
    get_chain = getattr(ssl_object, "get_unverified_chain", None)
    chain = list(get_chain() or []) if get_chain is not None else []
    if not chain:
        leaf = ssl_object.getpeercert(True)
        chain = [leaf] if leaf else []
    return [_load_certificate(cert) for cert in chain]


def earliest_cert_expiry(ssl_object: Any) -> float | None:
    """Unix timestamp of the earliest ``notAfter`` among the presented certificates."""
    if ssl_object is None:
        return None
    expiries = [cert.not_valid_after_utc.timestamp() for cert in presented_certificates(ssl_object)]
    return min(expiries) if expiries else None


__all__ = ["build_ssl_context", "earliest_cert_expiry", "presented_certificates"]
