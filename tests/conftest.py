# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

_ENV_VARS = (
    "BOXPROBE_CONFIG_FILE",
    "BOXPROBE_DEFAULT_TIMEOUT",
    "BOXPROBE_TIMEOUT_OFFSET",
    "BOXPROBE_USER_AGENT",
    "BOXPROBE_ICMP_PAYLOAD",
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "ALL_PROXY",
    "http_proxy",
    "https_proxy",
    "all_proxy",
    "NO_PROXY",
    "no_proxy",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_certificate(tmp_path):
    """Factory for self-signed certificates written to PEM files under ``tmp_path``."""

    def make(not_after: datetime, common_name: str = "localhost") -> SimpleNamespace:
        key = ec.generate_private_key(ec.SECP256R1())
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_after - timedelta(days=3650))
            .not_valid_after(not_after)
            .sign(key, hashes.SHA256())
        )
        cert_file = tmp_path / f"{common_name}-{int(not_after.timestamp())}.crt"
        key_file = cert_file.with_suffix(".key")
        cert_file.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
        key_file.write_bytes(
            key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            )
        )
        return SimpleNamespace(
            der=cert.public_bytes(serialization.Encoding.DER),
            cert_file=str(cert_file),
            key_file=str(key_file),
            not_after=not_after.timestamp(),
        )

    return make
