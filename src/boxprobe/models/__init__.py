# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Model exports for boxprobe."""

from .module import (
    BasicAuth,
    Config,
    DNSProbe,
    DNSRRValidator,
    HeaderMatch,
    HTTPClientConfig,
    HTTPProbe,
    ICMPProbe,
    Module,
    ProberKind,
    QueryResponse,
    TCPProbe,
    TLSConfig,
    load_config,
    parse_config,
)
from .probe import ProbeResult
from .regexp import Regexp

__all__ = [
    "BasicAuth",
    "Config",
    "DNSProbe",
    "DNSRRValidator",
    "HeaderMatch",
    "HTTPClientConfig",
    "HTTPProbe",
    "ICMPProbe",
    "Module",
    "ProbeResult",
    "ProberKind",
    "QueryResponse",
    "Regexp",
    "TCPProbe",
    "TLSConfig",
    "load_config",
    "parse_config",
]
