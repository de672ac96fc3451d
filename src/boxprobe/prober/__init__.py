# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Protocol probers and their dispatcher."""

from .dns import probe_dns
from .engine import ProbeEngine
from .http import probe_http
from .icmp import SequenceCounter, probe_icmp
from .registry import ProberFn, build_dispatch_table
from .resolve import ResolvedTarget, resolve_target, split_host_port
from .tcp import probe_tcp

__all__ = [
    "ProbeEngine",
    "ProberFn",
    "ResolvedTarget",
    "SequenceCounter",
    "build_dispatch_table",
    "probe_dns",
    "probe_http",
    "probe_icmp",
    "probe_tcp",
    "resolve_target",
    "split_host_port",
]
