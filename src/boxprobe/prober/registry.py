# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Prober dispatch table."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from functools import partial

from ..models.module import Module, ProberKind
from ..models.probe import ProbeResult
from ..utils.context import ProbeContext
from .dns import probe_dns
from .http import probe_http
from .icmp import SequenceCounter, probe_icmp
from .tcp import probe_tcp

ProberFn = Callable[[ProbeContext, str, Module], ProbeResult]


def build_dispatch_table(sequence: SequenceCounter | None = None) -> Mapping[ProberKind, ProberFn]:
    """Map every prober kind to its implementation; ICMP shares ``sequence``."""
    table: dict[ProberKind, ProberFn] = {
        ProberKind.HTTP: probe_http,
        ProberKind.TCP: probe_tcp,
        ProberKind.DNS: probe_dns,
        ProberKind.ICMP: partial(probe_icmp, sequence=sequence or SequenceCounter()),
    }
    missing = set(ProberKind) - set(table)
    if missing:
        raise RuntimeError(f"no prober registered for {sorted(kind.value for kind in missing)}")
    return table


__all__ = ["ProberFn", "build_dispatch_table"]
