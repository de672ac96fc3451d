# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Probe dispatcher."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping

from ..config import ProberSettings, load_settings
from ..errors import ErrorCategory, UnknownProberError
from ..models.module import Module, ProberKind
from ..models.probe import ProbeResult
from ..store import SafeConfig
from ..utils.context import ProbeContext
from .icmp import SequenceCounter
from .keys import PROBE_DURATION_SECONDS, PROBE_SUCCESS
from .registry import ProberFn, build_dispatch_table

logger = logging.getLogger(__name__)


class ProbeEngine:
    """Runs one module against one target and stamps the uniform duration/success metrics."""

    def __init__(
        self,
        store: SafeConfig | None = None,
        settings: ProberSettings | None = None,
        sequence: SequenceCounter | None = None,
        probers: Mapping[ProberKind, ProberFn] | None = None,
    ):
        self.store = store or SafeConfig()
        self.settings = settings or load_settings()
        self.sequence = sequence or SequenceCounter()
        self.probers = probers if probers is not None else build_dispatch_table(self.sequence)

    def run(self, module: Module, target: str, *, scrape_timeout: float | None = None) -> ProbeResult:
        prober = self.probers.get(module.prober)
        if prober is None:
            raise UnknownProberError(f"unknown prober {module.prober!r}")

        timeout = self.settings.effective_timeout(module.timeout, scrape_timeout)
        ctx = ProbeContext.with_timeout(timeout, self.settings)
        logger.debug("Beginning %s probe of %s (timeout %.3fs)", module.prober.value, target, timeout)

        started = time.perf_counter()
        try:
            result = prober(ctx, target, module)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Prober %s failed on %s: %s", module.prober.value, target, exc)
            result = ProbeResult().fail("Unexpected error during probe", ErrorCategory.UNKNOWN_ERROR)
        result.duration_seconds = time.perf_counter() - started

        result.set(PROBE_DURATION_SECONDS, result.duration_seconds)
        result.set(PROBE_SUCCESS, result.success)
        if result.success:
            logger.debug("Probe of %s succeeded in %.6fs", target, result.duration_seconds)
        else:
            logger.debug("Probe of %s failed: %s", target, result.diagnostic)
        return result

    def probe(self, module_name: str, target: str, *, scrape_timeout: float | None = None) -> ProbeResult:
        """Run the named module from the current configuration snapshot."""
        module = self.store.module(module_name)
        if module is None:
            raise UnknownProberError(f"unknown module {module_name!r}")
        result = self.run(module, target, scrape_timeout=scrape_timeout)
        if not result.success:
            self.store.record_failure(module_name)
        return result


__all__ = ["ProbeEngine"]
