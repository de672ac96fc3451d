# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""High-level boxprobe facade wiring the configuration store and the probe engine."""

from __future__ import annotations

from pathlib import Path

from .config import ProberSettings, load_settings
from .exporter import TextExposition, export, export_reload_status
from .models.probe import ProbeResult
from .prober.engine import ProbeEngine
from .prober.icmp import SequenceCounter
from .store import ReloadHook, SafeConfig


class BoxProbe:
    """
    Convenience wrapper owning one store, one engine and the shared ICMP sequence.

    Long-running callers keep one instance and call ``reload()`` on demand; the
    engine always probes against the latest published configuration.
    """

    def __init__(
        self,
        settings: ProberSettings | None = None,
        *,
        store: SafeConfig | None = None,
        sequence: SequenceCounter | None = None,
    ):
        self.settings = settings or load_settings()
        self.store = store or SafeConfig()
        self.engine = ProbeEngine(self.store, self.settings, sequence=sequence)

    def reload(self, path: str | Path | None = None, notify: ReloadHook | None = None) -> None:
        self.store.reload(path or self.settings.config_file, notify)

    def probe(self, module_name: str, target: str, *, scrape_timeout: float | None = None) -> ProbeResult:
        return self.engine.probe(module_name, target, scrape_timeout=scrape_timeout)

    def metrics(self, module_name: str, target: str, *, scrape_timeout: float | None = None) -> str:
        """Probe and render the result in the Prometheus text format."""
        exposition = TextExposition()
        export(self.probe(module_name, target, scrape_timeout=scrape_timeout), exposition)
        return exposition.render()

    def status_metrics(self) -> str:
        exposition = TextExposition()
        export_reload_status(self.store.status(), self.store.failures(), exposition)
        return exposition.render()


__all__ = ["BoxProbe"]
