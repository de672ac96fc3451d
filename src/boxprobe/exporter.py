# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Turn structured probe results into metric samples.

Probers only fill ``ProbeResult.metrics``; everything about presentation lives
here. ``TextExposition`` renders the Prometheus text format for one probe.
"""

from __future__ import annotations

import math
from typing import Protocol

from .models.probe import ProbeResult
from .prober.keys import METRIC_HELP, PROBE_DURATION_SECONDS, PROBE_SUCCESS
from .store import ReloadStatus

CONFIG_LAST_RELOAD_SUCCESSFUL = "blackbox_exporter_config_last_reload_successful"
CONFIG_LAST_RELOAD_SUCCESS_TIMESTAMP = "blackbox_exporter_config_last_reload_success_timestamp_seconds"
CONFIG_RELOAD_FAILURES_TOTAL = "blackbox_exporter_config_reload_failures_total"
MODULE_FAILURES_TOTAL = "blackbox_module_probe_failures_total"

_HELP = {
    CONFIG_LAST_RELOAD_SUCCESSFUL: "Blackbox exporter config loaded successfully",
    CONFIG_LAST_RELOAD_SUCCESS_TIMESTAMP: "Timestamp of the last successful configuration reload",
    CONFIG_RELOAD_FAILURES_TOTAL: "Number of failed configuration reloads",
    MODULE_FAILURES_TOTAL: "Number of failed probes per module since the last reload",
}


class MetricSink(Protocol):
    def set(self, name: str, value: float, help_text: str = "", labels: dict[str, str] | None = None) -> None: ...


def format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


class TextExposition:
    """Collects gauge samples and renders them in the Prometheus text format."""

    def __init__(self) -> None:
        self._families: dict[str, tuple[str, list[tuple[dict[str, str], float]]]] = {}

    def set(self, name: str, value: float, help_text: str = "", labels: dict[str, str] | None = None) -> None:
        existing = self._families.get(name)
        if existing is None:
            existing = (help_text, [])
            self._families[name] = existing
        existing[1].append((dict(labels or {}), float(value)))

    def render(self) -> str:
        lines: list[str] = []
        for name, (help_text, samples) in self._families.items():
            if help_text:
                lines.append(f"# HELP {name} {help_text}")
            lines.append(f"# TYPE {name} gauge")
            for labels, value in samples:
                label_text = ""
                if labels:
                    label_text = "{" + ",".join(f'{k}="{_escape(v)}"' for k, v in sorted(labels.items())) + "}"
                lines.append(f"{name}{label_text} {format_value(value)}")
        return "\n".join(lines) + "\n" if lines else ""


def export(result: ProbeResult, sink: MetricSink) -> None:
    """Emit every measurement of ``result``; success and duration come last."""
    for name, value in result.metrics.items():
        if name in (PROBE_SUCCESS, PROBE_DURATION_SECONDS):
            continue
        sink.set(name, value, METRIC_HELP.get(name, ""))
    sink.set(PROBE_DURATION_SECONDS, result.duration_seconds, METRIC_HELP[PROBE_DURATION_SECONDS])
    sink.set(PROBE_SUCCESS, result.success, METRIC_HELP[PROBE_SUCCESS])


def export_reload_status(status: ReloadStatus, failures: dict[str, int], sink: MetricSink) -> None:
    sink.set(CONFIG_LAST_RELOAD_SUCCESSFUL, status.success, _HELP[CONFIG_LAST_RELOAD_SUCCESSFUL])
    sink.set(
        CONFIG_LAST_RELOAD_SUCCESS_TIMESTAMP,
        status.last_success_timestamp,
        _HELP[CONFIG_LAST_RELOAD_SUCCESS_TIMESTAMP],
    )
    sink.set(CONFIG_RELOAD_FAILURES_TOTAL, status.failures_total, _HELP[CONFIG_RELOAD_FAILURES_TOTAL])
    for module_name, count in sorted(failures.items()):
        sink.set(MODULE_FAILURES_TOTAL, count, _HELP[MODULE_FAILURES_TOTAL], {"module": module_name})


def render_text(result: ProbeResult) -> str:
    exposition = TextExposition()
    export(result, exposition)
    return exposition.render()


__all__ = [
    "MetricSink",
    "TextExposition",
    "export",
    "export_reload_status",
    "format_value",
    "render_text",
]
